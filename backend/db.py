import json
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

# Allow overriding the DB file used by the application (useful for tests)
DB_PATH = Path(
    os.environ.get('CALCLANG_DB_PATH') or Path(__file__).parent / 'calclang.db'
)


def _db_path() -> Path:
    # re-read the override so tests can point at a temporary file after import
    override = os.environ.get('CALCLANG_DB_PATH')
    return Path(override) if override else DB_PATH


def get_conn():
    """Return a new sqlite3 connection configured to return rows as dict-like objects.

    We create a fresh connection per-call; the service is small enough that a
    pool would add nothing.
    """
    conn = sqlite3.connect(str(_db_path()))
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Ensure the database file and required tables exist.

    Idempotent and safe to call at application startup.
    """
    _db_path().parent.mkdir(parents=True, exist_ok=True)
    conn = get_conn()
    cur = conn.cursor()
    cur.execute('''
    CREATE TABLE IF NOT EXISTS Programs (
      program_id INTEGER PRIMARY KEY,
      title TEXT NOT NULL,
      ast_json TEXT NOT NULL,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''')
    cur.execute('''
    CREATE TABLE IF NOT EXISTS Runs (
      run_id INTEGER PRIMARY KEY,
      program_id INTEGER NULL,
      steps INTEGER,
      output_lines INTEGER,
      duration_ms INTEGER,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''')
    conn.commit()
    conn.close()


def save_program(title: str, program: List[Dict[str, Any]]) -> int:
    """Persist a program in its JSON wire form and return the new program_id."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'INSERT INTO Programs (title, ast_json) VALUES (?, ?)',
        (title, json.dumps(program)),
    )
    program_id = cur.lastrowid
    conn.commit()
    conn.close()
    return program_id


def list_programs() -> List[Dict[str, Any]]:
    """Return saved programs (id, title, created_at), newest first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'SELECT program_id, title, created_at FROM Programs '
        'ORDER BY created_at DESC, program_id DESC'
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_program(program_id: int) -> Optional[Dict[str, Any]]:
    """Fetch a single program by id with its decoded JSON AST, or None."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'SELECT program_id, title, ast_json, created_at FROM Programs '
        'WHERE program_id = ?',
        (program_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    d = dict(row)
    d['program'] = json.loads(d.pop('ast_json'))
    return d


def save_run(
    program_id: Optional[int],
    steps: Optional[int],
    output_lines: Optional[int],
    duration_ms: Optional[int],
) -> int:
    """Persist a run row and return its run_id.

    Callers should treat this operation as non-fatal: if saving fails, the
    API still returns the interpreter result.
    """
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO Runs (program_id, steps, output_lines, duration_ms)
        VALUES (?, ?, ?, ?)
        """,
        (program_id, steps, output_lines, duration_ms),
    )
    run_id = cur.lastrowid
    conn.commit()
    conn.close()
    return run_id


def list_runs(program_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """List run rows, optionally filtering by program_id."""
    conn = get_conn()
    cur = conn.cursor()
    if program_id:
        cur.execute(
            (
                "SELECT run_id, program_id, steps, output_lines, duration_ms,"
                " created_at FROM Runs WHERE program_id = ?"
                " ORDER BY created_at DESC, run_id DESC"
            ),
            (program_id,),
        )
    else:
        cur.execute(
            (
                "SELECT run_id, program_id, steps, output_lines, duration_ms,"
                " created_at FROM Runs ORDER BY created_at DESC, run_id DESC"
            )
        )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]
