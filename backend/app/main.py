"""FastAPI application entrypoints for CalcLang.

This module exposes HTTP endpoints to run, save and inspect CalcLang
programs. Programs travel in the JSON AST wire format of
`backend.calclang.ast_codec`. Each `/run` request constructs a fresh
`Interpreter` to avoid cross-request state sharing, and server-side caps
are enforced so clients cannot lift the resource/safety limits.
"""

import logging
import math
import time
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI
from pydantic import BaseModel

from .. import db
from ..calclang.ast_codec import decode_block
from ..calclang.errors import AstDecodeError
from ..calclang.interpreter import Interpreter
from ..calclang.operators import format_value
from ..logging_config import setup_logging

logger = logging.getLogger(__name__)

app = FastAPI(title="CalcLang API", version="0.1")

# Server-side ceilings. The interpreter itself is unbounded by default; the
# service never runs a program without these limits.
SERVER_LIMITS: Dict[str, Any] = {
    "max_steps": 100000,
    "max_loop": 10000,
    "max_time_s": 1.5,
    "max_output_chars": 5000,
    "max_call_depth": 100,
}
MAX_SUBPROCESS_TIMEOUT_S = 5.0


def _clamp(requested: Any, ceiling: Any) -> Any:
    """Clamp a client value to `ceiling`; missing, non-numeric or non-finite
    values (NaN compares false with everything) fall back to the ceiling."""
    if requested is None or isinstance(requested, bool):
        return ceiling
    try:
        value = float(requested)
    except (TypeError, ValueError):
        return ceiling
    if not math.isfinite(value):
        return ceiling
    return type(ceiling)(min(value, ceiling))


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Enforce server-side safe caps for runtime tunables.

    Clients may include a `settings` object with per-run tunables. Numeric
    limits are clamped to `SERVER_LIMITS` (a missing, null or non-finite
    value means the ceiling itself); `strict` and `use_subprocess` pass
    through as booleans.

    Returns a dict suitable for passing directly into `Interpreter.run`.
    """
    settings = settings or {}
    caps: Dict[str, Any] = {}
    for name, ceiling in SERVER_LIMITS.items():
        caps[name] = _clamp(settings.get(name), ceiling)
    caps["strict"] = bool(settings.get("strict", False))
    if settings.get("use_subprocess"):
        caps["use_subprocess"] = True
        caps["timeout_s"] = _clamp(settings.get("timeout_s", 2), MAX_SUBPROCESS_TIMEOUT_S)
    return caps


def _decode_program(data: Any) -> Tuple[Optional[tuple], Optional[Dict[str, Any]]]:
    """Decode a JSON program, returning (block, None) or (None, error dict)."""
    try:
        return decode_block(data), None
    except AstDecodeError as e:
        return None, e.to_dict()
    except RecursionError:
        return None, {"code": "INVALID_PROGRAM", "message": "Program is nested too deeply", "path": "/"}


def _jsonable(value: Any) -> Any:
    """Replace non-finite floats (inf/nan) with their rendered text."""
    if isinstance(value, float) and not math.isfinite(value):
        return format_value(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


@app.on_event('startup')
def startup():
    """FastAPI startup event: configure logging and the database schema."""
    setup_logging()
    db.init_db()


class RunRequest(BaseModel):
    """Pydantic model for the `/run` request body.

    Fields:
        program: JSON array of statement nodes.
        global_vars: optional initial bindings of the global scope.
        settings: optional runtime tunables; will be capped server-side.
        program_id: optional id to associate this run with a saved program.
    """
    program: List[Any]
    global_vars: Optional[Dict[str, float]] = None
    settings: Optional[Dict[str, Any]] = None
    program_id: Optional[int] = None


@app.post("/run")
async def run_program(req: RunRequest):
    """Handle a program execution request.

    A malformed AST yields an INVALID_PROGRAM error; any unexpected
    exception becomes a SERVER_ERROR response so callers always receive a
    stable JSON shape. Successful runs are recorded in the database.
    """
    start = time.time()
    program, decode_error = _decode_program(req.program)
    if decode_error:
        return {
            "output": "",
            "lines": [],
            "warnings": [],
            "duration_ms": int((time.time() - start) * 1000),
            "errors": decode_error,
        }
    try:
        capped = _cap_settings(req.settings)
        result = Interpreter().run(program, req.global_vars or {}, capped)
    except Exception as e:
        logger.exception("run failed")
        return {
            "output": "",
            "lines": [],
            "warnings": [],
            "duration_ms": int((time.time() - start) * 1000),
            "errors": {"code": "SERVER_ERROR", "message": str(e)},
        }
    result["duration_ms"] = int((time.time() - start) * 1000)
    logger.info(
        "run finished: %d lines, errors=%s",
        len(result.get("lines", [])),
        (result.get("errors") or {}).get("code"),
    )

    # persist successful runs (non-fatal; on failure we append a warning)
    try:
        if result.get('errors') is None:
            db.save_run(
                req.program_id,
                (result.get("stats") or {}).get("steps"),
                len(result.get("lines", [])),
                result["duration_ms"],
            )
    except Exception as e:
        result.setdefault('warnings', []).append(f"Failed to persist run: {e}")

    return _jsonable(result)


class SaveProgramRequest(BaseModel):
    title: str
    program: List[Any]


@app.post('/save')
async def save_program(req: SaveProgramRequest):
    _, decode_error = _decode_program(req.program)
    if decode_error:
        return {'error': decode_error}
    try:
        program_id = db.save_program(req.title, req.program)
    except Exception as e:
        return {'error': str(e)}
    return {'program_id': program_id}


@app.get('/programs')
async def list_programs():
    return db.list_programs()


@app.get('/programs/{program_id}')
async def get_program(program_id: int):
    p = db.get_program(program_id)
    if not p:
        return {'error': 'not found'}
    return p


@app.get('/stats')
async def list_stats(program_id: Optional[int] = None):
    return db.list_runs(program_id)
