"""Subprocess worker that runs one CalcLang program.

This module is executed as a short-lived subprocess
(``python -m backend.calclang._subprocess_worker``). It reads a single JSON
object from stdin with shape ``{"program": [...], "global_vars": {...},
"settings": {...}}``, runs the program with a fresh `Interpreter` and writes
the run result dict as JSON to stdout.

Malformed payloads and programs are reported through the result's
``errors`` field with exit status 0; only an unexpected crash exits
non-zero. The calling process enforces wall-clock timeouts and resource caps.
"""

import json
import sys
from typing import Any, Dict

from backend.calclang.ast_codec import decode_block
from backend.calclang.errors import AstDecodeError
from backend.calclang.interpreter import Interpreter


def _bad_payload(message: str) -> Dict[str, Any]:
    return {"output": "", "lines": [], "warnings": [], "errors": {"code": "BAD_PAYLOAD", "message": message}}


def run_payload(raw: str) -> Dict[str, Any]:
    """Decode a worker payload, run it and return the run result."""
    try:
        payload = json.loads(raw)
    except (ValueError, RecursionError) as e:
        return _bad_payload(str(e))
    if not isinstance(payload, dict):
        return _bad_payload("payload must be a JSON object")
    try:
        program = decode_block(payload.get("program", []), "/program")
    except AstDecodeError as e:
        return {"output": "", "lines": [], "warnings": [], "errors": e.to_dict()}
    except RecursionError:
        error = {"code": "INVALID_PROGRAM", "message": "Program is nested too deeply", "path": "/program"}
        return {"output": "", "lines": [], "warnings": [], "errors": error}
    settings = dict(payload.get("settings") or {})
    # never recurse into another subprocess
    settings.pop("use_subprocess", None)
    return Interpreter().run(program, payload.get("global_vars") or {}, settings)


def main() -> None:
    result = run_payload(sys.stdin.read())
    print(json.dumps(result))


if __name__ == '__main__':
    main()
