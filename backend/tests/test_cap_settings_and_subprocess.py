"""Unit tests for server-side caps and the subprocess worker contract.

- `test_cap_settings_*`: the FastAPI `_cap_settings` helper clamps
  client-provided limits to the server ceilings.
- `test_subprocess_*`: the runner/worker follow the JSON-over-stdin/stdout
  contract and bound programs that never terminate.
"""

import json

import pytest

from backend.app.main import SERVER_LIMITS, _cap_settings
from backend.calclang.ast_codec import encode_block
from backend.calclang.ast_nodes import Assign, Expr, Num, Op1, Op2, Var, While
from backend.calclang.interpreter import Interpreter
from backend.calclang.subprocess_runner import run_program_in_subprocess

COUNTDOWN = [
    Assign("n", Num(3.0)),
    While(Op2(">", Var("n"), Num(0.0)), [Expr(Op1("--", Var("n")))]),
]


def test_cap_settings_clamps():
    requested = {
        "max_steps": 10_000_000,
        "max_loop": 1_000_000,
        "max_time_s": 10_000.0,
        "max_output_chars": 10_000_000,
        "max_call_depth": 100_000,
        "strict": True,
    }
    capped = _cap_settings(requested)
    for name, ceiling in SERVER_LIMITS.items():
        assert capped[name] == ceiling
    assert capped["strict"] is True
    assert "use_subprocess" not in capped


def test_cap_settings_keeps_smaller_values_and_fills_missing():
    capped = _cap_settings({"max_steps": 10, "max_loop": None})
    assert capped["max_steps"] == 10
    assert capped["max_loop"] == SERVER_LIMITS["max_loop"]
    assert capped["max_time_s"] == SERVER_LIMITS["max_time_s"]
    assert capped["strict"] is False


def test_cap_settings_bounds_subprocess_timeout():
    capped = _cap_settings({"use_subprocess": True, "timeout_s": 600})
    assert capped["use_subprocess"] is True
    assert capped["timeout_s"] <= 5.0


def test_subprocess_worker_contract():
    rc, out, err = run_program_in_subprocess(encode_block(COUNTDOWN), timeout_s=10)
    assert rc == 0, f"subprocess returned non-zero rc: {rc}, stderr: {err}"
    result = json.loads(out)
    assert result["errors"] is None
    assert result["lines"] == ["2.", "1.", "0."]


def test_subprocess_reports_invalid_program():
    rc, out, err = run_program_in_subprocess([{"type": "Nope"}], timeout_s=10)
    assert rc == 0, err
    result = json.loads(out)
    assert result["errors"]["code"] == "INVALID_PROGRAM"
    assert result["errors"]["path"] == "/program/0"


def test_interpreter_can_run_in_subprocess():
    res = Interpreter().run(COUNTDOWN, {"g": 1.0}, {"use_subprocess": True, "timeout_s": 10})
    assert res["errors"] is None
    assert res["output"] == "2.\n1.\n0.\n"
    assert res["scopes"]["global"] == {"g": 1.0}


def test_subprocess_timeout_bounds_endless_loop():
    res = Interpreter().run([While(Num(1.0), [])], settings={"use_subprocess": True, "timeout_s": 0.5})
    assert res["errors"]["code"] == "TIMEOUT"


def test_cap_settings_non_finite_values_fall_back_to_ceilings():
    nan = float("nan")
    requested = {name: nan for name in SERVER_LIMITS}
    requested.update({"max_loop": float("inf"), "max_steps": "lots", "use_subprocess": True, "timeout_s": nan})
    capped = _cap_settings(requested)
    for name, ceiling in SERVER_LIMITS.items():
        assert capped[name] == ceiling
    assert capped["timeout_s"] == 5.0


def test_capped_nan_settings_still_bound_endless_loop():
    capped = _cap_settings({"max_time_s": float("nan"), "max_loop": float("nan"), "max_steps": float("nan")})
    res = Interpreter().run([While(Num(1.0), [])], settings=capped)
    assert res["errors"]["code"] in ("LOOP_LIMIT", "STEP_LIMIT", "TIMEOUT")


def test_subprocess_rejects_non_finite_timeout():
    with pytest.raises(ValueError):
        run_program_in_subprocess(encode_block(COUNTDOWN), timeout_s=float("nan"))
    with pytest.raises(ValueError):
        run_program_in_subprocess(encode_block(COUNTDOWN), timeout_s=0)


def test_interpreter_reports_bad_subprocess_timeout():
    res = Interpreter().run([While(Num(1.0), [])], settings={"use_subprocess": True, "timeout_s": float("nan")})
    assert res["errors"]["code"] == "SUBPROCESS_ERROR"
