"""CalcLang interpreter module.

This module walks a CalcLang AST (see `ast_nodes`) and computes its output.
Every value is a float; relational and logical operators produce ``1.0`` or
``0.0``. The pieces are:

- `Interpreter.evaluate`: turns an expression into a number, reading and
  (for ``++``/``--``) writing variables through the run's `Environment`
- `Interpreter.execute`: runs one statement (assignment, output, branches,
  loops, function definitions and returns)
- `Interpreter.run_block`: runs statements in order against one shared
  environment; blocks do not open a new scope
- `Interpreter.run`: the entry point used by the API and the subprocess
  worker. It builds a fresh environment per call, enforces the optional
  runtime limits and converts `EvalError` into a structured result dict.

By default evaluation is total: unknown operators, ``++`` on a non-variable
and calls to unknown functions evaluate to ``0.0`` and are only recorded as
warnings. Setting ``strict`` turns them into typed errors.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from . import subprocess_runner
from .ast_codec import encode_block
from .ast_nodes import (
    Assign,
    Expr,
    Fct,
    FctDef,
    For,
    If,
    Num,
    Op1,
    Op2,
    Return,
    Var,
    While,
)
from .environment import Environment
from .errors import (
    EvalError,
    InvalidTargetError,
    LimitExceededError,
    UndefinedFunctionError,
    UnsupportedOperatorError,
)
from .operators import INCREMENTS, TRUE, UNARY, apply_binary, format_value

logger = logging.getLogger(__name__)

# settings keys copied onto the interpreter by `run`
TUNABLES = ("max_steps", "max_loop", "max_time_s", "max_output_chars", "max_call_depth", "strict")


class _ReturnSignal(Exception):
    """Unwinds execution up to the innermost function call."""

    def __init__(self, value: float):
        super().__init__(value)
        self.value = value


class RunState:
    """Everything a single run mutates, passed through evaluate/execute.

    Attributes:
        env: the run's scopes and function table
        output: rendered values emitted by ``Expr`` statements, in order
        warnings: conditions absorbed in non-strict mode
        steps: statements executed so far
        call_depth: currently active user function calls
        deadline: wall-clock time after which the run is aborted, if any
    """

    def __init__(self, env: Environment, *, deadline: Optional[float] = None):
        self.env = env
        self.output: List[str] = []
        self.output_chars = 0
        self.warnings: List[str] = []
        self.steps = 0
        self.call_depth = 0
        self.deadline = deadline


class Interpreter:
    """Top-level CalcLang interpreter.

    Tunable attributes (all limits default to ``None``, meaning unbounded):
    - max_steps: statements executed per run
    - max_loop: iterations of any single while/for loop
    - max_time_s: wall-clock seconds per run
    - max_output_chars: total characters of rendered output
    - max_call_depth: nested user function calls
    - strict: raise typed errors instead of absorbing them as ``0.0``
    """

    def __init__(self):
        self.max_steps: Optional[int] = None
        self.max_loop: Optional[int] = None
        self.max_time_s: Optional[float] = None
        self.max_output_chars: Optional[int] = None
        self.max_call_depth: Optional[int] = None
        self.strict = False
        self._handlers = {
            Assign: self._handle_assign,
            Expr: self._handle_expr,
            Return: self._handle_return,
            If: self._handle_if,
            While: self._handle_while,
            For: self._handle_for,
            FctDef: self._handle_fct_def,
        }

    # --- helpers ---------------------------------------------------------

    def _absorb(self, state: RunState, error: EvalError) -> float:
        """Turn a soft failure into ``0.0``, or raise it in strict mode."""
        if self.strict:
            raise error
        logger.debug("absorbed %s: %s", error.code, error)
        state.warnings.append(f"{error}; evaluated to 0")
        return 0.0

    def _check_deadline(self, state: RunState) -> None:
        if state.deadline is not None and time.time() > state.deadline:
            raise LimitExceededError("Time limit exceeded", code="TIMEOUT")

    def _tick(self, state: RunState) -> None:
        state.steps += 1
        if self.max_steps is not None and state.steps > self.max_steps:
            raise LimitExceededError("Step limit exceeded", code="STEP_LIMIT")
        self._check_deadline(state)

    def _check_loop(self, state: RunState, iterations: int, kind: str) -> None:
        if self.max_loop is not None and iterations > self.max_loop:
            raise LimitExceededError(
                f"{kind} iterations limited to {self.max_loop}", code="LOOP_LIMIT"
            )
        self._check_deadline(state)

    def _emit(self, state: RunState, value: float) -> None:
        text = format_value(value)
        if (
            self.max_output_chars is not None
            and state.output_chars + len(text) > self.max_output_chars
        ):
            raise LimitExceededError("Output length limit reached", code="OUTPUT_LIMIT")
        state.output.append(text)
        state.output_chars += len(text)

    # --- expressions -----------------------------------------------------

    def evaluate(self, expr, state: RunState) -> float:
        """Evaluate an expression node to a float."""
        if isinstance(expr, Num):
            return expr.value
        if isinstance(expr, Var):
            return state.env.resolve(expr.name)
        if isinstance(expr, Op1):
            return self._eval_unary(expr, state)
        if isinstance(expr, Op2):
            # both sides are always evaluated, left first; no short-circuit
            left = self.evaluate(expr.left, state)
            right = self.evaluate(expr.right, state)
            try:
                return apply_binary(expr.op, left, right)
            except KeyError:
                return self._absorb(
                    state, UnsupportedOperatorError(f"Unsupported binary operator '{expr.op}'")
                )
        if isinstance(expr, Fct):
            return self._call(expr, state)
        raise TypeError(f"Not an expression node: {type(expr).__name__}")

    def _eval_unary(self, expr: Op1, state: RunState) -> float:
        if expr.op in INCREMENTS:
            if not isinstance(expr.operand, Var):
                return self._absorb(
                    state, InvalidTargetError(f"'{expr.op}' needs a variable operand")
                )
            name = expr.operand.name
            value = state.env.resolve(name) + INCREMENTS[expr.op]
            state.env.assign(name, value)
            return value
        if expr.op in UNARY:
            return UNARY[expr.op](self.evaluate(expr.operand, state))
        return self._absorb(
            state, UnsupportedOperatorError(f"Unsupported unary operator '{expr.op}'")
        )

    def _call(self, expr: Fct, state: RunState) -> float:
        args = [self.evaluate(arg, state) for arg in expr.args]
        function = state.env.get_function(expr.name, len(args))
        if function is None:
            return self._absorb(
                state,
                UndefinedFunctionError(
                    f"Undefined function '{expr.name}' taking {len(args)} argument(s)"
                ),
            )
        if self.max_call_depth is not None and state.call_depth >= self.max_call_depth:
            raise LimitExceededError("Call depth limit exceeded", code="CALL_DEPTH")
        params, body = function
        logger.debug("call %s%s", expr.name, tuple(args))
        state.call_depth += 1
        try:
            with state.env.local_frame(dict(zip(params, args))):
                self.run_block(body, state)
        except _ReturnSignal as ret:
            return ret.value
        finally:
            state.call_depth -= 1
        return 0.0

    # --- statements ------------------------------------------------------

    def execute(self, stmt, state: RunState) -> RunState:
        """Execute one statement; returns `state` for chaining."""
        self._tick(state)
        handler = self._handlers.get(type(stmt))
        if handler is None:
            raise TypeError(f"Not a statement node: {type(stmt).__name__}")
        handler(stmt, state)
        return state

    def run_block(self, block: Sequence, state: RunState) -> None:
        for stmt in block:
            self.execute(stmt, state)

    def _handle_assign(self, stmt: Assign, state: RunState) -> None:
        state.env.assign(stmt.name, self.evaluate(stmt.expr, state))

    def _handle_expr(self, stmt: Expr, state: RunState) -> None:
        self._emit(state, self.evaluate(stmt.expr, state))

    def _handle_return(self, stmt: Return, state: RunState) -> None:
        raise _ReturnSignal(self.evaluate(stmt.expr, state))

    def _handle_if(self, stmt: If, state: RunState) -> None:
        if self.evaluate(stmt.cond, state) > 0.0:
            self.run_block(stmt.then, state)
        else:
            self.run_block(stmt.orelse, state)

    def _handle_while(self, stmt: While, state: RunState) -> None:
        iterations = 0
        # loops continue only on exactly 1.0, not on any nonzero value
        while self.evaluate(stmt.cond, state) == TRUE:
            iterations += 1
            self._check_loop(state, iterations, "While")
            self.run_block(stmt.body, state)

    def _handle_for(self, stmt: For, state: RunState) -> None:
        self.execute(stmt.init, state)
        iterations = 0
        while self.evaluate(stmt.cond, state) == TRUE:
            iterations += 1
            self._check_loop(state, iterations, "For")
            self.run_block(stmt.body, state)
            self.execute(stmt.update, state)

    def _handle_fct_def(self, stmt: FctDef, state: RunState) -> None:
        state.env.define_function(stmt.name, stmt.params, stmt.body)

    # --- entry point -----------------------------------------------------

    def _apply_settings(self, settings: Dict[str, Any]) -> None:
        for name in TUNABLES:
            if name in settings:
                setattr(self, name, settings[name])

    def _finalize_run(
        self,
        state: RunState,
        start_time: float,
        return_value: Optional[float],
        error: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        duration_ms = int((time.time() - start_time) * 1000)
        return {
            "output": "\n".join(state.output) + ("\n" if state.output else ""),
            "lines": list(state.output),
            "warnings": state.warnings,
            "errors": error,
            "return_value": return_value,
            "scopes": state.env.snapshot(),
            "stats": {"steps": state.steps, "duration_ms": duration_ms},
        }

    def _run_in_subprocess(
        self,
        program: Sequence,
        global_vars: Optional[Dict[str, float]],
        settings: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Run the program in the sandboxed worker and return its result dict."""
        child_settings = {k: v for k, v in settings.items() if k != "use_subprocess"}
        try:
            rc, out, err = subprocess_runner.run_program_in_subprocess(
                encode_block(program),
                timeout_s=float(settings.get("timeout_s", 2)),
                global_vars=global_vars,
                settings=child_settings,
            )
        except (OSError, TypeError, ValueError) as e:
            return _error_result("SUBPROCESS_ERROR", str(e))
        if rc == -1:
            return _error_result("TIMEOUT", "Time limit exceeded in subprocess")
        if rc != 0:
            return _error_result("SUBPROCESS_FAILED", err.strip() or f"exit status {rc}")
        try:
            return json.loads(out)
        except ValueError:
            return _error_result("SUBPROCESS_FAILED", f"Malformed worker output: {out[:200]!r}")

    def run(
        self,
        program: Sequence,
        global_vars: Optional[Dict[str, float]] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Run a program (a block of statement nodes) from a fresh environment.

        Args:
            program: the statements to execute.
            global_vars: optional initial bindings of the global scope.
            settings: optional per-run overrides of the tunable attributes;
                ``use_subprocess`` runs the program in an isolated child
                process, bounded by ``timeout_s``.

        Returns:
            A dict with ``output``, ``lines``, ``warnings``, ``errors``,
            ``return_value``, ``scopes`` and ``stats``.
        """
        settings_local: Dict[str, Any] = settings or {}
        if settings_local.get("use_subprocess"):
            return self._run_in_subprocess(program, global_vars, settings_local)
        self._apply_settings(settings_local)

        start_time = time.time()
        deadline = start_time + self.max_time_s if self.max_time_s is not None else None
        state = RunState(Environment(global_vars), deadline=deadline)
        return_value: Optional[float] = None
        error: Optional[Dict[str, Any]] = None
        logger.debug("run: %d top-level statements", len(program))
        try:
            self.run_block(program, state)
        except _ReturnSignal as ret:
            # a top-level return ends the program
            return_value = ret.value
        except EvalError as e:
            logger.debug("run failed: %s", e)
            error = e.to_dict()
        except RecursionError:
            error = {"code": "CALL_DEPTH", "message": "Maximum recursion depth exceeded"}
        return self._finalize_run(state, start_time, return_value, error)


def _error_result(code: str, message: str) -> Dict[str, Any]:
    return {
        "output": "",
        "lines": [],
        "warnings": [],
        "errors": {"code": code, "message": message},
        "return_value": None,
        "scopes": {"local": {}, "global": {}},
        "stats": {"steps": 0, "duration_ms": 0},
    }
