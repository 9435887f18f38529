"""Error types raised by the CalcLang interpreter.

Every error carries a short machine-readable ``code`` that `Interpreter.run`
copies into the structured ``errors`` dict of a run result.
"""

from typing import Any, Dict, Optional


class EvalError(Exception):
    """Raised when evaluating a program fails.

    Attributes:
        code: stable error code surfaced to callers (e.g. ``RUNTIME_ERROR``)
    """

    code = "RUNTIME_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class AstDecodeError(EvalError):
    """A JSON program could not be decoded into AST nodes.

    Attributes:
        path: pointer to the offending node, e.g. ``/2/then/0/expr``
    """

    code = "INVALID_PROGRAM"

    def __init__(self, message: str, *, path: str = ""):
        super().__init__(f"{message} at {path or '/'}")
        self.path = path

    def to_dict(self) -> Dict[str, Any]:
        err = super().to_dict()
        err["path"] = self.path or "/"
        return err


class UnsupportedOperatorError(EvalError):
    code = "UNSUPPORTED_OPERATOR"


class InvalidTargetError(EvalError):
    """``++``/``--`` applied to something that is not a variable."""

    code = "INVALID_TARGET"


class UndefinedFunctionError(EvalError):
    code = "UNDEFINED_FUNCTION"


class LimitExceededError(EvalError):
    """A runtime limit (steps, loops, time, output, call depth) was hit."""
