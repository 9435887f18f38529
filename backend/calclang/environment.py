"""Variable scopes for CalcLang.

An `Environment` owns two stacks of scopes, one for local bindings and one
for globals, plus the table of user-defined functions. Only the top scope of
each stack is visible. It is created per run and passed explicitly through
every evaluate/execute call; there is no module-level state.

Lookup and assignment follow a two-level policy:

- reads look in the top local scope, then the top global scope, and
  otherwise create the variable in the local scope with value ``0.0``
- writes rebind an existing local, else an existing global, else create a
  new local binding
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Scope = Dict[str, float]
FunctionKey = Tuple[str, int]


class Environment:
    """Local and global scope stacks plus the function table of one run.

    Args:
        globals: optional initial bindings for the global scope.
    """

    def __init__(self, globals: Optional[Dict[str, float]] = None):
        self.local_stack: List[Scope] = [{}]
        self.global_stack: List[Scope] = [
            {name: float(value) for name, value in (globals or {}).items()}
        ]
        self.functions: Dict[FunctionKey, Tuple[Tuple[str, ...], tuple]] = {}

    @property
    def local_scope(self) -> Scope:
        return self.local_stack[-1]

    @property
    def global_scope(self) -> Scope:
        return self.global_stack[-1]

    def lookup(self, name: str, stack: Sequence[Scope]) -> Optional[float]:
        """Return the value bound to `name` in the top scope of `stack`, if any."""
        return stack[-1].get(name)

    def assign(self, name: str, value: float) -> None:
        """Bind `name` in the local scope, unless only a global already holds it."""
        if name in self.local_scope:
            self.local_scope[name] = value
        elif name in self.global_scope:
            logger.debug("assign global %s = %r", name, value)
            self.global_scope[name] = value
        else:
            logger.debug("create local %s = %r", name, value)
            self.local_scope[name] = value

    def resolve(self, name: str) -> float:
        """Read a variable; unbound names default to ``0.0`` and become local."""
        value = self.lookup(name, self.local_stack)
        if value is not None:
            return value
        value = self.lookup(name, self.global_stack)
        if value is not None:
            return value
        self.assign(name, 0.0)
        return 0.0

    @contextmanager
    def local_frame(self, bindings: Optional[Scope] = None) -> Iterator[Scope]:
        """Push a fresh local scope for the duration of the block."""
        frame: Scope = dict(bindings or {})
        self.local_stack.append(frame)
        try:
            yield frame
        finally:
            self.local_stack.pop()

    # --- function table --------------------------------------------------

    def define_function(self, name: str, params: Sequence[str], body: tuple) -> None:
        key = (name, len(params))
        logger.debug("define function %s/%d", name, len(params))
        self.functions[key] = (tuple(params), tuple(body))

    def get_function(self, name: str, arity: int) -> Optional[Tuple[Tuple[str, ...], tuple]]:
        return self.functions.get((name, arity))

    def snapshot(self) -> Dict[str, Scope]:
        """Copies of the current top local and global scopes."""
        return {"local": dict(self.local_scope), "global": dict(self.global_scope)}

    def __repr__(self) -> str:
        return (
            f"<Environment locals={list(self.local_scope)} "
            f"globals={list(self.global_scope)} depth={len(self.local_stack)}>"
        )
