"""AST node types for CalcLang programs.

Nodes are frozen dataclasses: they are built once (by a front-end or by
`ast_codec.decode_block`) and only read afterwards. Operator precedence is
already encoded in the tree shape.
"""

from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True)
class Num:
    value: float


@dataclass(frozen=True)
class Var:
    name: str


@dataclass(frozen=True)
class Op1:
    op: str
    operand: "Expression"


@dataclass(frozen=True)
class Op2:
    op: str
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class Fct:
    name: str
    args: Tuple["Expression", ...] = ()


Expression = Union[Num, Var, Op1, Op2, Fct]


@dataclass(frozen=True)
class Assign:
    name: str
    expr: Expression


@dataclass(frozen=True)
class Return:
    expr: Expression


@dataclass(frozen=True)
class Expr:
    """Evaluate an expression and emit its value as one line of output."""

    expr: Expression


@dataclass(frozen=True)
class If:
    cond: Expression
    then: Tuple["Statement", ...] = ()
    orelse: Tuple["Statement", ...] = ()


@dataclass(frozen=True)
class While:
    cond: Expression
    body: Tuple["Statement", ...] = ()


@dataclass(frozen=True)
class For:
    init: "Statement"
    cond: Expression
    update: "Statement"
    body: Tuple["Statement", ...] = ()


@dataclass(frozen=True)
class FctDef:
    name: str
    params: Tuple[str, ...] = ()
    body: Tuple["Statement", ...] = ()


Statement = Union[Assign, Return, Expr, If, While, For, FctDef]

# A block is an ordered sequence of statements; lists are accepted as well
# as tuples so hand-built programs stay readable.
Block = Tuple[Statement, ...]
