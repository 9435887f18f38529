"""JSON wire format for CalcLang programs.

A program is a JSON array of statement objects. Every node is an object
tagged with ``"type"``::

    [{"type": "Assign", "name": "v", "expr": {"type": "Num", "value": 4}},
     {"type": "Expr", "expr": {"type": "Op1", "op": "++",
                               "operand": {"type": "Var", "name": "v"}}}]

`decode_block` validates the whole tree and raises `AstDecodeError` with a
path to the first malformed node. `encode_block` is its inverse and is used
to ship programs to the subprocess worker.
"""

from typing import Any, Dict, List

from .ast_nodes import (
    Assign,
    Block,
    Expr,
    Expression,
    Fct,
    FctDef,
    For,
    If,
    Num,
    Op1,
    Op2,
    Return,
    Statement,
    Var,
    While,
)
from .errors import AstDecodeError


def _require(node: Dict[str, Any], field: str, path: str) -> Any:
    if field not in node:
        raise AstDecodeError(f"Missing field '{field}'", path=path)
    return node[field]


def _string(node: Dict[str, Any], field: str, path: str) -> str:
    value = _require(node, field, path)
    if not isinstance(value, str) or not value:
        raise AstDecodeError(f"Field '{field}' must be a non-empty string", path=f"{path}/{field}")
    return value


def _number(node: Dict[str, Any], field: str, path: str) -> float:
    value = _require(node, field, path)
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AstDecodeError(f"Field '{field}' must be a number", path=f"{path}/{field}")
    return float(value)


def _object(data: Any, path: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise AstDecodeError("Expected a node object", path=path)
    if "type" not in data:
        raise AstDecodeError("Node has no 'type'", path=path)
    return data


def decode_expr(data: Any, path: str = "") -> Expression:
    node = _object(data, path)
    kind = node["type"]
    if kind == "Num":
        return Num(_number(node, "value", path))
    if kind == "Var":
        return Var(_string(node, "name", path))
    if kind == "Op1":
        return Op1(
            _string(node, "op", path),
            decode_expr(_require(node, "operand", path), f"{path}/operand"),
        )
    if kind == "Op2":
        return Op2(
            _string(node, "op", path),
            decode_expr(_require(node, "left", path), f"{path}/left"),
            decode_expr(_require(node, "right", path), f"{path}/right"),
        )
    if kind == "Fct":
        args = node.get("args", [])
        if not isinstance(args, list):
            raise AstDecodeError("Field 'args' must be an array", path=f"{path}/args")
        return Fct(
            _string(node, "name", path),
            tuple(decode_expr(a, f"{path}/args/{n}") for n, a in enumerate(args)),
        )
    raise AstDecodeError(f"Unknown expression type '{kind}'", path=path)


def decode_statement(data: Any, path: str = "") -> Statement:
    node = _object(data, path)
    kind = node["type"]
    if kind == "Assign":
        return Assign(
            _string(node, "name", path),
            decode_expr(_require(node, "expr", path), f"{path}/expr"),
        )
    if kind == "Return":
        return Return(decode_expr(_require(node, "expr", path), f"{path}/expr"))
    if kind == "Expr":
        return Expr(decode_expr(_require(node, "expr", path), f"{path}/expr"))
    if kind == "If":
        return If(
            decode_expr(_require(node, "cond", path), f"{path}/cond"),
            decode_block(_require(node, "then", path), f"{path}/then"),
            decode_block(node.get("else", []), f"{path}/else"),
        )
    if kind == "While":
        return While(
            decode_expr(_require(node, "cond", path), f"{path}/cond"),
            decode_block(_require(node, "body", path), f"{path}/body"),
        )
    if kind == "For":
        return For(
            decode_statement(_require(node, "init", path), f"{path}/init"),
            decode_expr(_require(node, "cond", path), f"{path}/cond"),
            decode_statement(_require(node, "update", path), f"{path}/update"),
            decode_block(_require(node, "body", path), f"{path}/body"),
        )
    if kind == "FctDef":
        params = node.get("params", [])
        if not isinstance(params, list) or not all(isinstance(p, str) and p for p in params):
            raise AstDecodeError("Field 'params' must be an array of names", path=f"{path}/params")
        return FctDef(
            _string(node, "name", path),
            tuple(params),
            decode_block(_require(node, "body", path), f"{path}/body"),
        )
    raise AstDecodeError(f"Unknown statement type '{kind}'", path=path)


def decode_block(data: Any, path: str = "") -> Block:
    """Decode a JSON array of statements into a block (tuple of nodes)."""
    if not isinstance(data, list):
        raise AstDecodeError("Expected an array of statements", path=path)
    return tuple(decode_statement(item, f"{path}/{n}") for n, item in enumerate(data))


def encode_node(node: Any) -> Dict[str, Any]:
    """Convert one AST node (expression or statement) back to its JSON form."""
    if isinstance(node, Num):
        return {"type": "Num", "value": node.value}
    if isinstance(node, Var):
        return {"type": "Var", "name": node.name}
    if isinstance(node, Op1):
        return {"type": "Op1", "op": node.op, "operand": encode_node(node.operand)}
    if isinstance(node, Op2):
        return {
            "type": "Op2",
            "op": node.op,
            "left": encode_node(node.left),
            "right": encode_node(node.right),
        }
    if isinstance(node, Fct):
        return {"type": "Fct", "name": node.name, "args": [encode_node(a) for a in node.args]}
    if isinstance(node, Assign):
        return {"type": "Assign", "name": node.name, "expr": encode_node(node.expr)}
    if isinstance(node, Return):
        return {"type": "Return", "expr": encode_node(node.expr)}
    if isinstance(node, Expr):
        return {"type": "Expr", "expr": encode_node(node.expr)}
    if isinstance(node, If):
        return {
            "type": "If",
            "cond": encode_node(node.cond),
            "then": encode_block(node.then),
            "else": encode_block(node.orelse),
        }
    if isinstance(node, While):
        return {"type": "While", "cond": encode_node(node.cond), "body": encode_block(node.body)}
    if isinstance(node, For):
        return {
            "type": "For",
            "init": encode_node(node.init),
            "cond": encode_node(node.cond),
            "update": encode_node(node.update),
            "body": encode_block(node.body),
        }
    if isinstance(node, FctDef):
        return {
            "type": "FctDef",
            "name": node.name,
            "params": list(node.params),
            "body": encode_block(node.body),
        }
    raise TypeError(f"Not a CalcLang AST node: {type(node).__name__}")


def encode_block(block: Any) -> List[Dict[str, Any]]:
    return [encode_node(stmt) for stmt in block]
