"""Whitelisted arithmetic expressions.

Configuration may carry small formulas (e.g. a retry backoff schedule such as
``min(30, multiplier ** (attempt - 1))``).  They are parsed with :mod:`ast`
and walked node by node; anything outside the grammar below is rejected at
compile time, and nothing is ever handed to ``eval``.

Grammar: int/float literals, names and dotted names looked up in the
evaluation context, ``+ - * / // % **``, unary ``+ -``, parentheses and
calls to ``min``, ``max``, ``abs`` and ``round``.
"""

from __future__ import annotations

import ast
import operator
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from provider_gateway.domain.exceptions import ExpressionError

MAX_SOURCE_LENGTH = 256
MAX_EXPONENT = 64

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
}


def _dotted_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        base = _dotted_name(node.value)
        return f"{base}.{node.attr}" if base else None
    return None


def _validate(node: ast.AST, names: set[str]) -> None:
    if isinstance(node, ast.Expression):
        _validate(node.body, names)
    elif isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"Unsupported literal {node.value!r}")
    elif isinstance(node, (ast.Name, ast.Attribute)):
        name = _dotted_name(node)
        if name is None:
            raise ExpressionError("Unsupported attribute access")
        names.add(name)
    elif isinstance(node, ast.BinOp):
        if type(node.op) not in _BINARY_OPS:
            raise ExpressionError(f"Unsupported operator {type(node.op).__name__}")
        _validate(node.left, names)
        _validate(node.right, names)
    elif isinstance(node, ast.UnaryOp):
        if type(node.op) not in _UNARY_OPS:
            raise ExpressionError(f"Unsupported operator {type(node.op).__name__}")
        _validate(node.operand, names)
    elif isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise ExpressionError("Only min, max, abs and round may be called")
        if node.keywords:
            raise ExpressionError("Keyword arguments are not allowed")
        for arg in node.args:
            _validate(arg, names)
    else:
        raise ExpressionError(f"Unsupported syntax {type(node).__name__}")


def _lookup(context: Mapping[str, Any], name: str) -> Any:
    if name in context:
        value = context[name]
    else:
        head, _, rest = name.partition(".")
        if head not in context or not rest:
            raise ExpressionError(f"Unknown name {name!r}")
        value = context[head]
        for part in rest.split("."):
            if not isinstance(value, Mapping) or part not in value:
                raise ExpressionError(f"Unknown name {name!r}")
            value = value[part]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ExpressionError(f"Name {name!r} is not numeric")
    return value


@dataclass(frozen=True)
class Expression:
    """A compiled, validated expression."""

    source: str
    tree: ast.Expression
    names: frozenset[str]

    def evaluate(self, context: Mapping[str, Any] | None = None) -> float:
        try:
            return self._eval(self.tree.body, context or {})
        except ZeroDivisionError as exc:
            raise ExpressionError(f"Division by zero in {self.source!r}") from exc
        except OverflowError as exc:
            raise ExpressionError(f"Overflow in {self.source!r}") from exc

    def _eval(self, node: ast.expr, context: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, (ast.Name, ast.Attribute)):
            return _lookup(context, _dotted_name(node) or "")
        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, context)
            right = self._eval(node.right, context)
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                raise ExpressionError(f"Exponent {right} exceeds {MAX_EXPONENT}")
            return _BINARY_OPS[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, context))
        if isinstance(node, ast.Call):
            args = [self._eval(arg, context) for arg in node.args]
            return _FUNCTIONS[node.func.id](*args)  # type: ignore[attr-defined]
        raise ExpressionError(f"Unsupported syntax {type(node).__name__}")


def compile_expression(source: str, allowed_names: Iterable[str] | None = None) -> Expression:
    """Parse and validate ``source``.

    Args:
        source:        The expression text.
        allowed_names: If given, every referenced name must be in this set.

    Raises:
        ExpressionError: on syntax errors, disallowed constructs or names.
    """
    if not source or not source.strip():
        raise ExpressionError("Expression is empty")
    if len(source) > MAX_SOURCE_LENGTH:
        raise ExpressionError(f"Expression longer than {MAX_SOURCE_LENGTH} characters")
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(f"Invalid expression {source!r}: {exc.msg}") from exc

    names: set[str] = set()
    _validate(tree, names)
    if allowed_names is not None:
        unknown = names - set(allowed_names)
        if unknown:
            raise ExpressionError(f"Unknown names {sorted(unknown)} in {source!r}")
    return Expression(source=source, tree=tree, names=frozenset(names))
