"""Adapter around the expression engine.

Expressions are arithmetic over the names in scope: numbers, ``+ - * / // %``,
``**`` or ``^`` for powers, parentheses, and calls to a fixed set of
functions (``sqrt``, ``log``, ``min``, ...). The text is parsed with
:mod:`ast`, checked against that grammar, and then evaluated with sympy
numbers. Nothing in the text is ever executed as Python.

The adapter turns every outcome into one of three values: a finite float,
None when there is nothing to evaluate, or an ``EvaluationError``.
"""

from __future__ import annotations

import ast
import logging
import math
from typing import TYPE_CHECKING, Protocol

import sympy

from ._errors import EvaluationError, ExpressionError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

# Largest power an expression may raise to.
MAX_EXPONENT = 10_000

# Exact powers above this size are computed in floating point instead.
_MAX_EXACT_BITS = 100_000

FUNCTIONS: dict[str, Callable[..., sympy.Expr]] = {
    "abs": sympy.Abs,
    "sqrt": sympy.sqrt,
    "exp": sympy.exp,
    "log": sympy.log,
    "ln": sympy.log,
    "sin": sympy.sin,
    "cos": sympy.cos,
    "tan": sympy.tan,
    "asin": sympy.asin,
    "acos": sympy.acos,
    "atan": sympy.atan,
    "floor": sympy.floor,
    "ceil": sympy.ceiling,
    "min": sympy.Min,
    "max": sympy.Max,
}

_BINARY_OPERATORS: dict[type[ast.operator], Callable[[sympy.Expr, sympy.Expr], sympy.Expr]] = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: lambda a, b: a * b,
    ast.Div: lambda a, b: a / b,
    ast.FloorDiv: lambda a, b: sympy.floor(a / b),
    ast.Mod: sympy.Mod,
    ast.Pow: lambda a, b: _power(a, b),
}

_UNARY_OPERATORS: dict[type[ast.unaryop], Callable[[sympy.Expr], sympy.Expr]] = {
    ast.UAdd: lambda a: a,
    ast.USub: lambda a: -a,
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.BinOp,
    ast.UnaryOp,
    ast.Constant,
    ast.Name,
    ast.Call,
    ast.Load,
    *_BINARY_OPERATORS,
    *_UNARY_OPERATORS,
)


class Evaluator(Protocol):
    """Anything that evaluates an expression string against a flat scope."""

    def __call__(self, expression: str, scope: Mapping[str, float]) -> float:
        """Evaluate ``expression`` with names resolved from ``scope``.

        Raises:
            Exception: Any error for malformed or non-numeric expressions.

        """
        ...


def _power(base: sympy.Expr, exponent: sympy.Expr) -> sympy.Expr:
    size = sympy.Abs(exponent).evalf()
    if size.is_finite is not True or size > MAX_EXPONENT:
        msg = f"Exponent out of range: {exponent} (limit {MAX_EXPONENT})"
        raise ExpressionError(msg)
    if base.is_Rational and exponent.is_Integer:
        bits = max(base.p.bit_length(), base.q.bit_length()) * abs(int(exponent))
        if bits > _MAX_EXACT_BITS:
            base = sympy.Float(base)
    return base**exponent


def _check_syntax(tree: ast.Expression, scope: Mapping[str, float]) -> None:
    """Reject anything but arithmetic, then reject names missing from the scope."""
    function_names: set[int] = set()
    missing: list[str] = []

    # ast.walk yields a Call before its func, so function names are known when reached.
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            msg = f"Invalid expression: unsupported syntax ({type(node).__name__})"
            raise ExpressionError(msg)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, int | float):
                msg = f"Invalid expression: unsupported literal {node.value!r}"
                raise ExpressionError(msg)
        elif isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                msg = f"Invalid expression: unknown function {ast.unparse(node.func)!r}"
                raise ExpressionError(msg)
            if node.keywords or any(isinstance(arg, ast.Starred) for arg in node.args):
                msg = f"Invalid expression: {node.func.id}() takes positional arguments only"
                raise ExpressionError(msg)
            function_names.add(id(node.func))
        elif isinstance(node, ast.Name) and id(node) not in function_names and node.id not in scope:
            missing.append(node.id)

    if missing:
        names = ", ".join(sorted(set(missing)))
        msg = f"Undefined symbol(s): {names}"
        raise ExpressionError(msg)


def _build(node: ast.expr, scope: Mapping[str, sympy.Expr]) -> sympy.Expr:
    """Evaluate a checked syntax tree bottom-up with sympy numbers."""
    match node:
        case ast.Constant(value=int() as value):
            return sympy.Integer(value)
        case ast.Constant(value=float() as value):
            return sympy.Float(value)
        case ast.Name(id=name):
            return scope[name]
        case ast.UnaryOp(op=op, operand=operand):
            return _UNARY_OPERATORS[type(op)](_build(operand, scope))
        case ast.BinOp(left=left, op=op, right=right):
            return _BINARY_OPERATORS[type(op)](_build(left, scope), _build(right, scope))
        case ast.Call(func=ast.Name(id=name), args=args):
            return FUNCTIONS[name](*(_build(arg, scope) for arg in args))
    msg = f"Invalid expression: unsupported syntax ({type(node).__name__})"
    raise ExpressionError(msg)


class SympyEvaluator:
    """Evaluate arithmetic expressions with sympy.

    Only names present in the scope resolve; there are no built-in constants,
    so ``pi`` or ``E`` must be provided as variables. Scope values are turned
    into sympy numbers, so division by zero yields a complex infinity instead
    of a Python exception and is then rejected like any non-finite result.
    """

    def __call__(self, expression: str, scope: Mapping[str, float]) -> float:
        try:
            # `^` is a power (right-associative), not a bitwise xor.
            tree = ast.parse(expression.strip().replace("^", "**"), mode="eval")
        except (SyntaxError, ValueError) as e:
            msg = f"Invalid expression: {e}"
            raise ExpressionError(msg) from e
        _check_syntax(tree, scope)

        values = {name: sympy.Float(value) for name, value in scope.items()}
        try:
            value = _build(tree.body, values)
        except (TypeError, ValueError, ArithmeticError) as e:
            if isinstance(e, ExpressionError):
                raise
            msg = f"Arithmetic error: {e}"
            raise ExpressionError(msg) from e

        if not isinstance(value, sympy.Expr):
            msg = f"Expression does not evaluate to a number: {value}"
            raise ExpressionError(msg)

        evaluated = value.evalf()
        if evaluated.is_extended_real is not True or evaluated.is_finite is not True:
            msg = f"Expression does not evaluate to a finite real number: {evaluated}"
            raise ExpressionError(msg)

        result = float(evaluated)
        if not math.isfinite(result):
            msg = f"Expression result overflows: {evaluated}"
            raise ExpressionError(msg)
        return result




def evaluate_expression(
    node_id: int,
    expression: str | None,
    scope: Mapping[str, float],
    evaluator: Evaluator | None = None,
) -> float | EvaluationError | None:
    """Evaluate a calculator's expression against its scope.

    This function never raises: failures of the evaluator are returned as values.

    Args:
        node_id: The calculator the expression belongs to (reported in errors).
        expression: The expression, possibly None or blank.
        scope: Name to value mapping for the expression.
        evaluator: The expression engine. Defaults to SympyEvaluator.

    Returns:
        None if there is no expression, the finite result on success,
        or an EvaluationError describing the failure.

    """
    if expression is None or not expression.strip():
        return None

    if evaluator is None:
        evaluator = SympyEvaluator()

    try:
        result = float(evaluator(expression, scope))
    except Exception as e:  # noqa: BLE001
        logger.warning("Evaluation failed for calculator %d: %s", node_id, e)
        return EvaluationError(node_id=node_id, message=str(e) or type(e).__name__)

    if not math.isfinite(result):
        logger.warning("Evaluation of calculator %d produced %r", node_id, result)
        return EvaluationError(node_id=node_id, message=f"Result is not finite: {result}")

    logger.debug("Calculator %d: %r -> %r", node_id, expression, result)
    return result
