"""Tests for the expression evaluator adapter."""

from collections.abc import Mapping
from pathlib import Path

import pytest

from calctree import EvaluationError, ExpressionError, SympyEvaluator, evaluate_expression


class TestSympyEvaluator:
    @pytest.mark.parametrize(
        ("expression", "scope", "expected"),
        [
            ("1 + 2", {}, 3.0),
            ("x * 2", {"x": 3.0}, 6.0),
            ("A + B", {"A": 6.0, "B": 5.0}, 11.0),
            ("(a + b) / 4", {"a": 1.0, "b": 2.0}, 0.75),
            ("x ^ 2", {"x": 3.0}, 9.0),
            ("x ** 3", {"x": 2.0}, 8.0),
            ("-x + 1.5", {"x": 0.5}, 1.0),
            ("7 / 2", {}, 3.5),
            ("sqrt(x)", {"x": 16.0}, 4.0),
            ("2 ^ 10", {}, 1024.0),
            ("10 // 3", {}, 3.0),
            ("10 % 4", {}, 2.0),
            ("max(x, 2) + min(x, 2)", {"x": 5.0}, 7.0),
            ("abs(-x) + log(exp(2))", {"x": 1.5}, 3.5),
        ],
    )
    def test_evaluates(self, expression: str, scope: dict[str, float], expected: float) -> None:
        assert SympyEvaluator()(expression, scope) == pytest.approx(expected)

    def test_scope_shadows_builtin_names(self) -> None:
        assert SympyEvaluator()("E + pi", {"E": 1.0, "pi": 2.0}) == pytest.approx(3.0)

    def test_undefined_name(self) -> None:
        with pytest.raises(ExpressionError, match="Undefined symbol"):
            SympyEvaluator()("A + C", {"A": 1.0})

    def test_syntax_error(self) -> None:
        with pytest.raises(ExpressionError, match="Invalid expression"):
            SympyEvaluator()("(2 + 3", {})

    @pytest.mark.parametrize("expression", ["1 / 0", "x / y", "0 / 0"])
    def test_division_by_zero(self, expression: str) -> None:
        with pytest.raises(ExpressionError):
            SympyEvaluator()(expression, {"x": 1.0, "y": 0.0})

    def test_complex_result(self) -> None:
        with pytest.raises(ExpressionError, match="finite real"):
            SympyEvaluator()("sqrt(x)", {"x": -1.0})

    def test_comparison_is_not_a_number(self) -> None:
        with pytest.raises(ExpressionError):
            SympyEvaluator()("x < 2", {"x": 1.0})


class TestEvaluateExpression:
    def test_none_expression_is_no_result(self) -> None:
        assert evaluate_expression(1, None, {"x": 1.0}) is None

    @pytest.mark.parametrize("expression", ["", "   ", "\t"])
    def test_blank_expression_is_no_result(self, expression: str) -> None:
        assert evaluate_expression(1, expression, {}) is None

    def test_success(self) -> None:
        assert evaluate_expression(1, "x * 2", {"x": 3.0}) == 6.0

    def test_failure_is_a_value(self) -> None:
        outcome = evaluate_expression(4, "C + 1", {})
        assert isinstance(outcome, EvaluationError)
        assert outcome.node_id == 4
        assert "C" in outcome.message

    def test_custom_evaluator(self) -> None:
        calls: list[tuple[str, dict[str, float]]] = []

        def evaluator(expression: str, scope: Mapping[str, float]) -> float:
            calls.append((expression, dict(scope)))
            return 42

        assert evaluate_expression(1, "anything", {"x": 1.0}, evaluator) == 42.0
        assert calls == [("anything", {"x": 1.0})]

    def test_evaluator_exceptions_never_escape(self) -> None:
        def evaluator(expression: str, scope: Mapping[str, float]) -> float:
            raise RuntimeError("engine crashed")

        outcome = evaluate_expression(2, "1", {}, evaluator)
        assert outcome == EvaluationError(node_id=2, message="engine crashed")

    def test_non_finite_result_from_evaluator(self) -> None:
        outcome = evaluate_expression(3, "1", {}, lambda expression, scope: float("inf"))
        assert isinstance(outcome, EvaluationError)
        assert outcome.node_id == 3


class TestExpressionGrammar:
    """Expressions are arithmetic only and never run as Python."""

    def test_builtin_import_is_rejected_without_side_effect(self, tmp_path: Path) -> None:
        marker = tmp_path / "marker"
        expression = f"len(__import__('pathlib').Path({str(marker)!r}).write_text('x'))"

        outcome = evaluate_expression(1, expression, {})

        assert isinstance(outcome, EvaluationError)
        assert "unknown function" in outcome.message
        assert not marker.exists()

    @pytest.mark.parametrize(
        "expression",
        [
            "x.real",
            "x.__class__",
            "[x][0]",
            "(lambda: 1)()",
            "log(x, base=2)",
            "max(*[x])",
            "'text'",
            "True + 1",
            "x if x else 1",
            "eval('1')",
        ],
    )
    def test_non_arithmetic_syntax_is_rejected(self, expression: str) -> None:
        with pytest.raises(ExpressionError, match="Invalid expression"):
            SympyEvaluator()(expression, {"x": 1.0})

    def test_constants_are_not_built_in(self) -> None:
        with pytest.raises(ExpressionError, match="Undefined symbol\\(s\\): E, pi"):
            SympyEvaluator()("E + pi", {})

    def test_function_name_is_not_a_value(self) -> None:
        with pytest.raises(ExpressionError, match="Undefined symbol\\(s\\): sqrt"):
            SympyEvaluator()("sqrt + 1", {})

    def test_scope_name_may_shadow_function_name(self) -> None:
        assert SympyEvaluator()("sqrt(sqrt)", {"sqrt": 9.0}) == pytest.approx(3.0)

    @pytest.mark.parametrize("expression", ["9 ^ 9 ^ 9", "2 ** 100000", "x ^ 1e6"])
    def test_huge_exponents_are_rejected(self, expression: str) -> None:
        with pytest.raises(ExpressionError, match="Exponent out of range"):
            SympyEvaluator()(expression, {"x": 1.0})

    def test_large_exact_power_overflows_cleanly(self) -> None:
        with pytest.raises(ExpressionError, match="overflows"):
            SympyEvaluator()("(10 ^ 400) ^ 9000", {})
