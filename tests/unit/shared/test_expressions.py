"""Tests for the whitelisted arithmetic expression engine."""

from __future__ import annotations

import pytest

from provider_gateway.domain.exceptions import ExpressionError
from provider_gateway.shared.expressions import MAX_SOURCE_LENGTH, compile_expression


class TestCompile:
    @pytest.mark.parametrize(
        "source, context, expected",
        [
            ("1 + 2 * 3", {}, 7),
            ("(1 + 2) * 3", {}, 9),
            ("multiplier ** (attempt - 1)", {"multiplier": 2, "attempt": 3}, 4),
            ("min(30, 2 ** attempt)", {"attempt": 10}, 30),
            ("max(0.5, attempt / 4)", {"attempt": 1}, 0.5),
            ("abs(-attempt)", {"attempt": 3}, 3),
            ("round(7 / 2)", {}, 4),
            ("7 // 2 + 7 % 2", {}, 4),
            ("retry.base * 2", {"retry": {"base": 1.5}}, 3.0),
        ],
    )
    def test_evaluates(self, source, context, expected) -> None:
        assert compile_expression(source).evaluate(context) == expected

    def test_collects_names(self) -> None:
        expr = compile_expression("min(cap, multiplier ** attempt) + retry.base")
        assert expr.names == frozenset({"cap", "multiplier", "attempt", "retry.base"})

    @pytest.mark.parametrize(
        "source",
        [
            "__import__('os')",
            "open('/etc/passwd')",
            "attempt if attempt else 1",
            "[1, 2]",
            "lambda: 1",
            "'text'",
            "True",
            "attempt < 3",
            "min(1, key=abs)",
            "(1).real",
            "1 << 4",
            "not attempt",
            "x[0]",
        ],
    )
    def test_rejects_disallowed_syntax(self, source) -> None:
        with pytest.raises(ExpressionError):
            compile_expression(source)

    def test_rejects_empty_and_oversized(self) -> None:
        with pytest.raises(ExpressionError):
            compile_expression("   ")
        with pytest.raises(ExpressionError):
            compile_expression("1+" * MAX_SOURCE_LENGTH + "1")

    def test_rejects_syntax_errors(self) -> None:
        with pytest.raises(ExpressionError):
            compile_expression("1 +")

    def test_allowed_names(self) -> None:
        compile_expression("attempt * multiplier", {"attempt", "multiplier"})
        with pytest.raises(ExpressionError):
            compile_expression("attempt * jitter", {"attempt", "multiplier"})


class TestEvaluate:
    def test_unknown_name(self) -> None:
        with pytest.raises(ExpressionError):
            compile_expression("attempt + 1").evaluate({})

    def test_non_numeric_name(self) -> None:
        with pytest.raises(ExpressionError):
            compile_expression("attempt + 1").evaluate({"attempt": "3"})
        with pytest.raises(ExpressionError):
            compile_expression("attempt + 1").evaluate({"attempt": True})

    def test_missing_dotted_segment(self) -> None:
        with pytest.raises(ExpressionError):
            compile_expression("retry.base").evaluate({"retry": {}})

    def test_division_by_zero(self) -> None:
        with pytest.raises(ExpressionError):
            compile_expression("1 / attempt").evaluate({"attempt": 0})

    def test_exponent_is_bounded(self) -> None:
        with pytest.raises(ExpressionError):
            compile_expression("2 ** 100").evaluate()

    def test_expression_is_reusable(self) -> None:
        expr = compile_expression("2 ** attempt")
        assert [expr.evaluate({"attempt": n}) for n in (0, 1, 2)] == [1, 2, 4]
