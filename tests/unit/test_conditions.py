import pytest

from procflow.conditions import check_syntax, evaluate, evaluate_strict
from procflow.diagnostics import DiagnosticKind, Diagnostics
from procflow.errors import ConditionEvaluationError, ConditionSyntaxError


@pytest.mark.parametrize("expression", ["", None, "   "])
def test_blank_expression_holds(expression):
    assert evaluate(expression, {}) is True


def test_examples_from_the_condition_contract():
    assert evaluate("x > 10", {"x": 15}) is True
    assert evaluate("x > 10", {}) is False
    assert evaluate("a == 'yes' && b > 2", {"a": "yes", "b": 3}) is True


@pytest.mark.parametrize(
    "expression, variables, expected",
    [
        ("status = 'Approved'", {"status": "approved"}, True),
        ('status != "rejected"', {"status": "approved"}, True),
        ("amount >= 1000", {"amount": "1500"}, True),
        ("amount < 1000", {"amount": "1500.5"}, False),
        ("t > -5", {"t": -3}, True),
        ("flag == true", {"flag": "true"}, True),
        ("flag", {"flag": "false"}, False),
        ("flag", {"flag": "yes"}, True),
        ("!(a || b)", {}, True),
        ("a == 1 || b == 2 && c == 3", {"a": 0, "b": 2, "c": 0}, False),
        ("(a == 1 || b == 2) && c == 3", {"a": 1, "b": 0, "c": 3}, True),
        ("name < 'm'", {"name": "alice"}, True),
    ],
)
def test_evaluate(expression, variables, expected):
    assert evaluate(expression, variables) is expected


def test_undefined_values():
    assert evaluate("missing", {}) is False
    assert evaluate("missing != 'a'", {}) is False
    assert evaluate("missing == 'a'", {}) is False
    assert evaluate("missing == other", {}) is False
    assert evaluate("missing != other", {}) is False
    assert evaluate("missing <= 3", {}) is False
    assert evaluate("!(missing == 'a')", {}) is True
    # None values behave like missing ones
    assert evaluate("x == 'a'", {"x": None}) is False


def test_malformed_expression_fails_closed_with_diagnostic():
    diagnostics = Diagnostics()

    assert evaluate("x >", {"x": 1}, diagnostics, subject_id="t1") is False

    [diagnostic] = diagnostics.to_list()
    assert diagnostic.kind == DiagnosticKind.BROKEN_CONDITION
    assert diagnostic.subject_id == "t1"
    assert diagnostic.context["expression"] == "x >"


def test_type_error_fails_closed_with_diagnostic():
    diagnostics = Diagnostics()

    assert evaluate("name > 5", {"name": "abc"}, diagnostics) is False
    assert diagnostics.has(DiagnosticKind.BROKEN_CONDITION)


def test_evaluate_strict_raises():
    with pytest.raises(ConditionSyntaxError):
        evaluate_strict("a ===", {})
    with pytest.raises(ConditionEvaluationError):
        evaluate_strict("flag > true", {"flag": True})


def test_check_syntax():
    assert check_syntax("a == 1 && (b != 'x' || !c)") is None
    assert check_syntax("") is None
    assert check_syntax("a &&") is not None
    assert check_syntax("1 < 2 < 3") is not None
    assert check_syntax("(a == 1") is not None
    assert check_syntax("a # b") is not None
