import pytest

from tradecheck.errors import FormulaError
from tradecheck.formulas import (
    CustomFunction,
    CustomFunctionRegistry,
    FormulaOp,
    evaluate_formula,
    formula_references,
    parse_formula,
)
from tradecheck.values import ValueStore


def store(**values) -> ValueStore:
    return ValueStore.seed(values)


@pytest.mark.parametrize(
    "formula, expected",
    [
        ("DIVIDE:a:b", 5.0),
        ("MULTIPLY:a:b", 20.0),
        ("SUBTRACT:a:b", 8.0),
        ("ADD:a:b", 12.0),
        ("PERCENTAGE:a:b", 500.0),
        ("PER_VEHICLE:a:b", 5.0),
        ("PER_DAY:a", 1.0),
        ("CAPACITY:b:8:period_days", 160.0),
        ("CAPACITY:b", 160.0),
        ("DIVIDE:a:4", 2.5),
    ],
)
def test_operations(formula: str, expected: float) -> None:
    """Each operation applies its arithmetic to resolved arguments."""
    result = evaluate_formula(formula, store(a=10, b=2), period_days=10)

    assert result.is_present
    assert result.value == pytest.approx(expected)


def test_percentage_example() -> None:
    """in_home_visits / total_leads as a percentage."""
    values = store(total_leads=100, in_home_visits=40)

    result = evaluate_formula("PERCENTAGE:in_home_visits:total_leads", values, 30)

    assert result.value == pytest.approx(40.0)


@pytest.mark.parametrize(
    "formula",
    ["DIVIDE:a:b", "MULTIPLY:a:b", "SUBTRACT:a:b", "ADD:a:b", "PERCENTAGE:a:b"],
)
def test_absent_operand_is_undetermined(formula: str) -> None:
    """An absent argument makes the result absent, never zero."""
    result = evaluate_formula(formula, store(a=10), period_days=30)

    assert result.value is None
    assert result.missing == "b"
    assert not result.is_error


def test_first_missing_argument_is_reported() -> None:
    result = evaluate_formula("ADD:x:y", store(), period_days=30)

    assert result.missing == "x"


@pytest.mark.parametrize("formula", ["DIVIDE:a:b", "PERCENTAGE:a:b", "PER_VEHICLE:a:b"])
def test_division_by_zero_is_undetermined(formula: str) -> None:
    result = evaluate_formula(formula, store(a=10, b=0), period_days=30)

    assert result.value is None
    assert result.missing is None
    assert result.reason == "division by zero"


def test_zero_is_a_present_value() -> None:
    """A reported zero is data, not a missing value."""
    result = evaluate_formula("PERCENTAGE:a:b", store(a=0, b=50), period_days=30)

    assert result.value == 0.0


@pytest.mark.parametrize("period_days", [0, -5])
def test_per_day_with_non_positive_period(period_days: int) -> None:
    result = evaluate_formula("PER_DAY:a", store(a=10), period_days=period_days)

    assert result.value is None
    assert not result.is_error


def test_capacity_missing_employees() -> None:
    result = evaluate_formula("CAPACITY:num_techs:8:period_days", store(), 30)

    assert result.value is None
    assert result.missing == "num_techs"


def test_evaluator_does_not_mutate_store() -> None:
    values = store(a=1, b=2)
    before = values.as_dict()

    evaluate_formula("ADD:a:b", values, period_days=30)

    assert values.as_dict() == before


@pytest.mark.parametrize(
    "formula",
    ["", "   ", "POWER:a:b", "DIVIDE:a", "DIVIDE:a:b:c", "ADD:a:", "PER_DAY", "CUSTOM"],
)
def test_malformed_formulas(formula: str) -> None:
    """Malformed grammar raises from the parser and fails from the evaluator."""
    with pytest.raises(FormulaError):
        parse_formula(formula)

    result = evaluate_formula(formula, store(a=1, b=2), period_days=30)
    assert result.is_error
    assert result.value is None


def test_parse_formula_is_case_insensitive_on_operation() -> None:
    parsed = parse_formula(" percentage : visits : leads ")

    assert parsed.op is FormulaOp.PERCENTAGE
    assert parsed.args == ("visits", "leads")


def test_formula_references() -> None:
    assert formula_references("DIVIDE:revenue:jobs") == ("revenue", "jobs")
    assert formula_references("CAPACITY:num_techs:8:period_days") == ("num_techs",)
    assert formula_references("ADD:a:a") == ("a",)
    assert formula_references("NOPE:a") == ()


def test_builtin_schedule_capacity() -> None:
    """Technicians x hours per day (default 8) x period days."""
    result = evaluate_formula("CUSTOM:schedule_capacity", store(num_techs=3), 30)
    assert result.value == pytest.approx(720.0)

    result = evaluate_formula(
        "CUSTOM:schedule_capacity", store(num_techs=3, hours_per_day=10), 30
    )
    assert result.value == pytest.approx(900.0)

    result = evaluate_formula("CUSTOM:schedule_capacity", store(), 30)
    assert result.value is None
    assert result.missing == "num_techs"
    assert formula_references("CUSTOM:schedule_capacity") == ("num_techs",)


def test_unregistered_custom_function_is_a_configuration_error() -> None:
    result = evaluate_formula("CUSTOM:does_not_exist", store(), 30)

    assert result.is_error
    assert "does_not_exist" in (result.error or "")


def test_custom_registry_decorator_and_plain_mapping() -> None:
    registry = CustomFunctionRegistry()

    @registry.register("double_leads", requires=("total_leads",))
    def _double(values: ValueStore, period_days: int):
        leads = values.get("total_leads")
        return None if leads is None else leads * 2

    assert "double_leads" in registry
    result = evaluate_formula("CUSTOM:double_leads", store(total_leads=5), 30, registry)
    assert result.value == 10.0
    assert formula_references("CUSTOM:double_leads", registry) == ("total_leads",)

    plain = {"seven": lambda values, days: 7}
    assert evaluate_formula("CUSTOM:seven", store(), 30, plain).value == 7.0

    wrapped = {"days": CustomFunction("days", lambda values, days: days, ())}
    assert evaluate_formula("CUSTOM:days", store(), 90, wrapped).value == 90.0


def test_failing_custom_function_does_not_raise() -> None:
    def _boom(values: ValueStore, period_days: int):
        raise RuntimeError("boom")

    result = evaluate_formula("CUSTOM:boom", store(), 30, {"boom": _boom})

    assert result.is_error
    assert "boom" in (result.error or "")
