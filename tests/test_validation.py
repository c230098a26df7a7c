from tradecheck.calculator import calculate
from tradecheck.definitions import MetricDefinition, RuleDefinition, Severity, section_map
from tradecheck.validation import Status, ValidationResult, overall_status, validate_all
from tradecheck.values import ValueStore


def rule(key: str, kind: str, formula: str, severity: str = "warning", **kwargs):
    return RuleDefinition(key=key, kind=kind, formula=formula, severity=severity, **kwargs)


def test_rules_run_in_kind_order() -> None:
    """dependency -> range -> reconciliation/comparison, whatever the config order."""
    rules = [
        rule("recon", "reconciliation", "RECONCILE:a*2:b"),
        rule("cmp", "comparison", "GREATER:b:a"),
        rule("rng", "range", "RANGE:a:0:1"),
        rule("dep", "dependency", "REQUIRES:a:missing_parent"),
        rule("eq", "equals", "EQUALS:a:b"),
        rule("rng2", "range", "RANGE:b:0:1"),
    ]
    values = ValueStore.seed({"a": 10, "b": 5})

    result = validate_all(values, rules)

    assert [i.rule_id for i in result.issues] == ["dep", "rng", "rng2", "recon", "cmp", "eq"]


def test_all_rules_are_evaluated() -> None:
    rules = [rule(f"r{i}", "range", f"RANGE:x:{i + 1}:100", severity="error") for i in range(5)]

    result = validate_all(ValueStore.seed({"x": 0}), rules)

    assert len(result.issues) == 5
    assert result.status is Status.ERRORS


def test_status_levels() -> None:
    values = ValueStore.seed({"x": 200})

    info = [rule("i", "range", "RANGE:x:0:100", severity="info")]
    warning = info + [rule("w", "range", "RANGE:x:0:150", severity="warning")]
    error = warning + [rule("e", "range", "RANGE:x:0:199", severity="error")]

    assert validate_all(values, []).status is Status.VALID
    assert validate_all(values, info).status is Status.VALID
    assert validate_all(values, warning).status is Status.WARNINGS
    assert validate_all(values, error).status is Status.ERRORS


def test_overall_status_and_counts() -> None:
    result = validate_all(
        ValueStore.seed({"x": 200}),
        [
            rule("i", "range", "RANGE:x:0:100", severity="info"),
            rule("e", "range", "RANGE:x:0:100", severity="error"),
            rule("e2", "range", "RANGE:x:0:100", severity="error"),
        ],
    )

    assert overall_status(result.issues) is Status.ERRORS
    assert result.counts() == {"error": 2, "warning": 0, "info": 1}
    assert ValidationResult(status=Status.VALID).counts() == {
        "error": 0,
        "warning": 0,
        "info": 0,
    }


def test_inactive_rules_are_skipped() -> None:
    rules = [rule("off", "range", "RANGE:x:0:1", severity="error", active=False)]

    result = validate_all(ValueStore.seed({"x": 5}), rules)

    assert result.issues == []
    assert result.status is Status.VALID


def test_one_bad_rule_does_not_abort_the_run() -> None:
    rules = [
        rule("broken", "reconciliation", "RECONCILE:a**b:c", severity="info"),
        rule("rng", "range", "RANGE:a:0:1"),
    ]

    result = validate_all(ValueStore.seed({"a": 5, "b": 1, "c": 2}), rules)

    assert [i.rule_id for i in result.issues] == ["rng", "broken"]
    assert result.issues[1].severity is Severity.ERROR
    assert result.status is Status.ERRORS


def test_no_data_means_valid() -> None:
    rules = [
        rule("dep", "dependency", "REQUIRES:a:b", severity="error"),
        rule("rng", "range", "RANGE:a:0:1", severity="error"),
        rule("cmp", "comparison", "GREATER:a:b", severity="error"),
        rule("recon", "reconciliation", "RECONCILE:a*b:c", severity="error"),
    ]

    result = validate_all(ValueStore(), rules)

    assert result.status is Status.VALID
    assert result.issues == []


def test_validate_all_is_idempotent() -> None:
    rules = [
        rule("rng", "range", "RANGE:a:0:1"),
        rule("dep", "dependency", "REQUIRES:a:b"),
    ]
    values = ValueStore.seed({"a": 5})

    assert validate_all(values, rules) == validate_all(values, rules)


def test_end_to_end_with_sections() -> None:
    metrics = [
        MetricDefinition("total_leads", section="marketing"),
        MetricDefinition("in_home_visits", section="sales"),
        MetricDefinition("reported_booking_rate", section="sales"),
        MetricDefinition(
            "booking_rate",
            kind="calculated",
            formula="PERCENTAGE:in_home_visits:total_leads",
            section="sales",
        ),
    ]
    rules = [
        rule(
            "recon",
            "reconciliation",
            "RECONCILE:total_leads*reported_booking_rate/100:in_home_visits",
            severity="error",
            tolerance=0.10,
        ),
        rule("eq", "equals", "EQUALS:booking_rate:reported_booking_rate", severity="info"),
    ]
    inputs = {"total_leads": 100, "in_home_visits": 40, "reported_booking_rate": 70}

    calculation = calculate(inputs, metrics, period_days=30)
    result = validate_all(calculation.values, rules, section_map(metrics))

    assert result.status is Status.ERRORS
    assert [i.rule_id for i in result.issues] == ["recon", "eq"]
    assert result.issues[0].sections == ("marketing", "sales")
    assert result.issues[1].expected == 70.0
