from pathlib import Path

import pandas as pd
import pytest

from tradecheck.calculator import calculate
from tradecheck.definitions import Issue, MetricDefinition, Severity, Unit
from tradecheck.io import read_inputs
from tradecheck.views import (
    ISSUE_COLUMNS,
    METRIC_COLUMNS,
    format_value,
    issues_to_dataframe,
    values_to_dataframe,
)


def write_csv(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "inputs.csv"
    path.write_text(content, encoding="utf-8")
    return path


def test_read_inputs_with_blanks(tmp_path: Path) -> None:
    """Empty cells are absent, zero is a value."""
    path = write_csv(
        tmp_path,
        "Metric,Value,Comment\n"
        "total_leads,100,\n"
        "in_home_visits,,not tracked\n"
        "jobs_closed,0,\n"
        "gross_revenue, 1250.50 ,\n",
    )

    inputs = read_inputs(path)

    assert inputs == {
        "total_leads": 100.0,
        "in_home_visits": None,
        "jobs_closed": 0.0,
        "gross_revenue": pytest.approx(1250.5),
    }
    assert list(inputs) == ["total_leads", "in_home_visits", "jobs_closed", "gross_revenue"]


def test_read_inputs_key_alias(tmp_path: Path) -> None:
    path = write_csv(tmp_path, "key,value\nnum_techs,4\n")

    assert read_inputs(path) == {"num_techs": 4.0}


@pytest.mark.parametrize(
    "content",
    [
        "name,amount\nx,1\n",
        "metric,value\nx,abc\n",
        "metric,value\nx,1\nx,2\n",
        "metric,value\nx,\"1,5\"\n",
        "metric,value\nx,\"12,34.5\"\n",
    ],
)
def test_read_inputs_invalid(tmp_path: Path, content: str) -> None:
    with pytest.raises(ValueError):
        read_inputs(write_csv(tmp_path, content))


@pytest.mark.parametrize(
    "value, unit, expected",
    [
        (None, Unit.CURRENCY, ""),
        (1234.5, Unit.CURRENCY, "1,234.50"),
        (40.0, Unit.PERCENTAGE, "40.0%"),
        (1200.0, Unit.COUNT, "1,200"),
        (960.0, Unit.PLAIN, "960"),
        (2.5, Unit.PLAIN, "2.5"),
        (0.0, Unit.PLAIN, "0"),
    ],
)
def test_format_value(value, unit: Unit, expected: str) -> None:
    assert format_value(value, unit) == expected


def test_values_to_dataframe() -> None:
    defs = [
        MetricDefinition("rate", kind="calculated", unit="percentage",
                         formula="PERCENTAGE:visits:leads"),
        MetricDefinition("leads", unit="count", required=True),
        MetricDefinition("visits", unit="count"),
    ]

    result = calculate({"visits": 40}, defs, period_days=30)
    df = values_to_dataframe(result, defs)

    assert list(df.columns) == METRIC_COLUMNS
    # Inputs first, then calculated metrics.
    assert df["metric"].tolist() == ["leads", "visits", "rate"]
    assert df["diagnostic"].tolist() == [
        "required input missing",
        "",
        "missing leads",
    ]
    assert df["display"].tolist() == ["", "40", ""]
    assert pd.isna(df.loc[0, "value"])
    assert df.loc[1, "value"] == 40.0


def test_issues_to_dataframe() -> None:
    issues = [
        Issue(
            rule_id="r",
            rule_name="Rule",
            severity=Severity.WARNING,
            message="m",
            expected=1.0,
            actual=2.0,
            variance=0.5,
            metrics=("a", "b"),
            sections=("sales",),
        ),
        Issue(rule_id="q", rule_name="Q", severity=Severity.ERROR, message="n"),
    ]

    df = issues_to_dataframe(issues)

    assert list(df.columns) == ISSUE_COLUMNS
    assert df["severity"].tolist() == ["warning", "error"]
    assert df.loc[0, "metrics"] == "a, b"
    assert pd.isna(df.loc[1, "variance"])


def test_issues_to_dataframe_empty() -> None:
    df = issues_to_dataframe([])

    assert df.empty
    assert list(df.columns) == ISSUE_COLUMNS


def test_read_inputs_thousands_separators(tmp_path: Path) -> None:
    path = write_csv(
        tmp_path, 'metric,value\ngross_revenue,"1,250,000.50"\nleads,"-1,200"\n'
    )

    assert read_inputs(path) == {
        "gross_revenue": pytest.approx(1250000.5),
        "leads": -1200.0,
    }
