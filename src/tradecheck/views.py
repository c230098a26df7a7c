# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for TradeCheck.

This module turns calculation and validation results into pandas DataFrames
ready for display or CSV export. It does not compute anything: the unit of
each metric only drives how its value is formatted.

The main views are:

- metrics view: one row per defined metric (inputs first, then calculated
  metrics, in definition order), with its value, formatted display and the
  reason it is absent when applicable,
- issues view:  one row per validation issue, in execution order.
"""

from collections.abc import Iterable
from typing import Optional

import pandas as pd

from .calculator import CalculationResult
from .definitions import Issue, MetricDefinition, Unit

METRIC_COLUMNS = ["metric", "label", "kind", "unit", "value", "display", "diagnostic"]
ISSUE_COLUMNS = [
    "rule_id",
    "rule_name",
    "severity",
    "message",
    "expected",
    "actual",
    "variance",
    "metrics",
    "sections",
]


def format_value(value: Optional[float], unit: Unit) -> str:
    """Format a value for display according to its unit.

    Absent values are rendered as an empty string.
    """
    if value is None:
        return ""
    if unit is Unit.CURRENCY:
        return f"{value:,.2f}"
    if unit is Unit.PERCENTAGE:
        return f"{value:.1f}%"
    if unit is Unit.COUNT:
        return f"{value:,.0f}"
    return f"{value:,.2f}".rstrip("0").rstrip(".")


def values_to_dataframe(
    result: CalculationResult, metric_definitions: Iterable[MetricDefinition]
) -> pd.DataFrame:
    """Return the metrics view for a calculation result.

    Columns: metric, label, kind, unit, value, display, diagnostic.
    ``value`` is NaN when absent; ``diagnostic`` is empty for inputs and
    successfully calculated metrics.
    """
    definitions = list(metric_definitions)
    ordered = [d for d in definitions if not d.is_calculated] + [
        d for d in definitions if d.is_calculated
    ]

    rows = []
    for d in ordered:
        value = result.values.get(d.key)
        diagnostic = result.diagnostics.get(d.key, "")
        if not d.is_calculated and value is None and d.required:
            diagnostic = "required input missing"
        rows.append(
            {
                "metric": d.key,
                "label": d.label,
                "kind": d.kind.value,
                "unit": d.unit.value,
                "value": value,
                "display": format_value(value, d.unit),
                "diagnostic": diagnostic,
            }
        )
    df = pd.DataFrame(rows, columns=METRIC_COLUMNS)
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    return df


def issues_to_dataframe(issues: Iterable[Issue]) -> pd.DataFrame:
    """Return the issues view (one row per Issue, fixed column order)."""
    df = pd.DataFrame([issue.to_dict() for issue in issues], columns=ISSUE_COLUMNS)
    for col in ("expected", "actual", "variance"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df
