# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
TradeCheck
----------

A Python computation engine for the operating metrics of trade businesses
(HVAC, plumbing, electrical, ...). For one reporting period it:

- derives calculated KPIs from raw inputs through declarative,
  colon-delimited formulas, in dependency order, with cycle detection,
- validates the complete value set with dependency, range, comparison and
  reconciliation rules, using tolerance-aware pass/fail logic,
- produces a severity-classified list of issues and an overall status.

Missing data is treated as the normal case: absent inputs make the
affected metrics and rules undetermined, never failing.

TradeCheck separates computation (calculator, validation), configuration
(TOML packs) and presentation (CLI, pandas views).

Main entry points:
    calculate(raw_inputs, metric_definitions, period_days)
    validate_all(values, rule_definitions)

Usage:
    python -m tradecheck.cli --help
"""

from .calculator import CalculationResult, calculate
from .validation import Status, ValidationResult, validate_all

__all__ = [
    "calculator",
    "config",
    "formulas",
    "rules",
    "validation",
    "views",
    "io",
    "calculate",
    "validate_all",
    "CalculationResult",
    "ValidationResult",
    "Status",
]

__version__ = "0.1.0"
