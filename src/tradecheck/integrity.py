# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration integrity checks.

The calculator and rule evaluator tolerate configuration defects by
localizing them to the affected metric or rule. This module reports those
defects up front, so that a configuration pack can be reviewed before any
client data is processed.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from .definitions import MetricDefinition, RuleDefinition
from .dependencies import resolve_order
from .errors import FormulaError, RuleError
from .formulas import (
    CustomFunctions,
    FormulaOp,
    as_registry,
    formula_references,
    parse_formula,
)
from .rules import parse_rule, rule_references


@dataclass(frozen=True)
class ConfigurationProblem:
    """One configuration defect. ``subject`` is a metric or rule key."""

    subject: str
    message: str


def check_configuration(
    metric_definitions: Iterable[MetricDefinition],
    rule_definitions: Iterable[RuleDefinition] = (),
    custom_functions: Optional[CustomFunctions] = None,
) -> list[ConfigurationProblem]:
    """Return every configuration problem found, in a stable order."""
    metrics = list(metric_definitions)
    rules = list(rule_definitions)
    registry = as_registry(custom_functions)
    problems: list[ConfigurationProblem] = []

    known: set[str] = set()
    # First definition wins, as in calculate().
    unique: list[MetricDefinition] = []
    for m in metrics:
        if m.key in known:
            problems.append(
                ConfigurationProblem(m.key, f"Duplicate metric key '{m.key}'.")
            )
            continue
        known.add(m.key)
        unique.append(m)

    for m in unique:
        if not m.is_calculated:
            continue
        try:
            parsed = parse_formula(m.formula or "")
        except FormulaError as exc:
            problems.append(ConfigurationProblem(m.key, str(exc)))
            continue
        if parsed.op is FormulaOp.CUSTOM and parsed.args[0] not in registry:
            problems.append(
                ConfigurationProblem(
                    m.key, f"Unregistered custom function '{parsed.args[0]}'."
                )
            )
        for ref in formula_references(m.formula or "", registry):
            if ref not in known:
                problems.append(
                    ConfigurationProblem(
                        m.key, f"Formula references unknown metric '{ref}'."
                    )
                )

    for key in resolve_order(unique, registry).circular:
        problems.append(ConfigurationProblem(key, "Circular dependency."))

    seen_rules: set[str] = set()
    for r in rules:
        if r.key in seen_rules:
            problems.append(
                ConfigurationProblem(r.key, f"Duplicate rule key '{r.key}'.")
            )
        seen_rules.add(r.key)
        try:
            parse_rule(r.formula)
        except RuleError as exc:
            problems.append(ConfigurationProblem(r.key, str(exc)))
            continue
        for ref in rule_references(r.formula):
            if ref not in known:
                problems.append(
                    ConfigurationProblem(
                        r.key, f"Rule references unknown metric '{ref}'."
                    )
                )
        for ref in r.metrics:
            if ref not in known:
                problems.append(
                    ConfigurationProblem(
                        r.key, f"Involved metric '{ref}' is not defined."
                    )
                )

    return problems
