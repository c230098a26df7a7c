# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Validation runner.

Runs every active rule against a resolved ValueStore and aggregates the
resulting issues into an overall status.

Execution order is fixed by rule kind, independent of the order rules
appear in the configuration, so that completeness problems surface before
range and reconciliation noise:

    dependency -> range -> reconciliation / comparison / equals

Within a kind, rules run in definition order. All rules are evaluated: the
output is the complete issue set, not the first failure.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .definitions import Issue, RuleDefinition, RuleKind, Severity
from .rules import run_validation
from .values import ValueStore

logger = logging.getLogger(__name__)

# Rank of each rule kind in the execution order.
KIND_ORDER: dict[RuleKind, int] = {
    RuleKind.DEPENDENCY: 0,
    RuleKind.RANGE: 1,
    RuleKind.RECONCILIATION: 2,
    RuleKind.COMPARISON: 2,
    RuleKind.EQUALS: 2,
}


class Status(str, Enum):
    VALID = "valid"
    WARNINGS = "warnings"
    ERRORS = "errors"


@dataclass(frozen=True)
class ValidationResult:
    """Overall status and the complete list of issues for one run."""

    status: Status
    issues: list[Issue] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        """Number of issues per severity (every severity is present)."""
        counter = Counter(issue.severity for issue in self.issues)
        return {s.value: counter.get(s, 0) for s in Severity}


def overall_status(issues: Iterable[Issue]) -> Status:
    """Errors win over warnings; info issues never affect the status."""
    severities = {issue.severity for issue in issues}
    if Severity.ERROR in severities:
        return Status.ERRORS
    if Severity.WARNING in severities:
        return Status.WARNINGS
    return Status.VALID


def ordered_rules(rule_definitions: Iterable[RuleDefinition]) -> list[RuleDefinition]:
    """Active rules sorted by kind. ``sorted`` is stable, so definition
    order is kept within a kind."""
    active = [r for r in rule_definitions if r.active]
    return sorted(active, key=lambda r: KIND_ORDER[r.kind])


def validate_all(
    values: ValueStore,
    rule_definitions: Iterable[RuleDefinition],
    sections: Optional[Mapping[str, str]] = None,
) -> ValidationResult:
    """
    Run all active rules and derive the overall status.

    Args:
        values: Resolved values, usually ``calculate(...).values``.
        rule_definitions: Rule definitions; inactive ones are skipped.
        sections: Optional metric -> section lookup (see
            definitions.section_map) used to fill ``Issue.sections``.

    Returns:
        A ValidationResult. Never raises on bad data or bad rules.
    """
    issues: list[Issue] = []
    for rule in ordered_rules(rule_definitions):
        issue = run_validation(rule, values, sections)
        if issue is not None:
            issues.append(issue)

    status = overall_status(issues)
    logger.debug("Validation finished: %s (%d issue(s)).", status.value, len(issues))
    return ValidationResult(status=status, issues=issues)
