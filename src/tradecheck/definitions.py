# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Definition types for TradeCheck.

This module holds the immutable structures shared by the calculator and the
validation engine:

- MetricDefinition : one input or calculated metric,
- RuleDefinition   : one validation rule,
- Issue            : one failed (or un-evaluable) rule for a run.

Definitions are built once per configuration load (see config.py) and are
never mutated during a run. Issues are created only by the rule evaluator.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import DefinitionError


class MetricKind(str, Enum):
    """Whether a metric is reported directly or derived from a formula."""

    INPUT = "input"
    CALCULATED = "calculated"


class Unit(str, Enum):
    """Numeric semantics tag. Used for formatting only, never computation."""

    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    COUNT = "count"
    PLAIN = "plain"


class RuleKind(str, Enum):
    """Validation rule families, used to order execution."""

    RECONCILIATION = "reconciliation"
    RANGE = "range"
    DEPENDENCY = "dependency"
    COMPARISON = "comparison"
    EQUALS = "equals"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


def _coerce_enum(enum_cls: type[Enum], raw: Any, what: str, key: str) -> Any:
    """Convert a raw string (or enum member) into ``enum_cls``."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)  # type: ignore[attr-defined]
        raise DefinitionError(
            f"Invalid {what} {raw!r} for '{key}' (expected one of: {allowed})."
        ) from exc


@dataclass(frozen=True)
class MetricDefinition:
    """
    Definition of a single metric.

    Attributes
    ----------
    key :
        Unique, stable identifier (e.g. 'total_leads', 'booking_rate').
    kind :
        MetricKind.INPUT for reported values, MetricKind.CALCULATED for
        values derived from ``formula``.
    unit :
        Formatting hint (currency, percentage, count, plain).
    formula :
        Colon-delimited formula (e.g. 'PERCENTAGE:in_home_visits:total_leads').
        Present if and only if the metric is calculated.
    required :
        For input metrics only: whether the metric is expected in every
        submission.
    label :
        Human-readable name for display (defaults to ``key``).
    section :
        Identifier of the form/report section the metric belongs to. Used to
        attach sections to validation issues.
    notes :
        Optional free text.
    """

    key: str
    kind: MetricKind = MetricKind.INPUT
    unit: Unit = Unit.PLAIN
    formula: Optional[str] = None
    required: bool = False
    label: str = ""
    section: str = ""
    notes: str = ""

    def __post_init__(self) -> None:
        key = str(self.key).strip()
        if not key:
            raise DefinitionError("Metric definition has an empty key.")
        object.__setattr__(self, "key", key)
        object.__setattr__(
            self, "kind", _coerce_enum(MetricKind, self.kind, "metric kind", key)
        )
        object.__setattr__(self, "unit", _coerce_enum(Unit, self.unit, "unit", key))

        formula = (self.formula or "").strip() or None
        object.__setattr__(self, "formula", formula)

        if self.kind is MetricKind.CALCULATED and formula is None:
            raise DefinitionError(f"Calculated metric '{key}' has no formula.")
        if self.kind is MetricKind.INPUT and formula is not None:
            raise DefinitionError(f"Input metric '{key}' must not define a formula.")
        if self.kind is MetricKind.CALCULATED and self.required:
            raise DefinitionError(
                f"Calculated metric '{key}' cannot be flagged as required."
            )

        if not self.label:
            object.__setattr__(self, "label", key)

    @property
    def is_calculated(self) -> bool:
        return self.kind is MetricKind.CALCULATED


@dataclass(frozen=True)
class RuleDefinition:
    """
    Definition of a validation rule.

    Attributes
    ----------
    key :
        Unique identifier of the rule.
    kind :
        Rule family; drives the execution order in the validation runner.
    formula :
        Rule expression (e.g. 'RANGE:booking_rate:0:100').
    tolerance :
        Relative tolerance in [0, 1). Only meaningful for reconciliation and
        equality rules.
    severity :
        Severity given to the issue when the rule fails.
    message :
        Message template with ``{placeholders}`` (see rules.render_message).
    metrics :
        Involved metric identifiers, used for reporting only.
    name :
        Human-readable rule name (defaults to ``key``).
    active :
        Inactive rules are skipped by the validation runner.
    """

    key: str
    kind: RuleKind
    formula: str
    tolerance: float = 0.0
    severity: Severity = Severity.WARNING
    message: str = ""
    metrics: tuple[str, ...] = field(default_factory=tuple)
    name: str = ""
    active: bool = True

    def __post_init__(self) -> None:
        key = str(self.key).strip()
        if not key:
            raise DefinitionError("Rule definition has an empty key.")
        object.__setattr__(self, "key", key)
        object.__setattr__(
            self, "kind", _coerce_enum(RuleKind, self.kind, "rule kind", key)
        )
        object.__setattr__(
            self, "severity", _coerce_enum(Severity, self.severity, "severity", key)
        )
        object.__setattr__(self, "formula", str(self.formula or "").strip())

        try:
            tolerance = float(self.tolerance)
        except (TypeError, ValueError) as exc:
            raise DefinitionError(
                f"Invalid tolerance {self.tolerance!r} for rule '{key}'."
            ) from exc
        if not 0.0 <= tolerance < 1.0:
            raise DefinitionError(
                f"Tolerance for rule '{key}' must be in [0, 1), got {tolerance}."
            )
        object.__setattr__(self, "tolerance", tolerance)

        object.__setattr__(self, "metrics", _to_key_tuple(self.metrics))
        if not self.name:
            object.__setattr__(self, "name", key)


def _to_key_tuple(raw: Any) -> tuple[str, ...]:
    """Normalize an involved-metrics value into a tuple of identifiers.

    Accepts a comma-separated string, any iterable of strings, or None.
    """
    if raw is None:
        return ()
    items: Iterable[Any]
    if isinstance(raw, str):
        items = raw.split(",")
    else:
        items = raw
    return tuple(str(item).strip() for item in items if str(item).strip())


@dataclass(frozen=True)
class Issue:
    """
    A single validation finding.

    ``expected`` / ``actual`` / ``variance`` are None when the rule family
    does not produce them (e.g. existence checks).
    """

    rule_id: str
    rule_name: str
    severity: Severity
    message: str
    expected: Optional[float] = None
    actual: Optional[float] = None
    variance: Optional[float] = None
    metrics: tuple[str, ...] = ()
    sections: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Return a flat dictionary, suitable for tabular export."""
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity.value,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
            "variance": self.variance,
            "metrics": ", ".join(self.metrics),
            "sections": ", ".join(self.sections),
        }


def section_map(metric_definitions: Iterable[MetricDefinition]) -> dict[str, str]:
    """Build a metric -> section lookup, skipping metrics without a section."""
    return {m.key: m.section for m in metric_definitions if m.section}


def sections_for(
    metrics: Iterable[str], sections: Optional[Mapping[str, str]]
) -> tuple[str, ...]:
    """Return the distinct sections of ``metrics``, in first-seen order."""
    if not sections:
        return ()
    out: list[str] = []
    for key in metrics:
        section = sections.get(key)
        if section and section not in out:
            out.append(section)
    return tuple(out)
