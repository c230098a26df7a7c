# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
KPI calculator for TradeCheck.

The calculator turns the raw inputs of one reporting period into a fully
resolved ValueStore:

1. Seed a fresh ValueStore with the raw inputs. Identifiers not provided
   are absent.
2. Order the calculated metrics with the dependency resolver.
3. Evaluate each calculated metric with the formula evaluator, storing the
   number when one is produced and an absent value otherwise.
4. Record a diagnostic for every calculated metric left absent:

   - "missing <id>"            : first missing dependency (inherited from an
                                  upstream calculated metric when that one is
                                  itself missing data),
   - "division by zero"        : a divisor resolved to zero,
   - "circular dependency"     : the metric could not be ordered,
   - "configuration error: ..." : malformed formula or unregistered CUSTOM.

Missing data is the expected common case: ``calculate`` never raises on it,
and configuration errors are localized to the affected metric.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from .definitions import MetricDefinition
from .dependencies import resolve_order
from .errors import FormulaError
from .formulas import CustomFunctions, as_registry, evaluate_parsed, parse_formula
from .values import Evaluation, ValueStore

logger = logging.getLogger(__name__)

CIRCULAR_DEPENDENCY = "circular dependency"
DIVISION_BY_ZERO = "division by zero"
CONFIGURATION_ERROR_PREFIX = "configuration error: "


@dataclass(frozen=True)
class CalculationResult:
    """
    Output of a calculation run.

    Attributes:
        values: Resolved ValueStore (inputs + calculated metrics).
        diagnostics: Calculated metric key -> reason it is absent.
        configuration_errors: Calculated metric key -> configuration defect.
            Every entry also appears in ``diagnostics``.
        missing_required: Required input metrics absent from the inputs.
    """

    values: ValueStore
    diagnostics: dict[str, str] = field(default_factory=dict)
    configuration_errors: dict[str, str] = field(default_factory=dict)
    missing_required: tuple[str, ...] = ()


def _missing_diagnostic(missing: str, diagnostics: Mapping[str, str]) -> str:
    upstream = diagnostics.get(missing)
    if upstream and upstream.startswith("missing "):
        return upstream
    return f"missing {missing}"


def _diagnose(evaluation: Evaluation, diagnostics: Mapping[str, str]) -> str:
    if evaluation.missing:
        return _missing_diagnostic(evaluation.missing, diagnostics)
    return evaluation.reason or "undetermined"


def _unique_definitions(
    metric_definitions: Iterable[MetricDefinition],
) -> list[MetricDefinition]:
    """Drop repeated keys, keeping the first definition."""
    seen: set[str] = set()
    out: list[MetricDefinition] = []
    for d in metric_definitions:
        if d.key in seen:
            logger.warning("Duplicate metric definition '%s' ignored.", d.key)
            continue
        seen.add(d.key)
        out.append(d)
    return out


def calculate(
    raw_inputs: Optional[Mapping[str, Any]],
    metric_definitions: Iterable[MetricDefinition],
    period_days: int,
    custom_functions: Optional[CustomFunctions] = None,
) -> CalculationResult:
    """
    Resolve every calculated metric for one reporting period.

    Args:
        raw_inputs: Mapping identifier -> number or None. Not mutated.
        metric_definitions: Input and calculated metric definitions.
        period_days: Length of the reporting period in days.
        custom_functions: Host registry for CUSTOM formulas (None selects the
            built-in registry).

    Returns:
        A CalculationResult with the resolved values and diagnostics.
    """
    definitions = _unique_definitions(metric_definitions)
    registry = as_registry(custom_functions)
    by_key = {d.key: d for d in definitions}

    # Calculated keys are owned by the calculator; raw values for them are
    # ignored so that each identifier is written once.
    seed: dict[str, Any] = {}
    for key, raw in (raw_inputs or {}).items():
        d = by_key.get(str(key).strip())
        if d is not None and d.is_calculated:
            logger.debug("Ignoring raw value supplied for calculated metric '%s'.", key)
            continue
        seed[key] = raw
    values = ValueStore.seed(seed)

    diagnostics: dict[str, str] = {}
    configuration_errors: dict[str, str] = {}

    resolution = resolve_order(definitions, registry)

    for key in resolution.order:
        d = by_key[key]
        try:
            parsed = parse_formula(d.formula or "")
        except FormulaError as exc:
            evaluation = Evaluation.failed(str(exc))
        else:
            evaluation = evaluate_parsed(parsed, values, period_days, registry)

        if evaluation.is_present:
            values.set(key, evaluation.value)
            logger.debug("%s = %s", key, evaluation.value)
            continue

        values.set(key, None)
        if evaluation.is_error:
            logger.warning("Metric '%s' not calculated: %s", key, evaluation.error)
            configuration_errors[key] = str(evaluation.error)
            diagnostics[key] = CONFIGURATION_ERROR_PREFIX + str(evaluation.error)
        else:
            diagnostics[key] = _diagnose(evaluation, diagnostics)
            logger.debug("%s is undetermined: %s", key, diagnostics[key])

    for key in resolution.circular:
        values.set(key, None)
        diagnostics[key] = CIRCULAR_DEPENDENCY

    missing_required = tuple(
        d.key
        for d in definitions
        if not d.is_calculated and d.required and not values.is_present(d.key)
    )

    return CalculationResult(
        values=values,
        diagnostics=diagnostics,
        configuration_errors=configuration_errors,
        missing_required=missing_required,
    )
