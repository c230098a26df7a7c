# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Evaluation order for calculated metrics.

Calculated metrics may reference other calculated metrics. This module
computes an order in which no metric is evaluated before the calculated
metrics it references. Input metrics are leaves and take no part in the
ordering.

The order is produced by repeatedly selecting the first metric (in
definition order) whose dependencies have all been processed. Metrics with
no ordering constraint between them therefore keep their definition order,
which makes runs reproducible.

When no metric can be selected while some remain, the remaining metrics
form (or depend on) a cycle. They are reported as circular instead of
failing the run.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from .definitions import MetricDefinition
from .formulas import CustomFunctions, as_registry, formula_references

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """
    Result of dependency resolution.

    Attributes:
        order: Calculated metric keys in a safe evaluation order.
        circular: Keys that could not be ordered (cycle members and metrics
            depending on them), in definition order.
    """

    order: list[str] = field(default_factory=list)
    circular: list[str] = field(default_factory=list)


def build_dependency_graph(
    definitions: Iterable[MetricDefinition],
    custom_functions: Optional[CustomFunctions] = None,
) -> dict[str, tuple[str, ...]]:
    """
    Map each calculated metric to the calculated metrics it references.

    Keys follow definition order. A metric referencing itself keeps that
    edge, so it is reported as circular.
    """
    registry = as_registry(custom_functions)
    calculated = [d for d in definitions if d.is_calculated]
    calculated_keys = {d.key for d in calculated}

    graph: dict[str, tuple[str, ...]] = {}
    for d in calculated:
        refs = formula_references(d.formula or "", registry)
        graph[d.key] = tuple(r for r in refs if r in calculated_keys)
    return graph


def resolve_order(
    definitions: Iterable[MetricDefinition],
    custom_functions: Optional[CustomFunctions] = None,
) -> Resolution:
    """Compute a safe evaluation order for all calculated metrics."""
    graph = build_dependency_graph(definitions, custom_functions)

    pending = list(graph)
    done: set[str] = set()
    order: list[str] = []

    while pending:
        ready = next(
            (key for key in pending if all(dep in done for dep in graph[key])),
            None,
        )
        if ready is None:
            logger.warning(
                "Circular dependency between calculated metrics: %s",
                ", ".join(pending),
            )
            return Resolution(order=order, circular=pending)
        pending.remove(ready)
        done.add(ready)
        order.append(ready)

    return Resolution(order=order, circular=[])
