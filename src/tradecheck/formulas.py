# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Formula evaluation for calculated metrics.

Calculated metrics are defined with a small colon-delimited grammar:

    OP:ARG1[:ARG2[:ARG3]]

Each argument is either a numeric literal, the reserved identifier
``period_days`` (the length of the reporting period), or a metric
identifier looked up in the ValueStore.

Supported operations
--------------------
    DIVIDE:a:b              a / b
    MULTIPLY:a:b            a * b
    SUBTRACT:a:b            a - b
    ADD:a:b                 a + b
    PERCENTAGE:a:b          (a / b) * 100
    PER_DAY:a               a / period_days
    PER_VEHICLE:a:b         a / b
    CAPACITY:e[:h[:d]]      e * h * d   (h defaults to 8, d to period_days)
    CUSTOM:name             registered host function

Absent arguments make the whole operation undetermined: the evaluator
returns an absent Evaluation, never an exception and never zero. Division
by zero is undetermined as well.

Malformed formulas and unregistered custom functions are configuration
errors. ``parse_formula`` raises FormulaError for them; ``evaluate_formula``
returns a failed Evaluation so that callers iterating over many metrics are
never interrupted.
"""

import logging
import math
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .errors import FormulaError
from .values import Evaluation, ValueStore

logger = logging.getLogger(__name__)

# Reserved argument token resolving to the reporting period length.
PERIOD_DAYS_KEY = "period_days"

DEFAULT_HOURS_PER_DAY = 8.0


class FormulaOp(str, Enum):
    DIVIDE = "DIVIDE"
    MULTIPLY = "MULTIPLY"
    SUBTRACT = "SUBTRACT"
    ADD = "ADD"
    PERCENTAGE = "PERCENTAGE"
    PER_DAY = "PER_DAY"
    PER_VEHICLE = "PER_VEHICLE"
    CAPACITY = "CAPACITY"
    CUSTOM = "CUSTOM"


# (min, max) number of arguments accepted by each operation.
_ARITY: dict[FormulaOp, tuple[int, int]] = {
    FormulaOp.DIVIDE: (2, 2),
    FormulaOp.MULTIPLY: (2, 2),
    FormulaOp.SUBTRACT: (2, 2),
    FormulaOp.ADD: (2, 2),
    FormulaOp.PERCENTAGE: (2, 2),
    FormulaOp.PER_DAY: (1, 1),
    FormulaOp.PER_VEHICLE: (2, 2),
    FormulaOp.CAPACITY: (1, 3),
    FormulaOp.CUSTOM: (1, 1),
}


@dataclass(frozen=True)
class ParsedFormula:
    """A formula split into its operation and raw argument tokens."""

    op: FormulaOp
    args: tuple[str, ...]


# ---------------------------------------------------------------------------
# Custom functions
# ---------------------------------------------------------------------------

CustomCallable = Callable[[ValueStore, int], Optional[float]]


@dataclass(frozen=True)
class CustomFunction:
    """
    A host routine reachable through ``CUSTOM:<name>``.

    ``requires`` lists the metric identifiers the routine reads. It is used
    for dependency ordering and for reporting the first missing identifier
    when the routine returns no value.
    """

    name: str
    func: CustomCallable
    requires: tuple[str, ...] = ()


class CustomFunctionRegistry(Mapping[str, CustomFunction]):
    """Name -> CustomFunction table supplied by the host."""

    def __init__(self) -> None:
        self._functions: dict[str, CustomFunction] = {}

    def register(
        self,
        name: str,
        func: Optional[CustomCallable] = None,
        *,
        requires: tuple[str, ...] = (),
    ) -> Callable:
        """Register ``func`` under ``name``.

        Can be used directly, ``registry.register("x", fn)``, or as a
        decorator, ``@registry.register("x", requires=("a",))``.
        """

        def _add(f: CustomCallable) -> CustomCallable:
            self._functions[name] = CustomFunction(
                name=name, func=f, requires=tuple(requires)
            )
            return f

        if func is not None:
            return _add(func)
        return _add

    def __getitem__(self, name: str) -> CustomFunction:
        return self._functions[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)


CustomFunctions = Union[
    CustomFunctionRegistry, Mapping[str, Union[CustomFunction, CustomCallable]]
]


def _schedule_capacity(store: ValueStore, period_days: int) -> Optional[float]:
    """Available technician hours: technicians x hours/day x period days."""
    techs = store.get("num_techs")
    if techs is None or period_days <= 0:
        return None
    hours = store.get("hours_per_day")
    if hours is None:
        hours = DEFAULT_HOURS_PER_DAY
    return techs * hours * period_days


def default_custom_functions() -> CustomFunctionRegistry:
    """Return a registry with the built-in custom functions."""
    registry = CustomFunctionRegistry()
    registry.register("schedule_capacity", _schedule_capacity, requires=("num_techs",))
    return registry


def as_registry(custom_functions: Optional[CustomFunctions]) -> CustomFunctionRegistry:
    """Normalize the host-supplied table into a CustomFunctionRegistry.

    None selects the built-in registry. Plain callables are wrapped with an
    empty ``requires`` list.
    """
    if custom_functions is None:
        return default_custom_functions()
    if isinstance(custom_functions, CustomFunctionRegistry):
        return custom_functions

    registry = CustomFunctionRegistry()
    for name, entry in custom_functions.items():
        if isinstance(entry, CustomFunction):
            registry.register(name, entry.func, requires=entry.requires)
        else:
            registry.register(name, entry)
    return registry


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_number(token: str) -> Optional[float]:
    """Return the float value of a numeric literal token, else None."""
    try:
        value = float(token)
    except ValueError:
        return None
    # 'nan' / 'inf' are identifiers, not literals.
    return value if math.isfinite(value) else None


def parse_formula(text: str) -> ParsedFormula:
    """
    Parse a colon-delimited formula.

    Raises:
        FormulaError: if the formula is empty, names an unknown operation,
            has an empty argument or the wrong number of arguments.
    """
    if text is None or not str(text).strip():
        raise FormulaError("Empty formula.")

    tokens = [t.strip() for t in str(text).split(":")]
    op_name = tokens[0].upper()
    try:
        op = FormulaOp(op_name)
    except ValueError as exc:
        raise FormulaError(f"Unknown operation {tokens[0]!r} in {text!r}.") from exc

    args = tuple(tokens[1:])
    if any(not a for a in args):
        raise FormulaError(f"Empty argument in formula {text!r}.")

    low, high = _ARITY[op]
    if not low <= len(args) <= high:
        expected = str(low) if low == high else f"{low} to {high}"
        raise FormulaError(
            f"{op.value} expects {expected} argument(s), got {len(args)} in {text!r}."
        )
    return ParsedFormula(op=op, args=args)


def formula_references(
    text: str, custom_functions: Optional[CustomFunctions] = None
) -> tuple[str, ...]:
    """
    Return the identifiers referenced by a formula, in argument order.

    Numeric literals and ``period_days`` are not references. For CUSTOM
    formulas the registered function's ``requires`` list is returned.
    Unparseable formulas reference nothing.
    """
    try:
        parsed = parse_formula(text)
    except FormulaError:
        return ()

    if parsed.op is FormulaOp.CUSTOM:
        registry = as_registry(custom_functions)
        entry = registry.get(parsed.args[0])
        return tuple(entry.requires) if entry else ()

    refs: list[str] = []
    for token in parsed.args:
        if token == PERIOD_DAYS_KEY or parse_number(token) is not None:
            continue
        if token not in refs:
            refs.append(token)
    return tuple(refs)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class _Missing(Exception):
    """Internal signal: an argument resolved to absent."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key


def _resolve(token: str, store: ValueStore, period_days: int) -> float:
    literal = parse_number(token)
    if literal is not None:
        return literal
    if token == PERIOD_DAYS_KEY:
        return float(period_days)
    value = store.get(token)
    if value is None:
        raise _Missing(token)
    return value


def _divide(a: float, b: float) -> Evaluation:
    if b == 0:
        return Evaluation.absent(reason="division by zero")
    return Evaluation.present(a / b)


def _eval_binary(op: FormulaOp, a: float, b: float) -> Evaluation:
    if op in (FormulaOp.DIVIDE, FormulaOp.PER_VEHICLE):
        return _divide(a, b)
    if op is FormulaOp.PERCENTAGE:
        return _divide(a * 100.0, b)
    if op is FormulaOp.MULTIPLY:
        return Evaluation.present(a * b)
    if op is FormulaOp.SUBTRACT:
        return Evaluation.present(a - b)
    if op is FormulaOp.ADD:
        return Evaluation.present(a + b)
    raise FormulaError(f"{op.value} is not a binary operation.")


def _eval_custom(
    name: str, store: ValueStore, period_days: int, registry: CustomFunctionRegistry
) -> Evaluation:
    entry = registry.get(name)
    if entry is None:
        return Evaluation.failed(f"unregistered custom function '{name}'")

    try:
        result = entry.func(store, period_days)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Custom function '%s' raised: %s", name, exc)
        return Evaluation.failed(f"custom function '{name}' failed: {exc}")

    if result is None:
        for key in entry.requires:
            if store.get(key) is None:
                return Evaluation.absent(missing=key)
        return Evaluation.absent(reason=f"custom function '{name}' returned no value")
    try:
        return Evaluation.present(float(result))
    except OverflowError:
        return Evaluation.absent(reason=f"custom function '{name}' overflowed")
    except (TypeError, ValueError):
        return Evaluation.failed(
            f"custom function '{name}' returned a non-numeric value {result!r}"
        )


def evaluate_parsed(
    parsed: ParsedFormula,
    store: ValueStore,
    period_days: int,
    registry: CustomFunctionRegistry,
) -> Evaluation:
    """Evaluate an already parsed formula. Never mutates ``store``."""
    op, args = parsed.op, parsed.args

    if op is FormulaOp.CUSTOM:
        return _eval_custom(args[0], store, period_days, registry)

    try:
        if op is FormulaOp.PER_DAY:
            a = _resolve(args[0], store, period_days)
            if period_days <= 0:
                return Evaluation.absent(reason="period length is not positive")
            return Evaluation.present(a / period_days)

        if op is FormulaOp.CAPACITY:
            employees = _resolve(args[0], store, period_days)
            hours = (
                _resolve(args[1], store, period_days)
                if len(args) > 1
                else DEFAULT_HOURS_PER_DAY
            )
            days = (
                _resolve(args[2], store, period_days)
                if len(args) > 2
                else float(period_days)
            )
            return Evaluation.present(employees * hours * days)

        a = _resolve(args[0], store, period_days)
        b = _resolve(args[1], store, period_days)
    except _Missing as missing:
        return Evaluation.absent(missing=missing.key)

    return _eval_binary(op, a, b)


def evaluate_formula(
    text: str,
    store: ValueStore,
    period_days: int,
    custom_functions: Optional[CustomFunctions] = None,
) -> Evaluation:
    """
    Evaluate a formula against a ValueStore.

    Args:
        text: Formula string (e.g. 'PERCENTAGE:in_home_visits:total_leads').
        store: Current values. Read only.
        period_days: Length of the reporting period in days.
        custom_functions: Registry used for CUSTOM formulas. None selects the
            built-in registry.

    Returns:
        An Evaluation: present number, absent (undetermined) or failed
        (configuration error).
    """
    try:
        parsed = parse_formula(text)
    except FormulaError as exc:
        return Evaluation.failed(str(exc))
    return evaluate_parsed(parsed, store, period_days, as_registry(custom_functions))
