# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Rule evaluation for TradeCheck.

Validation rules use the same colon syntax as metric formulas, with
rule-specific operations:

    RECONCILE:expr:target     expr (arithmetic over identifiers) ~= target
    RANGE:kpi:min:max         min <= kpi <= max (empty bound = unbounded)
    GREATER:a:b               a > b
    EQUALS:a:b                a ~= b
    REQUIRES:dependent:parent if dependent is reported, parent must be too

``~=`` is the tolerance law shared by RECONCILE and EQUALS:

    |actual - expected| / max(|actual|, |expected|, EPSILON) <= tolerance

with a TOLERANCE_SLACK allowance so that float rounding at the boundary
still passes.

A rule whose inputs are absent is undetermined and raises no issue: absent
data is a completeness concern, not a consistency failure. Unknown
identifiers are treated as absent.

REQUIRES is an existence check only. It never compares the magnitude of the
dependent and parent values; plausibility checks belong to RANGE and
GREATER rules.

``run_validation`` never raises. A malformed rule produces a synthetic
error-severity Issue so that one bad definition cannot abort a run.
"""

import ast
import logging
import math
import operator
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .definitions import Issue, RuleDefinition, Severity, sections_for
from .errors import RuleError
from .formulas import parse_number
from .values import ValueStore

logger = logging.getLogger(__name__)

EPSILON = 1e-9
# Absolute slack on the tolerance comparison, absorbs float rounding.
TOLERANCE_SLACK = 1e-12


class RuleOp(str, Enum):
    RECONCILE = "RECONCILE"
    RANGE = "RANGE"
    GREATER = "GREATER"
    EQUALS = "EQUALS"
    REQUIRES = "REQUIRES"


_ARITY: dict[RuleOp, int] = {
    RuleOp.RECONCILE: 2,
    RuleOp.RANGE: 3,
    RuleOp.GREATER: 2,
    RuleOp.EQUALS: 2,
    RuleOp.REQUIRES: 2,
}

_DEFAULT_MESSAGES: dict[RuleOp, str] = {
    RuleOp.RECONCILE: (
        "{name}: {expression} gives {actual} but {target} is {expected} "
        "(variance {variance}, tolerance {tolerance})."
    ),
    RuleOp.RANGE: "{name}: {metric} is {actual}, outside the range [{min}, {max}].",
    RuleOp.GREATER: (
        "{name}: {left} ({actual}) should be greater than {right} ({expected})."
    ),
    RuleOp.EQUALS: (
        "{name}: {left} ({actual}) does not match {right} ({expected}) "
        "(variance {variance}, tolerance {tolerance})."
    ),
    RuleOp.REQUIRES: "{name}: {dependent} is reported but {parent} is missing.",
}


@dataclass(frozen=True)
class ParsedRule:
    op: RuleOp
    args: tuple[str, ...]


# ---------------------------------------------------------------------------
# Arithmetic sub-expressions (RECONCILE)
# ---------------------------------------------------------------------------

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


_STRUCTURAL_NODES = (ast.Expression, ast.Name, ast.Load, ast.BinOp, ast.UnaryOp)


class _Undetermined(Exception):
    """Internal signal: an operand is absent or a divisor is zero."""


def _parse_expression(expr: str) -> ast.Expression:
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError as exc:
        raise RuleError(f"Invalid expression syntax: {expr!r}") from exc

    for node in ast.walk(tree):
        if isinstance(node, _STRUCTURAL_NODES):
            continue
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise RuleError(f"Unsupported constant {node.value!r} in {expr!r}.")
            try:
                finite = math.isfinite(float(node.value))
            except OverflowError:
                finite = False
            if not finite:
                raise RuleError(f"Constant out of range in {expr!r}.")
            continue
        if type(node) in _BINARY_OPERATORS or type(node) in _UNARY_OPERATORS:
            continue
        raise RuleError(
            f"Unsupported construct {type(node).__name__} in expression {expr!r}."
        )
    return tree


def expression_names(expr: str) -> tuple[str, ...]:
    """Identifiers used by an arithmetic expression, in source order."""
    tree = _parse_expression(expr)
    nodes = [n for n in ast.walk(tree) if isinstance(n, ast.Name)]
    names: list[str] = []
    for node in sorted(nodes, key=lambda n: n.col_offset):
        if node.id not in names:
            names.append(node.id)
    return tuple(names)


def evaluate_expression(expr: str, store: ValueStore) -> Optional[float]:
    """
    Evaluate an arithmetic expression against the store.

    Supported: numeric literals, identifiers, ``+ - * /``, unary minus and
    parentheses.

    Returns:
        The value, or None when an identifier is absent, a divisor is zero
        or the result is not finite.

    Raises:
        RuleError: if the expression uses unsupported constructs.
    """
    tree = _parse_expression(expr)

    def _eval(node: ast.AST) -> float:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant):
            return float(node.value)
        if isinstance(node, ast.Name):
            value = store.get(node.id)
            if value is None:
                raise _Undetermined(node.id)
            return value
        if isinstance(node, ast.BinOp):
            left = _eval(node.left)
            right = _eval(node.right)
            if isinstance(node.op, ast.Div) and right == 0:
                raise _Undetermined("division by zero")
            return float(_BINARY_OPERATORS[type(node.op)](left, right))
        if isinstance(node, ast.UnaryOp):
            return float(_UNARY_OPERATORS[type(node.op)](_eval(node.operand)))
        raise RuleError(f"Unsupported expression node: {type(node).__name__}")

    try:
        result = _eval(tree)
    except _Undetermined:
        return None
    return result if math.isfinite(result) else None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_rule(text: str) -> ParsedRule:
    """
    Parse a rule formula.

    Raises:
        RuleError: on an empty formula, unknown operation, wrong argument
            count, or an empty required argument.
    """
    if text is None or not str(text).strip():
        raise RuleError("Empty rule formula.")

    tokens = [t.strip() for t in str(text).split(":")]
    try:
        op = RuleOp(tokens[0].upper())
    except ValueError as exc:
        raise RuleError(f"Unknown rule operation {tokens[0]!r} in {text!r}.") from exc

    args = tuple(tokens[1:])
    if len(args) != _ARITY[op]:
        raise RuleError(
            f"{op.value} expects {_ARITY[op]} argument(s), got {len(args)} in {text!r}."
        )

    # RANGE bounds may be empty (unbounded); every other argument is required.
    required = args[:1] if op is RuleOp.RANGE else args
    if any(not a for a in required):
        raise RuleError(f"Empty argument in rule {text!r}.")

    if op is RuleOp.RECONCILE:
        _parse_expression(args[0])
    return ParsedRule(op=op, args=args)


def rule_references(text: str) -> tuple[str, ...]:
    """Identifiers referenced by a rule formula. Unparseable rules give ()."""
    try:
        parsed = parse_rule(text)
    except RuleError:
        return ()

    if parsed.op is RuleOp.RECONCILE:
        tokens = list(expression_names(parsed.args[0])) + [parsed.args[1]]
    else:
        tokens = list(parsed.args)

    refs: list[str] = []
    for token in tokens:
        if not token or parse_number(token) is not None:
            continue
        if token not in refs:
            refs.append(token)
    return tuple(refs)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def relative_variance(actual: float, expected: float) -> float:
    """Relative difference between two values, scaled by the larger one."""
    return abs(actual - expected) / max(abs(actual), abs(expected), EPSILON)


def within_tolerance(actual: float, expected: float, tolerance: float) -> bool:
    """Tolerance law for RECONCILE and EQUALS. Equality at the boundary passes."""
    return relative_variance(actual, expected) <= tolerance + TOLERANCE_SLACK


@dataclass(frozen=True)
class _Outcome:
    """
    Result of checking one rule. ``passed`` is None when undetermined.
    """

    passed: Optional[bool]
    expected: Optional[float] = None
    actual: Optional[float] = None
    variance: Optional[float] = None
    context: dict[str, Any] = field(default_factory=dict)


_UNDETERMINED = _Outcome(passed=None)


def _operand(token: str, store: ValueStore) -> Optional[float]:
    literal = parse_number(token)
    if literal is not None:
        return literal
    return store.get(token)


def _check_tolerance(
    actual: Optional[float],
    expected: Optional[float],
    tolerance: float,
    context: dict[str, Any],
) -> _Outcome:
    if actual is None or expected is None:
        return _UNDETERMINED
    return _Outcome(
        passed=within_tolerance(actual, expected, tolerance),
        expected=expected,
        actual=actual,
        variance=relative_variance(actual, expected),
        context=context,
    )


def _check_reconcile(
    parsed: ParsedRule, store: ValueStore, tolerance: float
) -> _Outcome:
    expr, target = parsed.args
    computed = evaluate_expression(expr, store)
    context = {"expression": expr, "target": target}
    return _check_tolerance(computed, _operand(target, store), tolerance, context)


def _check_equals(parsed: ParsedRule, store: ValueStore, tolerance: float) -> _Outcome:
    left, right = parsed.args
    context = {"left": left, "right": right}
    return _check_tolerance(
        _operand(left, store), _operand(right, store), tolerance, context
    )


def _check_range(parsed: ParsedRule, store: ValueStore) -> _Outcome:
    metric, low_token, high_token = parsed.args
    value = _operand(metric, store)
    if value is None:
        return _UNDETERMINED

    low = _operand(low_token, store) if low_token else None
    high = _operand(high_token, store) if high_token else None
    # A bound naming an absent metric makes the rule undetermined.
    if (low_token and low is None) or (high_token and high is None):
        return _UNDETERMINED

    context = {"metric": metric, "min": low, "max": high}
    if low is not None and value < low:
        return _Outcome(passed=False, expected=low, actual=value, context=context)
    if high is not None and value > high:
        return _Outcome(passed=False, expected=high, actual=value, context=context)
    return _Outcome(passed=True, actual=value, context=context)


def _check_greater(parsed: ParsedRule, store: ValueStore) -> _Outcome:
    left, right = parsed.args
    a = _operand(left, store)
    b = _operand(right, store)
    if a is None or b is None:
        return _UNDETERMINED
    return _Outcome(
        passed=a > b,
        expected=b,
        actual=a,
        context={"left": left, "right": right},
    )


def _check_requires(parsed: ParsedRule, store: ValueStore) -> _Outcome:
    dependent, parent = parsed.args
    value = _operand(dependent, store)
    context = {"dependent": dependent, "parent": parent}
    if value is None:
        return _Outcome(passed=True, context=context)
    return _Outcome(
        passed=_operand(parent, store) is not None,
        actual=value,
        context=context,
    )


def check_rule(parsed: ParsedRule, store: ValueStore, tolerance: float) -> _Outcome:
    """Dispatch a parsed rule to its handler."""
    if parsed.op is RuleOp.RECONCILE:
        return _check_reconcile(parsed, store, tolerance)
    if parsed.op is RuleOp.EQUALS:
        return _check_equals(parsed, store, tolerance)
    if parsed.op is RuleOp.RANGE:
        return _check_range(parsed, store)
    if parsed.op is RuleOp.GREATER:
        return _check_greater(parsed, store)
    return _check_requires(parsed, store)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def format_number(value: Optional[float]) -> str:
    """Short display of a number for messages ('n/a' when absent)."""
    if value is None:
        return "n/a"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _format_percent(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value * 100:.1f}%"


def render_message(
    template: str,
    rule: RuleDefinition,
    outcome: _Outcome,
    store: ValueStore,
    references: tuple[str, ...] = (),
) -> str:
    """
    Render a rule message template.

    Available placeholders: ``{rule}``, ``{name}``, ``{expected}``,
    ``{actual}``, ``{variance}``, ``{tolerance}``, every referenced metric
    identifier, and the operation context (``{min}``, ``{max}``,
    ``{left}``, ``{right}``, ``{dependent}``, ``{parent}``, ``{metric}``,
    ``{expression}``, ``{target}``). Unknown placeholders are kept verbatim.
    """
    values = _Placeholders()
    for key in references:
        values[key] = format_number(store.get(key))
    for key, raw in outcome.context.items():
        if raw is None or isinstance(raw, float):
            raw = format_number(raw)
        values[key] = raw
    values.update(
        rule=rule.key,
        name=rule.name,
        expected=format_number(outcome.expected),
        actual=format_number(outcome.actual),
        variance=_format_percent(outcome.variance),
        tolerance=_format_percent(rule.tolerance),
    )
    try:
        return template.format_map(values)
    except (ValueError, IndexError, AttributeError, TypeError):
        logger.debug("Could not render message template for rule '%s'.", rule.key)
        return template


def _error_issue(
    rule: RuleDefinition, detail: str, sections: Optional[Mapping[str, str]]
) -> Issue:
    return Issue(
        rule_id=rule.key,
        rule_name=rule.name,
        severity=Severity.ERROR,
        message=f"Could not evaluate rule {rule.key}: {detail}",
        metrics=rule.metrics,
        sections=sections_for(rule.metrics, sections),
    )


def run_validation(
    rule: RuleDefinition,
    store: ValueStore,
    sections: Optional[Mapping[str, str]] = None,
) -> Optional[Issue]:
    """
    Evaluate one rule against the store.

    Args:
        rule: Rule definition.
        store: Resolved values. Read only.
        sections: Optional metric -> section lookup used to fill
            ``Issue.sections``.

    Returns:
        An Issue when the rule fails or cannot be evaluated, None when it
        passes or is undetermined.
    """
    try:
        parsed = parse_rule(rule.formula)
        outcome = check_rule(parsed, store, rule.tolerance)
    except RuleError as exc:
        logger.warning("Rule '%s' could not be evaluated: %s", rule.key, exc)
        return _error_issue(rule, str(exc), sections)

    if outcome.passed is None:
        logger.debug("Rule '%s' is undetermined (missing data).", rule.key)
        return None
    if outcome.passed:
        return None

    references = rule_references(rule.formula)
    metrics = rule.metrics or references
    template = rule.message or _DEFAULT_MESSAGES[parsed.op]
    return Issue(
        rule_id=rule.key,
        rule_name=rule.name,
        severity=rule.severity,
        message=render_message(template, rule, outcome, store, references),
        expected=outcome.expected,
        actual=outcome.actual,
        variance=outcome.variance,
        metrics=metrics,
        sections=sections_for(metrics, sections),
    )
