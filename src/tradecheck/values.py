# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Value store and evaluation outcomes.

A ValueStore maps metric identifiers to an optional float. ``None`` means
"absent": either never reported, or a calculation that could not run. A
reported ``0.0`` is a present value and is never confused with absent.

Evaluation is the tri-state outcome of evaluating one formula:
present number, absent (with the first missing identifier when known), or
configuration error.
"""

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from .errors import ValueStoreError


def to_value(raw: Any) -> Optional[float]:
    """Convert a raw input into a finite float, or None when absent.

    None, empty strings, NaN and infinities are absent. Booleans are
    rejected as absent as well since they are never meaningful metric values.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


class ValueStore:
    """Mapping identifier -> optional float for a single analysis run."""

    def __init__(self, values: Optional[Mapping[str, Optional[float]]] = None):
        self._values: dict[str, Optional[float]] = dict(values or {})

    @classmethod
    def seed(cls, raw_inputs: Optional[Mapping[str, Any]]) -> "ValueStore":
        """Build a store from raw inputs, normalizing every value."""
        store = cls()
        for key, raw in (raw_inputs or {}).items():
            store._values[str(key).strip()] = to_value(raw)
        return store

    def get(self, key: str) -> Optional[float]:
        """Return the value of ``key``; unknown identifiers are absent."""
        return self._values.get(key)

    def is_present(self, key: str) -> bool:
        return self._values.get(key) is not None

    def set(self, key: str, value: Optional[float]) -> None:
        """Write ``key`` once. A second write for the same run is a bug."""
        if key in self._values:
            raise ValueStoreError(f"Value for '{key}' was already written.")
        self._values[key] = value

    def keys(self) -> list[str]:
        return list(self._values)

    def as_dict(self) -> dict[str, Optional[float]]:
        return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValueStore):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"ValueStore({self._values!r})"


@dataclass(frozen=True)
class Evaluation:
    """
    Outcome of evaluating one formula.

    Attributes
    ----------
    value :
        The computed number, or None when undetermined.
    missing :
        First absent identifier that prevented the computation, if any.
    reason :
        Human-readable reason for an undetermined outcome that is not a
        missing identifier (e.g. 'division by zero').
    error :
        Configuration error message. Set only for malformed formulas or
        unregistered custom functions.
    """

    value: Optional[float] = None
    missing: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_present(self) -> bool:
        return self.value is not None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def present(cls, value: float) -> "Evaluation":
        # Overflow to inf/nan is treated as undetermined rather than stored.
        if not math.isfinite(value):
            return cls(reason="non-finite result")
        return cls(value=float(value))

    @classmethod
    def absent(
        cls, missing: Optional[str] = None, reason: Optional[str] = None
    ) -> "Evaluation":
        return cls(missing=missing, reason=reason)

    @classmethod
    def failed(cls, message: str) -> "Evaluation":
        return cls(error=message)
