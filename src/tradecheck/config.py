# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for TradeCheck.

This module is responsible for:
- loading a configuration pack (metrics, rules and settings) from a TOML
  file,
- turning its tables into the typed definitions used by the calculator and
  the validation engine,
- locating the default pack shipped with the package.

Pack layout
-----------
    [settings]
    period_days = 30
    default_tolerance = 0.10

    [metrics.total_leads]
    kind = "input"
    unit = "count"
    required = true
    section = "marketing"

    [metrics.booking_rate]
    kind = "calculated"
    unit = "percentage"
    formula = "PERCENTAGE:in_home_visits:total_leads"

    [rules.booking_rate_reconciles]
    kind = "reconciliation"
    formula = "RECONCILE:total_leads*reported_booking_rate/100:in_home_visits"
    tolerance = 0.10
    severity = "error"
    message = "Reported booking rate does not match visits ({variance})."
    metrics = "total_leads, reported_booking_rate, in_home_visits"

Definitions keep the order in which tables appear in the file.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .definitions import MetricDefinition, RuleDefinition
from .errors import DefinitionError

DEFAULT_PERIOD_DAYS = 30
DEFAULT_TOLERANCE = 0.0


@dataclass(frozen=True)
class Settings:
    """Run settings read from the [settings] table."""

    period_days: int = DEFAULT_PERIOD_DAYS
    default_tolerance: float = DEFAULT_TOLERANCE


@dataclass(frozen=True)
class Pack:
    """
    A complete configuration pack.

    Attributes:
        settings: Period length and default tolerance.
        metrics: Metric definitions, in file order.
        rules: Rule definitions, in file order.
        source: Path the pack was loaded from, if any.
    """

    settings: Settings
    metrics: tuple[MetricDefinition, ...]
    rules: tuple[RuleDefinition, ...]
    source: Optional[Path] = None


def default_pack_path() -> Path:
    """Path of the pack shipped with the package."""
    return Path(__file__).resolve().parent / "packs" / "trade_default.toml"


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _as_bool(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in ("true", "yes", "1", "y"):
        return True
    if text in ("false", "no", "0", "n", ""):
        return False
    raise ValueError(f"Invalid boolean value {raw!r}.")


def _parse_settings(raw: Mapping[str, Any]) -> Settings:
    section = raw.get("settings") or {}
    if not isinstance(section, Mapping):
        raise ValueError("[settings] must be a table.")

    try:
        period_days = int(section.get("period_days", DEFAULT_PERIOD_DAYS))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'settings.period_days'. Expected an integer."
        ) from exc
    if period_days <= 0:
        raise ValueError("'settings.period_days' must be a positive integer.")

    try:
        default_tolerance = float(section.get("default_tolerance", DEFAULT_TOLERANCE))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'settings.default_tolerance'. Expected a number."
        ) from exc

    return Settings(period_days=period_days, default_tolerance=default_tolerance)


def parse_metrics(section: Mapping[str, Any]) -> tuple[MetricDefinition, ...]:
    """
    Build metric definitions from a ``{key -> table}`` mapping.

    Raises:
        ValueError: if an entry is not a table or is invalid.
    """
    metrics: list[MetricDefinition] = []
    for key, cfg in section.items():
        if not isinstance(cfg, Mapping):
            raise ValueError(f"[metrics.{key}] must be a table.")
        default_kind = "calculated" if cfg.get("formula") else "input"
        try:
            metrics.append(
                MetricDefinition(
                    key=str(key),
                    kind=cfg.get("kind", default_kind),
                    unit=cfg.get("unit", "plain"),
                    formula=cfg.get("formula"),
                    required=_as_bool(cfg.get("required"), False),
                    label=str(cfg.get("label") or ""),
                    section=str(cfg.get("section") or ""),
                    notes=str(cfg.get("notes") or ""),
                )
            )
        except (DefinitionError, ValueError) as exc:
            raise ValueError(
                f"Invalid metric definition [metrics.{key}]: {exc}"
            ) from exc
    return tuple(metrics)


def parse_rules(
    section: Mapping[str, Any], default_tolerance: float = DEFAULT_TOLERANCE
) -> tuple[RuleDefinition, ...]:
    """
    Build rule definitions from a ``{key -> table}`` mapping.

    Rules without an explicit tolerance use ``default_tolerance``.

    Raises:
        ValueError: if an entry is not a table or is invalid.
    """
    rules: list[RuleDefinition] = []
    for key, cfg in section.items():
        if not isinstance(cfg, Mapping):
            raise ValueError(f"[rules.{key}] must be a table.")
        try:
            rules.append(
                RuleDefinition(
                    key=str(key),
                    kind=cfg.get("kind", ""),
                    formula=str(cfg.get("formula") or ""),
                    tolerance=cfg.get("tolerance", default_tolerance),
                    severity=cfg.get("severity", "warning"),
                    message=str(cfg.get("message") or ""),
                    metrics=cfg.get("metrics"),
                    name=str(cfg.get("name") or ""),
                    active=_as_bool(cfg.get("active"), True),
                )
            )
        except (DefinitionError, ValueError) as exc:
            raise ValueError(f"Invalid rule definition [rules.{key}]: {exc}") from exc
    return tuple(rules)


def load_pack(path: Union[str, Path, None] = None) -> Pack:
    """
    Load a configuration pack from a TOML file.

    Parameters
    ----------
    path :
        Path to the pack. If omitted, the default pack shipped with the
        package is used.

    Returns
    -------
    Pack
        Parsed settings, metric definitions and rule definitions.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file cannot be parsed or contains an invalid definition.
    """
    pack_file = default_pack_path() if path is None else Path(path).resolve()
    raw = _load_toml(pack_file)

    settings = _parse_settings(raw)

    metrics_section = raw.get("metrics") or {}
    if not isinstance(metrics_section, Mapping):
        raise ValueError("[metrics] must be a table.")

    rules_section = raw.get("rules") or {}
    if not isinstance(rules_section, Mapping):
        raise ValueError("[rules] must be a table.")

    return Pack(
        settings=settings,
        metrics=parse_metrics(metrics_section),
        rules=parse_rules(rules_section, settings.default_tolerance),
        source=pack_file,
    )
