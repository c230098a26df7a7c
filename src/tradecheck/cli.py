# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for TradeCheck.

The CLI is intentionally thin: it does not implement any calculation or
validation logic itself. It wires together:

- the configuration pack (settings, metric and rule definitions),
- the raw inputs of one reporting period (CSV),
- the KPI calculator and the validation runner,
- the view helpers (tabular rendering and CSV export).


High-level pipeline
-------------------

1) Load the configuration pack (``--config``, or the default pack shipped
   with the package) using ``load_pack()``.

2) Optionally report configuration problems (``--scope check``) and stop.

3) Read raw inputs from CSV (``--inputs``).

4) Calculate every calculated metric for the period (``--period-days``
   overrides ``settings.period_days``).

5) Run all active validation rules against the resolved values.

6) Render metrics and/or issues as console tables and/or CSV files
   depending on ``--scope`` and ``--display-mode``.


Exit status
-----------
0 when validation is valid or has warnings only, 1 when at least one
error-severity issue was raised (or configuration problems were found with
``--scope check``), 2 on invalid arguments or unreadable files.


Usage examples
--------------

    python -m tradecheck.cli --inputs data/inputs.csv
    python -m tradecheck.cli --config my_pack.toml --inputs q3.csv --period-days 90
    python -m tradecheck.cli --inputs q3.csv --scope validation --display-mode csv
    python -m tradecheck.cli --config my_pack.toml --scope check
"""

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from . import __version__
from .calculator import calculate
from .config import load_pack
from .definitions import section_map
from .integrity import check_configuration
from .io import read_inputs
from .validation import Status, validate_all
from .views import issues_to_dataframe, values_to_dataframe

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m tradecheck.cli",
        description=(
            "TradeCheck - KPI calculation & consistency checks for trade "
            "businesses. Reads the raw inputs of one reporting period, "
            "calculates derived KPIs and validates the whole value set."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of tradecheck and exit.",
    )

    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to a configuration pack (TOML). "
            "If omitted, the default pack shipped with tradecheck is used."
        ),
    )

    ap.add_argument(
        "--inputs",
        dest="inputs_path",
        metavar="CSV_PATH",
        help="CSV file with the raw inputs of the period (columns: metric, value).",
    )

    ap.add_argument(
        "--period-days",
        dest="period_days",
        type=int,
        help="Override the period length (in days) defined in the pack settings.",
    )

    ap.add_argument(
        "--scope",
        choices=["metrics", "validation", "all", "check"],
        default="all",
        help=(
            "Select what to render: "
            "'metrics' = calculated metrics only; "
            "'validation' = validation issues only; "
            "'all' = metrics and issues; "
            "'check' = configuration problems of the pack (no inputs needed)."
        ),
    )

    ap.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=["table", "csv", "both"],
        default="table",
        help=(
            "'table' prints results to stdout, "
            "'csv' writes CSV files only, "
            "'both' does both."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_dir",
        help=(
            "Output directory where CSV files will be written when display "
            "mode includes 'csv'. If omitted, 'data/output' is used."
        ),
    )

    ap.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return ap


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the TradeCheck CLI. Returns the process exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"tradecheck version {__version__}")
        return 0

    _configure_logging(args.verbose)

    # 1) Load the configuration pack
    try:
        pack = load_pack(args.config_path)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))

    # 2) Configuration check only
    if args.scope == "check":
        problems = check_configuration(pack.metrics, pack.rules)
        if not problems:
            print(f"No configuration problems found in {pack.source}.")
            return 0
        print(f"{len(problems)} configuration problem(s) in {pack.source}:")
        for problem in problems:
            print(f"  - {problem.subject}: {problem.message}")
        return 1

    # 3) Raw inputs
    if not args.inputs_path:
        parser.error("--inputs is required unless --scope check or --version is used.")
    inputs_path = Path(args.inputs_path)
    if not inputs_path.is_file():
        parser.error(f"Inputs CSV file not found: {inputs_path}")
    try:
        raw_inputs = read_inputs(inputs_path)
    except ValueError as exc:
        parser.error(str(exc))

    period_days = pack.settings.period_days
    if args.period_days is not None:
        period_days = args.period_days
    if period_days <= 0:
        parser.error("--period-days must be a positive integer.")

    # 4) Calculation
    calculation = calculate(raw_inputs, pack.metrics, period_days)
    for key in calculation.missing_required:
        logger.warning("Required input '%s' is missing.", key)

    # 5) Validation
    validation = validate_all(
        calculation.values, pack.rules, section_map(pack.metrics)
    )

    want_metrics = args.scope in {"metrics", "all"}
    want_issues = args.scope in {"validation", "all"}

    metrics_df = None
    if want_metrics:
        metrics_df = values_to_dataframe(calculation, pack.metrics)
    issues_df = issues_to_dataframe(validation.issues) if want_issues else None

    # 6) Render to stdout (table mode).
    if args.display_mode in {"table", "both"}:
        print(f"=== Period: {period_days} days ===")
        if metrics_df is not None:
            print()
            print("=== Metrics ===")
            print(metrics_df.drop(columns=["value"]).to_string(index=False))
        if issues_df is not None:
            print()
            print("=== Validation ===")
            counts = validation.counts()
            print(
                f"Status: {validation.status.value} | "
                f"errors: {counts['error']} | warnings: {counts['warning']} | "
                f"info: {counts['info']}"
            )
            if not issues_df.empty:
                columns = ["severity", "rule_id", "message"]
                print(issues_df[columns].to_string(index=False))

    # 7) Render to CSV files (csv mode).
    if args.display_mode in {"csv", "both"}:
        output_dir = Path(args.output_dir) if args.output_dir else Path("data/output")
        output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")

        if metrics_df is not None:
            path = output_dir / f"metrics_{timestamp}.csv"
            metrics_df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(metrics_df)} rows)")

        if issues_df is not None:
            path = output_dir / f"issues_{timestamp}.csv"
            issues_df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(issues_df)} rows)")

    return 1 if validation.status is Status.ERRORS else 0


if __name__ == "__main__":
    raise SystemExit(main())
