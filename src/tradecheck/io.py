# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for TradeCheck.

This module reads the raw inputs of one reporting period from a CSV file
and normalizes them into a ``{metric -> value}`` mapping suitable for
``calculator.calculate``.

Expected input format
---------------------
Column names are case-insensitive:

    metric, value

- ``metric``: metric identifier (``key`` and ``id`` are accepted aliases),
- ``value``:  numeric value; an empty cell means the metric was not
  reported (absent). Commas are only accepted as thousands separators
  (``1,250.50``); a decimal comma such as ``1,5`` is rejected.

Any other columns present in the input file are ignored.

If the CSV structure does not match, or a value is not numeric, a clear
ValueError is raised.
"""

import os
from typing import Optional, Union

import pandas as pd

_METRIC_ALIASES = ("metric", "key", "id")

# Commas are accepted as thousands separators only ("1,250.50", not "1,5").
_THOUSANDS_PATTERN = r"^[+-]?\d{1,3}(?:,\d{3})+(?:\.\d*)?$"


def read_inputs(path: Union[str, "os.PathLike[str]"]) -> dict[str, Optional[float]]:
    """
    Read raw metric inputs from a CSV file.

    Parameters
    ----------
    path:
        Path to the CSV file.

    Returns
    -------
    dict[str, Optional[float]]
        Mapping metric identifier -> value, in file order. Empty cells are
        returned as None (absent).

    Raises
    ------
    ValueError
        If the metric/value columns are missing, a metric is repeated, or a
        value is not numeric.
    """
    # Read everything as text so that identifiers and blanks stay untouched.
    df = pd.read_csv(path, dtype=str, keep_default_na=False)

    df.columns = [c.lower().strip() for c in df.columns]
    cols = set(df.columns)

    metric_col = next((c for c in _METRIC_ALIASES if c in cols), None)
    if metric_col is None or "value" not in cols:
        raise ValueError(
            "Invalid inputs structure. Expected columns: metric, value "
            "(column names are case-insensitive; 'key' and 'id' are accepted "
            "as aliases for 'metric')."
        )

    d = df[[metric_col, "value"]].copy()
    d[metric_col] = d[metric_col].astype(str).str.strip()
    d = d[d[metric_col] != ""]

    duplicated = d[metric_col][d[metric_col].duplicated()].unique().tolist()
    if duplicated:
        raise ValueError(f"Duplicate metrics in inputs: {', '.join(duplicated)}.")

    text = d["value"].astype(str).str.strip()
    bad_commas = text.str.contains(",", regex=False) & ~text.str.match(
        _THOUSANDS_PATTERN
    )
    raw = text.str.replace(",", "", regex=False)
    numeric = pd.to_numeric(raw.where(raw != ""), errors="coerce")

    invalid = d[metric_col][(numeric.isna() & (raw != "")) | bad_commas].tolist()
    if invalid:
        raise ValueError(f"Invalid numeric values for: {', '.join(invalid)}.")

    return {
        metric: (None if pd.isna(value) else float(value))
        for metric, value in zip(d[metric_col], numeric)
    }
