"""
Table Utilities
===============

Shared helpers for column checks, row cleaning, and timestamp
normalisation.  Used by the data loaders, the regression forecaster and
the submission formatter so every stage applies the same rules.
"""

from __future__ import annotations

from typing import Iterable

import pandas as pd

from .exceptions import SchemaMismatchError
from .logging_config import get_logger

logger = get_logger(__name__)


def require_columns(df: pd.DataFrame, columns: Iterable[str], label: str) -> None:
    """
    Raise SchemaMismatchError when any of *columns* is absent from *df*.
    """
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise SchemaMismatchError(
            f"{label} table is missing required columns: {missing}",
            missing_columns=missing,
        )


def drop_incomplete_rows(df: pd.DataFrame, columns: list[str], label: str) -> pd.DataFrame:
    """
    Drop rows with a missing value in any of *columns*, logging the count.

    The frame must already contain *columns* (see ``require_columns``).
    """
    complete = df.dropna(subset=columns)
    n_dropped = len(df) - len(complete)
    if n_dropped:
        logger.warning(
            "Dropped %d of %d %s rows missing one of %s",
            n_dropped,
            len(df),
            label,
            columns,
        )
    return complete


def to_naive_utc(values) -> pd.Series:
    """
    Parse a column of datetimes and express it as timezone-naive UTC.
    """
    parsed = pd.to_datetime(values, errors="coerce", utc=True)
    if isinstance(parsed, pd.Series):
        return parsed.dt.tz_localize(None)
    return pd.Series(parsed.tz_localize(None))


def to_naive_utc_timestamp(value) -> pd.Timestamp:
    """Single-value counterpart of ``to_naive_utc``."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts
