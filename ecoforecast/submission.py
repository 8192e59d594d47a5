"""
Forecast submission: conversion to the challenge's long format, schema
validation, file naming, and upload.
"""

from __future__ import annotations

import os
from typing import Optional

import pandas as pd
import requests

import config
from .exceptions import SchemaMismatchError
from .frame_utils import require_columns, to_naive_utc, to_naive_utc_timestamp
from .logging_config import get_logger

logger = get_logger(__name__)

VALID_FAMILIES = ("ensemble", "normal", "lognormal", "bernoulli", "beta", "uniform", "gamma")


def forecast_filename(theme=None, reference_date=None, model_id=None, extension="csv"):
    """
    Build the ``{theme}-{reference_date}-{model_id}.csv`` submission file name.
    """
    theme = theme or config.THEME
    model_id = model_id or config.MODEL_ID
    if reference_date is None:
        raise ValueError("reference_date is required")
    date_str = to_naive_utc_timestamp(reference_date).strftime("%Y-%m-%d")
    return f"{theme}-{date_str}-{model_id}.{extension}"


def to_submission_frame(
    forecast: pd.DataFrame,
    reference_datetime,
    model_id: Optional[str] = None,
    project_id: Optional[str] = None,
    duration: Optional[str] = None,
) -> pd.DataFrame:
    """
    Convert forecaster output to the submission column contract.

    Every forecast row maps to exactly one submission row; the ensemble
    member id becomes ``parameter`` and ``family`` is ``ensemble``.
    """
    require_columns(forecast, ["site_id", "datetime", "parameter", "variable", "prediction"], "forecast")
    reference = to_naive_utc_timestamp(reference_datetime)

    submission = pd.DataFrame({
        "project_id": project_id or config.PROJECT_ID,
        "model_id": model_id or config.MODEL_ID,
        "datetime": to_naive_utc(forecast["datetime"]).to_numpy(),
        "reference_datetime": reference,
        "duration": duration or config.FORECAST_DURATION,
        "site_id": forecast["site_id"].to_numpy(),
        "family": config.FORECAST_FAMILY,
        "parameter": forecast["parameter"].to_numpy(),
        "variable": forecast["variable"].to_numpy(),
        "prediction": pd.to_numeric(forecast["prediction"], errors="coerce").to_numpy(),
    })
    return submission[config.SUBMISSION_COLUMNS]


def validate_forecast(df: pd.DataFrame) -> bool:
    """
    Check a submission table against the challenge format.

    Raises SchemaMismatchError listing every problem found.
    """
    require_columns(df, config.SUBMISSION_COLUMNS, "submission")

    problems = []
    if df.empty:
        problems.append("forecast has no rows")

    bad_families = sorted(set(df["family"].dropna()) - set(VALID_FAMILIES))
    if bad_families:
        problems.append(f"unknown family values: {bad_families}")

    for col in ["project_id", "model_id", "site_id", "variable", "parameter", "duration"]:
        n_missing = int(df[col].isna().sum())
        if n_missing:
            problems.append(f"{n_missing} rows missing {col}")

    datetimes = to_naive_utc(df["datetime"])
    references = to_naive_utc(df["reference_datetime"])
    if datetimes.isna().any():
        problems.append(f"{int(datetimes.isna().sum())} rows with unparseable datetime")
    if references.isna().any():
        problems.append(f"{int(references.isna().sum())} rows with unparseable reference_datetime")
    not_future = (datetimes <= references).to_numpy() & datetimes.notna().to_numpy() & references.notna().to_numpy()
    if not_future.any():
        problems.append(f"{int(not_future.sum())} rows at or before reference_datetime")

    predictions = pd.to_numeric(df["prediction"], errors="coerce")
    non_numeric = predictions.isna() & df["prediction"].notna()
    if non_numeric.any():
        problems.append(f"{int(non_numeric.sum())} non-numeric predictions")

    key = ["site_id", "datetime", "parameter", "variable"]
    n_duplicates = int(df.assign(datetime=datetimes).duplicated(subset=key).sum())
    if n_duplicates:
        problems.append(f"{n_duplicates} duplicate {key} rows")

    if problems:
        raise SchemaMismatchError(
            "forecast failed validation: " + "; ".join(problems), problems=problems
        )

    n_nan = int(predictions.isna().sum())
    if n_nan:
        logger.warning("Forecast contains %d NaN predictions", n_nan)
    logger.info("Forecast validation passed: %d rows", len(df))
    return True


def write_forecast(df: pd.DataFrame, directory=None, filename=None) -> str:
    """Write a submission table as CSV and return its path."""
    directory = directory or config.FORECAST_OUTPUT_DIR
    if filename is None:
        reference = df["reference_datetime"].iloc[0]
        filename = forecast_filename(reference_date=reference, model_id=df["model_id"].iloc[0])
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename)

    out = df.copy()
    out["datetime"] = to_naive_utc(out["datetime"]).dt.strftime("%Y-%m-%d")
    out["reference_datetime"] = to_naive_utc(out["reference_datetime"]).dt.strftime("%Y-%m-%d")
    out.to_csv(path, index=False)
    logger.info("Wrote %d forecast rows to %s", len(out), path)
    return path


def submit_forecast(path: str, endpoint: Optional[str] = None, timeout: Optional[float] = None) -> requests.Response:
    """
    Validate a forecast file and upload it to the submission endpoint.

    The file name is appended to *endpoint*; HTTP errors propagate.
    """
    endpoint = (endpoint or config.SUBMISSION_URL).rstrip("/")
    timeout = timeout or config.HTTP_TIMEOUT_SECONDS

    validate_forecast(pd.read_csv(path))

    filename = os.path.basename(path)
    url = f"{endpoint}/{filename}"
    logger.info("Submitting %s to %s", filename, url)
    with open(path, "rb") as fh:
        try:
            response = requests.put(
                url, data=fh, headers={"Content-Type": "text/csv"}, timeout=timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Submission of %s failed: %s", filename, e)
            raise
    logger.info("Submission accepted (HTTP %d)", response.status_code)
    return response
