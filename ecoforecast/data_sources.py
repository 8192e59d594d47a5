"""
Data Sources
============

Loaders for the challenge target observations, the NEON site list, and
the NOAA GEFS weather drivers, plus the daily aggregation that turns raw
driver output into the tables the regression forecaster consumes:

- historical driver: one daily mean per (site_id, datetime)
- future driver:     one daily mean per (site_id, datetime, parameter)

Remote CSVs are fetched with requests; the parquet driver archives are
queried in place with DuckDB's httpfs extension.
"""

from __future__ import annotations

import io
from typing import Optional

import duckdb
import numpy as np
import pandas as pd
import requests

import config
from .frame_utils import (
    drop_incomplete_rows,
    require_columns,
    to_naive_utc,
    to_naive_utc_timestamp,
)
from .logging_config import get_logger

logger = get_logger(__name__)

TARGET_COLUMNS = ["site_id", "datetime", "variable", "observation"]
DRIVER_COLUMNS = ["site_id", "datetime", "parameter", "variable", "prediction"]


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

def fetch_bytes(url: str, timeout: Optional[float] = None) -> bytes:
    """Download *url* and return the body; HTTP errors propagate."""
    timeout = timeout or config.HTTP_TIMEOUT_SECONDS
    logger.info("Downloading %s", url)
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error("Failed to download %s: %s", url, e)
        raise
    logger.debug("Downloaded %.2f MB from %s", len(response.content) / (1024 * 1024), url)
    return response.content


def read_remote_csv(url: str, timeout: Optional[float] = None) -> pd.DataFrame:
    content = fetch_bytes(url, timeout=timeout)
    compression = "gzip" if url.endswith(".gz") else None
    return pd.read_csv(io.BytesIO(content), compression=compression)


# ---------------------------------------------------------------------------
# Targets and sites
# ---------------------------------------------------------------------------

def load_targets(url: Optional[str] = None, timeout: Optional[float] = None) -> pd.DataFrame:
    """
    Load the challenge targets table.

    Returns: DataFrame with columns [site_id, datetime, variable, observation]
    """
    raw = read_remote_csv(url or config.TARGETS_URL, timeout=timeout)
    return clean_targets(raw)


def clean_targets(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Normalise a targets table to daily, unique (site_id, datetime, variable) rows.
    """
    require_columns(raw, TARGET_COLUMNS, "targets")
    targets = raw[TARGET_COLUMNS].copy()
    targets["datetime"] = to_naive_utc(targets["datetime"]).dt.normalize()
    targets["observation"] = pd.to_numeric(targets["observation"], errors="coerce")
    targets = drop_incomplete_rows(targets, TARGET_COLUMNS, "targets")

    key = ["site_id", "datetime", "variable"]
    n_duplicates = int(targets.duplicated(subset=key).sum())
    if n_duplicates:
        logger.warning("Averaging %d duplicate target observations", n_duplicates)
        targets = targets.groupby(key, as_index=False)["observation"].mean()

    targets = targets.sort_values(key).reset_index(drop=True)
    logger.info(
        "Targets loaded: %d observations, %d sites, variables %s",
        len(targets),
        targets["site_id"].nunique(),
        sorted(targets["variable"].unique()),
    )
    return targets


def load_site_metadata(
    url: Optional[str] = None,
    theme_column: Optional[str] = None,
    timeout: Optional[float] = None,
) -> pd.DataFrame:
    """
    Load NEON site metadata and keep the sites that belong to the theme.

    Returns: DataFrame with ``site_id`` plus latitude/longitude when available
    """
    raw = read_remote_csv(url or config.SITE_METADATA_URL, timeout=timeout)
    return filter_theme_sites(raw, theme_column)


def filter_theme_sites(raw: pd.DataFrame, theme_column: Optional[str] = None) -> pd.DataFrame:
    theme_column = theme_column or config.SITE_METADATA_THEME_COLUMN
    require_columns(raw, ["field_site_id", theme_column], "site metadata")

    in_theme = pd.to_numeric(raw[theme_column], errors="coerce") == 1
    sites = raw.loc[in_theme].rename(
        columns={
            "field_site_id": "site_id",
            "field_latitude": "latitude",
            "field_longitude": "longitude",
        }
    )
    keep = [col for col in ["site_id", "latitude", "longitude"] if col in sites.columns]
    sites = sites[keep].drop_duplicates(subset="site_id").reset_index(drop=True)
    logger.info("%d sites flagged for %s", len(sites), theme_column)
    return sites


def select_sites(targets: pd.DataFrame, site_metadata: pd.DataFrame, variable: Optional[str] = None) -> list:
    """
    Sites in the metadata list that have at least one observation of *variable*.

    Metadata order is preserved.
    """
    variable = variable or config.TARGET_VARIABLE
    observed = set(targets.loc[targets["variable"] == variable, "site_id"])
    sites = [site for site in site_metadata["site_id"] if site in observed]
    n_unobserved = len(site_metadata) - len(sites)
    if n_unobserved:
        logger.info("%d metadata sites have no %s observations", n_unobserved, variable)
    return sites


# ---------------------------------------------------------------------------
# NOAA GEFS drivers
# ---------------------------------------------------------------------------

def connect_driver_store() -> duckdb.DuckDBPyConnection:
    """In-memory DuckDB connection able to read the public driver bucket."""
    conn = duckdb.connect(database=":memory:")
    conn.execute("INSTALL httpfs")
    conn.execute("LOAD httpfs")
    conn.execute(f"SET s3_endpoint='{config.S3_ENDPOINT}'")
    conn.execute(f"SET s3_url_style='{config.S3_URL_STYLE}'")
    return conn


def _query_drivers(path, sites, variable, start=None, conn=None) -> pd.DataFrame:
    own_conn = conn is None
    conn = conn or connect_driver_store()
    sql = (
        "SELECT site_id, datetime, parameter, variable, prediction "
        "FROM read_parquet(?, hive_partitioning = true) "
        "WHERE variable = ? AND list_contains(?, site_id)"
    )
    params = [path, variable, list(sites)]
    if start is not None:
        sql += " AND datetime >= ?"
        params.append(to_naive_utc_timestamp(start).to_pydatetime())
    try:
        return conn.execute(sql, params).fetchdf()
    finally:
        if own_conn:
            conn.close()


def load_driver_history(
    sites,
    variable: Optional[str] = None,
    start_date=None,
    conn=None,
) -> pd.DataFrame:
    """
    Historical (stage 3) driver series for *sites*, hourly, all members.
    """
    variable = variable or config.DRIVER_VARIABLE
    start_date = start_date or config.HISTORY_START_DATE
    logger.info("Loading historical %s for %d sites from %s", variable, len(sites), start_date)
    df = _query_drivers(config.NOAA_STAGE3_PATH, sites, variable, start=start_date, conn=conn)
    logger.info("Historical driver rows loaded: %d", len(df))
    return df


def load_driver_forecast(
    sites,
    reference_date,
    variable: Optional[str] = None,
    conn=None,
) -> pd.DataFrame:
    """
    Ensemble (stage 2) driver forecast issued on the day before *reference_date*.
    """
    variable = variable or config.DRIVER_VARIABLE
    driver_date = (
        to_naive_utc_timestamp(reference_date).normalize()
        - pd.Timedelta(days=config.DRIVER_LAG_DAYS)
    )
    path = config.NOAA_STAGE2_PATH.format(reference_date=driver_date.strftime("%Y-%m-%d"))
    logger.info("Loading %s ensemble issued %s for %d sites", variable, driver_date.date(), len(sites))
    df = _query_drivers(path, sites, variable, conn=conn)
    logger.info("Future driver rows loaded: %d", len(df))
    return df


def _to_driver_units(values: pd.Series, variable: str) -> pd.Series:
    if variable in config.KELVIN_VARIABLES:
        return values - config.KELVIN_OFFSET
    return values


def _daily_driver(df: pd.DataFrame, keys: list, variable: str, label: str) -> pd.DataFrame:
    require_columns(df, ["site_id", "datetime", "prediction"] + [k for k in keys if k != "datetime"], label)
    daily = df
    if "variable" in daily.columns:
        daily = daily[daily["variable"] == variable]
    daily = daily.assign(
        datetime=to_naive_utc(daily["datetime"]).dt.normalize(),
        prediction=pd.to_numeric(daily["prediction"], errors="coerce"),
    )
    daily = drop_incomplete_rows(daily, keys, label)
    daily = (
        daily.groupby(keys, as_index=False, sort=True)["prediction"]
        .mean()
        .rename(columns={"prediction": "driver_value"})
    )
    daily["driver_value"] = _to_driver_units(daily["driver_value"], variable)
    return daily


def aggregate_driver_history(df: pd.DataFrame, variable: Optional[str] = None) -> pd.DataFrame:
    """
    Daily mean of the historical driver over all hours and members.

    Returns: DataFrame with columns [site_id, datetime, driver_value]
    """
    variable = variable or config.DRIVER_VARIABLE
    return _daily_driver(df, ["site_id", "datetime"], variable, "driver history")


def aggregate_driver_forecast(
    df: pd.DataFrame,
    reference_datetime,
    horizon_days: Optional[int] = None,
    n_members: Optional[int] = None,
    variable: Optional[str] = None,
) -> pd.DataFrame:
    """
    Daily mean of each driver ensemble member over the forecast horizon.

    Only days strictly after the reference date and no more than
    *horizon_days* after it are kept; at most *n_members* members
    (lowest ids first) are retained.

    Returns: DataFrame with columns [site_id, datetime, parameter, driver_value]
    """
    variable = variable or config.DRIVER_VARIABLE
    horizon_days = horizon_days or config.FORECAST_HORIZON_DAYS
    n_members = n_members or config.N_ENSEMBLE_MEMBERS

    daily = _daily_driver(df, ["site_id", "datetime", "parameter"], variable, "driver forecast")

    reference = to_naive_utc_timestamp(reference_datetime).normalize()
    last_day = reference + pd.Timedelta(days=horizon_days)
    in_horizon = (daily["datetime"] > reference) & (daily["datetime"] <= last_day)
    daily = daily[in_horizon]

    members = np.sort(daily["parameter"].unique())
    if len(members) > n_members:
        logger.info("Keeping %d of %d ensemble members", n_members, len(members))
        daily = daily[daily["parameter"].isin(members[:n_members])]
    elif len(members) < n_members:
        logger.warning("Driver ensemble has %d members; expected %d", len(members), n_members)

    daily = daily.sort_values(["site_id", "datetime", "parameter"]).reset_index(drop=True)
    logger.info(
        "Driver forecast: %d rows, %d days after %s",
        len(daily),
        daily["datetime"].nunique(),
        reference.date(),
    )
    return daily


def build_historical_pairs(
    targets: pd.DataFrame,
    driver_history: pd.DataFrame,
    variable: Optional[str] = None,
) -> pd.DataFrame:
    """
    Pair each target observation with the same day's driver mean.

    Days with only one side present are dropped by the inner join.

    Returns: DataFrame with columns [site_id, datetime, driver_value, observation]
    """
    variable = variable or config.TARGET_VARIABLE
    require_columns(targets, TARGET_COLUMNS, "targets")
    require_columns(driver_history, ["site_id", "datetime", "driver_value"], "driver history")

    observed = targets.loc[targets["variable"] == variable, ["site_id", "datetime", "observation"]]
    observed = observed.assign(datetime=to_naive_utc(observed["datetime"]).dt.normalize())
    drivers = driver_history[["site_id", "datetime", "driver_value"]]
    drivers = drivers.assign(datetime=to_naive_utc(drivers["datetime"]).dt.normalize())

    pairs = observed.merge(drivers, on=["site_id", "datetime"], how="inner")
    pairs = pairs[["site_id", "datetime", "driver_value", "observation"]]
    pairs = pairs.sort_values(["site_id", "datetime"]).reset_index(drop=True)
    logger.info("Paired %d %s observations with driver days", len(pairs), variable)
    return pairs
