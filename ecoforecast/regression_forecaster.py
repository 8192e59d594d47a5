"""
Ensemble Regression Forecaster
==============================

Fits one linear model per site between a weather driver (e.g. daily mean
air temperature) and the target variable (e.g. water temperature), then
pushes every member of a future driver ensemble through that model.

The output is a long-format ensemble forecast: one row per
(site_id, datetime, parameter) where ``parameter`` is the driver
ensemble member.  Models are refit on every run and never cached.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

import config
from .exceptions import ForecastError, InsufficientDataError, MemberSetMismatchWarning
from .frame_utils import (
    drop_incomplete_rows,
    require_columns,
    to_naive_utc,
    to_naive_utc_timestamp,
)
from .logging_config import get_logger
from .model_factory import build_linear_regressor

logger = get_logger(__name__)

HISTORY_COLUMNS = ["site_id", "datetime", "driver_value", "observation"]
DRIVER_FORECAST_COLUMNS = ["site_id", "datetime", "parameter", "driver_value"]
FORECAST_COLUMNS = ["site_id", "datetime", "parameter", "variable", "prediction"]


@dataclass(frozen=True)
class SiteModel:
    site_id: str
    intercept: float
    slope: float
    n_obs: int = 0

    def predict(self, driver_values) -> np.ndarray:
        """Affine map of driver values; NaN drivers give NaN predictions."""
        values = np.asarray(driver_values, dtype=float)
        return self.intercept + self.slope * values


@dataclass
class SiteFailure:
    site_id: str
    error: str
    reason: str


@dataclass
class ForecastRun:
    """Result of ``run_all_sites``: the forecast plus everything left out of it."""

    forecast: pd.DataFrame
    failures: List[SiteFailure] = field(default_factory=list)
    models: Dict[str, SiteModel] = field(default_factory=dict)
    member_mismatches: List[dict] = field(default_factory=list)

    @property
    def succeeded_sites(self) -> List[str]:
        return list(self.models)

    @property
    def failed_sites(self) -> List[str]:
        return [failure.site_id for failure in self.failures]

    def failure_manifest(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(f.site_id, f.error, f.reason) for f in self.failures],
            columns=["site_id", "error", "reason"],
        )


def _as_pairs_frame(historical_pairs) -> pd.DataFrame:
    if isinstance(historical_pairs, pd.DataFrame):
        require_columns(historical_pairs, ["driver_value", "observation"], "historical")
        source = historical_pairs
    else:
        source = pd.DataFrame(list(historical_pairs), columns=["driver_value", "observation"])
    return pd.DataFrame({
        col: pd.to_numeric(source[col], errors="coerce").astype(float).to_numpy()
        for col in ["driver_value", "observation"]
    })


def check_member_sets(driver_forecast_members: pd.DataFrame) -> List[dict]:
    """
    Report datetimes whose ensemble member set differs from the rest of the site.

    Each site's reference set is the union of its members over all
    datetimes; every datetime lacking part of that union is reported.
    """
    mismatches = []
    for site_id, site_rows in driver_forecast_members.groupby("site_id", sort=False):
        member_sets = {
            dt: frozenset(rows["parameter"])
            for dt, rows in site_rows.groupby("datetime", sort=True)
        }
        all_members = frozenset().union(*member_sets.values())
        for dt, members in member_sets.items():
            if members != all_members:
                mismatches.append({
                    "site_id": site_id,
                    "datetime": dt,
                    "missing_members": sorted(all_members - members, key=str),
                    "n_members": len(members),
                })
    return mismatches


class EnsembleRegressionForecaster:
    """
    Per-site linear regression of a target on a driver, applied to a
    multi-member driver forecast.

    Stateless between calls: ``run_all_sites`` refits every site model
    from the tables it is given.
    """

    def __init__(self, target_variable=None, min_training_samples=None, n_jobs=None):
        self.target_variable = target_variable or config.TARGET_VARIABLE
        # OLS needs two distinct rows to define a line
        self.min_training_samples = max(
            2, int(min_training_samples or getattr(config, "MIN_TRAINING_SAMPLES", 2))
        )
        if n_jobs is None:
            n_jobs = config.N_JOBS if getattr(config, "ENABLE_PARALLEL", False) else 1
        self.n_jobs = n_jobs

    # ------------------------------------------------------------------
    # Single-site operations
    # ------------------------------------------------------------------

    def fit_site_model(self, site_id, historical_pairs) -> SiteModel:
        """
        Fit ``observation = intercept + slope * driver_value`` for one site.

        ``historical_pairs`` is a frame with ``driver_value`` and
        ``observation`` columns or a sequence of (driver, target) tuples
        already paired by date.  Rows missing either side are dropped
        first; fewer than ``min_training_samples`` remaining rows raises
        InsufficientDataError.
        """
        pairs = _as_pairs_frame(historical_pairs)
        valid = pairs[np.isfinite(pairs["driver_value"]) & np.isfinite(pairs["observation"])]
        n_valid = len(valid)
        if n_valid < self.min_training_samples:
            raise InsufficientDataError(site_id, n_valid, self.min_training_samples)

        model = build_linear_regressor()
        model.fit(
            valid[["driver_value"]].to_numpy(dtype=float),
            valid["observation"].to_numpy(dtype=float),
        )
        site_model = SiteModel(
            site_id=site_id,
            intercept=float(model.intercept_),
            slope=float(model.coef_[0]),
            n_obs=n_valid,
        )
        logger.debug(
            "Fitted %s: intercept=%.4f slope=%.4f (n=%d, %d rows dropped)",
            site_id,
            site_model.intercept,
            site_model.slope,
            n_valid,
            len(pairs) - n_valid,
        )
        return site_model

    def forecast_site(self, site_model: SiteModel, driver_forecast_members: pd.DataFrame) -> pd.DataFrame:
        """
        Apply a fitted site model to every driver ensemble row of that site.

        Returns one row per input row with columns ``FORECAST_COLUMNS``.
        A missing driver value propagates to a NaN prediction; the row is
        kept so the member set stays intact.
        """
        require_columns(driver_forecast_members, DRIVER_FORECAST_COLUMNS, "driver forecast")
        other_sites = set(driver_forecast_members["site_id"].unique()) - {site_model.site_id}
        if other_sites:
            raise ValueError(
                f"driver rows for {sorted(other_sites, key=str)} passed to model "
                f"for site {site_model.site_id!r}"
            )

        drivers = pd.to_numeric(driver_forecast_members["driver_value"], errors="coerce")
        n_missing = int(drivers.isna().sum())
        if n_missing:
            logger.warning(
                "%s: %d of %d driver values missing; predictions set to NaN",
                site_model.site_id,
                n_missing,
                len(drivers),
            )

        forecast = driver_forecast_members[["site_id", "datetime", "parameter"]].reset_index(drop=True)
        forecast["variable"] = self.target_variable
        forecast["prediction"] = site_model.predict(drivers.to_numpy(dtype=float))
        return forecast[FORECAST_COLUMNS]

    # ------------------------------------------------------------------
    # All sites
    # ------------------------------------------------------------------

    def run_all_sites(
        self,
        sites,
        historical_data: pd.DataFrame,
        driver_forecast_data: pd.DataFrame,
        reference_datetime=None,
        n_jobs: Optional[int] = None,
    ) -> ForecastRun:
        """
        Fit and forecast every site independently.

        A site that fails (too little history, no driver rows, bad data)
        is recorded in ``ForecastRun.failures`` and the remaining sites
        still run.  The combined forecast is ordered by input site order,
        then datetime, then ensemble member.  When ``reference_datetime``
        is given, driver rows at or before it are discarded first.
        """
        require_columns(historical_data, HISTORY_COLUMNS, "historical")
        require_columns(driver_forecast_data, DRIVER_FORECAST_COLUMNS, "driver forecast")

        history = drop_incomplete_rows(historical_data, ["site_id", "datetime"], "historical")
        drivers = drop_incomplete_rows(
            driver_forecast_data, ["site_id", "datetime", "parameter"], "driver forecast"
        )
        if reference_datetime is not None:
            drivers = self._future_rows(drivers, reference_datetime)

        history_by_site = dict(tuple(history.groupby("site_id", sort=False)))
        drivers_by_site = dict(tuple(drivers.groupby("site_id", sort=False)))

        site_ids = list(dict.fromkeys(sites))
        tasks = [
            (
                site_id,
                history_by_site.get(site_id, history.iloc[0:0]),
                drivers_by_site.get(site_id, drivers.iloc[0:0]),
            )
            for site_id in site_ids
        ]

        n_jobs = self.n_jobs if n_jobs is None else n_jobs
        logger.info("Forecasting %d sites (n_jobs=%s)", len(tasks), n_jobs)
        if n_jobs != 1 and len(tasks) > 1:
            outcomes = Parallel(n_jobs=n_jobs)(
                delayed(self._run_site)(*task) for task in tasks
            )
        else:
            outcomes = [
                self._run_site(*task)
                for task in tqdm(tasks, desc="Sites", unit="site", disable=len(tasks) < 2)
            ]

        run = ForecastRun(forecast=pd.DataFrame(columns=FORECAST_COLUMNS))
        frames = []
        for outcome in outcomes:
            run.member_mismatches.extend(outcome["mismatches"])
            if outcome["failure"] is not None:
                run.failures.append(outcome["failure"])
                continue
            run.models[outcome["site_id"]] = outcome["model"]
            frames.append(outcome["forecast"])

        # Workers may be separate processes, so warnings are raised here
        for mismatch in run.member_mismatches:
            warnings.warn(
                f"{mismatch['site_id']} {mismatch['datetime']}: ensemble members "
                f"{mismatch['missing_members']} missing",
                MemberSetMismatchWarning,
                stacklevel=2,
            )

        if frames:
            run.forecast = pd.concat(frames, ignore_index=True)

        logger.info(
            "Forecast complete: %d sites succeeded, %d failed, %d rows",
            len(run.models),
            len(run.failures),
            len(run.forecast),
        )
        for failure in run.failures:
            logger.warning("Site %s omitted (%s): %s", failure.site_id, failure.error, failure.reason)
        return run

    def _run_site(self, site_id, site_history: pd.DataFrame, site_drivers: pd.DataFrame) -> dict:
        outcome = {
            "site_id": site_id,
            "model": None,
            "forecast": None,
            "failure": None,
            "mismatches": [],
        }
        try:
            site_model = self.fit_site_model(site_id, site_history)
            if site_drivers.empty:
                raise InsufficientDataError(
                    site_id, 0, detail=f"site {site_id!r} has no driver ensemble rows"
                )
            outcome["mismatches"] = check_member_sets(site_drivers)
            forecast = self.forecast_site(site_model, site_drivers)
            outcome["forecast"] = forecast.sort_values(
                ["datetime", "parameter"], kind="mergesort"
            ).reset_index(drop=True)
            outcome["model"] = site_model
        except ForecastError as exc:
            outcome["failure"] = SiteFailure(site_id, type(exc).__name__, str(exc))
        except Exception as exc:
            logger.error("Unexpected failure forecasting %s: %s", site_id, exc)
            outcome["failure"] = SiteFailure(site_id, type(exc).__name__, str(exc))
        return outcome

    @staticmethod
    def _future_rows(drivers: pd.DataFrame, reference_datetime) -> pd.DataFrame:
        reference = to_naive_utc_timestamp(reference_datetime)
        is_future = to_naive_utc(drivers["datetime"]) > reference
        n_dropped = int((~is_future).sum())
        if n_dropped:
            logger.info(
                "Dropped %d driver rows at or before reference datetime %s",
                n_dropped,
                reference,
            )
        return drivers[is_future.to_numpy()]
