"""
End-to-end forecast workflow: download targets and drivers, fit the
per-site regressions, build the ensemble forecast, and write (and
optionally submit) the challenge file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import pandas as pd

import config
from . import data_sources
from .exceptions import SchemaMismatchError
from .logging_config import get_logger
from .regression_forecaster import EnsembleRegressionForecaster, ForecastRun
from .submission import (
    forecast_filename,
    submit_forecast,
    to_submission_frame,
    validate_forecast,
    write_forecast,
)

logger = get_logger(__name__)


@dataclass
class WorkflowResult:
    run: ForecastRun
    submission: pd.DataFrame
    forecast_path: Optional[str] = None
    submitted: bool = False


def prepare_inputs(reference_date, sites=None, targets=None, driver_conn=None):
    """
    Download and shape everything the forecaster needs.

    Returns ``(sites, targets, historical_pairs, driver_forecast)``.
    """
    reference = pd.Timestamp(reference_date).normalize()

    if targets is None:
        targets = data_sources.load_targets()
    if sites is None:
        site_metadata = data_sources.load_site_metadata()
        sites = data_sources.select_sites(targets, site_metadata, config.TARGET_VARIABLE)
    logger.info("Forecasting %d sites for %s", len(sites), reference.date())

    own_conn = driver_conn is None
    conn = driver_conn or data_sources.connect_driver_store()
    try:
        history_raw = data_sources.load_driver_history(sites, conn=conn)
        forecast_raw = data_sources.load_driver_forecast(sites, reference, conn=conn)
    finally:
        if own_conn:
            conn.close()

    driver_history = data_sources.aggregate_driver_history(history_raw)
    historical_pairs = data_sources.build_historical_pairs(targets, driver_history)
    driver_forecast = data_sources.aggregate_driver_forecast(forecast_raw, reference)

    return sites, targets, historical_pairs, driver_forecast


def run_forecast_workflow(
    reference_date=None,
    sites=None,
    model_id=None,
    output_dir=None,
    n_jobs=None,
    submit=False,
    plot=False,
):
    """
    Produce the forecast file for *reference_date* (default: today, UTC).

    Sites that cannot be forecast are logged and omitted; the file is
    still written for the rest.  Raises SchemaMismatchError when no site
    succeeds or the result does not pass validation.
    """
    if reference_date is None:
        reference_date = pd.Timestamp.now(tz="UTC").tz_localize(None)
    reference = pd.Timestamp(reference_date).normalize()
    model_id = model_id or config.MODEL_ID
    output_dir = output_dir or config.FORECAST_OUTPUT_DIR

    sites, targets, historical_pairs, driver_forecast = prepare_inputs(reference, sites=sites)

    forecaster = EnsembleRegressionForecaster(n_jobs=n_jobs)
    run = forecaster.run_all_sites(
        sites, historical_pairs, driver_forecast, reference_datetime=reference
    )
    if run.forecast.empty:
        raise SchemaMismatchError(
            f"no site produced a forecast; failures: {run.failed_sites}"
        )

    submission = to_submission_frame(run.forecast, reference, model_id=model_id)
    validate_forecast(submission)

    filename = forecast_filename(config.THEME, reference, model_id)
    path = write_forecast(submission, output_dir, filename)

    if run.failures:
        manifest_path = os.path.splitext(path)[0] + "-omitted-sites.csv"
        run.failure_manifest().to_csv(manifest_path, index=False)
        logger.warning(
            "%d sites omitted from %s; see %s", len(run.failures), filename, manifest_path
        )

    if plot:
        from .visualizations import save_forecast_plots

        save_forecast_plots(run.forecast, os.path.join(output_dir, "plots"), observations=targets)

    result = WorkflowResult(run=run, submission=submission, forecast_path=path)
    if submit:
        submit_forecast(path)
        result.submitted = True
    return result
