#!/usr/bin/env python3
"""
Daily forecast submission script.

Fits the per-site air-to-water temperature regression, propagates the
NOAA GEFS ensemble through it, and writes the challenge forecast file.

Usage:
    python run_forecast.py --reference-date 2024-05-01
    python run_forecast.py --submit
"""

import argparse
import sys

import config
from ecoforecast.exceptions import ForecastError
from ecoforecast.logging_config import setup_logging, get_logger
from ecoforecast.workflow import run_forecast_workflow

logger = get_logger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate an ensemble regression forecast for the challenge")
    parser.add_argument("--reference-date", dest="reference_date", default=None,
                        help="Forecast issue date (YYYY-MM-DD); defaults to today (UTC)")
    parser.add_argument("--model-id", dest="model_id", default=config.MODEL_ID)
    parser.add_argument("--output-dir", dest="output_dir", default=config.FORECAST_OUTPUT_DIR)
    parser.add_argument("--site", dest="sites", action="append", default=None,
                        help="Restrict to a site id (repeatable)")
    parser.add_argument("--n-jobs", dest="n_jobs", type=int, default=None,
                        help="Parallel site workers (joblib); default from config")
    parser.add_argument("--submit", action="store_true", help="Upload the forecast file after writing it")
    parser.add_argument("--plot", action="store_true", help="Save per-site HTML forecast plots")
    parser.add_argument("--log-level", dest="log_level", default="INFO")
    parser.add_argument("--log-file", dest="log_file", action="store_true", help="Also log to config.LOG_DIR")
    args = parser.parse_args(argv)

    setup_logging(log_level=args.log_level, enable_file_logging=args.log_file)

    try:
        result = run_forecast_workflow(
            reference_date=args.reference_date,
            sites=args.sites,
            model_id=args.model_id,
            output_dir=args.output_dir,
            n_jobs=args.n_jobs,
            submit=args.submit,
            plot=args.plot,
        )
    except ForecastError as exc:
        logger.error("Forecast not produced: %s", exc)
        return 1

    print(f"Forecast written to {result.forecast_path}")
    print(f"Sites forecast: {len(result.run.succeeded_sites)}, omitted: {len(result.run.failures)}")
    for failure in result.run.failures:
        print(f"  {failure.site_id}: {failure.error} ({failure.reason})")
    if result.submitted:
        print("Forecast submitted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
