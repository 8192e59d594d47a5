"""
Ecological Forecast Challenge Components
========================================

Per-site driver regression forecasts for the NEON ecological
forecasting challenge:

- EnsembleRegressionForecaster: fits one linear model per site and
  propagates a driver ensemble through it
- data_sources: target, site and NOAA driver loaders
- submission: challenge file format, validation and upload
"""

from .exceptions import (
    ForecastError,
    InsufficientDataError,
    MemberSetMismatchWarning,
    SchemaMismatchError,
)
from .regression_forecaster import (
    EnsembleRegressionForecaster,
    ForecastRun,
    SiteFailure,
    SiteModel,
)

__all__ = [
    'EnsembleRegressionForecaster',
    'ForecastRun',
    'SiteFailure',
    'SiteModel',
    'ForecastError',
    'InsufficientDataError',
    'SchemaMismatchError',
    'MemberSetMismatchWarning',
]
