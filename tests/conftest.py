import sys
from pathlib import Path

import pandas as pd
import pytest

# Make the repo root importable (config.py and the ecoforecast package) when pytest runs from anywhere
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from ecoforecast.regression_forecaster import EnsembleRegressionForecaster  # noqa: E402


@pytest.fixture
def forecaster():
    return EnsembleRegressionForecaster(target_variable="temperature", n_jobs=1)


@pytest.fixture
def history_frame():
    """Site A lies on observation = 0.5 * driver; site B has a single pair."""
    return pd.DataFrame({
        "site_id": ["A", "A", "A", "B"],
        "datetime": pd.to_datetime(["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-01"]),
        "driver_value": [10.0, 12.0, 14.0, 9.0],
        "observation": [5.0, 6.0, 7.0, 4.0],
    })


@pytest.fixture
def driver_forecast_frame():
    """Two days x two members for sites A and B; member 2 is 2 degrees warmer."""
    rows = []
    for site in ["A", "B"]:
        for day in ["2024-02-02", "2024-02-03"]:
            for member in [1, 2]:
                rows.append({
                    "site_id": site,
                    "datetime": pd.Timestamp(day),
                    "parameter": member,
                    "driver_value": 16.0 + 2.0 * (member - 1),
                })
    return pd.DataFrame(rows)
