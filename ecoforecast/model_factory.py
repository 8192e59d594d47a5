"""
Model factory for the per-site driver regressions.
"""

from __future__ import annotations

from typing import Optional

from sklearn.linear_model import LinearRegression

import config


def build_linear_regressor(param_overrides: Optional[dict] = None) -> LinearRegression:
    """
    Build an ordinary least-squares regressor with config defaults.
    """
    base_params = dict(getattr(config, "LINEAR_REGRESSION_PARAMS", {}))
    params = {**base_params, **(param_overrides or {})}
    return LinearRegression(**params)
