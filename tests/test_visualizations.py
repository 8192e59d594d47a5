import pandas as pd
import pytest

from ecoforecast.visualizations import (
    forecast_summary,
    generate_site_forecast_plot,
    save_forecast_plots,
)


@pytest.fixture
def forecast():
    return pd.DataFrame({
        "site_id": ["A"] * 4,
        "datetime": pd.to_datetime(["2024-02-02", "2024-02-02", "2024-02-03", "2024-02-03"]),
        "parameter": [1, 2, 1, 2],
        "variable": "temperature",
        "prediction": [8.0, 9.0, 10.0, 12.0],
    })


def test_forecast_summary_mean_and_band(forecast):
    summary = forecast_summary(forecast)
    assert summary["mean"].tolist() == [8.5, 11.0]
    assert summary["n_members"].tolist() == [2, 2]
    assert (summary["lower"] <= summary["mean"]).all()
    assert (summary["upper"] >= summary["mean"]).all()


def test_site_plot_has_observed_members_and_mean(forecast):
    observations = pd.DataFrame({
        "site_id": ["A", "A"],
        "datetime": pd.to_datetime(["2024-01-30", "2024-01-31"]),
        "variable": ["temperature", "temperature"],
        "observation": [7.0, 7.5],
    })
    fig = generate_site_forecast_plot(forecast, "A", observations=observations)
    names = [trace.name for trace in fig.data]
    assert names == ["Observed", "Ensemble members", "Ensemble members", "Ensemble mean"]


def test_site_plot_unknown_site(forecast):
    with pytest.raises(ValueError):
        generate_site_forecast_plot(forecast, "Z")


def test_save_forecast_plots(forecast, tmp_path):
    paths = save_forecast_plots(forecast, str(tmp_path))
    assert [p.endswith("A.html") for p in paths] == [True]
