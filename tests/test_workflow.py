import os

import pandas as pd
import pytest

import run_forecast
from ecoforecast import data_sources, workflow
from ecoforecast.exceptions import SchemaMismatchError


class _DummyConn:
    closed = False

    def close(self):
        self.closed = True


def _targets():
    return pd.DataFrame({
        "site_id": ["A", "A", "A", "B", "C"],
        "datetime": pd.to_datetime(["2024-02-01", "2024-02-02", "2024-02-03", "2024-02-01", "2024-02-01"]),
        "variable": ["temperature"] * 4 + ["oxygen"],
        "observation": [5.0, 6.0, 7.0, 4.0, 9.0],
    })


def _driver_history(sites, conn=None):
    rows = []
    for site in sites:
        for day, celsius in [("2024-02-01", 10.0), ("2024-02-02", 12.0), ("2024-02-03", 14.0)]:
            for hour in ["00:00", "12:00"]:
                rows.append({
                    "site_id": site,
                    "datetime": pd.Timestamp(f"{day} {hour}", tz="UTC"),
                    "parameter": 0,
                    "variable": "air_temperature",
                    "prediction": celsius + 273.15,
                })
    return pd.DataFrame(rows)


def _driver_forecast(sites, reference_date, conn=None):
    rows = []
    for site in sites:
        for day in ["2024-02-29", "2024-03-01", "2024-03-02", "2024-03-03"]:
            for member, celsius in [(1, 16.0), (2, 18.0)]:
                rows.append({
                    "site_id": site,
                    "datetime": pd.Timestamp(day, tz="UTC"),
                    "parameter": member,
                    "variable": "air_temperature",
                    "prediction": celsius + 273.15,
                })
    return pd.DataFrame(rows)


@pytest.fixture
def stub_sources(monkeypatch):
    conn = _DummyConn()
    monkeypatch.setattr(data_sources, "load_targets", lambda: _targets())
    monkeypatch.setattr(
        data_sources, "load_site_metadata", lambda: pd.DataFrame({"site_id": ["A", "B", "C"]})
    )
    monkeypatch.setattr(data_sources, "connect_driver_store", lambda: conn)
    monkeypatch.setattr(data_sources, "load_driver_history", _driver_history)
    monkeypatch.setattr(data_sources, "load_driver_forecast", _driver_forecast)
    return conn


def test_workflow_writes_forecast_for_successful_sites(stub_sources, tmp_path):
    result = workflow.run_forecast_workflow(
        reference_date="2024-03-01", model_id="testmodel", output_dir=str(tmp_path)
    )

    assert stub_sources.closed
    assert result.run.succeeded_sites == ["A"]
    assert result.run.failed_sites == ["B"]
    assert os.path.basename(result.forecast_path) == "aquatics-2024-03-01-testmodel.csv"

    written = pd.read_csv(result.forecast_path)
    assert len(written) == 4
    assert set(written["site_id"]) == {"A"}
    assert written["datetime"].tolist() == ["2024-03-02", "2024-03-02", "2024-03-03", "2024-03-03"]
    assert written["prediction"].tolist() == pytest.approx([8.0, 9.0, 8.0, 9.0], abs=1e-6)

    manifest = pd.read_csv(tmp_path / "aquatics-2024-03-01-testmodel-omitted-sites.csv")
    assert manifest["site_id"].tolist() == ["B"]
    assert manifest["error"].tolist() == ["InsufficientDataError"]
    assert result.submitted is False


def test_workflow_raises_when_no_site_succeeds(stub_sources, tmp_path):
    with pytest.raises(SchemaMismatchError):
        workflow.run_forecast_workflow(
            reference_date="2024-03-01", sites=["B"], output_dir=str(tmp_path)
        )


def test_cli_reports_failure_exit_code(monkeypatch):
    def failing_workflow(**kwargs):
        raise SchemaMismatchError("no site produced a forecast")

    monkeypatch.setattr(run_forecast, "run_forecast_workflow", failing_workflow)
    assert run_forecast.main(["--reference-date", "2024-03-01", "--log-level", "WARNING"]) == 1
