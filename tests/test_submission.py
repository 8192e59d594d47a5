import os

import pandas as pd
import pytest

import config
from ecoforecast import submission
from ecoforecast.exceptions import SchemaMismatchError


@pytest.fixture
def forecast():
    return pd.DataFrame({
        "site_id": ["A", "A", "A", "A"],
        "datetime": pd.to_datetime(["2024-02-02", "2024-02-02", "2024-02-03", "2024-02-03"]),
        "parameter": [1, 2, 1, 2],
        "variable": "temperature",
        "prediction": [8.0, 9.0, 8.5, float("nan")],
    })


def test_forecast_filename():
    name = submission.forecast_filename("aquatics", "2024-02-01", "air2waterSat")
    assert name == "aquatics-2024-02-01-air2waterSat.csv"


def test_forecast_filename_requires_reference_date():
    with pytest.raises(ValueError):
        submission.forecast_filename("aquatics", None, "m")


def test_to_submission_frame_is_lossless(forecast):
    out = submission.to_submission_frame(forecast, "2024-02-01", model_id="m", project_id="p")

    assert list(out.columns) == config.SUBMISSION_COLUMNS
    assert len(out) == len(forecast)
    assert (out["family"] == "ensemble").all()
    assert (out["reference_datetime"] == pd.Timestamp("2024-02-01")).all()
    assert out["parameter"].tolist() == forecast["parameter"].tolist()
    assert out["site_id"].tolist() == forecast["site_id"].tolist()
    pd.testing.assert_series_equal(out["prediction"], forecast["prediction"], check_names=False)
    assert out["datetime"].tolist() == forecast["datetime"].tolist()


def test_validate_forecast_accepts_valid_table(forecast):
    out = submission.to_submission_frame(forecast, "2024-02-01", model_id="m")
    assert submission.validate_forecast(out) is True


def test_validate_forecast_rejects_non_future_rows(forecast):
    out = submission.to_submission_frame(forecast, "2024-02-02", model_id="m")
    with pytest.raises(SchemaMismatchError) as exc_info:
        submission.validate_forecast(out)
    assert any("at or before reference_datetime" in p for p in exc_info.value.problems)


def test_validate_forecast_lists_every_problem(forecast):
    out = submission.to_submission_frame(forecast, "2024-02-01", model_id="m")
    out = pd.concat([out, out.iloc[[0]]], ignore_index=True)
    out.loc[1, "family"] = "poisson"
    with pytest.raises(SchemaMismatchError) as exc_info:
        submission.validate_forecast(out)
    problems = " | ".join(exc_info.value.problems)
    assert "unknown family" in problems
    assert "duplicate" in problems


def test_validate_forecast_missing_column(forecast):
    out = submission.to_submission_frame(forecast, "2024-02-01").drop(columns="duration")
    with pytest.raises(SchemaMismatchError) as exc_info:
        submission.validate_forecast(out)
    assert exc_info.value.missing_columns == ["duration"]


def test_write_forecast_uses_naming_convention(forecast, tmp_path):
    out = submission.to_submission_frame(forecast, "2024-02-01", model_id="m")
    path = submission.write_forecast(out, str(tmp_path))

    assert os.path.basename(path) == f"{config.THEME}-2024-02-01-m.csv"
    written = pd.read_csv(path)
    assert list(written.columns) == config.SUBMISSION_COLUMNS
    assert written["datetime"].tolist() == ["2024-02-02", "2024-02-02", "2024-02-03", "2024-02-03"]
    assert written["prediction"].isna().sum() == 1


def test_submit_forecast_uploads_file(forecast, tmp_path, monkeypatch):
    out = submission.to_submission_frame(forecast, "2024-02-01", model_id="m")
    path = submission.write_forecast(out, str(tmp_path))
    calls = {}

    class _Response:
        status_code = 200

        def raise_for_status(self):
            pass

    def fake_put(url, data, headers, timeout):
        calls["url"] = url
        calls["body"] = data.read()
        calls["timeout"] = timeout
        return _Response()

    monkeypatch.setattr(submission.requests, "put", fake_put)
    submission.submit_forecast(path, endpoint="https://upload.example.org/bucket/", timeout=7)

    assert calls["url"] == f"https://upload.example.org/bucket/{os.path.basename(path)}"
    assert calls["body"].startswith(b"project_id,model_id,datetime")
    assert calls["timeout"] == 7
