"""
test_pipeline.py
----------------
End-to-end tests for generate_forecast, config loading and CSV input.
"""
import json

import numpy as np
import pytest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import caseforecast.evaluation.backtest as backtest_module
import caseforecast.pipeline as pipeline_module
from caseforecast.errors import (
    InsufficientDataError,
    InvalidInputError,
    InvalidParameterError,
    ModelTrainingFailure,
)
from caseforecast.evaluation.backtest import backtest
from caseforecast.evaluation.validator import DIAGNOSTIC_POLICY, PRODUCTION_POLICY, ValidationPolicy
from caseforecast.pipeline import generate_forecast, load_series, run_backtests
from caseforecast.types import Advisory, ForecastResult, HistoricalSeries, TrainedModel
from caseforecast.utils.data_loader import load_config, load_history_csv
from caseforecast.utils.generate_demo_data import generate_case_counts, trending_series

RELAXED = {"forecasting": {"require_convergence": False}}


def explosive_forecast(model, horizon, confidence_level=0.95):
    pred = 10.0 ** np.arange(1, horizon + 1)
    se = np.ones(horizon)
    return ForecastResult(pred, pred - 1.96, pred + 1.96, se, confidence_level)


def make_stub_fit(advisories=frozenset()):
    def _fit(series, order, require_convergence=True):
        return TrainedModel(
            order=order, params=(), param_names=(),
            training_values=tuple(series.values), trend="c", converged=True, aic=0.0,
            advisories=advisories,
        )
    return _fit


@pytest.fixture
def exploding(monkeypatch):
    def _install(advisories=frozenset()):
        for module in (pipeline_module, backtest_module):
            monkeypatch.setattr(module, "fit", make_stub_fit(advisories))
            monkeypatch.setattr(module, "forecast", explosive_forecast)
    return _install


# ── generate_forecast ─────────────────────────────────────────────────────────

class TestGenerateForecast:
    @pytest.fixture(scope="class")
    def report(self):
        series = generate_case_counts(36, "monthly", seed=5)
        return generate_forecast(series, horizon=6, order=(1, 0, 0), config=RELAXED)

    def test_predictions(self, report):
        assert len(report.predictions) == 6
        first = report.predictions[0]
        assert set(first) == {"date", "predicted_count", "lower_bound", "upper_bound", "confidence_level"}
        assert first["date"] == "2024-01-01"
        assert first["confidence_level"] == 0.95
        for p in report.predictions:
            assert isinstance(p["predicted_count"], int)
            assert 0 <= p["lower_bound"] <= p["predicted_count"] <= p["upper_bound"]

    def test_metadata(self, report):
        assert report.model_version == "Local-SARIMA-monthly-v2.0 ARIMA(1,0,0)"
        assert report.accuracy_metrics is not None
        assert report.trend in {"increasing", "decreasing", "stable"}
        assert report.data_quality == "high"

    def test_serialisable(self, report):
        payload = json.loads(json.dumps(report.to_dict()))
        assert payload["model_version"] == report.model_version
        assert "r_squared" in payload["accuracy_metrics"]
        assert isinstance(payload["seasonality_detected"], bool)

    @pytest.mark.parametrize("horizon", [0, -3, "6", 2.0])
    def test_invalid_horizon(self, horizon):
        with pytest.raises(InvalidParameterError):
            generate_forecast(trending_series(), horizon=horizon)

    def test_too_few_points(self):
        with pytest.raises(InsufficientDataError) as exc:
            generate_forecast(HistoricalSeries.from_values([1, 2]), horizon=3)
        assert exc.value.required == 3
        assert exc.value.error_code == "INSUFFICIENT_DATA"

    def test_training_failure_propagates(self):
        series = HistoricalSeries.from_values([3, 4, 5, 4, 6, 5, 7, 6])
        with pytest.raises(ModelTrainingFailure):
            generate_forecast(series, horizon=3, order=(1, 0, 0, 1, 0, 0, 12))

    def test_fallback_on_failure(self):
        series = HistoricalSeries.from_values([3, 4, 5, 4, 6, 5, 7, 6])
        report = generate_forecast(
            series, horizon=3, order=(1, 0, 0, 1, 0, 0, 12),
            config={"forecasting": {"fallback_on_failure": True}},
        )
        assert report.model_version == "Fallback-Trend-monthly-v1.0"
        assert report.order is None
        assert report.accuracy_metrics is None
        assert len(report.predictions) == 3

    def test_order_from_config(self, exploding):
        exploding()
        config = {"forecasting": {"order": [2, 0, 0]}}
        report = generate_forecast(trending_series(), horizon=2, config=config)
        assert report.model_version.endswith("ARIMA(2,0,0)")


class TestAdvisories:
    def test_explosion_is_clamped_and_reported(self, exploding):
        exploding()
        report = generate_forecast(trending_series(), horizon=4, order=(1, 0, 0))
        counts = [p["predicted_count"] for p in report.predictions]
        assert counts == [10, 80, 80, 80]
        assert "EXPLOSION_CLAMPED" in report.advisories

    def test_model_advisories_reported(self, exploding):
        exploding(frozenset({Advisory.OVER_DIFFERENCED}))
        report = generate_forecast(trending_series(), horizon=4, order=(1, 0, 0))
        assert report.advisories == ["EXPLOSION_CLAMPED", "OVER_DIFFERENCED_WARNING"]

    def test_live_and_backtest_clamp_identically(self, exploding):
        exploding()
        full = trending_series()
        train, _ = full.split(29)
        report = generate_forecast(train, horizon=7, order=(1, 0, 0))
        run = backtest(full, (1, 0, 0))
        counts = [p["predicted_count"] for p in report.predictions]
        assert counts == run.forecast.predictions.tolist()
        assert max(counts) == 60

    def test_live_and_backtest_agree_with_real_fit(self):
        series = generate_case_counts(36, "monthly", seed=5)
        train, _ = series.split(29)
        report = generate_forecast(train, horizon=7, order=(1, 0, 0), config=RELAXED)
        run = backtest(series, (1, 0, 0), require_convergence=False)
        counts = [p["predicted_count"] for p in report.predictions]
        assert counts == run.forecast.predictions.tolist()


# ── Config & input ────────────────────────────────────────────────────────────

class TestConfig:
    def test_default_config_sections(self):
        cfg = load_config()
        for section in ("data", "forecasting", "validation", "backtest", "demo", "evaluation"):
            assert section in cfg
        assert ValidationPolicy.from_config(cfg["validation"]["production"]) == PRODUCTION_POLICY
        assert ValidationPolicy.from_config(cfg["validation"]["diagnostic"]) == DIAGNOSTIC_POLICY

    def test_error_codes(self):
        assert InvalidParameterError("x").error_code == "INVALID_ORDER"
        assert InvalidInputError("x").error_code == "INVALID_INPUT"
        assert ModelTrainingFailure("x").error_code == "TRAINING_FAILED"


class TestLoadHistory:
    def test_pairs_csv(self, tmp_path):
        path = tmp_path / "history.csv"
        path.write_text("date,count\n2024-01-15,3\n2024-01-20,2\n2024-03-02,4\n")
        config = {"data": {"input_csv": str(path), "date_col": "date", "count_col": "count", "granularity": "monthly"}}
        series = load_series(config)
        assert list(series.values) == [5, 0, 4]
        assert series.granularity == "monthly"

    def test_events_csv(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text("completed_at\n2024-01-01 09:00\n2024-01-01 11:00\n2024-01-03 10:00\n")
        history = load_history_csv(path, date_col="completed_at", count_col=None)
        assert history["pairs"] == []
        assert len(history["events"]) == 3
        config = {"data": {"input_csv": str(path), "date_col": "completed_at", "count_col": None}}
        series = load_series(config, granularity="daily")
        assert list(series.values) == [2, 0, 1]

    def test_run_backtests_leaderboard(self):
        config = {
            "backtest": {"split_ratio": 0.8, "candidate_orders": [[1, 0, 0], [0, 0, 1]], "max_workers": 1},
            "validation": {"diagnostic": {"explosion_multiplier": 10.0}},
        }
        board, summary = run_backtests(config, generate_case_counts(36, "monthly", seed=2))
        assert len(board) == 2
        assert {"order", "diagnosis", "r_squared", "mape"} <= set(board.columns)
        assert list(summary.columns) == ["metric", "mean", "std", "min", "max"]
        if board["r_squared"].notna().any():
            assert "r_squared" in set(summary["metric"])
