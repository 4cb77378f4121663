"""
test_metrics.py
---------------
Unit tests for the forecast evaluation metrics.
"""
import numpy as np
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from caseforecast.errors import InvalidInputError
from caseforecast.evaluation.metrics import (
    compute_all_metrics,
    confidence_interval,
    directional_accuracy,
    interpret_mape,
    interpret_r_squared,
    mae,
    mape,
    metrics_dataframe,
    mse,
    r_squared,
    r_squared_raw,
    rmse,
)


# ── Error metrics ─────────────────────────────────────────────────────────────

class TestErrorMetrics:
    def test_perfect_prediction(self):
        y = np.array([3.0, 7.0, 2.0, 9.0])
        assert mse(y, y) == pytest.approx(0.0)
        assert rmse(y, y) == pytest.approx(0.0)
        assert mae(y, y) == pytest.approx(0.0)
        assert mape(y, y) == pytest.approx(0.0)
        assert r_squared(y, y) == 1.0
        assert directional_accuracy(y, y) == pytest.approx(100.0)

    def test_mse_basic(self):
        assert mse([0, 0, 0, 0], [2, 2, 2, 2]) == pytest.approx(4.0)

    def test_rmse_basic(self):
        assert rmse([0.0, 0.0, 0.0, 0.0], [2.0, 2.0, 2.0, 2.0]) == pytest.approx(2.0)

    def test_mae_basic(self):
        assert mae([1.0, 2.0, 3.0], [2.0, 3.0, 4.0]) == pytest.approx(1.0)

    def test_accepts_lists(self):
        assert mae([1, 2, 3], [1, 2, 5]) == pytest.approx(2 / 3)

    def test_metrics_non_negative(self):
        rng = np.random.default_rng(7)
        y_true = rng.poisson(6, 50).astype(float)
        y_pred = rng.normal(6, 4, 50)
        result = compute_all_metrics(y_true, y_pred)
        for name in ("mse", "rmse", "mae", "mape", "directional_accuracy"):
            assert getattr(result, name) >= 0, f"{name} should be non-negative"
        assert 0.0 <= result.r_squared <= 1.0


class TestMAPE:
    def test_skips_zero_actuals(self):
        # |5-5|/5 and |10-9|/10 only; index 0 is skipped.
        assert mape([0, 5, 10], [1, 5, 9]) == pytest.approx(5.0)

    def test_all_zero_actuals_is_zero(self):
        assert mape(np.zeros(5), np.ones(5)) == 0.0

    def test_basic(self):
        assert mape([10, 20], [12, 18]) == pytest.approx(15.0)


class TestRSquared:
    def test_constant_prediction_at_mean_is_zero(self):
        assert r_squared([10, 15, 20, 25, 30], [20, 20, 20, 20, 20]) == pytest.approx(0.0)

    def test_good_predictions(self):
        r2 = r_squared([10, 15, 20, 25, 30], [11, 14, 21, 24, 31])
        assert 0.8 < r2 < 1

    def test_worse_than_mean_is_clamped_but_raw_kept(self):
        actual, predicted = [10, 15, 20, 25, 30], [50, 5, 60, 1, 70]
        assert r_squared(actual, predicted) == 0.0
        assert r_squared_raw(actual, predicted) < 0

    def test_constant_actuals_exact_match(self):
        assert r_squared([0, 0, 0, 0], [0, 0, 0, 0]) == 1.0
        assert r_squared_raw([4, 4, 4], [4, 4, 4]) == 1.0

    def test_constant_actuals_mismatch(self):
        assert r_squared([4, 4, 4], [4, 5, 4]) == 0.0
        assert r_squared_raw([4, 4, 4], [4, 5, 4]) == 0.0

    def test_near_flat_actuals_in_range(self):
        r2 = r_squared([10, 10, 10, 10, 11], [10, 10, 10, 10, 10])
        assert 0.0 <= r2 <= 1.0


class TestDirectionalAccuracy:
    def test_partial_agreement(self):
        # actual moves +,+,- ; predicted +,+,+
        assert directional_accuracy([1, 2, 3, 2], [1, 3, 4, 5]) == pytest.approx(200 / 3)

    def test_flat_steps_match_flat_steps(self):
        assert directional_accuracy([2, 2, 3], [5, 5, 6]) == pytest.approx(100.0)

    def test_too_short_raises(self):
        with pytest.raises(InvalidInputError):
            directional_accuracy([1], [1])

    def test_report_uses_zero_for_single_point(self):
        assert compute_all_metrics([4], [5]).directional_accuracy == 0.0


class TestInputValidation:
    @pytest.mark.parametrize("fn", [mse, rmse, mae, mape, r_squared, r_squared_raw, directional_accuracy])
    def test_empty_raises(self, fn):
        with pytest.raises(InvalidInputError):
            fn([], [])

    @pytest.mark.parametrize("fn", [mse, rmse, mae, mape, r_squared, r_squared_raw, directional_accuracy])
    def test_length_mismatch_raises(self, fn):
        with pytest.raises(InvalidInputError):
            fn([1, 2, 3], [1, 2])

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            mse([], [])


# ── Confidence interval ───────────────────────────────────────────────────────

class TestConfidenceInterval:
    def test_bounds(self):
        lower, upper = confidence_interval([0.0, 1.0, 50.0], mse_value=100.0)
        np.testing.assert_allclose(lower, [0.0, 0.0, 30.4])
        np.testing.assert_allclose(upper, [19.6, 20.6, 69.6])

    def test_lower_never_negative(self):
        rng = np.random.default_rng(3)
        preds = rng.normal(2, 10, 200)
        lower, upper = confidence_interval(preds, mse_value=25.0)
        assert (lower >= 0).all()
        assert (upper >= preds).all()

    def test_empty_raises(self):
        with pytest.raises(InvalidInputError):
            confidence_interval([], 1.0)


# ── Interpretation ────────────────────────────────────────────────────────────

class TestInterpretation:
    @pytest.mark.parametrize("value,expected", [
        (0.95, "Excellent"), (0.9, "Excellent"), (0.85, "Good"),
        (0.6, "Fair"), (0.59, "Poor"), (0.0, "Poor"),
    ])
    def test_r_squared_bands(self, value, expected):
        assert interpret_r_squared(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (0.0, "Excellent"), (9.9, "Excellent"), (10.0, "Good"),
        (19.9, "Good"), (20.0, "Fair"), (49.9, "Fair"), (50.0, "Poor"),
    ])
    def test_mape_bands(self, value, expected):
        assert interpret_mape(value) == expected

    def test_low_variance_uses_mape(self):
        report = compute_all_metrics([10, 10, 10, 11, 10], [10, 10, 10, 10, 10])
        assert report.primary_metric == "mape"
        assert report.interpretation == report.mape_rating == "Excellent"
        assert report.r_squared_rating == "Poor"

    def test_high_variance_uses_r_squared(self):
        report = compute_all_metrics([10, 15, 20, 25, 30], [11, 14, 21, 24, 31])
        assert report.primary_metric == "r_squared"
        assert report.interpretation == report.r_squared_rating

    def test_threshold_is_configurable(self):
        report = compute_all_metrics([10, 15, 20, 25, 30], [11, 14, 21, 24, 31], variance_threshold=100.0)
        assert report.primary_metric == "mape"


class TestComputeAllMetrics:
    def test_perfect(self):
        y = np.array([1.0, 4.0, 2.0, 8.0])
        report = compute_all_metrics(y, y)
        assert report.mse == report.rmse == report.mae == report.mape == 0.0
        assert report.r_squared == 1.0
        assert report.directional_accuracy == pytest.approx(100.0)

    def test_worse_than_baseline_flag(self):
        report = compute_all_metrics([10, 15, 20, 25, 30], [50, 5, 60, 1, 70])
        assert report.r_squared == 0.0
        assert report.worse_than_baseline

    def test_to_dict_keys(self):
        keys = compute_all_metrics([1, 2, 3], [1, 2, 4]).to_dict().keys()
        assert {"mse", "rmse", "mae", "mape", "r_squared", "r_squared_raw", "directional_accuracy"} <= set(keys)

    def test_metrics_dataframe_summary(self):
        reports = [
            compute_all_metrics([1, 2, 3], [1, 2, 3]),
            compute_all_metrics([1, 2, 3], [2, 3, 4]),
        ]
        summary = metrics_dataframe(reports)
        mae_row = summary.set_index("metric").loc["mae"]
        assert mae_row["mean"] == pytest.approx(0.5)
        assert mae_row["min"] == pytest.approx(0.0)
        assert mae_row["max"] == pytest.approx(1.0)

    def test_metrics_dataframe_empty(self):
        summary = metrics_dataframe([])
        assert summary.empty
        assert list(summary.columns) == ["metric", "mean", "std", "min", "max"]
