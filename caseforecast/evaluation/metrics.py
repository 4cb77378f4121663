"""
metrics.py
----------
Forecast evaluation metrics: MSE, RMSE, MAE, MAPE, R², directional accuracy,
95% confidence bounds, and the qualitative rating bands used in reports.

All functions take (actual, predicted) sequences of equal length and raise
InvalidInputError on empty or mismatched input.
"""

from __future__ import annotations
import numpy as np
import pandas as pd

from caseforecast.errors import InvalidInputError
from caseforecast.types import MetricsReport

LOW_VARIANCE_THRESHOLD = 5.0


def _check(actual, predicted, min_length: int = 1) -> tuple[np.ndarray, np.ndarray]:
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if actual.size == 0 or predicted.size == 0:
        raise InvalidInputError("Arrays cannot be empty")
    if actual.shape != predicted.shape:
        raise InvalidInputError(
            f"Array length mismatch: actual ({actual.size}) vs predicted ({predicted.size})"
        )
    if actual.size < min_length:
        raise InvalidInputError(f"Need at least {min_length} points, got {actual.size}")
    return actual, predicted


def mse(actual, predicted) -> float:
    """Mean Squared Error."""
    actual, predicted = _check(actual, predicted)
    return float(np.mean((actual - predicted) ** 2))


def rmse(actual, predicted) -> float:
    """Root Mean Squared Error, in the units of the data."""
    return float(np.sqrt(mse(actual, predicted)))


def mae(actual, predicted) -> float:
    """Mean Absolute Error."""
    actual, predicted = _check(actual, predicted)
    return float(np.mean(np.abs(actual - predicted)))


def mape(actual, predicted) -> float:
    """
    Mean Absolute Percentage Error over the points where actual != 0.

    Zero actuals are skipped rather than smoothed with an epsilon; if every
    actual is 0 the result is 0.0 (nothing to be relatively wrong about).
    """
    actual, predicted = _check(actual, predicted)
    mask = actual != 0
    if not mask.any():
        return 0.0
    return float(100.0 * np.mean(np.abs(actual[mask] - predicted[mask]) / np.abs(actual[mask])))


def r_squared_raw(actual, predicted) -> float:
    """
    Unclamped coefficient of determination, 1 - SS_res / SS_tot.

    Negative when the forecast is worse than predicting the mean. For constant
    actuals (SS_tot = 0) it is 1.0 on an exact match and 0.0 otherwise.
    """
    actual, predicted = _check(actual, predicted)
    ss_res = float(np.sum((actual - predicted) ** 2))
    ss_tot = float(np.sum((actual - actual.mean()) ** 2))
    if ss_tot == 0:
        return 1.0 if ss_res == 0 else 0.0
    return 1.0 - ss_res / ss_tot


def r_squared(actual, predicted) -> float:
    """R² clamped to [0, 1] for display."""
    return float(min(1.0, max(0.0, r_squared_raw(actual, predicted))))


def directional_accuracy(actual, predicted) -> float:
    """Percentage of steps where actual and predicted move in the same direction."""
    actual, predicted = _check(actual, predicted, min_length=2)
    same = np.sign(np.diff(actual)) == np.sign(np.diff(predicted))
    return float(100.0 * same.mean())


def variance(values) -> float:
    """Population variance."""
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        raise InvalidInputError("Arrays cannot be empty")
    return float(values.var())


def confidence_interval(predictions, mse_value: float, z: float = 1.96) -> tuple[np.ndarray, np.ndarray]:
    """pred ± z·sqrt(mse), lower side floored at 0."""
    predictions = np.asarray(predictions, dtype=float)
    if predictions.size == 0:
        raise InvalidInputError("Predictions array cannot be empty")
    if mse_value < 0:
        raise InvalidInputError(f"mse must be non-negative, got {mse_value}")
    margin = z * np.sqrt(mse_value)
    return np.maximum(0.0, predictions - margin), predictions + margin


# ── Rating bands ──────────────────────────────────────────────────────────────

def interpret_r_squared(value: float) -> str:
    if value >= 0.9:
        return "Excellent"
    if value >= 0.8:
        return "Good"
    if value >= 0.6:
        return "Fair"
    return "Poor"


def interpret_mape(value: float) -> str:
    if value < 10:
        return "Excellent"
    if value < 20:
        return "Good"
    if value < 50:
        return "Fair"
    return "Poor"


def compute_all_metrics(
    actual,
    predicted,
    variance_threshold: float = LOW_VARIANCE_THRESHOLD,
) -> MetricsReport:
    """
    Compute every metric and pick the headline interpretation.

    R² carries no information on near-flat actuals, so when the variance of
    `actual` is below `variance_threshold` the MAPE band is reported;
    otherwise the R² band. Directional accuracy is 0 for a single point.
    """
    actual, predicted = _check(actual, predicted)
    mse_value = mse(actual, predicted)
    mape_value = mape(actual, predicted)
    r2_raw = r_squared_raw(actual, predicted)
    r2 = float(min(1.0, max(0.0, r2_raw)))
    test_var = variance(actual)
    use_mape = test_var < variance_threshold
    r2_rating, mape_rating = interpret_r_squared(r2), interpret_mape(mape_value)

    return MetricsReport(
        mse=mse_value,
        rmse=float(np.sqrt(mse_value)),
        mae=mae(actual, predicted),
        mape=mape_value,
        r_squared=r2,
        r_squared_raw=r2_raw,
        directional_accuracy=directional_accuracy(actual, predicted) if actual.size >= 2 else 0.0,
        test_variance=test_var,
        r_squared_rating=r2_rating,
        mape_rating=mape_rating,
        interpretation=mape_rating if use_mape else r2_rating,
        primary_metric="mape" if use_mape else "r_squared",
    )


def metrics_dataframe(reports: list[MetricsReport]) -> pd.DataFrame:
    """
    Summarise several MetricsReports (e.g. one per candidate order) with
    mean, std, min and max of each numeric metric.
    """
    if not reports:
        return pd.DataFrame(columns=["metric", "mean", "std", "min", "max"])
    df = pd.DataFrame([r.to_dict() for r in reports]).select_dtypes("number")
    return pd.DataFrame({
        "metric": df.columns,
        "mean": df.mean().values,
        "std": df.std().values,
        "min": df.min().values,
        "max": df.max().values,
    })
