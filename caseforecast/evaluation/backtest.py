"""
backtest.py
-----------
Hold-out back-testing of SARIMA orders.

The most recent part of the history is held out, the order is fitted on the
rest, and the forecast for the held-out window is scored:

    Train: [=======================]
    Test:                           [----h----]

The split is chronological (never shuffled). The forecast goes through the
same validator as live forecasts before it is scored, so a configuration is
judged on exactly the numbers production would publish.

Diagnosis:
    R² == 0 and NEAR_CONSTANT  -> constant predictions
    R² == 0 and EXPLOSION      -> prediction explosion
    R² >  0.7                  -> good model
    otherwise                  -> moderate model
A ModelTrainingFailure does not propagate; the run is reported as failed so
that a sweep over several orders still reports every outcome.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from caseforecast.errors import InsufficientDataError, InvalidParameterError, ModelTrainingFailure
from caseforecast.evaluation.metrics import compute_all_metrics
from caseforecast.evaluation.validator import PRODUCTION_POLICY, ValidationPolicy, validate
from caseforecast.models.arima_model import fit, forecast
from caseforecast.types import Advisory, BackTestRun, Diagnosis, HistoricalSeries, ModelOrder

logger = logging.getLogger(__name__)

MIN_POINTS = {"monthly": 5, "daily": 14}
GOOD_MODEL_R2 = 0.7


def split_sizes(n: int, split_ratio: float) -> tuple[int, int]:
    """Train / test lengths; both at least 1 (36 points at 0.8 -> 29 / 7)."""
    if not 0 < split_ratio < 1:
        raise InvalidParameterError(f"split_ratio must be in (0, 1), got {split_ratio}")
    train = int(np.clip(round(n * split_ratio), 1, n - 1))
    return train, n - train


def diagnose(r2: float, flags: frozenset) -> Diagnosis:
    if r2 == 0 and Advisory.NEAR_CONSTANT in flags:
        return Diagnosis.CONSTANT_PREDICTIONS
    if r2 == 0 and Advisory.EXPLOSION in flags:
        return Diagnosis.PREDICTION_EXPLOSION
    if r2 > GOOD_MODEL_R2:
        return Diagnosis.GOOD_MODEL
    return Diagnosis.MODERATE_MODEL


def backtest(
    series: HistoricalSeries,
    order,
    split_ratio: float = 0.8,
    policy: ValidationPolicy = PRODUCTION_POLICY,
    min_points: Optional[int] = None,
    require_convergence: bool = True,
    confidence_level: float = 0.95,
) -> BackTestRun:
    """
    Fit `order` on the first `split_ratio` of `series` and score the rest.

    Args:
        series      : full history
        order       : ModelOrder or sequence accepted by ModelOrder.from_sequence
        split_ratio : fraction of points used for training
        policy      : validator thresholds applied to the held-out forecast
        min_points  : minimum series length (defaults: 5 monthly, 14 daily)

    Raises:
        InsufficientDataError / InvalidParameterError before any fitting.
    """
    order = order if isinstance(order, ModelOrder) else ModelOrder.from_sequence(order)
    required = MIN_POINTS.get(series.granularity, 5) if min_points is None else min_points
    if len(series) < max(required, 2):
        raise InsufficientDataError(
            f"Back-testing needs at least {max(required, 2)} {series.granularity} points, got {len(series)}",
            required=max(required, 2), available=len(series),
        )

    n_train, n_test = split_sizes(len(series), split_ratio)
    train, test = series.split(n_train)
    logger.info(f"[{order.label}] Back-test | Train: {n_train} points | Test: {n_test} points")

    try:
        model = fit(train, order, require_convergence=require_convergence)
    except ModelTrainingFailure as e:
        logger.error(f"[{order.label}] Training failed: {e}")
        return BackTestRun(
            order=order, train_series=train, test_series=test,
            diagnosis=Diagnosis.TRAINING_FAILED, error=str(e),
        )

    raw = forecast(model, n_test, confidence_level=confidence_level)
    outcome = validate(raw, train, policy)
    flags = frozenset(outcome.flags | model.advisories)
    metrics = compute_all_metrics(test.values, outcome.result.predictions)
    diagnosis = diagnose(metrics.r_squared, flags)

    logger.info(
        f"  → R²={metrics.r_squared:.3f} (raw {metrics.r_squared_raw:.3f}) | "
        f"RMSE={metrics.rmse:.2f} | MAE={metrics.mae:.2f} | MAPE={metrics.mape:.1f}% "
        f"({metrics.interpretation}) | {diagnosis.value}"
    )
    if metrics.worse_than_baseline:
        logger.warning(f"[{order.label}] Forecast is worse than the test-window mean (raw R²={metrics.r_squared_raw:.3f})")

    return BackTestRun(
        order=order,
        train_series=train,
        test_series=test,
        diagnosis=diagnosis,
        forecast=outcome.result,
        metrics=metrics,
        flags=flags,
    )


def backtest_orders(
    series: HistoricalSeries,
    orders: Iterable,
    max_workers: Optional[int] = None,
    **kwargs,
) -> list[BackTestRun]:
    """
    Back-test several orders on the same series.

    Runs are independent; with `max_workers` > 1 they are spread over a thread
    pool. Results keep the order of `orders`.
    """
    orders = [o if isinstance(o, ModelOrder) else ModelOrder.from_sequence(o) for o in orders]
    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(lambda o: backtest(series, o, **kwargs), orders))
    return [backtest(series, o, **kwargs) for o in orders]


def compare_orders(runs: list[BackTestRun]) -> pd.DataFrame:
    """
    Leaderboard of back-test runs, best R² first (ties broken by MAPE).
    Failed runs are listed last with empty metrics.
    """
    rows = []
    for r in runs:
        row = {
            "order": r.order.label,
            "diagnosis": r.diagnosis.value,
            "flags": ",".join(sorted(f.value for f in r.flags)),
            "r_squared": np.nan, "r_squared_raw": np.nan,
            "rmse": np.nan, "mae": np.nan, "mape": np.nan,
            "interpretation": "",
        }
        if r.metrics is not None:
            row.update({
                "r_squared": round(r.metrics.r_squared, 4),
                "r_squared_raw": round(r.metrics.r_squared_raw, 4),
                "rmse": round(r.metrics.rmse, 4),
                "mae": round(r.metrics.mae, 4),
                "mape": round(r.metrics.mape, 2),
                "interpretation": r.metrics.interpretation,
            })
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=["order", "diagnosis", "flags", "r_squared", "r_squared_raw", "rmse", "mae", "mape", "interpretation"])
    leaderboard = (
        pd.DataFrame(rows)
        .sort_values(["r_squared", "mape"], ascending=[False, True], na_position="last")
        .reset_index(drop=True)
    )
    leaderboard.index += 1  # Rank from 1
    return leaderboard
