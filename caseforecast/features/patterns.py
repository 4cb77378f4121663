"""patterns.py — Trend, seasonality and data-quality heuristics on count series."""
from __future__ import annotations
import logging

import numpy as np

logger = logging.getLogger(__name__)


def detect_trend(values: np.ndarray, threshold_pct: float = 10.0) -> str:
    """
    Compare the mean of the second half against the first half.

    Returns "increasing" / "decreasing" when the change exceeds
    `threshold_pct` percent, else "stable".
    """
    values = np.asarray(values, dtype=float)
    if len(values) < 3:
        return "stable"
    half = len(values) // 2
    first, second = values[:half].mean(), values[half:].mean()
    if first == 0:
        return "increasing" if second > 0 else "stable"
    change = (second - first) / first * 100
    if change > threshold_pct:
        return "increasing"
    if change < -threshold_pct:
        return "decreasing"
    return "stable"


def seasonal_strength(values: np.ndarray, period: int = 12) -> float:
    """
    Share of total variance explained by per-season means (variance decomposition).

    Needs at least two full cycles; returns 0.0 otherwise or on flat data.
    More robust than autocorrelation on short monthly aggregates.
    """
    values = np.asarray(values, dtype=float)
    if period < 2 or len(values) < 2 * period:
        return 0.0
    total_var = values.var()
    if total_var < 1e-4:
        return 0.0
    overall = values.mean()
    seasonal_var = 0.0
    for season in range(period):
        bucket = values[season::period]
        seasonal_var += len(bucket) * (bucket.mean() - overall) ** 2
    return float(seasonal_var / len(values) / total_var)


def has_seasonality(values: np.ndarray, period: int = 12, threshold: float = 0.15) -> bool:
    strength = seasonal_strength(values, period)
    logger.info(f"Seasonal strength at period {period}: {strength:.1%} (threshold {threshold:.0%})")
    return strength > threshold


def detect_seasonality(values: np.ndarray, period: int = 7) -> bool:
    """Lag-`period` mean cross product against 0.3 × variance."""
    values = np.asarray(values, dtype=float)
    if period < 2 or len(values) < 2 * period:
        return False
    autocorrelation = float(np.mean(values[period:] * values[:-period]))
    return bool(autocorrelation > values.var() * 0.3)


def assess_data_quality(n_points: int) -> str:
    if n_points >= 14:
        return "high"
    if n_points >= 7:
        return "moderate"
    return "insufficient"
