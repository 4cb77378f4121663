"""
presets.py
----------
Default SARIMA orders when the caller does not pass one.

Monthly counts are already smooth, so no differencing is applied by default
(d=0); a yearly seasonal AR term is only used when there are two full years
and the seasonal component explains a meaningful share of variance. Daily
series get a weekly seasonal AR term once there are two full weeks.

    monthly, >= 24 pts, seasonal   -> (1,0,1)(1,0,0)[12]
    monthly, >= 12 pts             -> (1,0,1)
    monthly, shorter               -> (1,0,0)
    daily,   >= 14 pts             -> (1,0,1)(1,0,0)[7]
    daily,   shorter               -> (1,0,0)
"""

from __future__ import annotations
import logging
from typing import Optional

from caseforecast.features.patterns import has_seasonality
from caseforecast.types import HistoricalSeries, ModelOrder

logger = logging.getLogger(__name__)

DEFAULT_PRESETS = {
    "monthly": {
        "seasonal_period": 12,
        "seasonal_min_points": 24,
        "seasonal_threshold": 0.15,
        "seasonal": [1, 0, 1, 1, 0, 0, 12],
        "arma_min_points": 12,
        "arma": [1, 0, 1],
        "short": [1, 0, 0],
    },
    "daily": {
        "seasonal_period": 7,
        "seasonal_min_points": 14,
        "seasonal_threshold": None,
        "seasonal": [1, 0, 1, 1, 0, 0, 7],
        "arma_min_points": 14,
        "arma": [1, 0, 1],
        "short": [1, 0, 0],
    },
}


def default_order(series: HistoricalSeries, presets: Optional[dict] = None) -> ModelOrder:
    """Pick an order from series length, granularity and seasonal strength."""
    cfg = dict(DEFAULT_PRESETS[series.granularity])
    if presets and series.granularity in presets:
        cfg.update(presets[series.granularity])

    n = len(series)
    if n >= cfg["seasonal_min_points"]:
        threshold = cfg.get("seasonal_threshold")
        seasonal = threshold is None or has_seasonality(series.values, cfg["seasonal_period"], threshold)
        if seasonal:
            order = ModelOrder.from_sequence(cfg["seasonal"])
            logger.info(f"Default order for {n} {series.granularity} points: {order.label}")
            return order

    key = "arma" if n >= cfg["arma_min_points"] else "short"
    order = ModelOrder.from_sequence(cfg[key])
    logger.info(f"Default order for {n} {series.granularity} points: {order.label}")
    return order
