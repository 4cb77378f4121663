"""fallback_model.py — Last value + recent linear trend, for when SARIMA cannot be fitted."""
from __future__ import annotations
import logging, numpy as np
from caseforecast.errors import InvalidParameterError
from caseforecast.models.arima_model import z_score
from caseforecast.types import ForecastResult
logger = logging.getLogger(__name__)

def fallback_forecast(values, horizon: int, window: int = 7, confidence_level: float = 0.95) -> ForecastResult:
    values = np.asarray(values, dtype=float)
    if len(values) == 0:
        raise InvalidParameterError("fallback forecast needs at least one observation")
    if horizon < 1:
        raise InvalidParameterError(f"horizon must be a positive integer, got {horizon!r}")
    recent = values[-min(window, len(values)):]
    slope = np.polyfit(np.arange(len(recent)), recent, 1)[0] if len(recent) >= 2 else 0.0
    steps = np.arange(1, horizon + 1)
    pred = np.maximum(0, np.round(values[-1] + slope * steps))
    se = np.full(horizon, values.std())
    z = z_score(confidence_level)
    logger.info(f"Fallback trend forecast: last={values[-1]:.0f}, slope={slope:.3f}/step")
    return ForecastResult(pred, np.maximum(0, pred - z * se), pred + z * se, se, confidence_level)
