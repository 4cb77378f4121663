"""
arima_model.py
--------------
Seasonal ARIMA fitter and forecast generator (statsmodels SARIMAX).

    fit(series, order)      -> TrainedModel      (immutable handle)
    forecast(model, steps)  -> ForecastResult    (raw, not yet validated)

The handle stores the estimated parameter vector and the training values
instead of the statsmodels results object. `forecast` rebuilds the state-space
model and filters with the stored parameters, which gives the same forecast
without sharing a mutable results object between callers.

Differencing (d, and D at period s) is part of the state-space model. A
constant is always estimated; in SARIMAX the trend term enters the differenced
equation, so with d + D > 0 it acts as a drift and lets the model follow a
trend, while with d = D = 0 it is the series level.
"""

from __future__ import annotations
import logging
import warnings
from statistics import NormalDist

import numpy as np
from statsmodels.tsa.statespace.sarimax import SARIMAX

from caseforecast.errors import InvalidParameterError, ModelTrainingFailure
from caseforecast.types import (
    Advisory,
    ForecastResult,
    HistoricalSeries,
    ModelOrder,
    TrainedModel,
)

logger = logging.getLogger(__name__)

Z_95 = 1.96
REFINE_METHOD = "nm"
REFINE_MAXITER = 2000
MIN_CYCLES_AFTER_DIFFERENCING = 5


def z_score(confidence_level: float) -> float:
    """Two-sided normal quantile; exactly 1.96 for the nominal 95% interval."""
    if not 0 < confidence_level < 1:
        raise InvalidParameterError(f"confidence_level must be in (0, 1), got {confidence_level}")
    if abs(confidence_level - 0.95) < 1e-12:
        return Z_95
    return NormalDist().inv_cdf(0.5 + confidence_level / 2)


def _as_order(order) -> ModelOrder:
    if isinstance(order, ModelOrder):
        return order
    return ModelOrder.from_sequence(order)


def _build(values: np.ndarray, order: ModelOrder, trend: str) -> SARIMAX:
    return SARIMAX(
        values,
        order=order.order,
        seasonal_order=order.seasonal_order,
        trend=trend,
        enforce_stationarity=False,
        enforce_invertibility=False,
    )


def check_order(order: ModelOrder, n_obs: int) -> set[Advisory]:
    """
    Pre-fit checks of an order against the series length.

    Raises ModelTrainingFailure for combinations that cannot be estimated and
    returns advisories for the ones that can but are likely unstable.
    """
    advisories: set[Advisory] = set()
    if order.is_seasonal:
        if order.s >= n_obs:
            raise ModelTrainingFailure(
                f"seasonal period {order.s} >= series length {n_obs}", order=order
            )
        if order.s > n_obs / 2:
            logger.warning(
                f"{order.label}: seasonal period {order.s} exceeds half the series "
                f"length ({n_obs}); fewer than two full cycles, fit may be unstable"
            )
            advisories.add(Advisory.UNSTABLE_SEASONAL_PERIOD)

    usable = n_obs - order.lost_points
    if order.total_differencing > 2:
        logger.warning(f"{order.label}: d + D = {order.total_differencing} > 2, likely over-differenced")
        advisories.add(Advisory.OVER_DIFFERENCED)
    elif order.is_seasonal and order.d >= 1 and order.D >= 1 and usable < MIN_CYCLES_AFTER_DIFFERENCING * order.s:
        logger.warning(
            f"{order.label}: regular and seasonal differencing leave {usable} points "
            f"(< {MIN_CYCLES_AFTER_DIFFERENCING} cycles of {order.s}), likely over-differenced"
        )
        advisories.add(Advisory.OVER_DIFFERENCED)

    if usable < 2:
        raise ModelTrainingFailure(
            f"differencing leaves {usable} usable points (n={n_obs}, "
            f"d={order.d}, D={order.D}, s={order.s}); need at least 2",
            order=order,
        )
    return advisories


def _converged(result) -> bool:
    retvals = getattr(result, "mle_retvals", None) or {}
    return bool(retvals.get("converged", True))


def fit(series, order, require_convergence: bool = True) -> TrainedModel:
    """
    Estimate a seasonal ARIMA model.

    Args:
        series              : HistoricalSeries or 1-D array of counts (not mutated)
        order               : ModelOrder, (p,d,q), (p,d,q,P,D,Q,s) or a mapping
        require_convergence : treat optimizer non-convergence as a failure

    Raises:
        InvalidParameterError  on a malformed order
        ModelTrainingFailure   on degenerate input or optimizer failure
    """
    order = _as_order(order)
    if isinstance(series, HistoricalSeries):
        values = series.values
    else:
        values = np.array(series, dtype=float)
    if values.ndim != 1 or len(values) == 0:
        raise InvalidParameterError("series must be a non-empty 1-D sequence")

    advisories = check_order(order, len(values))
    trend = "c"
    logger.info(f"Fitting {order.label} on {len(values)} points")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            model = _build(values, order, trend)
            result = model.fit(disp=False)
            if not _converged(result) and np.all(np.isfinite(result.params)):
                # polish the lbfgs iterate
                logger.info(f"{order.label}: lbfgs did not converge, refining with Nelder-Mead")
                result = model.fit(
                    start_params=result.params, method=REFINE_METHOD,
                    maxiter=REFINE_MAXITER, disp=False,
                )
        except Exception as e:
            raise ModelTrainingFailure(f"{order.label} estimation failed: {e}", order=order) from e

    params = np.asarray(result.params, dtype=float)
    if not np.all(np.isfinite(params)):
        raise ModelTrainingFailure(f"{order.label} produced non-finite parameters", order=order)

    converged = _converged(result)
    if not converged:
        if require_convergence:
            raise ModelTrainingFailure(f"{order.label}: optimizer did not converge", order=order)
        logger.warning(f"{order.label}: optimizer did not converge, keeping last iterate")

    aic = float(result.aic) if np.isfinite(result.aic) else float("nan")
    logger.info(f"{order.label} fitted | converged={converged} | AIC={aic:.2f}")

    return TrainedModel(
        order=order,
        params=tuple(float(p) for p in params),
        param_names=tuple(model.param_names),
        training_values=tuple(float(v) for v in values),
        trend=trend,
        converged=converged,
        aic=aic,
        advisories=frozenset(advisories),
    )


def forecast(model: TrainedModel, horizon: int, confidence_level: float = 0.95) -> ForecastResult:
    """
    Multi-step forecast with per-step standard errors.

    Raw predictions are returned as estimated (they may be negative or
    explosive); the validator is responsible for correcting them. Bounds are
    centred on the prediction floored at 0, so 0 <= lower <= max(pred, 0) <= upper
    holds even for a negative raw prediction.
    """
    if isinstance(horizon, bool) or not isinstance(horizon, (int, np.integer)) or horizon < 1:
        raise InvalidParameterError(f"horizon must be a positive integer, got {horizon!r}")
    z = z_score(confidence_level)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        state = _build(np.asarray(model.training_values), model.order, model.trend)
        filtered = state.filter(np.asarray(model.params))
        fc = filtered.get_forecast(steps=int(horizon))
        predictions = np.asarray(fc.predicted_mean, dtype=float)
        se = np.asarray(fc.se_mean, dtype=float)

    se = np.where(np.isfinite(se), se, np.inf)
    lower, upper = interval_bounds(predictions, se, z)
    return ForecastResult(
        predictions=predictions,
        lower_bound=lower,
        upper_bound=upper,
        standard_errors=se,
        confidence_level=confidence_level,
    )


def interval_bounds(predictions, se, z: float = Z_95) -> tuple[np.ndarray, np.ndarray]:
    """max(pred, 0) ± z·se, lower side floored at 0 (NaN lower -> 0)."""
    centre = np.maximum(0.0, np.asarray(predictions, dtype=float))
    margin = z * np.asarray(se, dtype=float)
    lower = np.nan_to_num(np.maximum(0.0, centre - margin), nan=0.0)
    return lower, centre + margin
