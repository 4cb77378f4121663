"""
validator.py
------------
Post-processing of raw SARIMA forecasts before they reach callers.

Two pathologies are checked:

  EXPLOSION      max(prediction) > H × explosion_multiplier, or a non-finite
                 value. Values above H × clamp_multiplier are replaced by that
                 bound. The flag threshold and the clamp bound are separate
                 settings: live forecasting flags and clamps at 5×, the
                 diagnostic back-test policy flags at 10× but still clamps at 5×.

  NEAR_CONSTANT  std(predictions) < near_constant_std. Flag only: a flat
                 forecast can be correct, but it guarantees R² ≈ 0 on held-out
                 data, which the caller should know when reading the metrics.

H is the historical maximum. Every returned prediction is a non-negative
integer, and the returned bounds satisfy 0 <= lower <= prediction <= upper.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass

import numpy as np

from caseforecast.errors import InvalidParameterError
from caseforecast.models.arima_model import z_score
from caseforecast.types import Advisory, ForecastResult, HistoricalSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationPolicy:
    clamp_multiplier: float = 5.0
    explosion_multiplier: float = 5.0
    near_constant_std: float = 1.0

    def __post_init__(self) -> None:
        if self.clamp_multiplier <= 0 or self.explosion_multiplier <= 0:
            raise InvalidParameterError("multipliers must be positive")
        if self.near_constant_std < 0:
            raise InvalidParameterError("near_constant_std must be non-negative")

    @classmethod
    def from_config(cls, cfg: dict | None) -> "ValidationPolicy":
        cfg = cfg or {}
        return cls(
            clamp_multiplier=float(cfg.get("clamp_multiplier", 5.0)),
            explosion_multiplier=float(cfg.get("explosion_multiplier", 5.0)),
            near_constant_std=float(cfg.get("near_constant_std", 1.0)),
        )


PRODUCTION_POLICY = ValidationPolicy(clamp_multiplier=5.0, explosion_multiplier=5.0)
DIAGNOSTIC_POLICY = ValidationPolicy(clamp_multiplier=5.0, explosion_multiplier=10.0)


@dataclass(frozen=True, eq=False)
class ValidationOutcome:
    result: ForecastResult
    flags: frozenset
    clamped: int = 0

    @property
    def advisory_codes(self) -> list[str]:
        return sorted(flag.code for flag in self.flags)


def prediction_std(predictions: np.ndarray) -> float:
    predictions = np.asarray(predictions, dtype=float)
    finite = predictions[np.isfinite(predictions)]
    if len(finite) < len(predictions) or len(finite) == 0:
        return float("inf")
    return float(finite.std())


def validate(
    raw: ForecastResult,
    history: HistoricalSeries | np.ndarray,
    policy: ValidationPolicy = PRODUCTION_POLICY,
) -> ValidationOutcome:
    """
    Flag and correct a raw forecast against the historical series.

    Args:
        raw     : ForecastResult straight from the forecast generator
        history : series the model was trained on (its max is H)
        policy  : thresholds; defaults to the live-forecast policy

    Returns:
        ValidationOutcome with the corrected result, the set of Advisory flags
        and the number of predictions that were clamped.
    """
    values = history.values if isinstance(history, HistoricalSeries) else np.asarray(history, dtype=float)
    if len(values) == 0:
        raise InvalidParameterError("historical series is empty")

    pred = np.array(raw.predictions, dtype=float)
    se = np.array(raw.standard_errors, dtype=float)
    hist_max = float(np.max(values))
    reference = max(hist_max, 1.0)
    clamp_bound = reference * policy.clamp_multiplier
    flag_bound = reference * policy.explosion_multiplier
    flags: set[Advisory] = set()

    non_finite = ~np.isfinite(pred)
    finite_max = float(np.max(pred[~non_finite])) if (~non_finite).any() else float("-inf")
    if non_finite.any() or finite_max > flag_bound:
        flags.add(Advisory.EXPLOSION)
        logger.warning(
            f"Prediction explosion: max={finite_max:.2e}, non-finite={int(non_finite.sum())}, "
            f"historical max={hist_max:.0f} (flag at {policy.explosion_multiplier:g}×)"
        )

    std = prediction_std(pred)
    if std < policy.near_constant_std:
        flags.add(Advisory.NEAR_CONSTANT)
        logger.warning(
            f"Near-constant predictions: std={std:.4f} < {policy.near_constant_std:g}; "
            f"R² on held-out data will be ≈0"
        )

    over = non_finite | (pred > clamp_bound)
    clamped = int(over.sum())
    if clamped:
        pred[over] = clamp_bound
        logger.info(f"Clamped {clamped} prediction(s) to {clamp_bound:.0f}")

    pred = np.maximum(0.0, np.round(pred))

    z = z_score(raw.confidence_level)
    margin = np.where(np.isfinite(se), z * se, clamp_bound)
    lower = np.maximum(0.0, np.round(pred - margin))
    upper = np.maximum(pred, np.minimum(np.round(pred + margin), clamp_bound))

    result = ForecastResult(
        predictions=pred,
        lower_bound=lower,
        upper_bound=upper,
        standard_errors=se,
        confidence_level=raw.confidence_level,
    )
    return ValidationOutcome(result=result, flags=frozenset(flags), clamped=clamped)
