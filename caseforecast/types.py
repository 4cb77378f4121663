"""
types.py
--------
Value types shared by the series builder, the SARIMA fitter, the validator,
the metrics module and the back-testing harness.

Everything here is immutable once built. A `TrainedModel` in particular keeps
only the fitted parameter vector and the training values; forecasting re-runs
the state-space filter from those, so a handle can be shared between threads
without locking.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from caseforecast.errors import InvalidParameterError

GRANULARITY_FREQ = {"daily": "D", "monthly": "MS"}


class Advisory(str, Enum):
    """Non-fatal findings attached to a model or forecast."""
    EXPLOSION = "EXPLOSION"
    NEAR_CONSTANT = "NEAR_CONSTANT"
    UNSTABLE_SEASONAL_PERIOD = "UNSTABLE_SEASONAL_PERIOD"
    OVER_DIFFERENCED = "OVER_DIFFERENCED"

    @property
    def code(self) -> str:
        return ADVISORY_CODES[self]


ADVISORY_CODES = {
    Advisory.EXPLOSION: "EXPLOSION_CLAMPED",
    Advisory.NEAR_CONSTANT: "NEAR_CONSTANT_WARNING",
    Advisory.UNSTABLE_SEASONAL_PERIOD: "UNSTABLE_SEASONAL_PERIOD_WARNING",
    Advisory.OVER_DIFFERENCED: "OVER_DIFFERENCED_WARNING",
}


class Diagnosis(str, Enum):
    CONSTANT_PREDICTIONS = "constant predictions"
    PREDICTION_EXPLOSION = "prediction explosion"
    GOOD_MODEL = "good model"
    MODERATE_MODEL = "moderate model"
    TRAINING_FAILED = "training failed"


# ── Series ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TimeSeriesPoint:
    timestamp: pd.Timestamp
    value: int


class HistoricalSeries:
    """
    Gap-free, fixed-interval count series.

    Wraps a pandas Series indexed by a regular DatetimeIndex (`D` for daily,
    `MS` for monthly). The wrapped data is copied on the way in and on the way
    out, so callers cannot mutate a series after it is built.
    """

    def __init__(self, data: pd.Series, granularity: str) -> None:
        if granularity not in GRANULARITY_FREQ:
            raise InvalidParameterError(
                f"granularity must be one of {sorted(GRANULARITY_FREQ)}, got {granularity!r}"
            )
        if len(data) == 0:
            raise InvalidParameterError("HistoricalSeries needs at least one point")
        index = pd.DatetimeIndex(data.index)
        if not index.is_monotonic_increasing or index.has_duplicates:
            raise InvalidParameterError("timestamps must be strictly increasing")
        expected = pd.date_range(index[0], periods=len(index), freq=GRANULARITY_FREQ[granularity])
        if not index.equals(expected):
            raise InvalidParameterError(f"series has gaps or is not aligned to {granularity} intervals")
        values = np.asarray(data.values, dtype=float)
        if np.any(values < 0) or np.any(values != np.round(values)):
            raise InvalidParameterError("counts must be non-negative integers")

        self._data = pd.Series(values.astype(np.int64), index=expected, name="count")
        self.granularity = granularity

    @classmethod
    def from_values(
        cls,
        values: Iterable[int],
        start: str | pd.Timestamp = "2023-01-01",
        granularity: str = "monthly",
    ) -> "HistoricalSeries":
        values = list(values)
        freq = GRANULARITY_FREQ.get(granularity, "MS")
        index = pd.date_range(pd.Timestamp(start), periods=len(values), freq=freq)
        return cls(pd.Series(values, index=index), granularity)

    @property
    def freq(self) -> str:
        return GRANULARITY_FREQ[self.granularity]

    @property
    def values(self) -> np.ndarray:
        return self._data.to_numpy(dtype=float)

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self._data.index.copy()

    @property
    def points(self) -> list[TimeSeriesPoint]:
        return [TimeSeriesPoint(ts, int(v)) for ts, v in self._data.items()]

    def to_series(self) -> pd.Series:
        return self._data.copy()

    def max(self) -> float:
        return float(self._data.max())

    def split(self, train_size: int) -> tuple["HistoricalSeries", "HistoricalSeries"]:
        """Chronological split: first `train_size` points, then the rest."""
        if not 0 < train_size < len(self):
            raise InvalidParameterError(
                f"train_size must leave both parts non-empty (1..{len(self) - 1}), got {train_size}"
            )
        return (
            HistoricalSeries(self._data.iloc[:train_size], self.granularity),
            HistoricalSeries(self._data.iloc[train_size:], self.granularity),
        )

    def future_dates(self, horizon: int) -> pd.DatetimeIndex:
        return pd.date_range(self._data.index[-1], periods=horizon + 1, freq=self.freq)[1:]

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (
            f"HistoricalSeries({self.granularity}, n={len(self)}, "
            f"{self._data.index[0].date()}..{self._data.index[-1].date()})"
        )


# ── Model order ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ModelOrder:
    """(p, d, q)(P, D, Q, s). s of 0 or 1 switches the seasonal part off."""
    p: int = 1
    d: int = 0
    q: int = 0
    P: int = 0
    D: int = 0
    Q: int = 0
    s: int = 1

    def __post_init__(self) -> None:
        for name in ("p", "d", "q", "P", "D", "Q", "s"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 0:
                raise InvalidParameterError(f"order field {name} must be a non-negative integer, got {value!r}")

    @classmethod
    def from_sequence(cls, values) -> "ModelOrder":
        """Accepts (p,d,q), (p,d,q,P,D,Q,s) or a mapping with those keys."""
        try:
            if isinstance(values, dict):
                return cls(**{k: _as_int(v) for k, v in values.items()})
            values = [_as_int(v) for v in values]
        except InvalidParameterError:
            raise
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"malformed order {values!r}: {e}") from e
        if len(values) == 3:
            return cls(*values, 0, 0, 0, 1)
        if len(values) == 7:
            return cls(*values)
        raise InvalidParameterError(f"order needs 3 or 7 values, got {len(values)}")

    @property
    def is_seasonal(self) -> bool:
        return self.s > 1 and (self.P + self.D + self.Q) > 0

    @property
    def order(self) -> tuple[int, int, int]:
        return (self.p, self.d, self.q)

    @property
    def seasonal_order(self) -> tuple[int, int, int, int]:
        if not self.is_seasonal:
            return (0, 0, 0, 0)
        return (self.P, self.D, self.Q, self.s)

    @property
    def total_differencing(self) -> int:
        return self.d + (self.D if self.is_seasonal else 0)

    @property
    def lost_points(self) -> int:
        """Observations consumed by differencing."""
        return self.d + (self.D * self.s if self.is_seasonal else 0)

    @property
    def label(self) -> str:
        if self.is_seasonal:
            return f"SARIMA({self.p},{self.d},{self.q})({self.P},{self.D},{self.Q})[{self.s}]"
        return f"ARIMA({self.p},{self.d},{self.q})"

    def __str__(self) -> str:
        return self.label


# ── Model / forecast / metrics ────────────────────────────────────────────────

@dataclass(frozen=True)
class TrainedModel:
    order: ModelOrder
    params: tuple[float, ...]
    param_names: tuple[str, ...]
    training_values: tuple[float, ...]
    trend: str
    converged: bool
    aic: float
    advisories: frozenset = frozenset()

    @property
    def n_obs(self) -> int:
        return len(self.training_values)


@dataclass(frozen=True, eq=False)
class ForecastResult:
    predictions: np.ndarray
    lower_bound: np.ndarray
    upper_bound: np.ndarray
    standard_errors: np.ndarray
    confidence_level: float = 0.95

    def __post_init__(self) -> None:
        n = len(self.predictions)
        for name in ("lower_bound", "upper_bound", "standard_errors"):
            if len(getattr(self, name)) != n:
                raise InvalidParameterError(f"{name} length does not match predictions ({n})")
        if not 0 < self.confidence_level < 1:
            raise InvalidParameterError(f"confidence_level must be in (0, 1), got {self.confidence_level}")
        for name in ("predictions", "lower_bound", "upper_bound", "standard_errors"):
            arr = np.array(getattr(self, name), dtype=float)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def horizon(self) -> int:
        return len(self.predictions)


@dataclass(frozen=True)
class MetricsReport:
    mse: float
    rmse: float
    mae: float
    mape: float
    r_squared: float
    r_squared_raw: float
    directional_accuracy: float
    test_variance: float
    r_squared_rating: str
    mape_rating: str
    interpretation: str
    primary_metric: str

    @property
    def worse_than_baseline(self) -> bool:
        return self.r_squared_raw < 0

    def to_dict(self) -> dict:
        return {
            "mse": self.mse,
            "rmse": self.rmse,
            "mae": self.mae,
            "mape": self.mape,
            "r_squared": self.r_squared,
            "r_squared_raw": self.r_squared_raw,
            "directional_accuracy": self.directional_accuracy,
            "test_variance": self.test_variance,
            "interpretation": self.interpretation,
            "primary_metric": self.primary_metric,
        }


@dataclass(frozen=True, eq=False)
class BackTestRun:
    order: ModelOrder
    train_series: HistoricalSeries
    test_series: HistoricalSeries
    diagnosis: Diagnosis
    forecast: Optional[ForecastResult] = None
    metrics: Optional[MetricsReport] = None
    flags: frozenset = field(default_factory=frozenset)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.diagnosis is not Diagnosis.TRAINING_FAILED

    def __repr__(self) -> str:
        if not self.succeeded:
            return f"BackTestRun({self.order.label}, train={len(self.train_series)}, failed: {self.error})"
        return (
            f"BackTestRun({self.order.label}, train={len(self.train_series)}, "
            f"test={len(self.test_series)}, R2={self.metrics.r_squared:.3f}, "
            f"MAPE={self.metrics.mape:.1f}%, {self.diagnosis.value})"
        )
