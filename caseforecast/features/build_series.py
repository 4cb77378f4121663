"""
build_series.py
---------------
Turns raw observations into a gap-free `HistoricalSeries`.

Two input shapes are accepted and can be mixed:
- events  : completion timestamps (one count each), e.g. completed appointments
- sources : pre-aggregated (date, count) pairs, e.g. imported spreadsheet stats

Key design decisions:
- Everything is bucketed to the interval start (calendar day or month start)
  and summed, so two sources reporting the same date add up.
- Every interval between the first and last observation is present; missing
  intervals are 0. ARIMA assumes evenly spaced observations.
"""

from __future__ import annotations
import logging
from typing import Iterable

import numpy as np
import pandas as pd

from caseforecast.errors import InsufficientDataError, InvalidParameterError
from caseforecast.types import GRANULARITY_FREQ, HistoricalSeries

logger = logging.getLogger(__name__)


def _bucket(dates: pd.DatetimeIndex, granularity: str) -> pd.DatetimeIndex:
    if granularity == "monthly":
        return dates.to_period("M").to_timestamp()
    return dates.normalize()


def _to_datetime_index(values) -> pd.DatetimeIndex:
    index = pd.DatetimeIndex(pd.to_datetime(list(values)))
    if index.tz is not None:
        index = index.tz_convert("UTC").tz_localize(None)
    return index


def _check_granularity(granularity: str) -> None:
    if granularity not in GRANULARITY_FREQ:
        raise InvalidParameterError(
            f"granularity must be one of {sorted(GRANULARITY_FREQ)}, got {granularity!r}"
        )


# ── Aggregation ───────────────────────────────────────────────────────────────

def aggregate_events(events: Iterable, granularity: str = "daily") -> pd.Series:
    """Count timestamps per interval. Returns a sparse Series (no gap fill)."""
    _check_granularity(granularity)
    index = _to_datetime_index(events)
    if len(index) == 0:
        return pd.Series(dtype=np.int64)
    buckets = _bucket(index, granularity)
    return pd.Series(1, index=buckets, dtype=np.int64).groupby(level=0).sum()


def aggregate_pairs(pairs: Iterable[tuple], granularity: str = "daily") -> pd.Series:
    """Sum (date, count) pairs per interval. Returns a sparse Series."""
    _check_granularity(granularity)
    pairs = list(pairs)
    if not pairs:
        return pd.Series(dtype=np.int64)
    dates, counts = zip(*pairs)
    counts = np.asarray(counts, dtype=float)
    if np.any(~np.isfinite(counts)) or np.any(counts < 0) or np.any(counts != np.round(counts)):
        raise InvalidParameterError("counts must be non-negative integers")
    buckets = _bucket(_to_datetime_index(dates), granularity)
    return pd.Series(counts.astype(np.int64), index=buckets).groupby(level=0).sum()


def fill_gaps(counts: pd.Series, granularity: str) -> pd.Series:
    """Reindex onto every interval between the first and last bucket, 0 where absent."""
    counts = counts.sort_index()
    full_index = pd.date_range(counts.index[0], counts.index[-1], freq=GRANULARITY_FREQ[granularity])
    filled = counts.reindex(full_index, fill_value=0)
    n_missing = len(full_index) - len(counts)
    if n_missing:
        logger.info(f"Filled {n_missing}/{len(full_index)} empty {granularity} intervals with 0")
    return filled


# ── Public API ────────────────────────────────────────────────────────────────

def build_series(
    events: Iterable = (),
    sources: Iterable[Iterable[tuple]] = (),
    granularity: str = "daily",
    min_points: int = 1,
) -> HistoricalSeries:
    """
    Merge events and (date, count) sources into one gap-free series.

    Args:
        events      : completion timestamps, each counted once
        sources     : iterables of (date, count) pairs, summed per interval
        granularity : "daily" or "monthly"
        min_points  : minimum length of the resulting series

    Raises:
        InsufficientDataError if the built series is shorter than min_points
        InvalidParameterError on negative / fractional counts or bad granularity
    """
    _check_granularity(granularity)
    parts = [aggregate_events(events, granularity)]
    parts.extend(aggregate_pairs(source, granularity) for source in sources)
    parts = [p for p in parts if not p.empty]

    if not parts:
        raise InsufficientDataError(
            f"No observations; at least {max(min_points, 1)} {granularity} points required",
            required=max(min_points, 1), available=0,
        )

    merged = pd.concat(parts).groupby(level=0).sum()
    filled = fill_gaps(merged, granularity)

    if len(filled) < min_points:
        raise InsufficientDataError(
            f"Series has {len(filled)} {granularity} points; at least {min_points} required",
            required=min_points, available=len(filled),
        )

    logger.info(
        f"Built {granularity} series: {len(filled)} points "
        f"({filled.index[0].date()} → {filled.index[-1].date()}), total={int(filled.sum())}"
    )
    return HistoricalSeries(filled, granularity)


def series_from_events(events: Iterable, granularity: str = "daily", min_points: int = 1) -> HistoricalSeries:
    return build_series(events=events, granularity=granularity, min_points=min_points)


def series_from_pairs(
    *sources: Iterable[tuple], granularity: str = "daily", min_points: int = 1
) -> HistoricalSeries:
    return build_series(sources=sources, granularity=granularity, min_points=min_points)
