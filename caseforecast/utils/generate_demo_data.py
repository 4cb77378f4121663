"""
generate_demo_data.py — Synthetic case / issuance counts for demos and regression tests.
Usage: python -m caseforecast.utils.generate_demo_data [--seed 42]

Every generator takes an explicit seed and draws from its own
np.random.default_rng, so back-test scenarios are exactly reproducible.
"""
from __future__ import annotations
import argparse
import logging
import numpy as np
import pandas as pd

from caseforecast.types import HistoricalSeries
from caseforecast.utils.data_loader import load_config, resolve_path

logger = logging.getLogger(__name__)

# Monthly pregnancy-complication counts, 3 years, upward trend with a zig-zag.
TRENDING_SERIES = [
    2, 3, 1, 4, 2, 5, 3, 6, 4, 7, 5, 8,
    6, 7, 5, 8, 6, 9, 7, 10, 8, 11, 9, 12,
    10, 11, 9, 12, 10, 13, 11, 14, 12, 15, 13, 16,
]

# Dengue-like counts with a rise / fall cycle, 47 points.
SEASONAL_SERIES = [
    5, 7, 6, 8, 10, 12, 15,
    18, 20, 22, 19, 17, 15, 14,
    12, 10, 8, 6, 5, 7, 9,
    11, 13, 15, 18, 20, 22, 24,
    26, 28, 30, 28, 26, 24, 22,
    20, 18, 16, 14, 12, 10, 8,
    6, 5, 4, 3, 2,
]


def trending_series(start: str = "2022-01-01") -> HistoricalSeries:
    return HistoricalSeries.from_values(TRENDING_SERIES, start=start, granularity="monthly")


def seasonal_series(start: str = "2024-01-01") -> HistoricalSeries:
    return HistoricalSeries.from_values(SEASONAL_SERIES, start=start, granularity="daily")


def generate_case_counts(
    n_periods: int = 48,
    granularity: str = "monthly",
    period: int | None = None,
    base: float = 20.0,
    amplitude: float = 8.0,
    slope: float = 0.1,
    noise: float = 2.0,
    seed: int = 42,
    start: str = "2021-01-01",
) -> HistoricalSeries:
    """Seasonal Poisson-ish counts: level + trend + sine season + noise, floored at 0."""
    rng = np.random.default_rng(seed)
    period = period or (12 if granularity == "monthly" else 7)
    t = np.arange(n_periods)
    phase = rng.uniform(0, 2 * np.pi)
    mean = base + slope * t + amplitude * np.sin(2 * np.pi * t / period + phase)
    counts = np.maximum(0, np.round(mean + rng.normal(0, noise, n_periods))).astype(int)
    return HistoricalSeries.from_values(counts, start=start, granularity=granularity)


def generate_completion_events(
    n_days: int = 120, daily_rate: float = 6.0, weekday_boost: float = 1.5,
    seed: int = 42, start: str = "2024-01-01",
) -> list[pd.Timestamp]:
    """Appointment completion timestamps; weekdays busier than weekends."""
    rng = np.random.default_rng(seed)
    events = []
    for day in pd.date_range(start, periods=n_days, freq="D"):
        rate = daily_rate * (weekday_boost if day.weekday() < 5 else 1.0)
        for _ in range(rng.poisson(rate)):
            events.append(day + pd.Timedelta(minutes=int(rng.integers(8 * 60, 17 * 60))))
    return events


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    parser = argparse.ArgumentParser(description="Write a seeded demo history CSV")
    parser.add_argument("--config", default="configs/default.yaml")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    cfg = load_config(args.config)
    demo = cfg["demo"]
    seed = args.seed if args.seed is not None else demo["seed"]
    series = generate_case_counts(n_periods=demo["n_periods"], granularity=demo["granularity"], seed=seed)
    out = resolve_path(cfg["data"]["input_csv"])
    out.parent.mkdir(parents=True, exist_ok=True)
    df = series.to_series().rename_axis(cfg["data"]["date_col"]).rename(cfg["data"]["count_col"]).reset_index()
    df.to_csv(out, index=False)
    logger.info(f"✅ Demo data saved to {out} ({len(df)} {demo['granularity']} rows, seed={seed})")

if __name__ == "__main__":
    main()
