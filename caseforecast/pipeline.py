"""
pipeline.py
-----------
Request-layer entry point: history → order → fit → forecast → validate → report.

    report = generate_forecast(series, horizon=12)
    report.to_dict()   # shape persisted by the storage layer

Usage:
    python -m caseforecast.pipeline --config configs/default.yaml
    python -m caseforecast.pipeline --input data/raw/history.csv --horizon 6 --granularity monthly
    python -m caseforecast.pipeline --backtest
"""

from __future__ import annotations
import argparse
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from caseforecast.errors import InsufficientDataError, InvalidParameterError, ModelTrainingFailure
from caseforecast.evaluation.backtest import backtest, backtest_orders, compare_orders
from caseforecast.evaluation.metrics import metrics_dataframe
from caseforecast.evaluation.validator import ValidationPolicy, validate
from caseforecast.features.build_series import build_series
from caseforecast.features.patterns import assess_data_quality, detect_seasonality, detect_trend
from caseforecast.models.arima_model import fit, forecast
from caseforecast.models.fallback_model import fallback_forecast
from caseforecast.models.presets import default_order
from caseforecast.types import HistoricalSeries, MetricsReport, ModelOrder
from caseforecast.utils.data_loader import load_config, load_history_csv, resolve_path

logger = logging.getLogger(__name__)

DEFAULT_FORECASTING = {
    "confidence_level": 0.95,
    "min_points": 3,
    "require_convergence": True,
    "fallback_on_failure": False,
    "presets": None,
}


@dataclass
class ForecastReport:
    predictions: list[dict]
    model_version: str
    order: Optional[ModelOrder]
    accuracy_metrics: Optional[MetricsReport]
    trend: str
    seasonality_detected: bool
    data_quality: str
    advisories: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "predictions": self.predictions,
            "model_version": self.model_version,
            "accuracy_metrics": self.accuracy_metrics.to_dict() if self.accuracy_metrics else None,
            "trend": self.trend,
            "seasonality_detected": self.seasonality_detected,
            "data_quality": self.data_quality,
            "advisories": self.advisories,
        }


def _section(config: Optional[dict], name: str) -> dict:
    return (config or {}).get(name) or {}


def generate_forecast(
    series: HistoricalSeries,
    horizon: int,
    order=None,
    config: Optional[dict] = None,
) -> ForecastReport:
    """
    Produce a validated forecast plus back-tested accuracy for one series.

    Args:
        series  : gap-free history (see build_series)
        horizon : number of future intervals
        order   : explicit ModelOrder / sequence; None picks a preset
        config  : parsed YAML config (forecasting / validation / backtest sections)

    Raises:
        InsufficientDataError, InvalidParameterError, ModelTrainingFailure
        (the last only when fallback_on_failure is off)
    """
    fc_cfg = {**DEFAULT_FORECASTING, **_section(config, "forecasting")}
    bt_cfg = _section(config, "backtest")
    policy = ValidationPolicy.from_config(_section(config, "validation").get("production"))

    if isinstance(horizon, bool) or not isinstance(horizon, int) or horizon < 1:
        raise InvalidParameterError(f"horizon must be a positive integer, got {horizon!r}")

    if len(series) < fc_cfg["min_points"]:
        raise InsufficientDataError(
            f"At least {fc_cfg['min_points']} data points required, got {len(series)}",
            required=fc_cfg["min_points"], available=len(series),
        )
    if order is None and fc_cfg.get("order"):
        order = fc_cfg["order"]
    order = default_order(series, fc_cfg.get("presets")) if order is None else (
        order if isinstance(order, ModelOrder) else ModelOrder.from_sequence(order)
    )
    logger.info(f"Forecasting {horizon} {series.granularity} periods with {order.label} on {series!r}")

    used_fallback = False
    model_advisories = frozenset()
    try:
        model = fit(series, order, require_convergence=fc_cfg["require_convergence"])
        raw = forecast(model, horizon, confidence_level=fc_cfg["confidence_level"])
        model_advisories = model.advisories
    except ModelTrainingFailure as e:
        if not fc_cfg["fallback_on_failure"]:
            raise
        logger.warning(f"{order.label} failed ({e}); falling back to trend forecast")
        raw = fallback_forecast(series.values, horizon, confidence_level=fc_cfg["confidence_level"])
        used_fallback = True

    outcome = validate(raw, series, policy)
    result = outcome.result

    accuracy = None
    if not used_fallback:
        min_points = (bt_cfg.get("min_points") or {}).get(series.granularity)
        try:
            run = backtest(
                series, order,
                split_ratio=bt_cfg.get("split_ratio", 0.8),
                policy=policy,
                min_points=min_points,
                require_convergence=fc_cfg["require_convergence"],
                confidence_level=fc_cfg["confidence_level"],
            )
            accuracy = run.metrics
        except InsufficientDataError as e:
            logger.warning(f"Skipping accuracy back-test: {e}")

    dates = series.future_dates(horizon)
    predictions = [
        {
            "date": d.date().isoformat(),
            "predicted_count": int(p),
            "lower_bound": int(lo),
            "upper_bound": int(hi),
            "confidence_level": result.confidence_level,
        }
        for d, p, lo, hi in zip(dates, result.predictions, result.lower_bound, result.upper_bound)
    ]

    values = series.values
    season = order.s if order.is_seasonal else (12 if series.granularity == "monthly" else 7)
    flags = outcome.flags | model_advisories
    version = (
        f"Fallback-Trend-{series.granularity}-v1.0" if used_fallback
        else f"Local-SARIMA-{series.granularity}-v2.0 {order.label}"
    )
    report = ForecastReport(
        predictions=predictions,
        model_version=version,
        order=None if used_fallback else order,
        accuracy_metrics=accuracy,
        trend=detect_trend(values),
        seasonality_detected=detect_seasonality(values, season),
        data_quality=assess_data_quality(len(series)),
        advisories=sorted(flag.code for flag in flags),
    )
    logger.info(
        f"Forecast complete: {len(predictions)} periods | trend={report.trend} | "
        f"seasonal={report.seasonality_detected} | advisories={report.advisories or 'none'}"
    )
    return report


def load_series(config: dict, input_csv: Optional[str] = None, granularity: Optional[str] = None) -> HistoricalSeries:
    data_cfg = config["data"]
    history = load_history_csv(
        input_csv or data_cfg["input_csv"],
        date_col=data_cfg.get("date_col", "date"),
        count_col=data_cfg.get("count_col"),
    )
    return build_series(
        events=history["events"],
        sources=[history["pairs"]],
        granularity=granularity or data_cfg.get("granularity", "monthly"),
    )


def run_backtests(config: dict, series: HistoricalSeries):
    """Rank the configured candidate orders. Returns (leaderboard, metrics summary)."""
    bt_cfg = config["backtest"]
    policy = ValidationPolicy.from_config(config["validation"].get("diagnostic"))
    runs = backtest_orders(
        series,
        bt_cfg["candidate_orders"],
        max_workers=bt_cfg.get("max_workers"),
        split_ratio=bt_cfg.get("split_ratio", 0.8),
        policy=policy,
        min_points=(bt_cfg.get("min_points") or {}).get(series.granularity),
    )
    summary = metrics_dataframe([r.metrics for r in runs if r.metrics is not None])
    return compare_orders(runs), summary


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    parser = argparse.ArgumentParser(description="SARIMA count forecasting")
    parser.add_argument("--config", default="configs/default.yaml")
    parser.add_argument("--input", help="history CSV (overrides data.input_csv)")
    parser.add_argument("--granularity", choices=["daily", "monthly"])
    parser.add_argument("--horizon", type=int)
    parser.add_argument("--order", type=int, nargs="+", help="p d q [P D Q s]")
    parser.add_argument("--backtest", action="store_true", help="rank the candidate orders instead")
    args = parser.parse_args()

    config = load_config(args.config)
    out_dir = resolve_path(config["evaluation"]["output_dir"])
    out_dir.mkdir(parents=True, exist_ok=True)
    series = load_series(config, args.input, args.granularity)

    if args.backtest:
        leaderboard, summary = run_backtests(config, series)
        leaderboard.to_csv(out_dir / "order_leaderboard.csv", index=False)
        summary.to_csv(out_dir / "metrics_summary.csv", index=False)
        print("\n" + "=" * 60)
        print("ORDER LEADERBOARD")
        print("=" * 60)
        print(leaderboard.to_string())
        print("\nMetrics across successful orders:")
        print(summary.to_string(index=False))
        return

    report = generate_forecast(
        series,
        horizon=args.horizon or config["forecasting"]["horizon"],
        order=args.order,
        config=config,
    )
    with open(out_dir / "forecast.json", "w") as f:
        json.dump(report.to_dict(), f, indent=2)
    print(json.dumps(report.to_dict(), indent=2))
    print(f"\n✅ Outputs → {out_dir}/")


if __name__ == "__main__":
    main()
