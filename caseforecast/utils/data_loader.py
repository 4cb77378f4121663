"""
data_loader.py — Loads the YAML config and historical count CSVs.
"""
from __future__ import annotations
import logging
from pathlib import Path
import pandas as pd
import yaml

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parent.parent.parent

def resolve_path(path: str | Path) -> Path:
    p = Path(path)
    return p if p.is_absolute() else ROOT / p

def load_config(path: str = "configs/default.yaml") -> dict:
    with open(resolve_path(path)) as f:
        return yaml.safe_load(f)

def load_history_csv(path: str | Path, date_col: str = "date", count_col: str | None = "count") -> dict:
    """
    Read one history CSV.

    With a `count_col` present each row is a (date, count) pair; without it
    each row is a single event (e.g. an appointment completion timestamp).
    Returns {"events": [...], "pairs": [...]} ready for build_series.
    """
    p = resolve_path(path)
    logger.info(f"Loading history from {p}...")
    df = pd.read_csv(p, parse_dates=[date_col])
    df = df.dropna(subset=[date_col])
    if count_col and count_col in df.columns:
        df[count_col] = df[count_col].fillna(0)
        pairs = list(zip(df[date_col], df[count_col]))
        logger.info(f"Loaded {len(pairs)} (date, count) rows, total={df[count_col].sum():.0f}")
        return {"events": [], "pairs": pairs}
    events = df[date_col].tolist()
    logger.info(f"Loaded {len(events)} event rows")
    return {"events": events, "pairs": []}
