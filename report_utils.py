# report_utils.py
#
# Formatting, figure and CLI helpers shared by the report scripts.

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd
import matplotlib.pyplot as plt

from kpi_config import CHURN_PRESETS, KpiConfig, churn_tiers_for
from kpi_tables import AnomalySummary


NA_TEXT = "n/a"


def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)

def fmt_int(n: int) -> str:
    return f"{int(n):,}"

def fmt_money(x: Optional[float]) -> str:
    if x is None or pd.isna(x):
        return NA_TEXT
    return f"${float(x):,.2f}"

def fmt_pct(x: Optional[float]) -> str:
    # x is already a percentage (0..100)
    if x is None or pd.isna(x):
        return NA_TEXT
    return f"{float(x):.2f}%"

def fmt_rate(x: Optional[float]) -> str:
    # x is a fraction (0..1)
    if x is None or pd.isna(x):
        return NA_TEXT
    return f"{100.0 * float(x):.2f}%"

def fmt_num(x: Optional[float], digits: int = 2) -> str:
    if x is None or pd.isna(x):
        return NA_TEXT
    return f"{float(x):.{digits}f}"

def save_fig(path: Path) -> None:
    plt.tight_layout()
    plt.savefig(path, dpi=180)
    plt.close()

def markdown_table(df: pd.DataFrame, max_rows: int = 30) -> str:
    out = df.copy()
    if len(out) > max_rows:
        out = out.head(max_rows).copy()
    return out.to_markdown(index=False)

def format_columns(df: pd.DataFrame, pct: Iterable[str] = (), money: Iterable[str] = (), num: Iterable[str] = ()) -> pd.DataFrame:
    out = df.copy()
    for c in pct:
        out[c] = out[c].map(fmt_pct)
    for c in money:
        out[c] = out[c].map(fmt_money)
    for c in num:
        out[c] = out[c].map(fmt_num)
    for c in out.columns:
        if pd.api.types.is_datetime64_any_dtype(out[c]):
            out[c] = out[c].dt.strftime("%Y-%m-%d").fillna(NA_TEXT)
    return out


# -----------------------------
# CLI
# -----------------------------

def add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", type=str, default="data", help="Directory holding players/sessions/transactions")
    parser.add_argument("--as_of", type=str, default=None, help="Reference date for recency (default: today)")
    parser.add_argument("--granularity", type=str, default="week", choices=["week", "month"], help="Cohort granularity")
    parser.add_argument("--week1_include_install_day", action="store_true",
                        help="Count day 0 inside the week-1 activity window")
    parser.add_argument("--churn_preset", type=str, default="four_tier",
                        choices=sorted(CHURN_PRESETS), help="Churn risk tier scheme")
    parser.add_argument("--include_churned_tier", action="store_true",
                        help="Append the terminal Churned (>30 days) tier to four_tier")


def config_from_args(args: argparse.Namespace) -> KpiConfig:
    return KpiConfig(
        cohort_granularity=args.granularity,
        week1_include_install_day=args.week1_include_install_day,
        churn_tiers=churn_tiers_for(args.churn_preset, args.include_churned_tier),
        as_of=pd.Timestamp(args.as_of) if args.as_of else None,
    )


def print_anomalies(anomalies: AnomalySummary) -> None:
    for kind, count in anomalies.nonzero().items():
        print(f"[warn] {kind}: {count:,} record(s) excluded or flagged")
