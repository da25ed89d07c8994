# retention_report.py
# Cohort retention report for the players / sessions / transactions snapshot.
#
# Usage:
#   python retention_report.py --input data --outdir outputs/retention_report
#   python retention_report.py --input data --granularity month --fill_missing
#
# Outputs:
#   outputs/retention_report/retention_report.md
#   outputs/retention_report/figures/*.png
#   outputs/retention_report/*.csv
#   outputs/retention_report/player_summary.parquet
#
# Notes:
# - DN retention is exact-day: a player counts for D7 only with a session on day offset 7.
# - Quality score = 100 * (0.3*D1 + 0.5*D7 + 0.2*D30) with fractional rates.
# - Players with an invalid install date are left out of every table here (all are date based).

from __future__ import annotations

import argparse
from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from kpi_metrics import (
    KpiSnapshot,
    PlayerBase,
    acquisition_performance,
    analyze,
    kpi_snapshot,
    retention_by_cohort,
)
from kpi_tables import load_tables
from report_utils import (
    add_common_args,
    config_from_args,
    ensure_dir,
    fmt_int,
    fmt_money,
    fmt_num,
    fmt_rate,
    format_columns,
    markdown_table,
    print_anomalies,
    save_fig,
)


# -----------------------------
# Plots
# -----------------------------

def plot_cohort_retention(cohorts: pd.DataFrame, days, outpath: Path) -> None:
    plt.figure(figsize=(9, 4.8))
    for day in days:
        plt.plot(cohorts["cohort"], cohorts[f"d{day}_retention_pct"].astype(float), marker="o", label=f"D{day}")
    plt.xlabel("Install cohort")
    plt.ylabel("Retention (%)")
    plt.title("Exact-Day Retention by Install Cohort")
    plt.xticks(rotation=45, ha="right")
    plt.legend()
    save_fig(outpath)


def plot_cohort_sizes(cohorts: pd.DataFrame, outpath: Path) -> None:
    plt.figure(figsize=(9, 4.5))
    plt.bar(cohorts["cohort"], cohorts["cohort_size"])
    plt.xlabel("Install cohort")
    plt.ylabel("Installs")
    plt.title("Cohort Sizes")
    plt.xticks(rotation=45, ha="right")
    save_fig(outpath)


def plot_source_quality(perf: pd.DataFrame, outpath: Path) -> None:
    tbl = perf.sort_values("retention_quality_score", ascending=True, na_position="first")
    plt.figure(figsize=(8, 4.5))
    plt.barh(tbl["acquisition_source"], tbl["retention_quality_score"].astype(float).fillna(0.0))
    plt.xlabel("Retention quality score")
    plt.title("Acquisition Sources by Retention Quality")
    save_fig(outpath)


def plot_week1(perf: pd.DataFrame, outpath: Path) -> None:
    plt.figure(figsize=(8, 4.5))
    idx = np.arange(len(perf))
    plt.bar(idx, perf["week1_retention_pct"].astype(float).fillna(0.0))
    plt.xticks(idx, perf["acquisition_source"].tolist(), rotation=30, ha="right")
    plt.ylabel("Week-1 retention (%)")
    plt.title("Week-1 Retention by Acquisition Source")
    save_fig(outpath)


# -----------------------------
# Report writer
# -----------------------------

def write_report(base: PlayerBase, outdir: Path, fill_missing: bool = False) -> Path:
    figs_dir = outdir / "figures"
    ensure_dir(figs_dir)

    config = base.config
    days = config.retention_days
    snap: KpiSnapshot = kpi_snapshot(base)
    cohorts = retention_by_cohort(base, fill_missing=fill_missing)
    perf = acquisition_performance(base)
    anomalies = base.anomalies.to_frame()

    # Save tables
    cohorts.to_csv(outdir / "retention_by_cohort.csv", index=False)
    perf.to_csv(outdir / "acquisition_performance.csv", index=False)
    anomalies.to_csv(outdir / "anomalies.csv", index=False)
    base.summary.drop(columns=["day_offsets"]).to_parquet(outdir / "player_summary.parquet", index=False)

    # Figures
    figures = []
    if len(cohorts) > 0:
        plot_cohort_retention(cohorts, days, figs_dir / "cohort_retention.png")
        plot_cohort_sizes(cohorts, figs_dir / "cohort_sizes.png")
        figures += ["cohort_retention.png", "cohort_sizes.png"]
    if len(perf) > 0:
        plot_source_quality(perf, figs_dir / "source_quality.png")
        plot_week1(perf, figs_dir / "week1_by_source.png")
        figures += ["source_quality.png", "week1_by_source.png"]

    rate_cols = [f"d{d}_retention_pct" for d in days]
    cohorts_fmt = format_columns(cohorts, pct=rate_cols, num=["retention_quality_score"])
    perf_fmt = format_columns(
        perf,
        pct=["week1_retention_pct"] + rate_cols,
        num=["avg_sessions_week1", "retention_quality_score"],
    )

    weights = " + ".join(f"{w:g}*D{d}" for d, w in config.quality_weights.items())
    week1 = f"days {config.week1_first_day}-{config.week1_last_day}"

    md = []
    md.append("# Player Retention Report\n\n")
    md.append("Cohort retention, acquisition source quality and data quality for the player snapshot.\n\n")

    md.append("## 1. Snapshot\n")
    md.append(f"- Players: **{fmt_int(snap.n_players)}** ({fmt_int(snap.n_valid_install)} with a valid install date)\n")
    md.append(f"- Install cohorts ({config.cohort_granularity}): **{fmt_int(snap.n_cohorts)}**\n")
    md.append(f"- Sessions: **{fmt_int(snap.n_sessions)}**\n")
    md.append(f"- Transactions: **{fmt_int(snap.n_transactions)}**\n")
    md.append(f"- Total revenue: **{fmt_money(snap.total_revenue)}**\n")
    md.append(f"- Payer conversion: **{fmt_rate(snap.payer_conversion)}**\n")
    md.append(f"- ARPU: **{fmt_money(snap.arpu)}**\n")
    md.append(f"- ARPPU: **{fmt_money(snap.arppu)}**\n")
    for d in days:
        md.append(f"- D{d} retention: **{fmt_rate(snap.retention[d])}**\n")
    md.append(f"- Retention quality score: **{fmt_num(snap.quality_score)}**\n\n")

    md.append("## 2. Definitions\n")
    md.append("- **DN retention**: share of a cohort with at least one session on day offset exactly N after install.\n")
    md.append(f"- **Retention quality score**: 100 x ({weights}), rates as fractions.\n")
    md.append(f"- **Week-1 active**: at least one session in {week1} after install.\n")
    md.append("- Undefined ratios (empty cohort or group) are shown as `n/a`.\n\n")

    md.append("## 3. Retention by Install Cohort\n\n")
    md.append(markdown_table(cohorts_fmt, max_rows=60) + "\n\n")
    if "cohort_retention.png" in figures:
        md.append(f"![Cohort retention]({Path('figures') / 'cohort_retention.png'})\n\n")
        md.append(f"![Cohort sizes]({Path('figures') / 'cohort_sizes.png'})\n\n")

    md.append("## 4. Acquisition Source Performance\n")
    md.append("Sources ranked by retention quality score.\n\n")
    md.append(markdown_table(perf_fmt, max_rows=30) + "\n\n")
    if "source_quality.png" in figures:
        md.append(f"![Source quality]({Path('figures') / 'source_quality.png'})\n\n")
        md.append(f"![Week-1 by source]({Path('figures') / 'week1_by_source.png'})\n\n")

    md.append("## 5. Data Quality\n")
    md.append("Records excluded from (or flagged in) the computations above.\n\n")
    md.append(markdown_table(anomalies, max_rows=20) + "\n\n")

    md.append("## 6. Notes\n")
    md.append("- Cohorts with D1 well below the overall rate point at onboarding problems for that install period.\n")
    md.append("- Shift acquisition budget toward sources with the highest quality score, not only the highest D1.\n")

    report_path = outdir / "retention_report.md"
    report_path.write_text("".join(md), encoding="utf-8")
    return report_path


# -----------------------------
# Main
# -----------------------------

def main() -> None:
    parser = argparse.ArgumentParser()
    add_common_args(parser)
    parser.add_argument("--outdir", type=str, default="outputs/retention_report", help="Output directory")
    parser.add_argument("--fill_missing", action="store_true", help="Include calendar cohorts with zero installs")
    args = parser.parse_args()

    outdir = Path(args.outdir)
    ensure_dir(outdir)

    config = config_from_args(args)
    base = analyze(load_tables(Path(args.input)), config)
    print_anomalies(base.anomalies)

    report_path = write_report(base, outdir, fill_missing=args.fill_missing)
    print(f"[OK] Retention report written: {report_path}")
    print(f"[OK] Outputs saved under: {outdir.resolve()}")


if __name__ == "__main__":
    main()
