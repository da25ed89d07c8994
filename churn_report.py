# churn_report.py
#
# Churn risk + revenue correlation report.
#
# Churn risk:
#   - days_since_last_session = as_of - last session date
#   - tier from a fixed step function (default four_tier: Active <=3, Low Risk 4-7,
#     Medium Risk 8-14, High Risk >14; --include_churned_tier adds Churned >30)
#
# Revenue correlation, per platform / acquisition source / retention segment:
#   - total revenue, revenue per user, ARPPU, conversion rate, activity rate
#
# Usage:
#   python churn_report.py --input data --outdir outputs/churn_report --as_of 2025-03-01
#
# Notes:
# - Zero-session and zero-transaction players stay in every denominator.
# - The per-player churn list only holds players with at least one session;
#   the tier distribution counts the rest under "No Activity".

from __future__ import annotations

import argparse
from pathlib import Path

import pandas as pd
import matplotlib.pyplot as plt

from kpi_metrics import (
    PlayerBase,
    analyze,
    churn_risk_by_player,
    churn_tier_distribution,
    revenue_by_group,
)
from kpi_tables import load_tables
from report_utils import (
    add_common_args,
    config_from_args,
    ensure_dir,
    format_columns,
    markdown_table,
    print_anomalies,
    save_fig,
)


REVENUE_GROUPINGS = ["platform", "acquisition_source", "retention_segment"]


# -----------------------------
# Plots
# -----------------------------

def plot_tier_distribution(tiers: pd.DataFrame, outpath: Path) -> None:
    plt.figure(figsize=(8, 4.5))
    plt.bar(tiers["churn_risk_level"], tiers["players"])
    plt.ylabel("Players")
    plt.title("Players by Churn Risk Tier")
    plt.xticks(rotation=20, ha="right")
    save_fig(outpath)


def plot_revenue_per_user(tbl: pd.DataFrame, by: str, outpath: Path) -> None:
    plt.figure(figsize=(8, 4.5))
    plt.bar(tbl[by], tbl["revenue_per_user"].astype(float).fillna(0.0))
    plt.ylabel("Revenue per user (USD)")
    plt.title(f"Revenue per User by {by.replace('_', ' ').title()}")
    plt.xticks(rotation=20, ha="right")
    save_fig(outpath)


def plot_conversion(tbl: pd.DataFrame, by: str, outpath: Path) -> None:
    plt.figure(figsize=(8, 4.5))
    plt.bar(tbl[by], tbl["conversion_rate_pct"].astype(float).fillna(0.0))
    plt.ylabel("Conversion rate (%)")
    plt.title(f"Payer Conversion by {by.replace('_', ' ').title()}")
    plt.xticks(rotation=20, ha="right")
    save_fig(outpath)


# -----------------------------
# Report writer
# -----------------------------

def write_report(base: PlayerBase, outdir: Path, top_n: int = 25) -> Path:
    figs = outdir / "figures"
    ensure_dir(figs)

    config = base.config
    tiers = churn_tier_distribution(base)
    churn_list = churn_risk_by_player(base)
    revenue = {by: revenue_by_group(base, by) for by in REVENUE_GROUPINGS}

    # Save tables
    tiers.to_csv(outdir / "churn_tier_distribution.csv", index=False)
    churn_list.to_csv(outdir / "churn_risk_by_player.csv", index=False)
    for by, tbl in revenue.items():
        tbl.to_csv(outdir / f"revenue_by_{by}.csv", index=False)
    base.anomalies.to_frame().to_csv(outdir / "anomalies.csv", index=False)

    # Figures
    plot_tier_distribution(tiers, figs / "churn_tiers.png")
    plot_revenue_per_user(revenue["retention_segment"], "retention_segment", figs / "rpu_by_segment.png")
    plot_conversion(revenue["platform"], "platform", figs / "conversion_by_platform.png")

    tiers_fmt = format_columns(tiers, pct=["pct_of_players"], money=["total_revenue"])
    churn_fmt = format_columns(churn_list.head(top_n), money=["total_revenue"])
    revenue_fmt = {
        by: format_columns(
            tbl,
            pct=["conversion_rate_pct", "activity_rate_pct"],
            money=["total_revenue", "revenue_per_user", "arppu"],
        )
        for by, tbl in revenue.items()
    }

    bounds = []
    lower = None
    for upper, label in config.churn_tiers.bounds:
        bounds.append(f"{label}: <= {upper} days" if lower is None else f"{label}: {lower}-{upper} days")
        lower = upper + 1
    bounds.append(f"{config.churn_tiers.terminal}: > {config.churn_tiers.bounds[-1][0]} days")

    at_risk = tiers[tiers["churn_risk_level"].isin(["Medium Risk", "High Risk"])]["players"].sum()

    md = []
    md.append("# Churn Risk & Revenue Correlation Report\n\n")
    md.append(f"Recency measured as of **{config.as_of_date().date()}**.\n\n")

    md.append("## 1. Churn Risk Tiers\n")
    for b in bounds:
        md.append(f"- {b}\n")
    md.append("\n")
    md.append(markdown_table(tiers_fmt, max_rows=10) + "\n\n")
    md.append(f"![Churn tiers]({Path('figures') / 'churn_tiers.png'})\n\n")
    md.append(f"Players in Medium/High risk tiers (re-engagement targets): **{int(at_risk):,}**\n\n")

    md.append(f"## 2. Highest-Value Players by Churn Risk (top {top_n})\n")
    md.append("Ordered by total revenue, then by recency.\n\n")
    md.append(markdown_table(churn_fmt, max_rows=top_n) + "\n\n")

    md.append("## 3. Revenue Correlation\n\n")
    md.append("### By Retention Segment\n\n")
    md.append(markdown_table(revenue_fmt["retention_segment"], max_rows=10) + "\n\n")
    md.append(f"![RPU by segment]({Path('figures') / 'rpu_by_segment.png'})\n\n")
    md.append("### By Platform\n\n")
    md.append(markdown_table(revenue_fmt["platform"], max_rows=10) + "\n\n")
    md.append(f"![Conversion by platform]({Path('figures') / 'conversion_by_platform.png'})\n\n")
    md.append("### By Acquisition Source\n\n")
    md.append(markdown_table(revenue_fmt["acquisition_source"], max_rows=20) + "\n\n")

    md.append("## 4. Data Quality\n\n")
    md.append(markdown_table(base.anomalies.to_frame(), max_rows=20) + "\n\n")

    md.append("**Note:** Tiers are threshold based and descriptive. Tune thresholds per title before running campaigns.\n")

    report_path = outdir / "churn_report.md"
    report_path.write_text("".join(md), encoding="utf-8")
    return report_path


# -----------------------------
# Main
# -----------------------------

def main() -> None:
    parser = argparse.ArgumentParser()
    add_common_args(parser)
    parser.add_argument("--outdir", type=str, default="outputs/churn_report", help="Output directory")
    parser.add_argument("--top_n", type=int, default=25, help="Rows of the churn list shown in the report")
    args = parser.parse_args()

    outdir = Path(args.outdir)
    ensure_dir(outdir)

    config = config_from_args(args)
    base = analyze(load_tables(Path(args.input)), config)
    print_anomalies(base.anomalies)

    report_path = write_report(base, outdir, top_n=args.top_n)
    print(f"[OK] Churn report written: {report_path}")
    print(f"[OK] Outputs saved under: {outdir.resolve()}")


if __name__ == "__main__":
    main()
