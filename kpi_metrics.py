# kpi_metrics.py
#
# Metrics aggregator for the player KPI engine.
#
# Flow:
#   raw tables -> prepare_tables -> assign_cohorts + resolve_activity
#              -> build_player_summary (one row per player, outer-joined)
#              -> retention / revenue / churn / acquisition reductions
#
# Every player stays in every denominator: zero-session and zero-transaction
# players contribute zero activity and zero revenue. Ratios with a zero
# denominator are undefined: <NA> in Float64 columns, None for scalars.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

import pandas as pd

from kpi_activity import flag_column, resolve_activity
from kpi_cohorts import assign_cohorts, build_cohorts, cohort_calendar
from kpi_config import (
    DAY0_SEGMENT,
    FOUR_TIER_CHURN,
    NO_ACTIVITY_TIER,
    QUALITY_WEIGHTS,
    UNKNOWN_SEGMENT,
    ChurnTiers,
    KpiConfig,
)
from kpi_tables import AnomalySummary, KpiTables, prepare_tables


GROUPABLE = ("platform", "acquisition_source", "retention_segment", "country", "cohort")


# -----------------------------
# Ratio helpers
# -----------------------------

def safe_ratio(num: float, den: float, scale: float = 1.0) -> Optional[float]:
    if not den:
        return None
    return float(scale * num / den)


def ratio_series(num: pd.Series, den: pd.Series, scale: float = 1.0) -> pd.Series:
    num = num.astype("Float64")
    den = den.astype("Float64")
    return (num * scale) / den.where(den != 0)


def retention_quality_score(
    rates: Mapping[int, Optional[float]],
    weights: Optional[Mapping[int, float]] = None,
) -> Optional[float]:
    """Blended stickiness: 100 * sum(weight_d * rate_d) over fractional rates.

    Undefined (None) when any weighted rate is undefined.
    """
    weights = QUALITY_WEIGHTS if weights is None else weights
    total = 0.0
    for day, w in weights.items():
        r = rates.get(day)
        if r is None or pd.isna(r):
            return None
        total += w * float(r)
    return 100.0 * total


def _quality_column(frame: pd.DataFrame, config: KpiConfig, size_col: str) -> pd.Series:
    score = pd.Series(0.0, index=frame.index, dtype="Float64")
    for day, w in config.quality_weights.items():
        score = score + w * ratio_series(frame[f"d{day}_returning_players"], frame[size_col])
    return score * 100.0


# -----------------------------
# Classification
# -----------------------------

def classify_churn_risk(days_since_last_session: int, tiers: ChurnTiers = FOUR_TIER_CHURN) -> str:
    return tiers.classify(int(days_since_last_session))


def retention_segment(max_day_offset, has_install_date: bool = True, config: KpiConfig = KpiConfig()) -> str:
    if not has_install_date:
        return UNKNOWN_SEGMENT
    if max_day_offset is None or pd.isna(max_day_offset):
        return DAY0_SEGMENT
    for threshold, label in config.retention_segments:
        if max_day_offset >= threshold:
            return label
    return DAY0_SEGMENT


# -----------------------------
# Player summary
# -----------------------------

@dataclass
class PlayerBase:
    summary: pd.DataFrame
    anomalies: AnomalySummary
    config: KpiConfig = field(default_factory=KpiConfig)
    n_sessions: int = 0
    n_transactions: int = 0


def build_player_summary(prepared: KpiTables, config: KpiConfig = KpiConfig()):
    """Single pass over prepared tables: one row per player.

    Returns (summary frame, negative offset session count).
    """
    players = prepared.players
    activity, n_negative = resolve_activity(players, prepared.sessions, config)

    revenue = prepared.transactions.groupby("player_id").agg(
        total_revenue=("amount_usd", "sum"),
        transaction_count=("transaction_id", "size"),
    )

    summary = players.set_index("player_id")
    summary = summary.join(assign_cohorts(players, config.cohort_granularity).set_index("player_id"), how="left")
    summary = summary.join(activity, how="left")
    summary = summary.join(revenue, how="left")

    summary["total_revenue"] = summary["total_revenue"].fillna(0.0).astype(float)
    summary["transaction_count"] = summary["transaction_count"].fillna(0).astype(int)
    summary["is_payer"] = summary["transaction_count"] > 0
    summary["has_session"] = summary["session_count"] > 0
    summary["valid_install"] = summary["install_date"].notna()

    summary["retention_segment"] = [
        retention_segment(m, v, config)
        for m, v in zip(summary["max_day_offset"], summary["valid_install"])
    ]

    as_of = config.as_of_date()
    summary["days_since_last_session"] = (as_of - summary["last_activity_date"]).dt.days.astype("Int64")

    return summary.reset_index(), n_negative


def analyze(tables: KpiTables, config: KpiConfig = KpiConfig()) -> PlayerBase:
    prepared, anomalies = prepare_tables(tables)
    summary, n_negative = build_player_summary(prepared, config)
    anomalies.negative_offset_sessions = n_negative
    return PlayerBase(
        summary=summary,
        anomalies=anomalies,
        config=config,
        n_sessions=int(len(prepared.sessions)),
        n_transactions=int(len(prepared.transactions)),
    )


# -----------------------------
# Retention
# -----------------------------

def _retention_agg(frame: pd.DataFrame, keys, config: KpiConfig) -> pd.DataFrame:
    aggs = {"cohort_size": ("player_id", "nunique")}
    for day in config.retention_days:
        aggs[f"d{day}_returning_players"] = (flag_column(day), "sum")
    return frame.groupby(keys, as_index=False, sort=True).agg(**aggs)


def _add_retention_rates(out: pd.DataFrame, config: KpiConfig, size_col: str) -> pd.DataFrame:
    for day in config.retention_days:
        out[f"d{day}_retention_pct"] = ratio_series(out[f"d{day}_returning_players"], out[size_col], 100.0)
    out["retention_quality_score"] = _quality_column(out, config, size_col)
    return out


def retention_by_cohort(base: PlayerBase, fill_missing: bool = False) -> pd.DataFrame:
    """Exact-day D1/D7/D30 retention per install cohort."""
    config = base.config
    valid = base.summary[base.summary["valid_install"]]

    count_cols = ["cohort_size"] + [f"d{d}_returning_players" for d in config.retention_days]
    if len(valid) == 0:
        out = pd.DataFrame({
            "cohort": pd.Series(dtype=object),
            "cohort_start": pd.Series(dtype="datetime64[ns]"),
            **{c: pd.Series(dtype=int) for c in count_cols},
        })
    else:
        out = _retention_agg(valid, ["cohort", "cohort_start"], config)
        if fill_missing:
            cal = cohort_calendar(out["cohort_start"].min(), out["cohort_start"].max(), config.cohort_granularity)
            out = cal.merge(out.drop(columns=["cohort"]), on="cohort_start", how="left")
            for c in count_cols:
                out[c] = out[c].fillna(0).astype(int)

    out = _add_retention_rates(out, config, "cohort_size")
    return out.sort_values("cohort_start").reset_index(drop=True)


def overall_retention(base: PlayerBase) -> Dict[int, Optional[float]]:
    """Fractional exact-day retention over all players with a valid install date."""
    valid = base.summary[base.summary["valid_install"]]
    n = int(valid["player_id"].nunique())
    return {day: safe_ratio(int(valid[flag_column(day)].sum()), n) for day in base.config.retention_days}


def acquisition_performance(base: PlayerBase) -> pd.DataFrame:
    """Week-1 activity, exact-day retention and quality score per acquisition source."""
    config = base.config
    valid = base.summary[base.summary["valid_install"]]

    out = _retention_agg(valid, ["acquisition_source"], config).rename(columns={"cohort_size": "total_players"})
    week1 = valid.groupby("acquisition_source", as_index=False).agg(
        week1_active_players=("week1_active", "sum"),
        week1_sessions=("week1_sessions", "sum"),
    )
    out = out.merge(week1, on="acquisition_source", how="left")
    out["week1_retention_pct"] = ratio_series(out["week1_active_players"], out["total_players"], 100.0)
    out["avg_sessions_week1"] = ratio_series(out["week1_sessions"], out["total_players"])
    out = _add_retention_rates(out, config, "total_players")
    out = out.drop(columns=["week1_sessions"])
    return out.sort_values(
        ["retention_quality_score", "acquisition_source"], ascending=[False, True], na_position="last"
    ).reset_index(drop=True)


# -----------------------------
# Revenue
# -----------------------------

def revenue_by_group(
    base: PlayerBase,
    by: str,
    expected_groups: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Revenue, ARPU, ARPPU and conversion per group (platform, source, segment, ...)."""
    if by not in GROUPABLE:
        raise ValueError(f"cannot group revenue by {by!r}; choose from {GROUPABLE}")

    frame = base.summary.copy()
    frame[by] = frame[by].astype(object).where(frame[by].notna(), "unknown")

    out = frame.groupby(by, as_index=False).agg(
        total_players=("player_id", "nunique"),
        paying_players=("is_payer", "sum"),
        active_players=("has_session", "sum"),
        total_revenue=("total_revenue", "sum"),
    )
    if expected_groups is not None:
        keys = pd.DataFrame({by: list(dict.fromkeys(list(expected_groups) + out[by].tolist()))})
        out = keys.merge(out, on=by, how="left")
        for c in ["total_players", "paying_players", "active_players"]:
            out[c] = out[c].fillna(0).astype(int)
        out["total_revenue"] = out["total_revenue"].fillna(0.0)

    out["revenue_per_user"] = ratio_series(out["total_revenue"], out["total_players"])
    out["arppu"] = ratio_series(out["total_revenue"], out["paying_players"])
    out["conversion_rate_pct"] = ratio_series(out["paying_players"], out["total_players"], 100.0)
    out["activity_rate_pct"] = ratio_series(out["active_players"], out["total_players"], 100.0)
    return out.sort_values(
        ["revenue_per_user", by], ascending=[False, True], na_position="last"
    ).reset_index(drop=True)


# -----------------------------
# Churn
# -----------------------------

def churn_risk_by_player(base: PlayerBase) -> pd.DataFrame:
    """Per-player churn list (players with at least one dated session)."""
    tiers = base.config.churn_tiers
    active = base.summary[base.summary["has_session"]].copy()
    active["churn_risk_level"] = [tiers.classify(int(d)) for d in active["days_since_last_session"]]
    out = active.rename(columns={
        "last_activity_date": "last_session_date",
        "active_days": "total_active_days",
    })[[
        "player_id", "install_date", "acquisition_source", "last_session_date",
        "days_since_last_session", "total_active_days", "total_revenue", "churn_risk_level",
    ]]
    return out.sort_values(
        ["total_revenue", "days_since_last_session", "player_id"], ascending=[False, True, True]
    ).reset_index(drop=True)


def churn_tier_distribution(base: PlayerBase) -> pd.DataFrame:
    """Players and revenue per churn tier, zero-session players under NO_ACTIVITY_TIER."""
    tiers = base.config.churn_tiers
    per_player = churn_risk_by_player(base)
    n_players = int(len(base.summary))

    labels = list(tiers.labels) + [NO_ACTIVITY_TIER]
    counts = per_player.groupby("churn_risk_level").agg(
        players=("player_id", "size"),
        total_revenue=("total_revenue", "sum"),
    )
    idle = base.summary[~base.summary["has_session"]]
    counts.loc[NO_ACTIVITY_TIER] = [int(len(idle)), float(idle["total_revenue"].sum())]

    out = counts.reindex(labels).rename_axis("churn_risk_level").reset_index()
    out["players"] = out["players"].fillna(0).astype(int)
    out["total_revenue"] = out["total_revenue"].fillna(0.0).astype(float)
    out["pct_of_players"] = ratio_series(out["players"], pd.Series(n_players, index=out.index), 100.0)
    return out


# -----------------------------
# Snapshot
# -----------------------------

@dataclass
class KpiSnapshot:
    n_players: int
    n_valid_install: int
    n_cohorts: int
    n_sessions: int
    n_transactions: int
    payer_users: int
    total_revenue: float
    payer_conversion: Optional[float]
    arpu: Optional[float]
    arppu: Optional[float]
    retention: Dict[int, Optional[float]]
    quality_score: Optional[float]
    as_of: str


def kpi_snapshot(base: PlayerBase) -> KpiSnapshot:
    s = base.summary
    n_players = int(len(s))
    payers = int(s["is_payer"].sum())
    total_revenue = float(s["total_revenue"].sum())
    retention = overall_retention(base)
    return KpiSnapshot(
        n_players=n_players,
        n_valid_install=int(s["valid_install"].sum()),
        n_cohorts=len(build_cohorts(s, base.config.cohort_granularity)),
        n_sessions=base.n_sessions,
        n_transactions=base.n_transactions,
        payer_users=payers,
        total_revenue=total_revenue,
        payer_conversion=safe_ratio(payers, n_players),
        arpu=safe_ratio(total_revenue, n_players),
        arppu=safe_ratio(total_revenue, payers),
        retention=retention,
        quality_score=retention_quality_score(retention, base.config.quality_weights),
        as_of=str(base.config.as_of_date().date()),
    )
