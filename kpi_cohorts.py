# kpi_cohorts.py
#
# Cohort builder: install date -> install-week (or install-month) cohort.
#
# Week cohorts use ISO week numbering: label "2025-W03", start = Monday.
# Month cohorts: label "2025-01", start = first of month.
# Players without a valid install date belong to no cohort.

from __future__ import annotations

from typing import Dict, FrozenSet

import pandas as pd


def cohort_start(install_date: pd.Series, granularity: str = "week") -> pd.Series:
    d = pd.to_datetime(install_date).dt.normalize()
    if granularity == "week":
        return d - pd.to_timedelta(d.dt.weekday, unit="D")
    if granularity == "month":
        return d.dt.to_period("M").dt.start_time
    raise ValueError(f"unknown cohort granularity: {granularity!r}")


def cohort_label(start: pd.Series, granularity: str = "week") -> pd.Series:
    start = pd.to_datetime(start)
    if granularity == "week":
        iso = start.dt.isocalendar()
        return iso["year"].astype(str) + "-W" + iso["week"].astype(str).str.zfill(2)
    if granularity == "month":
        return start.dt.strftime("%Y-%m")
    raise ValueError(f"unknown cohort granularity: {granularity!r}")


def assign_cohorts(players: pd.DataFrame, granularity: str = "week") -> pd.DataFrame:
    """One row per player with a valid install date: player_id, cohort, cohort_start."""
    valid = players.loc[players["install_date"].notna(), ["player_id", "install_date"]].copy()
    if len(valid) == 0:
        return pd.DataFrame({
            "player_id": pd.Series(dtype=object),
            "cohort": pd.Series(dtype=object),
            "cohort_start": pd.Series(dtype="datetime64[ns]"),
        })
    valid["cohort_start"] = cohort_start(valid["install_date"], granularity)
    valid["cohort"] = cohort_label(valid["cohort_start"], granularity).astype(object)
    return valid[["player_id", "cohort", "cohort_start"]].reset_index(drop=True)


def build_cohorts(players: pd.DataFrame, granularity: str = "week") -> Dict[str, FrozenSet[str]]:
    assigned = assign_cohorts(players, granularity)
    return {
        cohort: frozenset(g["player_id"].tolist())
        for cohort, g in assigned.groupby("cohort", sort=True)
    }


def cohort_calendar(first: pd.Timestamp, last: pd.Timestamp, granularity: str = "week") -> pd.DataFrame:
    """Every cohort between two cohort starts, inclusive (for gap filling)."""
    freq = "7D" if granularity == "week" else "MS"
    starts = pd.Series(pd.date_range(pd.Timestamp(first), pd.Timestamp(last), freq=freq))
    return pd.DataFrame({
        "cohort": cohort_label(starts, granularity).astype(object),
        "cohort_start": starts,
    })
