# kpi_activity.py
#
# Activity resolver: per-player day offsets, recency and exact-day return flags.
#
# day_offset = session_date - install_date (whole days). Offsets < 0 are data
# quality violations: they never set a return flag and are counted. A player
# is D7-retained only if one of their sessions has offset exactly 7.

from __future__ import annotations

from typing import Tuple

import pandas as pd

from kpi_config import KpiConfig


def session_offsets(players: pd.DataFrame, sessions: pd.DataFrame) -> pd.DataFrame:
    """Sessions joined to install_date; day_offset is <NA> when install_date is invalid."""
    s = sessions[["session_id", "player_id", "session_date"]].merge(
        players[["player_id", "install_date"]], on="player_id", how="left"
    )
    s["day_offset"] = (s["session_date"] - s["install_date"]).dt.days.astype("Int64")
    return s


def flag_column(day: int) -> str:
    return f"returned_d{day}"


def resolve_activity(
    players: pd.DataFrame,
    sessions: pd.DataFrame,
    config: KpiConfig = KpiConfig(),
) -> Tuple[pd.DataFrame, int]:
    """Build one activity record per player (players with no sessions included).

    Returns (activity frame indexed by player_id, negative offset session count).
    """
    s = session_offsets(players, sessions)

    negative = (s["day_offset"] < 0).fillna(False).astype(bool)
    n_negative = int(negative.sum())
    valid = s[s["day_offset"].notna() & ~negative].copy()
    valid["day_offset"] = valid["day_offset"].astype(int)

    out = pd.DataFrame(index=pd.Index(players["player_id"], name="player_id"))

    # recency and volume use every dated session, offsets only the valid ones
    per_player = s.groupby("player_id").agg(
        session_count=("session_id", "size"),
        active_days=("session_date", "nunique"),
        last_activity_date=("session_date", "max"),
    )
    out = out.join(per_player, how="left")
    out["session_count"] = out["session_count"].fillna(0).astype(int)
    out["active_days"] = out["active_days"].fillna(0).astype(int)
    out["last_activity_date"] = pd.to_datetime(out["last_activity_date"])

    offsets = {pid: frozenset(g.tolist()) for pid, g in valid.groupby("player_id")["day_offset"]}
    out["day_offsets"] = pd.Series(
        [offsets.get(pid, frozenset()) for pid in out.index], index=out.index, dtype=object
    )
    out["max_day_offset"] = valid.groupby("player_id")["day_offset"].max().reindex(out.index).astype("Int64")

    for day in config.retention_days:
        hit = valid.loc[valid["day_offset"] == day, "player_id"].unique()
        out[flag_column(day)] = out.index.isin(hit)

    lo, hi = config.week1_first_day, config.week1_last_day
    week1 = valid[(valid["day_offset"] >= lo) & (valid["day_offset"] <= hi)]
    out["week1_sessions"] = week1.groupby("player_id").size().reindex(out.index).fillna(0).astype(int)
    out["week1_active"] = out["week1_sessions"] > 0

    return out, n_negative
