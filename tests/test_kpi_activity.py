"""
Tests for the activity resolver (day offsets and exact-day return flags)
"""
import pandas as pd

from kpi_activity import resolve_activity
from kpi_config import KpiConfig
from kpi_tables import prepare_tables


def _activity(tables, config=KpiConfig()):
    prepared, _ = prepare_tables(tables)
    return resolve_activity(prepared.players, prepared.sessions, config)


def test_scenario_offsets_and_flags(scenario_tables):
    activity, n_negative = _activity(scenario_tables)
    p = activity.loc["P"]

    assert n_negative == 0
    assert p["day_offsets"] == frozenset({0, 1, 7, 40})
    assert bool(p["returned_d1"]) is True
    assert bool(p["returned_d7"]) is True
    assert bool(p["returned_d30"]) is False
    assert p["last_activity_date"] == pd.Timestamp("2025-02-15")
    assert p["max_day_offset"] == 40
    assert p["session_count"] == 4
    assert p["active_days"] == 4


def test_day8_only_is_not_d7_retained(scenario_tables):
    activity, _ = _activity(scenario_tables)
    q = activity.loc["Q"]

    assert q["day_offsets"] == frozenset({8})
    assert bool(q["returned_d7"]) is False
    assert bool(q["week1_active"]) is False


def test_players_without_sessions_are_kept(scenario_tables):
    activity, _ = _activity(scenario_tables)
    r = activity.loc["R"]

    assert len(activity) == 4
    assert r["day_offsets"] == frozenset()
    assert r["session_count"] == 0
    assert pd.isna(r["last_activity_date"])
    assert pd.isna(r["max_day_offset"])
    assert not r[["returned_d1", "returned_d7", "returned_d30"]].any()


def test_negative_offsets_are_excluded_and_counted(make_tables):
    tables = make_tables(
        players=[("A", "2025-01-10", "iOS", "US", "organic")],
        sessions=[
            ("s1", "A", "2025-01-09", 5.0),  # offset -1
            ("s2", "A", "2025-01-03", 5.0),  # offset -7
            ("s3", "A", "2025-01-11", 5.0),  # offset 1
        ],
    )
    activity, n_negative = _activity(tables)

    assert n_negative == 2
    assert activity.loc["A", "day_offsets"] == frozenset({1})
    assert bool(activity.loc["A", "returned_d7"]) is False


def test_invalid_install_date_keeps_recency_but_no_offsets(make_tables):
    tables = make_tables(
        players=[("A", None, "iOS", "US", "organic")],
        sessions=[("s1", "A", "2025-01-11", 5.0)],
    )
    activity, n_negative = _activity(tables)

    assert n_negative == 0
    assert activity.loc["A", "day_offsets"] == frozenset()
    assert activity.loc["A", "last_activity_date"] == pd.Timestamp("2025-01-11")
    assert activity.loc["A", "session_count"] == 1


def test_week1_window_install_day_boundary(scenario_tables):
    exclusive, _ = _activity(scenario_tables, KpiConfig(week1_include_install_day=False))
    inclusive, _ = _activity(scenario_tables, KpiConfig(week1_include_install_day=True))

    # P has sessions on offsets 0, 1 and 7
    assert exclusive.loc["P", "week1_sessions"] == 2
    assert inclusive.loc["P", "week1_sessions"] == 3


def test_custom_retention_days(scenario_tables):
    activity, _ = _activity(scenario_tables, KpiConfig(retention_days=(1, 8), quality_weights={1: 0.5, 8: 0.5}))

    assert "returned_d8" in activity.columns
    assert "returned_d7" not in activity.columns
    assert bool(activity.loc["Q", "returned_d8"]) is True
