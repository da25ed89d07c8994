"""
Tests for install cohort assignment
"""
import pandas as pd

from kpi_cohorts import assign_cohorts, build_cohorts, cohort_calendar
from kpi_tables import prepare_tables


def _players(rows):
    return pd.DataFrame({
        "player_id": [r[0] for r in rows],
        "install_date": pd.to_datetime([r[1] for r in rows]),
    })


def test_iso_week_labels_across_year_boundary():
    players = _players([
        ("a", "2024-12-29"),  # Sunday -> ISO 2024-W52
        ("b", "2024-12-31"),  # Tuesday -> ISO 2025-W01
        ("c", "2025-01-05"),  # Sunday -> ISO 2025-W01
        ("d", "2025-01-06"),  # Monday -> ISO 2025-W02
    ])
    out = assign_cohorts(players).set_index("player_id")

    assert out.loc["a", "cohort"] == "2024-W52"
    assert out.loc["b", "cohort"] == "2025-W01"
    assert out.loc["c", "cohort"] == "2025-W01"
    assert out.loc["d", "cohort"] == "2025-W02"
    assert out.loc["b", "cohort_start"] == pd.Timestamp("2024-12-30")


def test_month_granularity():
    players = _players([("a", "2025-01-31"), ("b", "2025-02-01")])
    out = assign_cohorts(players, "month").set_index("player_id")

    assert out.loc["a", "cohort"] == "2025-01"
    assert out.loc["b", "cohort"] == "2025-02"
    assert out.loc["b", "cohort_start"] == pd.Timestamp("2025-02-01")


def test_build_cohorts_one_cohort_per_player_and_skips_invalid(make_tables):
    tables = make_tables([
        ("A", "2025-01-06", "iOS", "US", "organic"),
        ("B", "2025-01-12", "iOS", "US", "organic"),
        ("C", "2025-01-13", "iOS", "US", "organic"),
        ("D", "garbage", "iOS", "US", "organic"),
    ])
    prepared, anomalies = prepare_tables(tables)

    cohorts = build_cohorts(prepared.players)

    assert cohorts == {"2025-W02": frozenset({"A", "B"}), "2025-W03": frozenset({"C"})}
    assert anomalies.invalid_install_dates == 1
    members = [p for group in cohorts.values() for p in group]
    assert len(members) == len(set(members))


def test_assign_cohorts_with_no_valid_players():
    players = pd.DataFrame({"player_id": ["x"], "install_date": [pd.NaT]})
    out = assign_cohorts(players)
    assert len(out) == 0
    assert list(out.columns) == ["player_id", "cohort", "cohort_start"]


def test_cohort_calendar_fills_gaps():
    cal = cohort_calendar(pd.Timestamp("2025-01-06"), pd.Timestamp("2025-01-20"))
    assert cal["cohort"].tolist() == ["2025-W02", "2025-W03", "2025-W04"]

    months = cohort_calendar(pd.Timestamp("2025-01-01"), pd.Timestamp("2025-03-01"), "month")
    assert months["cohort"].tolist() == ["2025-01", "2025-02", "2025-03"]
