"""
Smoke tests for the generator, report scripts and pipeline runner
"""
import argparse

import pandas as pd
import pytest

import churn_report
import make
import report_utils
import retention_report
from create_dataset import generate_tables, inject_anomalies, write_tables
from kpi_config import CHURN_PRESETS, KpiConfig
from kpi_metrics import analyze
from kpi_tables import KpiTables, load_tables


def test_generated_tables_are_clean():
    tables = generate_tables(n_players=60, days=20, seed=3)

    assert set(tables) == {"players", "sessions", "transactions"}
    assert tables["players"]["player_id"].is_unique
    assert tables["sessions"]["player_id"].isin(tables["players"]["player_id"]).all()

    base = analyze(KpiTables(**tables), KpiConfig(as_of=pd.Timestamp("2025-02-01")))
    assert base.anomalies.total == 0
    assert len(base.summary) == 60


def test_generator_is_seeded():
    a = generate_tables(n_players=30, days=10, seed=11)
    b = generate_tables(n_players=30, days=10, seed=11)
    pd.testing.assert_frame_equal(a["sessions"], b["sessions"])


def test_injected_anomalies_are_reported():
    tables = inject_anomalies(generate_tables(n_players=40, days=15, seed=5))
    base = analyze(KpiTables(**tables), KpiConfig(as_of=pd.Timestamp("2025-02-01")))

    assert base.anomalies.invalid_install_dates == 3
    assert base.anomalies.orphan_sessions == 2
    assert base.anomalies.negative_offset_sessions == 1
    assert base.anomalies.orphan_transactions == 1
    assert base.anomalies.invalid_amounts == 1


def test_write_and_load_roundtrip(tmp_path):
    tables = generate_tables(n_players=25, days=10, seed=9)
    write_tables(tables, tmp_path)

    loaded = load_tables(tmp_path)
    assert len(loaded.players) == 25
    assert len(loaded.sessions) == len(tables["sessions"])


def test_retention_report(tmp_path, scenario_tables, as_of_config):
    base = analyze(scenario_tables, as_of_config)

    path = retention_report.write_report(base, tmp_path, fill_missing=True)

    text = path.read_text(encoding="utf-8")
    assert "# Player Retention Report" in text
    assert "2025-W02" in text
    assert "Acquisition Source Performance" in text
    assert (tmp_path / "retention_by_cohort.csv").exists()
    assert (tmp_path / "acquisition_performance.csv").exists()
    assert (tmp_path / "player_summary.parquet").exists()
    assert (tmp_path / "figures" / "cohort_retention.png").exists()


def test_churn_report(tmp_path, scenario_tables, as_of_config):
    base = analyze(scenario_tables, as_of_config)

    path = churn_report.write_report(base, tmp_path, top_n=5)

    text = path.read_text(encoding="utf-8")
    assert "Recency measured as of **2025-02-25**" in text
    assert "Medium Risk: 8-14 days" in text
    assert "No Activity" in text
    tiers = pd.read_csv(tmp_path / "churn_tier_distribution.csv")
    assert tiers["players"].sum() == 4
    for by in churn_report.REVENUE_GROUPINGS:
        assert (tmp_path / f"revenue_by_{by}.csv").exists()


def test_runner_passes_churn_flags_to_reports(tmp_path):
    args = argparse.Namespace(churn_preset="legacy", as_of="2025-03-01", include_churned_tier=True)

    common = make.report_args(tmp_path, args)

    assert common == [
        "--input", str(tmp_path), "--churn_preset", "legacy",
        "--as_of", "2025-03-01", "--include_churned_tier",
    ]


def test_runner_rejects_unknown_churn_preset():
    with pytest.raises(SystemExit):
        make.main(["--churn-preset", "six_tier"])


def test_master_report(tmp_path):
    path = make.write_master_report(tmp_path)
    text = path.read_text(encoding="utf-8")
    assert "retention_report/retention_report.md" in text
    assert "churn_report/churn_report.md" in text


def test_report_cli_offers_every_churn_preset():
    parser = argparse.ArgumentParser()
    report_utils.add_common_args(parser)

    for name in CHURN_PRESETS:
        args = parser.parse_args(["--churn_preset", name])
        assert report_utils.config_from_args(args).churn_tiers == CHURN_PRESETS[name]
    with pytest.raises(SystemExit):
        parser.parse_args(["--churn_preset", "six_tier"])
