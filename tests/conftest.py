"""
Shared fixtures for the KPI engine tests
"""
import matplotlib

matplotlib.use("Agg")

import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from kpi_config import KpiConfig  # noqa: E402
from kpi_tables import EXPECTED_COLS, KpiTables  # noqa: E402


def _frame(name, rows):
    return pd.DataFrame(list(rows), columns=EXPECTED_COLS[name])


@pytest.fixture
def make_tables():
    """Build KpiTables from plain row tuples"""
    def _make(players, sessions=(), transactions=()):
        return KpiTables(
            players=_frame("players", players),
            sessions=_frame("sessions", sessions),
            transactions=_frame("transactions", transactions),
        )
    return _make


@pytest.fixture
def as_of_config():
    return KpiConfig(as_of=pd.Timestamp("2025-02-25"))


@pytest.fixture
def scenario_tables(make_tables):
    """
    P: installs Mon 2025-01-06, plays on day offsets 0, 1, 7, 40
    Q: same week, plays only on day 8
    R: same week, never plays, one $9.99 purchase
    S: next week, plays on day 1
    """
    players = [
        ("P", "2025-01-06", "iOS", "US", "organic"),
        ("Q", "2025-01-07", "Android", "DE", "facebook_ads"),
        ("R", "2025-01-08", "iOS", "GB", "facebook_ads"),
        ("S", "2025-01-14", "Android", "US", "organic"),
    ]
    sessions = [
        ("s1", "P", "2025-01-06", 12.0),
        ("s2", "P", "2025-01-07", 8.0),
        ("s3", "P", "2025-01-13", 20.0),
        ("s4", "P", "2025-02-15", 5.0),
        ("s5", "Q", "2025-01-15", 9.5),
        ("s6", "S", "2025-01-15", 14.0),
    ]
    transactions = [
        ("t1", "R", "2025-01-08", 9.99),
        ("t2", "P", "2025-01-13", 4.99),
        ("t3", "P", "2025-02-15", 0.99),
    ]
    return make_tables(players, sessions, transactions)
