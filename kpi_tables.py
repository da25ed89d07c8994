# kpi_tables.py
#
# Input tables for the KPI engine: loading, validation and cleaning.
#
#   players:      player_id, install_date, platform, country, acquisition_source
#   sessions:     session_id, player_id, session_date, session_duration_min
#   transactions: transaction_id, player_id, transaction_date, amount_usd
#
# Malformed tables (missing file, missing columns, duplicate/null player ids)
# raise. Bad individual records are dropped from the computations that need
# them and counted in an AnomalySummary.

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd


EXPECTED_COLS: Dict[str, List[str]] = {
    "players": ["player_id", "install_date", "platform", "country", "acquisition_source"],
    "sessions": ["session_id", "player_id", "session_date", "session_duration_min"],
    "transactions": ["transaction_id", "player_id", "transaction_date", "amount_usd"],
}

TABLE_SUFFIXES = (".parquet", ".csv")
ID_COLS = ("player_id", "session_id", "transaction_id")


@dataclass
class KpiTables:
    players: pd.DataFrame
    sessions: pd.DataFrame
    transactions: pd.DataFrame


@dataclass
class AnomalySummary:
    orphan_sessions: int = 0
    orphan_transactions: int = 0
    invalid_install_dates: int = 0
    invalid_session_dates: int = 0
    invalid_transaction_dates: int = 0
    negative_offset_sessions: int = 0
    invalid_amounts: int = 0

    @property
    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [{"kind": f.name, "count": int(getattr(self, f.name))} for f in fields(self)]
        )

    def nonzero(self) -> Dict[str, int]:
        return {f.name: int(getattr(self, f.name)) for f in fields(self) if getattr(self, f.name)}


# -----------------------------
# Load
# -----------------------------

def _find_table(data_dir: Path, name: str) -> Path:
    for suffix in TABLE_SUFFIXES:
        p = data_dir / f"{name}{suffix}"
        if p.exists():
            return p
    raise FileNotFoundError(
        f"Input table not found: {data_dir / name}" + "{" + ",".join(TABLE_SUFFIXES) + "}"
    )


def read_table(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    # ids stay text: a blank id must not turn the whole column into floats
    return pd.read_csv(path, dtype={c: str for c in ID_COLS})


def check_columns(name: str, df: pd.DataFrame) -> None:
    missing = [c for c in EXPECTED_COLS[name] if c not in df.columns]
    if missing:
        raise ValueError(
            f"Missing expected columns in {name}:\n  - " + "\n  - ".join(missing)
            + "\n\nIf your file uses different names, rename columns accordingly."
        )


def load_tables(data_dir: Path) -> KpiTables:
    data_dir = Path(data_dir)
    frames = {}
    for name in EXPECTED_COLS:
        df = read_table(_find_table(data_dir, name))
        check_columns(name, df)
        frames[name] = df
    return KpiTables(**frames)


# -----------------------------
# Prepare
# -----------------------------

def _to_date(s: pd.Series) -> pd.Series:
    # offset-aware values are read as UTC so mixed offsets parse per record
    out = pd.to_datetime(s, errors="coerce", utc=True).dt.tz_convert(None)
    return out.dt.normalize().astype("datetime64[ns]")


def _to_id(s: pd.Series) -> pd.Series:
    # keep nulls as nulls so they can be detected as missing references
    text = s.astype(object).where(s.isna(), s.astype(str))
    if pd.api.types.is_float_dtype(s):
        # numeric ids read as floats because of a blank: 1.0 -> "1"
        whole = s.notna() & (s % 1 == 0)
        text = text.where(~whole, s[whole].astype("int64").astype(str))
    return text


def prepare_tables(tables: KpiTables) -> Tuple[KpiTables, AnomalySummary]:
    """Type-coerce the raw tables and drop records the engine cannot use.

    Returned tables:
      - players: every player, ``install_date`` coerced (NaT when invalid)
      - sessions: only sessions of known players with a valid ``session_date``
      - transactions: only transactions of known players with a valid amount
    """
    for name in EXPECTED_COLS:
        check_columns(name, getattr(tables, name))

    anomalies = AnomalySummary()

    # players
    players = tables.players.copy()
    if players["player_id"].isna().any():
        raise ValueError("players.player_id contains null identifiers")
    players["player_id"] = _to_id(players["player_id"])
    dup = players["player_id"].duplicated()
    if dup.any():
        sample = players.loc[dup, "player_id"].head(5).tolist()
        raise ValueError(f"players.player_id must be unique; duplicates include {sample}")
    players["install_date"] = _to_date(players["install_date"])
    for c in ["platform", "country", "acquisition_source"]:
        players[c] = players[c].fillna("unknown").astype(str)
    anomalies.invalid_install_dates = int(players["install_date"].isna().sum())
    known = set(players["player_id"])

    # sessions
    sessions = tables.sessions.copy()
    sessions["player_id"] = _to_id(sessions["player_id"])
    is_known = sessions["player_id"].isin(known)
    anomalies.orphan_sessions = int((~is_known).sum())
    sessions = sessions[is_known].copy()
    sessions["session_date"] = _to_date(sessions["session_date"])
    bad_date = sessions["session_date"].isna()
    anomalies.invalid_session_dates = int(bad_date.sum())
    sessions = sessions[~bad_date].copy()
    sessions["session_id"] = sessions["session_id"].astype(str)
    sessions["session_duration_min"] = pd.to_numeric(sessions["session_duration_min"], errors="coerce")

    # transactions
    tx = tables.transactions.copy()
    tx["player_id"] = _to_id(tx["player_id"])
    is_known = tx["player_id"].isin(known)
    anomalies.orphan_transactions = int((~is_known).sum())
    tx = tx[is_known].copy()
    tx["transaction_date"] = _to_date(tx["transaction_date"])
    anomalies.invalid_transaction_dates = int(tx["transaction_date"].isna().sum())
    tx["amount_usd"] = pd.to_numeric(tx["amount_usd"], errors="coerce")
    bad_amount = tx["amount_usd"].isna() | (tx["amount_usd"] < 0)
    anomalies.invalid_amounts = int(bad_amount.sum())
    tx = tx[~bad_amount].copy()
    tx["transaction_id"] = tx["transaction_id"].astype(str)

    prepared = KpiTables(
        players=players.reset_index(drop=True),
        sessions=sessions.reset_index(drop=True),
        transactions=tx.reset_index(drop=True),
    )
    return prepared, anomalies
