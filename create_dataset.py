# create_dataset.py
#
# Synthetic players / sessions / transactions snapshot for the KPI engine.
#
# Usage:
#   python create_dataset.py --outdir data --n_players 5000 --days 60 --seed 42
#   python create_dataset.py --outdir data --inject_anomalies   # adds bad rows for QA demos
#
# Outputs:
#   data/players.parquet
#   data/sessions.parquet
#   data/transactions.parquet

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict

import numpy as np
import pandas as pd


PLATFORMS = ["iOS", "Android", "PC"]
PLATFORM_P = [0.45, 0.45, 0.10]

COUNTRIES = ["US", "GB", "DE", "FR", "BR", "IN", "JP", "KR", "OTHER"]
COUNTRY_P = [0.22, 0.08, 0.07, 0.06, 0.10, 0.12, 0.08, 0.07, 0.20]

SOURCES = ["organic", "facebook_ads", "google_ads", "tiktok_ads", "influencer", "cross_promo"]
SOURCE_P = [0.35, 0.20, 0.18, 0.12, 0.08, 0.07]

# retention curve: p(active on day d) = base * exp(-k * d), scaled by source quality
RETENTION_K = 0.09
SOURCE_QUALITY = {
    "organic": 1.15, "facebook_ads": 0.95, "google_ads": 1.0,
    "tiktok_ads": 0.8, "influencer": 1.05, "cross_promo": 1.1,
}

PRICE_POINTS = [0.99, 2.99, 4.99, 9.99, 19.99, 49.99]
PRICE_P = [0.35, 0.25, 0.18, 0.14, 0.06, 0.02]

SEGMENTS = ["free", "occasional", "whale"]
SEGMENT_P = [0.85, 0.13, 0.02]
P_IAP = {"free": 0.002, "occasional": 0.04, "whale": 0.20}
SESSION_LAMBDA = {"free": 0.6, "occasional": 1.0, "whale": 1.5}


def generate_tables(
    n_players: int = 5000,
    days: int = 60,
    seed: int = 42,
    start: str = "2025-01-01",
) -> Dict[str, pd.DataFrame]:
    rng = np.random.default_rng(seed)
    start_ts = pd.Timestamp(start)

    # 1) players: installs spread over the first 2/3 of the window
    player_ids = np.array([f"p{i:06d}" for i in range(n_players)])
    install_window = max(1, int(days * 2 / 3))
    install_day = rng.integers(0, install_window, size=n_players)
    install_dates = start_ts + pd.to_timedelta(install_day, unit="D")

    platforms = rng.choice(PLATFORMS, size=n_players, p=PLATFORM_P)
    countries = rng.choice(COUNTRIES, size=n_players, p=COUNTRY_P)
    sources = rng.choice(SOURCES, size=n_players, p=SOURCE_P)
    segments = rng.choice(SEGMENTS, size=n_players, p=SEGMENT_P)

    players = pd.DataFrame({
        "player_id": player_ids,
        "install_date": install_dates,
        "platform": platforms,
        "country": countries,
        "acquisition_source": sources,
    })

    # 2) sessions + transactions, day by day relative to install
    quality = np.vectorize(SOURCE_QUALITY.get)(sources)
    sessions = []
    transactions = []
    for d in range(days):
        on_calendar = install_day + d < days
        if d == 0:
            is_active = on_calendar
        else:
            p_active = np.clip(0.55 * np.exp(-RETENTION_K * d) * quality, 0, 1)
            is_active = on_calendar & (rng.random(n_players) < p_active)

        active_idx = np.where(is_active)[0]
        if len(active_idx) == 0:
            continue

        lam = np.array([SESSION_LAMBDA[s] for s in segments[active_idx]])
        n_sess = rng.poisson(lam) + 1

        for i, ns in zip(active_idx, n_sess):
            day_ts = install_dates[i] + pd.Timedelta(days=d)
            for s in range(ns):
                sessions.append({
                    "session_id": f"{player_ids[i]}_d{d}_s{s}",
                    "player_id": player_ids[i],
                    "session_date": day_ts,
                    "session_duration_min": round(float(rng.gamma(2.0, 9.0)), 1),
                })
                if rng.random() < P_IAP[segments[i]]:
                    transactions.append({
                        "transaction_id": f"t{len(transactions):07d}",
                        "player_id": player_ids[i],
                        "transaction_date": day_ts,
                        "amount_usd": float(rng.choice(PRICE_POINTS, p=PRICE_P)),
                    })

    sessions_df = pd.DataFrame(sessions, columns=["session_id", "player_id", "session_date", "session_duration_min"])
    tx_df = pd.DataFrame(transactions, columns=["transaction_id", "player_id", "transaction_date", "amount_usd"])
    return {"players": players, "sessions": sessions_df, "transactions": tx_df}


def inject_anomalies(tables: Dict[str, pd.DataFrame], seed: int = 7) -> Dict[str, pd.DataFrame]:
    """Append a handful of broken records so the data-quality section has something to show."""
    rng = np.random.default_rng(seed)
    players = tables["players"].copy()
    sessions = tables["sessions"].copy()
    tx = tables["transactions"].copy()

    # invalid install dates; the first player keeps a valid one for the pre-install session below
    bad_idx = rng.choice(players.index[1:], size=min(3, len(players) - 1), replace=False)
    players.loc[bad_idx, "install_date"] = pd.NaT

    orphans = pd.DataFrame({
        "session_id": ["orphan_s0", "orphan_s1"],
        "player_id": ["ghost_1", "ghost_2"],
        "session_date": [pd.Timestamp("2025-01-05")] * 2,
        "session_duration_min": [12.0, 3.5],
    })
    first = players.iloc[0]
    predates = pd.DataFrame({
        "session_id": ["early_s0"],
        "player_id": [first["player_id"]],
        "session_date": [pd.Timestamp("2024-12-01")],
        "session_duration_min": [5.0],
    })
    sessions = pd.concat([sessions, orphans, predates], ignore_index=True)

    bad_tx = pd.DataFrame({
        "transaction_id": ["orphan_t0", "neg_t0"],
        "player_id": ["ghost_1", first["player_id"]],
        "transaction_date": [pd.Timestamp("2025-01-05")] * 2,
        "amount_usd": [4.99, -1.0],
    })
    tx = pd.concat([tx, bad_tx], ignore_index=True)

    return {"players": players, "sessions": sessions, "transactions": tx}


def write_tables(tables: Dict[str, pd.DataFrame], outdir: Path) -> None:
    outdir.mkdir(parents=True, exist_ok=True)
    for name, df in tables.items():
        df.to_parquet(outdir / f"{name}.parquet", index=False)


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--outdir", type=str, default="data", help="Output directory for parquet tables")
    parser.add_argument("--n_players", type=int, default=5000, help="Number of players")
    parser.add_argument("--days", type=int, default=60, help="Length of the simulated window in days")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--start", type=str, default="2025-01-01", help="First install date")
    parser.add_argument("--inject_anomalies", action="store_true", help="Append broken records for QA demos")
    args = parser.parse_args()

    tables = generate_tables(n_players=args.n_players, days=args.days, seed=args.seed, start=args.start)
    if args.inject_anomalies:
        tables = inject_anomalies(tables)

    outdir = Path(args.outdir)
    write_tables(tables, outdir)

    for name, df in tables.items():
        print(f"[OK] {name}: {len(df):,} rows")
    print(f"[OK] Tables written under: {outdir.resolve()}")


if __name__ == "__main__":
    main()
