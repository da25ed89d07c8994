from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from kpi_config import CHURN_PRESETS


TABLES = ["players", "sessions", "transactions"]


def run_cmd(cmd: List[str], cwd: Path) -> None:
    print("\n[run]", " ".join(cmd))
    subprocess.run(cmd, cwd=str(cwd), check=True)


def tables_exist(data_dir: Path) -> bool:
    return all(
        (data_dir / f"{name}.parquet").exists() or (data_dir / f"{name}.csv").exists()
        for name in TABLES
    )


def write_master_report(out_root: Path) -> Path:
    master = out_root / "master_report.md"
    lines = []
    lines.append("# Player Retention & Churn KPIs - Reports\n\n")
    lines.append("This file links to automatically generated reports.\n\n")

    retention = out_root / "retention_report" / "retention_report.md"
    churn = out_root / "churn_report" / "churn_report.md"

    def link(p: Path) -> str:
        # relative link from out_root
        return p.relative_to(out_root).as_posix()

    lines.append("## Reports\n\n")
    lines.append(f"- Cohort retention + acquisition quality: `{link(retention)}`\n")
    lines.append(f"- Churn risk + revenue correlation: `{link(churn)}`\n\n")

    lines.append("## Figures\n\n")
    lines.append("- see each report's `figures/` folder.\n")

    master.write_text("".join(lines), encoding="utf-8")
    return master


def report_args(data_dir: Path, args: argparse.Namespace) -> List[str]:
    """Flags shared by both report scripts."""
    common = ["--input", str(data_dir), "--churn_preset", args.churn_preset]
    if args.as_of:
        common += ["--as_of", args.as_of]
    if args.include_churned_tier:
        common.append("--include_churned_tier")
    return common


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--data", type=str, default="data", help="directory with players/sessions/transactions")
    parser.add_argument("--run-generate", action="store_true", help="run create_dataset.py even if tables exist")
    parser.add_argument("--n-players", type=int, default=5000, help="players to generate")
    parser.add_argument("--days", type=int, default=60, help="simulated window in days")
    parser.add_argument("--seed", type=int, default=42, help="random seed for the generator")
    parser.add_argument("--inject-anomalies", action="store_true", help="append broken records to generated data")
    parser.add_argument("--as-of", type=str, default=None, help="reference date for churn recency")
    parser.add_argument("--churn-preset", type=str, default="four_tier", choices=sorted(CHURN_PRESETS),
                        help="churn tier scheme")
    parser.add_argument("--include-churned-tier", action="store_true", help="append the Churned (>30 days) tier")
    parser.add_argument("--outroot", type=str, default="outputs", help="root output directory")
    args = parser.parse_args(argv)

    repo_root = Path(__file__).resolve().parent
    py = sys.executable

    data_dir = (repo_root / args.data).resolve()
    out_root = (repo_root / args.outroot).resolve()

    gen_script = repo_root / "create_dataset.py"
    retention_script = repo_root / "retention_report.py"
    churn_script = repo_root / "churn_report.py"

    for s in [retention_script, churn_script]:
        if not s.exists():
            raise FileNotFoundError(f"missing script: {s}")

    # step 0: generate (optional)
    if args.run_generate or not tables_exist(data_dir):
        if not gen_script.exists():
            raise FileNotFoundError(
                f"input tables not found ({data_dir}) and generator script missing: {gen_script}"
            )
        cmd = [
            py, str(gen_script), "--outdir", str(data_dir),
            "--n_players", str(args.n_players), "--days", str(args.days), "--seed", str(args.seed),
        ]
        if args.inject_anomalies:
            cmd.append("--inject_anomalies")
        run_cmd(cmd, cwd=repo_root)

        if not tables_exist(data_dir):
            raise FileNotFoundError("create_dataset.py finished but the input tables were not created.")

    common = report_args(data_dir, args)

    # step 1: retention report
    retention_out = out_root / "retention_report"
    retention_out.mkdir(parents=True, exist_ok=True)
    run_cmd([py, str(retention_script), *common, "--outdir", str(retention_out)], cwd=repo_root)

    # step 2: churn report
    churn_out = out_root / "churn_report"
    churn_out.mkdir(parents=True, exist_ok=True)
    run_cmd([py, str(churn_script), *common, "--outdir", str(churn_out)], cwd=repo_root)

    # step 3: master report
    master = write_master_report(out_root)

    print("\n[done] outputs:")
    print(f"- master:    {master}")
    print(f"- retention: {retention_out / 'retention_report.md'}")
    print(f"- churn:     {churn_out / 'churn_report.md'}")


if __name__ == "__main__":
    main()
