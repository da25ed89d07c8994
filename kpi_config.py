# kpi_config.py
#
# Tunable constants for the retention / churn KPI engine.
#
# Every threshold used by the engine lives here so a deployment can override
# it without touching the computation code:
#   - retention days (exact-day D1/D7/D30 flags)
#   - quality score weights
#   - week-1 activity window lower bound
#   - retention segment cut-offs
#   - churn risk tiers

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import pandas as pd


# -----------------------------
# Defaults
# -----------------------------

RETENTION_DAYS: Tuple[int, ...] = (1, 7, 30)

QUALITY_WEIGHTS: Dict[int, float] = {1: 0.3, 7: 0.5, 30: 0.2}

WEEK1_LAST_DAY = 7

# (min max_day_offset, label), checked top-down
RETENTION_SEGMENTS: Tuple[Tuple[int, str], ...] = (
    (30, "30+ Day Players"),
    (7, "7-29 Day Players"),
    (1, "1-6 Day Players"),
)
DAY0_SEGMENT = "Day 0 Only"
UNKNOWN_SEGMENT = "Unknown Install Date"

COHORT_GRANULARITIES = ("week", "month")

NO_ACTIVITY_TIER = "No Activity"


# -----------------------------
# Churn tiers
# -----------------------------

@dataclass(frozen=True)
class ChurnTiers:
    """Ordered step function over days since last session.

    ``bounds`` holds ``(max_days_inclusive, label)`` pairs in ascending order;
    anything above the last bound falls into ``terminal``.
    """
    bounds: Tuple[Tuple[int, str], ...]
    terminal: str

    def __post_init__(self) -> None:
        uppers = [b for b, _ in self.bounds]
        if not uppers:
            raise ValueError("ChurnTiers needs at least one bound")
        if uppers != sorted(uppers) or len(set(uppers)) != len(uppers):
            raise ValueError(f"churn tier bounds must be strictly increasing, got {uppers}")

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(label for _, label in self.bounds) + (self.terminal,)

    def classify(self, days_since_last_session: int) -> str:
        for upper, label in self.bounds:
            if days_since_last_session <= upper:
                return label
        return self.terminal


FOUR_TIER_CHURN = ChurnTiers(
    bounds=((3, "Active"), (7, "Low Risk"), (14, "Medium Risk")),
    terminal="High Risk",
)

FIVE_TIER_CHURN = ChurnTiers(
    bounds=((3, "Active"), (7, "Low Risk"), (14, "Medium Risk"), (30, "High Risk")),
    terminal="Churned",
)

# Variant used by the per-player churn list of the original SQL report
LEGACY_CHURN = ChurnTiers(
    bounds=((7, "Active"), (14, "Medium Risk"), (30, "High Risk")),
    terminal="Churned",
)

CHURN_PRESETS: Dict[str, ChurnTiers] = {
    "four_tier": FOUR_TIER_CHURN,
    "five_tier": FIVE_TIER_CHURN,
    "legacy": LEGACY_CHURN,
}


# -----------------------------
# Engine config
# -----------------------------

@dataclass(frozen=True)
class KpiConfig:
    retention_days: Tuple[int, ...] = RETENTION_DAYS
    quality_weights: Dict[int, float] = field(default_factory=lambda: dict(QUALITY_WEIGHTS))
    week1_include_install_day: bool = False
    week1_last_day: int = WEEK1_LAST_DAY
    retention_segments: Tuple[Tuple[int, str], ...] = RETENTION_SEGMENTS
    cohort_granularity: str = "week"
    churn_tiers: ChurnTiers = FOUR_TIER_CHURN
    as_of: Optional[pd.Timestamp] = None

    def __post_init__(self) -> None:
        if self.cohort_granularity not in COHORT_GRANULARITIES:
            raise ValueError(
                f"cohort_granularity must be one of {COHORT_GRANULARITIES}, got {self.cohort_granularity!r}"
            )
        if any(d < 0 for d in self.retention_days):
            raise ValueError(f"retention days must be non-negative, got {self.retention_days}")
        unknown = [d for d in self.quality_weights if d not in self.retention_days]
        if unknown:
            raise ValueError(f"quality weights reference days not in retention_days: {unknown}")
        if any(w < 0 for w in self.quality_weights.values()):
            raise ValueError("quality weights must be non-negative")
        if self.week1_last_day < 1:
            raise ValueError("week1_last_day must be >= 1")

    @property
    def week1_first_day(self) -> int:
        return 0 if self.week1_include_install_day else 1

    def as_of_date(self) -> pd.Timestamp:
        if self.as_of is None:
            return pd.Timestamp.today().normalize()
        return pd.Timestamp(self.as_of).normalize()


def churn_tiers_for(name: str, include_churned_tier: bool = False) -> ChurnTiers:
    """Resolve a CLI preset name; ``include_churned_tier`` upgrades four_tier to five_tier."""
    if name not in CHURN_PRESETS:
        raise ValueError(f"unknown churn preset {name!r}; choose from {sorted(CHURN_PRESETS)}")
    if name == "four_tier" and include_churned_tier:
        return FIVE_TIER_CHURN
    return CHURN_PRESETS[name]
