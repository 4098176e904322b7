from __future__ import annotations

from typing import Literal


LaborTier = Literal["low", "medium", "high"]

LABOR_RATE_MULTIPLIERS: dict[str, float] = {
    "low": 0.8,  # rural / low cost-of-living markets
    "medium": 1.0,
    "high": 1.3,  # major metros
}


def multiplier_of(tier: str | None) -> float:
    if not tier:
        return 1.0
    return LABOR_RATE_MULTIPLIERS.get(tier.strip().lower(), 1.0)
