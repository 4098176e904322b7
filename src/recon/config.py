from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PricingConfig:
    min_marketplace_listings: int = 3
    sample_listing_count: int = 5
    marketplace_page_size: int = 15
    token_safety_margin_seconds: float = 60.0
    cache_ttl_days: int = 7
    default_labor_tier: str = "medium"
    paintable_parts: tuple[str, ...] = (
        "front_bumper_cover",
        "rear_bumper_cover",
        "fender",
        "hood",
        "trunk_lid",
        "door_shell",
        "quarter_panel",
        "rocker_panel",
    )
