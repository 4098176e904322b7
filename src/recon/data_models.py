from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, get_args


DamageType = Literal[
    "scratch",
    "deep_scratch",
    "dent_small",
    "dent_large",
    "paint_chip",
    "paint_fade",
    "clear_coat_peel",
    "rust_spot",
    "rust_heavy",
    "crack",
    "hole",
    "tear",
    "stain",
    "burn",
    "curb_rash",
    "broken",
    "missing",
    "foggy",
    "discolored",
]
Severity = Literal["minor", "moderate", "severe"]
PriceSource = Literal["cache", "marketplace", "static"]
LineItemSource = Literal["marketplace", "static"]

DAMAGE_TYPES: tuple[str, ...] = get_args(DamageType)
SEVERITIES: tuple[str, ...] = get_args(Severity)


def normalize_label(text: str) -> str:
    """Lowercase and collapse whitespace runs to underscores: "Front Bumper Cover" -> "front_bumper_cover"."""
    return re.sub(r"\s+", "_", text.strip().lower())


@dataclass(frozen=True)
class VehicleDescriptor:
    year: int
    make: str
    model: str
    trim: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.year, bool) or not isinstance(self.year, int) or self.year <= 0:
            raise ValueError(f"vehicle year must be a positive integer, got {self.year!r}")
        if not self.make or not self.make.strip():
            raise ValueError("vehicle make is required")
        if not self.model or not self.model.strip():
            raise ValueError("vehicle model is required")

    @property
    def label(self) -> str:
        return f"{self.year} {self.make} {self.model}"


@dataclass(frozen=True)
class DamageObservation:
    id: str
    location: str
    damage_type: str
    severity: Severity
    size_estimate: str = ""
    description: str = ""
    requires_part_replacement: bool = False
    part_name: str | None = None
    photo_index: int = 0

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("damage observation id is required")
        if self.severity not in SEVERITIES:
            raise ValueError(f"unknown severity {self.severity!r} for observation {self.id}")

    @property
    def needs_replacement_part(self) -> bool:
        return bool(self.requires_part_replacement and self.part_name)


@dataclass(frozen=True)
class PriceQuote:
    source: PriceSource
    price_low: float
    price_median: float
    price_high: float
    purchase_link: str | None = None

    def __post_init__(self) -> None:
        if min(self.price_low, self.price_median, self.price_high) < 0:
            raise ValueError("price quote values must be non-negative")
        if not self.price_low <= self.price_median <= self.price_high:
            raise ValueError(
                f"price quote out of order: {self.price_low} / {self.price_median} / {self.price_high}"
            )


@dataclass(frozen=True)
class CacheEntry:
    cache_key: str
    part_name: str
    year: int
    make: str
    model: str
    source: PriceSource
    price_low: float
    price_median: float
    price_high: float
    fetched_at: datetime
    expires_at: datetime
    raw_payload: dict[str, Any] = field(default_factory=dict)

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class EstimateLineItem:
    id: str
    location: str
    damage_type: str
    severity: Severity
    size_estimate: str
    description: str
    requires_part_replacement: bool
    part_name: str | None
    photo_index: int
    recommended_repair: str
    parts_cost_low: float
    parts_cost_high: float
    labor_cost_low: float
    labor_cost_high: float
    cost_low: float
    cost_high: float
    pricing_source: LineItemSource
    is_included: bool
    repair_operation: str | None = None
    purchase_link: str | None = None
    purchase_link_label: str | None = None

    def __post_init__(self) -> None:
        subtotals = (self.parts_cost_low, self.parts_cost_high, self.labor_cost_low, self.labor_cost_high)
        if min(subtotals) < 0:
            raise ValueError(f"negative cost on line item {self.id}")
        if not math.isclose(self.cost_low, self.parts_cost_low + self.labor_cost_low):
            raise ValueError(f"cost_low does not equal parts + labor on line item {self.id}")
        if not math.isclose(self.cost_high, self.parts_cost_high + self.labor_cost_high):
            raise ValueError(f"cost_high does not equal parts + labor on line item {self.id}")
        if self.cost_low > self.cost_high:
            raise ValueError(f"cost_low exceeds cost_high on line item {self.id}")
