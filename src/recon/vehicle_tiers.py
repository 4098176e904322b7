from __future__ import annotations

from typing import Literal

from recon.data_models import normalize_label


VehicleTier = Literal["economy", "mainstream", "premium", "luxury", "ultra_luxury"]

DEFAULT_TIER: VehicleTier = "mainstream"

_TIER_MAP: dict[str, VehicleTier] = {
    "nissan": "economy",
    "hyundai": "economy",
    "kia": "economy",
    "mitsubishi": "economy",
    "suzuki": "economy",
    "fiat": "economy",
    "toyota": "mainstream",
    "honda": "mainstream",
    "ford": "mainstream",
    "chevrolet": "mainstream",
    "gmc": "mainstream",
    "dodge": "mainstream",
    "chrysler": "mainstream",
    "jeep": "mainstream",
    "ram": "mainstream",
    "subaru": "mainstream",
    "mazda": "mainstream",
    "volkswagen": "mainstream",
    "buick": "mainstream",
    "acura": "premium",
    "infiniti": "premium",
    "volvo": "premium",
    "lincoln": "premium",
    "cadillac": "premium",
    "mini": "premium",
    "alfa_romeo": "premium",
    "genesis": "premium",
    "bmw": "luxury",
    "mercedes": "luxury",
    "mercedes-benz": "luxury",
    "audi": "luxury",
    "lexus": "luxury",
    "tesla": "luxury",
    "jaguar": "luxury",
    "porsche": "ultra_luxury",
    "land_rover": "ultra_luxury",
    "range_rover": "ultra_luxury",
    "maserati": "ultra_luxury",
    "bentley": "ultra_luxury",
    "rolls_royce": "ultra_luxury",
    "rolls-royce": "ultra_luxury",
    "ferrari": "ultra_luxury",
    "lamborghini": "ultra_luxury",
    "aston_martin": "ultra_luxury",
}

TIER_MULTIPLIERS: dict[VehicleTier, float] = {
    "economy": 0.85,
    "mainstream": 1.0,
    "premium": 1.3,
    "luxury": 1.6,
    "ultra_luxury": 2.2,
}


def tier_of(make: str) -> VehicleTier:
    return _TIER_MAP.get(normalize_label(make), DEFAULT_TIER)


def multiplier_of(make: str) -> float:
    return TIER_MULTIPLIERS[tier_of(make)]
