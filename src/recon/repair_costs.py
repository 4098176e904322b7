"""Baseline reconditioning cost catalogs.

All figures are USD for a mainstream-tier vehicle at a medium regional labor
rate. Vehicle-tier and labor-rate multipliers are applied by the estimator,
never here. Lookups are total: unknown keys resolve to the documented defaults.
"""
from __future__ import annotations

from dataclasses import dataclass

from recon.data_models import normalize_label


@dataclass(frozen=True)
class RepairCost:
    description: str
    labor_low: float
    labor_high: float
    materials_low: float
    materials_high: float


@dataclass(frozen=True)
class CostRange:
    low: float
    high: float


DEFAULT_REPAIR_OPERATION = "spot_respray_small"
PAINT_REPAIR_OPERATION = "full_panel_respray"
DEFAULT_INSTALLATION_LABOR = CostRange(low=100, high=250)
DEFAULT_PART_PRICE = CostRange(low=50, high=200)


REPAIR_COSTS: dict[str, RepairCost] = {
    # paint & surface
    "touch_up_paint": RepairCost("Touch-up paint for chips and small scratches", 30, 75, 15, 40),
    "scratch_buff_polish": RepairCost("Machine buff and polish to remove light scratches", 50, 150, 10, 30),
    "spot_respray_small": RepairCost("Spot respray for localized damage (< 6 inches)", 100, 250, 40, 80),
    "full_panel_respray": RepairCost("Full panel sand, prime, and respray", 200, 450, 60, 150),
    "blend_adjacent_panel": RepairCost("Blend paint into adjacent panel for color match", 100, 200, 30, 60),
    "clear_coat_respray": RepairCost("Clear coat repair for peeling or faded clear", 150, 350, 40, 100),
    # body / dent
    "pdr_small": RepairCost("Paintless dent repair, small dent (< 2 inches)", 75, 150, 0, 0),
    "pdr_large": RepairCost("Paintless dent repair, large dent (2-5 inches)", 150, 300, 0, 0),
    "body_filler_repair": RepairCost("Body filler, sand, prime and paint for dent with paint damage", 200, 500, 40, 100),
    "bumper_repair_plastic": RepairCost("Plastic bumper repair (crack/gouge fill and respray)", 150, 400, 30, 80),
    "rust_repair_spot": RepairCost("Spot rust treatment, sand, prime and paint", 100, 300, 20, 60),
    "rust_repair_panel": RepairCost("Panel rust repair with cutting, welding, and refinish", 300, 800, 50, 150),
    # glass
    "windshield_chip_repair": RepairCost("Windshield chip/crack repair (resin injection)", 40, 80, 10, 20),
    # wheels
    "curb_rash_repair": RepairCost("Wheel curb rash sand, fill, and refinish (per wheel)", 75, 150, 15, 40),
    # interior
    "interior_detail_shampoo": RepairCost("Full interior deep clean and shampoo", 80, 200, 20, 50),
    "leather_repair_small": RepairCost("Small leather/vinyl repair (tear, crack, or discoloration)", 60, 150, 15, 40),
    "leather_repair_large": RepairCost("Large leather panel repair or re-dye", 150, 350, 30, 80),
    "carpet_stain_removal": RepairCost("Carpet stain treatment and extraction", 40, 120, 10, 30),
    "headliner_repair": RepairCost("Headliner sag repair or partial re-glue", 100, 250, 20, 50),
    "seat_burn_repair": RepairCost("Cigarette burn or small hole repair in fabric/leather", 50, 125, 10, 30),
    "dashboard_repair": RepairCost("Dashboard crack or damage repair", 75, 200, 15, 40),
    # lights
    "headlight_restoration": RepairCost("Headlight lens restoration (sand, polish, UV seal)", 30, 80, 10, 25),
    # mechanical cosmetic
    "engine_bay_detail": RepairCost("Engine bay cleaning and dressing", 50, 150, 15, 40),
    "exhaust_tip_polish": RepairCost("Exhaust tip cleaning and polish", 15, 40, 5, 10),
    # full vehicle
    "full_exterior_detail": RepairCost("Full exterior wash, clay bar, polish, and wax/sealant", 100, 250, 30, 60),
}

# Labor for fitting a replacement part, keyed by normalized part name.
INSTALLATION_LABOR: dict[str, CostRange] = {
    "front_bumper_cover": CostRange(150, 350),
    "rear_bumper_cover": CostRange(150, 350),
    "fender": CostRange(200, 400),
    "hood": CostRange(150, 300),
    "trunk_lid": CostRange(150, 300),
    "door_shell": CostRange(250, 500),
    "side_mirror": CostRange(50, 150),
    "headlight_assembly": CostRange(50, 175),
    "tail_light_assembly": CostRange(40, 125),
    "grille": CostRange(30, 100),
    "windshield": CostRange(100, 250),
    "rear_window": CostRange(100, 250),
    "door_glass": CostRange(75, 200),
    "wheel_rim": CostRange(25, 60),
    "tire": CostRange(20, 40),
    "rocker_panel": CostRange(200, 450),
    "quarter_panel": CostRange(400, 900),
    "radiator_support": CostRange(200, 500),
    "bumper_reinforcement": CostRange(100, 250),
    "fog_light": CostRange(30, 80),
    "door_handle": CostRange(40, 120),
    "antenna": CostRange(20, 60),
}

# Fallback part prices when no live marketplace quote is available.
STATIC_PART_PRICES: dict[str, CostRange] = {
    "front_bumper_cover": CostRange(80, 250),
    "rear_bumper_cover": CostRange(80, 250),
    "fender": CostRange(60, 200),
    "hood": CostRange(150, 400),
    "trunk_lid": CostRange(150, 400),
    "door_shell": CostRange(200, 600),
    "side_mirror": CostRange(30, 120),
    "headlight_assembly": CostRange(50, 200),
    "tail_light_assembly": CostRange(30, 150),
    "grille": CostRange(30, 150),
    "windshield": CostRange(150, 400),
    "rear_window": CostRange(100, 300),
    "door_glass": CostRange(60, 200),
    "wheel_rim": CostRange(80, 250),
    "tire": CostRange(80, 200),
    "rocker_panel": CostRange(40, 150),
    "quarter_panel": CostRange(100, 400),
    "radiator_support": CostRange(60, 200),
    "bumper_reinforcement": CostRange(40, 120),
    "fog_light": CostRange(20, 80),
    "door_handle": CostRange(10, 50),
    "antenna": CostRange(10, 40),
}


def repair_cost(repair_type: str) -> RepairCost:
    return REPAIR_COSTS.get(repair_type, REPAIR_COSTS[DEFAULT_REPAIR_OPERATION])


def installation_labor(part_name: str) -> CostRange:
    return INSTALLATION_LABOR.get(normalize_label(part_name), DEFAULT_INSTALLATION_LABOR)


def static_part_price(part_name: str) -> CostRange:
    return STATIC_PART_PRICES.get(normalize_label(part_name), DEFAULT_PART_PRICE)
