from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from recon.repair_costs import DEFAULT_REPAIR_OPERATION


def _severity_row(minor: str, moderate: str, severe: str) -> Mapping[str, str]:
    return MappingProxyType({"minor": minor, "moderate": moderate, "severe": severe})


# damage type -> severity -> repair operation. hole, broken and missing have no
# repair-only row; they normally arrive flagged for part replacement.
REPAIR_TYPE_MAP: Mapping[str, Mapping[str, str]] = MappingProxyType({
    "scratch": _severity_row("scratch_buff_polish", "spot_respray_small", "full_panel_respray"),
    "deep_scratch": _severity_row("spot_respray_small", "full_panel_respray", "full_panel_respray"),
    "dent_small": _severity_row("pdr_small", "pdr_small", "pdr_large"),
    "dent_large": _severity_row("pdr_large", "body_filler_repair", "body_filler_repair"),
    "paint_chip": _severity_row("touch_up_paint", "touch_up_paint", "spot_respray_small"),
    "paint_fade": _severity_row("scratch_buff_polish", "full_panel_respray", "full_panel_respray"),
    "clear_coat_peel": _severity_row("clear_coat_respray", "clear_coat_respray", "full_panel_respray"),
    "rust_spot": _severity_row("rust_repair_spot", "rust_repair_spot", "rust_repair_panel"),
    "rust_heavy": _severity_row("rust_repair_panel", "rust_repair_panel", "rust_repair_panel"),
    "crack": _severity_row("bumper_repair_plastic", "bumper_repair_plastic", "bumper_repair_plastic"),
    "tear": _severity_row("leather_repair_small", "leather_repair_large", "leather_repair_large"),
    "stain": _severity_row("carpet_stain_removal", "interior_detail_shampoo", "interior_detail_shampoo"),
    "burn": _severity_row("seat_burn_repair", "seat_burn_repair", "leather_repair_large"),
    "curb_rash": _severity_row("curb_rash_repair", "curb_rash_repair", "curb_rash_repair"),
    "foggy": _severity_row("headlight_restoration", "headlight_restoration", "headlight_restoration"),
    "discolored": _severity_row("scratch_buff_polish", "interior_detail_shampoo", "full_panel_respray"),
})


def repair_type_for(damage_type: str, severity: str) -> str:
    by_severity = REPAIR_TYPE_MAP.get(damage_type)
    if by_severity is None:
        return DEFAULT_REPAIR_OPERATION
    return by_severity.get(severity, DEFAULT_REPAIR_OPERATION)
