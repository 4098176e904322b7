from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from recon.data_models import EstimateLineItem


@dataclass(frozen=True)
class EstimateSummary:
    total_items: int
    included_items: int
    necessary_cost_low: float
    necessary_cost_high: float
    optional_cost_low: float
    optional_cost_high: float
    total_cost_low: float
    total_cost_high: float
    marketplace_priced: int
    static_priced: int


def summarize_estimate(items: Iterable[EstimateLineItem]) -> EstimateSummary:
    """Totals over included items only, split into necessary (moderate/severe) and optional (minor)."""
    items = list(items)
    necessary = [i for i in items if i.is_included and i.severity != "minor"]
    optional = [i for i in items if i.is_included and i.severity == "minor"]

    necessary_low = sum(i.cost_low for i in necessary)
    necessary_high = sum(i.cost_high for i in necessary)
    optional_low = sum(i.cost_low for i in optional)
    optional_high = sum(i.cost_high for i in optional)

    return EstimateSummary(
        total_items=len(items),
        included_items=len(necessary) + len(optional),
        necessary_cost_low=necessary_low,
        necessary_cost_high=necessary_high,
        optional_cost_low=optional_low,
        optional_cost_high=optional_high,
        total_cost_low=necessary_low + optional_low,
        total_cost_high=necessary_high + optional_high,
        marketplace_priced=sum(1 for i in items if i.pricing_source == "marketplace"),
        static_priced=sum(1 for i in items if i.pricing_source == "static"),
    )
