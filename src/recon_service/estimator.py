from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence

from recon import labor_rates, vehicle_tiers
from recon.config import PricingConfig
from recon.damage_mapper import repair_type_for
from recon.data_models import DamageObservation, EstimateLineItem, PriceQuote, VehicleDescriptor, normalize_label
from recon.product_links import REPLACEMENT_PART_LABEL, cleaning_product_link
from recon.repair_costs import PAINT_REPAIR_OPERATION, installation_labor, repair_cost
from recon_service.part_pricing import PartPriceResolver, static_quote

logger = logging.getLogger(__name__)


def round_usd(value: float) -> int:
    """Round half up to whole dollars."""
    return int(math.floor(value + 0.5))


class EstimateBuilder:
    """Turns detected damage into priced, explainable line items.

    Replacement items: part price from the resolver (tier-scaled only when it
    came from the static table) plus installation labor, plus a full-panel
    respray for paintable body panels. Repair items: the mapped repair
    operation's labor, tier- and labor-rate-scaled, with unscaled materials.
    """

    def __init__(self, resolver: PartPriceResolver, config: PricingConfig | None = None) -> None:
        self.resolver = resolver
        self.config = config or PricingConfig()

    async def build_estimate(
        self,
        observations: Sequence[DamageObservation],
        vehicle: VehicleDescriptor,
        labor_tier: str | None = None,
    ) -> list[EstimateLineItem]:
        labor_tier = labor_tier or self.config.default_labor_tier
        tier = vehicle_tiers.tier_of(vehicle.make)
        tier_multiplier = vehicle_tiers.multiplier_of(vehicle.make)
        labor_multiplier = labor_rates.multiplier_of(labor_tier)
        logger.info(
            "Building estimate for %s: %d observations, tier=%s, labor_tier=%s",
            vehicle.label, len(observations), tier, labor_tier,
        )

        items = await asyncio.gather(*(
            self._price_observation(obs, vehicle, tier_multiplier, labor_multiplier)
            for obs in observations
        ))

        marketplace_priced = sum(1 for i in items if i.pricing_source == "marketplace")
        logger.info(
            "Estimate built for %s: %d items, %d marketplace-priced, %d static-priced",
            vehicle.label, len(items), marketplace_priced, len(items) - marketplace_priced,
        )
        return list(items)

    async def _price_observation(
        self,
        obs: DamageObservation,
        vehicle: VehicleDescriptor,
        tier_multiplier: float,
        labor_multiplier: float,
    ) -> EstimateLineItem:
        if obs.needs_replacement_part:
            return await self._replacement_item(obs, vehicle, tier_multiplier, labor_multiplier)
        return self._repair_item(obs, tier_multiplier, labor_multiplier)

    async def _resolve_part(self, part_name: str, vehicle: VehicleDescriptor) -> PriceQuote:
        try:
            return await self.resolver.resolve(part_name, vehicle)
        except Exception:
            logger.exception("Part price resolution failed for %r, using static table", part_name)
            return static_quote(part_name, vehicle)

    async def _replacement_item(
        self,
        obs: DamageObservation,
        vehicle: VehicleDescriptor,
        tier_multiplier: float,
        labor_multiplier: float,
    ) -> EstimateLineItem:
        part_name = obs.part_name or ""
        quote = await self._resolve_part(part_name, vehicle)

        parts_low, parts_high = quote.price_low, quote.price_high
        # Only static-table part prices are tier-scaled.
        if quote.source == "static":
            parts_low = round_usd(parts_low * tier_multiplier)
            parts_high = round_usd(parts_high * tier_multiplier)

        install = installation_labor(part_name)
        labor_low = round_usd(install.low * tier_multiplier * labor_multiplier)
        labor_high = round_usd(install.high * tier_multiplier * labor_multiplier)

        needs_paint = normalize_label(part_name) in self.config.paintable_parts
        if needs_paint:
            paint = repair_cost(PAINT_REPAIR_OPERATION)
            labor_low += round_usd(paint.labor_low * tier_multiplier * labor_multiplier)
            labor_high += round_usd(paint.labor_high * tier_multiplier * labor_multiplier)
            parts_low += paint.materials_low
            parts_high += paint.materials_high

        return _line_item(
            obs,
            recommended_repair=f"Replace {part_name}" + (" + prime/paint" if needs_paint else ""),
            parts=(parts_low, parts_high),
            labor=(labor_low, labor_high),
            pricing_source="static" if quote.source == "static" else "marketplace",
            repair_operation=None,
            purchase_link=quote.purchase_link,
            purchase_link_label=REPLACEMENT_PART_LABEL if quote.purchase_link else None,
        )

    def _repair_item(
        self,
        obs: DamageObservation,
        tier_multiplier: float,
        labor_multiplier: float,
    ) -> EstimateLineItem:
        repair_type = repair_type_for(obs.damage_type, obs.severity)
        cost = repair_cost(repair_type)
        link = cleaning_product_link(repair_type, obs.location)
        return _line_item(
            obs,
            recommended_repair=cost.description,
            parts=(cost.materials_low, cost.materials_high),
            labor=(
                round_usd(cost.labor_low * tier_multiplier * labor_multiplier),
                round_usd(cost.labor_high * tier_multiplier * labor_multiplier),
            ),
            pricing_source="static",
            repair_operation=repair_type,
            purchase_link=link.url if link else None,
            purchase_link_label=link.label if link else None,
        )


def _line_item(
    obs: DamageObservation,
    *,
    recommended_repair: str,
    parts: tuple[float, float],
    labor: tuple[float, float],
    pricing_source: str,
    repair_operation: str | None,
    purchase_link: str | None,
    purchase_link_label: str | None,
) -> EstimateLineItem:
    parts_low, parts_high = parts
    labor_low, labor_high = labor
    return EstimateLineItem(
        id=obs.id,
        location=obs.location,
        damage_type=obs.damage_type,
        severity=obs.severity,
        size_estimate=obs.size_estimate,
        description=obs.description,
        requires_part_replacement=obs.requires_part_replacement,
        part_name=obs.part_name,
        photo_index=obs.photo_index,
        recommended_repair=recommended_repair,
        parts_cost_low=parts_low,
        parts_cost_high=parts_high,
        labor_cost_low=labor_low,
        labor_cost_high=labor_high,
        cost_low=parts_low + labor_low,
        cost_high=parts_high + labor_high,
        pricing_source=pricing_source,
        is_included=obs.severity != "minor",
        repair_operation=repair_operation,
        purchase_link=purchase_link,
        purchase_link_label=purchase_link_label,
    )
