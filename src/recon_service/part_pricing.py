from __future__ import annotations

import logging
from collections import Counter

from recon.data_models import CacheEntry, PriceQuote, VehicleDescriptor
from recon.product_links import marketplace_search_url
from recon.repair_costs import static_part_price
from recon_service.marketplace import MarketplacePartsClient
from recon_service.price_cache import PriceCache

logger = logging.getLogger(__name__)


def static_quote(part_name: str, vehicle: VehicleDescriptor) -> PriceQuote:
    price = static_part_price(part_name)
    return PriceQuote(
        source="static",
        price_low=price.low,
        price_median=(price.low + price.high) / 2,
        price_high=price.high,
        purchase_link=marketplace_search_url(part_name, vehicle.year, vehicle.make, vehicle.model),
    )


def _quote_from_cache(entry: CacheEntry, part_name: str, vehicle: VehicleDescriptor) -> PriceQuote:
    listings = entry.raw_payload.get("sample_listings") or []
    link = listings[0].get("item_url") if listings else None
    return PriceQuote(
        source=entry.source,
        price_low=entry.price_low,
        price_median=entry.price_median,
        price_high=entry.price_high,
        purchase_link=link or marketplace_search_url(part_name, vehicle.year, vehicle.make, vehicle.model),
    )


class PartPriceResolver:
    """Cache → live marketplace → static table, for one (part, vehicle) pair.

    Never raises for unavailable price sources; the static table always answers.
    """

    def __init__(self, cache: PriceCache, marketplace: MarketplacePartsClient) -> None:
        self.cache = cache
        self.marketplace = marketplace
        self.outcomes: Counter[str] = Counter()

    async def resolve(self, part_name: str, vehicle: VehicleDescriptor) -> PriceQuote:
        lookup = await self.cache.lookup(part_name, vehicle.year, vehicle.make, vehicle.model)
        if lookup.status == "hit" and lookup.entry is not None:
            self.outcomes["cache_hit"] += 1
            logger.debug("Price cache hit for %s", lookup.entry.cache_key)
            return _quote_from_cache(lookup.entry, part_name, vehicle)

        result = await self.marketplace.search_part_prices(part_name, vehicle)
        if result.ok:
            entry = self.cache.new_entry(
                part_name,
                vehicle,
                source="marketplace",
                price_low=result.price_low,
                price_median=result.price_median,
                price_high=result.price_high,
                raw_payload=result.to_payload(),
            )
            await self.cache.put(entry)
            self.outcomes["marketplace"] += 1
            return PriceQuote(
                source="marketplace",
                price_low=entry.price_low,
                price_median=entry.price_median,
                price_high=entry.price_high,
                purchase_link=result.purchase_link
                or marketplace_search_url(part_name, vehicle.year, vehicle.make, vehicle.model),
            )

        self.outcomes["static"] += 1
        logger.info(
            "Falling back to static pricing for %r (%s): %s",
            part_name, vehicle.label, result.error,
        )
        return static_quote(part_name, vehicle)
