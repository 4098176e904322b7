from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from recon.data_models import VehicleDescriptor
from recon_service.token_cache import OAuthTokenCache

logger = logging.getLogger(__name__)

_ACCEPTED_COMPATIBILITY = frozenset({"EXACT", "COMPATIBLE"})
_NEW_CONDITION_FILTER = "conditionIds:{1000}"


@dataclass
class MarketplaceListing:
    title: str
    price: float
    currency: str
    condition: str
    item_url: str
    image_url: str | None = None


@dataclass
class MarketplaceResult:
    part_name: str
    query: str
    results_count: int = 0
    price_low: float | None = None
    price_median: float | None = None
    price_high: float | None = None
    sample_listings: list[MarketplaceListing] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.price_low is not None

    @property
    def purchase_link(self) -> str | None:
        return self.sample_listings[0].item_url if self.sample_listings else None

    def to_payload(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "results_count": self.results_count,
            "price_low": self.price_low,
            "price_median": self.price_median,
            "price_high": self.price_high,
            "sample_listings": [
                {
                    "title": listing.title,
                    "price": listing.price,
                    "currency": listing.currency,
                    "condition": listing.condition,
                    "item_url": listing.item_url,
                    "image_url": listing.image_url,
                }
                for listing in self.sample_listings
            ],
        }


def compatibility_filter(vehicle: VehicleDescriptor) -> str:
    compat = f"Year:{vehicle.year};Make:{vehicle.make};Model:{vehicle.model}"
    if vehicle.trim:
        compat += f";Trim:{vehicle.trim}"
    return compat


def reduce_prices(prices: list[float]) -> tuple[float, float, float]:
    """Return (low, median, high); the median is the lower-middle element for even counts."""
    ordered = sorted(prices)
    return ordered[0], ordered[(len(ordered) - 1) // 2], ordered[-1]


class MarketplacePartsClient:
    """Async client for the marketplace Browse item-summary search.

    Auth: client-credentials grant against the identity token endpoint.
    Search: GET /buy/browse/v1/item_summary/search with a vehicle
    compatibility filter, new condition only, sorted by price.
    Every failure mode returns a MarketplaceResult with ``error`` set.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        base_url: str = "https://api.ebay.com",
        token_url: str = "https://api.ebay.com/identity/v1/oauth2/token",
        scope: str = "https://api.ebay.com/oauth/api_scope",
        marketplace_id: str = "EBAY_US",
        category_id: str = "6030",
        end_user_zip: str = "37122",
        page_size: int = 15,
        timeout_seconds: float = 8.0,
        min_listings: int = 3,
        sample_listing_count: int = 5,
        token_safety_margin_seconds: float = 60.0,
        token_cache: OAuthTokenCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.scope = scope
        self.marketplace_id = marketplace_id
        self.category_id = category_id
        self.end_user_zip = end_user_zip
        self.page_size = page_size
        self.timeout_seconds = timeout_seconds
        self.min_listings = min_listings
        self.sample_listing_count = sample_listing_count
        self._transport = transport
        self._enabled = bool(client_id and client_secret)
        self.token_cache = token_cache or OAuthTokenCache(
            self._request_token, safety_margin_seconds=token_safety_margin_seconds
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def _request_token(self) -> tuple[str, float]:
        async with self._http_client() as client:
            resp = await client.post(
                self.token_url,
                auth=httpx.BasicAuth(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials", "scope": self.scope},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            resp.raise_for_status()
        data = resp.json()
        return data["access_token"], float(data.get("expires_in", 7200))

    async def search_part_prices(self, part_name: str, vehicle: VehicleDescriptor) -> MarketplaceResult:
        query = f"{part_name} {vehicle.label}"
        if not self._enabled:
            return MarketplaceResult(part_name=part_name, query=query, error="marketplace_not_configured")

        params = {
            "q": part_name,
            "category_ids": self.category_id,
            "compatibility_filter": compatibility_filter(vehicle),
            "filter": _NEW_CONDITION_FILTER,
            "sort": "price",
            "limit": str(self.page_size),
        }
        try:
            token = await self.token_cache.get_token()
            async with self._http_client() as client:
                resp = await client.get(
                    f"{self.base_url}/buy/browse/v1/item_summary/search",
                    params=params,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "X-EBAY-C-MARKETPLACE-ID": self.marketplace_id,
                        "X-EBAY-C-ENDUSERCTX": f"contextualLocation=country=US,zip={self.end_user_zip}",
                    },
                )
            if resp.status_code == 401:
                self.token_cache.invalidate()
            resp.raise_for_status()
            data = resp.json()
        except Exception as exc:
            logger.warning("Marketplace search failed for %r (%s): %s", part_name, vehicle.label, exc)
            return MarketplaceResult(part_name=part_name, query=query, error=str(exc) or type(exc).__name__)

        listings = [
            listing
            for listing in (_parse_listing(item) for item in data.get("itemSummaries") or [])
            if listing is not None
        ]
        if not listings:
            return MarketplaceResult(part_name=part_name, query=query, error="no_listings")
        if len(listings) < self.min_listings:
            logger.info(
                "Marketplace returned %d compatible listings for %r (%s), need %d",
                len(listings), part_name, vehicle.label, self.min_listings,
            )
            return MarketplaceResult(
                part_name=part_name,
                query=query,
                results_count=len(listings),
                error="insufficient_listings",
            )

        low, median, high = reduce_prices([listing.price for listing in listings])
        cheapest_first = sorted(listings, key=lambda listing: listing.price)
        return MarketplaceResult(
            part_name=part_name,
            query=query,
            results_count=len(listings),
            price_low=low,
            price_median=median,
            price_high=high,
            sample_listings=cheapest_first[: self.sample_listing_count],
        )


def _parse_listing(item: dict[str, Any]) -> MarketplaceListing | None:
    if item.get("compatibilityMatch") not in _ACCEPTED_COMPATIBILITY:
        return None
    price = item.get("price") or {}
    try:
        value = float(price.get("value"))
    except (TypeError, ValueError):
        return None
    if value < 0:
        return None
    thumbnails = item.get("thumbnailImages") or []
    return MarketplaceListing(
        title=item.get("title") or "",
        price=value,
        currency=price.get("currency") or "USD",
        condition=item.get("condition") or "",
        item_url=item.get("itemWebUrl") or "",
        image_url=thumbnails[0].get("imageUrl") if thumbnails else None,
    )
