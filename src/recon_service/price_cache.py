from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Literal

from recon.data_models import CacheEntry, VehicleDescriptor, normalize_label
from recon_service.storage import PostgresStore

logger = logging.getLogger(__name__)

LookupStatus = Literal["hit", "miss", "error"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_cache_key(part_name: str, year: int, make: str, model: str) -> str:
    """Composite key "part:year:make:model" with each text field lowercased and
    whitespace collapsed to underscores. Trim is deliberately left out."""
    return f"{normalize_label(part_name)}:{year}:{normalize_label(make)}:{normalize_label(model)}"


@dataclass(frozen=True)
class CacheLookup:
    status: LookupStatus
    entry: CacheEntry | None = None
    error: str | None = None


class PriceCache:
    def __init__(
        self,
        store: PostgresStore,
        ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self._clock = clock

    async def lookup(self, part_name: str, year: int, make: str, model: str) -> CacheLookup:
        cache_key = build_cache_key(part_name, year, make, model)
        now = self._clock()
        try:
            row = await self.store.get_live_price_cache_row(cache_key, now)
        except Exception as exc:
            logger.warning("Price cache read failed for %s: %s", cache_key, exc)
            return CacheLookup(status="error", error=str(exc))
        if row is None:
            return CacheLookup(status="miss")
        entry = _entry_from_row(row)
        if not entry.is_live(now):
            return CacheLookup(status="miss")
        return CacheLookup(status="hit", entry=entry)

    async def get(self, part_name: str, year: int, make: str, model: str) -> CacheEntry | None:
        return (await self.lookup(part_name, year, make, model)).entry

    def new_entry(
        self,
        part_name: str,
        vehicle: VehicleDescriptor,
        *,
        source: Literal["marketplace", "static"],
        price_low: float,
        price_median: float,
        price_high: float,
        raw_payload: dict[str, Any] | None = None,
    ) -> CacheEntry:
        fetched_at = self._clock()
        return CacheEntry(
            cache_key=build_cache_key(part_name, vehicle.year, vehicle.make, vehicle.model),
            part_name=part_name,
            year=vehicle.year,
            make=vehicle.make,
            model=vehicle.model,
            source=source,
            price_low=price_low,
            price_median=price_median,
            price_high=price_high,
            fetched_at=fetched_at,
            expires_at=fetched_at + self.ttl,
            raw_payload=raw_payload or {},
        )

    async def put(self, entry: CacheEntry) -> bool:
        """Best-effort write; returns False (and logs) instead of raising."""
        try:
            await self.store.upsert_price_cache_row({
                "cache_key": entry.cache_key,
                "part_name": entry.part_name,
                "year": entry.year,
                "make": entry.make,
                "model": entry.model,
                "source": entry.source,
                "price_low": entry.price_low,
                "price_median": entry.price_median,
                "price_high": entry.price_high,
                "raw_data": entry.raw_payload,
                "fetched_at": entry.fetched_at,
                "expires_at": entry.expires_at,
            })
        except Exception as exc:
            logger.warning("Price cache write failed for %s: %s", entry.cache_key, exc)
            return False
        return True

    async def sweep_expired(self) -> int:
        removed = await self.store.delete_expired_price_cache(self._clock())
        if removed:
            logger.info("Swept %d expired price cache rows", removed)
        return removed


def _entry_from_row(row: dict[str, Any]) -> CacheEntry:
    return CacheEntry(
        cache_key=row["cache_key"],
        part_name=row["part_name"],
        year=row.get("year") or 0,
        make=row.get("make") or "",
        model=row.get("model") or "",
        source=row["source"],
        price_low=float(row.get("price_low") or 0.0),
        price_median=float(row.get("price_median") or 0.0),
        price_high=float(row.get("price_high") or 0.0),
        fetched_at=row["fetched_at"],
        expires_at=row["expires_at"],
        raw_payload=row.get("raw_data") or {},
    )
