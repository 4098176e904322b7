from __future__ import annotations

import logging
from typing import Any

import httpx

from recon_service.storage import RedisCache

logger = logging.getLogger(__name__)


# 10th VIN character -> model year (current 30-year cycle).
_YEAR_CODE_MAP = {
    "Y": 2000,
    "1": 2001,
    "2": 2002,
    "3": 2003,
    "4": 2004,
    "5": 2005,
    "6": 2006,
    "7": 2007,
    "8": 2008,
    "9": 2009,
    "A": 2010,
    "B": 2011,
    "C": 2012,
    "D": 2013,
    "E": 2014,
    "F": 2015,
    "G": 2016,
    "H": 2017,
    "J": 2018,
    "K": 2019,
    "L": 2020,
    "M": 2021,
    "N": 2022,
    "P": 2023,
    "R": 2024,
    "S": 2025,
    "T": 2026,
    "V": 2027,
}


def _clean(value: Any) -> str | None:
    text = str(value).strip() if value is not None else ""
    return text if text and text != "0" else None


class VinDecoder:
    """Pre-fills the vehicle descriptor from a VIN via NHTSA vPIC."""

    def __init__(
        self,
        cache: RedisCache,
        base_url: str,
        ttl_seconds: int,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds
        self._transport = transport

    def _fallback_decode(self, vin: str) -> dict[str, Any]:
        year = _YEAR_CODE_MAP.get(vin[9].upper()) if len(vin) >= 10 else None
        return {
            "vin": vin,
            "year": year,
            "make": None,
            "model": None,
            "trim": None,
            "body_style": None,
            "decode_source": "fallback",
        }

    async def decode(self, vin: str) -> dict[str, Any]:
        vin = vin.strip().upper()
        cache_key = f"vin_decode:{vin}"
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            return cached

        try:
            url = f"{self.base_url}/DecodeVinValues/{vin}"
            async with httpx.AsyncClient(timeout=2.0, transport=self._transport) as client:
                resp = await client.get(url, params={"format": "json"})
                resp.raise_for_status()
            payload = resp.json()
            row = (payload.get("Results") or [{}])[0]
            year = _clean(row.get("ModelYear"))
            decoded = {
                "vin": vin,
                "year": int(year) if year and year.isdigit() else None,
                "make": _clean(row.get("Make")),
                "model": _clean(row.get("Model")),
                "trim": _clean(row.get("Series")) or _clean(row.get("Trim")),
                "body_style": _clean(row.get("BodyClass")),
                "decode_source": "nhtsa",
            }
        except Exception as exc:
            logger.warning("VIN decode failed for %s: %s", vin, exc)
            return self._fallback_decode(vin)

        await self.cache.set_json(cache_key, decoded, ttl_seconds=self.ttl_seconds)
        return decoded
