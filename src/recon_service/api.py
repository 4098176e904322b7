from __future__ import annotations

import logging
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import asdict, fields
from datetime import timedelta
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field

from recon import labor_rates, vehicle_tiers
from recon.config import PricingConfig
from recon.data_models import DamageObservation, EstimateLineItem, VehicleDescriptor
from recon.summary import summarize_estimate
from recon_service.estimator import EstimateBuilder
from recon_service.logging_config import configure_logging, correlation_id, inspection_scope
from recon_service.marketplace import MarketplacePartsClient
from recon_service.part_pricing import PartPriceResolver
from recon_service.price_cache import PriceCache
from recon_service.settings import ServiceSettings
from recon_service.storage import PostgresStore, RedisCache
from recon_service.vin import VinDecoder

logger = logging.getLogger(__name__)


# ── Request / Response Models ───────────────────────────────────────

class VehicleIn(BaseModel):
    year: int = Field(ge=1900, le=2100)
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    trim: str | None = None


class DamageObservationIn(BaseModel):
    id: str = Field(min_length=1)
    location: str
    damage_type: str
    severity: Literal["minor", "moderate", "severe"]
    size_estimate: str = ""
    description: str = ""
    requires_part_replacement: bool = False
    part_name: str | None = None
    photo_index: int = Field(default=0, ge=0)


class EstimateRequest(BaseModel):
    vehicle: VehicleIn
    observations: list[DamageObservationIn]
    labor_rate_tier: str | None = None
    vin: str | None = Field(default=None, max_length=17)
    mileage: int | None = Field(default=None, ge=0)


class LineItemOut(BaseModel):
    id: str
    location: str
    damage_type: str
    severity: str
    size_estimate: str
    description: str
    requires_part_replacement: bool
    part_name: str | None
    photo_index: int
    recommended_repair: str
    repair_operation: str | None
    parts_cost_low: float
    parts_cost_high: float
    labor_cost_low: float
    labor_cost_high: float
    cost_low: float
    cost_high: float
    pricing_source: str
    purchase_link: str | None
    purchase_link_label: str | None
    is_included: bool


class SummaryOut(BaseModel):
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


class EstimateResponse(BaseModel):
    inspection_id: str
    vehicle_tier: str
    labor_rate_tier: str
    items: list[LineItemOut]
    summary: SummaryOut


class PriceQuoteOut(BaseModel):
    source: str
    price_low: float
    price_median: float
    price_high: float
    purchase_link: str | None


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, bool]


_LINE_ITEM_FIELDS = frozenset(f.name for f in fields(EstimateLineItem))


def _line_item_from_row(row: dict[str, Any]) -> EstimateLineItem:
    data = {k: v for k, v in row.items() if k in _LINE_ITEM_FIELDS}
    data["id"] = row["observation_id"]
    return EstimateLineItem(**data)


def _estimate_response(
    inspection: str,
    items: list[EstimateLineItem],
    make: str,
    labor_tier: str,
) -> EstimateResponse:
    return EstimateResponse(
        inspection_id=inspection,
        vehicle_tier=vehicle_tiers.tier_of(make),
        labor_rate_tier=labor_tier,
        items=[LineItemOut(**asdict(i)) for i in items],
        summary=SummaryOut(**asdict(summarize_estimate(items))),
    )


# ── App Factory ─────────────────────────────────────────────────────

def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    settings = settings or ServiceSettings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    config = PricingConfig(
        min_marketplace_listings=settings.marketplace_min_listings,
        marketplace_page_size=settings.marketplace_page_size,
        cache_ttl_days=settings.price_cache_ttl_days,
        default_labor_tier=settings.default_labor_tier,
    )
    cache = RedisCache(redis_url=settings.redis_url)
    store = PostgresStore(dsn=settings.postgres_dsn)
    price_cache = PriceCache(store, ttl=timedelta(days=config.cache_ttl_days))
    marketplace = MarketplacePartsClient(
        settings.marketplace_client_id,
        settings.marketplace_client_secret,
        base_url=settings.marketplace_base_url,
        token_url=settings.marketplace_token_url,
        scope=settings.marketplace_oauth_scope,
        marketplace_id=settings.marketplace_id,
        category_id=settings.marketplace_category_id,
        end_user_zip=settings.marketplace_end_user_zip,
        page_size=config.marketplace_page_size,
        timeout_seconds=settings.marketplace_timeout_seconds,
        min_listings=config.min_marketplace_listings,
        sample_listing_count=config.sample_listing_count,
        token_safety_margin_seconds=config.token_safety_margin_seconds,
    )
    resolver = PartPriceResolver(price_cache, marketplace)
    builder = EstimateBuilder(resolver, config)
    vin_decoder = VinDecoder(cache=cache, base_url=settings.nhtsa_base_url, ttl_seconds=settings.vin_cache_ttl_seconds)

    counters: dict[str, int] = defaultdict(int)
    latencies: list[float] = []

    if not settings.marketplace_enabled:
        logger.warning("Marketplace credentials not configured; parts will be priced from static tables")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await cache.connect()
        await store.connect()
        try:
            yield
        finally:
            await cache.close()
            await store.close()

    app = FastAPI(title="Reconditioning Estimate API", version="0.3.0", lifespan=lifespan)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next: Any) -> Response:
        cid = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex[:12]
        correlation_id.set(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response

    # ── Estimates ───────────────────────────────────────────────────

    @app.post("/estimates", response_model=EstimateResponse)
    async def create_estimate(payload: EstimateRequest) -> EstimateResponse:
        t0 = time.monotonic()
        try:
            vehicle = VehicleDescriptor(**payload.vehicle.model_dump())
            observations = [DamageObservation(**o.model_dump()) for o in payload.observations]
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

        labor_tier = payload.labor_rate_tier or config.default_labor_tier
        new_inspection_id = str(uuid.uuid4())
        with inspection_scope(new_inspection_id):
            items = await builder.build_estimate(observations, vehicle, labor_tier)
            summary = summarize_estimate(items)
            await store.insert_inspection({
                "id": new_inspection_id,
                "vin": payload.vin,
                "year": vehicle.year,
                "make": vehicle.make,
                "model": vehicle.model,
                "trim": vehicle.trim,
                "mileage": payload.mileage,
                "labor_rate_tier": labor_tier,
                "total_cost_low": summary.total_cost_low,
                "total_cost_high": summary.total_cost_high,
            })
            await store.insert_estimate_items(new_inspection_id, [asdict(i) for i in items])

        latencies.append(time.monotonic() - t0)
        counters["estimates"] += 1
        counters["line_items"] += len(items)
        return _estimate_response(new_inspection_id, items, vehicle.make, labor_tier)

    @app.get("/estimates/{estimate_id}", response_model=EstimateResponse)
    async def get_estimate(estimate_id: str) -> EstimateResponse:
        inspection = await store.get_inspection(estimate_id)
        if inspection is None:
            raise HTTPException(status_code=404, detail="Inspection not found")
        rows = await store.get_estimate_items(estimate_id)
        items = [_line_item_from_row(r) for r in rows]
        return _estimate_response(estimate_id, items, inspection["make"], inspection["labor_rate_tier"])

    # ── Pricing lookups ─────────────────────────────────────────────

    @app.get("/parts/price", response_model=PriceQuoteOut)
    async def get_part_price(
        part_name: str = Query(min_length=1),
        year: int = Query(ge=1900, le=2100),
        make: str = Query(min_length=1),
        model: str = Query(min_length=1),
        trim: str | None = None,
    ) -> PriceQuoteOut:
        try:
            vehicle = VehicleDescriptor(year=year, make=make, model=model, trim=trim)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        quote = await resolver.resolve(part_name, vehicle)
        return PriceQuoteOut(**asdict(quote))

    @app.get("/labor-rates")
    async def get_labor_rates() -> dict[str, Any]:
        return {"default": config.default_labor_tier, "multipliers": dict(labor_rates.LABOR_RATE_MULTIPLIERS)}

    @app.get("/vin/{vin}")
    async def decode_vin(vin: str) -> dict[str, Any]:
        if len(vin.strip()) != 17:
            raise HTTPException(status_code=422, detail="VIN must be 17 characters")
        return await vin_decoder.decode(vin)

    @app.post("/maintenance/price-cache/sweep")
    async def sweep_price_cache() -> dict[str, int]:
        return {"removed": await price_cache.sweep_expired()}

    # ── Health / Metrics ────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/ready", response_model=ReadinessResponse)
    async def ready() -> ReadinessResponse:
        checks = {
            "redis": await cache.ping(),
            "postgres": await store.ping(),
        }
        if not all(checks.values()):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=ReadinessResponse(status="degraded", checks=checks).model_dump(),
            )
        return ReadinessResponse(status="ready", checks=checks)

    @app.get("/metrics")
    async def get_metrics() -> dict[str, Any]:
        ordered = sorted(latencies)
        return {
            "counters": dict(counters),
            "part_price_outcomes": dict(resolver.outcomes),
            "marketplace_enabled": settings.marketplace_enabled,
            "estimate_latency": {
                "count": len(ordered),
                "p50_ms": round(ordered[len(ordered) // 2] * 1000, 1) if ordered else 0,
                "p95_ms": round(ordered[int(len(ordered) * 0.95)] * 1000, 1) if ordered else 0,
            },
        }

    return app


app = create_app()
