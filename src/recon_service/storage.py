from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, MetaData, String, Table, delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


metadata = MetaData()

parts_price_cache_table = Table(
    "parts_price_cache",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("cache_key", String(255), nullable=False, unique=True),
    Column("part_name", String(128), nullable=False),
    Column("year", Integer, nullable=True),
    Column("make", String(64), nullable=True),
    Column("model", String(64), nullable=True),
    Column("source", String(32), nullable=False),
    Column("price_low", Float, nullable=True),
    Column("price_median", Float, nullable=True),
    Column("price_high", Float, nullable=True),
    Column("raw_data", JSON, nullable=False, default=dict),
    Column("fetched_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Index("idx_parts_cache_expires", "expires_at"),
)

inspections_table = Table(
    "inspections",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("vin", String(32), nullable=True, index=True),
    Column("year", Integer, nullable=False),
    Column("make", String(64), nullable=False),
    Column("model", String(64), nullable=False),
    Column("trim", String(64), nullable=True),
    Column("mileage", Integer, nullable=True),
    Column("labor_rate_tier", String(16), nullable=False, default="medium"),
    Column("total_cost_low", Float, nullable=False),
    Column("total_cost_high", Float, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

estimate_items_table = Table(
    "estimate_items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("inspection_id", String(36), nullable=False, index=True),
    Column("observation_id", String(64), nullable=False),
    Column("location", String(128), nullable=False),
    Column("damage_type", String(32), nullable=False),
    Column("severity", String(16), nullable=False),
    Column("size_estimate", String(128), nullable=False, default=""),
    Column("description", String, nullable=False, default=""),
    Column("requires_part_replacement", Boolean, nullable=False, default=False),
    Column("part_name", String(128), nullable=True),
    Column("photo_index", Integer, nullable=False, default=0),
    Column("sort_order", Integer, nullable=False, default=0),
    Column("recommended_repair", String, nullable=False),
    Column("repair_operation", String(64), nullable=True),
    Column("parts_cost_low", Float, nullable=False, default=0.0),
    Column("parts_cost_high", Float, nullable=False, default=0.0),
    Column("labor_cost_low", Float, nullable=False, default=0.0),
    Column("labor_cost_high", Float, nullable=False, default=0.0),
    Column("cost_low", Float, nullable=False),
    Column("cost_high", Float, nullable=False),
    Column("pricing_source", String(32), nullable=False, default="static"),
    Column("purchase_link", String, nullable=True),
    Column("purchase_link_label", String(128), nullable=True),
    Column("is_included", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


class RedisCache:
    """Namespaced JSON documents with a TTL, used for VIN decodes.

    When Redis cannot be reached at startup, documents live in a process-local
    dict of ``name -> (deadline, payload)`` checked against ``clock``.
    """

    def __init__(
        self,
        redis_url: str,
        namespace: str = "recon",
        connect_timeout: float = 0.75,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.redis_url = redis_url
        self.namespace = namespace
        self.connect_timeout = connect_timeout
        self._clock = clock
        self._redis: redis.Redis | None = None
        self._local: dict[str, tuple[float, str]] = {}

    def _name(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def connect(self) -> None:
        client = redis.Redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=self.connect_timeout,
            socket_timeout=self.connect_timeout,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis unavailable at %s, caching VIN decodes in process: %s", self.redis_url, exc)
            await client.aclose()
            return
        self._redis = client

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def ping(self) -> bool:
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError):
            return False

    def _read_local(self, name: str) -> str | None:
        held = self._local.get(name)
        if held is None:
            return None
        deadline, payload = held
        if self._clock() >= deadline:
            del self._local[name]
            return None
        return payload

    async def get_json(self, key: str) -> dict[str, Any] | None:
        name = self._name(key)
        if self._redis is None:
            payload = self._read_local(name)
        else:
            try:
                payload = await self._redis.get(name)
            except (RedisError, OSError) as exc:
                logger.warning("Redis read failed for %s: %s", name, exc)
                return None
        return None if payload is None else json.loads(payload)

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        name = self._name(key)
        payload = json.dumps(value)
        if self._redis is not None:
            try:
                await self._redis.set(name, payload, ex=ttl_seconds)
                return
            except (RedisError, OSError) as exc:
                logger.warning("Redis write failed for %s, holding it in process: %s", name, exc)
        self._local[name] = (self._clock() + ttl_seconds, payload)


class PostgresStore:
    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self.engine: AsyncEngine | None = None
        self._fallback_mode = False
        self._mem_price_cache: dict[str, dict[str, Any]] = {}
        self._mem_inspections: list[dict[str, Any]] = []
        self._mem_estimate_items: list[dict[str, Any]] = []

    async def connect(self) -> None:
        try:
            self.engine = create_async_engine(self.dsn, future=True)
            await self.init_schema()
        except Exception as exc:
            logger.warning("Postgres unavailable, using in-memory store: %s", exc)
            self._fallback_mode = True
            self.engine = None

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def ping(self) -> bool:
        if self.engine is None:
            return False
        if self._fallback_mode:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(select(1))
            return True
        except Exception:
            return False

    async def init_schema(self) -> None:
        if self.engine is None:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    # ── Parts price cache ───────────────────────────────────────────

    async def get_live_price_cache_row(self, cache_key: str, now: datetime) -> dict[str, Any] | None:
        if self.engine is None:
            row = self._mem_price_cache.get(cache_key)
            if row is None or row["expires_at"] <= now:
                return None
            return dict(row)
        stmt = (
            select(parts_price_cache_table)
            .where(parts_price_cache_table.c.cache_key == cache_key)
            .where(parts_price_cache_table.c.expires_at > now)
        )
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return dict(row._mapping) if row else None

    async def upsert_price_cache_row(self, record: dict[str, Any]) -> None:
        row = {
            "id": record.get("id") or str(uuid4()),
            "cache_key": record["cache_key"],
            "part_name": record["part_name"],
            "year": record.get("year"),
            "make": record.get("make"),
            "model": record.get("model"),
            "source": record["source"],
            "price_low": float(record["price_low"]),
            "price_median": float(record["price_median"]),
            "price_high": float(record["price_high"]),
            "raw_data": record.get("raw_data", {}),
            "fetched_at": record["fetched_at"],
            "expires_at": record["expires_at"],
        }
        if self.engine is None:
            existing = self._mem_price_cache.get(row["cache_key"])
            if existing is not None:
                row["id"] = existing["id"]
            self._mem_price_cache[row["cache_key"]] = row
            return
        stmt = pg_insert(parts_price_cache_table).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[parts_price_cache_table.c.cache_key],
            set_={k: stmt.excluded[k] for k in row if k not in ("id", "cache_key")},
        )
        async with self.engine.begin() as conn:
            await conn.execute(stmt)

    async def delete_expired_price_cache(self, now: datetime) -> int:
        if self.engine is None:
            expired = [k for k, r in self._mem_price_cache.items() if r["expires_at"] <= now]
            for key in expired:
                del self._mem_price_cache[key]
            return len(expired)
        stmt = delete(parts_price_cache_table).where(parts_price_cache_table.c.expires_at <= now)
        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
        return int(result.rowcount or 0)

    # ── Inspections & line items ────────────────────────────────────

    async def insert_inspection(self, record: dict[str, Any]) -> str:
        inspection_id = record.get("id") or str(uuid4())
        row = {
            "id": inspection_id,
            "vin": record.get("vin"),
            "year": int(record["year"]),
            "make": record["make"],
            "model": record["model"],
            "trim": record.get("trim"),
            "mileage": record.get("mileage"),
            "labor_rate_tier": record.get("labor_rate_tier", "medium"),
            "total_cost_low": float(record["total_cost_low"]),
            "total_cost_high": float(record["total_cost_high"]),
            "created_at": datetime.now(timezone.utc),
        }
        if self.engine is None:
            self._mem_inspections.append(row)
            return inspection_id
        async with self.engine.begin() as conn:
            await conn.execute(insert(inspections_table).values(**row))
        return inspection_id

    async def insert_estimate_items(self, inspection_id: str, items: list[dict[str, Any]]) -> int:
        if not items:
            return 0
        created_at = datetime.now(timezone.utc)
        rows = []
        for position, item in enumerate(items):
            row = {k: v for k, v in item.items() if k != "id"}
            row["id"] = str(uuid4())
            row["sort_order"] = position
            row["observation_id"] = item["id"]
            row["inspection_id"] = inspection_id
            row["created_at"] = created_at
            rows.append(row)
        if self.engine is None:
            self._mem_estimate_items.extend(rows)
            return len(rows)
        async with self.engine.begin() as conn:
            await conn.execute(insert(estimate_items_table), rows)
        return len(rows)

    async def get_inspection(self, inspection_id: str) -> dict[str, Any] | None:
        if self.engine is None:
            for row in self._mem_inspections:
                if row["id"] == inspection_id:
                    return row
            return None
        stmt = select(inspections_table).where(inspections_table.c.id == inspection_id)
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return dict(row._mapping) if row else None

    async def get_estimate_items(self, inspection_id: str) -> list[dict[str, Any]]:
        if self.engine is None:
            return [r for r in self._mem_estimate_items if r["inspection_id"] == inspection_id]
        stmt = (
            select(estimate_items_table)
            .where(estimate_items_table.c.inspection_id == inspection_id)
            .order_by(estimate_items_table.c.sort_order)
        )
        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [dict(r._mapping) for r in rows]
