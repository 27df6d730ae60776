"""Supabase-backed stores and store selection at startup."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from supabase import Client

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import CalculationResult, ShopOrigin, Zone
from ..services.outputs.formatter import calculation_to_dict
from .filesystem import FileCalculationStore
from .stores import (
    CalculationStore,
    InMemoryCalculationStore,
    InMemoryOriginStore,
    InMemoryZoneStore,
    ShopOriginStore,
    ZoneStore,
    load_seed,
    origin_from_record,
    zones_from_records,
)

logger = logging.getLogger(__name__)

ORIGINS_TABLE = "shop_origins"
ZONES_TABLE = "pricing_zones"
CALCULATIONS_TABLE = "geopricing_calculations"


class SupabaseOriginStore:
    def __init__(self, client: Client) -> None:
        self.client = client

    def _fetch(self, business_id: str) -> list[dict[str, Any]]:
        response = self.client.table(ORIGINS_TABLE).select("*").eq("business_id", business_id).execute()
        return response.data or []

    async def list_origins(self, business_id: str) -> list[ShopOrigin]:
        try:
            rows = await asyncio.to_thread(self._fetch, business_id)
        except Exception as e:
            logger.warning(f"Failed to load shop origins for {business_id}: {e}")
            return []
        origins = []
        for row in rows:
            try:
                origins.append(origin_from_record(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed shop origin {row.get('id')}: {e}")
        return origins


class SupabaseZoneStore:
    def __init__(self, client: Client) -> None:
        self.client = client

    def _fetch(self, business_id: str) -> list[dict[str, Any]]:
        response = (
            self.client.table(ZONES_TABLE)
            .select("*")
            .eq("business_id", business_id)
            .eq("active", True)
            .execute()
        )
        return response.data or []

    async def list_zones(self, business_id: str) -> list[Zone]:
        try:
            rows = await asyncio.to_thread(self._fetch, business_id)
        except Exception as e:
            logger.warning(f"Failed to load pricing zones for {business_id}: {e}")
            return []
        return zones_from_records(rows)


class SupabaseCalculationStore:
    def __init__(self, client: Client) -> None:
        self.client = client

    async def save(self, result: CalculationResult) -> None:
        document = calculation_to_dict(result)
        row = {
            "id": result.id,
            "business_id": result.business_id,
            "origin_id": result.origin_id,
            "final_price": document["final_price"],
            "currency": result.currency,
            "computed_at": document["computed_at"],
            "expires_at": document["expires_at"],
            "payload": document,
        }
        await asyncio.to_thread(lambda: self.client.table(CALCULATIONS_TABLE).insert(row).execute())

    async def get(self, calculation_id: str) -> Optional[dict[str, Any]]:
        def fetch() -> list[dict[str, Any]]:
            response = (
                self.client.table(CALCULATIONS_TABLE).select("payload").eq("id", calculation_id).limit(1).execute()
            )
            return response.data or []

        rows = await asyncio.to_thread(fetch)
        return rows[0]["payload"] if rows else None


@dataclass(slots=True)
class Stores:
    origins: ShopOriginStore
    zones: ZoneStore
    calculations: Optional[CalculationStore]


def build_stores() -> Stores:
    """Supabase when configured, otherwise the JSON seed file plus local calculation storage."""
    client = get_supabase_client()
    if client is not None:
        logger.info("Using Supabase stores for origins, zones and calculations")
        store = SupabaseCalculationStore(client) if settings.persist_calculations else None
        return Stores(SupabaseOriginStore(client), SupabaseZoneStore(client), store)

    origins, zones = load_seed()
    if settings.persist_calculations:
        calculations = FileCalculationStore()
    else:
        calculations = InMemoryCalculationStore()
    return Stores(InMemoryOriginStore(origins), InMemoryZoneStore(zones), calculations)
