"""Supabase client for the geopricing backend."""

import logging
from functools import lru_cache
from supabase import create_client, Client
from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns:
        Supabase Client instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.info("Supabase credentials not configured; using seed file and local storage")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None


# Tables used by the geopricing stores:
#
#   shop_origins             one row per origin, see persistence.stores.origin_from_record
#   pricing_zones            one row per zone, see persistence.stores.zone_from_record
#   geopricing_calculations  write-once calculation documents
