"""Async Supabase client factory and small query helpers."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from supabase import AsyncClient, acreate_client

from lib.config import SUPABASE_SERVICE_KEY, SUPABASE_URL
from utils.errors import ConfigError, SupabaseError

logger = logging.getLogger(__name__)

_client: Optional[AsyncClient] = None


async def get_supabase() -> AsyncClient:
    """Return the process-wide admin client, creating it on first use."""
    global _client
    if _client is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
            raise ConfigError("Supabase environment variables are not configured")
        _client = await acreate_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
        logger.info("Supabase client initialized.")
    return _client


async def fetch_rows(query: Any) -> List[Dict[str, Any]]:
    """Execute a query builder and return its rows (never None)."""
    response = await query.execute()
    error = getattr(response, "error", None)
    if error:
        raise SupabaseError(f"Supabase query failed: {error}")
    data = getattr(response, "data", None)
    if isinstance(data, list):
        return [row for row in data if isinstance(row, dict)]
    if isinstance(data, dict):
        return [data]
    return []


async def fetch_first(query: Any) -> Optional[Dict[str, Any]]:
    """Execute a query builder limited to one row and return it, or None."""
    rows = await fetch_rows(query.limit(1))
    return rows[0] if rows else None
