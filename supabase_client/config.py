# supabase_client/config.py
"""Async Supabase client factory."""

from __future__ import annotations

from typing import Optional

from supabase import AsyncClient, acreate_client

from core.config import AppConfig, load_config
from core.errors import GatewayNotConfigured


async def get_supabase_client(config: Optional[AppConfig] = None) -> AsyncClient:
    """Return an async Supabase client if credentials are set."""
    config = config or load_config()
    if not config.supabase_configured:
        raise GatewayNotConfigured("Supabase credentials not set in environment variables.")
    return await acreate_client(config.supabase_url, config.supabase_anon_key)
