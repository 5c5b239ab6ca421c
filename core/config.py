"""
core/config.py
--------------
Central configuration hub for the marketplace core.

- Reads Supabase credentials and sync timings from environment variables
  (a local ``.env`` file is honoured via python-dotenv).
- Decides whether the app runs online or in offline/demo mode.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

# Placeholder credentials shipped in sample env files; never treated as real.
PLACEHOLDER_URLS = ("https://demo.supabase.co",)
PLACEHOLDER_KEYS = ("demo-key",)


class AppConfig(BaseModel):
    """Runtime configuration for the store, sync layer and gateway."""
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    probe_interval_sec: float = Field(default=30.0, gt=0)
    fetch_timeout_sec: float = Field(default=10.0, gt=0)
    probe_timeout_sec: float = Field(default=5.0, gt=0)
    log_level: str = "INFO"

    @property
    def supabase_configured(self) -> bool:
        return is_supabase_configured(self.supabase_url, self.supabase_anon_key)


def is_supabase_configured(url: Optional[str], key: Optional[str]) -> bool:
    """True only for credentials that look like a real hosted project."""
    if not url or not key:
        return False
    if url in PLACEHOLDER_URLS or key in PLACEHOLDER_KEYS:
        return False
    return url.startswith("https://") and len(key) > 20


def load_config() -> AppConfig:
    """Build an AppConfig from the current environment."""
    return AppConfig(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY"),
        probe_interval_sec=float(os.getenv("SYNC_PROBE_INTERVAL_SEC", "30")),
        fetch_timeout_sec=float(os.getenv("SYNC_FETCH_TIMEOUT_SEC", "10")),
        probe_timeout_sec=float(os.getenv("SYNC_PROBE_TIMEOUT_SEC", "5")),
        log_level=os.getenv("MARKETPLACE_LOG_LEVEL", "INFO").upper(),
    )
