"""
core/settings.py
----------------
Platform-wide singleton records held in the state tree.

- PlatformSettings: admin-tunable switches. Field defaults are the platform
  defaults; ``DEFAULT_PLATFORM_SETTINGS`` is what a reset restores.
- SystemStats: operational counters shown on the admin dashboard.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class PlatformSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    user_registration_enabled: bool = True
    email_notifications_enabled: bool = True
    auto_approve_promotions: bool = False
    maintenance_mode: bool = False
    commission_rate: float = Field(default=5, ge=0, le=100)
    minimum_order_value: float = Field(default=100, ge=0)
    max_products_per_wholesaler: int = Field(default=1000, ge=0)
    support_response_time: int = Field(default=24, ge=0)  # hours
    two_factor_required: bool = False
    data_encryption_enabled: bool = True
    audit_logging_enabled: bool = True

    def merged(self, changes: Dict[str, Any]) -> "PlatformSettings":
        """Shallow-merge ``changes`` and re-validate the result."""
        return PlatformSettings.model_validate({**self.model_dump(), **changes})


DEFAULT_PLATFORM_SETTINGS = PlatformSettings()


class SystemStats(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    server_uptime: float = 99.8
    response_time: float = 245
    active_sessions: int = 1247
    daily_transactions: int = 342
    transaction_success_rate: float = 98.5
    failed_payments: int = 5
    daily_active_users: int = 892
    new_registrations: int = 23
    bounce_rate: float = 12.3

    def merged(self, changes: Dict[str, Any]) -> "SystemStats":
        return SystemStats.model_validate({**self.model_dump(), **changes})
