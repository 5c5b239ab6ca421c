# supabase_client/auth.py
"""
Authentication collaborator.

Thin wrapper over Supabase Auth. Session persistence and email verification
stay with Supabase; the core only needs an identity back.

Offline/demo mode
-----------------
- ``sign_in`` returns a demo identity so the app stays usable.
- ``sign_up`` raises ``GatewayNotConfigured``: registrations must reach the
  real backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from supabase import AsyncClient

from core.errors import GatewayError, GatewayNotConfigured, ValidationError
from core.models import Role

logger = logging.getLogger(__name__)

SELF_REGISTER_ROLES = (Role.WHOLESALER, Role.RETAILER)


@dataclass(frozen=True)
class AuthIdentity:
    user_id: str
    email: str
    access_token: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    demo: bool = False


def validate_registration(email: str, password: str, confirm_password: str, role: Role | str) -> None:
    """Reject malformed registration input before anything is dispatched."""
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("A valid email address is required.")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters.")
    if password != confirm_password:
        raise ValidationError("Passwords do not match.")
    if Role(role) not in SELF_REGISTER_ROLES:
        raise ValidationError("Only wholesalers and retailers can self-register.")


class AuthService:
    def __init__(self, client: Optional[AsyncClient] = None):
        self.client = client

    async def sign_up(self, email: str, password: str, profile: Dict[str, Any]) -> AuthIdentity:
        if self.client is None:
            raise GatewayNotConfigured("Supabase not configured")

        try:
            res = await self.client.auth.sign_up(
                {"email": email, "password": password, "options": {"data": dict(profile)}}
            )
        except Exception as e:
            raise GatewayError("sign_up", "auth", e) from e

        user = res.user
        session = res.session
        logger.info("[Supabase] sign-up accepted for %s", email)
        return AuthIdentity(
            user_id=user.id,
            email=user.email or email,
            access_token=session.access_token if session else None,
            metadata=dict(profile),
        )

    async def sign_in(self, email: str, password: str) -> AuthIdentity:
        if self.client is None:
            logger.info("[Auth] demo mode sign-in for %s", email)
            return AuthIdentity(user_id="demo-user", email=email, access_token="demo-token", demo=True)

        try:
            res = await self.client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            raise GatewayError("sign_in", "auth", e) from e

        return AuthIdentity(
            user_id=res.user.id,
            email=res.user.email or email,
            access_token=res.session.access_token if res.session else None,
            metadata=dict(res.user.user_metadata or {}),
        )

    async def sign_out(self) -> None:
        if self.client is None:
            return
        await self.client.auth.sign_out()
