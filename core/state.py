"""
core/state.py
-------------
The application state tree.

AppState is a frozen dataclass of tuples; the reducer returns a new AppState
via ``dataclasses.replace``. Collections are addressed by name so the sync
layer can publish whole collections generically.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Tuple

from core.models import (
    Notification,
    Order,
    PendingUser,
    Product,
    Promotion,
    ReturnRequest,
    Role,
    SupportTicket,
    User,
    UserStatus,
)
from core.settings import DEFAULT_PLATFORM_SETTINGS, PlatformSettings, SystemStats

# Entity collections that mirror remote tables.
COLLECTIONS = (
    "users",
    "pending_users",
    "products",
    "orders",
    "tickets",
    "promotions",
    "return_requests",
)


@dataclass(frozen=True)
class AppState:
    current_user: Optional[User] = None
    users: Tuple[User, ...] = ()
    pending_users: Tuple[PendingUser, ...] = ()
    products: Tuple[Product, ...] = ()
    orders: Tuple[Order, ...] = ()
    tickets: Tuple[SupportTicket, ...] = ()
    promotions: Tuple[Promotion, ...] = ()
    return_requests: Tuple[ReturnRequest, ...] = ()
    notifications: Tuple[Notification, ...] = ()
    platform_settings: PlatformSettings = DEFAULT_PLATFORM_SETTINGS
    system_stats: SystemStats = field(default_factory=SystemStats)

    def collection(self, name: str) -> tuple:
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return getattr(self, name)

    def with_collection(self, name: str, items) -> "AppState":
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return replace(self, **{name: tuple(items)})

    def find_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)


def _seed_user(n: int, name: str, email: str, role: Role, business: str, address: str) -> User:
    return User(
        id=f"00000000-0000-0000-0000-00000000000{n}",
        name=name,
        email=email,
        role=role,
        business_name=business,
        phone=f"+27 123 456 {788 + n}",
        address=address,
        verified=True,
        status=UserStatus.ACTIVE,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


SEED_USERS: Tuple[User, ...] = (
    _seed_user(1, "Admin User", "admin@test.com", Role.ADMIN, "NWI B2B Platform", "Platform Administration"),
    _seed_user(2, "Test Wholesaler", "wholesaler@test.com", Role.WHOLESALER, "Test Wholesale Business", "Test Wholesale Address"),
    _seed_user(3, "Test Retailer", "retailer@test.com", Role.RETAILER, "Test Retail Business", "Test Retail Address"),
    _seed_user(4, "Test Support", "support@test.com", Role.SUPPORT, "NWI B2B Support", "Support Department"),
    _seed_user(5, "NWI Support", "Support@nwi.com", Role.SUPPORT, "NWI B2B Support Team", "NWI Support Department"),
)


def initial_state(seed: bool = True) -> AppState:
    """Fresh state tree; ``seed`` includes the demo users."""
    return AppState(users=SEED_USERS if seed else ())
