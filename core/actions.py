"""
core/actions.py
---------------
The closed set of actions the reducer understands.

Each action is a frozen dataclass. Two fields are shared by all variants and
fixed when the action is constructed:

- ``action_id``: UUID used to derive notification ids, so one action always
  produces the same notification ids however often it is replayed.
- ``at``: the logical time of the event; the reducer never reads the clock.

``ACTION_TYPES`` enumerates every variant. The reducer, the notification
rules and the remote-write translation each check at import time that they
cover all of them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from core.models import (
    Notification,
    Order,
    PendingUser,
    Product,
    Promotion,
    ReturnRequest,
    SupportTicket,
    User,
)
from core.settings import PlatformSettings, SystemStats


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _validate_changes(record, changes: Dict[str, Any], label: str) -> None:
    unknown = set(changes) - set(type(record).model_fields)
    if unknown:
        raise ValidationError(f"Unknown {label}: {sorted(unknown)}")
    try:
        record.merged(changes)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {label}: {e}") from e


@dataclass(frozen=True)
class BaseAction:
    action_id: str = field(default_factory=_new_id, kw_only=True)
    at: datetime = field(default_factory=_utcnow, kw_only=True)


# --------------------------------------------------------------------------- #
# Session / sync
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class SetCurrentUser(BaseAction):
    user: Optional[User]


@dataclass(frozen=True)
class ReplaceCollection(BaseAction):
    """Publish a whole collection as merged by the sync layer."""
    collection: str
    items: Tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))


# --------------------------------------------------------------------------- #
# Users & registration
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class AddUser(BaseAction):
    user: User


@dataclass(frozen=True)
class AddPendingUser(BaseAction):
    pending_user: PendingUser


@dataclass(frozen=True)
class ApproveUser(BaseAction):
    pending_user_id: str
    admin_id: str
    new_user_id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        if self.new_user_id == self.pending_user_id:
            raise ValidationError("A pending user id cannot be reused as a user id.")


@dataclass(frozen=True)
class RejectUser(BaseAction):
    pending_user_id: str
    admin_id: str
    reason: str


@dataclass(frozen=True)
class BulkVerifyUsers(BaseAction):
    user_ids: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "user_ids", tuple(self.user_ids))


@dataclass(frozen=True)
class SuspendUser(BaseAction):
    user_id: str


@dataclass(frozen=True)
class BroadcastAnnouncement(BaseAction):
    title: str
    message: str


# --------------------------------------------------------------------------- #
# Settings & stats
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class UpdatePlatformSettings(BaseAction):
    changes: Dict[str, Any]

    def __post_init__(self) -> None:
        _validate_changes(PlatformSettings(), self.changes, "platform settings")


@dataclass(frozen=True)
class ResetSettingsToDefault(BaseAction):
    pass


@dataclass(frozen=True)
class UpdateSystemStats(BaseAction):
    changes: Dict[str, Any]

    def __post_init__(self) -> None:
        _validate_changes(SystemStats(), self.changes, "system stats")


# --------------------------------------------------------------------------- #
# Products & orders
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class AddProduct(BaseAction):
    product: Product


@dataclass(frozen=True)
class UpdateProduct(BaseAction):
    product: Product


@dataclass(frozen=True)
class DeleteProduct(BaseAction):
    product_id: str


@dataclass(frozen=True)
class AddOrder(BaseAction):
    order: Order


@dataclass(frozen=True)
class UpdateOrder(BaseAction):
    order: Order


# --------------------------------------------------------------------------- #
# Support tickets
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class AddTicket(BaseAction):
    ticket: SupportTicket


@dataclass(frozen=True)
class UpdateTicket(BaseAction):
    ticket: SupportTicket


# --------------------------------------------------------------------------- #
# Promotions
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class AddPromotion(BaseAction):
    promotion: Promotion


@dataclass(frozen=True)
class UpdatePromotion(BaseAction):
    promotion: Promotion


@dataclass(frozen=True)
class ApprovePromotion(BaseAction):
    promotion_id: str
    admin_id: str


@dataclass(frozen=True)
class RejectPromotion(BaseAction):
    promotion_id: str
    admin_id: str
    reason: str


# --------------------------------------------------------------------------- #
# Return requests
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class AddReturnRequest(BaseAction):
    request: ReturnRequest


@dataclass(frozen=True)
class UpdateReturnRequest(BaseAction):
    request: ReturnRequest


@dataclass(frozen=True)
class ApproveReturnRequest(BaseAction):
    request_id: str
    support_id: str
    approved_amount: float
    refund_method: str

    def __post_init__(self) -> None:
        if self.approved_amount < 0:
            raise ValidationError("approved_amount must be non-negative.")


@dataclass(frozen=True)
class RejectReturnRequest(BaseAction):
    request_id: str
    support_id: str
    reason: str


# --------------------------------------------------------------------------- #
# Notifications
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class AddNotification(BaseAction):
    notification: Notification


@dataclass(frozen=True)
class MarkNotificationRead(BaseAction):
    notification_id: str


@dataclass(frozen=True)
class MarkAllNotificationsRead(BaseAction):
    user_id: str


@dataclass(frozen=True)
class DeleteNotification(BaseAction):
    notification_id: str


Action = Union[
    SetCurrentUser,
    ReplaceCollection,
    AddUser,
    AddPendingUser,
    ApproveUser,
    RejectUser,
    BulkVerifyUsers,
    SuspendUser,
    BroadcastAnnouncement,
    UpdatePlatformSettings,
    ResetSettingsToDefault,
    UpdateSystemStats,
    AddProduct,
    UpdateProduct,
    DeleteProduct,
    AddOrder,
    UpdateOrder,
    AddTicket,
    UpdateTicket,
    AddPromotion,
    UpdatePromotion,
    ApprovePromotion,
    RejectPromotion,
    AddReturnRequest,
    UpdateReturnRequest,
    ApproveReturnRequest,
    RejectReturnRequest,
    AddNotification,
    MarkNotificationRead,
    MarkAllNotificationsRead,
    DeleteNotification,
]

ACTION_TYPES: Tuple[type, ...] = Action.__args__  # type: ignore[attr-defined]


def assert_covers(handlers: Sequence[type] | Dict[type, Any], where: str) -> None:
    """Fail loudly at import time if ``handlers`` misses an action variant."""
    missing = [t.__name__ for t in ACTION_TYPES if t not in handlers]
    if missing:
        raise RuntimeError(f"{where} has no case for: {', '.join(missing)}")
