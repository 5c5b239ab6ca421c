"""
core/models.py
--------------
Domain entities of the marketplace state tree.

Every entity is an immutable pydantic model. The reducer produces new
instances with ``model_copy(update=...)``; nothing mutates a record in place.

Entities
--------
- User, PendingUser
- Product
- Order (+ OrderItem)
- Promotion
- ReturnRequest (+ ReturnItem)
- SupportTicket
- Notification
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Optional, Tuple

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator


# --------------------------------------------------------------------------- #
# Enumerations
# --------------------------------------------------------------------------- #

class Role(str, Enum):
    WHOLESALER = "wholesaler"
    RETAILER = "retailer"
    ADMIN = "admin"
    SUPPORT = "support"


class UserStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReturnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationType(str, Enum):
    USER = "user"
    ORDER = "order"
    PRODUCT = "product"
    PROMOTION = "promotion"
    SUPPORT = "support"
    RETURN = "return"
    SYSTEM = "system"


# Recipient channel tokens (a notification's user_id may be one of these
# instead of a concrete user id).
ADMIN_CHANNEL = "admin"
SUPPORT_CHANNEL = "support"
SYSTEM_CHANNEL = "system"
ALL_CHANNEL = "all"


# Legal order transitions; cancellation only before the order is ready.
ORDER_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    OrderStatus.PENDING: (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
    OrderStatus.ACCEPTED: (OrderStatus.READY, OrderStatus.CANCELLED),
    OrderStatus.READY: (OrderStatus.COMPLETED,),
    OrderStatus.COMPLETED: (),
    OrderStatus.CANCELLED: (),
}


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


Timestamp = Annotated[datetime, AfterValidator(_as_utc)]


class Entity(BaseModel):
    """Base for all state-tree records."""
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str


# --------------------------------------------------------------------------- #
# Users
# --------------------------------------------------------------------------- #

class User(Entity):
    name: str
    email: str
    role: Role
    business_name: str = ""
    phone: str = ""
    address: str = ""
    verified: bool = False
    status: UserStatus = UserStatus.ACTIVE
    created_at: Optional[Timestamp] = None


class PendingUser(Entity):
    """A self-registered user awaiting admin review."""
    name: str
    email: str
    role: Role
    business_name: str = ""
    phone: str = ""
    address: str = ""
    registration_reason: str = ""
    submitted_at: Optional[Timestamp] = None
    documents: Tuple[str, ...] = ()


# --------------------------------------------------------------------------- #
# Catalogue & orders
# --------------------------------------------------------------------------- #

class Product(Entity):
    wholesaler_id: str
    name: str
    description: str = ""
    price: float = Field(ge=0)
    stock: int = Field(ge=0)
    min_order_quantity: int = Field(default=1, ge=1)
    category: str = ""
    image_url: str = ""
    available: bool = True
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None


class OrderItem(BaseModel):
    """Line item; name and price are snapshots taken when the order was placed."""
    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    total: float = Field(ge=0)


class Order(Entity):
    retailer_id: str
    wholesaler_id: str
    items: Tuple[OrderItem, ...] = ()
    total: float = Field(ge=0)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[str] = None
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None
    notes: Optional[str] = None
    pickup_time: Optional[str] = None


# --------------------------------------------------------------------------- #
# Promotions
# --------------------------------------------------------------------------- #

class Promotion(Entity):
    wholesaler_id: str
    title: str
    description: str = ""
    discount: float = Field(ge=1, le=100)
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    product_ids: Tuple[str, ...] = ()
    active: bool = False
    status: ModerationStatus = ModerationStatus.PENDING
    submitted_at: Optional[Timestamp] = None
    reviewed_at: Optional[Timestamp] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _only_approved_can_be_active(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("active"):
            status = data.get("status", ModerationStatus.PENDING)
            if status not in (ModerationStatus.APPROVED, ModerationStatus.APPROVED.value):
                data = {**data, "active": False}
        return data


# --------------------------------------------------------------------------- #
# Returns & support
# --------------------------------------------------------------------------- #

class ReturnItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    quantity: int = Field(ge=1)
    reason: str = ""
    condition: str = ""
    unit_price: float = Field(default=0.0, ge=0)
    total_refund: float = Field(default=0.0, ge=0)


class ReturnRequest(Entity):
    order_id: str
    retailer_id: str
    wholesaler_id: str
    reason: str
    description: str = ""
    status: ReturnStatus = ReturnStatus.PENDING
    priority: Priority = Priority.MEDIUM
    requested_amount: float = Field(ge=0)
    approved_amount: Optional[float] = None
    items: Tuple[ReturnItem, ...] = ()
    images: Tuple[str, ...] = ()
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None
    processed_at: Optional[Timestamp] = None
    processed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    refund_method: Optional[str] = None
    tracking_number: Optional[str] = None


class SupportTicket(Entity):
    user_id: str
    user_name: str
    subject: str
    description: str = ""
    status: TicketStatus = TicketStatus.OPEN
    priority: Priority = Priority.MEDIUM
    assigned_to: Optional[str] = None
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None


# --------------------------------------------------------------------------- #
# Notifications
# --------------------------------------------------------------------------- #

class Notification(Entity):
    """
    A user-facing notice derived from a domain event.

    ``user_id`` is the recipient token: a concrete user id or one of the
    channel tokens (``admin``, ``support``, ``system``, ``all``).
    """
    user_id: str
    type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    priority: Priority = Priority.MEDIUM
    created_at: Timestamp
