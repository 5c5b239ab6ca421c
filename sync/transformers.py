"""
sync/transformers.py
--------------------

Pure mapping between gateway rows and domain entities.

- Input rows are plain dicts as returned by Supabase (snake_case columns,
  numeric columns possibly delivered as strings).
- Output entities are the immutable models in core.models.
- ``*_to_row`` functions produce JSON-safe dicts ready for insert/update.

Aggregates split across tables (orders + order_items, return_requests +
return_items) are assembled from the parent row plus its child rows.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from core.models import (
    Order,
    OrderItem,
    PendingUser,
    Product,
    Promotion,
    ReturnItem,
    ReturnRequest,
    SupportTicket,
    User,
)
from core.settings import PlatformSettings

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
E = TypeVar("E")


def _num(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    return float(value)


def _opt_num(value: Any) -> Optional[float]:
    return None if value is None or value == "" else float(value)


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _enum(value: Any) -> Any:
    return getattr(value, "value", value)


def group_children(rows: Iterable[Row], parent_key: str) -> Dict[str, List[Row]]:
    """Bucket child rows by their parent id."""
    grouped: Dict[str, List[Row]] = defaultdict(list)
    for row in rows:
        grouped[str(row.get(parent_key))].append(row)
    return grouped


def parse_rows(parse: Callable[[Row], E], rows: Iterable[Row], table: str) -> List[E]:
    """Parse every row, skipping (and logging) the ones that do not validate."""
    parsed: List[E] = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("[Sync] skipping malformed row %s in '%s': %s", row.get("id"), table, e)
    return parsed


# --------------------------------------------------------------------------- #
# Users
# --------------------------------------------------------------------------- #

def user_from_row(row: Row) -> User:
    return User(
        id=str(row["id"]),
        name=row["name"],
        email=row["email"],
        role=row["role"],
        business_name=row.get("business_name") or "",
        phone=row.get("phone") or "",
        address=row.get("address") or "",
        verified=bool(row.get("verified", False)),
        status=row.get("status") or "active",
        created_at=row.get("created_at"),
    )


def user_to_row(user: User) -> Row:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": _enum(user.role),
        "business_name": user.business_name,
        "phone": user.phone,
        "address": user.address,
        "verified": user.verified,
        "status": _enum(user.status),
        "created_at": _iso(user.created_at),
    }


def pending_user_from_row(row: Row) -> PendingUser:
    return PendingUser(
        id=str(row["id"]),
        name=row["name"],
        email=row["email"],
        role=row["role"],
        business_name=row.get("business_name") or "",
        phone=row.get("phone") or "",
        address=row.get("address") or "",
        registration_reason=row.get("registration_reason") or "",
        submitted_at=row.get("submitted_at"),
        documents=tuple(row.get("documents") or ()),
    )


def pending_user_to_row(pending: PendingUser) -> Row:
    return {
        "id": pending.id,
        "name": pending.name,
        "email": pending.email,
        "role": _enum(pending.role),
        "business_name": pending.business_name,
        "phone": pending.phone,
        "address": pending.address,
        "registration_reason": pending.registration_reason,
        "submitted_at": _iso(pending.submitted_at),
        "documents": list(pending.documents),
        "status": "pending",
    }


# --------------------------------------------------------------------------- #
# Products
# --------------------------------------------------------------------------- #

def product_from_row(row: Row) -> Product:
    return Product(
        id=str(row["id"]),
        wholesaler_id=str(row["wholesaler_id"]),
        name=row["name"],
        description=row.get("description") or "",
        price=_num(row.get("price")),
        stock=int(row.get("stock") or 0),
        min_order_quantity=int(row.get("min_order_quantity") or 1),
        category=row.get("category") or "",
        image_url=row.get("image_url") or "",
        available=bool(row.get("available", True)),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def product_to_row(product: Product) -> Row:
    return {
        "id": product.id,
        "wholesaler_id": product.wholesaler_id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "stock": product.stock,
        "min_order_quantity": product.min_order_quantity,
        "category": product.category,
        "image_url": product.image_url,
        "available": product.available,
        "created_at": _iso(product.created_at),
        "updated_at": _iso(product.updated_at),
    }


# --------------------------------------------------------------------------- #
# Orders (orders + order_items)
# --------------------------------------------------------------------------- #

def order_item_from_row(row: Row) -> OrderItem:
    return OrderItem(
        product_id=str(row["product_id"]),
        product_name=row.get("product_name") or "",
        quantity=int(row["quantity"]),
        price=_num(row.get("price")),
        total=_num(row.get("total")),
    )


def order_from_rows(row: Row, item_rows: Iterable[Row]) -> Order:
    return Order(
        id=str(row["id"]),
        retailer_id=str(row["retailer_id"]),
        wholesaler_id=str(row["wholesaler_id"]),
        items=tuple(order_item_from_row(r) for r in item_rows),
        total=_num(row.get("total")),
        status=row.get("status") or "pending",
        payment_status=row.get("payment_status") or "pending",
        payment_method=row.get("payment_method"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        notes=row.get("notes"),
        pickup_time=row.get("pickup_time"),
    )


def order_to_rows(order: Order) -> Tuple[Row, List[Row]]:
    row = {
        "id": order.id,
        "retailer_id": order.retailer_id,
        "wholesaler_id": order.wholesaler_id,
        "total": order.total,
        "status": _enum(order.status),
        "payment_status": _enum(order.payment_status),
        "payment_method": order.payment_method,
        "pickup_time": order.pickup_time,
        "notes": order.notes,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }
    items = [
        {
            "order_id": order.id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "price": item.price,
            "total": item.total,
        }
        for item in order.items
    ]
    return row, items


def orders_from_tables(order_rows: Iterable[Row], item_rows: Iterable[Row]) -> List[Order]:
    items_by_order = group_children(item_rows, "order_id")
    return parse_rows(
        lambda r: order_from_rows(r, items_by_order.get(str(r["id"]), [])), order_rows, "orders"
    )


# --------------------------------------------------------------------------- #
# Support tickets
# --------------------------------------------------------------------------- #

def ticket_from_row(row: Row) -> SupportTicket:
    return SupportTicket(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        user_name=row.get("user_name") or "",
        subject=row["subject"],
        description=row.get("description") or "",
        status=row.get("status") or "open",
        priority=row.get("priority") or "medium",
        assigned_to=row.get("assigned_to"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def ticket_to_row(ticket: SupportTicket) -> Row:
    return {
        "id": ticket.id,
        "user_id": ticket.user_id,
        "user_name": ticket.user_name,
        "subject": ticket.subject,
        "description": ticket.description,
        "status": _enum(ticket.status),
        "priority": _enum(ticket.priority),
        "assigned_to": ticket.assigned_to,
        "created_at": _iso(ticket.created_at),
        "updated_at": _iso(ticket.updated_at),
    }


# --------------------------------------------------------------------------- #
# Promotions
# --------------------------------------------------------------------------- #

def promotion_from_row(row: Row) -> Promotion:
    return Promotion(
        id=str(row["id"]),
        wholesaler_id=str(row["wholesaler_id"]),
        title=row["title"],
        description=row.get("description") or "",
        discount=_num(row.get("discount"), default=1.0),
        valid_from=row.get("valid_from"),
        valid_to=row.get("valid_to"),
        product_ids=tuple(str(p) for p in row.get("product_ids") or ()),
        active=bool(row.get("active", False)),
        status=row.get("status") or "pending",
        submitted_at=row.get("submitted_at"),
        reviewed_at=row.get("reviewed_at"),
        reviewed_by=row.get("reviewed_by"),
        rejection_reason=row.get("rejection_reason"),
    )


def promotion_to_row(promotion: Promotion) -> Row:
    return {
        "id": promotion.id,
        "wholesaler_id": promotion.wholesaler_id,
        "title": promotion.title,
        "description": promotion.description,
        "discount": promotion.discount,
        "valid_from": _iso(promotion.valid_from),
        "valid_to": _iso(promotion.valid_to),
        "product_ids": list(promotion.product_ids),
        "active": promotion.active,
        "status": _enum(promotion.status),
        "submitted_at": _iso(promotion.submitted_at),
        "reviewed_at": _iso(promotion.reviewed_at),
        "reviewed_by": promotion.reviewed_by,
        "rejection_reason": promotion.rejection_reason,
    }


# --------------------------------------------------------------------------- #
# Return requests (return_requests + return_items)
# --------------------------------------------------------------------------- #

def return_item_from_row(row: Row) -> ReturnItem:
    return ReturnItem(
        product_id=str(row["product_id"]),
        product_name=row.get("product_name") or "",
        quantity=int(row["quantity"]),
        reason=row.get("reason") or "",
        condition=row.get("condition") or "",
        unit_price=_num(row.get("unit_price")),
        total_refund=_num(row.get("total_refund")),
    )


def return_request_from_rows(row: Row, item_rows: Iterable[Row]) -> ReturnRequest:
    return ReturnRequest(
        id=str(row["id"]),
        order_id=str(row["order_id"]),
        retailer_id=str(row["retailer_id"]),
        wholesaler_id=str(row["wholesaler_id"]),
        reason=row.get("reason") or "",
        description=row.get("description") or "",
        status=row.get("status") or "pending",
        priority=row.get("priority") or "medium",
        requested_amount=_num(row.get("requested_amount")),
        approved_amount=_opt_num(row.get("approved_amount")),
        items=tuple(return_item_from_row(r) for r in item_rows),
        images=tuple(row.get("images") or ()),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        processed_at=row.get("processed_at"),
        processed_by=row.get("processed_by"),
        rejection_reason=row.get("rejection_reason"),
        refund_method=row.get("refund_method"),
        tracking_number=row.get("tracking_number"),
    )


def return_request_to_rows(request: ReturnRequest) -> Tuple[Row, List[Row]]:
    row = {
        "id": request.id,
        "order_id": request.order_id,
        "retailer_id": request.retailer_id,
        "wholesaler_id": request.wholesaler_id,
        "reason": request.reason,
        "description": request.description,
        "status": _enum(request.status),
        "priority": _enum(request.priority),
        "requested_amount": request.requested_amount,
        "approved_amount": request.approved_amount,
        "images": list(request.images),
        "created_at": _iso(request.created_at),
        "updated_at": _iso(request.updated_at),
        "processed_at": _iso(request.processed_at),
        "processed_by": request.processed_by,
        "rejection_reason": request.rejection_reason,
        "refund_method": request.refund_method,
        "tracking_number": request.tracking_number,
    }
    items = [
        {
            "return_request_id": request.id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "reason": item.reason,
            "condition": item.condition,
            "unit_price": item.unit_price,
            "total_refund": item.total_refund,
        }
        for item in request.items
    ]
    return row, items


def return_requests_from_tables(request_rows: Iterable[Row], item_rows: Iterable[Row]) -> List[ReturnRequest]:
    items_by_request = group_children(item_rows, "return_request_id")
    return parse_rows(
        lambda r: return_request_from_rows(r, items_by_request.get(str(r["id"]), [])),
        request_rows,
        "return_requests",
    )


# --------------------------------------------------------------------------- #
# Platform settings (key/value rows)
# --------------------------------------------------------------------------- #

def settings_from_rows(rows: Iterable[Row]) -> PlatformSettings:
    """Overlay stored key/value rows on the defaults; unknown keys are ignored."""
    known = PlatformSettings.model_fields
    values = PlatformSettings().model_dump()
    for row in rows:
        key = row.get("key")
        if key not in known:
            continue
        try:
            PlatformSettings.model_validate({**values, key: row.get("value")})
        except ValueError as e:
            logger.warning("[Sync] ignoring invalid platform setting '%s': %s", key, e)
            continue
        values[key] = row.get("value")
    return PlatformSettings.model_validate(values)


def settings_to_rows(changes: Dict[str, Any], updated_by: Optional[str] = None) -> List[Row]:
    return [{"key": k, "value": v, "updated_by": updated_by} for k, v in changes.items()]
