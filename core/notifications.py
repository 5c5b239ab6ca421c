"""
core/notifications.py
---------------------
Notification derivation, visibility and display ordering.

Derivation
----------
``derive_notifications(action, before, after)`` maps a successfully applied
action to the notifications it fans out. It is pure: recipient, title,
message, priority and id depend only on the action and the two states.

Notification ids have the form ``<event>:<action_id>:<recipient>``, unique
per (event, recipient) even when a broadcast fans out to many users within
the same instant.

Visibility
----------
``is_visible_to`` is the single recipient-matching rule used by listing,
unread counts and mark-all-read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from core import actions as a
from core.models import (
    ADMIN_CHANNEL,
    ALL_CHANNEL,
    SUPPORT_CHANNEL,
    SYSTEM_CHANNEL,
    Notification,
    NotificationType,
    OrderStatus,
    Priority,
    Role,
    User,
)
from core.state import AppState

PRIORITY_RANK: Dict[Priority, int] = {
    Priority.URGENT: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}

LOW_STOCK_THRESHOLD = 10


# --------------------------------------------------------------------------- #
# Visibility
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class Viewer:
    """Minimal identity for a viewer that is not (yet) a known User."""
    id: str
    role: Optional[Role] = None


def viewer_for(state: AppState, user_id: str) -> User | Viewer:
    return state.find_user(user_id) or Viewer(user_id)


def recipient_tokens(viewer: User | Viewer) -> frozenset:
    """Every recipient token ``viewer`` can see."""
    tokens = {viewer.id, SYSTEM_CHANNEL, ALL_CHANNEL}
    if viewer.role is not None:
        tokens.add(Role(viewer.role).value)
        if viewer.role == Role.ADMIN:
            tokens.add(SUPPORT_CHANNEL)
    return frozenset(tokens)


def is_visible_to(notification: Notification, viewer: User | Viewer) -> bool:
    return notification.user_id in recipient_tokens(viewer)


def sort_for_display(notifications: Iterable[Notification]) -> List[Notification]:
    """Priority rank descending, then most recent first."""
    return sorted(
        notifications,
        key=lambda n: (PRIORITY_RANK[n.priority], n.created_at),
        reverse=True,
    )


def visible_notifications(state: AppState, user_id: str) -> List[Notification]:
    viewer = viewer_for(state, user_id)
    return sort_for_display(n for n in state.notifications if is_visible_to(n, viewer))


def unread_count(state: AppState, user_id: str) -> int:
    viewer = viewer_for(state, user_id)
    return sum(1 for n in state.notifications if not n.read and is_visible_to(n, viewer))


# --------------------------------------------------------------------------- #
# Derivation helpers
# --------------------------------------------------------------------------- #

def _note(
    action: a.BaseAction,
    event: str,
    recipient: str,
    type_: NotificationType,
    title: str,
    message: str,
    priority: Priority,
    data: Optional[Dict[str, Any]] = None,
) -> Notification:
    return Notification(
        id=f"{event}:{action.action_id}:{recipient}",
        user_id=recipient,
        type=type_,
        title=title,
        message=message,
        data=data or {},
        read=False,
        priority=priority,
        created_at=action.at,
    )


def _money(amount: float) -> str:
    return f"R{amount:,.2f}"


def _retailers(state: AppState) -> List[User]:
    return [u for u in state.users if u.role == Role.RETAILER]


def _name_of(state: AppState, user_id: str, fallback: str) -> str:
    user = state.find_user(user_id)
    return user.name if user else fallback


Rule = Callable[[Any, AppState, AppState], Tuple[Notification, ...]]


def _none(action, before, after) -> Tuple[Notification, ...]:
    return ()


# --------------------------------------------------------------------------- #
# Users
# --------------------------------------------------------------------------- #

def _pending_user_added(action: a.AddPendingUser, before, after):
    p = action.pending_user
    return (
        _note(action, "pending-user", ADMIN_CHANNEL, NotificationType.USER,
              "New User Application",
              f"{p.name} has applied to join as a {p.role.value}",
              Priority.HIGH,
              {"pendingUserId": p.id, "applicantName": p.name, "role": p.role.value}),
    )


def _user_approved(action: a.ApproveUser, before: AppState, after: AppState):
    user = after.find_user(action.new_user_id)
    return (
        _note(action, "approval", user.id, NotificationType.USER,
              "Application Approved!",
              f"Welcome to NWI B2B Platform! Your {user.role.value} account has been approved and is now active.",
              Priority.HIGH,
              {"userId": user.id, "role": user.role.value}),
    )


def _user_rejected(action: a.RejectUser, before: AppState, after):
    pending = next(p for p in before.pending_users if p.id == action.pending_user_id)
    return (
        _note(action, "rejection", SYSTEM_CHANNEL, NotificationType.USER,
              "Application Update",
              f"Application from {pending.name} has been reviewed and declined. Reason: {action.reason}",
              Priority.MEDIUM,
              {"applicantName": pending.name, "reason": action.reason}),
    )


def _broadcast(action: a.BroadcastAnnouncement, before, after: AppState):
    return tuple(
        _note(action, "broadcast", user.id, NotificationType.SYSTEM,
              action.title, action.message, Priority.HIGH,
              {"broadcast": True})
        for user in after.users
    )


# --------------------------------------------------------------------------- #
# Products & orders
# --------------------------------------------------------------------------- #

def _product_added(action: a.AddProduct, before, after: AppState):
    p = action.product
    wholesaler = _name_of(after, p.wholesaler_id, "A wholesaler")
    data = {"productId": p.id, "productName": p.name, "category": p.category, "wholesalerName": wholesaler}
    notes = [
        _note(action, "product-added", r.id, NotificationType.PRODUCT,
              "New Product Available!",
              f'{wholesaler} added "{p.name}" in {p.category} category',
              Priority.LOW, data)
        for r in _retailers(after)
    ]
    notes.append(
        _note(action, "product-added", ADMIN_CHANNEL, NotificationType.PRODUCT,
              "New Product Added",
              f'{wholesaler} added "{p.name}" to the platform',
              Priority.LOW, data)
    )
    return tuple(notes)


def _is_low(stock: int) -> bool:
    return 0 < stock <= LOW_STOCK_THRESHOLD


def _product_updated(action: a.UpdateProduct, before: AppState, after):
    p = action.product
    previous = next(x for x in before.products if x.id == p.id)
    if not _is_low(p.stock) or _is_low(previous.stock):
        return ()
    return (
        _note(action, "low-stock", p.wholesaler_id, NotificationType.PRODUCT,
              "Low Stock Alert!",
              f'"{p.name}" has only {p.stock} units remaining',
              Priority.MEDIUM,
              {"productId": p.id, "productName": p.name, "stock": p.stock}),
    )


def _order_added(action: a.AddOrder, before, after: AppState):
    o = action.order
    retailer = _name_of(after, o.retailer_id, "A retailer")
    wholesaler = _name_of(after, o.wholesaler_id, "a wholesaler")
    return (
        _note(action, "order-created", o.wholesaler_id, NotificationType.ORDER,
              "New Order Received!",
              f"{retailer} placed an order worth {_money(o.total)}",
              Priority.HIGH,
              {"orderId": o.id, "retailerName": retailer, "total": o.total}),
        _note(action, "order-created", ADMIN_CHANNEL, NotificationType.ORDER,
              "New Platform Order",
              f"Order #{o.id} placed by {retailer} for {_money(o.total)}",
              Priority.MEDIUM,
              {"orderId": o.id, "retailerName": retailer, "wholesalerName": wholesaler}),
    )


_ORDER_STATUS_NOTICES: Dict[OrderStatus, Tuple[str, str, Priority]] = {
    OrderStatus.ACCEPTED: ("Order Accepted!", "Your order #{id} has been accepted by {wholesaler}", Priority.HIGH),
    OrderStatus.READY: ("Order Ready for Pickup!", "Your order #{id} is ready for collection", Priority.HIGH),
    OrderStatus.COMPLETED: ("Order Completed!", "Your order #{id} has been completed successfully", Priority.MEDIUM),
    OrderStatus.CANCELLED: ("Order Cancelled", "Order #{id} has been cancelled", Priority.HIGH),
}


def _order_updated(action: a.UpdateOrder, before: AppState, after: AppState):
    o = action.order
    previous = next(x for x in before.orders if x.id == o.id)
    if previous.status == o.status or o.status not in _ORDER_STATUS_NOTICES:
        return ()
    if after.find_user(o.retailer_id) is None:
        return ()
    title, template, priority = _ORDER_STATUS_NOTICES[o.status]
    message = template.format(id=o.id, wholesaler=_name_of(after, o.wholesaler_id, "the wholesaler"))
    return (
        _note(action, f"order-{o.status.value}", o.retailer_id, NotificationType.ORDER,
              title, message, priority,
              {"orderId": o.id, "status": o.status.value}),
    )


# --------------------------------------------------------------------------- #
# Support
# --------------------------------------------------------------------------- #

def _ticket_added(action: a.AddTicket, before, after):
    t = action.ticket
    return (
        _note(action, "ticket", SUPPORT_CHANNEL, NotificationType.SUPPORT,
              f"New {t.priority.value} Priority Ticket",
              f"{t.user_name}: {t.subject}",
              Priority.URGENT if t.priority == Priority.URGENT else Priority.HIGH,
              {"ticketId": t.id, "userName": t.user_name, "priority": t.priority.value}),
    )


def _ticket_updated(action: a.UpdateTicket, before, after):
    t = action.ticket
    return (
        _note(action, "ticket-update", t.user_id, NotificationType.SUPPORT,
              "Support Ticket Update",
              f'Your ticket "{t.subject}" is now {t.status.value}',
              Priority.MEDIUM,
              {"ticketId": t.id, "status": t.status.value}),
    )


# --------------------------------------------------------------------------- #
# Promotions
# --------------------------------------------------------------------------- #

def _promotion_added(action: a.AddPromotion, before, after):
    p = action.promotion
    return (
        _note(action, "promotion", ADMIN_CHANNEL, NotificationType.PROMOTION,
              "New Promotion Request",
              f'"{p.title}" - {p.discount:g}% discount awaiting approval',
              Priority.MEDIUM,
              {"promotionId": p.id, "title": p.title, "discount": p.discount}),
    )


def _promotion_approved(action: a.ApprovePromotion, before, after: AppState):
    p = next(x for x in after.promotions if x.id == action.promotion_id)
    wholesaler = _name_of(after, p.wholesaler_id, "A wholesaler")
    notes = [
        _note(action, "promotion-approved", p.wholesaler_id, NotificationType.PROMOTION,
              "Promotion Approved!",
              f'Your promotion "{p.title}" has been approved and is now active',
              Priority.HIGH,
              {"promotionId": p.id, "title": p.title}),
    ]
    notes.extend(
        _note(action, "promotion-available", r.id, NotificationType.PROMOTION,
              "New Promotion Available!",
              f"{wholesaler}: {p.title} - {p.discount:g}% OFF",
              Priority.HIGH,
              {"promotionId": p.id, "title": p.title, "discount": p.discount, "wholesalerName": wholesaler})
        for r in _retailers(after)
        if r.id != p.wholesaler_id
    )
    return tuple(notes)


def _promotion_rejected(action: a.RejectPromotion, before, after: AppState):
    p = next(x for x in after.promotions if x.id == action.promotion_id)
    return (
        _note(action, "promotion-rejected", p.wholesaler_id, NotificationType.PROMOTION,
              "Promotion Update",
              f'Your promotion "{p.title}" was not approved. Reason: {action.reason}',
              Priority.MEDIUM,
              {"promotionId": p.id, "title": p.title, "reason": action.reason}),
    )


# --------------------------------------------------------------------------- #
# Returns
# --------------------------------------------------------------------------- #

def _return_added(action: a.AddReturnRequest, before, after):
    r = action.request
    return (
        _note(action, "return", SUPPORT_CHANNEL, NotificationType.RETURN,
              "New Return Request",
              f"Return request for Order #{r.order_id} - {_money(r.requested_amount)}",
              Priority.URGENT if r.priority == Priority.URGENT else Priority.HIGH,
              {"returnId": r.id, "orderId": r.order_id, "amount": r.requested_amount}),
    )


def _return_approved(action: a.ApproveReturnRequest, before, after: AppState):
    r = next(x for x in after.return_requests if x.id == action.request_id)
    return (
        _note(action, "return-approved", r.retailer_id, NotificationType.RETURN,
              "Return Request Approved!",
              f"Your return request for Order #{r.order_id} has been approved for {_money(action.approved_amount)}",
              Priority.HIGH,
              {"returnId": r.id, "orderId": r.order_id, "approvedAmount": action.approved_amount}),
    )


def _return_rejected(action: a.RejectReturnRequest, before, after: AppState):
    r = next(x for x in after.return_requests if x.id == action.request_id)
    return (
        _note(action, "return-rejected", r.retailer_id, NotificationType.RETURN,
              "Return Request Update",
              f"Your return request for Order #{r.order_id} was not approved. Reason: {action.reason}",
              Priority.MEDIUM,
              {"returnId": r.id, "orderId": r.order_id, "reason": action.reason}),
    )


# --------------------------------------------------------------------------- #
# Routing table
# --------------------------------------------------------------------------- #

RULES: Dict[type, Rule] = {
    a.SetCurrentUser: _none,
    a.ReplaceCollection: _none,
    a.AddUser: _none,
    a.AddPendingUser: _pending_user_added,
    a.ApproveUser: _user_approved,
    a.RejectUser: _user_rejected,
    a.BulkVerifyUsers: _none,
    a.SuspendUser: _none,
    a.BroadcastAnnouncement: _broadcast,
    a.UpdatePlatformSettings: _none,
    a.ResetSettingsToDefault: _none,
    a.UpdateSystemStats: _none,
    a.AddProduct: _product_added,
    a.UpdateProduct: _product_updated,
    a.DeleteProduct: _none,
    a.AddOrder: _order_added,
    a.UpdateOrder: _order_updated,
    a.AddTicket: _ticket_added,
    a.UpdateTicket: _ticket_updated,
    a.AddPromotion: _promotion_added,
    a.UpdatePromotion: _none,
    a.ApprovePromotion: _promotion_approved,
    a.RejectPromotion: _promotion_rejected,
    a.AddReturnRequest: _return_added,
    a.UpdateReturnRequest: _none,
    a.ApproveReturnRequest: _return_approved,
    a.RejectReturnRequest: _return_rejected,
    # Notification lifecycle actions never spawn further notifications.
    a.AddNotification: _none,
    a.MarkNotificationRead: _none,
    a.MarkAllNotificationsRead: _none,
    a.DeleteNotification: _none,
}
a.assert_covers(RULES, "notification rules")


def derive_notifications(action: a.Action, before: AppState, after: AppState) -> Tuple[Notification, ...]:
    """Notifications produced by an action that the reducer has applied."""
    return RULES[type(action)](action, before, after)
