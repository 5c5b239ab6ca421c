"""
core/reducer.py
---------------
Pure state transitions for the marketplace store.

``reduce(state, action)`` returns the next state; ``reduce_with_result`` also
reports whether the action applied and, if not, why. The reducer performs no
I/O and never reads the clock: all timestamps come from ``action.at``.

Rules
-----
- Updates / moderation on an unknown id are no-ops with a diagnostic.
- Creating an entity whose id is already present replaces it (upsert), so a
  collection never holds two records with the same id.
- Notifications derived from an applied action are appended in the same
  transition (see core.notifications).
- Order line items and totals are snapshots; UpdateOrder never rewrites them.
- A promotion can only be active once approved.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from core import actions as a
from core.models import (
    ORDER_TRANSITIONS,
    Entity,
    ModerationStatus,
    Notification,
    Promotion,
    ReturnStatus,
    User,
    UserStatus,
)
from core.notifications import derive_notifications, is_visible_to, viewer_for
from core.settings import DEFAULT_PLATFORM_SETTINGS, PlatformSettings
from core.state import AppState


@dataclass(frozen=True)
class ReduceResult:
    state: AppState
    applied: bool
    diagnostic: Optional[str] = None
    notifications: Tuple[Notification, ...] = ()


@dataclass(frozen=True)
class _Skipped:
    diagnostic: str


# --------------------------------------------------------------------------- #
# Collection helpers
# --------------------------------------------------------------------------- #

def _index_of(items: Iterable[Entity], entity_id: str) -> int:
    for i, item in enumerate(items):
        if item.id == entity_id:
            return i
    return -1


def _upsert(items: Tuple[Entity, ...], entity: Entity) -> Tuple[Entity, ...]:
    i = _index_of(items, entity.id)
    if i < 0:
        return items + (entity,)
    return items[:i] + (entity,) + items[i + 1:]


def _find(items: Tuple[Entity, ...], entity_id: str) -> Optional[Any]:
    i = _index_of(items, entity_id)
    return items[i] if i >= 0 else None


def _without(items: Tuple[Entity, ...], entity_id: str) -> Tuple[Entity, ...]:
    return tuple(x for x in items if x.id != entity_id)


def _replace_existing(state: AppState, collection: str, entity: Entity, label: str):
    items = getattr(state, collection)
    if _index_of(items, entity.id) < 0:
        return _Skipped(f"{label} {entity.id} not found")
    return replace(state, **{collection: _upsert(items, entity)})


def _guard_promotion(p: Promotion) -> Promotion:
    if p.active and p.status != ModerationStatus.APPROVED:
        return p.model_copy(update={"active": False})
    return p


# --------------------------------------------------------------------------- #
# Handlers
# --------------------------------------------------------------------------- #

def _set_current_user(state: AppState, action: a.SetCurrentUser):
    return replace(state, current_user=action.user)


def _replace_collection(state: AppState, action: a.ReplaceCollection):
    if action.collection == "platform_settings":
        if len(action.items) != 1 or not isinstance(action.items[0], PlatformSettings):
            return _Skipped("platform_settings expects exactly one PlatformSettings record")
        return replace(state, platform_settings=action.items[0])
    try:
        return state.with_collection(action.collection, action.items)
    except KeyError:
        return _Skipped(f"unknown collection {action.collection!r}")


def _add_user(state: AppState, action: a.AddUser):
    return replace(state, users=_upsert(state.users, action.user))


def _add_pending_user(state: AppState, action: a.AddPendingUser):
    return replace(state, pending_users=_upsert(state.pending_users, action.pending_user))


def _approve_user(state: AppState, action: a.ApproveUser):
    pending = _find(state.pending_users, action.pending_user_id)
    if pending is None:
        return _Skipped(f"pending user {action.pending_user_id} not found")
    if _find(state.users, action.new_user_id) is not None:
        return _Skipped(f"user {action.new_user_id} already exists")
    user = User(
        id=action.new_user_id,
        name=pending.name,
        email=pending.email,
        role=pending.role,
        business_name=pending.business_name,
        phone=pending.phone,
        address=pending.address,
        verified=True,
        status=UserStatus.ACTIVE,
        created_at=action.at,
    )
    # Both effects in one replace(): no state ever shows only half of them.
    return replace(
        state,
        users=state.users + (user,),
        pending_users=_without(state.pending_users, pending.id),
    )


def _reject_user(state: AppState, action: a.RejectUser):
    if _find(state.pending_users, action.pending_user_id) is None:
        return _Skipped(f"pending user {action.pending_user_id} not found")
    return replace(state, pending_users=_without(state.pending_users, action.pending_user_id))


def _bulk_verify(state: AppState, action: a.BulkVerifyUsers):
    ids = set(action.user_ids)
    return replace(
        state,
        users=tuple(
            u.model_copy(update={"verified": True}) if u.id in ids else u
            for u in state.users
        ),
    )


def _suspend_user(state: AppState, action: a.SuspendUser):
    user = _find(state.users, action.user_id)
    if user is None:
        return _Skipped(f"user {action.user_id} not found")
    return replace(
        state,
        users=_upsert(state.users, user.model_copy(update={"status": UserStatus.SUSPENDED})),
    )


def _broadcast(state: AppState, action: a.BroadcastAnnouncement):
    return state


def _update_settings(state: AppState, action: a.UpdatePlatformSettings):
    return replace(state, platform_settings=state.platform_settings.merged(action.changes))


def _reset_settings(state: AppState, action: a.ResetSettingsToDefault):
    return replace(state, platform_settings=DEFAULT_PLATFORM_SETTINGS)


def _update_stats(state: AppState, action: a.UpdateSystemStats):
    return replace(state, system_stats=state.system_stats.merged(action.changes))


def _add_product(state: AppState, action: a.AddProduct):
    return replace(state, products=_upsert(state.products, action.product))


def _update_product(state: AppState, action: a.UpdateProduct):
    product = action.product.model_copy(update={"updated_at": action.at})
    return _replace_existing(state, "products", product, "product")


def _delete_product(state: AppState, action: a.DeleteProduct):
    if _find(state.products, action.product_id) is None:
        return _Skipped(f"product {action.product_id} not found")
    return replace(state, products=_without(state.products, action.product_id))


def _add_order(state: AppState, action: a.AddOrder):
    return replace(state, orders=_upsert(state.orders, action.order))


def _update_order(state: AppState, action: a.UpdateOrder):
    previous = _find(state.orders, action.order.id)
    if previous is None:
        return _Skipped(f"order {action.order.id} not found")
    new_status = action.order.status
    if new_status != previous.status and new_status not in ORDER_TRANSITIONS[previous.status]:
        return _Skipped(
            f"order {previous.id} cannot move from {previous.status.value} to {new_status.value}"
        )
    order = action.order.model_copy(
        update={"items": previous.items, "total": previous.total, "updated_at": action.at}
    )
    return replace(state, orders=_upsert(state.orders, order))


def _add_ticket(state: AppState, action: a.AddTicket):
    return replace(state, tickets=_upsert(state.tickets, action.ticket))


def _update_ticket(state: AppState, action: a.UpdateTicket):
    ticket = action.ticket.model_copy(update={"updated_at": action.at})
    return _replace_existing(state, "tickets", ticket, "ticket")


def _add_promotion(state: AppState, action: a.AddPromotion):
    promotion = action.promotion.model_copy(
        update={
            "status": ModerationStatus.PENDING,
            "active": False,
            "submitted_at": action.promotion.submitted_at or action.at,
        }
    )
    return replace(state, promotions=_upsert(state.promotions, promotion))


def _update_promotion(state: AppState, action: a.UpdatePromotion):
    return _replace_existing(state, "promotions", _guard_promotion(action.promotion), "promotion")


def _approve_promotion(state: AppState, action: a.ApprovePromotion):
    promotion = _find(state.promotions, action.promotion_id)
    if promotion is None:
        return _Skipped(f"promotion {action.promotion_id} not found")
    approved = promotion.model_copy(
        update={
            "status": ModerationStatus.APPROVED,
            "active": True,
            "reviewed_at": action.at,
            "reviewed_by": action.admin_id,
            "rejection_reason": None,
        }
    )
    return replace(state, promotions=_upsert(state.promotions, approved))


def _reject_promotion(state: AppState, action: a.RejectPromotion):
    promotion = _find(state.promotions, action.promotion_id)
    if promotion is None:
        return _Skipped(f"promotion {action.promotion_id} not found")
    rejected = promotion.model_copy(
        update={
            "status": ModerationStatus.REJECTED,
            "active": False,
            "reviewed_at": action.at,
            "reviewed_by": action.admin_id,
            "rejection_reason": action.reason,
        }
    )
    return replace(state, promotions=_upsert(state.promotions, rejected))


def _add_return(state: AppState, action: a.AddReturnRequest):
    return replace(state, return_requests=_upsert(state.return_requests, action.request))


def _update_return(state: AppState, action: a.UpdateReturnRequest):
    request = action.request.model_copy(update={"updated_at": action.at})
    return _replace_existing(state, "return_requests", request, "return request")


def _approve_return(state: AppState, action: a.ApproveReturnRequest):
    request = _find(state.return_requests, action.request_id)
    if request is None:
        return _Skipped(f"return request {action.request_id} not found")
    approved = request.model_copy(
        update={
            "status": ReturnStatus.APPROVED,
            "approved_amount": action.approved_amount,
            "refund_method": action.refund_method,
            "processed_by": action.support_id,
            "processed_at": action.at,
            "updated_at": action.at,
        }
    )
    return replace(state, return_requests=_upsert(state.return_requests, approved))


def _reject_return(state: AppState, action: a.RejectReturnRequest):
    request = _find(state.return_requests, action.request_id)
    if request is None:
        return _Skipped(f"return request {action.request_id} not found")
    rejected = request.model_copy(
        update={
            "status": ReturnStatus.REJECTED,
            "rejection_reason": action.reason,
            "processed_by": action.support_id,
            "processed_at": action.at,
            "updated_at": action.at,
        }
    )
    return replace(state, return_requests=_upsert(state.return_requests, rejected))


def _add_notification(state: AppState, action: a.AddNotification):
    return replace(state, notifications=_upsert(state.notifications, action.notification))


def _mark_read(state: AppState, action: a.MarkNotificationRead):
    note = _find(state.notifications, action.notification_id)
    if note is None:
        return _Skipped(f"notification {action.notification_id} not found")
    return replace(
        state,
        notifications=_upsert(state.notifications, note.model_copy(update={"read": True})),
    )


def _mark_all_read(state: AppState, action: a.MarkAllNotificationsRead):
    viewer = viewer_for(state, action.user_id)
    return replace(
        state,
        notifications=tuple(
            n.model_copy(update={"read": True}) if not n.read and is_visible_to(n, viewer) else n
            for n in state.notifications
        ),
    )


def _delete_notification(state: AppState, action: a.DeleteNotification):
    if _find(state.notifications, action.notification_id) is None:
        return _Skipped(f"notification {action.notification_id} not found")
    return replace(state, notifications=_without(state.notifications, action.notification_id))


Handler = Callable[[AppState, Any], "AppState | _Skipped"]

HANDLERS: Dict[type, Handler] = {
    a.SetCurrentUser: _set_current_user,
    a.ReplaceCollection: _replace_collection,
    a.AddUser: _add_user,
    a.AddPendingUser: _add_pending_user,
    a.ApproveUser: _approve_user,
    a.RejectUser: _reject_user,
    a.BulkVerifyUsers: _bulk_verify,
    a.SuspendUser: _suspend_user,
    a.BroadcastAnnouncement: _broadcast,
    a.UpdatePlatformSettings: _update_settings,
    a.ResetSettingsToDefault: _reset_settings,
    a.UpdateSystemStats: _update_stats,
    a.AddProduct: _add_product,
    a.UpdateProduct: _update_product,
    a.DeleteProduct: _delete_product,
    a.AddOrder: _add_order,
    a.UpdateOrder: _update_order,
    a.AddTicket: _add_ticket,
    a.UpdateTicket: _update_ticket,
    a.AddPromotion: _add_promotion,
    a.UpdatePromotion: _update_promotion,
    a.ApprovePromotion: _approve_promotion,
    a.RejectPromotion: _reject_promotion,
    a.AddReturnRequest: _add_return,
    a.UpdateReturnRequest: _update_return,
    a.ApproveReturnRequest: _approve_return,
    a.RejectReturnRequest: _reject_return,
    a.AddNotification: _add_notification,
    a.MarkNotificationRead: _mark_read,
    a.MarkAllNotificationsRead: _mark_all_read,
    a.DeleteNotification: _delete_notification,
}
a.assert_covers(HANDLERS, "reducer")


# --------------------------------------------------------------------------- #
# Public API
# --------------------------------------------------------------------------- #

def reduce_with_result(state: AppState, action: a.Action) -> ReduceResult:
    """Apply ``action`` and report whether it took effect."""
    handler = HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Not a marketplace action: {type(action).__name__}")

    outcome = handler(state, action)
    if isinstance(outcome, _Skipped):
        return ReduceResult(state=state, applied=False, diagnostic=outcome.diagnostic)

    notes = derive_notifications(action, state, outcome)
    if notes:
        merged = outcome.notifications
        for note in notes:
            merged = _upsert(merged, note)
        outcome = replace(outcome, notifications=merged)
    return ReduceResult(state=outcome, applied=True, notifications=notes)


def reduce(state: AppState, action: a.Action) -> AppState:
    return reduce_with_result(state, action).state
