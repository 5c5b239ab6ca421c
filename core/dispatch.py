"""
core/dispatch.py
----------------
Dual-write dispatch.

``DualWriteDispatcher.dispatch(action)``:

1. applies the action to the store synchronously (state and derived
   notifications are visible immediately);
2. translates it into gateway writes with ``remote_writes`` and persists them
   in a background task when a gateway is configured.

Outcomes are reported as ``PersistResult`` records routed to an observable
sink (bounded history + listeners). Nothing is raised to the caller and a
failed write is never rolled back locally: the store and the remote may
disagree until the next sync. Writes of one action run in order and stop at
the first failure; there are no retries.

Logging
-------
- ``core.dispatch.remote``: writes that were persisted or failed.
- ``core.dispatch.offline``: writes skipped because no gateway is configured.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

from core import actions as a
from core.gateway import Gateway, RemoteWrite, WriteOp
from core.reducer import ReduceResult
from core.settings import DEFAULT_PLATFORM_SETTINGS
from core.state import AppState
from core.store import Store
from sync import transformers as t

logger = logging.getLogger(__name__)
remote_logger = logging.getLogger("core.dispatch.remote")
offline_logger = logging.getLogger("core.dispatch.offline")


class PersistStatus(str, Enum):
    PERSISTED = "persisted"
    FAILED = "failed"
    OFFLINE = "offline"
    NO_REMOTE_EFFECT = "no_remote_effect"


@dataclass(frozen=True)
class PersistResult:
    status: PersistStatus
    action: a.Action
    writes: Tuple[RemoteWrite, ...] = ()
    error: Optional[str] = None
    completed: int = 0

    @property
    def ok(self) -> bool:
        return self.status != PersistStatus.FAILED


# --------------------------------------------------------------------------- #
# Action -> remote write translation
# --------------------------------------------------------------------------- #

def _by_id(items, entity_id: str):
    return next((x for x in items if x.id == entity_id), None)


def _insert(table: str, values) -> RemoteWrite:
    return RemoteWrite(WriteOp.INSERT, table, values)


def _update(table: str, entity_id: str, values) -> RemoteWrite:
    return RemoteWrite(WriteOp.UPDATE, table, values, match={"id": entity_id})


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _none(action, before: AppState, after: AppState) -> List[RemoteWrite]:
    return []


def _add_user(action: a.AddUser, before, after) -> List[RemoteWrite]:
    return [_insert("users", t.user_to_row(action.user))]


def _add_pending_user(action: a.AddPendingUser, before, after) -> List[RemoteWrite]:
    return [_insert("pending_users", t.pending_user_to_row(action.pending_user))]


def _approve_user(action: a.ApproveUser, before, after) -> List[RemoteWrite]:
    user = _by_id(after.users, action.new_user_id)
    return [
        _insert("users", t.user_to_row(user)),
        _update("pending_users", action.pending_user_id, {
            "status": "approved",
            "reviewed_at": _iso(action.at),
            "reviewed_by": action.admin_id,
        }),
    ]


def _reject_user(action: a.RejectUser, before, after) -> List[RemoteWrite]:
    return [
        _update("pending_users", action.pending_user_id, {
            "status": "rejected",
            "reviewed_at": _iso(action.at),
            "reviewed_by": action.admin_id,
            "rejection_reason": action.reason,
        })
    ]


def _bulk_verify(action: a.BulkVerifyUsers, before, after) -> List[RemoteWrite]:
    known = {u.id for u in after.users}
    return [_update("users", uid, {"verified": True}) for uid in action.user_ids if uid in known]


def _suspend_user(action: a.SuspendUser, before, after) -> List[RemoteWrite]:
    return [_update("users", action.user_id, {"status": "suspended"})]


def _settings_upsert(changes: Dict, after: AppState) -> List[RemoteWrite]:
    updated_by = after.current_user.id if after.current_user else None
    rows = t.settings_to_rows(changes, updated_by=updated_by)
    return [RemoteWrite(WriteOp.UPSERT, "platform_settings", rows, on_conflict="key")]


def _update_settings(action: a.UpdatePlatformSettings, before, after) -> List[RemoteWrite]:
    return _settings_upsert(dict(action.changes), after)


def _reset_settings(action: a.ResetSettingsToDefault, before, after) -> List[RemoteWrite]:
    return _settings_upsert(DEFAULT_PLATFORM_SETTINGS.model_dump(), after)


def _add_product(action: a.AddProduct, before, after) -> List[RemoteWrite]:
    return [_insert("products", t.product_to_row(action.product))]


def _update_product(action: a.UpdateProduct, before, after) -> List[RemoteWrite]:
    product = _by_id(after.products, action.product.id)
    return [_update("products", product.id, t.product_to_row(product))]


def _delete_product(action: a.DeleteProduct, before, after) -> List[RemoteWrite]:
    return [RemoteWrite(WriteOp.DELETE, "products", match={"id": action.product_id})]


def _add_order(action: a.AddOrder, before, after) -> List[RemoteWrite]:
    row, items = t.order_to_rows(action.order)
    writes = [_insert("orders", row)]
    if items:
        writes.append(_insert("order_items", items))
    return writes


def _update_order(action: a.UpdateOrder, before, after) -> List[RemoteWrite]:
    # Line items are immutable snapshots; only the parent row changes.
    row, _ = t.order_to_rows(_by_id(after.orders, action.order.id))
    return [_update("orders", action.order.id, row)]


def _add_ticket(action: a.AddTicket, before, after) -> List[RemoteWrite]:
    return [_insert("support_tickets", t.ticket_to_row(action.ticket))]


def _update_ticket(action: a.UpdateTicket, before, after) -> List[RemoteWrite]:
    ticket = _by_id(after.tickets, action.ticket.id)
    return [_update("support_tickets", ticket.id, t.ticket_to_row(ticket))]


def _add_promotion(action: a.AddPromotion, before, after) -> List[RemoteWrite]:
    return [_insert("promotions", t.promotion_to_row(_by_id(after.promotions, action.promotion.id)))]


def _promotion_update(promotion_id: str, after: AppState) -> List[RemoteWrite]:
    return [_update("promotions", promotion_id, t.promotion_to_row(_by_id(after.promotions, promotion_id)))]


def _update_promotion(action: a.UpdatePromotion, before, after) -> List[RemoteWrite]:
    return _promotion_update(action.promotion.id, after)


def _moderate_promotion(action, before, after) -> List[RemoteWrite]:
    return _promotion_update(action.promotion_id, after)


def _add_return(action: a.AddReturnRequest, before, after) -> List[RemoteWrite]:
    row, items = t.return_request_to_rows(action.request)
    writes = [_insert("return_requests", row)]
    if items:
        writes.append(_insert("return_items", items))
    return writes


def _return_update(request_id: str, after: AppState) -> List[RemoteWrite]:
    row, _ = t.return_request_to_rows(_by_id(after.return_requests, request_id))
    return [_update("return_requests", request_id, row)]


def _update_return(action: a.UpdateReturnRequest, before, after) -> List[RemoteWrite]:
    return _return_update(action.request.id, after)


def _process_return(action, before, after) -> List[RemoteWrite]:
    return _return_update(action.request_id, after)


Translator = Callable[[a.Action, AppState, AppState], List[RemoteWrite]]

# Notifications, session changes, announcements and runtime stats live in the
# client only; ReplaceCollection carries data that came from the remote.
TRANSLATORS: Dict[type, Translator] = {
    a.SetCurrentUser: _none,
    a.ReplaceCollection: _none,
    a.AddUser: _add_user,
    a.AddPendingUser: _add_pending_user,
    a.ApproveUser: _approve_user,
    a.RejectUser: _reject_user,
    a.BulkVerifyUsers: _bulk_verify,
    a.SuspendUser: _suspend_user,
    a.BroadcastAnnouncement: _none,
    a.UpdatePlatformSettings: _update_settings,
    a.ResetSettingsToDefault: _reset_settings,
    a.UpdateSystemStats: _none,
    a.AddProduct: _add_product,
    a.UpdateProduct: _update_product,
    a.DeleteProduct: _delete_product,
    a.AddOrder: _add_order,
    a.UpdateOrder: _update_order,
    a.AddTicket: _add_ticket,
    a.UpdateTicket: _update_ticket,
    a.AddPromotion: _add_promotion,
    a.UpdatePromotion: _update_promotion,
    a.ApprovePromotion: _moderate_promotion,
    a.RejectPromotion: _moderate_promotion,
    a.AddReturnRequest: _add_return,
    a.UpdateReturnRequest: _update_return,
    a.ApproveReturnRequest: _process_return,
    a.RejectReturnRequest: _process_return,
    a.AddNotification: _none,
    a.MarkNotificationRead: _none,
    a.MarkAllNotificationsRead: _none,
    a.DeleteNotification: _none,
}
a.assert_covers(TRANSLATORS, "remote write translation")


def remote_writes(action: a.Action, before: AppState, after: AppState) -> List[RemoteWrite]:
    """Gateway writes equivalent to an action that has already been applied."""
    return TRANSLATORS[type(action)](action, before, after)


# --------------------------------------------------------------------------- #
# Dispatcher
# --------------------------------------------------------------------------- #

ResultListener = Callable[[PersistResult], None]


class DualWriteDispatcher:
    def __init__(self, store: Store, gateway: Optional[Gateway] = None, history: int = 200):
        self.store = store
        self.gateway = gateway
        self.results: Deque[PersistResult] = deque(maxlen=history)
        self._listeners: List[ResultListener] = []
        self._pending: Set[asyncio.Task] = set()

    @property
    def online(self) -> bool:
        return self.gateway is not None

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def failures(self) -> List[PersistResult]:
        return [r for r in self.results if r.status == PersistStatus.FAILED]

    def _record(self, result: PersistResult) -> PersistResult:
        self.results.append(result)
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("[Dispatch] result listener failed")
        return result

    def _prepare(self, action: a.Action) -> Tuple[ReduceResult, Optional[Tuple[RemoteWrite, ...]]]:
        """Apply locally; return the writes still to persist (None if settled)."""
        before = self.store.state
        result = self.store.dispatch(action)
        if not result.applied:
            return result, None

        name = type(action).__name__
        writes = tuple(remote_writes(action, before, result.state))
        if not writes:
            self._record(PersistResult(PersistStatus.NO_REMOTE_EFFECT, action))
            return result, None
        if self.gateway is None:
            offline_logger.info("[Dispatch] offline: %s kept local (%d write(s) skipped)", name, len(writes))
            self._record(PersistResult(PersistStatus.OFFLINE, action, writes))
            return result, None
        return result, writes

    def dispatch(self, action: a.Action) -> ReduceResult:
        """Apply ``action`` now and persist it in the background."""
        result, writes = self._prepare(action)
        if writes is None:
            return result

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            remote_logger.error("[Dispatch] %s not persisted: no running event loop", type(action).__name__)
            self._record(PersistResult(PersistStatus.FAILED, action, writes, error="no running event loop"))
            return result

        task = loop.create_task(self._persist(action, writes))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return result

    async def dispatch_and_wait(self, action: a.Action) -> Tuple[ReduceResult, Optional[PersistResult]]:
        """Like ``dispatch`` but awaits the remote outcome."""
        result, writes = self._prepare(action)
        if writes is None:
            settled = self.results[-1] if result.applied and self.results else None
            return result, settled
        return result, await self._persist(action, writes)

    async def _persist(self, action: a.Action, writes: Tuple[RemoteWrite, ...]) -> PersistResult:
        name = type(action).__name__
        for i, write in enumerate(writes):
            try:
                await self.gateway.execute(write)
            except Exception as e:
                remote_logger.error(
                    "[Dispatch] %s failed at '%s' (%d/%d): %s", name, write.describe(), i + 1, len(writes), e
                )
                return self._record(PersistResult(PersistStatus.FAILED, action, writes, error=str(e), completed=i))
        remote_logger.info("[Dispatch] %s persisted (%d write(s))", name, len(writes))
        return self._record(PersistResult(PersistStatus.PERSISTED, action, writes, completed=len(writes)))

    async def drain(self) -> None:
        """Wait for every background persistence task started so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
