"""
sync/layer.py
-------------
Data synchronization layer.

Responsibilities
----------------
1. One bounded bulk fetch of every tracked table at startup.
2. One long-lived change subscription per table; events are queued per table
   and applied strictly in delivery order by a dedicated pump task.
3. Single-table collections merge events directly (sync.merge); split
   aggregates (orders, return requests) and platform settings are rebuilt by
   a ``ChildChangeStrategy`` (full re-fetch by default).
4. A ``connected`` flag driven by the initial fetch, re-fetches and a
   periodic liveness probe (sync.monitor).

Failure policy
--------------
- Fetch / probe failure or timeout: ``connected`` becomes False and the
  last-known collections are kept as they are.
- ``signal_error()``: the caller declares a hard error. ``read()`` then
  reports every collection as empty so stale data is never presented as
  authoritative. ``clear_error()`` lifts it.
- A dropped subscription only degrades ``connected``; resubscribing is left
  to the transport.
- A row that fails validation is skipped and logged; the rest of its table
  still commits.

When a store is attached, every merged collection is published to it with a
``ReplaceCollection`` action. Direct merges start from the store's current
collection, so optimistic local records survive unrelated remote events.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Tuple

from core.actions import ReplaceCollection
from core.config import AppConfig
from core.gateway import ChangeEvent, Gateway, Row, TABLES
from core.store import Store
from core.sync_rules import COLLECTION_TABLES, DIRECT, RULES_BY_TABLE, SyncRule
from sync import transformers as t
from sync.merge import apply_change
from sync.monitor import ConnectionMonitor

logger = logging.getLogger(__name__)

Tables = Dict[str, List[Row]]

# Build a collection from the raw rows of the tables it is assembled from.
COLLECTION_BUILDERS: Dict[str, Callable[[Tables], Tuple[Any, ...]]] = {
    "users": lambda rows: tuple(t.parse_rows(t.user_from_row, rows["users"], "users")),
    "pending_users": lambda rows: tuple(t.parse_rows(t.pending_user_from_row, rows["pending_users"], "pending_users")),
    "products": lambda rows: tuple(t.parse_rows(t.product_from_row, rows["products"], "products")),
    "tickets": lambda rows: tuple(t.parse_rows(t.ticket_from_row, rows["support_tickets"], "support_tickets")),
    "promotions": lambda rows: tuple(t.parse_rows(t.promotion_from_row, rows["promotions"], "promotions")),
    "orders": lambda rows: tuple(t.orders_from_tables(rows["orders"], rows["order_items"])),
    "return_requests": lambda rows: tuple(
        t.return_requests_from_tables(rows["return_requests"], rows["return_items"])
    ),
    "platform_settings": lambda rows: (t.settings_from_rows(rows["platform_settings"]),),
}

ROW_PARSERS: Dict[str, Callable[[Row], Any]] = {
    "users": t.user_from_row,
    "pending_users": t.pending_user_from_row,
    "products": t.product_from_row,
    "tickets": t.ticket_from_row,
    "promotions": t.promotion_from_row,
}


class ChildChangeStrategy(Protocol):
    """How a change on a non-direct table reaches its collection."""

    async def on_change(self, layer: "DataSyncLayer", rule: SyncRule, event: ChangeEvent) -> None:
        ...


class FullRefetch:
    """Rebuild the whole parent collection from the gateway."""

    async def on_change(self, layer: "DataSyncLayer", rule: SyncRule, event: ChangeEvent) -> None:
        logger.info("[Sync] %s change on '%s': refetching %s", event.type.value, event.table, rule.collection)
        await layer.refresh(rule.collection)


@dataclass
class Attachment:
    """Initial snapshot of a collection plus the stream of events applied to it."""
    collection: str
    snapshot: Tuple[Any, ...]
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        while True:
            yield await self.queue.get()


class DataSyncLayer:
    def __init__(
        self,
        gateway: Optional[Gateway],
        store: Optional[Store] = None,
        config: Optional[AppConfig] = None,
        child_strategy: Optional[ChildChangeStrategy] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.config = config or AppConfig()
        self.child_strategy = child_strategy or FullRefetch()

        self.connected = False
        self.loaded = False
        self.error: Optional[str] = None

        self._collections: Dict[str, Tuple[Any, ...]] = {name: () for name in COLLECTION_BUILDERS}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._queues: Dict[str, asyncio.Queue] = {}
        self._pumps: List[asyncio.Task] = []
        self._handles: List[Any] = []
        self._watchers: Dict[str, List[Attachment]] = defaultdict(list)
        self.monitor = ConnectionMonitor(
            probe=self._probe,
            on_status=self._set_connected,
            interval=self.config.probe_interval_sec,
            timeout=self.config.probe_timeout_sec,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def online(self) -> bool:
        return self.gateway is not None

    async def start(self) -> None:
        if not self.online:
            logger.info("[Sync] demo mode: Supabase not configured, realtime updates disabled")
            self._set_connected(False)
            return
        await self.load_all()
        await self._subscribe_all()
        self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        for task in self._pumps:
            task.cancel()
        for task in self._pumps:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._pumps.clear()

        for handle in self._handles:
            try:
                await self.gateway.unsubscribe(handle)
            except Exception as e:
                logger.warning("[Sync] failed to close subscription: %s", e)
        self._handles.clear()
        self._queues.clear()
        logger.info("[Sync] subscriptions torn down")

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    async def _fetch_tables(self, tables: Tuple[str, ...]) -> Tables:
        results = await asyncio.gather(
            *(self.gateway.fetch_all(table, RULES_BY_TABLE[table].filters or None) for table in tables)
        )
        return dict(zip(tables, results))

    async def load_all(self) -> bool:
        """Bulk-fetch every table; on failure keep what we had."""
        if not self.online:
            return False
        try:
            rows = await asyncio.wait_for(self._fetch_tables(TABLES), timeout=self.config.fetch_timeout_sec)
            built = {name: build(rows) for name, build in COLLECTION_BUILDERS.items()}
        except asyncio.TimeoutError:
            logger.warning("[Sync] initial fetch timed out; keeping last-known data")
            self._set_connected(False)
            return False
        except Exception as e:
            logger.warning("[Sync] initial fetch failed (%s); keeping last-known data", e)
            self._set_connected(False)
            return False

        for name, items in built.items():
            self._commit(name, items)
        self.loaded = True
        self._set_connected(True)
        logger.info(
            "[Sync] data fetched: %s",
            ", ".join(f"{n}={len(items)}" for n, items in built.items() if n != "platform_settings"),
        )
        return True

    async def refresh(self, collection: str) -> bool:
        """Re-fetch and rebuild one collection from all of its tables."""
        if not self.online:
            return False
        tables = COLLECTION_TABLES[collection]
        async with self._locks[collection]:
            try:
                rows = await asyncio.wait_for(self._fetch_tables(tables), timeout=self.config.fetch_timeout_sec)
                items = COLLECTION_BUILDERS[collection](rows)
            except asyncio.TimeoutError:
                logger.warning("[Sync] refetch of %s timed out", collection)
                self._set_connected(False)
                return False
            except Exception as e:
                logger.warning("[Sync] refetch of %s failed: %s", collection, e)
                self._set_connected(False)
                return False
            self._commit(collection, items)
        return True

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    async def _subscribe_all(self) -> None:
        loop = asyncio.get_running_loop()
        for table in RULES_BY_TABLE:
            queue: asyncio.Queue = asyncio.Queue()
            self._queues[table] = queue
            self._pumps.append(loop.create_task(self._pump(table, queue)))
            try:
                self._handles.append(await self.gateway.subscribe(table, self._enqueue))
            except Exception as e:
                logger.warning("[Sync] subscription to '%s' failed: %s", table, e)
                self._set_connected(False)
        logger.info("[Sync] real-time subscriptions established (%d)", len(self._handles))

    def _enqueue(self, event: ChangeEvent) -> None:
        queue = self._queues.get(event.table)
        if queue is None:
            logger.debug("[Sync] dropping event for untracked table '%s'", event.table)
            return
        queue.put_nowait(event)

    async def _pump(self, table: str, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                await self.apply_event(event)
            except Exception:
                logger.exception("[Sync] failed to apply %s on '%s'", event.type.value, table)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued change event has been applied."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def apply_event(self, event: ChangeEvent) -> None:
        rule = RULES_BY_TABLE.get(event.table)
        if rule is None:
            return
        logger.debug("[Sync] live update %s on '%s' (%s)", event.type.value, event.table, event.row_id)

        if rule.mode == DIRECT:
            async with self._locks[rule.collection]:
                items = apply_change(self._current(rule.collection), event, ROW_PARSERS[rule.collection], rule)
                self._commit(rule.collection, items)
        else:
            await self.child_strategy.on_change(self, rule, event)

        for attachment in self._watchers.get(rule.collection, ()):
            attachment.queue.put_nowait(event)

    # ------------------------------------------------------------------ #
    # State & reads
    # ------------------------------------------------------------------ #

    def _current(self, collection: str) -> Tuple[Any, ...]:
        if self.store is not None:
            return self.store.state.collection(collection)
        return self._collections[collection]

    def _commit(self, collection: str, items: Tuple[Any, ...]) -> None:
        self._collections[collection] = tuple(items)
        if self.store is not None:
            self.store.dispatch(ReplaceCollection(collection, self._collections[collection]))

    def _set_connected(self, ok: bool) -> None:
        if ok != self.connected:
            logger.info("[Sync] connection status -> %s", "connected" if ok else "disconnected")
        self.connected = ok

    async def _probe(self) -> bool:
        return await self.gateway.probe()

    def read(self, collection: str) -> Tuple[Any, ...]:
        if self.error is not None:
            return ()
        return self._collections[collection]

    def attach(self, collection: str) -> Attachment:
        if collection not in self._collections:
            raise KeyError(f"Unknown collection: {collection}")
        attachment = Attachment(collection=collection, snapshot=self.read(collection))
        self._watchers[collection].append(attachment)
        return attachment

    def detach(self, attachment: Attachment) -> None:
        watchers = self._watchers.get(attachment.collection, [])
        if attachment in watchers:
            watchers.remove(attachment)

    def signal_error(self, message: str) -> None:
        logger.error("[Sync] hard error: %s", message)
        self.error = message
        self._set_connected(False)

    def clear_error(self) -> None:
        self.error = None

    def status(self) -> Dict[str, Any]:
        return {
            "online": self.online,
            "connected": self.connected,
            "loaded": self.loaded,
            "error": self.error,
            "subscriptions": len(self._handles),
            "collections": {
                name: len(items) for name, items in self._collections.items() if name != "platform_settings"
            },
        }
