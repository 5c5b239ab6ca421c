# tests/conftest.py
"""Shared fixtures: an in-memory gateway and a fresh store per test."""

import asyncio
from collections import Counter
from typing import Any, Dict, List, Optional

import pytest

from core.config import AppConfig
from core.errors import GatewayError
from core.gateway import TABLES, ChangeEvent, ChangeType, RemoteWrite, Row, WriteOp
from core.store import Store


class FakeGateway:
    """
    Gateway double backed by dicts.

    Switches
    --------
    fail_fetch / fail_writes / fail_probe : raise GatewayError
    hang : fetch_all and probe never return (timeout tests)
    fail_subscribe : set of tables whose subscription raises
    """

    def __init__(self, tables: Optional[Dict[str, List[Row]]] = None):
        self.tables: Dict[str, List[Row]] = {t: [] for t in TABLES}
        for name, rows in (tables or {}).items():
            self.tables[name] = [dict(r) for r in rows]
        self.writes: List[RemoteWrite] = []
        self.callbacks: Dict[str, Any] = {}
        self.closed: List[str] = []
        self.fetches: Counter = Counter()
        self.fail_fetch = False
        self.fail_writes = False
        self.fail_probe = False
        self.hang = False
        self.fail_subscribe: set = set()

    async def fetch_all(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Row]:
        self.fetches[table] += 1
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail_fetch:
            raise GatewayError("fetch", table, RuntimeError("connection refused"))
        return [
            dict(r) for r in self.tables[table]
            if all(r.get(k) == v for k, v in (filters or {}).items())
        ]

    async def execute(self, write: RemoteWrite) -> Any:
        if self.fail_writes:
            raise GatewayError(write.op.value, write.table, RuntimeError("permission denied"))
        self.writes.append(write)
        rows = self.tables[write.table]
        values = write.values if isinstance(write.values, list) else [write.values]

        def matches(row):
            return all(row.get(k) == v for k, v in write.match.items())

        if write.op == WriteOp.INSERT:
            rows.extend(dict(v) for v in values)
        elif write.op == WriteOp.UPSERT:
            key = write.on_conflict or "id"
            for v in values:
                existing = next((r for r in rows if r.get(key) == v.get(key)), None)
                if existing is None:
                    rows.append(dict(v))
                else:
                    existing.update(v)
        elif write.op == WriteOp.UPDATE:
            for r in rows:
                if matches(r):
                    r.update(write.values)
        elif write.op == WriteOp.DELETE:
            self.tables[write.table] = [r for r in rows if not matches(r)]
        return values

    async def subscribe(self, table: str, callback) -> Any:
        if table in self.fail_subscribe:
            raise GatewayError("subscribe", table, RuntimeError("channel error"))
        self.callbacks[table] = callback
        return table

    async def unsubscribe(self, handle: Any) -> None:
        self.callbacks.pop(handle, None)
        self.closed.append(handle)

    async def probe(self) -> bool:
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail_probe:
            raise GatewayError("probe", "users", RuntimeError("timeout"))
        return True

    def push(self, table: str, type_: ChangeType, new: Optional[Row] = None, old: Optional[Row] = None) -> None:
        """Deliver a realtime change event to the subscriber of ``table``."""
        self.callbacks[table](ChangeEvent(table=table, type=type_, new=new, old=old))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store():
    return Store()


@pytest.fixture
def fast_config():
    return AppConfig(fetch_timeout_sec=0.05, probe_timeout_sec=0.05, probe_interval_sec=3600)
