"""
core/gateway.py
---------------
Contract between the core and the remote data gateway.

The core only needs four capabilities per table:
    - bulk read
    - insert / update / delete / upsert keyed by id
    - a row-level change subscription
    - a cheap liveness probe

``supabase_client.gateway.SupabaseGateway`` implements this over supabase-py;
tests use an in-memory fake with the same surface.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

Row = Dict[str, Any]

TABLES = (
    "users",
    "pending_users",
    "products",
    "orders",
    "order_items",
    "support_tickets",
    "promotions",
    "return_requests",
    "return_items",
    "platform_settings",
)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """One row-level change delivered by a table subscription."""
    table: str
    type: ChangeType
    new: Optional[Row] = None
    old: Optional[Row] = None

    @property
    def row_id(self) -> Optional[str]:
        row = self.new if self.type != ChangeType.DELETE else self.old
        if not row or row.get("id") is None:
            return None
        return str(row["id"])

    @classmethod
    def from_realtime_payload(cls, table: str, payload: Dict[str, Any]) -> "ChangeEvent":
        """
        Normalize a realtime callback payload.

        Accepts both the nested realtime-py shape
        (``{"data": {"type", "record", "old_record"}}``) and the flat
        ``{"eventType", "new", "old"}`` shape.
        """
        data = payload.get("data", payload)
        kind = data.get("type") or data.get("eventType") or payload.get("eventType")
        new = data.get("record", data.get("new"))
        old = data.get("old_record", data.get("old"))
        return cls(
            table=table,
            type=ChangeType(str(kind).upper()),
            new=new or None,
            old=old or None,
        )


class WriteOp(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UPSERT = "upsert"


@dataclass(frozen=True)
class RemoteWrite:
    """A single gateway write produced by translating an action."""
    op: WriteOp
    table: str
    values: Union[Row, List[Row], None] = None
    match: Dict[str, Any] = field(default_factory=dict)
    on_conflict: Optional[str] = None

    def describe(self) -> str:
        target = ", ".join(f"{k}={v}" for k, v in self.match.items())
        return f"{self.op.value} {self.table}" + (f" [{target}]" if target else "")


ChangeCallback = Callable[[ChangeEvent], None]


class Gateway(Protocol):
    async def fetch_all(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Row]:
        ...

    async def execute(self, write: RemoteWrite) -> Any:
        ...

    async def subscribe(self, table: str, callback: ChangeCallback) -> Any:
        ...

    async def unsubscribe(self, handle: Any) -> None:
        ...

    async def probe(self) -> bool:
        ...
