# supabase_client/gateway.py
"""
Remote data gateway backed by supabase-py (async client).

Features
--------
- Bulk reads with optional equality filters.
- Insert / update / delete / upsert translated from ``RemoteWrite`` records.
- One realtime channel per table, normalized into ``ChangeEvent``.
- Lightweight liveness probe (``select id limit 1`` on users).

Every failed call is re-raised as ``GatewayError`` so callers handle a single
exception type.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from supabase import AsyncClient

from core.errors import GatewayError
from core.gateway import ChangeCallback, ChangeEvent, RemoteWrite, Row, WriteOp

logger = logging.getLogger(__name__)

PROBE_TABLE = "users"


class SupabaseGateway:
    """Gateway implementation over an ``AsyncClient``."""

    def __init__(self, client: AsyncClient, schema: str = "public"):
        self.client = client
        self.schema = schema

    async def fetch_all(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Row]:
        """
        Fetch every row of ``table``.

        Parameters
        ----------
        table : str
            Table name in Supabase.
        filters : dict, optional
            Column equality filters, e.g. ``{"status": "pending"}``.

        Returns
        -------
        list[dict]
            Rows as delivered by PostgREST.
        """
        try:
            query = self.client.table(table).select("*")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            res = await query.execute()
        except Exception as e:
            raise GatewayError("fetch", table, e) from e

        rows = res.data or []
        logger.debug("[Supabase] ← %d rows from '%s'", len(rows), table)
        return rows

    async def execute(self, write: RemoteWrite) -> Any:
        """Run a single write; returns the affected rows."""
        try:
            table = self.client.table(write.table)
            if write.op == WriteOp.INSERT:
                query = table.insert(write.values)
            elif write.op == WriteOp.UPSERT:
                if write.on_conflict:
                    query = table.upsert(write.values, on_conflict=write.on_conflict)
                else:
                    query = table.upsert(write.values)
            elif write.op == WriteOp.UPDATE:
                query = table.update(write.values)
            else:
                query = table.delete()

            for column, value in write.match.items():
                query = query.eq(column, value)

            logger.debug("[Supabase] → %s", write.describe())
            res = await query.execute()
        except Exception as e:
            raise GatewayError(write.op.value, write.table, e) from e
        return res.data

    async def subscribe(self, table: str, callback: ChangeCallback) -> Any:
        """Open a realtime channel for ``table``; returns the channel handle."""

        def _on_change(payload: Dict[str, Any]) -> None:
            callback(ChangeEvent.from_realtime_payload(table, payload))

        try:
            channel = self.client.channel(f"{table}-changes")
            channel.on_postgres_changes("*", schema=self.schema, table=table, callback=_on_change)
            await channel.subscribe()
        except Exception as e:
            raise GatewayError("subscribe", table, e) from e

        logger.info("[Supabase] realtime channel open for '%s'", table)
        return channel

    async def unsubscribe(self, handle: Any) -> None:
        try:
            await self.client.remove_channel(handle)
        except Exception as e:
            raise GatewayError("unsubscribe", getattr(handle, "topic", "?"), e) from e

    async def probe(self) -> bool:
        try:
            await self.client.table(PROBE_TABLE).select("id").limit(1).execute()
        except Exception as e:
            raise GatewayError("probe", PROBE_TABLE, e) from e
        return True
