"""
sync/monitor.py
---------------
Periodic liveness probe for the remote gateway.

Every ``interval`` seconds the monitor runs ``probe()`` bounded by
``timeout``. A timeout or any exception counts as a failed probe. The
result is handed to ``on_status(bool)``; the monitor itself keeps no state
beyond its task handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ConnectionMonitor:
    def __init__(
        self,
        probe: Callable[[], Awaitable[bool]],
        on_status: Callable[[bool], None],
        interval: float = 30.0,
        timeout: float = 5.0,
    ):
        self.probe = probe
        self.on_status = on_status
        self.interval = interval
        self.timeout = timeout
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_once(self) -> bool:
        try:
            ok = bool(await asyncio.wait_for(self.probe(), timeout=self.timeout))
        except asyncio.TimeoutError:
            logger.warning("[Sync] liveness probe timed out after %.1fs", self.timeout)
            ok = False
        except Exception as e:
            logger.warning("[Sync] liveness probe failed: %s", e)
            ok = False
        self.on_status(ok)
        return ok

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.check_once()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
