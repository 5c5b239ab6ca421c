"""
core/store.py
-------------
Injectable store owning the state tree.

The store is the single writer: every transition goes through
``Store.dispatch``, which runs the reducer synchronously and then notifies
observers. Construct one per app session (or per test); there is no global
instance.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from core.actions import Action
from core.notifications import unread_count, visible_notifications
from core.models import Notification
from core.reducer import ReduceResult, reduce_with_result
from core.state import AppState, initial_state

logger = logging.getLogger(__name__)

Listener = Callable[[AppState, Action], None]


class Store:
    def __init__(self, state: Optional[AppState] = None):
        self._state = state if state is not None else initial_state()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> ReduceResult:
        result = reduce_with_result(self._state, action)
        if not result.applied:
            logger.info("[Store] %s not applied: %s", type(action).__name__, result.diagnostic)
            return result

        self._state = result.state
        for listener in list(self._listeners):
            try:
                listener(self._state, action)
            except Exception:
                # A broken observer must not stop the others from seeing the new state.
                logger.exception("[Store] listener failed after %s", type(action).__name__)
        return result

    # ------------------------------------------------------------------ #
    # Selectors
    # ------------------------------------------------------------------ #

    def notifications_for(self, user_id: str) -> List[Notification]:
        return visible_notifications(self._state, user_id)

    def unread_count(self, user_id: str) -> int:
        return unread_count(self._state, user_id)
