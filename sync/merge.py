"""
sync/merge.py
-------------
Merge rules for single-table collections.

The rule is "insert if absent, else replace the whole record by id":

- INSERT and UPDATE both upsert, so duplicate delivery is harmless and an
  update for an unseen id behaves like an insert.
- DELETE removes by id; deleting an absent id changes nothing.
- A row that no longer satisfies the collection's filters (e.g. a pending
  user whose status became "approved") is removed.

Applying the same event twice yields the same collection as applying it once.
"""

from __future__ import annotations

from typing import Callable, Tuple, TypeVar

from core.gateway import ChangeEvent, ChangeType, Row
from core.models import Entity
from core.sync_rules import SyncRule

E = TypeVar("E", bound=Entity)


def upsert(items: Tuple[E, ...], entity: E) -> Tuple[E, ...]:
    for i, item in enumerate(items):
        if item.id == entity.id:
            return items[:i] + (entity,) + items[i + 1:]
    return items + (entity,)


def remove(items: Tuple[E, ...], entity_id: str) -> Tuple[E, ...]:
    return tuple(x for x in items if x.id != entity_id)


def apply_change(
    items: Tuple[E, ...],
    event: ChangeEvent,
    from_row: Callable[[Row], E],
    rule: SyncRule | None = None,
) -> Tuple[E, ...]:
    row_id = event.row_id
    if row_id is None:
        return items

    if event.type == ChangeType.DELETE:
        return remove(items, row_id)

    if rule is not None and not rule.matches(event.new):
        return remove(items, row_id)

    return upsert(items, from_row(event.new))
