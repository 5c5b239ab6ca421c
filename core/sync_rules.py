"""
core/sync_rules.py
------------------
Table -> collection synchronization map.

Each rule describes:
    - table:      remote table whose change feed is subscribed
    - collection: state-tree collection it feeds
    - mode:       "direct"  (apply the row event to the collection) or
                  "refetch" (rebuild the whole collection from the gateway)
    - filters:    equality filters a row must satisfy to belong to the
                  collection; a row that stops matching is dropped
    - purpose:    short natural language description

Child tables of split aggregates (order_items, return_items) use "refetch":
a child event never carries the full parent aggregate.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple

DIRECT = "direct"
REFETCH = "refetch"


@dataclass(frozen=True)
class SyncRule:
    table: str
    collection: str
    mode: str
    purpose: str
    filters: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in self.filters.items())


# --------------------------------------------------------------------------- #
# Canonical Synchronization Map
# --------------------------------------------------------------------------- #

SYNC_RULES: List[SyncRule] = [
    SyncRule("users", "users", DIRECT, "Mirror user accounts"),
    SyncRule("pending_users", "pending_users", DIRECT, "Mirror registrations awaiting review",
             filters={"status": "pending"}),
    SyncRule("products", "products", DIRECT, "Mirror wholesaler catalogues"),
    SyncRule("support_tickets", "tickets", DIRECT, "Mirror support tickets"),
    SyncRule("promotions", "promotions", DIRECT, "Mirror promotion requests"),
    SyncRule("orders", "orders", REFETCH, "Rebuild orders with their line items"),
    SyncRule("order_items", "orders", REFETCH, "Line item change: rebuild parent orders"),
    SyncRule("return_requests", "return_requests", REFETCH, "Rebuild returns with their items"),
    SyncRule("return_items", "return_requests", REFETCH, "Return item change: rebuild parent returns"),
    SyncRule("platform_settings", "platform_settings", REFETCH, "Reload key/value platform settings"),
]

RULES_BY_TABLE: Dict[str, SyncRule] = {r.table: r for r in SYNC_RULES}

# Tables each collection is assembled from, parent first.
COLLECTION_TABLES: Dict[str, Tuple[str, ...]] = {
    "users": ("users",),
    "pending_users": ("pending_users",),
    "products": ("products",),
    "tickets": ("support_tickets",),
    "promotions": ("promotions",),
    "orders": ("orders", "order_items"),
    "return_requests": ("return_requests", "return_items"),
    "platform_settings": ("platform_settings",),
}


def list_sync_rules(as_dicts: bool = True):
    """Return synchronization rules as list of dicts or objects."""
    return [r.as_dict() for r in SYNC_RULES] if as_dicts else SYNC_RULES


def describe_sync_map() -> str:
    """Return a readable multi-line summary of all synchronizations."""
    lines = ["Marketplace Synchronization Map\n"]
    for rule in SYNC_RULES:
        lines.append(f"{rule.table:17s} -> {rule.collection:17s} [{rule.mode}] {rule.purpose}")
    return "\n".join(lines)
