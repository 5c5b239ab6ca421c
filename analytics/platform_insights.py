"""
analytics/platform_insights.py
------------------------------

Pure sales analytics computed from the marketplace state tree.

This module must remain network-agnostic and pure:
- Input: AppState (or a sequence of Order records)
- Output: JSON-serializable dicts / lists

Cancelled orders count towards order totals but never towards revenue.

Used by backend.main:/analytics/summary.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from core.models import ModerationStatus, Order, OrderStatus, Role, UserStatus
from core.notifications import LOW_STOCK_THRESHOLD
from core.state import AppState

ORDER_COLUMNS = ["id", "retailer_id", "wholesaler_id", "total", "status", "created_at"]
ITEM_COLUMNS = ["order_id", "wholesaler_id", "status", "product_id", "product_name", "quantity", "total"]


# --------------------------------------------------------------------------- #
# Frames
# --------------------------------------------------------------------------- #

def orders_frame(orders: Sequence[Order]) -> pd.DataFrame:
    """One row per order; ``created_at`` parsed as UTC timestamps."""
    df = pd.DataFrame(
        [
            {
                "id": o.id,
                "retailer_id": o.retailer_id,
                "wholesaler_id": o.wholesaler_id,
                "total": float(o.total),
                "status": o.status.value,
                "created_at": o.created_at,
            }
            for o in orders
        ],
        columns=ORDER_COLUMNS,
    )
    df["total"] = df["total"].astype(float)
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
    return df


def items_frame(orders: Sequence[Order]) -> pd.DataFrame:
    """One row per order line item, tagged with its order's status."""
    return pd.DataFrame(
        [
            {
                "order_id": o.id,
                "wholesaler_id": o.wholesaler_id,
                "status": o.status.value,
                "product_id": i.product_id,
                "product_name": i.product_name,
                "quantity": i.quantity,
                "total": float(i.total),
            }
            for o in orders
            for i in o.items
        ],
        columns=ITEM_COLUMNS,
    )


def _billable(df: pd.DataFrame) -> pd.DataFrame:
    return df[df["status"] != OrderStatus.CANCELLED.value]


# --------------------------------------------------------------------------- #
# Order metrics
# --------------------------------------------------------------------------- #

def total_revenue(orders: Sequence[Order]) -> float:
    return round(float(_billable(orders_frame(orders))["total"].sum()), 2)


def orders_by_status(orders: Sequence[Order]) -> Dict[str, int]:
    """Order counts for every status, zeros included."""
    counts = orders_frame(orders)["status"].value_counts()
    return {s.value: int(counts.get(s.value, 0)) for s in OrderStatus}


def top_products(orders: Sequence[Order], n: int = 5) -> List[Dict[str, Any]]:
    """
    Best-selling products by revenue.

    Parameters
    ----------
    orders : sequence of Order
    n : int
        Maximum number of products returned.

    Returns
    -------
    list of dict
        ``product_id``, ``product_name``, ``quantity``, ``revenue``; highest
        revenue first.
    """
    items = _billable(items_frame(orders))
    if items.empty:
        return []
    grouped = (
        items.groupby(["product_id", "product_name"], as_index=False)
        .agg(quantity=("quantity", "sum"), revenue=("total", "sum"))
        .sort_values(["revenue", "quantity"], ascending=False)
        .head(n)
    )
    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "quantity": int(row.quantity),
            "revenue": round(float(row.revenue), 2),
        }
        for row in grouped.itertuples(index=False)
    ]


def monthly_revenue(orders: Sequence[Order]) -> List[Dict[str, Any]]:
    """Revenue and billable order count per calendar month (``YYYY-MM``)."""
    df = _billable(orders_frame(orders)).dropna(subset=["created_at"])
    if df.empty:
        return []
    df = df.assign(month=df["created_at"].dt.strftime("%Y-%m"))
    grouped = df.groupby("month").agg(revenue=("total", "sum"), orders=("id", "count")).sort_index()
    return [
        {"month": month, "revenue": round(float(row.revenue), 2), "orders": int(row.orders)}
        for month, row in grouped.iterrows()
    ]


# --------------------------------------------------------------------------- #
# Summaries
# --------------------------------------------------------------------------- #

def wholesaler_summary(state: AppState, wholesaler_id: str) -> Dict[str, Any]:
    """
    Sales, stock and promotion figures for one wholesaler.

    Returns
    -------
    dict
        revenue, total_orders, average_order_value, unique_customers,
        platform_commission (at the configured commission rate),
        out_of_stock, low_stock, active_promotions, top_products.
    """
    orders = [o for o in state.orders if o.wholesaler_id == wholesaler_id]
    df = orders_frame(orders)
    billable = _billable(df)

    revenue = float(billable["total"].sum())
    aov = float(np.mean(billable["total"])) if not billable.empty else 0.0
    products = [p for p in state.products if p.wholesaler_id == wholesaler_id]
    commission_rate = state.platform_settings.commission_rate

    return {
        "wholesaler_id": wholesaler_id,
        "revenue": round(revenue, 2),
        "total_orders": int(len(df)),
        "average_order_value": round(aov, 2),
        "unique_customers": int(df["retailer_id"].nunique()),
        "platform_commission": round(revenue * commission_rate / 100, 2),
        "out_of_stock": sum(1 for p in products if p.stock == 0),
        "low_stock": sum(1 for p in products if 0 < p.stock <= LOW_STOCK_THRESHOLD),
        "active_promotions": sum(
            1
            for p in state.promotions
            if p.wholesaler_id == wholesaler_id and p.active and p.status == ModerationStatus.APPROVED
        ),
        "top_products": top_products(orders),
    }


def platform_summary(state: AppState) -> Dict[str, Any]:
    """
    Platform-wide figures across active wholesalers.

    ``top_performing_wholesaler`` is the business name (or name) of the
    wholesaler with the highest revenue, or None when nobody has revenue.
    """
    wholesalers = [u for u in state.users if u.role == Role.WHOLESALER and u.status == UserStatus.ACTIVE]
    df = orders_frame(state.orders)
    revenue_by = _billable(df).groupby("wholesaler_id")["total"].sum()

    top_name: Optional[str] = None
    top_revenue = 0.0
    total = 0.0
    for w in wholesalers:
        revenue = float(revenue_by.get(w.id, 0.0))
        total += revenue
        if revenue > top_revenue:
            top_revenue = revenue
            top_name = w.business_name or w.name

    ids = {w.id for w in wholesalers}
    return {
        "total_wholesalers": len(wholesalers),
        "total_revenue": round(total, 2),
        "total_orders": int(df["wholesaler_id"].isin(ids).sum()),
        "average_wholesaler_revenue": round(total / len(wholesalers), 2) if wholesalers else 0.0,
        "top_performing_wholesaler": top_name,
        "orders_by_status": orders_by_status(state.orders),
        "monthly_revenue": monthly_revenue(state.orders),
    }
