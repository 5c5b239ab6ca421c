# tests/test_platform_insights.py
"""Sales analytics over the state tree."""

from datetime import datetime, timezone

from core import actions as a
from core.models import OrderItem, OrderStatus
from core.reducer import reduce
from core.state import initial_state
from analytics.platform_insights import (
    monthly_revenue,
    orders_by_status,
    platform_summary,
    top_products,
    total_revenue,
    wholesaler_summary,
)
from factories import ADMIN, WHOLESALER, order, product, promotion


def when(month, day=1):
    return datetime(2024, month, day, 9, 0, tzinfo=timezone.utc)


def item(pid, qty, price):
    return OrderItem(product_id=pid, product_name=f"Product {pid}", quantity=qty, price=price, total=qty * price)


ORDERS = [
    order("o1", total=300, created_at=when(1), retailer_id="r1", items=(item("p1", 3, 100),)),
    order("o2", total=100, created_at=when(1, 15), retailer_id="r2", items=(item("p2", 2, 50),)),
    order("o3", total=500, created_at=when(2), retailer_id="r1", items=(item("p1", 5, 100),)),
    order("o4", total=999, created_at=when(2), status=OrderStatus.CANCELLED, items=(item("p3", 1, 999),)),
]


def test_revenue_excludes_cancelled_orders():
    assert total_revenue(ORDERS) == 900
    assert total_revenue([]) == 0


def test_orders_by_status_lists_every_status():
    counts = orders_by_status(ORDERS)
    assert counts["pending"] == 3
    assert counts["cancelled"] == 1
    assert counts["completed"] == 0


def test_top_products_by_revenue():
    top = top_products(ORDERS, n=2)
    assert top == [
        {"product_id": "p1", "product_name": "Product p1", "quantity": 8, "revenue": 800.0},
        {"product_id": "p2", "product_name": "Product p2", "quantity": 2, "revenue": 100.0},
    ]
    assert top_products([]) == []


def test_monthly_revenue():
    assert monthly_revenue(ORDERS) == [
        {"month": "2024-01", "revenue": 400.0, "orders": 2},
        {"month": "2024-02", "revenue": 500.0, "orders": 1},
    ]


def build_state():
    state = initial_state()
    for action in (
        a.AddProduct(product("p1", stock=0)),
        a.AddProduct(product("p2", stock=4)),
        a.AddProduct(product("p3", stock=40)),
        a.AddPromotion(promotion("promo1")),
        a.ApprovePromotion("promo1", ADMIN),
        *(a.AddOrder(o) for o in ORDERS),
    ):
        state = reduce(state, action)
    return state


def test_wholesaler_summary():
    summary = wholesaler_summary(build_state(), WHOLESALER)
    assert summary["revenue"] == 900
    assert summary["total_orders"] == 4
    assert summary["average_order_value"] == 300
    assert summary["unique_customers"] == 3
    assert summary["platform_commission"] == 45
    assert summary["out_of_stock"] == 1
    assert summary["low_stock"] == 1
    assert summary["active_promotions"] == 1
    assert summary["top_products"][0]["product_id"] == "p1"


def test_platform_summary_names_top_wholesaler():
    summary = platform_summary(build_state())
    assert summary["total_wholesalers"] == 1
    assert summary["total_revenue"] == 900
    assert summary["total_orders"] == 4
    assert summary["average_wholesaler_revenue"] == 900
    assert summary["top_performing_wholesaler"] == "Test Wholesale Business"


def test_platform_summary_without_orders():
    summary = platform_summary(initial_state())
    assert summary["total_revenue"] == 0
    assert summary["top_performing_wholesaler"] is None
    assert summary["monthly_revenue"] == []
