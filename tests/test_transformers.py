# tests/test_transformers.py
"""Row <-> entity mapping for the gateway tables."""

import logging

from core.models import OrderStatus, PaymentStatus, Role
from sync import transformers as t
from factories import RETAILER, WHOLESALER, order, return_request


def test_product_row_with_string_numbers():
    p = t.product_from_row({
        "id": 7,
        "wholesaler_id": WHOLESALER,
        "name": "Maize Meal 10kg",
        "price": "89.90",
        "stock": "12",
        "min_order_quantity": None,
    })
    assert p.id == "7"
    assert p.price == 89.90
    assert p.stock == 12
    assert p.min_order_quantity == 1
    assert p.available


def test_order_is_assembled_from_parent_and_children():
    orders = t.orders_from_tables(
        [
            {"id": "o1", "retailer_id": RETAILER, "wholesaler_id": WHOLESALER, "total": "300", "status": "accepted"},
            {"id": "o2", "retailer_id": RETAILER, "wholesaler_id": WHOLESALER, "total": 0},
        ],
        [
            {"order_id": "o1", "product_id": "p1", "product_name": "A", "quantity": 1, "price": 100, "total": 100},
            {"order_id": "o1", "product_id": "p2", "product_name": "B", "quantity": 2, "price": 100, "total": 200},
        ],
    )
    assert [len(o.items) for o in orders] == [2, 0]
    assert orders[0].status == OrderStatus.ACCEPTED
    assert orders[0].total == 300
    assert orders[1].payment_status == PaymentStatus.PENDING


def test_order_to_rows_splits_items():
    row, items = t.order_to_rows(order("o1", total=200))
    assert row["id"] == "o1"
    assert row["status"] == "pending"
    assert row["created_at"].startswith("2024-03-01")
    assert items == [{
        "order_id": "o1",
        "product_id": "p1",
        "product_name": "Product p1",
        "quantity": 2,
        "price": 100.0,
        "total": 200.0,
    }]


def test_return_request_round_trip_keeps_items():
    row, item_rows = t.return_request_to_rows(return_request("r1"))
    rebuilt = t.return_request_from_rows(row, item_rows)
    assert rebuilt == return_request("r1")


def test_pending_user_row_carries_pending_status():
    row = t.pending_user_to_row(t.pending_user_from_row({
        "id": "pu1", "name": "Shop", "email": "s@example.com", "role": "retailer", "status": "pending",
    }))
    assert row["status"] == "pending"
    assert row["role"] == "retailer"


def test_user_row_defaults():
    user = t.user_from_row({"id": "u1", "name": "Shop", "email": "s@example.com", "role": "wholesaler"})
    assert user.role == Role.WHOLESALER
    assert user.business_name == ""


def test_settings_rows_overlay_defaults():
    settings = t.settings_from_rows([
        {"key": "commission_rate", "value": 7},
        {"key": "maintenance_mode", "value": True},
        {"key": "legacy_flag", "value": "ignored"},
    ])
    assert settings.commission_rate == 7
    assert settings.maintenance_mode
    assert settings.user_registration_enabled


def test_settings_to_rows():
    rows = t.settings_to_rows({"commission_rate": 6}, updated_by="admin-1")
    assert rows == [{"key": "commission_rate", "value": 6, "updated_by": "admin-1"}]


def test_parse_rows_skips_rows_that_do_not_validate(caplog):
    rows = [
        {"id": "p1", "wholesaler_id": "w1", "name": "Tea", "price": "45", "stock": "80"},
        {"id": "p2", "wholesaler_id": "w1", "name": "Broken", "price": 10, "stock": -1},
        {"wholesaler_id": "w1", "name": "No id", "price": 10, "stock": 1},
    ]
    with caplog.at_level(logging.WARNING, logger="sync.transformers"):
        products = t.parse_rows(t.product_from_row, rows, "products")
    assert [p.id for p in products] == ["p1"]
    assert sum("[Sync] skipping malformed row" in r.getMessage() for r in caplog.records) == 2


def test_invalid_setting_value_falls_back_to_default():
    settings = t.settings_from_rows([
        {"key": "commission_rate", "value": 250},
        {"key": "minimum_order_value", "value": 50},
    ])
    assert settings.commission_rate == 5
    assert settings.minimum_order_value == 50
