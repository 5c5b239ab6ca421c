# tests/test_backend.py
"""HTTP surface over an isolated store."""

from datetime import timedelta

from fastapi.testclient import TestClient

from backend.main import create_app
from core import actions as a
from core.config import AppConfig
from core.models import Notification, NotificationType, Priority
from core.store import Store
from factories import ADMIN, RETAILER, T0, WHOLESALER, order


def note(id, user_id, priority=Priority.MEDIUM, minutes=0):
    return Notification(id=id, user_id=user_id, type=NotificationType.ORDER, title=id, message=id,
                        priority=priority, created_at=T0 + timedelta(minutes=minutes))


def client_with(*actions):
    store = Store()
    for action in actions:
        store.dispatch(action)
    return TestClient(create_app(store, config=AppConfig())), store


def test_health_reports_offline_mode():
    client, _ = client_with()
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["sync"]["online"] is False
    assert body["failed_writes"] == 0
    assert "uptime_sec" in body
    assert body["project"] == "Marketplace Sync Core"
    assert body["version"] == "1.0.0"


def test_root_serves_project_metadata():
    client, _ = client_with()
    body = client.get("/").json()
    assert body["status"] == "ok"
    assert body["project"] == "Marketplace Sync Core"
    assert "description" in body
    assert body["supabase_enabled"] is False


def test_notifications_are_visible_and_sorted():
    client, _ = client_with(
        a.AddNotification(note("low", RETAILER, Priority.LOW, minutes=5)),
        a.AddNotification(note("urgent", "retailer", Priority.URGENT)),
        a.AddNotification(note("admins", "admin", Priority.URGENT)),
    )
    res = client.get(f"/notifications/{RETAILER}")
    assert [n["id"] for n in res.json()] == ["urgent", "low"]
    assert client.get(f"/notifications/{RETAILER}/unread-count").json() == {"user_id": RETAILER, "unread": 2}


def test_mark_read_endpoints():
    client, store = client_with(
        a.AddNotification(note("n1", RETAILER)),
        a.AddNotification(note("n2", "all")),
    )
    assert client.post("/notifications/n1/read").json()["applied"] is True
    assert store.unread_count(RETAILER) == 1

    res = client.post(f"/notifications/read-all/{RETAILER}")
    assert res.json() == {"applied": True, "diagnostic": None, "unread": 0}
    assert client.get(f"/notifications/{RETAILER}", params={"unread_only": True}).json() == []


def test_mark_read_of_unknown_notification_is_404():
    client, _ = client_with()
    res = client.post("/notifications/ghost/read")
    assert res.status_code == 404
    assert res.json()["detail"] == "notification ghost not found"


def test_analytics_endpoints():
    client, _ = client_with(a.AddOrder(order("o1", total=250)))
    summary = client.get("/analytics/summary").json()
    assert summary["total_revenue"] == 250
    assert summary["top_performing_wholesaler"] == "Test Wholesale Business"

    assert client.get(f"/analytics/wholesalers/{WHOLESALER}").json()["revenue"] == 250
    assert client.get(f"/analytics/wholesalers/{ADMIN}").status_code == 404


def test_sync_rules_endpoint():
    client, _ = client_with()
    rules = {r["table"]: r for r in client.get("/sync/rules").json()}
    assert rules["order_items"]["collection"] == "orders"
    assert rules["pending_users"]["filters"] == {"status": "pending"}
