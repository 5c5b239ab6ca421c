# tests/test_config_auth.py
"""Configuration, sync map and the offline behaviour of the auth collaborator."""

import asyncio
import logging

import pytest

from core.config import is_supabase_configured, load_config
from core.errors import GatewayNotConfigured, ValidationError
from core.logging_config import configure_logging
from core.sync_rules import SYNC_RULES, describe_sync_map
from core.gateway import TABLES
from supabase_client.auth import AuthService, validate_registration
from supabase_client.config import get_supabase_client

REAL_KEY = "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.example"


@pytest.mark.parametrize(
    "url, key, expected",
    [
        ("https://abc.supabase.co", REAL_KEY, True),
        ("https://demo.supabase.co", REAL_KEY, False),
        ("https://abc.supabase.co", "demo-key", False),
        ("http://abc.supabase.co", REAL_KEY, False),
        ("https://abc.supabase.co", "short", False),
        (None, REAL_KEY, False),
    ],
)
def test_is_supabase_configured(url, key, expected):
    assert is_supabase_configured(url, key) is expected


def test_load_config_reads_environment(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", REAL_KEY)
    monkeypatch.setenv("SYNC_PROBE_INTERVAL_SEC", "15")
    monkeypatch.setenv("MARKETPLACE_LOG_LEVEL", "debug")
    config = load_config()
    assert config.supabase_configured
    assert config.probe_interval_sec == 15
    assert config.fetch_timeout_sec == 10
    assert config.log_level == "DEBUG"


def test_client_factory_refuses_without_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    with pytest.raises(GatewayNotConfigured):
        asyncio.run(get_supabase_client())


def test_configure_logging_is_idempotent():
    configure_logging("INFO")
    handlers = list(logging.getLogger().handlers)
    configure_logging("DEBUG")
    assert logging.getLogger().handlers == handlers
    assert logging.getLogger().level == logging.DEBUG
    logging.getLogger().setLevel(logging.WARNING)


def test_every_table_has_one_sync_rule():
    assert sorted(r.table for r in SYNC_RULES) == sorted(TABLES)
    assert "order_items" in describe_sync_map()


@pytest.mark.parametrize(
    "email, password, confirm, role",
    [
        ("not-an-email", "secret1", "secret1", "retailer"),
        ("a@b.co", "123", "123", "retailer"),
        ("a@b.co", "secret1", "secret2", "retailer"),
        ("a@b.co", "secret1", "secret1", "admin"),
    ],
)
def test_registration_validation(email, password, confirm, role):
    with pytest.raises(ValidationError):
        validate_registration(email, password, confirm, role)


def test_valid_registration_passes():
    validate_registration("shop@example.com", "secret1", "secret1", "wholesaler")


def test_offline_auth():
    auth = AuthService()
    identity = asyncio.run(auth.sign_in("retailer@test.com", "whatever"))
    assert identity.demo
    assert identity.email == "retailer@test.com"

    with pytest.raises(GatewayNotConfigured):
        asyncio.run(auth.sign_up("new@example.com", "secret1", {"role": "retailer"}))
