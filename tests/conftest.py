"""Shared fixtures for the bridge test suite."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from erpbridge.app.main import app
from erpbridge.app.odoo.client import OdooClient, get_odoo_client, reset_odoo_client

BEARER_TOKEN = "test-bearer-token"
API_KEY = "test-api-key"


@pytest.fixture(autouse=True)
def isolate_process_state():
    """Reset process-wide singletons so tests do not leak into each other."""
    app.state.rate_limiter.reset()
    reset_odoo_client()
    yield
    app.state.rate_limiter.reset()
    reset_odoo_client()
    app.dependency_overrides.clear()


@pytest.fixture
def auth_env(monkeypatch):
    monkeypatch.setenv("API_BEARER_TOKEN", BEARER_TOKEN)
    monkeypatch.setenv("API_KEY", API_KEY)


@pytest.fixture
def auth_headers(auth_env):
    return {"Authorization": f"Bearer {BEARER_TOKEN}"}


@pytest.fixture
def odoo():
    """Odoo client double with every RPC method mocked."""
    return AsyncMock(spec=OdooClient)


@pytest.fixture
def client(odoo):
    app.dependency_overrides[get_odoo_client] = lambda: odoo
    with TestClient(app) as test_client:
        yield test_client
