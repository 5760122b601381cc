"""Tests for request ID middleware."""

import logging
import uuid

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from erpbridge.app.middleware.auth import require_client
from erpbridge.app.middleware.request_id import (
    MAX_REQUEST_ID_LENGTH,
    RequestIdMiddleware,
    get_request_id,
)


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/echo")
    async def echo(request: Request):
        return {"request_id": get_request_id(request)}

    return TestClient(app)


def test_generates_request_id(client):
    resp = client.get("/echo")

    request_id = resp.headers["X-Request-ID"]
    assert str(uuid.UUID(request_id)) == request_id
    assert resp.json()["request_id"] == request_id


def test_preserves_caller_request_id(client):
    resp = client.get("/echo", headers={"X-Request-ID": "caller-42"})

    assert resp.headers["X-Request-ID"] == "caller-42"
    assert resp.json()["request_id"] == "caller-42"


def test_replaces_oversized_request_id(client):
    oversized = "x" * (MAX_REQUEST_ID_LENGTH + 1)

    resp = client.get("/echo", headers={"X-Request-ID": oversized})

    assert resp.headers["X-Request-ID"] != oversized
    assert len(resp.headers["X-Request-ID"]) == 36


def test_logs_completed_request(client, caplog, monkeypatch):
    # setup_logging stops the package logger from propagating to caplog's root handler.
    monkeypatch.setattr(logging.getLogger("erpbridge"), "propagate", True)

    with caplog.at_level("INFO", logger="erpbridge.app.middleware.request_id"):
        client.get("/echo", headers={"X-Request-ID": "log-me"})

    records = [r for r in caplog.records if getattr(r, "request_id", None) == "log-me"]
    assert records
    assert records[0].status_code == 200
    assert records[0].path == "/echo"


def test_get_request_id_without_middleware():
    app = FastAPI()

    @app.get("/echo")
    async def echo(request: Request):
        return {"request_id": get_request_id(request)}

    assert TestClient(app).get("/echo").json() == {"request_id": "unknown"}


def test_completion_log_records_accepted_credential(caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("erpbridge"), "propagate", True)
    monkeypatch.setenv("API_KEY", "key-1")

    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/private", dependencies=[Depends(require_client)])
    async def private():
        return {"ok": True}

    with caplog.at_level("INFO", logger="erpbridge.app.middleware.request_id"):
        TestClient(app).get(
            "/private", headers={"X-Request-ID": "cred-1", "X-API-Key": "key-1"}
        )

    records = [r for r in caplog.records if getattr(r, "request_id", None) == "cred-1"]
    assert records[0].credential == "api_key"
