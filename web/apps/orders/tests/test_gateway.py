"""Tests for the gateway middleware, log filters and the health endpoint."""

import logging

import pytest

from apps.orders import http_adapters
from gateway.logging_filters import ActorFilter, RequestIdFilter
from gateway.middleware import ACTOR_ID_CTX, ACTOR_ROLE_CTX, REQUEST_ID_CTX


def test_request_id_is_echoed(client):
    r = client.get("/api/orders/ping/", HTTP_X_REQUEST_ID="req-abc")
    assert r["X-Request-ID"] == "req-abc"


def test_request_id_is_generated(client):
    r = client.get("/api/orders/ping/")
    assert len(r["X-Request-ID"]) == 36


def test_oversized_payload_is_413(client, settings):
    settings.API_MAX_BYTES = 10
    r = client.post("/api/orders/", data={"items": ["x" * 50]}, content_type="application/json")
    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"


def test_log_filters_copy_context():
    record = logging.LogRecord("apps.orders", logging.INFO, __file__, 1, "msg", None, None)
    tokens = [REQUEST_ID_CTX.set("rid-1"), ACTOR_ID_CTX.set("admin-1"), ACTOR_ROLE_CTX.set("ADMIN")]
    try:
        assert RequestIdFilter().filter(record) and ActorFilter().filter(record)
    finally:
        ACTOR_ROLE_CTX.reset(tokens[2])
        ACTOR_ID_CTX.reset(tokens[1])
        REQUEST_ID_CTX.reset(tokens[0])
    assert (record.request_id, record.actor_id, record.actor_role) == ("rid-1", "admin-1", "ADMIN")


@pytest.mark.django_db
def test_health_reports_db_and_stub_notifications(client):
    r = client.get("/api/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"]["notifications"] == {"ok": True, "mode": "stub"}


@pytest.mark.django_db
def test_health_is_degraded_when_circuit_open(client, settings, monkeypatch):
    settings.USE_HTTP_ADAPTERS = True
    monkeypatch.setattr(http_adapters.CircuitBreaker, "state", property(lambda self: "OPEN"))
    r = client.get("/api/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["degraded"] is True
    assert body["components"]["notifications"]["circuit"] == "OPEN"
