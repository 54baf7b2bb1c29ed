def _payload(**overrides):
    data = {
        "user_id": "merchant-1",
        "title": "Order Delivered",
        "message": "Order #OR-DA-000001 has been delivered successfully",
        "type": "ORDER_DELIVERED",
        "order_id": "6f1c2d4e-0000-4000-8000-000000000001",
    }
    data.update(overrides)
    return data


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_store_and_list_newest_first(client):
    first = client.post("/notifications", json=_payload(title="first"))
    second = client.post("/notifications", json=_payload(title="second"))
    client.post("/notifications", json=_payload(user_id="someone-else"))
    assert first.status_code == 201
    assert second.json()["read"] is False

    r = client.get("/users/merchant-1/notifications")
    assert r.status_code == 200
    assert [n["title"] for n in r.json()] == ["second", "first"]


def test_mark_read_and_unread_filter(client):
    nid = client.post("/notifications", json=_payload()).json()["id"]
    client.post("/notifications", json=_payload(title="still unread"))

    assert client.post(f"/notifications/{nid}/read").status_code == 204

    unread = client.get("/users/merchant-1/notifications", params={"unread_only": True}).json()
    assert [n["title"] for n in unread] == ["still unread"]


def test_mark_read_unknown_returns_404(client):
    r = client.post("/notifications/999999/read")
    assert r.status_code == 404
    assert r.json()["detail"] == "NOTIFICATION_NOT_FOUND"


def test_rejects_empty_fields(client):
    r = client.post("/notifications", json=_payload(user_id=""))
    assert r.status_code == 422


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
