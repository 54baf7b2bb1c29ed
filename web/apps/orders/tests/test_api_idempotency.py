import pytest

from apps.orders.models import IdempotencyKey, Order
from apps.orders.services import OrderService

CREATE_URL = "/api/orders/"


def payload(product, quantity=2):
    return {"items": [{"product_id": product.pk, "quantity": quantity}], "payment_method": "COD", "city": "Dakhla"}


@pytest.mark.django_db
def test_same_key_and_payload_replays_the_first_response(client, headers, merchant_actor, product):
    key = "idem-same-1"
    r1 = client.post(CREATE_URL, data=payload(product), content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert r1.status_code == 201

    r2 = client.post(CREATE_URL, data=payload(product), content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert r2.status_code == 201
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert Order.objects.count() == 1
    assert IdempotencyKey.objects.get(key=key).order_id == Order.objects.get().pk


@pytest.mark.django_db
def test_same_key_different_payload_is_409(client, headers, merchant_actor, product):
    key = "idem-conflict-1"
    r1 = client.post(CREATE_URL, data=payload(product, 2), content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert r1.status_code == 201

    r2 = client.post(CREATE_URL, data=payload(product, 3), content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert r2.status_code == 409
    assert r2.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_replay_preserves_422(client, headers, merchant_actor, product):
    key = "idem-422"
    r1 = client.post(CREATE_URL, data=payload(product, 99), content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert r1.status_code == 422

    r2 = client.post(CREATE_URL, data=payload(product, 99), content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert r2.status_code == 422
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"


@pytest.mark.django_db
def test_key_is_scoped_to_the_caller(client, headers, merchant_actor, admin, product, merchant):
    key = "idem-shared"
    body = payload(product)
    client.post(CREATE_URL, data=body, content_type="application/json",
                HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    r = client.post(CREATE_URL, data=body, content_type="application/json",
                    HTTP_IDEMPOTENCY_KEY=key, **headers(admin))
    assert r.status_code == 409


@pytest.mark.django_db
def test_out_of_range_product_id_is_400_and_claims_no_key(client, headers, merchant_actor):
    body = {"items": [{"product_id": 10**20, "quantity": 1}], "payment_method": "COD", "city": "Dakhla"}
    r = client.post(CREATE_URL, data=body, content_type="application/json",
                    HTTP_IDEMPOTENCY_KEY="idem-overflow", **headers(merchant_actor))
    assert r.status_code == 400
    assert not IdempotencyKey.objects.filter(key="idem-overflow").exists()


@pytest.mark.django_db
def test_unexpected_error_releases_the_key(monkeypatch, client, headers, merchant_actor, product):
    key = "idem-crash"

    def boom(self, actor, dto):
        raise RuntimeError("database went away")

    monkeypatch.setattr(OrderService, "create_order", boom)
    with pytest.raises(RuntimeError):
        client.post(CREATE_URL, data=payload(product), content_type="application/json",
                    HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert not IdempotencyKey.objects.filter(key=key).exists()

    monkeypatch.undo()
    r = client.post(CREATE_URL, data=payload(product), content_type="application/json",
                    HTTP_IDEMPOTENCY_KEY=key, **headers(merchant_actor))
    assert r.status_code == 201
    assert r.headers.get("Idempotent-Replay") is None
