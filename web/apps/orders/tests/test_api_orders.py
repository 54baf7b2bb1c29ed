"""API tests for the orders endpoints."""

import pytest

from apps.orders.domain import Actor, ActorRole, OrderStatus
from apps.orders.models import Merchant
from apps.orders.services import OrderService

LIST_URL = "/api/orders/"
QUOTE_URL = "/api/orders/quote/"
DETAIL_URL = "/api/orders/{oid}/"
TRANSITION_URL = "/api/orders/{oid}/transitions/"
ACCEPT_URL = "/api/orders/{oid}/accept/"
ATTEMPTS_URL = "/api/orders/{oid}/attempts/"
TRANSFERS_URL = "/api/transfers/"


def create_payload(product, quantity=2, **extra):
    data = {
        "items": [{"product_id": product.pk, "quantity": quantity}],
        "payment_method": "COD",
        "city": "Dakhla",
        "customer_name": "Fatima",
        "customer_phone": "+212 600 000 000",
    }
    data.update(extra)
    return data


def test_ping(client):
    r = client.get("/api/orders/ping/")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


@pytest.mark.django_db
def test_missing_actor_is_401(client):
    r = client.get(LIST_URL)
    assert r.status_code == 401


@pytest.mark.django_db
def test_unknown_role_is_401(client):
    r = client.get(LIST_URL, HTTP_X_ACTOR_ID="x", HTTP_X_ACTOR_ROLE="CUSTOMER")
    assert r.status_code == 401


@pytest.mark.django_db
def test_create_order_returns_201_with_detail(client, headers, merchant_actor, product):
    r = client.post(LIST_URL, data=create_payload(product), content_type="application/json", **headers(merchant_actor))
    assert r.status_code == 201
    body = r.json()
    assert body["order_code"] == "OR-DA-000001"
    assert body["status"] == "PENDING"
    assert body["total_price"] == "100.00"
    assert body["merchant_earning"] == "75.00"
    assert body["items"][0]["product_id"] == product.pk
    assert body["attempts"] == []


@pytest.mark.django_db
def test_create_order_validation_error_is_400(client, headers, merchant_actor, product):
    payload = create_payload(product, quantity=0, payment_method="CARD")
    r = client.post(LIST_URL, data=payload, content_type="application/json", **headers(merchant_actor))
    assert r.status_code == 400


@pytest.mark.django_db
def test_create_order_insufficient_stock_is_422(client, headers, merchant_actor, product):
    r = client.post(
        LIST_URL, data=create_payload(product, quantity=99), content_type="application/json", **headers(merchant_actor)
    )
    assert r.status_code == 422
    body = r.json()
    assert body["detail"] == "INSUFFICIENT_STOCK"
    assert body["retryable"] is False


@pytest.mark.django_db
def test_delivery_man_cannot_create_order(client, headers, courier_actor, product):
    r = client.post(LIST_URL, data=create_payload(product), content_type="application/json", **headers(courier_actor))
    assert r.status_code == 403


@pytest.mark.django_db
def test_quote(client, headers, merchant_actor, product):
    payload = {
        "items": [{"product_id": product.pk, "quantity": 4}],
        "discount": {"type": "PERCENTAGE", "value": "10"},
    }
    r = client.post(QUOTE_URL, data=payload, content_type="application/json", **headers(merchant_actor))
    assert r.status_code == 200
    assert r.json() == {"original_total": "200.00", "discount_amount": "20.00", "final_total": "180.00"}


@pytest.mark.django_db
def test_list_is_scoped_to_the_merchant(client, headers, make_order, merchant_actor, other_merchant, admin):
    make_order()
    make_order()
    stranger = Actor(id=other_merchant.user_id, role=ActorRole.MERCHANT)

    mine = client.get(LIST_URL, **headers(merchant_actor)).json()
    theirs = client.get(LIST_URL, **headers(stranger)).json()
    everything = client.get(LIST_URL, {"status": "PENDING", "page_size": 1}, **headers(admin)).json()

    assert mine["count"] == 2
    assert theirs["count"] == 0
    assert everything["count"] == 2
    assert len(everything["results"]) == 1
    assert everything["page_size"] == 1


@pytest.mark.django_db
def test_detail_hidden_from_other_merchants(client, headers, make_order, other_merchant):
    order = make_order()
    stranger = Actor(id=other_merchant.user_id, role=ActorRole.MERCHANT)
    r = client.get(DETAIL_URL.format(oid=order.pk), **headers(stranger))
    assert r.status_code == 404
    assert r.json()["detail"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
def test_delivery_man_sees_accepted_orders_in_city(client, headers, make_order, admin, courier_actor):
    pending = make_order()
    accepted = make_order()
    OrderService().transition(accepted.pk, OrderStatus.ACCEPTED, admin)

    body = client.get(LIST_URL, **headers(courier_actor)).json()
    ids = {o["id"] for o in body["results"]}
    assert str(accepted.pk) in ids
    assert str(pending.pk) not in ids


@pytest.mark.django_db
def test_full_lifecycle_over_http(client, headers, make_order, admin, courier_actor, merchant):
    order = make_order()
    oid = order.pk

    r = client.post(TRANSITION_URL.format(oid=oid), data={"status": "ACCEPTED"}, content_type="application/json", **headers(admin))
    assert r.status_code == 200 and r.json()["status"] == "ACCEPTED"

    r = client.post(ACCEPT_URL.format(oid=oid), data={}, content_type="application/json", **headers(courier_actor))
    assert r.status_code == 200 and r.json()["status"] == "ASSIGNED_TO_DELIVERY"

    r = client.post(
        ATTEMPTS_URL.format(oid=oid),
        data={"status": "CUSTOMER_NOT_AVAILABLE", "reason": "no answer"},
        content_type="application/json",
        **headers(courier_actor),
    )
    assert r.status_code == 201 and r.json()["attempt_number"] == 3

    r = client.post(TRANSITION_URL.format(oid=oid), data={"status": "DELIVERED"}, content_type="application/json", **headers(courier_actor))
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "DELIVERED"
    assert [a["attempt_number"] for a in body["attempts"]] == [1, 2, 3, 4]

    timeline = client.get(ATTEMPTS_URL.format(oid=oid), **headers(admin)).json()
    assert timeline["order_code"] == order.order_code
    assert [a["status"] for a in timeline["results"]] == [
        "ATTEMPTED", "ATTEMPTED", "CUSTOMER_NOT_AVAILABLE", "SUCCESSFUL",
    ]
    merchant.refresh_from_db()
    assert str(merchant.balance) == "75.00"


@pytest.mark.django_db
def test_second_accept_is_409(client, headers, make_order, admin, courier_actor, other_courier):
    order = make_order()
    OrderService().transition(order.pk, OrderStatus.ACCEPTED, admin)
    client.post(ACCEPT_URL.format(oid=order.pk), data={}, content_type="application/json", **headers(courier_actor))

    rival = Actor(id=other_courier.user_id, role=ActorRole.DELIVERY_MAN)
    r = client.post(ACCEPT_URL.format(oid=order.pk), data={}, content_type="application/json", **headers(rival))
    assert r.status_code == 409
    assert r.json() == {
        "detail": "ORDER_ALREADY_ASSIGNED",
        "message": "Order already assigned to another delivery man.",
        "retryable": True,
    }


@pytest.mark.django_db
def test_illegal_transition_is_422(client, headers, make_order, admin):
    order = make_order()
    r = client.post(TRANSITION_URL.format(oid=order.pk), data={"status": "DELIVERED"}, content_type="application/json", **headers(admin))
    assert r.status_code == 422
    assert r.json()["detail"] == "ILLEGAL_TRANSITION"


@pytest.mark.django_db
def test_transfer_endpoint(client, headers, admin, merchant_actor, merchant):
    Merchant.objects.filter(pk=merchant.pk).update(balance="100.00")
    payload = {"amount": "40.00", "merchant_id": merchant.pk, "reference": "CASH-1"}

    denied = client.post(TRANSFERS_URL, data=payload, content_type="application/json", **headers(merchant_actor))
    assert denied.status_code == 403

    r = client.post(TRANSFERS_URL, data=payload, content_type="application/json", **headers(admin))
    assert r.status_code == 201
    assert r.json()["amount"] == "40.00"
    merchant.refresh_from_db()
    assert str(merchant.balance) == "60.00"


@pytest.mark.django_db
def test_transfer_needs_one_recipient(client, headers, admin):
    r = client.post(TRANSFERS_URL, data={"amount": "10.00"}, content_type="application/json", **headers(admin))
    assert r.status_code == 400


@pytest.mark.django_db
def test_delivery_man_sees_orders_written_in_arabic(client, headers, make_order, admin, courier_actor, far_courier):
    order = make_order(city="الداخلة")
    OrderService().transition(order.pk, OrderStatus.ACCEPTED, admin)

    mine = client.get(LIST_URL, **headers(courier_actor)).json()
    assert [o["id"] for o in mine["results"]] == [str(order.pk)]

    far = Actor(id=far_courier.user_id, role=ActorRole.DELIVERY_MAN)
    assert client.get(LIST_URL, **headers(far)).json()["count"] == 0

    filtered = client.get(LIST_URL, {"city": "dakhla"}, **headers(admin)).json()
    assert filtered["count"] == 1
