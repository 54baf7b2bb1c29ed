from decimal import Decimal

import pytest

from apps.orders import providers
from apps.orders.domain import Actor, ActorRole, OrderStatus, PaymentMethod
from apps.orders.http_adapters import notifications_cb
from apps.orders.models import DeliveryMan, Merchant, Product
from apps.orders.schemas import CreateOrderDTO
from apps.orders.services import OrderService


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    providers._stub.clear()
    notifications_cb.on_success()


@pytest.fixture
def sent():
    """Notifications recorded by the in-process stub."""
    return providers._stub.sent


@pytest.fixture
def merchant(db):
    return Merchant.objects.create(user_id="merchant-1", name="Souk Dakhla", base_fee=Decimal("25.00"))


@pytest.fixture
def other_merchant(db):
    return Merchant.objects.create(user_id="merchant-2", name="Bazar Boujdour", base_fee=Decimal("20.00"))


@pytest.fixture
def courier(db):
    return DeliveryMan.objects.create(
        user_id="courier-1", name="Youssef", city="Dakhla", base_fee=Decimal("15.00")
    )


@pytest.fixture
def other_courier(db):
    return DeliveryMan.objects.create(
        user_id="courier-2", name="Hamid", city="Dakhla", base_fee=Decimal("15.00")
    )


@pytest.fixture
def far_courier(db):
    return DeliveryMan.objects.create(
        user_id="courier-3", name="Said", city="Laayoune", base_fee=Decimal("15.00")
    )


@pytest.fixture
def product(merchant):
    return Product.objects.create(merchant=merchant, name="Argan oil", price=Decimal("50.00"), stock_quantity=10)


@pytest.fixture
def gift(merchant):
    return Product.objects.create(merchant=merchant, name="Sample soap", price=Decimal("5.00"), stock_quantity=0)


@pytest.fixture
def admin():
    return Actor(id="admin-1", role=ActorRole.ADMIN)


@pytest.fixture
def merchant_actor(merchant):
    return Actor(id=merchant.user_id, role=ActorRole.MERCHANT)


@pytest.fixture
def courier_actor(courier):
    return Actor(id=courier.user_id, role=ActorRole.DELIVERY_MAN)


def actor_headers(actor: Actor) -> dict:
    """Django test client kwargs carrying the gateway identity headers."""
    return {"HTTP_X_ACTOR_ID": actor.id, "HTTP_X_ACTOR_ROLE": actor.role.value}


@pytest.fixture
def make_order(merchant_actor, product):
    """Create a PENDING order for ``product`` through the service."""

    def _make(quantity=2, payment_method=PaymentMethod.COD, city="Dakhla", **extra):
        dto = CreateOrderDTO(
            items=[{"product_id": product.pk, "quantity": quantity}],
            payment_method=payment_method,
            city=city,
            customer_name="Fatima",
            customer_phone="+212600000000",
            address="Hay Al Qods",
            **extra,
        )
        return OrderService().create_order(merchant_actor, dto)

    return _make


@pytest.fixture
def assigned_order(make_order, admin, courier):
    """An order accepted by an admin and assigned to ``courier``."""
    service = OrderService()
    order = make_order()
    service.transition(order.pk, OrderStatus.ACCEPTED, admin)
    return service.transition(order.pk, OrderStatus.ASSIGNED_TO_DELIVERY, admin, delivery_man_id=courier.pk)


@pytest.fixture
def headers():
    return actor_headers
