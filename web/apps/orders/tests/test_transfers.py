from decimal import Decimal

import pytest

from apps.orders import transfers
from apps.orders.errors import AuthorizationError, NotFoundError, ValidationError
from apps.orders.models import Merchant, MoneyTransfer


@pytest.mark.django_db
def test_transfer_decrements_merchant_balance(admin, merchant):
    Merchant.objects.filter(pk=merchant.pk).update(balance=Decimal("300.00"))
    transfer = transfers.record_transfer(admin, "120.50", merchant_id=merchant.pk, reference="BANK-77")
    merchant.refresh_from_db()
    assert merchant.balance == Decimal("179.50")
    assert transfer.created_by == "admin-1"
    assert transfer.amount == Decimal("120.50")


@pytest.mark.django_db
def test_transfer_to_delivery_man(admin, courier):
    transfers.record_transfer(admin, Decimal("15"), delivery_man_id=courier.pk)
    courier.refresh_from_db()
    assert courier.balance == Decimal("-15.00")


@pytest.mark.django_db
def test_only_admins_record_transfers(merchant_actor, merchant):
    with pytest.raises(AuthorizationError):
        transfers.record_transfer(merchant_actor, "10", merchant_id=merchant.pk)
    assert not MoneyTransfer.objects.exists()


@pytest.mark.django_db
@pytest.mark.parametrize("amount", ["0", "-5"])
def test_amount_must_be_positive(admin, merchant, amount):
    with pytest.raises(ValidationError) as e:
        transfers.record_transfer(admin, amount, merchant_id=merchant.pk)
    assert e.value.code == "INVALID_AMOUNT"


@pytest.mark.django_db
def test_exactly_one_recipient(admin, merchant, courier):
    with pytest.raises(ValidationError) as e:
        transfers.record_transfer(admin, "10", merchant_id=merchant.pk, delivery_man_id=courier.pk)
    assert e.value.code == "INVALID_RECIPIENT"
    with pytest.raises(ValidationError):
        transfers.record_transfer(admin, "10")


@pytest.mark.django_db
def test_unknown_recipient(admin):
    with pytest.raises(NotFoundError):
        transfers.record_transfer(admin, "10", merchant_id=424242)
