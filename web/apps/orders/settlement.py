"""Merchant and delivery-man settlement on delivery.

Balances are only ever changed with ``F()`` expressions so settlement and
administrative money transfers compose additively on the same columns.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F

from .domain import PaymentMethod
from .models import DeliveryMan, Merchant, Order
from .pricing import money

logger = logging.getLogger(__name__)


def merchant_earning(total_price: Decimal, merchant_base_fee: Decimal, payment_method) -> Decimal:
    """Net amount attributable to the merchant for one order.

    COD orders earn the sale minus the platform fee. PREPAID orders were
    collected by the platform, so the merchant only owes the fee.
    """
    if PaymentMethod(payment_method) == PaymentMethod.COD:
        return money(total_price - merchant_base_fee)
    return money(-merchant_base_fee)


@transaction.atomic
def settle(order: Order) -> None:
    """Apply the delivered order to merchant and delivery-man ledgers.

    Must be called exactly once per order, from the transition into
    ``DELIVERED``.

    Args:
        order: Order being delivered, with ``merchant`` and ``delivery_man``
            loaded.
    """
    merchant = order.merchant
    total = money(order.total_price)
    # fixed when the order was priced; later fee changes do not apply
    earning = money(order.merchant_earning)

    Merchant.objects.filter(pk=merchant.pk).update(
        balance=F("balance") + earning,
        total_earned=F("total_earned") + total,
    )

    delivery_fee = None
    if order.delivery_man_id:
        delivery_fee = money(order.delivery_man.base_fee)
        DeliveryMan.objects.filter(pk=order.delivery_man_id).update(
            total_deliveries=F("total_deliveries") + 1,
            successful_deliveries=F("successful_deliveries") + 1,
            total_earned=F("total_earned") + delivery_fee,
            balance=F("balance") + delivery_fee,
        )

    logger.info(
        "order settled",
        extra={
            "order_code": order.order_code,
            "payment_method": order.payment_method,
            "merchant_delta": str(earning),
            "delivery_fee": str(delivery_fee) if delivery_fee is not None else None,
        },
    )
