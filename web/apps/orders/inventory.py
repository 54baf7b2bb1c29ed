"""Stock reconciliation for delivered orders.

When an order is delivered, each non-free line takes its quantity out of
``Product.stock_quantity`` and adds it to ``Product.delivered_count``.
Either every line is applied or none is: availability is validated for all
products first, then each product is decremented with a conditional update
that refuses to go below zero. A refused update raises and aborts the
surrounding transaction.
"""

import logging
from collections import defaultdict
from typing import Iterable

from django.db import transaction
from django.db.models import F

from .domain import StockLine
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Product

logger = logging.getLogger(__name__)


def _required(items: Iterable[StockLine]) -> dict[int, int]:
    required: dict[int, int] = defaultdict(int)
    for it in items:
        if it.is_free:
            continue
        if it.quantity <= 0:
            raise ValidationError("INVALID_QUANTITY", "Quantities must be positive.")
        required[it.product_id] += it.quantity
    return dict(required)


def _validate(required: dict[int, int], products: dict[int, Product]) -> None:
    for product_id, quantity in required.items():
        product = products.get(product_id)
        if product is None:
            raise NotFoundError("PRODUCT_NOT_FOUND", f"Product {product_id} does not exist.")
        if product.stock_quantity < quantity:
            raise ValidationError(
                "INSUFFICIENT_STOCK",
                f"Not enough stock for '{product.name}': {product.stock_quantity} left, {quantity} needed.",
            )


def check_availability(items: Iterable[StockLine]) -> None:
    """Validate that every non-free line can be served from current stock.

    Raises:
        NotFoundError: If a product does not exist.
        ValidationError: ``INSUFFICIENT_STOCK`` for the first short product.
    """
    required = _required(items)
    products = Product.objects.in_bulk(list(required))
    _validate(required, products)


@transaction.atomic
def reconcile(items: Iterable[StockLine]) -> None:
    """Take delivered quantities out of stock, all or nothing.

    Products are locked in primary-key order so two deliveries touching the
    same products cannot deadlock.

    Raises:
        NotFoundError: If a product does not exist.
        ValidationError: ``INSUFFICIENT_STOCK`` when current stock is short.
        ConflictError: ``STOCK_CONFLICT`` when a concurrent writer took the
            stock between validation and decrement.
    """
    required = _required(items)
    if not required:
        return

    ids = sorted(required)
    products = {p.pk: p for p in Product.objects.select_for_update().filter(pk__in=ids).order_by("pk")}
    _validate(required, products)

    for product_id in ids:
        quantity = required[product_id]
        updated = Product.objects.filter(pk=product_id, stock_quantity__gte=quantity).update(
            stock_quantity=F("stock_quantity") - quantity,
            delivered_count=F("delivered_count") + quantity,
        )
        if updated != 1:
            raise ConflictError("STOCK_CONFLICT")

    logger.info("stock reconciled", extra={"products": {str(k): v for k, v in required.items()}})
