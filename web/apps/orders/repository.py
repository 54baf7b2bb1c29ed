"""Repository layer for orders.

Keeps ORM query details (visibility rules, prefetching, bulk item inserts)
out of the service and view layers.
"""

from typing import Iterable, Optional

from django.db import transaction
from django.db.models import Q, QuerySet

from .codes import city_aliases
from .domain import Actor, ActorRole, DiscountRule, OrderStatus, PricedItem, Totals
from .errors import NotFoundError
from .models import Merchant, Order, OrderItem
from .state_machine import delivery_man_for


def in_city(city: str) -> Q:
    """Match orders in ``city`` under any of its spellings, ignoring case."""
    q = Q()
    for alias in city_aliases(city):
        q |= Q(city__iexact=alias)
    return q


class OrderRepository:
    """Persists and loads ``Order`` rows for the service and views."""

    @transaction.atomic
    def create(
        self,
        *,
        merchant: Merchant,
        order_code: str,
        items: Iterable[PricedItem],
        totals: Totals,
        earning,
        payment_method: str,
        city: str,
        rule: Optional[DiscountRule] = None,
        customer_name: str = "",
        customer_phone: str = "",
        address: str = "",
        note: str = "",
    ) -> Order:
        """Insert an order and its line items.

        Args:
            merchant: Owning merchant.
            order_code: Code issued by ``codes.next_code``.
            items: Priced line items; free items are stored at price 0.
            totals: Output of ``pricing.compute_totals``.
            earning: Merchant earning computed at creation.

        Returns:
            Order: the persisted order.
        """
        order = Order.objects.create(
            order_code=order_code,
            status=OrderStatus.PENDING.value,
            payment_method=payment_method,
            total_price=totals.final_total,
            original_total_price=totals.original_total,
            total_discount=totals.discount_amount,
            merchant_earning=earning,
            discount_type=rule.type.value if rule else None,
            discount_value=rule.value if rule else None,
            city=city,
            customer_name=customer_name,
            customer_phone=customer_phone,
            address=address,
            note=note,
            merchant=merchant,
        )
        OrderItem.objects.bulk_create(
            OrderItem(
                order=order,
                product_id=it.product_id,
                quantity=it.quantity,
                price=0 if it.is_free else it.original_price,
                original_price=it.original_price,
                is_free=it.is_free,
            )
            for it in items
        )
        return order

    def visible_to(self, actor: Actor) -> QuerySet:
        """Orders ``actor`` may read.

        Admins see everything, merchants their own orders, delivery men the
        orders assigned to them plus accepted, unassigned orders in their
        city.
        """
        qs = Order.objects.select_related("merchant", "delivery_man")
        if actor.role == ActorRole.ADMIN:
            return qs
        if actor.role == ActorRole.MERCHANT:
            return qs.filter(merchant__user_id=actor.id)
        courier = delivery_man_for(actor)
        if courier is None:
            return qs.none()
        return qs.filter(
            Q(delivery_man=courier)
            | (Q(status=OrderStatus.ACCEPTED.value, delivery_man__isnull=True) & in_city(courier.city))
        )

    def list(self, actor: Actor, status: Optional[str] = None, city: Optional[str] = None) -> QuerySet:
        qs = self.visible_to(actor)
        if status:
            qs = qs.filter(status=status)
        if city:
            qs = qs.filter(in_city(city))
        return qs.order_by("-created_at")

    def get(self, actor: Actor, order_id) -> Order:
        """Load one visible order with items and attempts.

        Raises:
            NotFoundError: If the order does not exist or is not visible to
                ``actor``.
        """
        order = (
            self.visible_to(actor)
            .prefetch_related("items", "attempts")
            .filter(pk=order_id)
            .first()
        )
        if order is None:
            raise NotFoundError("ORDER_NOT_FOUND", "The order does not exist.")
        return order
