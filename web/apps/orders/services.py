"""Order service orchestrating creation, acceptance and delivery tries.

``OrderService`` is the entry point the views use. Status changes are
delegated to the state machine; this module adds the operations around it:
pricing and persisting a new order, the delivery man's self-accept shortcut
and logging a delivery try that leaves the status unchanged.
"""

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from . import attempts, codes, inventory, settlement, state_machine
from .domain import (
    NON_TRANSITION_ATTEMPTS,
    Actor,
    ActorRole,
    AttemptStatus,
    OrderStatus,
    PricedItem,
    StockLine,
    Totals,
)
from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .models import DeliveryAttempt, Merchant, Order, Product
from .notifications import DeliveryDelayed, dispatch
from .pricing import compute_totals
from .repository import OrderRepository
from .schemas import CreateOrderDTO, OrderItemIn, QuoteDTO

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPT_NOTES = {
    AttemptStatus.ATTEMPTED: "Delivery attempted",
    AttemptStatus.FAILED: "Delivery attempt failed",
    AttemptStatus.CUSTOMER_NOT_AVAILABLE: "Delivery delayed - customer not available",
    AttemptStatus.WRONG_ADDRESS: "Delivery delayed - wrong address",
    AttemptStatus.OTHER: "Delivery delayed",
}


class OrderService:
    """Application service for orders.

    Args:
        repository: Order persistence; defaults to ``OrderRepository``.
    """

    def __init__(self, repository: Optional[OrderRepository] = None):
        self.repository = repository or OrderRepository()

    # ---- creation ----

    def _merchant_for(self, actor: Actor, merchant_id: Optional[int]) -> Merchant:
        if actor.role == ActorRole.MERCHANT:
            merchant = Merchant.objects.filter(user_id=actor.id).first()
            if merchant is None:
                raise AuthorizationError("UNKNOWN_MERCHANT", "No merchant profile for this user.")
            return merchant
        if actor.role == ActorRole.ADMIN:
            if merchant_id is None:
                raise ValidationError("MERCHANT_REQUIRED", "Choose the merchant this order belongs to.")
            merchant = Merchant.objects.filter(pk=merchant_id).first()
            if merchant is None:
                raise NotFoundError("MERCHANT_NOT_FOUND", "The merchant does not exist.")
            return merchant
        raise AuthorizationError("ROLE_NOT_ALLOWED", "Only merchants and admins can create orders.")

    def _price(self, merchant: Merchant, lines: list[OrderItemIn], rule) -> tuple[list[PricedItem], Totals]:
        ids = {line.product_id for line in lines}
        products = Product.objects.in_bulk(list(ids))
        for product_id in sorted(ids):
            product = products.get(product_id)
            if product is None:
                raise NotFoundError("PRODUCT_NOT_FOUND", f"Product {product_id} does not exist.")
            if product.merchant_id != merchant.pk:
                raise ValidationError("PRODUCT_NOT_OWNED", f"Product {product_id} belongs to another merchant.")

        inventory.check_availability(
            StockLine(product_id=line.product_id, quantity=line.quantity, is_free=line.is_free)
            for line in lines
        )
        items = [
            PricedItem(
                product_id=line.product_id,
                quantity=line.quantity,
                original_price=products[line.product_id].price,
                is_free=line.is_free,
            )
            for line in lines
        ]
        return items, compute_totals(items, rule)

    def quote(self, actor: Actor, dto: QuoteDTO) -> Totals:
        """Price a draft order without saving anything."""
        merchant = self._merchant_for(actor, dto.merchant_id)
        rule = dto.discount.to_rule() if dto.discount else None
        _, totals = self._price(merchant, dto.items, rule)
        return totals

    @transaction.atomic
    def create_order(self, actor: Actor, dto: CreateOrderDTO) -> Order:
        """Create a ``PENDING`` order for a merchant.

        Stock is checked but not taken; it leaves stock on delivery.

        Args:
            actor: A merchant, or an admin acting for ``dto.merchant_id``.
            dto: Validated order payload.

        Returns:
            Order: the persisted order with its code and totals.

        Raises:
            AuthorizationError: For delivery men or unknown merchants.
            NotFoundError: If the merchant or a product does not exist.
            ValidationError: For foreign products, short stock or an
                invalid discount.
            ConflictError: If the order code was taken concurrently.
        """
        merchant = self._merchant_for(actor, dto.merchant_id)
        rule = dto.discount.to_rule() if dto.discount else None
        items, totals = self._price(merchant, dto.items, rule)
        earning = settlement.merchant_earning(totals.final_total, merchant.base_fee, dto.payment_method)

        try:
            with transaction.atomic():
                order = self.repository.create(
                    merchant=merchant,
                    order_code=codes.next_code(dto.city),
                    items=items,
                    totals=totals,
                    earning=earning,
                    payment_method=dto.payment_method.value,
                    city=dto.city,
                    rule=rule,
                    customer_name=dto.customer_name,
                    customer_phone=dto.customer_phone,
                    address=dto.address,
                    note=dto.note,
                )
        except IntegrityError as exc:
            raise ConflictError("ORDER_CODE_TAKEN") from exc

        logger.info(
            "order created",
            extra={
                "order_code": order.order_code,
                "merchant_id": merchant.pk,
                "total_price": str(order.total_price),
                "payment_method": order.payment_method,
            },
        )
        return order

    # ---- lifecycle ----

    def transition(self, order_id, target, actor: Actor, **kwargs) -> Order:
        return state_machine.transition(order_id, target, actor, **kwargs)

    def accept_order(self, order_id, actor: Actor, location: Optional[str] = None) -> Order:
        """Let a delivery man take an accepted order in their city."""
        if actor.role != ActorRole.DELIVERY_MAN:
            raise AuthorizationError("ROLE_NOT_ALLOWED", "Only delivery men can accept orders.")
        return state_machine.transition(
            order_id,
            OrderStatus.ASSIGNED_TO_DELIVERY,
            actor,
            notes="Order accepted by delivery man",
            location=location,
        )

    @transaction.atomic
    def record_attempt(
        self,
        order_id,
        actor: Actor,
        status,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        location: Optional[str] = None,
    ) -> DeliveryAttempt:
        """Log a delivery try that does not change the order status.

        Raises:
            ValidationError: For an outcome that implies a status change, or
                an order that is not out for delivery.
            AuthorizationError: If the actor is not an admin or the
                assigned delivery man.
            NotFoundError: If the order does not exist.
        """
        try:
            outcome = AttemptStatus(status)
        except ValueError as exc:
            raise ValidationError("INVALID_ATTEMPT_STATUS", f"Unknown attempt status '{status}'.") from exc
        if outcome not in NON_TRANSITION_ATTEMPTS:
            raise ValidationError(
                "ATTEMPT_STATUS_NOT_ALLOWED",
                f"{outcome.value} changes the order status; use a transition instead.",
            )

        order = state_machine.lock_order(order_id)
        if order.status != OrderStatus.ASSIGNED_TO_DELIVERY.value:
            raise ValidationError("ORDER_NOT_OUT_FOR_DELIVERY", "Only orders out for delivery take attempts.")

        if actor.role == ActorRole.DELIVERY_MAN:
            courier = state_machine.delivery_man_for(actor)
            if courier is None or order.delivery_man_id != courier.pk:
                raise AuthorizationError("NOT_ASSIGNED", "You are not assigned to this order.")
        elif not actor.is_admin:
            raise AuthorizationError("ROLE_NOT_ALLOWED", "Only delivery men and admins record attempts.")

        default = DEFAULT_ATTEMPT_NOTES[outcome]
        attempt = attempts.append(
            order.pk,
            outcome,
            actor_id=order.delivery_man_id,
            reason=reason,
            notes=f"{default}: {reason}" if reason and not notes else (notes or default),
            location=location,
        )
        Order.objects.filter(pk=order.pk).update(updated_at=timezone.now())

        dispatch([
            DeliveryDelayed(
                order.merchant.user_id,
                str(order.pk),
                order.order_code,
                attempt_number=attempt.attempt_number,
                attempt_status=outcome.value,
                reason=reason,
            )
        ])
        return attempt
