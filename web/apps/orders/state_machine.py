"""Order state machine.

This module is the single place where order status changes. The
transition table below lists, for each legal ``(current, target)`` pair,
the roles allowed to perform it. ``transition`` checks the table and the
actor's relationship to the order, then performs the status write and its
side effects in one database transaction:

- every transition appends exactly one delivery attempt;
- entering ``ASSIGNED_TO_DELIVERY`` claims the order for a delivery man
  with a conditional update;
- entering ``DELIVERED`` reconciles stock, settles balances and stamps
  ``delivered_at``.

Any error raised along the way rolls back the whole unit of work,
including the status write.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from . import attempts, inventory, settlement
from .codes import CITY_CODES
from .domain import (
    TERMINAL_STATUSES,
    Actor,
    ActorRole,
    AttemptStatus,
    OrderStatus,
    StockLine,
)
from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .models import DeliveryMan, Order
from .notifications import (
    DeliveryAssigned,
    DeliverySucceeded,
    OrderAccepted,
    OrderAssigned,
    OrderCancelled,
    OrderDelivered,
    OrderRejected,
    OrderReported,
    OrderRescheduled,
    dispatch,
)

logger = logging.getLogger(__name__)

S = OrderStatus
ADMIN = frozenset({ActorRole.ADMIN})
ADMIN_OR_COURIER = frozenset({ActorRole.ADMIN, ActorRole.DELIVERY_MAN})

# (current, target) -> roles allowed to perform it
TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], frozenset[ActorRole]] = {
    (S.PENDING, S.ACCEPTED): ADMIN,
    (S.PENDING, S.REJECTED): ADMIN,
    (S.PENDING, S.CANCELLED): frozenset({ActorRole.ADMIN, ActorRole.MERCHANT}),
    (S.ACCEPTED, S.ASSIGNED_TO_DELIVERY): ADMIN_OR_COURIER,
    (S.ACCEPTED, S.CANCELLED): ADMIN,
    (S.ASSIGNED_TO_DELIVERY, S.DELIVERED): ADMIN_OR_COURIER,
    (S.ASSIGNED_TO_DELIVERY, S.REJECTED): ADMIN_OR_COURIER,
    (S.ASSIGNED_TO_DELIVERY, S.CANCELLED): ADMIN_OR_COURIER,
    (S.ASSIGNED_TO_DELIVERY, S.REPORTED): ADMIN_OR_COURIER,
    (S.REPORTED, S.ASSIGNED_TO_DELIVERY): ADMIN,
    (S.REPORTED, S.CANCELLED): ADMIN,
}

# Attempt outcome and default note recorded when entering a status.
ATTEMPT_FOR_STATUS: dict[OrderStatus, tuple[AttemptStatus, str]] = {
    S.ACCEPTED: (AttemptStatus.ATTEMPTED, "قبول الطلب من قبل الإدارة"),
    S.ASSIGNED_TO_DELIVERY: (AttemptStatus.ATTEMPTED, "Order assigned for delivery"),
    S.DELIVERED: (AttemptStatus.SUCCESSFUL, "Order delivered successfully to customer"),
    S.REJECTED: (AttemptStatus.REFUSED, "Order rejected"),
    S.CANCELLED: (AttemptStatus.REFUSED, "Order cancelled"),
    S.REPORTED: (AttemptStatus.OTHER, "Delivery problem reported"),
}


def can_transition(current, target) -> bool:
    return (OrderStatus(current), OrderStatus(target)) in TRANSITIONS


def allowed_successors(current) -> set[OrderStatus]:
    current = OrderStatus(current)
    return {target for (source, target) in TRANSITIONS if source == current}


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def same_city(a: str, b: str) -> bool:
    a, b = (a or "").strip().lower(), (b or "").strip().lower()
    if a == b:
        return True
    return a in CITY_CODES and b in CITY_CODES and CITY_CODES[a] == CITY_CODES[b]


def delivery_man_for(actor: Actor) -> Optional[DeliveryMan]:
    if actor.role != ActorRole.DELIVERY_MAN:
        return None
    return DeliveryMan.objects.filter(user_id=actor.id).first()


def lock_order(order_id) -> Order:
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except (Order.DoesNotExist, DjangoValidationError, ValueError, TypeError) as exc:
        raise NotFoundError("ORDER_NOT_FOUND", "The order does not exist.") from exc


def authorize(order: Order, current: OrderStatus, target: OrderStatus, actor: Actor) -> Optional[DeliveryMan]:
    """Check that ``actor`` may move ``order`` from ``current`` to ``target``.

    Returns:
        The acting ``DeliveryMan`` when the actor is one, else None.

    Raises:
        ValidationError: ``ILLEGAL_TRANSITION`` when the pair is not in the
            transition table (terminal states have no successors).
        AuthorizationError: When the role is not allowed or the actor has
            no relationship with the order.
    """
    roles = TRANSITIONS.get((current, target))
    if roles is None:
        raise ValidationError(
            "ILLEGAL_TRANSITION",
            f"An order in status {current.value} cannot move to {target.value}.",
        )
    if actor.role not in roles:
        raise AuthorizationError("ROLE_NOT_ALLOWED", f"A {actor.role.value} cannot move an order to {target.value}.")

    if actor.role == ActorRole.MERCHANT and order.merchant.user_id != actor.id:
        raise AuthorizationError("NOT_ORDER_OWNER", "This order belongs to another merchant.")

    courier = None
    if actor.role == ActorRole.DELIVERY_MAN:
        courier = delivery_man_for(actor)
        if courier is None:
            raise AuthorizationError("UNKNOWN_DELIVERY_MAN", "No delivery man profile for this user.")
        # self-accept is the only transition allowed on an order assigned to someone else or no one
        if current != S.ACCEPTED and order.delivery_man_id != courier.pk:
            raise AuthorizationError("NOT_ASSIGNED", "You are not assigned to this order.")
    return courier


def _assignee(
    order: Order,
    actor: Actor,
    courier: Optional[DeliveryMan],
    delivery_man_id: Optional[int],
    override_city: bool,
) -> DeliveryMan:
    if courier is not None:
        if delivery_man_id is not None and int(delivery_man_id) != courier.pk:
            raise AuthorizationError("SELF_ASSIGN_ONLY", "Delivery men can only accept orders for themselves.")
        assignee = courier
    else:
        if delivery_man_id is None:
            raise ValidationError("DELIVERY_MAN_REQUIRED", "Choose a delivery man to assign.")
        assignee = DeliveryMan.objects.filter(pk=delivery_man_id).first()
        if assignee is None:
            raise NotFoundError("DELIVERY_MAN_NOT_FOUND", "The delivery man does not exist.")

    if not assignee.active:
        raise ValidationError("DELIVERY_MAN_INACTIVE", "The delivery man is not active.")
    if order.delivery_man_id and order.delivery_man_id != assignee.pk:
        raise ConflictError("ORDER_ALREADY_ASSIGNED", "Order already assigned to another delivery man.")

    if not same_city(assignee.city, order.city):
        if actor.is_admin and override_city:
            logger.warning(
                "cross-city assignment",
                extra={"order_code": order.order_code, "order_city": order.city, "delivery_man_city": assignee.city},
            )
        elif actor.is_admin:
            raise ValidationError(
                "CITY_MISMATCH",
                f"The delivery man works in {assignee.city}, the order is in {order.city}.",
            )
        else:
            raise AuthorizationError(
                "CITY_MISMATCH",
                f"Cannot accept orders from {order.city}. You are assigned to {assignee.city}.",
            )
    return assignee


def _compose_notes(default: str, notes: Optional[str]) -> str:
    return f"{default} | {notes}" if notes else default


@transaction.atomic
def transition(
    order_id,
    target,
    actor: Actor,
    *,
    notes: Optional[str] = None,
    reason: Optional[str] = None,
    location: Optional[str] = None,
    delivery_man_id: Optional[int] = None,
    delivery_date: Optional[date] = None,
    override_city: bool = False,
) -> Order:
    """Move an order to ``target`` on behalf of ``actor``.

    Args:
        order_id: Order primary key.
        target: Requested ``OrderStatus``.
        actor: Authenticated caller.
        notes: Free text appended to the attempt record.
        reason: Reason for a refusal, cancellation, report or reschedule.
        location: Where the action took place, if known.
        delivery_man_id: Delivery man to assign (admin assignment).
        delivery_date: Planned delivery date when assigning; required when
            rescheduling a reported order.
        override_city: Let an admin assign a delivery man from another city.

    Returns:
        Order: the order reloaded after the change.

    Raises:
        ValidationError, AuthorizationError, NotFoundError, ConflictError.
    """
    try:
        target = OrderStatus(target)
    except ValueError as exc:
        raise ValidationError("INVALID_STATUS", f"Unknown status '{target}'.") from exc

    order = lock_order(order_id)
    current = OrderStatus(order.status)

    if current == target == S.ASSIGNED_TO_DELIVERY and order.delivery_man_id:
        if actor.role not in TRANSITIONS[(S.ACCEPTED, S.ASSIGNED_TO_DELIVERY)]:
            raise AuthorizationError("ROLE_NOT_ALLOWED", f"A {actor.role.value} cannot assign orders.")
        # the loser of two concurrent accepts lands here once the winner commits
        raise ConflictError("ORDER_ALREADY_ASSIGNED", "Order already assigned to another delivery man.")

    courier = authorize(order, current, target, actor)

    now = timezone.now()
    updates = {"status": target.value, "updated_at": now}
    guard = Q(pk=order.pk, status=current.value)
    attempt_actor = courier.pk if courier else None
    merchant_user = order.merchant.user_id
    events = []

    if target == S.ASSIGNED_TO_DELIVERY and current == S.REPORTED:
        if delivery_date is None:
            raise ValidationError("DELIVERY_DATE_REQUIRED", "A new delivery date is required to reschedule.")
        updates.update(
            previous_delivery_date=order.delivery_date,
            delivery_date=delivery_date,
            delay_reason=reason or order.delay_reason,
        )
        attempt_actor = order.delivery_man_id
        events.append(
            OrderRescheduled(
                merchant_user, str(order.pk), order.order_code,
                delivery_date=delivery_date, previous_delivery_date=order.delivery_date,
            )
        )
        if order.delivery_man_id:
            events.append(
                DeliveryAssigned(order.delivery_man.user_id, str(order.pk), order.order_code, delivery_date=delivery_date)
            )
    elif target == S.ASSIGNED_TO_DELIVERY:
        assignee = _assignee(order, actor, courier, delivery_man_id, override_city)
        planned = delivery_date or (timezone.localdate() + timedelta(days=1))
        updates.update(delivery_man_id=assignee.pk, delivery_date=planned)
        guard &= Q(delivery_man__isnull=True) | Q(delivery_man=assignee.pk)
        attempt_actor = assignee.pk
        events.append(OrderAssigned(merchant_user, str(order.pk), order.order_code, delivery_man_name=assignee.name))
        events.append(DeliveryAssigned(assignee.user_id, str(order.pk), order.order_code, delivery_date=planned))
    elif target == S.DELIVERED:
        inventory.reconcile(
            StockLine(product_id=it.product_id, quantity=it.quantity, is_free=it.is_free)
            for it in order.items.all()
        )
        settlement.settle(order)
        updates["delivered_at"] = now
        events.append(OrderDelivered(merchant_user, str(order.pk), order.order_code))
        if order.delivery_man_id:
            dm = order.delivery_man
            events.append(DeliverySucceeded(dm.user_id, str(order.pk), order.order_code, earning=dm.base_fee))
    elif target == S.REPORTED:
        updates["delay_reason"] = reason
        events.append(OrderReported(merchant_user, str(order.pk), order.order_code, reason=reason))
    elif target == S.ACCEPTED:
        events.append(OrderAccepted(merchant_user, str(order.pk), order.order_code))
    elif target == S.REJECTED:
        events.append(OrderRejected(merchant_user, str(order.pk), order.order_code, reason=reason))
    elif target == S.CANCELLED:
        events.append(OrderCancelled(merchant_user, str(order.pk), order.order_code, reason=reason))

    if Order.objects.filter(guard).update(**updates) != 1:
        if target == S.ASSIGNED_TO_DELIVERY:
            raise ConflictError("ORDER_ALREADY_ASSIGNED", "Order already assigned to another delivery man.")
        raise ConflictError("ORDER_STATUS_CHANGED")

    outcome, default_note = ATTEMPT_FOR_STATUS[target]
    attempts.append(
        order.pk,
        outcome,
        actor_id=attempt_actor,
        reason=reason,
        notes=_compose_notes(default_note, notes),
        location=location,
    )

    logger.info(
        "order transitioned",
        extra={
            "order_code": order.order_code,
            "from_status": current.value,
            "to_status": target.value,
        },
    )
    dispatch(events)
    order.refresh_from_db()
    return order
