"""Append-only ledger of delivery attempts.

Every status change and every delivery try is recorded here with a
per-order attempt number. Numbers start at 1 and have no gaps: the next
number is computed while holding a lock on the order row, in the same
transaction as the insert.
"""

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Max

from .domain import AttemptStatus
from .errors import ConflictError, NotFoundError
from .models import DeliveryAttempt, Order

logger = logging.getLogger(__name__)


@transaction.atomic
def append(
    order_id,
    status: AttemptStatus,
    actor_id: Optional[int] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    location: Optional[str] = None,
) -> DeliveryAttempt:
    """Record a new attempt for an order.

    Args:
        order_id: Order primary key.
        status: Outcome of the attempt.
        actor_id: ``DeliveryMan`` primary key, or None for administrative
            entries.
        reason: Optional short reason (refusal, delay...).
        notes: Optional free text.
        location: Optional GPS location string.

    Returns:
        DeliveryAttempt: the persisted entry.

    Raises:
        NotFoundError: If the order does not exist.
        ConflictError: If another writer took the same attempt number.
    """
    # Serializes writers for this order; re-entrant when the caller already holds it.
    if not list(Order.objects.select_for_update().filter(pk=order_id).values_list("pk", flat=True)):
        raise NotFoundError("ORDER_NOT_FOUND", "The order does not exist.")

    last = DeliveryAttempt.objects.filter(order_id=order_id).aggregate(n=Max("attempt_number"))["n"]
    number = (last or 0) + 1
    try:
        with transaction.atomic():
            attempt = DeliveryAttempt.objects.create(
                order_id=order_id,
                attempt_number=number,
                status=AttemptStatus(status).value,
                delivery_man_id=actor_id,
                reason=reason or None,
                notes=notes or None,
                location=location or None,
            )
    except IntegrityError as exc:
        raise ConflictError("DUPLICATE_ATTEMPT") from exc

    logger.info(
        "delivery attempt recorded",
        extra={"order_id": str(order_id), "attempt_number": number, "attempt_status": attempt.status},
    )
    return attempt


def history(order_id) -> list[DeliveryAttempt]:
    """Return the order's attempts in attempt-number order."""
    return list(
        DeliveryAttempt.objects.filter(order_id=order_id)
        .select_related("delivery_man")
        .order_by("attempt_number")
    )
