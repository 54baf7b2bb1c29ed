"""Administrative money transfers.

A transfer records a payout to a merchant or a delivery man and takes the
amount out of the recipient's balance in the same transaction.
"""

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import F

from .domain import Actor
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import DeliveryMan, Merchant, MoneyTransfer
from .pricing import money

logger = logging.getLogger(__name__)


@transaction.atomic
def record_transfer(
    actor: Actor,
    amount,
    merchant_id: Optional[int] = None,
    delivery_man_id: Optional[int] = None,
    reference: Optional[str] = None,
    note: Optional[str] = None,
) -> MoneyTransfer:
    """Record a payout and decrement the recipient's balance.

    Args:
        actor: Must be an admin.
        amount: Positive amount paid out.
        merchant_id: Recipient merchant; exclusive with ``delivery_man_id``.
        delivery_man_id: Recipient delivery man.
        reference: External payment reference.
        note: Free text.

    Returns:
        MoneyTransfer: the created record.

    Raises:
        AuthorizationError: If the actor is not an admin.
        ValidationError: For a non-positive amount or not exactly one
            recipient.
        NotFoundError: If the recipient does not exist.
    """
    if not actor.is_admin:
        raise AuthorizationError("ROLE_NOT_ALLOWED", "Only admins can record money transfers.")
    if (merchant_id is None) == (delivery_man_id is None):
        raise ValidationError("INVALID_RECIPIENT", "Choose exactly one merchant or delivery man.")
    amount = money(amount)
    if amount <= Decimal("0"):
        raise ValidationError("INVALID_AMOUNT", "The amount must be positive.")

    model, pk = (Merchant, merchant_id) if merchant_id is not None else (DeliveryMan, delivery_man_id)
    if model.objects.filter(pk=pk).update(balance=F("balance") - amount) != 1:
        raise NotFoundError("RECIPIENT_NOT_FOUND", "The recipient does not exist.")

    transfer = MoneyTransfer.objects.create(
        merchant_id=merchant_id,
        delivery_man_id=delivery_man_id,
        amount=amount,
        reference=reference or None,
        note=note or None,
        created_by=actor.id,
    )
    logger.info(
        "money transfer recorded",
        extra={
            "transfer_id": transfer.pk,
            "recipient": f"{model.__name__}:{pk}",
            "amount": str(amount),
        },
    )
    return transfer
