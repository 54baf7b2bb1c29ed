"""Delivery notes left on orders by delivery men.

A delivery man may read and write notes on an order assigned to them or on
any order in their city. Private notes are only listed for their author,
and only the author can delete a note.
"""

import logging
from typing import Optional

from django.db.models import Q

from .domain import Actor, ActorRole
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import DeliveryMan, DeliveryNote, Order
from .state_machine import delivery_man_for, same_city

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 1000


def _access(order: Order, actor: Actor) -> DeliveryMan:
    if actor.role != ActorRole.DELIVERY_MAN:
        raise AuthorizationError("ROLE_NOT_ALLOWED", "Only delivery men can use delivery notes.")
    courier = delivery_man_for(actor)
    if courier is None:
        raise AuthorizationError("UNKNOWN_DELIVERY_MAN", "No delivery man profile for this user.")
    if order.delivery_man_id != courier.pk and not same_city(courier.city, order.city):
        raise AuthorizationError("NOTE_ACCESS_DENIED", "This order is neither yours nor in your city.")
    return courier


def _order(order_id) -> Order:
    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        raise NotFoundError("ORDER_NOT_FOUND", "The order does not exist.")
    return order


def list_notes(order_id, actor: Actor) -> list[DeliveryNote]:
    """Notes on the order visible to ``actor``, newest first."""
    courier = _access(_order(order_id), actor)
    return list(
        DeliveryNote.objects.filter(order_id=order_id)
        .filter(Q(is_private=False) | Q(delivery_man=courier))
        .select_related("delivery_man")
    )


def add_note(order_id, actor: Actor, content: Optional[str], is_private: bool = False) -> DeliveryNote:
    """Attach a note to an order.

    Raises:
        ValidationError: ``NOTE_REQUIRED`` for blank content,
            ``NOTE_TOO_LONG`` above ``MAX_NOTE_LENGTH`` characters.
        AuthorizationError: If the actor cannot access the order.
        NotFoundError: If the order does not exist.
    """
    content = (content or "").strip()
    if not content:
        raise ValidationError("NOTE_REQUIRED", "Note content is required.")
    if len(content) > MAX_NOTE_LENGTH:
        raise ValidationError("NOTE_TOO_LONG", f"Notes are limited to {MAX_NOTE_LENGTH} characters.")

    order = _order(order_id)
    courier = _access(order, actor)
    note = DeliveryNote.objects.create(order=order, delivery_man=courier, content=content, is_private=is_private)
    logger.info(
        "delivery note added",
        extra={"order_code": order.order_code, "note_id": note.pk, "is_private": is_private},
    )
    return note


def delete_note(order_id, note_id: int, actor: Actor) -> None:
    note = DeliveryNote.objects.select_related("order").filter(pk=note_id).first()
    if note is None:
        raise NotFoundError("NOTE_NOT_FOUND", "The note does not exist.")
    if str(note.order_id) != str(order_id):
        raise ValidationError("NOTE_NOT_IN_ORDER", "The note belongs to another order.")
    courier = _access(note.order, actor)
    if note.delivery_man_id != courier.pk:
        raise AuthorizationError("NOT_NOTE_AUTHOR", "You can only delete your own notes.")
    note.delete()
    logger.info("delivery note deleted", extra={"order_code": note.order.order_code, "note_id": note_id})
