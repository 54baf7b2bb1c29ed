"""Notification events emitted by order operations.

Each significant change produces one or more typed events carrying only
the fields that event needs. Events are handed to the notification port
after the surrounding transaction commits; delivery failures are logged and
never undo the change that caused them.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import ClassVar, Iterable, Optional

from django.db import transaction

from . import providers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderEvent:
    recipient_user_id: str
    order_id: str
    order_code: str

    type: ClassVar[str] = "ORDER_EVENT"
    title: ClassVar[str] = "Order update"

    def message(self) -> str:
        return f"Order #{self.order_code} was updated"


@dataclass(frozen=True)
class OrderAccepted(OrderEvent):
    type: ClassVar[str] = "ORDER_ACCEPTED"
    title: ClassVar[str] = "Order Accepted"

    def message(self) -> str:
        return f"Order #{self.order_code} has been accepted by the administration"


@dataclass(frozen=True)
class OrderAssigned(OrderEvent):
    delivery_man_name: str = ""

    type: ClassVar[str] = "ORDER_ASSIGNED"
    title: ClassVar[str] = "Order Assigned"

    def message(self) -> str:
        return f"Order #{self.order_code} has been assigned to delivery man {self.delivery_man_name}"


@dataclass(frozen=True)
class DeliveryAssigned(OrderEvent):
    delivery_date: Optional[date] = None

    type: ClassVar[str] = "ORDER_ASSIGNED"
    title: ClassVar[str] = "طلب جديد مسند إليك"

    def message(self) -> str:
        when = self.delivery_date.isoformat() if self.delivery_date else "-"
        return f"Order #{self.order_code} is assigned to you. Delivery date: {when}"


@dataclass(frozen=True)
class DeliveryDelayed(OrderEvent):
    attempt_number: int = 0
    attempt_status: str = ""
    reason: Optional[str] = None

    type: ClassVar[str] = "DELIVERY_DELAYED"
    title: ClassVar[str] = "Delivery Delayed"

    def message(self) -> str:
        text = f"Delivery attempt #{self.attempt_number} for order #{self.order_code}: {self.attempt_status}"
        return f"{text} - {self.reason}" if self.reason else text


@dataclass(frozen=True)
class OrderDelivered(OrderEvent):
    type: ClassVar[str] = "ORDER_DELIVERED"
    title: ClassVar[str] = "Order Delivered"

    def message(self) -> str:
        return f"Order #{self.order_code} has been delivered successfully"


@dataclass(frozen=True)
class DeliverySucceeded(OrderEvent):
    earning: Decimal = Decimal("0")

    type: ClassVar[str] = "DELIVERY_SUCCESS"
    title: ClassVar[str] = "Delivery Successful"

    def message(self) -> str:
        return f"Order #{self.order_code} delivered successfully. Earnings: {self.earning} MAD"


@dataclass(frozen=True)
class _ReasonEvent(OrderEvent):
    reason: Optional[str] = None
    verb: ClassVar[str] = "updated"

    def message(self) -> str:
        text = f"Order #{self.order_code} was {self.verb}"
        return f"{text}: {self.reason}" if self.reason else text


@dataclass(frozen=True)
class OrderRejected(_ReasonEvent):
    type: ClassVar[str] = "ORDER_REJECTED"
    title: ClassVar[str] = "Order Rejected"
    verb: ClassVar[str] = "rejected"


@dataclass(frozen=True)
class OrderCancelled(_ReasonEvent):
    type: ClassVar[str] = "ORDER_CANCELLED"
    title: ClassVar[str] = "Order Cancelled"
    verb: ClassVar[str] = "cancelled"


@dataclass(frozen=True)
class OrderReported(_ReasonEvent):
    type: ClassVar[str] = "ORDER_REPORTED"
    title: ClassVar[str] = "Delivery Problem Reported"
    verb: ClassVar[str] = "reported"


@dataclass(frozen=True)
class OrderRescheduled(OrderEvent):
    delivery_date: Optional[date] = None
    previous_delivery_date: Optional[date] = None

    type: ClassVar[str] = "ORDER_RESCHEDULED"
    title: ClassVar[str] = "Delivery Rescheduled"

    def message(self) -> str:
        new = self.delivery_date.isoformat() if self.delivery_date else "-"
        old = self.previous_delivery_date.isoformat() if self.previous_delivery_date else "-"
        return f"Order #{self.order_code} moved from {old} to {new}"


def send(events: Iterable[OrderEvent]) -> None:
    """Deliver events now through the configured notifier, best effort."""
    notifier = providers.get_notifier()
    for event in events:
        try:
            notifier.notify(
                user_id=event.recipient_user_id,
                title=event.title,
                message=event.message(),
                type=event.type,
                order_id=event.order_id,
            )
        except Exception:
            logger.exception(
                "notification failed",
                extra={"event_type": event.type, "order_code": event.order_code},
            )


def dispatch(events: Iterable[OrderEvent]) -> None:
    """Queue events to be sent once the current transaction commits."""
    events = [e for e in events if e.recipient_user_id]
    if events:
        transaction.on_commit(lambda: send(events))
