"""Domain types and ports for delivery orders.

This module holds the closed enumerations used across the orders app
(order status, payment method, attempt outcome, actor role, discount
type), small frozen dataclasses passed between the pricing, inventory and
state machine layers, and the protocol describing the notification
collaborator. Nothing here touches the database.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle states of an order.

    ``DELIVERED``, ``REJECTED`` and ``CANCELLED`` are terminal. ``REPORTED``
    is a side-track that an admin resolves back into
    ``ASSIGNED_TO_DELIVERY`` with a new delivery date.
    """

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    ASSIGNED_TO_DELIVERY = "ASSIGNED_TO_DELIVERY"
    DELIVERED = "DELIVERED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    REPORTED = "REPORTED"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.REJECTED, OrderStatus.CANCELLED}
)


class PaymentMethod(str, Enum):
    COD = "COD"
    PREPAID = "PREPAID"


class AttemptStatus(str, Enum):
    """Outcome recorded on a delivery attempt."""

    ATTEMPTED = "ATTEMPTED"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    REFUSED = "REFUSED"
    CUSTOMER_NOT_AVAILABLE = "CUSTOMER_NOT_AVAILABLE"
    WRONG_ADDRESS = "WRONG_ADDRESS"
    OTHER = "OTHER"


# Outcomes a delivery man may log without changing the order status.
NON_TRANSITION_ATTEMPTS = frozenset(
    {
        AttemptStatus.ATTEMPTED,
        AttemptStatus.FAILED,
        AttemptStatus.CUSTOMER_NOT_AVAILABLE,
        AttemptStatus.WRONG_ADDRESS,
        AttemptStatus.OTHER,
    }
)


class ActorRole(str, Enum):
    ADMIN = "ADMIN"
    MERCHANT = "MERCHANT"
    DELIVERY_MAN = "DELIVERY_MAN"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    BUY_X_GET_Y = "BUY_X_GET_Y"
    CUSTOM_PRICE = "CUSTOM_PRICE"


def choices(enum_cls) -> list[tuple[str, str]]:
    """Return Django ``choices`` for a str Enum."""
    return [(member.value, member.value) for member in enum_cls]


# ---- Value objects ----
@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller.

    Attributes:
        id: External user identifier issued by the authentication gateway.
        role: The caller's role.
    """

    id: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


@dataclass(frozen=True)
class PricedItem:
    """A line item as seen by the pricing engine.

    Attributes:
        product_id: Product the line refers to.
        quantity: Units ordered.
        original_price: Catalogue unit price before any discount.
        is_free: Promotional give-away, excluded from totals.
    """

    product_id: int
    quantity: int
    original_price: Decimal
    is_free: bool = False


@dataclass(frozen=True)
class DiscountRule:
    """Order-level discount.

    ``value`` is a percentage for ``PERCENTAGE``, an amount for
    ``FIXED_AMOUNT`` and the requested final total for ``CUSTOM_PRICE``.
    ``product_id``, ``buy_quantity`` and ``get_quantity`` are only used by
    ``BUY_X_GET_Y``.
    """

    type: DiscountType
    value: Decimal = Decimal("0")
    product_id: Optional[int] = None
    buy_quantity: int = 0
    get_quantity: int = 0


@dataclass(frozen=True)
class Totals:
    original_total: Decimal
    discount_amount: Decimal
    final_total: Decimal


@dataclass(frozen=True)
class StockLine:
    """Quantity of a product to take out of stock on delivery."""

    product_id: int
    quantity: int
    is_free: bool = False


# ---- Ports (DIP) ----
class NotificationPort(Protocol):
    """Port describing the notification emitter collaborator.

    Implementers deliver a message to a user. Delivery is best effort: the
    caller never rolls back its own work when this fails.
    """

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type: str,
        order_id: Optional[str] = None,
    ) -> None:
        """Send a notification.

        Args:
            user_id: External id of the recipient.
            title: Short title.
            message: Human-readable body.
            type: Machine-readable event type, e.g. ``ORDER_DELIVERED``.
            order_id: Related order, if any.

        Raises:
            NotImplementedError: If the method is not implemented by the
                concrete class.
        """
        raise NotImplementedError()
