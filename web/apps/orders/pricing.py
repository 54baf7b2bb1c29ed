"""Order pricing.

``compute_totals`` turns the selected line items and an optional discount
rule into the three amounts stored on an order. It is a pure function: the
order service runs it right before persisting, and the stored values are
what the rest of the system reads.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from .domain import DiscountRule, DiscountType, PricedItem, Totals
from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Coerce ``value`` to a Decimal rounded to cents."""
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("INVALID_AMOUNT", f"'{value}' is not a valid amount.") from exc


def original_total(items: Iterable[PricedItem]) -> Decimal:
    return money(sum((it.original_price * it.quantity for it in items if not it.is_free), ZERO))


def free_units(quantity: int, buy_quantity: int, get_quantity: int) -> int:
    """Units given away by a buy-X-get-Y rule for ``quantity`` ordered units."""
    return (quantity // (buy_quantity + get_quantity)) * get_quantity


def _invalid(message: str) -> ValidationError:
    return ValidationError("INVALID_DISCOUNT", message)


def _buy_x_get_y(items: list[PricedItem], rule: DiscountRule) -> Decimal:
    if rule.buy_quantity < 1 or rule.get_quantity < 1:
        raise _invalid("Buy and get quantities must both be at least 1.")
    lines = [it for it in items if it.product_id == rule.product_id and not it.is_free]
    if not lines:
        raise _invalid("The discounted product is not part of the order.")
    quantity = sum(it.quantity for it in lines)
    given = free_units(quantity, rule.buy_quantity, rule.get_quantity)
    return money(given * lines[0].original_price)


def discount_amount(items: list[PricedItem], rule: DiscountRule, base: Decimal) -> Decimal:
    value = money(rule.value)
    if rule.type == DiscountType.PERCENTAGE:
        if value < 0 or value > 100:
            raise _invalid("A percentage discount must be between 0 and 100.")
        return money(base * value / 100)
    if rule.type == DiscountType.FIXED_AMOUNT:
        if value < 0:
            raise _invalid("A fixed discount cannot be negative.")
        return min(value, base)
    if rule.type == DiscountType.BUY_X_GET_Y:
        return _buy_x_get_y(items, rule)
    if rule.type == DiscountType.CUSTOM_PRICE:
        if value < 0 or value > base:
            raise _invalid("A custom price must be between 0 and the original total.")
        return money(base - value)
    raise _invalid(f"Unknown discount type '{rule.type}'.")


def compute_totals(items: Iterable[PricedItem], rule: Optional[DiscountRule] = None) -> Totals:
    """Compute original total, discount amount and final total.

    Args:
        items: Line items; free items are ignored.
        rule: Optional order-level discount.

    Returns:
        Totals: amounts rounded to cents. ``final_total`` is never negative.

    Raises:
        ValidationError: ``INVALID_DISCOUNT`` when the rule's values are
            out of range or refer to a product not in the order.
    """
    items = list(items)
    base = original_total(items)
    discount = discount_amount(items, rule, base) if rule else ZERO
    final = max(ZERO, base - discount)
    return Totals(original_total=base, discount_amount=discount, final_total=money(final))
