"""Human-readable, per-city order codes.

Codes look like ``OR-DA-000043``. The numeric suffix continues from the
highest code already issued for the city. Issuing holds a row lock on the
city's ``OrderCodeSequence`` so concurrent order creations for the same
city are serialized, while different cities never wait on each other.
"""

import logging
import re

from django.db import transaction

from .models import Order, OrderCodeSequence

logger = logging.getLogger(__name__)

DEFAULT_CITY_CODE = "DA"
CITY_CODES = {
    "dakhla": "DA",
    "الداخلة": "DA",
    "boujdour": "BO",
    "بوجدور": "BO",
    "laayoune": "LA",
    "العيون": "LA",
}
PREFIX = "OR"
DIGITS = 6


def city_code(city: str | None) -> str:
    """Map a city name to its two-letter code, defaulting to ``DA``."""
    if not city:
        return DEFAULT_CITY_CODE
    return CITY_CODES.get(city.strip().lower(), DEFAULT_CITY_CODE)


def city_aliases(city: str | None) -> set[str]:
    """Every known spelling of ``city``, including ``city`` itself."""
    name = (city or "").strip()
    code = CITY_CODES.get(name.lower())
    if code is None:
        return {name}
    return {alias for alias, c in CITY_CODES.items() if c == code} | {name}


def format_code(code: str, number: int) -> str:
    return f"{PREFIX}-{code}-{number:0{DIGITS}d}"


def _highest_issued(code: str) -> int:
    # fixed-width suffixes sort lexicographically in numeric order
    last = (
        Order.objects.filter(order_code__startswith=f"{PREFIX}-{code}-")
        .order_by("-order_code")
        .values_list("order_code", flat=True)
        .first()
    )
    m = re.match(rf"^{PREFIX}-{code}-(\d+)$", last or "")
    return int(m.group(1)) if m else 0


@transaction.atomic
def next_code(city: str | None) -> str:
    """Issue the next order code for ``city``.

    Must run inside the transaction that inserts the order so the lock is
    held until the new code is visible to other writers.

    Returns:
        str: e.g. ``OR-DA-000043``.
    """
    code = city_code(city)
    OrderCodeSequence.objects.get_or_create(city_code=code)
    seq = OrderCodeSequence.objects.select_for_update().get(city_code=code)
    number = max(seq.last_value, _highest_issued(code)) + 1
    seq.last_value = number
    seq.save(update_fields=["last_value"])
    issued = format_code(code, number)
    logger.debug("issued order code", extra={"order_code": issued, "city": city})
    return issued
