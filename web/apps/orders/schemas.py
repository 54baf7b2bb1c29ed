"""Pydantic schemas for the orders API.

Request schemas validate and normalize incoming payloads before they reach
the service layer. Read schemas shape the JSON returned to clients; amounts
are serialized as strings to keep their exact decimal value.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .domain import AttemptStatus, DiscountRule, DiscountType, OrderStatus, PaymentMethod

PHONE_RE = re.compile(r"^\+?[0-9 ]{6,20}$")
# column limits: bigint primary keys, integer quantities
MAX_ID = 2**63 - 1
MAX_QUANTITY = 2**31 - 1


class OrderItemIn(BaseModel):
    """A requested line item.

    Attributes:
        product_id: Product to order; must belong to the ordering merchant.
        quantity: Positive number of units.
        is_free: Promotional give-away, excluded from totals and stock.
    """

    product_id: int = Field(gt=0, le=MAX_ID)
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    is_free: bool = False


class DiscountIn(BaseModel):
    """Order-level discount rule.

    ``value`` is a percentage, an amount or a final price depending on
    ``type``. ``product_id``, ``buy_quantity`` and ``get_quantity`` are used
    by ``BUY_X_GET_Y`` only.
    """

    type: DiscountType
    value: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    product_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID)
    buy_quantity: int = Field(default=0, ge=0)
    get_quantity: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_buy_x_get_y(self):
        if self.type == DiscountType.BUY_X_GET_Y:
            if self.product_id is None:
                raise ValueError("BUY_X_GET_Y needs product_id")
            if self.buy_quantity < 1 or self.get_quantity < 1:
                raise ValueError("BUY_X_GET_Y needs buy_quantity and get_quantity >= 1")
        return self

    def to_rule(self) -> DiscountRule:
        return DiscountRule(
            type=self.type,
            value=self.value,
            product_id=self.product_id,
            buy_quantity=self.buy_quantity,
            get_quantity=self.get_quantity,
        )


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        items: At least one line item.
        payment_method: ``COD`` or ``PREPAID``.
        city: Delivery city; decides the order code prefix.
        merchant_id: Only used when an admin creates an order on behalf of
            a merchant.
    """

    items: list[OrderItemIn] = Field(min_length=1)
    payment_method: PaymentMethod
    city: str = Field(min_length=2, max_length=100)
    customer_name: str = Field(default="", max_length=200)
    customer_phone: str = Field(default="", max_length=32)
    address: str = Field(default="", max_length=500)
    note: str = Field(default="", max_length=2000)
    discount: Optional[DiscountIn] = None
    merchant_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID)

    @field_validator("city")
    @classmethod
    def strip_city(cls, v: str) -> str:
        v2 = v.strip()
        if len(v2) < 2:
            raise ValueError("City is required")
        return v2

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        v2 = v.strip()
        if v2 and not PHONE_RE.match(v2):
            raise ValueError("Invalid phone number")
        return v2


class QuoteDTO(BaseModel):
    items: list[OrderItemIn] = Field(min_length=1)
    discount: Optional[DiscountIn] = None
    merchant_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID)


class TransitionDTO(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(default=None, max_length=2000)
    reason: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=200)
    delivery_man_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID)
    delivery_date: Optional[date] = None
    override_city: bool = False


class AttemptDTO(BaseModel):
    status: AttemptStatus
    reason: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=2000)
    location: Optional[str] = Field(default=None, max_length=200)


class DeliveryNoteDTO(BaseModel):
    content: str = Field(max_length=1000)
    is_private: bool = False

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("Note content is required")
        return v2


class MoneyTransferDTO(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    merchant_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID)
    delivery_man_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID)
    reference: Optional[str] = Field(default=None, max_length=100)
    note: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def single_recipient(self):
        if (self.merchant_id is None) == (self.delivery_man_id is None):
            raise ValueError("Exactly one of merchant_id or delivery_man_id is required")
        return self


# ---- Read schemas ----

class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    quantity: int
    price: Decimal
    original_price: Decimal
    is_free: bool


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempt_number: int
    status: AttemptStatus
    delivery_man_id: Optional[int] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = None
    attempted_at: datetime


class OrderReadDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_code: str
    status: OrderStatus
    payment_method: PaymentMethod
    city: str
    total_price: Decimal
    original_total_price: Decimal
    total_discount: Decimal
    merchant_earning: Decimal
    merchant_id: int
    delivery_man_id: Optional[int] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None
    delivery_date: Optional[date] = None
    previous_delivery_date: Optional[date] = None
    delay_reason: Optional[str] = None


class OrderDetailDTO(OrderReadDTO):
    customer_name: str = ""
    customer_phone: str = ""
    address: str = ""
    note: str = ""
    items: list[OrderItemOut] = []
    attempts: list[AttemptOut] = []

    @field_validator("items", "attempts", mode="before")
    @classmethod
    def load_related(cls, v):
        # related managers come in when validating from a model instance
        return list(v.all()) if hasattr(v, "all") else v


class TotalsOut(BaseModel):
    original_total: Decimal
    discount_amount: Decimal
    final_total: Decimal


class DeliveryNoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    delivery_man_id: int
    author: str = ""
    content: str
    is_private: bool
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def author_name(cls, data):
        # model instances carry the author through the delivery_man relation
        if hasattr(data, "delivery_man"):
            return {
                "id": data.pk,
                "delivery_man_id": data.delivery_man_id,
                "author": data.delivery_man.name,
                "content": data.content,
                "is_private": data.is_private,
                "created_at": data.created_at,
            }
        return data
