import uuid
from decimal import Decimal

from django.db import models

from .domain import (
    AttemptStatus,
    DiscountType,
    OrderStatus,
    PaymentMethod,
    choices,
)

MONEY = {"max_digits": 12, "decimal_places": 2, "default": Decimal("0.00")}


class Merchant(models.Model):
    # external id from the authentication gateway
    user_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=200)
    balance = models.DecimalField(**MONEY)
    total_earned = models.DecimalField(**MONEY)
    base_fee = models.DecimalField(**MONEY)

    class Meta:
        db_table = "merchants"

    def __str__(self):
        return self.name


class DeliveryMan(models.Model):
    user_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=200)
    city = models.CharField(max_length=100)
    active = models.BooleanField(default=True)
    base_fee = models.DecimalField(**MONEY)
    total_deliveries = models.PositiveIntegerField(default=0)
    successful_deliveries = models.PositiveIntegerField(default=0)
    total_earned = models.DecimalField(**MONEY)
    # earned but not yet paid out
    balance = models.DecimalField(**MONEY)

    class Meta:
        db_table = "delivery_men"

    def __str__(self):
        return self.name


class Product(models.Model):
    merchant = models.ForeignKey(Merchant, on_delete=models.PROTECT, related_name="products")
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=64, blank=True, default="")
    price = models.DecimalField(**MONEY)
    stock_quantity = models.IntegerField(default=0)
    delivered_count = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "products"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock_quantity__gte=0), name="product_stock_non_negative"
            ),
        ]

    def __str__(self):
        return self.name


class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_code = models.CharField(max_length=32, unique=True, editable=False)

    status = models.CharField(
        max_length=32, choices=choices(OrderStatus), default=OrderStatus.PENDING.value
    )
    payment_method = models.CharField(max_length=16, choices=choices(PaymentMethod))

    total_price = models.DecimalField(**MONEY)
    original_total_price = models.DecimalField(**MONEY)
    total_discount = models.DecimalField(**MONEY)
    merchant_earning = models.DecimalField(**MONEY)
    discount_type = models.CharField(
        max_length=32, choices=choices(DiscountType), null=True, blank=True
    )
    discount_value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    city = models.CharField(max_length=100)
    customer_name = models.CharField(max_length=200, blank=True, default="")
    customer_phone = models.CharField(max_length=32, blank=True, default="")
    address = models.CharField(max_length=500, blank=True, default="")
    note = models.TextField(blank=True, default="")

    merchant = models.ForeignKey(Merchant, on_delete=models.PROTECT, related_name="orders")
    delivery_man = models.ForeignKey(
        DeliveryMan, on_delete=models.PROTECT, null=True, blank=True, related_name="orders"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    delivery_date = models.DateField(null=True, blank=True)
    previous_delivery_date = models.DateField(null=True, blank=True)
    delay_reason = models.TextField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["city", "status"]),
        ]

    def __str__(self):
        return self.order_code

    def delete(self, *args, **kwargs):
        raise RuntimeError("Orders are kept for audit and cannot be deleted")


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField()
    # effective unit price; zero for free items
    price = models.DecimalField(**MONEY)
    original_price = models.DecimalField(**MONEY)
    is_free = models.BooleanField(default=False)

    class Meta:
        db_table = "order_items"


class DeliveryAttempt(models.Model):
    """One audited event in an order's history.

    Rows are append-only: corrections are new rows, never edits.
    """

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="attempts")
    attempt_number = models.PositiveIntegerField()
    status = models.CharField(max_length=32, choices=choices(AttemptStatus))
    # null for administrative entries
    delivery_man = models.ForeignKey(
        DeliveryMan, on_delete=models.PROTECT, null=True, blank=True, related_name="attempts"
    )
    reason = models.TextField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    location = models.CharField(max_length=200, null=True, blank=True)
    attempted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "delivery_attempts"
        ordering = ["order_id", "attempt_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "attempt_number"], name="ux_attempt_number_per_order"
            ),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise RuntimeError("Delivery attempts are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise RuntimeError("Delivery attempts are immutable")


class DeliveryNote(models.Model):
    """Free-text note a delivery man leaves on an order.

    Public notes are shared with every delivery man who can see the order;
    private notes are only shown to their author.
    """

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="delivery_notes")
    delivery_man = models.ForeignKey(DeliveryMan, on_delete=models.PROTECT, related_name="notes")
    content = models.TextField()
    is_private = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "delivery_notes"
        ordering = ["-created_at", "-id"]


class MoneyTransfer(models.Model):
    """Administrative payout that reduces a merchant's or delivery man's balance."""

    merchant = models.ForeignKey(
        Merchant, on_delete=models.PROTECT, null=True, blank=True, related_name="money_transfers"
    )
    delivery_man = models.ForeignKey(
        DeliveryMan, on_delete=models.PROTECT, null=True, blank=True, related_name="money_transfers"
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reference = models.CharField(max_length=100, null=True, blank=True)
    note = models.TextField(null=True, blank=True)
    created_by = models.CharField(max_length=64)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "money_transfers"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(merchant__isnull=False, delivery_man__isnull=True)
                    | models.Q(merchant__isnull=True, delivery_man__isnull=False)
                ),
                name="money_transfer_single_recipient",
            ),
        ]


class OrderCodeSequence(models.Model):
    """Per-city counter row, locked while an order code is issued."""

    city_code = models.CharField(max_length=8, primary_key=True)
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "order_code_sequences"


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(Order, on_delete=models.PROTECT, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
