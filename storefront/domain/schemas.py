# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus


class ItemIn(BaseModel):
    """Add a product (optionally a variant) to the cart."""

    product_id: int = Field(..., gt=0)
    variant_id: int | None = Field(None, gt=0)
    quantity: int = Field(1, gt=0)


class QuantityIn(BaseModel):
    quantity: int = Field(..., ge=0, description="0 removes the line")


class CouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: int | None = None
    name: str | None = None
    variant_name: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    available: bool


class CartOut(BaseModel):
    cart_id: int | None = None
    user_id: int | None = None
    session_token: str | None = None
    items: List[CartItemOut]
    subtotal: Decimal
    discount: Decimal
    shipping_estimate: Decimal
    tax: Decimal
    total: Decimal
    item_count: int
    coupon_code: str | None = None
    coupon_error: str | None = None


class CheckoutIn(BaseModel):
    shipping_address_id: int = Field(..., gt=0)
    billing_address_id: int | None = Field(None, gt=0)
    payment_method: PaymentMethod
    coupon_code: str | None = Field(None, max_length=50)
    contact_email: EmailStr | None = None


class OrderItemOut(BaseModel):
    product_id: int
    variant_id: int | None = None
    product_name: str
    variant_name: str | None = None
    sku: str
    unit_price: Decimal
    quantity: int
    total_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    order_number: str
    user_id: int | None = None
    contact_email: str | None = None
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    subtotal: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    currency: str
    coupon_code: str | None = None
    shipping_address: dict
    billing_address: dict
    items: List[OrderItemOut]
    failed_payment_attempts: int = 0
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    redirect_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class CancelIn(BaseModel):
    reason: str | None = Field(None, max_length=255)


class OrderStatusIn(BaseModel):
    status: OrderStatus
    reason: str | None = Field(None, max_length=255)


class PaymentStatusIn(BaseModel):
    status: PaymentStatus


class WebhookAck(BaseModel):
    received: bool = True
    code: str | None = None
    duplicate: bool = False
    order_number: str | None = None
