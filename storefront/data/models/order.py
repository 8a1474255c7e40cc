from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Integer, Numeric, String
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus


def _now():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True, index=True)

    user_id = Column(Integer, nullable=True, index=True)  # NULL for guest checkout
    contact_email = Column(String(255), nullable=True)

    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, length=20), nullable=False, default=PaymentStatus.PENDING
    )
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=20), nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping_cost = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BDT")
    coupon_code = Column(String(50), nullable=True)

    #address snapshots, never live references
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)

    stock_released = Column(Boolean, nullable=False, default=False)
    failed_payment_attempts = Column(Integer, nullable=False, default=0)
    cancellation_reason = Column(String(255), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    payment = relationship("PaymentModel", back_populates="order", uselist=False)
