from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, Numeric, String

from storefront.data.database import Base
from storefront.domain.enums import DiscountType


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True)  # stored upper-case
    description = Column(String(255), nullable=True)

    discount_type = Column(Enum(DiscountType, native_enum=False, length=20), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    min_order_amount = Column(Numeric(12, 2), nullable=True)
    max_discount = Column(Numeric(12, 2), nullable=True)

    usage_limit = Column(Integer, nullable=True)
    per_user_limit = Column(Integer, nullable=True)  # orders per customer, NULL = unlimited
    used_count = Column(Integer, nullable=False, default=0)

    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
