# storefront/repos/coupon_repo.py
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from storefront.data.models.coupon import CouponModel
from storefront.data.models.order import OrderModel
from storefront.domain.enums import OrderStatus


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> CouponModel | None:
        return self.db.execute(
            select(CouponModel).where(func.upper(CouponModel.code) == code.strip().upper())
        ).scalar_one_or_none()

    def count_uses(self, code: str, user_id: int | None = None, email: str | None = None) -> int:
        """Non-cancelled orders that used the coupon, by user id or else by contact email."""
        query = select(func.count(OrderModel.id)).where(
            func.upper(OrderModel.coupon_code) == code.strip().upper(),
            OrderModel.status != OrderStatus.CANCELLED,
        )
        if user_id is not None:
            query = query.where(OrderModel.user_id == user_id)
        elif email:
            query = query.where(func.lower(OrderModel.contact_email) == email.strip().lower())
        else:
            return 0
        return self.db.execute(query).scalar_one()

    def increment_usage(self, coupon_id: int) -> bool:
        result = self.db.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(CouponModel.usage_limit.is_(None), CouponModel.used_count < CouponModel.usage_limit),
            )
            .values(used_count=CouponModel.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
