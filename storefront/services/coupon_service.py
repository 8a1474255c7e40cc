# storefront/services/coupon_service.py
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.data.models.coupon import CouponModel
from storefront.domain.enums import DiscountType
from storefront.domain.errors import (
    CouponExhausted,
    CouponExpired,
    CouponMinimumNotMet,
    CouponNotFound,
    CouponPerUserLimitReached,
)
from storefront.domain.money import ZERO, clamp, percent_of, to_money
from storefront.repos.coupon_repo import CouponRepo
from storefront.utils.clock import as_utc, utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CouponEvaluation:
    coupon_id: int
    coupon_code: str
    discount: Decimal


class CouponService:
    """
    Coupon evaluator.

    Validation order: existence/active, validity window, usage limit,
    per-customer limit, minimum order. The per-customer limit counts the
    customer's non-cancelled orders carrying the code, keyed by user id for
    accounts and by contact email for guests. Each failure is its own error
    class so the storefront can show a precise message. Evaluation never
    writes, redeeming is a separate conditional increment done inside the
    checkout transaction.
    """

    def __init__(self, db: Session):
        self.repo = CouponRepo(db)

    def evaluate(
        self,
        subtotal: Decimal,
        code: str,
        now: datetime | None = None,
        user_id: int | None = None,
        email: str | None = None,
    ) -> CouponEvaluation:
        coupon = self.repo.get_by_code(code) if code and code.strip() else None

        if coupon is None or not coupon.is_active:
            raise CouponNotFound(f"Coupon {code!r} does not exist")

        now = now or utcnow()
        starts_at = as_utc(coupon.starts_at)
        expires_at = as_utc(coupon.expires_at)

        if starts_at is not None and starts_at > now:
            raise CouponExpired(f"Coupon {coupon.code} is not active yet")
        if expires_at is not None and expires_at < now:
            raise CouponExpired(f"Coupon {coupon.code} has expired")

        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise CouponExhausted(f"Coupon {coupon.code} usage limit has been reached")

        if coupon.per_user_limit is not None:
            used = self.repo.count_uses(coupon.code, user_id=user_id, email=email)
            if used >= coupon.per_user_limit:
                raise CouponPerUserLimitReached(
                    f"Coupon {coupon.code} was already used the maximum number of times"
                )

        subtotal = to_money(subtotal)
        if coupon.min_order_amount is not None and subtotal < Decimal(coupon.min_order_amount):
            raise CouponMinimumNotMet(
                f"Minimum order amount for {coupon.code} is {to_money(coupon.min_order_amount)}"
            )

        discount = clamp(self._raw_discount(coupon, subtotal), ZERO, subtotal)

        return CouponEvaluation(coupon_id=coupon.id, coupon_code=coupon.code, discount=discount)

    @staticmethod
    def _raw_discount(coupon: CouponModel, subtotal: Decimal) -> Decimal:
        if coupon.discount_type == DiscountType.PERCENTAGE:
            discount = percent_of(subtotal, Decimal(coupon.value))
            if coupon.max_discount is not None:
                discount = min(discount, to_money(coupon.max_discount))
            return discount
        return to_money(coupon.value)

    def redeem(self, evaluation: CouponEvaluation) -> None:
        if not self.repo.increment_usage(evaluation.coupon_id):
            # the last use went to a concurrent checkout
            raise CouponExhausted(f"Coupon {evaluation.coupon_code} usage limit has been reached")
        logger.info(f"Coupon {evaluation.coupon_code} redeemed")
