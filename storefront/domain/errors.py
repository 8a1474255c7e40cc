# storefront/domain/errors.py
"""
Domain errors of the settlement pipeline.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer answers with. Routers never see raw storage errors, those are
wrapped into ``Unavailable`` by ``storage_guard``.
"""


class StorefrontError(Exception):
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFound(StorefrontError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(StorefrontError):
    code = "VALIDATION_ERROR"
    status_code = 422


class Forbidden(StorefrontError):
    code = "FORBIDDEN"
    status_code = 403


class OutOfStock(StorefrontError):
    code = "OUT_OF_STOCK"
    status_code = 409


class StockChanged(StorefrontError):
    code = "STOCK_CHANGED"
    status_code = 409


class EmptyCart(StorefrontError):
    code = "EMPTY_CART"
    status_code = 400


class CouponError(StorefrontError):
    code = "COUPON_ERROR"
    status_code = 400


class CouponNotFound(CouponError):
    code = "COUPON_NOT_FOUND"
    status_code = 404


class CouponExpired(CouponError):
    code = "COUPON_EXPIRED"


class CouponExhausted(CouponError):
    code = "COUPON_EXHAUSTED"


class CouponMinimumNotMet(CouponError):
    code = "COUPON_MINIMUM_NOT_MET"


class CouponPerUserLimitReached(CouponError):
    code = "COUPON_PER_USER_LIMIT"


class PaymentMethodUnavailable(StorefrontError):
    code = "PAYMENT_METHOD_UNAVAILABLE"


class InvalidTransition(StorefrontError):
    code = "INVALID_TRANSITION"
    status_code = 409


class DuplicateCallback(StorefrontError):
    # no-op success, never surfaced over HTTP
    code = "DUPLICATE_CALLBACK"
    status_code = 200


class RateLimited(StorefrontError):
    code = "RATE_LIMITED"
    status_code = 429


class Unavailable(StorefrontError):
    code = "UNAVAILABLE"
    status_code = 503
