# storefront/api/deps.py
import hmac
import uuid
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Response
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.identity import Identity, SessionIdentity, UserIdentity
from storefront.services.cart_merge_service import CartMergeService
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.rate_limiter import RateLimiter
from storefront.services.reconciliation_service import ReconciliationService
from storefront.services.stripe_client import StripeClient
from storefront.utils.settings import ADMIN_API_TOKEN

SESSION_HEADER = "X-Session-Id"


def get_identity(
    response: Response,
    x_user_id: int | None = Header(None),
    x_session_id: str | None = Header(None),
) -> Identity:
    """
    Authenticated users come with X-User-Id from the auth gateway, guests
    with X-Session-Id. A guest without a token gets a fresh one back in the
    response header.
    """
    if x_user_id is not None:
        if x_user_id <= 0:
            raise HTTPException(status_code=400, detail={"code": "VALIDATION_ERROR", "message": "Invalid X-User-Id"})
        return UserIdentity(x_user_id)

    token = x_session_id.strip() if x_session_id and x_session_id.strip() else uuid.uuid4().hex
    response.headers[SESSION_HEADER] = token
    return SessionIdentity(token)


def get_notifier() -> NotificationService:
    return NotificationService()


def get_stripe_client() -> StripeClient:
    return StripeClient()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    return RateLimiter()


def get_admin_token() -> str:
    return ADMIN_API_TOKEN


def require_admin(
    x_admin_token: str | None = Header(None),
    admin_token: str = Depends(get_admin_token),
) -> None:
    #an empty configured token disables the admin API
    if not admin_token or not x_admin_token or not hmac.compare_digest(x_admin_token, admin_token):
        raise HTTPException(status_code=403, detail={"code": "FORBIDDEN", "message": "Admin token required"})


#service factories
def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


def get_merge_service(db: Session = Depends(get_db)) -> CartMergeService:
    return CartMergeService(db)


def get_checkout_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> CheckoutService:
    return CheckoutService(db, notifier=notifier, stripe_client=stripe_client)


def get_order_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> OrderService:
    return OrderService(db, notifier=notifier, stripe_client=stripe_client)


def get_reconciliation_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> ReconciliationService:
    return ReconciliationService(db, notifier=notifier)
