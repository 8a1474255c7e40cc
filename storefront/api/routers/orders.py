# storefront/api/routers/orders.py
from fastapi import APIRouter, Body, Depends, Query, Request

from storefront.api.deps import get_identity, get_order_service, get_rate_limiter
from storefront.api.errors import http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import Identity, SessionIdentity
from storefront.domain.schemas import CancelIn, OrderOut
from storefront.services.order_service import OrderService
from storefront.services.rate_limiter import RateLimiter

router = APIRouter(prefix="/orders", tags=["orders"])


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _limit_email_access(request: Request, limiter: RateLimiter, identity: Identity, email: str | None) -> None:
    # every guest proof-by-email draws from the same budget as /lookup
    if email is not None and isinstance(identity, SessionIdentity):
        limiter.check("order_lookup", _client_ip(request))


@router.get("/lookup", response_model=OrderOut)
def lookup_order(
    request: Request,
    order_number: str = Query(..., min_length=1),
    email: str = Query(..., min_length=3),
    limiter: RateLimiter = Depends(get_rate_limiter),
    svc: OrderService = Depends(get_order_service),
):
    """
    Guest order lookup by order number + contact email. Rate limited per
    client address to keep order numbers from being enumerated.
    """
    try:
        limiter.check("order_lookup", _client_ip(request))
        return svc.lookup_guest(order_number, email)
    except StorefrontError as e:
        raise http_error(e)


@router.get("/{order_number}", response_model=OrderOut)
def get_order(
    request: Request,
    order_number: str,
    email: str | None = Query(None),
    identity: Identity = Depends(get_identity),
    limiter: RateLimiter = Depends(get_rate_limiter),
    svc: OrderService = Depends(get_order_service),
):
    try:
        _limit_email_access(request, limiter, identity, email)
        return svc.get_order(identity, order_number, email=email)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/{order_number}/cancel", response_model=OrderOut)
def cancel_order(
    request: Request,
    order_number: str,
    payload: CancelIn | None = Body(None),
    email: str | None = Query(None),
    identity: Identity = Depends(get_identity),
    limiter: RateLimiter = Depends(get_rate_limiter),
    svc: OrderService = Depends(get_order_service),
):
    try:
        _limit_email_access(request, limiter, identity, email)
        return svc.cancel_order(
            identity,
            order_number,
            reason=payload.reason if payload else None,
            email=email,
        )
    except StorefrontError as e:
        raise http_error(e)


@router.post("/{order_number}/payment/retry", response_model=OrderOut)
def retry_payment(
    request: Request,
    order_number: str,
    email: str | None = Query(None),
    identity: Identity = Depends(get_identity),
    limiter: RateLimiter = Depends(get_rate_limiter),
    svc: OrderService = Depends(get_order_service),
):
    try:
        _limit_email_access(request, limiter, identity, email)
        return svc.retry_payment(identity, order_number, email=email)
    except StorefrontError as e:
        raise http_error(e)
