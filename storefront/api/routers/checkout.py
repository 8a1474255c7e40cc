# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends

from storefront.api.deps import get_checkout_service, get_identity
from storefront.api.errors import http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import Identity
from storefront.domain.schemas import CheckoutIn, OrderOut
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import order_view

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=OrderOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    identity: Identity = Depends(get_identity),
    svc: CheckoutService = Depends(get_checkout_service),
):
    """
    Places the order. For hosted checkout the response carries the provider
    ``redirect_url``, cash on delivery orders come back already confirmed.
    """
    try:
        result = svc.checkout(
            identity,
            shipping_address_id=payload.shipping_address_id,
            billing_address_id=payload.billing_address_id,
            payment_method=payload.payment_method,
            coupon_code=payload.coupon_code,
            contact_email=str(payload.contact_email) if payload.contact_email else None,
        )
    except StorefrontError as e:
        raise http_error(e)
    return order_view(result.order, redirect_url=result.redirect_url)
