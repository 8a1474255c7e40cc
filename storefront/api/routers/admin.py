# storefront/api/routers/admin.py
from fastapi import APIRouter, Depends

from storefront.api.deps import get_order_service, require_admin
from storefront.api.errors import http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import OrderOut, OrderStatusIn, PaymentStatusIn
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/admin/orders", tags=["admin"], dependencies=[Depends(require_admin)])


@router.patch("/{order_number}/status", response_model=OrderOut)
def update_order_status(
    order_number: str,
    payload: OrderStatusIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.update_status(order_number, payload.status, reason=payload.reason)
    except StorefrontError as e:
        raise http_error(e)


@router.patch("/{order_number}/payment-status", response_model=OrderOut)
def update_payment_status(
    order_number: str,
    payload: PaymentStatusIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.update_payment_status(order_number, payload.status)
    except StorefrontError as e:
        raise http_error(e)
