# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Header, HTTPException

from storefront.api.deps import get_cart_service, get_identity, get_merge_service
from storefront.api.errors import http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import Identity
from storefront.domain.schemas import CartOut, CouponIn, ItemIn, QuantityIn
from storefront.services.cart_merge_service import CartMergeService
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.get_cart(identity)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.add_item(identity, payload.product_id, payload.variant_id, payload.quantity)
    except StorefrontError as e:
        raise http_error(e)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: QuantityIn,
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.update_item_quantity(identity, item_id, payload.quantity)
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.remove_item(identity, item_id)
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/items", response_model=CartOut)
def clear_cart(
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.clear(identity)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/coupon", response_model=CartOut)
def apply_coupon(
    payload: CouponIn,
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.apply_coupon(identity, payload.code)
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/coupon", response_model=CartOut)
def remove_coupon(
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.remove_coupon(identity)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/merge", response_model=CartOut)
def merge_cart(
    x_user_id: int | None = Header(None),
    x_session_id: str | None = Header(None),
    svc: CartMergeService = Depends(get_merge_service),
):
    """
    Called by the frontend right after login, with the user id and the
    session token the guest has been shopping under.
    """
    if x_user_id is None or not x_session_id:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": "X-User-Id and X-Session-Id are both required"},
        )
    try:
        return svc.merge(x_user_id, x_session_id)
    except StorefrontError as e:
        raise http_error(e)
