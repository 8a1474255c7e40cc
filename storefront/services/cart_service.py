# storefront/services/cart_service.py
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.product import ProductModel, ProductVariantModel
from storefront.domain.errors import CouponError, NotFound, OutOfStock, ValidationError
from storefront.domain.identity import Identity, SessionIdentity, UserIdentity, describe
from storefront.domain.money import ZERO, to_money
from storefront.repos.cart_repo import CartRepo
from storefront.repos.catalog_repo import CatalogRepo
from storefront.services.coupon_service import CouponEvaluation, CouponService
from storefront.services.pricing import PricingPolicy
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger
from storefront.utils.retry import storage_guard
from storefront.utils.settings import GUEST_CART_TTL_DAYS

logger = get_logger(__name__)

_ATTACHED = object()


@dataclass(frozen=True)
class PricedLine:
    item: CartItemModel
    product: ProductModel
    variant: ProductVariantModel | None
    unit_price: Decimal
    line_total: Decimal
    available: bool


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    shipping_estimate: Decimal
    tax: Decimal
    total: Decimal
    item_count: int
    coupon_code: str | None = None
    coupon_error: str | None = None
    coupon: CouponEvaluation | None = None
    lines: tuple[PricedLine, ...] = field(default_factory=tuple)


class CartService:
    """
    Cart store.

    Commands (add, update, remove, clear, coupon) mutate the cart of one
    identity and commit. Same-cart mutations are last-writer-wins, there is
    no version check. Queries (get_cart, compute_totals) only read: prices
    come from the live catalog on every call and the attached coupon is
    re-validated, never cached.
    """

    def __init__(
        self,
        db: Session,
        pricing: PricingPolicy | None = None,
        guest_cart_ttl_days: int = GUEST_CART_TTL_DAYS,
    ):
        self.db = db
        self.repo = CartRepo(db)
        self.catalog = CatalogRepo(db)
        self.coupons = CouponService(db)
        self.pricing = pricing or PricingPolicy()
        self.guest_cart_ttl_days = guest_cart_ttl_days

    #query
    def find_cart(self, identity: Identity) -> CartModel | None:
        return self.repo.find_cart(identity)

    @storage_guard
    def get_cart(self, identity: Identity) -> Dict[str, Any]:
        cart = self.repo.find_cart(identity)
        if cart is None:
            return self._empty_view(identity)
        return self.cart_view(cart)

    def compute_totals(
        self,
        cart: CartModel,
        district: str | None = None,
        coupon_code=_ATTACHED,
        strict: bool = False,
        contact_email: str | None = None,
    ) -> CartTotals:
        """
        Re-price the cart from the live catalog.

        Side-effect free. With ``strict`` (checkout) an unavailable line raises
        NotFound and an invalid coupon raises its CouponError, otherwise an
        unavailable line is left out of the totals and a coupon that stopped
        being valid contributes no discount and is reported in ``coupon_error``.
        Per-customer coupon limits use the cart owner, or ``contact_email`` for
        a guest cart.
        """
        lines = []
        subtotal = ZERO
        item_count = 0

        for item in cart.items:
            product = self.catalog.get_product(item.product_id)
            variant = self.catalog.get_variant(item.variant_id) if item.variant_id is not None else None
            available = self._is_available(product, variant)

            if not available and strict:
                raise NotFound(f"Product {item.product_id} is no longer available")

            unit_price = to_money(self.catalog.unit_price(product, variant)) if product is not None else ZERO
            line_total = to_money(unit_price * item.quantity)
            lines.append(
                PricedLine(
                    item=item,
                    product=product,
                    variant=variant,
                    unit_price=unit_price,
                    line_total=line_total,
                    available=available,
                )
            )
            if available:
                subtotal += line_total
                item_count += item.quantity

        code = cart.coupon_code if coupon_code is _ATTACHED else coupon_code
        evaluation = None
        coupon_error = None

        if code:
            try:
                evaluation = self.coupons.evaluate(
                    subtotal, code, user_id=cart.user_id, email=contact_email
                )
            except CouponError as e:
                if strict:
                    raise
                coupon_error = e.code

        discount = evaluation.discount if evaluation else ZERO
        shipping = self.pricing.shipping_cost(subtotal, district)
        tax = self.pricing.tax(subtotal - discount)
        total = to_money(subtotal - discount + shipping + tax)

        return CartTotals(
            subtotal=to_money(subtotal),
            discount=discount,
            shipping_estimate=shipping,
            tax=tax,
            total=total,
            item_count=item_count,
            coupon_code=evaluation.coupon_code if evaluation else (code or None),
            coupon_error=coupon_error,
            coupon=evaluation,
            lines=tuple(lines),
        )

    #commands
    @storage_guard
    def get_or_create(self, identity: Identity) -> CartModel:
        cart = self.repo.find_cart(identity)
        if cart is not None:
            return cart

        if isinstance(identity, UserIdentity):
            new_cart = CartModel(user_id=identity.user_id)
        else:
            new_cart = CartModel(
                session_token=identity.token,
                expires_at=utcnow() + timedelta(days=self.guest_cart_ttl_days),
            )

        try:
            created = self.repo.create_cart(new_cart)
            self.repo.commit()
        except IntegrityError:
            # concurrent first add for the same identity created it already
            self.repo.rollback()
            existing = self.repo.find_cart(identity)
            if existing is None:
                raise
            return existing

        logger.info(f"Created cart {created.id} for {describe(identity)}")
        return created

    @storage_guard
    def add_item(
        self,
        identity: Identity,
        product_id: int,
        variant_id: int | None,
        quantity: int,
    ) -> Dict[str, Any]:
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product, variant = self._resolve(product_id, variant_id)
        cart = self.get_or_create(identity)

        try:
            line = self.repo.find_line(cart.id, product_id, variant_id)
            in_cart = line.quantity if line else 0
            available = self.catalog.available_stock(product, variant)

            if in_cart + quantity > available:
                raise OutOfStock(
                    f"Only {available} of product {product_id} in stock, "
                    f"{in_cart} already in cart"
                )

            if line:
                logger.info(
                    f"Product {product_id} already in cart {cart.id}, "
                    f"quantity {line.quantity} -> {line.quantity + quantity}"
                )
                line.quantity += quantity
            else:
                logger.info(f"Adding product {product_id} to cart {cart.id}")
                cart.items.append(
                    CartItemModel(product_id=product_id, variant_id=variant_id, quantity=quantity)
                )

            self._touch(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        return self.cart_view(cart)

    @storage_guard
    def update_item_quantity(self, identity: Identity, item_id: int, quantity: int) -> Dict[str, Any]:
        if not isinstance(quantity, int) or quantity < 0:
            raise ValidationError("Quantity cannot be negative")
        if quantity == 0:
            return self.remove_item(identity, item_id)

        cart, item = self._own_item(identity, item_id)

        try:
            product, variant = self._resolve(item.product_id, item.variant_id)
            available = self.catalog.available_stock(product, variant)
            if quantity > available:
                raise OutOfStock(f"Only {available} of product {item.product_id} in stock")

            item.quantity = quantity
            self._touch(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Cart {cart.id} item {item_id} quantity set to {quantity}")
        return self.cart_view(cart)

    @storage_guard
    def remove_item(self, identity: Identity, item_id: int) -> Dict[str, Any]:
        cart, item = self._own_item(identity, item_id)

        try:
            self.repo.delete_item(item)
            self._touch(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Removed item {item_id} from cart {cart.id}")
        return self.cart_view(cart)

    @storage_guard
    def clear(self, identity: Identity) -> Dict[str, Any]:
        cart = self.repo.find_cart(identity)
        if cart is None:
            return self._empty_view(identity)

        try:
            self.clear_cart(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Cleared cart {cart.id}")
        return self.cart_view(cart)

    def clear_cart(self, cart: CartModel) -> None:
        """Drop items and coupon without committing (used inside checkout)."""
        self.repo.clear_items(cart)
        cart.coupon_code = None
        self._touch(cart)

    @storage_guard
    def apply_coupon(self, identity: Identity, code: str) -> Dict[str, Any]:
        if not code or not code.strip():
            raise ValidationError("Coupon code is required")

        cart = self.get_or_create(identity)
        totals = self.compute_totals(cart, coupon_code=None)

        # evaluator errors propagate to the caller unchanged
        evaluation = self.coupons.evaluate(totals.subtotal, code, user_id=cart.user_id)

        try:
            cart.coupon_code = evaluation.coupon_code
            self._touch(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Coupon {evaluation.coupon_code} attached to cart {cart.id}")
        return self.cart_view(cart)

    @storage_guard
    def remove_coupon(self, identity: Identity) -> Dict[str, Any]:
        cart = self.repo.find_cart(identity)
        if cart is None:
            return self._empty_view(identity)

        try:
            cart.coupon_code = None
            self._touch(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        return self.cart_view(cart)

    #helpers
    def cart_view(self, cart: CartModel) -> Dict[str, Any]:
        totals = self.compute_totals(cart)
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "session_token": cart.session_token,
            "items": [
                {
                    "id": line.item.id,
                    "product_id": line.item.product_id,
                    "variant_id": line.item.variant_id,
                    "name": line.product.name if line.product is not None else None,
                    "variant_name": line.variant.name if line.variant is not None else None,
                    "quantity": line.item.quantity,
                    "unit_price": line.unit_price,
                    "line_total": line.line_total,
                    "available": line.available,
                }
                for line in totals.lines
            ],
            "subtotal": totals.subtotal,
            "discount": totals.discount,
            "shipping_estimate": totals.shipping_estimate,
            "tax": totals.tax,
            "total": totals.total,
            "item_count": totals.item_count,
            "coupon_code": totals.coupon_code,
            "coupon_error": totals.coupon_error,
        }

    @staticmethod
    def _empty_view(identity: Identity) -> Dict[str, Any]:
        return {
            "cart_id": None,
            "user_id": identity.user_id if isinstance(identity, UserIdentity) else None,
            "session_token": identity.token if isinstance(identity, SessionIdentity) else None,
            "items": [],
            "subtotal": ZERO,
            "discount": ZERO,
            "shipping_estimate": ZERO,
            "tax": ZERO,
            "total": ZERO,
            "item_count": 0,
            "coupon_code": None,
            "coupon_error": None,
        }

    @staticmethod
    def _is_available(product: ProductModel | None, variant: ProductVariantModel | None) -> bool:
        if product is None or not product.is_active:
            return False
        if variant is not None and not variant.is_active:
            return False
        return True

    def _resolve(self, product_id: int, variant_id: int | None):
        product = self.catalog.get_product(product_id)
        if product is None or not product.is_active:
            raise NotFound(f"Product {product_id} not found")

        variant = None
        if variant_id is not None:
            variant = self.catalog.get_variant(variant_id)
            if variant is None or variant.product_id != product.id or not variant.is_active:
                raise NotFound(f"Variant {variant_id} of product {product_id} not found")

        return product, variant

    def _own_item(self, identity: Identity, item_id: int):
        cart = self.repo.find_cart(identity)
        item = self.repo.get_item(cart.id, item_id) if cart is not None else None
        if item is None:
            raise NotFound(f"Cart item {item_id} not found")
        return cart, item

    def _touch(self, cart: CartModel) -> None:
        cart.updated_at = utcnow()
        # guest carts live GUEST_CART_TTL_DAYS past the last change
        if cart.session_token is not None:
            cart.expires_at = utcnow() + timedelta(days=self.guest_cart_ttl_days)
