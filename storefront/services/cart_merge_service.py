# storefront/services/cart_merge_service.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.data.models.cart_item import CartItemModel
from storefront.domain.identity import SessionIdentity, UserIdentity
from storefront.repos.cart_repo import CartRepo
from storefront.repos.catalog_repo import CatalogRepo
from storefront.services.cart_service import CartService
from storefront.utils.logging import get_logger
from storefront.utils.retry import storage_guard

logger = get_logger(__name__)


class CartMergeService:
    """
    Moves an anonymous session cart into the user's cart after login.

    Lines merge by (product, variant) like add_item, but instead of failing
    on stock the merged quantity is clamped to what is available and the
    rest is dropped. The guest cart is deleted afterwards, so a second run
    finds nothing to merge and just returns the user cart.
    """

    def __init__(self, db: Session, cart_service: CartService | None = None):
        self.db = db
        self.repo = CartRepo(db)
        self.catalog = CatalogRepo(db)
        self.carts = cart_service or CartService(db)

    @storage_guard
    def merge(self, user_id: int, session_token: str) -> Dict[str, Any]:
        user_identity = UserIdentity(user_id)
        guest_cart = self.repo.find_cart(SessionIdentity(session_token))

        if guest_cart is None:
            logger.info(f"No guest cart for session {session_token}, nothing to merge")
            return self.carts.cart_view(self.carts.get_or_create(user_identity))

        user_cart = self.carts.get_or_create(user_identity)
        guest_cart_id = guest_cart.id

        try:
            merged, dropped = 0, 0
            for guest_item in list(guest_cart.items):
                moved = self._merge_line(user_cart, guest_item)
                merged += moved
                dropped += guest_item.quantity - moved

            if user_cart.coupon_code is None and guest_cart.coupon_code is not None:
                user_cart.coupon_code = guest_cart.coupon_code

            self.repo.delete_cart(guest_cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(
            f"Merged guest cart {guest_cart_id} into user cart {user_cart.id}: "
            f"{merged} units merged, {dropped} dropped for stock"
        )
        return self.carts.cart_view(user_cart)

    def _merge_line(self, user_cart, guest_item: CartItemModel) -> int:
        product = self.catalog.get_product(guest_item.product_id)
        variant = (
            self.catalog.get_variant(guest_item.variant_id)
            if guest_item.variant_id is not None
            else None
        )
        if product is None or not product.is_active or (variant is not None and not variant.is_active):
            logger.info(f"Dropping unavailable product {guest_item.product_id} from guest cart")
            return 0

        available = self.catalog.available_stock(product, variant)
        line = self.repo.find_line(user_cart.id, guest_item.product_id, guest_item.variant_id)
        in_cart = line.quantity if line else 0

        target = min(in_cart + guest_item.quantity, max(available, in_cart))
        moved = max(target - in_cart, 0)

        if moved == 0:
            return 0

        if line:
            line.quantity = target
        else:
            user_cart.items.append(
                CartItemModel(
                    product_id=guest_item.product_id,
                    variant_id=guest_item.variant_id,
                    quantity=moved,
                )
            )
        return moved
