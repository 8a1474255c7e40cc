# storefront/repos/cart_repo.py
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.identity import Identity, UserIdentity


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def find_cart(self, identity: Identity) -> CartModel | None:
        if isinstance(identity, UserIdentity):
            stmt = select(CartModel).where(CartModel.user_id == identity.user_id)
        else:
            stmt = select(CartModel).where(CartModel.session_token == identity.token)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_item(self, cart_id: int, item_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.id == item_id,
            )
        ).scalar_one_or_none()

    def find_line(self, cart_id: int, product_id: int, variant_id: int | None) -> CartItemModel | None:
        stmt = select(CartItemModel).where(
            CartItemModel.cart_id == cart_id,
            CartItemModel.product_id == product_id,
        )
        if variant_id is None:
            stmt = stmt.where(CartItemModel.variant_id.is_(None))
        else:
            stmt = stmt.where(CartItemModel.variant_id == variant_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_item(self, item: CartItemModel) -> None:
        cart = item.cart
        if cart is not None and item in cart.items:
            cart.items.remove(item)
        self.db.delete(item)
        self.db.flush()

    def clear_items(self, cart: CartModel) -> None:
        cart.items.clear()
        self.db.flush()

    def delete_cart(self, cart: CartModel) -> None:
        self.db.delete(cart)
        self.db.flush()

    def delete_expired_guest_carts(self, now) -> int:
        expired_ids = self.db.execute(
            select(CartModel.id).where(
                CartModel.user_id.is_(None),
                CartModel.expires_at < now,
            )
        ).scalars().all()
        if not expired_ids:
            return 0
        self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id.in_(expired_ids)))
        self.db.execute(delete(CartModel).where(CartModel.id.in_(expired_ids)))
        return len(expired_ids)

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
