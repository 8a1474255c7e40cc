# storefront/repos/catalog_repo.py
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.data.models.address import AddressModel
from storefront.data.models.product import ProductModel, ProductVariantModel


class CatalogRepo:
    """
    Read side of the catalog plus the stock counter.

    The stock counter is the one resource with an ordering guarantee: a
    reservation is a conditional UPDATE (only when enough stock is left) so
    two buyers of the last unit cannot both win. Releasing is a plain
    increment.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_variant(self, variant_id: int) -> ProductVariantModel | None:
        return self.db.get(ProductVariantModel, variant_id)

    def get_address(self, address_id: int) -> AddressModel | None:
        return self.db.get(AddressModel, address_id)

    @staticmethod
    def unit_price(product: ProductModel, variant: ProductVariantModel | None) -> Decimal:
        if variant is not None and variant.price is not None:
            return Decimal(variant.price)
        return Decimal(product.price)

    @staticmethod
    def available_stock(product: ProductModel, variant: ProductVariantModel | None) -> int:
        return variant.stock if variant is not None else product.stock

    def reserve_stock(self, product_id: int, variant_id: int | None, quantity: int) -> bool:
        model = ProductVariantModel if variant_id is not None else ProductModel
        target_id = variant_id if variant_id is not None else product_id
        result = self.db.execute(
            update(model)
            .where(model.id == target_id, model.stock >= quantity)
            .values(stock=model.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_stock(self, product_id: int, variant_id: int | None, quantity: int) -> None:
        model = ProductVariantModel if variant_id is not None else ProductModel
        target_id = variant_id if variant_id is not None else product_id
        self.db.execute(
            update(model)
            .where(model.id == target_id)
            .values(stock=model.stock + quantity)
            .execution_options(synchronize_session=False)
        )
