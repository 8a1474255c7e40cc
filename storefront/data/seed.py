# storefront/data/seed.py
from datetime import timedelta
from decimal import Decimal

from storefront.data.database import Base, SessionLocal, engine
from storefront.data.models import AddressModel, CouponModel, ProductModel, ProductVariantModel
from storefront.domain.enums import DiscountType
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(ProductModel).first():
            logger.info("Catalog already seeded")
            return

        shirt = ProductModel(name="Cotton Panjabi", sku="PNJ-001", price=Decimal("1000.00"), stock=25)
        shirt.variants = [
            ProductVariantModel(name="M", sku="PNJ-001-M", stock=10),
            ProductVariantModel(name="XL", sku="PNJ-001-XL", price=Decimal("1100.00"), stock=5),
        ]
        db.add_all(
            [
                shirt,
                ProductModel(name="Jamdani Saree", sku="SAR-002", price=Decimal("4500.00"), stock=3),
                ProductModel(name="Leather Wallet", sku="WAL-003", price=Decimal("650.00"), stock=40),
                CouponModel(
                    code="SAVE10",
                    description="10% off orders from 1500",
                    discount_type=DiscountType.PERCENTAGE,
                    value=Decimal("10"),
                    min_order_amount=Decimal("1500"),
                    expires_at=utcnow() + timedelta(days=90),
                ),
                CouponModel(
                    code="FLAT200",
                    description="200 off, first 100 orders",
                    discount_type=DiscountType.FIXED,
                    value=Decimal("200"),
                    usage_limit=100,
                    per_user_limit=1,
                ),
                AddressModel(
                    user_id=None,
                    session_token="demo-guest",
                    full_name="Guest Buyer",
                    phone="01700000000",
                    line1="House 12, Road 4",
                    area="Dhanmondi",
                    district="Dhaka",
                    division="Dhaka",
                    postal_code="1205",
                ),
            ]
        )
        db.commit()
        logger.info("Seeded demo catalog, coupons and a guest address")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
