# storefront/repos/order_repo.py
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.utils.clock import utcnow


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_number(self, order_number: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.order_number == order_number)
        ).scalar_one_or_none()

    def find_for_guest(self, order_number: str, email: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(
                OrderModel.order_number == order_number,
                func.lower(OrderModel.contact_email) == email.strip().lower(),
            )
        ).scalar_one_or_none()

    def compare_and_set_status(self, order_id: int, expected, new) -> bool:
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected)
            .values(status=new, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def compare_and_set_cancelled(self, order_id: int, expected, reason: str | None) -> bool:
        now = utcnow()
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status == expected,
                OrderModel.payment_status != PaymentStatus.PAID,
            )
            .values(
                status=OrderStatus.CANCELLED,
                cancellation_reason=reason,
                cancelled_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mirror_payment_status(self, order_id: int, status) -> None:
        self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id)
            .values(payment_status=status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def claim_stock_release(self, order_id: int) -> bool:
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.stock_released.is_(False))
            .values(stock_released=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_failed_attempts(self, order_id: int) -> None:
        self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id)
            .values(failed_payment_attempts=OrderModel.failed_payment_attempts + 1)
            .execution_options(synchronize_session=False)
        )

    def find_abandoned_hosted_orders(self, older_than: datetime) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel).where(
                    OrderModel.status == OrderStatus.PENDING,
                    OrderModel.payment_method == PaymentMethod.HOSTED_CHECKOUT,
                    OrderModel.payment_status != PaymentStatus.PAID,
                    OrderModel.created_at < older_than,
                )
            ).scalars().all()
        )

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
