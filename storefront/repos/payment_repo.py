# storefront/repos/payment_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.data.models.processed_event import ProcessedEventModel
from storefront.utils.clock import utcnow


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_by_order(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.order_id == order_id)
        ).scalar_one_or_none()

    def get_by_session(self, provider_session_id: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.provider_session_id == provider_session_id)
        ).scalar_one_or_none()

    def compare_and_set_status(self, payment_id: int, expected, new) -> bool:
        result = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status == expected)
            .values(status=new, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class ProcessedEventRepo:
    def __init__(self, db: Session):
        self.db = db

    def exists(self, provider_event_id: str) -> bool:
        return self.db.get(ProcessedEventModel, provider_event_id) is not None

    def record(self, provider_event_id: str, provider_session_id: str | None, outcome: str) -> None:
        #primary key conflict on flush means a concurrent delivery won (IntegrityError)
        self.db.add(
            ProcessedEventModel(
                provider_event_id=provider_event_id,
                provider_session_id=provider_session_id,
                outcome=outcome,
            )
        )
        self.db.flush()
