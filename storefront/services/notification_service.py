# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_CONFIRMED = "order_confirmed"
PAYMENT_FAILED = "payment_failed"
ORDER_CANCELLED = "order_cancelled"


class NotificationService:
    """
    Fire-and-forget sink for order events.

    Events go to Celery. A broker outage must not fail an order that is
    already committed, so enqueue errors are logged and dropped.
    """

    def emit(self, event: str, payload: dict) -> None:
        try:
            send_order_event_task.delay(event, payload)
        except Exception as e:
            logger.warning(f"Could not enqueue {event} for order {payload.get('order_number')}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_event_task")
def send_order_event_task(event: str, payload: dict):
    """
    Delivery stub. A real deployment plugs the email/SMS gateway in here.
    """
    logger.info(
        f"[NOTIFICATION] {event}: order {payload.get('order_number')} "
        f"user={payload.get('user_id')} email={payload.get('contact_email')}"
    )
    return {"event": event, "order_number": payload.get("order_number"), "status": "sent"}
