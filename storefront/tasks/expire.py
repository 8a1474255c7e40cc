# storefront/tasks/expire.py
from datetime import timedelta

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.domain.errors import InvalidTransition
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.order_state_service import OrderStateService
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger
from storefront.utils.settings import ABANDONED_CHECKOUT_MINUTES

logger = get_logger(__name__)


def cancel_abandoned_orders(db, minutes: int = ABANDONED_CHECKOUT_MINUTES, notifier=None) -> int:
    """Cancel hosted-checkout orders nobody paid for within ``minutes``."""
    cutoff = utcnow() - timedelta(minutes=minutes)
    orders = OrderRepo(db).find_abandoned_hosted_orders(cutoff)
    logger.info(f"Found {len(orders)} abandoned checkouts older than {minutes} minutes")

    cancelled = 0
    for order in orders:
        state = OrderStateService(db, notifier)
        order_number = order.order_number
        try:
            state.cancel(order, reason="Checkout abandoned")
            db.commit()
        except InvalidTransition as e:
            #a payment callback got there first
            db.rollback()
            logger.info(f"Skipping order {order_number}: {e.message}")
            continue
        except Exception:
            db.rollback()
            raise

        state.flush_events()
        cancelled += 1

    return cancelled


def cleanup_guest_carts(db) -> int:
    repo = CartRepo(db)
    try:
        deleted = repo.delete_expired_guest_carts(utcnow())
        repo.commit()
    except Exception:
        repo.rollback()
        raise

    logger.info(f"Deleted {deleted} expired guest carts")
    return deleted


@celery_app.task(name="storefront.tasks.expire.cancel_abandoned_orders_task")
def cancel_abandoned_orders_task():
    logger.info("Abandoned checkout sweep started")

    db = SessionLocal()
    try:
        return cancel_abandoned_orders(db)
    finally:
        db.close()


@celery_app.task(name="storefront.tasks.expire.cleanup_guest_carts_task")
def cleanup_guest_carts_task():
    logger.info("Guest cart cleanup started")

    db = SessionLocal()
    try:
        return cleanup_guest_carts(db)
    finally:
        db.close()
