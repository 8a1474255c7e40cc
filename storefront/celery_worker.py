# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#register tasks explicitly
celery_app.conf.imports = (
    "storefront.tasks.expire",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "cancel-abandoned-checkouts-every-5-minutes": {
        "task": "storefront.tasks.expire.cancel_abandoned_orders_task",
        "schedule": 300.0,
    },
    "cleanup-guest-carts-daily": {
        "task": "storefront.tasks.expire.cleanup_guest_carts_task",
        "schedule": 24 * 60 * 60.0,
    },
}

celery_app.conf.timezone = "UTC"
