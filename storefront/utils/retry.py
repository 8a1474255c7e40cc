# storefront/utils/retry.py
import functools

import redis
import stripe
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import (
    Retrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from storefront.domain.errors import Unavailable
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def stripe_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(stripe.APIConnectionError),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )


def storage_guard(fn):
    """
    Service method wrapper for storage failures.

    An OperationalError (dropped connection, lock timeout) is rolled back and
    retried once. Whatever storage error remains is raised as Unavailable so
    no raw SQLAlchemy exception reaches the caller. Expects ``self.db``.
    """

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        def _rollback(retry_state):
            logger.warning(
                f"{fn.__qualname__} storage error, retrying: {retry_state.outcome.exception()}"
            )
            self.db.rollback()

        try:
            for attempt in Retrying(
                reraise=True,
                stop=stop_after_attempt(2),
                wait=wait_fixed(0.1),
                retry=retry_if_exception_type(OperationalError),
                before_sleep=_rollback,
            ):
                with attempt:
                    return fn(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{fn.__qualname__} failed on storage: {e}")
            raise Unavailable("Storage temporarily unavailable") from e

    return wrapper
