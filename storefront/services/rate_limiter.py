# storefront/services/rate_limiter.py
import redis
from redis.exceptions import RedisError

from storefront.domain.errors import RateLimited, Unavailable
from storefront.utils.logging import get_logger
from storefront.utils.retry import redis_retry
from storefront.utils.settings import (
    ORDER_LOOKUP_RATE_LIMIT,
    ORDER_LOOKUP_RATE_WINDOW,
    REDIS_URL,
)

logger = get_logger(__name__)


class RateLimiter:
    """
    Fixed-window counter in Redis.

    -first hit in a window creates the key with a TTL (SET NX EX)
    -every hit increments it
    -the window resets when the key expires, no cleanup needed
    """

    def __init__(
        self,
        url: str | None = None,
        limit: int = ORDER_LOOKUP_RATE_LIMIT,
        window: int = ORDER_LOOKUP_RATE_WINDOW,
        client: redis.Redis | None = None,
        prefix: str = "ratelimit",
    ):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.limit = limit
        self.window = window
        self.prefix = prefix

    @redis_retry()
    def _hit(self, key: str) -> int:
        pipe = self.redis.pipeline()
        pipe.set(key, 0, ex=self.window, nx=True)
        pipe.incr(key)
        _, count = pipe.execute()
        return int(count)

    def check(self, scope: str, client_id: str) -> int:
        """Count one request of ``client_id``, raise RateLimited past the limit."""
        key = f"{self.prefix}:{scope}:{client_id}"
        try:
            count = self._hit(key)
        except RedisError as e:
            logger.error(f"Rate limiter unavailable for {key}: {e}")
            raise Unavailable("Rate limiter unavailable") from e

        if count > self.limit:
            logger.warning(f"Rate limit hit for {key}: {count}/{self.limit} in {self.window}s")
            raise RateLimited(f"Too many requests, retry in {self.window} seconds")
        return self.limit - count
