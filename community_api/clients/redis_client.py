"""
Redis client wrapper.

Responsibilities:
  • Rate limiting — fixed-window request counters keyed
                    rl:{client_id}:{window_start}

The limiter fails open: if Redis is unreachable the request is allowed and
the outage is logged.
"""
import logging
import time
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from community_api.config import Settings

logger = logging.getLogger(__name__)


def connect_redis(settings: Settings) -> Optional[aioredis.Redis]:
    if not settings.redis_url:
        logger.info("REDIS_URL not set, rate limiting disabled")
        return None
    return aioredis.Redis.from_url(settings.redis_url, decode_responses=True)


class RateLimiter:
    def __init__(self, redis: aioredis.Redis, window_seconds: int, max_requests: int) -> None:
        self.redis = redis
        self.window_seconds = window_seconds
        self.max_requests = max_requests

    def _key(self, client_id: str, now: float) -> str:
        window_start = int(now // self.window_seconds) * self.window_seconds
        return f"rl:{client_id}:{window_start}"

    async def hit(self, client_id: str, now: Optional[float] = None) -> bool:
        """Count one request; return False once the window quota is exceeded."""
        key = self._key(client_id, time.time() if now is None else now)
        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.window_seconds)
            count, _ = await pipe.execute()
        except RedisError as exc:
            logger.warning("Rate limiter unavailable (%s), allowing request", exc)
            return True
        return int(count) <= self.max_requests
