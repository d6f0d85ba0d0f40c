"""Redis connection management.

When REDIS_URL is configured the host session store is shared across API
instances through this pool; when it is unset (local dev, tests) the
store falls back to the in-memory implementation and no Redis server is
needed.

Host sessions are a good fit for Redis: they are hot-path (read on every
storefront request), ephemeral (the idle timeout maps to a key TTL) and
must look the same from every instance behind the load balancer.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shopper_auth.core.config import Settings

logger = logging.getLogger(__name__)


def create_redis_pool(settings: Settings) -> aioredis.Redis | None:  # type: ignore[type-arg]
    """Return a client backed by a connection pool, or None without REDIS_URL."""
    if not settings.redis_url:
        return None
    return aioredis.from_url(
        settings.redis_url,
        decode_responses=True,  # str in, str out; session payloads are JSON text
        max_connections=20,
    )


@asynccontextmanager
async def lifespan_redis(redis_pool: aioredis.Redis | None) -> AsyncIterator[None]:  # type: ignore[type-arg]
    """Verify connectivity on startup and release the pool on shutdown."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, host sessions use the in-memory store")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected")
    except (RedisError, OSError):
        # Keep serving: session reads will fail individually and be logged.
        logger.exception("Redis connection failed on startup")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
