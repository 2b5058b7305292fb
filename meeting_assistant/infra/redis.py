"""
Redis Session Backend

Connection pool, key naming and error translation for sessions kept in
Redis. Sessions are the only thing this project stores in Redis, so the
pool is only opened when SESSION_BACKEND is "redis".
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from meeting_assistant.config import settings

logger = logging.getLogger(__name__)

# Bump the version segment when the stored session format changes
APP_PREFIX = "meeting-assistant:v1:"
SESSION_PREFIX = f"{APP_PREFIX}session:"

_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None


class RedisConnectionError(Exception):
    """Raised when a session read or write against Redis fails."""


def session_key(session_id: str) -> str:
    """Redis key for one conversation session."""
    return f"{SESSION_PREFIX}{session_id}"


@asynccontextmanager
async def redis_errors(action: str) -> AsyncIterator[None]:
    """
    Translate redis-py failures into RedisConnectionError.

    Args:
        action: What was being attempted, e.g. "save session s-1"
    """
    try:
        yield
    except RedisError as e:
        raise RedisConnectionError(f"Failed to {action}: {e}") from e


async def connect_redis() -> Optional[Redis]:
    """
    Open the session pool and verify it with a PING.

    Returns:
        Connected client, or None if Redis cannot be reached
    """
    global _pool, _client
    if _client is not None:
        return _client

    pool = ConnectionPool.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        retry=Retry(ExponentialBackoff(), retries=3),
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except RedisError as e:
        logger.error(f"Session store unreachable at {settings.redis_url}: {e}")
        await pool.disconnect()
        return None

    _pool, _client = pool, client
    logger.info(f"Session store connected (max {settings.redis_max_connections} connections)")
    return _client


async def close_redis() -> None:
    """Release the session pool. Safe to call when it was never opened."""
    global _pool, _client
    if _client is None:
        return
    try:
        await _client.aclose()
        await _pool.disconnect()
        logger.info("Session store connection closed")
    except RedisError as e:
        logger.error(f"Error closing session store connection: {e}")
    finally:
        _pool, _client = None, None


def is_redis_connected() -> bool:
    """Check whether the session pool is open."""
    return _client is not None


async def get_redis() -> Optional[Redis]:
    """
    Client for the session store.

    Returns None when sessions are configured to live in memory or when
    Redis is unreachable.
    """
    if not settings.uses_redis_sessions:
        return None
    return await connect_redis()
