"""Shared Redis connection for the cross-process job lease.

Only used when ``USE_REDIS_LOCKS`` is enabled; single-process deployments
keep their leases in memory.
"""

import asyncio

from redis.asyncio import ConnectionPool, Redis

from wotc_relay.config.settings import get_settings

_pool: ConnectionPool | None = None
_client: Redis | None = None
_lock = asyncio.Lock()


async def get_redis_pool() -> ConnectionPool:
    """Return the process-wide pool, building it from settings on first use."""
    global _pool
    async with _lock:
        if _pool is None:
            settings = get_settings()
            _pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
            )
        return _pool


async def get_redis_client() -> Redis:
    global _client
    pool = await get_redis_pool()
    async with _lock:
        if _client is None:
            _client = Redis(connection_pool=pool)
        return _client


async def close_redis() -> None:
    """Release the client and pool on shutdown."""
    global _pool, _client
    async with _lock:
        client, pool = _client, _pool
        _client = _pool = None
    if client is not None:
        await client.aclose()
    if pool is not None:
        await pool.disconnect()
