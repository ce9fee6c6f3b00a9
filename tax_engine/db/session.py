"""Shared asyncpg pool for the tax-rule store."""

import logging

import asyncpg

from config.settings import settings

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


async def get_pool() -> asyncpg.Pool:
    """Return the process-wide pool, creating it on first use."""
    global _pool
    if _pool is None:
        logger.info(
            "Opening tax-rule store pool (%d-%d connections)",
            settings.db_pool_min_size,
            settings.db_pool_max_size,
        )
        # asyncpg wants a plain postgresql:// DSN
        _pool = await asyncpg.create_pool(
            settings.database_url_sync,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
    return _pool


async def close_pool() -> None:
    """Close the pool if it was opened."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Tax-rule store pool closed")
