"""asyncpg pool owned by the relay.

The relay only runs short single-statement queries (recipient lookup and
delivery-log claims), so the pool stays small. A DSN on port 6543 is treated
as a transaction pooler (PgBouncer style): prepared statements are disabled
and no idle connections are held.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import asyncpg

logger = logging.getLogger(__name__)

TRANSACTION_POOLER_PORT = ":6543"


@dataclass
class PoolConfig:
    min_size: int = 1
    max_size: int = 10
    acquire_timeout: float = 5.0
    command_timeout: float = 15.0
    idle_lifetime: float = 60.0
    connect_attempts: int = 3
    backoff_base: float = 3.0
    ssl: bool = True


class DatabaseManager:
    """Creates, verifies and closes the relay's connection pool."""

    def __init__(self, database_url: str, config: PoolConfig | None = None):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self.transaction_pooling = TRANSACTION_POOLER_PORT in database_url
        self._pool: asyncpg.Pool | None = None

    def pool_options(self) -> dict[str, Any]:
        cfg = self.config
        options: dict[str, Any] = {
            "dsn": self.database_url,
            "min_size": 0 if self.transaction_pooling else cfg.min_size,
            "max_size": cfg.max_size,
            "timeout": cfg.acquire_timeout,
            "command_timeout": cfg.command_timeout,
            "max_inactive_connection_lifetime": 0 if self.transaction_pooling else cfg.idle_lifetime,
            "statement_cache_size": 0 if self.transaction_pooling else 100,
        }
        if cfg.ssl:
            options["ssl"] = "require"
        return options

    async def _open_verified_pool(self, options: dict[str, Any]) -> asyncpg.Pool:
        pool = await asyncpg.create_pool(**options)
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception:
            await pool.close()
            raise
        return pool

    async def connect(self) -> None:
        """Open the pool, backing off exponentially between failed attempts."""
        if self._pool is not None:
            logger.debug("Pool already open, connect() ignored")
            return

        options = self.pool_options()
        mode = "transaction" if self.transaction_pooling else "session"
        attempts = self.config.connect_attempts

        for attempt in range(1, attempts + 1):
            try:
                self._pool = await self._open_verified_pool(options)
            except Exception as e:
                if attempt == attempts:
                    logger.error(f"Giving up on database after {attempts} attempts: {type(e).__name__}: {e!r}")
                    raise
                wait = self.config.backoff_base * 2 ** (attempt - 1)
                logger.warning(f"Database attempt {attempt}/{attempts} failed ({type(e).__name__}), next in {wait}s")
                await asyncio.sleep(wait)
            else:
                logger.info(f"Database pool ready ({mode} pooling, max {options['max_size']} connections)")
                return

    async def disconnect(self) -> None:
        pool, self._pool = self._pool, None
        if pool is None:
            return
        try:
            await pool.close()
        except Exception as e:
            logger.exception(f"Pool close raised: {e}")
        else:
            logger.info("Database pool closed")

    async def check_health(self) -> bool:
        """True when a connection can be acquired and answers a trivial query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                return await conn.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Database health probe failed: {e}")
            return False

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool is not open")
        return self._pool
