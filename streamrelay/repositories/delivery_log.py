"""Repository for notification_log, the durable idempotency ledger.

Exactly one row may exist per (guild_id, event_id). The uniqueness constraint
is enforced by PostgreSQL, so a claim is safe across concurrent tasks and
across process instances.
"""

from __future__ import annotations

import logging

import asyncpg

from ..models.delivery import DeliveryRecord

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS notification_log (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        guild_id TEXT NOT NULL,
        streamer_id UUID NOT NULL,
        event_id TEXT NOT NULL,
        sent_at TIMESTAMPTZ DEFAULT now(),
        UNIQUE (guild_id, event_id)
    )
"""

_CREATE_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_notification_log_event ON notification_log(event_id)"
)

_SELECT_COLS = "id::text AS id, guild_id, streamer_id::text AS streamer_id, event_id, sent_at"


class DeliveryLogRepository:
    """Claim-once records of (guild, event) deliveries."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def ensure_table(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(_CREATE_TABLE_SQL)
            await conn.execute(_CREATE_INDEX_SQL)
        logger.info("notification_log table ready")

    async def try_claim(self, guild_id: str, streamer_id: str, event_id: str) -> bool:
        """Insert the record. False when this (guild, event) was already claimed."""
        async with self.pool.acquire() as conn:
            claimed_id = await conn.fetchval(
                """
                INSERT INTO notification_log (guild_id, streamer_id, event_id)
                VALUES ($1, $2::uuid, $3)
                ON CONFLICT (guild_id, event_id) DO NOTHING
                RETURNING id
                """,
                guild_id,
                streamer_id,
                event_id,
            )
            return claimed_id is not None

    async def list_for_event(self, event_id: str) -> list[DeliveryRecord]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_SELECT_COLS} FROM notification_log WHERE event_id = $1 ORDER BY guild_id",
                event_id,
            )
            return [DeliveryRecord(**dict(r)) for r in rows]
