"""Repository for the streamers table."""

from __future__ import annotations

import logging

import asyncpg

from ..models.streamer import Streamer

logger = logging.getLogger(__name__)

_SELECT_COLS = (
    "id::text AS id, twitch_broadcaster_id, twitch_login, twitch_display_name, "
    "twitch_avatar_url, created_at, last_updated"
)


def _row_to_streamer(row: asyncpg.Record) -> Streamer:
    return Streamer(**dict(row))


class StreamerRepository:
    """Pure SQL lookups for tracked streamers."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get_by_broadcaster_id(self, broadcaster_id: str) -> Streamer | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLS} FROM streamers WHERE twitch_broadcaster_id = $1",
                broadcaster_id,
            )
            return _row_to_streamer(row) if row else None
