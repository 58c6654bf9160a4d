"""Recipient resolution: which servers get notified for a streamer."""

from __future__ import annotations

import logging

import asyncpg

from ..core.exceptions import TemplateError
from ..models.recipient import RecipientConfig
from ..models.template import parse_template

logger = logging.getLogger(__name__)

# A linked server without a guild_config row still resolves (channel_id NULL)
# so the dispatcher can report it as config-missing.
_RESOLVE_SQL = """
    SELECT gs.guild_id,
           gs.streamer_id::text AS streamer_id,
           gs.custom_content,
           gc.channel_id,
           gc.mention_role_id,
           gc.message_template
    FROM guild_streamers gs
    LEFT JOIN guild_config gc ON gc.guild_id = gs.guild_id
    WHERE gs.streamer_id = $1::uuid
      AND COALESCE(gs.enabled, TRUE)
      AND COALESCE(gc.enabled, TRUE)
    ORDER BY gs.guild_id
"""


def _row_to_recipient(row: asyncpg.Record) -> RecipientConfig:
    """Convert a DB row, validating the stored template at load time."""
    d = dict(row)
    template = None
    template_error = None
    try:
        template = parse_template(d.pop("message_template", None))
    except TemplateError as e:
        template_error = str(e)
        logger.warning(f"Stored template for guild {d['guild_id']} is invalid: {e}")
    return RecipientConfig(template=template, template_error=template_error, **d)


class RecipientResolver:
    """Read-only lookup of subscribed servers. Performs no authorization."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def resolve(self, streamer_id: str) -> list[RecipientConfig]:
        """Servers where both the server-streamer link and the server toggle are on.

        Zero subscribers yields an empty list.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(_RESOLVE_SQL, streamer_id)
            return [_row_to_recipient(r) for r in rows]
