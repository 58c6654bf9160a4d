"""Render notification templates against live stream data.

Substitution is literal and single-pass: each ``{name}`` token is replaced
once, left to right, from a fixed variable table. Unknown tokens are kept
verbatim and substituted values are never expanded again, so a stream title
containing ``{mention_role}`` cannot inject a ping.
"""

from __future__ import annotations

import logging
import re

from ..core.exceptions import TemplateError
from ..models.message import DiscordMessage, RenderedEmbed, RenderedField
from ..models.stream import StreamSnapshot, format_rfc3339
from ..models.streamer import Streamer
from ..models.template import DEFAULT_TEMPLATE, EmbedTemplate, MessageTemplate

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")
THUMBNAIL_SIZE_TOKEN = "{width}x{height}"


def substitute(text: str, variables: dict[str, str]) -> str:
    if not text:
        return ""
    return _PLACEHOLDER_RE.sub(lambda m: variables.get(m.group(1), m.group(0)), text)


class TemplateRenderer:
    """Expands templates into ``DiscordMessage`` objects."""

    def __init__(self, thumbnail_resolution: str = "1920x1080") -> None:
        self.thumbnail_resolution = thumbnail_resolution

    def build_variables(
        self,
        streamer: Streamer,
        snapshot: StreamSnapshot,
        mention_role_id: str | None,
    ) -> dict[str, str]:
        thumbnail = snapshot.thumbnail_url.replace(THUMBNAIL_SIZE_TOKEN, self.thumbnail_resolution)
        return {
            "streamer_login": streamer.twitch_login,
            "streamer_display_name": streamer.display_name,
            "streamer_avatar_url": streamer.twitch_avatar_url or "",
            "stream_title": snapshot.title,
            "game_name": snapshot.game_name,
            "viewer_count": str(snapshot.viewer_count),
            "stream_thumbnail_url": thumbnail,
            "started_at": format_rfc3339(snapshot.started_at) if snapshot.started_at else "",
            "mention_role": f"<@&{mention_role_id}>" if mention_role_id else "",
        }

    def render(
        self,
        template: MessageTemplate | None,
        streamer: Streamer,
        snapshot: StreamSnapshot,
        mention_role_id: str | None = None,
        *,
        custom_content: str | None = None,
    ) -> DiscordMessage:
        """Render *template* (``None`` selects the default template).

        A non-empty *custom_content* replaces the template's plain content.
        Raises ``TemplateError`` when the result would be an empty message.
        """
        tmpl = template or DEFAULT_TEMPLATE
        variables = self.build_variables(streamer, snapshot, mention_role_id)

        content_source = custom_content if custom_content and custom_content.strip() else tmpl.content
        content = substitute(content_source, variables)

        embeds: tuple[RenderedEmbed, ...] = ()
        if isinstance(tmpl, EmbedTemplate):
            embed = self._render_embed(tmpl, snapshot, variables)
            # Discord rejects an embed with no members
            if embed.to_payload():
                embeds = (embed,)

        if not content.strip() and not embeds:
            raise TemplateError("template rendered to an empty message")
        return DiscordMessage(content=content, embeds=embeds)

    def _render_embed(
        self,
        tmpl: EmbedTemplate,
        snapshot: StreamSnapshot,
        variables: dict[str, str],
    ) -> RenderedEmbed:
        spec = tmpl.embed
        return RenderedEmbed(
            title=substitute(spec.title, variables),
            description=substitute(spec.description, variables),
            url=substitute(spec.url, variables),
            color=spec.color,
            thumbnail_url=substitute(spec.thumbnail.url, variables) if spec.thumbnail else "",
            image_url=substitute(spec.image.url, variables) if spec.image else "",
            fields=tuple(
                RenderedField(
                    name=substitute(f.name, variables),
                    value=substitute(f.value, variables),
                    inline=f.inline,
                )
                for f in spec.fields
            ),
            footer_text=substitute(spec.footer.text, variables) if spec.footer else "",
            timestamp=(
                format_rfc3339(snapshot.started_at) if spec.timestamp and snapshot.started_at else ""
            ),
        )
