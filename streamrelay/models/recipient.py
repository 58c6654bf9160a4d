"""Data model for a server subscribed to a streamer."""

from __future__ import annotations

from dataclasses import dataclass

from .template import MessageTemplate


@dataclass
class RecipientConfig:
    """One subscribed server and its delivery configuration.

    ``template`` is ``None`` when the server uses the default template.
    ``template_error`` is set when the stored template failed validation at
    load time; rendering for this recipient then fails without affecting
    the others.
    """

    guild_id: str
    streamer_id: str
    channel_id: str | None = None
    mention_role_id: str | None = None
    template: MessageTemplate | None = None
    template_error: str | None = None
    custom_content: str | None = None
    enabled: bool = True

    @property
    def has_channel(self) -> bool:
        return bool(self.channel_id)
