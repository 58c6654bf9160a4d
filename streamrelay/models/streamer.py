"""Data model for the streamers table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Streamer:
    """A tracked Twitch broadcaster."""

    id: str
    twitch_broadcaster_id: str
    twitch_login: str
    twitch_display_name: str | None = None
    twitch_avatar_url: str | None = None
    created_at: datetime | None = None
    last_updated: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.twitch_display_name or self.twitch_login
