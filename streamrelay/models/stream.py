"""Ephemeral stream data: the webhook event and the Helix snapshot."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

# Helix/EventSub timestamps may carry nanosecond fractions
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_rfc3339(value: str) -> datetime | None:
    """Parse an RFC 3339 timestamp into an aware datetime, or None if malformed."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(_FRACTION_RE.sub(r"\1", value.strip()).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        return None
    return dt


def format_rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class StreamEvent:
    """A parsed ``stream.online`` notification. Never persisted as a whole."""

    event_id: str
    broadcaster_id: str
    broadcaster_login: str
    broadcaster_display_name: str
    started_at: datetime | None = None
    stream_type: str = "live"

    @classmethod
    def from_payload(cls, event: dict, fallback_id: str = "") -> StreamEvent:
        """Build from the ``event`` object of an EventSub envelope.

        The durable event ID is ``event.id``; *fallback_id* (the transport
        message ID) is used when the payload has none.
        """
        return cls(
            event_id=str(event.get("id") or fallback_id),
            broadcaster_id=str(event.get("broadcaster_user_id") or ""),
            broadcaster_login=str(event.get("broadcaster_user_login") or "").lower(),
            broadcaster_display_name=str(event.get("broadcaster_user_name") or ""),
            started_at=parse_rfc3339(str(event.get("started_at") or "")),
            stream_type=str(event.get("type") or "live"),
        )


@dataclass(frozen=True)
class StreamSnapshot:
    """Live metadata fetched once per event and shared read-only by recipients."""

    stream_id: str
    user_id: str
    title: str = ""
    game_id: str = ""
    game_name: str = ""
    viewer_count: int = 0
    thumbnail_url: str = ""
    started_at: datetime | None = None

    @classmethod
    def from_helix(cls, data: dict) -> StreamSnapshot:
        return cls(
            stream_id=str(data.get("id") or ""),
            user_id=str(data.get("user_id") or ""),
            title=data.get("title") or "",
            game_id=str(data.get("game_id") or ""),
            game_name=data.get("game_name") or "",
            viewer_count=int(data.get("viewer_count") or 0),
            thumbnail_url=data.get("thumbnail_url") or "",
            started_at=parse_rfc3339(data.get("started_at") or ""),
        )
