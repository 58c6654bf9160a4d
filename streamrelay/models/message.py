"""Rendered Discord messages, ready for the message-send endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field

# Discord rejects empty embed field names and values
BLANK = "\u200b"


@dataclass(frozen=True)
class RenderedField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True)
class RenderedEmbed:
    title: str = ""
    description: str = ""
    url: str = ""
    color: int = 0
    thumbnail_url: str = ""
    image_url: str = ""
    fields: tuple[RenderedField, ...] = ()
    footer_text: str = ""
    timestamp: str = ""

    def to_payload(self) -> dict:
        """Discord embed object; empty members are omitted."""
        payload: dict = {}
        if self.title:
            payload["title"] = self.title
        if self.description:
            payload["description"] = self.description
        if self.url:
            payload["url"] = self.url
        if self.color:
            payload["color"] = self.color
        if self.thumbnail_url:
            payload["thumbnail"] = {"url": self.thumbnail_url}
        if self.image_url:
            payload["image"] = {"url": self.image_url}
        if self.fields:
            payload["fields"] = [
                {"name": f.name or BLANK, "value": f.value or BLANK, "inline": f.inline}
                for f in self.fields
            ]
        if self.footer_text:
            payload["footer"] = {"text": self.footer_text}
        if self.timestamp:
            payload["timestamp"] = self.timestamp
        return payload


@dataclass(frozen=True)
class DiscordMessage:
    content: str = ""
    embeds: tuple[RenderedEmbed, ...] = field(default_factory=tuple)

    def to_payload(self) -> dict:
        payload: dict = {}
        if self.content:
            payload["content"] = self.content
        embeds = [p for p in (e.to_payload() for e in self.embeds) if p]
        if embeds:
            payload["embeds"] = embeds
        # Only role mentions written into the template may ping
        payload["allowed_mentions"] = {"parse": ["roles"]}
        return payload
