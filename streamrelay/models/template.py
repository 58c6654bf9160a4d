"""Validated notification templates.

Stored templates are loose JSONB. They are validated once, when the recipient
row is loaded, into one of two variants:

- ``TextTemplate``: plain content only
- ``EmbedTemplate``: content plus one rich embed

A ``None`` template means "use ``DEFAULT_TEMPLATE``".
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.exceptions import TemplateError

MAX_EMBED_FIELDS = 25


class _TemplateModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class EmbedImage(_TemplateModel):
    url: str


class EmbedField(_TemplateModel):
    name: str
    value: str
    inline: bool = False


class EmbedFooter(_TemplateModel):
    text: str


class EmbedSpec(_TemplateModel):
    title: str = ""
    description: str = ""
    url: str = ""
    color: int = Field(default=0, ge=0, le=0xFFFFFF)
    thumbnail: EmbedImage | None = None
    image: EmbedImage | None = None
    fields: list[EmbedField] = Field(default_factory=list, max_length=MAX_EMBED_FIELDS)
    footer: EmbedFooter | None = None
    timestamp: bool = False


class TextTemplate(_TemplateModel):
    kind: Literal["text"] = "text"
    content: str = Field(min_length=1)


class EmbedTemplate(_TemplateModel):
    kind: Literal["embed"] = "embed"
    content: str = ""
    embed: EmbedSpec


MessageTemplate = TextTemplate | EmbedTemplate


DEFAULT_TEMPLATE = EmbedTemplate(
    content="{streamer_display_name} is now live!",
    embed=EmbedSpec(
        title="{streamer_display_name} is streaming {game_name}",
        description="{stream_title}",
        url="https://twitch.tv/{streamer_login}",
        color=6570404,  # Twitch purple
        thumbnail=EmbedImage(url="{streamer_avatar_url}"),
        image=EmbedImage(url="{stream_thumbnail_url}"),
        fields=[
            EmbedField(name="Viewers", value="{viewer_count}", inline=True),
            EmbedField(name="Game", value="{game_name}", inline=True),
        ],
        footer=EmbedFooter(text="Twitch Notification"),
        timestamp=True,
    ),
)


def parse_template(raw: Any) -> MessageTemplate | None:
    """Validate a stored template.

    Accepts the JSONB value as asyncpg returns it (``str``), raw bytes, an
    already-decoded ``dict``, or ``None``. Returns ``None`` for an absent
    template and raises ``TemplateError`` when the value is malformed.
    """
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TemplateError(f"template is not valid JSON: {e.msg}") from e
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise TemplateError(f"template must be a JSON object, got {type(raw).__name__}")

    data = {k: v for k, v in raw.items() if k != "kind"}
    try:
        if data.get("embed") is not None:
            return EmbedTemplate.model_validate(data)
        data.pop("embed", None)
        return TextTemplate.model_validate(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise TemplateError(f"invalid template: {errors}") from e
