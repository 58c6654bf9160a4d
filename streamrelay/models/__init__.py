"""Data models for the relay."""

from .delivery import DeliveryOutcome, DeliveryRecord, FanoutResult, RecipientResult
from .message import DiscordMessage, RenderedEmbed, RenderedField
from .recipient import RecipientConfig
from .stream import StreamEvent, StreamSnapshot
from .streamer import Streamer
from .template import (
    DEFAULT_TEMPLATE,
    EmbedTemplate,
    MessageTemplate,
    TextTemplate,
    parse_template,
)

__all__ = [
    "DEFAULT_TEMPLATE",
    "DeliveryOutcome",
    "DeliveryRecord",
    "DiscordMessage",
    "EmbedTemplate",
    "FanoutResult",
    "MessageTemplate",
    "RecipientConfig",
    "RecipientResult",
    "RenderedEmbed",
    "RenderedField",
    "StreamEvent",
    "StreamSnapshot",
    "Streamer",
    "TextTemplate",
    "parse_template",
]
