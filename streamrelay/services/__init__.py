"""Services layer

Outbound API clients, webhook signature verification, template rendering and
the notification dispatcher. Services are built in the app lifespan and
reached through dependency injection.
"""

from .discord_api import DiscordAPIClient, SendResult
from .dispatcher import NotificationDispatcher
from .signature import SignatureVerifier, compute_signature
from .template_renderer import TemplateRenderer
from .twitch_api import TwitchAPIClient

__all__ = [
    "DiscordAPIClient",
    "NotificationDispatcher",
    "SendResult",
    "SignatureVerifier",
    "TemplateRenderer",
    "TwitchAPIClient",
    "compute_signature",
]
