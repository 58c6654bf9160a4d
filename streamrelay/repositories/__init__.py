"""Repository layer: pure SQL over an asyncpg pool."""

from .delivery_log import DeliveryLogRepository
from .recipient import RecipientResolver
from .streamer import StreamerRepository

__all__ = [
    "DeliveryLogRepository",
    "RecipientResolver",
    "StreamerRepository",
]
