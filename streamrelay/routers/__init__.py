"""API Routers package"""

from . import webhooks_router

__all__ = [
    "webhooks_router",
]
