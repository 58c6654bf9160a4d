"""Exception types raised inside the relay."""

from __future__ import annotations


class StreamRelayError(Exception):
    """Base class for relay errors."""


class TemplateError(StreamRelayError):
    """A stored message template is malformed or cannot be rendered."""


class StreamLookupError(StreamRelayError):
    """The stream snapshot could not be fetched (transport or HTTP failure)."""


class DeliveryError(StreamRelayError):
    """An outbound chat message could not be delivered."""

    def __init__(self, reason: str, status: int | None = None) -> None:
        super().__init__(reason if status is None else f"HTTP {status}: {reason}")
        self.reason = reason
        self.status = status
