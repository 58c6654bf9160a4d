"""Delivery log records and fan-out results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass
class DeliveryRecord:
    """A claimed (guild, event) pair. Never updated once written."""

    id: str
    guild_id: str
    streamer_id: str
    event_id: str
    sent_at: datetime | None = None


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    DUPLICATE = "duplicate"
    DISABLED = "disabled"
    CONFIG_MISSING = "config_missing"
    RENDER_FAILED = "render_failed"
    SEND_FAILED = "send_failed"
    CLAIM_FAILED = "claim_failed"
    ERROR = "error"


@dataclass(frozen=True)
class RecipientResult:
    guild_id: str
    outcome: DeliveryOutcome
    reason: str = ""


@dataclass
class FanoutResult:
    """Summary of one event's fan-out."""

    event_id: str
    results: list[RecipientResult] = field(default_factory=list)
    aborted_reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self.aborted_reason is not None

    def count(self, outcome: DeliveryOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    def outcome_for(self, guild_id: str) -> DeliveryOutcome | None:
        for r in self.results:
            if r.guild_id == guild_id:
                return r.outcome
        return None
