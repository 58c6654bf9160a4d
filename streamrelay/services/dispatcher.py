"""Notification fan-out for ``stream.online`` events.

For each event the dispatcher fetches the stream snapshot once, resolves the
subscribed servers and runs one task per server:

    disabled? -> claim (guild, event) -> render -> send

The claim is a uniqueness-constrained insert into the delivery log, so
duplicate or concurrent invocations for the same event deliver at most once
per server. A claim is never rolled back: a failed send stays claimed and is
not retried. One server's failure never affects another's.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Protocol

from ..core.exceptions import StreamLookupError, TemplateError
from ..core.metrics import RelayMetrics
from ..models.delivery import DeliveryOutcome, FanoutResult, RecipientResult
from ..models.message import DiscordMessage
from ..models.recipient import RecipientConfig
from ..models.stream import StreamEvent, StreamSnapshot
from ..models.streamer import Streamer
from .template_renderer import TemplateRenderer

logger = logging.getLogger(__name__)


class StreamerLookup(Protocol):
    async def get_by_broadcaster_id(self, broadcaster_id: str) -> Streamer | None: ...


class RecipientSource(Protocol):
    async def resolve(self, streamer_id: str) -> list[RecipientConfig]: ...


class DeliveryLog(Protocol):
    async def try_claim(self, guild_id: str, streamer_id: str, event_id: str) -> bool: ...


class StreamSource(Protocol):
    async def get_stream(self, broadcaster_id: str) -> StreamSnapshot | None: ...


class MessageSender(Protocol):
    async def send_message(self, channel_id: str, message: DiscordMessage) -> object: ...


class NotificationDispatcher:
    """Orchestrates claim-then-best-effort delivery for one event at a time."""

    def __init__(
        self,
        *,
        streamers: StreamerLookup,
        recipients: RecipientSource,
        delivery_log: DeliveryLog,
        streams: StreamSource,
        sender: MessageSender,
        renderer: TemplateRenderer | None = None,
        metrics: RelayMetrics | None = None,
        delivery_timeout: float = 8.0,
    ) -> None:
        self.streamers = streamers
        self.recipients = recipients
        self.delivery_log = delivery_log
        self.streams = streams
        self.sender = sender
        self.renderer = renderer or TemplateRenderer()
        self.metrics = metrics
        self.delivery_timeout = delivery_timeout

    async def handle_stream_online(self, event_id: str, event: StreamEvent) -> FanoutResult:
        """Fan *event* out to every subscribed server. Never raises."""
        started = time.monotonic()
        try:
            result = await self._fanout(event_id, event)
        except Exception as e:
            logger.exception(f"Fan-out for event {event_id} failed unexpectedly: {e}")
            result = FanoutResult(event_id=event_id, aborted_reason="error")

        elapsed = time.monotonic() - started
        self._record_fanout(result.aborted_reason or "completed", elapsed)
        if not result.aborted:
            logger.info(
                f"Fan-out for event {event_id} done in {elapsed:.2f}s: "
                f"{result.count(DeliveryOutcome.SENT)} sent, "
                f"{result.count(DeliveryOutcome.DUPLICATE)} duplicate, "
                f"{len(result.results)} recipient(s)"
            )
        return result

    async def _fanout(self, event_id: str, event: StreamEvent) -> FanoutResult:
        streamer = await self.streamers.get_by_broadcaster_id(event.broadcaster_id)
        if streamer is None:
            logger.warning(
                f"stream.online for untracked broadcaster {event.broadcaster_id} "
                f"({event.broadcaster_login}), skipping"
            )
            return FanoutResult(event_id=event_id, aborted_reason="unknown_streamer")
        streamer = self._with_event_fallbacks(streamer, event)

        try:
            snapshot = await self.streams.get_stream(event.broadcaster_id)
        except StreamLookupError as e:
            logger.error(f"Stream lookup for {streamer.twitch_login} failed, skipping event {event_id}: {e}")
            return FanoutResult(event_id=event_id, aborted_reason="snapshot_failed")

        if snapshot is None:
            logger.info(
                f"{streamer.twitch_login} went offline before event {event_id} "
                f"could be delivered, skipping"
            )
            return FanoutResult(event_id=event_id, aborted_reason="offline")

        if snapshot.started_at is None and event.started_at is not None:
            snapshot = dataclasses.replace(snapshot, started_at=event.started_at)

        recipients = await self.recipients.resolve(streamer.id)
        if not recipients:
            logger.info(f"No servers subscribed to {streamer.twitch_login}, nothing to send")
            return FanoutResult(event_id=event_id)

        logger.info(
            f"Fanning out event {event_id} for {streamer.twitch_login} "
            f"to {len(recipients)} server(s)"
        )

        outcomes = await asyncio.gather(
            *(self._deliver(event_id, streamer, snapshot, r) for r in recipients),
            return_exceptions=True,
        )

        results: list[RecipientResult] = []
        for recipient, outcome in zip(recipients, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Delivery task for guild {recipient.guild_id} crashed: {outcome!r}")
                outcome = RecipientResult(recipient.guild_id, DeliveryOutcome.ERROR, repr(outcome))
                self._record_notification(outcome.outcome)
            results.append(outcome)
        return FanoutResult(event_id=event_id, results=results)

    async def _deliver(
        self,
        event_id: str,
        streamer: Streamer,
        snapshot: StreamSnapshot,
        recipient: RecipientConfig,
    ) -> RecipientResult:
        """One recipient's delivery. Converts every failure into an outcome."""
        guild_id = recipient.guild_id

        if not recipient.enabled:
            logger.debug(f"Guild {guild_id} has notifications disabled, skipping")
            return self._outcome(guild_id, DeliveryOutcome.DISABLED)

        if not recipient.has_channel:
            logger.warning(f"Guild {guild_id} has no notification channel configured, skipping")
            return self._outcome(guild_id, DeliveryOutcome.CONFIG_MISSING, "no channel")

        try:
            claimed = await self.delivery_log.try_claim(guild_id, streamer.id, event_id)
        except Exception as e:
            logger.error(f"Could not claim event {event_id} for guild {guild_id}: {e}")
            return self._outcome(guild_id, DeliveryOutcome.CLAIM_FAILED, str(e))

        if not claimed:
            logger.info(f"Event {event_id} already claimed for guild {guild_id}, skipping")
            return self._outcome(guild_id, DeliveryOutcome.DUPLICATE)

        try:
            if recipient.template_error:
                raise TemplateError(recipient.template_error)
            message = self.renderer.render(
                recipient.template,
                streamer,
                snapshot,
                recipient.mention_role_id,
                custom_content=recipient.custom_content,
            )
        except TemplateError as e:
            logger.error(f"Template for guild {guild_id} failed to render: {e}")
            return self._outcome(guild_id, DeliveryOutcome.RENDER_FAILED, str(e))

        channel_id = recipient.channel_id or ""
        try:
            await asyncio.wait_for(
                self.sender.send_message(channel_id, message),
                timeout=self.delivery_timeout,
            )
        except asyncio.TimeoutError:
            reason = f"timed out after {self.delivery_timeout:.1f}s"
            logger.error(f"Send to guild {guild_id} channel {channel_id} failed: {reason}")
            return self._outcome(guild_id, DeliveryOutcome.SEND_FAILED, reason)
        except Exception as e:
            logger.error(f"Send to guild {guild_id} channel {channel_id} failed: {e}")
            return self._outcome(guild_id, DeliveryOutcome.SEND_FAILED, str(e))

        logger.info(f"Notified guild {guild_id} channel {channel_id} for {streamer.twitch_login}")
        return self._outcome(guild_id, DeliveryOutcome.SENT)

    @staticmethod
    def _with_event_fallbacks(streamer: Streamer, event: StreamEvent) -> Streamer:
        if streamer.twitch_display_name and streamer.twitch_login:
            return streamer
        return dataclasses.replace(
            streamer,
            twitch_login=streamer.twitch_login or event.broadcaster_login,
            twitch_display_name=(
                streamer.twitch_display_name
                or event.broadcaster_display_name
                or streamer.twitch_login
                or event.broadcaster_login
            ),
        )

    def _outcome(self, guild_id: str, outcome: DeliveryOutcome, reason: str = "") -> RecipientResult:
        self._record_notification(outcome)
        return RecipientResult(guild_id=guild_id, outcome=outcome, reason=reason)

    def _record_notification(self, outcome: DeliveryOutcome) -> None:
        if self.metrics is not None:
            self.metrics.record_notification(outcome.value)

    def _record_fanout(self, outcome: str, duration: float) -> None:
        if self.metrics is not None:
            self.metrics.record_fanout(outcome, duration)
