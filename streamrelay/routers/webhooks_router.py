"""Inbound Twitch EventSub webhook route"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, ValidationError

from ..core.dependencies import get_guard, get_limiters, get_metrics, get_verifier
from ..core.metrics import RelayMetrics
from ..core.rate_limiter import GLOBAL_KEY, WEBHOOK_KEY, RateLimiters
from ..core.webhook_guard import IdempotencyGuard
from ..models.stream import StreamEvent
from ..services.signature import SignatureVerifier

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1 << 20

HEADER_MESSAGE_ID = "Twitch-Eventsub-Message-Id"
HEADER_TIMESTAMP = "Twitch-Eventsub-Message-Timestamp"
HEADER_SIGNATURE = "Twitch-Eventsub-Message-Signature"
HEADER_MESSAGE_TYPE = "Twitch-Eventsub-Message-Type"

MESSAGE_TYPE_REVOCATION = "revocation"

STREAM_ONLINE = "stream.online"


# ============================================
# Payload Models
# ============================================


class Subscription(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: str = ""
    version: str = ""
    status: str = ""
    condition: dict = {}


class EventSubEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subscription: Subscription = Subscription()
    challenge: str | None = None
    event: dict | None = None


# ============================================
# Route
# ============================================


def _rate_limit(
    limiters: RateLimiters, metrics: RelayMetrics, client: str
) -> Response | None:
    for limiter, key in ((limiters.webhook, WEBHOOK_KEY), (limiters.global_, GLOBAL_KEY)):
        decision = limiter.check(key)
        if not decision.allowed:
            metrics.record_rate_limited(limiter.name)
            metrics.record_webhook("rate_limited")
            logger.warning(f"Webhook rate limit '{limiter.name}' exceeded (from {client})")
            return Response(
                status_code=429,
                content="Rate limit exceeded",
                media_type="text/plain",
                headers={"Retry-After": str(decision.retry_after)},
            )
    return None


async def _read_capped(request: Request) -> bytes | None:
    """Read the body, stopping as soon as it exceeds MAX_BODY_BYTES (None then)."""
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > MAX_BODY_BYTES:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


async def receive_twitch_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    limiters: RateLimiters = Depends(get_limiters),
    guard: IdempotencyGuard = Depends(get_guard),
    verifier: SignatureVerifier = Depends(get_verifier),
    metrics: RelayMetrics = Depends(get_metrics),
) -> Response:
    """Acknowledge an EventSub delivery and schedule the fan-out after the response."""
    client = request.client.host if request.client else "unknown"

    limited = _rate_limit(limiters, metrics, client)
    if limited is not None:
        return limited

    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > MAX_BODY_BYTES:
        metrics.record_webhook("malformed")
        logger.warning(f"Webhook body too large ({content_length} bytes) from {client}")
        return Response(status_code=400, content="Payload too large", media_type="text/plain")

    body = await _read_capped(request)
    if body is None:
        metrics.record_webhook("malformed")
        logger.warning(f"Webhook body over {MAX_BODY_BYTES} bytes from {client}, read aborted")
        return Response(status_code=400, content="Payload too large", media_type="text/plain")

    message_id = request.headers.get(HEADER_MESSAGE_ID, "")
    timestamp = request.headers.get(HEADER_TIMESTAMP, "")
    signature = request.headers.get(HEADER_SIGNATURE, "")
    message_type = request.headers.get(HEADER_MESSAGE_TYPE, "").lower()

    if message_id and guard.is_duplicate(message_id):
        metrics.record_webhook("duplicate")
        logger.debug(f"Duplicate EventSub message {message_id}, acknowledging")
        return Response(status_code=200)

    check = verifier.check(message_id, timestamp, signature, body)
    if not check:
        metrics.record_webhook("invalid_signature")
        logger.warning(f"Rejected EventSub message {message_id or '-'} from {client}: {check.reason}")
        return Response(status_code=401, content="Invalid signature", media_type="text/plain")

    try:
        envelope = EventSubEnvelope.model_validate_json(body)
    except ValidationError as e:
        metrics.record_webhook("malformed")
        logger.warning(f"Malformed EventSub payload {message_id} from {client}: {e.error_count()} error(s)")
        return Response(status_code=400, content="Malformed payload", media_type="text/plain")

    sub = envelope.subscription

    if envelope.challenge is not None:
        metrics.record_webhook("challenge")
        logger.info(f"EventSub verification handshake for {sub.type or 'unknown'} ({sub.id})")
        return PlainTextResponse(envelope.challenge, status_code=200)

    if message_type == MESSAGE_TYPE_REVOCATION:
        metrics.record_webhook("revocation")
        guard.mark_processed(message_id)
        logger.warning(f"EventSub subscription revoked: type={sub.type} id={sub.id} status={sub.status}")
        return Response(status_code=200)

    if sub.type != STREAM_ONLINE or envelope.event is None:
        metrics.record_webhook("ignored")
        guard.mark_processed(message_id)
        logger.debug(f"Ignoring EventSub {message_type or 'message'} of type {sub.type!r}")
        return Response(status_code=200)

    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        # Not marked: the redelivery should be processed once the dispatcher is up
        logger.warning(f"Dispatcher not ready, asking Twitch to redeliver {message_id}")
        return Response(status_code=503, content="Service not ready", media_type="text/plain")

    if not guard.claim(message_id):
        metrics.record_webhook("duplicate")
        return Response(status_code=200)

    event = StreamEvent.from_payload(envelope.event, fallback_id=message_id)
    logger.info(f"stream.online for {event.broadcaster_login} ({event.broadcaster_id}), event {event.event_id}")
    background_tasks.add_task(dispatcher.handle_stream_online, event.event_id, event)
    metrics.record_webhook("accepted")
    return Response(status_code=200)


def create_webhook_router(path: str = "/webhooks/twitch") -> APIRouter:
    router = APIRouter(tags=["webhooks"])
    router.add_api_route(path, receive_twitch_webhook, methods=["POST"], include_in_schema=False)
    return router
