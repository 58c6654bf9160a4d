"""EventSub webhook signature verification.

Signature: ``sha256=`` + HMAC-SHA256(secret, message_id + timestamp + raw_body),
compared in constant time. Messages whose timestamp is malformed, lacks a
UTC offset, or falls outside the replay window are rejected as well.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ..models.stream import parse_rfc3339

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SignatureCheck:
    valid: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.valid


def compute_signature(secret: str, message_id: str, timestamp: str, body: bytes) -> str:
    message = message_id.encode("utf-8") + timestamp.encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


class SignatureVerifier:
    """Pure check of (message id, timestamp, signature, body) plus a clock read."""

    def __init__(
        self,
        secret: str,
        *,
        max_age_seconds: float = 600.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret = secret
        self.max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock

    def check(self, message_id: str, timestamp: str, signature: str, body: bytes) -> SignatureCheck:
        if not self._secret:
            return SignatureCheck(False, "webhook secret not configured")
        if not message_id or not timestamp or not signature:
            return SignatureCheck(False, "missing signature headers")

        sent_at = parse_rfc3339(timestamp)
        if sent_at is None:
            return SignatureCheck(False, "malformed timestamp")
        if self._clock() - sent_at > self.max_age:
            return SignatureCheck(False, "timestamp outside replay window")

        expected = compute_signature(self._secret, message_id, timestamp, body)
        if not hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8")):
            return SignatureCheck(False, "signature mismatch")
        return SignatureCheck(True)

    def verify(self, message_id: str, timestamp: str, signature: str, body: bytes) -> bool:
        return self.check(message_id, timestamp, signature, body).valid
