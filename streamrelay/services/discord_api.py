"""Discord REST client for posting notifications to channels"""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from ..core.exceptions import DeliveryError
from ..models.message import DiscordMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    status: int
    message_id: str | None = None
    retried: bool = False


def _json_object(response: httpx.Response) -> dict:
    """Response body as a dict; empty for non-JSON or non-object bodies."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _retry_after(response: httpx.Response) -> float:
    """Seconds to wait from a 429, preferring the precise JSON body value."""
    value = _json_object(response).get("retry_after")
    try:
        if value is not None:
            return max(float(value), 0.0)
    except (TypeError, ValueError):
        pass
    try:
        return max(float(response.headers.get("Retry-After", "1")), 0.0)
    except ValueError:
        return 1.0


class DiscordAPIClient:
    """Client for the Discord bot REST API"""

    DISCORD_API_URL = "https://discord.com/api/v10"

    def __init__(
        self,
        bot_token: str,
        *,
        timeout: float = 10.0,
        max_retry_wait: float = 5.0,
        http: httpx.AsyncClient | None = None,
    ):
        self.bot_token = bot_token
        self.max_retry_wait = max_retry_wait

        # Shared HTTP client, reuses TCP connections across requests
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bot {self.bot_token}",
            "Content-Type": "application/json",
        }

    async def _post_message(self, channel_id: str, payload: dict) -> httpx.Response:
        try:
            return await self._http.post(
                f"{self.DISCORD_API_URL}/channels/{channel_id}/messages",
                json=payload,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"transport error: {e}") from e

    async def send_message(self, channel_id: str, message: DiscordMessage) -> SendResult:
        """Post *message* to *channel_id*.

        A 429 is retried once after the advertised backoff, provided the
        backoff fits within ``max_retry_wait``. Every other non-2xx status is
        terminal and raised as ``DeliveryError``.
        """
        payload = message.to_payload()
        response = await self._post_message(channel_id, payload)
        retried = False

        if response.status_code == 429:
            wait = _retry_after(response)
            if wait > self.max_retry_wait:
                raise DeliveryError(f"rate limited for {wait:.1f}s", status=429)
            logger.info(f"Discord rate limited channel {channel_id}, retrying in {wait:.2f}s")
            await asyncio.sleep(wait)
            response = await self._post_message(channel_id, payload)
            retried = True

        if response.status_code not in (200, 201):
            reason = response.text[:200] if response.text else response.reason_phrase
            raise DeliveryError(reason, status=response.status_code)

        message_id = _json_object(response).get("id")
        return SendResult(status=response.status_code, message_id=message_id, retried=retried)
