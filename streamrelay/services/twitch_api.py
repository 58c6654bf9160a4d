"""Twitch Helix client used for stream snapshot lookups.

Only the App Access Token (client credentials) is needed: ``GET /streams`` is
a public endpoint. The token is fetched lazily and cached until shortly
before it expires.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx

from ..core.exceptions import StreamLookupError
from ..models.stream import StreamSnapshot

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
TOKEN_URL = "https://id.twitch.tv/oauth2/token"

# Refresh the app token this long before Twitch says it expires
TOKEN_EXPIRY_MARGIN = 300


@dataclass
class _AppToken:
    value: str
    expires_at: float

    def usable(self, now: float) -> bool:
        return now < self.expires_at


class TwitchAPIClient:
    """Helix ``/streams`` lookups on one pooled httpx client and one cached app token."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 10.0,
        http: httpx.AsyncClient | None = None,
    ):
        if not (client_id and client_secret):
            raise ValueError("TwitchAPIClient needs both a client id and a client secret")

        self.client_id = client_id
        self._client_secret = client_secret
        # Shared HTTP client, reuses TCP connections across requests
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._token: _AppToken | None = None
        self._token_lock = asyncio.Lock()

    async def close(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # App token
    # ------------------------------------------------------------------

    async def _fetch_app_token(self) -> _AppToken:
        form = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
        }
        try:
            response = await self._http.post(TOKEN_URL, data=form)
        except httpx.HTTPError as e:
            raise StreamLookupError(f"app token request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Twitch refused the app token request ({response.status_code})")
            raise StreamLookupError(f"app token request returned {response.status_code}")

        body = response.json()
        value = body.get("access_token")
        if not value:
            raise StreamLookupError("app token response had no access_token")
        lifetime = max(int(body.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN, 0)
        logger.debug(f"Fetched Twitch app token valid for {lifetime}s")
        return _AppToken(value, time.monotonic() + lifetime)

    async def _ensure_app_token(self) -> str:
        token = self._token
        if token is not None and token.usable(time.monotonic()):
            return token.value

        async with self._token_lock:
            # Another task may have refreshed it while we waited
            token = self._token
            if token is None or not token.usable(time.monotonic()):
                token = self._token = await self._fetch_app_token()
            return token.value

    # ------------------------------------------------------------------
    # Helix
    # ------------------------------------------------------------------

    async def _helix_get(self, path: str, params: dict | None = None) -> httpx.Response:
        """GET request to Helix with the app token. Retries once on a stale token."""
        for attempt in range(2):
            token = await self._ensure_app_token()
            try:
                response = await self._http.get(
                    f"{HELIX_BASE}/{path}",
                    params=params,
                    headers={"Authorization": f"Bearer {token}", "Client-Id": self.client_id},
                )
            except httpx.HTTPError as e:
                raise StreamLookupError(f"Helix GET /{path} failed: {e}") from e

            if response.status_code == 401 and attempt == 0:
                logger.info("App token rejected by Helix, refreshing")
                self._token = None
                continue
            return response

        return response

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    async def get_stream(self, broadcaster_id: str) -> StreamSnapshot | None:
        """Current stream for *broadcaster_id*.

        Returns ``None`` when the broadcaster is offline. Raises
        ``StreamLookupError`` when the lookup itself fails.
        """
        response = await self._helix_get("streams", {"user_id": broadcaster_id})
        if response.status_code != 200:
            logger.error(f"Failed to fetch stream for {broadcaster_id}: {response.status_code}")
            raise StreamLookupError(f"Helix /streams returned {response.status_code}")

        try:
            streams = response.json().get("data") or []
        except ValueError as e:
            raise StreamLookupError("Helix /streams returned invalid JSON") from e

        if not streams:
            return None
        return StreamSnapshot.from_helix(streams[0])
