"""
Tests for the Discord message-send client
"""

import json

import httpx
import pytest

from streamrelay.core.exceptions import DeliveryError
from streamrelay.models import DiscordMessage
from streamrelay.services.discord_api import DiscordAPIClient

MESSAGE = DiscordMessage(content="Nova is now live!")


def make_client(handler, **kwargs) -> DiscordAPIClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DiscordAPIClient("bot-token", http=http, **kwargs)


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_posts_to_channel_with_bot_auth(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "m-1"})

        client = make_client(handler)
        result = await client.send_message("c-1", MESSAGE)
        await client.close()

        assert result.status == 200
        assert result.message_id == "m-1"
        assert seen[0].url == "https://discord.com/api/v10/channels/c-1/messages"
        assert seen[0].headers["Authorization"] == "Bot bot-token"
        assert json.loads(seen[0].content)["content"] == "Nova is now live!"

    @pytest.mark.asyncio
    async def test_429_retried_once_after_backoff(self):
        responses = [
            httpx.Response(429, json={"retry_after": 0.01, "global": False}),
            httpx.Response(200, json={"id": "m-2"}),
        ]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return responses[len(calls) - 1]

        client = make_client(handler)
        result = await client.send_message("c-1", MESSAGE)

        assert len(calls) == 2
        assert result.retried is True

    @pytest.mark.asyncio
    async def test_second_429_is_terminal(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, json={"retry_after": 0.01})

        client = make_client(handler)
        with pytest.raises(DeliveryError) as exc_info:
            await client.send_message("c-1", MESSAGE)

        assert exc_info.value.status == 429
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_backoff_longer_than_budget_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "30"}, text="")

        client = make_client(handler, max_retry_wait=4.0)
        with pytest.raises(DeliveryError):
            await client.send_message("c-1", MESSAGE)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_other_errors_are_terminal(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(403, json={"message": "Missing Access", "code": 50001})

        client = make_client(handler)
        with pytest.raises(DeliveryError) as exc_info:
            await client.send_message("c-1", MESSAGE)

        assert exc_info.value.status == 403
        assert "Missing Access" in str(exc_info.value)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(DeliveryError, match="transport error"):
            await client.send_message("c-1", MESSAGE)

    @pytest.mark.asyncio
    async def test_non_object_json_on_success_still_sent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["unexpected"])

        result = await make_client(handler).send_message("c-1", MESSAGE)

        assert result.status == 200
        assert result.message_id is None

    @pytest.mark.asyncio
    async def test_non_object_429_body_falls_back_to_header(self):
        responses = [
            httpx.Response(429, headers={"Retry-After": "0"}, json=[1, 2]),
            httpx.Response(200, json={"id": "m-3"}),
        ]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return responses[len(calls) - 1]

        result = await make_client(handler).send_message("c-1", MESSAGE)

        assert result.message_id == "m-3"
        assert result.retried is True
