"""
Unit tests for the automation webhook client.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from mailbox_onboarding.integrations.webhook_client import WebhookClient
from mailbox_onboarding.utils.errors import NotificationError

HOOK_URL = "http://hooks.test/onboarding"


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", HOOK_URL))


class TestPostEvent:

    @pytest.mark.asyncio
    async def test_posts_json(self):
        client = WebhookClient(HOOK_URL, timeout=10.0)
        event = {"event": "onboarding_config_update", "mailbox_id": "m1"}

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = _response(200)
            await client.post_event(event)

        mock_post.assert_awaited_once_with(HOOK_URL, json=event)

    @pytest.mark.asyncio
    async def test_error_status(self):
        client = WebhookClient(HOOK_URL)

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = _response(503)
            with pytest.raises(NotificationError):
                await client.post_event({"event": "x"})

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = WebhookClient(HOOK_URL)

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.side_effect = httpx.ReadTimeout("slow")
            with pytest.raises(NotificationError):
                await client.post_event({"event": "x"})

    @pytest.mark.asyncio
    async def test_unreachable(self):
        client = WebhookClient(HOOK_URL)

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.side_effect = httpx.ConnectError("refused")
            with pytest.raises(NotificationError):
                await client.post_event({"event": "x"})

    @pytest.mark.asyncio
    async def test_unconfigured_url(self):
        with pytest.raises(NotificationError):
            await WebhookClient("").post_event({"event": "x"})
