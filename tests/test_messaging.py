"""Tests for the Slack messaging client.

WHY: The workflow's rollback and abort logic depends on post_message
reporting ``ok: false`` as a value, delete_message raising, and
ephemeral replies never raising.

HOW: The slack_sdk AsyncWebClient is replaced by an AsyncMock; the
response_url client is an httpx.AsyncClient over a MockTransport.

RULES:
- Slack is never called
- SlackApiError from chat.postMessage → MessageHandle(ok=False)
- Transport errors from chat.postMessage propagate
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from slack_sdk.errors import SlackApiError

from confessions_bot.errors import MessagingError
from confessions_bot.slack.client import MessageHandle, MessagingClient


def _web(**methods):
    web = MagicMock()
    for name, value in methods.items():
        setattr(web, name, value)
    return web


# ---------------------------------------------------------------------------
# Tests: post_message
# ---------------------------------------------------------------------------


class TestPostMessage:

    def test_success_returns_handle(self, settings):
        web = _web(chat_postMessage=AsyncMock(return_value={"ok": True, "ts": "1.2", "channel": "C1"}))
        client = MessagingClient(settings, web_client=web)

        handle = asyncio.run(client.post_message("C1", "hi", blocks=[{"type": "divider"}]))

        assert handle == MessageHandle(ok=True, ts="1.2", channel="C1")
        web.chat_postMessage.assert_awaited_once_with(
            channel="C1", text="hi", blocks=[{"type": "divider"}]
        )

    def test_slack_api_error_is_a_value(self, settings):
        error = SlackApiError("failed", {"ok": False, "error": "channel_not_found"})
        web = _web(chat_postMessage=AsyncMock(side_effect=error))
        client = MessagingClient(settings, web_client=web)

        handle = asyncio.run(client.post_message("C1", "hi"))

        assert handle.ok is False
        assert handle.ts is None
        assert handle.error == "channel_not_found"

    def test_ok_false_response_is_a_value(self, settings):
        web = _web(chat_postMessage=AsyncMock(return_value={"ok": False, "error": "not_in_channel"}))
        client = MessagingClient(settings, web_client=web)

        handle = asyncio.run(client.post_message("C1", "hi"))

        assert handle.ok is False
        assert handle.error == "not_in_channel"

    def test_transport_error_propagates(self, settings):
        web = _web(chat_postMessage=AsyncMock(side_effect=ConnectionError("down")))
        client = MessagingClient(settings, web_client=web)

        with pytest.raises(ConnectionError):
            asyncio.run(client.post_message("C1", "hi"))


# ---------------------------------------------------------------------------
# Tests: delete_message
# ---------------------------------------------------------------------------


class TestDeleteMessage:

    def test_success(self, settings):
        web = _web(chat_delete=AsyncMock(return_value={"ok": True}))
        client = MessagingClient(settings, web_client=web)

        asyncio.run(client.delete_message("C1", "1.2"))

        web.chat_delete.assert_awaited_once_with(channel="C1", ts="1.2")

    def test_slack_error_raises(self, settings):
        error = SlackApiError("failed", {"ok": False, "error": "message_not_found"})
        web = _web(chat_delete=AsyncMock(side_effect=error))
        client = MessagingClient(settings, web_client=web)

        with pytest.raises(MessagingError):
            asyncio.run(client.delete_message("C1", "1.2"))

    def test_ok_false_raises(self, settings):
        web = _web(chat_delete=AsyncMock(return_value={"ok": False, "error": "cant_delete_message"}))
        client = MessagingClient(settings, web_client=web)

        with pytest.raises(MessagingError, match="cant_delete_message"):
            asyncio.run(client.delete_message("C1", "1.2"))


# ---------------------------------------------------------------------------
# Tests: send_ephemeral_response
# ---------------------------------------------------------------------------


class TestSendEphemeralResponse:

    def _run(self, settings, handler):
        sent = []

        def _capture(request):
            sent.append(request)
            return handler(request)

        async def _go():
            http = httpx.AsyncClient(transport=httpx.MockTransport(_capture))
            async with MessagingClient(settings, web_client=_web(), http_client=http) as client:
                await client.send_ephemeral_response("https://hooks.slack.com/commands/T1/2/3", "Thanks!")
            await http.aclose()

        asyncio.run(_go())
        return sent

    def test_posts_ephemeral_json(self, settings):
        sent = self._run(settings, lambda r: httpx.Response(200))
        assert len(sent) == 1
        assert str(sent[0].url) == "https://hooks.slack.com/commands/T1/2/3"
        assert json.loads(sent[0].content) == {"response_type": "ephemeral", "text": "Thanks!"}

    def test_failure_is_logged_not_raised(self, settings, caplog):
        sent = self._run(settings, lambda r: httpx.Response(500))
        assert len(sent) == 1
        assert "Failed to send ephemeral response" in caplog.text

    def test_requires_context_manager(self, settings):
        client = MessagingClient(settings, web_client=_web())
        with pytest.raises(RuntimeError):
            asyncio.run(client.send_ephemeral_response("https://example.invalid", "x"))
