"""Async Slack messaging client: post, delete, and ephemeral replies.

WHY: The workflow needs three messaging primitives and must be able to
tell a non-exceptional failed send (Slack answered ``ok: false``) apart
from a transport failure. slack_sdk raises on ``ok: false``; this wrapper
turns that into a MessageHandle the caller checks explicitly.

HOW: MessagingClient wraps slack_sdk's AsyncWebClient for chat.postMessage
and chat.delete, and an httpx.AsyncClient for POSTing to slash-command
response_url callbacks. Use as an async context manager so the httpx
connection pool is closed.

RULES:
- post_message never raises on ``ok: false``; check handle.ok
- delete_message raises MessagingError on any failure
- send_ephemeral_response is fire-and-forget: failures are logged, not raised
- web_client and http_client are injectable for tests
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from confessions_bot.config import Settings
from confessions_bot.errors import MessagingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageHandle:
    """Outcome of a chat.postMessage call.

    RULES:
    - ok: False when Slack rejected the message (error holds Slack's code)
    - ts: message timestamp, the handle used to reference or delete it
    """

    ok: bool
    ts: Optional[str] = None
    channel: Optional[str] = None
    error: Optional[str] = None


class MessagingClient:
    """Thin async wrapper over the Slack Web API and response_url callbacks."""

    def __init__(
        self,
        settings: Settings,
        web_client: Optional[AsyncWebClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._web = web_client or AsyncWebClient(token=settings.slack_bot_token)
        self._http = http_client
        self._owns_http = http_client is None

    async def __aenter__(self) -> MessagingClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> MessageHandle:
        """Post a message and return its handle.

        WHY: Callers roll back or abort on a failed send, so the failure
        must be a value they can inspect rather than an exception.

        HOW: Calls chat.postMessage; a SlackApiError (Slack said ``ok:
        false``) becomes MessageHandle(ok=False, error=...). Transport
        errors propagate unchanged.
        """
        try:
            resp = await self._web.chat_postMessage(channel=channel, text=text, blocks=blocks)
        except SlackApiError as exc:
            error = _slack_error_code(exc)
            logger.warning("chat.postMessage to %s failed: %s", channel, error)
            return MessageHandle(ok=False, channel=channel, error=error)

        if not resp.get("ok"):
            error = resp.get("error", "unknown_error")
            logger.warning("chat.postMessage to %s returned ok=false: %s", channel, error)
            return MessageHandle(ok=False, channel=channel, error=error)

        return MessageHandle(ok=True, ts=resp.get("ts"), channel=resp.get("channel", channel))

    async def delete_message(self, channel: str, ts: str) -> None:
        """Delete a message, raising MessagingError if Slack refuses or is unreachable."""
        try:
            resp = await self._web.chat_delete(channel=channel, ts=ts)
        except Exception as exc:
            logger.exception("chat.delete failed for %s in %s", ts, channel)
            raise MessagingError("Failed to delete message {}: {}".format(ts, exc)) from exc
        if not resp.get("ok"):
            raise MessagingError(
                "Failed to delete message {}: {}".format(ts, resp.get("error", "unknown_error"))
            )

    async def send_ephemeral_response(self, response_url: str, text: str) -> None:
        """POST an ephemeral reply to a slash command's response_url."""
        if self._http is None:
            raise RuntimeError(
                "MessagingClient must be used as an async context manager: "
                "async with MessagingClient(settings) as messaging: ..."
            )
        try:
            resp = await self._http.post(
                response_url,
                json={"response_type": "ephemeral", "text": text},
            )
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to send ephemeral response")


def _slack_error_code(exc: SlackApiError) -> str:
    getter = getattr(getattr(exc, "response", None), "get", None)
    if getter is None:
        return "unknown_error"
    return str(getter("error", "unknown_error"))
