"""Pydantic models for the inbound Slack payloads and API responses.

WHY: Slack delivers three payload families to this service: slash
commands (form-encoded), Events API envelopes (JSON), and interactivity
payloads (a JSON document in a form field). Typed models turn "is this
shaped right?" into a single validation step that happens before any
business logic.

HOW: One model per payload family, all ignoring unknown fields since
Slack adds fields over time. Nested references (channel, message,
action) get their own small models.

RULES:
- Unknown fields are ignored (extra="ignore")
- Only fields the bot uses, or that Slack's slash command payload documents, are declared
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Payload type discriminators
TYPE_URL_VERIFICATION = "url_verification"
TYPE_EVENT_CALLBACK = "event_callback"
TYPE_BLOCK_ACTIONS = "block_actions"


class _SlackModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Slash command
# ---------------------------------------------------------------------------


class CommandPayload(_SlackModel):
    """Form fields Slack sends when a user invokes the slash command."""

    token: Optional[str] = Field(default=None, description="Deprecated verification token.")
    command: str = Field(description="The slash command that was typed, e.g. '/prox2'.")
    text: str = Field(description="Everything the user typed after the command.")
    response_url: str = Field(description="URL for delayed (ephemeral) responses.")
    trigger_id: str = Field(description="Short-lived id for opening modals.")
    user_id: str = Field(description="Slack id of the invoking user. Never stored.")
    user_name: Optional[str] = Field(default=None, description="Legacy user name.")
    team_id: str = Field(description="Workspace id.")
    enterprise_id: Optional[str] = Field(default=None, description="Enterprise grid id.")
    channel_id: str = Field(description="Channel the command was typed in.")
    api_app_id: str = Field(description="Id of this Slack app.")


# ---------------------------------------------------------------------------
# Events API
# ---------------------------------------------------------------------------


class UrlVerificationPayload(_SlackModel):
    """Handshake Slack sends when the events URL is configured."""

    type: str
    token: Optional[str] = None
    challenge: str


class BotProfile(_SlackModel):
    app_id: Optional[str] = None


class MessageEvent(_SlackModel):
    """Inner event of an event_callback; only DM messages are acted on."""

    type: str
    channel_type: Optional[str] = None
    text: Optional[str] = None
    user: Optional[str] = None
    channel: Optional[str] = None
    bot_id: Optional[str] = None
    bot_profile: Optional[BotProfile] = None
    subtype: Optional[str] = None

    @property
    def is_direct_message(self) -> bool:
        return self.type == "message" and self.channel_type == "im"

    @property
    def is_from_bot(self) -> bool:
        return self.bot_profile is not None or self.bot_id is not None


class EventCallbackPayload(_SlackModel):
    type: str
    event_id: Optional[str] = None
    event: MessageEvent


# ---------------------------------------------------------------------------
# Interactivity (button clicks)
# ---------------------------------------------------------------------------


class BlockAction(_SlackModel):
    action_id: str
    value: Optional[str] = None


class ChannelRef(_SlackModel):
    id: str


class MessageRef(_SlackModel):
    ts: str


class ContainerRef(_SlackModel):
    message_ts: Optional[str] = None
    channel_id: Optional[str] = None


class BlockActionsPayload(_SlackModel):
    """A button click on one of the bot's messages."""

    type: str
    actions: List[BlockAction] = Field(min_length=1)
    channel: Optional[ChannelRef] = None
    message: Optional[MessageRef] = None
    container: Optional[ContainerRef] = None

    @property
    def channel_id(self) -> Optional[str]:
        if self.channel is not None:
            return self.channel.id
        if self.container is not None:
            return self.container.channel_id
        return None

    @property
    def message_ts(self) -> Optional[str]:
        if self.message is not None:
            return self.message.ts
        if self.container is not None:
            return self.container.message_ts
        return None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ChallengeResponse(BaseModel):
    challenge: str = Field(description="Echo of the url_verification challenge.")


class HealthResponse(BaseModel):
    status: str = Field(description="Always 'ok' when the service is up.")
    version: str = Field(description="Package version.")


def payload_type(data: Dict[str, Any]) -> Optional[str]:
    """Return the ``type`` discriminator of a decoded payload, if it is a string."""
    value = data.get("type")
    return value if isinstance(value, str) else None
