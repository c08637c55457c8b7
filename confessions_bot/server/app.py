"""FastAPI application: slash-command and events/interactivity endpoints.

WHY: Slack reaches the bot through two HTTP URLs: the slash command
URL and the events/interactivity URL. Both must prove the delivery is
authentic and fresh before handing it to the moderation workflow, and
must translate workflow failures into something safe to show users.

HOW: create_app() builds the app around injected collaborators (store,
messaging client, replay guard, settings), kept on app.state. Each
endpoint reads the raw body, runs the replay guard and the signature
check, validates the payload with pydantic, then dispatches.

RULES:
- Replay guard, then signature check, before any parsing or logic
- Authenticity or shape failures → 400, nothing else happens
- Command flow: workflow errors go to the user as an ephemeral message,
  the HTTP response is still 204
- Event flow: url_verification echoes the challenge; button clicks drive
  view_confession; a workflow failure is logged and answered with a bare 500
- Internal error detail is logged, never returned to Slack
"""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

import pydantic
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from confessions_bot import __version__
from confessions_bot.config import Settings
from confessions_bot.errors import AuthenticityError, ConfessionsError, ValidationError
from confessions_bot.security.replay import ReplayGuard
from confessions_bot.security.signature import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    verify_signature,
)
from confessions_bot.server.models import (
    TYPE_BLOCK_ACTIONS,
    TYPE_EVENT_CALLBACK,
    TYPE_URL_VERIFICATION,
    BlockActionsPayload,
    ChallengeResponse,
    CommandPayload,
    EventCallbackPayload,
    HealthResponse,
    UrlVerificationPayload,
    payload_type,
)
from confessions_bot.slack.client import MessagingClient
from confessions_bot.slack.messages import (
    ACTION_APPROVE,
    ACTION_DISAPPROVE,
    ACTION_OPEN_IN_BROWSER,
    STAGED_MESSAGE,
    format_dm_redirect,
    format_empty_text,
)
from confessions_bot.store.client import AirtableRecordStore, RecordStore
from confessions_bot.workflow import ModerationWorkflow

logger = logging.getLogger(__name__)

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    messaging: Optional[MessagingClient] = None,
    replay_guard: Optional[ReplayGuard] = None,
) -> FastAPI:
    """Create the FastAPI app with all collaborators wired in.

    WHY: Factory function lets tests inject fakes and avoids reading the
    environment at import time.

    HOW: Missing collaborators are built from Settings (which itself
    defaults to Settings.from_env()). The lifespan enters the store and
    messaging client as async context managers so their HTTP pools are
    opened on startup and closed on shutdown.

    RULES:
    - Collaborators live on app.state; handlers never read globals
    - Run with: uvicorn --factory confessions_bot.server.app:create_app
    """
    settings = settings or Settings.from_env()
    store = store if store is not None else AirtableRecordStore(settings)
    messaging = messaging if messaging is not None else MessagingClient(settings)
    replay_guard = replay_guard or ReplayGuard(ttl_s=settings.signature_max_age_s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the collaborators' HTTP clients for the app's lifetime."""
        async with AsyncExitStack() as stack:
            await stack.enter_async_context(store)
            await stack.enter_async_context(messaging)
            yield

    app = FastAPI(
        lifespan=lifespan,
        title="Confessions Bot",
        description=(
            "Slack webhook backend for anonymous confessions. Users submit text "
            "with a slash command, moderators approve or disapprove it in a "
            "staging channel, and approved confessions are published."
        ),
        version=__version__,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.messaging = messaging
    app.state.replay_guard = replay_guard
    app.state.workflow = ModerationWorkflow(store, messaging, settings)

    app.add_api_route(
        "/api/command",
        handle_command,
        methods=["POST"],
        status_code=204,
        response_class=Response,
        tags=["slack"],
        summary="Submit a confession via slash command",
        description=(
            "Receives the form-encoded slash command payload, stages the "
            "confession for moderation, and replies to the user ephemerally "
            "through response_url."
        ),
        responses={400: {"description": "Unauthentic, replayed or malformed delivery"}},
    )
    app.add_api_route(
        "/api/events",
        handle_events,
        methods=["POST"],
        tags=["slack"],
        summary="Events API and interactivity callback",
        description=(
            "Handles the url_verification handshake, direct-message events, "
            "and moderation button clicks from the staging channel."
        ),
        responses={
            200: {"model": ChallengeResponse, "description": "url_verification handshake"},
            204: {"description": "Delivery processed"},
            400: {"description": "Unauthentic, replayed or malformed delivery"},
            500: {"description": "Moderation action failed"},
        },
    )
    app.add_api_route(
        "/health",
        health,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["system"],
        summary="Health check",
        description="Returns ok and the package version.",
    )
    return app


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _authenticate(request: Request) -> bytes:
    """Return the raw body if the delivery is fresh and signed by Slack.

    Raises HTTPException(400) otherwise. Nothing else has run yet.
    """
    raw_body = await request.body()
    timestamp = request.headers.get(TIMESTAMP_HEADER)
    signature = request.headers.get(SIGNATURE_HEADER)
    settings: Settings = request.app.state.settings

    try:
        request.app.state.replay_guard.validate_nonce(timestamp, signature)
    except AuthenticityError as exc:
        logger.info("Replay check failed: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid request") from exc

    if not verify_signature(
        raw_body,
        timestamp,
        signature,
        settings.slack_signing_secret,
        max_age_s=settings.signature_max_age_s,
    ):
        logger.info("Invalid signature")
        raise HTTPException(status_code=400, detail="Invalid request")
    return raw_body


def _parse_form(raw_body: bytes) -> Dict[str, str]:
    try:
        return dict(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
    except UnicodeDecodeError as exc:
        raise ValidationError("Form body is not UTF-8") from exc


def _decode_event_body(request: Request, raw_body: bytes) -> Dict[str, Any]:
    """Decode a JSON event body or a form-wrapped interactivity payload."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith(_FORM_CONTENT_TYPE):
            form = _parse_form(raw_body)
            if "payload" not in form:
                raise ValidationError("Form body has no payload field")
            data = json.loads(form["payload"])
        else:
            data = json.loads(raw_body)
    except json.JSONDecodeError as exc:
        raise ValidationError("Body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise ValidationError("Payload is not a JSON object")
    return data


def _validate(model: Any, data: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError("Malformed {}: {}".format(model.__name__, exc)) from exc


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


async def handle_command(request: Request) -> Response:
    """Stage a confession submitted through the slash command."""
    raw_body = await _authenticate(request)
    try:
        payload = _validate(CommandPayload, _parse_form(raw_body))
    except ValidationError as exc:
        logger.info("Rejecting command: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid request") from exc

    settings: Settings = request.app.state.settings
    messaging: MessagingClient = request.app.state.messaging
    workflow: ModerationWorkflow = request.app.state.workflow

    text = payload.text.strip()
    if not text:
        await messaging.send_ephemeral_response(
            payload.response_url, format_empty_text(settings.slash_command)
        )
        return Response(status_code=204)

    try:
        await workflow.stage_confession(text, payload.user_id)
    except ConfessionsError as exc:
        logger.exception("Failing with error: %s", exc)
        await messaging.send_ephemeral_response(payload.response_url, exc.user_message)
        return Response(status_code=204)
    except Exception:
        logger.exception("Unexpected error while staging confession")
        await messaging.send_ephemeral_response(
            payload.response_url, ConfessionsError.default_user_message
        )
        return Response(status_code=204)

    logger.info("Succeeding with message: %s", STAGED_MESSAGE)
    await messaging.send_ephemeral_response(payload.response_url, STAGED_MESSAGE)
    return Response(status_code=204)


async def handle_events(request: Request) -> Response:
    """Dispatch an Events API or interactivity delivery by its type."""
    raw_body = await _authenticate(request)
    try:
        data = _decode_event_body(request, raw_body)
    except ValidationError as exc:
        logger.info("Rejecting event: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid request") from exc

    kind = payload_type(data)
    logger.info("Event! Type = %s", kind)
    try:
        if kind == TYPE_URL_VERIFICATION:
            handshake = _validate(UrlVerificationPayload, data)
            return JSONResponse(ChallengeResponse(challenge=handshake.challenge).model_dump())
        if kind == TYPE_EVENT_CALLBACK:
            await _handle_event_callback(request, _validate(EventCallbackPayload, data))
        elif kind == TYPE_BLOCK_ACTIONS:
            return await _handle_block_actions(request, _validate(BlockActionsPayload, data))
        else:
            logger.info("Ignoring payload of type %s", kind)
    except ValidationError as exc:
        logger.info("Rejecting event: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid request") from exc

    logger.info("Request success")
    return Response(status_code=204)


async def _handle_event_callback(request: Request, payload: EventCallbackPayload) -> None:
    """Point users who DM the bot at the slash command."""
    event = payload.event
    if not event.is_direct_message or event.is_from_bot or not event.channel:
        return

    settings: Settings = request.app.state.settings
    messaging: MessagingClient = request.app.state.messaging
    logger.info("DM! Replying with slash command hint")
    handle = await messaging.post_message(
        event.channel,
        format_dm_redirect(settings.slash_command, settings.confessions_channel),
    )
    if not handle.ok:
        logger.warning("Failed to reply to DM: %s", handle.error)


async def _handle_block_actions(request: Request, payload: BlockActionsPayload) -> Response:
    """Apply a moderator's button click to the staged confession."""
    settings: Settings = request.app.state.settings
    workflow: ModerationWorkflow = request.app.state.workflow

    if payload.channel_id != settings.staging_channel:
        raise ValidationError(
            "Moderation action from unexpected channel {}".format(payload.channel_id)
        )
    staging_ts = payload.message_ts
    if not staging_ts:
        raise ValidationError("Moderation action without a message ts")

    action_id = payload.actions[0].action_id
    if action_id == ACTION_OPEN_IN_BROWSER:
        return Response(status_code=204)
    if action_id not in (ACTION_APPROVE, ACTION_DISAPPROVE):
        raise ValidationError("Unknown action {}".format(action_id))

    try:
        await workflow.view_confession(staging_ts, action_id == ACTION_APPROVE)
    except Exception:
        logger.exception("Moderation action %s failed for staging_ts=%s", action_id, staging_ts)
        return Response(status_code=500)

    logger.info("Request success")
    return Response(status_code=204)


async def health() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)
