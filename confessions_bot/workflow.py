"""Moderation workflow: stage, approve/disapprove, publish.

WHY: A confession moves Submitted → Staged → {Published, Rejected}, and
each transition touches two external systems (the record table and
Slack) that cannot share a transaction. The order of the side effects
is what bounds the damage of a failure halfway through.

HOW: ModerationWorkflow holds a RecordStore, a MessagingClient and the
Settings, all injected. stage_confession creates the record then posts
the staging message, undoing the create if the post fails.
view_confession publishes (if approved), persists the decision, then
deletes the staging message.

RULES:
- Staging: create record → post staging message → persist staging_ts
  A failed post deletes the record, then raises MessagingError
- Viewing: publish → persist (approved, viewed, published_ts) → delete staging
  A failed publish aborts before anything is written
  A record that is already viewed is refused before anything is sent
- No retries and no locking; every failure propagates to the caller
- Accepted residue (not healed): a record with no staging_ts if the
  process dies between create and post; a published message whose
  record update failed; a staging message whose delete failed
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from confessions_bot.config import Settings
from confessions_bot.errors import (
    MessagingError,
    RecordAlreadyViewedError,
    RecordNotFoundError,
    StoreWriteError,
)
from confessions_bot.slack.client import MessageHandle, MessagingClient
from confessions_bot.slack.messages import (
    build_staging_blocks,
    format_published_text,
    staging_fallback_text,
)
from confessions_bot.store.client import RecordStore
from confessions_bot.store.models import (
    FIELD_APPROVED,
    FIELD_PUBLISHED_TS,
    FIELD_STAGING_TS,
    FIELD_VIEWED,
    ConfessionRecord,
)

logger = logging.getLogger(__name__)


class _Compensations:
    """Stack of undo actions, run newest-first when a later step fails.

    Each entry pairs a description with a coroutine factory. unwind()
    runs them in reverse registration order and stops at the first
    failure, which it raises as StoreWriteError chained to the cause.
    """

    def __init__(self) -> None:
        self._undo: List[Tuple[str, Callable[[], Awaitable[Any]]]] = []

    def push(self, description: str, undo: Callable[[], Awaitable[Any]]) -> None:
        self._undo.append((description, undo))

    async def unwind(self) -> None:
        while self._undo:
            description, undo = self._undo.pop()
            logger.info("Rolling back: %s", description)
            try:
                await undo()
            except Exception as exc:
                logger.exception("Rollback failed: %s", description)
                raise StoreWriteError(
                    "Rollback failed ({}): {}".format(description, exc),
                ) from exc


class ModerationWorkflow:
    """Orchestrates the confession state machine over the store and Slack."""

    def __init__(
        self,
        store: RecordStore,
        messaging: MessagingClient,
        settings: Settings,
    ) -> None:
        self._store = store
        self._messaging = messaging
        self._settings = settings

    # ------------------------------------------------------------------
    # Submitted → Staged
    # ------------------------------------------------------------------

    async def stage_confession(self, text: str, uid: str) -> ConfessionRecord:
        """Create a record for ``text`` and post it to the staging channel.

        WHY: Moderators only ever see confessions through the staging
        message, so a record without one is useless; if the post fails
        the record is removed again.

        HOW: create_record → post_message(staging blocks). A thrown or
        ``ok=False`` post unwinds the create and raises MessagingError.
        On success the message ts is written back as staging_ts.

        RULES:
        - Raises StoreWriteError if the create, the rollback, or the
          staging_ts write fails
        - Raises MessagingError if the post failed and was rolled back
        - Returns the record with staging_ts set
        """
        logger.info("Staging confession...")
        compensations = _Compensations()

        record = await self._store.create_record(text, uid)
        compensations.push(
            "delete record {}".format(record.id),
            lambda: self._store.delete_record(record),
        )

        logger.info("Posting record %s to staging channel...", record.id)
        handle: Optional[MessageHandle] = None
        failure: Optional[BaseException] = None
        try:
            handle = await self._messaging.post_message(
                self._settings.staging_channel,
                staging_fallback_text(record),
                blocks=build_staging_blocks(record),
            )
        except Exception as exc:
            logger.exception("Staging post raised for record %s", record.id)
            failure = exc

        if handle is None or not handle.ok or not handle.ts:
            reason = handle.error if handle is not None else failure
            logger.info("Failed to post staging message (%s). Rolling back record...", reason)
            await compensations.unwind()
            raise MessagingError(
                "Failed to post message to staging channel: {}".format(reason),
                user_message="Failed to post message to staging channel",
            ) from failure

        logger.info("Posted staging message %s; updating record...", handle.ts)
        record = await self._store.update_record(record, {FIELD_STAGING_TS: handle.ts})
        logger.info("Staged record %s", record.id)
        return record

    # ------------------------------------------------------------------
    # Staged → Published | Rejected
    # ------------------------------------------------------------------

    async def view_confession(self, staging_ts: str, approved: bool) -> ConfessionRecord:
        """Apply a moderator's decision to the confession staged as ``staging_ts``.

        WHY: Publishing before persisting and persisting before deleting
        the staging message means the worst outcome of a crash is a stale
        staging message, never a lost or doubled publication.

        HOW: Find the unique record; if approved, post the public text and
        require ``ok``; write approved/viewed/published_ts; delete the
        staging message.

        RULES:
        - RecordNotFoundError / StoreConsistencyError before any side effect
        - RecordAlreadyViewedError before any side effect if the record
          already carries a decision; a decision is never changed
        - MessagingError on a failed publish leaves the record Staged
        - StoreWriteError if the decision could not be persisted (a public
          message may already exist)
        - MessagingError if the staging message could not be deleted
          (the decision is already persisted)
        """
        logger.info(
            "%s confession with staging_ts=%s...",
            "Approving" if approved else "Disapproving",
            staging_ts,
        )
        record = await self._store.find_by_staging_ts(staging_ts)
        if record is None:
            raise RecordNotFoundError(
                "Failed to find single record with staging_ts={}, got 0".format(staging_ts)
            )
        if record.viewed:
            # Stale staging message left by a failed delete
            raise RecordAlreadyViewedError(
                "Record {} was already moderated (approved={})".format(record.id, record.approved)
            )

        published_ts: Optional[str] = None
        if approved:
            logger.info("Publishing record %s...", record.id)
            try:
                handle = await self._messaging.post_message(
                    self._settings.confessions_channel,
                    format_published_text(record),
                )
            except Exception as exc:
                raise MessagingError(
                    "Failed to publish record {}: {}".format(record.id, exc),
                    user_message="Failed to publish message!",
                ) from exc
            if not handle.ok or not handle.ts:
                raise MessagingError(
                    "Failed to publish record {}: {}".format(record.id, handle.error),
                    user_message="Failed to publish message!",
                )
            published_ts = handle.ts
            logger.info("Published record %s as %s", record.id, published_ts)

        logger.info("Updating record %s...", record.id)
        record = await self._store.update_record(
            record,
            {
                FIELD_APPROVED: approved,
                FIELD_VIEWED: True,
                FIELD_PUBLISHED_TS: published_ts,
            },
        )

        logger.info("Deleting staging message %s...", staging_ts)
        await self._messaging.delete_message(self._settings.staging_channel, staging_ts)
        logger.info("Record %s moderated", record.id)
        return record
