"""Exception taxonomy shared by the security, store, messaging and workflow layers.

WHY: The HTTP handlers must tell "reject the request" failures apart
from "tell the user something went wrong" failures, and must never show
internal detail to end users. Typed exceptions make both decisions a
single isinstance check.

HOW: Every error derives from ConfessionsError and carries a
user_message (safe to show in Slack) separate from the exception
message (logged only).

RULES:
- AuthenticityError and ValidationError are raised before business logic
- Store* errors are never retried, always surfaced to the caller
- MessagingError triggers rollback only when staging a confession
"""

from __future__ import annotations

from typing import Optional


class ConfessionsError(Exception):
    """Base class for all errors raised by the bot."""

    default_user_message = "Something went wrong. Please try again later."

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class AuthenticityError(ConfessionsError):
    """Bad signature, stale timestamp, or replayed delivery."""


class ValidationError(ConfessionsError):
    """Inbound payload does not have the expected shape."""

    default_user_message = "That request didn't look right."


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------


class StoreError(ConfessionsError):
    """Base class for record store failures."""


class StoreReadError(StoreError):
    """A lookup failed at the transport or query level."""

    default_user_message = "Failed to fetch the confession record."


class StoreWriteError(StoreError):
    """A create, update or delete did not complete."""

    default_user_message = "Failed to save the confession record."


class StoreConsistencyError(StoreError):
    """A lookup that must match at most one row matched several."""

    default_user_message = "Confession records are in an inconsistent state."


class RecordNotFoundError(StoreConsistencyError):
    """A lookup that must match exactly one row matched none."""

    default_user_message = "Couldn't find that confession."


class RecordAlreadyViewedError(StoreConsistencyError):
    """A moderation decision arrived for a record that already has one."""

    default_user_message = "That confession has already been moderated."


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


class MessagingError(ConfessionsError):
    """A Slack send or delete failed."""

    default_user_message = "Failed to talk to Slack."
