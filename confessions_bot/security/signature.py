"""Slack request signature verification.

WHY: Both endpoints act on behalf of Slack users, so every delivery must
be proven to come from Slack before any business logic runs. Slack signs
each request with the app's signing secret.

HOW: The headers are checked for shape and freshness here, then the
HMAC itself is left to slack_sdk's SignatureVerifier, pinned to the same
clock reading. Timestamps further than max_age_s from the local clock
are rejected outright.

RULES:
- Operates on the raw, unparsed body bytes
- Missing, non-string or non-numeric headers are a rejection, not an error
- A body that is not UTF-8 is a rejection (Slack only sends UTF-8)
- SignatureVerifier also applies its own 300s window, so a max_age_s
  above 300 has no effect
- No side effects besides logging
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from slack_sdk.signature import Clock, SignatureVerifier

logger = logging.getLogger(__name__)

TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_HEADER = "X-Slack-Signature"

DEFAULT_MAX_AGE_S = 60 * 5


class _PinnedClock(Clock):
    """Clock that always reports the instant the freshness check used."""

    def __init__(self, now: float) -> None:
        self._now = now

    def now(self) -> float:
        return self._now


def verify_signature(
    raw_body: bytes,
    timestamp: Any,
    signature: Any,
    signing_secret: str,
    now: Optional[float] = None,
    max_age_s: int = DEFAULT_MAX_AGE_S,
) -> bool:
    """Decide whether a delivery was signed by Slack.

    Args:
        raw_body: Request body exactly as received.
        timestamp: Value of the X-Slack-Request-Timestamp header.
        signature: Value of the X-Slack-Signature header.
        signing_secret: The app's signing secret.
        now: Current epoch seconds; defaults to time.time().
        max_age_s: Maximum allowed distance between timestamp and now.

    Returns:
        True if the signature matches and the timestamp is fresh.
    """
    if timestamp is None or not isinstance(timestamp, str):
        logger.info("Invalid %s", TIMESTAMP_HEADER)
        return False
    try:
        timestamp_int = int(timestamp, 10)
    except ValueError:
        logger.info("Non-numeric %s: %r", TIMESTAMP_HEADER, timestamp)
        return False

    current = int(time.time() if now is None else now)
    if abs(current - timestamp_int) > max_age_s:
        # Possibly a replay
        logger.warning(
            "Timestamp is more than %ss from local time (ours=%s theirs=%s)",
            max_age_s, current, timestamp_int,
        )
        return False

    if signature is None or not isinstance(signature, str) or not signature.isascii():
        logger.info("Invalid %s", SIGNATURE_HEADER)
        return False

    try:
        body = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        logger.info("Request body is not UTF-8")
        return False

    verifier = SignatureVerifier(signing_secret, clock=_PinnedClock(current))
    if not verifier.is_valid(body=body, timestamp=timestamp, signature=signature):
        logger.info("Signatures do not match")
        return False
    return True
