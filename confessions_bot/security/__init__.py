"""Request authenticity, replay protection, and submitter identity digests."""

from confessions_bot.security.identity import hash_user, new_salt, same_user
from confessions_bot.security.replay import ReplayGuard
from confessions_bot.security.signature import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    verify_signature,
)

__all__ = [
    "ReplayGuard",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "hash_user",
    "new_salt",
    "same_user",
    "verify_signature",
]
