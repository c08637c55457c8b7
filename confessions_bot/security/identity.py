"""Salted identity digests for anonymous submitters.

WHY: Confessions are anonymous, but it is still useful to prove that two
submissions came from the same Slack user without ever storing who that
user is.

HOW: Each record gets its own random salt. The Slack user id is run
through scrypt with that salt and the hex digest is stored. Checking a
candidate user recomputes the digest with the stored salt and compares
in constant time.

RULES:
- Salts are 16 random bytes, hex-encoded, unique per record
- Digests are 64 bytes of scrypt output (N=16384, r=8, p=1), hex-encoded
- Comparison uses hmac.compare_digest, never ==
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from confessions_bot.store.models import ConfessionRecord

SALT_BYTES = 16
DIGEST_BYTES = 64

_SCRYPT_N = 16384
_SCRYPT_R = 8
_SCRYPT_P = 1


def new_salt() -> str:
    """Return a fresh hex-encoded salt."""
    return secrets.token_hex(SALT_BYTES)


def hash_user(uid: str, salt: str) -> str:
    """Return the hex scrypt digest of a Slack user id under ``salt``."""
    digest = hashlib.scrypt(
        uid.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=DIGEST_BYTES,
    )
    return digest.hex()


def same_user(record: ConfessionRecord, uid: str) -> bool:
    """Return True if ``uid`` is the user who submitted ``record``."""
    candidate = hash_user(uid, record.uid_salt)
    return hmac.compare_digest(candidate.encode("utf-8"), record.uid_hash.encode("utf-8"))
