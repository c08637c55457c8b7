"""Replay protection for signed Slack deliveries.

WHY: A captured, correctly signed request stays valid for the whole
freshness window of the signature check. Remembering which deliveries
were already processed closes that window.

HOW: Each delivery is keyed by its signature header, which is unique per
(timestamp, body). Keys are kept in a lock-protected dict with an expiry
time; expired keys are swept on every call. Deliveries older than the
TTL are already rejected by the signature check, so the cache never
needs to remember further back than that.

RULES:
- validate_nonce runs BEFORE the signature is trusted
- A missing timestamp or signature is a rejection
- A key seen again within ttl_s raises AuthenticityError
- At most max_keys keys are held; the oldest is evicted first
- All state mutations acquire self._lock
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from confessions_bot.errors import AuthenticityError
from confessions_bot.security.signature import DEFAULT_MAX_AGE_S

logger = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 10_000


class ReplayGuard:
    """In-process cache of recently processed delivery signatures.

    WHY: Slack deliveries carry no server-issued nonce, so the signature
    itself is the cheapest unique delivery key available.

    HOW: _seen maps signature -> expiry epoch, in insertion order.
    validate_nonce sweeps expired entries, rejects known keys, evicts the
    oldest keys once max_keys is reached, and records new ones.

    RULES:
    - ttl_s should match the signature freshness window
    - Every forged delivery also takes a slot, so the cache is bounded
    - clock is injectable for tests
    """

    def __init__(
        self,
        ttl_s: int = DEFAULT_MAX_AGE_S,
        clock: Optional[Callable[[], float]] = None,
        max_keys: int = DEFAULT_MAX_KEYS,
    ) -> None:
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1, got {}".format(max_keys))
        self._ttl_s = ttl_s
        self._clock = clock or time.time
        self._max_keys = max_keys
        self._seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def validate_nonce(self, timestamp: Any, signature: Any) -> None:
        """Record this delivery, raising AuthenticityError if it was seen before."""
        if not isinstance(timestamp, str) or not timestamp:
            raise AuthenticityError("Missing request timestamp")
        if not isinstance(signature, str) or not signature:
            raise AuthenticityError("Missing request signature")

        now = self._clock()
        with self._lock:
            self._sweep(now)
            if signature in self._seen:
                logger.warning("Rejecting replayed delivery (timestamp=%s)", timestamp)
                raise AuthenticityError("Replayed delivery")
            if len(self._seen) >= self._max_keys:
                self._evict(len(self._seen) - self._max_keys + 1)
            self._seen[signature] = now + self._ttl_s

    def _sweep(self, now: float) -> None:
        expired = [key for key, expiry in self._seen.items() if expiry < now]
        for key in expired:
            del self._seen[key]

    def _evict(self, count: int) -> None:
        logger.warning("Replay cache full (%s keys); evicting %s oldest", len(self._seen), count)
        for key in list(itertools.islice(self._seen, count)):
            del self._seen[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
