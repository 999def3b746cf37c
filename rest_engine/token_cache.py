"""Token Cache - Thread-safe store of OAuth2 access tokens.

Entries are keyed by (grant kind, token URL, identity) where identity is the
client id for client-credentials and the username for password grants.
Entries are immutable CachedToken values: a refresh replaces the whole entry.

The lock only guards single reads and writes. It is never held across a
token exchange, so two threads missing the same key may both fetch; the last
put() wins.
"""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, NamedTuple

from rest_engine.models import CachedToken, GrantKind

logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    grant_kind: GrantKind
    token_url: str
    identity: str


class TokenCache:
    """Maps CacheKey -> CachedToken.

    Usage:
        cache = TokenCache()
        cache.put(key, CachedToken(token="abc", expires_at=time.time() + 3540))
        cached = cache.get(key)  # None once expired
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the cache.

        Args:
            clock: Returns the current instant in epoch seconds. Injectable so
                   tests can move time forward.
        """
        self._clock = clock
        self._entries: dict[CacheKey, CachedToken] = {}
        self._lock = Lock()

    def now(self) -> float:
        return self._clock()

    def get(self, key: CacheKey) -> CachedToken | None:
        """Return the entry for key if it has not expired.

        Expired entries stay in place until replaced or invalidated.
        """
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def put(self, key: CacheKey, entry: CachedToken) -> None:
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, token_url: str, identity: str) -> None:
        """Drop both grant kinds cached for (token_url, identity)."""
        with self._lock:
            for grant_kind in GrantKind:
                self._entries.pop(CacheKey(grant_kind, token_url, identity), None)
        logger.debug("Invalidated cached tokens for %s at %s", identity, token_url)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Token cache cleared")

    def snapshot(self) -> dict[CacheKey, CachedToken]:
        """Copy of every entry, expired or not."""
        with self._lock:
            return dict(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
