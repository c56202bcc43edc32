"""In-process caches for the registry proxy.

Two caches share one idea: entries are replaced wholesale and expiry is
checked on read, never swept.

- TokenCache: anonymous bearer tokens, valid until the issuer's expiry
  minus a safety margin.
- ResponseCache: stale-while-revalidate cache for catalog listings. Fresh
  entries are served as-is; stale entries are served only when a refresh
  fails; entries past the stale window are dropped.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]

DEFAULT_TOKEN_LIFETIME = 300  # seconds, when the issuer omits expires_in
TOKEN_EXPIRY_MARGIN = 30  # seconds


@dataclass(frozen=True)
class CachedToken:
    """Bearer token and the Unix timestamp after which it must be refetched."""
    token: str
    expires_at: float


class TokenCache:
    """Cache of anonymous pull tokens keyed by ``{registry}:{scope}``."""

    def __init__(self, clock: Clock = time.time):
        self.clock = clock
        self._entries: dict[str, CachedToken] = {}

    def is_expired(self, entry: CachedToken) -> bool:
        return entry.expires_at <= self.clock()

    def get(self, key: str) -> Optional[str]:
        """Return the cached token for key, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None or self.is_expired(entry):
            return None
        return entry.token

    def set(self, key: str, token: str, expires_in: Optional[float] = None) -> CachedToken:
        """Store a token for ``expires_in`` seconds minus the safety margin."""
        lifetime = expires_in or DEFAULT_TOKEN_LIFETIME
        entry = CachedToken(
            token=token,
            expires_at=self.clock() + lifetime - TOKEN_EXPIRY_MARGIN,
        )
        self._entries[key] = entry
        return entry


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Cached response data and when it was stored."""
    data: T
    timestamp: float


class ResponseCache:
    """Stale-while-revalidate cache for upstream listing responses."""

    def __init__(self, ttl: float = 3600, stale_ttl: float = 24 * 3600, clock: Clock = time.time):
        self.ttl = ttl
        self.stale_ttl = stale_ttl
        self.clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}

    def get(self, key: str) -> Optional[tuple[Any, bool]]:
        """Get cached data.

        Returns:
            (data, is_stale) if cached, None if missing or past the stale window
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        age = self.clock() - entry.timestamp
        if age > self.stale_ttl:
            self._entries.pop(key, None)
            return None

        return entry.data, age > self.ttl

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data, timestamp=self.clock())

    def clear(self) -> None:
        self._entries.clear()
