"""
Process-local credential cache tier.

The durable store is authoritative. This cache only saves database reads
and decryption for hot users; every write through CredentialStore
invalidates the cached entry, so a stale value can live at most
ttl_seconds and only if another process changed the row.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple


@dataclass(frozen=True)
class CachedCredential:
    """Decrypted credential snapshot. Never log instances of this class."""

    user_id: str
    access_token: Optional[str]
    refresh_token: Optional[str]
    expires_at: Optional[datetime]
    scope: Optional[str]
    last_refreshed_at: Optional[datetime]
    status: str

    def __repr__(self) -> str:
        return f"<CachedCredential(user_id={self.user_id}, status={self.status})>"


class TokenCache:
    """TTL map keyed by user id."""

    def __init__(self, ttl_seconds: int = 120, clock: Callable[[], float] = time.monotonic):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, CachedCredential]] = {}

    def get(self, user_id: str) -> Optional[CachedCredential]:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        cached_at, credential = entry
        if self._clock() - cached_at > self._ttl_seconds:
            self._entries.pop(user_id, None)
            return None
        return credential

    def set(self, credential: CachedCredential) -> None:
        if self._ttl_seconds <= 0:
            return
        self._entries[credential.user_id] = (self._clock(), credential)

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
