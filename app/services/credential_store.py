"""
Session Credential Store

Server-side storage for interstitial credentials, keyed by
(session id, link code). The browser only carries an opaque session id in
a signed cookie; tokens never leave the server except on the interstitial
response itself.

Design:
- At most one credential per (session, code); put() overwrites
- take() reads and removes under a mutex, so a token can be redeemed once
- Bounded: the least recently issued credential is evicted at capacity
- Entries older than the session lifetime are treated as gone and removed
  by sweep_expired()
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredCredential:
    token: str
    issued_at: float
    referrer: Optional[str] = None


class SessionCredentialStore:
    """Bounded in-memory credential map with TTL eviction."""

    def __init__(
        self,
        max_entries: int = 100_000,
        ttl_seconds: float = 86400,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: "OrderedDict[Tuple[str, str], StoredCredential]" = OrderedDict()
        self._mutex = threading.Lock()

    def now(self) -> float:
        return self.clock()

    def _expired(self, credential: StoredCredential, now: float) -> bool:
        return now - credential.issued_at >= self.ttl_seconds

    def put(self, session_id: str, link_code: str, credential: StoredCredential) -> None:
        key = (session_id, link_code)
        with self._mutex:
            self._entries.pop(key, None)
            self._entries[key] = credential
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.warning(f"Credential store full, evicted credential for {evicted[1]}")

    def take(self, session_id: str, link_code: str) -> Optional[StoredCredential]:
        """Atomically remove and return the credential, None if absent or expired."""
        with self._mutex:
            credential = self._entries.pop((session_id, link_code), None)
        if credential is None or self._expired(credential, self.now()):
            return None
        return credential

    def sweep_expired(self) -> int:
        now = self.now()
        with self._mutex:
            stale = [key for key, cred in self._entries.items() if self._expired(cred, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info(f"Removed {len(stale)} expired interstitial credentials")
        return len(stale)

    def clear(self) -> None:
        with self._mutex:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
