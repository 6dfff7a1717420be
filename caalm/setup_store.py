# caalm/setup_store.py
# In-memory holding area for TOTP secrets that have been issued but not yet
# confirmed with a first code.

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple


@dataclass
class PendingSetup:
    factor_id: str
    secret: str
    user_id: str
    created_at: float


class PendingSecretStore:
    """
    Factor ID -> pending secret map with a wall-clock expiry.

    Expiry is checked on every read; stale entries that are never read again
    are evicted by a sweep that runs from put() once sweep_interval seconds
    have passed since the previous one.
    """

    def __init__(self, ttl: float = 300, sweep_interval: float = 600, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, PendingSetup] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def new_factor_id(self, user_id: str) -> str:
        return f"totp_{user_id}_{int(self._clock() * 1000)}"

    def put(self, factor_id: str, secret: str, user_id: str) -> PendingSetup:
        now = self._clock()
        entry = PendingSetup(factor_id=factor_id, secret=secret, user_id=user_id, created_at=now)
        with self._lock:
            self._entries[factor_id] = entry
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep_locked(now)
        return entry

    def get(self, factor_id: str) -> Tuple[Optional[PendingSetup], bool]:
        """Return (entry, expired). Expired entries are evicted on the way out."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(factor_id)
            if entry is None:
                return None, False
            if now - entry.created_at > self.ttl:
                del self._entries[factor_id]
                return entry, True
            return entry, False

    def discard(self, factor_id: str) -> None:
        with self._lock:
            self._entries.pop(factor_id, None)

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        stale = [fid for fid, e in self._entries.items() if now - e.created_at > self.ttl]
        for fid in stale:
            del self._entries[fid]
        self._last_sweep = now
        return len(stale)
