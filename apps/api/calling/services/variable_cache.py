"""Short-lived cache of dynamic variables keyed by conversation identifier."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

Clock = Callable[[], float]


@dataclass
class _CacheEntry:
    variables: dict[str, str]
    expires_at: float


class VariableCache:
    """In-memory TTL cache shared by the call initiator and the variable provider.

    Entries expire ``ttl_seconds`` after they were stored; reads do not extend them.
    """

    def __init__(self, ttl_seconds: float = 900, clock: Clock = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, conversation_id: str) -> Optional[dict[str, str]]:
        with self._lock:
            self._evict_expired()
            entry = self._entries.get(conversation_id)
            return dict(entry.variables) if entry else None

    def put(self, conversation_id: str, variables: dict[str, str]) -> None:
        with self._lock:
            self._evict_expired()
            self._entries[conversation_id] = _CacheEntry(
                variables=dict(variables), expires_at=self._clock() + self._ttl
            )

    def clear(self, conversation_id: str) -> None:
        with self._lock:
            self._entries.pop(conversation_id, None)

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
