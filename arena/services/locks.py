"""
In-process keyed locks.

One asyncio.Lock per key (session id, player id). Multi-key acquisition
always happens in sorted order so two completions touching the same pair
of players cannot deadlock. A key's lock exists only while someone holds
or waits on it, so the table stays bounded by current activity.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLock:
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = defaultdict(int)
    
    @asynccontextmanager
    async def hold(self, *keys: str):
        """Acquire the locks for all keys (None skipped), in sorted order."""
        ordered = sorted({key for key in keys if key is not None})
        for key in ordered:
            self._users[key] += 1
        acquired = []
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    self._locks.pop(key, None)
    
    def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
    
    def __contains__(self, key: str) -> bool:
        return key in self._locks
    
    def __len__(self):
        return len(self._locks)


def player_key(player_id: str) -> str:
    return f"player:{player_id}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def challenge_key(player_id: str) -> str:
    return f"challenge:{player_id}"
