"""
Cancellable timers for session inactivity, matchmaking retries and bot moves.

Each timer is an asyncio.Task registered under a string key. Scheduling a
key replaces (and cancels) whatever was there. The callbacks themselves
must re-validate the entity they were scheduled against; the registry only
guarantees that a cancelled timer never starts its callback.
"""

import asyncio
from typing import Awaitable, Callable, Dict

from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class TimerRegistry:
    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
    
    def schedule(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Run callback after delay seconds, replacing any timer under key."""
        self.cancel(key)
        task = asyncio.create_task(self._run(key, delay, callback), name=f"timer:{key}")
        self._tasks[key] = task
        return task
    
    async def _run(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]):
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        # Drop our own registration before acting so the callback may reschedule the key
        if self._tasks.get(key) is asyncio.current_task():
            self._tasks.pop(key, None)
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Timer {key} failed: {e}", exc_info=True)
    
    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task is not asyncio.current_task() and not task.done():
            task.cancel()
        return True
    
    def is_scheduled(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()
    
    def keys(self):
        return list(self._tasks)
    
    async def cancel_all(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            if task is not asyncio.current_task():
                task.cancel()
        for task in tasks:
            if task is asyncio.current_task():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
