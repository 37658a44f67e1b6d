"""
Services package for the arena.

Cross-cutting runtime services: store retry base, keyed locks, timers and
the notification bus.
"""

from .base import BaseService
from .locks import KeyedLock
from .notifications import NotificationBus
from .timers import TimerRegistry

__all__ = ['BaseService', 'KeyedLock', 'NotificationBus', 'TimerRegistry']
