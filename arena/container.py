"""
Service container for the arena core.

Builds every operation and service once around a shared Database,
NotificationBus, TimerRegistry and KeyedLock, and wires the two-way link
between SessionManager and ChallengeOperations.

Usage:
    services = await ArenaServices.create()
    result = await services.matchmaking.join(player_id, "tictactoe", channel_id)
    ...
    await services.shutdown()
"""

import random
from typing import Optional

from arena.database.database import Database
from arena.games import GameRegistry, default_registry
from arena.operations.challenge_operations import ChallengeOperations
from arena.operations.elo_service import EloService
from arena.operations.player_operations import PlayerOperations
from arena.operations.queue_operations import QueueOperations
from arena.operations.session_manager import SessionManager
from arena.services.leaderboard import LeaderboardService
from arena.services.locks import KeyedLock
from arena.services.matchmaking import MatchmakingService
from arena.services.notifications import NotificationBus
from arena.services.timers import TimerRegistry
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class ArenaServices:
    """Explicitly wired arena services sharing one store, bus, timer set and lock table."""

    def __init__(self, db: Database, registry: Optional[GameRegistry] = None,
                 rng: Optional[random.Random] = None,
                 afk_timeout: float = None,
                 bot_move_delay: float = None,
                 poll_interval: float = None):
        self.db = db
        self.registry = registry or default_registry(rng)
        self.notifications = NotificationBus()
        self.timers = TimerRegistry()
        self.locks = KeyedLock()

        self.player_ops = PlayerOperations(db)
        self.elo_service = EloService(db, locks=self.locks)
        self.queue_ops = QueueOperations(
            db, self.registry, self.player_ops, self.notifications,
            locks=self.locks, timers=self.timers
        )
        self.session_manager = SessionManager(
            db, self.registry, self.elo_service, self.player_ops, self.queue_ops,
            notifications=self.notifications,
            timers=self.timers,
            locks=self.locks,
            rng=rng,
            afk_timeout=afk_timeout,
            bot_move_delay=bot_move_delay
        )
        self.challenge_ops = ChallengeOperations(
            db, self.session_manager, self.notifications, locks=self.locks
        )
        self.session_manager.challenge_ops = self.challenge_ops
        self.matchmaking = MatchmakingService(
            self.queue_ops, self.session_manager,
            timers=self.timers, notifications=self.notifications,
            poll_interval=poll_interval
        )
        self.leaderboard = LeaderboardService(db, self.registry, self.notifications)

    @classmethod
    async def create(cls, database_url: str = None, **kwargs) -> 'ArenaServices':
        """Initialize a Database and build the services around it."""
        db = Database()
        await db.initialize(database_url)
        return cls(db, **kwargs)

    async def shutdown(self, close_db: bool = True):
        logger.info("Shutting down arena services")
        await self.matchmaking.shutdown()
        await self.session_manager.shutdown()
        if close_db:
            await self.db.close()
