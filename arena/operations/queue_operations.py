"""
Queue Operations Module

Matchmaking queue entries, candidate selection and the pairing claim.
SessionManager runs claim_pair inside its session-creation transaction so
removing both entries and creating the session commit together.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import Config
from arena.constants import TimerKeys
from arena.database.models import QueueEntry
from arena.services.locks import KeyedLock, player_key
from arena.services.notifications import NotificationBus, QueueUpdate
from arena.services.timers import TimerRegistry
from arena.utils.clock import minutes_ago, utc_now
from arena.utils.exceptions import (
    ArenaOperationError, ErrorCode, AlreadyInSessionError, AlreadyQueuedError,
    QueueLockedError, RaceLostError, UnknownGameError
)
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class QueueResult:
    """Result of a queue join"""
    success: bool
    entry: Optional[QueueEntry] = None
    error: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, error: ArenaOperationError) -> 'QueueResult':
        return cls(success=False, error=error.code, error_message=error.user_message)


class QueueOperations:
    """Queue entry lifecycle and the candidate search used by matchmaking."""

    def __init__(self, db, registry, player_ops, notifications: NotificationBus = None,
                 locks: KeyedLock = None, timers: TimerRegistry = None):
        self.db = db
        self.registry = registry
        self.player_ops = player_ops
        self.notifications = notifications
        self.locks = locks or KeyedLock()
        self.timers = timers
        self.logger = setup_logger(f"{__name__}.QueueOperations")

    async def enqueue(self, player_id: str, game_type: str, channel_id: str,
                      now: datetime = None) -> QueueResult:
        """
        Put a player in the queue for game_type.

        The rank snapshot is the player's rating for rated game types and
        their rank score otherwise.
        """
        try:
            engine = self.registry.get(game_type)
            if engine.solo:
                raise UnknownGameError(game_type)

            async with self.locks.hold(player_key(player_id)):
                async with self.db.transaction() as s:
                    if await self.db.get_session_for_player(player_id, session=s):
                        raise AlreadyInSessionError(player_id)
                    if await self.db.get_queue_entry(player_id, session=s):
                        raise AlreadyQueuedError(player_id)
                    if Config.FORFEIT_LOCKOUT_ENABLED and await self.player_ops.is_queue_locked(
                            player_id, now=now, session=s):
                        raise QueueLockedError(player_id)

                    stat = await self.db.get_or_create_game_stat(player_id, game_type, session=s)
                    rank_score = stat.elo_rating if engine.rated else stat.rank_score
                    entry = await self.db.enqueue(
                        player_id, game_type, channel_id, rank_score, now=now, session=s
                    )
        except ArenaOperationError as e:
            self.logger.info(f"Queue join refused for {player_id}: {e}")
            return QueueResult.failure(e)

        self.logger.info(f"Player {player_id} queued for {game_type} at {rank_score}")
        if self.notifications:
            await self.notifications.publish(QueueUpdate(player_id, game_type, 'queued'))
        return QueueResult(success=True, entry=entry)

    async def dequeue(self, player_id: str) -> bool:
        """Remove a player's entry. Idempotent: False when nothing was queued."""
        removed = await self.db.dequeue([player_id])
        if removed:
            self.logger.info(f"Player {player_id} left the queue")
        return removed > 0

    async def find_candidate(self, player_id: str, game_type: str, rank_tolerance: float,
                             now: datetime = None) -> Optional[QueueEntry]:
        """
        Oldest queued opponent within rank_tolerance of the requester.

        Skips the requester and anyone they faced within the cooldown window.
        Candidates found already holding a session are dequeued on the spot
        and the scan continues.
        """
        requester = await self.db.get_queue_entry(player_id)
        if requester is not None:
            rank_score = requester.rank_score
        else:
            engine = self.registry.get(game_type)
            stat = await self.db.get_or_create_game_stat(player_id, game_type)
            rank_score = stat.elo_rating if engine.rated else stat.rank_score

        since = minutes_ago(Config.RECENT_OPPONENT_COOLDOWN_MINUTES, now)
        excluded = await self.db.query_recent_opponents(player_id, game_type, since)
        excluded.append(player_id)

        for candidate in await self.db.find_candidates(game_type, excluded):
            if abs(candidate.rank_score - rank_score) > rank_tolerance:
                continue
            if await self.db.get_session_for_player(candidate.player_id):
                await self.db.dequeue([candidate.player_id])
                self.logger.info(f"Removed stale queue entry for {candidate.player_id} (in a game)")
                await self._dropped(candidate, 'cancelled')
                continue
            return candidate
        return None

    async def claim_pair(self, requester_id: str, candidate_id: str = None,
                         session: Optional[AsyncSession] = None) -> int:
        """
        Remove the requester's entry and the candidate's in one step.

        Raises RaceLostError (rolling back the caller's transaction) unless
        every entry was still present, so a second search claiming the same
        player always sees it as already removed.
        """
        player_ids = [pid for pid in (requester_id, candidate_id) if pid is not None]
        async with self.db.scope(session) as s:
            removed = await self.db.dequeue(player_ids, session=s)
            if removed != len(player_ids):
                raise RaceLostError(candidate_id or requester_id)
        self.logger.debug(f"Claimed queue entries for {player_ids}")
        return removed

    async def sweep_expired(self, max_age_minutes: float = None, now: datetime = None) -> int:
        """Drop entries older than max_age_minutes; returns how many were removed."""
        if max_age_minutes is None:
            max_age_minutes = Config.QUEUE_MAX_AGE_MINUTES
        cutoff = minutes_ago(max_age_minutes, now or utc_now())
        expired = await self.db.sweep_expired_queue(cutoff)
        if expired:
            self.logger.info(f"Cleaned {len(expired)} expired queue entries")
        for entry in expired:
            await self._dropped(entry, 'expired')
        return len(expired)

    async def is_queued(self, player_id: str) -> bool:
        return await self.db.get_queue_entry(player_id) is not None

    async def get_entry(self, player_id: str) -> Optional[QueueEntry]:
        return await self.db.get_queue_entry(player_id)

    async def _dropped(self, entry: QueueEntry, status: str):
        """Stop the search loop of an entry removed outside it and tell the player."""
        if self.timers is not None:
            self.timers.cancel(TimerKeys.queue(entry.player_id))
        if self.notifications:
            await self.notifications.publish(QueueUpdate(entry.player_id, entry.game_type, status))
