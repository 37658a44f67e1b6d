"""
Matchmaking service.

Drives the per-player search loop: each attempt looks for a compatible
queued opponent with a rank tolerance that widens as attempts accumulate.
Game types with an AI opponent fall back to it late in the search; the
search gives up after MATCHMAKING_MAX_ATTEMPTS.

Attempts are timer callbacks keyed per player, so leaving the queue by any
path (cancel, forfeit, session start, sweep) stops the loop.
"""

from functools import partial

from arena.config import Config
from arena.constants import MatchmakingConstants, TimerKeys
from arena.operations.queue_operations import QueueOperations, QueueResult
from arena.services.notifications import NotificationBus, QueueUpdate
from arena.services.timers import TimerRegistry
from arena.utils.exceptions import ErrorCode
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class SearchStatus:
    MATCHED = "matched"
    BOT_MATCH = "bot_match"
    SEARCHING = "searching"
    EXPIRED = "expired"
    STALE = "stale"


class MatchmakingService:
    """Queue search loop on top of QueueOperations and SessionManager."""

    def __init__(self, queue_ops: QueueOperations, session_manager,
                 timers: TimerRegistry = None, notifications: NotificationBus = None,
                 poll_interval: float = None):
        self.queue_ops = queue_ops
        self.session_manager = session_manager
        self.registry = queue_ops.registry
        self.timers = timers or session_manager.timers
        self.notifications = notifications or session_manager.notifications
        self.poll_interval = Config.MATCHMAKING_POLL_SECONDS if poll_interval is None else poll_interval

    async def join(self, player_id: str, game_type: str, channel_id: str,
                   start_search: bool = True) -> QueueResult:
        """Queue a player and start their search loop."""
        result = await self.queue_ops.enqueue(player_id, game_type, channel_id)
        if result.success and start_search:
            self._schedule(player_id, game_type, result.entry.id, 1, 0)
        return result

    async def cancel(self, player_id: str) -> bool:
        """Leave the queue. False when the player was not queued."""
        self.timers.cancel(TimerKeys.queue(player_id))
        entry = await self.queue_ops.get_entry(player_id)
        removed = await self.queue_ops.dequeue(player_id)
        if removed and entry is not None:
            await self.notifications.publish(QueueUpdate(player_id, entry.game_type, 'cancelled'))
        return removed

    def is_searching(self, player_id: str) -> bool:
        return self.timers.is_scheduled(TimerKeys.queue(player_id))

    def _schedule(self, player_id: str, game_type: str, entry_id: int, attempt: int, delay: float):
        self.timers.schedule(
            TimerKeys.queue(player_id), delay,
            partial(self.run_attempt, player_id, game_type, entry_id, attempt)
        )

    async def run_attempt(self, player_id: str, game_type: str, entry_id: int,
                          attempt: int, reschedule: bool = True) -> str:
        """
        One search attempt for a queued player.

        Returns a SearchStatus value. With reschedule=False the next attempt
        is not armed; the caller drives the loop.
        """
        entry = await self.queue_ops.get_entry(player_id)
        if entry is None or entry.id != entry_id:
            logger.debug(f"Search for {player_id} is stale (attempt {attempt})")
            return SearchStatus.STALE

        tolerance = MatchmakingConstants.tolerance_for_attempt(attempt)
        candidate = await self.queue_ops.find_candidate(player_id, game_type, tolerance)
        if candidate is not None:
            result = await self.session_manager.create_pvp_session(
                game_type, player_id, candidate.player_id,
                channel_id=entry.channel_id,
                player2_channel_id=candidate.channel_id if candidate.channel_id != entry.channel_id else None,
                from_queue=True
            )
            if result.success:
                logger.info(f"Matched {player_id} with {candidate.player_id} for {game_type}")
                await self.notifications.publish(QueueUpdate(
                    player_id, game_type, SearchStatus.MATCHED, attempt, candidate.player_id
                ))
                await self.notifications.publish(QueueUpdate(
                    candidate.player_id, game_type, SearchStatus.MATCHED, attempt, player_id
                ))
                return SearchStatus.MATCHED
            if result.error == ErrorCode.RACE_LOST:
                logger.info(f"Lost pairing race for {candidate.player_id}; continuing search")
            elif result.busy_player_id == player_id:
                return SearchStatus.STALE
            else:
                logger.info(f"Pairing {player_id} with {candidate.player_id} failed: {result.error_message}")

        engine = self.registry.get(game_type)
        if attempt >= Config.BOT_FALLBACK_ATTEMPTS and engine.supports_bot:
            result = await self.session_manager.create_bot_session(
                game_type, player_id, entry.channel_id, from_queue=True
            )
            if result.success:
                logger.info(f"No opponent for {player_id}; starting {game_type} against the bot")
                await self.notifications.publish(QueueUpdate(
                    player_id, game_type, SearchStatus.BOT_MATCH, attempt, Config.BOT_PLAYER_ID
                ))
                return SearchStatus.BOT_MATCH
            return SearchStatus.STALE

        if attempt < Config.MATCHMAKING_MAX_ATTEMPTS:
            await self.notifications.publish(QueueUpdate(player_id, game_type, SearchStatus.SEARCHING, attempt))
            if reschedule:
                self._schedule(player_id, game_type, entry_id, attempt + 1, self.poll_interval)
            return SearchStatus.SEARCHING

        await self.queue_ops.dequeue(player_id)
        logger.info(f"Search for {player_id} expired after {attempt} attempts")
        await self.notifications.publish(QueueUpdate(player_id, game_type, SearchStatus.EXPIRED, attempt))
        return SearchStatus.EXPIRED

    async def shutdown(self):
        for key in self.timers.keys():
            if key.startswith(f"{TimerKeys.QUEUE}:"):
                self.timers.cancel(key)
