"""
Session Manager

Owns the lifecycle of a game session from creation through terminal state:
turn enforcement, move application through the game engine, inactivity
timeouts, AI opponent turns, forfeits and rematch requests.

Every mutation of a session runs under that session's lock and is written
with a version check, so a timer or bot move scheduled against an older
version finds it stale and does nothing. Ending a session deletes it and
records the result in one transaction before any timer is cancelled or any
notification goes out.
"""

import copy
import random
import uuid
from dataclasses import dataclass
from functools import partial
from typing import Any, List, Optional

from arena.config import Config
from arena.constants import TimerKeys
from arena.database.models import EndReason, GameSession, MatchResult
from arena.games.base import GameEngine, TerminalStatus, TimeoutPolicy
from arena.operations.elo_service import RatingOutcome
from arena.services.base import BaseService
from arena.services.locks import KeyedLock, player_key, session_key
from arena.services.notifications import (
    NotificationBus, SessionCreated, MoveApplied, SessionEnded, QueueUpdate
)
from arena.services.timers import TimerRegistry
from arena.utils.clock import utc_now
from arena.utils.exceptions import (
    ArenaOperationError, ErrorCode, AlreadyInSessionError, NotYourTurnError,
    IllegalMoveError, NoChallengeError, SelfChallengeError,
    SessionNotFoundError, UnknownGameError
)
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class SessionResult:
    """Result of a session creation attempt"""
    success: bool
    session: Optional[GameSession] = None
    error: Optional[ErrorCode] = None
    error_message: Optional[str] = None
    busy_player_id: Optional[str] = None

    @classmethod
    def failure(cls, error: ArenaOperationError) -> 'SessionResult':
        return cls(
            success=False,
            error=error.code,
            error_message=error.user_message,
            busy_player_id=getattr(error, 'player_id', None)
        )


@dataclass
class GameOutcome:
    """How a session ended and what it did to ratings"""
    session_id: str
    game_type: str
    winner_id: Optional[str]
    loser_id: Optional[str]
    draw: bool
    reason: EndReason
    rating: Optional[RatingOutcome] = None


@dataclass
class MoveResult:
    success: bool
    session_id: Optional[str] = None
    state: Optional[dict] = None
    current_turn: Optional[str] = None
    game_over: bool = False
    outcome: Optional[GameOutcome] = None
    error: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, error: ArenaOperationError) -> 'MoveResult':
        return cls(success=False, error=error.code, error_message=error.user_message)


@dataclass
class ForfeitResult:
    success: bool
    left_queue: bool = False
    outcome: Optional[GameOutcome] = None
    queue_locked: bool = False
    error: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, error: ArenaOperationError) -> 'ForfeitResult':
        return cls(success=False, error=error.code, error_message=error.user_message)


class SessionManager(BaseService):
    """Creates, advances and ends game sessions."""

    def __init__(self, db, registry, elo_service, player_ops, queue_ops,
                 notifications: NotificationBus = None,
                 timers: TimerRegistry = None,
                 locks: KeyedLock = None,
                 rng: random.Random = None,
                 afk_timeout: float = None,
                 bot_move_delay: float = None):
        super().__init__(db)
        self.registry = registry
        self.elo_service = elo_service
        self.player_ops = player_ops
        self.queue_ops = queue_ops
        self.notifications = notifications or NotificationBus()
        self.timers = timers or TimerRegistry()
        self.locks = locks or KeyedLock()
        self.rng = rng or random.Random()
        self.afk_timeout = Config.AFK_TIMEOUT_SECONDS if afk_timeout is None else afk_timeout
        self.bot_move_delay = Config.BOT_MOVE_DELAY_SECONDS if bot_move_delay is None else bot_move_delay
        self.challenge_ops = None  # wired by ArenaServices

    # Session creation

    async def create_pvp_session(self, game_type: str, player1_id: str, player2_id: str,
                                 channel_id: str, player2_channel_id: str = None,
                                 from_queue: bool = False,
                                 challenge_id: int = None) -> SessionResult:
        """
        Start a head-to-head session. player1 moves first.

        Args:
            from_queue: both players must still hold queue entries; losing
                either one to another search fails with RACE_LOST
            challenge_id: challenge consumed by this session, in the same
                transaction
        """
        try:
            if player1_id == player2_id:
                raise SelfChallengeError()
            engine = self.registry.get(game_type)
            if engine.solo:
                raise UnknownGameError(game_type)
        except ArenaOperationError as e:
            return SessionResult.failure(e)
        return await self._create_session(
            engine, [player1_id, player2_id], channel_id, player2_channel_id,
            claim_queue=from_queue, challenge_id=challenge_id
        )

    async def create_solo_session(self, game_type: str, player_id: str,
                                  channel_id: str) -> SessionResult:
        try:
            engine = self.registry.get(game_type)
            if not engine.solo:
                raise UnknownGameError(game_type)
        except ArenaOperationError as e:
            return SessionResult.failure(e)
        return await self._create_session(engine, [player_id], channel_id)

    async def create_bot_session(self, game_type: str, player_id: str, channel_id: str,
                                 from_queue: bool = False) -> SessionResult:
        """Unranked session against the built-in AI opponent."""
        try:
            engine = self.registry.get(game_type)
            if not engine.supports_bot:
                raise UnknownGameError(game_type)
        except ArenaOperationError as e:
            return SessionResult.failure(e)
        await self.player_ops.ensure_bot_profile()
        return await self._create_session(
            engine, [player_id, Config.BOT_PLAYER_ID], channel_id,
            is_bot_game=True, claim_queue=from_queue
        )

    async def _create_session(self, engine: GameEngine, player_ids: List[str], channel_id: str,
                              player2_channel_id: str = None, is_bot_game: bool = False,
                              claim_queue: bool = False, challenge_id: int = None) -> SessionResult:
        humans = [pid for pid in player_ids if pid != Config.BOT_PLAYER_ID]
        try:
            async with self.locks.hold(*(player_key(pid) for pid in humans)):
                async with self.db.transaction() as s:
                    busy = await self.db.any_in_session(humans, session=s)
                    if busy:
                        raise AlreadyInSessionError(busy)
                    if challenge_id is not None and not await self.db.delete_challenge(challenge_id, session=s):
                        raise NoChallengeError(humans[-1])
                    if claim_queue:
                        await self.queue_ops.claim_pair(
                            humans[0], humans[1] if len(humans) > 1 else None, session=s
                        )
                    else:
                        await self.db.dequeue(humans, session=s)

                    state = engine.create_state(list(player_ids))
                    game = GameSession(
                        id=str(uuid.uuid4()),
                        game_type=engine.game_type,
                        player1_id=player_ids[0],
                        player2_id=player_ids[1] if len(player_ids) > 1 else None,
                        channel_id=channel_id,
                        player2_channel_id=player2_channel_id,
                        current_turn=engine.current_turn_player_id(state),
                        state=state,
                        version=0,
                        is_bot_game=is_bot_game,
                        last_action=utc_now(),
                        started_at=utc_now()
                    )
                    await self.db.create_session(game, session=s)
                    if len(humans) == 2:
                        await self.db.record_recent_opponent(humans[0], humans[1], engine.game_type, session=s)
        except ArenaOperationError as e:
            logger.info(f"Could not start {engine.game_type} for {player_ids}: {e}")
            return SessionResult.failure(e)

        for pid in humans:
            self.timers.cancel(TimerKeys.queue(pid))
        self._arm_timeout(game.id, game.version)

        logger.info(f"Started {engine.game_type} session {game.id} for {player_ids}")
        await self.notifications.publish(SessionCreated(
            session_id=game.id,
            game_type=game.game_type,
            player_ids=tuple(game.player_ids),
            channel_id=channel_id,
            player2_channel_id=player2_channel_id,
            is_bot_game=is_bot_game,
            current_turn=game.current_turn
        ))
        if is_bot_game and game.current_turn == Config.BOT_PLAYER_ID:
            self._schedule_bot(game.id, game.version)
        return SessionResult(success=True, session=game)

    # Moves

    async def submit_move(self, player_id: str, move: Any, session_id: str = None) -> MoveResult:
        """Apply a player's move to their active session."""
        try:
            if session_id is None:
                game = await self.db.get_session_for_player(player_id)
                if game is None:
                    raise SessionNotFoundError(player_id)
                session_id = game.id
            async with self._session_guard(session_id):
                game = await self.db.get_session_by_id(session_id)
                if game is None or player_id not in game.player_ids:
                    raise SessionNotFoundError(player_id)
                return await self._apply_move(game, player_id, move)
        except ArenaOperationError as e:
            logger.debug(f"Move by {player_id} refused: {e}")
            return MoveResult.failure(e)

    async def _apply_move(self, game: GameSession, player_id: str, move: Any) -> MoveResult:
        """Caller holds the session lock and passes a freshly loaded row."""
        engine = self.registry.get(game.game_type)
        if game.current_turn is not None and game.current_turn != player_id:
            raise NotYourTurnError(player_id)

        state = copy.deepcopy(game.state)
        result = engine.apply_move(state, player_id, move)
        if not result.accepted:
            raise IllegalMoveError(result.error)

        status = engine.is_terminal(state)
        if status.over:
            move_event = MoveApplied(
                session_id=game.id, game_type=game.game_type, player_id=player_id,
                move=move, state=state, current_turn=None, version=game.version + 1
            )
            outcome = await self._finish_from_status(
                game, state, status, EndReason.COMPLETED, move_event=move_event
            )
            return MoveResult(
                success=True, session_id=game.id, state=state,
                game_over=True, outcome=outcome
            )

        next_turn = engine.current_turn_player_id(state)
        if not await self.db.update_session(game.id, game.version, state, next_turn):
            raise SessionNotFoundError(game.id)
        version = game.version + 1
        self._arm_timeout(game.id, version)

        await self.notifications.publish(MoveApplied(
            session_id=game.id, game_type=game.game_type, player_id=player_id,
            move=move, state=state, current_turn=next_turn, version=version
        ))
        if game.is_bot_game and next_turn == Config.BOT_PLAYER_ID:
            self._schedule_bot(game.id, version)
        return MoveResult(success=True, session_id=game.id, state=state, current_turn=next_turn)

    async def play_bot_turn(self, session_id: str, version: int) -> bool:
        """Let the AI opponent move. No-op if the session moved on since scheduling."""
        async with self._session_guard(session_id):
            game = await self.db.get_session_by_id(session_id)
            if game is None or game.version != version or game.current_turn != Config.BOT_PLAYER_ID:
                logger.debug(f"Skipping stale bot turn for {session_id} v{version}")
                return False
            engine = self.registry.get(game.game_type)
            moves = engine.legal_moves(game.state)
            if not moves:
                logger.warning(f"No legal moves for bot in {session_id}")
                return False
            move = self.rng.choice(moves)
            try:
                await self._apply_move(game, Config.BOT_PLAYER_ID, move)
            except ArenaOperationError as e:
                logger.error(f"Bot move {move} rejected in {session_id}: {e}")
                return False
            return True

    # Timeouts

    async def handle_timeout(self, session_id: str, version: int) -> bool:
        """
        Inactivity timer callback.

        Returns:
            True if the timeout changed the session, False if it was stale
        """
        async with self._session_guard(session_id):
            game = await self.db.get_session_by_id(session_id)
            if game is None or game.version != version:
                logger.debug(f"Ignoring stale timeout for {session_id} v{version}")
                return False

            engine = self.registry.get(game.game_type)
            if engine.timeout_policy == TimeoutPolicy.SKIP_ROUND:
                state = copy.deepcopy(game.state)
                engine.on_timeout(state)
                status = engine.is_terminal(state)
                move_event = MoveApplied(
                    session_id=game.id, game_type=game.game_type, player_id=None,
                    move=None, state=state, current_turn=None, version=game.version + 1
                )
                if status.over:
                    await self._finish_from_status(
                        game, state, status, EndReason.COMPLETED, move_event=move_event
                    )
                    return True
                next_turn = engine.current_turn_player_id(state)
                if not await self.db.update_session(game.id, game.version, state, next_turn):
                    return False
                self._arm_timeout(game.id, game.version + 1)
                logger.info(f"Round skipped on timeout in {session_id}")
                await self.notifications.publish(move_event)
                return True

            loser_id = game.player1_id if game.is_solo else engine.timeout_loser(game.state)
            if loser_id is None:
                await self._finalize(game, game.state, None, None, True, EndReason.TIMEOUT)
            else:
                await self._finalize(
                    game, game.state, game.opponent_of(loser_id), loser_id, False, EndReason.TIMEOUT
                )
            logger.info(f"Session {session_id} timed out (loser: {loser_id})")
            return True

    # Forfeit

    async def forfeit(self, player_id: str) -> ForfeitResult:
        """
        Concede the active session, or leave the queue if only queued.

        Head-to-head forfeits count toward the forfeit lockout.
        """
        try:
            game = await self.db.get_session_for_player(player_id)
            if game is None:
                entry = await self.db.get_queue_entry(player_id)
                if entry is None:
                    raise SessionNotFoundError(player_id)
                self.timers.cancel(TimerKeys.queue(player_id))
                await self.queue_ops.dequeue(player_id)
                await self.notifications.publish(QueueUpdate(player_id, entry.game_type, 'cancelled'))
                return ForfeitResult(success=True, left_queue=True)

            async with self._session_guard(game.id):
                game = await self.db.get_session_by_id(game.id)
                if game is None:
                    raise SessionNotFoundError(player_id)
                opponent_id = game.opponent_of(player_id)
                outcome = await self._finalize(
                    game, game.state, opponent_id, player_id, False, EndReason.FORFEIT,
                    record=opponent_id is not None
                )
        except ArenaOperationError as e:
            return ForfeitResult.failure(e)

        locked = False
        if opponent_id is not None and not game.is_bot_game:
            async with self.locks.hold(player_key(player_id)):
                locked = await self.player_ops.record_forfeit(player_id)
        logger.info(f"Player {player_id} forfeited session {game.id}")
        return ForfeitResult(success=True, outcome=outcome, queue_locked=locked)

    # Rematch

    async def request_rematch(self, player_id: str, game_type: str, opponent_id: str,
                              channel_id: str, guild_id: str = None):
        """Issue a rematch challenge; refused while one is already pending."""
        if self.challenge_ops is None:
            raise RuntimeError("SessionManager has no ChallengeOperations wired")
        return await self.challenge_ops.create(
            player_id, opponent_id, game_type, channel_id, guild_id=guild_id, rematch=True
        )

    # Queries

    async def get_session(self, player_id: str) -> Optional[GameSession]:
        return await self.db.get_session_for_player(player_id)

    async def get_session_by_id(self, session_id: str) -> Optional[GameSession]:
        return await self.db.get_session_by_id(session_id)

    async def resume_sessions(self) -> int:
        """Re-arm inactivity timers for sessions that survived a restart."""
        sessions = await self.db.get_all_sessions()
        for game in sessions:
            self._arm_timeout(game.id, game.version)
            if game.is_bot_game and game.current_turn == Config.BOT_PLAYER_ID:
                self._schedule_bot(game.id, game.version)
        if sessions:
            logger.info(f"Resumed timers for {len(sessions)} active sessions")
        return len(sessions)

    async def shutdown(self):
        await self.timers.cancel_all()

    # Internals

    def _session_guard(self, session_id: str):
        return self.locks.hold(session_key(session_id))

    def _arm_timeout(self, session_id: str, version: int):
        self.timers.schedule(
            TimerKeys.session(session_id), self.afk_timeout,
            partial(self.handle_timeout, session_id, version)
        )

    def _schedule_bot(self, session_id: str, version: int):
        self.timers.schedule(
            TimerKeys.bot_move(session_id), self.bot_move_delay,
            partial(self.play_bot_turn, session_id, version)
        )

    async def _finish_from_status(self, game: GameSession, state: dict, status: TerminalStatus,
                                  reason: EndReason, move_event: MoveApplied = None) -> GameOutcome:
        if status.draw or status.winner_id is None:
            if game.is_solo and not status.draw:
                # Solo game over without a win
                return await self._finalize(
                    game, state, None, game.player1_id, False, reason, move_event=move_event
                )
            return await self._finalize(game, state, None, None, True, reason, move_event=move_event)
        return await self._finalize(
            game, state, status.winner_id, game.opponent_of(status.winner_id), False, reason,
            move_event=move_event
        )

    async def _finalize(self, game: GameSession, state: dict, winner_id: Optional[str],
                        loser_id: Optional[str], draw: bool, reason: EndReason,
                        record: bool = True, move_event: MoveApplied = None) -> GameOutcome:
        """Delete the session and record the result atomically, then notify."""
        engine = self.registry.get(game.game_type)
        now = utc_now()
        duration = int((now - game.started_at).total_seconds()) if game.started_at else None
        humans = [pid for pid in game.player_ids if pid != Config.BOT_PLAYER_ID]

        async def _persist() -> Optional[RatingOutcome]:
            async with self.db.transaction() as s:
                if not await self.db.delete_session(game.id, session=s):
                    raise SessionNotFoundError(game.id)
                if not record or game.is_bot_game:
                    return None
                if game.is_solo:
                    result = MatchResult.WIN if winner_id == game.player1_id else MatchResult.LOSS
                    await self.elo_service.record_solo_result(
                        game.player1_id, game.game_type, result, session=s, now=now
                    )
                    return None
                if engine.rated:
                    if draw:
                        return await self.elo_service.record_pvp_draw(
                            game.player1_id, game.player2_id, game.game_type,
                            duration=duration, session=s, now=now
                        )
                    return await self.elo_service.record_pvp_result(
                        winner_id, loser_id, game.game_type,
                        duration=duration, reason=reason, session=s, now=now
                    )
                for pid in game.player_ids:
                    if draw:
                        result = MatchResult.DRAW
                    else:
                        result = MatchResult.WIN if pid == winner_id else MatchResult.LOSS
                    await self.elo_service.record_solo_result(
                        pid, game.game_type, result, session=s, now=now
                    )
                return None

        async with self.locks.hold(*(player_key(pid) for pid in humans)):
            rating = await self.execute_with_retry(_persist)

        self.timers.cancel(TimerKeys.session(game.id))
        self.timers.cancel(TimerKeys.bot_move(game.id))

        outcome = GameOutcome(
            session_id=game.id,
            game_type=game.game_type,
            winner_id=winner_id,
            loser_id=loser_id,
            draw=draw,
            reason=reason,
            rating=rating
        )
        logger.info(
            f"Session {game.id} ended ({reason.value}): "
            f"{'draw' if draw else f'winner={winner_id}'}"
        )

        if move_event is not None:
            await self.notifications.publish(move_event)
        await self.notifications.publish(SessionEnded(
            session_id=game.id,
            game_type=game.game_type,
            player_ids=tuple(game.player_ids),
            winner_id=winner_id,
            loser_id=loser_id,
            draw=draw,
            reason=reason.value,
            elo_change=rating.winner_change if rating else 0,
            elo_affected=rating.elo_affected if rating else False,
            daily_games_count=rating.daily_games_count if rating else 0,
            is_bot_game=game.is_bot_game,
            state=state
        ))
        return outcome
