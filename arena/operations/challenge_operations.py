"""
Challenge Operations Service

Direct player-to-player challenges. A challenge lives for CHALLENGE_TTL_MINUTES;
accepting it starts a session through the SessionManager, consuming the
challenge in the same transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from arena.config import Config
from arena.database.models import PendingChallenge, GameSession
from arena.services.locks import KeyedLock, challenge_key
from arena.services.notifications import NotificationBus, ChallengeIssued, ChallengeAccepted
from arena.utils.clock import minutes_ago, utc_now
from arena.utils.exceptions import (
    ArenaOperationError, ErrorCode, AlreadyInSessionError, ChallengePendingError,
    ChallengerUnavailableError, NoChallengeError, SelfChallengeError, UnknownGameError
)
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class ChallengeResult:
    """Result of a challenge operation"""
    success: bool
    challenge: Optional[PendingChallenge] = None
    session: Optional[GameSession] = None
    error: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, error: ArenaOperationError) -> 'ChallengeResult':
        return cls(success=False, error=error.code, error_message=error.user_message)


class ChallengeOperations:
    """
    Service class for challenge-related operations.

    Manages challenge creation, acceptance, decline and expiry.
    """

    def __init__(self, db, session_manager, notifications: NotificationBus = None,
                 locks: KeyedLock = None):
        """
        Initialize ChallengeOperations.

        Args:
            db: Database instance for persistence
            session_manager: SessionManager that starts accepted games
        """
        self.db = db
        self.session_manager = session_manager
        self.registry = session_manager.registry
        self.notifications = notifications or session_manager.notifications
        self.locks = locks or KeyedLock()
        self.logger = setup_logger(f"{__name__}.ChallengeOperations")

    def _cutoff(self, now: datetime = None) -> datetime:
        return minutes_ago(Config.CHALLENGE_TTL_MINUTES, now or utc_now())

    async def create(self, challenger_id: str, challenged_id: str, game_type: str,
                     channel_id: str, guild_id: str = None, rematch: bool = False,
                     now: datetime = None) -> ChallengeResult:
        """
        Challenge another player to a head-to-head game.

        Expired challenges are purged first. Rematch requests are refused
        while the same player already has one pending to that opponent.
        """
        now = now or utc_now()
        try:
            if challenger_id == challenged_id:
                raise SelfChallengeError()
            engine = self.registry.get(game_type)
            if engine.solo:
                raise UnknownGameError(game_type)

            async with self.db.transaction() as s:
                await self.db.purge_challenges(self._cutoff(now), session=s)
                busy = await self.db.any_in_session([challenger_id, challenged_id], session=s)
                if busy:
                    raise AlreadyInSessionError(busy)
                if rematch and await self.db.get_challenge(
                        challenged_id, challenger_id=challenger_id, session=s):
                    raise ChallengePendingError(challenger_id, challenged_id)
                challenge = await self.db.create_challenge(
                    challenger_id, challenged_id, game_type, channel_id, guild_id,
                    now=now, session=s
                )
        except ArenaOperationError as e:
            self.logger.info(f"Challenge {challenger_id} -> {challenged_id} refused: {e}")
            return ChallengeResult.failure(e)

        self.logger.info(
            f"{'Rematch' if rematch else 'Challenge'} {challenge.id}: "
            f"{challenger_id} -> {challenged_id} ({game_type})"
        )
        await self.notifications.publish(ChallengeIssued(
            challenge_id=challenge.id,
            challenger_id=challenger_id,
            challenged_id=challenged_id,
            game_type=game_type,
            channel_id=channel_id,
            rematch=rematch
        ))
        return ChallengeResult(success=True, challenge=challenge)

    async def accept(self, challenged_id: str, guild_id: str = None, channel_id: str = None,
                     challenger_id: str = None, now: datetime = None) -> ChallengeResult:
        """
        Accept the newest live challenge addressed to challenged_id.

        When guild_id is given only challenges issued in that guild qualify.
        A challenge whose challenger is already in another game is discarded.
        """
        try:
            async with self.locks.hold(challenge_key(challenged_id)):
                challenges = await self.db.list_challenges(challenged_id, since=self._cutoff(now))
                if guild_id is not None:
                    challenges = [c for c in challenges if c.guild_id == guild_id]
                if challenger_id is not None:
                    challenges = [c for c in challenges if c.challenger_id == challenger_id]
                if not challenges:
                    raise NoChallengeError(challenged_id)
                challenge = challenges[0]

                if await self.db.get_session_for_player(challenged_id):
                    raise AlreadyInSessionError(challenged_id)
                if await self.db.get_session_for_player(challenge.challenger_id):
                    await self.db.delete_challenge(challenge.id)
                    raise ChallengerUnavailableError(challenge.challenger_id)

                result = await self.session_manager.create_pvp_session(
                    challenge.game_type,
                    challenge.challenger_id,
                    challenged_id,
                    channel_id=challenge.channel_id,
                    player2_channel_id=channel_id if channel_id != challenge.channel_id else None,
                    challenge_id=challenge.id
                )
                if not result.success:
                    if result.error == ErrorCode.ALREADY_IN_SESSION and \
                            result.busy_player_id == challenge.challenger_id:
                        await self.db.delete_challenge(challenge.id)
                        raise ChallengerUnavailableError(challenge.challenger_id)
                    return ChallengeResult(
                        success=False, challenge=challenge,
                        error=result.error, error_message=result.error_message
                    )
        except ArenaOperationError as e:
            self.logger.info(f"Accept by {challenged_id} failed: {e}")
            return ChallengeResult.failure(e)

        self.logger.info(f"Challenge {challenge.id} accepted, session {result.session.id}")
        await self.notifications.publish(ChallengeAccepted(
            challenge_id=challenge.id,
            challenger_id=challenge.challenger_id,
            challenged_id=challenged_id,
            game_type=challenge.game_type,
            session_id=result.session.id
        ))
        return ChallengeResult(success=True, challenge=challenge, session=result.session)

    async def decline(self, challenged_id: str, guild_id: str = None,
                      challenger_id: str = None, now: datetime = None) -> ChallengeResult:
        """Discard the newest live challenge addressed to challenged_id."""
        challenges = await self.db.list_challenges(challenged_id, since=self._cutoff(now))
        if guild_id is not None:
            challenges = [c for c in challenges if c.guild_id == guild_id]
        if challenger_id is not None:
            challenges = [c for c in challenges if c.challenger_id == challenger_id]
        if not challenges or not await self.db.delete_challenge(challenges[0].id):
            return ChallengeResult.failure(NoChallengeError(challenged_id))
        self.logger.info(f"Challenge {challenges[0].id} declined by {challenged_id}")
        return ChallengeResult(success=True, challenge=challenges[0])

    async def list_for(self, challenged_id: str, now: datetime = None) -> List[PendingChallenge]:
        """Live challenges addressed to a player, newest first."""
        return await self.db.list_challenges(challenged_id, since=self._cutoff(now))

    async def get(self, challenged_id: str, challenger_id: str = None, game_type: str = None,
                  now: datetime = None) -> Optional[PendingChallenge]:
        return await self.db.get_challenge(
            challenged_id, challenger_id=challenger_id, game_type=game_type,
            since=self._cutoff(now)
        )

    async def cleanup_expired(self, now: datetime = None) -> int:
        removed = await self.db.purge_challenges(self._cutoff(now))
        if removed:
            self.logger.info(f"Cleaned {removed} expired challenges")
        return removed
