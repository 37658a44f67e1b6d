from datetime import datetime
from typing import Optional, List, Iterable, Dict, Any
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy import select, update, delete, func, and_, or_

from arena.config import Config
from arena.database.models import (
    Base, Player, GameStat, GameSession, MatchHistory,
    RecentOpponent, QueueEntry, PendingChallenge
)
from arena.utils.clock import utc_now
from arena.utils.exceptions import StoreError
from arena.utils.logger import setup_logger


class Database:
    """
    Persistent store for players, stats, sessions, queue and challenges.

    Every method accepts an optional AsyncSession so operations can compose
    several store calls into one transaction. Without one, the call runs in
    its own transaction.
    """

    def __init__(self):
        self.logger = setup_logger(__name__)
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self):
        return self.async_session

    async def initialize(self, database_url: str = None):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = database_url or Config.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        engine_kwargs = {'echo': Config.DEBUG}
        if database_url in ('sqlite+aiosqlite://', 'sqlite+aiosqlite:///:memory:'):
            # One shared connection so every session sees the same in-memory database
            engine_kwargs.update(
                poolclass=StaticPool,
                connect_args={'check_same_thread': False}
            )

        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a read session (no commit)"""
        async with self.async_session() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError("read", str(e)) from e
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context commit together on success, or roll
        back together on failure. Store failures surface as StoreError.

        Usage:
            async with db.transaction() as session:
                await db.delete_session(session_id, session=session)
                await db.add_match_history(..., session=session)
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError("transaction", str(e)) from e
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def scope(self, session: Optional[AsyncSession] = None):
        """Use the caller's session if given, otherwise open a transaction."""
        if session is not None:
            yield session
        else:
            async with self.transaction() as new_session:
                yield new_session

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Player operations

    async def get_player(self, player_id: str, session: Optional[AsyncSession] = None,
                         for_update: bool = False) -> Optional[Player]:
        async with self.scope(session) as s:
            query = select(Player).where(Player.player_id == player_id)
            if for_update:
                query = query.with_for_update()
            result = await s.execute(query)
            return result.scalar_one_or_none()

    async def upsert_player(self, player_id: str, username: str, display_name: str = None,
                            session: Optional[AsyncSession] = None) -> Player:
        """Get a player, creating it or refreshing its names as needed"""
        async with self.scope(session) as s:
            player = await self.get_player(player_id, session=s)
            if player:
                if player.username != username or (display_name and player.display_name != display_name):
                    player.username = username
                    player.display_name = display_name or username
                    await s.flush()
                return player

            player = Player(
                player_id=player_id,
                username=username,
                display_name=display_name or username
            )
            s.add(player)
            await s.flush()
            return player

    async def update_player(self, player_id: str, values: Dict[str, Any],
                            session: Optional[AsyncSession] = None) -> bool:
        async with self.scope(session) as s:
            result = await s.execute(
                update(Player).where(Player.player_id == player_id).values(**values)
            )
            return result.rowcount > 0

    # Game stat operations

    async def get_game_stat(self, player_id: str, game_type: str,
                            session: Optional[AsyncSession] = None,
                            for_update: bool = False) -> Optional[GameStat]:
        async with self.scope(session) as s:
            query = select(GameStat).where(
                and_(GameStat.player_id == player_id, GameStat.game_type == game_type)
            )
            if for_update:
                query = query.with_for_update()
            result = await s.execute(query)
            return result.scalar_one_or_none()

    async def get_or_create_game_stat(self, player_id: str, game_type: str,
                                      session: Optional[AsyncSession] = None,
                                      for_update: bool = False) -> GameStat:
        async with self.scope(session) as s:
            stat = await self.get_game_stat(player_id, game_type, session=s, for_update=for_update)
            if stat:
                return stat
            stat = GameStat(
                player_id=player_id,
                game_type=game_type,
                wins=0, losses=0, draws=0,
                win_rate=0.0, win_streak=0, best_streak=0,
                rank_score=0.0, elo_rating=Config.STARTING_ELO
            )
            s.add(stat)
            await s.flush()
            return stat

    async def update_game_stat(self, player_id: str, game_type: str, values: Dict[str, Any],
                               session: Optional[AsyncSession] = None) -> bool:
        async with self.scope(session) as s:
            result = await s.execute(
                update(GameStat)
                .where(and_(GameStat.player_id == player_id, GameStat.game_type == game_type))
                .values(**values)
            )
            return result.rowcount > 0

    # Session operations

    async def create_session(self, game_session: GameSession,
                             session: Optional[AsyncSession] = None) -> GameSession:
        async with self.scope(session) as s:
            s.add(game_session)
            await s.flush()
            return game_session

    async def get_session_for_player(self, player_id: str,
                                     session: Optional[AsyncSession] = None) -> Optional[GameSession]:
        async with self.scope(session) as s:
            result = await s.execute(
                select(GameSession)
                .where(or_(GameSession.player1_id == player_id, GameSession.player2_id == player_id))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_session_by_id(self, session_id: str,
                                session: Optional[AsyncSession] = None) -> Optional[GameSession]:
        async with self.scope(session) as s:
            result = await s.execute(select(GameSession).where(GameSession.id == session_id))
            return result.scalar_one_or_none()

    async def any_in_session(self, player_ids: Iterable[str],
                             session: Optional[AsyncSession] = None) -> Optional[str]:
        """Return the first of player_ids that holds a session, if any"""
        ids = [pid for pid in player_ids if pid]
        if not ids:
            return None
        async with self.scope(session) as s:
            result = await s.execute(
                select(GameSession.player1_id, GameSession.player2_id)
                .where(or_(GameSession.player1_id.in_(ids), GameSession.player2_id.in_(ids)))
            )
            busy = set()
            for row in result.all():
                busy.update(pid for pid in row if pid)
            for pid in ids:
                if pid in busy:
                    return pid
            return None

    async def update_session(self, session_id: str, expected_version: int, state: dict,
                             current_turn: Optional[str],
                             session: Optional[AsyncSession] = None) -> bool:
        """
        Write new engine state if the session is still at expected_version.

        Returns:
            True if the row was updated; False if it vanished or moved on
        """
        async with self.scope(session) as s:
            result = await s.execute(
                update(GameSession)
                .where(and_(GameSession.id == session_id, GameSession.version == expected_version))
                .values(
                    state=state,
                    current_turn=current_turn,
                    version=expected_version + 1,
                    last_action=utc_now()
                )
            )
            return result.rowcount == 1

    async def delete_session(self, session_id: str,
                             session: Optional[AsyncSession] = None) -> bool:
        async with self.scope(session) as s:
            result = await s.execute(delete(GameSession).where(GameSession.id == session_id))
            return result.rowcount > 0

    async def get_all_sessions(self, session: Optional[AsyncSession] = None) -> List[GameSession]:
        async with self.scope(session) as s:
            result = await s.execute(select(GameSession))
            return list(result.scalars().all())

    # Queue operations

    async def enqueue(self, player_id: str, game_type: str, channel_id: str, rank_score: float,
                      now: datetime = None, session: Optional[AsyncSession] = None) -> QueueEntry:
        async with self.scope(session) as s:
            entry = QueueEntry(
                player_id=player_id,
                game_type=game_type,
                channel_id=channel_id,
                rank_score=rank_score,
                queued_at=now or utc_now()
            )
            s.add(entry)
            await s.flush()
            return entry

    async def get_queue_entry(self, player_id: str,
                              session: Optional[AsyncSession] = None) -> Optional[QueueEntry]:
        async with self.scope(session) as s:
            result = await s.execute(select(QueueEntry).where(QueueEntry.player_id == player_id))
            return result.scalar_one_or_none()

    async def dequeue(self, player_ids: Iterable[str],
                      session: Optional[AsyncSession] = None) -> int:
        """Delete queue entries for the given players; returns rows removed"""
        ids = list(player_ids)
        if not ids:
            return 0
        async with self.scope(session) as s:
            result = await s.execute(delete(QueueEntry).where(QueueEntry.player_id.in_(ids)))
            return result.rowcount

    async def find_candidates(self, game_type: str, exclude_ids: Iterable[str],
                              session: Optional[AsyncSession] = None) -> List[QueueEntry]:
        """Queued entries for game_type in FIFO order, minus exclude_ids"""
        async with self.scope(session) as s:
            query = select(QueueEntry).where(QueueEntry.game_type == game_type)
            exclude = list(exclude_ids)
            if exclude:
                query = query.where(QueueEntry.player_id.not_in(exclude))
            query = query.order_by(QueueEntry.queued_at.asc(), QueueEntry.id.asc())
            result = await s.execute(query)
            return list(result.scalars().all())

    async def sweep_expired_queue(self, cutoff: datetime,
                                  session: Optional[AsyncSession] = None) -> List[QueueEntry]:
        """Delete entries queued before cutoff; returns the removed entries"""
        async with self.scope(session) as s:
            result = await s.execute(select(QueueEntry).where(QueueEntry.queued_at < cutoff))
            expired = list(result.scalars().all())
            if expired:
                await s.execute(delete(QueueEntry).where(QueueEntry.id.in_([e.id for e in expired])))
            return expired

    # Challenge operations

    async def create_challenge(self, challenger_id: str, challenged_id: str, game_type: str,
                               channel_id: str, guild_id: str = None,
                               now: datetime = None, session: Optional[AsyncSession] = None) -> PendingChallenge:
        async with self.scope(session) as s:
            challenge = PendingChallenge(
                challenger_id=challenger_id,
                challenged_id=challenged_id,
                game_type=game_type,
                channel_id=channel_id,
                guild_id=guild_id,
                created_at=now or utc_now()
            )
            s.add(challenge)
            await s.flush()
            return challenge

    async def get_challenge(self, challenged_id: str, challenger_id: str = None,
                            game_type: str = None, since: datetime = None,
                            session: Optional[AsyncSession] = None) -> Optional[PendingChallenge]:
        async with self.scope(session) as s:
            conditions = [PendingChallenge.challenged_id == challenged_id]
            if challenger_id:
                conditions.append(PendingChallenge.challenger_id == challenger_id)
            if game_type:
                conditions.append(PendingChallenge.game_type == game_type)
            if since:
                conditions.append(PendingChallenge.created_at >= since)
            result = await s.execute(
                select(PendingChallenge)
                .where(and_(*conditions))
                .order_by(PendingChallenge.created_at.desc(), PendingChallenge.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_challenges(self, challenged_id: str, since: datetime = None,
                              session: Optional[AsyncSession] = None) -> List[PendingChallenge]:
        async with self.scope(session) as s:
            query = select(PendingChallenge).where(PendingChallenge.challenged_id == challenged_id)
            if since:
                query = query.where(PendingChallenge.created_at >= since)
            query = query.order_by(PendingChallenge.created_at.desc(), PendingChallenge.id.desc())
            result = await s.execute(query)
            return list(result.scalars().all())

    async def delete_challenge(self, challenge_id: int,
                               session: Optional[AsyncSession] = None) -> bool:
        async with self.scope(session) as s:
            result = await s.execute(delete(PendingChallenge).where(PendingChallenge.id == challenge_id))
            return result.rowcount > 0

    async def purge_challenges(self, cutoff: datetime,
                               session: Optional[AsyncSession] = None) -> int:
        async with self.scope(session) as s:
            result = await s.execute(delete(PendingChallenge).where(PendingChallenge.created_at < cutoff))
            return result.rowcount

    # Recent opponent operations

    async def record_recent_opponent(self, player1_id: str, player2_id: str, game_type: str,
                                     now: datetime = None, session: Optional[AsyncSession] = None):
        async with self.scope(session) as s:
            s.add(RecentOpponent(
                player1_id=player1_id,
                player2_id=player2_id,
                game_type=game_type,
                matched_at=now or utc_now()
            ))
            await s.flush()

    async def query_recent_opponents(self, player_id: str, game_type: str, since: datetime,
                                     session: Optional[AsyncSession] = None) -> List[str]:
        """Ids of players matched against player_id for game_type since the cutoff"""
        async with self.scope(session) as s:
            result = await s.execute(
                select(RecentOpponent).where(and_(
                    or_(RecentOpponent.player1_id == player_id, RecentOpponent.player2_id == player_id),
                    RecentOpponent.game_type == game_type,
                    RecentOpponent.matched_at > since
                ))
            )
            return [
                r.player2_id if r.player1_id == player_id else r.player1_id
                for r in result.scalars().all()
            ]

    async def prune_recent_opponents(self, cutoff: datetime,
                                     session: Optional[AsyncSession] = None) -> int:
        async with self.scope(session) as s:
            result = await s.execute(delete(RecentOpponent).where(RecentOpponent.matched_at <= cutoff))
            return result.rowcount

    # Match history operations

    async def add_match_history(self, session: Optional[AsyncSession] = None, **values) -> MatchHistory:
        async with self.scope(session) as s:
            values.setdefault('completed_at', utc_now())
            entry = MatchHistory(**values)
            s.add(entry)
            await s.flush()
            return entry

    async def count_pair_games_since(self, player1_id: str, player2_id: str, game_type: str,
                                     since: datetime,
                                     session: Optional[AsyncSession] = None) -> int:
        """Completed games of game_type between this exact pair since the cutoff"""
        async with self.scope(session) as s:
            result = await s.execute(
                select(func.count(MatchHistory.id)).where(and_(
                    MatchHistory.game_type == game_type,
                    or_(
                        and_(MatchHistory.player1_id == player1_id, MatchHistory.player2_id == player2_id),
                        and_(MatchHistory.player1_id == player2_id, MatchHistory.player2_id == player1_id)
                    ),
                    MatchHistory.completed_at > since
                ))
            )
            return result.scalar() or 0

    async def get_match_history(self, player_id: str, limit: int = 5,
                                session: Optional[AsyncSession] = None) -> List[MatchHistory]:
        async with self.scope(session) as s:
            result = await s.execute(
                select(MatchHistory)
                .where(or_(MatchHistory.player1_id == player_id, MatchHistory.player2_id == player_id))
                .order_by(MatchHistory.completed_at.desc(), MatchHistory.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # Leaderboard queries

    async def get_leaderboard(self, game_type: str, rated: bool, limit: int = 10,
                              exclude_ids: Iterable[str] = (),
                              session: Optional[AsyncSession] = None) -> List[GameStat]:
        async with self.scope(session) as s:
            query = select(GameStat).where(GameStat.game_type == game_type)
            exclude = list(exclude_ids)
            if exclude:
                query = query.where(GameStat.player_id.not_in(exclude))
            if rated:
                query = (
                    query.where(GameStat.wins + GameStat.losses >= Config.LEADERBOARD_MIN_GAMES)
                    .order_by(GameStat.elo_rating.desc(), GameStat.wins.desc())
                )
            else:
                query = query.order_by(GameStat.wins.desc(), GameStat.win_rate.desc())
            result = await s.execute(query.limit(limit))
            return list(result.scalars().all())

    async def count_ranked_above(self, game_type: str, rated: bool, stat: GameStat,
                                 exclude_ids: Iterable[str] = (),
                                 session: Optional[AsyncSession] = None) -> int:
        """Players ahead of stat under the same ordering get_leaderboard uses"""
        async with self.scope(session) as s:
            conditions = [GameStat.game_type == game_type]
            exclude = list(exclude_ids)
            if exclude:
                conditions.append(GameStat.player_id.not_in(exclude))
            if rated:
                conditions.append(GameStat.wins + GameStat.losses >= Config.LEADERBOARD_MIN_GAMES)
                conditions.append(or_(
                    GameStat.elo_rating > stat.elo_rating,
                    and_(GameStat.elo_rating == stat.elo_rating, GameStat.wins > stat.wins)
                ))
            else:
                conditions.append(or_(
                    GameStat.wins > stat.wins,
                    and_(GameStat.wins == stat.wins, GameStat.win_rate > stat.win_rate)
                ))
            result = await s.execute(select(func.count(GameStat.id)).where(and_(*conditions)))
            return result.scalar() or 0


