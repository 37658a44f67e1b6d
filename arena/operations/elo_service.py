"""
Elo Service Module

Records finished games against the player/stat store.

Key functionality:
- record_pvp_result(): rated win/loss with the daily anti-farming cap
- record_pvp_draw(): rated draw, counters only
- record_solo_result(): solo and unrated results scored by rank score
- update_daily_streak(): consecutive-day play streak

Every write path runs under per-player locks and a single transaction, so
two completions touching the same player can never interleave their
read-modify-write of that player's stats.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import Config
from arena.database.models import EndReason, MatchResult, GameStat, Player
from arena.services.base import BaseService
from arena.services.locks import KeyedLock, player_key
from arena.utils.clock import utc_now, utc_today, start_of_utc_day
from arena.utils.elo import EloCalculator
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class RatingOutcome:
    """Result of recording a rated PvP game"""
    winner_change: int
    loser_change: int
    elo_affected: bool
    daily_games_count: int
    winner_elo: int = 0
    loser_elo: int = 0


@dataclass
class StreakUpdate:
    streak: int
    is_new_streak: bool


class EloService(BaseService):
    """
    Result recording for every game type.

    Methods accept an optional session. When given, the caller owns the
    transaction and must already hold the player locks; otherwise the
    service opens its own transaction, takes the locks and retries on
    store errors.
    """

    def __init__(self, db, locks: KeyedLock = None):
        super().__init__(db)
        self.locks = locks or KeyedLock()

    async def record_pvp_result(
        self,
        winner_id: str,
        loser_id: str,
        game_type: str,
        winner_name: str = None,
        loser_name: str = None,
        duration: int = None,
        reason: EndReason = EndReason.COMPLETED,
        session: Optional[AsyncSession] = None,
        now: datetime = None
    ) -> RatingOutcome:
        """
        Apply a decided rated game.

        The rating delta is suppressed (but counters still move) once the pair
        has completed DAILY_RATED_GAMES_LIMIT games of this type today.
        """
        async def _record(s):
            return await self._record_pvp_result(
                s, winner_id, loser_id, game_type, winner_name, loser_name,
                duration, reason, now or utc_now()
            )
        return await self._run(_record, session, winner_id, loser_id)

    async def record_pvp_draw(
        self,
        player1_id: str,
        player2_id: str,
        game_type: str,
        player1_name: str = None,
        player2_name: str = None,
        duration: int = None,
        session: Optional[AsyncSession] = None,
        now: datetime = None
    ) -> RatingOutcome:
        """Drawn rated game: draws counter on both sides, no rating movement."""
        async def _record(s):
            now_ = now or utc_now()
            daily = await self.db.count_pair_games_since(
                player1_id, player2_id, game_type, start_of_utc_day(now_), session=s
            )
            stats = []
            for player_id in (player1_id, player2_id):
                stat = await self.db.get_or_create_game_stat(player_id, game_type, session=s, for_update=True)
                stat.draws += 1
                stats.append(stat)

            p1 = await self.db.get_player(player1_id, session=s)
            p2 = await self.db.get_player(player2_id, session=s)
            await self.db.add_match_history(
                session=s,
                game_type=game_type,
                player1_id=player1_id,
                player2_id=player2_id,
                player1_name=player1_name or (p1.name if p1 else None),
                player2_name=player2_name or (p2.name if p2 else None),
                winner_id=None,
                result=MatchResult.DRAW.value,
                player1_elo_change=0,
                player2_elo_change=0,
                end_reason=EndReason.COMPLETED.value,
                duration=duration,
                completed_at=now_
            )
            await self._update_daily_streak(p1, now_)
            await self._update_daily_streak(p2, now_)
            await s.flush()
            return RatingOutcome(
                winner_change=0, loser_change=0, elo_affected=False,
                daily_games_count=daily + 1,
                winner_elo=stats[0].elo_rating, loser_elo=stats[1].elo_rating
            )
        return await self._run(_record, session, player1_id, player2_id)

    async def record_solo_result(
        self,
        player_id: str,
        game_type: str,
        result: MatchResult,
        session: Optional[AsyncSession] = None,
        now: datetime = None
    ) -> GameStat:
        """
        Record a solo (or unrated) result. Rank score is wins*10 + win rate.
        """
        async def _record(s):
            now_ = now or utc_now()
            stat = await self.db.get_or_create_game_stat(player_id, game_type, session=s, for_update=True)
            if result == MatchResult.WIN:
                stat.wins += 1
                stat.win_streak += 1
                stat.best_streak = max(stat.best_streak, stat.win_streak)
            elif result == MatchResult.LOSS:
                stat.losses += 1
                stat.win_streak = 0
            else:
                stat.draws += 1
            stat.win_rate = EloCalculator.calculate_win_rate(stat.wins, stat.losses)
            stat.rank_score = EloCalculator.calculate_rank_score(stat.wins, stat.win_rate)

            player = await self.db.get_player(player_id, session=s, for_update=True)
            if player is not None:
                if result == MatchResult.WIN:
                    player.total_wins += 1
                elif result == MatchResult.LOSS:
                    player.total_losses += 1
                await self._update_daily_streak(player, now_)
            await s.flush()
            return stat
        return await self._run(_record, session, player_id)

    async def update_daily_streak(self, player_id: str, session: Optional[AsyncSession] = None,
                                  now: datetime = None) -> StreakUpdate:
        async def _update(s):
            player = await self.db.get_player(player_id, session=s, for_update=True)
            update = await self._update_daily_streak(player, now or utc_now())
            await s.flush()
            return update
        return await self._run(_update, session, player_id)

    async def _run(self, func, session, *player_ids):
        if session is not None:
            return await func(session)

        async def _in_transaction():
            async with self.db.transaction() as s:
                return await func(s)

        async with self.locks.hold(*(player_key(pid) for pid in player_ids)):
            return await self.execute_with_retry(_in_transaction)

    async def _record_pvp_result(self, s, winner_id, loser_id, game_type, winner_name,
                                 loser_name, duration, reason, now) -> RatingOutcome:
        daily = await self.db.count_pair_games_since(
            winner_id, loser_id, game_type, start_of_utc_day(now), session=s
        )
        elo_affected = daily < Config.DAILY_RATED_GAMES_LIMIT

        winner_stat = await self.db.get_or_create_game_stat(winner_id, game_type, session=s, for_update=True)
        loser_stat = await self.db.get_or_create_game_stat(loser_id, game_type, session=s, for_update=True)

        old_winner_elo = winner_stat.elo_rating
        old_loser_elo = loser_stat.elo_rating
        if elo_affected:
            elo_change = EloCalculator.calculate_elo_change(old_winner_elo, old_loser_elo)
            new_winner_elo, new_loser_elo = EloCalculator.apply_result(
                old_winner_elo, old_loser_elo, elo_change
            )
        else:
            elo_change = 0
            new_winner_elo, new_loser_elo = old_winner_elo, old_loser_elo

        winner_stat.wins += 1
        winner_stat.win_streak += 1
        winner_stat.best_streak = max(winner_stat.best_streak, winner_stat.win_streak)
        winner_stat.win_rate = EloCalculator.calculate_win_rate(winner_stat.wins, winner_stat.losses)
        winner_stat.elo_rating = new_winner_elo
        winner_stat.rank_score = new_winner_elo

        loser_stat.losses += 1
        loser_stat.win_streak = 0
        loser_stat.win_rate = EloCalculator.calculate_win_rate(loser_stat.wins, loser_stat.losses)
        loser_stat.elo_rating = new_loser_elo
        loser_stat.rank_score = new_loser_elo

        winner = await self.db.get_player(winner_id, session=s, for_update=True)
        loser = await self.db.get_player(loser_id, session=s, for_update=True)
        if winner is not None:
            winner.total_wins += 1
        if loser is not None:
            loser.total_losses += 1

        loser_change = new_loser_elo - old_loser_elo
        await self.db.add_match_history(
            session=s,
            game_type=game_type,
            player1_id=winner_id,
            player2_id=loser_id,
            player1_name=winner_name or (winner.name if winner else None),
            player2_name=loser_name or (loser.name if loser else None),
            winner_id=winner_id,
            result=MatchResult.WIN.value,
            player1_elo_change=elo_change,
            player2_elo_change=loser_change,
            end_reason=reason.value,
            duration=duration,
            completed_at=now
        )

        await self._update_daily_streak(winner, now)
        await self._update_daily_streak(loser, now)
        await s.flush()

        if elo_affected:
            logger.info(
                f"{game_type}: {winner_id} {old_winner_elo}->{new_winner_elo}, "
                f"{loser_id} {old_loser_elo}->{new_loser_elo}"
            )
        else:
            logger.info(
                f"{game_type}: rating unchanged for {winner_id} vs {loser_id} "
                f"({daily + 1} games today)"
            )

        return RatingOutcome(
            winner_change=elo_change,
            loser_change=loser_change,
            elo_affected=elo_affected,
            daily_games_count=daily + 1,
            winner_elo=new_winner_elo,
            loser_elo=new_loser_elo
        )

    @staticmethod
    async def _update_daily_streak(player: Optional[Player], now: datetime) -> StreakUpdate:
        if player is None:
            return StreakUpdate(streak=0, is_new_streak=False)

        today = utc_today(now)
        if player.last_played_date == today:
            return StreakUpdate(streak=player.daily_streak, is_new_streak=False)

        yesterday = utc_today(now - timedelta(days=1))
        if player.last_played_date == yesterday:
            streak, is_new = player.daily_streak + 1, True
        elif not player.last_played_date:
            streak, is_new = 1, True
        else:
            streak, is_new = 1, player.daily_streak > 0

        player.daily_streak = streak
        player.last_played_date = today
        return StreakUpdate(streak=streak, is_new_streak=is_new)
