"""Tests for EloService result recording."""

from datetime import datetime, timedelta

import pytest

from arena.database.models import EndReason, MatchResult
from arena.operations.elo_service import EloService

GAME = 'connect4'


class TestRecordPvpResult:
    """Tests for rated win/loss recording."""

    async def test_updates_ratings_counters_and_history(self, services, players, db):
        outcome = await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)

        assert outcome.elo_affected
        assert outcome.winner_change == 16
        assert outcome.loser_change == -16
        assert outcome.daily_games_count == 1

        winner = await db.get_game_stat(players.alice, GAME)
        loser = await db.get_game_stat(players.bob, GAME)
        assert (winner.wins, winner.losses, winner.win_streak, winner.best_streak) == (1, 0, 1, 1)
        assert (loser.wins, loser.losses, loser.win_streak) == (0, 1, 0)
        assert winner.elo_rating == 1016
        assert loser.elo_rating == 984
        assert winner.rank_score == 1016
        assert winner.win_rate == 100.0
        assert loser.win_rate == 0.0

        alice = await db.get_player(players.alice)
        bob = await db.get_player(players.bob)
        assert alice.total_wins == 1
        assert bob.total_losses == 1

        history = await db.get_match_history(players.alice)
        assert len(history) == 1
        assert history[0].winner_id == players.alice
        assert history[0].player1_elo_change == 16
        assert history[0].player2_elo_change == -16
        assert history[0].player1_name == 'Alice'

    async def test_worked_example(self, services, players, db, set_rating):
        await set_rating(players.alice, GAME, 1000)
        await set_rating(players.bob, GAME, 1200)

        outcome = await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)

        assert outcome.winner_change == 24
        assert (await db.get_game_stat(players.alice, GAME)).elo_rating == 1024
        assert (await db.get_game_stat(players.bob, GAME)).elo_rating == 1176

    async def test_loser_never_drops_below_floor(self, services, players, db, set_rating):
        await set_rating(players.alice, GAME, 110)
        await set_rating(players.bob, GAME, 105)

        outcome = await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)

        assert (await db.get_game_stat(players.bob, GAME)).elo_rating == 100
        assert outcome.loser_change == -5

    async def test_fourth_game_of_the_day_does_not_move_rating(self, services, players, db):
        for _ in range(3):
            outcome = await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)
            assert outcome.elo_affected

        before_winner = (await db.get_game_stat(players.alice, GAME)).elo_rating
        before_loser = (await db.get_game_stat(players.bob, GAME)).elo_rating

        outcome = await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)

        assert not outcome.elo_affected
        assert outcome.winner_change == 0
        assert outcome.daily_games_count == 4
        winner = await db.get_game_stat(players.alice, GAME)
        loser = await db.get_game_stat(players.bob, GAME)
        assert winner.elo_rating == before_winner
        assert loser.elo_rating == before_loser
        assert winner.wins == 4
        assert loser.losses == 4
        assert winner.win_streak == 4

    async def test_daily_cap_counts_both_orders(self, services, players):
        await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)
        await services.elo_service.record_pvp_result(players.bob, players.alice, GAME)
        await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)

        outcome = await services.elo_service.record_pvp_result(players.bob, players.alice, GAME)
        assert not outcome.elo_affected

    async def test_daily_cap_is_per_pair_and_game(self, services, players):
        for _ in range(3):
            await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)

        other_game = await services.elo_service.record_pvp_result(players.alice, players.bob, 'tictactoe')
        other_pair = await services.elo_service.record_pvp_result(players.alice, players.carol, GAME)
        assert other_game.elo_affected
        assert other_pair.elo_affected

    async def test_daily_cap_resets_next_utc_day(self, services, players):
        yesterday = datetime(2026, 3, 1, 22, 0)
        for _ in range(3):
            await services.elo_service.record_pvp_result(players.alice, players.bob, GAME, now=yesterday)

        outcome = await services.elo_service.record_pvp_result(
            players.alice, players.bob, GAME, now=yesterday + timedelta(hours=3)
        )
        assert outcome.elo_affected
        assert outcome.daily_games_count == 1

    async def test_loss_resets_win_streak_but_keeps_best(self, services, players, db):
        await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)
        await services.elo_service.record_pvp_result(players.alice, players.bob, GAME)
        await services.elo_service.record_pvp_result(players.bob, players.alice, GAME)

        alice = await db.get_game_stat(players.alice, GAME)
        assert alice.win_streak == 0
        assert alice.best_streak == 2

    async def test_end_reason_recorded(self, services, players, db):
        await services.elo_service.record_pvp_result(
            players.alice, players.bob, GAME, reason=EndReason.FORFEIT
        )
        history = await db.get_match_history(players.bob)
        assert history[0].end_reason == 'forfeit'


class TestRecordPvpDraw:
    """Tests for rated draws."""

    async def test_draw_counts_without_rating_change(self, services, players, db):
        outcome = await services.elo_service.record_pvp_draw(players.alice, players.bob, GAME)

        assert outcome.winner_change == 0
        for player_id in (players.alice, players.bob):
            stat = await db.get_game_stat(player_id, GAME)
            assert stat.draws == 1
            assert stat.elo_rating == 1000
        history = await db.get_match_history(players.alice)
        assert history[0].result == 'draw'
        assert history[0].winner_id is None


class TestRecordSoloResult:
    """Tests for rank-score recording."""

    async def test_rank_score_formula(self, services, players, db):
        await services.elo_service.record_solo_result(players.alice, 'numberguess', MatchResult.WIN)
        await services.elo_service.record_solo_result(players.alice, 'numberguess', MatchResult.WIN)
        await services.elo_service.record_solo_result(players.alice, 'numberguess', MatchResult.WIN)
        stat = await services.elo_service.record_solo_result(players.alice, 'numberguess', MatchResult.LOSS)

        assert stat.wins == 3
        assert stat.losses == 1
        assert stat.win_rate == 75.0
        assert stat.rank_score == 3 * 10 + 75.0
        assert stat.best_streak == 3
        assert stat.win_streak == 0

    async def test_draw_does_not_touch_lifetime_totals(self, services, players, db):
        await services.elo_service.record_solo_result(players.alice, 'numberguess', MatchResult.DRAW)
        alice = await db.get_player(players.alice)
        assert alice.total_wins == 0
        assert alice.total_losses == 0
        assert (await db.get_game_stat(players.alice, 'numberguess')).draws == 1


class TestDailyStreak:
    """Tests for the consecutive-day streak."""

    async def test_first_game_starts_streak(self, services, players):
        update = await services.elo_service.update_daily_streak(players.alice, now=datetime(2026, 3, 1, 12))
        assert update.streak == 1
        assert update.is_new_streak

    async def test_same_day_is_unchanged(self, services, players):
        day = datetime(2026, 3, 1, 9)
        await services.elo_service.update_daily_streak(players.alice, now=day)
        update = await services.elo_service.update_daily_streak(players.alice, now=day + timedelta(hours=5))
        assert update.streak == 1
        assert not update.is_new_streak

    async def test_consecutive_days_extend_streak(self, services, players):
        day = datetime(2026, 3, 1, 23, 30)
        await services.elo_service.update_daily_streak(players.alice, now=day)
        update = await services.elo_service.update_daily_streak(players.alice, now=day + timedelta(hours=1))
        assert update.streak == 2
        assert update.is_new_streak

    async def test_gap_resets_streak(self, services, players, db):
        day = datetime(2026, 3, 1, 12)
        await services.elo_service.update_daily_streak(players.alice, now=day)
        await services.elo_service.update_daily_streak(players.alice, now=day + timedelta(days=1))
        update = await services.elo_service.update_daily_streak(players.alice, now=day + timedelta(days=4))
        assert update.streak == 1
        assert (await db.get_player(players.alice)).last_played_date == '2026-03-05'

    async def test_unknown_player_has_no_streak(self, services):
        update = await services.elo_service.update_daily_streak('nobody')
        assert update.streak == 0


class TestRetry:
    """Tests for store-error retry on standalone writes."""

    async def test_store_error_is_retried(self, db, players, monkeypatch):
        from arena.utils.exceptions import StoreError

        service = EloService(db)
        calls = {'count': 0}
        original = db.count_pair_games_since

        async def flaky(*args, **kwargs):
            calls['count'] += 1
            if calls['count'] == 1:
                raise StoreError("count", "database is locked")
            return await original(*args, **kwargs)

        monkeypatch.setattr(db, 'count_pair_games_since', flaky)
        outcome = await service.record_pvp_result(players.alice, players.bob, GAME)
        assert outcome.elo_affected
        assert calls['count'] == 2
        assert (await db.get_game_stat(players.alice, GAME)).wins == 1

    async def test_persistent_store_error_propagates(self, db, players, monkeypatch):
        from arena.utils.exceptions import StoreError

        async def broken(*args, **kwargs):
            raise StoreError("count", "disk I/O error")

        monkeypatch.setattr(db, 'count_pair_games_since', broken)
        with pytest.raises(StoreError):
            await EloService(db).record_pvp_result(players.alice, players.bob, GAME)
        assert await db.get_game_stat(players.alice, GAME) is None
