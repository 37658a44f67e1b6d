"""Tests for the matchmaking search loop."""

import asyncio
import random

from arena.config import Config
from arena.container import ArenaServices
from arena.services.matchmaking import SearchStatus
from arena.services.notifications import QueueUpdate

NEVER = 3600

CHANNEL = '300'


async def queue(services, player_id, game_type):
    result = await services.matchmaking.join(player_id, game_type, CHANNEL, start_search=False)
    assert result.success
    return result.entry


class TestRunAttempt:
    """Single search attempts driven by hand."""

    async def test_match_found(self, services, players, recorder):
        await queue(services, players.bob, 'connect4')
        entry = await queue(services, players.alice, 'connect4')

        status = await services.matchmaking.run_attempt(players.alice, 'connect4', entry.id, 1, reschedule=False)

        assert status == SearchStatus.MATCHED
        game = await services.session_manager.get_session(players.alice)
        assert game.player1_id == players.alice
        assert game.player2_id == players.bob
        matched = [u for u in recorder.of_type(QueueUpdate) if u.status == SearchStatus.MATCHED]
        assert {u.player_id for u in matched} == {players.alice, players.bob}

    async def test_keeps_searching_without_opponent(self, services, players, recorder):
        entry = await queue(services, players.alice, 'connect4')

        status = await services.matchmaking.run_attempt(players.alice, 'connect4', entry.id, 1)

        assert status == SearchStatus.SEARCHING
        assert await services.queue_ops.is_queued(players.alice)
        assert services.matchmaking.is_searching(players.alice)
        assert recorder.of_type(QueueUpdate)[-1].attempt == 1

    async def test_tolerance_widens_with_attempts(self, services, players, set_rating):
        await set_rating(players.alice, 'connect4', 1000)
        await set_rating(players.bob, 'connect4', 1300)
        await queue(services, players.bob, 'connect4')
        entry = await queue(services, players.alice, 'connect4')

        first = await services.matchmaking.run_attempt(players.alice, 'connect4', entry.id, 1, reschedule=False)
        fourth = await services.matchmaking.run_attempt(players.alice, 'connect4', entry.id, 4, reschedule=False)

        assert first == SearchStatus.SEARCHING
        assert fourth == SearchStatus.MATCHED

    async def test_bot_fallback(self, services, players):
        entry = await queue(services, players.alice, 'tictactoe')

        before = await services.matchmaking.run_attempt(
            players.alice, 'tictactoe', entry.id, Config.BOT_FALLBACK_ATTEMPTS - 1, reschedule=False
        )
        status = await services.matchmaking.run_attempt(
            players.alice, 'tictactoe', entry.id, Config.BOT_FALLBACK_ATTEMPTS, reschedule=False
        )

        assert before == SearchStatus.SEARCHING
        assert status == SearchStatus.BOT_MATCH
        game = await services.session_manager.get_session(players.alice)
        assert game.is_bot_game
        assert not await services.queue_ops.is_queued(players.alice)

    async def test_search_expires(self, services, players, recorder):
        entry = await queue(services, players.alice, 'wordduel')

        status = await services.matchmaking.run_attempt(
            players.alice, 'wordduel', entry.id, Config.MATCHMAKING_MAX_ATTEMPTS, reschedule=False
        )

        assert status == SearchStatus.EXPIRED
        assert not await services.queue_ops.is_queued(players.alice)
        assert recorder.of_type(QueueUpdate)[-1].status == SearchStatus.EXPIRED

    async def test_stale_after_cancel(self, services, players):
        entry = await queue(services, players.alice, 'connect4')
        await services.matchmaking.cancel(players.alice)

        status = await services.matchmaking.run_attempt(players.alice, 'connect4', entry.id, 2, reschedule=False)

        assert status == SearchStatus.STALE

    async def test_stale_for_replaced_entry(self, services, players):
        old = await queue(services, players.alice, 'connect4')
        await services.matchmaking.cancel(players.alice)
        await queue(services, players.alice, 'connect4')

        status = await services.matchmaking.run_attempt(players.alice, 'connect4', old.id, 3, reschedule=False)

        assert status == SearchStatus.STALE


class TestJoinAndCancel:
    """Tests for the public queue surface."""

    async def test_join_starts_search_and_cancel_stops_it(self, services, players, recorder):
        result = await services.matchmaking.join(players.alice, 'connect4', CHANNEL)
        assert result.success
        assert services.matchmaking.is_searching(players.alice)

        assert await services.matchmaking.cancel(players.alice)
        assert not services.matchmaking.is_searching(players.alice)
        assert not await services.queue_ops.is_queued(players.alice)
        assert recorder.of_type(QueueUpdate)[-1].status == 'cancelled'

    async def test_cancel_when_not_queued(self, services, players):
        assert not await services.matchmaking.cancel(players.alice)

    async def test_join_refused_while_queued(self, services, players):
        await queue(services, players.alice, 'connect4')

        result = await services.matchmaking.join(players.alice, 'tictactoe', CHANNEL, start_search=False)

        assert not result.success


class TestSearchLoop:
    """The timer-driven loop end to end."""

    async def test_loop_falls_back_to_bot(self, db, players):
        arena = ArenaServices(
            db, rng=random.Random(5), afk_timeout=NEVER, bot_move_delay=NEVER, poll_interval=0
        )
        done = asyncio.Event()
        seen = []

        async def on_update(event):
            seen.append(event.status)
            if event.status == SearchStatus.BOT_MATCH:
                done.set()

        arena.notifications.subscribe(QueueUpdate, on_update)
        try:
            await arena.matchmaking.join(players.alice, 'tictactoe', CHANNEL)
            await asyncio.wait_for(done.wait(), timeout=10)

            assert seen.count(SearchStatus.SEARCHING) == Config.BOT_FALLBACK_ATTEMPTS - 1
            assert not arena.matchmaking.is_searching(players.alice)
            game = await arena.session_manager.get_session(players.alice)
            assert game.player2_id == Config.BOT_PLAYER_ID
        finally:
            await arena.shutdown(close_db=False)
