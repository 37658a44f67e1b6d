"""Tests for direct challenges and rematches."""

from datetime import timedelta

from arena.services.notifications import ChallengeAccepted, ChallengeIssued, SessionCreated
from arena.utils.clock import utc_now
from arena.utils.exceptions import ErrorCode

GAME = 'tictactoe'
CHANNEL = '700'


class TestCreate:
    """Tests for issuing challenges."""

    async def test_create_publishes_event(self, services, players, recorder):
        result = await services.challenge_ops.create(players.alice, players.bob, GAME, CHANNEL, guild_id='g1')

        assert result.success
        assert result.challenge.challenger_id == players.alice
        issued = recorder.of_type(ChallengeIssued)
        assert len(issued) == 1
        assert issued[0].challenged_id == players.bob
        assert not issued[0].rematch

    async def test_cannot_challenge_self(self, services, players):
        result = await services.challenge_ops.create(players.alice, players.alice, GAME, CHANNEL)
        assert result.error == ErrorCode.SELF_CHALLENGE

    async def test_solo_game_cannot_be_challenged(self, services, players):
        result = await services.challenge_ops.create(players.alice, players.bob, 'numberguess', CHANNEL)
        assert result.error == ErrorCode.UNKNOWN_GAME

    async def test_busy_player_refused(self, services, players):
        await services.session_manager.create_solo_session('numberguess', players.bob, CHANNEL)

        result = await services.challenge_ops.create(players.alice, players.bob, GAME, CHANNEL)

        assert result.error == ErrorCode.ALREADY_IN_SESSION

    async def test_expired_challenges_purged_on_create(self, services, players):
        await services.challenge_ops.create(
            players.carol, players.bob, GAME, CHANNEL, now=utc_now() - timedelta(minutes=10)
        )
        await services.challenge_ops.create(players.alice, players.bob, GAME, CHANNEL)

        assert len(await services.db.list_challenges(players.bob)) == 1


class TestAccept:
    """Tests for accepting challenges."""

    async def test_accept_starts_session_with_challenger_first(self, services, players, recorder):
        await services.challenge_ops.create(players.alice, players.bob, GAME, CHANNEL)

        result = await services.challenge_ops.accept(players.bob)

        assert result.success
        assert result.session.player1_id == players.alice
        assert result.session.player2_id == players.bob
        assert result.session.current_turn == players.alice
        assert await services.challenge_ops.list_for(players.bob) == []
        accepted = recorder.of_type(ChallengeAccepted)
        assert accepted[0].session_id == result.session.id
        assert len(recorder.of_type(SessionCreated)) == 1

    async def test_newest_challenge_is_accepted(self, services, players):
        now = utc_now()
        await services.challenge_ops.create(
            players.carol, players.alice, GAME, CHANNEL, now=now - timedelta(seconds=20)
        )
        await services.challenge_ops.create(
            players.bob, players.alice, 'connect4', CHANNEL, now=now - timedelta(seconds=10)
        )

        result = await services.challenge_ops.accept(players.alice)

        assert result.session.player1_id == players.bob
        assert result.session.game_type == 'connect4'
        remaining = await services.challenge_ops.list_for(players.alice)
        assert [c.challenger_id for c in remaining] == [players.carol]

    async def test_guild_scope(self, services, players):
        now = utc_now()
        await services.challenge_ops.create(
            players.bob, players.alice, GAME, CHANNEL, guild_id='g1', now=now - timedelta(seconds=20)
        )
        await services.challenge_ops.create(
            players.carol, players.alice, GAME, CHANNEL, guild_id='g2', now=now - timedelta(seconds=10)
        )

        result = await services.challenge_ops.accept(players.alice, guild_id='g1')

        assert result.session.player1_id == players.bob

    async def test_no_challenge(self, services, players):
        result = await services.challenge_ops.accept(players.alice)
        assert result.error == ErrorCode.NO_CHALLENGE
        assert result.error_message == "You have no pending challenges."

    async def test_expired_challenge_cannot_be_accepted(self, services, players):
        await services.challenge_ops.create(
            players.alice, players.bob, GAME, CHANNEL, now=utc_now() - timedelta(minutes=6)
        )

        result = await services.challenge_ops.accept(players.bob)

        assert result.error == ErrorCode.NO_CHALLENGE

    async def test_busy_challenger_discards_challenge(self, services, players):
        await services.challenge_ops.create(players.alice, players.bob, GAME, CHANNEL)
        await services.session_manager.create_solo_session('numberguess', players.alice, CHANNEL)

        result = await services.challenge_ops.accept(players.bob)

        assert result.error == ErrorCode.CHALLENGER_UNAVAILABLE
        assert await services.challenge_ops.list_for(players.bob) == []
        assert await services.session_manager.get_session(players.bob) is None

    async def test_busy_challenged_player_keeps_challenge(self, services, players):
        await services.challenge_ops.create(players.alice, players.bob, GAME, CHANNEL)
        await services.session_manager.create_solo_session('numberguess', players.bob, CHANNEL)

        result = await services.challenge_ops.accept(players.bob)

        assert result.error == ErrorCode.ALREADY_IN_SESSION
        assert len(await services.challenge_ops.list_for(players.bob)) == 1

    async def test_accept_removes_queue_entries(self, services, players):
        await services.queue_ops.enqueue(players.alice, GAME, CHANNEL)
        await services.challenge_ops.create(players.bob, players.alice, GAME, CHANNEL)

        result = await services.challenge_ops.accept(players.alice)

        assert result.success
        assert not await services.queue_ops.is_queued(players.alice)


class TestDeclineAndCleanup:
    """Tests for declining and expiring challenges."""

    async def test_decline(self, services, players):
        await services.challenge_ops.create(players.alice, players.bob, GAME, CHANNEL)

        declined = await services.challenge_ops.decline(players.bob)
        assert declined.success
        assert declined.challenge.challenger_id == players.alice

        again = await services.challenge_ops.accept(players.bob)
        assert again.error == ErrorCode.NO_CHALLENGE

    async def test_decline_without_challenge(self, services, players):
        result = await services.challenge_ops.decline(players.bob)
        assert result.error == ErrorCode.NO_CHALLENGE

    async def test_cleanup_expired(self, services, players):
        now = utc_now()
        await services.challenge_ops.create(
            players.alice, players.bob, GAME, CHANNEL, now=now - timedelta(minutes=7)
        )
        await services.challenge_ops.create(players.carol, players.bob, GAME, CHANNEL, now=now)

        assert await services.challenge_ops.cleanup_expired(now=now) == 1
        assert await services.challenge_ops.get(players.bob, challenger_id=players.carol) is not None


class TestRematch:
    """Tests for rematch requests."""

    async def test_rematch_pending_refused(self, services, players, recorder):
        first = await services.session_manager.request_rematch(players.alice, GAME, players.bob, CHANNEL)
        second = await services.session_manager.request_rematch(players.alice, GAME, players.bob, CHANNEL)

        assert first.success
        assert recorder.of_type(ChallengeIssued)[0].rematch
        assert second.error == ErrorCode.CHALLENGE_PENDING

    async def test_rematch_after_game(self, services, players):
        await services.session_manager.create_pvp_session(GAME, players.alice, players.bob, CHANNEL)
        await services.session_manager.forfeit(players.bob)

        result = await services.session_manager.request_rematch(players.bob, GAME, players.alice, CHANNEL)
        assert result.success

        accepted = await services.challenge_ops.accept(players.alice)
        assert accepted.success
        assert accepted.session.player1_id == players.bob
