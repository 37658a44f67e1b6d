"""Tests for the game engine contract, reference engines and registry."""

import random

import pytest

from arena.games import (
    GameRegistry, default_registry, TicTacToeEngine, Connect4Engine,
    WordDuelEngine, NumberGuessEngine
)
from arena.games.base import TimeoutPolicy
from arena.utils.exceptions import UnknownGameError

P1, P2 = 'p1', 'p2'


def play(engine, state, moves):
    """Apply (player, move) pairs, asserting each is accepted."""
    for player_id, move in moves:
        assert engine.current_turn_player_id(state) in (None, player_id)
        outcome = engine.apply_move(state, player_id, move)
        assert outcome.accepted, outcome.error


class TestTicTacToe:
    """Tests for TicTacToeEngine."""

    def setup_method(self):
        self.engine = TicTacToeEngine()
        self.state = self.engine.create_state([P1, P2])

    def test_player_one_moves_first(self):
        assert self.engine.current_turn_player_id(self.state) == P1

    def test_taken_square_rejected(self):
        play(self.engine, self.state, [(P1, 4)])
        outcome = self.engine.apply_move(self.state, P2, 4)
        assert not outcome.accepted
        assert outcome.error == "That square is taken."

    def test_out_of_range_rejected(self):
        assert not self.engine.apply_move(self.state, P1, 9).accepted
        assert not self.engine.apply_move(self.state, P1, 'x').accepted

    def test_round_win_resets_board(self):
        play(self.engine, self.state, [(P1, 0), (P2, 3), (P1, 1), (P2, 4), (P1, 2)])
        assert self.state['round_wins'] == [1, 0]
        assert self.state['board'] == [0] * 9
        assert not self.engine.is_terminal(self.state).over
        # Turn keeps alternating across rounds
        assert self.engine.current_turn_player_id(self.state) == P2

    def test_two_round_wins_end_match(self):
        play(self.engine, self.state, [(P1, 0), (P2, 3), (P1, 1), (P2, 4), (P1, 2)])
        play(self.engine, self.state, [(P2, 6), (P1, 0), (P2, 7), (P1, 1), (P2, 5), (P1, 2)])
        status = self.engine.is_terminal(self.state)
        assert status.over
        assert status.winner_id == P1
        assert not status.draw

    def test_legal_moves_are_empty_squares(self):
        play(self.engine, self.state, [(P1, 0), (P2, 8)])
        assert self.engine.legal_moves(self.state) == [1, 2, 3, 4, 5, 6, 7]


class TestConnect4:
    """Tests for Connect4Engine."""

    def setup_method(self):
        self.engine = Connect4Engine()
        self.state = self.engine.create_state([P1, P2])

    def test_vertical_four_wins(self):
        play(self.engine, self.state, [
            (P1, 0), (P2, 1), (P1, 0), (P2, 1), (P1, 0), (P2, 1), (P1, 0)
        ])
        status = self.engine.is_terminal(self.state)
        assert status.over
        assert status.winner_id == P1

    def test_full_column_rejected(self):
        play(self.engine, self.state, [
            (P1, 3), (P2, 3), (P1, 3), (P2, 3), (P1, 3), (P2, 3)
        ])
        outcome = self.engine.apply_move(self.state, P1, 3)
        assert not outcome.accepted
        assert outcome.error == "That column is full."
        assert 3 not in self.engine.legal_moves(self.state)

    def test_rejected_move_does_not_change_turn(self):
        self.engine.apply_move(self.state, P1, 7)
        assert self.engine.current_turn_player_id(self.state) == P1


class TestWordDuel:
    """Tests for WordDuelEngine."""

    def setup_method(self):
        self.engine = WordDuelEngine(rng=random.Random(7))
        self.state = self.engine.create_state([P1, P2])

    def test_simultaneous_play(self):
        assert self.engine.current_turn_player_id(self.state) is None
        assert self.engine.timeout_policy == TimeoutPolicy.SKIP_ROUND

    def test_scrambled_words_are_permutations(self):
        for word, scrambled in zip(self.state['words'], self.state['scrambled']):
            assert sorted(word) == sorted(scrambled)

    def test_wrong_guess_rejected(self):
        outcome = self.engine.apply_move(self.state, P2, 'zzzzz')
        assert not outcome.accepted
        assert outcome.error == "Not quite!"
        assert self.state['round'] == 0

    def test_correct_guess_scores_and_advances(self):
        play(self.engine, self.state, [(P2, self.state['words'][0].upper())])
        assert self.state['scores'] == [0, 1]
        assert self.state['round'] == 1

    def test_timeout_skips_round(self):
        self.engine.on_timeout(self.state)
        assert self.state['round'] == 1
        assert self.state['skipped'] == 1

    def test_all_rounds_skipped_is_draw(self):
        for _ in range(5):
            self.engine.on_timeout(self.state)
        status = self.engine.is_terminal(self.state)
        assert status.over
        assert status.draw


class TestNumberGuess:
    """Tests for NumberGuessEngine."""

    def setup_method(self):
        self.engine = NumberGuessEngine(rng=random.Random(3))
        self.state = self.engine.create_state([P1])

    def test_correct_guess_wins(self):
        play(self.engine, self.state, [(P1, self.state['target'])])
        status = self.engine.is_terminal(self.state)
        assert status.over
        assert status.winner_id == P1

    def test_hints(self):
        target = self.state['target']
        if target > 1:
            play(self.engine, self.state, [(P1, target - 1)])
            assert self.state['hint'] == 'higher'
        if target < 100:
            play(self.engine, self.state, [(P1, target + 1)])
            assert self.state['hint'] == 'lower'

    def test_duplicate_guess_rejected(self):
        guess = 1 if self.state['target'] != 1 else 2
        play(self.engine, self.state, [(P1, guess)])
        assert not self.engine.apply_move(self.state, P1, guess).accepted

    def test_out_of_guesses_ends_without_winner(self):
        wrong = [n for n in range(1, 101) if n != self.state['target']][:7]
        play(self.engine, self.state, [(P1, n) for n in wrong])
        status = self.engine.is_terminal(self.state)
        assert status.over
        assert status.winner_id is None


class TestGameRegistry:
    """Tests for GameRegistry."""

    def test_unknown_game_raises(self):
        with pytest.raises(UnknownGameError):
            default_registry().get('chess')

    def test_classification(self):
        registry = default_registry()
        assert registry.rated_game_types == ['connect4', 'tictactoe', 'wordduel']
        assert registry.bot_game_types == ['connect4', 'tictactoe']
        assert 'numberguess' in registry

    def test_register_requires_game_type(self):
        engine = TicTacToeEngine()
        engine.game_type = None
        with pytest.raises(ValueError):
            GameRegistry([engine])
