import random
from typing import List, Optional

from arena.constants import GameTypes
from arena.games.base import GameEngine, MoveOutcome, TerminalStatus


class NumberGuessEngine(GameEngine):
    """Solo guess-the-number, 1 to 100 in seven guesses."""
    
    game_type = GameTypes.NUMBERGUESS
    display_name = "Number Guess"
    solo = True
    rated = False
    
    def __init__(self, low: int = 1, high: int = 100, max_guesses: int = 7, rng: random.Random = None):
        self.low = low
        self.high = high
        self.max_guesses = max_guesses
        self.rng = rng or random.Random()
    
    def create_state(self, player_ids: List[str]) -> dict:
        return {
            'players': list(player_ids),
            'target': self.rng.randint(self.low, self.high),
            'min': self.low,
            'max': self.high,
            'guesses': [],
            'max_guesses': self.max_guesses,
            'hint': None,
        }
    
    def apply_move(self, state: dict, player_id: str, move) -> MoveOutcome:
        try:
            guess = int(move)
        except (TypeError, ValueError):
            return MoveOutcome(False, "Guess a whole number.")
        if guess < self.low or guess > self.high:
            return MoveOutcome(False, f"Guess between {self.low} and {self.high}.")
        if guess in state['guesses']:
            return MoveOutcome(False, "You already guessed that.")
        
        state['guesses'].append(guess)
        if guess < state['target']:
            state['min'] = max(state['min'], guess + 1)
            state['hint'] = 'higher'
        elif guess > state['target']:
            state['max'] = min(state['max'], guess - 1)
            state['hint'] = 'lower'
        else:
            state['hint'] = 'correct'
        return MoveOutcome(True)
    
    def is_terminal(self, state: dict) -> TerminalStatus:
        player_id = state['players'][0]
        if state['target'] in state['guesses']:
            return TerminalStatus(True, winner_id=player_id)
        if len(state['guesses']) >= state['max_guesses']:
            return TerminalStatus(True)
        return TerminalStatus(False)
    
    def current_turn_player_id(self, state: dict) -> Optional[str]:
        return state['players'][0]
