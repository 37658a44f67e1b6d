import random
from typing import List, Optional

from arena.constants import GameTypes
from arena.games.base import GameEngine, MoveOutcome, TerminalStatus, TimeoutPolicy

WORD_LIST = [
    "apple", "brave", "crane", "dance", "eagle", "flame", "grape", "heart", "ivory", "jewel",
    "knife", "lemon", "music", "noble", "ocean", "pearl", "queen", "river", "stone", "tiger",
    "forest", "golden", "island", "jungle", "knight", "planet", "rocket", "silver", "winter", "dragon",
]


def scramble(word: str, rng: random.Random) -> str:
    letters = list(word)
    while True:
        rng.shuffle(letters)
        scrambled = ''.join(letters)
        if scrambled != word or len(set(word)) == 1:
            return scrambled


class WordDuelEngine(GameEngine):
    """
    Both players race to unscramble the same word; first correct answer
    takes the round. Nobody has the turn, and an inactivity timeout skips
    the round instead of punishing a player.
    """
    
    game_type = GameTypes.WORDDUEL
    display_name = "Word Duel"
    timeout_policy = TimeoutPolicy.SKIP_ROUND
    
    def __init__(self, rounds: int = 5, rng: random.Random = None):
        self.rounds = rounds
        self.rng = rng or random.Random()
    
    def create_state(self, player_ids: List[str]) -> dict:
        words = self.rng.sample(WORD_LIST, self.rounds)
        return {
            'players': list(player_ids),
            'words': words,
            'scrambled': [scramble(word, self.rng) for word in words],
            'round': 0,
            'scores': [0, 0],
            'skipped': 0,
        }
    
    def apply_move(self, state: dict, player_id: str, move) -> MoveOutcome:
        if state['round'] >= len(state['words']):
            return MoveOutcome(False, "The duel is over.")
        if player_id not in state['players']:
            return MoveOutcome(False, "You're not in this duel.")
        guess = str(move).strip().lower()
        if guess != state['words'][state['round']]:
            return MoveOutcome(False, "Not quite!")
        state['scores'][state['players'].index(player_id)] += 1
        state['round'] += 1
        return MoveOutcome(True)
    
    def on_timeout(self, state: dict) -> None:
        state['round'] += 1
        state['skipped'] += 1
    
    def is_terminal(self, state: dict) -> TerminalStatus:
        if state['round'] < len(state['words']):
            return TerminalStatus(False)
        p1, p2 = state['scores']
        if p1 == p2:
            return TerminalStatus(True, draw=True)
        return TerminalStatus(True, winner_id=state['players'][0 if p1 > p2 else 1])
    
    def current_turn_player_id(self, state: dict) -> Optional[str]:
        return None
    
    def timeout_loser(self, state: dict) -> Optional[str]:
        return None
