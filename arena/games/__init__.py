"""
Game engine registry.

Maps game type names to GameEngine instances. New mini-games register here
without touching matchmaking, timeout or rating logic.
"""

import random
from typing import Dict, Iterable, List, Optional

from arena.games.base import GameEngine, MoveOutcome, TerminalStatus, TimeoutPolicy
from arena.games.tictactoe import TicTacToeEngine
from arena.games.connect4 import Connect4Engine
from arena.games.wordduel import WordDuelEngine
from arena.games.numberguess import NumberGuessEngine
from arena.utils.exceptions import UnknownGameError


class GameRegistry:
    def __init__(self, engines: Iterable[GameEngine] = ()):
        self._engines: Dict[str, GameEngine] = {}
        for engine in engines:
            self.register(engine)
    
    def register(self, engine: GameEngine):
        if not engine.game_type:
            raise ValueError(f"{engine!r} has no game_type")
        self._engines[engine.game_type] = engine
    
    def get(self, game_type: str) -> GameEngine:
        engine = self._engines.get(game_type)
        if engine is None:
            raise UnknownGameError(game_type)
        return engine
    
    def find(self, game_type: str) -> Optional[GameEngine]:
        return self._engines.get(game_type)
    
    def __contains__(self, game_type: str) -> bool:
        return game_type in self._engines
    
    @property
    def game_types(self) -> List[str]:
        return sorted(self._engines)
    
    @property
    def rated_game_types(self) -> List[str]:
        return sorted(name for name, engine in self._engines.items() if engine.rated and not engine.solo)
    
    @property
    def bot_game_types(self) -> List[str]:
        return sorted(name for name, engine in self._engines.items() if engine.supports_bot)


def default_registry(rng: Optional[random.Random] = None) -> GameRegistry:
    """Registry with the built-in engines; rng seeds the randomized ones."""
    return GameRegistry([
        TicTacToeEngine(),
        Connect4Engine(),
        WordDuelEngine(rng=rng),
        NumberGuessEngine(rng=rng),
    ])


__all__ = [
    'GameEngine', 'MoveOutcome', 'TerminalStatus', 'TimeoutPolicy',
    'GameRegistry', 'default_registry',
    'TicTacToeEngine', 'Connect4Engine', 'WordDuelEngine', 'NumberGuessEngine',
]
