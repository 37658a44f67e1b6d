"""
Game engine adapter contract.

The session manager treats every mini-game as a black box exposing four
operations: create_state, apply_move, is_terminal and current_turn_player_id.
Engine state is a JSON-serializable dict owned entirely by the engine; the
core never reads its fields.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class TimeoutPolicy(Enum):
    FORFEIT = "forfeit"        # on-turn player loses
    SKIP_ROUND = "skip_round"  # round is skipped, match continues


@dataclass
class MoveOutcome:
    accepted: bool
    error: Optional[str] = None


@dataclass
class TerminalStatus:
    over: bool
    winner_id: Optional[str] = None
    draw: bool = False


class GameEngine(ABC):
    """Base class for per-game-type engines."""
    
    game_type: str = None
    display_name: str = None
    solo: bool = False
    rated: bool = True
    supports_bot: bool = False
    timeout_policy: TimeoutPolicy = TimeoutPolicy.FORFEIT
    
    @abstractmethod
    def create_state(self, player_ids: List[str]) -> dict:
        """Build initial state. player_ids[0] moves first."""
    
    @abstractmethod
    def apply_move(self, state: dict, player_id: str, move: Any) -> MoveOutcome:
        """Validate and apply a move in place. Rejected moves must not count."""
    
    @abstractmethod
    def is_terminal(self, state: dict) -> TerminalStatus:
        """Report whether the match is over and who won."""
    
    @abstractmethod
    def current_turn_player_id(self, state: dict) -> Optional[str]:
        """Player expected to act next, or None when any participant may act."""
    
    def on_timeout(self, state: dict) -> None:
        """Advance state after an inactivity timeout (skip-round engines only)."""
        raise NotImplementedError(f"{self.game_type} does not skip rounds on timeout")
    
    def timeout_loser(self, state: dict) -> Optional[str]:
        """Player charged with the loss when a forfeit-policy timeout fires."""
        return self.current_turn_player_id(state)
    
    def legal_moves(self, state: dict) -> list:
        """Moves available to the on-turn player; used by the AI opponent."""
        return []
    
    def __repr__(self):
        return f"<{type(self).__name__}(game_type='{self.game_type}')>"
