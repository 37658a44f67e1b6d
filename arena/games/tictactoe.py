from typing import List, Optional

from arena.constants import GameTypes
from arena.games.base import GameEngine, MoveOutcome, TerminalStatus

WIN_PATTERNS = [
    [0, 1, 2], [3, 4, 5], [6, 7, 8],
    [0, 3, 6], [1, 4, 7], [2, 5, 8],
    [0, 4, 8], [2, 4, 6]
]


def check_win(board: List[int], mark: int) -> bool:
    return any(all(board[pos] == mark for pos in pattern) for pattern in WIN_PATTERNS)


class TicTacToeEngine(GameEngine):
    """Best-of-three tic tac toe. Moves are board positions 0-8."""
    
    game_type = GameTypes.TICTACTOE
    display_name = "Tic Tac Toe"
    supports_bot = True
    
    def __init__(self, max_rounds: int = 3):
        self.max_rounds = max_rounds
    
    def create_state(self, player_ids: List[str]) -> dict:
        return {
            'players': list(player_ids),
            'board': [0] * 9,
            'current_player': 1,
            'round_wins': [0, 0],
            'current_round': 1,
            'max_rounds': self.max_rounds,
        }
    
    def apply_move(self, state: dict, player_id: str, move) -> MoveOutcome:
        try:
            position = int(move)
        except (TypeError, ValueError):
            return MoveOutcome(False, "Pick a square from 0 to 8.")
        if position < 0 or position > 8:
            return MoveOutcome(False, "Pick a square from 0 to 8.")
        if state['board'][position] != 0:
            return MoveOutcome(False, "That square is taken.")
        
        mark = state['current_player']
        state['board'][position] = mark
        
        if check_win(state['board'], mark):
            state['round_wins'][mark - 1] += 1
            self._next_round(state)
        elif all(cell != 0 for cell in state['board']):
            self._next_round(state)
        
        state['current_player'] = 2 if mark == 1 else 1
        return MoveOutcome(True)
    
    def _next_round(self, state: dict):
        state['current_round'] += 1
        if not self.is_terminal(state).over:
            state['board'] = [0] * 9
    
    def is_terminal(self, state: dict) -> TerminalStatus:
        wins_needed = (state['max_rounds'] + 1) // 2
        p1_wins, p2_wins = state['round_wins']
        players = state['players']
        if p1_wins >= wins_needed:
            return TerminalStatus(True, winner_id=players[0])
        if p2_wins >= wins_needed:
            return TerminalStatus(True, winner_id=players[1])
        if state['current_round'] > state['max_rounds']:
            if p1_wins == p2_wins:
                return TerminalStatus(True, draw=True)
            return TerminalStatus(True, winner_id=players[0] if p1_wins > p2_wins else players[1])
        return TerminalStatus(False)
    
    def current_turn_player_id(self, state: dict) -> Optional[str]:
        return state['players'][state['current_player'] - 1]
    
    def legal_moves(self, state: dict) -> list:
        return [i for i, cell in enumerate(state['board']) if cell == 0]
