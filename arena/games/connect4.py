from typing import List, Optional

from arena.constants import GameTypes
from arena.games.base import GameEngine, MoveOutcome, TerminalStatus

ROWS = 6
COLS = 7


def _has_four(board: List[List[int]], row: int, col: int) -> bool:
    mark = board[row][col]
    for d_row, d_col in ((0, 1), (1, 0), (1, 1), (1, -1)):
        count = 1
        for sign in (1, -1):
            r, c = row + d_row * sign, col + d_col * sign
            while 0 <= r < ROWS and 0 <= c < COLS and board[r][c] == mark:
                count += 1
                r += d_row * sign
                c += d_col * sign
        if count >= 4:
            return True
    return False


class Connect4Engine(GameEngine):
    """Classic 6x7 connect four. Moves are column indexes 0-6."""
    
    game_type = GameTypes.CONNECT4
    display_name = "Connect 4"
    supports_bot = True
    
    def create_state(self, player_ids: List[str]) -> dict:
        return {
            'players': list(player_ids),
            'board': [[0] * COLS for _ in range(ROWS)],
            'current_player': 1,
            'winner': None,
            'draw': False,
        }
    
    def apply_move(self, state: dict, player_id: str, move) -> MoveOutcome:
        if state['winner'] or state['draw']:
            return MoveOutcome(False, "The game is already over.")
        try:
            col = int(move)
        except (TypeError, ValueError):
            return MoveOutcome(False, "Pick a column from 0 to 6.")
        if col < 0 or col >= COLS:
            return MoveOutcome(False, "Pick a column from 0 to 6.")
        
        board = state['board']
        for row in range(ROWS - 1, -1, -1):
            if board[row][col] == 0:
                mark = state['current_player']
                board[row][col] = mark
                if _has_four(board, row, col):
                    state['winner'] = mark
                elif all(cell != 0 for cell in board[0]):
                    state['draw'] = True
                else:
                    state['current_player'] = 2 if mark == 1 else 1
                return MoveOutcome(True)
        return MoveOutcome(False, "That column is full.")
    
    def is_terminal(self, state: dict) -> TerminalStatus:
        if state['winner']:
            return TerminalStatus(True, winner_id=state['players'][state['winner'] - 1])
        if state['draw']:
            return TerminalStatus(True, draw=True)
        return TerminalStatus(False)
    
    def current_turn_player_id(self, state: dict) -> Optional[str]:
        return state['players'][state['current_player'] - 1]
    
    def legal_moves(self, state: dict) -> list:
        return [col for col in range(COLS) if state['board'][0][col] == 0]
