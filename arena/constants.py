"""
Arena-wide constants.

Groups the game type names and matchmaking policy knobs so the operations
layer does not carry magic numbers.
"""


class GameTypes:
    """Registered game type identifiers."""
    
    TICTACTOE = "tictactoe"
    CONNECT4 = "connect4"
    WORDDUEL = "wordduel"
    NUMBERGUESS = "numberguess"


class MatchmakingConstants:
    """Rank tolerance widening schedule for queue polling."""
    
    # (first attempt the tolerance applies to, tolerance)
    TOLERANCE_SCHEDULE = (
        (1, 100),
        (4, 500),
        (7, 10000),  # effectively unbounded
    )
    
    @classmethod
    def tolerance_for_attempt(cls, attempt: int) -> int:
        """Return the rank tolerance for a 1-based attempt number."""
        tolerance = cls.TOLERANCE_SCHEDULE[0][1]
        for first_attempt, value in cls.TOLERANCE_SCHEDULE:
            if attempt >= first_attempt:
                tolerance = value
        return tolerance


class TimerKeys:
    """Key prefixes for the timer registry."""
    
    SESSION = "session"
    QUEUE = "queue"
    BOT_MOVE = "bot"
    
    @staticmethod
    def session(session_id: str) -> str:
        return f"session:{session_id}"
    
    @staticmethod
    def queue(player_id: str) -> str:
        return f"queue:{player_id}"
    
    @staticmethod
    def bot_move(session_id: str) -> str:
        return f"bot:{session_id}"


class CacheConstants:
    """Constants for caching behavior."""
    
    DEFAULT_CACHE_TTL = 60
    DEFAULT_MAX_CACHE_SIZE = 200
