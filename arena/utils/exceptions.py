"""
Error taxonomy for arena operations.

Every expected, recoverable condition has an ErrorCode and a matching
exception carrying a user-facing message. Operations raise these internally
and convert them into result objects at their public boundary. StoreError is
the only fatal class and is allowed to propagate.
"""

from enum import Enum


class ErrorCode(Enum):
    ALREADY_IN_SESSION = "already_in_session"
    ALREADY_QUEUED = "already_queued"
    QUEUE_LOCKED = "queue_locked"
    NOT_YOUR_TURN = "not_your_turn"
    ILLEGAL_MOVE = "illegal_move"
    NO_CHALLENGE = "no_challenge"
    CHALLENGER_UNAVAILABLE = "challenger_unavailable"
    SELF_CHALLENGE = "self_challenge"
    CHALLENGE_PENDING = "challenge_pending"
    SESSION_NOT_FOUND = "session_not_found"
    RACE_LOST = "race_lost"
    UNKNOWN_GAME = "unknown_game"


class ArenaOperationError(Exception):
    """Base exception for expected operation failures."""
    code: ErrorCode = None
    
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class AlreadyInSessionError(ArenaOperationError):
    code = ErrorCode.ALREADY_IN_SESSION
    
    def __init__(self, player_id: str):
        super().__init__(
            f"Player {player_id} already has an active session",
            "You're already in a game. Use quit to leave."
        )
        self.player_id = player_id


class AlreadyQueuedError(ArenaOperationError):
    code = ErrorCode.ALREADY_QUEUED
    
    def __init__(self, player_id: str):
        super().__init__(
            f"Player {player_id} is already queued",
            "You're already looking for an opponent."
        )


class QueueLockedError(ArenaOperationError):
    code = ErrorCode.QUEUE_LOCKED
    
    def __init__(self, player_id: str):
        super().__init__(
            f"Player {player_id} is locked out of matchmaking",
            "You're temporarily locked from matchmaking due to forfeits."
        )


class NotYourTurnError(ArenaOperationError):
    code = ErrorCode.NOT_YOUR_TURN
    
    def __init__(self, player_id: str):
        super().__init__(f"It is not player {player_id}'s turn", "It's not your turn!")


class IllegalMoveError(ArenaOperationError):
    code = ErrorCode.ILLEGAL_MOVE
    
    def __init__(self, reason: str = None):
        super().__init__(f"Illegal move: {reason or 'rejected by engine'}", reason or "Invalid move.")


class NoChallengeError(ArenaOperationError):
    code = ErrorCode.NO_CHALLENGE
    
    def __init__(self, player_id: str):
        super().__init__(
            f"No pending challenge for player {player_id}",
            "You have no pending challenges."
        )


class ChallengerUnavailableError(ArenaOperationError):
    code = ErrorCode.CHALLENGER_UNAVAILABLE
    
    def __init__(self, challenger_id: str):
        super().__init__(
            f"Challenger {challenger_id} is no longer available",
            "Challenge expired - challenger is already in a game."
        )


class SelfChallengeError(ArenaOperationError):
    code = ErrorCode.SELF_CHALLENGE
    
    def __init__(self):
        super().__init__("Player attempted to challenge themselves", "You can't challenge yourself!")


class ChallengePendingError(ArenaOperationError):
    code = ErrorCode.CHALLENGE_PENDING
    
    def __init__(self, challenger_id: str, challenged_id: str):
        super().__init__(
            f"Challenge from {challenger_id} to {challenged_id} already pending",
            "You already have a pending challenge to this player."
        )


class SessionNotFoundError(ArenaOperationError):
    code = ErrorCode.SESSION_NOT_FOUND
    
    def __init__(self, reference: str):
        super().__init__(f"No active session for {reference}", "You're not in a game.")


class RaceLostError(ArenaOperationError):
    code = ErrorCode.RACE_LOST
    
    def __init__(self, player_id: str):
        super().__init__(
            f"Queue entry for {player_id} was claimed by another search",
            "That opponent was just matched with someone else."
        )


class UnknownGameError(ArenaOperationError):
    code = ErrorCode.UNKNOWN_GAME
    
    def __init__(self, game_type: str):
        super().__init__(f"Unknown game type '{game_type}'", f"Unknown game '{game_type}'.")


class StoreError(Exception):
    """Raised when the persistent store cannot complete an operation."""
    
    def __init__(self, operation: str, details: str = None):
        super().__init__(f"Store error during {operation}: {details}")
        self.operation = operation
