"""
Notification interface exposed to the presentation layer.

The core publishes plain event objects; subscribers render them. A failing
subscriber is logged and never breaks the operation that published.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class SessionCreated:
    session_id: str
    game_type: str
    player_ids: tuple
    channel_id: str
    player2_channel_id: Optional[str] = None
    is_bot_game: bool = False
    current_turn: Optional[str] = None


@dataclass(frozen=True)
class MoveApplied:
    session_id: str
    game_type: str
    player_id: str
    move: Any
    state: dict
    current_turn: Optional[str]
    version: int


@dataclass(frozen=True)
class SessionEnded:
    session_id: str
    game_type: str
    player_ids: tuple
    winner_id: Optional[str]
    loser_id: Optional[str]
    draw: bool
    reason: str
    elo_change: int = 0
    elo_affected: bool = False
    daily_games_count: int = 0
    is_bot_game: bool = False
    state: dict = field(default_factory=dict)


@dataclass(frozen=True)
class QueueUpdate:
    player_id: str
    game_type: str
    status: str  # queued, searching, matched, bot_match, cancelled, expired
    attempt: int = 0
    opponent_id: Optional[str] = None


@dataclass(frozen=True)
class ChallengeIssued:
    challenge_id: int
    challenger_id: str
    challenged_id: str
    game_type: str
    channel_id: str
    rematch: bool = False


@dataclass(frozen=True)
class ChallengeAccepted:
    challenge_id: int
    challenger_id: str
    challenged_id: str
    game_type: str
    session_id: str


Handler = Callable[[Any], Awaitable[None]]


class NotificationBus:
    def __init__(self):
        self._handlers: Dict[Type, List[Handler]] = defaultdict(list)
    
    def subscribe(self, event_type: Type, handler: Handler):
        self._handlers[event_type].append(handler)
    
    def unsubscribe(self, event_type: Type, handler: Handler):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
    
    async def publish(self, event):
        for handler in list(self._handlers.get(type(event), [])):
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Notification handler {getattr(handler, '__qualname__', handler)} "
                    f"failed for {type(event).__name__}: {e}",
                    exc_info=True
                )
