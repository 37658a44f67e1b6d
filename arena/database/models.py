from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Float, JSON,
    UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base
from enum import Enum
import uuid

from arena.config import Config
from arena.utils.clock import utc_now

Base = declarative_base()


class MatchResult(Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class EndReason(Enum):
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    FORFEIT = "forfeit"


class Player(Base):
    __tablename__ = 'players'
    
    id = Column(Integer, primary_key=True)
    player_id = Column(String(64), unique=True, nullable=False, index=True)
    username = Column(String(100), nullable=False)
    display_name = Column(String(100))
    
    # Lifetime totals across all game types
    total_wins = Column(Integer, nullable=False, default=0)
    total_losses = Column(Integer, nullable=False, default=0)
    
    # Calendar-day play streak (UTC days)
    daily_streak = Column(Integer, nullable=False, default=0)
    last_played_date = Column(String(10))
    
    # Forfeit lockout
    forfeit_count = Column(Integer, nullable=False, default=0)
    last_forfeit_time = Column(DateTime)
    queue_locked_until = Column(DateTime)
    
    staff_role = Column(String(20))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    
    @property
    def name(self) -> str:
        return self.display_name or self.username
    
    def __repr__(self):
        return f"<Player(player_id={self.player_id}, username='{self.username}')>"


class GameStat(Base):
    __tablename__ = 'game_stats'
    
    id = Column(Integer, primary_key=True)
    player_id = Column(String(64), nullable=False, index=True)
    game_type = Column(String(32), nullable=False)
    
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    win_rate = Column(Float, nullable=False, default=0.0)
    win_streak = Column(Integer, nullable=False, default=0)
    best_streak = Column(Integer, nullable=False, default=0)
    rank_score = Column(Float, nullable=False, default=0.0)
    elo_rating = Column(Integer, nullable=False, default=Config.STARTING_ELO)
    
    __table_args__ = (UniqueConstraint('player_id', 'game_type'),)
    
    @property
    def games_played(self) -> int:
        return self.wins + self.losses + self.draws
    
    def __repr__(self):
        return f"<GameStat(player_id={self.player_id}, game='{self.game_type}', elo={self.elo_rating})>"


class GameSession(Base):
    """An in-progress match. At most one per player."""
    __tablename__ = 'active_games'
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    game_type = Column(String(32), nullable=False)
    player1_id = Column(String(64), nullable=False, index=True)
    player2_id = Column(String(64), index=True)
    channel_id = Column(String(64), nullable=False)
    player2_channel_id = Column(String(64))
    
    current_turn = Column(String(64))  # None while both players may act
    state = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=0)
    is_bot_game = Column(Boolean, nullable=False, default=False)
    
    last_action = Column(DateTime, nullable=False, default=utc_now)
    started_at = Column(DateTime, nullable=False, default=utc_now)
    
    @property
    def player_ids(self):
        return [pid for pid in (self.player1_id, self.player2_id) if pid]
    
    @property
    def is_solo(self) -> bool:
        return self.player2_id is None
    
    def opponent_of(self, player_id: str):
        if player_id == self.player1_id:
            return self.player2_id
        if player_id == self.player2_id:
            return self.player1_id
        return None
    
    def __repr__(self):
        return f"<GameSession(id={self.id}, game='{self.game_type}', turn={self.current_turn}, v={self.version})>"


class MatchHistory(Base):
    __tablename__ = 'match_history'
    
    id = Column(Integer, primary_key=True)
    game_type = Column(String(32), nullable=False)
    player1_id = Column(String(64), nullable=False)
    player2_id = Column(String(64))
    player1_name = Column(String(100))
    player2_name = Column(String(100))
    winner_id = Column(String(64))
    result = Column(String(10), nullable=False)
    player1_elo_change = Column(Integer, default=0)
    player2_elo_change = Column(Integer, default=0)
    end_reason = Column(String(16), nullable=False, default=EndReason.COMPLETED.value)
    duration = Column(Integer)
    completed_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    
    __table_args__ = (
        Index('ix_match_history_pair', 'game_type', 'player1_id', 'player2_id'),
    )
    
    def __repr__(self):
        return f"<MatchHistory(game='{self.game_type}', winner={self.winner_id}, result={self.result})>"


class RecentOpponent(Base):
    __tablename__ = 'recent_opponents'
    
    id = Column(Integer, primary_key=True)
    player1_id = Column(String(64), nullable=False, index=True)
    player2_id = Column(String(64), nullable=False, index=True)
    game_type = Column(String(32), nullable=False)
    matched_at = Column(DateTime, nullable=False, default=utc_now)


class QueueEntry(Base):
    __tablename__ = 'matchmaking_queue'
    
    id = Column(Integer, primary_key=True)
    player_id = Column(String(64), nullable=False, unique=True)
    game_type = Column(String(32), nullable=False, index=True)
    channel_id = Column(String(64), nullable=False)
    rank_score = Column(Float, nullable=False, default=0.0)
    queued_at = Column(DateTime, nullable=False, default=utc_now)
    
    def __repr__(self):
        return f"<QueueEntry(player_id={self.player_id}, game='{self.game_type}', rank={self.rank_score})>"


class PendingChallenge(Base):
    __tablename__ = 'pending_challenges'
    
    id = Column(Integer, primary_key=True)
    challenger_id = Column(String(64), nullable=False)
    challenged_id = Column(String(64), nullable=False, index=True)
    game_type = Column(String(32), nullable=False)
    channel_id = Column(String(64), nullable=False)
    guild_id = Column(String(64))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    
    def __repr__(self):
        return f"<PendingChallenge(id={self.id}, {self.challenger_id} -> {self.challenged_id}, game='{self.game_type}')>"
