"""
Cached leaderboard and match history reads.

Results are held for a short TTL and dropped as soon as a session for the
affected game type ends, so boards never lag a finished game.
"""

import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from arena.config import Config
from arena.constants import CacheConstants
from arena.services.notifications import NotificationBus, SessionEnded
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class LeaderboardEntry:
    rank: int
    player_id: str
    name: str
    wins: int
    losses: int
    win_rate: float
    elo_rating: int
    rank_score: float


@dataclass
class HistoryEntry:
    game_type: str
    opponent_id: Optional[str]
    opponent_name: Optional[str]
    result: str
    elo_change: int
    end_reason: str
    completed_at: object


class LeaderboardService:
    """Leaderboard queries with TTL-based caching."""
    
    def __init__(self, db, registry, notifications: NotificationBus = None,
                 ttl: float = CacheConstants.DEFAULT_CACHE_TTL,
                 max_size: int = CacheConstants.DEFAULT_MAX_CACHE_SIZE):
        self.db = db
        self.registry = registry
        self.ttl = ttl
        self._cache_max_size = max_size
        self._cache: Dict[Tuple, Tuple[float, list]] = {}  # key -> (timestamp, data)
        if notifications is not None:
            notifications.subscribe(SessionEnded, self._on_session_ended)
    
    async def get_leaderboard(self, game_type: str, limit: int = 10) -> List[LeaderboardEntry]:
        """Top players for a game type; rated games order by Elo, others by wins."""
        engine = self.registry.get(game_type)
        key = ('board', game_type, limit)
        cached = self._get_cached(key)
        if cached is not None:
            return cached
        
        stats = await self.db.get_leaderboard(
            game_type, rated=engine.rated, limit=limit,
            exclude_ids=[Config.BOT_PLAYER_ID]
        )
        entries = []
        for position, stat in enumerate(stats, start=1):
            player = await self.db.get_player(stat.player_id)
            entries.append(LeaderboardEntry(
                rank=position,
                player_id=stat.player_id,
                name=player.name if player else stat.player_id,
                wins=stat.wins,
                losses=stat.losses,
                win_rate=stat.win_rate,
                elo_rating=stat.elo_rating,
                rank_score=stat.rank_score
            ))
        self._store(key, entries)
        return entries
    
    async def get_player_rank(self, player_id: str, game_type: str) -> Optional[int]:
        """1-based position of player_id on the board, or None if unplaced."""
        engine = self.registry.get(game_type)
        stat = await self.db.get_game_stat(player_id, game_type)
        if stat is None or stat.games_played == 0:
            return None
        if engine.rated and stat.wins + stat.losses < Config.LEADERBOARD_MIN_GAMES:
            return None
        above = await self.db.count_ranked_above(
            game_type, engine.rated, stat, exclude_ids=[Config.BOT_PLAYER_ID]
        )
        return above + 1
    
    async def get_match_history(self, player_id: str, limit: int = 5) -> List[HistoryEntry]:
        key = ('history', player_id, limit)
        cached = self._get_cached(key)
        if cached is not None:
            return cached
        
        rows = await self.db.get_match_history(player_id, limit=limit)
        entries = []
        for row in rows:
            is_player1 = row.player1_id == player_id
            if row.result == 'draw':
                result = 'draw'
            elif row.winner_id == player_id:
                result = 'win'
            else:
                result = 'loss'
            entries.append(HistoryEntry(
                game_type=row.game_type,
                opponent_id=row.player2_id if is_player1 else row.player1_id,
                opponent_name=row.player2_name if is_player1 else row.player1_name,
                result=result,
                elo_change=(row.player1_elo_change if is_player1 else row.player2_elo_change) or 0,
                end_reason=row.end_reason,
                completed_at=row.completed_at
            ))
        self._store(key, entries)
        return entries
    
    def invalidate_game(self, game_type: str):
        for key in [k for k in self._cache if k[0] == 'board' and k[1] == game_type]:
            self._cache.pop(key, None)
    
    def invalidate_player(self, player_id: str):
        for key in [k for k in self._cache if k[0] == 'history' and k[1] == player_id]:
            self._cache.pop(key, None)
    
    def invalidate_all(self):
        """Clear entire cache."""
        logger.info("Clearing leaderboard cache")
        self._cache.clear()
    
    async def _on_session_ended(self, event: SessionEnded):
        logger.debug(f"Invalidating leaderboard cache for {event.game_type}")
        self.invalidate_game(event.game_type)
        for player_id in event.player_ids:
            self.invalidate_player(player_id)
    
    def _get_cached(self, key):
        hit = self._cache.get(key)
        if hit is None:
            return None
        timestamp, data = hit
        if time.monotonic() - timestamp < self.ttl:
            logger.debug(f"Cache hit for {key}")
            return data
        self._cache.pop(key, None)
        return None
    
    def _store(self, key, data):
        self._cache[key] = (time.monotonic(), data)
        if len(self._cache) > self._cache_max_size:
            self._cleanup_cache()
    
    def _cleanup_cache(self):
        """Remove oldest cache entries to stay within size limit."""
        sorted_items = sorted(self._cache.items(), key=lambda x: x[1][0], reverse=True)
        self._cache = dict(sorted_items[:self._cache_max_size])
        logger.debug(f"Cleaned leaderboard cache, kept {len(self._cache)} entries")
