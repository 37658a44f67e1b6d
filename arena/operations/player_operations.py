"""
Player Operations Module

Player profile lifecycle plus forfeit tracking.

Key functionality:
- get_or_create_player(): Discord user -> Player conversion
- ensure_player(): id/name based upsert used by the core
- record_forfeit(): sliding-window forfeit counter with queue lockout
- is_queue_locked(): lockout check used before queueing
"""

from datetime import datetime, timedelta
from typing import Optional, Union

import discord
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import Config
from arena.database.models import Player
from arena.utils.clock import utc_now
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class PlayerOperations:
    """
    Business logic operations for Player management and Discord integration.
    """
    
    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
        self.logger = logger
    
    async def get_or_create_player(
        self,
        discord_user: Union[discord.User, discord.Member],
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Get existing Player or create new one from a Discord user.
        
        Idempotent: safe to call on every interaction. Refreshes the stored
        username/display name when they changed on Discord.
        """
        display_name = getattr(discord_user, 'display_name', None) or discord_user.name
        return await self.ensure_player(
            str(discord_user.id), discord_user.name, display_name, session=session
        )
    
    async def ensure_player(self, player_id: str, username: str, display_name: str = None,
                            session: Optional[AsyncSession] = None) -> Player:
        player = await self.db.upsert_player(player_id, username, display_name, session=session)
        self.logger.debug(f"Ensured player {player_id} ({player.name})")
        return player
    
    async def ensure_bot_profile(self, session: Optional[AsyncSession] = None) -> Player:
        """The built-in AI opponent needs a profile row like anyone else."""
        return await self.db.upsert_player(
            Config.BOT_PLAYER_ID, Config.BOT_PLAYER_NAME, Config.BOT_PLAYER_NAME, session=session
        )
    
    async def get_player_name(self, player_id: Optional[str],
                              session: Optional[AsyncSession] = None) -> Optional[str]:
        if player_id is None:
            return None
        if player_id == Config.BOT_PLAYER_ID:
            return Config.BOT_PLAYER_NAME
        player = await self.db.get_player(player_id, session=session)
        return player.name if player else None
    
    async def record_forfeit(self, player_id: str, now: datetime = None,
                             session: Optional[AsyncSession] = None) -> bool:
        """
        Count a forfeit and lock the player out of matchmaking when they
        reach the threshold inside the window.
        
        Returns:
            True if this forfeit triggered a queue lock
        """
        now = now or utc_now()
        window_start = now - timedelta(minutes=Config.FORFEIT_WINDOW_MINUTES)
        
        async with self.db.scope(session) as s:
            player = await self.db.get_player(player_id, session=s, for_update=True)
            if player is None:
                self.logger.warning(f"Forfeit recorded for unknown player {player_id}")
                return False
            
            forfeit_count = player.forfeit_count or 0
            if player.last_forfeit_time and player.last_forfeit_time < window_start:
                forfeit_count = 0
            forfeit_count += 1
            
            should_lock = forfeit_count >= Config.FORFEIT_LOCK_THRESHOLD
            player.forfeit_count = forfeit_count
            player.last_forfeit_time = now
            if should_lock:
                player.queue_locked_until = now + timedelta(minutes=Config.FORFEIT_LOCK_MINUTES)
                self.logger.info(
                    f"Player {player_id} locked from matchmaking until {player.queue_locked_until} "
                    f"({forfeit_count} forfeits)"
                )
            await s.flush()
            return should_lock
    
    async def is_queue_locked(self, player_id: str, now: datetime = None,
                              session: Optional[AsyncSession] = None) -> bool:
        player = await self.db.get_player(player_id, session=session)
        if player is None or player.queue_locked_until is None:
            return False
        return player.queue_locked_until > (now or utc_now())
