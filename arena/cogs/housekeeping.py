"""
Housekeeping Cog - Background Tasks

Periodic maintenance for the arena core: expired queue entries, expired
challenges and stale recent-opponent rows. Timer-driven work (inactivity,
matchmaking retries, bot moves) lives in the services themselves.
"""

from typing import Optional

from discord.ext import commands, tasks

from arena.config import Config
from arena.container import ArenaServices
from arena.utils.clock import minutes_ago
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class HousekeepingCog(commands.Cog):
    """Background maintenance and cleanup tasks"""
    
    def __init__(self, bot):
        self.bot = bot
        self.services: Optional[ArenaServices] = bot.services
        self.logger = logger
    
    async def cog_load(self):
        self.sweep_queue.change_interval(seconds=Config.QUEUE_SWEEP_INTERVAL_SECONDS)
        self.sweep_queue.start()
        self.cleanup_challenges.start()
        self.prune_recent_opponents.start()
        self.logger.info("HousekeepingCog: Background tasks started")
    
    def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.sweep_queue.cancel()
        self.cleanup_challenges.cancel()
        self.prune_recent_opponents.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")
    
    @tasks.loop(seconds=60)
    async def sweep_queue(self):
        """Drop queue entries older than QUEUE_MAX_AGE_MINUTES"""
        try:
            count = await self.services.queue_ops.sweep_expired()
            if count > 0:
                self.logger.info(f"Swept {count} expired queue entries")
        except Exception as e:
            self.logger.error(f"Error in queue sweep task: {e}", exc_info=True)
    
    @tasks.loop(minutes=1)
    async def cleanup_challenges(self):
        try:
            await self.services.challenge_ops.cleanup_expired()
        except Exception as e:
            self.logger.error(f"Error in challenge cleanup task: {e}", exc_info=True)
    
    @tasks.loop(minutes=10)
    async def prune_recent_opponents(self):
        """Recent-opponent rows only matter inside the cooldown window"""
        try:
            cutoff = minutes_ago(Config.RECENT_OPPONENT_COOLDOWN_MINUTES)
            count = await self.services.db.prune_recent_opponents(cutoff)
            if count > 0:
                self.logger.debug(f"Pruned {count} recent-opponent rows")
        except Exception as e:
            self.logger.error(f"Error in recent-opponent prune task: {e}", exc_info=True)
    
    @sweep_queue.before_loop
    @cleanup_challenges.before_loop
    @prune_recent_opponents.before_loop
    async def before_tasks(self):
        """Wait for bot to be ready before starting background tasks"""
        await self.bot.wait_until_ready()
    
    @commands.command(name="sweep")
    @commands.is_owner()
    async def manual_sweep(self, ctx):
        """Run every housekeeping pass now (owner only)"""
        queue = await self.services.queue_ops.sweep_expired()
        challenges = await self.services.challenge_ops.cleanup_expired()
        await ctx.send(f"✅ Removed {queue} queue entries and {challenges} challenges.")


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))
