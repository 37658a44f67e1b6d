import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands

from arena.config import Config
from arena.container import ArenaServices
from arena.utils.logger import setup_logger


class ArenaBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.members = True
        
        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )
        
        self.services: Optional[ArenaServices] = None
        self.logger = setup_logger(__name__)
    
    @property
    def db(self):
        return self.services.db if self.services else None
    
    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Arena Bot...")
        
        self.services = await ArenaServices.create()
        resumed = await self.services.session_manager.resume_sessions()
        self.logger.info(f"Arena services ready ({resumed} sessions resumed)")
        
        await self.load_cogs()
        
        self.logger.info("Arena Bot setup complete!")
    
    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'arena.cogs.housekeeping',
        ]
        
        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)
    
    async def on_ready(self):
        """Called when the bot is ready"""
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')
        
        await self.change_presence(
            activity=discord.Game(name=f"Arena | {Config.COMMAND_PREFIX}help")
        )
    
    async def on_command_error(self, ctx: commands.Context, error: Exception):
        """Global error handler for commands"""
        if isinstance(error, commands.CommandNotFound):
            return
        
        if isinstance(error, commands.CheckFailure):
            self.logger.info(f"Permission denied for command '{ctx.command.name if ctx.command else 'Unknown'}' by user {ctx.author}")
            await ctx.send("❌ You don't have permission to use this command.")
            return
        
        if isinstance(error, commands.CommandOnCooldown):
            await ctx.send(f"❌ Command is on cooldown. Try again in {error.retry_after:.2f} seconds.")
            return
        
        if isinstance(error, commands.MissingRequiredArgument):
            await ctx.send(f"❌ Missing required argument: `{error.param.name}`")
            return
        
        self.logger.error(f"Unexpected error in command {ctx.command}: {error}")
        self.logger.error(traceback.format_exc())
        await ctx.send("❌ An unexpected error occurred while processing your command.")
    
    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down Arena Bot...")
        
        if self.services:
            await self.services.shutdown()
        
        await super().close()


async def main():
    """Main entry point"""
    Config.validate()
    
    bot = ArenaBot()
    
    try:
        await bot.start(Config.DISCORD_TOKEN)
    except KeyboardInterrupt:
        await bot.close()
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await bot.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
