import os
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


class Config:
    """Arena configuration settings"""
    
    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', ',')
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///arena.db')
    
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    
    # Logging settings
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'
    
    # Rating settings
    STARTING_ELO = 1000
    K_FACTOR = _env_int('K_FACTOR', 32)
    RATING_FLOOR = 100
    DAILY_RATED_GAMES_LIMIT = _env_int('DAILY_RATED_GAMES_LIMIT', 3)
    LEADERBOARD_MIN_GAMES = 5
    
    # Session settings
    AFK_TIMEOUT_SECONDS = _env_float('AFK_TIMEOUT_SECONDS', 60)
    BOT_MOVE_DELAY_SECONDS = _env_float('BOT_MOVE_DELAY_SECONDS', 1.5)
    BOT_PLAYER_ID = os.getenv('BOT_PLAYER_ID', 'BOT_PLAY_123456789')
    BOT_PLAYER_NAME = 'Play'
    
    # Matchmaking settings
    QUEUE_MAX_AGE_MINUTES = _env_int('QUEUE_MAX_AGE_MINUTES', 5)
    QUEUE_SWEEP_INTERVAL_SECONDS = _env_int('QUEUE_SWEEP_INTERVAL_SECONDS', 60)
    RECENT_OPPONENT_COOLDOWN_MINUTES = 5
    MATCHMAKING_POLL_SECONDS = _env_float('MATCHMAKING_POLL_SECONDS', 5)
    MATCHMAKING_MAX_ATTEMPTS = 12
    BOT_FALLBACK_ATTEMPTS = 9
    
    # Challenge settings
    CHALLENGE_TTL_MINUTES = 5
    
    # Forfeit lockout
    FORFEIT_LOCKOUT_ENABLED = os.getenv('FORFEIT_LOCKOUT_ENABLED', 'True').lower() == 'true'
    FORFEIT_WINDOW_MINUTES = 10
    FORFEIT_LOCK_THRESHOLD = 3
    FORFEIT_LOCK_MINUTES = 5
    
    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if cls.K_FACTOR <= 0:
            raise ValueError("K_FACTOR must be positive")
        if cls.DAILY_RATED_GAMES_LIMIT < 0:
            raise ValueError("DAILY_RATED_GAMES_LIMIT cannot be negative")
