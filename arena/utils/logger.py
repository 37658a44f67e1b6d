"""
Logger factory for the arena.

Every module calls setup_logger(__name__) once at import. Records go to
stdout at INFO (DEBUG when Config.DEBUG is set) and, unless LOG_TO_FILE is
off, to a per-day file under Config.LOG_DIR at DEBUG.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from arena.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _log_file() -> Path:
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"arena_{datetime.now(timezone.utc).strftime('%Y%m%d')}.log"


def setup_logger(name: str) -> logging.Logger:
    """Return the named logger, attaching arena handlers on first use"""
    logger = logging.getLogger(name)
    if getattr(logger, '_arena_configured', False):
        return logger
    
    level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(logging.DEBUG if Config.LOG_TO_FILE else level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)
    
    if Config.LOG_TO_FILE:
        file_handler = logging.FileHandler(_log_file(), encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    
    logger._arena_configured = True
    return logger
