"""
Base service class for arena services.

Provides the shared store handle and retry logic for operations that
write player and stat rows.
"""

import asyncio
import logging
from typing import Callable, Any

from arena.utils.exceptions import StoreError

logger = logging.getLogger(__name__)

class BaseService:
    """Base class for services that sit on top of the Database store."""
    
    def __init__(self, db):
        """
        Initialize base service with the store.
        
        Args:
            db: Database instance
        """
        self.db = db
    
    async def execute_with_retry(self, func: Callable, max_retries: int = 3) -> Any:
        """Execute a function with automatic retry on store errors."""
        for attempt in range(max_retries):
            try:
                return await func()
            except StoreError as e:
                if attempt == max_retries - 1:
                    raise
                logger.warning(f"Retry attempt {attempt + 1} for {func.__name__}: {e}")
                await asyncio.sleep(0.1 * (2 ** attempt))  # Exponential backoff
