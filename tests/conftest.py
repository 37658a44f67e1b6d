"""Shared fixtures: in-memory store, wired services and an event recorder."""

import random
from types import SimpleNamespace

import pytest
import pytest_asyncio

from arena.container import ArenaServices
from arena.database.database import Database
from arena.services.notifications import (
    SessionCreated, MoveApplied, SessionEnded, QueueUpdate,
    ChallengeIssued, ChallengeAccepted
)

# Long enough that no timer fires on its own during a test; tests invoke
# the timer callbacks directly.
NEVER = 3600


class EventRecorder:
    """Collects every notification published on a bus."""

    EVENT_TYPES = (SessionCreated, MoveApplied, SessionEnded, QueueUpdate,
                   ChallengeIssued, ChallengeAccepted)

    def __init__(self, bus):
        self.events = []
        for event_type in self.EVENT_TYPES:
            bus.subscribe(event_type, self._record)

    async def _record(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self):
        self.events.clear()


@pytest_asyncio.fixture
async def db():
    database = Database()
    await database.initialize('sqlite+aiosqlite://')
    yield database
    await database.close()


@pytest_asyncio.fixture
async def services(db):
    arena = ArenaServices(
        db,
        rng=random.Random(1234),
        afk_timeout=NEVER,
        bot_move_delay=NEVER,
        poll_interval=NEVER
    )
    yield arena
    await arena.shutdown(close_db=False)


@pytest.fixture
def recorder(services):
    return EventRecorder(services.notifications)


@pytest_asyncio.fixture
async def players(services):
    ids = SimpleNamespace(alice='1001', bob='1002', carol='1003', dave='1004')
    for name, player_id in vars(ids).items():
        await services.player_ops.ensure_player(player_id, name, name.title())
    return ids


@pytest.fixture
def set_rating(db):
    async def _set_rating(player_id, game_type, elo):
        await db.get_or_create_game_stat(player_id, game_type)
        await db.update_game_stat(player_id, game_type, {'elo_rating': elo, 'rank_score': elo})
    return _set_rating
