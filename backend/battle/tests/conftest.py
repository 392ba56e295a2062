import random

import pytest

from battle.logic.bot import BotPlayer
from battle.messaging.router import MessageRouter
from battle.session.coordinator import BattleCoordinator
from battle.tests.mocks import MockConnection, SpyJudge
from shared.db import Database, SqliteSessionRepository


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "battle.db")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def repository(database):
    return SqliteSessionRepository(database)


@pytest.fixture
def judge():
    return SpyJudge()


@pytest.fixture
def bot():
    return BotPlayer(random.Random(7))


@pytest.fixture
def coordinator(repository, judge, bot):
    return BattleCoordinator(
        repository,
        judge,
        bot=bot,
        advance_delay_seconds=0,
        bot_think_time_scale=0,
        default_time_per_question=30,
        questions_per_session=3,
    )


@pytest.fixture
def message_router(coordinator):
    return MessageRouter(coordinator)


@pytest.fixture
def mock_connection():
    return MockConnection()
