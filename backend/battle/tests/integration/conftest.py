import pytest
import yaml
from starlette.testclient import TestClient

from battle.server.app import create_app
from battle.server.settings import BattleServerSettings


@pytest.fixture
def catalog_path(tmp_path):
    path = tmp_path / "riddles.yaml"
    catalog = {
        "categories": [
            {
                "id": 1,
                "name": "Test",
                "difficulty": "easy",
                "riddles": [{"question": f"Riddle {i}?", "answer": f"answer {i}", "hint": f"hint {i}"} for i in range(3)],
            },
        ],
    }
    path.write_text(yaml.safe_dump(catalog))
    return path


@pytest.fixture
def settings(tmp_path, catalog_path):
    return BattleServerSettings(
        database_path=str(tmp_path / "battle.db"),
        log_dir=str(tmp_path / "logs"),
        riddle_catalog_path=str(catalog_path),
        default_time_per_question=30,
        questions_per_session=3,
        question_advance_delay_seconds=0,
        bot_think_time_scale=0,
        judge_api_key=None,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings=settings)) as client:
        yield client
