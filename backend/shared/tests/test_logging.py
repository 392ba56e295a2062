import json
import logging
from datetime import UTC, datetime
from unittest.mock import patch

import pytest
import structlog

from battle.logic.enums import BattleAction, EffectType, SpriteType
from battle.logic.types import BattleEffect
from shared.dal.models import SessionStatus
from shared.logging import (
    bind_connection_context,
    bind_participant_context,
    clear_log_context,
    serialize_domain_values,
    setup_logging,
    to_loggable,
)


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


def _json_lines(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestSetupLogging:
    def test_configures_single_stdout_handler(self):
        setup_logging()
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_skips_file_handler_under_pytest(self, tmp_path):
        assert setup_logging(log_dir=tmp_path / "battle") is None
        assert not (tmp_path / "battle").exists()

    @pytest.mark.usefixtures("_allow_file_logging")
    def test_writes_stamped_file_in_log_dir(self, tmp_path):
        fixed_time = datetime(2025, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=str(tmp_path / "logs" / "battle"))

        structlog.get_logger("battle.test").info("server ready")

        assert log_path == tmp_path / "logs" / "battle" / "2025-03-15_10-30-45.log"
        assert "server ready" in log_path.read_text()

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        setup_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_explicit_level_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.parametrize(("name", "value"), [("LOG_LEVEL", "bogus"), ("LOG_FORMAT", "xml")])
    def test_invalid_env_value_raises(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError, match=f"Invalid {name}='{value}'"):
            setup_logging()

    def test_quiets_noisy_third_party_loggers(self):
        setup_logging(level=logging.DEBUG)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    @pytest.mark.usefixtures("_allow_file_logging")
    def test_json_lines_carry_socket_and_participant_context(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path)
        log = structlog.get_logger("battle.test")

        bind_connection_context("conn-1")
        log.info("websocket connected")
        bind_participant_context(session_id=42, user_id=7)
        log.info("battle action", action=BattleAction.CHARGE)
        clear_log_context()
        log.info("idle")

        connected, action, idle = _json_lines(log_path)
        assert connected["connection_id"] == "conn-1"
        assert "session_id" not in connected
        assert action["session_id"] == 42
        assert action["user_id"] == 7
        assert action["action"] == "charge"
        assert "connection_id" not in idle

    def test_new_connection_drops_previous_context(self):
        bind_connection_context("conn-1")
        bind_participant_context(session_id=1, user_id=2)

        bind_connection_context("conn-2")

        assert structlog.contextvars.get_contextvars() == {"connection_id": "conn-2"}


class TestDomainValues:
    def test_enums_become_their_values(self):
        event_dict = {"sprite_type": SpriteType.RISK_TAKER, "status": SessionStatus.ACTIVE, "event": "bot added"}
        result = serialize_domain_values(None, "info", event_dict)
        assert result == {"sprite_type": "risk_taker", "status": "active", "event": "bot added"}

    def test_battle_effect_uses_wire_field_names(self):
        effect = BattleEffect(
            type=EffectType.HP_LOSS,
            player_id=2,
            player_name="bob",
            amount=5,
            reason="Wrong Answer",
        )
        assert to_loggable(effect) == {
            "type": "hp_loss",
            "playerId": 2,
            "playerName": "bob",
            "amount": 5,
            "reason": "Wrong Answer",
        }

    def test_nested_containers_are_walked(self):
        value = {"moves": [(1, BattleAction.ATTACK), (2, BattleAction.SHIELD)], "sprites": {"host": SpriteType.TANK}}
        assert to_loggable(value) == {"moves": [[1, "attack"], [2, "shield"]], "sprites": {"host": "tank"}}

    def test_missing_effect_and_plain_values_pass_through(self):
        event_dict = {"effect": None, "question_index": 2, "is_correct": True}
        assert serialize_domain_values(None, "info", dict(event_dict)) == event_dict
