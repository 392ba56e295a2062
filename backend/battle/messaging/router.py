from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, assert_never

from pydantic import ValidationError

from battle.logic.exceptions import BattleRuleError
from battle.messaging.types import (
    BattleActionMessage,
    ErrorMessage,
    JoinMessage,
    ReadyMessage,
    SelectSpriteMessage,
    StartGameMessage,
    SubmitAnswerMessage,
    parse_client_message,
)
from shared.dal.session_repository import DuplicateAnswerError

if TYPE_CHECKING:
    from battle.messaging.protocol import ConnectionProtocol
    from battle.session.coordinator import BattleCoordinator

logger = logging.getLogger(__name__)


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid message: {location} {first.get('msg', '')}".strip()


class MessageRouter:
    """
    Routes incoming messages to the battle coordinator.

    This class contains no transport code and can be tested
    without real WebSocket connections.
    """

    def __init__(self, coordinator: BattleCoordinator) -> None:
        self._coordinator = coordinator

    async def _send_error(self, connection: ConnectionProtocol, message: str) -> None:
        await self._coordinator.registry.send(connection, ErrorMessage(message=message))

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except ValidationError as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self._send_error(connection, _describe_validation_error(e))
            return

        try:
            await self._dispatch(connection, message)
        except (BattleRuleError, DuplicateAnswerError) as e:
            logger.info("rejected %s from %s: %s", message.type, connection.connection_id, e)
            await self._send_error(connection, str(e))

    async def _dispatch(
        self,
        connection: ConnectionProtocol,
        message: JoinMessage
        | ReadyMessage
        | StartGameMessage
        | SubmitAnswerMessage
        | BattleActionMessage
        | SelectSpriteMessage,
    ) -> None:
        if isinstance(message, JoinMessage):
            await self._coordinator.join(connection, user_id=message.user_id, session_id=message.session_id)
        elif isinstance(message, ReadyMessage):
            await self._coordinator.mark_ready(connection)
        elif isinstance(message, StartGameMessage):
            await self._coordinator.start_game(connection)
        elif isinstance(message, SubmitAnswerMessage):
            await self._coordinator.submit_answer(
                connection,
                answer=message.answer,
                time_to_answer_seconds=message.time_to_answer_seconds,
                question_index=message.question_index,
            )
        elif isinstance(message, BattleActionMessage):
            await self._handle_battle_action(connection, message)
        elif isinstance(message, SelectSpriteMessage):
            await self._handle_select_sprite(connection, message)
        else:
            assert_never(message)

    async def _handle_battle_action(self, connection: ConnectionProtocol, message: BattleActionMessage) -> None:
        """Rule violations reach the sender verbatim; any other failure becomes a generic error."""
        try:
            await self._coordinator.battle_action(connection, message.action)
        except BattleRuleError:
            raise
        except Exception:
            logger.exception("battle action failed for %s", connection.connection_id)
            await self._send_error(connection, "Failed to process battle action")

    async def _handle_select_sprite(self, connection: ConnectionProtocol, message: SelectSpriteMessage) -> None:
        try:
            await self._coordinator.select_sprite(connection, message.sprite_type)
        except BattleRuleError:
            raise
        except Exception:
            logger.exception("sprite selection failed for %s", connection.connection_id)
            await self._send_error(connection, "Failed to select sprite")

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._coordinator.disconnect(connection)
