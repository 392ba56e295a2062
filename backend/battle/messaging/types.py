import time
from enum import StrEnum
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from battle.logic.enums import BattleAction, SpriteType
from battle.logic.types import BattleEffect, LeaderboardEntry
from shared.dal.models import CamelModel, GameSessionWithParticipants, Riddle

_MAX_ANSWER_LENGTH = 500


class ClientMessageType(StrEnum):
    JOIN = "join"
    READY = "ready"
    START_GAME = "start-game"
    SUBMIT_ANSWER = "submit-answer"
    BATTLE_ACTION = "battle-action"
    SELECT_SPRITE = "select-sprite"


class ServerMessageType(StrEnum):
    USER_JOINED = "user-joined"
    PLAYER_READY = "player-ready"
    GAME_STARTED = "game-started"
    ANSWER_SUBMITTED = "answer-submitted"
    BATTLE_MOVES = "battle-moves"
    NEXT_QUESTION = "next-question"
    GAME_FINISHED = "game-finished"
    BATTLE_RESULT = "battle-result"
    BATTLE_ACTION_CONFIRMED = "battle-action-confirmed"
    PARTICIPANT_ACTION = "participant-action"
    SPRITE_SELECTED = "sprite-selected"
    USER_LEFT = "user-left"
    ERROR = "error"


class _ClientModel(BaseModel):
    """Inbound payloads use camelCase keys; unknown keys are ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JoinMessage(_ClientModel):
    type: Literal[ClientMessageType.JOIN] = ClientMessageType.JOIN
    user_id: int
    session_id: int


class ReadyMessage(_ClientModel):
    type: Literal[ClientMessageType.READY] = ClientMessageType.READY


class StartGameMessage(_ClientModel):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class SubmitAnswerMessage(_ClientModel):
    type: Literal[ClientMessageType.SUBMIT_ANSWER] = ClientMessageType.SUBMIT_ANSWER
    answer: str = Field(default="", max_length=_MAX_ANSWER_LENGTH)
    time_to_answer_seconds: float = Field(ge=0)
    question_index: int = Field(ge=0)

    @field_validator("answer", mode="before")
    @classmethod
    def _missing_answer_is_timeout(cls, v: Any) -> Any:
        return "" if v is None else v


class BattleActionMessage(_ClientModel):
    type: Literal[ClientMessageType.BATTLE_ACTION] = ClientMessageType.BATTLE_ACTION
    action: BattleAction


class SelectSpriteMessage(_ClientModel):
    type: Literal[ClientMessageType.SELECT_SPRITE] = ClientMessageType.SELECT_SPRITE
    sprite_type: SpriteType


ClientMessage = (
    JoinMessage | ReadyMessage | StartGameMessage | SubmitAnswerMessage | BattleActionMessage | SelectSpriteMessage
)

_client_adapter = TypeAdapter(Annotated[ClientMessage, Field(discriminator="type")])


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage, dispatching on `type`."""
    return _client_adapter.validate_python(data)


def _now_ms() -> int:
    return int(time.time() * 1000)


class QuestionView(CamelModel):
    """Riddle as shown to players. Never carries the answer."""

    id: int
    question: str
    hint: str | None = None
    category_id: int | None = None
    difficulty: str | None = None

    @classmethod
    def from_riddle(cls, riddle: Riddle) -> Self:
        return cls(
            id=riddle.id,
            question=riddle.question,
            hint=riddle.hint,
            category_id=riddle.category_id,
            difficulty=riddle.difficulty,
        )


class ServerMessage(CamelModel):
    """Base for outbound events. Every event carries an epoch-millisecond timestamp."""

    timestamp: int = Field(default_factory=_now_ms)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserJoinedMessage(ServerMessage):
    type: Literal[ServerMessageType.USER_JOINED] = ServerMessageType.USER_JOINED
    user_id: int


class PlayerReadyMessage(ServerMessage):
    type: Literal[ServerMessageType.PLAYER_READY] = ServerMessageType.PLAYER_READY
    user_id: int
    all_ready: bool
    session: GameSessionWithParticipants


class GameStartedMessage(ServerMessage):
    type: Literal[ServerMessageType.GAME_STARTED] = ServerMessageType.GAME_STARTED
    current_question: QuestionView
    question_index: int
    time_per_question: int


class AnswerSubmittedMessage(ServerMessage):
    type: Literal[ServerMessageType.ANSWER_SUBMITTED] = ServerMessageType.ANSWER_SUBMITTED
    user_id: int
    is_correct: bool
    user_answer: str
    correct_answer: str | None = None
    question_index: int
    battle_effects: BattleEffect | None = None


class BattleMovesMessage(ServerMessage):
    type: Literal[ServerMessageType.BATTLE_MOVES] = ServerMessageType.BATTLE_MOVES
    moves: list[BattleEffect]
    question_index: int


class NextQuestionMessage(ServerMessage):
    type: Literal[ServerMessageType.NEXT_QUESTION] = ServerMessageType.NEXT_QUESTION
    current_question: QuestionView
    question_index: int
    correct_answer: str


class GameFinishedMessage(ServerMessage):
    type: Literal[ServerMessageType.GAME_FINISHED] = ServerMessageType.GAME_FINISHED
    leaderboard: list[LeaderboardEntry]
    correct_answer: str


class BattleResultMessage(ServerMessage):
    type: Literal[ServerMessageType.BATTLE_RESULT] = ServerMessageType.BATTLE_RESULT
    attacker_id: int
    target_id: int
    action: BattleAction
    damage: int
    shield_broken: bool | None = None
    reflected: bool | None = None
    target_hp: int = Field(alias="targetHP")
    attacker_hp: int | None = Field(default=None, alias="attackerHP")


class BattleActionConfirmedMessage(ServerMessage):
    type: Literal[ServerMessageType.BATTLE_ACTION_CONFIRMED] = ServerMessageType.BATTLE_ACTION_CONFIRMED
    action: BattleAction


class ParticipantActionMessage(ServerMessage):
    type: Literal[ServerMessageType.PARTICIPANT_ACTION] = ServerMessageType.PARTICIPANT_ACTION
    user_id: int
    action: BattleAction


class SpriteSelectedMessage(ServerMessage):
    type: Literal[ServerMessageType.SPRITE_SELECTED] = ServerMessageType.SPRITE_SELECTED
    user_id: int
    sprite_type: SpriteType


class UserLeftMessage(ServerMessage):
    type: Literal[ServerMessageType.USER_LEFT] = ServerMessageType.USER_LEFT
    user_id: int


class ErrorMessage(ServerMessage):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    message: str
