"""Persistence models for the data access layer.

Field names are snake_case in Python and camelCase on the wire (clients
receive session snapshots verbatim inside player-ready events).
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Frozen model that serializes with camelCase aliases and accepts either spelling."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SessionStatus(StrEnum):
    WAITING = "waiting"
    ACTIVE = "active"
    FINISHED = "finished"


class User(CamelModel):
    id: int
    username: str
    is_bot: bool = False
    bot_difficulty_level: int = Field(default=1, ge=1, le=10)
    bot_wins: int = 0
    bot_losses: int = 0


class Riddle(CamelModel):
    id: int
    question: str
    answer: str
    hint: str | None = None
    category_id: int | None = None
    difficulty: str | None = None


class GameSession(CamelModel):
    id: int
    session_code: str
    host_user_id: int
    status: SessionStatus = SessionStatus.WAITING
    max_players: int = 2
    question_ids: list[int] = Field(default_factory=list)
    current_question_index: int = 0
    time_per_question: int = 30
    category_id: int | None = None
    difficulty: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def question_count(self) -> int:
        return len(self.question_ids)

    def is_last_question(self, index: int) -> bool:
        return index + 1 >= self.question_count


class Participant(CamelModel):
    session_id: int
    user_id: int
    username: str
    is_bot: bool = False
    score: int = 0
    correct_answers: int = 0
    total_answered: int = 0
    is_ready: bool = False
    hp: int = 50
    max_hp: int = 50
    has_shield: bool = False
    charge_power: int = 0
    last_action: str | None = None
    sprite_type: str = "balanced"
    energy: int = 0
    joined_at: datetime
    left_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.left_at is None


class GameSessionWithParticipants(GameSession):
    participants: list[Participant] = Field(default_factory=list)

    @property
    def active_participants(self) -> list[Participant]:
        return [p for p in self.participants if p.is_active]

    @property
    def all_ready(self) -> bool:
        return all(p.is_ready for p in self.active_participants)

    @property
    def has_bot(self) -> bool:
        return any(p.is_bot for p in self.participants)

    def get_participant(self, user_id: int) -> Participant | None:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None


class GameAnswer(CamelModel):
    id: int
    session_id: int
    user_id: int
    question_id: int
    question_index: int
    answer: str
    is_correct: bool
    time_to_answer_seconds: float
    answered_at: datetime


class NewGameAnswer(CamelModel):
    """Answer payload before the store assigns an id and timestamp."""

    session_id: int
    user_id: int
    question_id: int
    question_index: int
    answer: str
    is_correct: bool
    time_to_answer_seconds: float
