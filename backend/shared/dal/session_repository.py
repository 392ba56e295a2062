"""Abstract interface for battle session persistence.

Every method is an independent awaited call. Callers that need several
calls to observe a consistent participant state must serialize them
themselves (the coordinator holds a per-session lock).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import (
        GameAnswer,
        GameSession,
        GameSessionWithParticipants,
        NewGameAnswer,
        Participant,
        Riddle,
        User,
    )


class DuplicateAnswerError(Exception):
    """An answer already exists for this (session, user, question index)."""

    def __init__(self, session_id: int, user_id: int, question_index: int) -> None:
        self.session_id = session_id
        self.user_id = user_id
        self.question_index = question_index
        super().__init__(f"user {user_id} already answered question {question_index} in session {session_id}")


class DuplicateSessionCodeError(Exception):
    """The generated session code is already taken."""


class SessionRepository(ABC):
    """Abstract interface for sessions, participants, answers, riddles and users."""

    # -- sessions --------------------------------------------------------

    @abstractmethod
    async def create_session(
        self,
        *,
        session_code: str,
        host_user_id: int,
        question_ids: list[int],
        time_per_question: int,
        max_players: int = 2,
        category_id: int | None = None,
        difficulty: str | None = None,
    ) -> GameSession:
        """Insert a waiting session. Raise DuplicateSessionCodeError on code collision."""

    @abstractmethod
    async def get_session_by_code(self, session_code: str) -> GameSession | None: ...

    @abstractmethod
    async def get_session_with_participants(self, session_id: int) -> GameSessionWithParticipants | None: ...

    @abstractmethod
    async def start_session(self, session_id: int) -> bool:
        """Move a waiting session to active. Return False if it was not waiting."""

    @abstractmethod
    async def advance_question_index(self, session_id: int, question_index: int) -> bool:
        """Set the current index if the session is active and the index moves forward."""

    @abstractmethod
    async def finish_session(self, session_id: int) -> bool:
        """Move an active session to finished. Return False if it was not active."""

    # -- participants ----------------------------------------------------

    @abstractmethod
    async def join_session(
        self,
        session_id: int,
        user_id: int,
        *,
        sprite_type: str,
        hp: int,
        energy: int,
        is_ready: bool = False,
    ) -> Participant:
        """Add a participant, or re-activate one who left. Existing stats are kept."""

    @abstractmethod
    async def leave_session(self, session_id: int, user_id: int) -> None: ...

    @abstractmethod
    async def mark_ready(self, session_id: int, user_id: int) -> None: ...

    @abstractmethod
    async def update_score(self, session_id: int, user_id: int, points: int, *, is_correct: bool) -> None:
        """Add points and bump answer counters in one statement."""

    @abstractmethod
    async def update_hp(self, session_id: int, user_id: int, hp: int) -> None:
        """Set HP, clamped to [0, max_hp]."""

    @abstractmethod
    async def update_shield(self, session_id: int, user_id: int, has_shield: bool) -> None: ...  # noqa: FBT001

    @abstractmethod
    async def update_charge(self, session_id: int, user_id: int, charge_power: int) -> None: ...

    @abstractmethod
    async def update_last_action(self, session_id: int, user_id: int, action: str) -> None: ...

    @abstractmethod
    async def update_sprite(self, session_id: int, user_id: int, sprite_type: str, *, hp: int, energy: int) -> None:
        """Switch archetype and reset hp, max_hp and energy to the given starting values."""

    @abstractmethod
    async def update_energy(self, session_id: int, user_id: int, delta: int) -> None:
        """Add delta to energy, clamped at 0."""

    # -- answers ---------------------------------------------------------

    @abstractmethod
    async def save_answer(self, answer: NewGameAnswer) -> GameAnswer:
        """Persist an answer. Raise DuplicateAnswerError if one already exists for the index."""

    @abstractmethod
    async def get_answers_for_question(self, session_id: int, question_index: int) -> list[GameAnswer]: ...

    # -- riddles ---------------------------------------------------------

    @abstractmethod
    async def get_riddle_by_id(self, riddle_id: int) -> Riddle | None: ...

    @abstractmethod
    async def create_riddle(
        self,
        *,
        question: str,
        answer: str,
        hint: str | None = None,
        category_id: int | None = None,
        difficulty: str | None = None,
    ) -> Riddle: ...

    @abstractmethod
    async def get_random_riddle_ids(self, category_id: int | None, count: int) -> list[int]: ...

    @abstractmethod
    async def count_riddles(self) -> int: ...

    # -- users -----------------------------------------------------------

    @abstractmethod
    async def upsert_user(self, user_id: int, username: str) -> User: ...

    @abstractmethod
    async def get_user(self, user_id: int) -> User | None: ...

    @abstractmethod
    async def create_bot_user(self, username: str) -> User:
        """Create a synthetic bot user with an id that cannot collide with human ids."""

    @abstractmethod
    async def record_bot_battle_result(self, user_id: int, *, won: bool, difficulty_level: int) -> None:
        """Bump the host's bot win/loss counters and store the new difficulty level."""
