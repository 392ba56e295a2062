from datetime import UTC, datetime
from typing import Any

from shared.dal.models import GameAnswer, Participant


def make_participant(user_id: int = 1, **overrides: Any) -> Participant:
    """Create a Participant snapshot with sensible defaults for testing."""
    data: dict[str, Any] = {
        "session_id": 1,
        "user_id": user_id,
        "username": f"player{user_id}",
        "joined_at": datetime(2024, 1, 1, tzinfo=UTC),
    }
    data.update(overrides)
    return Participant(**data)


def make_answer(user_id: int, answer: str, *, is_correct: bool, answer_id: int = 1, question_index: int = 0) -> GameAnswer:
    return GameAnswer(
        id=answer_id,
        session_id=1,
        user_id=user_id,
        question_id=1,
        question_index=question_index,
        answer=answer,
        is_correct=is_correct,
        time_to_answer_seconds=3.0,
        answered_at=datetime(2024, 1, 1, tzinfo=UTC),
    )
