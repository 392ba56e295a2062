"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.models import (
    GameAnswer,
    GameSession,
    GameSessionWithParticipants,
    NewGameAnswer,
    Participant,
    Riddle,
    SessionStatus,
    User,
)
from shared.dal.session_repository import DuplicateAnswerError, DuplicateSessionCodeError, SessionRepository

__all__ = [
    "DuplicateAnswerError",
    "DuplicateSessionCodeError",
    "GameAnswer",
    "GameSession",
    "GameSessionWithParticipants",
    "NewGameAnswer",
    "Participant",
    "Riddle",
    "SessionRepository",
    "SessionStatus",
    "User",
]
