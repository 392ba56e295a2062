"""SQLite-backed battle session repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.models import (
    GameAnswer,
    GameSession,
    GameSessionWithParticipants,
    Participant,
    Riddle,
    SessionStatus,
    User,
)
from shared.dal.session_repository import DuplicateAnswerError, DuplicateSessionCodeError, SessionRepository

if TYPE_CHECKING:
    from shared.dal.models import NewGameAnswer
    from shared.db.connection import Database

logger = structlog.get_logger()

_PARTICIPANT_SELECT = (
    "SELECT p.*, "
    "COALESCE(u.username, 'Player ' || p.user_id) AS username, "
    "COALESCE(u.is_bot, 0) AS is_bot "
    "FROM game_participants p LEFT JOIN users u ON u.id = p.user_id "
)

_PARTICIPANT_KEY = "WHERE session_id = ? AND user_id = ?"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _session_from_row(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    data["question_ids"] = json.loads(data["question_ids"])
    return data


class SqliteSessionRepository(SessionRepository):
    """SQLite implementation of SessionRepository.

    Writes are serialized with an asyncio.Lock and committed per call.
    Counter and clamp updates are single statements so they never lose a
    concurrent increment.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    @property
    def _conn(self) -> sqlite3.Connection:
        return self._db.connection

    def _execute_write(self, sql: str, params: tuple[Any, ...]) -> int:
        cursor = self._conn.execute(sql, params)
        self._conn.commit()
        return cursor.rowcount

    # -- sessions --------------------------------------------------------

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
        async with self._lock:
            try:
                cursor = self._conn.execute(
                    "INSERT INTO game_sessions "
                    "(session_code, host_user_id, status, max_players, question_ids, "
                    "time_per_question, category_id, difficulty, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        session_code,
                        host_user_id,
                        SessionStatus.WAITING.value,
                        max_players,
                        json.dumps(question_ids),
                        time_per_question,
                        category_id,
                        difficulty,
                        _now(),
                    ),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as e:
                self._conn.rollback()
                raise DuplicateSessionCodeError(session_code) from e
            session_id = cursor.lastrowid

        row = self._conn.execute("SELECT * FROM game_sessions WHERE id = ?", (session_id,)).fetchone()
        return GameSession.model_validate(_session_from_row(row))

    async def get_session_by_code(self, session_code: str) -> GameSession | None:
        row = self._conn.execute(
            "SELECT * FROM game_sessions WHERE session_code = ?",
            (session_code.upper(),),
        ).fetchone()
        if row is None:
            return None
        return GameSession.model_validate(_session_from_row(row))

    async def get_session_with_participants(self, session_id: int) -> GameSessionWithParticipants | None:
        row = self._conn.execute("SELECT * FROM game_sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            return None
        participant_rows = self._conn.execute(
            _PARTICIPANT_SELECT + "WHERE p.session_id = ? ORDER BY p.rowid",
            (session_id,),
        ).fetchall()
        data = _session_from_row(row)
        data["participants"] = [dict(r) for r in participant_rows]
        return GameSessionWithParticipants.model_validate(data)

    async def start_session(self, session_id: int) -> bool:
        async with self._lock:
            updated = self._execute_write(
                "UPDATE game_sessions SET status = ?, started_at = ? WHERE id = ? AND status = ?",
                (SessionStatus.ACTIVE.value, _now(), session_id, SessionStatus.WAITING.value),
            )
        return updated > 0

    async def advance_question_index(self, session_id: int, question_index: int) -> bool:
        async with self._lock:
            updated = self._execute_write(
                "UPDATE game_sessions SET current_question_index = ? "
                "WHERE id = ? AND status = ? AND current_question_index < ?",
                (question_index, session_id, SessionStatus.ACTIVE.value, question_index),
            )
        if updated == 0:
            logger.warning("question index not advanced", session_id=session_id, question_index=question_index)
        return updated > 0

    async def finish_session(self, session_id: int) -> bool:
        async with self._lock:
            updated = self._execute_write(
                "UPDATE game_sessions SET status = ?, finished_at = ? WHERE id = ? AND status = ?",
                (SessionStatus.FINISHED.value, _now(), session_id, SessionStatus.ACTIVE.value),
            )
        return updated > 0

    # -- participants ----------------------------------------------------

    def _fetch_participant(self, session_id: int, user_id: int) -> Participant | None:
        row = self._conn.execute(
            _PARTICIPANT_SELECT + "WHERE p.session_id = ? AND p.user_id = ?",
            (session_id, user_id),
        ).fetchone()
        return Participant.model_validate(dict(row)) if row is not None else None

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
        async with self._lock:
            existing = self._fetch_participant(session_id, user_id)
            if existing is None:
                self._execute_write(
                    "INSERT INTO game_participants "
                    "(session_id, user_id, is_ready, hp, max_hp, sprite_type, energy, joined_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (session_id, user_id, int(is_ready), hp, hp, sprite_type, energy, _now()),
                )
            elif not existing.is_active:
                self._execute_write(
                    f"UPDATE game_participants SET left_at = NULL {_PARTICIPANT_KEY}",  # noqa: S608
                    (session_id, user_id),
                )
            participant = self._fetch_participant(session_id, user_id)
        if participant is None:  # pragma: no cover
            raise RuntimeError(f"participant {user_id} missing after join")
        return participant

    async def leave_session(self, session_id: int, user_id: int) -> None:
        async with self._lock:
            self._execute_write(
                f"UPDATE game_participants SET left_at = ? {_PARTICIPANT_KEY} AND left_at IS NULL",  # noqa: S608
                (_now(), session_id, user_id),
            )

    async def mark_ready(self, session_id: int, user_id: int) -> None:
        async with self._lock:
            self._execute_write(
                f"UPDATE game_participants SET is_ready = 1 {_PARTICIPANT_KEY}",  # noqa: S608
                (session_id, user_id),
            )

    async def update_score(self, session_id: int, user_id: int, points: int, *, is_correct: bool) -> None:
        async with self._lock:
            self._execute_write(
                "UPDATE game_participants SET "
                "score = score + ?, "
                "correct_answers = correct_answers + ?, "
                f"total_answered = total_answered + 1 {_PARTICIPANT_KEY}",  # noqa: S608
                (points, int(is_correct), session_id, user_id),
            )

    async def update_hp(self, session_id: int, user_id: int, hp: int) -> None:
        async with self._lock:
            self._execute_write(
                f"UPDATE game_participants SET hp = MAX(0, MIN(?, max_hp)) {_PARTICIPANT_KEY}",  # noqa: S608
                (hp, session_id, user_id),
            )

    async def update_shield(self, session_id: int, user_id: int, has_shield: bool) -> None:  # noqa: FBT001
        async with self._lock:
            self._execute_write(
                f"UPDATE game_participants SET has_shield = ? {_PARTICIPANT_KEY}",  # noqa: S608
                (int(has_shield), session_id, user_id),
            )

    async def update_charge(self, session_id: int, user_id: int, charge_power: int) -> None:
        async with self._lock:
            self._execute_write(
                f"UPDATE game_participants SET charge_power = MAX(0, ?) {_PARTICIPANT_KEY}",  # noqa: S608
                (charge_power, session_id, user_id),
            )

    async def update_last_action(self, session_id: int, user_id: int, action: str) -> None:
        async with self._lock:
            self._execute_write(
                f"UPDATE game_participants SET last_action = ? {_PARTICIPANT_KEY}",  # noqa: S608
                (action, session_id, user_id),
            )

    async def update_sprite(self, session_id: int, user_id: int, sprite_type: str, *, hp: int, energy: int) -> None:
        async with self._lock:
            self._execute_write(
                "UPDATE game_participants SET sprite_type = ?, hp = ?, max_hp = ?, energy = ? "
                f"{_PARTICIPANT_KEY}",
                (sprite_type, hp, hp, max(0, energy), session_id, user_id),
            )

    async def update_energy(self, session_id: int, user_id: int, delta: int) -> None:
        async with self._lock:
            self._execute_write(
                f"UPDATE game_participants SET energy = MAX(0, energy + ?) {_PARTICIPANT_KEY}",  # noqa: S608
                (delta, session_id, user_id),
            )

    # -- answers ---------------------------------------------------------

    async def save_answer(self, answer: NewGameAnswer) -> GameAnswer:
        async with self._lock:
            try:
                cursor = self._conn.execute(
                    "INSERT INTO game_answers "
                    "(session_id, user_id, question_id, question_index, answer, is_correct, "
                    "time_to_answer_seconds, answered_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        answer.session_id,
                        answer.user_id,
                        answer.question_id,
                        answer.question_index,
                        answer.answer,
                        int(answer.is_correct),
                        answer.time_to_answer_seconds,
                        _now(),
                    ),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as e:
                self._conn.rollback()
                raise DuplicateAnswerError(answer.session_id, answer.user_id, answer.question_index) from e
            row = self._conn.execute("SELECT * FROM game_answers WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return GameAnswer.model_validate(dict(row))

    async def get_answers_for_question(self, session_id: int, question_index: int) -> list[GameAnswer]:
        rows = self._conn.execute(
            "SELECT * FROM game_answers WHERE session_id = ? AND question_index = ? ORDER BY id",
            (session_id, question_index),
        ).fetchall()
        return [GameAnswer.model_validate(dict(row)) for row in rows]

    # -- riddles ---------------------------------------------------------

    async def get_riddle_by_id(self, riddle_id: int) -> Riddle | None:
        row = self._conn.execute("SELECT * FROM riddles WHERE id = ?", (riddle_id,)).fetchone()
        return Riddle.model_validate(dict(row)) if row is not None else None

    async def create_riddle(
        self,
        *,
        question: str,
        answer: str,
        hint: str | None = None,
        category_id: int | None = None,
        difficulty: str | None = None,
    ) -> Riddle:
        async with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO riddles (question, answer, hint, category_id, difficulty) VALUES (?, ?, ?, ?, ?)",
                (question, answer, hint, category_id, difficulty),
            )
            self._conn.commit()
        return Riddle(
            id=cursor.lastrowid,
            question=question,
            answer=answer,
            hint=hint,
            category_id=category_id,
            difficulty=difficulty,
        )

    async def get_random_riddle_ids(self, category_id: int | None, count: int) -> list[int]:
        if category_id is None:
            rows = self._conn.execute("SELECT id FROM riddles ORDER BY RANDOM() LIMIT ?", (count,)).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT id FROM riddles WHERE category_id = ? ORDER BY RANDOM() LIMIT ?",
                (category_id, count),
            ).fetchall()
        return [row["id"] for row in rows]

    async def count_riddles(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM riddles").fetchone()[0]

    # -- users -----------------------------------------------------------

    async def upsert_user(self, user_id: int, username: str) -> User:
        async with self._lock:
            self._execute_write(
                "INSERT INTO users (id, username) VALUES (?, ?) "
                "ON CONFLICT (id) DO UPDATE SET username = excluded.username",
                (user_id, username),
            )
        user = await self.get_user(user_id)
        if user is None:  # pragma: no cover
            raise RuntimeError(f"user {user_id} missing after upsert")
        return user

    async def get_user(self, user_id: int) -> User | None:
        row = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.model_validate(dict(row)) if row is not None else None

    async def create_bot_user(self, username: str) -> User:
        async with self._lock:
            lowest = self._conn.execute("SELECT MIN(id) FROM users").fetchone()[0]
            bot_id = min(lowest or 0, 0) - 1
            self._execute_write(
                "INSERT INTO users (id, username, is_bot) VALUES (?, ?, 1)",
                (bot_id, username),
            )
        return User(id=bot_id, username=username, is_bot=True)

    async def record_bot_battle_result(self, user_id: int, *, won: bool, difficulty_level: int) -> None:
        async with self._lock:
            updated = self._execute_write(
                "UPDATE users SET bot_wins = bot_wins + ?, bot_losses = bot_losses + ?, "
                "bot_difficulty_level = ? WHERE id = ?",
                (int(won), int(not won), difficulty_level, user_id),
            )
        if updated == 0:
            logger.warning("bot battle result for unknown user", user_id=user_id)
