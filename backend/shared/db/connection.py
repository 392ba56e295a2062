"""SQLite database connection and schema management."""

import os
import sqlite3
from pathlib import Path

import structlog

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    username TEXT NOT NULL,
    is_bot INTEGER NOT NULL DEFAULT 0,
    bot_difficulty_level INTEGER NOT NULL DEFAULT 1,
    bot_wins INTEGER NOT NULL DEFAULT 0,
    bot_losses INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS riddles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    question TEXT NOT NULL,
    answer TEXT NOT NULL,
    hint TEXT,
    category_id INTEGER,
    difficulty TEXT
);

CREATE INDEX IF NOT EXISTS idx_riddles_category ON riddles (category_id);

CREATE TABLE IF NOT EXISTS game_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_code TEXT NOT NULL UNIQUE,
    host_user_id INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'waiting',
    max_players INTEGER NOT NULL DEFAULT 2,
    question_ids TEXT NOT NULL,
    current_question_index INTEGER NOT NULL DEFAULT 0,
    time_per_question INTEGER NOT NULL DEFAULT 30,
    category_id INTEGER,
    difficulty TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    finished_at TEXT
);

CREATE TABLE IF NOT EXISTS game_participants (
    session_id INTEGER NOT NULL REFERENCES game_sessions (id),
    user_id INTEGER NOT NULL,
    score INTEGER NOT NULL DEFAULT 0,
    correct_answers INTEGER NOT NULL DEFAULT 0,
    total_answered INTEGER NOT NULL DEFAULT 0,
    is_ready INTEGER NOT NULL DEFAULT 0,
    hp INTEGER NOT NULL DEFAULT 50,
    max_hp INTEGER NOT NULL DEFAULT 50,
    has_shield INTEGER NOT NULL DEFAULT 0,
    charge_power INTEGER NOT NULL DEFAULT 0,
    last_action TEXT,
    sprite_type TEXT NOT NULL DEFAULT 'balanced',
    energy INTEGER NOT NULL DEFAULT 0,
    joined_at TEXT NOT NULL,
    left_at TEXT,
    PRIMARY KEY (session_id, user_id)
);

CREATE TABLE IF NOT EXISTS game_answers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES game_sessions (id),
    user_id INTEGER NOT NULL,
    question_id INTEGER NOT NULL,
    question_index INTEGER NOT NULL,
    answer TEXT NOT NULL,
    is_correct INTEGER NOT NULL,
    time_to_answer_seconds REAL NOT NULL,
    answered_at TEXT NOT NULL,
    UNIQUE (session_id, user_id, question_index)
);
"""


class Database:
    """SQLite database wrapper that owns the connection and applies the schema."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)

        self._harden_permissions()
        logger.info("database connected", path=self._path)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _harden_permissions(self) -> None:
        """Restrict the DB file and its WAL/SHM siblings to the owner (best effort, POSIX only)."""
        if os.name != "posix":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
