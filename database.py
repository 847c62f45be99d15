"""
SQLite database access.

Owns the schema for users, games, likes, game sessions, chat messages and
analytics events. Each operation opens its own short-lived connection, so a
Database object is safe to share between request handlers.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from exceptions import DatabaseError
from metrics import track_db_query, track_error

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    email TEXT PRIMARY KEY,
    name TEXT,
    image TEXT,
    games_created INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS games (
    id TEXT PRIMARY KEY,
    owner_email TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    game_type TEXT NOT NULL,
    game_code TEXT NOT NULL,
    is_public INTEGER NOT NULL DEFAULT 0,
    views INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (owner_email) REFERENCES users (email)
);

CREATE TABLE IF NOT EXISTS game_likes (
    game_id TEXT NOT NULL,
    user_email TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (game_id, user_email),
    FOREIGN KEY (game_id) REFERENCES games (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS game_sessions (
    id TEXT PRIMARY KEY,
    owner_email TEXT NOT NULL DEFAULT '',
    game_id TEXT,
    title TEXT NOT NULL,
    current_artifact TEXT NOT NULL DEFAULT '',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    last_modified TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (session_id) REFERENCES game_sessions (id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_chat_messages_session ON chat_messages (session_id, position);

CREATE TABLE IF NOT EXISTS analytics_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_email TEXT,
    event_type TEXT NOT NULL,
    game_id TEXT,
    data JSON,
    created_at TEXT NOT NULL
);
"""


class Database:
    """Thin wrapper around a SQLite file."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._init_schema()

    def _init_schema(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self.connect("init_schema") as conn:
            conn.executescript(SCHEMA)
        logger.info("Database ready at %s", self.db_path)

    @contextmanager
    def connect(self, operation: str) -> Iterator[sqlite3.Connection]:
        """
        Open a connection for one operation, commit on success.

        Raises:
            DatabaseError: Wrapping any sqlite3 error
        """
        with track_db_query(operation):
            conn = None
            try:
                conn = sqlite3.connect(self.db_path)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                if conn is not None:
                    conn.rollback()
                track_error("database_error")
                logger.error("Database operation '%s' failed: %s", operation, e)
                raise DatabaseError(f"Database operation '{operation}' failed: {e}") from e
            finally:
                if conn is not None:
                    conn.close()
