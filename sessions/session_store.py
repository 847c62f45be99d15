"""
Session Store Module

Persists game sessions behind a narrow key-value interface so the session
controller never knows where sessions live. ``InMemorySessionStore`` backs
tests and client-local use; ``SQLiteSessionStore`` is the durable store.

Writes are last-write-wins: two writers on the same session id overwrite
each other's title, artifact and flags. Messages are append-only, so a
message once stored is never removed except by deleting the session.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from database import Database
from prompt_core.types import ChatMessage, GameSession, Role

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Key-value persistence for GameSession records."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[GameSession]:
        """Return the stored session, or None."""

    @abstractmethod
    def put(self, session_id: str, session: GameSession) -> None:
        """Create or overwrite the session stored under ``session_id``."""

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove the session and its transcript. Returns False if absent."""

    @abstractmethod
    def list_sessions(
        self,
        owner: str,
        game_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        message_limit: Optional[int] = None,
    ) -> List[GameSession]:
        """Sessions owned by ``owner``, most recently modified first."""


class InMemorySessionStore(SessionStore):
    """
    Dictionary-backed store.

    Sessions are kept serialized so callers never share mutable state with
    the store.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}

    def get(self, session_id: str) -> Optional[GameSession]:
        record = self._records.get(session_id)
        return GameSession.from_dict(record) if record is not None else None

    def put(self, session_id: str, session: GameSession) -> None:
        self._records[session_id] = session.to_dict()

    def delete(self, session_id: str) -> bool:
        return self._records.pop(session_id, None) is not None

    def list_sessions(
        self,
        owner: str,
        game_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        message_limit: Optional[int] = None,
    ) -> List[GameSession]:
        sessions = [
            GameSession.from_dict(record)
            for record in self._records.values()
            if record["owner"] == owner
            and (game_id is None or record["gameId"] == game_id)
            and (is_active is None or record["isActive"] == is_active)
        ]
        sessions.sort(key=lambda s: s.last_modified, reverse=True)
        if message_limit is not None:
            for session in sessions:
                session.messages = session.recent_messages(message_limit)
        return sessions


class SQLiteSessionStore(SessionStore):
    """Durable store over the ``game_sessions`` and ``chat_messages`` tables."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def get(self, session_id: str) -> Optional[GameSession]:
        with self.database.connect("session_get") as conn:
            row = conn.execute("SELECT * FROM game_sessions WHERE id = ?", (session_id,)).fetchone()
            if row is None:
                return None
            messages = conn.execute(
                "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY position",
                (session_id,),
            ).fetchall()
        return self._row_to_session(row, messages)

    def put(self, session_id: str, session: GameSession) -> None:
        with self.database.connect("session_put") as conn:
            conn.execute(
                """
                INSERT INTO game_sessions
                    (id, owner_email, game_id, title, current_artifact, is_active, created_at, last_modified)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    owner_email = excluded.owner_email,
                    game_id = excluded.game_id,
                    title = excluded.title,
                    current_artifact = excluded.current_artifact,
                    is_active = excluded.is_active,
                    last_modified = excluded.last_modified
                """,
                (
                    session_id,
                    session.owner,
                    session.game_id,
                    session.title,
                    session.current_artifact,
                    int(session.is_active),
                    session.created_at.isoformat(),
                    session.last_modified.isoformat(),
                ),
            )
            # Messages are append-only: existing ids are left untouched
            conn.executemany(
                """
                INSERT OR IGNORE INTO chat_messages (id, session_id, position, role, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (m.id, session_id, position, m.role.value, m.content, m.created_at.isoformat())
                    for position, m in enumerate(session.messages)
                ],
            )

    def delete(self, session_id: str) -> bool:
        with self.database.connect("session_delete") as conn:
            conn.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            cursor = conn.execute("DELETE FROM game_sessions WHERE id = ?", (session_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted session %s", session_id)
        return deleted

    def list_sessions(
        self,
        owner: str,
        game_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        message_limit: Optional[int] = None,
    ) -> List[GameSession]:
        query = "SELECT * FROM game_sessions WHERE owner_email = ?"
        params: List[Any] = [owner]
        if game_id is not None:
            query += " AND game_id = ?"
            params.append(game_id)
        if is_active is not None:
            query += " AND is_active = ?"
            params.append(int(is_active))
        query += " ORDER BY last_modified DESC"

        sessions = []
        with self.database.connect("session_list") as conn:
            for row in conn.execute(query, params).fetchall():
                if message_limit is None:
                    messages = conn.execute(
                        "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY position",
                        (row["id"],),
                    ).fetchall()
                else:
                    messages = conn.execute(
                        """
                        SELECT * FROM (
                            SELECT * FROM chat_messages WHERE session_id = ?
                            ORDER BY position DESC LIMIT ?
                        ) ORDER BY position
                        """,
                        (row["id"], message_limit),
                    ).fetchall()
                sessions.append(self._row_to_session(row, messages))
        return sessions

    @staticmethod
    def _row_to_session(row, message_rows) -> GameSession:
        return GameSession(
            id=row["id"],
            title=row["title"],
            current_artifact=row["current_artifact"],
            messages=[
                ChatMessage(
                    id=m["id"],
                    role=Role(m["role"]),
                    content=m["content"],
                    created_at=datetime.fromisoformat(m["created_at"]),
                )
                for m in message_rows
            ],
            owner=row["owner_email"],
            game_id=row["game_id"],
            is_active=bool(row["is_active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_modified=datetime.fromisoformat(row["last_modified"]),
        )
