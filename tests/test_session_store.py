"""
Tests for session persistence.

Both stores are run through the same contract tests; the SQLite store
additionally checks append-only messages and preview limits.
"""

import os
import tempfile
from datetime import timedelta

import pytest

from database import Database
from prompt_core.types import ChatMessage, GameSession, Role
from sessions.session_store import InMemorySessionStore, SQLiteSessionStore


def make_session(session_id="game-1", owner="ada@example.com", **kwargs) -> GameSession:
    session = GameSession(id=session_id, title=f"Game {session_id}", owner=owner, **kwargs)
    session.append_message(ChatMessage(role=Role.SYSTEM, content="Welcome"))
    session.append_message(ChatMessage(role=Role.ASSISTANT, content="Hi!"))
    return session


@pytest.fixture
def database():
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Database(os.path.join(tmp_dir, "test.db"))


@pytest.fixture(params=["memory", "sqlite"])
def store(request, database):
    if request.param == "memory":
        return InMemorySessionStore()
    return SQLiteSessionStore(database)


class TestStoreContract:
    """Behavior shared by every SessionStore."""

    def test_get_missing_returns_none(self, store):
        assert store.get("nope") is None

    def test_put_then_get(self, store):
        session = make_session(current_artifact="<!DOCTYPE html><html></html>", game_id="game-abc")
        store.put(session.id, session)

        loaded = store.get(session.id)
        assert loaded.to_dict() == session.to_dict()

    def test_put_overwrites(self, store):
        session = make_session()
        store.put(session.id, session)

        session.rename("Space Pong")
        session.replace_artifact("<html></html>")
        session.append_message(ChatMessage(role=Role.USER, content="make it blue"))
        store.put(session.id, session)

        loaded = store.get(session.id)
        assert loaded.title == "Space Pong"
        assert loaded.current_artifact == "<html></html>"
        assert [m.content for m in loaded.messages] == ["Welcome", "Hi!", "make it blue"]

    def test_stored_copy_is_independent(self, store):
        session = make_session()
        store.put(session.id, session)

        session.append_message(ChatMessage(role=Role.USER, content="not saved"))
        assert len(store.get(session.id).messages) == 2

    def test_delete(self, store):
        session = make_session()
        store.put(session.id, session)

        assert store.delete(session.id) is True
        assert store.get(session.id) is None
        assert store.delete(session.id) is False

    def test_list_sessions_by_owner_newest_first(self, store):
        older = make_session("game-1")
        newer = make_session("game-2")
        newer.touch(older.last_modified + timedelta(seconds=5))
        other = make_session("game-3", owner="bob@example.com")
        for session in (older, newer, other):
            store.put(session.id, session)

        sessions = store.list_sessions("ada@example.com")
        assert [s.id for s in sessions] == ["game-2", "game-1"]

    def test_list_sessions_filters(self, store):
        linked = make_session("game-1", game_id="game-abc")
        archived = make_session("game-2")
        archived.set_active(False)
        for session in (linked, archived):
            store.put(session.id, session)

        assert [s.id for s in store.list_sessions("ada@example.com", game_id="game-abc")] == ["game-1"]
        assert [s.id for s in store.list_sessions("ada@example.com", is_active=False)] == ["game-2"]

    def test_list_sessions_message_preview(self, store):
        session = make_session()
        for i in range(6):
            session.append_message(ChatMessage(role=Role.USER, content=f"msg {i}"))
        store.put(session.id, session)

        (listed,) = store.list_sessions("ada@example.com", message_limit=3)
        assert [m.content for m in listed.messages] == ["msg 3", "msg 4", "msg 5"]


class TestSQLiteSessionStore:
    """SQLite-specific behavior."""

    def test_messages_are_append_only(self, database):
        store = SQLiteSessionStore(database)
        session = make_session()
        store.put(session.id, session)

        # A stale writer without the newest message does not remove stored ones
        stale = store.get(session.id)
        session.append_message(ChatMessage(role=Role.USER, content="make a maze"))
        store.put(session.id, session)
        store.put(stale.id, stale)

        assert [m.content for m in store.get(session.id).messages] == ["Welcome", "Hi!", "make a maze"]

    def test_survives_reopen(self, database):
        SQLiteSessionStore(database).put("game-1", make_session())

        reopened = SQLiteSessionStore(Database(database.db_path))
        assert reopened.get("game-1").title == "Game game-1"
