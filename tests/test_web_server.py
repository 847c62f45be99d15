"""
Tests for the HTTP and WebSocket surface.

Each test runs the real application against a temporary SQLite database and
LangChain's FakeListLLM, through aiohttp's TestServer/TestClient.
"""

import asyncio
import threading
from typing import Any, List, Optional

import pytest
from aiohttp import WSServerHandshakeError
from aiohttp.test_utils import TestClient, TestServer
from langchain_core.language_models import FakeListLLM
from langchain_core.language_models.llms import LLM

from auth import Identity, generate_key, issue_identity_token
from config import Settings
from sessions.defaults import DEFAULT_GAME_CODE, GENERATION_FAILED_MESSAGE
from sessions.session_controller import TurnState
from web_server import CONTROLLER_KEY, LIBRARY_KEY, create_app

AUTH_KEY = generate_key()
ADA = "ada@example.com"
BOB = "bob@example.com"

PONG = "<!DOCTYPE html>\n<html><body><canvas id=\"pong\"></canvas></body></html>"
PONG_RESPONSE = f"I built a pong game.\n\n```html\n{PONG}\n```"


def auth_headers(email=ADA):
    return {"Authorization": f"Bearer {issue_identity_token(Identity(email=email, name='Player'), AUTH_KEY)}"}


class BrokenLLM(LLM):
    @property
    def _llm_type(self) -> str:
        return "broken"

    def _call(self, prompt: str, stop: Optional[List[str]] = None, run_manager: Any = None, **kwargs: Any) -> str:
        raise ConnectionError("Network unreachable")


class GatedLLM(LLM):
    """Blocks every call until ``gate`` is set."""

    gate: Any
    response: str

    @property
    def _llm_type(self) -> str:
        return "gated"

    def _call(self, prompt: str, stop: Optional[List[str]] = None, run_manager: Any = None, **kwargs: Any) -> str:
        self.gate.wait(timeout=10)
        return self.response


@pytest.fixture
async def make_client(tmp_path):
    clients = []

    async def _make(model=None, responses=None):
        settings = Settings(db_path=str(tmp_path / "test.db"), auth_secret_key=AUTH_KEY)
        if model is None:
            model = FakeListLLM(responses=responses or [PONG_RESPONSE])
        app = await create_app(settings, model=model)
        client = TestClient(TestServer(app))
        await client.start_server()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close()


class TestOperational:
    """Test public endpoints."""

    async def test_health(self, make_client):
        client = await make_client()
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    async def test_metrics(self, make_client):
        client = await make_client()
        resp = await client.get("/metrics")
        assert resp.status == 200
        assert "whimzy_turns_total" in await resp.text()


class TestAuthentication:
    """Test the identity requirement on /api routes."""

    async def test_missing_token(self, make_client):
        client = await make_client()
        resp = await client.get("/api/sessions")
        assert resp.status == 401
        assert (await resp.json())["error"] == "Unauthorized"

    async def test_token_signed_with_other_key(self, make_client):
        client = await make_client()
        token = issue_identity_token(Identity(email=ADA), generate_key())
        resp = await client.get("/api/sessions", headers={"Authorization": f"Bearer {token}"})
        assert resp.status == 401

    async def test_user_recorded_on_first_request(self, make_client):
        client = await make_client()
        await client.get("/api/sessions", headers=auth_headers())

        with client.app[LIBRARY_KEY].database.connect("test") as conn:
            row = conn.execute("SELECT name FROM users WHERE email = ?", (ADA,)).fetchone()
        assert row["name"] == "Player"


class TestGeneration:
    """Test the one-shot and stateless endpoints."""

    async def test_generate_game(self, make_client):
        client = await make_client(responses=[PONG_RESPONSE])
        resp = await client.post(
            "/api/generate-game", json={"prompt": "make a pong game", "gameType": "2d"}, headers=auth_headers()
        )

        assert resp.status == 200
        body = await resp.json()
        assert body == {"gameCode": PONG, "success": True}
        assert client.app[LIBRARY_KEY].count_events("game_generated", ADA) == 1

    async def test_generate_game_strips_fences_without_document(self, make_client):
        client = await make_client(responses=["```html\n<div>partial</div>\n```"])
        resp = await client.post("/api/generate-game", json={"prompt": "x"}, headers=auth_headers())
        assert (await resp.json())["gameCode"] == "<div>partial</div>"

    async def test_generate_game_requires_prompt(self, make_client):
        client = await make_client()
        resp = await client.post("/api/generate-game", json={"prompt": "  "}, headers=auth_headers())
        assert resp.status == 400
        assert (await resp.json())["error"] == "Prompt is required"

    async def test_generate_game_failure(self, make_client):
        client = await make_client(model=BrokenLLM())
        resp = await client.post("/api/generate-game", json={"prompt": "pong"}, headers=auth_headers())

        assert resp.status == 500
        body = await resp.json()
        assert body["error"] == "Failed to generate game"
        assert "Network unreachable" in body["details"]

    async def test_invalid_json(self, make_client):
        client = await make_client()
        resp = await client.post(
            "/api/generate-game", data="{not json", headers={**auth_headers(), "Content-Type": "application/json"}
        )
        assert resp.status == 400

    async def test_chat(self, make_client):
        client = await make_client(responses=["Made it blue."])
        resp = await client.post(
            "/api/chat",
            json={
                "message": "make it blue",
                "gameCode": PONG,
                "chatHistory": [{"type": "user", "content": "make pong"}, {"type": "ai", "content": "Done"}],
            },
            headers=auth_headers(),
        )
        assert await resp.json() == {"response": "Made it blue.", "success": True}

    async def test_chat_failure(self, make_client):
        client = await make_client(model=BrokenLLM())
        resp = await client.post("/api/chat", json={"message": "hi"}, headers=auth_headers())
        assert resp.status == 500
        assert (await resp.json())["error"] == "Failed to generate response"

    async def test_non_string_fields_are_rejected(self, make_client):
        client = await make_client()
        cases = [
            ("/api/generate-game", {"prompt": ["make", "pong"]}),
            ("/api/generate-game", {"prompt": "pong", "gameType": 3}),
            ("/api/chat", {"message": {"text": "hi"}}),
            ("/api/chat", {"message": "hi", "gameCode": 42}),
        ]
        for path, payload in cases:
            resp = await client.post(path, json=payload, headers=auth_headers())
            assert resp.status == 400, payload
            assert "must be a string" in (await resp.json())["error"]


class TestSessions:
    """Test session CRUD and turns."""

    async def test_get_creates_session_lazily(self, make_client):
        client = await make_client()
        resp = await client.get("/api/sessions/game-1718000000000", headers=auth_headers())

        session = (await resp.json())["session"]
        assert session["title"] == "Game 1718000000000"
        assert session["currentArtifact"] == DEFAULT_GAME_CODE
        assert session["owner"] == ADA
        assert [m["role"] for m in session["messages"]] == ["system", "assistant"]

    async def test_other_users_session_is_denied(self, make_client):
        client = await make_client()
        await client.get("/api/sessions/game-1", headers=auth_headers(ADA))

        for method in ("get", "put", "delete"):
            resp = await getattr(client, method)("/api/sessions/game-1", json={}, headers=auth_headers(BOB))
            assert resp.status == 403
        resp = await client.post("/api/sessions/game-1/messages", json={"message": "hi"}, headers=auth_headers(BOB))
        assert resp.status == 403

    async def test_create_from_game(self, make_client):
        client = await make_client()
        game = client.app[LIBRARY_KEY].create_game(ADA, "Pong", PONG)

        resp = await client.post(
            "/api/sessions", json={"id": "game-42", "gameId": game.id}, headers=auth_headers()
        )
        session = (await resp.json())["session"]
        assert session["id"] == "game-42"
        assert session["currentArtifact"] == PONG
        assert session["title"] == "Pong"
        assert session["gameId"] == game.id

    async def test_create_from_private_game_of_other_user(self, make_client):
        client = await make_client()
        game = client.app[LIBRARY_KEY].create_game(BOB, "Pong", PONG)

        resp = await client.post("/api/sessions", json={"gameId": game.id}, headers=auth_headers())
        assert resp.status == 403

    async def test_create_generates_id(self, make_client):
        client = await make_client()
        resp = await client.post("/api/sessions", json={}, headers=auth_headers())
        assert (await resp.json())["session"]["id"].startswith("game-")

    async def test_list_sessions_with_preview(self, make_client):
        client = await make_client(responses=[PONG_RESPONSE, "ok", "ok"])
        for instruction in ("one", "two", "three"):
            await client.post("/api/sessions/game-1/messages", json={"message": instruction}, headers=auth_headers())
        await client.get("/api/sessions/game-2", headers=auth_headers(BOB))

        resp = await client.get("/api/sessions", headers=auth_headers())
        sessions = (await resp.json())["sessions"]
        assert [s["id"] for s in sessions] == ["game-1"]
        assert len(sessions[0]["messages"]) == 5

    async def test_update_and_archive(self, make_client):
        client = await make_client()
        await client.get("/api/sessions/game-1", headers=auth_headers())

        resp = await client.put(
            "/api/sessions/game-1",
            json={"currentGameCode": PONG, "title": "Pong", "isActive": False},
            headers=auth_headers(),
        )
        session = (await resp.json())["session"]
        assert session["currentArtifact"] == PONG
        assert session["isActive"] is False

        resp = await client.get("/api/sessions?active=false", headers=auth_headers())
        assert [s["id"] for s in (await resp.json())["sessions"]] == ["game-1"]

    async def test_delete(self, make_client):
        client = await make_client()
        await client.get("/api/sessions/game-1", headers=auth_headers())

        resp = await client.delete("/api/sessions/game-1", headers=auth_headers())
        assert resp.status == 200
        resp = await client.put("/api/sessions/game-1", json={"title": "x"}, headers=auth_headers())
        assert resp.status == 404

    async def test_turn_updates_artifact(self, make_client):
        client = await make_client(responses=[PONG_RESPONSE])
        resp = await client.post(
            "/api/sessions/game-1/messages", json={"message": "make a pong game"}, headers=auth_headers()
        )

        body = await resp.json()
        assert body["success"] is True
        assert body["artifactUpdated"] is True
        assert body["gameCode"] == PONG
        assert body["message"]["content"] == PONG_RESPONSE
        assert body["userMessage"]["content"] == "make a pong game"
        assert client.app[LIBRARY_KEY].count_events("chat_turn", ADA) == 1

    async def test_turn_failure_is_a_chat_message(self, make_client):
        client = await make_client(model=BrokenLLM())
        resp = await client.post("/api/sessions/game-1/messages", json={"message": "hi"}, headers=auth_headers())

        assert resp.status == 200
        body = await resp.json()
        assert body["failed"] is True
        assert body["message"]["content"] == GENERATION_FAILED_MESSAGE
        assert body["gameCode"] == DEFAULT_GAME_CODE

    async def test_turn_validation(self, make_client):
        client = await make_client()
        resp = await client.post("/api/sessions/game-1/messages", json={"message": ""}, headers=auth_headers())
        assert resp.status == 400

        resp = await client.post(
            "/api/sessions/game-1/messages", json={"message": "hi", "mode": "remix"}, headers=auth_headers()
        )
        assert resp.status == 400

    async def test_blank_message_does_not_create_session(self, make_client):
        client = await make_client()
        resp = await client.post("/api/sessions/game-new/messages", json={"message": "  "}, headers=auth_headers())
        assert resp.status == 400

        resp = await client.get("/api/sessions", headers=auth_headers())
        assert (await resp.json())["sessions"] == []

    async def test_bad_turn_fields_leave_transcript_whole(self, make_client):
        client = await make_client(responses=[PONG_RESPONSE])
        await client.post("/api/sessions", json={"id": "game-1", "gameCode": ""}, headers=auth_headers())

        for payload in (
            {"message": "make a pong game", "mode": "create", "gameType": ["3d"]},
            {"message": "make a pong game", "mode": 1},
            {"message": ["make a pong game"]},
        ):
            resp = await client.post("/api/sessions/game-1/messages", json=payload, headers=auth_headers())
            assert resp.status == 400, payload

        resp = await client.get("/api/sessions/game-1", headers=auth_headers())
        messages = (await resp.json())["session"]["messages"]
        assert [m["role"] for m in messages] == ["system", "assistant"]

        resp = await client.post(
            "/api/sessions/game-1/messages",
            json={"message": "make a pong game", "mode": "create", "gameType": "3d"},
            headers=auth_headers(),
        )
        assert (await resp.json())["artifactUpdated"] is True

    async def test_delete_rejected_while_turn_runs(self, make_client):
        gate = threading.Event()
        client = await make_client(model=GatedLLM(gate=gate, response=PONG_RESPONSE))
        controller = client.app[CONTROLLER_KEY]

        try:
            turn = asyncio.create_task(
                client.post("/api/sessions/game-1/messages", json={"message": "make pong"}, headers=auth_headers())
            )
            for _ in range(200):
                if controller.get_state("game-1") is not TurnState.IDLE:
                    break
                await asyncio.sleep(0.01)

            resp = await client.delete("/api/sessions/game-1", headers=auth_headers())
            assert resp.status == 409
        finally:
            gate.set()

        assert (await (await turn).json())["artifactUpdated"] is True
        messages = controller.get_session("game-1").messages
        assert [m.role.value for m in messages[-2:]] == ["user", "assistant"]

        resp = await client.delete("/api/sessions/game-1", headers=auth_headers())
        assert resp.status == 200

    async def test_non_string_session_fields(self, make_client):
        client = await make_client()
        resp = await client.post("/api/sessions", json={"id": 7}, headers=auth_headers())
        assert resp.status == 400

        await client.get("/api/sessions/game-1", headers=auth_headers())
        resp = await client.put("/api/sessions/game-1", json={"title": ["Pong"]}, headers=auth_headers())
        assert resp.status == 400
        resp = await client.put("/api/sessions/game-1", json={"isActive": "no"}, headers=auth_headers())
        assert resp.status == 400


class TestGames:
    """Test the game library endpoints."""

    async def test_save_list_and_like(self, make_client):
        client = await make_client()
        resp = await client.post(
            "/api/games",
            json={"title": "Pong", "gameCode": PONG, "gameType": "2d", "isPublic": True},
            headers=auth_headers(),
        )
        game = (await resp.json())["game"]
        assert game["userId"] == ADA

        resp = await client.get("/api/games?public=true", headers=auth_headers(BOB))
        body = await resp.json()
        assert [g["id"] for g in body["games"]] == [game["id"]]
        assert body["pagination"]["total"] == 1

        resp = await client.post(f"/api/games/{game['id']}/like", headers=auth_headers(BOB))
        assert await resp.json() == {"liked": True, "likeCount": 1, "success": True}

    async def test_save_requires_fields(self, make_client):
        client = await make_client()
        resp = await client.post("/api/games", json={"title": "Pong"}, headers=auth_headers())
        assert resp.status == 400

    async def test_owner_only_writes(self, make_client):
        client = await make_client()
        game = client.app[LIBRARY_KEY].create_game(ADA, "Pong", PONG, is_public=True)

        resp = await client.get(f"/api/games/{game.id}", headers=auth_headers(BOB))
        assert resp.status == 200
        resp = await client.put(f"/api/games/{game.id}", json={"title": "Mine"}, headers=auth_headers(BOB))
        assert resp.status == 403
        resp = await client.delete(f"/api/games/{game.id}", headers=auth_headers(BOB))
        assert resp.status == 403

        resp = await client.put(f"/api/games/{game.id}", json={"title": "Space Pong"}, headers=auth_headers())
        assert (await resp.json())["game"]["title"] == "Space Pong"
        resp = await client.delete(f"/api/games/{game.id}", headers=auth_headers())
        assert resp.status == 200
        resp = await client.get(f"/api/games/{game.id}", headers=auth_headers())
        assert resp.status == 404

    async def test_opening_game_counts_a_play(self, make_client):
        client = await make_client()
        library = client.app[LIBRARY_KEY]
        game = library.create_game(ADA, "Pong", PONG, is_public=True)

        resp = await client.get(f"/api/games/{game.id}", headers=auth_headers(BOB))
        assert (await resp.json())["game"]["views"] == 1
        resp = await client.get(f"/api/games/{game.id}", headers=auth_headers())
        assert (await resp.json())["game"]["views"] == 2

        assert library.count_events("game_played") == 2
        assert library.count_events("game_played", BOB) == 1

    async def test_games_created_counter(self, make_client):
        client = await make_client()
        resp = await client.post("/api/games", json={"title": "Pong", "gameCode": PONG}, headers=auth_headers())
        game_id = (await resp.json())["game"]["id"]
        assert client.app[LIBRARY_KEY].games_created(ADA) == 1

        await client.delete(f"/api/games/{game_id}", headers=auth_headers())
        assert client.app[LIBRARY_KEY].games_created(ADA) == 0

    async def test_non_string_game_fields(self, make_client):
        client = await make_client()
        resp = await client.post(
            "/api/games", json={"title": "Pong", "gameCode": PONG, "isPublic": "yes"}, headers=auth_headers()
        )
        assert resp.status == 400
        resp = await client.post("/api/games", json={"title": 1, "gameCode": PONG}, headers=auth_headers())
        assert resp.status == 400

    async def test_invalid_page(self, make_client):
        client = await make_client()
        resp = await client.get("/api/games?page=abc", headers=auth_headers())
        assert resp.status == 400


class TestWebSocket:
    """Test the builder WebSocket."""

    async def test_requires_token(self, make_client):
        client = await make_client()
        with pytest.raises(WSServerHandshakeError):
            await client.ws_connect("/ws")

    async def test_open_and_turn(self, make_client):
        client = await make_client(responses=[PONG_RESPONSE])
        token = issue_identity_token(Identity(email=ADA), AUTH_KEY)

        async with client.ws_connect("/ws", params={"token": token}) as ws:
            await ws.send_json({"type": "open", "session_id": "game-1"})
            snapshot = await ws.receive_json()
            assert snapshot["type"] == "session"
            assert snapshot["state"] == "idle"
            assert snapshot["session"]["owner"] == ADA

            await ws.send_json({"type": "message", "session_id": "game-1", "content": "make a pong game"})
            states = [(await ws.receive_json())["state"] for _ in range(3)]
            assert states == ["awaiting_model", "updating", "idle"]

            complete = await ws.receive_json()
            assert complete["type"] == "turn_complete"
            assert complete["gameCode"] == PONG

    async def test_second_message_while_busy_is_rejected(self, make_client):
        gate = threading.Event()
        client = await make_client(model=GatedLLM(gate=gate, response=PONG_RESPONSE))
        token = issue_identity_token(Identity(email=ADA), AUTH_KEY)

        try:
            async with client.ws_connect("/ws", params={"token": token}) as ws:
                await ws.send_json({"type": "message", "session_id": "game-1", "content": "make a pong game"})
                assert (await ws.receive_json())["state"] == "awaiting_model"

                await ws.send_json({"type": "message", "session_id": "game-1", "content": "make it blue"})
                error = await ws.receive_json()
                assert error["type"] == "error"
                assert "busy" in error["message"]

                gate.set()
                received = [await ws.receive_json() for _ in range(3)]
                assert received[-1]["type"] == "turn_complete"
        finally:
            gate.set()

        session = client.app[CONTROLLER_KEY].get_session("game-1")
        assert [m.content for m in session.messages if m.role.value == "user"] == ["make a pong game"]

    async def test_invalid_messages(self, make_client):
        client = await make_client()
        token = issue_identity_token(Identity(email=ADA), AUTH_KEY)

        async with client.ws_connect("/ws", params={"token": token}) as ws:
            await ws.send_str("{not json")
            assert await ws.receive_json() == {"type": "error", "message": "Invalid JSON"}

            await ws.send_json({"type": "dance", "session_id": "game-1"})
            assert (await ws.receive_json())["type"] == "error"

            await ws.send_json({"type": "open"})
            assert (await ws.receive_json())["message"] == "session_id is required"

    async def test_non_string_fields_keep_connection_open(self, make_client):
        client = await make_client(responses=[PONG_RESPONSE])
        token = issue_identity_token(Identity(email=ADA), AUTH_KEY)

        async with client.ws_connect("/ws", params={"token": token}) as ws:
            await ws.send_json({"type": "open", "session_id": 5})
            assert await ws.receive_json() == {"type": "error", "message": "session_id must be a string"}

            await ws.send_json({"type": "message", "session_id": "game-1", "content": "pong", "gameType": ["3d"]})
            assert (await ws.receive_json())["message"] == "gameType must be a string"

            await ws.send_json({"type": "open", "session_id": "game-1"})
            snapshot = await ws.receive_json()
            assert snapshot["type"] == "session"
            assert [m["role"] for m in snapshot["session"]["messages"]] == ["system", "assistant"]
