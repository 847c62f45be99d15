"""
Web server for the Whimzy game builder API.

This server:
- Authenticates every /api request with a bearer identity token
- Generates games from a description in one shot
- Runs chat turns against persistent game sessions
- Stores saved games, the public gallery and likes
- Pushes turn state over a WebSocket so clients can lock their input
- Exposes Prometheus metrics
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from auth import Identity, token_from_header, verify_identity_token
from config import Settings, get_settings
from constants import DEFAULT_GAME_TYPE, GAMES_PAGE_SIZE_DEFAULT, SESSION_PREVIEW_MESSAGES
from database import Database
from exceptions import (
    AccessDeniedError,
    GenerationFailed,
    SessionBusyError,
    ValidationError,
    WhimzyError,
)
from game_library import GameLibrary
from logging_config import setup_logging
from metrics import track_error
from prompt_core.extraction import extract_artifact, strip_fences
from prompt_core.models import create_model
from prompt_core.prompts.builder import PromptBuilder
from prompt_core.types import ChatMessage, GameSession, GenerationMode, Role
from sessions.model_gateway import ModelGateway
from sessions.session_controller import SessionController, TurnState
from sessions.session_store import SQLiteSessionStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = web.AppKey("settings", Settings)
CONTROLLER_KEY = web.AppKey("controller", SessionController)
LIBRARY_KEY = web.AppKey("library", GameLibrary)
GATEWAY_KEY = web.AppKey("gateway", ModelGateway)

PUBLIC_PATHS = frozenset({"/health", "/metrics"})

# Roles used in client-side chat history; the web client labels replies "ai"
CLIENT_ROLES = {
    "user": Role.USER,
    "ai": Role.ASSISTANT,
    "assistant": Role.ASSISTANT,
    "system": Role.SYSTEM,
}


def json_error(message: str, status: int, details: Optional[str] = None) -> web.Response:
    body: dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    return web.json_response(body, status=status)


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse the request body as a JSON object."""
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValidationError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


def identity_of(request: web.Request) -> Identity:
    return request["identity"]


def get_str(body: dict[str, Any], key: str) -> str:
    """
    Read an optional string field; missing or null reads as "".

    Raises:
        ValidationError: The field holds a non-string value
    """
    value = body.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def get_bool(body: dict[str, Any], key: str) -> Optional[bool]:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean")
    return value


def parse_mode(value: Any) -> Optional[GenerationMode]:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValidationError("mode must be a string")
    try:
        return GenerationMode(value)
    except ValueError:
        raise ValidationError(f"Unknown mode: {value}")


def parse_turn(body: dict[str, Any], message_key: str) -> tuple[str, Optional[GenerationMode], Optional[str]]:
    """
    Validate a turn request before anything is created or stored.

    Returns:
        (instruction, mode, game type)
    """
    instruction = get_str(body, message_key).strip()
    if not instruction:
        raise ValidationError("Message is required")
    return instruction, parse_mode(body.get("mode")), get_str(body, "gameType") or None


def parse_int(value: Optional[str], name: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value}")


def parse_bool(value: Optional[str]) -> Optional[bool]:
    if value in (None, ""):
        return None
    return value.lower() == "true"


def history_from_client(chat_history: Any) -> list[ChatMessage]:
    """Convert a client-side ``chatHistory`` array into ChatMessages."""
    if not isinstance(chat_history, list):
        return []
    messages = []
    for item in chat_history:
        if not isinstance(item, dict) or not item.get("content"):
            continue
        label = item.get("role") or item.get("type")
        role = CLIENT_ROLES.get(label, Role.ASSISTANT) if isinstance(label, str) else Role.ASSISTANT
        messages.append(ChatMessage(role=role, content=str(item["content"])))
    return messages


# === Middleware ===


@web.middleware
async def error_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Map domain errors onto JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except WhimzyError as e:
        if e.status_code >= 500:
            logger.error("Request %s %s failed: %s", request.method, request.path, e)
        else:
            logger.info("Request %s %s rejected (%d): %s", request.method, request.path, e.status_code, e)
        return json_error(str(e), e.status_code)
    except Exception:
        track_error("unhandled_exception")
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return json_error("Server error. Please try again.", 500)


@web.middleware
async def auth_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Resolve the caller's identity for every non-public route."""
    if request.path in PUBLIC_PATHS:
        return await handler(request)

    settings = request.app[SETTINGS_KEY]
    token = token_from_header(request.headers.get("Authorization"))
    if token is None and request.path == "/ws":
        token = request.query.get("token")

    identity = verify_identity_token(token, settings.auth_secret_key, settings.auth_token_ttl_seconds)
    request["identity"] = identity
    request.app[LIBRARY_KEY].ensure_user(identity.email, identity.name, identity.image)
    return await handler(request)


# === Generation ===


async def generate_game_handler(request: web.Request) -> web.Response:
    """One-shot game generation from a description."""
    body = await read_json(request)
    prompt = get_str(body, "prompt").strip()
    game_type = get_str(body, "gameType") or DEFAULT_GAME_TYPE
    if not prompt:
        return json_error("Prompt is required", 400)

    full_prompt = PromptBuilder.build("", prompt, (), GenerationMode.CREATE, game_type)
    try:
        response_text = await request.app[GATEWAY_KEY].generate(full_prompt)
    except GenerationFailed as e:
        return json_error("Failed to generate game", 500, details=str(e))

    game_code = extract_artifact(response_text) or strip_fences(response_text)
    request.app[LIBRARY_KEY].record_event(
        "game_generated", identity_of(request).email, game_type=game_type
    )
    return web.json_response({"gameCode": game_code, "success": True})


async def chat_handler(request: web.Request) -> web.Response:
    """Stateless chat: the client sends the code and history with every call."""
    body = await read_json(request)
    message = get_str(body, "message").strip()
    if not message:
        return json_error("Message is required", 400)

    full_prompt = PromptBuilder.build(
        get_str(body, "gameCode"),
        message,
        history_from_client(body.get("chatHistory")),
        GenerationMode.ITERATE,
    )
    try:
        response_text = await request.app[GATEWAY_KEY].generate(full_prompt)
    except GenerationFailed as e:
        return json_error("Failed to generate response", 500, details=str(e))

    return web.json_response({"response": response_text, "success": True})


# === Sessions ===


def owned_session(request: web.Request, lazy: bool = False) -> GameSession:
    """
    Load the session named in the URL and check the caller owns it.

    With ``lazy`` the session is created for the caller on first access.
    """
    controller = request.app[CONTROLLER_KEY]
    session_id = request.match_info["session_id"]
    email = identity_of(request).email
    if lazy:
        session = controller.open_session(session_id, owner=email)
    else:
        session = controller.get_session(session_id)
    if session.owner and session.owner != email:
        raise AccessDeniedError("Session not found or access denied")
    return session


async def sessions_list_handler(request: web.Request) -> web.Response:
    sessions = request.app[CONTROLLER_KEY].list_sessions(
        identity_of(request).email,
        game_id=request.query.get("gameId") or None,
        is_active=parse_bool(request.query.get("active")),
        message_limit=SESSION_PREVIEW_MESSAGES,
    )
    return web.json_response({"sessions": [s.to_dict() for s in sessions], "success": True})


async def sessions_create_handler(request: web.Request) -> web.Response:
    body = await read_json(request)
    email = identity_of(request).email
    controller = request.app[CONTROLLER_KEY]

    session_id = get_str(body, "id").strip() or f"game-{round(time.time() * 1000)}"
    artifact = get_str(body, "gameCode") or None
    title = get_str(body, "title") or None
    game_id = get_str(body, "gameId") or None
    if game_id:
        game = request.app[LIBRARY_KEY].get_game(game_id, email)
        artifact = artifact or game.game_code
        title = title or game.title

    existing = controller.store.get(session_id)
    if existing is not None and existing.owner != email:
        raise AccessDeniedError("Session not found or access denied")

    session = controller.open_session(
        session_id, owner=email, title=title, artifact=artifact, game_id=game_id
    )
    return web.json_response({"session": session.to_dict(), "success": True})


async def session_get_handler(request: web.Request) -> web.Response:
    session = owned_session(request, lazy=True)
    return web.json_response({"session": session.to_dict(), "success": True})


async def session_update_handler(request: web.Request) -> web.Response:
    body = await read_json(request)
    artifact = get_str(body, "currentGameCode") or None
    title = get_str(body, "title") or None
    is_active = get_bool(body, "isActive")
    session = owned_session(request)
    session = request.app[CONTROLLER_KEY].update_session(
        session.id, artifact=artifact, title=title, is_active=is_active
    )
    return web.json_response({"session": session.to_dict(), "success": True})


async def session_delete_handler(request: web.Request) -> web.Response:
    session = owned_session(request)
    request.app[CONTROLLER_KEY].delete_session(session.id)
    return web.json_response({"success": True})


async def session_message_handler(request: web.Request) -> web.Response:
    """Run one chat turn. Generation failures come back as an assistant message."""
    body = await read_json(request)
    instruction, mode, game_type = parse_turn(body, "message")
    session = owned_session(request, lazy=True)

    result = await request.app[CONTROLLER_KEY].run_turn(
        session.id, instruction, mode=mode, game_type=game_type
    )
    request.app[LIBRARY_KEY].record_event(
        "chat_turn",
        identity_of(request).email,
        game_id=session.game_id,
        session_id=session.id,
        mode=result.mode.value,
        artifact_updated=result.artifact_updated,
        failed=result.failed,
    )
    return web.json_response({**result.to_dict(), "success": True})


# === Games ===


async def games_list_handler(request: web.Request) -> web.Response:
    games, pagination = request.app[LIBRARY_KEY].list_games(
        identity_of(request).email,
        public=parse_bool(request.query.get("public")) is True,
        game_type=request.query.get("gameType") or None,
        page=parse_int(request.query.get("page"), "page", 1),
        limit=parse_int(request.query.get("limit"), "limit", GAMES_PAGE_SIZE_DEFAULT),
    )
    return web.json_response(
        {"games": [g.to_dict() for g in games], "pagination": pagination, "success": True}
    )


async def games_create_handler(request: web.Request) -> web.Response:
    body = await read_json(request)
    email = identity_of(request).email
    library = request.app[LIBRARY_KEY]
    game = library.create_game(
        email,
        title=get_str(body, "title"),
        game_code=get_str(body, "gameCode"),
        game_type=get_str(body, "gameType") or DEFAULT_GAME_TYPE,
        description=get_str(body, "description"),
        is_public=get_bool(body, "isPublic") is True,
    )
    library.record_event("game_saved", email, game_id=game.id, game_type=game.game_type)
    return web.json_response({"game": game.to_dict(), "success": True})


async def game_get_handler(request: web.Request) -> web.Response:
    """Open a game to play: counts a view and records a game_played event."""
    game = request.app[LIBRARY_KEY].play_game(request.match_info["game_id"], identity_of(request).email)
    return web.json_response({"game": game.to_dict(), "success": True})


async def game_update_handler(request: web.Request) -> web.Response:
    body = await read_json(request)
    game = request.app[LIBRARY_KEY].update_game(
        request.match_info["game_id"],
        identity_of(request).email,
        title=get_str(body, "title"),
        description=get_str(body, "description"),
        game_code=get_str(body, "gameCode"),
        game_type=get_str(body, "gameType"),
        is_public=get_bool(body, "isPublic"),
    )
    return web.json_response({"game": game.to_dict(), "success": True})


async def game_delete_handler(request: web.Request) -> web.Response:
    request.app[LIBRARY_KEY].delete_game(request.match_info["game_id"], identity_of(request).email)
    return web.json_response({"success": True})


async def game_like_handler(request: web.Request) -> web.Response:
    liked, like_count = request.app[LIBRARY_KEY].toggle_like(
        request.match_info["game_id"], identity_of(request).email
    )
    return web.json_response({"liked": liked, "likeCount": like_count, "success": True})


# === WebSocket ===


class BuilderConnection:
    """
    One builder client over a WebSocket.

    Turns run as background tasks so the socket keeps reading; a second
    message for a session whose turn is still running is answered with an
    error instead of waiting.
    """

    def __init__(self, ws: web.WebSocketResponse, app: web.Application, identity: Identity) -> None:
        self.ws = ws
        self.app = app
        self.identity = identity
        self._background_tasks: set[asyncio.Task] = set()

    async def send(self, payload: dict[str, Any]) -> None:
        if self.ws.closed:
            return
        await self.ws.send_json(payload)

    async def send_turn_state(self, session_id: str, state: TurnState) -> None:
        await self.send({"type": "turn_state", "session_id": session_id, "state": state.value})

    def _create_tracked_task(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)

        def _task_done_callback(t: asyncio.Task) -> None:
            self._background_tasks.discard(t)
            if t.cancelled():
                logger.debug("[BuilderConnection] Task '%s' was cancelled", name)
            elif t.exception() is not None:
                logger.error("[BuilderConnection] Task '%s' failed: %s", name, t.exception())

        task.add_done_callback(_task_done_callback)
        return task

    def _owned(self, session_id: str) -> GameSession:
        session = self.app[CONTROLLER_KEY].open_session(session_id, owner=self.identity.email)
        if session.owner and session.owner != self.identity.email:
            raise AccessDeniedError("Session not found or access denied")
        return session

    async def handle(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ValidationError("Message must be a JSON object")
        msg_type = data.get("type")
        session_id = get_str(data, "session_id").strip()
        if not session_id:
            raise ValidationError("session_id is required")

        if msg_type == "open":
            session = self._owned(session_id)
            await self.send({
                "type": "session",
                "session": session.to_dict(),
                "state": self.app[CONTROLLER_KEY].get_state(session_id).value,
            })

        elif msg_type == "message":
            content, mode, game_type = parse_turn(data, "content")
            self._owned(session_id)
            controller = self.app[CONTROLLER_KEY]
            state = controller.get_state(session_id)
            if state is not TurnState.IDLE:
                raise SessionBusyError(session_id, state.value)
            self._create_tracked_task(
                self._run_turn(session_id, content, mode, game_type),
                name=f"turn:{session_id}",
            )
            # Let the task claim the session before the next message is read
            await asyncio.sleep(0)

        else:
            raise ValidationError(f"Unknown message type: {msg_type}")

    async def _run_turn(
        self, session_id: str, content: str, mode: Optional[GenerationMode], game_type: Optional[str]
    ) -> None:
        try:
            result = await self.app[CONTROLLER_KEY].run_turn(
                session_id, content, mode=mode, game_type=game_type, on_state=self.send_turn_state
            )
        except WhimzyError as e:
            await self.send({"type": "error", "session_id": session_id, "message": str(e)})
            return
        await self.send({"type": "turn_complete", **result.to_dict()})

    async def wait_for_turns(self) -> None:
        """Turns are never cancelled; wait for in-flight ones to persist."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    """Handle builder WebSocket connections."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    identity = identity_of(request)
    connection = BuilderConnection(ws, request.app, identity)
    logger.info("Builder client connected (%s)", identity.email)

    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    await connection.handle(json.loads(msg.data))
                except json.JSONDecodeError as e:
                    logger.warning("Invalid JSON received: %s", e)
                    await connection.send({"type": "error", "message": "Invalid JSON"})
                except WhimzyError as e:
                    await connection.send({"type": "error", "message": str(e)})

            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error("WebSocket error: %s", ws.exception())
    finally:
        await connection.wait_for_turns()
        logger.info("Builder client disconnected (%s)", identity.email)

    return ws


# === Operational ===


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def metrics_handler(request: web.Request) -> web.Response:
    return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})


# Create app
async def create_app(
    settings: Optional[Settings] = None,
    model: Any = None,
    database: Optional[Database] = None,
) -> web.Application:
    """
    Create and configure the web application.

    Args:
        settings: Runtime settings (defaults to the environment)
        model: LangChain LLM to generate with (defaults to the configured provider)
        database: Database to use (defaults to settings.db_path)
    """
    settings = settings or get_settings()
    database = database or Database(settings.db_path)
    if model is None:
        logger.info("Initializing %s model...", settings.llm_provider)
        model = create_model(settings.llm_provider, settings.llm_model)

    gateway = ModelGateway(model)
    controller = SessionController(
        store=SQLiteSessionStore(database),
        gateway=gateway,
        history_window=settings.history_window,
    )

    app = web.Application(middlewares=[error_middleware, auth_middleware])
    app[SETTINGS_KEY] = settings
    app[GATEWAY_KEY] = gateway
    app[CONTROLLER_KEY] = controller
    app[LIBRARY_KEY] = GameLibrary(database)

    app.router.add_get("/health", health_handler)
    app.router.add_get("/metrics", metrics_handler)
    app.router.add_get("/ws", websocket_handler)

    app.router.add_post("/api/generate-game", generate_game_handler)
    app.router.add_post("/api/chat", chat_handler)

    app.router.add_get("/api/sessions", sessions_list_handler)
    app.router.add_post("/api/sessions", sessions_create_handler)
    app.router.add_get("/api/sessions/{session_id}", session_get_handler)
    app.router.add_put("/api/sessions/{session_id}", session_update_handler)
    app.router.add_delete("/api/sessions/{session_id}", session_delete_handler)
    app.router.add_post("/api/sessions/{session_id}/messages", session_message_handler)

    app.router.add_get("/api/games", games_list_handler)
    app.router.add_post("/api/games", games_create_handler)
    app.router.add_get("/api/games/{game_id}", game_get_handler)
    app.router.add_put("/api/games/{game_id}", game_update_handler)
    app.router.add_delete("/api/games/{game_id}", game_delete_handler)
    app.router.add_post("/api/games/{game_id}/like", game_like_handler)

    return app


# Main entry point
def main() -> None:
    """Start the web server."""
    setup_logging()
    settings = get_settings()
    if not settings.auth_secret_key:
        logger.warning("AUTH_SECRET_KEY is not set: every /api request will be rejected")

    logger.info("Starting Whimzy on http://%s:%d", settings.server_host, settings.server_port)
    web.run_app(create_app(settings), host=settings.server_host, port=settings.server_port)


if __name__ == "__main__":
    main()
