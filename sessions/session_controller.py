"""
Session Controller Module

Runs one chat turn against a game session:

    build prompt -> append user message -> call model -> extract artifact
    -> append assistant message -> persist

Turn states per session: IDLE -> AWAITING_MODEL -> UPDATING -> IDLE, or
IDLE -> AWAITING_MODEL -> FAILED -> IDLE. A session accepts one turn at a
time; a second submission while a turn is running is rejected with
SessionBusyError rather than queued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from constants import DEFAULT_GAME_TYPE, HISTORY_WINDOW_DEFAULT
from exceptions import (
    GenerationFailed,
    SessionBusyError,
    SessionNotFoundError,
    ValidationError,
)
from logging_config import session_logger
from metrics import track_active_turn, track_error, track_extraction, track_turn
from prompt_core.extraction import ArtifactExtractor
from prompt_core.prompts.builder import PromptBuilder
from prompt_core.types import ChatMessage, GameSession, GenerationMode, Role
from sessions.defaults import (
    DEFAULT_GAME_CODE,
    GENERATION_FAILED_MESSAGE,
    default_title,
    seed_messages,
)
from sessions.model_gateway import ModelGateway
from sessions.session_store import SessionStore

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    UPDATING = "updating"
    FAILED = "failed"


StateListener = Callable[[str, TurnState], Awaitable[None]]


@dataclass
class TurnResult:
    """Outcome of one completed turn."""

    session: GameSession
    user_message: ChatMessage
    assistant_message: ChatMessage
    mode: GenerationMode
    artifact_updated: bool = False
    failed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session.id,
            "message": self.assistant_message.to_dict(),
            "userMessage": self.user_message.to_dict(),
            "gameCode": self.session.current_artifact,
            "mode": self.mode.value,
            "artifactUpdated": self.artifact_updated,
            "failed": self.failed,
        }


class SessionController:
    """
    Coordinates the store, prompt builder, gateway and extractor for turns.

    Turn state lives in memory on this object, so single-flight is enforced
    per process.
    """

    def __init__(
        self,
        store: SessionStore,
        gateway: ModelGateway,
        extractor: Optional[ArtifactExtractor] = None,
        history_window: int = HISTORY_WINDOW_DEFAULT,
        default_game_type: str = DEFAULT_GAME_TYPE,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.extractor = extractor or ArtifactExtractor()
        self.history_window = history_window
        self.default_game_type = default_game_type
        self._states: Dict[str, TurnState] = {}

    # === Session lifecycle ===

    def open_session(
        self,
        session_id: str,
        owner: str = "",
        title: Optional[str] = None,
        artifact: Optional[str] = None,
        game_id: Optional[str] = None,
    ) -> GameSession:
        """
        Return the session stored under ``session_id``, creating it on first
        access with the placeholder game and the two seed messages.
        """
        session = self.store.get(session_id)
        if session is not None:
            return session

        session = GameSession(
            id=session_id,
            title=title or default_title(session_id),
            current_artifact=DEFAULT_GAME_CODE if artifact is None else artifact,
            owner=owner,
            game_id=game_id,
        )
        for message in seed_messages():
            session.append_message(message)
        self.store.put(session_id, session)
        session_logger(logger, session_id).info_event(
            "session_created", "Created game session", owner=owner, game_id=game_id
        )
        return session

    def get_session(self, session_id: str) -> GameSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(
        self,
        owner: str,
        game_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        message_limit: Optional[int] = None,
    ) -> List[GameSession]:
        return self.store.list_sessions(
            owner, game_id=game_id, is_active=is_active, message_limit=message_limit
        )

    def update_session(
        self,
        session_id: str,
        artifact: Optional[str] = None,
        title: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> GameSession:
        """Apply a manual edit from the client (code editor, rename, archive)."""
        session = self.get_session(session_id)
        if artifact:
            session.replace_artifact(artifact)
        if title:
            session.rename(title)
        if is_active is not None:
            session.set_active(is_active)
        self.store.put(session_id, session)
        return session

    def rename_session(self, session_id: str, title: str) -> GameSession:
        if not title.strip():
            raise ValidationError("Title is required")
        return self.update_session(session_id, title=title.strip())

    def replace_artifact(self, session_id: str, artifact: str) -> GameSession:
        """Manual code edit; the transcript is not touched."""
        if not artifact:
            raise ValidationError("Game code is required")
        return self.update_session(session_id, artifact=artifact)

    def set_active(self, session_id: str, is_active: bool) -> GameSession:
        return self.update_session(session_id, is_active=is_active)

    def delete_session(self, session_id: str) -> None:
        """
        Raises:
            SessionBusyError: A turn is running; it would write the session back
            SessionNotFoundError: Unknown session id
        """
        state = self.get_state(session_id)
        if state is not TurnState.IDLE:
            track_error("session_busy")
            raise SessionBusyError(session_id, state.value)
        if not self.store.delete(session_id):
            raise SessionNotFoundError(session_id)
        session_logger(logger, session_id).info_event("session_deleted", "Deleted game session")

    def get_state(self, session_id: str) -> TurnState:
        return self._states.get(session_id, TurnState.IDLE)

    # === Turns ===

    async def run_turn(
        self,
        session_id: str,
        instruction: str,
        mode: Optional[GenerationMode] = None,
        game_type: Optional[str] = None,
        on_state: Optional[StateListener] = None,
    ) -> TurnResult:
        """
        Run one turn to completion.

        Once the user message is stored the turn always ends with an
        assistant message, an apology if anything went wrong.

        Args:
            session_id: Target session (must exist)
            instruction: The user's request
            mode: Prompt variant; defaults to CREATE for an empty artifact and
                  ITERATE otherwise
            game_type: Game type for CREATE prompts
            on_state: Awaited on every state transition

        Raises:
            ValidationError: Blank or non-string instruction, game type or
                             mode; nothing is changed
            SessionBusyError: Another turn on this session is still running
            SessionNotFoundError: Unknown session id
        """
        log = session_logger(logger, session_id)
        if instruction is not None and not isinstance(instruction, str):
            raise ValidationError("Message must be a string")
        instruction = (instruction or "").strip()
        if not instruction:
            raise ValidationError("Message is required")
        if game_type is not None and not isinstance(game_type, str):
            raise ValidationError("gameType must be a string")
        if mode is not None:
            try:
                mode = GenerationMode(mode)
            except (ValueError, TypeError):
                raise ValidationError(f"Unknown mode: {mode!r}")

        # Check-and-set happens before the first await, so it is atomic on the loop
        state = self.get_state(session_id)
        if state is not TurnState.IDLE:
            track_error("session_busy")
            log.warning_event("turn_rejected", "Turn rejected while another is running", state=state.value)
            raise SessionBusyError(session_id, state.value)

        session = self.get_session(session_id)
        self._states[session_id] = TurnState.AWAITING_MODEL

        try:
            with track_active_turn():
                return await self._run_turn(session, instruction, mode, game_type, on_state, log)
        finally:
            self._states.pop(session_id, None)
            await self._notify(on_state, session_id, TurnState.IDLE)

    async def _run_turn(
        self,
        session: GameSession,
        instruction: str,
        mode: Optional[GenerationMode],
        game_type: Optional[str],
        on_state: Optional[StateListener],
        log,
    ) -> TurnResult:
        if mode is None:
            mode = GenerationMode.ITERATE if session.current_artifact else GenerationMode.CREATE

        history = session.recent_messages(self.history_window)
        prompt = PromptBuilder.build(
            current_artifact=session.current_artifact,
            instruction=instruction,
            history=history,
            mode=mode,
            game_type=game_type or self.default_game_type,
        )

        user_message = session.append_message(ChatMessage(role=Role.USER, content=instruction))
        self.store.put(session.id, session)
        log.info_event(
            "turn_started",
            "Turn started",
            mode=mode.value,
            instruction_preview=instruction[:80],
            history_messages=len(history),
        )

        try:
            return await self._complete_turn(session, user_message, prompt, mode, on_state, log)
        except GenerationFailed as e:
            error = str(e)
        except Exception as e:
            track_error("turn_error")
            log.exception("Turn %s failed unexpectedly", session.id)
            error = f"{type(e).__name__}: {e}"

        self._states[session.id] = TurnState.FAILED
        await self._notify(on_state, session.id, TurnState.FAILED)
        # The reply may already be appended if only the final write failed
        if session.messages[-1] is user_message:
            assistant_message = session.append_message(
                ChatMessage(role=Role.ASSISTANT, content=GENERATION_FAILED_MESSAGE)
            )
        else:
            assistant_message = session.messages[-1]
        self.store.put(session.id, session)
        track_turn(mode.value, "failed")
        log.error_event("turn_failed", "Turn failed", mode=mode.value, error=error)
        return TurnResult(
            session=session,
            user_message=user_message,
            assistant_message=assistant_message,
            mode=mode,
            failed=True,
            error=error,
        )

    async def _complete_turn(
        self,
        session: GameSession,
        user_message: ChatMessage,
        prompt: str,
        mode: GenerationMode,
        on_state: Optional[StateListener],
        log,
    ) -> TurnResult:
        await self._notify(on_state, session.id, TurnState.AWAITING_MODEL)
        response_text = await self.gateway.generate(prompt)

        self._states[session.id] = TurnState.UPDATING
        await self._notify(on_state, session.id, TurnState.UPDATING)

        extraction = self.extractor.extract_with_matcher(response_text)
        if extraction is not None:
            track_extraction(extraction.matcher)
        else:
            track_extraction("absent")
            log.info_event("artifact_absent", "No game document in model response, keeping current game")

        # Artifact and reply are committed together so a failure above leaves both untouched
        if extraction is not None:
            session.replace_artifact(extraction.artifact)
        assistant_message = session.append_message(
            ChatMessage(role=Role.ASSISTANT, content=response_text)
        )
        self.store.put(session.id, session)

        outcome = "updated" if extraction is not None else "unchanged"
        track_turn(mode.value, outcome)
        log.info_event(
            "turn_completed",
            "Turn completed",
            mode=mode.value,
            artifact_updated=extraction is not None,
            response_chars=len(response_text),
        )
        return TurnResult(
            session=session,
            user_message=user_message,
            assistant_message=assistant_message,
            mode=mode,
            artifact_updated=extraction is not None,
        )

    @staticmethod
    async def _notify(on_state: Optional[StateListener], session_id: str, state: TurnState) -> None:
        if on_state is None:
            return
        try:
            await on_state(session_id, state)
        except Exception:
            # A listener (e.g. a closed WebSocket) must not break the turn
            logger.exception("State listener failed for session %s (%s)", session_id, state.value)
