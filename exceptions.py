"""
Custom exceptions for Whimzy.

Every failure is scoped to one request or one turn; none of these is fatal
to the process. Web handlers map them onto HTTP status codes.
"""

from __future__ import annotations


class WhimzyError(Exception):
    """Base exception for all Whimzy errors."""

    status_code = 500


class ValidationError(WhimzyError):
    """Raised when a request is rejected before any state change."""

    status_code = 400


class AuthenticationError(WhimzyError):
    """Raised when the caller's identity token is missing or invalid."""

    status_code = 401


class AccessDeniedError(WhimzyError):
    """Raised when the caller does not own the requested record."""

    status_code = 403


class GenerationFailed(WhimzyError):
    """Raised when the generative model call fails for any reason."""

    status_code = 500

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class SessionError(WhimzyError):
    """Base exception for game session errors."""

    pass


class SessionNotFoundError(SessionError):
    """Raised when a requested game session doesn't exist."""

    status_code = 404

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionBusyError(SessionError):
    """Raised when a turn is submitted while another turn is still running."""

    status_code = 409

    def __init__(self, session_id: str, state: str) -> None:
        self.session_id = session_id
        self.state = state
        super().__init__(f"Session {session_id} is busy ({state})")


class GameNotFoundError(WhimzyError):
    """Raised when a requested game doesn't exist."""

    status_code = 404

    def __init__(self, game_id: str) -> None:
        self.game_id = game_id
        super().__init__(f"Game not found: {game_id}")


class DatabaseError(WhimzyError):
    """Raised when database operations fail."""

    pass
