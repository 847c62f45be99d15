"""
Sessions Package

Components that turn a chat message into an updated game:
- SessionStore: key-value persistence for sessions (in-memory or SQLite)
- ModelGateway: one asynchronous call to the generative model
- SessionController: the per-turn state machine tying everything together

Usage:
    from sessions.session_store import SQLiteSessionStore
    from sessions.model_gateway import ModelGateway
    from sessions.session_controller import SessionController

Note: Import directly from submodules to avoid circular import issues.
"""

__all__ = [
    "InMemorySessionStore",
    "ModelGateway",
    "SQLiteSessionStore",
    "SessionController",
    "SessionStore",
]
