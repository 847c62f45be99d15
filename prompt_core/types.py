"""
Data types for game sessions.

- ChatMessage: one immutable transcript entry
- GameSession: a transcript paired with one evolving game artifact
- Role / GenerationMode: the closed vocabularies used by both
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class GenerationMode(str, Enum):
    """Prompt variant: build a game from scratch or refine the current one."""

    CREATE = "create"
    ITERATE = "iterate"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    """Opaque message id, e.g. ``msg-1718000000000-k3J9xQ``."""
    return f"msg-{round(time.time() * 1000)}-{secrets.token_urlsafe(6)}"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class ChatMessage:
    """
    A single transcript entry.

    Attributes:
        role: Who authored the message
        content: Message text (for assistant turns, the full model output)
        id: Opaque identifier
        created_at: Creation time (UTC)
    """

    role: Role
    content: str
    id: str = field(default_factory=new_message_id)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(
            id=data["id"],
            role=Role(data["role"]),
            content=data["content"],
            created_at=_parse_timestamp(data["createdAt"]),
        )


@dataclass
class GameSession:
    """
    A chat transcript paired with the current game artifact.

    Mutate only through ``append_message``, ``replace_artifact``, ``rename``
    and ``set_active`` so that ``last_modified`` and message ordering stay
    consistent.
    """

    id: str
    title: str
    current_artifact: str = ""
    messages: List[ChatMessage] = field(default_factory=list)
    owner: str = ""
    game_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    last_modified: datetime = field(default_factory=utc_now)

    def append_message(self, message: ChatMessage) -> ChatMessage:
        """
        Append a message, clamping its timestamp so that ``created_at`` never
        decreases within the session. Returns the message actually stored.
        """
        if self.messages and message.created_at < self.messages[-1].created_at:
            message = replace(message, created_at=self.messages[-1].created_at)
        self.messages.append(message)
        self.touch(message.created_at)
        return message

    def replace_artifact(self, artifact: str) -> None:
        self.current_artifact = artifact
        self.touch()

    def rename(self, title: str) -> None:
        self.title = title
        self.touch()

    def set_active(self, is_active: bool) -> None:
        self.is_active = is_active
        self.touch()

    def touch(self, when: Optional[datetime] = None) -> None:
        when = when or utc_now()
        self.last_modified = max(when, self.last_modified)

    def recent_messages(self, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        return self.messages[-limit:]

    def to_dict(self, message_limit: Optional[int] = None) -> dict[str, Any]:
        messages = self.messages if message_limit is None else self.recent_messages(message_limit)
        return {
            "id": self.id,
            "title": self.title,
            "currentArtifact": self.current_artifact,
            "messages": [m.to_dict() for m in messages],
            "owner": self.owner,
            "gameId": self.game_id,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat(),
            "lastModified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameSession:
        return cls(
            id=data["id"],
            title=data["title"],
            current_artifact=data.get("currentArtifact", ""),
            messages=[ChatMessage.from_dict(m) for m in data.get("messages", [])],
            owner=data.get("owner", ""),
            game_id=data.get("gameId"),
            is_active=data.get("isActive", True),
            created_at=_parse_timestamp(data["createdAt"]),
            last_modified=_parse_timestamp(data["lastModified"]),
        )
