"""
Game Library

Saved games, the public gallery, likes, user records and analytics events.
Access rules: anyone may read a public game, only the owner may read a
private one or change/delete any of their games.
"""

from __future__ import annotations

import json
import logging
import math
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from config import get_game_type_ids
from constants import DEFAULT_GAME_TYPE, GAMES_PAGE_SIZE_DEFAULT, GAMES_PAGE_SIZE_MAX
from database import Database
from exceptions import AccessDeniedError, GameNotFoundError, ValidationError
from prompt_core.types import utc_now

logger = logging.getLogger(__name__)


@dataclass
class Game:
    id: str
    owner_email: str
    title: str
    game_code: str
    game_type: str = DEFAULT_GAME_TYPE
    description: str = ""
    is_public: bool = False
    created_at: str = ""
    updated_at: str = ""
    like_count: int = 0
    views: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.owner_email,
            "title": self.title,
            "description": self.description,
            "gameType": self.game_type,
            "gameCode": self.game_code,
            "isPublic": self.is_public,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "likeCount": self.like_count,
            "views": self.views,
        }


def _validate_game_type(game_type: str) -> str:
    if game_type not in get_game_type_ids():
        raise ValidationError(f"Unknown game type: {game_type}")
    return game_type


class GameLibrary:
    """Games, likes, users and analytics on top of the shared database."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # === Users ===

    def ensure_user(self, email: str, name: Optional[str] = None, image: Optional[str] = None) -> None:
        """Create the user record on first sight; refresh name/image when given."""
        with self.database.connect("user_upsert") as conn:
            conn.execute(
                """
                INSERT INTO users (email, name, image, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(email) DO UPDATE SET
                    name = COALESCE(excluded.name, users.name),
                    image = COALESCE(excluded.image, users.image)
                """,
                (email, name, image, utc_now().isoformat()),
            )

    def games_created(self, email: str) -> int:
        with self.database.connect("user_get") as conn:
            row = conn.execute("SELECT games_created FROM users WHERE email = ?", (email,)).fetchone()
        return row["games_created"] if row is not None else 0

    # === Games ===

    def create_game(
        self,
        owner_email: str,
        title: str,
        game_code: str,
        game_type: str = DEFAULT_GAME_TYPE,
        description: str = "",
        is_public: bool = False,
    ) -> Game:
        if not title or not game_code:
            raise ValidationError("Title and game code are required")

        now = utc_now().isoformat()
        game = Game(
            id=f"game-{secrets.token_hex(8)}",
            owner_email=owner_email,
            title=title,
            game_code=game_code,
            game_type=_validate_game_type(game_type),
            description=description,
            is_public=is_public,
            created_at=now,
            updated_at=now,
        )
        with self.database.connect("game_insert") as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (email, created_at) VALUES (?, ?)",
                (owner_email, now),
            )
            conn.execute(
                """
                INSERT INTO games
                    (id, owner_email, title, description, game_type, game_code, is_public, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    game.id,
                    game.owner_email,
                    game.title,
                    game.description,
                    game.game_type,
                    game.game_code,
                    int(game.is_public),
                    game.created_at,
                    game.updated_at,
                ),
            )
            conn.execute(
                "UPDATE users SET games_created = games_created + 1 WHERE email = ?",
                (owner_email,),
            )
        logger.info("Created game %s for %s", game.id, owner_email)
        return game

    def get_game(self, game_id: str, viewer_email: str) -> Game:
        """
        Raises:
            GameNotFoundError: Unknown id
            AccessDeniedError: Private game of another user
        """
        game = self._load_game(game_id)
        if not game.is_public and game.owner_email != viewer_email:
            raise AccessDeniedError("Access denied")
        return game

    def play_game(self, game_id: str, viewer_email: str) -> Game:
        """Open a game for play: same access rules as get_game, plus a view and a game_played event."""
        game = self.get_game(game_id, viewer_email)
        with self.database.connect("game_view") as conn:
            conn.execute("UPDATE games SET views = views + 1 WHERE id = ?", (game_id,))
        game.views += 1
        self.record_event("game_played", viewer_email, game_id)
        return game

    def list_games(
        self,
        viewer_email: str,
        public: bool = False,
        game_type: Optional[str] = None,
        page: int = 1,
        limit: int = GAMES_PAGE_SIZE_DEFAULT,
    ) -> Tuple[List[Game], Dict[str, int]]:
        """
        One page of the viewer's games, or of the public gallery.

        Returns:
            (games newest first, pagination dict with page/limit/total/pages)
        """
        page = max(page, 1)
        limit = min(max(limit, 1), GAMES_PAGE_SIZE_MAX)

        where = "g.is_public = 1" if public else "g.owner_email = ?"
        params: List[Any] = [] if public else [viewer_email]
        if game_type:
            where += " AND g.game_type = ?"
            params.append(game_type)

        with self.database.connect("game_list") as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM games g WHERE {where}", params).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT g.*, (SELECT COUNT(*) FROM game_likes l WHERE l.game_id = g.id) AS like_count
                FROM games g WHERE {where}
                ORDER BY g.created_at DESC, g.id DESC
                LIMIT ? OFFSET ?
                """,
                params + [limit, (page - 1) * limit],
            ).fetchall()

        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        }
        return [self._row_to_game(row) for row in rows], pagination

    def update_game(self, game_id: str, owner_email: str, **changes: Any) -> Game:
        """
        Update title, description, game_code, game_type or is_public.

        Empty values are ignored, matching the client's partial updates.
        """
        game = self._load_owned_game(game_id, owner_email)
        for field_name in ("title", "description", "game_code", "game_type"):
            value = changes.get(field_name)
            if value:
                setattr(game, field_name, value)
        if isinstance(changes.get("is_public"), bool):
            game.is_public = changes["is_public"]
        _validate_game_type(game.game_type)
        game.updated_at = utc_now().isoformat()

        with self.database.connect("game_update") as conn:
            conn.execute(
                """
                UPDATE games SET title = ?, description = ?, game_code = ?, game_type = ?,
                    is_public = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    game.title,
                    game.description,
                    game.game_code,
                    game.game_type,
                    int(game.is_public),
                    game.updated_at,
                    game.id,
                ),
            )
        return game

    def delete_game(self, game_id: str, owner_email: str) -> None:
        self._load_owned_game(game_id, owner_email)
        with self.database.connect("game_delete") as conn:
            conn.execute("DELETE FROM games WHERE id = ?", (game_id,))
            conn.execute(
                "UPDATE users SET games_created = MAX(games_created - 1, 0) WHERE email = ?",
                (owner_email,),
            )
        logger.info("Deleted game %s", game_id)

    def toggle_like(self, game_id: str, user_email: str) -> Tuple[bool, int]:
        """
        Like or unlike a game visible to the user.

        Returns:
            (liked after the toggle, total like count)
        """
        self.get_game(game_id, user_email)
        with self.database.connect("game_like") as conn:
            cursor = conn.execute(
                "DELETE FROM game_likes WHERE game_id = ? AND user_email = ?",
                (game_id, user_email),
            )
            liked = cursor.rowcount == 0
            if liked:
                conn.execute(
                    "INSERT INTO game_likes (game_id, user_email, created_at) VALUES (?, ?, ?)",
                    (game_id, user_email, utc_now().isoformat()),
                )
            count = conn.execute(
                "SELECT COUNT(*) FROM game_likes WHERE game_id = ?", (game_id,)
            ).fetchone()[0]
        return liked, count

    # === Analytics ===

    def record_event(
        self,
        event_type: str,
        user_email: Optional[str] = None,
        game_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        with self.database.connect("analytics_insert") as conn:
            conn.execute(
                """
                INSERT INTO analytics_events (user_email, event_type, game_id, data, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_email, event_type, game_id, json.dumps(data), utc_now().isoformat()),
            )

    def count_events(self, event_type: str, user_email: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) FROM analytics_events WHERE event_type = ?"
        params: List[Any] = [event_type]
        if user_email is not None:
            query += " AND user_email = ?"
            params.append(user_email)
        with self.database.connect("analytics_count") as conn:
            return conn.execute(query, params).fetchone()[0]

    # === Helpers ===

    def _load_game(self, game_id: str) -> Game:
        with self.database.connect("game_get") as conn:
            row = conn.execute(
                """
                SELECT g.*, (SELECT COUNT(*) FROM game_likes l WHERE l.game_id = g.id) AS like_count
                FROM games g WHERE g.id = ?
                """,
                (game_id,),
            ).fetchone()
        if row is None:
            raise GameNotFoundError(game_id)
        return self._row_to_game(row)

    def _load_owned_game(self, game_id: str, owner_email: str) -> Game:
        game = self._load_game(game_id)
        if game.owner_email != owner_email:
            raise AccessDeniedError("Game not found or access denied")
        return game

    @staticmethod
    def _row_to_game(row) -> Game:
        return Game(
            id=row["id"],
            owner_email=row["owner_email"],
            title=row["title"],
            description=row["description"],
            game_type=row["game_type"],
            game_code=row["game_code"],
            is_public=bool(row["is_public"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            like_count=row["like_count"],
            views=row["views"],
        )
