"""
Configuration loader module.

Two sources, both loaded once and cached:
- config/game_types.json: requirement lists for each supported game type
- the process environment (after python-dotenv reads .env): runtime settings
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from constants import (
    AUTH_TOKEN_TTL_SECONDS_DEFAULT,
    DB_PATH_DEFAULT,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    HISTORY_WINDOW_DEFAULT,
    LLM_PROVIDER_DEFAULT,
)

_CONFIG_DIR = Path(__file__).parent
_GAME_TYPES_PATH = _CONFIG_DIR / "game_types.json"

_game_types: dict[str, Any] | None = None
_settings: Settings | None = None


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""

    llm_provider: str = LLM_PROVIDER_DEFAULT
    llm_model: str | None = None
    db_path: str = DB_PATH_DEFAULT
    auth_secret_key: str | None = None
    auth_token_ttl_seconds: int = AUTH_TOKEN_TTL_SECONDS_DEFAULT
    history_window: int = HISTORY_WINDOW_DEFAULT
    server_host: str = DEFAULT_SERVER_HOST
    server_port: int = DEFAULT_SERVER_PORT

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", LLM_PROVIDER_DEFAULT).lower(),
            llm_model=os.getenv("LLM_MODEL") or None,
            db_path=os.getenv("WHIMZY_DB_PATH", DB_PATH_DEFAULT),
            auth_secret_key=os.getenv("AUTH_SECRET_KEY") or None,
            auth_token_ttl_seconds=int(
                os.getenv("AUTH_TOKEN_TTL_SECONDS", str(AUTH_TOKEN_TTL_SECONDS_DEFAULT))
            ),
            history_window=int(os.getenv("HISTORY_WINDOW", str(HISTORY_WINDOW_DEFAULT))),
            server_host=os.getenv("SERVER_HOST", DEFAULT_SERVER_HOST),
            server_port=int(os.getenv("SERVER_PORT", str(DEFAULT_SERVER_PORT))),
        )


def get_settings() -> Settings:
    """
    Load settings from .env and the environment.

    Returns cached version after first load.
    """
    global _settings

    if _settings is None:
        load_dotenv()
        _settings = Settings.from_env()

    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


def get_game_types() -> dict[str, Any]:
    """
    Load and return the game type configuration.

    Returns cached version after first load.
    """
    global _game_types

    if _game_types is None:
        if not _GAME_TYPES_PATH.exists():
            raise FileNotFoundError(f"Game types not found: {_GAME_TYPES_PATH}")

        with open(_GAME_TYPES_PATH) as f:
            _game_types = json.load(f)

    return _game_types


def get_game_type_ids() -> list[str]:
    """Supported game type ids, e.g. ['2d', 'advanced-2d', '3d']."""
    return list(get_game_types()["gameTypes"])


def get_game_type(game_type: str | None) -> dict[str, Any]:
    """
    Get the configuration for one game type.

    Unknown or missing ids fall back to the default type.
    """
    config = get_game_types()
    types = config["gameTypes"]
    return types.get(game_type or "", types[config["default"]])


def get_base_requirements() -> list[str]:
    """Requirements shared by every game type."""
    return list(get_game_types()["baseRequirements"])
