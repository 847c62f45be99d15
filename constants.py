"""
Project-wide constants.

Centralizes magic numbers and configuration defaults for maintainability.
Environment overrides are resolved in the config package.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# LLM Configuration
# =============================================================================
LLM_PROVIDER_DEFAULT: Final[str] = "gemini"
LLM_MODEL_GEMINI: Final[str] = "gemini-2.5-pro"
LLM_MODEL_ANTHROPIC: Final[str] = "claude-sonnet-4-5-20250929"
LLM_TEMPERATURE_GENERATION: Final[float] = 0.7
LLM_MAX_TOKENS_GENERATION: Final[int] = 16384

# =============================================================================
# Game Sessions
# =============================================================================
HISTORY_WINDOW_DEFAULT: Final[int] = 10  # Recent messages sent along with a turn
SESSION_PREVIEW_MESSAGES: Final[int] = 5  # Messages included in session listings
DEFAULT_GAME_TYPE: Final[str] = "2d"

# =============================================================================
# Games Gallery
# =============================================================================
GAMES_PAGE_SIZE_DEFAULT: Final[int] = 10
GAMES_PAGE_SIZE_MAX: Final[int] = 100

# =============================================================================
# Authentication
# =============================================================================
AUTH_TOKEN_TTL_SECONDS_DEFAULT: Final[int] = 60 * 60 * 24 * 30

# =============================================================================
# Storage
# =============================================================================
DB_PATH_DEFAULT: Final[str] = "data/whimzy.db"

# =============================================================================
# Server Configuration
# =============================================================================
DEFAULT_SERVER_HOST: Final[str] = "0.0.0.0"
DEFAULT_SERVER_PORT: Final[int] = 8080

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL_PRODUCTION: Final[str] = "INFO"
LOG_LEVEL_DEVELOPMENT: Final[str] = "DEBUG"
LOG_FORMAT_JSON: Final[bool] = True  # Set to False for development readable format
