"""
Initial content for newly created game sessions.
"""

from __future__ import annotations

from typing import List

from prompt_core.types import ChatMessage, Role

DEFAULT_GAME_CODE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Whimzy Game</title>
    <style>
        body {
            margin: 0;
            padding: 20px;
            background: linear-gradient(45deg, #1a1a2e, #16213e);
            color: #fff;
            font-family: 'Courier New', monospace;
            display: flex;
            justify-content: center;
            align-items: center;
            min-height: 100vh;
        }
        .game-container {
            text-align: center;
            border: 2px solid #8b5cf6;
            border-radius: 10px;
            padding: 30px;
            background: rgba(139, 92, 246, 0.1);
            box-shadow: 0 0 20px rgba(139, 92, 246, 0.3);
        }
        .pixel-character {
            font-size: 48px;
            animation: bounce 2s infinite;
            display: inline-block;
        }
        @keyframes bounce {
            0%, 20%, 50%, 80%, 100% { transform: translateY(0); }
            40% { transform: translateY(-10px); }
            60% { transform: translateY(-5px); }
        }
        .game-title {
            font-size: 24px;
            margin: 20px 0;
            color: #a855f7;
            text-shadow: 0 0 10px rgba(168, 85, 247, 0.5);
        }
    </style>
</head>
<body>
    <div class="game-container">
        <div class="pixel-character">🎮</div>
        <h1 class="game-title">Welcome to Whimzy!</h1>
        <p>Your awesome game will appear here!</p>
    </div>
</body>
</html>"""

WELCOME_MESSAGE = "Welcome to Whimzy Game Builder! Your game preview is ready."

GREETING_MESSAGE = (
    "Hi! I've created a basic game template for you. You can ask me to modify it in any way - "
    "change colors, add features, or completely redesign it. What would you like to do?"
)

GENERATION_FAILED_MESSAGE = (
    "Sorry, I couldn't update your game this time because the AI service ran into a problem. "
    "Your current game is unchanged - please try again in a moment."
)


def seed_messages() -> List[ChatMessage]:
    """The two messages every new session starts with."""
    return [
        ChatMessage(role=Role.SYSTEM, content=WELCOME_MESSAGE),
        ChatMessage(role=Role.ASSISTANT, content=GREETING_MESSAGE),
    ]


def default_title(session_id: str) -> str:
    """
    Title derived from the session id.

    Client ids look like ``game-1718000000000``; the second segment is used
    when present, otherwise the whole id.
    """
    parts = session_id.split("-")
    suffix = parts[1] if len(parts) > 1 and parts[1] else session_id
    return f"Game {suffix}"
