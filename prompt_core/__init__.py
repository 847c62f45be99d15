"""
Prompt Core - prompt construction and response parsing for game generation.

The pieces here are pure: building the prompt sent to the generative model
and pulling the game document back out of its reply. Model wrappers live in
``prompt_core.models``.
"""

from prompt_core.extraction import ArtifactExtractor, extract_artifact, strip_fences
from prompt_core.prompts.builder import PromptBuilder
from prompt_core.types import ChatMessage, GameSession, GenerationMode, Role

__all__ = [
    "ArtifactExtractor",
    "ChatMessage",
    "GameSession",
    "GenerationMode",
    "PromptBuilder",
    "Role",
    "extract_artifact",
    "strip_fences",
]

__version__ = "0.1.0"
