"""
Prompt templates and builder for game generation.
"""

from prompt_core.prompts.builder import PromptBuilder
from prompt_core.prompts.templates import (
    artifact_block_template,
    create_template,
    history_prefix_template,
    iterate_template,
    no_artifact_placeholder,
    transcript_line_template,
)

__all__ = [
    "PromptBuilder",
    "artifact_block_template",
    "create_template",
    "history_prefix_template",
    "iterate_template",
    "no_artifact_placeholder",
    "transcript_line_template",
]
