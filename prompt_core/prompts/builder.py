"""
Prompt builder for game generation requests.

Everything here is a pure function of its arguments: no I/O beyond the
cached game type configuration, no hidden state, safe to call again for a
retry.
"""

from __future__ import annotations

from typing import Sequence

from config import get_base_requirements, get_game_type
from constants import DEFAULT_GAME_TYPE
from prompt_core.prompts.templates import (
    artifact_block_template,
    create_template,
    history_prefix_template,
    iterate_template,
    no_artifact_placeholder,
    role_labels,
    transcript_line_template,
    transcript_separator,
)
from prompt_core.types import ChatMessage, GenerationMode


class PromptBuilder:
    """
    Builder for the text prompt sent to the generative model.

    ``build`` is the single entry point; the other static methods are its
    building blocks and are exposed for callers that need only one part.
    """

    @staticmethod
    def build(
        current_artifact: str,
        instruction: str,
        history: Sequence[ChatMessage] = (),
        mode: GenerationMode = GenerationMode.ITERATE,
        game_type: str = DEFAULT_GAME_TYPE,
    ) -> str:
        """
        Build the complete prompt for one turn.

        Args:
            current_artifact: The current game document, or "" for none
            instruction: The user's request (validated non-empty by the caller)
            history: Recent transcript, oldest first
            mode: CREATE for a bare document, ITERATE for rationale + document
            game_type: Game type id used by CREATE mode requirements

        Returns:
            Prompt text
        """
        mode = GenerationMode(mode)
        if mode is GenerationMode.CREATE:
            prompt = PromptBuilder.build_create_prompt(current_artifact, instruction, game_type)
        else:
            prompt = PromptBuilder.build_iterate_prompt(current_artifact, instruction)

        transcript = PromptBuilder.flatten_history(history)
        if not transcript:
            return prompt
        return history_prefix_template.format(transcript=transcript, prompt=prompt)

    @staticmethod
    def build_artifact_block(current_artifact: str) -> str:
        """Embed the artifact verbatim in a fenced html block."""
        return artifact_block_template.format(artifact=current_artifact or no_artifact_placeholder)

    @staticmethod
    def build_requirements(game_type: str) -> str:
        """Numbered requirement list: shared requirements, then type-specific ones."""
        requirements = get_base_requirements() + list(get_game_type(game_type)["requirements"])
        return "\n".join(f"{i}. {req}" for i, req in enumerate(requirements, 1))

    @staticmethod
    def build_create_prompt(current_artifact: str, instruction: str, game_type: str) -> str:
        type_config = get_game_type(game_type)
        return create_template.format(
            generator=type_config["generator"],
            instruction=instruction,
            artifact_block=PromptBuilder.build_artifact_block(current_artifact),
            requirements=PromptBuilder.build_requirements(game_type),
            closing=type_config["closing"],
        )

    @staticmethod
    def build_iterate_prompt(current_artifact: str, instruction: str) -> str:
        return iterate_template.format(
            artifact_block=PromptBuilder.build_artifact_block(current_artifact),
            instruction=instruction,
        )

    @staticmethod
    def flatten_history(history: Sequence[ChatMessage]) -> str:
        """
        Render the transcript as ``Role: content`` lines separated by blank lines.

        Returns "" for an empty history.
        """
        return transcript_separator.join(
            transcript_line_template.format(
                role=role_labels.get(message.role.value, message.role.value.title()),
                content=message.content,
            )
            for message in history
        )
