"""
Anthropic Claude model wrapper.

Alternative game generation model, selected with LLM_PROVIDER=anthropic.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from langchain_core.callbacks.manager import CallbackManagerForLLMRun
from pydantic import PrivateAttr

from constants import LLM_MAX_TOKENS_GENERATION, LLM_MODEL_ANTHROPIC, LLM_TEMPERATURE_GENERATION
from prompt_core.models.base import BaseLLMModel


class ClaudeModel(BaseLLMModel):
    """
    LangChain-compatible wrapper for Anthropic Claude models.

    Attributes:
        model_name: Claude model identifier
        temperature: Controls randomness in generation (0.0 to 1.0)
        max_tokens: Maximum number of tokens to generate; a full game document
                    needs a generous budget
        api_key: Optional API key (defaults to ANTHROPIC_API_KEY env variable)
    """

    model_name: str = LLM_MODEL_ANTHROPIC
    temperature: float = LLM_TEMPERATURE_GENERATION
    max_tokens: int = LLM_MAX_TOKENS_GENERATION
    api_key: str | None = None

    _client: Any = PrivateAttr()

    class Config:
        arbitrary_types_allowed = True

    def __init__(self, **data: Any):
        super().__init__(**data)
        resolved_api_key = self._get_api_key("ANTHROPIC_API_KEY", "Claude")

        from anthropic import Anthropic

        self._client = self._initialize_client(Anthropic, resolved_api_key, "anthropic")

    def _call(
        self,
        prompt: str,
        stop: Sequence[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> str:
        temperature = kwargs.pop("temperature", self.temperature)
        max_tokens = kwargs.pop("max_tokens", self.max_tokens)
        if stop:
            kwargs["stop_sequences"] = list(stop)

        try:
            response = self._client.messages.create(
                model=self.model_name,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )

            text = "".join(
                block.text for block in response.content if getattr(block, "type", "text") == "text"
            )
            if not text:
                raise RuntimeError("Claude response did not contain any text.")
            return text

        except Exception as e:
            self._handle_api_error(e, "Claude")

    @property
    def _llm_type(self) -> str:
        return "anthropic-claude"

    @property
    def _identifying_params(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
