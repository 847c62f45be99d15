"""
Google Gemini model wrapper.

LangChain-compatible adapter for the official Google GenAI SDK. This is the
default game generation model.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from google import genai
from google.genai import types as genai_types
from langchain_core.callbacks.manager import CallbackManagerForLLMRun
from pydantic import Field, PrivateAttr

from constants import LLM_MAX_TOKENS_GENERATION, LLM_MODEL_GEMINI, LLM_TEMPERATURE_GENERATION
from prompt_core.models.base import BaseLLMModel


class GoogleGeminiModel(BaseLLMModel):
    """
    Gemini wrapper used for game generation.

    The key is read from GEMINI_API_KEY, falling back to GOOGLE_API_KEY.
    """

    model_name: str = LLM_MODEL_GEMINI
    temperature: float = LLM_TEMPERATURE_GENERATION
    max_tokens: int = LLM_MAX_TOKENS_GENERATION
    thinking_budget: int | None = None
    api_key: str | None = None
    generation_config: dict[str, Any] = Field(default_factory=dict)

    _client: Any = PrivateAttr()

    class Config:
        arbitrary_types_allowed = True

    def __init__(self, **data: Any):
        super().__init__(**data)
        resolved_api_key = self._get_api_key(["GEMINI_API_KEY", "GOOGLE_API_KEY"], "Google Gemini")
        self._client = self._initialize_client(genai.Client, resolved_api_key, "google-genai")

    def _build_generation_config(
        self,
        stop: Sequence[str] | None,
        overrides: dict[str, Any],
    ) -> genai_types.GenerateContentConfig:
        config_kwargs: dict[str, Any] = {
            "temperature": overrides.pop("temperature", self.temperature),
            "max_output_tokens": overrides.pop("max_tokens", self.max_tokens),
        }
        if stop:
            config_kwargs["stop_sequences"] = list(stop)

        config_kwargs.update(self.generation_config)
        config_kwargs.update(overrides)

        if self.thinking_budget is not None:
            config_kwargs["thinking_config"] = genai_types.ThinkingConfig(
                thinking_budget=self.thinking_budget
            )

        return genai_types.GenerateContentConfig(**config_kwargs)

    def _call(
        self,
        prompt: str,
        stop: Sequence[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> str:
        config = self._build_generation_config(stop=stop, overrides=dict(kwargs))
        try:
            response = self._client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            self._handle_api_error(e, "Google Gemini")

        text_response = response.text
        if not text_response:
            raise RuntimeError("Google Gemini response did not contain any text.")
        return text_response

    @property
    def _llm_type(self) -> str:
        return "google-genai"

    @property
    def _identifying_params(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "thinking_budget": self.thinking_budget,
        }
