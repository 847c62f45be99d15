"""
Model wrappers for the supported providers.

``create_model`` builds the configured wrapper; the rest of the service only
depends on the LangChain ``LLM`` interface.
"""

from __future__ import annotations

from typing import Any

from prompt_core.models.base import BaseLLMModel

PROVIDERS = ("gemini", "anthropic")


def create_model(provider: str, model_name: str | None = None, **kwargs: Any) -> BaseLLMModel:
    """
    Instantiate the wrapper for ``provider``.

    Provider modules are imported lazily so only the selected SDK must be
    installed and configured.

    Raises:
        ValueError: For an unknown provider
        EnvironmentError: If the provider's API key is not set
    """
    provider = provider.lower()
    if model_name:
        kwargs["model_name"] = model_name

    if provider == "gemini":
        from prompt_core.models.gemini import GoogleGeminiModel

        return GoogleGeminiModel(**kwargs)
    if provider == "anthropic":
        from prompt_core.models.anthropic import ClaudeModel

        return ClaudeModel(**kwargs)

    raise ValueError(f"Unknown LLM provider '{provider}'. Expected one of: {', '.join(PROVIDERS)}")


__all__ = ["BaseLLMModel", "PROVIDERS", "create_model"]
