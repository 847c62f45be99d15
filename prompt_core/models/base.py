"""
Base class for generative model wrappers.

Every provider wrapper is a LangChain ``LLM`` so the rest of the service only
ever calls ``model.invoke(prompt)`` and gets text back.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from langchain_core.callbacks.manager import CallbackManagerForLLMRun
from langchain_core.language_models.llms import LLM


class BaseLLMModel(LLM, ABC):
    """
    Abstract base class for all model provider wrappers.

    Subclasses must implement:
    - _call(): Generate the full response text for a prompt
    - _llm_type: Provider identifier, also used as the metrics label
    - _identifying_params: Model configuration (must include model_name)

    Shared helpers:
    - _get_api_key(): Resolve the credential from the instance or environment
    - _initialize_client(): Build the SDK client with a helpful import error
    - _handle_api_error(): Re-raise SDK errors with provider context
    """

    def _get_api_key(
        self,
        env_var_names: str | Sequence[str],
        provider_name: str,
        required: bool = True,
    ) -> str | None:
        """
        Resolve the API key from ``self.api_key`` or the first set env variable.

        Args:
            env_var_names: One variable name or several, checked in order
            provider_name: Human-readable provider name for error messages
            required: If True, raise when no key can be found

        Raises:
            EnvironmentError: If required and no key is set
        """
        if isinstance(env_var_names, str):
            env_var_names = [env_var_names]

        resolved_key = getattr(self, "api_key", None)
        for name in env_var_names:
            if resolved_key:
                break
            resolved_key = os.getenv(name)

        if required and not resolved_key:
            raise OSError(
                f"{' or '.join(env_var_names)} environment variable must be set for {provider_name} models."
            )

        return resolved_key

    def _initialize_client(
        self, client_class: type[Any], api_key: str, package_name: str, **client_kwargs: Any
    ) -> Any:
        """
        Instantiate an SDK client.

        Raises:
            ImportError: If the SDK package is not installed
        """
        try:
            return client_class(api_key=api_key, **client_kwargs)
        except (ImportError, NameError):
            raise ImportError(
                f"{package_name} package not installed. Install it with: pip install {package_name}"
            )

    def _handle_api_error(self, exception: Exception, provider_name: str) -> None:
        """
        Re-raise an SDK exception with provider context.

        RuntimeErrors raised by the wrapper itself pass through untouched;
        connection, timeout and value errors keep their type; anything else
        becomes a RuntimeError. The original exception is always chained.
        """
        if isinstance(exception, RuntimeError):
            raise exception

        if isinstance(exception, ConnectionError):
            raise ConnectionError(
                f"{provider_name} API connection failed: {exception}"
            ) from exception
        if isinstance(exception, TimeoutError):
            raise TimeoutError(f"{provider_name} API request timed out: {exception}") from exception
        if isinstance(exception, ValueError):
            raise ValueError(f"Invalid request parameters: {exception}") from exception

        raise RuntimeError(
            f"{provider_name} API call failed: {exception.__class__.__name__}: {exception}"
        ) from exception

    @property
    @abstractmethod
    def _llm_type(self) -> str:
        """String identifier for this provider (e.g., "google-genai")."""

    @property
    @abstractmethod
    def _identifying_params(self) -> dict[str, Any]:
        """Model configuration (model_name, temperature, ...)."""

    @abstractmethod
    def _call(
        self,
        prompt: str,
        stop: Sequence[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> str:
        """
        Generate the complete response text for a prompt.

        Raises:
            RuntimeError: If the provider returns no usable text
        """
