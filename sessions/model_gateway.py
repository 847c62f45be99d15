"""
Model Gateway Module

Sends one prompt to the generative model and returns its complete text.
Every failure mode (transport, SDK, empty or malformed reply) is reported
as GenerationFailed. The gateway never retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from exceptions import GenerationFailed
from metrics import track_error, track_model_call

logger = logging.getLogger(__name__)


class ModelGateway:
    """Asynchronous front for a LangChain LLM wrapper."""

    def __init__(self, model: Any) -> None:
        """
        Args:
            model: Any LangChain LLM (a prompt_core model wrapper in
                   production, a fake in tests)
        """
        self.model = model
        self.provider = getattr(model, "_llm_type", model.__class__.__name__)
        params = getattr(model, "_identifying_params", {}) or {}
        self.model_name = str(params.get("model_name", "unknown"))

    async def generate(self, prompt: str) -> str:
        """
        Run one model call without blocking the event loop.

        Returns:
            The full response text

        Raises:
            GenerationFailed: For any error or an empty/non-text response
        """
        loop = asyncio.get_running_loop()
        start_time = time.time()
        try:
            with track_model_call(self.provider, self.model_name):
                result = await loop.run_in_executor(None, self.model.invoke, prompt)
        except Exception as e:
            track_error("generation_failed")
            logger.error(
                "Model call failed after %.2fs (%s/%s): %s: %s",
                time.time() - start_time,
                self.provider,
                self.model_name,
                e.__class__.__name__,
                e,
            )
            raise GenerationFailed(str(e) or e.__class__.__name__, provider=self.provider) from e

        if not isinstance(result, str) or not result.strip():
            track_error("generation_malformed")
            raise GenerationFailed(
                f"Model returned an empty or non-text response ({type(result).__name__})",
                provider=self.provider,
            )

        logger.debug(
            "Model call succeeded in %.2fs (%d chars)", time.time() - start_time, len(result)
        )
        return result
