"""
Tests for the model wrappers.

Verifies API key resolution (including the Gemini key fallback), SDK error
translation, response text handling and provider selection.
"""

import os
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from prompt_core.models import create_model
from prompt_core.models.anthropic import ClaudeModel
from prompt_core.models.base import BaseLLMModel
from prompt_core.models.gemini import GoogleGeminiModel


def bind(method_name):
    model = Mock(spec=BaseLLMModel)
    model.api_key = None
    setattr(model, method_name, getattr(BaseLLMModel, method_name).__get__(model, BaseLLMModel))
    return model


class TestGetApiKey:
    """Test credential resolution."""

    @patch.dict(os.environ, {"GEMINI_API_KEY": "gemini_key", "GOOGLE_API_KEY": "google_key"}, clear=True)
    def test_first_variable_wins(self):
        model = bind("_get_api_key")
        assert model._get_api_key(["GEMINI_API_KEY", "GOOGLE_API_KEY"], "Google Gemini") == "gemini_key"

    @patch.dict(os.environ, {"GOOGLE_API_KEY": "google_key"}, clear=True)
    def test_falls_back_to_second_variable(self):
        model = bind("_get_api_key")
        assert model._get_api_key(["GEMINI_API_KEY", "GOOGLE_API_KEY"], "Google Gemini") == "google_key"

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "env_key"}, clear=True)
    def test_instance_key_takes_precedence(self):
        model = bind("_get_api_key")
        model.api_key = "instance_key"
        assert model._get_api_key("ANTHROPIC_API_KEY", "Claude") == "instance_key"

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_required_key_names_all_variables(self):
        model = bind("_get_api_key")
        with pytest.raises(EnvironmentError, match="GEMINI_API_KEY or GOOGLE_API_KEY environment variable"):
            model._get_api_key(["GEMINI_API_KEY", "GOOGLE_API_KEY"], "Google Gemini")

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_optional_key(self):
        model = bind("_get_api_key")
        assert model._get_api_key("MISSING_KEY", "TestProvider", required=False) is None


class TestHandleApiError:
    """Test SDK error translation."""

    def test_runtime_error_passes_through(self):
        model = bind("_handle_api_error")
        with pytest.raises(RuntimeError, match="^no text$"):
            model._handle_api_error(RuntimeError("no text"), "Claude")

    def test_connection_error_keeps_type(self):
        model = bind("_handle_api_error")
        original = ConnectionError("Network unreachable")
        with pytest.raises(ConnectionError, match="Claude API connection failed") as exc_info:
            model._handle_api_error(original, "Claude")
        assert exc_info.value.__cause__ is original

    def test_timeout_error_keeps_type(self):
        model = bind("_handle_api_error")
        with pytest.raises(TimeoutError, match="request timed out"):
            model._handle_api_error(TimeoutError("30s"), "Google Gemini")

    def test_other_errors_become_runtime_error(self):
        model = bind("_handle_api_error")
        with pytest.raises(RuntimeError, match="Google Gemini API call failed: KeyError"):
            model._handle_api_error(KeyError("candidates"), "Google Gemini")

    def test_missing_sdk(self):
        model = bind("_initialize_client")

        def client(*args, **kwargs):
            raise ImportError("No module named 'google'")

        with pytest.raises(ImportError, match="pip install google-genai"):
            model._initialize_client(client, "key", "google-genai")


class TestGeminiModel:
    """Test the default generation model."""

    @patch.dict(os.environ, {"GOOGLE_API_KEY": "google_key"}, clear=True)
    def test_client_uses_fallback_key(self):
        with patch("google.genai.Client") as mock_client_class:
            model = GoogleGeminiModel()

        mock_client_class.assert_called_once_with(api_key="google_key")
        assert model.model_name == "gemini-2.5-pro"
        assert model._llm_type == "google-genai"

    @patch.dict(os.environ, {"GEMINI_API_KEY": "gemini_key"}, clear=True)
    def test_invoke_returns_text(self):
        with patch("google.genai.Client") as mock_client_class:
            model = GoogleGeminiModel(temperature=0.2)
        client = mock_client_class.return_value
        client.models.generate_content.return_value = SimpleNamespace(text="```html\n<html></html>\n```")

        assert model.invoke("make a game") == "```html\n<html></html>\n```"
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-pro"
        assert kwargs["contents"] == "make a game"
        assert kwargs["config"].temperature == 0.2

    @patch.dict(os.environ, {"GEMINI_API_KEY": "gemini_key"}, clear=True)
    def test_empty_text_raises(self):
        with patch("google.genai.Client") as mock_client_class:
            model = GoogleGeminiModel()
        mock_client_class.return_value.models.generate_content.return_value = SimpleNamespace(text=None)

        with pytest.raises(RuntimeError, match="did not contain any text"):
            model.invoke("make a game")

    @patch.dict(os.environ, {"GEMINI_API_KEY": "gemini_key"}, clear=True)
    def test_sdk_error_is_translated(self):
        with patch("google.genai.Client") as mock_client_class:
            model = GoogleGeminiModel()
        mock_client_class.return_value.models.generate_content.side_effect = ConnectionError("reset")

        with pytest.raises(ConnectionError, match="Google Gemini API connection failed: reset"):
            model.invoke("make a game")


class TestClaudeModel:
    """Test the alternative generation model."""

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "anthropic_key"}, clear=True)
    def test_joins_text_blocks(self):
        with patch("anthropic.Anthropic") as mock_anthropic:
            model = ClaudeModel()
        mock_anthropic.return_value.messages.create.return_value = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Made it blue.\n"),
                SimpleNamespace(type="thinking", text="ignored"),
                SimpleNamespace(type="text", text="```html\n<html></html>\n```"),
            ]
        )

        assert model.invoke("make it blue") == "Made it blue.\n```html\n<html></html>\n```"
        mock_anthropic.assert_called_once_with(api_key="anthropic_key")

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_key(self):
        with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY environment variable must be set for Claude models."):
            ClaudeModel()


class TestCreateModel:
    """Test provider selection."""

    @patch.dict(os.environ, {"GEMINI_API_KEY": "gemini_key"}, clear=True)
    def test_gemini_with_model_override(self):
        with patch("google.genai.Client"):
            model = create_model("Gemini", "gemini-2.5-flash")
        assert isinstance(model, GoogleGeminiModel)
        assert model.model_name == "gemini-2.5-flash"

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "anthropic_key"}, clear=True)
    def test_anthropic(self):
        with patch("anthropic.Anthropic"):
            model = create_model("anthropic")
        assert isinstance(model, ClaudeModel)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider 'openai'"):
            create_model("openai")
