"""
LLM Service tests
Anthropic client is patched; no network calls
"""
from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest
from anthropic.types import TextBlock

from metaplatform.services.llm_service import LLMService, estimate_token_count
from metaplatform.utils.errors import LLMServiceError


def make_message(text="Hi there", input_tokens=12, output_tokens=3):
    message = MagicMock()
    message.content = [TextBlock(type="text", text=text)] if text is not None else []
    if input_tokens is None:
        message.usage = None
    else:
        message.usage = MagicMock(input_tokens=input_tokens, output_tokens=output_tokens)
    return message


def status_error(error_class, status_code):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return error_class("provider said no", response=httpx.Response(status_code, request=request), body=None)


@pytest.fixture
def mock_anthropic():
    with patch("metaplatform.services.llm_service.Anthropic") as anthropic_cls:
        client = MagicMock()
        anthropic_cls.return_value = client
        yield client


class TestBuildPrompt:
    """Prompt assembly"""

    def test_layout(self):
        prompt = LLMService.build_prompt("Be brief.", "user: hi\nbot: hello", "how are you?")

        assert prompt == (
            "You are a helpful AI assistant. Use the following context to guide your responses:\n\n"
            "Be brief.\n\n"
            "Previous conversation:\n"
            "user: hi\nbot: hello\n\n"
            "User: how are you?\n"
            "Assistant:"
        )


class TestGenerateResponse:
    """generate_response"""

    def test_missing_api_key(self):
        service = LLMService(api_key="")

        with pytest.raises(LLMServiceError, match="LLM API key not configured"):
            service.generate_response("ctx", "", "hello")

    def test_reply_and_usage(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_message("Hi there", 12, 3)
        service = LLMService(model="test-model", api_key="sk-test")

        result = service.generate_response("ctx", "", "hello")

        assert result.response == "Hi there"
        assert result.tokens_used == 15
        kwargs = mock_anthropic.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][0]["role"] == "user"
        assert kwargs["messages"][0]["content"].endswith("User: hello\nAssistant:")

    def test_estimates_tokens_without_usage(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_message("Hi there", None)
        service = LLMService(api_key="sk-test")

        result = service.generate_response("ctx", "", "hello")

        prompt = LLMService.build_prompt("ctx", "", "hello")
        assert result.tokens_used == estimate_token_count(prompt + "Hi there")

    def test_empty_reply(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_message(text="   ")

        with pytest.raises(LLMServiceError, match="Empty response from LLM API"):
            LLMService(api_key="sk-test").generate_response("ctx", "", "hello")

    @pytest.mark.parametrize("error_class,status_code,message", [
        (anthropic.AuthenticationError, 401, "Invalid LLM API key"),
        (anthropic.RateLimitError, 429, "LLM API quota exceeded"),
    ])
    def test_provider_errors_mapped(self, mock_anthropic, error_class, status_code, message):
        mock_anthropic.messages.create.side_effect = status_error(error_class, status_code)

        with pytest.raises(LLMServiceError) as exc_info:
            LLMService(api_key="sk-test").generate_response("ctx", "", "hello")

        assert exc_info.value.message == message

    def test_other_errors_wrapped(self, mock_anthropic):
        mock_anthropic.messages.create.side_effect = RuntimeError("socket closed")

        with pytest.raises(LLMServiceError) as exc_info:
            LLMService(api_key="sk-test").generate_response("ctx", "", "hello")

        assert exc_info.value.message == "LLM API error: socket closed"


@pytest.mark.parametrize("text,expected", [("", 0), ("abcd", 1), ("abcde", 2)])
def test_estimate_token_count(text, expected):
    assert estimate_token_count(text) == expected
