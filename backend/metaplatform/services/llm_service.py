"""
LLM Service
Anthropic Messages API wrapper used for chat replies and intent detection
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional

import anthropic
from anthropic import Anthropic

from metaplatform.config import settings
from metaplatform.utils.errors import LLMServiceError
from metaplatform.utils.metrics import llm_calls_total, llm_tokens_total

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    response: str
    tokens_used: int


def estimate_token_count(text: str) -> int:
    """Rough token estimate: one token per four characters"""
    return math.ceil(len(text or "") / 4)


class LLMService:
    """
    Single-turn completion over the Anthropic Messages API

    The bot's prompt context, the recent conversation and the user message are
    folded into a single user turn.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        api_key: Optional[str] = None,
    ):
        self.model = model or settings.default_llm_model
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.api_key = settings.anthropic_api_key if api_key is None else api_key
        self._client: Optional[Anthropic] = None

    @property
    def client(self) -> Anthropic:
        if not self.api_key:
            raise LLMServiceError("LLM API key not configured")
        if self._client is None:
            self._client = Anthropic(api_key=self.api_key, timeout=settings.llm_timeout)
        return self._client

    @staticmethod
    def build_prompt(prompt_context: str, conversation_history: str, user_message: str) -> str:
        return (
            "You are a helpful AI assistant. Use the following context to guide your responses:\n\n"
            f"{prompt_context}\n\n"
            "Previous conversation:\n"
            f"{conversation_history}\n\n"
            f"User: {user_message}\n"
            "Assistant:"
        )

    def generate_response(
        self,
        prompt_context: str,
        conversation_history: str,
        user_message: str,
    ) -> LLMResult:
        """
        Generate a reply

        Args:
            prompt_context: bot prompts (and tool results)
            conversation_history: "role: content" lines, oldest first
            user_message: latest user message

        Returns:
            LLMResult(response, tokens_used)

        Raises:
            LLMServiceError: missing key, empty reply or provider failure
        """
        prompt = self.build_prompt(prompt_context, conversation_history, user_message)
        client = self.client

        try:
            message = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=settings.llm_temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.AuthenticationError as e:
            llm_calls_total.labels(model=self.model, status="error").inc()
            logger.error(f"LLM authentication failed: {e}")
            raise LLMServiceError("Invalid LLM API key") from e
        except anthropic.RateLimitError as e:
            llm_calls_total.labels(model=self.model, status="error").inc()
            logger.warning(f"LLM rate limited: {e}")
            raise LLMServiceError("LLM API quota exceeded") from e
        except Exception as e:
            llm_calls_total.labels(model=self.model, status="error").inc()
            logger.error(f"LLM call failed: {e}")
            raise LLMServiceError(f"LLM API error: {e}") from e

        text = self._extract_text_content(message)
        if not text:
            llm_calls_total.labels(model=self.model, status="empty").inc()
            raise LLMServiceError("Empty response from LLM API")

        tokens_used = self._usage_tokens(message)
        if tokens_used is None:
            tokens_used = estimate_token_count(prompt + text)

        llm_calls_total.labels(model=self.model, status="success").inc()
        llm_tokens_total.labels(model=self.model).inc(tokens_used)
        return LLMResult(response=text, tokens_used=tokens_used)

    @staticmethod
    def _extract_text_content(message) -> str:
        parts = []
        for block in getattr(message, "content", None) or []:
            if getattr(block, "type", None) == "text":
                parts.append(block.text)
        return "\n".join(parts).strip()

    @staticmethod
    def _usage_tokens(message) -> Optional[int]:
        usage = getattr(message, "usage", None)
        input_tokens = getattr(usage, "input_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        if isinstance(input_tokens, int) and isinstance(output_tokens, int):
            return input_tokens + output_tokens
        return None
