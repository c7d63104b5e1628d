"""
OpenRouter client for answer grading.

Handles HTTP communication with the OpenRouter chat-completions API. One call
is one request/response exchange; retries and timeouts are the caller's
business (see ``flashcards.ai.worker``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx
from loguru import logger

from flashcards.ai.errors import ClientUnavailable, TransportError
from flashcards.ai.messages import CardSummary
from flashcards.ai.prompts import (
    ASSESSMENT_SYSTEM_PROMPT,
    EVALUATION_SYSTEM_PROMPT,
    assessment_prompt,
    chat_system_prompt,
    evaluation_prompt,
)

DEFAULT_MODEL = "openai/gpt-oss-120b"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 4096
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

ASSESSMENT_TEMPERATURE = 0.5
ASSESSMENT_MAX_TOKENS = 2048

CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 2048

API_KEY_ENV = "OPENROUTER_API_KEY"
MODEL_ENV = "OPENROUTER_MODEL"


@dataclass(frozen=True)
class ModelConfig:
    """Per-call model overrides."""

    model: str = DEFAULT_MODEL
    temperature: float | None = None
    max_tokens: int | None = None


class EvaluationClient(Protocol):
    """What the evaluation worker needs from a grading backend."""

    async def evaluate(
        self,
        question: str,
        correct_answer: str,
        user_answer: str,
        config: ModelConfig | None = None,
    ) -> str: ...

    async def assess_session(
        self,
        deck_name: str,
        cards: Sequence[CardSummary],
        total_cards: int,
        config: ModelConfig | None = None,
    ) -> str: ...

    async def chat(
        self,
        question: str,
        correct_answer: str,
        user_answer: str,
        initial_feedback: str,
        history: Sequence[tuple[str, str]],
        user_message: str,
        config: ModelConfig | None = None,
    ) -> str: ...

    async def aclose(self) -> None: ...


class OpenRouterClient:
    """HTTP client for the OpenRouter chat-completions endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenRouter key (falls back to OPENROUTER_API_KEY)
            model: Default model (falls back to OPENROUTER_MODEL, then DEFAULT_MODEL)
            base_url: API base URL
            http_client: Pre-built httpx client (tests inject a MockTransport here)

        Raises:
            ClientUnavailable: if no API key is configured
        """
        self.api_key = api_key or os.environ.get(API_KEY_ENV)
        if not self.api_key:
            raise ClientUnavailable(
                f"Failed to create AI client: {API_KEY_ENV} is not set"
            )
        self.model = model or os.environ.get(MODEL_ENV) or DEFAULT_MODEL
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client:
            await self.client.aclose()

    async def evaluate(
        self,
        question: str,
        correct_answer: str,
        user_answer: str,
        config: ModelConfig | None = None,
    ) -> str:
        """
        Ask the model to grade one answer.

        Returns:
            The model's raw reply text (expected to contain Feedback JSON)

        Raises:
            TransportError: on any HTTP or protocol failure
        """
        messages = [
            {"role": "system", "content": EVALUATION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": evaluation_prompt(question, correct_answer, user_answer),
            },
        ]
        return await self._chat(
            messages,
            config,
            default_temperature=None,
            default_max_tokens=None,
        )

    async def assess_session(
        self,
        deck_name: str,
        cards: Sequence[CardSummary],
        total_cards: int,
        config: ModelConfig | None = None,
    ) -> str:
        """Ask the model for an overall assessment of a session."""
        messages = [
            {"role": "system", "content": ASSESSMENT_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": assessment_prompt(deck_name, cards, total_cards),
            },
        ]
        return await self._chat(
            messages,
            config,
            default_temperature=ASSESSMENT_TEMPERATURE,
            default_max_tokens=ASSESSMENT_MAX_TOKENS,
        )

    async def chat(
        self,
        question: str,
        correct_answer: str,
        user_answer: str,
        initial_feedback: str,
        history: Sequence[tuple[str, str]],
        user_message: str,
        config: ModelConfig | None = None,
    ) -> str:
        """
        Continue a follow-up conversation about one card.

        Args:
            history: Earlier ``(role, content)`` turns, oldest first
            user_message: The new question from the user

        Returns:
            The model's reply as free text
        """
        messages = [
            {
                "role": "system",
                "content": chat_system_prompt(
                    question, correct_answer, user_answer, initial_feedback
                ),
            },
        ]
        messages.extend({"role": role, "content": content} for role, content in history)
        messages.append({"role": "user", "content": user_message})
        return await self._chat(
            messages,
            config,
            default_temperature=CHAT_TEMPERATURE,
            default_max_tokens=CHAT_MAX_TOKENS,
        )

    def _payload(
        self,
        messages: list[dict[str, str]],
        config: ModelConfig | None,
        default_temperature: float | None,
        default_max_tokens: int | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": config.model if config else self.model,
            "messages": messages,
            "provider": {"sort": "throughput"},
        }
        temperature = config.temperature if config else None
        max_tokens = config.max_tokens if config else None
        if temperature is None:
            temperature = default_temperature
        if max_tokens is None:
            max_tokens = default_max_tokens
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    async def _chat(
        self,
        messages: list[dict[str, str]],
        config: ModelConfig | None,
        default_temperature: float | None,
        default_max_tokens: int | None,
    ) -> str:
        payload = self._payload(
            messages, config, default_temperature, default_max_tokens
        )
        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("OpenRouter returned {}", e.response.status_code)
            raise TransportError(
                f"OpenRouter API error: {e.response.status_code} {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"OpenRouter API error: {e}") from e
        except ValueError as e:
            raise TransportError(f"OpenRouter returned invalid JSON: {e}") from e

        return _extract_text(data)


def _extract_text(data: dict[str, Any]) -> str:
    """Pull the first choice's text out of a chat-completion body."""
    choices = data.get("choices") or []
    if not choices:
        raise TransportError("No response choices received")

    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        return "\n".join(parts)
    raise TransportError("Response choice has no text content")
