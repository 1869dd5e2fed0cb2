"""Language-model client for itinerary generation with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic mock client for tests and local development.
"""

import asyncio
import json
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol

from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from pydantic import ValidationError

from vibetravels.config import Settings
from vibetravels.errors import AIResponseFormatError, AIServiceError
from vibetravels.generation.schema import ResponseSchema
from vibetravels.models.ai import AIResult, ModelOptions

logger = logging.getLogger(__name__)

# USD per 1M tokens: (prompt, completion)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.150, 0.600),
    "gpt-4o": (2.50, 10.00),
}
DEFAULT_PRICING_MODEL = "gpt-4o-mini"

MAX_BACKOFF_SECONDS = 60

RETRYABLE_ERRORS = (APITimeoutError, APIConnectionError, RateLimitError, InternalServerError)


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Estimate request cost in USD.

    Dated model names (``gpt-4o-mini-2024-07-18``) are priced by their longest
    known prefix; unknown models are priced as gpt-4o-mini.
    """
    pricing = MODEL_PRICING[DEFAULT_PRICING_MODEL]
    for name in sorted(MODEL_PRICING, key=len, reverse=True):
        if model == name or model.startswith(f"{name}-"):
            pricing = MODEL_PRICING[name]
            break

    prompt_price, completion_price = pricing
    cost = (prompt_tokens / 1_000_000) * prompt_price
    cost += (completion_tokens / 1_000_000) * completion_price
    return round(cost, 6)


def parse_structured_content(content: str | None, schema: ResponseSchema) -> dict[str, Any]:
    """Validate raw model output against the response schema.

    Raises:
        AIResponseFormatError: Empty, non-JSON or schema-violating content
    """
    if content is None or not content.strip():
        raise AIResponseFormatError("Expected structured response but got empty content")

    try:
        parsed = schema.model.model_validate_json(content, strict=True)
    except ValidationError as e:
        raise AIResponseFormatError(
            f"Response does not match {schema.name} schema ({e.error_count()} errors)"
        ) from e

    return parsed.model_dump(mode="json")


class AIClient(Protocol):
    """Protocol for language-model client implementations."""

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: ResponseSchema,
        options: ModelOptions,
    ) -> AIResult:
        """Run one structured chat completion.

        Args:
            system_prompt: System message
            user_prompt: User message
            schema: Output contract the response must satisfy
            options: Model and sampling options

        Returns:
            AIResult with parsed content and token/cost accounting

        Raises:
            AIServiceError: Provider failure after retries
            AIResponseFormatError: Output violates the schema
        """
        ...


def canned_itinerary() -> dict[str, Any]:
    """Fixed 3-day Paris itinerary returned by the mock client."""
    return {
        "destination": "Paris, France",
        "duration_days": 3,
        "days": [
            {
                "day_number": 1,
                "date": "2025-06-01",
                "activities": [
                    {
                        "time": "09:00",
                        "activity": "Visit Eiffel Tower",
                        "location": "Champ de Mars",
                        "cost_estimate": 26.0,
                        "category": "sightseeing",
                    },
                    {
                        "time": "14:00",
                        "activity": "Louvre Museum",
                        "location": "Rue de Rivoli",
                        "cost_estimate": 17.0,
                        "category": "sightseeing",
                    },
                ],
                "daily_budget": 150.0,
            },
            {
                "day_number": 2,
                "date": "2025-06-02",
                "activities": [
                    {
                        "time": "10:00",
                        "activity": "Notre-Dame Cathedral",
                        "location": "Île de la Cité",
                        "cost_estimate": 0.0,
                        "category": "sightseeing",
                    }
                ],
                "daily_budget": 120.0,
            },
            {
                "day_number": 3,
                "date": "2025-06-03",
                "activities": [
                    {
                        "time": "11:00",
                        "activity": "Montmartre Walk",
                        "location": "Montmartre",
                        "cost_estimate": 0.0,
                        "category": "sightseeing",
                    }
                ],
                "daily_budget": 100.0,
            },
        ],
        "total_cost_estimate": 370.0,
        "tips": [
            "Buy Paris Museum Pass for unlimited access",
            "Use metro for transportation",
            "Book Eiffel Tower tickets in advance",
        ],
    }


class MockAIClient:
    """Deterministic mock client (no API key required).

    Returns the canned itinerary unless scripted. Scripted items are consumed
    in order: a dict or str is returned as the response content, an exception
    instance is raised.
    """

    def __init__(self, script: Iterable[dict[str, Any] | str | Exception] | None = None) -> None:
        self._script: deque[dict[str, Any] | str | Exception] = deque(script or [])
        self.calls: list[dict[str, Any]] = []

    def enqueue(self, *items: dict[str, Any] | str | Exception) -> None:
        """Append scripted responses."""
        self._script.extend(items)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: ResponseSchema,
        options: ModelOptions,
    ) -> AIResult:
        """Return a scripted or canned response."""
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "schema": schema.name,
                "model": options.model,
                "response_format": schema.response_format(),
            }
        )
        logger.debug(
            "Mock AI request",
            extra={"structured": {"call_number": len(self.calls), "model": options.model}},
        )

        content: str
        if self._script:
            item = self._script.popleft()
            if isinstance(item, Exception):
                raise item
            content = item if isinstance(item, str) else json.dumps(item)
        else:
            content = json.dumps(canned_itinerary())

        parsed = parse_structured_content(content, schema)

        # Rough 4-characters-per-token estimate keeps counts deterministic
        prompt_tokens = (len(system_prompt) + len(user_prompt)) // 4
        completion_tokens = len(content) // 4
        return AIResult(
            parsed_content=parsed,
            model=options.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost=0.0,
        )


def _service_error(error: APIError) -> AIServiceError:
    status_code = error.status_code if isinstance(error, APIStatusError) else None
    provider_code = error.code or (
        "timeout" if isinstance(error, APITimeoutError) else type(error).__name__
    )
    return AIServiceError(
        f"OpenAI request failed: {error.message}",
        provider_code=provider_code,
        status_code=status_code,
        retryable=isinstance(error, RETRYABLE_ERRORS),
    )


class OpenAIClient:
    """OpenAI-backed client using structured outputs."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout_seconds: float = 120.0,
        max_retries: int = 3,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            base_url: Optional OpenAI-compatible endpoint
            timeout_seconds: Per-request timeout
            max_retries: Retries after the first call for retryable errors
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        # Retries are handled here so backoff and logging stay under our control
        self.client = AsyncOpenAI(
            api_key=api_key, base_url=base_url, timeout=timeout_seconds, max_retries=0
        )
        self._max_retries = max_retries
        self._sleep = sleep_fn or asyncio.sleep

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: ResponseSchema,
        options: ModelOptions,
    ) -> AIResult:
        """Call the chat completions API with the schema as response format."""
        request: dict[str, Any] = {
            "model": options.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": schema.response_format(),
            "temperature": options.temperature,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
        }
        if options.max_tokens is not None:
            request["max_tokens"] = options.max_tokens

        attempt = 0
        while True:
            try:
                response = await self.client.chat.completions.create(**request)
                break
            except RETRYABLE_ERRORS as e:
                attempt += 1
                if attempt > self._max_retries:
                    logger.error(
                        "OpenAI request failed after retries",
                        extra={"structured": {"attempts": attempt, "error": type(e).__name__}},
                    )
                    raise _service_error(e) from e

                delay = min(2**attempt, MAX_BACKOFF_SECONDS)
                logger.warning(
                    "OpenAI request failed, retrying",
                    extra={
                        "structured": {
                            "attempt": attempt,
                            "delay_seconds": delay,
                            "error": type(e).__name__,
                        }
                    },
                )
                await self._sleep(delay)
            except APIError as e:
                raise _service_error(e) from e

        if not response.choices:
            raise AIResponseFormatError("Response contained no choices")

        choice = response.choices[0]
        if choice.finish_reason == "length":
            raise AIResponseFormatError("Response was truncated (max_tokens reached)")
        if getattr(choice.message, "refusal", None):
            raise AIResponseFormatError(f"Model refused the request: {choice.message.refusal}")

        parsed = parse_structured_content(choice.message.content, schema)

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        total_tokens = usage.total_tokens if usage else prompt_tokens + completion_tokens
        model = response.model or options.model

        return AIResult(
            parsed_content=parsed,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            estimated_cost=estimate_cost(model, prompt_tokens, completion_tokens),
        )


def get_ai_client(settings: Settings) -> AIClient:
    """Factory function to get the configured client.

    Returns:
        MockAIClient when mock mode is on or no API key is configured,
        OpenAIClient otherwise
    """
    api_key = settings.openai_api_key

    if settings.ai_use_mock:
        logger.info("AI mock mode enabled, using deterministic mock client")
        return MockAIClient()

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for itinerary generation")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            base_url=settings.openai_base_url,
            timeout_seconds=settings.ai_timeout_seconds,
            max_retries=settings.ai_max_retries,
        )

    logger.warning("No OpenAI API key configured, using deterministic mock client")
    return MockAIClient()
