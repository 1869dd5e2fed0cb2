"""Tests for the language-model clients.

All tests are deterministic and do not make real network calls.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError, BadRequestError, RateLimitError

from vibetravels.config import Settings
from vibetravels.errors import AIResponseFormatError, AIServiceError
from vibetravels.generation.schema import SchemaBuilder
from vibetravels.llm.client import (
    MockAIClient,
    OpenAIClient,
    canned_itinerary,
    estimate_cost,
    get_ai_client,
)
from vibetravels.models.ai import ModelOptions

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _completion(content: str | None, *, finish_reason: str = "stop") -> MagicMock:
    message = MagicMock()
    message.content = content
    message.refusal = None
    choice = MagicMock()
    choice.message = message
    choice.finish_reason = finish_reason
    response = MagicMock()
    response.choices = [choice]
    response.model = "gpt-4o-mini-2024-07-18"
    response.usage.prompt_tokens = 1000
    response.usage.completion_tokens = 2000
    response.usage.total_tokens = 3000
    return response


def _rate_limit_error() -> RateLimitError:
    return RateLimitError(
        "Rate limit reached", response=httpx.Response(429, request=REQUEST), body=None
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def client(sleeps: list[float]) -> OpenAIClient:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    client = OpenAIClient(api_key="test-key", max_retries=3, sleep_fn=fake_sleep)
    client.client = MagicMock()
    client.client.chat.completions.create = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_openai_client_sends_strict_schema(client: OpenAIClient) -> None:
    """The request carries the strict schema and sampling options."""
    client.client.chat.completions.create.return_value = _completion(
        json.dumps(canned_itinerary())
    )
    options = ModelOptions.precise(max_tokens=2000)

    result = await client.generate("system", "user", SchemaBuilder.itinerary(), options)

    kwargs = client.client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["max_tokens"] == 2000
    assert kwargs["temperature"] == 0.2
    assert kwargs["response_format"] == SchemaBuilder.response_format()
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    assert result.parsed_content["destination"] == "Paris, France"
    assert result.model == "gpt-4o-mini-2024-07-18"
    assert result.total_tokens == 3000
    assert result.estimated_cost == pytest.approx(0.00135)


@pytest.mark.asyncio
async def test_openai_client_retries_transient_errors(
    client: OpenAIClient, sleeps: list[float]
) -> None:
    """Retryable errors back off exponentially, then succeed."""
    client.client.chat.completions.create.side_effect = [
        APITimeoutError(request=REQUEST),
        APIConnectionError(request=REQUEST),
        _completion(json.dumps(canned_itinerary())),
    ]

    result = await client.generate(
        "system", "user", SchemaBuilder.itinerary(), ModelOptions.balanced()
    )

    assert result.parsed_content["duration_days"] == 3
    assert sleeps == [2, 4]
    assert client.client.chat.completions.create.call_count == 3


@pytest.mark.asyncio
async def test_openai_client_gives_up_after_max_retries(
    client: OpenAIClient, sleeps: list[float]
) -> None:
    client.client.chat.completions.create.side_effect = _rate_limit_error()

    with pytest.raises(AIServiceError) as exc_info:
        await client.generate("system", "user", SchemaBuilder.itinerary(), ModelOptions())

    assert exc_info.value.retryable is True
    assert exc_info.value.status_code == 429
    assert sleeps == [2, 4, 8]
    assert client.client.chat.completions.create.call_count == 4


@pytest.mark.asyncio
async def test_openai_client_does_not_retry_client_errors(
    client: OpenAIClient, sleeps: list[float]
) -> None:
    client.client.chat.completions.create.side_effect = BadRequestError(
        "Invalid schema", response=httpx.Response(400, request=REQUEST), body=None
    )

    with pytest.raises(AIServiceError) as exc_info:
        await client.generate("system", "user", SchemaBuilder.itinerary(), ModelOptions())

    assert exc_info.value.retryable is False
    assert exc_info.value.status_code == 400
    assert sleeps == []


@pytest.mark.asyncio
async def test_openai_client_rejects_truncated_response(client: OpenAIClient) -> None:
    client.client.chat.completions.create.return_value = _completion(
        '{"destination": "Par', finish_reason="length"
    )

    with pytest.raises(AIResponseFormatError):
        await client.generate("system", "user", SchemaBuilder.itinerary(), ModelOptions())


@pytest.mark.asyncio
async def test_openai_client_rejects_nonconforming_content(client: OpenAIClient) -> None:
    client.client.chat.completions.create.return_value = _completion('{"days": []}')

    with pytest.raises(AIResponseFormatError):
        await client.generate("system", "user", SchemaBuilder.itinerary(), ModelOptions())


@pytest.mark.asyncio
async def test_mock_client_returns_canned_itinerary() -> None:
    client = MockAIClient()

    result = await client.generate(
        "system", "user", SchemaBuilder.itinerary(), ModelOptions(model="gpt-4o")
    )

    assert result.parsed_content == canned_itinerary()
    assert result.model == "gpt-4o"
    assert result.estimated_cost == 0.0
    assert client.calls[0]["schema"] == "travel_itinerary"


@pytest.mark.asyncio
async def test_mock_client_follows_script() -> None:
    client = MockAIClient([AIServiceError("down", retryable=True), "not json"])

    with pytest.raises(AIServiceError):
        await client.generate("s", "u", SchemaBuilder.itinerary(), ModelOptions())
    with pytest.raises(AIResponseFormatError):
        await client.generate("s", "u", SchemaBuilder.itinerary(), ModelOptions())

    result = await client.generate("s", "u", SchemaBuilder.itinerary(), ModelOptions())
    assert result.parsed_content["destination"] == "Paris, France"


def test_estimate_cost_uses_longest_prefix() -> None:
    assert estimate_cost("gpt-4o", 1_000_000, 0) == 2.5
    assert estimate_cost("gpt-4o-mini-2024-07-18", 1_000_000, 1_000_000) == 0.75
    assert estimate_cost("some-other-model", 1_000_000, 0) == 0.15


def test_get_ai_client_uses_mock_without_key() -> None:
    settings = Settings(_env_file=None, openai_api_key=None, ai_use_mock=False)
    assert isinstance(get_ai_client(settings), MockAIClient)


def test_get_ai_client_uses_openai_with_key() -> None:
    settings = Settings(_env_file=None, openai_api_key="sk-test", ai_use_mock=False)
    assert isinstance(get_ai_client(settings), OpenAIClient)


def test_get_ai_client_mock_mode_wins() -> None:
    settings = Settings(_env_file=None, openai_api_key="sk-test", ai_use_mock=True)
    assert isinstance(get_ai_client(settings), MockAIClient)
