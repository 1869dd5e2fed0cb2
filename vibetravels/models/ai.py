"""Language-model request options and results."""

from typing import Any

from pydantic import BaseModel, Field


class ModelOptions(BaseModel):
    """Sampling options for a chat completion."""

    model: str = "gpt-4o-mini"
    max_tokens: int | None = Field(3000, ge=1)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    top_p: float = Field(1.0, ge=0.0, le=1.0)
    frequency_penalty: float = Field(0.0, ge=-2.0, le=2.0)
    presence_penalty: float = Field(0.0, ge=-2.0, le=2.0)

    @classmethod
    def creative(cls, model: str = "gpt-4o-mini", max_tokens: int | None = 3000) -> "ModelOptions":
        return cls(
            model=model,
            max_tokens=max_tokens,
            temperature=0.9,
            top_p=0.95,
            frequency_penalty=0.5,
            presence_penalty=0.5,
        )

    @classmethod
    def precise(cls, model: str = "gpt-4o-mini", max_tokens: int | None = 3000) -> "ModelOptions":
        return cls(model=model, max_tokens=max_tokens, temperature=0.2, top_p=0.8)

    @classmethod
    def balanced(cls, model: str = "gpt-4o-mini", max_tokens: int | None = 3000) -> "ModelOptions":
        return cls(model=model, max_tokens=max_tokens, temperature=0.7, top_p=1.0)


class AIResult(BaseModel):
    """Parsed model output with usage accounting."""

    parsed_content: dict[str, Any]
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
