"""OpenAI gateway: one JSON-mode chat completion per call, plus token estimation.

Pricing is not computed here; callers pass ``usage`` to
``deckcheck.services.cost_tracker.record_cost``.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

import tiktoken
from openai import AsyncOpenAI

from deckcheck.config import OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL

logger = logging.getLogger(__name__)

DEFAULT_MODEL = OPENAI_MODEL
DEFAULT_TEMPERATURE = 0.3
DEFAULT_SYSTEM_MESSAGE = "You are a helpful assistant that responds in JSON format."

_client: AsyncOpenAI | None = None


@dataclass
class AIUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_usd: float = 0.0

    def as_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class AIResponse:
    result: Any
    usage: AIUsage


def get_client() -> AsyncOpenAI:
    """Shared AsyncOpenAI client, created on first use."""
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=OPENAI_API_KEY or None, base_url=OPENAI_BASE_URL)
    return _client


async def complete(
    prompt: str,
    *,
    model: str | None = None,
    temperature: float | None = None,
    system_message: str | None = None,
    client: AsyncOpenAI | None = None,
) -> AIResponse:
    """Send *prompt* with a system instruction and parse the JSON reply.

    Service errors propagate unchanged. A reply that is not valid JSON raises
    ``json.JSONDecodeError``.
    """
    model = model or DEFAULT_MODEL
    temperature = DEFAULT_TEMPERATURE if temperature is None else temperature
    system_message = system_message or DEFAULT_SYSTEM_MESSAGE
    client = client or get_client()

    try:
        resp = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_message},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=temperature,
        )
    except Exception as e:
        logger.error("OpenAI API error: %s", e)
        raise

    content = "{}"
    if resp.choices and resp.choices[0].message.content:
        content = resp.choices[0].message.content
    try:
        result = json.loads(content)
    except json.JSONDecodeError:
        logger.error("OpenAI returned non-JSON content: %s", content[:500])
        raise

    usage = resp.usage
    return AIResponse(
        result=result,
        usage=AIUsage(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
        ),
    )


def count_tokens(text: str, model: str = DEFAULT_MODEL) -> int:
    """Token count for pre-flight estimation; ~4 chars/token when no tokenizer is known."""
    try:
        encoder = tiktoken.encoding_for_model(model)
        return len(encoder.encode(text))
    except Exception as e:
        logger.warning("Failed to count tokens for model %s: %s", model, e)
        return math.ceil(len(text) / 4)
