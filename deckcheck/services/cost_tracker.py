"""Cost ledger: OpenAI pricing table, cost calculation, and ai_costs persistence."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.models import AICost

logger = logging.getLogger(__name__)

# USD per 1M tokens (OpenAI list prices, January 2025)
MODEL_PRICING: dict[str, dict[str, float]] = {
    # GPT-4o
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-2024-11-20": {"input": 2.50, "output": 10.00},
    # GPT-4o Mini
    "gpt-4o-mini": {"input": 0.150, "output": 0.600},
    "gpt-4o-mini-2024-07-18": {"input": 0.150, "output": 0.600},
    # GPT-4 Turbo
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-4-turbo-2024-04-09": {"input": 10.00, "output": 30.00},
    # GPT-3.5 Turbo
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
    "gpt-3.5-turbo-0125": {"input": 0.50, "output": 1.50},
}

FALLBACK_MODEL = "gpt-4o-mini"

_DISPLAY_NAMES = {
    "gpt-4o": "GPT-4o",
    "gpt-4o-mini": "GPT-4o Mini",
    "gpt-4-turbo": "GPT-4 Turbo",
    "gpt-3.5-turbo": "GPT-3.5 Turbo",
}


def _utc_now_naive() -> datetime:
    """Naive UTC datetime for DB (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """USD cost of one call. Unknown models are priced as FALLBACK_MODEL."""
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning("No pricing data for model: %s. Using %s pricing.", model, FALLBACK_MODEL)
        return calculate_cost(FALLBACK_MODEL, prompt_tokens, completion_tokens)

    input_cost = (prompt_tokens / 1_000_000) * pricing["input"]
    output_cost = (completion_tokens / 1_000_000) * pricing["output"]
    return input_cost + output_cost


def format_cost(cost_usd: float) -> str:
    """Format a USD amount; sub-cent amounts are shown in thousandths."""
    if cost_usd < 0.01:
        return f"${cost_usd * 1000:.4f}‰"
    return f"${cost_usd:.4f}"


def get_model_display_name(model: str) -> str:
    return _DISPLAY_NAMES.get(model, model)


async def record_cost(
    db: AsyncSession,
    model: str,
    usage: dict[str, int],
    action: str,
    *,
    actor_name: str,
    deck_id: UUID | str | None = None,
    page_number: int | None = None,
) -> AICost:
    """Compute the cost of one AI call and append an ai_costs row.

    ``usage`` carries ``prompt_tokens``, ``completion_tokens``, ``total_tokens``.
    The row is flushed, not committed; the caller owns the transaction.
    A database error propagates.
    """
    prompt_tokens = int(usage.get("prompt_tokens", 0))
    completion_tokens = int(usage.get("completion_tokens", 0))
    total_tokens = int(usage.get("total_tokens", prompt_tokens + completion_tokens))
    cost_usd = calculate_cost(model, prompt_tokens, completion_tokens)

    row = AICost(
        model=model,
        tokens_prompt=prompt_tokens,
        tokens_completion=completion_tokens,
        total_tokens=total_tokens,
        cost_usd=cost_usd,
        action=action,
        actor_name=actor_name,
        deck_id=UUID(str(deck_id)) if deck_id is not None else None,
        page_number=page_number,
        timestamp=_utc_now_naive(),
    )
    db.add(row)
    await db.flush()

    logger.info(
        "%s: %s tokens = %s", get_model_display_name(model), total_tokens, format_cost(cost_usd)
    )
    return row


async def get_deck_total_cost(db: AsyncSession, deck_id: UUID) -> float:
    """Sum of cost_usd across every AI call recorded for *deck_id*."""
    result = await db.execute(
        select(func.coalesce(func.sum(AICost.cost_usd), 0.0)).where(AICost.deck_id == deck_id)
    )
    return float(result.scalar_one() or 0.0)


async def get_costs_by_actor(db: AsyncSession, deck_id: UUID) -> dict[str, Any]:
    """Cost for *deck_id* grouped by actor name."""
    result = await db.execute(
        select(AICost.actor_name, func.sum(AICost.cost_usd))
        .where(AICost.deck_id == deck_id)
        .group_by(AICost.actor_name)
    )
    return {actor: float(total or 0.0) for actor, total in result.all()}
