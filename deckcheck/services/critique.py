"""Critique service: one slide critique via the AI gateway, with cost recording."""
import logging
from typing import Any, Dict
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.services import llm_gateway
from deckcheck.services.cost_tracker import record_cost
from deckcheck.services.llm_gateway import AIResponse

logger = logging.getLogger(__name__)

CRITIC_SYSTEM_MESSAGE = (
    "You are an expert venture capitalist reviewing pitch decks. Respond in JSON format."
)

MIN_RATING = 1
MAX_RATING = 10


def normalize_critique_result(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and coerce a critique reply to {rating, feedback, reasoning}.

    Raises ValueError when the reply has no usable numeric rating.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Critique response is not an object: {type(raw).__name__}")
    rating = raw.get("rating")
    if isinstance(rating, bool) or rating is None:
        raise ValueError(f"Critique response has no rating: {raw!r}"[:500])
    try:
        rating = round(float(rating))
    except (TypeError, ValueError):
        raise ValueError(f"Critique rating is not numeric: {rating!r}")
    rating = max(MIN_RATING, min(MAX_RATING, rating))

    feedback = raw.get("feedback")
    reasoning = raw.get("reasoning")
    return {
        "rating": rating,
        "feedback": feedback if isinstance(feedback, str) else ("" if feedback is None else str(feedback)),
        "reasoning": reasoning if isinstance(reasoning, str) else ("" if reasoning is None else str(reasoning)),
    }


async def critique_page(
    db: AsyncSession,
    prompt: str,
    *,
    deck_id: UUID | str,
    page_number: int,
    actor_name: str,
    action: str,
    model: str | None = None,
    temperature: float | None = None,
) -> AIResponse:
    """
    Critique one page of a pitch deck.

    The ai_costs row is committed as soon as the AI call returns, so the spend
    survives a malformed reply or a later failed insight write.

    Args:
        db: Session the ai_costs row is written and committed on
        prompt: Rendered critique prompt
        deck_id, page_number, actor_name, action: cost-record tags

    Returns:
        AIResponse whose ``result`` is the normalized critique and whose
        ``usage.cost_usd`` is the ledger cost.

    Raises:
        ValueError: the reply has no usable rating (its cost is already committed)
    """
    model = model or llm_gateway.DEFAULT_MODEL
    response = await llm_gateway.complete(
        prompt,
        model=model,
        temperature=temperature,
        system_message=CRITIC_SYSTEM_MESSAGE,
    )

    cost = await record_cost(
        db,
        model,
        response.usage.as_dict(),
        action,
        actor_name=actor_name,
        deck_id=deck_id,
        page_number=page_number,
    )
    await db.commit()
    response.usage.cost_usd = cost.cost_usd

    response.result = normalize_critique_result(response.result)
    return response
