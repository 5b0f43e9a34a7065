"""
Critic actor.

Finds one extracted page that has no insight of the critic's type yet, asks the
AI gateway for a critique, stores the insight (cost is recorded alongside),
then re-derives whether the deck is complete.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.database import AsyncSessionLocal
from deckcheck.models import InsightType, SessionStatus
from deckcheck.services.cost_tracker import format_cost
from deckcheck.services.critique import critique_page
from deckcheck.services.prompt_registry import build_critique_prompt
from deckcheck.worker import db as db_handler
from deckcheck.worker.config import WorkerConfig, load_worker_config
from deckcheck.worker.errors import record_actor_failure
from deckcheck.worker.session_log import SessionLogger

logger = logging.getLogger(__name__)

ACTOR_NAME = "Critic"


def critique_action(insight_type: str) -> str:
    return f"critique_{insight_type}"


async def critique_pages(
    insight_type: str = InsightType.PROBLEM,
    db: AsyncSession | None = None,
    *,
    worker_cfg: WorkerConfig | None = None,
) -> dict[str, Any] | None:
    """Critique at most one page for *insight_type*. Returns the automation-log record."""
    worker_cfg = worker_cfg or load_worker_config()
    if db is None:
        async with AsyncSessionLocal() as session_db:
            return await _run(session_db, insight_type, worker_cfg)
    return await _run(db, insight_type, worker_cfg)


async def _run(db: AsyncSession, insight_type: str, worker_cfg: WorkerConfig) -> dict[str, Any] | None:
    action = critique_action(insight_type)
    session = SessionLogger(db)
    session.start_session(action)

    try:
        item = await db_handler.find_page_to_critique(
            db, insight_type, deck_limit=worker_cfg.critic_deck_scan_limit
        )
        if item is None:
            return await session.end_session(SessionStatus.NO_ITEMS_FOUND)

        deck, page = item
        session.set_deck_context(deck.id, deck.file_name)
        session.add("Analyzing page", {
            "page_number": page.page_number,
            "word_count": page.word_count,
        })

        prompt = build_critique_prompt(
            insight_type,
            page.text,
            page_number=page.page_number,
            total_pages=deck.page_count,
            file_name=deck.file_name,
        )
        response = await critique_page(
            db,
            prompt,
            deck_id=deck.id,
            page_number=page.page_number,
            actor_name=ACTOR_NAME,
            action=action,
            model=worker_cfg.ai_model,
            temperature=worker_cfg.ai_temperature,
        )
        critique = response.result
        session.add("Critique complete", {
            "rating": critique["rating"],
            "cost": format_cost(response.usage.cost_usd),
        })

        inserted = await db_handler.insert_insight_if_absent(
            db,
            deck_id=deck.id,
            page_number=page.page_number,
            insight_type=insight_type,
            rating=critique["rating"],
            feedback=critique["feedback"],
            reasoning=critique["reasoning"],
            actor_name=ACTOR_NAME,
        )
        await db.commit()
        if inserted:
            session.add("Insight saved")
        else:
            session.add("Insight already exists for this page; kept the existing one", {
                "page_number": page.page_number,
                "type": insight_type,
            })

        await check_if_deck_complete(db, session, deck.id, deck.page_count, worker_cfg.critique_types)

        return await session.end_session(
            SessionStatus.COMPLETED,
            metadata={
                "page_number": page.page_number,
                "rating": critique["rating"],
                "cost_usd": response.usage.cost_usd,
                "duplicate": not inserted,
            },
        )

    except Exception as e:
        await record_actor_failure(db, session, "Critique failed", e)
        return await session.end_session(SessionStatus.FAILED)


async def check_if_deck_complete(
    db: AsyncSession,
    session: SessionLogger,
    deck_id: Any,
    page_count: int,
    critique_types: tuple[str, ...],
) -> bool:
    """Move the deck to ``complete`` once every page has every configured critique."""
    insight_count = await db_handler.count_insights(db, deck_id, critique_types)
    expected = page_count * len(critique_types)
    if insight_count < expected:
        return False

    moved = await db_handler.mark_deck_complete(db, deck_id)
    await db.commit()
    if moved:
        session.add("Deck analysis complete", {"total_insights": insight_count})
    return moved


def make_critic_job(
    insight_type: str,
    worker_cfg: WorkerConfig | None = None,
) -> Callable[[], Awaitable[Any]]:
    """Zero-argument coroutine function for the scheduler."""
    async def _job():
        return await critique_pages(insight_type, worker_cfg=worker_cfg)

    _job.__name__ = f"critique_{insight_type}_job"
    return _job
