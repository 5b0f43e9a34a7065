"""
Minimal HTTP server for Cloud Run: runs the actor scheduler as a task on the
server's event loop, serves /health so Cloud Run keeps the instance alive, and
exposes read-only deck status and cost endpoints.

The scheduler and the endpoints share deckcheck.database's connection pool, and
asyncpg connections are bound to the loop that opened them, so both must run on
the same loop.
Use: uvicorn deckcheck.worker_server:app --host 0.0.0.0 --port 8080
"""
import asyncio
import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.database import get_db
from deckcheck.models import Deck, DeckPage, Insight
from deckcheck.services.cost_tracker import format_cost, get_costs_by_actor, get_deck_total_cost
from deckcheck.worker.main import run_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - [DECK-WORKER] - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="DeckCheck Actor Worker", version="0.1.0")

_scheduler_task: asyncio.Task | None = None


class InsightOut(BaseModel):
    type: str
    page_number: int
    rating: int
    feedback: str
    reasoning: str
    actor_name: str


class DeckStatusOut(BaseModel):
    deck_id: str
    file_name: str
    status: str
    page_count: int
    pages_extracted: int
    insight_count: int
    error_message: Optional[str] = None
    insights: list[InsightOut] = []


class DeckCostsOut(BaseModel):
    deck_id: str
    total_usd: float
    total_formatted: str
    by_actor: dict[str, float]


async def _run_scheduler_task() -> None:
    try:
        await run_scheduler()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.exception("Actor scheduler exited: %s", e)


@app.on_event("startup")
async def start_worker():
    global _scheduler_task
    _scheduler_task = asyncio.create_task(_run_scheduler_task(), name="actor-scheduler")
    logger.info("DeckCheck actor scheduler started on the server event loop")


@app.on_event("shutdown")
async def stop_worker():
    global _scheduler_task
    if _scheduler_task is not None and not _scheduler_task.done():
        _scheduler_task.cancel()
    _scheduler_task = None


@app.get("/health")
def health():
    return {"status": "ok", "service": "deckcheck-actor-worker"}


def _parse_deck_id(deck_id: str) -> UUID:
    try:
        return UUID(deck_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid deck ID")


@app.get("/decks/{deck_id}/status", response_model=DeckStatusOut)
async def get_deck_status(deck_id: str, db: AsyncSession = Depends(get_db)):
    """Processing status of a deck with its insights."""
    deck_uuid = _parse_deck_id(deck_id)

    result = await db.execute(select(Deck).where(Deck.id == deck_uuid))
    deck = result.scalar_one_or_none()
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")

    pages_result = await db.execute(select(DeckPage.page_number).where(DeckPage.deck_id == deck_uuid))
    pages = pages_result.scalars().all()

    insights_result = await db.execute(
        select(Insight)
        .where(Insight.deck_id == deck_uuid)
        .order_by(Insight.page_number, Insight.type)
    )
    insights = insights_result.scalars().all()

    return DeckStatusOut(
        deck_id=str(deck.id),
        file_name=deck.file_name,
        status=deck.status,
        page_count=deck.page_count,
        pages_extracted=len(pages),
        insight_count=len(insights),
        error_message=deck.error_message,
        insights=[
            InsightOut(
                type=i.type,
                page_number=i.page_number,
                rating=i.rating,
                feedback=i.feedback,
                reasoning=i.reasoning,
                actor_name=i.actor_name,
            )
            for i in insights
        ],
    )


@app.get("/decks/{deck_id}/costs", response_model=DeckCostsOut)
async def get_deck_costs(deck_id: str, db: AsyncSession = Depends(get_db)):
    """AI spend for a deck, total and per actor."""
    deck_uuid = _parse_deck_id(deck_id)
    total = await get_deck_total_cost(db, deck_uuid)
    by_actor = await get_costs_by_actor(db, deck_uuid)
    return DeckCostsOut(
        deck_id=str(deck_uuid),
        total_usd=total,
        total_formatted=format_cost(total),
        by_actor=by_actor,
    )
