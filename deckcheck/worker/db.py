"""
Actor worker database handler.

All actor persistence goes through this module: work finding, conditional
claims, page and insight writes, deck status transitions, automation logs,
commits and rollbacks.

The extractor and critic never call ``db.add()`` or build statements directly.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.models import (
    AutomationLog,
    Deck,
    DeckPage,
    DeckStatus,
    Insight,
    PageStatus,
    insight_key,
)
from deckcheck.services.extract_text import count_words

logger = logging.getLogger(__name__)


def _utc_now_naive() -> datetime:
    """Naive UTC datetime for DB (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Extractor: work finder + claim
# ---------------------------------------------------------------------------

async def find_deck_to_extract(db: AsyncSession) -> Deck | None:
    """Oldest deck (by uploaded_at) still in ``uploaded``."""
    result = await db.execute(
        select(Deck)
        .where(Deck.status == DeckStatus.UPLOADED)
        .order_by(Deck.uploaded_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def claim_deck(
    db: AsyncSession,
    deck_id: UUID,
    *,
    expected: str,
    new: str,
) -> bool:
    """Move *deck_id* from *expected* to *new* status, only if it is still *expected*.

    Commits immediately so the claim is visible to other workers.
    Returns False when another worker moved the deck first.
    """
    result = await db.execute(
        update(Deck)
        .where(Deck.id == deck_id, Deck.status == expected)
        .values(status=new)
    )
    await db.commit()
    claimed = result.rowcount == 1
    if not claimed:
        logger.info("[db] claim %s -> %s lost for deck %s", expected, new, deck_id)
    return claimed


# ---------------------------------------------------------------------------
# Extractor: pages + deck transitions
# ---------------------------------------------------------------------------

async def create_pages(db: AsyncSession, deck_id: UUID, pages: list[str]) -> list[DeckPage]:
    """Stage one DeckPage per text, numbered from 1, in a single flush. Caller commits."""
    now = _utc_now_naive()
    rows = [
        DeckPage(
            deck_id=deck_id,
            page_number=index + 1,
            text=page_text,
            extracted_at=now,
            word_count=count_words(page_text),
            status=PageStatus.EXTRACTED,
        )
        for index, page_text in enumerate(pages)
    ]
    db.add_all(rows)
    await db.flush()
    return rows


async def mark_deck_analyzing(db: AsyncSession, deck_id: UUID, page_count: int) -> None:
    """Deck -> analyzing with its page count and processed_at. Caller commits."""
    await db.execute(
        update(Deck)
        .where(Deck.id == deck_id)
        .values(
            status=DeckStatus.ANALYZING,
            page_count=page_count,
            processed_at=_utc_now_naive(),
        )
    )


async def mark_deck_error(db: AsyncSession, deck_id: UUID, message: str) -> None:
    """Deck -> error with *message*, committed."""
    await db.execute(
        update(Deck)
        .where(Deck.id == deck_id)
        .values(status=DeckStatus.ERROR, error_message=message)
    )
    await db.commit()


# ---------------------------------------------------------------------------
# Critic: work finder
# ---------------------------------------------------------------------------

async def find_page_to_critique(
    db: AsyncSession,
    insight_type: str,
    *,
    deck_limit: int = 10,
) -> tuple[Deck, DeckPage] | None:
    """First page lacking an *insight_type* insight.

    Scans up to *deck_limit* ``analyzing`` decks oldest-first by processed_at,
    and within each deck pages in page_number order.
    """
    decks_result = await db.execute(
        select(Deck)
        .where(Deck.status == DeckStatus.ANALYZING)
        .order_by(Deck.processed_at.asc())
        .limit(deck_limit)
    )
    decks = decks_result.scalars().all()

    for deck in decks:
        pages_result = await db.execute(
            select(DeckPage)
            .where(DeckPage.deck_id == deck.id)
            .order_by(DeckPage.page_number.asc())
        )
        pages = pages_result.scalars().all()
        if not pages:
            continue

        done_result = await db.execute(
            select(Insight.page_number).where(
                Insight.deck_id == deck.id,
                Insight.type == insight_type,
            )
        )
        critiqued = set(done_result.scalars().all())

        for page in pages:
            if page.page_number not in critiqued:
                return deck, page
    return None


# ---------------------------------------------------------------------------
# Critic: insights + completion
# ---------------------------------------------------------------------------

async def insert_insight_if_absent(
    db: AsyncSession,
    *,
    deck_id: UUID,
    page_number: int,
    insight_type: str,
    rating: int,
    feedback: str,
    reasoning: str,
    actor_name: str,
) -> bool:
    """Insert the (deck, page, type) insight unless it already exists. Caller commits.

    Uniqueness is enforced by the composite primary key, so two critics racing
    on the same page cannot both insert. Returns True if this call inserted.
    """
    stmt = (
        pg_insert(Insight)
        .values(
            id=insight_key(deck_id, page_number, insight_type),
            deck_id=deck_id,
            type=insight_type,
            page_number=page_number,
            rating=rating,
            feedback=feedback,
            reasoning=reasoning,
            actor_name=actor_name,
            generated_at=_utc_now_naive(),
        )
        .on_conflict_do_nothing(index_elements=[Insight.id])
        .returning(Insight.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None


async def count_insights(db: AsyncSession, deck_id: UUID, insight_types: Iterable[str]) -> int:
    """Number of insights under *deck_id* whose type is in *insight_types*."""
    result = await db.execute(
        select(func.count())
        .select_from(Insight)
        .where(Insight.deck_id == deck_id, Insight.type.in_(list(insight_types)))
    )
    return int(result.scalar_one() or 0)


async def mark_deck_complete(db: AsyncSession, deck_id: UUID) -> bool:
    """analyzing -> complete (conditional). Caller commits. Returns True if moved."""
    result = await db.execute(
        update(Deck)
        .where(Deck.id == deck_id, Deck.status == DeckStatus.ANALYZING)
        .values(status=DeckStatus.COMPLETE)
    )
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Automation logs
# ---------------------------------------------------------------------------

async def write_automation_log(db: AsyncSession, record: dict[str, Any]) -> None:
    """Append one automation_logs row and commit. Raises on failure."""
    deck_id = record.get("deck_id")
    row = AutomationLog(
        action=record["action"],
        deck_id=UUID(str(deck_id)) if deck_id else None,
        status=record["status"],
        started_at=record["started_at"],
        completed_at=record.get("completed_at"),
        logs=record.get("logs") or [],
        errors=record.get("errors") or [],
        metadata_=record.get("metadata") or {},
    )
    db.add(row)
    await db.commit()


# ---------------------------------------------------------------------------
# Rollback helper
# ---------------------------------------------------------------------------

async def safe_rollback(db: AsyncSession) -> None:
    """Rollback; never raises."""
    try:
        await db.rollback()
    except Exception as exc:
        logger.error("[db] rollback failed: %s", exc, exc_info=True)
