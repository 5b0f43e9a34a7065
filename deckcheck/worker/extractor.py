"""
Extractor actor.

Finds the oldest uploaded deck, claims it, downloads the PDF, splits its text
into pages, stores the pages and advances the deck to ``analyzing``.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.database import AsyncSessionLocal
from deckcheck.models import DeckStatus, SessionStatus
from deckcheck.services import extract_text
from deckcheck.worker import db as db_handler
from deckcheck.worker.errors import record_actor_failure, record_deck_error
from deckcheck.worker.session_log import SessionLogger

logger = logging.getLogger(__name__)

ACTION = "extract_pdf"


async def extract_pdf_pages(db: AsyncSession | None = None) -> dict[str, Any] | None:
    """Process at most one uploaded deck. Returns the automation-log record."""
    if db is None:
        async with AsyncSessionLocal() as session_db:
            return await _run(session_db)
    return await _run(db)


async def _run(db: AsyncSession) -> dict[str, Any] | None:
    session = SessionLogger(db)
    session.start_session(ACTION)

    try:
        deck = await db_handler.find_deck_to_extract(db)
        if deck is None:
            return await session.end_session(SessionStatus.NO_ITEMS_FOUND)

        session.set_deck_context(deck.id, deck.file_name)

        claimed = await db_handler.claim_deck(
            db, deck.id, expected=DeckStatus.UPLOADED, new=DeckStatus.EXTRACTING
        )
        if not claimed:
            session.add("Deck already claimed by another worker", {"deck_id": deck.id})
            return await session.end_session(
                SessionStatus.NO_ITEMS_FOUND, metadata={"claimed_elsewhere": True}
            )

        session.add("Downloading PDF from storage", {
            "storage_path": deck.storage_path,
            "file_size": f"{(deck.file_size or 0) / 1024 / 1024:.2f} MB",
        })
        pdf_bytes = await extract_text.download_blob(deck.storage_path)

        session.add("Extracting text from PDF")
        pages = await extract_text.extract_pages(pdf_bytes)
        if not pages:
            raise ValueError("PDF has no pages")

        session.add("Creating page documents", {"page_count": len(pages)})
        await db_handler.create_pages(db, deck.id, pages)
        await db_handler.mark_deck_analyzing(db, deck.id, len(pages))
        await db.commit()

        session.add("PDF extraction complete", {"page_count": len(pages)})
        return await session.end_session(
            SessionStatus.COMPLETED, metadata={"page_count": len(pages)}
        )

    except Exception as e:
        await record_actor_failure(db, session, "PDF extraction failed", e)
        deck_context = session.get_deck_context()
        if deck_context.get("deck_id"):
            await record_deck_error(db, deck_context["deck_id"], e)
        return await session.end_session(SessionStatus.FAILED)
