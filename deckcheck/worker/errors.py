"""
Actor error helpers.

Centralises the "rollback -> record on session -> mark deck failed" pattern so
every actor reports failures the same way, and the reporting itself never
raises past the actor boundary.
"""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.worker import db as db_handler
from deckcheck.worker.session_log import SessionLogger

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000


def error_message(error: Any) -> str:
    return str(error)[:MAX_ERROR_MESSAGE_LENGTH]


async def record_deck_error(db: AsyncSession, deck_id: Any, error: Any) -> bool:
    """Mark *deck_id* as ``error`` with the error's message. Never raises.

    Returns True if the deck row was updated.
    """
    try:
        await db_handler.mark_deck_error(db, UUID(str(deck_id)), error_message(error))
        logger.info("[errors] Deck %s marked as error", deck_id)
        return True
    except Exception as exc:
        logger.error("[errors] Failed to mark deck %s as error: %s", deck_id, exc, exc_info=True)
        await db_handler.safe_rollback(db)
        return False


async def record_actor_failure(
    db: AsyncSession,
    session: SessionLogger,
    message: str,
    error: Exception,
) -> None:
    """Roll back the failed unit of work and record *error* on the session."""
    await db_handler.safe_rollback(db)
    session.error(message, error)
