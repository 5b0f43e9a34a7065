"""
Per-invocation session logger.

Each actor run builds its own ``SessionLogger`` and passes it along, so two
actors running at the same time never share a buffer. Log lines and errors are
kept in memory and written as one ``automation_logs`` row when the session
ends. Every entry is also echoed to the module logger for live observability.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from deckcheck.models import SessionStatus
from deckcheck.worker import db as db_handler

logger = logging.getLogger(__name__)


def _utc_now_naive() -> datetime:
    """Naive UTC datetime for DB (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _json_safe(data: dict[str, Any]) -> dict[str, Any]:
    """Coerce UUIDs, datetimes etc. to strings so the entry fits a JSONB column."""
    try:
        return json.loads(json.dumps(data, default=str))
    except (TypeError, ValueError):
        return {"repr": repr(data)}


class SessionLogger:
    """Buffered log for one actor invocation."""

    def __init__(self, db: AsyncSession | None):
        self._db = db
        self._session: dict[str, Any] | None = None
        self._logs: list[dict[str, Any]] = []
        self._deck_context: dict[str, Any] = {}

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def status(self) -> str | None:
        return self._session["status"] if self._session else None

    @property
    def errors(self) -> list[str]:
        return list(self._session["errors"]) if self._session else []

    @property
    def entries(self) -> list[dict[str, Any]]:
        return list(self._logs)

    def start_session(self, action: str, deck_id: str | None = None) -> None:
        """Begin a session; an unflushed previous session is discarded."""
        self._session = {
            "action": action,
            "deck_id": deck_id,
            "status": SessionStatus.COMPLETED,
            "started_at": _utc_now_naive(),
            "completed_at": None,
            "logs": [],
            "errors": [],
            "metadata": {},
        }
        self._logs = []
        self._deck_context = {"deck_id": deck_id} if deck_id else {}
        logger.info("Starting session: %s", action)

    def set_deck_context(self, deck_id: Any, file_name: str | None = None) -> None:
        self._deck_context = {"deck_id": str(deck_id), "file_name": file_name}
        if self._session is not None:
            self._session["deck_id"] = str(deck_id)
        logger.info("Deck context: %s", file_name or deck_id)

    def get_deck_context(self) -> dict[str, Any]:
        return dict(self._deck_context)

    def add(self, message: str, data: dict[str, Any] | None = None) -> None:
        entry: dict[str, Any] = {
            "timestamp": _utc_now_naive().isoformat(),
            "message": message,
        }
        if data is not None:
            entry["data"] = _json_safe(data)
        self._logs.append(entry)
        if data:
            logger.info("   %s %s", message, entry["data"])
        else:
            logger.info("   %s", message)

    def error(self, message: str, error: Any = None) -> None:
        """Record an error and force the session to ``failed``. Never raises."""
        error_message = str(error)
        if self._session is None:
            logger.error("%s: %s", message, error_message)
            return
        self._session["errors"].append(f"{message}: {error_message}")
        self._session["status"] = SessionStatus.FAILED
        logger.error("%s: %s", message, error_message)

    async def end_session(
        self,
        status: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Write the session as one automation_logs row and clear state.

        An explicit *status* overrides whatever the session holds; otherwise a
        ``failed`` forced by :meth:`error` is kept. A failed write is logged and
        rolled back, never raised. Returns the session record, or None when no
        session was active.
        """
        if self._session is None:
            logger.warning("No active session to end")
            return None

        session = self._session
        if status:
            session["status"] = status
        if metadata:
            session["metadata"] = {**session["metadata"], **_json_safe(metadata)}
        session["completed_at"] = _utc_now_naive()
        session["logs"] = self._logs

        try:
            if self._db is None:
                raise RuntimeError("SessionLogger has no database session")
            await db_handler.write_automation_log(self._db, session)
            duration_ms = (session["completed_at"] - session["started_at"]).total_seconds() * 1000
            logger.info("Session ended: %s (%.0fms)", session["status"], duration_ms)
        except Exception as e:
            logger.error("Failed to write automation log: %s", e, exc_info=True)
            if self._db is not None:
                await db_handler.safe_rollback(self._db)
        finally:
            self._session = None
            self._logs = []
            self._deck_context = {}

        return session
