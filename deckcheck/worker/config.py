"""
Actor worker configuration.

Single source of truth for scheduler intervals, work-finder limits, the critique
type manifest, and AI defaults. Loaded once at startup.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from deckcheck.config import OPENAI_MODEL
from deckcheck.models import InsightType

logger = logging.getLogger(__name__)

DEFAULT_CRITIQUE_TYPES: tuple[str, ...] = (InsightType.PROBLEM,)


@dataclass(frozen=True)
class WorkerConfig:
    """Immutable worker configuration loaded once at startup."""

    # --- Scheduling (seconds between ticks, aligned to wall clock) ---
    extractor_interval_seconds: float = 30.0
    critic_interval_seconds: float = 20.0

    # --- Work finder ---
    critic_deck_scan_limit: int = 10

    # --- Critique manifest: one critic job per type; deck completion expects
    #     page_count * len(critique_types) insights ---
    critique_types: tuple[str, ...] = DEFAULT_CRITIQUE_TYPES

    # --- AI defaults ---
    ai_model: str = "gpt-4o-mini"
    ai_temperature: float = 0.3

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - [SCHEDULER] - %(levelname)s - %(message)s"


def _parse_critique_types(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_CRITIQUE_TYPES
    types: list[str] = []
    for part in raw.split(","):
        t = part.strip().lower()
        if not t:
            continue
        if t not in InsightType.ALL:
            logger.warning("Ignoring unknown critique type %r in CRITIQUE_TYPES", t)
            continue
        if t not in types:
            types.append(t)
    return tuple(types) or DEFAULT_CRITIQUE_TYPES


def load_worker_config() -> WorkerConfig:
    """Build WorkerConfig from environment variables (with defaults)."""
    def _float(key: str, default: float) -> float:
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            return float(raw)
        except (TypeError, ValueError):
            return default

    def _int(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except (TypeError, ValueError):
            return default

    return WorkerConfig(
        extractor_interval_seconds=_float("EXTRACTOR_INTERVAL", 30.0),
        critic_interval_seconds=_float("CRITIC_INTERVAL", 20.0),
        critic_deck_scan_limit=max(1, _int("CRITIC_DECK_SCAN_LIMIT", 10)),
        critique_types=_parse_critique_types(os.getenv("CRITIQUE_TYPES")),
        ai_model=os.getenv("AI_MODEL") or OPENAI_MODEL,
        ai_temperature=_float("AI_TEMPERATURE", 0.3),
        log_level=os.getenv("WORKER_LOG_LEVEL", "INFO"),
        log_format=os.getenv(
            "WORKER_LOG_FORMAT",
            "%(asctime)s - [SCHEDULER] - %(levelname)s - %(message)s",
        ),
    )
