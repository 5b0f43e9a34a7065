"""
Actor scheduler entry-point.

Thin shell: main() -> run_scheduler() -> Scheduler.run_forever().
Actor logic lives in ``deckcheck.worker.{extractor, critic}``.
DB access is via ``deckcheck.worker.db``.  Configuration via ``deckcheck.worker.config``.
"""
import argparse
import asyncio
import logging
import os
import signal
import sys
import threading

from sqlalchemy import text

from deckcheck.config import ENV, validate_env
from deckcheck.database import engine
from deckcheck.models import InsightType
from deckcheck.worker.config import load_worker_config, WorkerConfig
from deckcheck.worker.critic import critique_pages, make_critic_job
from deckcheck.worker.extractor import extract_pdf_pages
from deckcheck.worker.scheduler import Scheduler

logger = logging.getLogger(__name__)

EXTRACT_JOB_NAME = "Extract PDF Pages"

DB_READY_MAX_ATTEMPTS = 60
DB_READY_DELAY_SECONDS = 2.0


def critic_job_name(insight_type: str) -> str:
    return f"Critique {insight_type.capitalize()} Statements"


def build_scheduler(worker_cfg: WorkerConfig) -> Scheduler:
    """Register the extractor and one critic per configured critique type."""
    scheduler = Scheduler()
    scheduler.schedule(EXTRACT_JOB_NAME, worker_cfg.extractor_interval_seconds, extract_pdf_pages)
    for insight_type in worker_cfg.critique_types:
        scheduler.schedule(
            critic_job_name(insight_type),
            worker_cfg.critic_interval_seconds,
            make_critic_job(insight_type, worker_cfg),
        )
    return scheduler


async def run_scheduler(worker_cfg: WorkerConfig | None = None, *, wait_for_db: bool = False) -> None:
    worker_cfg = worker_cfg or load_worker_config()
    logger.info("DeckCheck actor scheduler starting (env=%s)...", ENV)
    validate_env()
    if wait_for_db and not await wait_for_database():
        raise RuntimeError("Database is not reachable")
    scheduler = build_scheduler(worker_cfg)
    await scheduler.run_forever()


async def wait_for_database(
    max_attempts: int = DB_READY_MAX_ATTEMPTS,
    delay_seconds: float = DB_READY_DELAY_SECONDS,
) -> bool:
    """Poll the database until it accepts connections. Returns False after max_attempts."""
    logger.info("Waiting for database...")
    for attempt in range(1, max_attempts + 1):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("Database is ready")
            return True
        except Exception as e:
            logger.debug("Database not ready (attempt %s): %s", attempt, e)
        if attempt % 10 == 0:
            logger.info("Still waiting for database... (%s/%s)", attempt, max_attempts)
        if attempt < max_attempts:
            await asyncio.sleep(delay_seconds)
    logger.error("Database failed to become ready after %s attempts", max_attempts)
    return False


async def run_once(job: str, insight_type: str, worker_cfg: WorkerConfig) -> dict | None:
    """Run a single actor invocation now (manual / cron-less use)."""
    if job == "extract":
        return await extract_pdf_pages()
    return await critique_pages(insight_type, worker_cfg=worker_cfg)


def _handle_shutdown(signum, frame):
    # In-flight jobs are not awaited and to_thread workers are not joined.
    logger.info("Shutting down scheduler (signal %s)...", signum)
    logging.shutdown()
    os._exit(0)


def install_signal_handlers() -> None:
    if threading.current_thread() is not threading.main_thread():
        return
    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)


def configure_logging(worker_cfg: WorkerConfig) -> None:
    logging.basicConfig(level=worker_cfg.log_level.upper(), format=worker_cfg.log_format)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the scheduler process."""
    parser = argparse.ArgumentParser(description="DeckCheck actor scheduler")
    parser.add_argument("--once", choices=["extract", "critique"], help="Run one actor invocation and exit")
    parser.add_argument("--type", default=InsightType.PROBLEM, choices=InsightType.ALL,
                        help="Critique type for --once critique (default: problem)")
    parser.add_argument("--wait-for-db", action="store_true",
                        help="Poll the database until it is reachable before scheduling")
    args = parser.parse_args(argv)

    worker_cfg = load_worker_config()
    configure_logging(worker_cfg)

    try:
        if args.once:
            record = asyncio.run(run_once(args.once, args.type, worker_cfg))
            status = record["status"] if record else "unknown"
            logger.info("Run finished: %s", status)
            return
        install_signal_handlers()
        asyncio.run(run_scheduler(worker_cfg, wait_for_db=args.wait_for_db))
    except KeyboardInterrupt:
        logger.info("Scheduler shutting down...")
    except Exception as e:
        logger.error("Fatal error in scheduler: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
