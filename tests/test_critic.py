"""Tests for the critic actor (deckcheck.worker.critic)."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from deckcheck.models import AICost
from deckcheck.services.llm_gateway import AIResponse, AIUsage
from deckcheck.worker.config import WorkerConfig
from deckcheck.worker.critic import (
    check_if_deck_complete,
    critique_action,
    critique_pages,
    make_critic_job,
)
from deckcheck.worker.session_log import SessionLogger

CFG = WorkerConfig(ai_model="gpt-4o-mini", ai_temperature=0.3, critic_deck_scan_limit=5)


def _deck(page_count=2):
    return SimpleNamespace(id=uuid4(), file_name="acme-seed.pdf", page_count=page_count)


def _page(page_number=1):
    return SimpleNamespace(
        page_number=page_number,
        text="Small businesses wait 60 days to get paid.",
        word_count=8,
    )


def _ai_response(rating=7, cost_usd=0.00018):
    return AIResponse(
        result={"rating": rating, "feedback": "Quantify the pain.", "reasoning": "Clear but generic."},
        usage=AIUsage(prompt_tokens=900, completion_tokens=80, total_tokens=980, cost_usd=cost_usd),
    )


@pytest.fixture
def handler():
    """Patch critic persistence on deckcheck.worker.db."""
    with patch.multiple(
        "deckcheck.worker.db",
        find_page_to_critique=AsyncMock(return_value=None),
        insert_insight_if_absent=AsyncMock(return_value=True),
        count_insights=AsyncMock(return_value=0),
        mark_deck_complete=AsyncMock(return_value=True),
        mark_deck_error=AsyncMock(),
        safe_rollback=AsyncMock(),
    ):
        import deckcheck.worker.db as db_module
        yield db_module


# ---------------------------------------------------------------------------
# No work
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_no_page_to_critique(mock_db, handler, session_writes):
    with patch("deckcheck.worker.critic.critique_page", new_callable=AsyncMock) as mock_critique:
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    assert record["status"] == "no_items_found"
    assert record["action"] == "critique_problem"
    mock_critique.assert_not_awaited()
    handler.find_page_to_critique.assert_awaited_once_with(mock_db, "problem", deck_limit=5)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_critiques_page_and_saves_insight(mock_db, handler, session_writes):
    deck, page = _deck(page_count=2), _page(1)
    handler.find_page_to_critique.return_value = (deck, page)
    handler.count_insights.return_value = 1

    with patch("deckcheck.worker.critic.critique_page", new=AsyncMock(return_value=_ai_response(7))) as mock_critique:
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    prompt = mock_critique.call_args.args[1]
    assert 'slide 1 of 2 from "acme-seed.pdf"' in prompt
    assert page.text in prompt
    kwargs = mock_critique.call_args.kwargs
    assert kwargs["deck_id"] == deck.id
    assert kwargs["page_number"] == 1
    assert kwargs["actor_name"] == "Critic"
    assert kwargs["action"] == "critique_problem"
    assert kwargs["model"] == "gpt-4o-mini"

    handler.insert_insight_if_absent.assert_awaited_once_with(
        mock_db,
        deck_id=deck.id,
        page_number=1,
        insight_type="problem",
        rating=7,
        feedback="Quantify the pain.",
        reasoning="Clear but generic.",
        actor_name="Critic",
    )
    mock_db.commit.assert_awaited()
    handler.mark_deck_complete.assert_not_awaited()

    assert record["status"] == "completed"
    assert record["deck_id"] == str(deck.id)
    assert record["metadata"] == {
        "page_number": 1,
        "rating": 7,
        "cost_usd": 0.00018,
        "duplicate": False,
    }


@pytest.mark.asyncio
async def test_cost_row_tagged_with_deck_and_page(mock_db, handler, session_writes):
    deck, page = _deck(page_count=3), _page(2)
    handler.find_page_to_critique.return_value = (deck, page)
    handler.count_insights.return_value = 1
    reply = AIResponse(
        result={"rating": 6, "feedback": "f", "reasoning": "r"},
        usage=AIUsage(prompt_tokens=1000, completion_tokens=100, total_tokens=1100),
    )

    with patch("deckcheck.services.critique.llm_gateway.complete", new=AsyncMock(return_value=reply)):
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    costs = [c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], AICost)]
    assert len(costs) == 1
    cost = costs[0]
    assert cost.deck_id == deck.id
    assert cost.page_number == 2
    assert cost.actor_name == "Critic"
    assert cost.action == "critique_problem"
    assert cost.model == "gpt-4o-mini"
    assert record["metadata"]["cost_usd"] == pytest.approx(cost.cost_usd)


@pytest.mark.asyncio
async def test_last_page_completes_deck(mock_db, handler, session_writes):
    deck = _deck(page_count=2)
    handler.find_page_to_critique.return_value = (deck, _page(2))
    handler.count_insights.return_value = 2

    with patch("deckcheck.worker.critic.critique_page", new=AsyncMock(return_value=_ai_response())):
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    handler.count_insights.assert_awaited_once_with(mock_db, deck.id, ("problem",))
    handler.mark_deck_complete.assert_awaited_once_with(mock_db, deck.id)
    assert record["status"] == "completed"
    assert any(e["message"] == "Deck analysis complete" for e in record["logs"])


@pytest.mark.asyncio
async def test_duplicate_insight_is_not_an_error(mock_db, handler, session_writes):
    handler.find_page_to_critique.return_value = (_deck(), _page(1))
    handler.insert_insight_if_absent.return_value = False
    handler.count_insights.return_value = 1

    with patch("deckcheck.worker.critic.critique_page", new=AsyncMock(return_value=_ai_response())):
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    assert record["status"] == "completed"
    assert record["metadata"]["duplicate"] is True
    assert record["errors"] == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_ai_failure_fails_session_only(mock_db, handler, session_writes):
    handler.find_page_to_critique.return_value = (_deck(), _page(1))

    with patch("deckcheck.worker.critic.critique_page", new=AsyncMock(side_effect=RuntimeError("rate limited"))):
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    assert record["status"] == "failed"
    assert record["errors"] == ["Critique failed: rate limited"]
    handler.safe_rollback.assert_awaited_once_with(mock_db)
    handler.insert_insight_if_absent.assert_not_awaited()
    # the deck stays analyzing; the page is retried on a later tick
    handler.mark_deck_error.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_rating_fails_session(mock_db, handler, session_writes):
    handler.find_page_to_critique.return_value = (_deck(), _page(1))
    reply = AIResponse(
        result={"feedback": "no rating"},
        usage=AIUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
    )
    with patch("deckcheck.services.critique.llm_gateway.complete", new=AsyncMock(return_value=reply)):
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    assert record["status"] == "failed"
    handler.insert_insight_if_absent.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_insight_write_keeps_committed_cost(mock_db, handler, session_writes):
    handler.find_page_to_critique.return_value = (_deck(), _page(1))
    handler.insert_insight_if_absent.side_effect = RuntimeError("connection reset")
    calls = []
    mock_db.add.side_effect = lambda row: calls.append(("add", type(row).__name__))
    mock_db.commit.side_effect = lambda: calls.append("commit")
    handler.safe_rollback.side_effect = lambda db: calls.append("rollback")

    with patch("deckcheck.services.critique.llm_gateway.complete", new=AsyncMock(return_value=_ai_response())):
        record = await critique_pages("problem", mock_db, worker_cfg=CFG)

    assert record["status"] == "failed"
    assert record["errors"] == ["Critique failed: connection reset"]
    assert calls == [("add", "AICost"), "commit", "rollback"]


# ---------------------------------------------------------------------------
# Completion check
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_completion_expects_every_configured_type(mock_db, handler):
    session = SessionLogger(mock_db)
    session.start_session("critique_problem")
    handler.count_insights.return_value = 2

    moved = await check_if_deck_complete(mock_db, session, uuid4(), 2, ("problem", "solution"))

    assert moved is False
    handler.mark_deck_complete.assert_not_awaited()


@pytest.mark.asyncio
async def test_completion_lost_race_is_quiet(mock_db, handler):
    session = SessionLogger(mock_db)
    session.start_session("critique_problem")
    handler.count_insights.return_value = 4
    handler.mark_deck_complete.return_value = False

    moved = await check_if_deck_complete(mock_db, session, uuid4(), 2, ("problem", "solution"))

    assert moved is False
    assert session.entries == []


# ---------------------------------------------------------------------------
# Scheduler jobs
# ---------------------------------------------------------------------------

def test_critique_action_names():
    assert critique_action("problem") == "critique_problem"
    assert critique_action("market") == "critique_market"


@pytest.mark.asyncio
async def test_make_critic_job_runs_configured_type():
    with patch("deckcheck.worker.critic.critique_pages", new_callable=AsyncMock) as mock_run:
        job = make_critic_job("market", CFG)
        await job()
    mock_run.assert_awaited_once_with("market", worker_cfg=CFG)
    assert job.__name__ == "critique_market_job"
