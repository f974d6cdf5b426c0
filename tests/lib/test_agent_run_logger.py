"""Tests for background agent run logging."""

import asyncio
import logging

import pytest

from lib.agent_run_logger import AgentRunLogger, utc_now
from lib.models import AgentRunRecord
from tests.fakes import FakeSupabase


def _record(**overrides) -> AgentRunRecord:
    values = dict(
        agent_type="sales_coach",
        prompt_sent="[]",
        system_prompt="You are a coach.",
        user_message="How did it go?",
        output="Well.",
        model="openai/gpt-4o",
        prompt_tokens=100,
        completion_tokens=20,
        total_tokens=120,
        created_at=utc_now(),
    )
    values.update(overrides)
    return AgentRunRecord(**values)


async def test_schedule_inserts_row_in_background() -> None:
    db = FakeSupabase()
    run_logger = AgentRunLogger(db)

    task = run_logger.schedule(_record(transcript_id=42, context_type="call"))
    assert run_logger.pending == 1
    await task

    rows = db.tables["agent_runs"]
    assert len(rows) == 1
    assert rows[0]["transcript_id"] == 42
    assert rows[0]["context_type"] == "call"
    assert rows[0]["status"] == "completed"
    assert rows[0]["is_best"] is False
    assert rows[0]["prompt_tokens"] == 100
    assert "total_tokens" not in rows[0]
    assert run_logger.pending == 0


async def test_failed_insert_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    db = FakeSupabase()
    db.fail_tables.add("agent_runs")
    run_logger = AgentRunLogger(db)

    with caplog.at_level(logging.WARNING, logger="lib.agent_run_logger"):
        await run_logger.log(_record())

    assert "Agent run logging failed" in caplog.text
    assert db.tables.get("agent_runs", []) == []


async def test_drain_waits_for_pending_writes() -> None:
    db = FakeSupabase()
    db.delays["agent_runs"] = 0.05
    run_logger = AgentRunLogger(db)

    run_logger.schedule(_record())
    run_logger.schedule(_record(status="error", error_message="boom"))
    await run_logger.drain(timeout=5)

    assert [row["status"] for row in db.tables["agent_runs"]] == ["completed", "error"]


async def test_drain_without_pending_writes_returns() -> None:
    await asyncio.wait_for(AgentRunLogger(FakeSupabase()).drain(), timeout=1)
