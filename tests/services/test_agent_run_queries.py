"""Tests for the agent run log read side."""

import pytest

from services.agent_runs.queries import RunFilters, get_run, list_runs, run_stats, summarize_runs, update_run
from tests.fakes import FakeSupabase
from utils.errors import ValidationError


def _runs():
    return [
        {
            "id": i,
            "agent_type": "sales_coach",
            "model": "openai/gpt-4o" if i % 2 else "anthropic/claude-3.5-haiku",
            "prompt_tokens": 100,
            "completion_tokens": 20,
            "total_cost": 0.00045,
            "duration_ms": 1000 * i,
            "status": "error" if i == 5 else "completed",
            "is_best": i == 1,
            "context_type": "call",
            "created_at": f"2025-03-{i:02d}T12:00:00Z",
        }
        for i in range(1, 6)
    ]


@pytest.fixture
def runs_db() -> FakeSupabase:
    return FakeSupabase({"agent_runs": _runs()})


async def test_list_runs_paginates_newest_first(runs_db: FakeSupabase) -> None:
    result = await list_runs(runs_db, RunFilters(), page=1, page_size=2)

    assert [r["id"] for r in result["runs"]] == [5, 4]
    assert result["pagination"] == {"page": 1, "pageSize": 2, "totalCount": 5, "totalPages": 3, "hasMore": True}

    last = await list_runs(runs_db, RunFilters(), page=3, page_size=2)
    assert [r["id"] for r in last["runs"]] == [1]
    assert last["pagination"]["hasMore"] is False


async def test_list_runs_filters(runs_db: FakeSupabase) -> None:
    result = await list_runs(runs_db, RunFilters(status="error"))
    assert [r["id"] for r in result["runs"]] == [5]

    result = await list_runs(runs_db, RunFilters(start_date="2025-03-02", end_date="2025-03-04T23:59:59Z"))
    assert [r["id"] for r in result["runs"]] == [4, 3, 2]

    result = await list_runs(runs_db, RunFilters.model_validate({"is_best": "true", "unknown": "x"}))
    assert [r["id"] for r in result["runs"]] == [1]


async def test_page_size_is_capped(runs_db: FakeSupabase) -> None:
    result = await list_runs(runs_db, RunFilters(), page=1, page_size=1000)
    assert result["pagination"]["pageSize"] == 100


async def test_get_run(runs_db: FakeSupabase) -> None:
    assert (await get_run(runs_db, "3"))["id"] == 3
    assert await get_run(runs_db, "99") is None


async def test_update_run_only_toggles_is_best(runs_db: FakeSupabase) -> None:
    updated = await update_run(runs_db, "2", {"is_best": True})
    assert updated["is_best"] is True
    assert await update_run(runs_db, "99", {"is_best": True}) is None

    with pytest.raises(ValidationError):
        await update_run(runs_db, "2", {"output": "rewritten"})
    with pytest.raises(ValidationError):
        await update_run(runs_db, "2", {"is_best": "yes"})
    with pytest.raises(ValidationError):
        await update_run(runs_db, "2", {})


def test_summarize_runs() -> None:
    stats = summarize_runs(_runs())
    summary = stats["summary"]

    assert summary["totalRuns"] == 5
    assert summary["totalTokens"] == 600
    assert summary["totalCost"] == pytest.approx(0.0023, abs=1e-4)
    assert summary["avgDurationMs"] == 3000
    assert summary["errorCount"] == 1
    assert summary["errorRate"] == 20.0
    assert summary["bestCount"] == 1
    assert {b["model"]: b["count"] for b in stats["byModel"]} == {
        "openai/gpt-4o": 3,
        "anthropic/claude-3.5-haiku": 2,
    }
    assert stats["byAgentType"][0]["agentType"] == "sales_coach"
    assert [b["date"] for b in stats["byDate"]][:2] == ["2025-03-05", "2025-03-04"]


def test_summarize_no_runs() -> None:
    summary = summarize_runs([])["summary"]
    assert summary["totalRuns"] == 0
    assert summary["errorRate"] == 0.0


async def test_run_stats_applies_date_filters(runs_db: FakeSupabase) -> None:
    stats = await run_stats(runs_db, start_date="2025-03-04")
    assert stats["summary"]["totalRuns"] == 2
