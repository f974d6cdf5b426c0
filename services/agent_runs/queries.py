"""Read side of the agent run log, plus the reviewer's "is best" toggle."""
from __future__ import annotations

import math
from collections import defaultdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from lib.config import AGENT_RUNS_TABLE
from lib.supabase_client import fetch_first, fetch_rows
from services.agent.decoders import as_float, format_date
from utils.errors import ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MUTABLE_FIELDS = {"is_best"}


class RunFilters(BaseModel):
    """Query-string filters accepted by the run list."""

    model_config = ConfigDict(extra="ignore")

    agent_type: Optional[str] = None
    model: Optional[str] = None
    user_id: Optional[str] = None
    transcript_id: Optional[str] = None
    company_id: Optional[str] = None
    context_type: Optional[str] = None
    status: Optional[str] = None
    is_best: Optional[bool] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


def _apply_filters(query: Any, filters: RunFilters) -> Any:
    for column in ("agent_type", "model", "user_id", "transcript_id", "company_id", "context_type", "status"):
        value = getattr(filters, column)
        if value:
            query = query.eq(column, value)
    if filters.is_best is not None:
        query = query.eq("is_best", filters.is_best)
    if filters.start_date:
        query = query.gte("created_at", filters.start_date)
    if filters.end_date:
        query = query.lte("created_at", filters.end_date)
    return query


async def list_runs(
    db: Any,
    filters: RunFilters,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    table: str = AGENT_RUNS_TABLE,
) -> Dict[str, Any]:
    """Newest-first page of runs with pagination metadata."""
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    offset = (page - 1) * page_size

    query = _apply_filters(db.table(table).select("*", count="exact"), filters)
    response = await query.order("created_at", desc=True).range(offset, offset + page_size - 1).execute()
    runs = response.data or []
    total = response.count or 0
    return {
        "runs": runs,
        "pagination": {
            "page": page,
            "pageSize": page_size,
            "totalCount": total,
            "totalPages": math.ceil(total / page_size) if total else 0,
            "hasMore": offset + page_size < total,
        },
    }


async def get_run(db: Any, run_id: str, table: str = AGENT_RUNS_TABLE) -> Optional[Dict[str, Any]]:
    return await fetch_first(db.table(table).select("*").eq("id", run_id))


async def update_run(
    db: Any,
    run_id: str,
    changes: Dict[str, Any],
    table: str = AGENT_RUNS_TABLE,
) -> Optional[Dict[str, Any]]:
    """
    Apply a reviewer edit. Runs are otherwise immutable: only ``is_best``
    may change.

    Raises:
        ValidationError: a field other than ``is_best`` was supplied, or
            ``is_best`` is not a boolean.
    """
    unknown = sorted(set(changes) - MUTABLE_FIELDS)
    if unknown or not changes:
        raise ValidationError(f"Only is_best can be updated (got: {', '.join(unknown) or 'nothing'})")
    if not isinstance(changes["is_best"], bool):
        raise ValidationError("is_best must be a boolean")
    rows = await fetch_rows(db.table(table).update({"is_best": changes["is_best"]}).eq("id", run_id))
    return rows[0] if rows else None


def _bucket() -> Dict[str, Any]:
    return {"count": 0, "tokens": 0, "cost": 0.0}


def _add(bucket: Dict[str, Any], run: Dict[str, Any]) -> None:
    bucket["count"] += 1
    bucket["tokens"] += int(run.get("prompt_tokens") or 0) + int(run.get("completion_tokens") or 0)
    bucket["cost"] += as_float(run.get("total_cost")) or 0.0


def summarize_runs(runs: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals plus per-model, per-agent-type and per-day breakdowns."""
    total_runs = len(runs)
    prompt_tokens = sum(int(r.get("prompt_tokens") or 0) for r in runs)
    completion_tokens = sum(int(r.get("completion_tokens") or 0) for r in runs)
    total_cost = sum(as_float(r.get("total_cost")) or 0.0 for r in runs)
    avg_duration = sum(int(r.get("duration_ms") or 0) for r in runs) / total_runs if total_runs else 0
    error_count = sum(1 for r in runs if r.get("status") == "error")

    by_model: Dict[str, Dict[str, Any]] = defaultdict(_bucket)
    by_agent_type: Dict[str, Dict[str, Any]] = defaultdict(_bucket)
    by_date: Dict[str, Dict[str, Any]] = defaultdict(_bucket)
    for run in runs:
        _add(by_model[str(run.get("model"))], run)
        _add(by_agent_type[str(run.get("agent_type"))], run)
        day = format_date(run.get("created_at"))
        if day:
            _add(by_date[day], run)

    def rounded(bucket: Dict[str, Any]) -> Dict[str, Any]:
        return {**bucket, "cost": round(bucket["cost"], 4)}

    return {
        "summary": {
            "totalRuns": total_runs,
            "totalPromptTokens": prompt_tokens,
            "totalCompletionTokens": completion_tokens,
            "totalTokens": prompt_tokens + completion_tokens,
            "totalCost": round(total_cost, 4),
            "avgDurationMs": round(avg_duration),
            "errorCount": error_count,
            "errorRate": round(error_count / total_runs * 100, 2) if total_runs else 0.0,
            "bestCount": sum(1 for r in runs if r.get("is_best")),
        },
        "byModel": [{"model": name, **rounded(b)} for name, b in by_model.items()],
        "byAgentType": [{"agentType": name, **rounded(b)} for name, b in by_agent_type.items()],
        "byDate": [{"date": day, **rounded(b)} for day, b in sorted(by_date.items(), reverse=True)[:30]],
    }


async def run_stats(
    db: Any,
    agent_type: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    table: str = AGENT_RUNS_TABLE,
) -> Dict[str, Any]:
    filters = RunFilters(agent_type=agent_type, start_date=start_date, end_date=end_date)
    query = _apply_filters(
        db.table(table).select("model, agent_type, prompt_tokens, completion_tokens, total_cost, duration_ms, status, is_best, created_at"),
        filters,
    )
    return summarize_runs(await fetch_rows(query))
