"""Persist one agent run record per request, off the response path."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Set

from lib.config import AGENT_RUNS_TABLE
from lib.models import AgentRunRecord
from lib.supabase_client import get_supabase
from utils.errors import RunLogError

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AgentRunLogger:
    """
    Fire-and-forget writer for ``agent_runs`` rows.

    ``schedule()`` returns immediately; the insert runs on a background task
    that is kept referenced until it finishes. ``drain()`` waits for every
    in-flight write and is awaited on shutdown. A failed write is logged and
    never reaches the caller.
    """

    def __init__(self, db: Any = None, table: str = AGENT_RUNS_TABLE) -> None:
        self._db = db
        self.table = table
        self._tasks: Set["asyncio.Task[None]"] = set()

    async def _client(self) -> Any:
        if self._db is None:
            self._db = await get_supabase()
        return self._db

    async def _insert(self, record: AgentRunRecord) -> None:
        client = await self._client()
        response = await client.table(self.table).insert(record.to_row()).execute()
        error = getattr(response, "error", None)
        if error:
            raise RunLogError(f"Insert into {self.table} failed: {error}")

    async def log(self, record: AgentRunRecord) -> None:
        try:
            await self._insert(record)
            logger.info(
                "Logged agent run: status=%s model=%s tokens=%s",
                record.status,
                record.model,
                record.total_tokens,
            )
        except Exception as exc:  # surfaced in logs only
            logger.warning("Agent run logging failed: %s: %s", type(exc).__name__, exc)

    def schedule(self, record: AgentRunRecord) -> "asyncio.Task[None]":
        task = asyncio.get_running_loop().create_task(self.log(record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight writes (all of them, or until ``timeout``)."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("%d agent run writes still pending at shutdown", len(pending))
