"""Entry point for the sales coach agent: resolve, load, format, stream, log."""
from __future__ import annotations

import asyncio
import json
import time
import uuid
from typing import Any, AsyncIterator, Callable, Coroutine, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from lib.agent_run_logger import AgentRunLogger, utc_now
from lib.config import AGENT_DEFAULT_MODEL, AGENT_MAX_DURATION_SECONDS, AGENT_TYPE
from lib.llm_client import ModelClient, compute_cost, resolve_model_id
from lib.messages import latest_user_text, serialize_prompt, to_chat_messages, to_provider_messages
from lib.models import AgentRequest, AgentRunRecord, ContextRequest, PageType, PromptMode
from lib.usage_meter import UsageMeter
from lib.validation import validate_user_message
from lib.workspace_search import WorkspaceSearch
from services.agent.context_loader import ContextLoader
from services.agent.decoders import parse_id
from services.agent.dispatcher import resolve_mode
from services.agent.prompt import format_prompt
from services.agent.sources import ContextSources
from utils.errors import AgentTimeoutError
from utils.logging import log_error, log_event, logger

CANCELLED_MESSAGE = "Request cancelled before the response completed"


class PreparedRun(BaseModel):
    """Everything known about a request once its system prompt is built."""

    request_id: str
    mode: PromptMode
    context: ContextRequest
    system_prompt: str
    provider_messages: List[Dict[str, Any]] = Field(default_factory=list)
    user_message: str
    model: str
    started_at: float


class OpenedStream:
    """A model stream whose first event has already been read."""

    def __init__(self, events: AsyncIterator[Dict[str, Any]], first: Optional[Dict[str, Any]]) -> None:
        self.events = events
        self.first = first


def sse(payload: Any) -> str:
    """One Server-Sent Events frame."""
    if isinstance(payload, str):
        return f"data: {payload}\n\n"
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def run_context_type(mode: PromptMode, context: ContextRequest) -> str:
    if mode == PromptMode.LEGACY_CALL:
        return "call"
    if mode == PromptMode.LEGACY_COMPANY:
        return "company"
    if mode == PromptMode.PAGE_SPECIFIC and context.page_type is not None:
        return context.page_type.value
    if mode in (PromptMode.SEMANTIC_WORKSPACE, PromptMode.FALLBACK_WORKSPACE):
        return "workspace"
    return "general"


def run_entity_ids(mode: PromptMode, context: ContextRequest) -> Dict[str, Any]:
    """transcript_id / company_id the run is about, if any."""
    transcript_id = None
    company_id = None
    if mode == PromptMode.LEGACY_CALL:
        transcript_id = context.context_id
    elif mode == PromptMode.LEGACY_COMPANY:
        company_id = context.context_id
    elif mode == PromptMode.PAGE_SPECIFIC and context.page_context is not None:
        if context.page_type == PageType.CALL_DETAIL:
            transcript_id = context.page_context.transcript_id
        elif context.page_type == PageType.COMPANY_DETAIL:
            company_id = context.page_context.company_id
    return {
        "transcript_id": parse_id(transcript_id) if transcript_id else None,
        "company_id": parse_id(company_id) if company_id else None,
    }


class AgentPipeline:
    """
    One agent invocation per request.

    ``prepare()`` runs before any byte is sent (it may raise
    ``ValidationError`` / ``ModeResolutionError``). ``open_stream()`` calls the
    model and reads its first event, still before any byte is sent, so an
    early provider failure can become an HTTP 500. ``stream()`` yields SSE
    frames. Between them exactly one run record reaches the run logger,
    whether the model finished or failed, timed out, or the client went away.
    """

    def __init__(
        self,
        loader: ContextLoader,
        model_client: ModelClient,
        run_logger: AgentRunLogger,
        meter: Optional[UsageMeter] = None,
        default_model: str = AGENT_DEFAULT_MODEL,
        max_duration: float = AGENT_MAX_DURATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.loader = loader
        self.model_client = model_client
        self.run_logger = run_logger
        self.meter = meter
        self.default_model = default_model
        self.max_duration = max_duration
        self._clock = clock
        self._background: Set["asyncio.Task[Any]"] = set()

    async def prepare(self, request: AgentRequest, request_id: Optional[str] = None) -> PreparedRun:
        request_id = request_id or str(uuid.uuid4())
        started_at = self._clock()

        chat_messages = to_chat_messages(request.messages)
        user_message = validate_user_message(latest_user_text(chat_messages))
        context = request.to_context_request(user_message)

        mode = resolve_mode(context)
        log_event(
            request_id,
            "dispatch",
            "mode resolved",
            {"mode": mode.value, "page_type": context.page_type, "context_type": context.context_type},
        )

        bundle = await self.loader.load(mode, context)
        system_prompt = format_prompt(mode, bundle)
        log_event(
            request_id,
            "format",
            "system prompt built",
            {"mode": mode.value, "chars": len(system_prompt), "call_type": bundle.call_type},
        )

        return PreparedRun(
            request_id=request_id,
            mode=mode,
            context=context,
            system_prompt=system_prompt,
            provider_messages=to_provider_messages(chat_messages),
            user_message=user_message,
            model=resolve_model_id(request.model or self.default_model, self.model_client.provider),
            started_at=started_at,
        )

    async def open_stream(self, run: PreparedRun) -> OpenedStream:
        """
        Call the model and wait for its first event before any byte is sent.

        A failure here (provider rejected the request, deadline passed with no
        output) is logged as an error run and re-raised so the caller can
        answer with a plain HTTP error instead of an SSE stream.
        """
        events = self.model_client.stream_chat(run.system_prompt, run.provider_messages, run.model)
        try:
            first = await self._next_event(run, events)
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            log_error(run.request_id, "invoke", exc, {"mode": run.mode.value, "model": run.model})
            self._finish(run, "", {"prompt_tokens": 0, "completion_tokens": 0}, "error", error_message)
            await self._close(events)
            raise
        except asyncio.CancelledError:
            self._finish(run, "", {"prompt_tokens": 0, "completion_tokens": 0}, "error", CANCELLED_MESSAGE)
            await self._close(events)
            raise
        return OpenedStream(events, first)

    async def _next_event(self, run: PreparedRun, events: AsyncIterator[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Next model event within the run deadline, or None once the model is done."""
        remaining = run.started_at + self.max_duration - self._clock()
        if remaining <= 0:
            raise AgentTimeoutError(f"Agent exceeded {self.max_duration:.0f}s time limit")
        try:
            return await asyncio.wait_for(events.__anext__(), timeout=remaining)
        except StopAsyncIteration:
            return None
        except asyncio.TimeoutError:
            raise AgentTimeoutError(f"Agent exceeded {self.max_duration:.0f}s time limit")

    async def _close(self, events: Any) -> None:
        try:
            await events.aclose()
        except Exception as exc:
            logger.warning(f"Closing model stream failed: {type(exc).__name__}: {exc}")

    async def stream(self, run: PreparedRun, opened: Optional[OpenedStream] = None) -> AsyncIterator[str]:
        if opened is None:
            opened = await self.open_stream(run)
        events = opened.events
        output: List[str] = []
        usage = {"prompt_tokens": 0, "completion_tokens": 0}
        status = "error"
        error_message: Optional[str] = None

        try:
            yield sse({"type": "start", "mode": run.mode.value})
            event = opened.first
            while event is not None:
                kind = event.get("type")
                if kind == "text":
                    output.append(event["text"])
                    yield sse({"type": "text-delta", "delta": event["text"]})
                elif kind == "reasoning":
                    yield sse({"type": "reasoning-delta", "delta": event["text"]})
                elif kind == "usage":
                    usage["prompt_tokens"] = event.get("prompt_tokens", 0)
                    usage["completion_tokens"] = event.get("completion_tokens", 0)
                event = await self._next_event(run, events)

            status = "completed"
            yield sse(
                {
                    "type": "finish",
                    "usage": {
                        "promptTokens": usage["prompt_tokens"],
                        "completionTokens": usage["completion_tokens"],
                        "totalTokens": usage["prompt_tokens"] + usage["completion_tokens"],
                    },
                }
            )
            yield sse("[DONE]")
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            log_error(run.request_id, "invoke", exc, {"mode": run.mode.value, "model": run.model})
            yield sse({"type": "error", "errorText": error_message})
            yield sse("[DONE]")
        finally:
            if status != "completed" and error_message is None:
                error_message = CANCELLED_MESSAGE
            self._finish(run, "".join(output), usage, status, error_message)
            await self._close(events)

    def _finish(
        self,
        run: PreparedRun,
        output: str,
        usage: Dict[str, int],
        status: str,
        error_message: Optional[str],
    ) -> None:
        duration_ms = int((self._clock() - run.started_at) * 1000)
        prompt_tokens = usage["prompt_tokens"]
        completion_tokens = usage["completion_tokens"]
        ids = run_entity_ids(run.mode, run.context)
        record = AgentRunRecord(
            agent_type=AGENT_TYPE,
            prompt_sent=serialize_prompt(run.system_prompt, run.provider_messages),
            system_prompt=run.system_prompt,
            user_message=run.user_message,
            output=output,
            model=run.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            total_cost=compute_cost(run.model, prompt_tokens, completion_tokens),
            transcript_id=ids["transcript_id"],
            company_id=ids["company_id"],
            user_id=run.context.user_id,
            context_type=run_context_type(run.mode, run.context),
            duration_ms=duration_ms,
            status=status,
            error_message=error_message,
            metadata={
                "mode": run.mode.value,
                "page_type": run.context.page_type.value if run.context.page_type else None,
                "request_id": run.request_id,
            },
            created_at=utc_now(),
        )
        log_event(
            run.request_id,
            "invoke",
            "agent run finished",
            {"status": status, "duration_ms": duration_ms, "total_tokens": record.total_tokens},
        )
        self.run_logger.schedule(record)

        if status == "completed" and self.meter is not None and run.context.user_id:
            self.spawn(
                self.meter.track_agent_request(
                    run.context.user_id,
                    prompt_tokens,
                    completion_tokens,
                    run.model,
                    company_id=ids["company_id"],
                )
            )

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait, at most ``timeout`` in total, for run-log writes and metering calls."""
        run_log_writes = asyncio.ensure_future(self.run_logger.drain())
        done, pending = await asyncio.wait({run_log_writes, *self._background}, timeout=timeout)
        if run_log_writes in pending:
            run_log_writes.cancel()
            pending.discard(run_log_writes)
            logger.warning("Run-log writes still pending at shutdown")
        if pending:
            logger.warning(f"{len(pending)} metering calls still pending at shutdown")


def build_pipeline(
    db: Any,
    model_client: Optional[ModelClient] = None,
    meter: Optional[UsageMeter] = None,
) -> AgentPipeline:
    """Wire the default pipeline around a Supabase client."""
    model_client = model_client or ModelClient()
    sources = ContextSources(db, search=WorkspaceSearch(db, model_client.embed))
    return AgentPipeline(
        loader=ContextLoader(sources),
        model_client=model_client,
        run_logger=AgentRunLogger(db),
        meter=meter if meter is not None else UsageMeter(),
    )
