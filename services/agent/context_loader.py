"""Fan out to the context sources a mode needs and join them into a bundle."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from lib.models import CallSummary, CallType, ContextBundle, ContextRequest, PageType, PromptMode
from services.agent.page_context import PageContextBuilder
from services.agent.sources import ContextSources

logger = logging.getLogger(__name__)

# Fixed join order of the structured fragments
JOIN_ORDER: Tuple[str, ...] = (
    "previous_calls",
    "company",
    "user_profile",
    "enrichment",
    "page_context",
)

# Empty value for each bundle field when its source failed or was skipped
EMPTY_FIELDS: Dict[str, Any] = {
    "previous_calls": [],
    "company": None,
    "user_profile": None,
    "enrichment": None,
    "page_context": "",
    "call_context": "",
    "company_context": "",
    "workspace_context": "",
}


def detect_call_type(previous_calls: List[CallSummary]) -> CallType:
    """First call with a company is discovery; anything after is a follow-up."""
    return "followup" if previous_calls else "discovery"


def page_title(request: ContextRequest) -> Optional[str]:
    page = request.page_context
    if page is None:
        return None
    if request.page_type == PageType.CALL_DETAIL:
        return page.transcript_title
    if request.page_type == PageType.COMPANY_DETAIL:
        return page.company_name
    if request.page_type == PageType.TEAM:
        return page.team_name
    return None


class ContextLoader:
    """
    ``load(mode, request) -> ContextBundle``.

    Sources run concurrently; the join waits for all of them. Every source is
    total, so a failed or slow one only leaves its own field empty.
    """

    def __init__(self, sources: ContextSources, pages: Optional[PageContextBuilder] = None) -> None:
        self.sources = sources
        self.pages = pages or PageContextBuilder(sources.db, sources)

    async def load(self, mode: PromptMode, request: ContextRequest) -> ContextBundle:
        bundle = ContextBundle(page_type=request.page_type, page_title=page_title(request))
        plan = await self._plan(mode, request)
        if not plan:
            return bundle

        names = list(plan)
        results = await asyncio.gather(*plan.values(), return_exceptions=True)
        fragments: Dict[str, Any] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("Context source %s failed: %s", name, result)
                result = EMPTY_FIELDS[name]
            fragments[name] = result

        for name in JOIN_ORDER + ("call_context", "company_context", "workspace_context"):
            if name in fragments and fragments[name] is not None:
                setattr(bundle, name, fragments[name])

        if mode == PromptMode.LEGACY_CALL:
            bundle.call_type = detect_call_type(bundle.previous_calls)
        return bundle

    async def _plan(self, mode: PromptMode, request: ContextRequest) -> Dict[str, Awaitable[Any]]:
        """The minimal set of source calls for a mode, keyed by bundle field."""
        sources = self.sources
        user_id = request.user_id

        if mode == PromptMode.PAGE_SPECIFIC:
            return {
                "page_context": self.pages.build(request.page_type, user_id, request.page_context),
                "workspace_context": sources.workspace_search(user_id, request.query),
                "user_profile": sources.user_profile(user_id),
                "enrichment": sources.enrichment(user_id),
            }

        if mode in (PromptMode.SEMANTIC_WORKSPACE, PromptMode.FALLBACK_WORKSPACE):
            return {
                "workspace_context": sources.workspace_search(user_id, request.query),
                "user_profile": sources.user_profile(user_id),
                "enrichment": sources.enrichment(user_id),
            }

        if mode == PromptMode.LEGACY_CALL:
            transcript_id = request.context_id
            # Resolve the call's company and owner first; both are optional
            company_id, owner_id = await asyncio.gather(
                sources.company_id_for_transcript(transcript_id),
                sources.owner_for_transcript(transcript_id) if not user_id else _value(user_id),
            )
            rep_id = user_id or owner_id
            return {
                "call_context": sources.call_context(transcript_id),
                "previous_calls": sources.previous_calls(company_id, transcript_id),
                "company": sources.company_profile(company_id),
                "user_profile": sources.user_profile(rep_id),
                "enrichment": sources.enrichment(rep_id),
            }

        if mode == PromptMode.LEGACY_COMPANY:
            return {
                "company_context": sources.company_context(request.context_id),
                "user_profile": sources.user_profile(user_id),
                "enrichment": sources.enrichment(user_id),
            }

        return {}


async def _value(value: Any) -> Any:
    return value
