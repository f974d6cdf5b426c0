"""
Read-only context sources.

Every public fetcher is wrapped with ``fetch_guard`` so it never raises: a
failed or slow source degrades to its empty sentinel ("" / None / []) and the
other sources gathered alongside it still contribute.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from lib.config import WORKSPACE_SEARCH_TOP_K
from lib.models import (
    BuyerPersona,
    CallSummary,
    CompanyProfile,
    Contact,
    IcpEnrichment,
    ObjectionHandler,
    Product,
    TeamRole,
    UserProfile,
)
from lib.supabase_client import fetch_first, fetch_rows
from lib.ttl_cache import TTLCache, context_cache
from services.agent.decoders import (
    as_dict,
    as_float,
    as_list,
    as_str_list,
    as_text,
    parse_id,
    unique,
)
from services.agent.renderers import render_call_context, render_company_context
from utils.decorators import fetch_guard
from utils.errors import SourceFetchError

logger = logging.getLogger(__name__)

PREVIOUS_CALLS_LIMIT = 5
COMPANY_RECENT_CALLS_LIMIT = 10


class ContextSources:
    """
    Fetchers for every context fragment the loader can ask for.

    Args:
        db: Supabase async client (anything exposing ``table()`` / ``rpc()``).
        cache: Cache for rendered call/company blocks; the process-wide
            ``context_cache`` by default.
        search: Object exposing ``search(user_id, query, k) -> str``.
        top_k: Number of workspace fragments to request.
    """

    def __init__(
        self,
        db: Any,
        cache: Optional[TTLCache] = None,
        search: Any = None,
        top_k: int = WORKSPACE_SEARCH_TOP_K,
    ) -> None:
        self.db = db
        self.cache = cache if cache is not None else context_cache
        self.search = search
        self.top_k = top_k
        self._inflight: Dict[str, "asyncio.Future[str]"] = {}

    async def _cached(self, key: str, produce: Callable[[], Awaitable[str]]) -> str:
        """
        Serve ``key`` from the cache, or produce it once.

        Concurrent misses on the same key share a single in-flight fetch, so
        the underlying source is hit at most once per TTL window. Only
        non-empty values are cached.
        """
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._fill(key, produce))
            self._inflight[key] = pending
            pending.add_done_callback(lambda _: self._inflight.pop(key, None))
        # A timed-out caller must not cancel the fetch other callers share
        return await asyncio.shield(pending)

    async def _fill(self, key: str, produce: Callable[[], Awaitable[str]]) -> str:
        value = await produce()
        if value:
            self.cache.set(key, value)
        return value

    # ------------------------------------------------------------------
    # Rendered call / company blocks (cache-backed)
    # ------------------------------------------------------------------

    @fetch_guard(default="")
    async def call_context(self, transcript_id: Optional[str]) -> str:
        if not transcript_id:
            return ""
        return await self._cached(f"call:{transcript_id}", lambda: self._load_call(transcript_id))

    async def _load_call(self, transcript_id: str) -> str:
        transcript = await fetch_first(
            self.db.table("transcripts").select("*").eq("id", parse_id(transcript_id))
        )
        if not transcript:
            logger.info("No transcript found for id %s", transcript_id)
            return ""
        return render_call_context(transcript)

    @fetch_guard(default="")
    async def company_context(self, company_id: Optional[str]) -> str:
        if not company_id:
            return ""
        return await self._cached(f"company:{company_id}", lambda: self._load_company(company_id))

    async def _load_company(self, company_id: str) -> str:
        company = await fetch_first(
            self.db.table("companies").select("*").eq("id", parse_id(company_id))
        )
        if not company:
            logger.info("No company found for id %s", company_id)
            return ""
        links = await fetch_rows(
            self.db.table("company_calls")
            .select("transcript_id, created_at")
            .eq("company_id", parse_id(company_id))
            .order("created_at", desc=True)
            .limit(COMPANY_RECENT_CALLS_LIMIT)
        )
        calls: List[Dict[str, Any]] = []
        transcript_ids = [link.get("transcript_id") for link in links if link.get("transcript_id") is not None]
        if transcript_ids:
            calls = await fetch_rows(
                self.db.table("transcripts")
                .select("id, title, duration, ai_overall_score, created_at")
                .in_("id", transcript_ids)
            )
            calls = _newest_first(calls)
        return render_company_context(company, calls)

    # ------------------------------------------------------------------
    # Historical grounding for a single call
    # ------------------------------------------------------------------

    @fetch_guard(default=None)
    async def company_id_for_transcript(self, transcript_id: Optional[str]) -> Optional[str]:
        if not transcript_id:
            return None
        row = await fetch_first(
            self.db.table("company_calls").select("company_id").eq("transcript_id", parse_id(transcript_id))
        )
        if not row or row.get("company_id") is None:
            return None
        return str(row["company_id"])

    @fetch_guard(default=None)
    async def owner_for_transcript(self, transcript_id: Optional[str]) -> Optional[str]:
        if not transcript_id:
            return None
        row = await fetch_first(
            self.db.table("transcripts").select("user_id").eq("id", parse_id(transcript_id))
        )
        return as_text(row.get("user_id")) if row else None

    @fetch_guard(default=[])
    async def previous_calls(
        self,
        company_id: Optional[str],
        current_transcript_id: Optional[str],
    ) -> List[CallSummary]:
        """Up to five other calls with the same company, newest first."""
        if not company_id:
            return []
        query = self.db.table("company_calls").select("transcript_id, created_at").eq(
            "company_id", parse_id(company_id)
        )
        if current_transcript_id:
            query = query.neq("transcript_id", parse_id(current_transcript_id))
        links = await fetch_rows(query.order("created_at", desc=True).limit(PREVIOUS_CALLS_LIMIT))
        transcript_ids = [link.get("transcript_id") for link in links if link.get("transcript_id") is not None]
        if not transcript_ids:
            return []

        rows = await fetch_rows(
            self.db.table("transcripts")
            .select("id, title, ai_summary, ai_overall_score, created_at, call_summary, deal_signal")
            .in_("id", transcript_ids)
        )
        summaries = [
            CallSummary(
                transcript_id=row["id"],
                title=as_text(row.get("title")),
                summary=as_text(row.get("call_summary")) or as_text(row.get("ai_summary")),
                overall_score=as_float(row.get("ai_overall_score")),
                deal_signal=as_text(row.get("deal_signal")),
                created_at=as_text(row.get("created_at")),
            )
            for row in _newest_first(rows)
            if row.get("id") is not None
        ]
        return summaries[:PREVIOUS_CALLS_LIMIT]

    @fetch_guard(default=None)
    async def company_profile(self, company_id: Optional[str]) -> Optional[CompanyProfile]:
        if not company_id:
            return None
        row = await fetch_first(
            self.db.table("companies")
            .select("id, company_name, domain, pain_points, company_contacts, company_goal_objective")
            .eq("id", parse_id(company_id))
        )
        if not row:
            return None
        contacts = [
            Contact(
                name=as_text(c.get("name")),
                email=as_text(c.get("email")),
                title=as_text(c.get("title")),
                phone=as_text(c.get("phone")),
            )
            for c in as_list(row.get("company_contacts"))
            if isinstance(c, dict)
        ]
        return CompanyProfile(
            id=row.get("id", parse_id(company_id)),
            company_name=as_text(row.get("company_name")),
            domain=as_text(row.get("domain")),
            pain_points=as_str_list(row.get("pain_points")),
            contacts=contacts,
            company_goal_objective=as_text(row.get("company_goal_objective")),
        )

    # ------------------------------------------------------------------
    # Rep profile and ICP enrichment
    # ------------------------------------------------------------------

    @fetch_guard(default=None)
    async def user_profile(self, user_id: Optional[str]) -> Optional[UserProfile]:
        """Sales motion plus the rep's system and custom (department) roles."""
        if not user_id:
            return None
        user = await fetch_first(
            self.db.table("users").select("id, team_id, business_profile").eq("id", user_id)
        )
        if not user:
            return None
        business_profile = as_dict(user.get("business_profile"))
        roles = await self._team_roles(user_id, user.get("team_id"))
        profile = UserProfile(
            sales_motion=as_text(business_profile.get("sales_motion")),
            team_roles=roles,
        )
        return None if profile.is_empty() else profile

    @fetch_guard(default=[])
    async def _team_roles(self, user_id: str, team_id: Any) -> List[TeamRole]:
        if team_id is None:
            return []
        assignments = await fetch_rows(
            self.db.table("team_member_tags").select("tag_id").eq("user_id", user_id).eq("team_id", team_id)
        )
        tag_ids = [row.get("tag_id") for row in assignments if row.get("tag_id") is not None]
        if not tag_ids:
            return []
        tags = await fetch_rows(
            self.db.table("team_tags").select("id, tag_name, tag_type, description").in_("id", tag_ids)
        )
        roles: List[TeamRole] = []
        seen = set()
        for tag in tags:
            name = as_text(tag.get("tag_name"))
            if not name:
                continue
            kind = "department" if tag.get("tag_type") == "department" else "role"
            if (kind, name.lower()) in seen:
                continue
            seen.add((kind, name.lower()))
            roles.append(TeamRole(name=name, kind=kind, description=as_text(tag.get("description"))))
        return roles

    @fetch_guard(default=None)
    async def enrichment(self, user_id: Optional[str]) -> Optional[IcpEnrichment]:
        """
        The rep's ICP analysis: the latest completed ``company_icp`` row,
        falling back to the ``business_profile`` captured during onboarding.
        """
        if not user_id:
            return None
        icp_row = await fetch_first(
            self.db.table("company_icp")
            .select(
                "company_info, products_and_services, ideal_customer_profile, "
                "buyer_personas, talk_tracks, objection_handling, created_at"
            )
            .eq("user_id", user_id)
            .eq("scrape_status", "completed")
            .order("created_at", desc=True)
        )
        if icp_row:
            enrichment = parse_icp_analysis(icp_row)
        else:
            user = await fetch_first(self.db.table("users").select("business_profile").eq("id", user_id))
            enrichment = parse_business_profile(as_dict((user or {}).get("business_profile")))
        return None if enrichment.is_empty() else enrichment

    # ------------------------------------------------------------------
    # Semantic search
    # ------------------------------------------------------------------

    @fetch_guard(default="")
    async def workspace_search(self, user_id: Optional[str], query: str) -> str:
        if self.search is None or not user_id or not (query or "").strip():
            return ""
        result = await self.search.search(user_id, query, self.top_k)
        if not isinstance(result, str):
            raise SourceFetchError(f"Workspace search returned {type(result).__name__}, expected text")
        return result


def _newest_first(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # ``in_`` does not preserve the order of the id list
    return sorted(rows, key=lambda row: as_text(row.get("created_at")) or "", reverse=True)


def _products(value: Any) -> List[Product]:
    products: List[Product] = []
    for item in as_list(value):
        if isinstance(item, str) and item.strip():
            products.append(Product(name=item.strip()))
        elif isinstance(item, dict) and as_text(item.get("name")):
            products.append(Product(name=as_text(item.get("name")), description=as_text(item.get("description"))))
    return products


def _objections(value: Any) -> List[ObjectionHandler]:
    handlers: List[ObjectionHandler] = []
    for item in as_list(value):
        if not isinstance(item, dict):
            continue
        objection = as_text(item.get("objection"))
        response = as_text(item.get("response")) or as_text(item.get("rebuttal"))
        if objection and response:
            handlers.append(ObjectionHandler(objection=objection, response=response))
    return handlers


def _personas(value: Any) -> List[BuyerPersona]:
    personas: List[BuyerPersona] = []
    for item in as_list(value):
        if not isinstance(item, dict):
            continue
        title = as_text(item.get("title")) or as_text(item.get("role"))
        if not title:
            continue
        personas.append(
            BuyerPersona(
                title=title,
                department=as_text(item.get("department")),
                responsibilities=as_str_list(item.get("responsibilities")),
                goals=as_str_list(item.get("goals")),
                challenges=as_str_list(item.get("challenges")),
                notes=as_text(item.get("notes")),
            )
        )
    return personas


def _with_aggregates(enrichment: IcpEnrichment, icp: Dict[str, Any]) -> IcpEnrichment:
    """Fill pain points, goals, job titles and responsibilities across personas."""
    personas = enrichment.buyer_personas
    enrichment.pain_points = unique(
        as_str_list(icp.get("pain_points")) + [c for p in personas for c in p.challenges]
    )
    enrichment.goals = unique([g for p in personas for g in p.goals])
    enrichment.job_titles = unique(as_str_list(icp.get("job_titles")) + [p.title for p in personas])
    enrichment.responsibilities = unique([r for p in personas for r in p.responsibilities])
    return enrichment


def parse_icp_analysis(row: Dict[str, Any]) -> IcpEnrichment:
    """Decode a ``company_icp`` row; every nested field is optional."""
    company_info = as_dict(row.get("company_info"))
    icp = as_dict(row.get("ideal_customer_profile"))
    enrichment = IcpEnrichment(
        value_proposition=as_text(company_info.get("description")) or as_text(company_info.get("mission")),
        products=_products(row.get("products_and_services")),
        industries=as_str_list(icp.get("industries")),
        company_sizes=as_str_list(icp.get("company_sizes")),
        regions=as_str_list(icp.get("geographies")),
        buyer_personas=_personas(row.get("buyer_personas")),
        talk_tracks=as_str_list(row.get("talk_tracks")),
        objection_handling=_objections(row.get("objection_handling")),
    )
    return _with_aggregates(enrichment, icp)


def parse_business_profile(business_profile: Dict[str, Any]) -> IcpEnrichment:
    """Decode the onboarding ``users.business_profile`` blob."""
    icp = as_dict(business_profile.get("icp"))
    enrichment = IcpEnrichment(
        value_proposition=as_text(business_profile.get("elevator_pitch"))
        or as_text(business_profile.get("value_proposition")),
        products=_products(business_profile.get("products")),
        industries=as_str_list(icp.get("industries")),
        company_sizes=as_str_list(icp.get("company_size")),
        regions=as_str_list(icp.get("regions")),
        tech_stack=as_str_list(icp.get("tech_stack")),
        buyer_personas=_personas(business_profile.get("buyer_personas")),
        talk_tracks=as_str_list(business_profile.get("talk_tracks")),
        objection_handling=_objections(business_profile.get("objection_handling")),
    )
    return _with_aggregates(enrichment, icp)
