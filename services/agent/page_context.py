"""Page-specific aggregates rendered for the dashboard pages."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from lib.models import PageContext, PageType
from lib.supabase_client import fetch_first, fetch_rows
from services.agent.decoders import as_float, as_list, as_str_list, as_text, format_date, format_score, parse_id
from services.agent.sources import ContextSources
from utils.decorators import fetch_guard

logger = logging.getLogger(__name__)

RECENT_CALLS_LIMIT = 10
CALLS_PAGE_LIMIT = 50
COACHING_NOTES_LIMIT = 5
TOP_PAIN_POINTS = 15
HIGH_SCORE = 80
MEDIUM_SCORE = 60
AT_RISK_SIGNALS = {"at_risk", "critical"}


def score_band(score: float) -> str:
    """high >= 80, medium 60-79, low < 60."""
    if score >= HIGH_SCORE:
        return "high"
    if score >= MEDIUM_SCORE:
        return "medium"
    return "low"


def _average(scores: List[float]) -> Optional[float]:
    return sum(scores) / len(scores) if scores else None


def _call_line(row: Dict[str, Any]) -> Optional[str]:
    parts = []
    title = as_text(row.get("title"))
    if title:
        parts.append(f"**{title}**")
    score = as_float(row.get("ai_overall_score"))
    if score is not None:
        parts.append(format_score(score))
    call_date = format_date(row.get("created_at"))
    if call_date:
        parts.append(call_date)
    signal = as_text(row.get("deal_signal"))
    if signal:
        parts.append(f"deal signal: {signal}")
    return "- " + " - ".join(parts) if parts else None


class PageContextBuilder:
    """
    One aggregate per page type. Each aggregate joins a handful of tables;
    every sub-query is guarded on its own so a failure only shortens the text.
    """

    def __init__(self, db: Any, sources: ContextSources) -> None:
        self.db = db
        self.sources = sources
        self._builders = {
            PageType.DASHBOARD: self._dashboard,
            PageType.CALLS: self._calls,
            PageType.CALL_DETAIL: self._call_detail,
            PageType.COMPANIES: self._companies,
            PageType.COMPANY_DETAIL: self._company_detail,
            PageType.TEAM: self._team,
        }

    @fetch_guard(default="")
    async def build(
        self,
        page_type: Optional[PageType],
        user_id: Optional[str],
        page_context: Optional[PageContext] = None,
    ) -> str:
        builder = self._builders.get(page_type) if page_type else None
        if builder is None or not user_id:
            return ""
        return await builder(user_id, page_context or PageContext())

    # ------------------------------------------------------------------
    # dashboard
    # ------------------------------------------------------------------

    @fetch_guard(default=[])
    async def _recent_scored_calls(self, user_id: str) -> List[Dict[str, Any]]:
        rows = await fetch_rows(
            self.db.table("transcripts")
            .select("id, title, ai_overall_score, deal_signal, created_at")
            .eq("user_id", user_id)
            .not_.is_("ai_overall_score", "null")
            .order("created_at", desc=True)
            .limit(RECENT_CALLS_LIMIT)
        )
        return [row for row in rows if as_float(row.get("ai_overall_score")) is not None]

    @fetch_guard(default=[])
    async def _coaching_notes(self, user_id: str) -> List[Dict[str, Any]]:
        return await fetch_rows(
            self.db.table("coaching_notes")
            .select("note, created_at")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(COACHING_NOTES_LIMIT)
        )

    async def _dashboard(self, user_id: str, page_context: PageContext) -> str:
        calls, notes = await asyncio.gather(self._recent_scored_calls(user_id), self._coaching_notes(user_id))
        sections: List[str] = []
        if calls:
            scores = [as_float(row.get("ai_overall_score")) for row in calls]
            lines = [
                "## Recent Performance",
                f"- Recent scored calls: {len(calls)}",
                f"- Average score: {format_score(round(_average(scores), 1))}",
                "",
                "### Recent Calls",
            ]
            lines += [line for line in map(_call_line, calls) if line]
            sections.append("\n".join(lines))
        note_lines: List[str] = []
        for row in notes:
            note = as_text(row.get("note"))
            if not note:
                continue
            noted_on = format_date(row.get("created_at"))
            note_lines.append(f"- {noted_on}: {note}" if noted_on else f"- {note}")
        if note_lines:
            sections.append("\n".join(["## Recent Coaching Notes"] + note_lines))
        return "\n\n".join(sections)

    # ------------------------------------------------------------------
    # calls
    # ------------------------------------------------------------------

    async def _calls(self, user_id: str, page_context: PageContext) -> str:
        rows = await fetch_rows(
            self.db.table("transcripts")
            .select("id, title, ai_overall_score, deal_signal, created_at")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(CALLS_PAGE_LIMIT)
        )
        if not rows:
            return ""
        scores = [s for s in (as_float(row.get("ai_overall_score")) for row in rows) if s is not None]
        bands = Counter(score_band(score) for score in scores)
        lines = ["## Calls Overview", f"- Total calls: {len(rows)}", f"- Scored calls: {len(scores)}"]
        if scores:
            lines.append(f"- Average score: {format_score(round(_average(scores), 1))}")
            lines += [
                f"- High scores (80+): {bands['high']}",
                f"- Medium scores (60-79): {bands['medium']}",
                f"- Low scores (<60): {bands['low']}",
            ]
        lines += ["", "### Calls"] + [line for line in map(_call_line, rows) if line]
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # call_detail / company_detail reuse the cached blocks
    # ------------------------------------------------------------------

    async def _call_detail(self, user_id: str, page_context: PageContext) -> str:
        return await self.sources.call_context(page_context.transcript_id)

    async def _company_detail(self, user_id: str, page_context: PageContext) -> str:
        return await self.sources.company_context(page_context.company_id)

    # ------------------------------------------------------------------
    # companies
    # ------------------------------------------------------------------

    @fetch_guard(default={})
    async def _call_counts(self, company_ids: List[Any]) -> Dict[str, int]:
        links = await fetch_rows(
            self.db.table("company_calls").select("company_id, transcript_id").in_("company_id", company_ids)
        )
        return dict(Counter(str(link.get("company_id")) for link in links))

    async def _companies(self, user_id: str, page_context: PageContext) -> str:
        companies = await fetch_rows(
            self.db.table("companies")
            .select("id, company_name, domain, pain_points, risk_summary, ai_deal_risk_alerts")
            .eq("user_id", user_id)
            .order("company_name")
        )
        if not companies:
            return ""
        counts = await self._call_counts([row.get("id") for row in companies])

        pain_points: Counter = Counter()
        lines = ["## Account Portfolio", f"- Total companies: {len(companies)}"]
        company_lines: List[str] = []
        at_risk = 0
        for company in companies:
            points = as_str_list(company.get("pain_points"))
            pain_points.update(points)
            risky = bool(as_list(company.get("ai_deal_risk_alerts")) or as_str_list(company.get("risk_summary")))
            at_risk += int(risky)
            name = as_text(company.get("company_name"))
            domain = as_text(company.get("domain"))
            if not (name or domain):
                continue
            line = f"- **{name or domain}**"
            if name and domain:
                line += f" ({domain})"
            call_count = counts.get(str(company.get("id")))
            if call_count:
                line += f" - {call_count} calls"
            if points:
                line += f" - {len(points)} pain points"
            if risky:
                line += " - AT RISK"
            company_lines.append(line)
        lines.append(f"- At-risk companies: {at_risk}")
        if company_lines:
            lines += ["", "### Companies"] + company_lines
        if pain_points:
            lines += ["", "### Most Common Pain Points"]
            lines += [
                f"- {point} ({count} {'company' if count == 1 else 'companies'})"
                for point, count in pain_points.most_common(TOP_PAIN_POINTS)
            ]
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # team
    # ------------------------------------------------------------------

    @fetch_guard(default=None)
    async def _team_id(self, user_id: str) -> Optional[Any]:
        row = await fetch_first(self.db.table("users").select("team_id").eq("id", user_id))
        return row.get("team_id") if row else None

    @fetch_guard(default={})
    async def _users(self, user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        rows = await fetch_rows(self.db.table("users").select("id, name, email").in_("id", user_ids))
        return {str(row.get("id")): row for row in rows}

    @fetch_guard(default={})
    async def _role_names(self, role_ids: List[Any]) -> Dict[str, str]:
        if not role_ids:
            return {}
        rows = await fetch_rows(self.db.table("team_roles").select("id, role_name").in_("id", role_ids))
        return {str(row.get("id")): as_text(row.get("role_name")) or "" for row in rows}

    @fetch_guard(default=None)
    async def _member_stats(self, member_id: str) -> Optional[Dict[str, Any]]:
        rows = await fetch_rows(self.db.table("transcripts").select("ai_overall_score").eq("user_id", member_id))
        scores = [s for s in (as_float(row.get("ai_overall_score")) for row in rows) if s is not None]
        return {"calls": len(rows), "average": _average(scores)}

    async def _team(self, user_id: str, page_context: PageContext) -> str:
        team_id = page_context.team_id or await self._team_id(user_id)
        if team_id is None:
            return ""
        roster = await fetch_rows(
            self.db.table("team_org")
            .select("user_id, team_role_id, is_sales_manager")
            .eq("team_id", parse_id(team_id))
            .eq("active", True)
        )
        member_ids = [str(row["user_id"]) for row in roster if row.get("user_id")]
        if not member_ids:
            return ""

        users, roles, *stats = await asyncio.gather(
            self._users(member_ids),
            self._role_names([row.get("team_role_id") for row in roster if row.get("team_role_id") is not None]),
            *(self._member_stats(member_id) for member_id in member_ids),
        )

        team_name = page_context.team_name
        lines = [f"## Team Overview{': ' + team_name if team_name else ''}", f"- Members: {len(member_ids)}"]
        member_lines: List[str] = []
        team_scores: List[float] = []
        for row, member_stats in zip((r for r in roster if r.get("user_id")), stats):
            member_id = str(row["user_id"])
            user = users.get(member_id, {})
            line = f"- **{as_text(user.get('name')) or as_text(user.get('email')) or member_id}**"
            role = roles.get(str(row.get("team_role_id")))
            if role:
                line += f" ({role})"
            if row.get("is_sales_manager"):
                line += " - sales manager"
            if member_stats is not None:
                line += f" - {member_stats['calls']} calls"
                if member_stats["average"] is not None:
                    line += f" - avg score {format_score(round(member_stats['average'], 1))}"
                    team_scores.append(member_stats["average"])
            member_lines.append(line)
        if team_scores:
            lines.append(f"- Team average score: {format_score(round(_average(team_scores), 1))}")
        lines += ["", "### Members"] + member_lines
        return "\n".join(lines)
