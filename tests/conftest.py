"""Shared fixtures: a small sales workspace in an in-memory Supabase."""
from __future__ import annotations

from typing import Any, Dict, List

import pytest

from lib.ttl_cache import TTLCache
from services.agent.context_loader import ContextLoader
from services.agent.page_context import PageContextBuilder
from services.agent.sources import ContextSources
from tests.fakes import FakeSearch, FakeSupabase

WORKSPACE_RESULT = "## Relevant Call Transcripts\n### Demo Call\n[Relevance: 91%]\nPricing came up twice."


def sample_tables() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "transcripts": [
            {
                "id": 42,
                "user_id": "u1",
                "title": "Demo Call",
                "duration": 45,
                "ai_overall_score": 72,
                "created_at": "2025-03-10T15:00:00Z",
                "deal_signal": "healthy",
                "participants": [{"name": "Ana Ruiz", "email": "ana@acme.com"}],
                "ai_scores": {"discovery": 70, "closing": 65},
                "ai_deal_risk_alerts": [{"alert": "Budget", "description": "No budget confirmed"}],
                "ai_qualification_gaps": ["Decision process unclear"],
                "summary": {"overview": "Walked through reporting", "action_items": ["Send pricing"]},
                "sentences": [
                    {"speaker_name": "Riley", "text": "Thanks for joining"},
                    {"speaker_name": "Ana Ruiz", "text": "Happy to be here"},
                ],
            },
            {
                "id": 41,
                "user_id": "u1",
                "title": "Intro Call",
                "duration": 30,
                "ai_overall_score": 64,
                "created_at": "2025-03-01T15:00:00Z",
                "call_summary": "First conversation about reporting pain",
                "deal_signal": "at_risk",
            },
            {
                "id": 40,
                "user_id": "u1",
                "title": "Kickoff",
                "duration": 75,
                "ai_overall_score": 85,
                "created_at": "2025-02-20T15:00:00Z",
            },
            {
                "id": 50,
                "user_id": "u2",
                "title": "Pipeline Review",
                "duration": 20,
                "ai_overall_score": 90,
                "created_at": "2025-03-05T10:00:00Z",
            },
            {
                "id": 51,
                "user_id": "u3",
                "title": "Cold Call",
                "duration": 5,
                "ai_overall_score": 50,
                "created_at": "2025-03-06T10:00:00Z",
            },
        ],
        "companies": [
            {
                "id": 7,
                "user_id": "u1",
                "company_name": "Acme Corp",
                "domain": "acme.com",
                "created_at": "2025-01-15T09:00:00Z",
                "pain_points": ["Manual reporting", "Slow onboarding"],
                "company_contacts": [{"name": "Ana Ruiz", "title": "VP Sales", "email": "ana@acme.com"}],
                "company_goal_objective": "Cut reporting time in half",
                "risk_summary": ["Champion may leave"],
            },
            {
                "id": 8,
                "user_id": "u1",
                "company_name": "Globex",
                "domain": "globex.io",
                "created_at": "2025-02-01T09:00:00Z",
                "pain_points": ["Manual reporting"],
            },
        ],
        "company_calls": [
            {"company_id": 7, "transcript_id": 42, "created_at": "2025-03-10T15:00:00Z"},
            {"company_id": 7, "transcript_id": 41, "created_at": "2025-03-01T15:00:00Z"},
            {"company_id": 7, "transcript_id": 40, "created_at": "2025-02-20T15:00:00Z"},
            {"company_id": 8, "transcript_id": 50, "created_at": "2025-03-05T10:00:00Z"},
        ],
        "users": [
            {
                "id": "u1",
                "name": "Riley",
                "email": "riley@example.com",
                "team_id": 3,
                "business_profile": {"sales_motion": "Outbound mid-market"},
            },
            {"id": "u2", "name": "Sam", "email": "sam@example.com", "team_id": 3},
            {"id": "u3", "name": "Jo", "email": "jo@example.com", "team_id": 3},
        ],
        "team_org": [
            {"team_id": 3, "user_id": "u1", "team_role_id": 1, "is_sales_manager": True, "active": True},
            {"team_id": 3, "user_id": "u2", "team_role_id": 2, "is_sales_manager": False, "active": True},
            {"team_id": 3, "user_id": "u3", "team_role_id": 2, "is_sales_manager": False, "active": True},
        ],
        "team_roles": [
            {"id": 1, "role_name": "Sales Manager"},
            {"id": 2, "role_name": "Member"},
        ],
        "team_member_tags": [
            {"user_id": "u1", "team_id": 3, "tag_id": 11},
            {"user_id": "u1", "team_id": 3, "tag_id": 12},
        ],
        "team_tags": [
            {"id": 11, "tag_name": "Account Executive", "tag_type": "role", "description": "Closes new business"},
            {"id": 12, "tag_name": "Enterprise", "tag_type": "department"},
        ],
        "company_icp": [
            {
                "user_id": "u1",
                "scrape_status": "completed",
                "created_at": "2025-02-01T00:00:00Z",
                "company_info": {"name": "ReportCo", "description": "Reporting automation for finance teams"},
                "products_and_services": [{"name": "Reports", "description": "Automated board reporting"}],
                "ideal_customer_profile": {
                    "industries": ["SaaS"],
                    "company_sizes": ["50-200"],
                    "geographies": ["North America"],
                    "job_titles": ["CFO"],
                    "pain_points": ["Manual reporting"],
                },
                "buyer_personas": [
                    {
                        "title": "VP Finance",
                        "department": "Finance",
                        "responsibilities": ["Budget ownership"],
                        "goals": ["Faster month-end close"],
                        "challenges": ["manual reporting", "Data silos"],
                    }
                ],
                "talk_tracks": ["Save ten hours a week on reporting"],
                "objection_handling": [{"objection": "Too expensive", "response": "Pays back within a quarter"}],
            }
        ],
        "coaching_notes": [
            {"user_id": "u1", "note": "Ask more discovery questions", "created_at": "2025-03-11T12:00:00Z"},
        ],
    }


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase(sample_tables())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(ttl_seconds=300, max_entries=100, clock=clock)


@pytest.fixture
def search() -> FakeSearch:
    return FakeSearch(WORKSPACE_RESULT)


@pytest.fixture
def sources(db: FakeSupabase, cache: TTLCache, search: FakeSearch) -> ContextSources:
    return ContextSources(db, cache=cache, search=search)


@pytest.fixture
def pages(db: FakeSupabase, sources: ContextSources) -> PageContextBuilder:
    return PageContextBuilder(db, sources)


@pytest.fixture
def loader(sources: ContextSources, pages: PageContextBuilder) -> ContextLoader:
    return ContextLoader(sources, pages)
