"""Request, context and run-record models shared by the agent pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PageType(str, Enum):
    """Dashboard pages that carry their own context and prompt."""

    DASHBOARD = "dashboard"
    CALLS = "calls"
    CALL_DETAIL = "call_detail"
    COMPANIES = "companies"
    COMPANY_DETAIL = "company_detail"
    TEAM = "team"


class PromptMode(str, Enum):
    """Retrieval mode; exactly one is active per request."""

    PAGE_SPECIFIC = "page_specific"
    SEMANTIC_WORKSPACE = "semantic_workspace"
    LEGACY_CALL = "legacy_call"
    LEGACY_COMPANY = "legacy_company"
    FALLBACK_WORKSPACE = "fallback_workspace"
    NO_CONTEXT = "no_context"


CallType = Literal["discovery", "followup", "demo", "closing", "other"]
ContextType = Literal["call", "company", "workspace"]


def _coerce_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class PageContext(BaseModel):
    """Identifiers of the entity the current page is showing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transcript_id: Optional[str] = Field(default=None, alias="transcriptId")
    company_id: Optional[str] = Field(default=None, alias="companyId")
    team_id: Optional[str] = Field(default=None, alias="teamId")
    transcript_title: Optional[str] = Field(default=None, alias="transcriptTitle")
    company_name: Optional[str] = Field(default=None, alias="companyName")
    team_name: Optional[str] = Field(default=None, alias="teamName")

    @field_validator("transcript_id", "company_id", "team_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Optional[str]:
        return _coerce_id(value)


class ContextRequest(BaseModel):
    """Everything the pipeline needs to decide what context to load."""

    page_type: Optional[PageType] = None
    page_context: Optional[PageContext] = None
    context_type: Optional[ContextType] = None
    context_id: Optional[str] = None
    user_id: Optional[str] = None
    use_semantic_search: bool = False
    query: str = ""

    @field_validator("context_id", "user_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Optional[str]:
        return _coerce_id(value)


class AgentRequest(BaseModel):
    """JSON body accepted by POST /api/agent."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    messages: List[Dict[str, Any]] = Field(default_factory=list)
    model: Optional[str] = None
    context_type: Optional[ContextType] = Field(default=None, alias="contextType")
    context_id: Optional[str] = Field(default=None, alias="contextId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    use_semantic_search: bool = Field(default=False, alias="useSemanticSearch")
    page_type: Optional[PageType] = Field(default=None, alias="pageType")
    page_context: Optional[PageContext] = Field(default=None, alias="pageContext")

    @field_validator("context_id", "user_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Optional[str]:
        return _coerce_id(value)

    def to_context_request(self, query: str) -> ContextRequest:
        return ContextRequest(
            page_type=self.page_type,
            page_context=self.page_context,
            context_type=self.context_type,
            context_id=self.context_id,
            user_id=self.user_id,
            use_semantic_search=self.use_semantic_search,
            query=query,
        )


# ---------------------------------------------------------------------------
# Context bundle
# ---------------------------------------------------------------------------


class CallSummary(BaseModel):
    transcript_id: Union[int, str]
    title: Optional[str] = None
    summary: Optional[str] = None
    overall_score: Optional[float] = None
    deal_signal: Optional[str] = None
    created_at: Optional[str] = None


class Contact(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    title: Optional[str] = None
    phone: Optional[str] = None


class CompanyProfile(BaseModel):
    id: Union[int, str]
    company_name: Optional[str] = None
    domain: Optional[str] = None
    pain_points: List[str] = Field(default_factory=list)
    contacts: List[Contact] = Field(default_factory=list)
    company_goal_objective: Optional[str] = None


class TeamRole(BaseModel):
    """A role resolved for the rep: a system team role or a custom/department tag."""

    name: str
    kind: Literal["role", "department"] = "role"
    description: Optional[str] = None


class UserProfile(BaseModel):
    sales_motion: Optional[str] = None
    team_roles: List[TeamRole] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.sales_motion and not self.team_roles


class Product(BaseModel):
    name: str
    description: Optional[str] = None


class BuyerPersona(BaseModel):
    title: str
    department: Optional[str] = None
    responsibilities: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class ObjectionHandler(BaseModel):
    objection: str
    response: str


class IcpEnrichment(BaseModel):
    """Ideal-customer-profile and persona data the rep sells against."""

    value_proposition: Optional[str] = None
    products: List[Product] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    company_sizes: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    tech_stack: List[str] = Field(default_factory=list)
    buyer_personas: List[BuyerPersona] = Field(default_factory=list)
    talk_tracks: List[str] = Field(default_factory=list)
    objection_handling: List[ObjectionHandler] = Field(default_factory=list)
    # Aggregates derived across every persona (and the ICP itself)
    pain_points: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    job_titles: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)

    def has_icp(self) -> bool:
        return bool(
            self.industries
            or self.company_sizes
            or self.regions
            or self.tech_stack
            or self.pain_points
            or self.goals
            or self.job_titles
            or self.responsibilities
        )

    def is_empty(self) -> bool:
        return not (
            self.value_proposition
            or self.products
            or self.buyer_personas
            or self.talk_tracks
            or self.objection_handling
            or self.has_icp()
        )


class ContextBundle(BaseModel):
    """Merged result of one context load; built per request and then discarded."""

    page_type: Optional[PageType] = None
    page_title: Optional[str] = None
    call_context: str = ""
    company_context: str = ""
    previous_calls: List[CallSummary] = Field(default_factory=list)
    company: Optional[CompanyProfile] = None
    user_profile: Optional[UserProfile] = None
    enrichment: Optional[IcpEnrichment] = None
    page_context: str = ""
    workspace_context: str = ""
    call_type: Optional[CallType] = None


class AgentRunRecord(BaseModel):
    """One persisted row per agent invocation."""

    agent_type: str
    prompt_sent: str
    system_prompt: str
    user_message: str = ""
    output: str = ""
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    transcript_id: Optional[Union[int, str]] = None
    company_id: Optional[Union[int, str]] = None
    user_id: Optional[str] = None
    context_type: str = "general"
    duration_ms: int = 0
    status: Literal["completed", "error"] = "completed"
    error_message: Optional[str] = None
    is_best: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str

    def to_row(self) -> Dict[str, Any]:
        # agent_runs.total_tokens is a generated column
        return self.model_dump(exclude={"total_tokens"})
