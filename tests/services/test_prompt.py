"""Tests for system prompt formatting."""

from lib.models import (
    BuyerPersona,
    CallSummary,
    CompanyProfile,
    ContextBundle,
    IcpEnrichment,
    PageType,
    PromptMode,
    TeamRole,
    UserProfile,
)
from lib.workspace_search import NO_RESULTS_MESSAGE
from services.agent.prompt import (
    LIMITED_CONTEXT_MESSAGE,
    NO_CALL_DATA,
    NO_CONTEXT_MESSAGE,
    NO_PAGE_DATA,
    format_prompt,
    render_call_type,
    render_previous_calls,
    render_rep_context,
)
from services.agent.renderers import render_call_context, render_company_context

TAGS = ("<company_profile>", "<rep_context>", "<icp>", "<buyer_personas>")


def _full_call_bundle() -> ContextBundle:
    return ContextBundle(
        call_context="## CALL TRANSCRIPT DATA\n- **Title**: Demo Call",
        previous_calls=[
            CallSummary(transcript_id=41, title="Intro Call", overall_score=64, deal_signal="at_risk", created_at="2025-03-01T15:00:00Z"),
            CallSummary(transcript_id=40, title="Kickoff", created_at="2025-02-20T15:00:00Z"),
        ],
        company=CompanyProfile(id=7, company_name="Acme Corp", domain="acme.com", pain_points=["Manual reporting"]),
        user_profile=UserProfile(
            sales_motion="Outbound mid-market",
            team_roles=[TeamRole(name="Account Executive"), TeamRole(name="Enterprise", kind="department")],
        ),
        enrichment=IcpEnrichment(
            value_proposition="Reporting automation",
            industries=["SaaS"],
            buyer_personas=[BuyerPersona(title="VP Finance", goals=["Faster close"])],
        ),
        call_type="followup",
    )


def test_format_prompt_is_deterministic() -> None:
    bundle = _full_call_bundle()
    assert format_prompt(PromptMode.LEGACY_CALL, bundle) == format_prompt(PromptMode.LEGACY_CALL, bundle.model_copy(deep=True))


def test_legacy_call_prompt_orders_sections() -> None:
    prompt = format_prompt(PromptMode.LEGACY_CALL, _full_call_bundle())

    positions = [
        prompt.index("## CALL TRANSCRIPT DATA"),
        prompt.index("### Previous Calls with This Company"),
        prompt.index("<company_profile>"),
        prompt.index("<rep_context>"),
        prompt.index("<icp>"),
        prompt.index("<buyer_personas>"),
        prompt.index("### Call Type: FOLLOWUP"),
    ]
    assert positions == sorted(positions)
    assert "1. **Intro Call** (2025-03-01)" in prompt
    assert "- Score: 64/100" in prompt


def test_missing_optional_fields_are_omitted_not_marked() -> None:
    prompt = format_prompt(PromptMode.LEGACY_CALL, ContextBundle(call_type="discovery"))

    assert NO_CALL_DATA in prompt
    assert "This is the first call with this company." in prompt
    for tag in TAGS:
        assert tag not in prompt
    assert "N/A" not in prompt


def test_call_without_score_has_no_score_line() -> None:
    text = render_previous_calls([CallSummary(transcript_id=1, title="Untracked")])
    assert "Score" not in text
    assert "N/A" not in text


def test_rep_context_splits_system_and_custom_roles() -> None:
    text = render_rep_context(
        UserProfile(
            sales_motion="PLG",
            team_roles=[
                TeamRole(name="Account Executive", description="Closes new business"),
                TeamRole(name="Enterprise", kind="department"),
            ],
        )
    )
    assert "- System Role: Account Executive (Closes new business)" in text
    assert "- Custom Role(s): Enterprise" in text
    assert "**Sales Motion:** PLG" in text
    assert render_rep_context(UserProfile()) == ""


def test_call_type_hint() -> None:
    assert render_call_type("discovery").startswith("### Call Type: DISCOVERY\nThis is a discovery call")
    assert render_call_type(None) == ""


def test_no_context_prompt_suggests_selecting_call_or_company() -> None:
    prompt = format_prompt(PromptMode.NO_CONTEXT, ContextBundle())
    assert NO_CONTEXT_MESSAGE in prompt
    assert "selecting a specific call or company" in prompt
    for tag in TAGS:
        assert tag not in prompt


def test_workspace_prompts_fill_empty_results() -> None:
    semantic = format_prompt(PromptMode.SEMANTIC_WORKSPACE, ContextBundle())
    fallback = format_prompt(PromptMode.FALLBACK_WORKSPACE, ContextBundle())
    assert NO_RESULTS_MESSAGE in semantic
    assert fallback.count(LIMITED_CONTEXT_MESSAGE) == 1
    assert fallback.startswith("# AI Sales Coach")

    with_results = format_prompt(PromptMode.FALLBACK_WORKSPACE, ContextBundle(workspace_context="## Relevant Call Transcripts"))
    assert LIMITED_CONTEXT_MESSAGE not in with_results
    assert "## Relevant Call Transcripts" in with_results


def test_page_prompt_uses_page_title_and_guidelines() -> None:
    bundle = ContextBundle(
        page_type=PageType.TEAM,
        page_title="West Coast",
        page_context="## Team Overview: West Coast\n- Members: 3",
        workspace_context=NO_RESULTS_MESSAGE,
    )
    prompt = format_prompt(PromptMode.PAGE_SPECIFIC, bundle)

    assert prompt.startswith("# AI Sales Coach - Team Performance: West Coast")
    assert "- Members: 3" in prompt
    assert "### Team-Specific" in prompt
    assert NO_RESULTS_MESSAGE not in prompt


def test_page_prompt_without_data() -> None:
    prompt = format_prompt(PromptMode.PAGE_SPECIFIC, ContextBundle(page_type=PageType.CALLS))
    assert prompt.startswith("# AI Sales Coach - Calls Library")
    assert NO_PAGE_DATA in prompt
    assert "{title}" not in prompt


PLACEHOLDERS = ("Unknown", "Not scored", "Untitled", "N/A")


def test_sparse_transcript_renders_without_placeholders() -> None:
    call_context = render_call_context(
        {
            "title": "Demo Call",
            "participants": [{"email": "a@b.c"}, {}],
            "ai_deal_risk_alerts": [{"description": "No budget owner"}],
            "sentences": [{"text": "Hi there"}, {"speaker_name": "Ana"}],
        }
    )
    prompt = format_prompt(PromptMode.LEGACY_CALL, ContextBundle(call_context=call_context))

    assert "- **Title**: Demo Call" in prompt
    assert "### Participants\n- a@b.c\n" in prompt
    assert "- No budget owner" in prompt
    assert "(First 1 exchanges)\nHi there" in prompt
    assert "**Duration**" not in prompt
    assert "**Overall Score**" not in prompt
    for placeholder in PLACEHOLDERS:
        assert placeholder not in prompt


def test_sparse_company_renders_without_placeholders() -> None:
    company_context = render_company_context(
        {"domain": "acme.com", "company_contacts": [{"email": "ana@acme.com"}, {"phone": "555"}]},
        [{"created_at": "2025-03-01T15:00:00Z"}, {}],
    )
    company_prompt = format_prompt(PromptMode.LEGACY_COMPANY, ContextBundle(company_context=company_context))
    call_prompt = format_prompt(
        PromptMode.LEGACY_CALL,
        ContextBundle(
            call_context="## CALL TRANSCRIPT DATA",
            previous_calls=[CallSummary(transcript_id=1, created_at="2025-03-01T15:00:00Z")],
            company=CompanyProfile(id=7, domain="acme.com"),
        ),
    )

    assert "### Company Details\n- **Domain**: acme.com" in company_prompt
    assert "**Name**" not in company_prompt
    assert "### Contacts\n- **ana@acme.com**\n" in company_prompt
    assert "555" not in company_prompt
    assert "### Recent Calls (2 calls)\n- 2025-03-01\n" in company_prompt
    assert "### Previous Calls with This Company\n1. (2025-03-01)" in call_prompt
    assert "- Domain: acme.com" in call_prompt
    assert "- Name:" not in call_prompt
    for placeholder in PLACEHOLDERS:
        assert placeholder not in company_prompt
        assert placeholder not in call_prompt
