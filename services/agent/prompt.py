"""System prompt templates for the sales coach agent.

``format_prompt(mode, bundle)`` is pure: the same bundle always renders to the
same text. Optional fields that are missing are left out entirely.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Optional

from lib.models import (
    CallSummary,
    CompanyProfile,
    ContextBundle,
    IcpEnrichment,
    PageType,
    PromptMode,
    UserProfile,
)
from lib.workspace_search import NO_RESULTS_MESSAGE
from services.agent.decoders import format_date, format_score

NO_CALL_DATA = "No call data found for the selected call."
NO_COMPANY_DATA = "No company data found for the selected company."
NO_PAGE_DATA = "No workspace data could be loaded for this page."
LIMITED_CONTEXT_MESSAGE = (
    "Limited context available: your workspace data could not be retrieved for this question. "
    "Answer from general sales expertise, say so, and suggest selecting a specific call or company "
    "for a detailed analysis."
)
NO_CONTEXT_MESSAGE = (
    "No call or company is currently selected. Answer from general sales expertise, and suggest "
    "selecting a specific call or company when the question needs the user's own data."
)

COMMUNICATION_STYLE = """## Communication Style
- Be direct and actionable
- Reference specific data points from the context
- Prioritize insights that can improve sales outcomes
- Use markdown formatting for clarity
- Be concise but thorough"""

ASSISTANT_CAPABILITIES = """## Your Capabilities
- Analyze call transcripts and identify key insights
- Evaluate sales performance and scoring
- Identify deal risks and qualification gaps
- Provide actionable recommendations
- Answer questions about specific details in the data"""

ASSISTANT_GUIDELINES = """## Guidelines
1. Always reference specific data when answering questions
2. If asked about something not in the context, acknowledge the limitation
3. Provide actionable insights when relevant
4. Be helpful and professional
5. When analyzing calls, focus on sales effectiveness and customer engagement
6. When analyzing companies, focus on relationship health and opportunities"""

ROLE_GUIDANCE = """**Important:** When scoring or coaching this rep, consider their role. Different roles have different expectations:
- HR reps may focus more on people and culture topics
- Sales reps should excel at objection handling and closing techniques
- Engineering reps may dive deeper into technical details
- Customer Success reps prioritize relationship building and support
Adjust your criteria and feedback to their specific role context."""

CALL_TYPE_HINTS = {
    "discovery": "This is a discovery call - focus on understanding pain points and qualifying the opportunity.",
    "followup": "This is a follow-up call - build on previous context and advance the deal.",
    "demo": "This is a demo call - focus on value communication and addressing concerns.",
    "closing": "This is a closing call - focus on handling objections and securing next steps.",
}

DATABASE_SCHEMA_CONTEXT = """## Database Schema (Your Data Access)

### transcripts (Call Records)
- id, user_id, title, duration (minutes)
- sentences (JSONB) - Full transcript with speaker_name, text
- participants (JSONB) - Meeting attendees
- summary (JSONB) - Overview, keywords, action_items, outline
- ai_overall_score (0-100)
- ai_category_breakdown (JSONB) - Scores by category (engagement, discovery, etc.)
- ai_analysis (JSONB) - Deal signal reason, call context, strengths, weaknesses
- ai_deal_risk_alerts (JSONB) - Array of {type, description, how_to_address}
- ai_qualification_gaps (JSONB) - MEDDPICC/BANT gaps
- ai_what_worked (JSONB) - Positive highlights
- ai_improvement_areas (JSONB) - Areas to improve
- ai_next_call_game_plan (JSONB) - Array of {action, priority}
- deal_signal (varchar) - healthy/at_risk/critical
- call_type (varchar) - discovery/followup/demo/closing
- created_at, updated_at

### companies (Detected Companies)
- id, company_name, domain
- pain_points (JSONB array)
- company_contacts (JSONB) - Contact list with name, email, title
- company_goal_objective (text)
- ai_recommendations (JSONB array)
- risk_summary (JSONB array)
- ai_relationship (JSONB array)
- ai_deal_risk_alerts (JSONB array)

### company_calls (Links Transcripts to Companies)
- company_id, transcript_id, created_at

### teams & membership
- teams: id, team_name, active, created_at, updated_at
- team_org: team_id, user_id, team_role_id, is_sales_manager, active
- team_roles: id, role_name, description (Admin, Sales Manager, Member)

### coaching_notes
- user_id, coach_id, note, created_at"""

PAGE_PROMPTS: Dict[PageType, str] = {
    PageType.DASHBOARD: """# AI Sales Coach - Personal Dashboard

You are an expert AI Sales Coach with full access to this user's complete sales data and performance history.

## Your Role
Provide personalized coaching and insights based on the user's recent performance, trends, and activities.

## Your Capabilities
1. **Performance Analysis**: Analyze call scores, trends, and patterns over time
2. **Strength Recognition**: Identify what the user does well and celebrate wins
3. **Improvement Areas**: Pinpoint specific areas needing focus with actionable advice
4. **Trend Detection**: Spot patterns in performance (improving/declining categories)
5. **Benchmarking**: Compare against personal bests and targets
6. **Proactive Coaching**: Surface insights before being asked""",
    PageType.CALLS: """# AI Sales Coach - Calls Library

You are an expert AI Sales Coach analyzing this user's complete library of sales calls.

## Your Role
Help the user understand patterns across their calls, identify best practices, and find areas for improvement.

## Your Capabilities
1. **Call Pattern Analysis**: Find common themes across calls
2. **Top Performer Analysis**: Identify what makes the best calls successful
3. **Problem Detection**: Spot recurring issues or weaknesses
4. **Comparative Analysis**: Compare call performance over time
5. **Best Practice Extraction**: Distill actionable best practices
6. **Call Recommendations**: Suggest which calls to review for learning""",
    PageType.CALL_DETAIL: """# AI Sales Coach - Call Analysis{title}

You are an expert AI Sales Coach providing deep analysis of this specific sales call.

## Your Role
Provide comprehensive coaching on this call - what worked, what could improve, and how to apply lessons to future calls.

## Your Capabilities
1. **Score Breakdown**: Explain why the call received its scores
2. **Moment Analysis**: Reference specific moments in the conversation
3. **Objection Coaching**: Suggest better ways to handle objections that came up
4. **Discovery Deep-Dive**: Assess the quality of discovery and what was missed
5. **Next Steps Planning**: Create actionable game plan for follow-up
6. **Skill Development**: Connect observations to broader skill improvement""",
    PageType.COMPANIES: """# AI Sales Coach - Account Portfolio

You are an expert AI Sales Coach helping manage and analyze the user's account portfolio.

## Your Role
Provide strategic guidance on account relationships, risk management, and opportunity prioritization.

## Your Capabilities
1. **Risk Assessment**: Identify accounts at risk and explain why
2. **Priority Ranking**: Help prioritize accounts by importance/urgency
3. **Pain Point Analysis**: Aggregate and analyze pain points across accounts
4. **Relationship Health**: Assess relationship strength with each account
5. **Strategy Recommendations**: Suggest engagement strategies per account
6. **Portfolio Overview**: Provide high-level portfolio health metrics""",
    PageType.COMPANY_DETAIL: """# AI Sales Coach - Account Deep Dive{title}

You are an expert AI Sales Coach providing strategic guidance for this specific account.

## Your Role
Help the user understand this account deeply and develop effective strategies for engagement.

## Your Capabilities
1. **Relationship Analysis**: Assess the current state of the relationship
2. **Risk Evaluation**: Identify specific risks with this account
3. **Call History Review**: Analyze all calls with this company
4. **Pain Point Mapping**: Understand and address their pain points
5. **Strategy Development**: Create account-specific engagement strategies
6. **Next Steps Planning**: Recommend immediate actions""",
    PageType.TEAM: """# AI Sales Coach - Team Performance{title}

You are an expert AI Sales Coach helping manage and develop a sales team.

## Your Role
Provide insights on team performance, identify coaching opportunities, and help develop the team.

## Your Capabilities
1. **Team Overview**: Summarize overall team performance
2. **Individual Analysis**: Assess each team member's performance
3. **Coaching Prioritization**: Identify who needs coaching most
4. **Best Practice Sharing**: Find best practices from top performers
5. **Development Planning**: Suggest team development activities
6. **Performance Trends**: Track team and individual trends""",
}

WORKSPACE_PROMPT = """# AI Sales Coach

You are an expert AI Sales Coach with full access to this user's sales data.

## Your Role
Help the user improve their sales performance through data-driven insights and coaching.

## Your Capabilities
1. **Workspace Search**: Draw on the calls, companies and notes most relevant to the question
2. **Pattern Spotting**: Connect observations across calls and accounts
3. **Coaching**: Turn findings into specific, prioritized next steps"""

RESPONSE_GUIDELINES = """## Response Guidelines

### Data-Driven Responses
- ALWAYS reference specific data when making claims
- Cite specific calls, scores, or metrics to support insights
- Never ask the user for information that is already in the context
- If data is unavailable, acknowledge it rather than speculating

### Proactive Insights
- Surface relevant insights even when not directly asked
- Connect observations to actionable recommendations
- Prioritize by business impact
- Suggest specific next steps"""

PAGE_GUIDELINES: Dict[PageType, str] = {
    PageType.DASHBOARD: """### Dashboard-Specific
- Lead with the most impactful insight
- Compare recent performance to historical trends
- Highlight both wins and areas to work on
- Suggest specific calls to review if relevant""",
    PageType.CALLS: """### Calls List-Specific
- When asked about patterns, analyze across multiple calls
- Suggest specific calls to review for different learning goals
- Compare high-performing vs low-performing calls
- Identify common objections and how they're handled""",
    PageType.CALL_DETAIL: """### Call Detail-Specific
- Reference specific moments with speaker and context
- Provide alternative phrasings for objection handling
- Create specific, actionable next-call game plan
- Connect insights to skill development areas""",
    PageType.COMPANIES: """### Companies-Specific
- Prioritize accounts by risk/opportunity
- Aggregate pain points by theme
- Suggest specific actions for at-risk accounts
- Provide portfolio-level strategic insights""",
    PageType.COMPANY_DETAIL: """### Company Detail-Specific
- Summarize all interactions with this account
- Identify relationship trajectory (improving/declining)
- Connect pain points to your solution
- Create account-specific engagement plan""",
    PageType.TEAM: """### Team-Specific
- Provide balanced view of team performance
- Identify coaching opportunities by individual
- Share best practices from top performers
- Suggest team-wide development activities""",
}


# ----------------------------------------------------------------------
# Structured fragments
# ----------------------------------------------------------------------


def _tagged(tag: str, body: str) -> str:
    return f"<{tag}>\n{body}\n</{tag}>"


def _join(parts: List[str], separator: str = "\n\n") -> str:
    return separator.join(part for part in parts if part)


def render_previous_calls(calls: List[CallSummary]) -> str:
    if not calls:
        return "### Previous Calls\nThis is the first call with this company."
    lines = ["### Previous Calls with This Company"]
    for index, call in enumerate(calls, start=1):
        heading = f"{index}."
        if call.title:
            heading += f" **{call.title}**"
        call_date = format_date(call.created_at)
        if call_date:
            heading += f" ({call_date})"
        lines.append(heading)
        if call.overall_score is not None:
            lines.append(f"   - Score: {format_score(call.overall_score)}")
        if call.deal_signal:
            lines.append(f"   - Deal Signal: {call.deal_signal}")
        if call.summary:
            lines.append(f"   - Summary: {call.summary}")
    return "\n".join(lines)


def render_company_profile(company: Optional[CompanyProfile]) -> str:
    if company is None:
        return ""
    lines = ["### Company Profile"]
    if company.company_name:
        lines.append(f"- Name: {company.company_name}")
    if company.domain:
        lines.append(f"- Domain: {company.domain}")
    if company.company_goal_objective:
        lines.append(f"- Goal/Objective: {company.company_goal_objective}")
    if company.pain_points:
        lines.append("- Known Pain Points:")
        lines += [f"  - {point}" for point in company.pain_points]
    contacts = [c for c in company.contacts if c.name or c.email]
    if contacts:
        lines.append("- Contacts:")
        for contact in contacts:
            line = f"  - {contact.name or contact.email}"
            if contact.title:
                line += f" ({contact.title})"
            if contact.email and contact.name:
                line += f" - {contact.email}"
            lines.append(line)
    return _tagged("company_profile", "\n".join(lines))


def _role_list(roles) -> str:
    return ", ".join(f"{r.name} ({r.description})" if r.description else r.name for r in roles)


def render_rep_context(profile: Optional[UserProfile]) -> str:
    if profile is None or profile.is_empty():
        return ""
    lines = ["### Rep's Business Context"]
    system_roles = [r for r in profile.team_roles if r.kind == "role"]
    custom_roles = [r for r in profile.team_roles if r.kind == "department"]
    if profile.team_roles:
        lines.append("**Rep's Roles:**")
        if system_roles:
            lines.append(f"- System Role: {_role_list(system_roles)}")
        if custom_roles:
            lines.append(f"- Custom Role(s): {_role_list(custom_roles)}")
        lines += ["", ROLE_GUIDANCE]
    if profile.sales_motion:
        if profile.team_roles:
            lines.append("")
        lines.append(f"**Sales Motion:** {profile.sales_motion}")
    return _tagged("rep_context", "\n".join(lines))


def render_icp(enrichment: Optional[IcpEnrichment]) -> str:
    if enrichment is None or enrichment.is_empty():
        return ""
    blocks: List[str] = ["### Ideal Customer Profile & Positioning"]
    if enrichment.value_proposition:
        blocks.append(f"**Value Proposition:** {enrichment.value_proposition}")
    if enrichment.products:
        blocks.append(
            "\n".join(
                ["**Products/Services:**"]
                + [f"- {p.name}: {p.description}" if p.description else f"- {p.name}" for p in enrichment.products]
            )
        )
    if enrichment.has_icp():
        attributes = [
            ("Industries", enrichment.industries),
            ("Company Size", enrichment.company_sizes),
            ("Regions", enrichment.regions),
            ("Tech Stack", enrichment.tech_stack),
            ("Target Job Titles", enrichment.job_titles),
            ("Common Pain Points", enrichment.pain_points),
            ("Buyer Goals", enrichment.goals),
            ("Buyer Responsibilities", enrichment.responsibilities),
        ]
        lines = [f"- {label}: {', '.join(values)}" for label, values in attributes if values]
        blocks.append("\n".join(["**Ideal Customer Profile:**"] + lines))
    if enrichment.talk_tracks:
        blocks.append("\n".join(["**Key Talk Tracks:**"] + [f"- {t}" for t in enrichment.talk_tracks]))
    if enrichment.objection_handling:
        blocks.append(
            "\n".join(
                ["**Common Objections & Rebuttals:**"]
                + [f'- "{o.objection}" -> "{o.response}"' for o in enrichment.objection_handling]
            )
        )
    return _tagged("icp", "\n\n".join(blocks))


def render_buyer_personas(enrichment: Optional[IcpEnrichment]) -> str:
    if enrichment is None or not enrichment.buyer_personas:
        return ""
    lines = ["### Buyer Personas"]
    for persona in enrichment.buyer_personas:
        line = f"- **{persona.title}**"
        if persona.department:
            line += f" ({persona.department})"
        if persona.notes:
            line += f": {persona.notes}"
        lines.append(line)
        for label, values in (
            ("Responsibilities", persona.responsibilities),
            ("Goals", persona.goals),
            ("Challenges", persona.challenges),
        ):
            if values:
                lines.append(f"  - {label}: {'; '.join(values)}")
    return _tagged("buyer_personas", "\n".join(lines))


def render_call_type(call_type: Optional[str]) -> str:
    if not call_type:
        return ""
    hint = CALL_TYPE_HINTS.get(call_type)
    header = f"### Call Type: {call_type.upper()}"
    return f"{header}\n{hint}" if hint else header


def render_rep_and_icp(bundle: ContextBundle) -> str:
    return _join(
        [
            render_rep_context(bundle.user_profile),
            render_icp(bundle.enrichment),
            render_buyer_personas(bundle.enrichment),
        ]
    )


def render_call_history(bundle: ContextBundle) -> str:
    """Historical grounding for a single call, in fixed section order."""
    return _join(
        [
            render_previous_calls(bundle.previous_calls),
            render_company_profile(bundle.company),
            render_rep_and_icp(bundle),
            render_call_type(bundle.call_type),
        ]
    )


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------


def _assistant_prompt(description: str, subject: Optional[str], context: str) -> str:
    opening = f"You are an expert sales intelligence assistant helping analyze {description}."
    if subject:
        opening += f" You have access to detailed data about the selected {subject}."
    return _join(
        [
            "# Sales Intelligence Assistant",
            opening,
            ASSISTANT_CAPABILITIES,
            COMMUNICATION_STYLE,
            f"## Context Data\n{context}",
            "---",
            ASSISTANT_GUIDELINES,
        ]
    )


def _legacy_call_prompt(bundle: ContextBundle) -> str:
    context = _join([bundle.call_context or NO_CALL_DATA, render_call_history(bundle)])
    return _assistant_prompt("a sales call transcript with analysis", "call", context)


def _legacy_company_prompt(bundle: ContextBundle) -> str:
    context = _join([bundle.company_context or NO_COMPANY_DATA, render_rep_and_icp(bundle)])
    return _assistant_prompt("a company profile with related call history", "company", context)


def _no_context_prompt(bundle: ContextBundle) -> str:
    return _assistant_prompt("sales conversations and accounts", None, NO_CONTEXT_MESSAGE)


def _workspace_prompt(bundle: ContextBundle, empty_message: str) -> str:
    workspace = bundle.workspace_context or empty_message
    return _join(
        [
            WORKSPACE_PROMPT,
            COMMUNICATION_STYLE,
            f"## Relevant Data from User's Workspace\n{workspace}",
            render_rep_and_icp(bundle),
            RESPONSE_GUIDELINES,
        ]
    )


def _semantic_prompt(bundle: ContextBundle) -> str:
    return _workspace_prompt(bundle, NO_RESULTS_MESSAGE)


def _fallback_prompt(bundle: ContextBundle) -> str:
    return _workspace_prompt(bundle, LIMITED_CONTEXT_MESSAGE)


def _page_prompt(bundle: ContextBundle) -> str:
    page_type = bundle.page_type or PageType.DASHBOARD
    title = f": {bundle.page_title}" if bundle.page_title else ""
    workspace = "" if bundle.workspace_context == NO_RESULTS_MESSAGE else bundle.workspace_context
    data = _join([bundle.page_context, workspace]) or NO_PAGE_DATA
    return _join(
        [
            PAGE_PROMPTS[page_type].format(title=title),
            COMMUNICATION_STYLE,
            DATABASE_SCHEMA_CONTEXT,
            f"## Relevant Data from User's Workspace\n{data}",
            render_rep_and_icp(bundle),
            RESPONSE_GUIDELINES + "\n\n" + PAGE_GUIDELINES[page_type],
        ]
    )


_TEMPLATES: Dict[PromptMode, Callable[[ContextBundle], str]] = {
    PromptMode.PAGE_SPECIFIC: _page_prompt,
    PromptMode.SEMANTIC_WORKSPACE: _semantic_prompt,
    PromptMode.LEGACY_CALL: _legacy_call_prompt,
    PromptMode.LEGACY_COMPANY: _legacy_company_prompt,
    PromptMode.FALLBACK_WORKSPACE: _fallback_prompt,
    PromptMode.NO_CONTEXT: _no_context_prompt,
}


def format_prompt(mode: PromptMode, bundle: ContextBundle) -> str:
    """Render the system prompt for a resolved mode."""
    return _TEMPLATES[mode](bundle)
