"""Render transcript and company rows into markdown context blocks."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from services.agent.decoders import (
    as_dict,
    as_float,
    as_list,
    as_str_list,
    as_text,
    format_date,
    format_duration,
    format_score,
)

MAX_TRANSCRIPT_SENTENCES = 100


def _bullets(items: List[str], indent: str = "") -> List[str]:
    return [f"{indent}- {item}" for item in items]


def _person_line(name: Optional[str], email: Optional[str]) -> Optional[str]:
    if name and email:
        return f"- {name} ({email})"
    if name or email:
        return f"- {name or email}"
    return None


def _people(lines: List[Optional[str]]) -> List[str]:
    return [line for line in lines if line]


def render_call_context(transcript: Dict[str, Any]) -> str:
    """
    Render one transcript row (scores, analysis, summary and the opening of
    the conversation) as the call context block. Fields the row lacks are
    left out rather than shown as placeholders.
    """
    lines = ["## CALL TRANSCRIPT DATA", "", "### Call Details"]
    title = as_text(transcript.get("title"))
    if title:
        lines.append(f"- **Title**: {title}")
    duration = format_duration(transcript.get("duration"))
    if duration:
        lines.append(f"- **Duration**: {duration}")
    call_date = format_date(transcript.get("created_at"))
    if call_date:
        lines.append(f"- **Date**: {call_date}")
    overall = as_float(transcript.get("ai_overall_score"))
    if overall is not None:
        lines.append(f"- **Overall Score**: {format_score(overall)}")

    participants = _people(
        [
            _person_line(as_text(p.get("name")), as_text(p.get("email")))
            for p in as_list(transcript.get("participants"))
            if isinstance(p, dict)
        ]
    )
    if participants:
        lines += ["", "### Participants"] + participants

    attendees = _people(
        [
            _person_line(as_text(a.get("displayName")) or as_text(a.get("name")), as_text(a.get("email")))
            for a in as_list(transcript.get("meeting_attendees"))
            if isinstance(a, dict)
        ]
    )
    if attendees:
        lines += ["", "### Meeting Attendees"] + attendees

    scores = as_dict(transcript.get("ai_scores"))
    if scores:
        lines += ["", "### AI Scores Breakdown"]
        lines += [f"- **{key}**: {value}" for key, value in scores.items() if value is not None]

    analysis = as_dict(transcript.get("ai_analysis"))
    if analysis:
        lines += ["", "### AI Analysis"]
        for key, value in analysis.items():
            if isinstance(value, str) and value.strip():
                lines += ["", f"**{key}**:", value.strip()]
            elif isinstance(value, list):
                items = as_str_list(value)
                if items:
                    lines += ["", f"**{key}**:"] + _bullets(items)

    alert_lines = []
    for alert in as_list(transcript.get("ai_deal_risk_alerts")):
        if isinstance(alert, str) and alert.strip():
            alert_lines.append(f"- {alert.strip()}")
        elif isinstance(alert, dict):
            label = as_text(alert.get("alert")) or as_text(alert.get("type"))
            description = as_text(alert.get("description"))
            if label and description:
                alert_lines.append(f"- **{label}**: {description}")
            elif label or description:
                alert_lines.append(f"- **{label}**" if label else f"- {description}")
    if alert_lines:
        lines += ["", "### Deal Risk Alerts"] + alert_lines

    gaps = as_str_list(transcript.get("ai_qualification_gaps"))
    if gaps:
        lines += ["", "### Qualification Gaps"] + _bullets(gaps)

    lines += _render_summary(transcript.get("summary"))

    sentences = [s for s in as_list(transcript.get("sentences")) if isinstance(s, dict) and as_text(s.get("text"))]
    if sentences:
        shown = sentences[:MAX_TRANSCRIPT_SENTENCES]
        lines += ["", f"### Conversation Transcript (First {len(shown)} exchanges)"]
        for s in shown:
            speaker = as_text(s.get("speaker_name"))
            text = as_text(s.get("text"))
            lines.append(f"**{speaker}**: {text}" if speaker else text)
        if len(sentences) > MAX_TRANSCRIPT_SENTENCES:
            lines += ["", f"... and {len(sentences) - MAX_TRANSCRIPT_SENTENCES} more exchanges."]

    return "\n".join(lines)


def _render_summary(summary: Any) -> List[str]:
    if isinstance(summary, str):
        return ["", "### Call Summary", summary.strip()] if summary.strip() else []
    summary = as_dict(summary)
    if not summary:
        return []
    lines = ["", "### Call Summary"]
    overview = as_text(summary.get("overview"))
    if overview:
        lines += ["", f"**Overview**: {overview}"]
    keywords = as_str_list(summary.get("keywords"))
    if keywords:
        lines += ["", f"**Keywords**: {', '.join(keywords)}"]
    for key, label in (
        ("action_items", "Action Items"),
        ("outline", "Discussion Outline"),
        ("shorthand_bullet", "Key Points"),
    ):
        items = as_str_list(summary.get(key))
        if items:
            lines += ["", f"**{label}**:"] + _bullets(items)
    return lines if len(lines) > 2 else []


def render_company_context(company: Dict[str, Any], calls: List[Dict[str, Any]]) -> str:
    """Render a company row plus its most recent calls."""
    details = []
    name = as_text(company.get("company_name"))
    if name:
        details.append(f"- **Name**: {name}")
    domain = as_text(company.get("domain"))
    if domain:
        details.append(f"- **Domain**: {domain}")
    created = format_date(company.get("created_at"))
    if created:
        details.append(f"- **Created**: {created}")
    lines = ["## COMPANY DATA"]
    if details:
        lines += ["", "### Company Details"] + details

    goal = as_text(company.get("company_goal_objective"))
    if goal:
        lines += ["", "### Company Goal/Objective", goal]

    for key, heading in (
        ("pain_points", "Pain Points"),
        ("ai_recommendations", "AI Recommendations"),
        ("risk_summary", "Risk Summary"),
        ("ai_relationship", "Relationship Insights"),
    ):
        items = as_str_list(company.get(key))
        if items:
            lines += ["", f"### {heading}"] + _bullets(items)
        # Contacts sit between pain points and recommendations
        if key == "pain_points":
            lines += _render_contacts(company.get("company_contacts"))

    if calls:
        lines += ["", f"### Recent Calls ({len(calls)} calls)"]
        for call in calls:
            parts = []
            title = as_text(call.get("title"))
            if title:
                parts.append(f"**{title}**")
            duration = format_duration(call.get("duration"))
            if duration:
                parts.append(duration)
            score = as_float(call.get("ai_overall_score"))
            if score is not None:
                parts.append(f"Score: {format_score(score)}")
            call_date = format_date(call.get("created_at"))
            if call_date:
                parts.append(call_date)
            if parts:
                lines.append("- " + " - ".join(parts))

        scores = [s for s in (as_float(c.get("ai_overall_score")) for c in calls) if s is not None]
        if scores:
            lines += ["", f"**Average Call Score**: {sum(scores) / len(scores):.1f}/100"]

    return "\n".join(lines)


def _render_contacts(contacts: Any) -> List[str]:
    lines = []
    for contact in as_list(contacts):
        if not isinstance(contact, dict):
            continue
        name = as_text(contact.get("name"))
        email = as_text(contact.get("email"))
        if not (name or email):
            continue
        line = f"- **{name or email}**"
        title = as_text(contact.get("title"))
        phone = as_text(contact.get("phone"))
        if title:
            line += f" - {title}"
        if email and name:
            line += f" ({email})"
        if phone:
            line += f" | {phone}"
        lines.append(line)
    return ["", "### Contacts"] + lines if lines else []
