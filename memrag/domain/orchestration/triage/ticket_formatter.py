from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, field_validator

from memrag.domain.models.conversation_state import (
    CategorySuggestion, TicketFields, PRIORITY_LEVELS, URGENCY_LEVELS, normalize_level,
)

NOT_PROVIDED = "Not provided"


class PriorityAssessment(BaseModel):
    """Priority and urgency with the reasoning behind them"""
    priority: str = "Medium"
    urgency: str = "Medium"
    rationale: str = ""

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value: Any) -> str:
        return normalize_level(value, PRIORITY_LEVELS) or "Medium"

    @field_validator("urgency", mode="before")
    @classmethod
    def normalize_urgency(cls, value: Any) -> str:
        return normalize_level(value, URGENCY_LEVELS) or "Medium"


def _matching(text: str, keywords: Iterable[str]) -> List[str]:
    lowered = text.lower()
    return [keyword for keyword in keywords if keyword.lower() in lowered]


def assess_priority_by_keywords(
    fields: TicketFields,
    critical_keywords: Iterable[str],
    high_urgency_keywords: Iterable[str],
) -> PriorityAssessment:
    """Keyword heuristic used to seed and back up the model's assessment"""

    text = " ".join(
        part for part in (fields.title, fields.description, fields.impact_details, fields.technical_details)
        if part
    )
    critical = _matching(text, critical_keywords)
    urgent = _matching(text, high_urgency_keywords)

    priority = fields.priority or ("Critical" if critical else "High" if urgent else "Medium")
    urgency = fields.urgency or ("High" if urgent or critical else "Medium")

    reasons = []
    if critical:
        reasons.append(f"critical indicators: {', '.join(critical)}")
    if urgent:
        reasons.append(f"urgency indicators: {', '.join(urgent)}")
    rationale = "; ".join(reasons) or "No critical or urgency indicators found."

    return PriorityAssessment(priority=priority, urgency=urgency, rationale=rationale)


def _value(value: Optional[str]) -> str:
    return value if value and value.strip() else NOT_PROVIDED


def format_ticket(
    fields: TicketFields,
    suggestions: List[CategorySuggestion],
    assessment: PriorityAssessment,
) -> str:
    """Render the final ticket document"""

    details = fields.user_details
    ranked = sorted(suggestions, key=lambda s: s.confidence, reverse=True)
    category = fields.category or (ranked[0].category if ranked else None)
    subcategory = fields.subcategory or (ranked[0].subcategory if ranked else None)

    lines = [
        "=" * 60,
        "SUPPORT TICKET",
        "=" * 60,
        "",
        "SUMMARY",
        f"  Title:     {_value(fields.title)}",
        f"  Priority:  {assessment.priority}",
        f"  Urgency:   {assessment.urgency}",
        "",
        "DESCRIPTION",
        f"  {_value(fields.description)}",
        "",
        "USER DETAILS",
        f"  Name:       {_value(details.name)}",
        f"  Email:      {_value(details.email)}",
        f"  Department: {_value(details.department)}",
        f"  Location:   {_value(details.location)}",
        "",
        "IMPACT",
        f"  {_value(fields.impact_details)}",
        "",
        "TECHNICAL DETAILS",
        f"  {_value(fields.technical_details)}",
        "",
        "CATEGORIZATION",
        f"  Category:    {_value(category)}",
        f"  Subcategory: {_value(subcategory)}",
    ]

    alternatives = ranked[:3]
    if alternatives:
        lines.append("  Alternatives:")
        for suggestion in alternatives:
            lines.append(
                f"    - {suggestion.category} / {suggestion.subcategory or '-'} "
                f"({suggestion.confidence:.0%}): {suggestion.reasoning}"
            )

    lines.extend([
        "",
        "PRIORITY RATIONALE",
        f"  {assessment.rationale or NOT_PROVIDED}",
        "=" * 60,
    ])
    return "\n".join(lines)
