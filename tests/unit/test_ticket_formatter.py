"""Tests for priority heuristics and ticket rendering"""

from memrag.domain.models.conversation_state import CategorySuggestion, TicketFields, UserDetails
from memrag.domain.orchestration.triage.ticket_formatter import (
    NOT_PROVIDED, PriorityAssessment, assess_priority_by_keywords, format_ticket,
)

CRITICAL = ["down", "outage", "production"]
URGENT = ["urgent", "deadline", "blocked"]


class TestKeywordAssessment:
    """Keyword screening used to seed and back up the model."""

    def test_critical_keywords(self):
        fields = TicketFields(title="Production database down")

        assessment = assess_priority_by_keywords(fields, CRITICAL, URGENT)

        assert assessment.priority == "Critical"
        assert assessment.urgency == "High"
        assert "down" in assessment.rationale

    def test_urgency_keywords(self):
        fields = TicketFields(description="I am blocked and have a deadline on Friday")

        assessment = assess_priority_by_keywords(fields, CRITICAL, URGENT)

        assert assessment.priority == "High"
        assert assessment.urgency == "High"

    def test_no_indicators(self):
        assessment = assess_priority_by_keywords(TicketFields(title="New mouse please"), CRITICAL, URGENT)

        assert (assessment.priority, assessment.urgency) == ("Medium", "Medium")

    def test_known_levels_win(self):
        fields = TicketFields(title="Production outage", priority="Low", urgency="Low")

        assessment = assess_priority_by_keywords(fields, CRITICAL, URGENT)

        assert (assessment.priority, assessment.urgency) == ("Low", "Low")


class TestPriorityAssessment:
    def test_invalid_levels_default_to_medium(self):
        assessment = PriorityAssessment.model_validate({"priority": "P1", "urgency": None})

        assert (assessment.priority, assessment.urgency) == ("Medium", "Medium")

    def test_normalizes_case(self):
        assessment = PriorityAssessment.model_validate({"priority": "critical", "urgency": "high"})

        assert (assessment.priority, assessment.urgency) == ("Critical", "High")


class TestFormatTicket:
    """Fixed-section ticket document."""

    def _suggestions(self):
        return [
            CategorySuggestion(category="Network", subcategory="VPN", confidence=0.9, reasoning="VPN error"),
            CategorySuggestion(category="Hardware", subcategory="Laptop", confidence=0.3, reasoning="laptop"),
            CategorySuggestion(category="Software", subcategory="Client", confidence=0.6, reasoning="client app"),
            CategorySuggestion(category="Access", subcategory="Accounts", confidence=0.1, reasoning="login"),
        ]

    def test_sections_present(self):
        fields = TicketFields(
            title="VPN error 809",
            description="VPN client fails to connect since the update",
            user_details=UserDetails(name="Dana Lee", email="dana@example.com"),
        )
        assessment = PriorityAssessment(priority="High", urgency="Medium", rationale="Blocks remote work")

        ticket = format_ticket(fields, self._suggestions(), assessment)

        for section in (
            "SUPPORT TICKET", "SUMMARY", "DESCRIPTION", "USER DETAILS", "IMPACT",
            "TECHNICAL DETAILS", "CATEGORIZATION", "PRIORITY RATIONALE",
        ):
            assert section in ticket
        assert "VPN error 809" in ticket
        assert "Dana Lee" in ticket
        assert "Blocks remote work" in ticket
        assert "Priority:  High" in ticket

    def test_missing_values_rendered_as_not_provided(self):
        ticket = format_ticket(TicketFields(title="X"), [], PriorityAssessment())

        assert f"Department: {NOT_PROVIDED}" in ticket
        assert "Alternatives" not in ticket

    def test_category_falls_back_to_best_suggestion(self):
        ticket = format_ticket(TicketFields(title="X"), self._suggestions(), PriorityAssessment())

        assert "Category:    Network" in ticket
        assert "Subcategory: VPN" in ticket

    def test_lists_top_three_alternatives_by_confidence(self):
        ticket = format_ticket(TicketFields(title="X", category="Network"), self._suggestions(), PriorityAssessment())

        alternatives = ticket.split("Alternatives:")[1].split("PRIORITY RATIONALE")[0]
        assert alternatives.index("Network") < alternatives.index("Software") < alternatives.index("Hardware")
        assert "Access" not in alternatives
