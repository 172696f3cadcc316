"""End-to-end turns through the phase-routed triage graph"""

import json

import pytest

from memrag.domain.exceptions import GenerationError
from memrag.domain.models.conversation_state import (
    ConversationPhase, TicketFields, UserDetails, initial_conversation_state, next_turn_state,
)
from memrag.domain.models.memory import MemoryEntry
from memrag.domain.orchestration.core.triage_agent import TriageAgentOrchestrator
from memrag.domain.orchestration.prompts import TICKET_CREATED_RESPONSE, TICKET_FAILURE_RESPONSE
from memrag.domain.streaming.streaming_handler import TurnProgressHandler
from tests.conftest import FakeGenerationService

FIRST = "My laptop cannot connect to the VPN since this morning"
SECOND = "I'm Dana Lee, dana.lee@example.com"
THIRD = "The client shows error 809 every time"

EXTRACTIONS = {
    FIRST: {"title": "VPN connection failure", "description": "Laptop cannot connect to the VPN"},
    SECOND: {"userDetails": {"name": "Dana Lee", "email": "dana.lee@example.com"}, "title": ""},
    THIRD: {"technical_details": "Error 809", "priority": None},
}

SUGGESTIONS = [
    {"category": "Network", "subcategory": "VPN", "confidence": 0.9, "reasoning": "VPN runbook match"},
    {"category": "Hardware", "subcategory": "Laptop", "confidence": 0.4, "reasoning": "laptop mentioned"},
]

PRIORITY = {"priority": "high", "urgency": "medium", "rationale": "Remote work is blocked for one user"}

FACTS = {
    "Dana": ("User: Name is Dana Lee, email dana.lee@example.com", "9"),
}


class TriageScript:
    """Routes each generation call to a scripted reply by prompt kind"""

    def __init__(self, extraction=None, categorization=None, priority=None):
        self.extraction = extraction or (lambda query: json.dumps(EXTRACTIONS.get(query, {})))
        self.categorization = categorization or (lambda: json.dumps(SUGGESTIONS))
        self.priority = priority or (lambda: json.dumps(PRIORITY))

    def __call__(self, messages):
        first = messages[0]["content"]
        if first.startswith("You are an IT helpdesk triage assistant"):
            return "Thanks for the details.\nCould you tell me a bit more?"
        if first.startswith("Extract helpdesk ticket fields"):
            query = first.split("user: ")[-1].split("\nassistant: ")[0]
            return self.extraction(query)
        if first.startswith("Suggest helpdesk categories"):
            return self.categorization()
        if first.startswith("Assess the priority"):
            return self.priority()
        raise AssertionError(f"Unexpected prompt: {first[:60]}")


@pytest.fixture
def manager(make_manager):
    return make_manager(FACTS)


def build_agent(manager, retriever, script=None):
    generation = FakeGenerationService(handler=script or TriageScript())
    agent = TriageAgentOrchestrator(
        manager,
        retriever,
        generation,
        critical_keywords=["outage", "production"],
        high_urgency_keywords=["blocked", "urgent"],
    )
    return agent, generation


async def run_conversation(agent, queries):
    state = initial_conversation_state(triage=True)
    states = []
    for query in queries:
        state = await agent.run_turn(next_turn_state(state, query))
        states.append(state)
    return states


class TestTriageConversation:
    """Phase progression from first report to filed ticket."""

    async def test_first_turn_moves_to_gathering(self, manager, retriever):
        agent, _ = build_agent(manager, retriever)

        [state] = await run_conversation(agent, [FIRST])

        assert state["phase_at_turn_start"] == ConversationPhase.INITIAL_ASSESSMENT
        assert state["conversation_phase"] == ConversationPhase.GATHERING_DETAILS
        assert state["question_count"] == 1
        assert state["questions_asked"] == ["Could you tell me a bit more?"]
        assert state["ticket_fields"].title == "VPN connection failure"
        assert state["suggested_categories"][0].category == "Network"
        assert state["ticket_fields"].category == "Network"
        assert state["ticket_fields"].subcategory == "VPN"
        assert state["formatted_ticket"] == ""

    async def test_full_conversation_files_ticket(self, manager, retriever, store):
        agent, generation = build_agent(manager, retriever)

        first, second, third = await run_conversation(agent, [FIRST, SECOND, THIRD])

        # Required fields known after turn two, but only two questions asked
        assert second["conversation_phase"] == ConversationPhase.GATHERING_DETAILS
        assert second["ticket_fields"].title == "VPN connection failure"
        assert second["ticket_fields"].user_details.name == "Dana Lee"

        assert third["question_count"] == 3
        assert third["conversation_phase"] == ConversationPhase.COMPLETE
        assert third["agent_response"].startswith(TICKET_CREATED_RESPONSE)
        ticket = third["formatted_ticket"]
        assert "SUPPORT TICKET" in ticket
        assert "Dana Lee" in ticket
        assert "Error 809" in ticket
        assert "Remote work is blocked" in ticket
        assert third["ticket_fields"].priority == "High"
        assert third["ticket_fields"].urgency == "Medium"
        assert len(third["conversation_history"]) == 6
        assert len(third["questions_asked"]) == 3

        assert sum(p.startswith("Assess the priority") for p in generation.prompts()) == 1

    async def test_ticket_and_user_details_are_recorded(self, manager, retriever):
        agent, _ = build_agent(manager, retriever)
        oracle_prompts = manager.oracle.generation.prompts

        await run_conversation(agent, [FIRST, SECOND, THIRD])

        extraction_prompts = [p for p in oracle_prompts() if p.startswith("Decide whether")]
        ticket_records = [p for p in extraction_prompts if "I just filed a support ticket" in p]
        detail_records = [p for p in extraction_prompts if "For your records: my name is Dana Lee" in p]
        assert len(ticket_records) == 1
        assert len(detail_records) == 2

    async def test_complete_conversation_stays_complete(self, manager, retriever):
        agent, generation = build_agent(manager, retriever)

        states = await run_conversation(agent, [FIRST, SECOND, THIRD, "Thanks, how long will it take?"])
        last = states[-1]

        assert last["phase_at_turn_start"] == ConversationPhase.COMPLETE
        assert last["conversation_phase"] == ConversationPhase.COMPLETE
        assert last["question_count"] == 3
        assert last["formatted_ticket"] == states[2]["formatted_ticket"]
        assert sum(p.startswith("Assess the priority") for p in generation.prompts()) == 1

    async def test_contact_details_filled_from_memory(self, manager, retriever, store):
        store.insert(MemoryEntry(content="User: Name is Dana Lee, email dana.lee@example.com", importance_score=9.0))
        agent, _ = build_agent(manager, retriever)

        [state] = await run_conversation(agent, [FIRST])

        assert state["ticket_fields"].user_details.name == "Dana Lee"
        assert state["ticket_fields"].user_details.email == "dana.lee@example.com"

    async def test_progress_skips_ticket_generator_while_gathering(self, manager, retriever):
        agent, _ = build_agent(manager, retriever)
        handler = TurnProgressHandler()

        await agent.run_turn(next_turn_state(initial_conversation_state(triage=True), FIRST), handler)

        assert handler.completed_nodes == [
            "query_processor", "memory_retrieval", "conversation", "extraction",
            "categorization", "routing_decision", "memory_update",
        ]


class TestTriageDegradation:
    """Collaborator failures never abort a turn."""

    async def test_malformed_extraction_keeps_prior_fields(self, manager, retriever):
        script = TriageScript(extraction=lambda query: "I could not find anything")
        agent, _ = build_agent(manager, retriever, script)
        state = next_turn_state(initial_conversation_state(triage=True), SECOND)
        state["ticket_fields"] = TicketFields(title="Printer jam")

        result = await agent.run_turn(state)

        assert result["ticket_fields"].title == "Printer jam"
        assert result["agent_response"].startswith("Thanks for the details.")

    async def test_malformed_categories_keep_documents(self, manager, retriever):
        agent, _ = build_agent(manager, retriever, TriageScript(categorization=lambda: "Network, probably"))

        [state] = await run_conversation(agent, [FIRST])

        assert state["suggested_categories"] == []
        assert state["ticket_fields"].category is None
        assert len(state["retrieved_documents"]) == 5

    async def test_ticket_failure_returns_to_gathering(self, manager, retriever):
        script = TriageScript(priority=lambda: GenerationError("provider down"))
        agent, _ = build_agent(manager, retriever, script)

        states = await run_conversation(agent, [FIRST, SECOND, THIRD])
        third = states[-1]

        assert third["conversation_phase"] == ConversationPhase.GATHERING_DETAILS
        assert third["agent_response"] == TICKET_FAILURE_RESPONSE
        assert third["formatted_ticket"] == ""

    async def test_ticket_retried_on_next_turn(self, manager, retriever):
        attempts = []

        def flaky_priority():
            attempts.append(1)
            if len(attempts) == 1:
                return GenerationError("provider down")
            return json.dumps(PRIORITY)

        agent, _ = build_agent(manager, retriever, TriageScript(priority=flaky_priority))

        states = await run_conversation(agent, [FIRST, SECOND, THIRD, "Any update?"])

        assert states[2]["conversation_phase"] == ConversationPhase.GATHERING_DETAILS
        assert states[3]["conversation_phase"] == ConversationPhase.COMPLETE
        assert "SUPPORT TICKET" in states[3]["formatted_ticket"]

    async def test_malformed_priority_falls_back_to_keywords(self, manager, retriever):
        agent, _ = build_agent(manager, retriever, TriageScript(priority=lambda: "High, I think"))
        state = initial_conversation_state(triage=True)
        state.update({
            "conversation_phase": ConversationPhase.GATHERING_DETAILS,
            "question_count": 2,
            "ticket_fields": TicketFields(
                title="Urgent: VPN down",
                description="I am blocked from working remotely",
                user_details=UserDetails(name="Dana Lee", email="dana.lee@example.com"),
            ),
        })

        result = await agent.run_turn(next_turn_state(state, "Please hurry"))

        assert result["conversation_phase"] == ConversationPhase.COMPLETE
        assert result["ticket_fields"].priority == "High"
        assert result["ticket_fields"].urgency == "High"
        assert "urgency indicators: blocked, urgent" in result["formatted_ticket"]

    async def test_forced_limit_waits_for_required_fields(self, manager, retriever):
        """Past the question limit, a ticket still needs the user's email."""
        agent, _ = build_agent(manager, retriever, TriageScript(extraction=lambda query: "{}"))
        state = initial_conversation_state(triage=True)
        state.update({
            "conversation_phase": ConversationPhase.GATHERING_DETAILS,
            "question_count": 7,
            "ticket_fields": TicketFields(
                title="VPN failure",
                description="Cannot connect",
                user_details=UserDetails(name="Dana Lee"),
            ),
        })

        result = await agent.run_turn(next_turn_state(state, "Is it fixed yet?"))

        assert result["conversation_phase"] == ConversationPhase.GATHERING_DETAILS
        assert result["formatted_ticket"] == ""
