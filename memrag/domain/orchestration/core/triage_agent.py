import json
from typing import Dict, Any, Iterable, List, Literal, Optional
from langgraph.graph import StateGraph, END
import structlog

from memrag.domain.context.knowledge.knowledge_retriever import KnowledgeRetriever
from memrag.domain.context.memory.memory_manager import MemoryManager
from memrag.domain.models.conversation_state import (
    ConversationState, ConversationPhase, TicketFields, CategorySuggestion,
)
from memrag.domain.orchestration.core.main_agent import AgentOrchestrator, format_documents
from memrag.domain.orchestration.prompts import (
    TRIAGE_SYSTEM_PROMPT, PHASE_GUIDANCE, EXTRACTION_PROMPT, CATEGORIZATION_PROMPT,
    PRIORITY_PROMPT, TICKET_FAILURE_RESPONSE, TICKET_CREATED_RESPONSE,
)
from memrag.domain.orchestration.triage.routing import RoutingPolicy, next_phase
from memrag.domain.orchestration.triage.structured_output import parse_json_response
from memrag.domain.orchestration.triage.ticket_fields import (
    merge_ticket_fields, parse_ticket_extraction, extract_user_details,
    fill_missing_user_details, summarize_ticket_fields,
)
from memrag.domain.orchestration.triage.ticket_formatter import (
    PriorityAssessment, assess_priority_by_keywords, format_ticket,
)
from memrag.domain.exceptions import StructuredOutputError
from memrag.infrastructure.llm.generation import GenerationService
from memrag.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

HISTORY_WINDOW = 10


class TriageAgentOrchestrator(AgentOrchestrator):
    """Helpdesk triage agent: walks a conversation from first report to filed ticket.

    Phases advance initial_assessment -> gathering_details ->
    generating_ticket -> complete through ``routing.TRANSITIONS``; the
    ticket generator only runs on turns that route into generating_ticket,
    and a failed generation drops the conversation back to gathering_details
    so the next turn retries.
    """

    def __init__(
        self,
        memory_manager: MemoryManager,
        retriever: KnowledgeRetriever,
        generation: GenerationService,
        routing_policy: Optional[RoutingPolicy] = None,
        category_search_top_k: int = 10,
        critical_keywords: Iterable[str] = (),
        high_urgency_keywords: Iterable[str] = (),
        memory_context_size: int = 5,
    ):
        self.routing_policy = routing_policy or RoutingPolicy()
        self.category_search_top_k = category_search_top_k
        self.critical_keywords = list(critical_keywords)
        self.high_urgency_keywords = list(high_urgency_keywords)
        super().__init__(
            memory_manager,
            retriever,
            generation,
            memory_context_size=memory_context_size,
        )

    def _create_workflow(self):
        """Create the phase-routed triage graph"""

        workflow = StateGraph(ConversationState)

        workflow.add_node("query_processor", self.query_processor_node)
        workflow.add_node("memory_retrieval", self.memory_retrieval_node)
        workflow.add_node("conversation", self.conversation_node)
        workflow.add_node("extraction", self.extraction_node)
        workflow.add_node("categorization", self.categorization_node)
        workflow.add_node("routing_decision", self.routing_decision_node)
        workflow.add_node("ticket_generator", self.ticket_generator_node)
        workflow.add_node("memory_update", self.memory_update_node)

        workflow.set_entry_point("query_processor")

        workflow.add_edge("query_processor", "memory_retrieval")
        workflow.add_edge("memory_retrieval", "conversation")
        workflow.add_edge("conversation", "extraction")
        workflow.add_edge("extraction", "categorization")
        workflow.add_edge("categorization", "routing_decision")

        workflow.add_conditional_edges(
            "routing_decision",
            self.route_after_decision,
            {
                "generate_ticket": "ticket_generator",
                "update_memory": "memory_update",
            }
        )

        workflow.add_edge("ticket_generator", "memory_update")
        workflow.add_edge("memory_update", END)

        return workflow.compile()

    async def query_processor_node(self, state: ConversationState) -> Dict[str, Any]:
        """Normalize input and fill triage defaults on the first turn"""

        patch = await super().query_processor_node(state)

        phase = ConversationPhase(state.get("conversation_phase") or ConversationPhase.INITIAL_ASSESSMENT)
        patch["conversation_phase"] = phase
        patch["phase_at_turn_start"] = phase

        if state.get("ticket_fields") is None:
            patch["ticket_fields"] = TicketFields()
        if state.get("question_count") is None:
            patch["question_count"] = 0
        if state.get("suggested_categories") is None:
            patch["suggested_categories"] = []
        if state.get("formatted_ticket") is None:
            patch["formatted_ticket"] = ""

        return patch

    async def memory_retrieval_node(self, state: ConversationState) -> Dict[str, Any]:
        """Pull memories and mine them for contact details not yet known"""

        patch = await super().memory_retrieval_node(state)

        memories = patch["active_memories"] + patch["recalled_memories"]
        found = extract_user_details(m.content for m in memories)

        fields = state.get("ticket_fields") or TicketFields()
        user_details = fill_missing_user_details(fields.user_details, found)
        if user_details != fields.user_details:
            patch["ticket_fields"] = fields.model_copy(update={"user_details": user_details})

        return patch

    async def conversation_node(self, state: ConversationState) -> Dict[str, Any]:
        """Reply to the user and ask for whatever the ticket still needs"""

        phase = ConversationPhase(state.get("conversation_phase", ConversationPhase.INITIAL_ASSESSMENT))
        system_prompt = TRIAGE_SYSTEM_PROMPT.format(
            phase=phase.value,
            phase_guidance=PHASE_GUIDANCE[phase.value],
        )

        messages = [{"role": "system", "content": system_prompt}]
        context = self._build_triage_context(state)
        if context:
            messages.append({"role": "system", "content": f"CONTEXT:\n{context}"})
        messages.extend(state.get("conversation_history", [])[-HISTORY_WINDOW:])
        messages.append({"role": "user", "content": state.get("user_query", "")})

        response = await self._complete_or_fallback(messages)
        patch: Dict[str, Any] = {"agent_response": response}

        if phase != ConversationPhase.COMPLETE:
            questions = self._questions_in(response)
            if questions:
                patch["questions_asked"] = questions
                patch["question_count"] = state.get("question_count", 0) + 1

        return patch

    async def extraction_node(self, state: ConversationState) -> Dict[str, Any]:
        """Fold ticket details from this exchange into the known fields"""

        existing = state.get("ticket_fields") or TicketFields()
        prompt = EXTRACTION_PROMPT.format(
            known_fields=existing.model_dump_json(exclude_none=True),
            conversation=self._transcript(state),
        )

        try:
            response = await self.generation.complete([{"role": "user", "content": prompt}])
            extracted = parse_ticket_extraction(parse_json_response(response))
        except StructuredOutputError as e:
            logger.warning("Ticket extraction unparseable", error=str(e))
            return {}
        except Exception as e:
            logger.warning("Ticket extraction failed", error=str(e))
            return {}

        return {"ticket_fields": merge_ticket_fields(existing, extracted)}

    async def categorization_node(self, state: ConversationState) -> Dict[str, Any]:
        """Suggest categories from knowledge base matches"""

        fields = state.get("ticket_fields") or TicketFields()
        issue = "\n".join(
            part for part in (fields.title, fields.description, state.get("processed_query")) if part
        )

        documents = await self._search_knowledge(issue, self.category_search_top_k)
        patch: Dict[str, Any] = {"retrieved_documents": documents}
        if not documents:
            return patch

        prompt = CATEGORIZATION_PROMPT.format(issue=issue, documents=format_documents(documents))
        try:
            response = await self.generation.complete([{"role": "user", "content": prompt}])
            suggestions = self._parse_suggestions(parse_json_response(response))
        except StructuredOutputError as e:
            logger.warning("Category suggestions unparseable", error=str(e))
            return patch
        except Exception as e:
            logger.warning("Categorization failed", error=str(e))
            return patch

        if not suggestions:
            return patch

        patch["suggested_categories"] = suggestions
        best = suggestions[0]
        # Categories the user or extraction already set take precedence
        patch["ticket_fields"] = merge_ticket_fields(
            TicketFields(category=best.category, subcategory=best.subcategory or None),
            fields,
        )
        return patch

    async def routing_decision_node(self, state: ConversationState) -> Dict[str, Any]:
        """Advance the conversation phase"""

        phase = ConversationPhase(state.get("conversation_phase", ConversationPhase.INITIAL_ASSESSMENT))
        new_phase = next_phase(
            phase,
            state.get("ticket_fields") or TicketFields(),
            state.get("question_count", 0),
            self.routing_policy,
        )

        if new_phase != phase:
            agent_logger.phase_changed(
                phase.value, new_phase.value, "routing_decision", question_count=state.get("question_count", 0),
            )

        return {"conversation_phase": new_phase}

    def route_after_decision(self, state: ConversationState) -> Literal["generate_ticket", "update_memory"]:
        if state.get("conversation_phase") == ConversationPhase.GENERATING_TICKET:
            return "generate_ticket"
        return "update_memory"

    async def ticket_generator_node(self, state: ConversationState) -> Dict[str, Any]:
        """Assess priority and render the ticket"""

        fields = state.get("ticket_fields") or TicketFields()
        suggestions = state.get("suggested_categories", [])
        hint = assess_priority_by_keywords(fields, self.critical_keywords, self.high_urgency_keywords)

        prompt = PRIORITY_PROMPT.format(
            ticket=summarize_ticket_fields(fields),
            hint_priority=hint.priority,
            hint_urgency=hint.urgency,
            hint_rationale=hint.rationale,
        )

        try:
            response = await self.generation.complete([{"role": "user", "content": prompt}])
        except Exception as e:
            logger.warning("Ticket generation failed, returning to detail gathering", error=str(e))
            agent_logger.phase_changed(
                ConversationPhase.GENERATING_TICKET.value,
                ConversationPhase.GATHERING_DETAILS.value,
                "ticket_generation_failed",
            )
            return {
                "conversation_phase": ConversationPhase.GATHERING_DETAILS,
                "agent_response": TICKET_FAILURE_RESPONSE,
            }

        try:
            data = parse_json_response(response)
            if not isinstance(data, dict):
                raise StructuredOutputError("Priority assessment must be a JSON object")
            assessment = PriorityAssessment.model_validate(data)
        except (StructuredOutputError, ValueError) as e:
            logger.warning("Priority assessment unparseable, using keyword heuristic", error=str(e))
            assessment = hint

        fields = merge_ticket_fields(
            fields,
            TicketFields(priority=assessment.priority, urgency=assessment.urgency),
        )
        ticket = format_ticket(fields, suggestions, assessment)
        completed = next_phase(ConversationPhase.GENERATING_TICKET, fields, state.get("question_count", 0))

        agent_logger.phase_changed(ConversationPhase.GENERATING_TICKET.value, completed.value, "ticket_generated")

        return {
            "ticket_fields": fields,
            "formatted_ticket": ticket,
            "agent_response": f"{TICKET_CREATED_RESPONSE}\n\n{ticket}",
            "conversation_phase": completed,
        }

    async def memory_update_node(self, state: ConversationState) -> Dict[str, Any]:
        """Record the exchange, a filed ticket and the user's contact details"""

        iteration = state.get("iteration_count", 0)
        phase = ConversationPhase(state.get("conversation_phase", ConversationPhase.INITIAL_ASSESSMENT))
        fields = state.get("ticket_fields") or TicketFields()

        await self._record(
            state.get("user_query", ""),
            state.get("agent_response", ""),
            {"iteration": iteration, "phase": phase.value, "kind": "interaction"},
        )

        if phase == ConversationPhase.COMPLETE and state.get("phase_at_turn_start") != ConversationPhase.COMPLETE:
            await self._record(
                self._ticket_statement(fields),
                state.get("formatted_ticket", ""),
                {"iteration": iteration, "phase": phase.value, "kind": "ticket"},
            )

        if not fields.user_details.is_empty():
            await self._record(
                self._user_details_statement(fields),
                "",
                {"iteration": iteration, "phase": phase.value, "kind": "user_details"},
            )

        return {
            "conversation_history": self._history_entries(state),
            "memory_stats": self._memory_stats(state),
        }

    def _build_triage_context(self, state: ConversationState) -> str:
        parts = [self._build_context(
            state.get("active_memories", []),
            state.get("recalled_memories", []),
            state.get("retrieved_documents", []),
        )]

        summary = summarize_ticket_fields(state.get("ticket_fields"))
        if summary:
            parts.append(f"=== Ticket So Far ===\n{summary}")

        suggestions = state.get("suggested_categories", [])
        if suggestions:
            lines = [
                f"- {s.category} / {s.subcategory or '-'} ({s.confidence:.0%})"
                for s in suggestions[:3]
            ]
            parts.append("=== Suggested Categories ===\n" + "\n".join(lines))

        return "\n\n".join(part for part in parts if part)

    @staticmethod
    def _questions_in(response: str) -> List[str]:
        return [line.strip() for line in response.splitlines() if line.strip().endswith("?")]

    @staticmethod
    def _transcript(state: ConversationState) -> str:
        history = state.get("conversation_history", [])[-HISTORY_WINDOW:]
        turns = history + [
            {"role": "user", "content": state.get("user_query", "")},
            {"role": "assistant", "content": state.get("agent_response", "")},
        ]
        return "\n".join(f"{turn['role']}: {turn['content']}" for turn in turns)

    @staticmethod
    def _parse_suggestions(data: Any) -> List[CategorySuggestion]:
        if isinstance(data, dict):
            data = data.get("suggestions", [data])
        if not isinstance(data, list):
            raise StructuredOutputError("Category suggestions must be a JSON array")

        suggestions = []
        for item in data:
            if not isinstance(item, dict) or not item.get("category"):
                continue
            suggestions.append(CategorySuggestion(
                category=str(item["category"]),
                subcategory=str(item.get("subcategory") or ""),
                confidence=item.get("confidence", 0.0),
                reasoning=str(item.get("reasoning") or ""),
            ))
        return sorted(suggestions, key=lambda s: s.confidence, reverse=True)

    @staticmethod
    def _ticket_statement(fields: TicketFields) -> str:
        details = {
            "issue": fields.title,
            "category": fields.category,
            "priority": fields.priority,
        }
        known = json.dumps({k: v for k, v in details.items() if v})
        return f"I just filed a support ticket about my issue: {known}"

    @staticmethod
    def _user_details_statement(fields: TicketFields) -> str:
        details = fields.user_details
        parts = []
        if details.name:
            parts.append(f"my name is {details.name}")
        if details.email:
            parts.append(f"my email is {details.email}")
        if details.department:
            parts.append(f"I work in the {details.department} department")
        if details.location:
            parts.append(f"I am based in {details.location}")
        return "For your records: " + ", ".join(parts) + "."
