import operator
from typing import TypedDict, Annotated, Dict, Any, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from langchain_core.documents import Document

from memrag.domain.models.memory import MemoryEntry, MemoryStats


PRIORITY_LEVELS = ("Low", "Medium", "High", "Critical")
URGENCY_LEVELS = ("Low", "Medium", "High")


class ConversationPhase(str, Enum):
    """Stages of a ticket-triage conversation"""
    INITIAL_ASSESSMENT = "initial_assessment"
    GATHERING_DETAILS = "gathering_details"
    GENERATING_TICKET = "generating_ticket"
    COMPLETE = "complete"


def normalize_level(value: Any, allowed: tuple) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip().capitalize()
    return candidate if candidate in allowed else None


class UserDetails(BaseModel):
    """Contact details of the person reporting an issue"""
    name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    location: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(getattr(self, key) for key in type(self).model_fields)


class TicketFields(BaseModel):
    """Partially filled helpdesk ticket"""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    priority: Optional[Literal["Low", "Medium", "High", "Critical"]] = None
    urgency: Optional[Literal["Low", "Medium", "High"]] = None
    user_details: UserDetails = Field(default_factory=UserDetails)
    impact_details: Optional[str] = None
    technical_details: Optional[str] = None

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value: Any) -> Optional[str]:
        return normalize_level(value, PRIORITY_LEVELS)

    @field_validator("urgency", mode="before")
    @classmethod
    def normalize_urgency(cls, value: Any) -> Optional[str]:
        return normalize_level(value, URGENCY_LEVELS)


class CategorySuggestion(BaseModel):
    """Candidate ticket category proposed from the knowledge base"""
    category: str
    subcategory: str = ""
    confidence: float = 0.0
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, confidence))


class ConversationState(TypedDict, total=False):
    """State threaded through the agent graph for one turn"""
    user_query: str
    processed_query: str
    active_memories: List[MemoryEntry]
    recalled_memories: List[MemoryEntry]
    retrieved_documents: List[Document]
    agent_response: str
    memory_stats: MemoryStats
    iteration_count: int
    # Ticket triage
    conversation_phase: ConversationPhase
    phase_at_turn_start: ConversationPhase
    ticket_fields: TicketFields
    questions_asked: Annotated[List[str], operator.add]
    question_count: int
    suggested_categories: List[CategorySuggestion]
    formatted_ticket: str
    conversation_history: Annotated[List[Dict[str, str]], operator.add]


def initial_conversation_state(user_query: str = "", triage: bool = False) -> ConversationState:
    """Defaults for the first turn of a session"""

    state: ConversationState = {
        "user_query": user_query,
        "processed_query": "",
        "active_memories": [],
        "recalled_memories": [],
        "retrieved_documents": [],
        "agent_response": "",
        "memory_stats": MemoryStats(),
        "iteration_count": 0,
        "conversation_history": [],
    }
    if triage:
        state.update({
            "conversation_phase": ConversationPhase.INITIAL_ASSESSMENT,
            "ticket_fields": TicketFields(),
            "questions_asked": [],
            "question_count": 0,
            "suggested_categories": [],
            "formatted_ticket": "",
        })
    return state


def next_turn_state(previous: ConversationState, user_query: str) -> ConversationState:
    """Carry the prior turn's state forward with a new user query"""

    state: ConversationState = dict(previous)
    state["user_query"] = user_query
    return state
