from dataclasses import dataclass
from typing import Callable, Dict

from memrag.domain.models.conversation_state import ConversationPhase, TicketFields
from memrag.domain.orchestration.triage.ticket_fields import missing_required_fields


@dataclass(frozen=True)
class RoutingPolicy:
    """Thresholds for leaving the detail-gathering phase"""
    min_questions_before_ticket: int = 3
    max_questions_before_forced_ticket: int = 5
    min_description_length: int = 100


def ready_for_ticket(fields: TicketFields, question_count: int, policy: RoutingPolicy) -> bool:
    """Whether gathering can stop and a ticket can be written.

    The forced-ticket limit only applies once the required fields are known;
    with any of them missing the conversation keeps gathering.
    """

    if missing_required_fields(fields):
        return False

    if question_count >= policy.max_questions_before_forced_ticket:
        return True

    description = fields.description or ""
    return (
        question_count >= policy.min_questions_before_ticket
        or len(description) > policy.min_description_length
    )


Transition = Callable[[TicketFields, int, RoutingPolicy], ConversationPhase]

TRANSITIONS: Dict[ConversationPhase, Transition] = {
    ConversationPhase.INITIAL_ASSESSMENT: lambda fields, count, policy: ConversationPhase.GATHERING_DETAILS,
    ConversationPhase.GATHERING_DETAILS: lambda fields, count, policy: (
        ConversationPhase.GENERATING_TICKET
        if ready_for_ticket(fields, count, policy)
        else ConversationPhase.GATHERING_DETAILS
    ),
    # Evaluated once the ticket has been written
    ConversationPhase.GENERATING_TICKET: lambda fields, count, policy: ConversationPhase.COMPLETE,
    ConversationPhase.COMPLETE: lambda fields, count, policy: ConversationPhase.COMPLETE,
}


def next_phase(
    phase: ConversationPhase,
    fields: TicketFields,
    question_count: int,
    policy: RoutingPolicy = RoutingPolicy(),
) -> ConversationPhase:
    return TRANSITIONS[ConversationPhase(phase)](fields or TicketFields(), question_count, policy)
