from typing import List, Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule

from memrag.application.bootstrap import AgentSystem
from memrag.application.cli.commands import print_memory_stats
from memrag.domain.models.conversation_state import ConversationState, initial_conversation_state

EXAMPLE_QUERIES = [
    "What is machine learning?",
    "Can you explain the three types of machine learning you mentioned?",
    "What's LangGraph and how does it work?",
    "My name is Alex and I'm particularly interested in reinforcement learning.",
    "What are vector databases used for?",
    "Tell me more about FAISS, which you mentioned earlier.",
    "Based on what I told you earlier, which machine learning type should I focus on?",
    "What's the relationship between what I'm interested in and vector databases?",
]

STATS_EVERY = 4


async def run_demo(
    system: AgentSystem,
    console: Console,
    queries: Sequence[str] = EXAMPLE_QUERIES,
) -> List[ConversationState]:
    """Play a scripted conversation, showing memory statistics as it goes.

    Every query starts from a fresh conversation state, so anything the agent
    carries between queries comes from long-term memory.
    """

    console.print(Rule("Example Conversation"))
    results = []

    for number, query in enumerate(queries, start=1):
        console.print(f"\n[bold blue][Query {number}] You:[/bold blue] {query}")

        with console.status("[bold green]Thinking...", spinner="dots"):
            state = await system.orchestrator.run_turn(initial_conversation_state(query))
        results.append(state)

        console.print(Panel(Markdown(state.get("agent_response", "")), title="Agent", border_style="green"))

        if number % STATS_EVERY == 0:
            print_memory_stats(console, system.memory_manager.get_stats())

    console.print(Rule("Example conversation completed"))
    print_memory_stats(console, system.memory_manager.get_stats(), title="Final Memory Statistics")
    return results
