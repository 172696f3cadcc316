import asyncio
from functools import partial

import structlog
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.text import Text

from memrag.application.bootstrap import AgentSystem
from memrag.application.cli.commands import CommandResult, handle_command, print_memory_stats
from memrag.domain.models.conversation_state import (
    ConversationState, initial_conversation_state, next_turn_state,
)
from memrag.domain.streaming.streaming_handler import TurnProgressHandler

logger = structlog.get_logger(__name__)

WELCOME_CHAT = """
# Memory RAG Agent

Ask anything about the knowledge base. Tell me about yourself and I will remember it.

Type `/help` for commands, `/exit` to leave.
"""

WELCOME_TRIAGE = """
# Helpdesk Triage

Describe the problem you are having and I will collect what is needed to file a support ticket.

Type `/help` for commands, `/exit` to leave.
"""


def print_welcome(console: Console, triage: bool) -> None:
    text = WELCOME_TRIAGE if triage else WELCOME_CHAT
    console.print(Panel(Markdown(text), title="Welcome", border_style="blue"))


def render_response(console: Console, state: ConversationState, triage: bool) -> None:
    response = state.get("agent_response", "")

    if triage:
        phase = state.get("conversation_phase")
        subtitle = f"phase: {phase.value}" if phase is not None else None
        body = Text(response)
    else:
        subtitle = None
        body = Markdown(response)

    console.print()
    console.print(Panel(body, title="[bold green]Agent[/bold green]", subtitle=subtitle, border_style="green"))
    console.print()


async def run_turn_with_status(system: AgentSystem, state: ConversationState, console: Console) -> ConversationState:
    with console.status("[bold green]Thinking...", spinner="dots") as status:

        async def on_progress(message: str) -> None:
            status.update(f"[bold green]{message}...")

        return await system.orchestrator.run_turn(state, TurnProgressHandler(on_progress))


async def run_chat(system: AgentSystem, console: Console) -> None:
    """Read-eval-print loop around the agent graph"""

    print_welcome(console, system.triage)
    state = initial_conversation_state(triage=system.triage)
    loop = asyncio.get_running_loop()
    ask = partial(Prompt.ask, "[bold blue]You[/bold blue]", console=console)

    while True:
        try:
            user_input = await loop.run_in_executor(None, ask)
        except (EOFError, KeyboardInterrupt):
            console.print("\n[yellow]Goodbye![/yellow]")
            break

        user_input = user_input.strip()
        if not user_input:
            continue

        command = handle_command(user_input, system, console)
        if command == CommandResult.QUIT:
            break
        if command == CommandResult.HANDLED:
            continue

        try:
            state = await run_turn_with_status(system, next_turn_state(state, user_input), console)
        except KeyboardInterrupt:
            console.print("\n[yellow]Turn cancelled. Use /exit to leave[/yellow]")
            continue
        except Exception as e:
            logger.error("Turn failed", error=str(e), exc_info=True)
            console.print(f"[red]Error: {e}[/red]")
            continue

        render_response(console, state, system.triage)

    print_memory_stats(console, system.memory_manager.get_stats(), title="Final Memory Statistics")
