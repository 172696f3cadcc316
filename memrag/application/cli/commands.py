from enum import Enum
from typing import List

from rich.console import Console
from rich.table import Table

from memrag.application.bootstrap import AgentSystem
from memrag.domain.models.memory import MemoryEntry, MemoryStats


class CommandResult(str, Enum):
    NOT_A_COMMAND = "not_a_command"
    HANDLED = "handled"
    QUIT = "quit"


HELP_ROWS = [
    ("/help", "Show this help"),
    ("/stats", "Memory statistics"),
    ("/memories", "List active and archived memories"),
    ("/vectorstats", "Knowledge base statistics"),
    ("/clear", "Delete all memories"),
    ("/quit, /exit", "Leave the chat"),
]


def print_help(console: Console) -> None:
    table = Table(title="Commands")
    table.add_column("Command", style="cyan")
    table.add_column("Description", style="green")
    for command, description in HELP_ROWS:
        table.add_row(command, description)
    console.print(table)


def print_memory_stats(console: Console, stats: MemoryStats, title: str = "Memory Statistics") -> None:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Active memories", str(stats.active_count))
    table.add_row("Archived memories", str(stats.archived_count))
    table.add_row("Total memories", str(stats.total_count))
    table.add_row("Context tokens", str(stats.active_token_estimate))
    table.add_row("Context utilization", f"{stats.context_utilization * 100:.1f}%")
    console.print(table)


def _memory_table(title: str, memories: List[MemoryEntry]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Importance", justify="right")
    table.add_column("Saved", style="dim")
    table.add_column("Content")
    for memory in memories:
        table.add_row(
            str(memory.id),
            f"{memory.importance_score:.1f}",
            memory.timestamp[:19].replace("T", " "),
            memory.content,
        )
    return table


def print_memories(console: Console, system: AgentSystem) -> None:
    active, archived = system.memory_manager.list_memories()
    if not active and not archived:
        console.print("[yellow]No memories stored yet[/yellow]")
        return

    console.print(_memory_table(f"Active memories ({len(active)})", active))
    if archived:
        console.print(_memory_table(f"Archived memories ({len(archived)})", archived))


def print_vector_stats(console: Console, system: AgentSystem) -> None:
    stats = system.retriever.stats()
    console.print(
        f"Knowledge base: [green]{stats['total_chunks']}[/green] chunks "
        f"from [green]{stats['source_files']}[/green] files"
    )

    if stats["top_files"]:
        table = Table(title="Top files by chunk count")
        table.add_column("File", style="cyan")
        table.add_column("Chunks", justify="right")
        for entry in stats["top_files"]:
            table.add_row(entry["name"], str(entry["chunks"]))
        console.print(table)


def handle_command(user_input: str, system: AgentSystem, console: Console) -> CommandResult:
    """Run a slash command without touching the agent graph"""

    if not user_input.startswith("/"):
        return CommandResult.NOT_A_COMMAND

    command = user_input.strip().lower()

    if command in ("/quit", "/exit"):
        console.print("[yellow]Goodbye![/yellow]")
        return CommandResult.QUIT

    if command in ("/help", "/commands"):
        print_help(console)
    elif command == "/stats":
        print_memory_stats(console, system.memory_manager.get_stats())
    elif command == "/memories":
        print_memories(console, system)
    elif command == "/vectorstats":
        print_vector_stats(console, system)
    elif command == "/clear":
        system.memory_manager.clear()
        console.print("[green]All memories cleared[/green]")
    else:
        console.print(f"[red]Unknown command: {command}[/red]")
        print_help(console)

    return CommandResult.HANDLED
