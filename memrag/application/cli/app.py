import asyncio

import typer
from rich.console import Console

from memrag.application.bootstrap import setup_system
from memrag.application.cli.chat import run_chat
from memrag.application.demo import run_demo
from memrag.config import get_settings
from memrag.domain.exceptions import ConfigurationError
from memrag.infrastructure.observability.logging import setup_logging

app = typer.Typer(
    name="memrag",
    help="Conversational RAG agent with long-term memory and helpdesk triage",
    add_completion=False,
)

console = Console()


async def _run(triage: bool = False, demo: bool = False) -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    with console.status("[bold green]Loading knowledge base and memory...", spinner="dots"):
        system = await setup_system(settings, triage=triage)
    console.print(
        f"[green]✓[/green] Ready: {system.retriever.document_count} knowledge chunks, "
        f"{system.memory_manager.get_stats().total_count} memories"
    )

    try:
        if demo:
            await run_demo(system, console)
        else:
            await run_chat(system, console)
    finally:
        system.close()


def _launch(triage: bool = False, demo: bool = False) -> None:
    try:
        asyncio.run(_run(triage=triage, demo=demo))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def chat():
    """Chat with the knowledge base agent"""
    _launch()


@app.command()
def triage():
    """Walk through a helpdesk issue until a support ticket is filed"""
    _launch(triage=True)


@app.command()
def demo():
    """Run the scripted example conversation"""
    _launch(demo=True)


def main():
    app()


if __name__ == "__main__":
    main()
