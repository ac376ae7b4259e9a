import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax

from constructor.core.config import settings
from constructor.models.graph import ChatNode
from constructor.models.project import Project
from constructor.services.ai_service import AIService
from constructor.services.context_service import build_context, get_upstream_sources
from constructor.services.conversation import (
    CompletionFailed,
    CompletionSucceeded,
    SendRequested,
    transition,
)

cli_app = typer.Typer()
console = Console()


def _load_project(path: Path) -> Project:
    try:
        return Project.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] Could not read project file {path}: {exc}")
        raise typer.Exit(code=1)


def _print_json(payload) -> None:
    console.print(Syntax(json.dumps(payload, indent=2, ensure_ascii=False), "json", theme="solarized-dark"))


@cli_app.command()
def preview_context(
    project_file: Path = typer.Argument(..., help="Exported project JSON."),
    node_id: str = typer.Option(..., "--node-id", "-n", help="The chat node whose context to show."),
):
    """
    Shows which upstream nodes a chat node sees and the context it would send.
    """
    project = _load_project(project_file)
    graph = project.graph
    if not graph.has_node(node_id):
        console.print(f"[bold red]Error:[/bold red] Node {node_id} not found.")
        raise typer.Exit(code=1)

    upstream = get_upstream_sources(graph, node_id)
    console.print(f"[cyan]{len(upstream)} node(s) wired into {node_id}.[/cyan]")
    for record in upstream:
        marker = "[green]ready[/green]" if record.is_ready() else "[yellow]not ready[/yellow]"
        console.print(f"- {record.id} ({record.type}): {marker}")

    context_sources = build_context(graph, node_id)
    console.print("\n[bold green]CONTEXT SOURCES:[/bold green]")
    _print_json([source.model_dump() for source in context_sources])


@cli_app.command()
def ask(
    project_file: Path = typer.Argument(..., help="Exported project JSON."),
    node_id: str = typer.Option(..., "--node-id", "-n", help="The chat node to ask."),
    query: str = typer.Option(..., "--query", "-q", help="The message to send."),
):
    """
    Runs one chat turn against Gemini with the node's wired-in context and prints the conversation.
    """
    if not settings.GEMINI_API_KEY:
        console.print("[bold red]Error:[/bold red] GEMINI_API_KEY is not set in your .env file.")
        raise typer.Exit(code=1)

    project = _load_project(project_file)
    node = project.graph.get_node(node_id)
    if not isinstance(node, ChatNode):
        console.print(f"[bold red]Error:[/bold red] {node_id} is not a chat node in this project.")
        raise typer.Exit(code=1)

    context_sources = build_context(project.graph, node_id)
    state, effects = transition(node.data, SendRequested(query=query, context_sources=context_sources))
    if not effects:
        console.print("[yellow]Nothing to send: the query is empty or the node is still thinking.[/yellow]")
        raise typer.Exit(code=1)

    effect = effects[0]
    ai_service = AIService(api_key=settings.GEMINI_API_KEY, model=settings.GEMINI_MODEL)
    console.print(f"[cyan]Querying {settings.GEMINI_MODEL} with {len(context_sources)} context source(s)...[/cyan]")

    async def main():
        try:
            text = await ai_service.generate_chat_response(
                effect.message, effect.history, effect.context_sources, effect.system_instruction
            )
        except Exception as exc:
            return CompletionFailed(generation=effect.generation, error_message=str(exc) or None)
        return CompletionSucceeded(generation=effect.generation, response_text=text, source_count=len(context_sources))

    state, _ = transition(state, asyncio.run(main()))
    console.print(f"\n[bold green]Status: {state.status}[/bold green]")
    _print_json([message.model_dump() for message in state.messages])


if __name__ == "__main__":
    cli_app()
