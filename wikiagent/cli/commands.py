"""CLI commands for wikiagent."""

import asyncio
import json
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from wikiagent import __logo__, __version__

app = typer.Typer(
    name="wikiagent",
    help=f"{__logo__} wikiagent - prompt pipeline and agent rounds for wiki assistants",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} wikiagent v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """wikiagent - agent conversation orchestration."""
    pass


def _pick_definition(path: Path, agent_id: str | None, strict: bool):
    from wikiagent.config.loader import load_agent_definitions
    from wikiagent.errors import WikiAgentError

    try:
        definitions = load_agent_definitions(path, strict=strict)
    except (OSError, json.JSONDecodeError, WikiAgentError, ValueError) as e:
        console.print(f"[red]Could not load {path}: {e}[/red]")
        raise typer.Exit(1)
    if not definitions:
        console.print(f"[red]No agent definitions in {path}[/red]")
        raise typer.Exit(1)
    if agent_id is None:
        return definitions[0]
    for definition in definitions:
        if definition.id == agent_id:
            return definition
    known = ", ".join(d.id for d in definitions)
    console.print(f"[red]Agent '{agent_id}' not found (known: {known})[/red]")
    raise typer.Exit(1)


def _load_wiki(path: Path | None):
    """Read ``{"workspace": [{"title", "text", "tags"}]}`` into an in-memory wiki."""
    if path is None:
        return None
    from wikiagent.tools.base import InMemoryWikiBackend, WikiEntry

    data = json.loads(path.read_text(encoding="utf-8"))
    workspaces = {}
    for name, entries in data.items():
        workspaces[name] = [
            WikiEntry(
                title=str(entry.get("title", "")),
                text=str(entry.get("text", "")),
                fields={k: v for k, v in entry.items() if k not in ("title", "text")},
            )
            for entry in entries
        ]
    return InMemoryWikiBackend(workspaces)


# ============================================================================
# Preview
# ============================================================================


@app.command()
def preview(
    definition: Path = typer.Argument(..., exists=True, dir_okay=False, help="Agent definition JSON"),
    message: str = typer.Option("", "--message", "-m", help="User message to preview with"),
    agent: str = typer.Option(None, "--agent", "-a", help="Definition id when the file holds several"),
    wiki: Path = typer.Option(None, "--wiki", exists=True, dir_okay=False, help="Wiki workspaces JSON"),
    strict: bool = typer.Option(False, "--strict", help="Fail on malformed plugin configs"),
):
    """Show the prompts an agent would send to the LLM."""
    from wikiagent.agent.context import AgentRunContext
    from wikiagent.agent.models import AgentInstance
    from wikiagent.config.loader import load_settings
    from wikiagent.prompts.concat import concat_prompts
    from wikiagent.providers.litellm_provider import LiteLLMCollaborator
    from wikiagent.utils.logging import configure_logging

    settings = load_settings()
    configure_logging(settings.log_level)
    agent_def = _pick_definition(definition, agent, strict)
    instance = AgentInstance(id=f"preview-{uuid.uuid4().hex[:8]}", agent_def_id=agent_def.id)
    if message:
        instance.add_user_message(message)
    run_context = AgentRunContext(
        agent=instance,
        definition=agent_def,
        llm=LiteLLMCollaborator(default_provider=settings.default_provider, default_model=settings.default_model),
        wiki=_load_wiki(wiki),
        settings=settings,
    )

    async def run():
        return await concat_prompts(
            agent_def.handler_config.prompts,
            instance.messages,
            agent_def.handler_config.plugins,
            run_context=run_context,
        )

    result = asyncio.run(run())
    table = Table(title=f"Prompt preview: {agent_def.name or agent_def.id}")
    table.add_column("#", style="dim")
    table.add_column("Role", style="cyan")
    table.add_column("Content")
    for index, prompt in enumerate(result.flat_prompts, start=1):
        table.add_row(str(index), prompt["role"], prompt["content"])
    console.print(table)
    for err in result.errors:
        console.print(f"[yellow]{err}[/yellow]")


# ============================================================================
# Chat
# ============================================================================


@app.command()
def chat(
    definition: Path = typer.Argument(..., exists=True, dir_okay=False, help="Agent definition JSON"),
    message: str = typer.Option(..., "--message", "-m", help="Message to send to the agent"),
    agent: str = typer.Option(None, "--agent", "-a", help="Definition id when the file holds several"),
    wiki: Path = typer.Option(None, "--wiki", exists=True, dir_okay=False, help="Wiki workspaces JSON"),
    store: Path = typer.Option(None, "--store", help="Directory to keep JSONL message history in"),
    stream: bool = typer.Option(False, "--stream", help="Print every working status"),
):
    """Run one agent round and print its statuses."""
    from wikiagent.agent.context import AgentRunContext
    from wikiagent.agent.models import AgentInstance
    from wikiagent.agent.orchestrator import run_agent_round
    from wikiagent.config.loader import load_settings
    from wikiagent.providers.failover import FailoverCandidate, FailoverCollaborator
    from wikiagent.providers.litellm_provider import LiteLLMCollaborator
    from wikiagent.session.store import InMemoryMessageStore, JsonlMessageStore
    from wikiagent.tools.base import ToolRegistry
    from wikiagent.utils.logging import configure_logging

    settings = load_settings()
    configure_logging(settings.log_level)
    agent_def = _pick_definition(definition, agent, strict=False)

    litellm_collaborator = LiteLLMCollaborator(
        api_key=settings.api_key or None,
        api_base=settings.api_base,
        default_provider=settings.default_provider,
        default_model=settings.default_model,
        timeout_seconds=settings.request_timeout_seconds,
    )
    llm = FailoverCollaborator(
        candidates=[FailoverCandidate(name=settings.default_provider, collaborator=litellm_collaborator)],
        failover_policy=settings.failover,
    )
    sink = JsonlMessageStore(store) if store else InMemoryMessageStore()
    instance = AgentInstance(id=f"cli-{uuid.uuid4().hex[:8]}", agent_def_id=agent_def.id, name=agent_def.name)
    instance.add_user_message(message)
    run_context = AgentRunContext(
        agent=instance,
        definition=agent_def,
        llm=llm,
        tools=ToolRegistry(),
        wiki=_load_wiki(wiki),
        sink=sink,
        settings=settings,
    )

    async def run():
        final = None
        async for latest in run_agent_round(run_context):
            if stream and latest.state == "working":
                console.print(f"[dim]{latest.content}[/dim]")
            final = latest
        return final

    try:
        final = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nInterrupted")
        raise typer.Exit(130)

    if final is None or final.state == "canceled":
        console.print("[yellow]Round canceled[/yellow]")
        return
    if final.is_error:
        console.print(f"[red]{final.content}[/red]")
        raise typer.Exit(1)
    console.print(f"\n{__logo__} {final.content}")
    if store:
        console.print(f"[dim]History saved under {store} as {instance.id}[/dim]")


if __name__ == "__main__":
    app()
