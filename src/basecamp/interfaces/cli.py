"""CLI: Typer app for composing requests, running a tool-less turn and inspecting run-state logs."""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx
import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from basecamp.application.chat_runtime import describe_turn_failure, run_camp_turn
from basecamp.application.compose import compose_camp_request
from basecamp.config import load_config
from basecamp.domain import BasecampError, Camp, ToolSpec
from basecamp.infrastructure.openrouter import OpenRouterChatClient
from basecamp.infrastructure.telemetry import setup_telemetry
from basecamp.infrastructure.workspace.run_state_reader import list_runs, read_run_events

app = typer.Typer(help="basecamp: camp conversation runtime for OpenRouter.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_camp(camp_file: Path) -> Camp:
    try:
        data = json.loads(camp_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        rprint(f"[red]Cannot read camp file {camp_file}:[/red] {e}")
        sys.exit(1)
    if not isinstance(data, dict):
        rprint(f"[red]Camp file {camp_file} must contain a JSON object.[/red]")
        sys.exit(1)
    return Camp.from_dict(data)


def _load_tools(tools_file: Optional[Path]) -> List[ToolSpec]:
    if tools_file is None:
        return []
    try:
        data = json.loads(tools_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        rprint(f"[red]Cannot read tools file {tools_file}:[/red] {e}")
        sys.exit(1)
    if not isinstance(data, list):
        rprint(f"[red]Tools file {tools_file} must contain a JSON list of tool definitions.[/red]")
        sys.exit(1)
    tools: List[ToolSpec] = []
    for index, entry in enumerate(data):
        fn = entry.get("function", entry) if isinstance(entry, dict) else None
        if not isinstance(fn, dict) or not isinstance(fn.get("name"), str) or not fn["name"].strip():
            rprint(f"[red]Tool definition #{index} in {tools_file} has no name.[/red]")
            sys.exit(1)
        tools.append(ToolSpec.from_dict(entry))
    return tools


@app.command()
def compose(
    camp_file: Path = typer.Argument(..., help="Camp snapshot (JSON)."),
    message: str = typer.Option("", "--message", "-m", help="New user message."),
    tools_file: Optional[Path] = typer.Option(None, "--tools-file", help="JSON list of tool definitions."),
    model: str = typer.Option("", "--model", help="Override the camp's model."),
) -> None:
    """Print the request payload a turn would send, and what went into it."""
    config = load_config()
    camp = _load_camp(camp_file)
    tools = _load_tools(tools_file) if camp.config.tools_enabled else []
    try:
        request, breakdown = compose_camp_request(
            camp,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            user_message=message,
            selected_artifacts=camp.artifacts,
            tools=tools,
            model=model or camp.config.model or config.default_model,
        )
    except BasecampError as e:
        rprint(f"[red]{e}[/red]")
        sys.exit(1)

    console = Console()
    console.print(Syntax(json.dumps(request.to_payload(), indent=2, ensure_ascii=False), "json", theme="monokai"))

    table = Table(title="Artifacts", show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Chars", justify="right")
    table.add_column("Truncated")
    for a in breakdown.artifacts:
        table.add_row(a.id, a.title, f"{a.included_chars}/{a.original_chars}", "yes" if a.truncated else "")
    for artifact_id in breakdown.omitted_artifact_ids:
        table.add_row(artifact_id, "[dim]omitted (budget)[/dim]", "0", "")
    console.print(table)
    rprint(
        Panel.fit(
            f"[bold]Messages:[/bold] {len(request.messages)}\n"
            f"[bold]Transcript:[/bold] {breakdown.transcript_included}/{breakdown.transcript_total} replayed\n"
            f"[bold]Tools:[/bold] {len(request.tools or [])}"
        )
    )


@app.command()
def chat(
    camp_file: Path = typer.Argument(..., help="Camp snapshot (JSON)."),
    message: str = typer.Argument(..., help="User message."),
    model: str = typer.Option("", "--model", help="Override the camp's model."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr."),
) -> None:
    """Run one streaming turn without tools and print the reply as it arrives."""
    _configure_logging(verbose)
    config = load_config()
    setup_telemetry(config)
    camp = _load_camp(camp_file)
    requested_model = model or camp.config.model or config.default_model
    client = OpenRouterChatClient.from_config(config.openrouter)

    def _on_token(token: str) -> None:
        sys.stdout.write(token)
        sys.stdout.flush()

    try:
        result = asyncio.run(
            run_camp_turn(
                camp,
                chat_client=client,
                on_token=_on_token,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                user_message=message,
                selected_artifacts=camp.artifacts,
                model=requested_model,
            )
        )
    except BasecampError as e:
        rprint(f"\n[red]{describe_turn_failure(e, requested_model)}[/red]")
        sys.exit(1)
    except httpx.ConnectError as e:
        rprint(f"\n[red]API unreachable.[/red]\n  URL: {client.url}\n  Error: {e}")
        sys.exit(1)
    except httpx.TimeoutException:
        rprint(
            f"\n[red]Request timed out.[/red] Increase openrouter.timeout_s in config "
            f"(currently {config.openrouter.timeout_s}s)."
        )
        sys.exit(1)

    sys.stdout.write("\n")
    usage = result.usage
    rprint(
        f"[dim]model={result.model or requested_model} "
        f"tokens={usage.prompt_tokens}/{usage.completion_tokens}/{usage.total_tokens} "
        f"correlation={result.correlation_id}[/dim]"
    )


# ---------------------------------------------------------------------------
# basecamp runs subcommands
# ---------------------------------------------------------------------------

runs_app = typer.Typer(help="Inspect run-state logs of tool-enabled turns.")
app.add_typer(runs_app, name="runs")


def _log_root(root: str) -> str:
    return root or load_config().run_log_dir


@runs_app.command("list")
def runs_list(
    root: str = typer.Option("", "--root", "-r", help="Run-log root (default: run_log_dir from config)."),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Only runs of this camp id."),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of runs to show."),
) -> None:
    """List recent runs (most recent first)."""
    root = _log_root(root)
    summaries = list_runs(root, scope_id=scope, limit=limit)
    if not summaries:
        rprint(f"[dim]No runs found in {root}/camps/[/dim]")
        return

    table = Table(title=f"Recent runs ({root})", show_header=True, header_style="bold")
    table.add_column("Run ID", style="cyan", no_wrap=True)
    table.add_column("Camp", style="green")
    table.add_column("Started", style="dim")
    table.add_column("Status")
    table.add_column("Tools", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Last error", overflow="fold")

    for s in summaries:
        started = (
            datetime.datetime.fromtimestamp(s.started_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")
            if s.started_ms is not None
            else "-"
        )
        table.add_row(
            s.run_id, s.scope_id, started, s.status, str(s.tool_calls), str(s.event_count), (s.last_error or "")[:80]
        )
    Console().print(table)


@runs_app.command("show")
def runs_show(
    scope: str = typer.Argument(..., help="Camp id."),
    run_id: str = typer.Argument(..., help="Run ID to inspect."),
    root: str = typer.Option("", "--root", "-r", help="Run-log root (default: run_log_dir from config)."),
    kinds: str = typer.Option(
        "", "--kinds", "-k",
        help="Comma-separated event kinds to show (e.g. 'tool_executing,tool_result'). Shows all if empty.",
    ),
) -> None:
    """Show the events of one run (pretty-printed JSON)."""
    root = _log_root(root)
    try:
        events = read_run_events(root, scope, run_id)
    except (FileNotFoundError, ValueError) as e:
        rprint(f"[red]{e}[/red]")
        sys.exit(1)

    filter_kinds = {k.strip() for k in kinds.split(",") if k.strip()} if kinds else None
    shown = [e for e in events if filter_kinds is None or e.get("kind") in filter_kinds]

    console = Console()
    rprint(f"[bold]Run:[/bold] {run_id}  [dim]({len(shown)}/{len(events)} events)[/dim]")
    for ev in shown:
        console.print(Syntax(json.dumps(ev, indent=2, ensure_ascii=False), "json", theme="monokai"))


if __name__ == "__main__":
    app()
