"""Command-line interface for jules-bridge."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.table import Table

from julesbridge import __version__
from julesbridge.api import (
    JulesClient,
    JulesError,
    Session,
    SessionCache,
    SessionPoller,
    SessionSnapshot,
)
from julesbridge.config import Config, load_config
from julesbridge.context import WorkspaceContextGatherer, build_prompt
from julesbridge.git import GitWorkingTree
from julesbridge.logging import get_logger, setup_logging

console = Console()
err_console = Console(stderr=True)

log = get_logger("cli")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="jules-bridge",
        description="Delegate coding tasks to Jules and bring the changes back",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Extra config file, applied over user and project config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser(
        "serve",
        help="Run the JSON-RPC bridge on stdin/stdout",
    )

    sessions_parser = subparsers.add_parser("sessions", help="List sessions")
    sessions_parser.add_argument(
        "--page-size",
        type=int,
        help="Number of sessions to fetch (max 100)",
    )

    activities_parser = subparsers.add_parser("activities", help="Show a session's activities")
    activities_parser.add_argument("session_id")

    delegate_parser = subparsers.add_parser("delegate", help="Delegate a task to Jules")
    delegate_parser.add_argument("task", help="Task description")
    delegate_parser.add_argument(
        "--file",
        dest="files",
        action="append",
        default=[],
        help="File to include as context (can be repeated)",
    )

    cancel_parser = subparsers.add_parser("cancel", help="Cancel a session")
    cancel_parser.add_argument("session_id")

    diff_parser = subparsers.add_parser("diff", help="Show the changes a session produced")
    diff_parser.add_argument("session_id")

    apply_parser = subparsers.add_parser(
        "apply",
        help="Apply a session's changes to the current repository on a side branch",
    )
    apply_parser.add_argument("session_id")

    watch_parser = subparsers.add_parser("watch", help="Refresh the session list periodically")
    watch_parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between refreshes (default: polling.interval from config)",
    )

    return parser


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    config = load_config(project_root=Path.cwd(), config_path=parsed.config)
    if parsed.verbose:
        config.logging.verbose = min(4, 1 + parsed.verbose)

    # stdout carries protocol frames in serve mode; logs stay off it
    setup_logging(config.logging, force_stderr=parsed.command != "serve" and parsed.verbose > 0)

    try:
        return asyncio.run(_dispatch(parsed, config))
    except KeyboardInterrupt:
        return 130


async def _dispatch(parsed: argparse.Namespace, config: Config) -> int:
    client = JulesClient(SessionCache(), config=config.api)
    try:
        if parsed.command == "serve":
            return await _serve(client, config)
        if parsed.command == "sessions":
            return await _sessions(client, parsed.page_size)
        if parsed.command == "activities":
            return await _activities(client, parsed.session_id)
        if parsed.command == "delegate":
            return await _delegate(client, parsed.task, parsed.files)
        if parsed.command == "cancel":
            await client.cancel_session(parsed.session_id)
            console.print(f"Cancelled session [bold]{parsed.session_id}[/bold]")
            return 0
        if parsed.command == "diff":
            return await _diff(client, parsed.session_id)
        if parsed.command == "apply":
            return await _apply(client, parsed.session_id)
        if parsed.command == "watch":
            return await _watch(client, config, parsed.interval)
    except JulesError as e:
        err_console.print(f"[red]Error:[/red] {e.message}")
        if e.diagnostic:
            log.debug("Diagnostic: %s", e.diagnostic)
        return 1
    finally:
        await client.close()
    return 1


async def _serve(client: JulesClient, config: Config) -> int:
    from julesbridge.bridge import BridgeServer, LineTransport

    server = BridgeServer(client, WorkspaceContextGatherer(Path.cwd()), config.bridge)
    transport = await LineTransport.from_stdio()
    try:
        await server.serve(transport)
    finally:
        await transport.close()
    return 0


def _sessions_table(sessions: list[Session]) -> Table:
    table = Table(title="Jules Sessions")
    table.add_column("Session ID")
    table.add_column("Status")
    table.add_column("Task")
    table.add_column("Created")
    table.add_column("Branch")
    for session in sessions:
        table.add_row(
            session.id,
            session.status.value,
            session.task,
            session.created_at.strftime("%Y-%m-%d %H:%M"),
            session.remote_branch or "-",
        )
    return table


async def _sessions(client: JulesClient, page_size: int | None) -> int:
    sessions = await client.list_sessions(page_size)
    if not sessions:
        console.print("[dim]No sessions[/dim]")
        return 0
    console.print(_sessions_table(sessions))
    return 0


async def _watch(client: JulesClient, config: Config, interval: float | None) -> int:
    def show(snapshot: SessionSnapshot) -> None:
        if snapshot.error:
            err_console.print(f"[red]Refresh failed:[/red] {snapshot.error}")
        console.print(_sessions_table(snapshot.sessions))
        for session_id, activities in snapshot.activities.items():
            if activities:
                latest = activities[-1]
                console.print(f"  {session_id}: [dim]{latest.category.value}[/dim] {latest.content}")

    poller = SessionPoller(
        client,
        interval or config.polling.interval,
        fetch_activities=config.polling.fetch_activities,
        on_update=show,
    )
    async with poller:
        await asyncio.Event().wait()
    return 0


async def _activities(client: JulesClient, session_id: str) -> int:
    activities = await client.get_activities(session_id)
    if not activities:
        console.print("[dim]No activities[/dim]")
        return 0

    table = Table(title=f"Activities of {session_id}")
    table.add_column("Time")
    table.add_column("Type")
    table.add_column("Content")
    for activity in activities:
        table.add_row(
            activity.timestamp.strftime("%H:%M:%S"),
            activity.category.value,
            activity.content,
        )
    console.print(table)
    return 0


async def _delegate(client: JulesClient, task: str, files: list[str]) -> int:
    gatherer = WorkspaceContextGatherer(Path.cwd())
    context = await gatherer.gather(files)
    if context.git is None:
        err_console.print("[yellow]No GitHub remote found; delegating as unknown/unknown[/yellow]")
    prompt = build_prompt(context, task)
    session = await client.create_session(
        context.owner, context.repo, context.branch, prompt, task=task
    )
    console.print(f"Delegated to Jules. Session ID: [bold]{session.id}[/bold] ({session.status.value})")
    return 0


async def _diff(client: JulesClient, session_id: str) -> int:
    diff = await client.get_session_diff(session_id)
    for file_diff in diff.files:
        console.print(f"[bold]{file_diff.status.value}[/bold] {file_diff.path}")
        console.print(file_diff.patch, markup=False, highlight=False)
    return 0


async def _apply(client: JulesClient, session_id: str) -> int:
    diff = await client.get_session_diff(session_id)
    result = await GitWorkingTree(Path.cwd()).apply_session_diff(diff)
    if result.success:
        console.print(f"[green]{result.message}[/green]")
        return 0

    err_console.print(f"[red]{result.message}[/red]")
    for path in result.conflict_files:
        err_console.print(f"  {path}")
    return 1


def main() -> int:
    """Console script entry point."""
    return run_cli(sys.argv[1:])
