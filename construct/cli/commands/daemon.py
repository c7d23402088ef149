# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Daemon command handlers (warm container lifecycle)."""

import sys

import click
from rich.table import Table

from construct.cli import cli
from construct.cli.helpers import build_session, console, handle_errors
from construct.errors import ConstructError, ErrorCategory
from construct.paths import ContainerDefaults
from construct.runtime.compose import image_exists, prepare_runtime, start_daemon_background
from construct.runtime.containers import ContainerState
from construct.runtime.daemon_mounts import resolve_daemon_mounts
from construct.session.orchestrator import DAEMON_POLL_INTERVAL, DAEMON_POLL_TIMEOUT, SessionOrchestrator
from construct.utils.polling import poll_until

DAEMON = ContainerDefaults.DAEMON_NAME


@cli.group()
def daemon():
    """Warm daemon container (start/stop/status/attach)."""
    pass


@daemon.command()
@click.pass_context
@handle_errors
def start(ctx):
    """Start the daemon container in the background."""
    session = build_session((ctx.obj or {}).get("network"))
    manager = session.manager

    state = manager.state(DAEMON)
    if state is ContainerState.RUNNING:
        console.print("[green]Daemon is already running[/green]")
        return
    if state is ContainerState.EXITED:
        console.print("[dim]Removing stopped daemon container...[/dim]")
        manager.remove(DAEMON)

    prepare_runtime(session)

    if not image_exists(manager):
        raise ConstructError(
            ErrorCategory.CONTAINER,
            "start daemon",
            runtime=session.engine.value,
            suggestion="Run an agent once to build the construct image",
        )

    if not start_daemon_background(session, SessionOrchestrator(session).daemon_start_env()):
        raise ConstructError(
            ErrorCategory.CONTAINER,
            "start daemon",
            runtime=session.engine.value,
            suggestion="Re-run with --ct-debug for the compose output",
        )

    running = poll_until(
        lambda: manager.state(DAEMON) is ContainerState.RUNNING,
        DAEMON_POLL_INTERVAL,
        DAEMON_POLL_TIMEOUT,
    )
    if not running:
        raise ConstructError(
            ErrorCategory.CONTAINER,
            "start daemon",
            runtime=session.engine.value,
            suggestion=f"Check '{session.engine.cli} logs {DAEMON}'",
        )
    console.print("[green]Daemon started[/green]")
    console.print("[dim]Agent runs from covered directories now exec into the daemon.[/dim]")


@daemon.command()
@click.pass_context
@handle_errors
def stop(ctx):
    """Stop the daemon container."""
    session = build_session((ctx.obj or {}).get("network"))
    manager = session.manager

    state = manager.state(DAEMON)
    if state is ContainerState.MISSING:
        console.print("[yellow]Daemon is not running[/yellow]")
        return

    console.print("[blue]Stopping daemon...[/blue]")
    if state is ContainerState.RUNNING:
        manager.stop(DAEMON)
    if manager.exists(DAEMON):
        manager.remove(DAEMON)
    console.print("[green]Daemon stopped[/green]")


@daemon.command()
@click.pass_context
@handle_errors
def status(ctx):
    """Show daemon state, image freshness and mount configuration."""
    session = build_session((ctx.obj or {}).get("network"))
    manager = session.manager
    state = manager.state(DAEMON)

    table = Table(title="Construct daemon", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Container", DAEMON)
    table.add_row("Engine", session.engine.value)
    table.add_row("State", state.value)

    if state is ContainerState.RUNNING:
        stale = manager.is_stale(DAEMON, ContainerDefaults.IMAGE)
        table.add_row("Image", "[yellow]outdated[/yellow]" if stale else "current")
        table.add_row("Working dir", manager.working_dir(DAEMON) or "-")

    mounts = resolve_daemon_mounts(session.config)
    if mounts.enabled:
        table.add_row("Mount mode", "multi-root")
        for mount in mounts.mounts:
            table.add_row("", f"{mount.host_path} -> {mount.container_path}")
        if state is ContainerState.RUNNING:
            label = manager.label(DAEMON, ContainerDefaults.DAEMON_MOUNTS_LABEL)
            table.add_row("Mounts in sync", "yes" if label == mounts.fingerprint else "[yellow]no[/yellow]")
    else:
        table.add_row("Mount mode", "single-root")

    console.print(table)
    for warning in mounts.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]", highlight=False)


@daemon.command()
@click.pass_context
@handle_errors
def attach(ctx):
    """Attach to the running daemon (Ctrl+P Ctrl+Q to detach)."""
    session = build_session((ctx.obj or {}).get("network"))
    if session.manager.state(DAEMON) is not ContainerState.RUNNING:
        console.print("[yellow]Daemon is not running[/yellow]")
        console.print("[blue]Try:[/blue] construct daemon start")
        sys.exit(1)

    console.print("[blue]Attaching to daemon... (Ctrl+P Ctrl+Q to detach)[/blue]")
    sys.exit(session.manager.attach(DAEMON))
