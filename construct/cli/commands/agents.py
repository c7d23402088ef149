# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Agent command handlers.

Every supported agent gets a passthrough command: all arguments after the
agent name go to the agent untouched, including options like --help.
"""

import click
from rich.table import Table

from construct.agents import SHELL_SLUG, SUPPORTED_AGENTS, Agent, yolo_enabled, yolo_flag
from construct.cli import cli
from construct.cli.helpers import (
    PASSTHROUGH_SETTINGS,
    console,
    handle_errors,
    resolve_provider_env,
    run_agent,
)
from construct.host_config import get_config


def _register_agent(agent: Agent) -> None:
    @cli.command(
        name=agent.slug,
        context_settings=PASSTHROUGH_SETTINGS,
        add_help_option=False,
        help=f"Run {agent.name} in the sandbox.",
    )
    @click.argument("args", nargs=-1, type=click.UNPROCESSED)
    @click.pass_context
    @handle_errors
    def _command(ctx, args: tuple):
        run_agent(ctx, [agent.slug, *args])


for _agent in SUPPORTED_AGENTS:
    if _agent.slug != "claude":
        _register_agent(_agent)


@cli.command(context_settings=PASSTHROUGH_SETTINGS, add_help_option=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
@handle_errors
def claude(ctx, args: tuple):
    """Run Claude Code in the sandbox.

    If the first argument names a configured provider, claude runs with
    that provider's environment.

    Examples:
        construct claude
        construct claude zai "fix the failing test"
    """
    providers = get_config().model.claude.providers
    if args and args[0] in providers:
        run_agent(ctx, ["claude", *args[1:]], resolve_provider_env(args[0]))
        return
    run_agent(ctx, ["claude", *args])


@cli.command(context_settings=PASSTHROUGH_SETTINGS, add_help_option=False)
@click.argument("provider")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
@handle_errors
def cc(ctx, provider: str, args: tuple):
    """Run Claude Code with a configured provider.

    Examples:
        construct cc zai
        construct cc minimax --resume
    """
    provider_env = resolve_provider_env(provider)
    run_agent(ctx, ["claude", *args], provider_env)


@cli.command(name=SHELL_SLUG, context_settings=PASSTHROUGH_SETTINGS, add_help_option=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
@handle_errors
def shell(ctx, args: tuple):
    """Open an interactive shell in the sandbox, or run a command there."""
    run_agent(ctx, list(args))


@cli.command("agents")
def list_agents():
    """List supported agents."""
    config = get_config().model
    table = Table(title="Supported agents")
    table.add_column("Command", style="cyan")
    table.add_column("Agent")
    table.add_column("Auto-approve flag", style="dim")
    table.add_column("Config", style="dim")

    for agent in SUPPORTED_AGENTS:
        flag = yolo_flag(agent.slug) or "-"
        if flag != "-" and yolo_enabled(agent.slug, config):
            flag = f"{flag} (on)"
        table.add_row(agent.slug, agent.name, flag, agent.config_path)

    console.print(table)
