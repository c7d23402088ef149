# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared helpers for the construct CLI."""

import functools
import sys
from typing import Callable, Dict, Mapping, Optional, Sequence

import click
from rich.markup import escape
from rich.panel import Panel

from construct.env import expand_provider_env
from construct.errors import ConstructError
from construct.host_config import get_config
from construct.runtime.engine import select_engine
from construct.session.context import SessionContext
from construct.session.orchestrator import SessionOrchestrator
from construct.utils.logging import console, err_console, get_logger

logger = get_logger(__name__)

# Agent commands hand every argument to the agent untouched
PASSTHROUGH_SETTINGS = {"ignore_unknown_options": True, "allow_extra_args": True}


def show_error_panel(title: str, message: str, hint: Optional[str] = None) -> None:
    """Display a formatted error panel.

    Args:
        title: Panel title (shown in red)
        message: Main error message
        hint: Optional hint text (shown with blue "Hint:" prefix)
    """
    content = escape(message)
    if hint:
        content += f"\n\n[blue]Hint:[/blue] {escape(hint)}"
    err_console.print(Panel(content, title=f"[red]{title}[/red]", border_style="red"))


def handle_errors(func: Callable) -> Callable:
    """Decorator that wraps CLI commands with standard error handling.

    - SystemExit and click exceptions pass through
    - ConstructError: panel titled by category, suggestion as hint
    - Anything else: generic "Error" panel
    All handled errors exit with code 1.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except click.ClickException:
            raise
        except KeyboardInterrupt:
            err_console.print("\n[yellow]Interrupted[/yellow]")
            sys.exit(130)
        except ConstructError as exc:
            logger.error(str(exc), console_output=False)
            lines = [f"{exc.operation} failed"]
            if exc.path:
                lines.append(f"Path: {exc.path}")
            if exc.command:
                lines.append(f"Command: {exc.command}")
            if exc.runtime:
                lines.append(f"Runtime: {exc.runtime}")
            if exc.cause is not None:
                lines.append(f"Cause: {exc.cause}")
            show_error_panel(exc.category.value.title() + " Error", "\n".join(lines), exc.suggestion)
            sys.exit(1)
        except Exception as exc:
            logger.exception(f"Unexpected error: {exc}", console_output=False)
            show_error_panel("Error", str(exc))
            sys.exit(1)

    return wrapper


def build_session(network: Optional[str] = None) -> SessionContext:
    """Load config, apply the --network override and pick the engine."""
    config = get_config()
    if network:
        logger.info(f"Network mode: {network} (CLI flag override)")
        model = config.with_network_mode(network)
    else:
        model = config.model
        logger.info(f"Network mode: {model.network.mode} (from config)")
    engine = select_engine(model.runtime.engine)
    return SessionContext.create(model, engine)


def run_agent(
    ctx: click.Context,
    args: Sequence[str],
    provider_env: Optional[Mapping[str, str]] = None,
) -> None:
    """Run args through the orchestrator and exit with the agent's code."""
    network = (ctx.obj or {}).get("network")
    session = build_session(network)
    code = SessionOrchestrator(session).run(list(args), provider_env)
    sys.exit(code)


def resolve_provider_env(name: str) -> Dict[str, str]:
    """Expanded environment of a configured claude provider, or exit 1."""
    providers = get_config().model.claude.providers
    if name not in providers:
        err_console.print(f"[red]Error: Claude provider '{escape(name)}' not found in config[/red]\n")
        err_console.print("Available providers:")
        if providers:
            for provider in sorted(providers):
                err_console.print(f"  - {escape(provider)}")
        else:
            err_console.print("  (none configured)")
        err_console.print("\nConfigure providers in ~/.config/construct-cli/config.yml, for example:")
        err_console.print(
            f"  claude:\n    providers:\n      {name}:\n"
            '        ANTHROPIC_BASE_URL: "https://api.example.com"\n'
            '        ANTHROPIC_AUTH_TOKEN: "${YOUR_API_KEY}"',
            highlight=False,
            markup=False,
        )
        sys.exit(1)
    logger.info(f"Using Claude provider: {name}")
    return expand_provider_env(providers[name])
