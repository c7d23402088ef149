# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""login-bridge command: forward login callbacks for runs in other terminals."""

import click

from construct.cli import cli
from construct.cli.helpers import console, handle_errors
from construct.errors import ConstructError, ErrorCategory
from construct.paths import HostPaths
from construct.session.login_forward import DEFAULT_PORTS, format_ports, parse_ports


@cli.command("login-bridge")
@click.option(
    "--ports",
    default=DEFAULT_PORTS,
    show_default=True,
    help="Comma-separated localhost callback ports",
)
@handle_errors
def login_bridge(ports: str):
    """Enable login callback forwarding until Enter is pressed.

    While active, every fresh run publishes the callback ports so browser
    logins (codex, gemini, ...) can reach the agent in the container.
    """
    normalized = format_ports(parse_ports(ports)) or DEFAULT_PORTS
    flag = HostPaths.login_bridge_flag()
    try:
        flag.parent.mkdir(parents=True, exist_ok=True)
        flag.write_text(normalized + "\n")
    except OSError as e:
        raise ConstructError(
            ErrorCategory.FILE,
            "enable login bridge",
            path=str(flag),
            cause=e,
        ) from e

    try:
        console.print(f"[green]Login bridge active on localhost ports: {normalized}[/green]")
        console.print("Run your agent login in another terminal window.")
        console.print("Press Enter to stop the bridge.")
        try:
            click.prompt("", default="", show_default=False, prompt_suffix="")
        except (click.Abort, KeyboardInterrupt):
            pass
    finally:
        flag.unlink(missing_ok=True)
        console.print("Login bridge stopped.")
