# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""construct CLI package."""

import click

from construct import __version__
from construct.agents import SHELL_SLUG, SUPPORTED_AGENTS
from construct.env import validate_network_mode
from construct.utils.logging import configure_logging, log_startup_info


def _network_option(ctx: click.Context, param: click.Parameter, value):
    if value is None:
        return None
    try:
        validate_network_mode(value)
    except ValueError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param)
    return value


# Runtime flags are accepted anywhere on the command line, even after an
# agent name; everything else after the agent name belongs to the agent.
_RUNTIME_FLAGS = {
    "--ct-verbose": "--ct-verbose",
    "-ct-v": "--ct-verbose",
    "--ct-debug": "--ct-debug",
    "-ct-d": "--ct-debug",
}
_NETWORK_FLAGS = ("--ct-network", "-ct-n")


def hoist_runtime_flags(args: list) -> list:
    """Move --ct-* flags from any position to the front of ``args``."""
    hoisted = []
    rest = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in _RUNTIME_FLAGS:
            hoisted.append(_RUNTIME_FLAGS[arg])
        elif arg in _NETWORK_FLAGS:
            if i + 1 >= len(args):
                raise click.UsageError("--ct-network flag requires a value")
            hoisted.extend(["--ct-network", args[i + 1]])
            i += 1
        elif arg.startswith("--ct-network="):
            hoisted.extend(["--ct-network", arg.split("=", 1)[1]])
        else:
            rest.append(arg)
        i += 1
    return hoisted + rest


class ConstructGroup(click.Group):
    """Root group that picks up runtime flags after the subcommand name."""

    def parse_args(self, ctx: click.Context, args: list) -> list:
        return super().parse_args(ctx, hoist_runtime_flags(list(args)))


@click.group(cls=ConstructGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name="construct")
@click.option("--ct-verbose", is_flag=True, help="Show informational output")
@click.option("--ct-debug", is_flag=True, help="Show debug output")
@click.option(
    "--ct-network",
    "--network",
    "network",
    callback=_network_option,
    help="Network mode for this run (permissive, strict, offline)",
)
@click.pass_context
def cli(ctx: click.Context, ct_verbose: bool, ct_debug: bool, network):
    """construct - Run AI coding agents in a sandbox container."""
    configure_logging(verbose=ct_verbose, debug=ct_debug)
    log_startup_info()
    ctx.ensure_object(dict)
    ctx.obj["network"] = network

    if ctx.invoked_subcommand is None:
        click.echo("Usage: construct [OPTIONS] COMMAND [ARGS]...\n")

        def _print_table(title: str, rows: list, width: int) -> None:
            click.echo(f"{title}:")
            for name, desc in rows:
                click.echo(f"  {name.ljust(width)}  {desc}")
            click.echo("")

        groups = [
            (
                "Agents",
                [(agent.slug, f"Run {agent.name}") for agent in SUPPORTED_AGENTS]
                + [
                    (SHELL_SLUG, "Open a shell in the sandbox"),
                    ("cc", "Run Claude Code with a configured provider"),
                ],
            ),
            (
                "Runtime",
                [
                    ("daemon", "Warm container (start/stop/status/attach)"),
                    ("login-bridge", "Forward agent login callbacks to the host"),
                    ("agents", "List supported agents"),
                ],
            ),
        ]

        width = max(len(name) for _, rows in groups for name, _ in rows)
        for title, rows in groups:
            _print_table(title, rows, width)
        click.echo("Use --help for full command details.")


def main():
    """Main entry point."""
    cli()


from construct.cli.commands import agents  # noqa: E402,F401
from construct.cli.commands import daemon  # noqa: E402,F401
from construct.cli.commands import login_bridge  # noqa: E402,F401
