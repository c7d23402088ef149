# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Handling of an existing fixed-name interactive container."""

import sys
from enum import Enum
from typing import Callable

import click
import questionary

from construct.errors import ConstructError
from construct.runtime.containers import ContainerManager, ContainerState
from construct.session.outcome import SessionDecision
from construct.utils.logging import get_logger

logger = get_logger(__name__)


class CollisionChoice(str, Enum):
    ATTACH = "attach"
    RECREATE = "recreate"
    ABORT = "abort"


CHOICES = [
    (CollisionChoice.ATTACH, "Attach to existing session (recommended)"),
    (CollisionChoice.RECREATE, "Stop and create new session"),
    (CollisionChoice.ABORT, "Abort"),
]


def prompt_select() -> CollisionChoice:
    """Arrow-key menu for interactive terminals. Cancel means abort."""
    try:
        selected = questionary.select(
            "What do you want to do?",
            choices=[questionary.Choice(title=title, value=choice) for choice, title in CHOICES],
        ).ask()
    except KeyboardInterrupt:
        selected = None
    return selected or CollisionChoice.ABORT


def prompt_text() -> CollisionChoice:
    """Numbered fallback prompt for non-interactive stdin."""
    for index, (_, title) in enumerate(CHOICES, start=1):
        click.echo(f"{index}. {title}")
    try:
        answer = click.prompt("Choice [1-3]", default="", show_default=False, prompt_suffix=": ")
    except click.Abort:
        answer = ""
    answer = answer.strip()
    if answer in ("1", "2", "3"):
        return CHOICES[int(answer) - 1][0]
    click.echo("Invalid choice. Aborting.")
    return CollisionChoice.ABORT


def default_prompt() -> CollisionChoice:
    if sys.stdin.isatty():
        return prompt_select()
    return prompt_text()


def resolve_collision(
    manager: ContainerManager,
    name: str,
    prompt: Callable[[], CollisionChoice] = default_prompt,
) -> SessionDecision:
    """Decide what to do about an existing container called name.

    Raises:
        ConstructError: If "stop and create new" cannot stop the container
    """
    state = manager.state(name)

    if state is ContainerState.RUNNING:
        logger.warning(f"Container '{name}' is already running.")
        choice = prompt()
        if choice is CollisionChoice.ATTACH:
            return SessionDecision.ATTACH_EXISTING
        if choice is CollisionChoice.RECREATE:
            manager.stop(name)
            # Runs use --rm, so the container is usually gone after stop
            if manager.exists(name):
                manager.remove(name)
            return SessionDecision.RUN_FRESH
        return SessionDecision.ABORT_COLLISION

    if state is ContainerState.EXITED:
        logger.print(f"Removing old stopped container '{name}'...")
        try:
            manager.remove(name)
        except ConstructError as e:
            logger.warning(f"Failed to cleanup container: {e.cause or e}")

    return SessionDecision.RUN_FRESH
