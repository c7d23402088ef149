# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Container state queries and exec helpers for the selected engine.

Everything goes through the engine's CLI (docker or podman) with
subprocess, so there is no daemon connection to manage. Read-only
queries never raise: a failed query reads as "no" / None.
"""

import subprocess
from enum import Enum
from typing import Iterable, List, Optional

from construct.errors import ConstructError, ErrorCategory
from construct.runtime.engine import Engine
from construct.utils.logging import get_logger

logger = get_logger(__name__)

QUERY_TIMEOUT = 10


class ContainerState(str, Enum):
    """Lifecycle of a named container."""

    MISSING = "missing"
    EXITED = "exited"
    RUNNING = "running"


class ContainerManager:
    """Engine-bound wrapper around the container CLI."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.cli = engine.cli

    def _query(self, args: List[str]) -> Optional[str]:
        """Run a read-only CLI query, returning stripped stdout or None on failure."""
        try:
            result = subprocess.run(
                [self.cli, *args],
                capture_output=True,
                text=True,
                timeout=QUERY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"{self.cli} {' '.join(args)} failed: {e}")
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def _act(self, args: List[str], operation: str) -> None:
        """Run a state-changing CLI command, raising ConstructError on failure."""
        command = " ".join([self.cli, *args])
        try:
            result = subprocess.run([self.cli, *args], capture_output=True, text=True)
        except OSError as e:
            raise ConstructError(
                ErrorCategory.CONTAINER, operation, command=command, runtime=self.engine.value, cause=e
            ) from e
        if result.returncode != 0:
            cause = RuntimeError(result.stderr.strip() or f"exit status {result.returncode}")
            raise ConstructError(
                ErrorCategory.CONTAINER, operation, command=command, runtime=self.engine.value, cause=cause
            )

    # State

    def exists(self, name: str) -> bool:
        output = self._query(["ps", "-a", "--filter", f"name=^{name}$", "--format", "{{.Names}}"])
        return output == name

    def is_running(self, name: str) -> bool:
        output = self._query(["ps", "--filter", f"name=^{name}$", "--format", "{{.Names}}"])
        return output == name

    def state(self, name: str) -> ContainerState:
        """Resolve a container's state from two independent queries."""
        if not self.exists(name):
            return ContainerState.MISSING
        if self.is_running(name):
            return ContainerState.RUNNING
        return ContainerState.EXITED

    # Inspection

    def container_image_id(self, name: str) -> Optional[str]:
        return self._query(["inspect", "--format", "{{.Image}}", name]) or None

    def image_id(self, image: str) -> Optional[str]:
        return self._query(["image", "inspect", "--format", "{{.Id}}", image]) or None

    def image_exists(self, image: str) -> bool:
        return self._query(["image", "inspect", image]) is not None

    def is_stale(self, name: str, image: str) -> bool:
        """True if the container runs another image than `image` or either id is unknown."""
        container_image = self.container_image_id(name)
        if not container_image:
            return True
        current = self.image_id(image)
        if not current:
            return True
        return container_image != current

    def working_dir(self, name: str) -> Optional[str]:
        return self._query(["inspect", "--format", "{{.Config.WorkingDir}}", name]) or None

    def mount_source(self, name: str, destination: str) -> Optional[str]:
        """Host source path of the mount at `destination`, if any."""
        template = (
            "{{range .Mounts}}{{if eq .Destination "
            f'"{destination}"'
            "}}{{.Source}}{{end}}{{end}}"
        )
        return self._query(["inspect", "--format", template, name]) or None

    def label(self, name: str, key: str) -> Optional[str]:
        value = self._query(["inspect", "--format", f'{{{{index .Config.Labels "{key}"}}}}', name])
        if not value or value == "<no value>":
            return None
        return value

    # Lifecycle

    def remove(self, name: str) -> None:
        self._act(["rm", name], f"remove container {name}")

    def stop(self, name: str) -> None:
        self._act(["stop", name], f"stop container {name}")

    # Exec

    @staticmethod
    def _exec_args(
        name: str,
        args: Iterable[str],
        env: Iterable[str] = (),
        workdir: Optional[str] = None,
        user: Optional[str] = None,
        interactive: bool = False,
    ) -> List[str]:
        exec_args = ["exec"]
        if interactive:
            exec_args.append("-it")
        if workdir:
            exec_args.extend(["-w", workdir])
        if user:
            exec_args.extend(["-u", user])
        for assignment in env:
            exec_args.extend(["-e", assignment])
        exec_args.append(name)
        exec_args.extend(args)
        return exec_args

    def exec_capture(
        self,
        name: str,
        args: List[str],
        env: Iterable[str] = (),
        user: Optional[str] = None,
    ) -> str:
        """Run a command in a container and return its combined output.

        Raises:
            ConstructError: If the command cannot be run or exits non-zero
        """
        cmd = [self.cli, *self._exec_args(name, args, env, user=user)]
        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as e:
            raise ConstructError(
                ErrorCategory.CONTAINER, "exec in container", command=" ".join(cmd[:3]), cause=e
            ) from e
        if result.returncode != 0:
            message = result.stdout.strip() or f"exit status {result.returncode}"
            raise ConstructError(
                ErrorCategory.CONTAINER,
                "exec in container",
                command=f"{self.cli} exec {name}",
                runtime=self.engine.value,
                cause=RuntimeError(message),
            )
        return result.stdout

    def exec_interactive(
        self,
        name: str,
        args: List[str],
        env: Iterable[str] = (),
        workdir: Optional[str] = None,
        user: Optional[str] = None,
    ) -> int:
        """Run a command interactively with inherited stdio.

        Returns:
            The command's exit code

        Raises:
            ConstructError: If the exec itself cannot be spawned
        """
        cmd = [self.cli, *self._exec_args(name, args, env, workdir, user, interactive=True)]
        logger.debug(f"Exec: {self.cli} exec -it {name} {' '.join(args)}")
        try:
            result = subprocess.run(cmd)
        except OSError as e:
            raise ConstructError(
                ErrorCategory.CONTAINER,
                "exec in container",
                command=f"{self.cli} exec -it {name}",
                runtime=self.engine.value,
                cause=e,
            ) from e
        return result.returncode

    def attach(self, name: str) -> int:
        """Attach the terminal to a running container's main process."""
        try:
            return subprocess.run([self.cli, "attach", name]).returncode
        except OSError as e:
            raise ConstructError(
                ErrorCategory.CONTAINER, "attach to container", command=f"{self.cli} attach {name}", cause=e
            ) from e
