# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Top-level decision flow for one agent invocation.

1. Daemon running: try to exec there.
2. Daemon not running and auto_start: start it, wait, try again.
3. Otherwise a fresh `compose run` of the interactive container, after
   resolving any collision with an existing one.

The agent's exit code is returned unchanged on every success path.
"""

import time
from contextlib import ExitStack
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from construct.agents import apply_yolo_args
from construct.env import EnvList, apply_container_path, inject_network_env
from construct.errors import ConstructError, ErrorCategory
from construct.paths import ContainerDefaults, ContainerPaths
from construct.runtime.compose import (
    build_image,
    compose_process_env,
    image_exists,
    prepare_runtime,
    run_compose,
    start_daemon_background,
)
from construct.runtime.containers import ContainerState
from construct.session.collision import CollisionChoice, default_prompt, resolve_collision
from construct.session.context import SessionContext
from construct.session.daemon import DaemonSession
from construct.session.environment import EnvironmentAssembler
from construct.session.login_forward import login_forward_ports, publish_flags
from construct.session.outcome import Fail, Ok, Outcome, SessionDecision
from construct.utils.logging import get_logger
from construct.utils.polling import poll_until

logger = get_logger(__name__)

DAEMON_POLL_INTERVAL = 0.5
DAEMON_POLL_TIMEOUT = 10.0

# Exit code when the user aborts a container collision
ABORT_EXIT_CODE = 1


class SessionOrchestrator:
    """Runs one invocation end to end and returns its exit code."""

    def __init__(
        self,
        ctx: SessionContext,
        prompt: Callable[[], CollisionChoice] = default_prompt,
        sleep: Callable[[float], None] = time.sleep,
        login_flag_file: Optional[Path] = None,
    ):
        self.ctx = ctx
        self.prompt = prompt
        self.sleep = sleep
        self.login_flag_file = login_flag_file
        self.decision: Optional[SessionDecision] = None

    def run(self, args: Sequence[str], provider_env: Optional[Mapping[str, str]] = None) -> int:
        """Run args (agent name first, empty for a shell).

        Raises:
            ConstructError: On real failures (build, exec, daemon exec)
        """
        args = apply_yolo_args(list(args), self.ctx.config)
        prepare_runtime(self.ctx)
        with ExitStack() as bridges:
            daemon = DaemonSession(self.ctx, bridges, sleep=self.sleep)
            code = self._via_daemon(daemon, args, provider_env)
            if code is not None:
                self._decide(SessionDecision.EXEC_DAEMON)
                return code
            return self._run_fresh(args, provider_env, bridges)

    # Daemon path

    def _via_daemon(
        self,
        daemon: DaemonSession,
        args: List[str],
        provider_env: Optional[Mapping[str, str]],
    ) -> Optional[int]:
        manager = self.ctx.manager
        state = manager.state(ContainerDefaults.DAEMON_NAME)

        if state is ContainerState.RUNNING:
            return self._settle(daemon.try_exec(args, provider_env))

        if not self.ctx.config.daemon.auto_start:
            return None

        if state is ContainerState.EXITED:
            try:
                manager.remove(ContainerDefaults.DAEMON_NAME)
            except ConstructError as e:
                logger.debug(f"Failed to cleanup exited daemon: {e}")

        if not start_daemon_background(self.ctx, self.daemon_start_env()):
            return None
        if not poll_until(
            lambda: manager.state(ContainerDefaults.DAEMON_NAME) is ContainerState.RUNNING,
            DAEMON_POLL_INTERVAL,
            DAEMON_POLL_TIMEOUT,
            sleep=self.sleep,
        ):
            logger.debug(f"Daemon did not start within {DAEMON_POLL_TIMEOUT:.0f} seconds")
            return None
        return self._settle(daemon.try_exec(args, provider_env))

    @staticmethod
    def _settle(outcome: Outcome) -> Optional[int]:
        if isinstance(outcome, Ok):
            return outcome.value
        if isinstance(outcome, Fail):
            raise outcome.error
        logger.debug(f"Daemon skipped: {outcome.reason}")
        return None

    def _decide(self, decision: SessionDecision) -> None:
        self.decision = decision
        logger.debug(f"Session decision: {decision.value}")

    def daemon_start_env(self) -> Dict[str, str]:
        """Process environment for the detached daemon start."""
        ctx = self.ctx
        env = EnvList.from_mapping(ctx.host_env, forward=False)
        if ctx.cwd:
            env.set("PWD", ctx.cwd, forward=False)
        inject_network_env(env, ctx.config)
        apply_container_path(env, ctx.host_env.get("PATH"))
        return env.as_dict()

    # Fresh path

    def _run_fresh(
        self,
        args: List[str],
        provider_env: Optional[Mapping[str, str]],
        bridges: ExitStack,
    ) -> int:
        ctx = self.ctx
        name = ContainerDefaults.INTERACTIVE_NAME

        decision = resolve_collision(ctx.manager, name, self.prompt)
        self._decide(decision)
        if decision is SessionDecision.ATTACH_EXISTING:
            exec_args = args or [ctx.config.sandbox.shell or "/bin/bash"]
            return ctx.manager.exec_interactive(name, exec_args, user=ctx.exec_user)
        if decision is SessionDecision.ABORT_COLLISION:
            return ABORT_EXIT_CODE

        if not ctx.cwd:
            raise ConstructError(
                ErrorCategory.FILE,
                "determine current directory",
                suggestion="Run construct from an existing directory",
            )

        if not image_exists(ctx.manager):
            build_image(ctx.engine, compose_process_env(ctx.host_env, ctx.cwd, ctx.platform))

        enabled, ports = login_forward_ports(args, self.login_flag_file)
        if not enabled:
            ports = []
        env = EnvironmentAssembler(ctx, bridges).assemble(args, provider_env, login_ports=ports)

        if args:
            logger.print(f"Running in Construct: {' '.join(args)}", style="cyan")
        else:
            logger.print("Entering Construct interactive shell...", style="cyan")

        flags = self.run_flags(args, env, ports)
        try:
            result = run_compose(
                ctx.engine,
                "run",
                flags,
                compose_process_env(env.as_dict(), ctx.cwd, ctx.platform),
            )
        except ConstructError as e:
            raise ConstructError(
                ErrorCategory.CONTAINER,
                "execute agent in container",
                path=ctx.cwd,
                command=f"{ctx.engine.value} shell",
                runtime=ctx.engine.value,
                cause=e.cause,
                suggestion="Re-run with --ct-debug for the compose output",
            ) from e
        return _exit_status(result.returncode)

    def run_flags(self, args: Sequence[str], env: EnvList, ports: Sequence[int]) -> List[str]:
        """Arguments after `compose run` for a fresh container."""
        flags = ["--rm"]
        if self.ctx.is_darwin:
            flags.extend(["--user", ContainerPaths.USER])
        flags.extend(publish_flags(ports))
        for assignment in env.forwarded():
            flags.extend(["-e", assignment])
        flags.append(ContainerDefaults.SERVICE_NAME)
        flags.extend(args)
        return flags


def _exit_status(returncode: int) -> int:
    # Killed by a signal: report it the way a shell does
    if returncode < 0:
        return 128 - returncode
    return returncode
