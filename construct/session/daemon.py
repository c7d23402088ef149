# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Exec into the warm daemon container when it can serve this invocation.

Every disqualifying condition returns Skip and the orchestrator falls
back to a fresh container; none of them is an error.
"""

import time
from contextlib import ExitStack
from typing import Callable, List, Mapping, Optional, Sequence

from construct.bridges.ssh import SSHBridge
from construct.env import EnvList
from construct.errors import BridgeError, ConstructError
from construct.paths import ContainerDefaults, ContainerPaths
from construct.runtime.containers import ContainerState
from construct.runtime.daemon_mounts import resolve_daemon_mounts
from construct.runtime.workdir import map_workdir, map_workdir_from_mounts
from construct.session.context import SessionContext
from construct.session.environment import EnvironmentAssembler, stop_bridge
from construct.session.outcome import Fail, Ok, Outcome, Skip
from construct.utils.logging import get_logger
from construct.utils.polling import poll_until

logger = get_logger(__name__)

PROXY_POLL_INTERVAL = 0.15
PROXY_POLL_TIMEOUT = 1.5

# Relays the in-daemon agent socket to the host SSH bridge
SSH_PROXY_SCRIPT = (
    'if ! command -v socat >/dev/null; then echo "socat not found" >&2; exit 1; fi; '
    f'PROXY_SOCK="{ContainerPaths.SSH_PROXY_SOCK}"; '
    'PROXY_DIR="$(dirname "$PROXY_SOCK")"; '
    'mkdir -p "$PROXY_DIR" 2>/dev/null || true; '
    'chmod 700 "$PROXY_DIR" 2>/dev/null || true; '
    'rm -f "$PROXY_SOCK"; '
    'nohup socat UNIX-LISTEN:"$PROXY_SOCK",fork,mode=600 '
    'TCP:host.docker.internal:"$CONSTRUCT_SSH_BRIDGE_PORT" >/tmp/socat.log 2>&1 &'
)


class DaemonSession:
    """Decides whether the daemon can run args and, if so, runs them there."""

    name = ContainerDefaults.DAEMON_NAME

    def __init__(
        self,
        ctx: SessionContext,
        bridges: ExitStack,
        assembler: Optional[EnvironmentAssembler] = None,
        ssh_factory: Callable[..., SSHBridge] = SSHBridge,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ctx = ctx
        self.bridges = bridges
        self.assembler = assembler or EnvironmentAssembler(ctx, bridges)
        self.ssh_factory = ssh_factory
        self.sleep = sleep

    def resolve_workdir(self) -> Outcome:
        """Run the disqualification chain.

        Returns:
            Ok(workdir) with the container directory to exec in, or Skip
        """
        ctx = self.ctx
        manager = ctx.manager

        if manager.state(self.name) is not ContainerState.RUNNING:
            return Skip("daemon not running")

        if manager.is_stale(self.name, ContainerDefaults.IMAGE):
            logger.warning("Daemon is running an outdated image.")
            logger.print(
                "Run 'construct daemon stop && construct daemon start' to update, "
                "or continuing with normal startup..."
            )
            return Skip("daemon image is stale")

        if not ctx.cwd:
            logger.debug("Failed to get working directory")
            return Skip("working directory unknown")

        mounts = resolve_daemon_mounts(ctx.config)
        if mounts.enabled:
            label = manager.label(self.name, ContainerDefaults.DAEMON_MOUNTS_LABEL)
            if not label or label != mounts.fingerprint:
                logger.warning("Daemon mount paths do not match current config; running without daemon.")
                logger.print("Tip: Restart the daemon to apply updated mount paths.", style="dim")
                return Skip("daemon mount fingerprint mismatch")
            workdir, ok = map_workdir_from_mounts(ctx.cwd, mounts.mounts)
        else:
            daemon_workdir = manager.working_dir(self.name)
            if not daemon_workdir:
                logger.debug("Failed to inspect daemon working dir")
                return Skip("daemon working dir unknown")
            source = manager.mount_source(self.name, daemon_workdir)
            if not source:
                logger.debug("Failed to inspect daemon mounts")
                return Skip("daemon mount source unknown")
            workdir, ok = map_workdir(ctx.cwd, source, daemon_workdir)

        if not ok:
            logger.warning("Daemon workspace does not include the current directory; running without daemon.")
            logger.print("Tip: Enable multi-root daemon mounts in config for always-fast starts.", style="dim")
            return Skip("current directory outside daemon mounts")
        return Ok(workdir)

    def try_exec(self, args: Sequence[str], provider_env: Optional[Mapping[str, str]] = None) -> Outcome:
        """Exec args in the daemon.

        Returns:
            Ok(exit_code), Skip(reason) to fall back, or Fail(error) if the exec broke
        """
        resolved = self.resolve_workdir()
        if not isinstance(resolved, Ok):
            return resolved
        workdir = resolved.value

        env = self.assembler.assemble(args, provider_env, inherit_host=False, start_ssh_bridge=False)
        self._start_ssh_proxy(env)

        if args:
            logger.print(f"Running in Construct daemon: {' '.join(args)}", style="cyan")
        else:
            logger.print("Entering Construct daemon shell...", style="cyan")

        exec_args: List[str] = list(args) or [self.ctx.config.sandbox.shell or "/bin/bash"]
        try:
            code = self.ctx.manager.exec_interactive(
                self.name, exec_args, env.forwarded(), workdir=workdir, user=self.ctx.exec_user
            )
        except ConstructError as e:
            return Fail(e)
        return Ok(code)

    # SSH agent proxy

    def _start_ssh_proxy(self, env: EnvList) -> None:
        ctx = self.ctx
        agent_sock = ctx.host_env.get("SSH_AUTH_SOCK")
        if not (ctx.is_darwin and ctx.config.sandbox.forward_ssh_agent and agent_sock):
            return

        bridge = self.ssh_factory(agent_sock)
        try:
            port = bridge.start()
            ctx.manager.exec_capture(
                self.name,
                ["bash", "-lc", SSH_PROXY_SCRIPT],
                env=[f"CONSTRUCT_SSH_BRIDGE_PORT={port}"],
                user=ctx.exec_user,
            )
            if not poll_until(self._proxy_ready, PROXY_POLL_INTERVAL, PROXY_POLL_TIMEOUT, sleep=self.sleep):
                raise BridgeError("SSH agent proxy socket not ready")
        except (BridgeError, ConstructError) as e:
            stop_bridge(bridge)
            logger.warning(f"Failed to start SSH bridge for daemon: {e}")
            return

        self.bridges.callback(stop_bridge, bridge)
        env.set("CONSTRUCT_SSH_BRIDGE_PORT", str(port))
        env.set("SSH_AUTH_SOCK", ContainerPaths.SSH_PROXY_SOCK)
        logger.success("Started SSH Agent proxy (daemon)")

    def _proxy_ready(self) -> bool:
        try:
            self.ctx.manager.exec_capture(
                self.name,
                ["bash", "-lc", f'test -S "{ContainerPaths.SSH_PROXY_SOCK}"'],
                user=self.ctx.exec_user,
            )
        except ConstructError:
            return False
        return True
