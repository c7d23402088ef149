# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Execution environment assembly for fresh runs and daemon execs."""

from contextlib import ExitStack
from typing import Callable, Mapping, Optional, Sequence

from construct.bridges.clipboard import ClipboardBridge
from construct.bridges.ssh import SSHBridge
from construct.env import (
    EnvList,
    apply_container_path,
    collect_provider_env,
    inject_network_env,
    mask_sensitive_value,
    merge_provider_env,
    reset_claude_env,
)
from construct.errors import BridgeError
from construct.paths import ContainerPaths
from construct.session.context import SessionContext
from construct.session.login_forward import login_forward_env
from construct.utils.logging import get_logger

logger = get_logger(__name__)

# Agents that paste images through a file path instead of raw clipboard data
FILE_PASTE_AGENTS = "gemini,qwen"


def stop_bridge(bridge) -> None:
    try:
        bridge.stop()
    except Exception as e:
        logger.debug(f"Bridge teardown failed: {e}")


class EnvironmentAssembler:
    """Builds the EnvList for one invocation.

    Bridges started here are registered on the caller's ExitStack and
    stopped when it unwinds.
    """

    def __init__(
        self,
        ctx: SessionContext,
        bridges: ExitStack,
        clipboard_factory: Callable[..., ClipboardBridge] = ClipboardBridge,
        ssh_factory: Callable[..., SSHBridge] = SSHBridge,
    ):
        self.ctx = ctx
        self.bridges = bridges
        self.clipboard_factory = clipboard_factory
        self.ssh_factory = ssh_factory

    def assemble(
        self,
        args: Sequence[str],
        provider_env: Optional[Mapping[str, str]] = None,
        inherit_host: bool = True,
        login_ports: Optional[Sequence[int]] = None,
        start_ssh_bridge: bool = True,
    ) -> EnvList:
        """Assemble the environment; later steps override earlier ones.

        Args:
            args: Agent argv (args[0] is the agent name, empty for a shell)
            provider_env: Invocation-specific provider overrides (claude aliases)
            inherit_host: Start from the host environment (fresh runs only)
            login_ports: Ports for login callback forwarding, if enabled
            start_ssh_bridge: Start the TCP SSH bridge (macOS fresh runs)

        Returns:
            The ordered environment
        """
        ctx = self.ctx
        host = ctx.host_env
        config = ctx.config

        if inherit_host:
            env = EnvList.from_mapping(host, forward=False)
            if ctx.cwd:
                env.set("PWD", ctx.cwd, forward=False)
                env.set("CONSTRUCT_PROJECT_PATH", ctx.project_path, forward=False)
            inject_network_env(env, config)
        else:
            env = EnvList()

        apply_container_path(env, host.get("PATH") if inherit_host else None)

        overrides = dict(provider_env or {})
        provider = merge_provider_env(collect_provider_env(host), overrides)
        if overrides:
            reset_claude_env(env)
        if provider:
            env.update(provider)
            logger.info(f"Provider environment variables injected: {len(provider)}")
            for key, value in provider.items():
                logger.debug(f"  {key}={mask_sensitive_value(key, value)}")

        self._add_clipboard(env)

        if start_ssh_bridge:
            self._add_ssh_bridge(env)

        env.set("COLORTERM", host.get("COLORTERM") or "truecolor")

        if args:
            agent = args[0]
            env.set("CONSTRUCT_AGENT_NAME", agent)
            if agent == "codex":
                self._add_codex_quirks(env)

        if login_ports:
            env.update(login_forward_env(login_ports))

        return env

    def _add_clipboard(self, env: EnvList) -> None:
        bridge = self.clipboard_factory(self.ctx.config.sandbox.clipboard_host)
        try:
            bridge.start()
        except BridgeError as e:
            logger.warning(f"Failed to start clipboard server: {e}")
        else:
            self.bridges.callback(stop_bridge, bridge)
            logger.debug(f"Clipboard server running at {bridge.url}")
            env.set("CONSTRUCT_CLIPBOARD_URL", bridge.url)
            env.set("CONSTRUCT_CLIPBOARD_TOKEN", bridge.token)
            env.set("CONSTRUCT_FILE_PASTE_AGENTS", FILE_PASTE_AGENTS)
        patch = "1" if self.ctx.config.agents.clipboard_image_patch else "0"
        env.set("CONSTRUCT_CLIPBOARD_IMAGE_PATCH", patch)

    def _add_ssh_bridge(self, env: EnvList) -> None:
        ctx = self.ctx
        if not (ctx.is_darwin and ctx.config.sandbox.forward_ssh_agent and ctx.host_env.get("SSH_AUTH_SOCK")):
            return
        bridge = self.ssh_factory(ctx.host_env["SSH_AUTH_SOCK"])
        try:
            port = bridge.start()
        except BridgeError as e:
            logger.warning(f"Failed to start SSH bridge: {e}")
            return
        self.bridges.callback(stop_bridge, bridge)
        logger.debug(f"SSH bridge running on port {port}")
        env.set("CONSTRUCT_SSH_BRIDGE_PORT", str(port))

    def _add_codex_quirks(self, env: EnvList) -> None:
        env.set("CODEX_HOME", ContainerPaths.codex_home())
        if not self.ctx.config.agents.clipboard_image_patch:
            return
        # Codex treats itself as running under WSL and uses the clipboard shim
        env.set("WSL_DISTRO_NAME", "Ubuntu")
        env.set("WSL_INTEROP", "/run/WSL/8_interop")
        env.set("DISPLAY", "")
        if self.ctx.host_env.get("CONSTRUCT_DEBUG") == "1":
            env.set("CONSTRUCT_DEBUG", "1")
