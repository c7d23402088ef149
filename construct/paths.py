# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized path and name definitions for construct.

Paths are organized by context:

- HostPaths: Paths on the host machine (where the construct CLI runs)
- ContainerPaths: Paths inside the sandbox container
- ContainerDefaults: Well-known container, image and service names

Usage:
    from construct.paths import HostPaths, ContainerPaths, ContainerDefaults

    config_file = HostPaths.config_file()
    home = ContainerPaths.HOME
    daemon = ContainerDefaults.DAEMON_NAME
"""

import posixpath
from pathlib import Path


class HostPaths:
    """Paths on the host machine where the construct CLI runs."""

    @staticmethod
    def config_dir() -> Path:
        """~/.config/construct-cli/"""
        return Path.home() / ".config" / "construct-cli"

    @staticmethod
    def config_file() -> Path:
        """~/.config/construct-cli/config.yml"""
        return HostPaths.config_dir() / "config.yml"

    @staticmethod
    def container_dir() -> Path:
        """~/.config/construct-cli/container/ - compose files and helper scripts."""
        return HostPaths.config_dir() / "container"

    @staticmethod
    def compose_file() -> Path:
        return HostPaths.container_dir() / "docker-compose.yml"

    @staticmethod
    def compose_override_file() -> Path:
        """Generated per-host compose override."""
        return HostPaths.container_dir() / "docker-compose.override.yml"

    @staticmethod
    def override_hash_file() -> Path:
        """Hash of the inputs that produced the current override."""
        return HostPaths.container_dir() / ".override_hash"

    @staticmethod
    def home_dir() -> Path:
        """~/.config/construct-cli/home/ - mounted as the container user's home."""
        return HostPaths.config_dir() / "home"

    @staticmethod
    def login_bridge_flag() -> Path:
        """Flag file that enables login port forwarding for the next runs."""
        return HostPaths.config_dir() / ".login_bridge"

    @staticmethod
    def log_dir() -> Path:
        return HostPaths.config_dir() / "logs"


class ContainerPaths:
    """Paths inside the sandbox container."""

    # Container user
    USER = "construct"

    # Container user home
    HOME = "/home/construct"

    # Root for the current project mount (/projects/<basename>)
    PROJECTS_ROOT = "/projects"

    # Root for multi-root daemon mounts (/workspaces/<digest>)
    WORKSPACES_ROOT = "/workspaces"

    # SSH agent proxy socket served by socat inside the daemon
    SSH_PROXY_SOCK = "/home/construct/.ssh/agent.sock"

    # SSH agent socket bind-mounted on Linux hosts
    SSH_AGENT_MOUNT = "/ssh-agent"

    @staticmethod
    def project_path(host_dir: Path) -> str:
        """Container mount point for a host project directory."""
        name = Path(host_dir).name
        if name in ("", ".", "/"):
            return f"{ContainerPaths.PROJECTS_ROOT}/"
        return posixpath.join(ContainerPaths.PROJECTS_ROOT, name)

    @staticmethod
    def codex_home() -> str:
        return f"{ContainerPaths.HOME}/.codex"


class ContainerDefaults:
    """Default names for containers, images and compose services."""

    # Fixed-name interactive container
    INTERACTIVE_NAME = "construct-cli"

    # Long-lived warm container
    DAEMON_NAME = "construct-cli-daemon"

    # Compose service
    SERVICE_NAME = "construct-box"

    # Image
    IMAGE_NAME = "construct-box"
    IMAGE = "construct-box:latest"

    # Custom network for strict mode
    STRICT_NETWORK = "construct-net"
    STRICT_SUBNET = "172.28.0.0/16"

    # Container label carrying the daemon mount fingerprint
    DAEMON_MOUNTS_LABEL = "construct.daemon.mounts_hash"
