# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Container engine selection.

select_engine() picks docker, podman or the native macOS `container`
engine. Pass 1 takes the first candidate that is installed and already
answering; pass 2 tries to start each candidate in turn and waits for it.
If nothing comes up the caller gets a fatal ConstructError.
"""

import platform
import shutil
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional

from construct.errors import ConstructError, ErrorCategory
from construct.utils.logging import get_logger
from construct.utils.polling import poll_until

logger = get_logger(__name__)

# Liveness wait after a start action
START_POLL_INTERVAL = 2.0
START_POLL_TIMEOUT = 60.0

# First macOS release that ships the native container engine
NATIVE_ENGINE_MIN_MACOS = 26

NO_RUNTIME_MESSAGE = (
    "No container runtime available. "
    "Please install Docker, Podman, or use macOS container runtime."
)


class Engine(str, Enum):
    """Supported container engines."""

    DOCKER = "docker"
    PODMAN = "podman"
    CONTAINER = "container"

    @property
    def cli(self) -> str:
        """Binary used for ps/inspect/exec (the native engine speaks docker CLI)."""
        return "podman" if self is Engine.PODMAN else "docker"


DEFAULT_ORDER = [Engine.CONTAINER, Engine.PODMAN, Engine.DOCKER]


def _is_darwin() -> bool:
    return sys.platform == "darwin"


def _run_quiet(cmd: List[str], timeout: Optional[float] = 30) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)


def _succeeds(cmd: List[str], timeout: Optional[float] = 30) -> bool:
    try:
        return _run_quiet(cmd, timeout=timeout).returncode == 0
    except (OSError, subprocess.TimeoutExpired):
        return False


def macos_major_version() -> int:
    """Major macOS version from sw_vers, 0 when unknown or not on macOS."""
    if not _is_darwin():
        return 0
    try:
        result = _run_quiet(["sw_vers", "-productVersion"], timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        return 0
    if result.returncode != 0:
        return 0
    head = result.stdout.strip().split(".")[0]
    return int(head) if head.isdigit() else 0


def candidate_order(preferred: Optional[str]) -> List[Engine]:
    """Preferred engine first, then the default order, without duplicates."""
    order: List[Engine] = []
    if preferred and preferred != "auto":
        try:
            order.append(Engine(preferred))
        except ValueError:
            logger.warning(f"Unknown runtime.engine '{preferred}', using auto detection")
    for engine in DEFAULT_ORDER:
        if engine not in order:
            order.append(engine)
    return order


def is_installed(engine: Engine) -> bool:
    return shutil.which(engine.value) is not None


def is_running(engine: Engine) -> bool:
    """Liveness probe for an engine."""
    if engine is Engine.CONTAINER:
        return macos_major_version() >= NATIVE_ENGINE_MIN_MACOS
    if engine is Engine.PODMAN:
        if _is_darwin():
            return _succeeds(["podman", "machine", "list"])
        try:
            result = _run_quiet(["podman", "info", "--format", "{{.Host.RemoteSocket.Exists}}"])
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0
    return _succeeds(["docker", "info"])


def is_orbstack_installed() -> bool:
    if shutil.which("orbctl"):
        return True
    for app in (Path("/Applications/OrbStack.app"), Path.home() / "Applications" / "OrbStack.app"):
        if app.exists():
            return True
    return False


def start_engine(engine: Engine) -> bool:
    """Run the OS-appropriate start action. Returns True if one was launched."""
    if engine is Engine.CONTAINER:
        # Nothing to launch; either the OS ships it or it does not
        return macos_major_version() >= NATIVE_ENGINE_MIN_MACOS

    if engine is Engine.PODMAN:
        if _is_darwin():
            logger.info("Starting podman machine...")
            return _succeeds(["podman", "machine", "start"], timeout=None)
        logger.info("Starting podman service...")
        if _succeeds(["systemctl", "--user", "start", "podman.socket"]):
            return True
        return _succeeds(["systemctl", "start", "podman"])

    if _is_darwin():
        app = "OrbStack" if is_orbstack_installed() else "Docker"
        logger.info(f"Launching {app}...")
        return _succeeds(["open", "-a", app])
    logger.info("Starting docker service...")
    if _succeeds(["systemctl", "start", "docker"]):
        return True
    return _succeeds(["service", "docker", "start"])


def select_engine(preferred: Optional[str] = "auto") -> Engine:
    """Pick the container engine for this process.

    Args:
        preferred: runtime.engine from config ("auto" or an engine name)

    Returns:
        The first engine that is installed and live

    Raises:
        ConstructError: If no engine can be found or started
    """
    candidates = candidate_order(preferred)

    for engine in candidates:
        if is_installed(engine) and is_running(engine):
            logger.debug(f"Using container runtime: {engine.value}")
            return engine

    for engine in candidates:
        if not is_installed(engine):
            continue
        if not start_engine(engine):
            continue
        if poll_until(lambda: is_running(engine), START_POLL_INTERVAL, START_POLL_TIMEOUT):
            logger.success(f"Started {engine.value}")
            return engine
        logger.debug(f"{engine.value} did not become ready within {START_POLL_TIMEOUT:.0f}s")

    raise ConstructError(
        ErrorCategory.RUNTIME,
        "detect container runtime",
        runtime=platform.system().lower(),
        cause=RuntimeError(NO_RUNTIME_MESSAGE),
        suggestion="Install Docker or Podman, then re-run construct",
    )
