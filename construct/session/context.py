# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared, per-invocation state handed to every session component."""

import os
import sys
from dataclasses import dataclass, field
from typing import Dict, Optional

from construct.models.host_config import HostConfigModel
from construct.paths import ContainerPaths
from construct.runtime.containers import ContainerManager
from construct.runtime.engine import Engine


@dataclass
class SessionContext:
    """Engine, config and host facts for one construct invocation.

    config and engine are fixed once the session starts. The only mutable
    field is ownership_fix_attempted, so the config-dir ownership fix runs
    at most once per session.
    """

    config: HostConfigModel
    engine: Engine
    manager: ContainerManager
    cwd: Optional[str] = None
    host_env: Dict[str, str] = field(default_factory=lambda: dict(os.environ))
    platform: str = sys.platform
    ownership_fix_attempted: bool = False

    @classmethod
    def create(cls, config: HostConfigModel, engine: Engine, **kwargs) -> "SessionContext":
        """Build a context for the current process (cwd read from the OS)."""
        if "cwd" not in kwargs:
            try:
                kwargs["cwd"] = os.getcwd()
            except OSError:
                kwargs["cwd"] = None
        return cls(config=config, engine=engine, manager=ContainerManager(engine), **kwargs)

    @property
    def is_darwin(self) -> bool:
        return self.platform == "darwin"

    @property
    def is_linux(self) -> bool:
        return self.platform.startswith("linux")

    @property
    def project_path(self) -> str:
        """Container path of the current project mount."""
        return ContainerPaths.project_path(self.cwd or "/")

    @property
    def exec_user(self) -> Optional[str]:
        """User for exec/run; the macOS VM maps files to the container user."""
        return ContainerPaths.USER if self.is_darwin else None
