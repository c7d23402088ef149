# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Error types shared across construct.

ConstructError carries enough context (operation, command, runtime, path)
for the CLI's handle_errors decorator to render an actionable panel.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Broad class of failure, shown as the error panel title."""

    RUNTIME = "RUNTIME"
    CONFIG = "CONFIG"
    PERMISSION = "PERMISSION"
    NETWORK = "NETWORK"
    FILE = "FILE"
    CONTAINER = "CONTAINER"


class ConstructError(Exception):
    """Raised when an orchestration step fails for real.

    Disqualifying conditions (stale daemon, mount mismatch, ...) never
    raise; they fall back to the slower path instead.
    """

    def __init__(
        self,
        category: ErrorCategory,
        operation: str,
        path: Optional[str] = None,
        command: Optional[str] = None,
        runtime: Optional[str] = None,
        suggestion: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.category = category
        self.operation = operation
        self.path = path
        self.command = command
        self.runtime = runtime
        self.suggestion = suggestion
        self.cause = cause
        super().__init__(self._render())

    def _render(self) -> str:
        lines = [f"[{self.category.value}] {self.operation} failed"]
        if self.path:
            lines.append(f"  Path: {self.path}")
        if self.command:
            lines.append(f"  Command: {self.command}")
        if self.runtime:
            lines.append(f"  Runtime: {self.runtime}")
        if self.cause is not None:
            lines.append(f"  Cause: {self.cause}")
        if self.suggestion:
            lines.append(f"  → {self.suggestion}")
        return "\n".join(lines)


class BridgeError(Exception):
    """Raised when a host bridge (clipboard, SSH agent) cannot start."""
