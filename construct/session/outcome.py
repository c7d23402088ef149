# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tagged results for session steps that may decline to run."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class SessionDecision(str, Enum):
    """How one invocation is serviced."""

    EXEC_DAEMON = "exec_daemon"
    RUN_FRESH = "run_fresh"
    ATTACH_EXISTING = "attach_existing"
    ABORT_COLLISION = "abort_collision"


@dataclass(frozen=True)
class Ok:
    """The step ran; value is its result (the exit code for an exec)."""

    value: Any


@dataclass(frozen=True)
class Skip:
    """The step declined; the caller falls back to the slower path."""

    reason: str


@dataclass(frozen=True)
class Fail:
    """The step was attempted and failed."""

    error: Exception


Outcome = Union[Ok, Skip, Fail]
