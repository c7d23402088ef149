# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for ConstructError rendering."""

from construct.errors import ConstructError, ErrorCategory


class TestConstructError:
    def test_minimal(self):
        assert str(ConstructError(ErrorCategory.FILE, "read config")) == "[FILE] read config failed"

    def test_full(self):
        error = ConstructError(
            ErrorCategory.CONTAINER,
            "execute agent in container",
            path="/home/u/app",
            command="docker shell",
            runtime="docker",
            suggestion="Run 'construct doctor'",
            cause=RuntimeError("exit status 125"),
        )
        assert str(error).splitlines() == [
            "[CONTAINER] execute agent in container failed",
            "  Path: /home/u/app",
            "  Command: docker shell",
            "  Runtime: docker",
            "  Cause: exit status 125",
            "  → Run 'construct doctor'",
        ]
