# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for host-to-container working directory mapping."""

from construct.runtime.daemon_mounts import DaemonMount
from construct.runtime.workdir import map_workdir, map_workdir_from_mounts


class TestMapWorkdir:
    """Single mount root mapping."""

    def test_cwd_equals_root(self):
        """The mount root itself maps to the container root."""
        assert map_workdir("/home/u/proj", "/home/u/proj", "/projects/proj") == ("/projects/proj", True)

    def test_nested_directory(self):
        """Subdirectories keep their relative path."""
        assert map_workdir("/home/u/proj/src/pkg", "/home/u/proj", "/projects/proj") == (
            "/projects/proj/src/pkg",
            True,
        )

    def test_sibling_with_common_prefix_is_outside(self):
        """A sibling sharing a name prefix is not inside the root."""
        assert map_workdir("/home/u/project2", "/home/u/proj", "/projects/proj") == ("", False)

    def test_parent_is_outside(self):
        assert map_workdir("/home/u", "/home/u/proj", "/projects/proj") == ("", False)

    def test_unnormalized_inputs(self):
        """Trailing slashes and dot segments are normalized first."""
        assert map_workdir("/home/u/proj/./src/", "/home/u/proj/", "/projects/proj") == (
            "/projects/proj/src",
            True,
        )

    def test_empty_inputs(self):
        assert map_workdir("", "/a", "/b") == ("", False)
        assert map_workdir("/a", "", "/b") == ("", False)
        assert map_workdir("/a", "/a", "") == ("", False)


class TestMapWorkdirFromMounts:
    """Multi-root mapping takes the first containing root."""

    def test_first_match_wins(self):
        """Overlapping roots resolve through the first configured one."""
        mounts = [
            DaemonMount("/home/u", "/workspaces/aaaa"),
            DaemonMount("/home/u/code", "/workspaces/bbbb"),
        ]
        assert map_workdir_from_mounts("/home/u/code/app", mounts) == ("/workspaces/aaaa/code/app", True)

    def test_later_root_used_when_first_does_not_contain(self):
        mounts = [
            DaemonMount("/srv/data", "/workspaces/aaaa"),
            DaemonMount("/home/u/code", "/workspaces/bbbb"),
        ]
        assert map_workdir_from_mounts("/home/u/code/app", mounts) == ("/workspaces/bbbb/app", True)

    def test_no_match(self):
        mounts = [DaemonMount("/srv/data", "/workspaces/aaaa")]
        assert map_workdir_from_mounts("/tmp", mounts) == ("", False)

    def test_empty_mounts(self):
        assert map_workdir_from_mounts("/tmp", []) == ("", False)
