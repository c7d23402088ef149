# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for multi-root daemon mount resolution."""

import hashlib
import re

import pytest

from construct.models.host_config import HostConfigModel
from construct.runtime.daemon_mounts import (
    MAX_ENTRIES,
    MountPathError,
    container_destination,
    fingerprint,
    normalize_mount_path,
    resolve_daemon_mounts,
)


def _config(paths, enabled=True):
    return HostConfigModel.model_validate(
        {"daemon": {"multi_paths_enabled": enabled, "mount_paths": paths}}
    )


class TestContainerDestination:
    """Deterministic container paths."""

    def test_shape(self):
        dest = container_destination("/home/u/code")
        assert re.fullmatch(r"/workspaces/[0-9a-f]{16}", dest)

    def test_matches_sha256_prefix(self):
        digest = hashlib.sha256(b"/home/u/code").hexdigest()[:16]
        assert container_destination("/home/u/code") == f"/workspaces/{digest}"

    def test_distinct_roots_distinct_paths(self):
        assert container_destination("/a") != container_destination("/b")


class TestFingerprint:
    """Fingerprint of the ordered root list."""

    def test_stable(self):
        assert fingerprint(["/a", "/b"]) == fingerprint(["/a", "/b"])

    def test_order_sensitive(self):
        """Reordering roots changes the fingerprint."""
        assert fingerprint(["/a", "/b"]) != fingerprint(["/b", "/a"])

    def test_newline_separated(self):
        assert fingerprint(["/a", "/b"]) == hashlib.sha256(b"/a\n/b\n").hexdigest()


class TestNormalizeMountPath:
    """Single entry normalization."""

    def test_existing_directory(self, tmp_path):
        assert normalize_mount_path(f"  {tmp_path}/./  ") == str(tmp_path)

    def test_tilde_expansion(self, isolated_home):
        assert normalize_mount_path("~") == str(isolated_home)

    def test_tilde_subpath(self, isolated_home):
        (isolated_home / "code").mkdir()
        assert normalize_mount_path("~/code") == str(isolated_home / "code")

    def test_env_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CODE_ROOT", str(tmp_path))
        assert normalize_mount_path("${CODE_ROOT}") == str(tmp_path)
        assert normalize_mount_path("$CODE_ROOT") == str(tmp_path)

    def test_empty(self):
        with pytest.raises(MountPathError, match="empty path"):
            normalize_mount_path("   ")

    def test_other_user_home(self):
        with pytest.raises(MountPathError, match="unsupported ~ expansion"):
            normalize_mount_path("~alice/code")

    def test_missing(self, tmp_path):
        with pytest.raises(MountPathError, match="path not found"):
            normalize_mount_path(str(tmp_path / "missing"))


class TestResolveDaemonMounts:
    """Resolution of daemon.mount_paths."""

    def test_disabled(self, tmp_path):
        result = resolve_daemon_mounts(_config([str(tmp_path)], enabled=False))
        assert result.enabled is False
        assert result.warnings == []

    def test_none_config(self):
        assert resolve_daemon_mounts(None).enabled is False

    def test_empty_list_warns(self):
        result = resolve_daemon_mounts(_config([]))
        assert result.enabled is False
        assert result.warnings == [
            "daemon.multi_paths_enabled is true but daemon.mount_paths is empty; "
            "falling back to single-root daemon mounts"
        ]

    def test_valid_roots(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        result = resolve_daemon_mounts(_config([str(a), str(b)]))

        assert result.enabled is True
        assert result.roots == [str(a), str(b)]
        assert [m.container_path for m in result.mounts] == [
            container_destination(str(a)),
            container_destination(str(b)),
        ]
        assert result.fingerprint == fingerprint([str(a), str(b)])
        assert result.warnings == []

    def test_invalid_entry_skipped(self, tmp_path):
        missing = tmp_path / "missing"
        result = resolve_daemon_mounts(_config([str(missing), str(tmp_path)]))

        assert result.roots == [str(tmp_path)]
        assert result.warnings == [f"daemon.mount_paths entry skipped ({missing}): path not found"]

    def test_duplicate_ignored(self, tmp_path):
        result = resolve_daemon_mounts(_config([str(tmp_path), f"{tmp_path}/"]))

        assert result.roots == [str(tmp_path)]
        assert result.warnings == [f"daemon.mount_paths entry duplicated and ignored: {tmp_path}"]

    def test_no_valid_entries(self, tmp_path):
        result = resolve_daemon_mounts(_config([str(tmp_path / "nope")]))

        assert result.enabled is False
        assert result.warnings[-1] == (
            "daemon.mount_paths had no valid entries; falling back to single-root daemon mounts"
        )

    def test_overlap_warns_but_keeps_both(self, tmp_path):
        inner = tmp_path / "inner"
        inner.mkdir()
        result = resolve_daemon_mounts(_config([str(tmp_path), str(inner)]))

        assert result.roots == [str(tmp_path), str(inner)]
        assert result.warnings == [
            f"daemon.mount_paths overlap: {tmp_path} contains {inner} (first match wins)"
        ]

    def test_too_many_entries_truncated(self, tmp_path):
        dirs = []
        for i in range(MAX_ENTRIES + 2):
            d = tmp_path / f"d{i}"
            d.mkdir()
            dirs.append(str(d))
        result = resolve_daemon_mounts(_config(dirs))

        assert len(result.roots) == MAX_ENTRIES
        assert any("large lists may slow startup" in w for w in result.warnings)
        assert any(f"exceeds {MAX_ENTRIES} entries" in w for w in result.warnings)
