# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Multi-root daemon mounts.

When daemon.multi_paths_enabled is set, the warm daemon container mounts
every configured root at a deterministic /workspaces/<digest> path, so any
project below one of the roots can reuse it. The ordered root list is
fingerprinted and stored as a container label; a daemon whose label no
longer matches the current config is not reused.

Resolution never raises. Bad entries are dropped and reported through
DaemonMounts.warnings, and an unusable list disables multi-root mode so
callers fall back to single-root behavior.
"""

import hashlib
import os
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from construct.models.host_config import HostConfigModel
from construct.paths import ContainerPaths

WARN_ENTRIES = 32
MAX_ENTRIES = 64

_ENV_REF = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z_][A-Za-z0-9_]*))")


@dataclass(frozen=True)
class DaemonMount:
    """A host root and where it appears inside the daemon."""

    host_path: str
    container_path: str


@dataclass
class DaemonMounts:
    """Validated multi-root configuration."""

    enabled: bool = False
    roots: List[str] = field(default_factory=list)
    mounts: List[DaemonMount] = field(default_factory=list)
    fingerprint: str = ""
    warnings: List[str] = field(default_factory=list)


class MountPathError(ValueError):
    """A configured mount path could not be normalized."""


def container_destination(host_path: str) -> str:
    """Deterministic container path for a host root (16 hex chars of SHA-256)."""
    digest = hashlib.sha256(host_path.encode("utf-8")).hexdigest()[:16]
    return posixpath.join(ContainerPaths.WORKSPACES_ROOT, digest)


def fingerprint(roots: List[str]) -> str:
    """Hash of the ordered root list."""
    h = hashlib.sha256()
    for root in roots:
        h.update(f"{root}\n".encode("utf-8"))
    return h.hexdigest()


def _expand_env(value: str) -> str:
    # Unset variables expand to an empty string
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), value)


def normalize_mount_path(raw: str) -> str:
    """Expand, absolutize and verify one configured root.

    Raises:
        MountPathError: With a short reason when the entry is unusable
    """
    trimmed = raw.strip()
    if not trimmed:
        raise MountPathError("empty path")

    expanded = _expand_env(trimmed)
    if expanded.startswith("~"):
        home = str(Path.home())
        if expanded == "~":
            expanded = home
        elif expanded.startswith("~/"):
            expanded = os.path.join(home, expanded[2:])
        else:
            raise MountPathError("unsupported ~ expansion")

    normalized = os.path.normpath(os.path.abspath(expanded))
    if not os.path.exists(normalized):
        raise MountPathError("path not found")
    return normalized


def _contains(parent: str, child: str) -> bool:
    rel = os.path.relpath(child, parent)
    return rel != os.curdir and rel != os.pardir and not rel.startswith(os.pardir + os.sep)


def resolve_daemon_mounts(config: Optional[HostConfigModel]) -> DaemonMounts:
    """Resolve daemon.mount_paths into mounts plus a fingerprint.

    Args:
        config: Loaded host configuration (None means disabled)

    Returns:
        DaemonMounts; enabled is False when multi-root mode is off or unusable
    """
    if config is None or not config.daemon.multi_paths_enabled:
        return DaemonMounts()

    raw = list(config.daemon.mount_paths)
    result = DaemonMounts()
    if not raw:
        result.warnings.append(
            "daemon.multi_paths_enabled is true but daemon.mount_paths is empty; "
            "falling back to single-root daemon mounts"
        )
        return result

    if len(raw) > WARN_ENTRIES:
        result.warnings.append(
            f"daemon.mount_paths has {len(raw)} entries; large lists may slow startup"
        )
    if len(raw) > MAX_ENTRIES:
        result.warnings.append(
            f"daemon.mount_paths exceeds {MAX_ENTRIES} entries; "
            f"ignoring entries beyond the first {MAX_ENTRIES}"
        )
        raw = raw[:MAX_ENTRIES]

    roots: List[str] = []
    for entry in raw:
        try:
            normalized = normalize_mount_path(entry)
        except MountPathError as e:
            result.warnings.append(f"daemon.mount_paths entry skipped ({entry.strip()}): {e}")
            continue
        if normalized in roots:
            result.warnings.append(f"daemon.mount_paths entry duplicated and ignored: {normalized}")
            continue
        roots.append(normalized)

    if not roots:
        result.warnings.append(
            "daemon.mount_paths had no valid entries; falling back to single-root daemon mounts"
        )
        return result

    for i, first in enumerate(roots):
        for second in roots[i + 1 :]:
            if _contains(first, second):
                result.warnings.append(
                    f"daemon.mount_paths overlap: {first} contains {second} (first match wins)"
                )
            elif _contains(second, first):
                result.warnings.append(
                    f"daemon.mount_paths overlap: {second} contains {first} (first match wins)"
                )

    result.enabled = True
    result.roots = roots
    result.mounts = [DaemonMount(root, container_destination(root)) for root in roots]
    result.fingerprint = fingerprint(roots)
    return result
