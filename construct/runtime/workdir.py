# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Map a host working directory onto a container path through a mount root."""

import os
import posixpath
from typing import Iterable, Tuple

from construct.runtime.daemon_mounts import DaemonMount


def map_workdir(host_cwd: str, mount_root: str, container_root: str) -> Tuple[str, bool]:
    """Translate host_cwd into the container, given one mount root.

    Args:
        host_cwd: Current directory on the host
        mount_root: Host directory bind-mounted into the container
        container_root: Where mount_root appears inside the container

    Returns:
        (container_path, True) when host_cwd is mount_root or below it,
        ("", False) otherwise (including empty inputs)
    """
    if not host_cwd or not mount_root or not container_root:
        return "", False

    try:
        rel = os.path.relpath(os.path.normpath(host_cwd), os.path.normpath(mount_root))
    except ValueError:
        # Different drives on Windows
        return "", False

    if rel == os.curdir:
        return container_root, True
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return "", False

    return posixpath.join(container_root, rel.replace(os.sep, "/")), True


def map_workdir_from_mounts(host_cwd: str, mounts: Iterable[DaemonMount]) -> Tuple[str, bool]:
    """Try each mount in configured order; the first root containing host_cwd wins."""
    for mount in mounts:
        path, ok = map_workdir(host_cwd, mount.host_path, mount.container_path)
        if ok:
            return path, True
    return "", False
