# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Login callback forwarding.

OAuth logins inside the container redirect the browser to
localhost:<port>. Each port is published as 127.0.0.1:<port> on the host
and relayed inside the container from <port> + LISTEN_OFFSET.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from construct.paths import HostPaths

DEFAULT_PORTS = "1455,8085"
FALLBACK_PORT = 1455
LISTEN_OFFSET = 10000
TRIGGER_ARGS = ("login", "auth")

_SEPARATORS = re.compile(r"[,\s]+")


def parse_ports(raw: str) -> List[int]:
    """Positive integers from a comma/whitespace list, deduplicated and sorted."""
    ports = set()
    for part in _SEPARATORS.split(raw or ""):
        if not part:
            continue
        try:
            port = int(part)
        except ValueError:
            continue
        if port > 0:
            ports.add(port)
    return sorted(ports)


def format_ports(ports: Sequence[int]) -> str:
    return ",".join(str(p) for p in ports)


def _default_ports() -> List[int]:
    return parse_ports(DEFAULT_PORTS) or [FALLBACK_PORT]


def read_flag_ports(flag_file: Optional[Path] = None) -> Optional[List[int]]:
    """Ports from the login-bridge flag file, or None when it does not exist."""
    path = flag_file or HostPaths.login_bridge_flag()
    try:
        raw = path.read_text().strip()
    except OSError:
        return None
    return parse_ports(raw) or _default_ports()


def login_forward_ports(args: Sequence[str], flag_file: Optional[Path] = None) -> Tuple[bool, List[int]]:
    """Whether to forward login callbacks for this invocation, and on which ports.

    The flag file wins over argument detection.
    """
    ports = read_flag_ports(flag_file)
    if ports is not None:
        return True, ports
    if any(arg in TRIGGER_ARGS for arg in args):
        return True, _default_ports()
    return False, []


def publish_flags(ports: Sequence[int]) -> List[str]:
    """`-p` run flags binding each port on the host loopback."""
    flags: List[str] = []
    for port in ports:
        flags.extend(["-p", f"127.0.0.1:{port}:{port + LISTEN_OFFSET}"])
    return flags


def login_forward_env(ports: Sequence[int]) -> Dict[str, str]:
    return {
        "CONSTRUCT_LOGIN_FORWARD": "1",
        "CONSTRUCT_LOGIN_FORWARD_PORTS": format_ports(ports),
        "CONSTRUCT_LOGIN_FORWARD_LISTEN_OFFSET": str(LISTEN_OFFSET),
    }
