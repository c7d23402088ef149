# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Environment primitives: EnvList, container PATH, provider and network variables."""

import os
import re
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from construct.models.host_config import NETWORK_MODES, HostConfigModel
from construct.paths import ContainerPaths
from construct.utils.logging import get_logger

logger = get_logger(__name__)

# Tool directories relative to the container home, searched first
HOME_PATH_DIRS = [
    ".local/bin",
    ".npm-global/bin",
    ".bun/bin",
    ".cargo/bin",
    ".local/share/mise/shims",
    ".asdf/shims",
    "go/bin",
]

SYSTEM_PATH_DIRS = [
    "/home/linuxbrew/.linuxbrew/bin",
    "/home/linuxbrew/.linuxbrew/sbin",
    "/usr/local/sbin",
    "/usr/local/bin",
    "/usr/sbin",
    "/usr/bin",
    "/sbin",
    "/bin",
]

# Credentials forwarded into every session when set on the host.
# A CNSTR_-prefixed variant takes precedence over the plain name.
PROVIDER_ENV_KEYS = [
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "OPENROUTER_API_KEY",
    "GROQ_API_KEY",
    "MISTRAL_API_KEY",
    "DEEPSEEK_API_KEY",
    "XAI_API_KEY",
    "ZAI_API_KEY",
    "DASHSCOPE_API_KEY",
    "MOONSHOT_API_KEY",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "FACTORY_API_KEY",
    "AMP_API_KEY",
    "KILOCODE_API_KEY",
]
PROVIDER_PREFIX = "CNSTR_"

# Vendor variables cleared before a provider alias injects its own set
CLAUDE_RESET_KEYS = [
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_AUTH_TOKEN",
    "ANTHROPIC_API_KEY",
    "API_TIMEOUT_MS",
    "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC",
    "ANTHROPIC_CUSTOM_HEADERS",
    "ANTHROPIC_MODEL",
    "ANTHROPIC_SMALL_FAST_MODEL",
    "ANTHROPIC_DEFAULT_SONNET_MODEL",
    "ANTHROPIC_DEFAULT_OPUS_MODEL",
    "ANTHROPIC_DEFAULT_HAIKU_MODEL",
]

SENSITIVE_MARKERS = ("TOKEN", "KEY", "SECRET", "PASSWORD", "AUTH")

_VAR_REF = re.compile(r"\$\{([^}]+)\}")


class EnvList:
    """Ordered KEY=VALUE assignments, later writes win.

    Each key carries a forward flag: forwarded keys are passed into the
    container with `-e`, the others only reach the compose process.
    """

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}
        self._forward: Dict[str, bool] = {}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str], forward: bool = False) -> "EnvList":
        env = cls()
        env.update(mapping, forward=forward)
        return env

    def set(self, key: str, value: str, forward: bool = True) -> None:
        self._values[key] = value
        self._forward[key] = forward

    def update(self, mapping: Mapping[str, str], forward: bool = True) -> None:
        for key, value in mapping.items():
            self.set(key, value, forward=forward)

    def unset(self, key: str) -> None:
        self._values.pop(key, None)
        self._forward.pop(key, None)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(key, default)

    def is_forwarded(self, key: str) -> bool:
        return self._forward.get(key, False)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._values.items())

    def __len__(self) -> int:
        return len(self._values)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def forwarded(self) -> List[str]:
        """KEY=VALUE strings for every forwarded key, in insertion order."""
        return [f"{k}={v}" for k, v in self._values.items() if self._forward[k]]


# PATH


def build_container_path(home: str = ContainerPaths.HOME, inherited: Optional[str] = None) -> str:
    """PATH for the container: tool dirs, system dirs, then unseen inherited entries."""
    parts = [f"{home}/{d}" for d in HOME_PATH_DIRS] + list(SYSTEM_PATH_DIRS)
    if inherited:
        for entry in inherited.split(":"):
            if entry and entry not in parts:
                parts.append(entry)
    return ":".join(parts)


def apply_container_path(env: EnvList, inherited: Optional[str] = None) -> None:
    """Set PATH and its CONSTRUCT_PATH mirror (entrypoints reset PATH)."""
    path = build_container_path(inherited=inherited)
    env.set("PATH", path)
    env.set("CONSTRUCT_PATH", path)


# Provider credentials


def collect_provider_env(host_env: Mapping[str, str]) -> Dict[str, str]:
    """Known provider keys present on the host, CNSTR_ variants first."""
    collected: Dict[str, str] = {}
    for key in PROVIDER_ENV_KEYS:
        prefixed = host_env.get(PROVIDER_PREFIX + key, "")
        plain = host_env.get(key, "")
        value = prefixed or plain
        if value:
            collected[key] = value
    return collected


def merge_provider_env(base: Mapping[str, str], overrides: Mapping[str, str]) -> Dict[str, str]:
    merged = dict(base)
    merged.update(overrides)
    return merged


def expand_provider_env(
    env_map: Mapping[str, str],
    host_env: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Expand ${VAR} references against the host environment.

    Unset references expand to an empty string with a warning.
    """
    source = os.environ if host_env is None else host_env
    expanded: Dict[str, str] = {}
    for key, value in env_map.items():
        def _replace(match: "re.Match[str]") -> str:
            name = match.group(1).strip()
            if name not in source:
                logger.warning(
                    f"Environment variable {name} not set for {key} (did you forget to export it?)"
                )
                return ""
            return source[name]

        expanded[key] = _VAR_REF.sub(_replace, value)
    return expanded


def mask_sensitive_value(key: str, value: str) -> str:
    """Mask credentials for debug output."""
    upper = key.upper()
    if any(marker in upper for marker in SENSITIVE_MARKERS):
        if len(value) > 10:
            return f"{value[:4]}...{value[-4:]}"
        return "***"
    return value


def reset_claude_env(env: EnvList) -> None:
    for key in CLAUDE_RESET_KEYS:
        env.unset(key)


# Network


def validate_network_mode(mode: str) -> None:
    """Raise ValueError unless mode is a known network mode."""
    if mode not in NETWORK_MODES:
        raise ValueError("valid modes are: " + ", ".join(NETWORK_MODES))


def network_env(config: HostConfigModel) -> Dict[str, str]:
    """NETWORK_* variables for the in-container firewall; empty lists are omitted."""
    network = config.network
    values = {"NETWORK_MODE": network.mode}
    lists: Iterable[Tuple[str, List[str]]] = (
        ("NETWORK_ALLOWED_DOMAINS", network.allowed_domains),
        ("NETWORK_ALLOWED_IPS", network.allowed_ips),
        ("NETWORK_BLOCKED_DOMAINS", network.blocked_domains),
        ("NETWORK_BLOCKED_IPS", network.blocked_ips),
    )
    for key, items in lists:
        if items:
            values[key] = ",".join(items)
    return values


def inject_network_env(env: EnvList, config: HostConfigModel) -> None:
    env.update(network_env(config), forward=False)
