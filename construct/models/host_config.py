# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for host configuration (~/.config/construct-cli/config.yml)."""

from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

NetworkMode = Literal["permissive", "strict", "offline"]
NETWORK_MODES = ("permissive", "strict", "offline")


class RuntimeConfig(BaseModel):
    """Container engine preference.

    engine: "auto" probes container (macOS 26+), podman, then docker.
    """

    engine: Literal["auto", "docker", "podman", "container"] = "auto"


class SandboxConfig(BaseModel):
    """Sandbox behavior shared by every agent run."""

    forward_ssh_agent: bool = True
    shell: str = "/bin/bash"
    clipboard_host: str = "host.docker.internal"
    propagate_git_identity: bool = True


class NetworkConfig(BaseModel):
    """Network isolation settings passed to the in-container firewall."""

    mode: NetworkMode = "permissive"
    allowed_domains: List[str] = Field(default_factory=list)
    allowed_ips: List[str] = Field(default_factory=list)
    blocked_domains: List[str] = Field(default_factory=list)
    blocked_ips: List[str] = Field(default_factory=list)


class AgentsConfig(BaseModel):
    """Per-agent behavior switches.

    yolo_agents: agent slugs (or "all") that get their auto-approve flag.
    clipboard_image_patch: enable the clipboard fallback shim for agents
        that cannot read images from the bridged clipboard directly.
    """

    yolo_all: bool = False
    yolo_agents: List[str] = Field(default_factory=list)
    clipboard_image_patch: bool = True


class DaemonConfig(BaseModel):
    """Warm daemon container settings."""

    auto_start: bool = True
    multi_paths_enabled: bool = False
    mount_paths: List[str] = Field(default_factory=list)

    @field_validator("mount_paths", mode="before")
    @classmethod
    def _coerce_mount_paths(cls, value):
        if value is None:
            return []
        return [str(item) for item in value]


class ClaudeConfig(BaseModel):
    """Claude provider aliases: name -> environment mapping."""

    providers: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @field_validator("providers", mode="before")
    @classmethod
    def _stringify_values(cls, value):
        if not value:
            return {}
        return {
            str(name): {str(k): "" if v is None else str(v) for k, v in (env or {}).items()}
            for name, env in value.items()
        }


class HostConfigModel(BaseModel):
    """Root model for config.yml."""

    model_config = ConfigDict(extra="ignore")

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig)
