# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Supported agents and their auto-approve ("yolo") flags."""

from typing import Dict, List, NamedTuple, Optional

from construct.models.host_config import HostConfigModel


class Agent(NamedTuple):
    name: str
    slug: str
    config_path: str


SUPPORTED_AGENTS: List[Agent] = [
    Agent("Google Gemini", "gemini", "/home/construct/.gemini"),
    Agent("Claude Code", "claude", "/home/construct/.claude"),
    Agent("Amp CLI", "amp", "/home/construct/.config/amp"),
    Agent("Qwen Code", "qwen", "/home/construct/.qwen"),
    Agent("GitHub Copilot", "copilot", "/home/construct/.copilot"),
    Agent("OpenCode", "opencode", "/home/construct/.config/opencode"),
    Agent("Cline", "cline", "/home/construct/.cline"),
    Agent("OpenAI Codex", "codex", "/home/construct/.codex"),
    Agent("Droid CLI", "droid", "/home/construct/.factory"),
    Agent("Goose CLI", "goose", "/home/construct/.config/goose"),
    Agent("Kilo Code CLI", "kilocode", "/home/construct/.kilocode"),
    Agent("Pi Coding Agent", "pi", "/home/construct/.pi"),
]

# Pseudo-agent for a plain shell in the sandbox
SHELL_SLUG = "shell"

YOLO_FLAGS: Dict[str, str] = {
    "claude": "--dangerously-skip-permissions",
    "copilot": "--allow-all-tools",
    "gemini": "--yolo",
    "codex": "--yolo",
    "qwen": "--yolo",
    "cline": "--yolo",
    "kilocode": "--yolo",
}


def is_supported(slug: str) -> bool:
    return slug == SHELL_SLUG or any(agent.slug == slug for agent in SUPPORTED_AGENTS)


def yolo_flag(agent: str) -> Optional[str]:
    return YOLO_FLAGS.get(agent.lower())


def yolo_enabled(agent: str, config: HostConfigModel) -> bool:
    if config.agents.yolo_all:
        return True
    agent = agent.lower()
    return any(name.lower() in (agent, "all") for name in config.agents.yolo_agents)


def apply_yolo_args(args: List[str], config: Optional[HostConfigModel]) -> List[str]:
    """Insert the agent's auto-approve flag right after its name when enabled.

    The flag is not duplicated if the user already passed it.
    """
    if config is None or not args:
        return list(args)
    flag = yolo_flag(args[0])
    if flag is None or not yolo_enabled(args[0], config) or flag in args:
        return list(args)
    return [args[0], flag, *args[1:]]
