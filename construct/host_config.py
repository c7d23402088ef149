# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized host-side configuration for construct."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from construct.models.host_config import HostConfigModel
from construct.paths import HostPaths

logger = logging.getLogger(__name__)


class HostConfig:
    """Manages host-side configuration from ~/.config/construct-cli/config.yml."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or HostPaths.config_file()
        self._model = self._load()

    def _load(self) -> HostConfigModel:
        """Load configuration from file, falling back to defaults."""
        if not self.config_path.exists():
            return HostConfigModel()

        try:
            with open(self.config_path) as f:
                raw_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            return HostConfigModel()

        if not isinstance(raw_config, dict):
            logger.warning(f"Ignoring {self.config_path}: top level must be a mapping")
            return HostConfigModel()

        try:
            return HostConfigModel.model_validate(raw_config)
        except ValidationError as e:
            logger.warning(f"Config validation errors: {e}")
            return self._salvage(raw_config)

    def _salvage(self, raw_config: Dict[str, Any]) -> HostConfigModel:
        """Keep every section that validates on its own, default the rest."""
        defaults = HostConfigModel().model_dump()
        merged: Dict[str, Any] = {}
        for section, default in defaults.items():
            raw_section = raw_config.get(section)
            if not isinstance(raw_section, dict):
                merged[section] = default
                continue
            candidate = self._deep_merge(default, raw_section)
            try:
                HostConfigModel.model_validate({section: candidate})
                merged[section] = candidate
            except ValidationError:
                logger.warning(f"Ignoring invalid '{section}' section in {self.config_path}")
                merged[section] = default
        return HostConfigModel.model_validate(merged)

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge override into base."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @property
    def model(self) -> HostConfigModel:
        """The validated configuration."""
        return self._model

    def with_network_mode(self, mode: str) -> HostConfigModel:
        """Return a copy of the model with the network mode overridden."""
        network = self._model.network.model_copy(update={"mode": mode})
        return self._model.model_copy(update={"network": network})


_config: Optional[HostConfig] = None


def get_config() -> HostConfig:
    """Get the process-wide HostConfig instance."""
    global _config
    if _config is None:
        _config = HostConfig()
    return _config


def reset_config() -> None:
    """Drop the cached instance so the next get_config() reloads from disk."""
    global _config
    _config = None
