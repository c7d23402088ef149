# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pytest fixtures for construct unit tests.

These tests run on the HOST and never need a container runtime; every
call to the engine CLI goes through a mocked ContainerManager or a
patched subprocess.run.
"""

from contextlib import ExitStack
from unittest.mock import Mock

import pytest

from construct.host_config import reset_config
from construct.models.host_config import HostConfigModel
from construct.runtime.containers import ContainerManager, ContainerState
from construct.runtime.engine import Engine
from construct.session.context import SessionContext
from construct.utils.logging import reset_logging


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point HOME at a temp dir so config, logs and flag files stay local."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("CONSTRUCT_DEBUG", raising=False)
    monkeypatch.delenv("CONSTRUCT_LOG_FILE", raising=False)
    monkeypatch.delenv("CONSTRUCT_LOG_LEVEL", raising=False)
    reset_config()
    reset_logging()
    yield home
    reset_config()
    reset_logging()


@pytest.fixture
def mock_manager():
    """ContainerManager mock with nothing running."""
    manager = Mock(spec=ContainerManager)
    manager.state.return_value = ContainerState.MISSING
    manager.exists.return_value = False
    manager.is_stale.return_value = False
    manager.image_exists.return_value = True
    manager.exec_interactive.return_value = 0
    manager.exec_capture.return_value = ""
    return manager


@pytest.fixture
def make_context(mock_manager, tmp_path):
    """Factory for SessionContext with a mocked manager."""

    def _make(config=None, cwd=None, platform="linux", host_env=None, **overrides):
        return SessionContext(
            config=config or HostConfigModel(),
            engine=Engine.DOCKER,
            manager=mock_manager,
            cwd=str(tmp_path) if cwd is None else cwd,
            host_env={"PATH": "/usr/bin:/bin", "HOME": "/Users/dev"} if host_env is None else host_env,
            platform=platform,
            **overrides,
        )

    return _make


@pytest.fixture
def bridges():
    """ExitStack standing in for the per-invocation bridge scope."""
    with ExitStack() as stack:
        yield stack
