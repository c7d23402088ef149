# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for executing in the warm daemon container."""

from unittest.mock import Mock

import pytest

from construct.bridges.ssh import SSHBridge
from construct.env import EnvList
from construct.errors import ConstructError, ErrorCategory
from construct.models.host_config import HostConfigModel
from construct.runtime.containers import ContainerState
from construct.runtime.daemon_mounts import resolve_daemon_mounts
from construct.session.daemon import DaemonSession
from construct.session.environment import EnvironmentAssembler
from construct.session.outcome import Fail, Ok, Skip


@pytest.fixture
def assembler():
    assembler = Mock(spec=EnvironmentAssembler)
    env = EnvList()
    env.set("CONSTRUCT_AGENT_NAME", "claude")
    assembler.assemble.return_value = env
    return assembler


@pytest.fixture
def running_daemon(mock_manager, tmp_path):
    """Single-root daemon with tmp_path mounted at /projects/<name>."""
    mock_manager.state.return_value = ContainerState.RUNNING
    mock_manager.working_dir.return_value = f"/projects/{tmp_path.name}"
    mock_manager.mount_source.return_value = str(tmp_path)
    return mock_manager


def _session(ctx, bridges, assembler, **kwargs):
    return DaemonSession(ctx, bridges, assembler=assembler, sleep=lambda s: None, **kwargs)


class TestResolveWorkdir:
    """Disqualification chain."""

    def test_not_running(self, make_context, bridges, assembler):
        result = _session(make_context(), bridges, assembler).resolve_workdir()
        assert isinstance(result, Skip)

    def test_stale_image_short_circuits(self, make_context, bridges, assembler, running_daemon, capsys):
        """A stale daemon is skipped before any mount inspection."""
        running_daemon.is_stale.return_value = True

        result = _session(make_context(), bridges, assembler).resolve_workdir()

        assert isinstance(result, Skip)
        running_daemon.working_dir.assert_not_called()
        running_daemon.label.assert_not_called()
        assert "outdated image" in capsys.readouterr().err

    def test_no_cwd(self, make_context, bridges, assembler, running_daemon):
        result = _session(make_context(cwd=""), bridges, assembler).resolve_workdir()
        assert isinstance(result, Skip)

    def test_single_root_subdirectory(self, make_context, bridges, assembler, running_daemon, tmp_path):
        sub = tmp_path / "src"
        sub.mkdir()
        result = _session(make_context(cwd=str(sub)), bridges, assembler).resolve_workdir()
        assert result == Ok(f"/projects/{tmp_path.name}/src")

    def test_outside_single_root(self, make_context, bridges, assembler, running_daemon, tmp_path):
        result = _session(make_context(cwd=str(tmp_path.parent)), bridges, assembler).resolve_workdir()
        assert isinstance(result, Skip)

    def test_fingerprint_mismatch(self, make_context, bridges, assembler, running_daemon, tmp_path, capsys):
        """A daemon started with other mount paths is not reused."""
        config = HostConfigModel.model_validate(
            {"daemon": {"multi_paths_enabled": True, "mount_paths": [str(tmp_path)]}}
        )
        running_daemon.label.return_value = "stale-fingerprint"

        result = _session(make_context(config=config), bridges, assembler).resolve_workdir()

        assert isinstance(result, Skip)
        assert "Daemon mount paths do not match current config" in capsys.readouterr().err
        running_daemon.working_dir.assert_not_called()

    def test_multi_root_match(self, make_context, bridges, assembler, running_daemon, tmp_path):
        config = HostConfigModel.model_validate(
            {"daemon": {"multi_paths_enabled": True, "mount_paths": [str(tmp_path)]}}
        )
        mounts = resolve_daemon_mounts(config)
        running_daemon.label.return_value = mounts.fingerprint
        (tmp_path / "app").mkdir()

        ctx = make_context(config=config, cwd=str(tmp_path / "app"))
        result = _session(ctx, bridges, assembler).resolve_workdir()

        assert result == Ok(f"{mounts.mounts[0].container_path}/app")


class TestTryExec:
    """Exec into the daemon."""

    def test_exec_with_agent(self, make_context, bridges, assembler, running_daemon, tmp_path):
        running_daemon.exec_interactive.return_value = 7
        session = _session(make_context(), bridges, assembler)

        assert session.try_exec(["claude", "hi"]) == Ok(7)
        running_daemon.exec_interactive.assert_called_once_with(
            "construct-cli-daemon",
            ["claude", "hi"],
            ["CONSTRUCT_AGENT_NAME=claude"],
            workdir=f"/projects/{tmp_path.name}",
            user=None,
        )
        assert assembler.assemble.call_args.kwargs == {"inherit_host": False, "start_ssh_bridge": False}

    def test_shell_when_no_args(self, make_context, bridges, assembler, running_daemon):
        _session(make_context(), bridges, assembler).try_exec([])
        assert running_daemon.exec_interactive.call_args.args[1] == ["/bin/bash"]

    def test_darwin_exec_user(self, make_context, bridges, assembler, running_daemon):
        _session(make_context(platform="darwin", host_env={}), bridges, assembler).try_exec(["codex"])
        assert running_daemon.exec_interactive.call_args.kwargs["user"] == "construct"

    def test_skip_does_not_exec(self, make_context, bridges, assembler):
        result = _session(make_context(), bridges, assembler).try_exec(["claude"])
        assert isinstance(result, Skip)
        assembler.assemble.assert_not_called()

    def test_exec_failure(self, make_context, bridges, assembler, running_daemon):
        error = ConstructError(ErrorCategory.CONTAINER, "exec in container")
        running_daemon.exec_interactive.side_effect = error
        result = _session(make_context(), bridges, assembler).try_exec(["claude"])
        assert result == Fail(error)

    def test_codex_in_daemon(self, make_context, bridges, running_daemon, tmp_path):
        """codex gets CODEX_HOME and the WSL quirks through a daemon exec."""
        real_assembler = EnvironmentAssembler(
            make_context(), bridges, clipboard_factory=lambda host: Mock()
        )
        _session(make_context(), bridges, real_assembler).try_exec(["codex"])

        env = running_daemon.exec_interactive.call_args.args[2]
        assert "CODEX_HOME=/home/construct/.codex" in env
        assert "WSL_DISTRO_NAME=Ubuntu" in env
        assert "DISPLAY=" in env
        assert "CONSTRUCT_AGENT_NAME=codex" in env


class TestSSHProxy:
    """SSH agent proxy inside the daemon (macOS)."""

    @pytest.fixture
    def ssh(self):
        bridge = Mock(spec=SSHBridge)
        bridge.start.return_value = 45678
        return bridge

    def test_proxy_started(self, make_context, bridges, assembler, running_daemon, ssh):
        ctx = make_context(platform="darwin", host_env={"SSH_AUTH_SOCK": "/tmp/agent"})
        _session(ctx, bridges, assembler, ssh_factory=lambda sock: ssh).try_exec(["claude"])

        env = running_daemon.exec_interactive.call_args.args[2]
        assert "CONSTRUCT_SSH_BRIDGE_PORT=45678" in env
        assert "SSH_AUTH_SOCK=/home/construct/.ssh/agent.sock" in env

    def test_proxy_not_ready(self, make_context, bridges, assembler, running_daemon, ssh):
        """If the socket never appears the exec still runs, without the proxy."""
        ctx = make_context(platform="darwin", host_env={"SSH_AUTH_SOCK": "/tmp/agent"})
        running_daemon.exec_capture.side_effect = [
            "",
            *[ConstructError(ErrorCategory.CONTAINER, "exec in container")] * 20,
        ]
        result = _session(ctx, bridges, assembler, ssh_factory=lambda sock: ssh).try_exec(["claude"])

        assert result == Ok(0)
        ssh.stop.assert_called_once()
        env = running_daemon.exec_interactive.call_args.args[2]
        assert not any(item.startswith("SSH_AUTH_SOCK=") for item in env)

    def test_no_proxy_on_linux(self, make_context, bridges, assembler, running_daemon, ssh):
        ctx = make_context(host_env={"SSH_AUTH_SOCK": "/tmp/agent"})
        _session(ctx, bridges, assembler, ssh_factory=lambda sock: ssh).try_exec(["claude"])
        ssh.start.assert_not_called()
