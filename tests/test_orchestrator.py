# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for the session orchestrator decision flow."""

import subprocess
from unittest.mock import patch

import pytest

from construct.bridges.clipboard import ClipboardBridge
from construct.errors import ConstructError, ErrorCategory
from construct.models.host_config import HostConfigModel
from construct.runtime.containers import ContainerState
from construct.session import orchestrator as orch
from construct.session.collision import CollisionChoice
from construct.session.orchestrator import SessionOrchestrator
from construct.session.outcome import SessionDecision

NO_AUTO_START = HostConfigModel.model_validate({"daemon": {"auto_start": False}})


@pytest.fixture(autouse=True)
def quiet_runtime():
    """No compose, no clipboard server, image already built."""
    with patch.object(orch, "prepare_runtime") as prepare, \
            patch.object(orch, "image_exists", return_value=True), \
            patch.object(orch, "build_image") as build, \
            patch.object(orch, "start_daemon_background", return_value=False) as start_daemon, \
            patch.object(orch, "run_compose", return_value=subprocess.CompletedProcess([], 0)) as run, \
            patch.object(ClipboardBridge, "start", autospec=True, side_effect=lambda self: self), \
            patch.object(ClipboardBridge, "stop", autospec=True):
        yield {"prepare": prepare, "build": build, "start_daemon": start_daemon, "run": run}


def _orchestrator(ctx, prompt=lambda: CollisionChoice.ABORT):
    return SessionOrchestrator(ctx, prompt=prompt, sleep=lambda s: None)


def _run_flags(run_mock):
    return run_mock.call_args.args[2]


class TestFreshRun:
    """No usable daemon: fresh compose run."""

    def test_exit_code_propagated(self, make_context, quiet_runtime):
        quiet_runtime["run"].return_value = subprocess.CompletedProcess([], 42)
        orchestrator = _orchestrator(make_context(config=NO_AUTO_START))
        assert orchestrator.run(["claude"]) == 42
        assert orchestrator.decision is SessionDecision.RUN_FRESH

    def test_signal_exit_code(self, make_context, quiet_runtime):
        quiet_runtime["run"].return_value = subprocess.CompletedProcess([], -9)
        assert _orchestrator(make_context(config=NO_AUTO_START)).run(["claude"]) == 137

    def test_run_flags(self, make_context, quiet_runtime):
        _orchestrator(make_context(config=NO_AUTO_START)).run(["claude", "--resume"])

        flags = _run_flags(quiet_runtime["run"])
        assert flags[0] == "--rm"
        assert flags[-3:] == ["construct-box", "claude", "--resume"]
        assert "--user" not in flags
        assert "CONSTRUCT_AGENT_NAME=claude" in flags
        assert "-p" not in flags

    def test_darwin_runs_as_container_user(self, make_context, quiet_runtime):
        _orchestrator(make_context(config=NO_AUTO_START, platform="darwin", host_env={})).run(["claude"])
        flags = _run_flags(quiet_runtime["run"])
        assert flags[1:3] == ["--user", "construct"]

    def test_login_ports_published(self, make_context, quiet_runtime):
        """A login argument publishes the default callback ports."""
        _orchestrator(make_context(config=NO_AUTO_START)).run(["codex", "login"])

        flags = _run_flags(quiet_runtime["run"])
        assert "127.0.0.1:1455:11455" in flags
        assert "127.0.0.1:8085:18085" in flags
        assert flags[flags.index("127.0.0.1:1455:11455") - 1] == "-p"
        assert "CONSTRUCT_LOGIN_FORWARD=1" in flags

    def test_login_flag_file(self, make_context, quiet_runtime, tmp_path):
        flag = tmp_path / "login_flag"
        flag.write_text("3000\n")
        SessionOrchestrator(make_context(config=NO_AUTO_START), login_flag_file=flag).run(["claude"])
        assert "127.0.0.1:3000:13000" in _run_flags(quiet_runtime["run"])

    def test_host_env_reaches_compose_not_container(self, make_context, quiet_runtime):
        ctx = make_context(config=NO_AUTO_START, host_env={"HOME": "/Users/dev", "PATH": "/usr/bin"})
        _orchestrator(ctx).run(["claude"])

        flags = _run_flags(quiet_runtime["run"])
        process_env = quiet_runtime["run"].call_args.args[3]
        assert "HOME=/Users/dev" not in flags
        assert process_env["HOME"] == "/Users/dev"
        assert process_env["CONSTRUCT_PROJECT_PATH"] == ctx.project_path

    def test_image_built_when_missing(self, make_context, quiet_runtime):
        with patch.object(orch, "image_exists", return_value=False):
            _orchestrator(make_context(config=NO_AUTO_START)).run(["claude"])
        quiet_runtime["build"].assert_called_once()

    def test_compose_spawn_failure(self, make_context, quiet_runtime):
        quiet_runtime["run"].side_effect = ConstructError(ErrorCategory.RUNTIME, "run compose run")
        with pytest.raises(ConstructError) as exc_info:
            _orchestrator(make_context(config=NO_AUTO_START)).run(["claude"])
        assert exc_info.value.operation == "execute agent in container"
        assert exc_info.value.category is ErrorCategory.CONTAINER

    def test_no_cwd(self, make_context):
        with pytest.raises(ConstructError) as exc_info:
            _orchestrator(make_context(config=NO_AUTO_START, cwd="")).run(["claude"])
        assert exc_info.value.category is ErrorCategory.FILE

    def test_yolo_applied(self, make_context, quiet_runtime):
        config = HostConfigModel.model_validate({"daemon": {"auto_start": False}, "agents": {"yolo_all": True}})
        _orchestrator(make_context(config=config)).run(["gemini"])
        assert _run_flags(quiet_runtime["run"])[-2:] == ["gemini", "--yolo"]


class TestCollisions:
    """Existing interactive container."""

    @pytest.fixture
    def interactive_running(self, mock_manager):
        mock_manager.state.side_effect = lambda name: (
            ContainerState.RUNNING if name == "construct-cli" else ContainerState.MISSING
        )
        return mock_manager

    def test_abort_exit_code(self, make_context, interactive_running, quiet_runtime):
        orchestrator = _orchestrator(make_context(config=NO_AUTO_START))
        assert orchestrator.run(["claude"]) == 1
        assert orchestrator.decision is SessionDecision.ABORT_COLLISION
        quiet_runtime["run"].assert_not_called()

    def test_attach_execs_into_existing(self, make_context, interactive_running, quiet_runtime):
        interactive_running.exec_interactive.return_value = 3
        code = _orchestrator(make_context(config=NO_AUTO_START), prompt=lambda: CollisionChoice.ATTACH).run(
            ["claude"]
        )
        assert code == 3
        interactive_running.exec_interactive.assert_called_once_with("construct-cli", ["claude"], user=None)
        quiet_runtime["run"].assert_not_called()


class TestDaemonPath:
    """Warm daemon reuse and auto-start."""

    @pytest.fixture
    def daemon_mounts(self, mock_manager, tmp_path):
        mock_manager.working_dir.return_value = f"/projects/{tmp_path.name}"
        mock_manager.mount_source.return_value = str(tmp_path)
        return mock_manager

    def test_running_daemon_used(self, make_context, daemon_mounts, quiet_runtime):
        daemon_mounts.state.return_value = ContainerState.RUNNING
        daemon_mounts.exec_interactive.return_value = 5

        orchestrator = _orchestrator(make_context())
        assert orchestrator.run(["claude"]) == 5
        assert orchestrator.decision is SessionDecision.EXEC_DAEMON
        assert daemon_mounts.exec_interactive.call_args.args[0] == "construct-cli-daemon"
        quiet_runtime["run"].assert_not_called()

    def test_stale_daemon_falls_back(self, make_context, daemon_mounts, quiet_runtime):
        daemon_mounts.state.side_effect = lambda name: (
            ContainerState.RUNNING if name == "construct-cli-daemon" else ContainerState.MISSING
        )
        daemon_mounts.is_stale.return_value = True

        _orchestrator(make_context()).run(["claude"])

        daemon_mounts.exec_interactive.assert_not_called()
        quiet_runtime["run"].assert_called_once()

    def test_mount_fingerprint_mismatch_falls_back(self, make_context, mock_manager, tmp_path, quiet_runtime):
        """A daemon started with other mount paths is bypassed for a fresh run."""
        config = HostConfigModel.model_validate(
            {"daemon": {"multi_paths_enabled": True, "mount_paths": [str(tmp_path)]}}
        )
        mock_manager.state.side_effect = lambda name: (
            ContainerState.RUNNING if name == "construct-cli-daemon" else ContainerState.MISSING
        )
        mock_manager.label.return_value = "stale-fingerprint"

        orchestrator = _orchestrator(make_context(config=config))
        assert orchestrator.run(["claude"]) == 0

        mock_manager.exec_interactive.assert_not_called()
        quiet_runtime["run"].assert_called_once()
        assert orchestrator.decision is SessionDecision.RUN_FRESH

    def test_auto_start_then_exec(self, make_context, daemon_mounts, quiet_runtime):
        daemon_mounts.state.side_effect = [ContainerState.MISSING, ContainerState.RUNNING, ContainerState.RUNNING]
        quiet_runtime["start_daemon"].return_value = True
        daemon_mounts.exec_interactive.return_value = 0

        assert _orchestrator(make_context()).run(["claude"]) == 0
        quiet_runtime["start_daemon"].assert_called_once()
        quiet_runtime["run"].assert_not_called()

    def test_auto_start_removes_exited_daemon(self, make_context, daemon_mounts, quiet_runtime):
        daemon_mounts.state.return_value = ContainerState.EXITED
        _orchestrator(make_context()).run(["claude"])
        daemon_mounts.remove.assert_any_call("construct-cli-daemon")

    def test_auto_start_failure_falls_back(self, make_context, daemon_mounts, quiet_runtime):
        _orchestrator(make_context()).run(["claude"])
        quiet_runtime["start_daemon"].assert_called_once()
        quiet_runtime["run"].assert_called_once()

    def test_daemon_never_comes_up(self, make_context, daemon_mounts, quiet_runtime):
        quiet_runtime["start_daemon"].return_value = True
        _orchestrator(make_context()).run(["claude"])
        quiet_runtime["run"].assert_called_once()

    def test_daemon_exec_failure_raises(self, make_context, daemon_mounts):
        daemon_mounts.state.return_value = ContainerState.RUNNING
        daemon_mounts.exec_interactive.side_effect = ConstructError(ErrorCategory.CONTAINER, "exec in container")
        with pytest.raises(ConstructError):
            _orchestrator(make_context()).run(["claude"])

    def test_daemon_start_env(self, make_context):
        ctx = make_context(host_env={"PATH": "/opt/bin", "HOME": "/Users/dev"})
        env = _orchestrator(ctx).daemon_start_env()
        assert env["HOME"] == "/Users/dev"
        assert env["PWD"] == ctx.cwd
        assert env["NETWORK_MODE"] == "permissive"
        assert env["PATH"] == env["CONSTRUCT_PATH"]
