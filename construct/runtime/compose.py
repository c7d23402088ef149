# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Compose collaborator: command building, image build, daemon start, override.

The base docker-compose.yml under ~/.config/construct-cli/container/ is
authored elsewhere. This module only drives it, and generates the per-host
docker-compose.override.yml next to it.
"""

import getpass
import hashlib
import os
import shutil
import subprocess
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional

import yaml

from construct import __version__
from construct.errors import ConstructError, ErrorCategory
from construct.paths import ContainerDefaults, ContainerPaths, HostPaths
from construct.runtime.containers import ContainerManager
from construct.runtime.daemon_mounts import DaemonMounts, resolve_daemon_mounts
from construct.runtime.engine import Engine
from construct.utils.logging import get_logger

if TYPE_CHECKING:
    from construct.session.context import SessionContext

logger = get_logger(__name__)

OVERRIDE_HEADER = (
    "# Auto-generated docker-compose.override.yml\n"
    "# Regenerated by construct whenever its inputs change\n\n"
)


def compose_base_command(engine: Engine, which: Callable[[str], Optional[str]] = shutil.which) -> List[str]:
    """Compose executable for an engine, preferring the standalone binaries."""
    if engine is Engine.DOCKER and which("docker-compose"):
        return ["docker-compose"]
    if engine is Engine.PODMAN:
        if which("podman-compose"):
            return ["podman-compose"]
        return ["podman", "compose"]
    return ["docker", "compose"]


def compose_file_args() -> List[str]:
    """-f flags for the base compose file plus the override when present."""
    args = ["-f", str(HostPaths.compose_file())]
    override = HostPaths.compose_override_file()
    if override.exists():
        args.extend(["-f", str(override)])
    return args


def build_compose_command(engine: Engine, subcommand: str, args: List[str]) -> List[str]:
    """Full argv for `<compose> -f ... <subcommand> <args>`."""
    return [*compose_base_command(engine), *compose_file_args(), subcommand, *args]


def compose_process_env(
    base_env: Mapping[str, str],
    cwd: Optional[str],
    platform: str,
) -> Dict[str, str]:
    """Process environment for a compose invocation.

    Adds CONSTRUCT_PROJECT_PATH (read by the base compose file) and, on
    Linux, the host UID/GID so files created in the project stay owned by
    the invoking user.
    """
    env = dict(base_env)
    if cwd:
        env.setdefault("PWD", cwd)
        env["CONSTRUCT_PROJECT_PATH"] = ContainerPaths.project_path(cwd)
    if platform.startswith("linux"):
        env["CONSTRUCT_HOST_UID"] = str(os.getuid())
        env["CONSTRUCT_HOST_GID"] = str(os.getgid())
    return env


def run_compose(
    engine: Engine,
    subcommand: str,
    args: List[str],
    env: Mapping[str, str],
    capture: bool = False,
) -> subprocess.CompletedProcess:
    """Run compose from the container dir.

    With capture=False the child inherits the terminal (used for the
    agent run itself). Raises ConstructError only if compose cannot be
    spawned; the exit status is left to the caller.
    """
    cmd = build_compose_command(engine, subcommand, args)
    logger.debug(f"Compose: {' '.join(cmd)}")
    kwargs = {"capture_output": True, "text": True} if capture else {}
    try:
        return subprocess.run(cmd, cwd=str(HostPaths.container_dir()), env=dict(env), **kwargs)
    except OSError as e:
        raise ConstructError(
            ErrorCategory.RUNTIME,
            f"run compose {subcommand}",
            command=" ".join(cmd[:2]),
            runtime=engine.value,
            cause=e,
            suggestion="Install docker compose (or podman-compose) and re-run",
        ) from e


def image_exists(manager: ContainerManager) -> bool:
    return manager.image_exists(ContainerDefaults.IMAGE)


def build_image(engine: Engine, env: Mapping[str, str]) -> None:
    """Build construct-box from the existing compose definition.

    Raises:
        ConstructError: If the build fails
    """
    logger.print("Construct image not found. Building...", style="yellow")
    result = run_compose(engine, "build", [], env)
    if result.returncode != 0:
        raise ConstructError(
            ErrorCategory.CONTAINER,
            "build construct image",
            command="compose build",
            runtime=engine.value,
            cause=RuntimeError(f"exit status {result.returncode}"),
            suggestion="Fix the build error above and run the agent again",
        )
    logger.success("Image built")


def ensure_custom_network(engine: Engine) -> None:
    """Create the strict-mode bridge network if it does not exist yet."""
    cli = engine.cli
    try:
        inspect = subprocess.run(
            [cli, "network", "inspect", ContainerDefaults.STRICT_NETWORK],
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ConstructError(
            ErrorCategory.NETWORK, "inspect strict network", runtime=engine.value, cause=e
        ) from e
    if inspect.returncode == 0:
        return

    logger.info("Creating custom network for strict mode...")
    create = subprocess.run(
        [
            cli,
            "network",
            "create",
            "--driver",
            "bridge",
            "--subnet",
            ContainerDefaults.STRICT_SUBNET,
            ContainerDefaults.STRICT_NETWORK,
        ],
        capture_output=True,
        text=True,
    )
    if create.returncode != 0:
        raise ConstructError(
            ErrorCategory.NETWORK,
            "create strict network",
            command=f"{cli} network create {ContainerDefaults.STRICT_NETWORK}",
            runtime=engine.value,
            cause=RuntimeError(create.stderr.strip() or f"exit status {create.returncode}"),
        )
    logger.success(f"Custom network '{ContainerDefaults.STRICT_NETWORK}' created")


def start_daemon_background(ctx: "SessionContext", env: Mapping[str, str]) -> bool:
    """Launch the warm daemon detached. Returns True if compose accepted it.

    Never raises; any problem means the caller takes the normal path.
    """
    if not image_exists(ctx.manager):
        logger.debug("Daemon auto-start skipped: image not built yet")
        return False

    mounts = resolve_daemon_mounts(ctx.config)
    if ctx.config.daemon.multi_paths_enabled and not mounts.enabled:
        logger.warning(
            "daemon.multi_paths_enabled is true but no valid daemon.mount_paths were found; "
            "skipping daemon auto-start."
        )
        return False

    logger.print("Starting daemon for faster subsequent runs...", style="cyan")
    args = ["-d", "--rm", "--name", ContainerDefaults.DAEMON_NAME, ContainerDefaults.SERVICE_NAME]
    try:
        result = run_compose(
            ctx.engine,
            "run",
            args,
            compose_process_env(env, ctx.cwd, ctx.platform),
            capture=True,
        )
    except ConstructError as e:
        logger.debug(f"Failed to start daemon: {e}")
        return False
    if result.returncode != 0:
        logger.debug(f"Failed to start daemon: {result.stderr.strip()}")
        return False
    return True


def _git_config(key: str) -> str:
    try:
        result = subprocess.run(["git", "config", key], capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        return ""
    return result.stdout.strip() if result.returncode == 0 else ""


def override_inputs(ctx: "SessionContext", mounts: DaemonMounts) -> Dict[str, object]:
    """Everything that affects the generated override, in a stable order."""
    sandbox = ctx.config.sandbox
    linux = ctx.is_linux
    ssh_sock = ctx.host_env.get("SSH_AUTH_SOCK", "") if sandbox.forward_ssh_agent else ""
    git_name = _git_config("user.name") if sandbox.propagate_git_identity else ""
    git_email = _git_config("user.email") if sandbox.propagate_git_identity else ""
    return {
        "version": __version__,
        "runtime": ctx.engine.value,
        "platform": ctx.platform,
        "uid": os.getuid() if linux else -1,
        "gid": os.getgid() if linux else -1,
        "network": ctx.config.network.mode,
        "git_name": git_name,
        "git_email": git_email,
        "project": ctx.project_path,
        "ssh_sock": ssh_sock,
        "daemon_multi": ctx.config.daemon.multi_paths_enabled,
        "daemon_mounts": mounts.fingerprint,
    }


def hash_override_inputs(inputs: Mapping[str, object]) -> str:
    h = hashlib.sha256()
    for key, value in inputs.items():
        h.update(f"{key}:{value}\n".encode("utf-8"))
    return h.hexdigest()


def render_override(inputs: Mapping[str, object], mounts: DaemonMounts, platform: str) -> dict:
    """Build the override document from resolved inputs."""
    project = str(inputs["project"])
    service: dict = {"working_dir": project}
    if mounts.enabled:
        service["labels"] = [f"{ContainerDefaults.DAEMON_MOUNTS_LABEL}={mounts.fingerprint}"]

    volumes = [f"${{PWD}}:{project}"]
    volumes.extend(f"{m.host_path}:{m.container_path}" for m in mounts.mounts)
    volumes.append(f"~/.config/construct-cli/home:{ContainerPaths.HOME}")

    linux = platform.startswith("linux")
    ssh_sock = str(inputs["ssh_sock"])
    if linux and ssh_sock:
        volumes.append(f"{ssh_sock}:{ContainerPaths.SSH_AGENT_MOUNT}")
    service["volumes"] = volumes

    if linux:
        service["extra_hosts"] = ["host.docker.internal:host-gateway"]

    environment = []
    if inputs["git_name"]:
        environment.append(f"GIT_AUTHOR_NAME={inputs['git_name']}")
        environment.append(f"GIT_COMMITTER_NAME={inputs['git_name']}")
    if inputs["git_email"]:
        environment.append(f"GIT_AUTHOR_EMAIL={inputs['git_email']}")
        environment.append(f"GIT_COMMITTER_EMAIL={inputs['git_email']}")
    if linux and ssh_sock:
        environment.append(f"SSH_AUTH_SOCK={ContainerPaths.SSH_AGENT_MOUNT}")
    if environment:
        service["environment"] = environment

    document: dict = {"services": {ContainerDefaults.SERVICE_NAME: service}}
    mode = inputs["network"]
    if mode == "offline":
        service["network_mode"] = "none"
    elif mode == "strict":
        service["networks"] = [ContainerDefaults.STRICT_NETWORK]
        service["cap_add"] = ["NET_ADMIN"]
        document["networks"] = {
            ContainerDefaults.STRICT_NETWORK: {
                "name": ContainerDefaults.STRICT_NETWORK,
                "driver": "bridge",
            }
        }
    return document


def write_compose_override(ctx: "SessionContext", mounts: Optional[DaemonMounts] = None) -> bool:
    """Regenerate docker-compose.override.yml if its inputs changed.

    Returns:
        True if the file was (re)written, False when the cached one is current
    """
    if mounts is None:
        mounts = resolve_daemon_mounts(ctx.config)
    inputs = override_inputs(ctx, mounts)
    digest = hash_override_inputs(inputs)

    override_file = HostPaths.compose_override_file()
    hash_file = HostPaths.override_hash_file()
    if override_file.exists() and hash_file.exists():
        try:
            if hash_file.read_text().strip() == digest:
                return False
        except OSError:
            pass

    document = render_override(inputs, mounts, ctx.platform)
    try:
        override_file.parent.mkdir(parents=True, exist_ok=True)
        override_file.write_text(OVERRIDE_HEADER + yaml.safe_dump(document, sort_keys=False))
    except OSError as e:
        raise ConstructError(
            ErrorCategory.FILE,
            "write compose override",
            path=str(override_file),
            cause=e,
            suggestion=f"Check ownership of {HostPaths.config_dir()}",
        ) from e

    try:
        hash_file.write_text(digest)
    except OSError as e:
        logger.warning(f"Failed to write override hash: {e}")
    logger.debug(f"Wrote {override_file}")
    return True


def _unwritable_dirs() -> List[str]:
    problems = []
    for path in (HostPaths.home_dir(), HostPaths.container_dir()):
        if not path.exists():
            continue
        if not os.access(path, os.W_OK):
            problems.append(str(path))
    return problems


def fix_config_ownership(ctx: "SessionContext") -> None:
    """Repair config dir ownership once per session (Linux only).

    Containers running as root can leave files the host user cannot write.
    A non-interactive `sudo chown` is attempted; otherwise the manual
    command is printed.
    """
    if not ctx.is_linux or ctx.ownership_fix_attempted:
        return
    problems = _unwritable_dirs()
    if not problems:
        return

    ctx.ownership_fix_attempted = True
    user = getpass.getuser() or "root"
    config_dir = str(HostPaths.config_dir())
    logger.warning(f"Config directory is not writable by {user}: {', '.join(problems)}")
    try:
        result = subprocess.run(
            ["sudo", "-n", "chown", "-R", f"{user}:{user}", config_dir],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Ownership fix failed: {e}")
        result = None
    if result is not None and result.returncode == 0:
        logger.success("Config directory ownership fixed")
        return
    logger.warning(f"Fix manually with: sudo chown -R {user}:{user} {config_dir}")


def prepare_runtime(ctx: "SessionContext") -> DaemonMounts:
    """Make the compose environment ready for a run.

    Returns:
        The resolved daemon mounts (warnings already reported)
    """
    try:
        HostPaths.container_dir().mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Failed to create container config directory: {e}")

    fix_config_ownership(ctx)

    if ctx.config.network.mode == "strict":
        ensure_custom_network(ctx.engine)

    mounts = resolve_daemon_mounts(ctx.config)
    for warning in mounts.warnings:
        logger.warning(warning)
    write_compose_override(ctx, mounts)
    return mounts
