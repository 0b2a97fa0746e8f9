from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import uuid
from typing import Mapping, Sequence

from ..errors import ExecutionError
from ..policy import SandboxPolicy
from ..sanitize import CONTAINER_WORKDIR
from .capture import run_bounded
from .config import (
    CONTAINER_NAME_PREFIX,
    DEFAULT_DOCKER_IMAGE,
    MANAGED_LABEL_KEY,
    MANAGED_LABEL_VALUE,
    MANAGED_LABELS,
    CleanupSummary,
    ContainerInfo,
)
from .types import ExecutionOutcome, ScopeHandle, Workspace

logger = logging.getLogger(__name__)


def docker_is_available(*, docker_env: Mapping[str, str], docker_context: str | None) -> tuple[bool, str | None]:
    """Check Docker CLI and daemon accessibility for the selected target.

    Example:
        ```python
        ok, reason = docker_is_available(docker_env=os.environ, docker_context=None)
        ```
    """
    if shutil.which("docker") is None:
        return False, "Docker CLI was not found. Install Docker and ensure it is on PATH."
    cmd = ["docker"]
    if docker_context:
        cmd.extend(["--context", docker_context])
    cmd.append("info")
    probe = subprocess.run(cmd, capture_output=True, text=True, check=False, env=dict(docker_env))
    if probe.returncode != 0:
        return False, "Docker is installed but the daemon is not running or not accessible."
    return True, None


def scope_run_args(
    *,
    name: str,
    image: str,
    host_workdir: str,
    policy: SandboxPolicy,
    user: str,
) -> list[str]:
    """Build ``docker run`` arguments for a locked-down, idle toolchain container.

    Example:
        ```python
        args = scope_run_args(name="safe-cc-runner-0a1b2c3d4e5f", image="silkeh/clang:18",
                              host_workdir="/tmp/safe-cc-runner/run-ab12", policy=SandboxPolicy(), user="1000:1000")
        ```
    """
    memory = f"{policy.memory_limit_mb}m"
    args = [
        "run",
        "-d",
        "--rm",
        "--name",
        name,
        "--network",
        "none",
        "--read-only",
        "--cap-drop",
        "ALL",
        "--security-opt",
        "no-new-privileges",
        "--pids-limit",
        str(policy.pids_limit),
        "--memory",
        memory,
        "--memory-swap",
        memory,
        "--cpus",
        f"{policy.cpu_limit:g}",
        "--tmpfs",
        f"/tmp:rw,noexec,nosuid,size={policy.tmpfs_size_mb}m",
        "-v",
        f"{host_workdir}:{CONTAINER_WORKDIR}:rw",
        "-w",
        CONTAINER_WORKDIR,
        "-e",
        f"TMPDIR={CONTAINER_WORKDIR}/.tmp",
        "--user",
        user,
    ]
    for key, value in MANAGED_LABELS.items():
        args.extend(["--label", f"{key}={value}"])
    args.extend([image, "sleep", "infinity"])
    return args


class DockerEngine:
    """Run toolchain processes inside one throwaway container per request.

    Example:
        ```python
        engine = DockerEngine(image="silkeh/clang:18")
        ```
    """

    def __init__(
        self,
        *,
        image: str | None = None,
        docker_host: str | None = None,
        docker_context: str | None = None,
    ) -> None:
        """Initialize Docker execution settings and connection strategy.

        Example:
            ```python
            engine = DockerEngine(docker_host="ssh://builder@ci-host")
            ```
        """
        self._image = image or DEFAULT_DOCKER_IMAGE
        self._docker_host = docker_host
        self._docker_context = docker_context
        self._validate_connection_options()
        self._lock = threading.Lock()
        self._scopes: dict[str, SandboxPolicy] = {}
        self._image_ready = False

    @property
    def image(self) -> str:
        """Return the toolchain image used for new scopes.

        Example:
            ```python
            print(engine.image)
            ```
        """
        return self._image

    def create_scope(self, workspace: Workspace, policy: SandboxPolicy) -> ScopeHandle:
        """Start an idle container with the workspace mounted at /workspace.

        Example:
            ```python
            handle = engine.create_scope(workspace, SandboxPolicy())
            ```
        """
        available, reason = docker_is_available(docker_env=self._docker_env(), docker_context=self._docker_context)
        if not available:
            raise ExecutionError(reason or "Docker is not available")
        self._ensure_image()
        name = f"{CONTAINER_NAME_PREFIX}{uuid.uuid4().hex[:12]}"
        started = self._run_docker(
            scope_run_args(
                name=name,
                image=self._image,
                host_workdir=str(workspace.path),
                policy=policy,
                user=f"{os.getuid()}:{os.getgid()}",
            )
        )
        if started.returncode != 0:
            raise ExecutionError(f"Failed to start sandbox container: {started.stderr.strip()}")
        with self._lock:
            self._scopes[name] = policy
        logger.debug("started container %s", name)
        return ScopeHandle(
            scope_id=name,
            workdir=CONTAINER_WORKDIR,
            source_file=f"{CONTAINER_WORKDIR}/{workspace.source_file.name}",
            host_workdir=workspace.path,
        )

    def run(self, handle: ScopeHandle, argv: Sequence[str], timeout_seconds: float) -> ExecutionOutcome:
        """Run argv via ``docker exec``, killing the container on timeout.

        Example:
            ```python
            outcome = engine.run(handle, ["clang", "--version"], timeout_seconds=10)
            ```
        """
        with self._lock:
            policy = self._scopes.get(handle.scope_id)
        if policy is None:
            raise ExecutionError(f"Unknown scope '{handle.scope_id}'")
        cmd = self._docker_cmd(["exec", "-w", handle.workdir, handle.scope_id, *argv])
        logger.debug("docker exec in %s: %s", handle.scope_id, list(argv))

        def kill_scope(proc: subprocess.Popen[bytes]) -> None:
            """Kill the container first so the exec client cannot outlive it.

            Example:
                ```python
                kill_scope(proc)
                ```
            """
            self._run_docker(["kill", handle.scope_id])
            proc.kill()

        return run_bounded(
            cmd,
            timeout_seconds,
            policy.max_output_bytes,
            on_timeout=kill_scope,
            env=self._docker_env(),
        )

    def destroy(self, handle: ScopeHandle) -> None:
        """Force-remove the scope container.

        Example:
            ```python
            engine.destroy(handle)
            ```
        """
        with self._lock:
            self._scopes.pop(handle.scope_id, None)
        removed = self._run_docker(["rm", "-f", handle.scope_id])
        gone = ("no such container", "already in progress")
        if removed.returncode != 0 and not any(marker in removed.stderr.lower() for marker in gone):
            raise ExecutionError(f"Failed to remove container {handle.scope_id}: {removed.stderr.strip()}")

    def list_containers(self, all_states: bool = False) -> list[ContainerInfo]:
        """List managed containers visible to this engine target.

        Example:
            ```python
            containers = engine.list_containers(all_states=True)
            ```
        """
        fmt = "{{.ID}}|{{.Names}}|{{.Image}}|{{.State}}|{{.Status}}"
        cmd = ["ps", "--filter", f"label={MANAGED_LABEL_KEY}={MANAGED_LABEL_VALUE}", "--format", fmt]
        if all_states:
            cmd.insert(1, "-a")
        out = self._run_docker(cmd)
        if out.returncode != 0:
            raise RuntimeError(f"Failed to list containers: {out.stderr.strip()}")
        items: list[ContainerInfo] = []
        for line in out.stdout.splitlines():
            if not line.strip():
                continue
            c_id, name, image, state, status = line.split("|", 4)
            items.append(ContainerInfo(c_id, name, image, state, status))
        return items

    def cleanup_stale(self, include_running: bool = False) -> CleanupSummary:
        """Remove managed containers left behind by crashed processes.

        Running containers are only removed with ``include_running``.

        Example:
            ```python
            summary = engine.cleanup_stale()
            ```
        """
        with self._lock:
            live = set(self._scopes)
        removed_containers = 0
        for container in self.list_containers(all_states=True):
            if container.name in live:
                continue
            if container.state == "running" and not include_running:
                continue
            removed = self._run_docker(["rm", "-f", container.id])
            if removed.returncode == 0:
                removed_containers += 1
        return CleanupSummary(removed_containers=removed_containers)

    def _ensure_image(self) -> None:
        """Ensure the toolchain image exists locally, pulling when needed.

        Example:
            ```python
            engine._ensure_image()
            ```
        """
        if self._image_ready:
            return
        if self._run_docker(["image", "inspect", self._image]).returncode != 0:
            logger.info("Pulling toolchain image %s", self._image)
            pulled = self._run_docker(["pull", self._image])
            if pulled.returncode != 0:
                raise ExecutionError(f"Toolchain image '{self._image}' is unavailable: {pulled.stderr.strip()}")
        self._image_ready = True

    def _docker_cmd(self, args: Sequence[str]) -> list[str]:
        """Prefix args with the docker binary and the configured context.

        Example:
            ```python
            cmd = engine._docker_cmd(["ps"])
            ```
        """
        cmd = ["docker"]
        if self._docker_context:
            cmd.extend(["--context", self._docker_context])
        cmd.extend(args)
        return cmd

    def _run_docker(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        """Run a Docker CLI command against the configured target.

        Example:
            ```python
            completed = engine._run_docker(["ps"])
            ```
        """
        return subprocess.run(
            self._docker_cmd(args),
            capture_output=True,
            text=True,
            check=False,
            env=self._docker_env(),
        )

    def _docker_env(self) -> dict[str, str]:
        """Build environment variables for Docker CLI targeting.

        Example:
            ```python
            env = engine._docker_env()
            ```
        """
        env = dict(os.environ)
        if self._docker_host:
            env["DOCKER_HOST"] = self._docker_host
        return env

    def _validate_connection_options(self) -> None:
        """Validate mutually exclusive Docker connection settings.

        Example:
            ```python
            engine._validate_connection_options()
            ```
        """
        if self._docker_context and self._docker_host:
            raise ValueError("Use either docker_context or docker_host, not both")
        if not self._image.strip():
            raise ValueError("DockerEngine requires a non-empty 'image'")
