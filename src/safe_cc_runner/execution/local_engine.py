from __future__ import annotations

import logging
import math
import os
import resource
import signal
import subprocess
import threading
from typing import Callable, Sequence

from ..errors import ExecutionError
from ..policy import SandboxPolicy
from .capture import run_bounded
from .types import ExecutionOutcome, ScopeHandle, Workspace

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_PATH = "/usr/local/bin:/usr/bin:/bin"
_MB = 1024 * 1024


def _rlimit_setter(policy: SandboxPolicy, timeout_seconds: float) -> Callable[[], None]:
    """Return a pre-exec hook applying address-space, CPU, file-size and core limits.

    Example:
        ```python
        hook = _rlimit_setter(SandboxPolicy(), timeout_seconds=30)
        ```
    """
    memory = policy.memory_limit_mb * _MB
    cpu_seconds = int(math.ceil(timeout_seconds)) + 1
    file_bytes = policy.tmpfs_size_mb * _MB

    def apply() -> None:
        """Apply the limits in the forked child before exec.

        Example:
            ```python
            apply()
            ```
        """
        resource.setrlimit(resource.RLIMIT_AS, (memory, memory))
        resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
        resource.setrlimit(resource.RLIMIT_FSIZE, (file_bytes, file_bytes))
        resource.setrlimit(resource.RLIMIT_CORE, (0, 0))

    return apply


def _kill_group(proc: subprocess.Popen[bytes]) -> None:
    """Send SIGKILL to the whole process group led by proc.

    Example:
        ```python
        _kill_group(proc)
        ```
    """
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        return


class LocalEngine:
    """Run toolchain processes on the host under POSIX resource limits.

    Processes get a new session, a scrubbed environment and the workspace as
    cwd, HOME and TMPDIR. This backend cannot isolate the network or the
    filesystem.

    Example:
        ```python
        engine = LocalEngine()
        ```
    """

    def __init__(self, *, search_path: str | None = None) -> None:
        """Initialize a local engine.

        Example:
            ```python
            engine = LocalEngine(search_path="/opt/llvm/bin:/usr/bin")
            ```
        """
        cleaned = (search_path if search_path is not None else os.environ.get("PATH", DEFAULT_SEARCH_PATH)).strip()
        if not cleaned:
            raise ValueError("LocalEngine requires a non-empty 'search_path'")
        self._search_path = cleaned
        self._lock = threading.Lock()
        self._scopes: dict[str, SandboxPolicy] = {}

    def create_scope(self, workspace: Workspace, policy: SandboxPolicy) -> ScopeHandle:
        """Register a workspace as a scope; the host paths are the tool paths.

        Example:
            ```python
            handle = engine.create_scope(workspace, SandboxPolicy(require_network_isolation=False))
            ```
        """
        if not workspace.path.is_dir():
            raise ExecutionError(f"Workspace {workspace.path.name} does not exist")
        scope_id = f"local-{workspace.path.name}"
        with self._lock:
            self._scopes[scope_id] = policy
        return ScopeHandle(
            scope_id=scope_id,
            workdir=str(workspace.path),
            source_file=str(workspace.source_file),
            host_workdir=workspace.path,
        )

    def run(self, handle: ScopeHandle, argv: Sequence[str], timeout_seconds: float) -> ExecutionOutcome:
        """Run argv in the workspace, killing its process group on timeout.

        Example:
            ```python
            outcome = engine.run(handle, ["clang", "--version"], timeout_seconds=10)
            ```
        """
        with self._lock:
            policy = self._scopes.get(handle.scope_id)
        if policy is None:
            raise ExecutionError(f"Unknown scope '{handle.scope_id}'")
        logger.debug("local run in %s: %s", handle.scope_id, list(argv))
        return run_bounded(
            argv,
            timeout_seconds,
            policy.max_output_bytes,
            on_timeout=_kill_group,
            cwd=handle.workdir,
            env=self._environment(handle),
            start_new_session=True,
            preexec_fn=_rlimit_setter(policy, timeout_seconds),
        )

    def destroy(self, handle: ScopeHandle) -> None:
        """Forget the scope; runs are synchronous so nothing is left alive.

        Example:
            ```python
            engine.destroy(handle)
            ```
        """
        with self._lock:
            self._scopes.pop(handle.scope_id, None)

    def _environment(self, handle: ScopeHandle) -> dict[str, str]:
        """Build the scrubbed child environment.

        Example:
            ```python
            env = engine._environment(handle)
            ```
        """
        return {
            "PATH": self._search_path,
            "HOME": handle.workdir,
            "TMPDIR": str(handle.host_workdir / ".tmp"),
            "LANG": "C.UTF-8",
            "LC_ALL": "C.UTF-8",
        }
