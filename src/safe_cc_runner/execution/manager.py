from __future__ import annotations

import logging
import os
from typing import Callable, Sequence

from ..commands import Toolchain
from ..errors import ExecutionError
from ..policy import SandboxPolicy
from .capabilities import preflight_validate_backend_capabilities
from .engine import IsolationEngine
from .gate import ExecutionGate
from .types import ExecutionResult, ScopeHandle, Workspace
from .workspace import open_workspace

logger = logging.getLogger(__name__)

CommandFactory = Callable[[ScopeHandle], Sequence[str]]


class ExecutionManager:
    """Own the concurrency gate and drive one isolated toolchain run per request.

    Each ``execute`` call takes a gate slot, creates a private workspace,
    wraps it in an engine scope, runs exactly one argv and tears everything
    down again, whatever happens in between.

    Example:
        ```python
        manager = ExecutionManager(DockerEngine(), SandboxPolicy())
        ```
    """

    def __init__(
        self,
        engine: IsolationEngine,
        policy: SandboxPolicy | None = None,
        gate: ExecutionGate | None = None,
    ) -> None:
        """Bind an engine to a policy and a gate sized from that policy.

        Example:
            ```python
            manager = ExecutionManager(LocalEngine(), SandboxPolicy(require_network_isolation=False))
            ```
        """
        self._engine = engine
        self._policy = policy or SandboxPolicy()
        self._gate = gate or ExecutionGate(self._policy.max_concurrent, self._policy.queue_timeout_seconds)
        self._backend = type(engine).__name__.lower()
        self._toolchain = Toolchain(self._policy.c_compiler, self._policy.cxx_compiler)

    @property
    def policy(self) -> SandboxPolicy:
        """Return the active sandbox policy.

        Example:
            ```python
            limit = manager.policy.max_output_bytes
            ```
        """
        return self._policy

    @property
    def gate(self) -> ExecutionGate:
        """Return the concurrency gate shared by all requests on this manager.

        Example:
            ```python
            print(manager.gate.live)
            ```
        """
        return self._gate

    @property
    def engine(self) -> IsolationEngine:
        """Return the isolation engine.

        Example:
            ```python
            engine = manager.engine
            ```
        """
        return self._engine

    @property
    def backend(self) -> str:
        """Return the backend name used for capability checks.

        Example:
            ```python
            print(manager.backend)
            ```
        """
        return self._backend

    @property
    def toolchain(self) -> Toolchain:
        """Return the compiler drivers configured by the policy.

        Example:
            ```python
            cc = manager.toolchain.c_compiler
            ```
        """
        return self._toolchain

    @property
    def work_roots(self) -> tuple[str, ...]:
        """Return host path spellings of the work root, for output scrubbing.

        Example:
            ```python
            roots = manager.work_roots
            ```
        """
        root = self._policy.work_root
        resolved = os.path.realpath(root)
        return (root,) if resolved == root else (root, resolved)

    def execute(
        self,
        source: str,
        language: str | None,
        build_command: CommandFactory,
        timeout_seconds: float,
    ) -> ExecutionResult:
        """Run one toolchain invocation over ``source`` in a fresh isolated scope.

        ``build_command`` receives the scope handle so argv can reference the
        source file and output directory as the tool will see them.

        Example:
            ```python
            result = manager.execute(
                "int main(void) { return 0; }",
                "c11",
                lambda scope: ["clang", "-fsyntax-only", scope.source_file],
                timeout_seconds=30,
            )
            ```
        """
        preflight_validate_backend_capabilities(self._backend, self._policy)
        with self._gate.slot():
            with open_workspace(self._policy.work_root, source, language) as workspace:
                handle = self._create_scope(workspace)
                try:
                    argv = list(build_command(handle))
                    logger.debug("argv for %s: %s", handle.scope_id, argv)
                    outcome = self._engine.run(handle, argv, timeout_seconds)
                finally:
                    self._destroy(handle)
        if outcome.timed_out:
            logger.warning("Execution timed out after %.1fs", timeout_seconds)
        return ExecutionResult(
            exit_code=outcome.returncode,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            duration_seconds=outcome.duration_seconds,
            truncated=outcome.truncated,
            timed_out=outcome.timed_out,
        )

    def _create_scope(self, workspace: Workspace) -> ScopeHandle:
        """Create the engine scope, retrying exactly once on failure.

        Example:
            ```python
            handle = manager._create_scope(workspace)
            ```
        """
        try:
            return self._engine.create_scope(workspace, self._policy)
        except (ExecutionError, OSError) as exc:
            logger.warning("Scope creation failed (%s); retrying once", exc)
        try:
            return self._engine.create_scope(workspace, self._policy)
        except OSError as exc:
            raise ExecutionError(f"Failed to create execution scope: {exc}") from exc

    def _destroy(self, handle: ScopeHandle) -> None:
        """Tear the scope down, logging rather than raising on failure.

        Example:
            ```python
            manager._destroy(handle)
            ```
        """
        try:
            self._engine.destroy(handle)
        except (ExecutionError, OSError) as exc:
            logger.error("Failed to destroy scope %s: %s", handle.scope_id, exc)
