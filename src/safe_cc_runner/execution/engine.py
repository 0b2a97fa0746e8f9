from __future__ import annotations

from typing import Protocol, Sequence

from ..policy import SandboxPolicy
from .types import ExecutionOutcome, ScopeHandle, Workspace


class IsolationEngine(Protocol):
    def create_scope(self, workspace: Workspace, policy: SandboxPolicy) -> ScopeHandle:
        """Create an isolated, resource-bounded scope around a workspace.

        Example:
            ```python
            handle = engine.create_scope(workspace, SandboxPolicy())
            ```
        """
        ...

    def run(self, handle: ScopeHandle, argv: Sequence[str], timeout_seconds: float) -> ExecutionOutcome:
        """Run one argv inside the scope and return normalized execution outcome.

        Example:
            ```python
            outcome = engine.run(handle, ["clang", "-fsyntax-only", handle.source_file], 30)
            ```
        """
        ...

    def destroy(self, handle: ScopeHandle) -> None:
        """Tear the scope down, killing anything still running in it.

        Example:
            ```python
            engine.destroy(handle)
            ```
        """
        ...
