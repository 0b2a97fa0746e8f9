from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

from safe_cc_runner.errors import ExecutionError
from safe_cc_runner.execution import ExecutionManager, ExecutionOutcome, ScopeHandle, Workspace
from safe_cc_runner.policy import SandboxPolicy


class ScriptedEngine:
    """In-memory engine that replays a canned outcome and records every call."""

    def __init__(
        self,
        outcome: ExecutionOutcome | None = None,
        *,
        scope_failures: int = 0,
        run_error: Exception | None = None,
        destroy_error: Exception | None = None,
    ) -> None:
        self.outcome = outcome or ExecutionOutcome(stdout="", stderr="", returncode=0, timed_out=False)
        self.scope_failures = scope_failures
        self.run_error = run_error
        self.destroy_error = destroy_error
        self.create_calls = 0
        self.argvs: list[list[str]] = []
        self.destroyed: list[str] = []
        self.seen_sources: list[str] = []
        self.workspaces: list[Path] = []
        self.timeouts: list[float] = []

    def create_scope(self, workspace: Workspace, policy: SandboxPolicy) -> ScopeHandle:
        self.create_calls += 1
        if self.scope_failures:
            self.scope_failures -= 1
            raise ExecutionError("scope backend hiccup")
        self.workspaces.append(workspace.path)
        self.seen_sources.append(workspace.source_file.read_text(encoding="utf-8"))
        return ScopeHandle(
            scope_id=f"fake-{workspace.path.name}",
            workdir=str(workspace.path),
            source_file=str(workspace.source_file),
            host_workdir=workspace.path,
        )

    def run(self, handle: ScopeHandle, argv: Sequence[str], timeout_seconds: float) -> ExecutionOutcome:
        self.argvs.append(list(argv))
        self.timeouts.append(timeout_seconds)
        if self.run_error is not None:
            raise self.run_error
        return self.outcome

    def destroy(self, handle: ScopeHandle) -> None:
        self.destroyed.append(handle.scope_id)
        if self.destroy_error is not None:
            raise self.destroy_error


@pytest.fixture
def work_root(tmp_path: Path) -> Path:
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def make_manager(work_root: Path) -> Callable[..., ExecutionManager]:
    def factory(engine: Any, **overrides: Any) -> ExecutionManager:
        settings: dict[str, Any] = {"require_network_isolation": False, "work_root": str(work_root)}
        settings.update(overrides)
        return ExecutionManager(engine, SandboxPolicy(**settings))

    return factory
