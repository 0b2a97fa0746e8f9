from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Workspace:
    """Host-side ephemeral directory owned by exactly one request.

    Example:
        ```python
        root = Path("/tmp/safe-cc-runner/run-ab12")
        ws = Workspace(path=root, source_file=root / "source.c")
        ```
    """

    path: Path
    source_file: Path

    @property
    def temp_dir(self) -> Path:
        """Return the private temp directory inside the workspace.

        Example:
            ```python
            tmp = ws.temp_dir
            ```
        """
        return self.path / ".tmp"


@dataclass(frozen=True, slots=True)
class ScopeHandle:
    """Isolated scope returned by an engine, with paths as the tool sees them.

    Example:
        ```python
        handle = ScopeHandle("safe-cc-runner-ab12cd34ef56", "/workspace", "/workspace/source.c", Path("/tmp/x"))
        ```
    """

    scope_id: str
    workdir: str
    source_file: str
    host_workdir: Path


@dataclass(slots=True)
class ExecutionOutcome:
    """Normalized response returned by an isolation engine.

    Example:
        ```python
        out = ExecutionOutcome(stdout="", stderr="", returncode=0, timed_out=False)
        ```
    """

    stdout: str
    stderr: str
    returncode: int
    timed_out: bool
    truncated: bool = False
    duration_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Completed sandbox run as seen by the tool facades.

    Example:
        ```python
        result = ExecutionResult(exit_code=0, stdout="", stderr="", duration_seconds=0.4)
        ```
    """

    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float
    truncated: bool = False
    timed_out: bool = False
