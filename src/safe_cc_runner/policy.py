from __future__ import annotations

import tempfile
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _default_policy_path() -> Path:
    """Return bundled default policy TOML path.

    Example:
        ```python
        path = _default_policy_path()
        ```
    """
    return Path(__file__).with_name("default_policy.toml")


def _read_policy_toml(path: Path) -> dict[str, Any]:
    """Read policy TOML and return the policy table.

    Example:
        ```python
        raw = _read_policy_toml(Path("/etc/safe-cc-runner/policy.toml"))
        ```
    """
    if not path.exists():
        return {
            "memory_limit_mb": 512,
            "cpu_limit": 2.0,
            "pids_limit": 64,
            "tmpfs_size_mb": 100,
            "max_output_bytes": 10 * 1024 * 1024,
            "max_concurrent": 4,
            "queue_timeout_seconds": 30,
            "compile_timeout_seconds": 30,
            "analysis_timeout_seconds": 60,
            "ast_timeout_seconds": 30,
            "require_network_isolation": True,
            "c_compiler": "clang",
            "cxx_compiler": "clang++",
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    policy_obj = raw.get("policy", raw)
    if not isinstance(policy_obj, dict):
        raise ValueError("Policy config must be a TOML table")
    return policy_obj


def _default_work_root() -> str:
    """Return the host directory under which per-request workspaces live.

    Example:
        ```python
        root = _default_work_root()
        ```
    """
    return str(Path(tempfile.gettempdir()) / "safe-cc-runner")


_DEFAULT_POLICY_RAW = _read_policy_toml(_default_policy_path())
DEFAULT_MEMORY_LIMIT_MB = int(_DEFAULT_POLICY_RAW.get("memory_limit_mb", 512))
DEFAULT_CPU_LIMIT = float(_DEFAULT_POLICY_RAW.get("cpu_limit", 2.0))
DEFAULT_PIDS_LIMIT = int(_DEFAULT_POLICY_RAW.get("pids_limit", 64))
DEFAULT_TMPFS_SIZE_MB = int(_DEFAULT_POLICY_RAW.get("tmpfs_size_mb", 100))
DEFAULT_MAX_OUTPUT_BYTES = int(_DEFAULT_POLICY_RAW.get("max_output_bytes", 10 * 1024 * 1024))
DEFAULT_MAX_CONCURRENT = int(_DEFAULT_POLICY_RAW.get("max_concurrent", 4))
DEFAULT_QUEUE_TIMEOUT_SECONDS = float(_DEFAULT_POLICY_RAW.get("queue_timeout_seconds", 30))
DEFAULT_COMPILE_TIMEOUT_SECONDS = int(_DEFAULT_POLICY_RAW.get("compile_timeout_seconds", 30))
DEFAULT_ANALYSIS_TIMEOUT_SECONDS = int(_DEFAULT_POLICY_RAW.get("analysis_timeout_seconds", 60))
DEFAULT_AST_TIMEOUT_SECONDS = int(_DEFAULT_POLICY_RAW.get("ast_timeout_seconds", 30))
DEFAULT_REQUIRE_NETWORK_ISOLATION = bool(
    _DEFAULT_POLICY_RAW.get("require_network_isolation", True)
)
DEFAULT_C_COMPILER = str(_DEFAULT_POLICY_RAW.get("c_compiler", "clang"))
DEFAULT_CXX_COMPILER = str(_DEFAULT_POLICY_RAW.get("cxx_compiler", "clang++"))


@dataclass(slots=True)
class SandboxPolicy:
    """Operator-level ceilings for sandboxed toolchain runs.

    None of these values can be influenced by a request; callers only pick a
    timeout inside the validated range.

    Example:
        ```python
        policy = SandboxPolicy(memory_limit_mb=256, max_concurrent=2)
        ```
    """

    memory_limit_mb: int = DEFAULT_MEMORY_LIMIT_MB
    cpu_limit: float = DEFAULT_CPU_LIMIT
    pids_limit: int = DEFAULT_PIDS_LIMIT
    tmpfs_size_mb: int = DEFAULT_TMPFS_SIZE_MB
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    queue_timeout_seconds: float = DEFAULT_QUEUE_TIMEOUT_SECONDS
    compile_timeout_seconds: int = DEFAULT_COMPILE_TIMEOUT_SECONDS
    analysis_timeout_seconds: int = DEFAULT_ANALYSIS_TIMEOUT_SECONDS
    ast_timeout_seconds: int = DEFAULT_AST_TIMEOUT_SECONDS
    work_root: str = ""
    require_network_isolation: bool = DEFAULT_REQUIRE_NETWORK_ISOLATION
    c_compiler: str = DEFAULT_C_COMPILER
    cxx_compiler: str = DEFAULT_CXX_COMPILER
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate ceilings after dataclass initialization.

        Example:
            ```python
            SandboxPolicy(max_concurrent=1)
            ```
        """
        if not self.work_root:
            self.work_root = _default_work_root()
        if self.memory_limit_mb < 64:
            raise ValueError("memory_limit_mb must be at least 64")
        if self.cpu_limit <= 0:
            raise ValueError("cpu_limit must be positive")
        if self.pids_limit < 1:
            raise ValueError("pids_limit must be at least 1")
        if self.max_output_bytes < 1024:
            raise ValueError("max_output_bytes must be at least 1024")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.queue_timeout_seconds < 0:
            raise ValueError("queue_timeout_seconds must not be negative")
        for name in ("compile_timeout_seconds", "analysis_timeout_seconds", "ast_timeout_seconds"):
            if not 1 <= getattr(self, name) <= 60:
                raise ValueError(f"{name} must be between 1 and 60")
        if not self.c_compiler.strip() or not self.cxx_compiler.strip():
            raise ValueError("c_compiler and cxx_compiler must be non-empty")

    @classmethod
    def from_file(cls, config_path: str) -> "SandboxPolicy":
        """Create a policy instance from a TOML file.

        Example:
            ```python
            policy = SandboxPolicy.from_file("/etc/safe-cc-runner/policy.toml")
            ```
        """
        raw = _read_policy_toml(Path(config_path))
        return cls(
            memory_limit_mb=int(raw.get("memory_limit_mb", DEFAULT_MEMORY_LIMIT_MB)),
            cpu_limit=float(raw.get("cpu_limit", DEFAULT_CPU_LIMIT)),
            pids_limit=int(raw.get("pids_limit", DEFAULT_PIDS_LIMIT)),
            tmpfs_size_mb=int(raw.get("tmpfs_size_mb", DEFAULT_TMPFS_SIZE_MB)),
            max_output_bytes=int(raw.get("max_output_bytes", DEFAULT_MAX_OUTPUT_BYTES)),
            max_concurrent=int(raw.get("max_concurrent", DEFAULT_MAX_CONCURRENT)),
            queue_timeout_seconds=float(
                raw.get("queue_timeout_seconds", DEFAULT_QUEUE_TIMEOUT_SECONDS)
            ),
            compile_timeout_seconds=int(
                raw.get("compile_timeout_seconds", DEFAULT_COMPILE_TIMEOUT_SECONDS)
            ),
            analysis_timeout_seconds=int(
                raw.get("analysis_timeout_seconds", DEFAULT_ANALYSIS_TIMEOUT_SECONDS)
            ),
            ast_timeout_seconds=int(raw.get("ast_timeout_seconds", DEFAULT_AST_TIMEOUT_SECONDS)),
            work_root=str(raw.get("work_root", "")),
            require_network_isolation=bool(
                raw.get("require_network_isolation", DEFAULT_REQUIRE_NETWORK_ISOLATION)
            ),
            c_compiler=str(raw.get("c_compiler", DEFAULT_C_COMPILER)),
            cxx_compiler=str(raw.get("cxx_compiler", DEFAULT_CXX_COMPILER)),
            config_path=config_path,
        )
