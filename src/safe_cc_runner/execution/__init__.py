from .docker_engine import DockerEngine
from .engine import IsolationEngine
from .gate import ExecutionGate
from .local_engine import LocalEngine
from .manager import ExecutionManager
from .types import ExecutionOutcome, ExecutionResult, ScopeHandle, Workspace

__all__ = [
    "DockerEngine",
    "ExecutionGate",
    "ExecutionManager",
    "ExecutionOutcome",
    "ExecutionResult",
    "IsolationEngine",
    "LocalEngine",
    "ScopeHandle",
    "Workspace",
]
