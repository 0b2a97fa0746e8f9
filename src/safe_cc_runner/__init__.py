from .dispatch import call_tool, handle_message, list_resources, list_tools, read_resource, serve
from .errors import ErrorKind, ToolchainError
from .execution.docker_engine import DockerEngine
from .execution.local_engine import LocalEngine
from .execution.manager import ExecutionManager
from .models import AnalysisRequest, ASTRequest, CompilationRequest, ToolFailure, ToolSuccess
from .policy import SandboxPolicy
from .tools import analyze_source, compile_source, dump_ast

__all__ = [
    "ASTRequest",
    "AnalysisRequest",
    "CompilationRequest",
    "DockerEngine",
    "ErrorKind",
    "ExecutionManager",
    "LocalEngine",
    "SandboxPolicy",
    "ToolFailure",
    "ToolSuccess",
    "ToolchainError",
    "analyze_source",
    "call_tool",
    "compile_source",
    "dump_ast",
    "handle_message",
    "list_resources",
    "list_tools",
    "read_resource",
    "serve",
]
