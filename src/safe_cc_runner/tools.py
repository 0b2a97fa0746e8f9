from __future__ import annotations

import logging
import time
from typing import Any, Callable, Sequence

from .commands import build_analysis_command, build_ast_command, build_compile_command
from .diagnostics import extract_toolchain_version, parse_diagnostics, parse_findings, summarize
from .errors import ErrorKind, ToolchainError, ValidationError
from .execution.manager import ExecutionManager
from .execution.types import ExecutionResult, ScopeHandle
from .models import (
    AST_FORMATS,
    DEFAULT_AST_FORMAT,
    AnalysisPayload,
    AnalysisRequest,
    ASTPayload,
    ASTRequest,
    CompilationPayload,
    CompilationRequest,
    Response,
    ToolFailure,
    ToolSuccess,
)
from .sanitize import scrub_output
from .validation import Rejected, validate_analysis, validate_ast, validate_compilation

logger = logging.getLogger(__name__)

COMPILE_TOOL = "compile_cpp"
ANALYZE_TOOL = "analyze_cpp"
AST_TOOL = "get_ast"
COMPILER_INFO_TIMEOUT_SECONDS = 10

_TIMEOUT_LABELS = {
    COMPILE_TOOL: "Compilation",
    ANALYZE_TOOL: "Static analysis",
    AST_TOOL: "AST generation",
}


def _elapsed(started: float) -> float:
    """Return seconds since a monotonic start mark.

    Example:
        ```python
        seconds = _elapsed(time.monotonic())
        ```
    """
    return time.monotonic() - started


def _failure(tool: str, kind: ErrorKind, message: str, started: float | None = None, **details: Any) -> ToolFailure:
    """Build a failure response, stamping elapsed time for execution-side errors.

    Example:
        ```python
        failure = _failure("compile_cpp", ErrorKind.VALIDATION_ERROR, "Source code cannot be empty")
        ```
    """
    if started is not None:
        details["elapsed_seconds"] = round(_elapsed(started), 6)
    return ToolFailure(tool=tool, kind=kind, message=message, details=details)


def _coerce(request: Any, request_type: type[Any]) -> Any:
    """Accept either a request object or a snake-case argument mapping.

    Example:
        ```python
        req = _coerce({"source_code": "int x;"}, ASTRequest)
        ```
    """
    if isinstance(request, request_type):
        return request
    return request_type.from_arguments(request)


def _execute(
    tool: str,
    manager: ExecutionManager,
    source: str,
    language: str | None,
    build_command: Callable[[ScopeHandle], Sequence[str]],
    timeout_seconds: float,
    started: float,
) -> ExecutionResult | ToolFailure:
    """Run the execution stage and map every failure mode to a ``ToolFailure``.

    Example:
        ```python
        result = _execute("get_ast", manager, "int x;", "c11", factory, 30, time.monotonic())
        ```
    """
    try:
        result = manager.execute(source, language, build_command, timeout_seconds)
    except ToolchainError as exc:
        logger.warning("%s failed: %s", tool, exc)
        return _failure(tool, exc.kind, str(exc), started)
    except Exception:
        logger.exception("Unexpected error while running %s", tool)
        return _failure(tool, ErrorKind.INTERNAL_ERROR, f"Internal error while running {tool}", started)
    if result.timed_out:
        return _failure(
            tool,
            ErrorKind.TIMEOUT,
            f"{_TIMEOUT_LABELS[tool]} timed out after {timeout_seconds:g} seconds",
            started,
            timeout_seconds=timeout_seconds,
        )
    return result


def _scrub(manager: ExecutionManager, text: str) -> tuple[str, bool]:
    """Sanitize captured text against the manager's work roots and byte ceiling.

    Example:
        ```python
        stderr, truncated = _scrub(manager, result.stderr)
        ```
    """
    return scrub_output(text, manager.work_roots, manager.policy.max_output_bytes)


def compile_source(request: CompilationRequest | dict[str, Any], manager: ExecutionManager) -> Response:
    """Compile untrusted C/C++ source in an isolated scope.

    Example:
        ```python
        response = compile_source({"source_code": "int main(void) { return 0; }", "language": "c11"}, manager)
        ```
    """
    started = time.monotonic()
    try:
        req = _coerce(request, CompilationRequest)
    except ValidationError as exc:
        return _failure(COMPILE_TOOL, exc.kind, str(exc))
    outcome = validate_compilation(req)
    if isinstance(outcome, Rejected):
        return _failure(COMPILE_TOOL, ErrorKind.VALIDATION_ERROR, outcome.reason)
    options = outcome.value
    timeout = options.timeout_seconds or manager.policy.compile_timeout_seconds

    result = _execute(
        COMPILE_TOOL,
        manager,
        req.source_code,
        options.language,
        lambda scope: build_compile_command(options, scope.source_file, scope.workdir, manager.toolchain),
        timeout,
        started,
    )
    if isinstance(result, ToolFailure):
        return result

    stdout, stdout_cut = _scrub(manager, result.stdout)
    stderr, stderr_cut = _scrub(manager, result.stderr)
    diagnostics = tuple(parse_diagnostics(stderr))
    payload = CompilationPayload(
        success=result.exit_code == 0,
        exit_code=result.exit_code,
        stdout=stdout,
        stderr=stderr,
        diagnostics=diagnostics,
        truncated=result.truncated or stdout_cut or stderr_cut,
        toolchain_version=extract_toolchain_version(result.stdout, result.stderr),
    )
    elapsed = _elapsed(started)
    counts = summarize(diagnostics)
    logger.info(
        "Compilation finished: exit=%s errors=%s warnings=%s in %.3fs",
        result.exit_code,
        counts["error"],
        counts["warning"],
        elapsed,
    )
    return ToolSuccess(tool=COMPILE_TOOL, elapsed_seconds=elapsed, payload=payload)


def analyze_source(request: AnalysisRequest | dict[str, Any], manager: ExecutionManager) -> Response:
    """Run the static analyzer over untrusted source and report findings.

    Example:
        ```python
        response = analyze_source({"source_code": "int f(int x) { return 1 / x; }", "language": "c11"}, manager)
        ```
    """
    started = time.monotonic()
    try:
        req = _coerce(request, AnalysisRequest)
    except ValidationError as exc:
        return _failure(ANALYZE_TOOL, exc.kind, str(exc))
    outcome = validate_analysis(req)
    if isinstance(outcome, Rejected):
        return _failure(ANALYZE_TOOL, ErrorKind.VALIDATION_ERROR, outcome.reason)
    options = outcome.value

    result = _execute(
        ANALYZE_TOOL,
        manager,
        req.source_code,
        options.language,
        lambda scope: build_analysis_command(options, scope.source_file, scope.workdir, manager.toolchain),
        manager.policy.analysis_timeout_seconds,
        started,
    )
    if isinstance(result, ToolFailure):
        return result

    stdout, stdout_cut = _scrub(manager, result.stdout)
    stderr, stderr_cut = _scrub(manager, result.stderr)
    findings = tuple(parse_findings("\n".join(part for part in (stdout, stderr) if part)))
    payload = AnalysisPayload(
        success=result.exit_code == 0,
        exit_code=result.exit_code,
        findings=findings,
        truncated=result.truncated or stdout_cut or stderr_cut,
    )
    elapsed = _elapsed(started)
    logger.info("Static analysis finished: exit=%s findings=%s in %.3fs", result.exit_code, len(findings), elapsed)
    return ToolSuccess(tool=ANALYZE_TOOL, elapsed_seconds=elapsed, payload=payload)


def dump_ast(request: ASTRequest | dict[str, Any], manager: ExecutionManager) -> Response:
    """Produce the compiler's syntax tree for untrusted source.

    Example:
        ```python
        response = dump_ast({"source_code": "int x;", "language": "c11", "format": "json"}, manager)
        ```
    """
    started = time.monotonic()
    try:
        req = _coerce(request, ASTRequest)
    except ValidationError as exc:
        return _failure(AST_TOOL, exc.kind, str(exc))
    outcome = validate_ast(req)
    if isinstance(outcome, Rejected):
        return _failure(AST_TOOL, ErrorKind.VALIDATION_ERROR, outcome.reason)
    options = outcome.value

    result = _execute(
        AST_TOOL,
        manager,
        req.source_code,
        options.language,
        lambda scope: build_ast_command(options, scope.source_file, manager.toolchain),
        manager.policy.ast_timeout_seconds,
        started,
    )
    if isinstance(result, ToolFailure):
        return result

    # Some failures print the partial tree to stderr only.
    raw_tree = result.stdout if result.stdout.strip() else result.stderr
    tree, tree_cut = _scrub(manager, raw_tree)
    stderr, stderr_cut = _scrub(manager, result.stderr)
    payload = ASTPayload(
        success=result.exit_code == 0 and bool(tree.strip()),
        exit_code=result.exit_code,
        ast=tree,
        format=options.format or DEFAULT_AST_FORMAT,
        diagnostics=tuple(parse_diagnostics(stderr)),
        truncated=result.truncated or tree_cut or stderr_cut,
    )
    elapsed = _elapsed(started)
    logger.info("AST generation finished: exit=%s size=%s in %.3fs", result.exit_code, len(tree), elapsed)
    return ToolSuccess(tool=AST_TOOL, elapsed_seconds=elapsed, payload=payload)


def compiler_info(manager: ExecutionManager) -> dict[str, Any]:
    """Ask the sandboxed toolchain for its version.

    The version stays ``unknown`` when the probe fails for any reason.

    Example:
        ```python
        info = compiler_info(manager)
        ```
    """
    version = "unknown"
    try:
        result = manager.execute(
            "",
            "c17",
            lambda scope: [manager.toolchain.c_compiler, "--version"],
            COMPILER_INFO_TIMEOUT_SECONDS,
        )
    except ToolchainError as exc:
        logger.warning("Compiler version probe failed: %s", exc)
    else:
        if result.exit_code == 0 and not result.timed_out:
            found = extract_toolchain_version(result.stdout)
            if found.startswith("clang version "):
                version = found.removeprefix("clang version ")
    return {"clang_version": version, "ast_formats": list(AST_FORMATS)}
