from __future__ import annotations

import json
import logging
from typing import IO, Any, Callable

from .errors import ErrorKind
from .execution.manager import ExecutionManager
from .models import (
    AST_FORMATS,
    C_STANDARDS,
    CHECKER_CATALOG,
    CXX_STANDARDS,
    DEFAULT_AST_FORMAT,
    DEFAULT_CHECKERS,
    DEFAULT_COMPILE_ONLY,
    DEFAULT_LANGUAGE,
    DEFAULT_OPTIMIZATION,
    DEFAULT_WARNINGS,
    LANGUAGE_STANDARDS,
    OPTIMIZATION_LEVELS,
    WARNING_LEVELS,
    Response,
)
from .tools import ANALYZE_TOOL, AST_TOOL, COMPILE_TOOL, analyze_source, compile_source, compiler_info, dump_ast
from .validation import MAX_TIMEOUT_SECONDS, MIN_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

SERVER_NAME = "safe-cc-runner"
JSON_MIME = "application/json"

STANDARDS_URI = "llvm://standards"
COMPILER_INFO_URI = "llvm://compiler-info"
CHECKERS_URI = "llvm://checkers"

_SOURCE_PROPERTY = {"type": "string", "description": "C/C++ source code"}
_LANGUAGE_PROPERTY = {
    "type": "string",
    "description": "Language standard",
    "enum": list(LANGUAGE_STANDARDS),
    "default": DEFAULT_LANGUAGE,
}
_DEFINES_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Preprocessor definitions",
    "default": [],
}
_INCLUDES_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Additional relative include paths",
    "default": [],
}

TOOLS: tuple[dict[str, Any], ...] = (
    {
        "name": COMPILE_TOOL,
        "description": "Compile C/C++ source code with Clang in an isolated sandbox",
        "inputSchema": {
            "type": "object",
            "properties": {
                "source_code": _SOURCE_PROPERTY,
                "language": _LANGUAGE_PROPERTY,
                "optimization": {
                    "type": "string",
                    "description": "Optimization level",
                    "enum": list(OPTIMIZATION_LEVELS),
                    "default": DEFAULT_OPTIMIZATION,
                },
                "warnings": {
                    "type": "string",
                    "description": "Warning level",
                    "enum": list(WARNING_LEVELS),
                    "default": DEFAULT_WARNINGS,
                },
                "defines": _DEFINES_PROPERTY,
                "includes": _INCLUDES_PROPERTY,
                "flags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Additional allow-listed compiler flags",
                    "default": [],
                },
                "compile_only": {
                    "type": "boolean",
                    "description": "Compile only, do not link",
                    "default": DEFAULT_COMPILE_ONLY,
                },
                "timeout": {
                    "type": "number",
                    "description": "Compilation timeout in seconds",
                    "minimum": MIN_TIMEOUT_SECONDS,
                    "maximum": MAX_TIMEOUT_SECONDS,
                    "default": 30,
                },
            },
            "required": ["source_code"],
            "additionalProperties": False,
        },
    },
    {
        "name": ANALYZE_TOOL,
        "description": "Run the Clang Static Analyzer over C/C++ source code",
        "inputSchema": {
            "type": "object",
            "properties": {
                "source_code": _SOURCE_PROPERTY,
                "language": _LANGUAGE_PROPERTY,
                "checkers": {
                    "type": "array",
                    "items": {"type": "string", "enum": list(CHECKER_CATALOG)},
                    "description": "Static analysis checkers to enable (empty selects the default set)",
                    "default": [],
                },
                "defines": _DEFINES_PROPERTY,
                "includes": _INCLUDES_PROPERTY,
            },
            "required": ["source_code"],
            "additionalProperties": False,
        },
    },
    {
        "name": AST_TOOL,
        "description": "Generate the Clang abstract syntax tree for C/C++ source code",
        "inputSchema": {
            "type": "object",
            "properties": {
                "source_code": _SOURCE_PROPERTY,
                "language": _LANGUAGE_PROPERTY,
                "format": {
                    "type": "string",
                    "description": "AST output format",
                    "enum": list(AST_FORMATS),
                    "default": DEFAULT_AST_FORMAT,
                },
            },
            "required": ["source_code"],
            "additionalProperties": False,
        },
    },
)

RESOURCES: tuple[dict[str, str], ...] = (
    {
        "uri": STANDARDS_URI,
        "name": "Supported C/C++ Standards",
        "description": "Language standards accepted by every tool",
        "mimeType": JSON_MIME,
    },
    {
        "uri": COMPILER_INFO_URI,
        "name": "Compiler Information",
        "description": "Version of the sandboxed Clang toolchain",
        "mimeType": JSON_MIME,
    },
    {
        "uri": CHECKERS_URI,
        "name": "Available Static Analysis Checkers",
        "description": "Checker catalog grouped by namespace, plus the default set",
        "mimeType": JSON_MIME,
    },
)

_HANDLERS: dict[str, Callable[[Any, ExecutionManager], Response]] = {
    COMPILE_TOOL: compile_source,
    ANALYZE_TOOL: analyze_source,
    AST_TOOL: dump_ast,
}


def handler_error(message: str) -> dict[str, Any]:
    """Render a dispatch-level failure in the tool response shape.

    Example:
        ```python
        payload = handler_error("Unknown tool: run_shell")
        ```
    """
    return {"success": False, "error": {"code": ErrorKind.HANDLER_ERROR.value, "message": message}}


def list_tools() -> list[dict[str, Any]]:
    """Return tool descriptors with their JSON input schemas.

    Example:
        ```python
        names = [tool["name"] for tool in list_tools()]
        ```
    """
    return [dict(tool) for tool in TOOLS]


def list_resources() -> list[dict[str, str]]:
    """Return read-only resource descriptors.

    Example:
        ```python
        uris = [res["uri"] for res in list_resources()]
        ```
    """
    return [dict(resource) for resource in RESOURCES]


def _checker_groups() -> dict[str, list[str]]:
    """Group the checker catalog by leading namespace.

    Example:
        ```python
        groups = _checker_groups()  # {"core": [...], "unix": [...], ...}
        ```
    """
    groups: dict[str, list[str]] = {}
    for checker in CHECKER_CATALOG:
        groups.setdefault(checker.split(".", 1)[0], []).append(checker)
    return groups


def read_resource(uri: str, manager: ExecutionManager | None = None) -> dict[str, Any]:
    """Return the JSON body of a resource; compiler info needs a manager.

    Example:
        ```python
        standards = read_resource("llvm://standards")
        ```
    """
    if uri == STANDARDS_URI:
        return {"c_standards": list(C_STANDARDS), "cpp_standards": list(CXX_STANDARDS), "default": DEFAULT_LANGUAGE}
    if uri == CHECKERS_URI:
        return {**_checker_groups(), "default": list(DEFAULT_CHECKERS)}
    if uri == COMPILER_INFO_URI:
        if manager is None:
            return handler_error("Compiler information requires an execution backend")
        return {"compiler": manager.toolchain.c_compiler, "backend": manager.backend, **compiler_info(manager)}
    return handler_error(f"Unknown resource: {uri}")


def call_tool(name: str, arguments: Any, manager: ExecutionManager) -> dict[str, Any]:
    """Route a tool call by name and return the boundary-shaped response.

    Example:
        ```python
        result = call_tool("get_ast", {"source_code": "int x;", "language": "c11"}, manager)
        ```
    """
    handler = _HANDLERS.get(name)
    if handler is None:
        return handler_error(f"Unknown tool: {name}")
    try:
        return handler(arguments if arguments is not None else {}, manager).to_dict()
    except Exception as exc:
        logger.exception("Failed to handle %s", name)
        return handler_error(str(exc) or type(exc).__name__)


def handle_message(message: Any, manager: ExecutionManager) -> dict[str, Any]:
    """Answer one decoded JSON request object.

    Example:
        ```python
        reply = handle_message({"id": 1, "method": "tools/list"}, manager)
        ```
    """
    if not isinstance(message, dict):
        return {"id": None, "error": handler_error("Request must be a JSON object")["error"]}
    request_id = message.get("id")
    method = message.get("method")
    params = message.get("params") or {}
    if not isinstance(params, dict):
        return {"id": request_id, "error": handler_error("'params' must be an object")["error"]}

    if method == "tools/list":
        result: Any = {"tools": list_tools()}
    elif method == "tools/call":
        result = call_tool(str(params.get("name", "")), params.get("arguments"), manager)
    elif method == "resources/list":
        result = {"resources": list_resources()}
    elif method == "resources/read":
        uri = str(params.get("uri", ""))
        result = {"uri": uri, "mimeType": JSON_MIME, "contents": read_resource(uri, manager)}
    else:
        return {"id": request_id, "error": handler_error(f"Unknown method: {method}")["error"]}
    return {"id": request_id, "result": result}


def serve(manager: ExecutionManager, stdin: IO[str], stdout: IO[str]) -> int:
    """Serve JSON-lines requests until EOF; return the number handled.

    Example:
        ```python
        handled = serve(manager, sys.stdin, sys.stdout)
        ```
    """
    logger.info("%s serving on stdio (backend=%s)", SERVER_NAME, manager.backend)
    handled = 0
    for line in stdin:
        if not line.strip():
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            reply: dict[str, Any] = {"id": None, "error": handler_error(f"Invalid JSON: {exc.msg}")["error"]}
        else:
            reply = handle_message(message, manager)
        stdout.write(json.dumps(reply) + "\n")
        stdout.flush()
        handled += 1
    logger.info("stdin closed after %d request(s)", handled)
    return handled
