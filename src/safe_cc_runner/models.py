from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .diagnostics import DiagnosticRecord, summarize
from .errors import ErrorKind, ValidationError

C_STANDARDS = ("c89", "c99", "c11", "c17", "c23")
CXX_STANDARDS = ("c++98", "c++03", "c++11", "c++14", "c++17", "c++20", "c++23")
LANGUAGE_STANDARDS = C_STANDARDS + CXX_STANDARDS
OPTIMIZATION_LEVELS = ("O0", "O1", "O2", "O3", "Os", "Oz", "Ofast")
WARNING_LEVELS = ("none", "all", "extra", "pedantic", "error")
AST_FORMATS = ("json", "dump", "graphviz")

CHECKER_CATALOG = (
    "core.CallAndMessage",
    "core.DivideZero",
    "core.NonNullParamChecker",
    "core.NullDereference",
    "core.StackAddressEscape",
    "core.UndefinedBinaryOperatorResult",
    "core.VLASize",
    "core.uninitialized.ArraySubscript",
    "core.uninitialized.Assign",
    "core.uninitialized.Branch",
    "core.uninitialized.CapturedBlockVariable",
    "core.uninitialized.UndefReturn",
    "deadcode.DeadStores",
    "security.insecureAPI.UncheckedReturn",
    "security.insecureAPI.getpw",
    "security.insecureAPI.gets",
    "security.insecureAPI.mkstemp",
    "security.insecureAPI.mktemp",
    "security.insecureAPI.rand",
    "security.insecureAPI.strcpy",
    "unix.API",
    "unix.Malloc",
    "unix.MallocSizeof",
    "unix.MismatchedDeallocator",
    "unix.cstring.BadSizeArg",
    "unix.cstring.NullArg",
)
DEFAULT_CHECKERS = (
    "core.CallAndMessage",
    "core.DivideZero",
    "core.NonNullParamChecker",
    "core.NullDereference",
    "core.UndefinedBinaryOperatorResult",
    "deadcode.DeadStores",
    "security.insecureAPI.UncheckedReturn",
    "unix.API",
    "unix.Malloc",
)

DEFAULT_LANGUAGE = "c++20"
DEFAULT_OPTIMIZATION = "O2"
DEFAULT_WARNINGS = "pedantic"
DEFAULT_AST_FORMAT = "dump"
DEFAULT_COMPILE_ONLY = True


def is_cxx(language: str | None) -> bool:
    """Return whether a language standard belongs to the C++ family.

    Example:
        ```python
        is_cxx("c++17")  # True
        ```
    """
    return (language or DEFAULT_LANGUAGE).startswith("c++")


def source_extension(language: str | None) -> str:
    """Return the source file extension for a language standard.

    Example:
        ```python
        source_extension("c11")  # "c"
        ```
    """
    return "cpp" if is_cxx(language) else "c"


def _arguments_mapping(arguments: Any, allowed: frozenset[str]) -> Mapping[str, Any]:
    """Check the boundary payload shape before building a request object.

    Example:
        ```python
        args = _arguments_mapping({"source_code": "int x;"}, frozenset({"source_code"}))
        ```
    """
    if not isinstance(arguments, Mapping):
        raise ValidationError("Tool arguments must be an object")
    if "source_code" not in arguments:
        raise ValidationError("Missing required field: source_code")
    unknown = sorted(str(key) for key in arguments if key not in allowed)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")
    return arguments


@dataclass(slots=True)
class CompilationRequest:
    """Raw compile request; fields are untrusted until validated.

    Example:
        ```python
        req = CompilationRequest(source_code="int main(){return 0;}", optimization="O0")
        ```
    """

    source_code: Any
    language: Any = None
    optimization: Any = None
    warnings: Any = None
    defines: Any = None
    includes: Any = None
    flags: Any = None
    compile_only: Any = None
    timeout: Any = None

    _FIELDS = frozenset(
        {
            "source_code",
            "language",
            "optimization",
            "warnings",
            "defines",
            "includes",
            "flags",
            "compile_only",
            "timeout",
        }
    )

    @classmethod
    def from_arguments(cls, arguments: Any) -> "CompilationRequest":
        """Build a request from snake-case tool arguments.

        Example:
            ```python
            req = CompilationRequest.from_arguments({"source_code": "int x;", "compile_only": True})
            ```
        """
        args = _arguments_mapping(arguments, cls._FIELDS)
        return cls(**{key: args[key] for key in args})


@dataclass(slots=True)
class AnalysisRequest:
    """Raw static-analysis request.

    Example:
        ```python
        req = AnalysisRequest(source_code="int f(int x){return 1/x;}", checkers=["core.DivideZero"])
        ```
    """

    source_code: Any
    language: Any = None
    checkers: Any = None
    defines: Any = None
    includes: Any = None

    _FIELDS = frozenset({"source_code", "language", "checkers", "defines", "includes"})

    @classmethod
    def from_arguments(cls, arguments: Any) -> "AnalysisRequest":
        """Build a request from snake-case tool arguments.

        Example:
            ```python
            req = AnalysisRequest.from_arguments({"source_code": "int x;"})
            ```
        """
        args = _arguments_mapping(arguments, cls._FIELDS)
        return cls(**{key: args[key] for key in args})


@dataclass(slots=True)
class ASTRequest:
    """Raw AST-dump request.

    Example:
        ```python
        req = ASTRequest(source_code="int x;", format="json")
        ```
    """

    source_code: Any
    language: Any = None
    format: Any = None

    _FIELDS = frozenset({"source_code", "language", "format"})

    @classmethod
    def from_arguments(cls, arguments: Any) -> "ASTRequest":
        """Build a request from snake-case tool arguments.

        Example:
            ```python
            req = ASTRequest.from_arguments({"source_code": "int x;", "format": "dump"})
            ```
        """
        args = _arguments_mapping(arguments, cls._FIELDS)
        return cls(**{key: args[key] for key in args})


@dataclass(frozen=True, slots=True)
class CompileOptions:
    """Validated compile options; ``None`` means the documented default applies.

    Example:
        ```python
        opts = CompileOptions(language="c11", optimization="O0")
        ```
    """

    language: str | None = None
    optimization: str | None = None
    warnings: str | None = None
    defines: tuple[str, ...] = ()
    includes: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()
    compile_only: bool | None = None
    timeout_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class AnalysisOptions:
    """Validated static-analysis options.

    Example:
        ```python
        opts = AnalysisOptions(checkers=("core.DivideZero",))
        ```
    """

    language: str | None = None
    checkers: tuple[str, ...] = ()
    defines: tuple[str, ...] = ()
    includes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ASTOptions:
    """Validated AST-dump options.

    Example:
        ```python
        opts = ASTOptions(format="json")
        ```
    """

    language: str | None = None
    format: str | None = None


@dataclass(frozen=True, slots=True)
class CompilationPayload:
    """Tool-specific result of a compile run.

    Example:
        ```python
        payload = CompilationPayload(True, 0, "", "", ())
        ```
    """

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    diagnostics: tuple[DiagnosticRecord, ...]
    truncated: bool = False
    toolchain_version: str = "clang (version unknown)"

    def to_dict(self) -> dict[str, Any]:
        """Render the payload with boundary field names.

        Example:
            ```python
            data = payload.to_dict()
            ```
        """
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "diagnostics": [record.to_dict() for record in self.diagnostics],
            "summary": summarize(self.diagnostics),
            "truncated": self.truncated,
            "toolchain_version": self.toolchain_version,
        }


@dataclass(frozen=True, slots=True)
class AnalysisPayload:
    """Tool-specific result of a static-analysis run.

    Example:
        ```python
        payload = AnalysisPayload(True, 0, ())
        ```
    """

    success: bool
    exit_code: int
    findings: tuple[DiagnosticRecord, ...]
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Render the payload with boundary field names.

        Example:
            ```python
            data = payload.to_dict()
            ```
        """
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "findings": [record.to_dict() for record in self.findings],
            "truncated": self.truncated,
        }


@dataclass(frozen=True, slots=True)
class ASTPayload:
    """Tool-specific result of an AST dump.

    Example:
        ```python
        payload = ASTPayload(True, 0, "TranslationUnitDecl <address>", "dump", ())
        ```
    """

    success: bool
    exit_code: int
    ast: str
    format: str
    diagnostics: tuple[DiagnosticRecord, ...] = ()
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Render the payload with boundary field names.

        Example:
            ```python
            data = payload.to_dict()
            ```
        """
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "ast": self.ast,
            "format": self.format,
            "diagnostics": [record.to_dict() for record in self.diagnostics],
            "truncated": self.truncated,
        }


Payload = CompilationPayload | AnalysisPayload | ASTPayload


@dataclass(frozen=True, slots=True)
class ToolSuccess:
    """Pipeline completed; the payload may still describe a failing tool run.

    Example:
        ```python
        response = ToolSuccess(tool="compile", elapsed_seconds=0.12, payload=payload)
        ```
    """

    tool: str
    elapsed_seconds: float
    payload: Payload
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        """Render the response with boundary field names.

        Example:
            ```python
            data = response.to_dict()
            ```
        """
        return {**self.payload.to_dict(), "elapsed_seconds": round(self.elapsed_seconds, 6)}


@dataclass(frozen=True, slots=True)
class ToolFailure:
    """Pipeline stopped early with a categorized, user-visible error.

    Example:
        ```python
        response = ToolFailure(tool="compile", kind=ErrorKind.TIMEOUT, message="Compilation timed out")
        ```
    """

    tool: str
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    ok: bool = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        """Render the response with boundary field names.

        Example:
            ```python
            data = response.to_dict()
            ```
        """
        error: dict[str, Any] = {"code": self.kind.value, "message": self.message}
        if self.details:
            error["details"] = dict(self.details)
        return {"success": False, "error": error}


Response = ToolSuccess | ToolFailure
