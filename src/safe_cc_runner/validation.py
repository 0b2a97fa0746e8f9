from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .models import (
    AST_FORMATS,
    CHECKER_CATALOG,
    LANGUAGE_STANDARDS,
    OPTIMIZATION_LEVELS,
    WARNING_LEVELS,
    AnalysisOptions,
    AnalysisRequest,
    ASTOptions,
    ASTRequest,
    CompilationRequest,
    CompileOptions,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_SOURCE_BYTES = 1024 * 1024
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 60

_DEFINE_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:=[A-Za-z0-9_\"'.-]*)?")
_INCLUDE_PATTERN = re.compile(r"[A-Za-z0-9_/-]+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_RISKY_PATTERNS = (
    ("system include", re.compile(r"#include\s*<\s*sys/.*>", re.IGNORECASE)),
    ("unistd include", re.compile(r"#include\s*<\s*unistd\.h\s*>", re.IGNORECASE)),
    ("system call", re.compile(r"system\s*\(", re.IGNORECASE)),
    ("exec call", re.compile(r"exec\s*[lv]\s*\(", re.IGNORECASE)),
    ("fork call", re.compile(r"fork\s*\(", re.IGNORECASE)),
    ("inline assembly", re.compile(r"__asm__", re.IGNORECASE)),
    ("volatile assembly", re.compile(r"asm\s+volatile", re.IGNORECASE)),
)

ALLOWED_FLAGS = frozenset(
    {
        "-Wall",
        "-Wextra",
        "-Wpedantic",
        "-Werror",
        "-g",
        "-O0",
        "-O1",
        "-O2",
        "-O3",
        "-Os",
        "-Oz",
        "-Ofast",
        "-std=c89",
        "-std=c99",
        "-std=c11",
        "-std=c17",
        "-std=c23",
        "-std=c++98",
        "-std=c++03",
        "-std=c++11",
        "-std=c++14",
        "-std=c++17",
        "-std=c++20",
        "-std=c++23",
        "-fno-exceptions",
        "-fno-rtti",
        "-fPIC",
        "-march=native",
        "-mtune=native",
        "-ffast-math",
        "-fno-strict-aliasing",
        "-pthread",
        "-fopenmp",
    }
)
ALLOWED_FLAG_PREFIXES = ("-D", "-I", "-L", "-l", "-W", "-f", "-m")
# Driver pass-through families and file-loading options never pass the prefix rule.
PASS_THROUGH_PREFIXES = ("-Wl,", "-Wa,", "-Wp,", "-fplugin", "-fpass-plugin")
_PATH_IN_SUFFIX = re.compile(r"[/\\~]|\.\.")


@dataclass(frozen=True, slots=True)
class Accepted(Generic[T]):
    """Validation passed; ``value`` is the caller's value, unmodified.

    Example:
        ```python
        outcome = Accepted("c++17")
        ```
    """

    value: T
    ok: bool = True


@dataclass(frozen=True, slots=True)
class Rejected:
    """Validation failed with one specific reason.

    Example:
        ```python
        outcome = Rejected("Source code cannot be empty")
        ```
    """

    reason: str
    ok: bool = False


ValidationOutcome = Accepted[Any] | Rejected


@dataclass(frozen=True, slots=True)
class ExactFlag:
    """Flag matched the fixed allow-list verbatim.

    Example:
        ```python
        rule = ExactFlag("-Wall")
        ```
    """

    flag: str


@dataclass(frozen=True, slots=True)
class DefineFlag:
    """``-D`` flag whose suffix is re-checked by the define rule.

    Example:
        ```python
        rule = DefineFlag("-DDEBUG=1", "DEBUG=1")
        ```
    """

    flag: str
    define: str


@dataclass(frozen=True, slots=True)
class IncludeFlag:
    """``-I`` flag whose suffix is re-checked by the include rule.

    Example:
        ```python
        rule = IncludeFlag("-Iinclude", "include")
        ```
    """

    flag: str
    path: str


@dataclass(frozen=True, slots=True)
class PrefixedFlag:
    """Flag carrying one of the remaining allowed prefixes.

    Example:
        ```python
        rule = PrefixedFlag("-fno-inline", "-f")
        ```
    """

    flag: str
    prefix: str


FlagRule = ExactFlag | DefineFlag | IncludeFlag | PrefixedFlag


def find_risky_patterns(source: str) -> list[str]:
    """Return labels of advisory risk patterns present in the source.

    Example:
        ```python
        find_risky_patterns('int main(){ system("ls"); }')  # ["system call"]
        ```
    """
    return [label for label, pattern in _RISKY_PATTERNS if pattern.search(source)]


def validate_source(source: Any) -> ValidationOutcome:
    """Check source text type and size; risky patterns are only logged.

    Example:
        ```python
        outcome = validate_source("int main(){return 0;}")
        ```
    """
    if not isinstance(source, str):
        return Rejected("Source code must be a string")
    if len(source) == 0:
        return Rejected("Source code cannot be empty")
    try:
        encoded = source.encode("utf-8")
    except UnicodeEncodeError:
        return Rejected("Source code must be valid UTF-8 text")
    if len(encoded) > MAX_SOURCE_BYTES:
        return Rejected(f"Source code exceeds maximum size of {MAX_SOURCE_BYTES} bytes")
    risky = find_risky_patterns(source)
    if risky:
        logger.warning("Potentially dangerous code pattern detected: %s", ", ".join(risky))
    return Accepted(source)


def _validate_choice(value: Any, choices: tuple[str, ...], label: str) -> ValidationOutcome:
    """Accept a value only if it is one of a fixed set of strings.

    Example:
        ```python
        outcome = _validate_choice("O2", OPTIMIZATION_LEVELS, "optimization level")
        ```
    """
    if not isinstance(value, str) or value not in choices:
        return Rejected(f"Invalid {label} {value!r}. Must be one of: {', '.join(choices)}")
    return Accepted(value)


def validate_language(language: Any) -> ValidationOutcome:
    """Accept only known C and C++ language standards.

    Example:
        ```python
        outcome = validate_language("c++20")
        ```
    """
    return _validate_choice(language, LANGUAGE_STANDARDS, "language standard")


def validate_optimization(level: Any) -> ValidationOutcome:
    """Accept only known optimization levels.

    Example:
        ```python
        outcome = validate_optimization("Os")
        ```
    """
    return _validate_choice(level, OPTIMIZATION_LEVELS, "optimization level")


def validate_warnings(policy: Any) -> ValidationOutcome:
    """Accept only known warning policies.

    Example:
        ```python
        outcome = validate_warnings("pedantic")
        ```
    """
    return _validate_choice(policy, WARNING_LEVELS, "warning level")


def validate_ast_format(fmt: Any) -> ValidationOutcome:
    """Accept only known AST output formats.

    Example:
        ```python
        outcome = validate_ast_format("json")
        ```
    """
    return _validate_choice(fmt, AST_FORMATS, "AST format")


def _string_list(values: Any, label: str) -> list[str] | Rejected:
    """Check that a field is a list of strings.

    Example:
        ```python
        items = _string_list(["A", "B=1"], "Defines")
        ```
    """
    if not isinstance(values, (list, tuple)):
        return Rejected(f"{label} must be a list of strings")
    for item in values:
        if not isinstance(item, str):
            return Rejected(f"All {label.lower()} must be strings")
    return list(values)


def validate_defines(defines: Any) -> ValidationOutcome:
    """Accept a batch of ``MACRO`` / ``MACRO=value`` entries, all or nothing.

    Example:
        ```python
        outcome = validate_defines(["DEBUG", "LEVEL=2"])
        ```
    """
    items = _string_list(defines, "Defines")
    if isinstance(items, Rejected):
        return items
    for define in items:
        if not _DEFINE_PATTERN.fullmatch(define):
            return Rejected(f"Invalid define format: {define!r}. Must be MACRO or MACRO=value")
    return Accepted(defines)


def _include_reason(include: str) -> str | None:
    """Return why one include path is unacceptable, or None.

    Example:
        ```python
        _include_reason("../etc")  # traversal message
        ```
    """
    if ".." in include or include.startswith(("~", "/", "\\")):
        return (
            f"Invalid include path {include!r}: directory traversal is not allowed "
            "(no '..', leading '~' or absolute paths)"
        )
    if not _INCLUDE_PATTERN.fullmatch(include):
        return f"Invalid include path format: {include!r}. Allowed characters are A-Z a-z 0-9 _ / -"
    return None


def validate_includes(includes: Any) -> ValidationOutcome:
    """Accept a batch of relative include directories, all or nothing.

    Example:
        ```python
        outcome = validate_includes(["include", "third_party/lib"])
        ```
    """
    items = _string_list(includes, "Includes")
    if isinstance(items, Rejected):
        return items
    for include in items:
        reason = _include_reason(include)
        if reason is not None:
            return Rejected(reason)
    return Accepted(includes)


def classify_flag(flag: str) -> FlagRule | None:
    """Map a flag onto the rule variant that governs it, or None if none does.

    Example:
        ```python
        classify_flag("-DNDEBUG")  # DefineFlag("-DNDEBUG", "NDEBUG")
        ```
    """
    if flag in ALLOWED_FLAGS:
        return ExactFlag(flag)
    if flag.startswith("-D"):
        return DefineFlag(flag, flag[2:])
    if flag.startswith("-I"):
        return IncludeFlag(flag, flag[2:])
    for prefix in ALLOWED_FLAG_PREFIXES:
        if flag.startswith(prefix):
            return PrefixedFlag(flag, prefix)
    return None


def _flag_reason(flag: str) -> str | None:
    """Return why one compiler flag is unacceptable, or None.

    Example:
        ```python
        _flag_reason("-o")  # "Disallowed compiler flag: '-o'"
        ```
    """
    if _CONTROL_CHARS.search(flag):
        return f"Disallowed compiler flag: {flag!r} contains control characters"
    rule = classify_flag(flag)
    if rule is None:
        return f"Disallowed compiler flag: {flag!r}"
    if isinstance(rule, DefineFlag):
        outcome = validate_defines([rule.define])
        if isinstance(outcome, Rejected):
            return f"Invalid define flag {flag!r}: {outcome.reason}"
    elif isinstance(rule, IncludeFlag):
        if not rule.path:
            return f"Invalid include flag {flag!r}: a directory must follow -I"
        reason = _include_reason(rule.path)
        if reason is not None:
            return f"Invalid include flag {flag!r}: {reason}"
    elif isinstance(rule, PrefixedFlag):
        if flag == rule.prefix:
            return f"Disallowed compiler flag: {flag!r} requires an attached value"
        if flag.startswith(PASS_THROUGH_PREFIXES):
            return f"Disallowed compiler flag: {flag!r} forwards arguments past the allow-list"
        if _PATH_IN_SUFFIX.search(flag[len(rule.prefix):]):
            return f"Disallowed compiler flag: {flag!r} must not carry a path"
    return None


def validate_flags(flags: Any) -> ValidationOutcome:
    """Accept extra compiler flags through the default-deny allow-list.

    Example:
        ```python
        outcome = validate_flags(["-g", "-fno-exceptions", "-DTRACE"])
        ```
    """
    items = _string_list(flags, "Flags")
    if isinstance(items, Rejected):
        return items
    for flag in items:
        reason = _flag_reason(flag)
        if reason is not None:
            return Rejected(reason)
    return Accepted(flags)


def validate_timeout(timeout: Any) -> ValidationOutcome:
    """Accept a numeric timeout inside the inclusive 1..60 second range.

    Example:
        ```python
        outcome = validate_timeout(10)
        ```
    """
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        return Rejected("Timeout must be a number")
    if math.isnan(timeout) or not MIN_TIMEOUT_SECONDS <= timeout <= MAX_TIMEOUT_SECONDS:
        return Rejected(
            f"Timeout must be between {MIN_TIMEOUT_SECONDS} and {MAX_TIMEOUT_SECONDS} seconds"
        )
    return Accepted(timeout)


def validate_checkers(checkers: Any) -> ValidationOutcome:
    """Accept analyzer checker ids that belong to the fixed catalog.

    Example:
        ```python
        outcome = validate_checkers(["core.DivideZero", "unix.Malloc"])
        ```
    """
    items = _string_list(checkers, "Checkers")
    if isinstance(items, Rejected):
        return items
    for checker in items:
        if checker not in CHECKER_CATALOG:
            return Rejected(
                f"Invalid checker {checker!r}. Must be one of: {', '.join(CHECKER_CATALOG)}"
            )
    return Accepted(checkers)


def validate_compile_only(value: Any) -> ValidationOutcome:
    """Accept only a real boolean for the link-or-object switch.

    Example:
        ```python
        outcome = validate_compile_only(True)
        ```
    """
    if not isinstance(value, bool):
        return Rejected("compile_only must be a boolean")
    return Accepted(value)


def _first_rejection(*checks: tuple[Any, Any]) -> Rejected | None:
    """Run validators in order over present fields and stop at the first rejection.

    Example:
        ```python
        rejected = _first_rejection((validate_language, "c++17"), (validate_timeout, None))
        ```
    """
    for validator, value in checks:
        if value is None:
            continue
        outcome = validator(value)
        if isinstance(outcome, Rejected):
            return outcome
    return None


def validate_compilation(request: CompilationRequest) -> Accepted[CompileOptions] | Rejected:
    """Validate a compile request in the fixed field order.

    Example:
        ```python
        outcome = validate_compilation(CompilationRequest(source_code="int main(){}"))
        ```
    """
    source = validate_source(request.source_code)
    if isinstance(source, Rejected):
        return source
    rejected = _first_rejection(
        (validate_language, request.language),
        (validate_optimization, request.optimization),
        (validate_warnings, request.warnings),
        (validate_defines, request.defines),
        (validate_includes, request.includes),
        (validate_compile_only, request.compile_only),
        (validate_flags, request.flags),
        (validate_timeout, request.timeout),
    )
    if rejected is not None:
        return rejected
    return Accepted(
        CompileOptions(
            language=request.language,
            optimization=request.optimization,
            warnings=request.warnings,
            defines=tuple(request.defines or ()),
            includes=tuple(request.includes or ()),
            flags=tuple(request.flags or ()),
            compile_only=request.compile_only,
            timeout_seconds=request.timeout,
        )
    )


def validate_analysis(request: AnalysisRequest) -> Accepted[AnalysisOptions] | Rejected:
    """Validate a static-analysis request in the fixed field order.

    Example:
        ```python
        outcome = validate_analysis(AnalysisRequest(source_code="int x;"))
        ```
    """
    source = validate_source(request.source_code)
    if isinstance(source, Rejected):
        return source
    rejected = _first_rejection(
        (validate_language, request.language),
        (validate_checkers, request.checkers),
        (validate_defines, request.defines),
        (validate_includes, request.includes),
    )
    if rejected is not None:
        return rejected
    return Accepted(
        AnalysisOptions(
            language=request.language,
            checkers=tuple(request.checkers or ()),
            defines=tuple(request.defines or ()),
            includes=tuple(request.includes or ()),
        )
    )


def validate_ast(request: ASTRequest) -> Accepted[ASTOptions] | Rejected:
    """Validate an AST-dump request in the fixed field order.

    Example:
        ```python
        outcome = validate_ast(ASTRequest(source_code="int x;", format="json"))
        ```
    """
    source = validate_source(request.source_code)
    if isinstance(source, Rejected):
        return source
    rejected = _first_rejection(
        (validate_language, request.language),
        (validate_ast_format, request.format),
    )
    if rejected is not None:
        return rejected
    return Accepted(ASTOptions(language=request.language, format=request.format))
