from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

from .policy import DEFAULT_MAX_OUTPUT_BYTES

CONTAINER_WORKDIR = "/workspace"
TRUNCATION_MARKER = "\n... (output truncated)"

_SOURCE_EXTENSIONS = r"(?:c|cc|cpp|cxx|h|hh|hpp|hxx|inc|ipp)"
_PATH_START = r"(?<![\w./-])"

Replacement = str | Callable[[re.Match[str]], str]


@dataclass(frozen=True, slots=True)
class ScrubRule:
    """One (pattern, replacement) step of the sanitizer chain.

    Example:
        ```python
        rule = ScrubRule("address", re.compile(r"0x[0-9a-f]{6,}"), "<address>")
        ```
    """

    name: str
    pattern: re.Pattern[str]
    replacement: Replacement

    def apply(self, text: str) -> str:
        """Apply this rule to text.

        Example:
            ```python
            cleaned = rule.apply("at 0xdeadbeef")
            ```
        """
        return self.pattern.sub(self.replacement, text)


def _strip_work_root(match: re.Match[str]) -> str:
    """Drop the working-root prefix, keeping the request-relative remainder.

    Example:
        ```python
        # "/workspace/source.c" -> "source.c", bare "/workspace" -> "."
        ```
    """
    return "" if match.group(0).endswith("/") else "."


def _work_root_rule(root: str) -> ScrubRule:
    """Build the rule collapsing paths under one working root.

    Example:
        ```python
        rule = _work_root_rule("/tmp/safe-cc-runner")
        ```
    """
    normalized = root.rstrip("/") or "/"
    pattern = re.compile(
        _PATH_START + re.escape(normalized) + r"(?:/run-[0-9a-f]{32})?(?:/|(?![\w.-]))"
    )
    return ScrubRule(f"work_root:{normalized}", pattern, _strip_work_root)


_STATIC_RULES = (
    ScrubRule(
        "source_path",
        re.compile(_PATH_START + rf"/(?:[\w.+-]+/)+([\w.+-]+\.{_SOURCE_EXTENSIONS})\b"),
        r"\1",
    ),
    ScrubRule(
        "numeric_id",
        re.compile(r"(?i)\b(uid|gid|pid|user id|group id|process)(\s*[:=]\s*|\s+)\d+\b"),
        r"\1\2<id>",
    ),
    ScrubRule("container_id", re.compile(r"(?i)\bcontainer\s+[0-9a-f]{12,}\b"), "container <id>"),
    ScrubRule("container_name", re.compile(r"\bsafe-cc-runner-[0-9a-f]{12}\b"), "<container>"),
    ScrubRule(
        "system_lib",
        re.compile(_PATH_START + r"/(?:usr/(?:local/)?)?lib(?:32|64|exec)?/[\w.+/-]*"),
        "<system_lib>",
    ),
    ScrubRule(
        "system_include",
        re.compile(_PATH_START + r"/(?:[\w.+-]+/)*include/[\w.+/-]*"),
        "<system_include>",
    ),
    ScrubRule("address", re.compile(r"\b0x[0-9a-fA-F]{6,}\b"), "<address>"),
    ScrubRule(
        "timestamp",
        re.compile(
            r"\b\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?\b"
        ),
        "<timestamp>",
    ),
    ScrubRule(
        "toolchain_version",
        re.compile(r"\b(clang|gcc) version [0-9]+\.[0-9]+\.[0-9]+[^\n]*"),
        r"\1 version <version>",
    ),
    ScrubRule("target", re.compile(r"Target: [^\n]+"), "Target: <target>"),
    ScrubRule("thread_model", re.compile(r"Thread model: [^\n]+"), "Thread model: <model>"),
    ScrubRule("installed_dir", re.compile(r"InstalledDir: [^\n]+"), "InstalledDir: <path>"),
    ScrubRule("blank_lines", re.compile(r"\n{3,}"), "\n\n"),
)


def build_rules(work_roots: Iterable[str] = ()) -> tuple[ScrubRule, ...]:
    """Return the full ordered rule chain for the given working roots.

    Longer roots come first so a nested root is never half-collapsed. The chain
    is best-effort scrubbing of incidental host details, not a redaction
    guarantee; containment comes from the sandbox.

    Example:
        ```python
        rules = build_rules(["/tmp/safe-cc-runner"])
        ```
    """
    roots = sorted({*work_roots, CONTAINER_WORKDIR}, key=len, reverse=True)
    return tuple(_work_root_rule(root) for root in roots if root) + _STATIC_RULES


def truncate_text(text: str, max_bytes: int = DEFAULT_MAX_OUTPUT_BYTES) -> tuple[str, bool]:
    """Cap text at a UTF-8 byte budget, appending a marker when cut.

    Example:
        ```python
        text, truncated = truncate_text("x" * 5000, max_bytes=1024)
        ```
    """
    encoded = text.encode("utf-8", errors="replace")
    if len(encoded) <= max_bytes:
        return text, False
    marker = TRUNCATION_MARKER.encode("utf-8")
    keep = encoded[: max(0, max_bytes - len(marker))]
    return keep.decode("utf-8", errors="ignore") + TRUNCATION_MARKER, True


def scrub_output(
    text: str,
    work_roots: Iterable[str] = (),
    max_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
) -> tuple[str, bool]:
    """Run the scrub chain over captured text and report whether it was cut.

    Example:
        ```python
        clean, truncated = scrub_output(stderr, ["/tmp/safe-cc-runner"], max_bytes=4096)
        ```
    """
    if not text:
        return "", False
    sanitized = text
    for rule in build_rules(work_roots):
        sanitized = rule.apply(sanitized)
    return truncate_text(sanitized.strip(), max_bytes)


def sanitize_output(
    text: str,
    work_roots: Iterable[str] = (),
    max_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
) -> str:
    """Run the scrub chain over captured text, then enforce the byte ceiling.

    Example:
        ```python
        clean = sanitize_output("/tmp/safe-cc-runner/run-<hex>/source.c:1:1: error: x", ["/tmp/safe-cc-runner"])
        ```
    """
    sanitized, _ = scrub_output(text, work_roots, max_bytes)
    return sanitized
