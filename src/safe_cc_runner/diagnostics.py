from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

UNKNOWN_CHECKER = "unknown"
GENERAL_CATEGORY = "general"

_SEVERITIES = r"fatal error|error|warning|note"
_WITH_COLUMN = re.compile(
    rf"^(?P<location>.+?):(?P<line>\d+):(?P<column>\d+):\s*(?P<severity>{_SEVERITIES}):\s*(?P<message>.+)$"
)
_WITHOUT_COLUMN = re.compile(
    rf"^(?P<location>.+?):(?P<line>\d+):\s*(?P<severity>{_SEVERITIES}):\s*(?P<message>.+)$"
)
_TRAILING_CHECKER = re.compile(r"^(?P<message>.*?)\s*\[(?P<checker>[A-Za-z][\w.-]*)\]$")
_VERSION = re.compile(r"clang version ([0-9]+\.[0-9]+\.[0-9]+)")

_CATEGORY_PREFIXES = (
    ("core.", "core"),
    ("security.", "security"),
    ("unix.", "unix"),
    ("deadcode.", "deadcode"),
    ("alpha.", "experimental"),
)


class Severity(str, Enum):
    """Diagnostic severity as reported by Clang.

    Example:
        ```python
        sev = Severity("warning")
        ```
    """

    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"


@dataclass(frozen=True, slots=True)
class DiagnosticRecord:
    """One parsed compiler diagnostic or analyzer finding.

    Example:
        ```python
        record = DiagnosticRecord(Severity.ERROR, 3, 5, "use of undeclared identifier 'x'")
        ```
    """

    severity: Severity
    line: int
    column: int
    message: str
    checker: str | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Render the record with boundary field names.

        Example:
            ```python
            payload = record.to_dict()
            ```
        """
        data: dict[str, Any] = {
            "severity": self.severity.value,
            "line": self.line,
            "column": self.column,
            "message": self.message,
        }
        if self.checker is not None:
            data["checker"] = self.checker
            data["category"] = self.category
        return data


def _match_line(line: str) -> re.Match[str] | None:
    """Match a diagnostic line with or without a column component.

    Example:
        ```python
        match = _match_line("source.c:3:5: error: expected ';'")
        ```
    """
    return _WITH_COLUMN.match(line) or _WITHOUT_COLUMN.match(line)


def _severity(raw: str) -> Severity:
    """Map Clang severity text onto the three record severities.

    Example:
        ```python
        sev = _severity("fatal error")
        ```
    """
    if raw == "fatal error":
        return Severity.ERROR
    return Severity(raw)


def categorize_checker(checker: str) -> str:
    """Derive a finding category from the checker's leading namespace.

    Example:
        ```python
        categorize_checker("alpha.security.ArrayBound")  # "experimental"
        ```
    """
    for prefix, category in _CATEGORY_PREFIXES:
        if checker.startswith(prefix):
            return category
    return "other"


def parse_diagnostics(text: str) -> list[DiagnosticRecord]:
    """Parse compiler diagnostics in emission order, dropping unparseable lines.

    Example:
        ```python
        records = parse_diagnostics("source.c:1:13: error: use of undeclared identifier 'x'")
        ```
    """
    records: list[DiagnosticRecord] = []
    for raw_line in text.splitlines():
        match = _match_line(raw_line.strip())
        if match is None:
            continue
        groups = match.groupdict()
        records.append(
            DiagnosticRecord(
                severity=_severity(groups["severity"]),
                line=int(groups["line"]),
                column=int(groups.get("column") or 0),
                message=groups["message"].strip(),
            )
        )
    return records


def parse_findings(text: str) -> list[DiagnosticRecord]:
    """Parse static analyzer output, attaching checker ids and categories.

    Example:
        ```python
        findings = parse_findings("source.c:4:9: warning: Division by zero [core.DivideZero]")
        ```
    """
    findings: list[DiagnosticRecord] = []
    for record in parse_diagnostics(text):
        tagged = _TRAILING_CHECKER.match(record.message)
        if tagged is None:
            checker, category, message = UNKNOWN_CHECKER, GENERAL_CATEGORY, record.message
        else:
            checker = tagged.group("checker")
            category = categorize_checker(checker)
            message = tagged.group("message").strip()
        findings.append(
            DiagnosticRecord(
                severity=record.severity,
                line=record.line,
                column=record.column,
                message=message,
                checker=checker,
                category=category,
            )
        )
    return findings


def summarize(records: Iterable[DiagnosticRecord]) -> dict[str, int]:
    """Count records per severity.

    Example:
        ```python
        counts = summarize(records)  # {"error": 1, "warning": 0, "note": 0}
        ```
    """
    counts = {severity.value: 0 for severity in Severity}
    for record in records:
        counts[record.severity.value] += 1
    return counts


def extract_toolchain_version(*outputs: str) -> str:
    """Pull the Clang version from raw (unsanitized) tool output.

    Example:
        ```python
        extract_toolchain_version("clang version 17.0.6\\nTarget: x86_64")  # "clang version 17.0.6"
        ```
    """
    for output in outputs:
        match = _VERSION.search(output)
        if match:
            return f"clang version {match.group(1)}"
    return "clang (version unknown)"
