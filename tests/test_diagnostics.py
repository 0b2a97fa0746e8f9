from __future__ import annotations

from safe_cc_runner.diagnostics import (
    DiagnosticRecord,
    Severity,
    categorize_checker,
    extract_toolchain_version,
    parse_diagnostics,
    parse_findings,
    summarize,
)

_STDERR = """\
source.c:1:13: error: use of undeclared identifier 'x'
    1 | int main(){ x = 1; }
      |             ^
source.c:4:1: warning: non-void function does not return a value [-Wreturn-type]
source.c:7: note: previous definition is here
source.c:9:2: fatal error: 'missing.h' file not found
2 errors generated.
"""


def test_parse_diagnostics_keeps_emission_order_and_drops_noise() -> None:
    records = parse_diagnostics(_STDERR)
    assert [(r.severity, r.line, r.column) for r in records] == [
        (Severity.ERROR, 1, 13),
        (Severity.WARNING, 4, 1),
        (Severity.NOTE, 7, 0),
        (Severity.ERROR, 9, 2),
    ]
    assert records[0].message == "use of undeclared identifier 'x'"
    assert records[3].message == "'missing.h' file not found"


def test_parse_diagnostics_is_idempotent() -> None:
    assert parse_diagnostics(_STDERR) == parse_diagnostics(_STDERR)


def test_parse_diagnostics_on_empty_text() -> None:
    assert parse_diagnostics("") == []


def test_parse_findings_attaches_checker_and_category() -> None:
    text = (
        "source.c:4:14: warning: Division by zero [core.DivideZero]\n"
        "source.c:9:3: warning: Potential leak of memory pointed to by 'p' [unix.Malloc]\n"
        "source.c:2:1: warning: Out of bound access [alpha.security.ArrayBoundV2]\n"
        "source.c:3:5: warning: something odd\n"
        "1 warning generated."
    )
    findings = parse_findings(text)
    assert [(f.checker, f.category) for f in findings] == [
        ("core.DivideZero", "core"),
        ("unix.Malloc", "unix"),
        ("alpha.security.ArrayBoundV2", "experimental"),
        ("unknown", "general"),
    ]
    assert findings[0].message == "Division by zero"
    assert findings[3].message == "something odd"


def test_categorize_checker_fallbacks() -> None:
    assert categorize_checker("deadcode.DeadStores") == "deadcode"
    assert categorize_checker("security.insecureAPI.gets") == "security"
    assert categorize_checker("optin.performance.Padding") == "other"


def test_summarize_counts_every_severity() -> None:
    counts = summarize(parse_diagnostics(_STDERR))
    assert counts == {"error": 2, "warning": 1, "note": 1}


def test_record_to_dict_includes_checker_only_for_findings() -> None:
    plain = DiagnosticRecord(Severity.WARNING, 2, 3, "unused")
    finding = DiagnosticRecord(Severity.WARNING, 2, 3, "leak", checker="unix.Malloc", category="unix")
    assert plain.to_dict() == {"severity": "warning", "line": 2, "column": 3, "message": "unused"}
    assert finding.to_dict()["checker"] == "unix.Malloc"
    assert finding.to_dict()["category"] == "unix"


def test_extract_toolchain_version() -> None:
    assert extract_toolchain_version("", "clang version 17.0.6 (Debian)\nTarget: x86_64") == "clang version 17.0.6"
    assert extract_toolchain_version("no version here") == "clang (version unknown)"
