from __future__ import annotations

import pytest

from safe_cc_runner.commands import (
    Toolchain,
    build_analysis_command,
    build_ast_command,
    build_compile_command,
)
from safe_cc_runner.models import DEFAULT_CHECKERS, AnalysisOptions, ASTOptions, CompileOptions

_SOURCE = "/workspace/source.cpp"
_OUT = "/workspace"


def test_compile_command_defaults() -> None:
    assert build_compile_command(CompileOptions(), _SOURCE, _OUT) == [
        "clang++",
        "-std=c++20",
        "-O2",
        "-Wall",
        "-Wextra",
        "-Wpedantic",
        "-c",
        "-o",
        "/workspace/main.o",
        _SOURCE,
    ]


def test_compile_command_orders_every_option_and_keeps_source_last() -> None:
    options = CompileOptions(
        language="c11",
        optimization="O0",
        warnings="error",
        defines=("DEBUG", "LEVEL=2"),
        includes=("include",),
        flags=("-g", "-fno-strict-aliasing"),
        compile_only=False,
    )
    argv = build_compile_command(options, "/w/source.c", "/w")
    assert argv == [
        "clang",
        "-std=c11",
        "-O0",
        "-Wall",
        "-Wextra",
        "-Werror",
        "-DDEBUG",
        "-DLEVEL=2",
        "-Iinclude",
        "-g",
        "-fno-strict-aliasing",
        "-o",
        "/w/main",
        "/w/source.c",
    ]


@pytest.mark.parametrize(
    ("warnings", "expected"),
    [
        ("none", ["-w"]),
        ("all", ["-Wall"]),
        ("extra", ["-Wall", "-Wextra"]),
    ],
)
def test_warning_groups(warnings: str, expected: list[str]) -> None:
    argv = build_compile_command(CompileOptions(warnings=warnings), _SOURCE, _OUT)
    assert argv[3 : 3 + len(expected)] == expected


def test_output_path_always_comes_from_managed_directory() -> None:
    argv = build_compile_command(CompileOptions(flags=("-g",)), _SOURCE, "/managed/out")
    output_index = argv.index("-o")
    assert argv[output_index + 1].startswith("/managed/out/")
    assert argv.count("-o") == 1
    assert argv[-1] == _SOURCE


def test_toolchain_drivers_are_configurable() -> None:
    toolchain = Toolchain(c_compiler="clang-17", cxx_compiler="clang++-17")
    assert build_compile_command(CompileOptions(language="c99"), "/w/source.c", "/w", toolchain)[0] == "clang-17"
    assert build_compile_command(CompileOptions(), _SOURCE, _OUT, toolchain)[0] == "clang++-17"


def test_analysis_command_uses_default_checkers_when_none_given() -> None:
    argv = build_analysis_command(AnalysisOptions(language="c11"), "/w/source.c", "/w")
    assert argv[:5] == ["clang", "--analyze", "-x", "c", "-std=c11"]
    enabled = [arg.split("=", 1)[1] for arg in argv if arg.startswith("-analyzer-checker=")]
    assert enabled == list(DEFAULT_CHECKERS)
    assert argv[-4:] == ["-w", "-o", "/w/analysis.plist", "/w/source.c"]
    assert "-analyzer-output=text" in argv


def test_analysis_command_with_explicit_checkers_and_preprocessor() -> None:
    options = AnalysisOptions(checkers=("core.DivideZero",), defines=("X",), includes=("inc",))
    argv = build_analysis_command(options, _SOURCE, _OUT)
    assert argv[2:5] == ["-x", "c++", "-std=c++20"]
    assert argv[5:7] == ["-Xanalyzer", "-analyzer-checker=core.DivideZero"]
    assert argv[7:9] == ["-Xanalyzer", "-analyzer-output=text"]
    assert argv[9:11] == ["-DX", "-Iinc"]


@pytest.mark.parametrize(
    ("fmt", "mode"),
    [(None, "-ast-dump"), ("dump", "-ast-dump"), ("json", "-ast-dump=json"), ("graphviz", "-ast-view")],
)
def test_ast_command_modes(fmt: str | None, mode: str) -> None:
    argv = build_ast_command(ASTOptions(language="c17", format=fmt), "/w/source.c")
    assert argv == ["clang", "-x", "c", "-std=c17", "-Xclang", mode, "-fsyntax-only", "-w", "/w/source.c"]
