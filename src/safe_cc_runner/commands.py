from __future__ import annotations

import posixpath
from dataclasses import dataclass

from .models import (
    DEFAULT_AST_FORMAT,
    DEFAULT_CHECKERS,
    DEFAULT_COMPILE_ONLY,
    DEFAULT_LANGUAGE,
    DEFAULT_OPTIMIZATION,
    DEFAULT_WARNINGS,
    AnalysisOptions,
    ASTOptions,
    CompileOptions,
    is_cxx,
)

WARNING_FLAG_GROUPS = {
    "none": ("-w",),
    "all": ("-Wall",),
    "extra": ("-Wall", "-Wextra"),
    "pedantic": ("-Wall", "-Wextra", "-Wpedantic"),
    "error": ("-Wall", "-Wextra", "-Werror"),
}
AST_MODE_FLAGS = {
    "json": "-ast-dump=json",
    "dump": "-ast-dump",
    "graphviz": "-ast-view",
}
OBJECT_NAME = "main.o"
BINARY_NAME = "main"
ANALYSIS_REPORT_NAME = "analysis.plist"


@dataclass(frozen=True, slots=True)
class Toolchain:
    """Names of the native driver binaries invoked inside the sandbox.

    Example:
        ```python
        toolchain = Toolchain(c_compiler="clang-17", cxx_compiler="clang++-17")
        ```
    """

    c_compiler: str = "clang"
    cxx_compiler: str = "clang++"

    def driver_for(self, language: str | None) -> str:
        """Pick the C or C++ driver for a language standard.

        Example:
            ```python
            Toolchain().driver_for("c++17")  # "clang++"
            ```
        """
        return self.cxx_compiler if is_cxx(language) else self.c_compiler


DEFAULT_TOOLCHAIN = Toolchain()


def _language_flags(language: str | None) -> list[str]:
    """Return explicit ``-x``/``-std`` flags for the effective language.

    Example:
        ```python
        _language_flags("c11")  # ["-x", "c", "-std=c11"]
        ```
    """
    effective = language or DEFAULT_LANGUAGE
    return ["-x", "c++" if is_cxx(effective) else "c", f"-std={effective}"]


def _preprocessor_flags(defines: tuple[str, ...], includes: tuple[str, ...]) -> list[str]:
    """Render validated defines and include paths as driver flags.

    Example:
        ```python
        _preprocessor_flags(("DEBUG",), ("include",))  # ["-DDEBUG", "-Iinclude"]
        ```
    """
    return [f"-D{define}" for define in defines] + [f"-I{include}" for include in includes]


def build_compile_command(
    options: CompileOptions,
    source_file: str,
    output_dir: str,
    toolchain: Toolchain = DEFAULT_TOOLCHAIN,
) -> list[str]:
    """Build the compiler argv; the output path and source position are fixed.

    Example:
        ```python
        argv = build_compile_command(CompileOptions(), "/workspace/source.cpp", "/workspace")
        ```
    """
    language = options.language or DEFAULT_LANGUAGE
    compile_only = DEFAULT_COMPILE_ONLY if options.compile_only is None else options.compile_only
    command = [toolchain.driver_for(language), f"-std={language}"]
    command.append(f"-{options.optimization or DEFAULT_OPTIMIZATION}")
    command.extend(WARNING_FLAG_GROUPS[options.warnings or DEFAULT_WARNINGS])
    command.extend(_preprocessor_flags(options.defines, options.includes))
    command.extend(options.flags)
    if compile_only:
        command.append("-c")
    output_name = OBJECT_NAME if compile_only else BINARY_NAME
    command.extend(["-o", posixpath.join(output_dir, output_name)])
    command.append(source_file)
    return command


def build_analysis_command(
    options: AnalysisOptions,
    source_file: str,
    output_dir: str,
    toolchain: Toolchain = DEFAULT_TOOLCHAIN,
) -> list[str]:
    """Build the static analyzer argv with text output forced on.

    Example:
        ```python
        argv = build_analysis_command(AnalysisOptions(checkers=("core.DivideZero",)), "/w/source.c", "/w")
        ```
    """
    command = [toolchain.c_compiler, "--analyze", *_language_flags(options.language)]
    for checker in options.checkers or DEFAULT_CHECKERS:
        command.extend(["-Xanalyzer", f"-analyzer-checker={checker}"])
    command.extend(["-Xanalyzer", "-analyzer-output=text"])
    command.extend(_preprocessor_flags(options.defines, options.includes))
    command.append("-w")
    command.extend(["-o", posixpath.join(output_dir, ANALYSIS_REPORT_NAME)])
    command.append(source_file)
    return command


def build_ast_command(
    options: ASTOptions,
    source_file: str,
    toolchain: Toolchain = DEFAULT_TOOLCHAIN,
) -> list[str]:
    """Build the syntax-only AST dump argv.

    Example:
        ```python
        argv = build_ast_command(ASTOptions(format="json"), "/workspace/source.cpp")
        ```
    """
    mode = AST_MODE_FLAGS[options.format or DEFAULT_AST_FORMAT]
    return [
        toolchain.c_compiler,
        *_language_flags(options.language),
        "-Xclang",
        mode,
        "-fsyntax-only",
        "-w",
        source_file,
    ]
