from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from dataclasses import fields, is_dataclass
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter
from safe_cc_runner import (
    DockerEngine,
    ExecutionManager,
    LocalEngine,
    SandboxPolicy,
    analyze_source,
    compile_source,
    dump_ast,
    list_tools,
    serve,
)
from safe_cc_runner.models import (
    AST_FORMATS,
    LANGUAGE_STANDARDS,
    OPTIMIZATION_LEVELS,
    WARNING_LEVELS,
    Response,
    ToolFailure,
)

_CONSOLE = Console(no_color=False)
_ERR_CONSOLE = Console(stderr=True)
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_SEVERITY_STYLES = {"error": "bold red", "warning": "yellow", "note": "cyan"}


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="python -m scr")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _ERR_CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_usage(sys.stderr)
        raise SystemExit(2)


def _to_jsonable(value: object) -> Any:
    """Convert CLI return values into printable payloads.

    Example:
        ```python
        payload = _to_jsonable(summary)
        ```
    """
    if not isinstance(value, type) and is_dataclass(value):
        return {field.name: getattr(value, field.name) for field in fields(value)}
    return value


def _add_language(parser: argparse.ArgumentParser) -> None:
    """Attach the shared --language option.

    Example:
        ```python
        _add_language(compile_cmd)
        ```
    """
    parser.add_argument(
        "--language",
        "--std",
        dest="language",
        choices=LANGUAGE_STANDARDS,
        metavar="STD",
        help="Language standard (default: c17 for .c files, otherwise c++20).",
    )


def _add_preprocessor(parser: argparse.ArgumentParser) -> None:
    """Attach the shared -D/-I options.

    Example:
        ```python
        _add_preprocessor(analyze_cmd)
        ```
    """
    parser.add_argument("-D", dest="defines", action="append", metavar="MACRO[=VALUE]", help="Preprocessor definition.")
    parser.add_argument("-I", dest="includes", action="append", metavar="DIR", help="Relative include path.")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for sandboxed compile, analyze and AST operations.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m scr",
        description=(
            "safe-cc-runner CLI\n"
            "Compile, analyze and dump untrusted C/C++ inside a disposable sandbox.\n"
            "Every request gets its own workspace and container, removed afterwards."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m scr compile hello.c\n"
            "  python -m scr compile main.cpp --std c++17 -O O0 --warnings all\n"
            "  python -m scr analyze leak.c --checker unix.Malloc\n"
            "  python -m scr ast snippet.cpp --format json\n"
            "  python -m scr serve < requests.jsonl\n"
            "  python -m scr list containers\n"
            "  python -m scr cleanup\n\n"
            "Local Backend (no network isolation):\n"
            "  python -m scr --backend local --no-network-isolation compile hello.c"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--backend",
        choices=("docker", "local"),
        default="docker",
        help="Isolation backend (default: docker).",
    )
    parser.add_argument("--image", help="Toolchain image for the docker backend.")
    parser.add_argument(
        "--docker-context",
        help=(
            "Use an existing Docker context name.\n"
            "Example: --docker-context ci-builders\n"
            "Mutually exclusive with --docker-host."
        ),
    )
    parser.add_argument(
        "--docker-host",
        help=(
            "Connect directly with DOCKER_HOST.\n"
            "Examples: ssh://user@server, tcp://host:2376"
        ),
    )
    parser.add_argument("--policy-file", help="TOML sandbox policy overriding the bundled defaults.")
    parser.add_argument(
        "--no-network-isolation",
        action="store_true",
        help="Allow backends that cannot disable networking (required for --backend local).",
    )
    parser.add_argument(
        "--log-level",
        choices=_LOG_LEVELS,
        default="WARNING",
        help="Log verbosity on stderr (default: WARNING).",
    )
    parser.add_argument("--json", action="store_true", help="Print raw JSON responses.")

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    compile_cmd = sub.add_parser(
        "compile",
        help="Compile a source file.",
        description="Compile a C/C++ file with allow-listed options and report diagnostics.",
        epilog=(
            "Examples:\n"
            "  python -m scr compile hello.c --link\n"
            "  cat main.cpp | python -m scr compile - --std c++20"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    compile_cmd.add_argument("file", help="Source file, or '-' for stdin.")
    _add_language(compile_cmd)
    compile_cmd.add_argument(
        "-O", "--optimization", choices=OPTIMIZATION_LEVELS, help="Optimization level (default: O2)."
    )
    compile_cmd.add_argument("--warnings", choices=WARNING_LEVELS, help="Warning policy (default: pedantic).")
    _add_preprocessor(compile_cmd)
    compile_cmd.add_argument(
        "--flag",
        dest="flags",
        action="append",
        metavar="FLAG",
        help="Extra allow-listed compiler flag (repeatable), e.g. --flag=-fno-exceptions.",
    )
    compile_cmd.add_argument("--link", action="store_true", help="Link an executable instead of stopping at -c.")
    compile_cmd.add_argument("--timeout", type=float, help="Compile timeout in seconds, 1-60 (default: 30).")

    analyze_cmd = sub.add_parser(
        "analyze",
        help="Run the static analyzer on a source file.",
        description="Run the Clang Static Analyzer and list findings by checker.",
        formatter_class=_HELP_FORMATTER,
    )
    analyze_cmd.add_argument("file", help="Source file, or '-' for stdin.")
    _add_language(analyze_cmd)
    analyze_cmd.add_argument(
        "--checker",
        dest="checkers",
        action="append",
        metavar="ID",
        help="Checker to enable (repeatable; default set when omitted).",
    )
    _add_preprocessor(analyze_cmd)

    ast_cmd = sub.add_parser(
        "ast",
        help="Dump the syntax tree of a source file.",
        description="Print the Clang AST as text, JSON or graph output.",
        formatter_class=_HELP_FORMATTER,
    )
    ast_cmd.add_argument("file", help="Source file, or '-' for stdin.")
    _add_language(ast_cmd)
    ast_cmd.add_argument("--format", choices=AST_FORMATS, help="AST output format (default: dump).")

    sub.add_parser(
        "tools",
        help="List the tools exposed by the stdio server.",
        description="Show tool names and descriptions served by `scr serve`.",
        formatter_class=_HELP_FORMATTER,
    )
    sub.add_parser(
        "serve",
        help="Serve JSON-lines tool requests on stdin/stdout.",
        description=(
            "Read one JSON request per line from stdin and write one response per line.\n"
            'Request shape: {"id": 1, "method": "tools/call", "params": {"name": ..., "arguments": {...}}}'
        ),
        formatter_class=_HELP_FORMATTER,
    )

    list_cmd = sub.add_parser(
        "list",
        help="List managed containers.",
        description="List containers created and labeled by safe-cc-runner.",
        formatter_class=_HELP_FORMATTER,
    )
    list_cmd_sub = list_cmd.add_subparsers(
        dest="resource",
        required=True,
        parser_class=_RichArgumentParser,
    )
    list_cmd_sub.add_parser(
        "containers",
        help="List managed containers.",
        description="Show managed containers in every state with id, name, image, state and status.",
        formatter_class=_HELP_FORMATTER,
    )

    cleanup_cmd = sub.add_parser(
        "cleanup",
        help="Remove leftover managed containers.",
        description=(
            "Remove managed containers left behind by crashed runs.\n"
            "Running containers are kept unless --include-running is given."
        ),
        formatter_class=_HELP_FORMATTER,
    )
    cleanup_cmd.add_argument("--include-running", action="store_true", help="Also remove running managed containers.")

    return parser


def configure_logging(level: str) -> None:
    """Route library logs to stderr through Rich.

    Example:
        ```python
        configure_logging("INFO")
        ```
    """
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_ERR_CONSOLE, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def build_policy(args: argparse.Namespace) -> SandboxPolicy:
    """Load the sandbox policy named by --policy-file, applying CLI overrides.

    Example:
        ```python
        policy = build_policy(args)
        ```
    """
    policy = SandboxPolicy.from_file(args.policy_file) if args.policy_file else SandboxPolicy()
    if args.no_network_isolation:
        policy = dataclasses.replace(policy, require_network_isolation=False)
    return policy


def build_engine(args: argparse.Namespace) -> DockerEngine | LocalEngine:
    """Create the isolation engine selected by the global CLI flags.

    Example:
        ```python
        engine = build_engine(args)
        ```
    """
    if args.backend == "local":
        return LocalEngine()
    return DockerEngine(
        image=args.image,
        docker_context=args.docker_context,
        docker_host=args.docker_host,
    )


def _read_source(path: str) -> str:
    """Read source text from a file path or stdin.

    Example:
        ```python
        source = _read_source("hello.c")
        ```
    """
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _infer_language(path: str, explicit: str | None) -> str | None:
    """Pick c17 for .c files when no standard was given.

    Example:
        ```python
        _infer_language("hello.c", None)  # "c17"
        ```
    """
    if explicit:
        return explicit
    return "c17" if path.endswith(".c") else None


def _arguments(args: argparse.Namespace, source: str) -> dict[str, Any]:
    """Map parsed CLI options onto snake-case tool arguments, omitting unset ones.

    Example:
        ```python
        arguments = _arguments(args, "int x;")
        ```
    """
    values: dict[str, Any] = {"source_code": source, "language": _infer_language(args.file, args.language)}
    if args.command == "compile":
        values.update(
            optimization=args.optimization,
            warnings=args.warnings,
            defines=args.defines,
            includes=args.includes,
            flags=args.flags,
            compile_only=False if args.link else None,
            timeout=args.timeout,
        )
    elif args.command == "analyze":
        values.update(checkers=args.checkers, defines=args.defines, includes=args.includes)
    else:
        values.update(format=args.format)
    return {key: value for key, value in values.items() if value is not None}


def _print_diagnostics(rows: list[dict[str, Any]], title: str) -> None:
    """Render diagnostics or findings in a rich table.

    Example:
        ```python
        _print_diagnostics([{"severity": "error", "line": 1, "column": 5, "message": "oops"}], "Diagnostics")
        ```
    """
    if not rows:
        return
    with_checker = any("checker" in row for row in rows)
    table = Table(title=title)
    table.add_column("Severity")
    table.add_column("Line", justify="right", style="cyan")
    table.add_column("Col", justify="right", style="cyan")
    table.add_column("Message")
    if with_checker:
        table.add_column("Checker", style="magenta")
    for row in rows:
        severity = row["severity"]
        style = _SEVERITY_STYLES.get(severity, "white")
        cells = [f"[{style}]{severity}[/]", str(row["line"]), str(row["column"]), row["message"]]
        if with_checker:
            cells.append(row.get("checker", ""))
        table.add_row(*cells)
    _CONSOLE.print(table)


def _print_response(command: str, response: Response) -> None:
    """Render a tool response with Rich panels and tables.

    Example:
        ```python
        _print_response("compile", response)
        ```
    """
    data = response.to_dict()
    if isinstance(response, ToolFailure):
        error = data["error"]
        _CONSOLE.print(Panel.fit(f"[bold red]{error['code']}[/bold red]: {error['message']}", border_style="red"))
        return
    style = "green" if data["success"] else "red"
    status = "succeeded" if data["success"] else "failed"
    timing = f"(exit {data['exit_code']}, {data['elapsed_seconds']:.2f}s)"
    header = f"[bold {style}]{command} {status}[/bold {style}] {timing}"
    if data.get("truncated"):
        header += " [yellow]output truncated[/yellow]"
    if command == "compile":
        summary = data["summary"]
        header += f"\n{data['toolchain_version']}: {summary['error']} error(s), {summary['warning']} warning(s)"
    _CONSOLE.print(Panel.fit(header, border_style=style))
    if command == "compile":
        _print_diagnostics(data["diagnostics"], "Diagnostics")
        if data["stdout"]:
            _CONSOLE.print(data["stdout"], markup=False, highlight=False)
    elif command == "analyze":
        _print_diagnostics(data["findings"], "Findings")
        if not data["findings"]:
            _CONSOLE.print("No findings.")
    else:
        _CONSOLE.print(data["ast"], markup=False, highlight=False)
        _print_diagnostics(data["diagnostics"], "Diagnostics")


def _print_tools(tools: list[dict[str, Any]]) -> None:
    """Render tool descriptors in a rich table.

    Example:
        ```python
        _print_tools(list_tools())
        ```
    """
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Arguments", style="magenta")
    for tool in tools:
        table.add_row(tool["name"], tool["description"], ", ".join(tool["inputSchema"]["properties"]))
    _CONSOLE.print(table)


def _print_containers(rows: list[dict[str, Any]]) -> None:
    """Render managed containers in a rich table.

    Example:
        ```python
        _print_containers([{"id": "abc", "name": "safe-cc-runner-0a1b2c3d4e5f"}])
        ```
    """
    table = Table(title="Managed Containers")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Image")
    table.add_column("State")
    table.add_column("Status")
    for row in rows:
        table.add_row(row["id"], row["name"], row["image"], row["state"], row["status"])
    _CONSOLE.print(table)


_TOOL_COMMANDS = {
    "compile": compile_source,
    "analyze": analyze_source,
    "ast": dump_ast,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `scr` CLI command handler.

    Example:
        ```python
        code = main(["compile", "hello.c"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.log_level)

    if args.command == "tools":
        tools = list_tools()
        if args.json:
            _CONSOLE.print_json(json.dumps(tools))
        else:
            _print_tools(tools)
        return 0

    try:
        policy = build_policy(args)
        engine = build_engine(args)
    except (OSError, ValueError) as exc:
        _ERR_CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {exc}", border_style="red"))
        return 2

    if args.command in _TOOL_COMMANDS:
        try:
            source = _read_source(args.file)
        except (OSError, UnicodeDecodeError) as exc:
            message = f"[bold red]Error:[/bold red] cannot read {args.file}: {exc}"
            _ERR_CONSOLE.print(Panel.fit(message, border_style="red"))
            return 2
        manager = ExecutionManager(engine, policy)
        response = _TOOL_COMMANDS[args.command](_arguments(args, source), manager)
        if args.json:
            _CONSOLE.print_json(json.dumps(response.to_dict()))
        else:
            _print_response(args.command, response)
        return 0 if response.ok and response.to_dict()["success"] else 1
    if args.command == "serve":
        serve(ExecutionManager(engine, policy), sys.stdin, sys.stdout)
        return 0

    if not isinstance(engine, DockerEngine):
        _ERR_CONSOLE.print(Panel.fit("Container management needs the docker backend.", style="bold red"))
        return 2
    if args.command == "list" and args.resource == "containers":
        rows = [_to_jsonable(c) for c in engine.list_containers(all_states=True)]
        if args.json:
            _CONSOLE.print_json(json.dumps(rows))
        else:
            _print_containers(rows)
        return 0
    if args.command == "cleanup":
        summary = _to_jsonable(engine.cleanup_stale(include_running=args.include_running))
        _CONSOLE.print(Panel.fit(Pretty(summary), title="Cleanup Summary", border_style="green"))
        return 0

    parser.error("Unhandled command")
