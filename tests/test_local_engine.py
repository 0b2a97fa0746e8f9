import os
import shutil
import time

import pytest

from safe_cc_runner.errors import ExecutionError
from safe_cc_runner.execution import LocalEngine
from safe_cc_runner.sanitize import TRUNCATION_MARKER

pytestmark = pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")


def _shell(script: str):
    return lambda scope: ["sh", "-c", script]


def test_local_engine_requires_search_path() -> None:
    with pytest.raises(ValueError, match="search_path"):
        LocalEngine(search_path="  ")


def test_runs_in_workspace_with_scrubbed_environment(make_manager, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRET_TOKEN", "do-not-leak")
    manager = make_manager(LocalEngine(), memory_limit_mb=2048)

    result = manager.execute("int x;", "c11", _shell('pwd; ls; env'), timeout_seconds=10)

    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    workdir = lines[0]
    assert os.path.basename(workdir).startswith("run-")
    assert "source.c" in lines
    assert f"HOME={workdir}" in lines
    assert f"TMPDIR={workdir}/.tmp" in lines
    assert "SECRET_TOKEN" not in result.stdout
    assert not os.path.exists(workdir)


def test_nonzero_exit_and_stderr_are_captured(make_manager) -> None:
    manager = make_manager(LocalEngine(), memory_limit_mb=2048)

    result = manager.execute("int x;", "c11", _shell("echo broken >&2; exit 7"), timeout_seconds=10)

    assert result.exit_code == 7
    assert result.stderr.strip() == "broken"
    assert not result.timed_out


def test_timeout_kills_the_process_group(make_manager) -> None:
    manager = make_manager(LocalEngine(), memory_limit_mb=2048)

    started = time.monotonic()
    result = manager.execute("int x;", "c11", _shell("sleep 30 & sleep 30"), timeout_seconds=0.5)

    assert result.timed_out
    assert result.exit_code == 124
    assert time.monotonic() - started < 10


def test_output_is_capped_while_draining(make_manager) -> None:
    manager = make_manager(LocalEngine(), memory_limit_mb=2048, max_output_bytes=1024)

    result = manager.execute("int x;", "c11", _shell("yes x | head -c 50000"), timeout_seconds=10)

    assert result.exit_code == 0
    assert result.truncated
    assert result.stdout.endswith(TRUNCATION_MARKER)
    assert len(result.stdout) <= 1024 + len(TRUNCATION_MARKER)


def test_missing_executable_is_an_execution_error(make_manager) -> None:
    manager = make_manager(LocalEngine(), memory_limit_mb=2048)

    with pytest.raises(ExecutionError, match="Failed to launch"):
        manager.execute("int x;", "c11", lambda scope: ["definitely-not-a-compiler-xyz"], timeout_seconds=5)
