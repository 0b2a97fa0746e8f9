import logging
from pathlib import Path

import pytest

from conftest import ScriptedEngine
from safe_cc_runner.errors import ExecutionError, ResourceExhaustedError
from safe_cc_runner.execution import ExecutionGate, ExecutionManager, ExecutionOutcome
from safe_cc_runner.policy import SandboxPolicy


def _argv(scope):
    return ["clang", "-fsyntax-only", scope.source_file]


def test_execute_runs_one_argv_in_a_fresh_workspace(make_manager, work_root: Path) -> None:
    engine = ScriptedEngine(ExecutionOutcome(stdout="out", stderr="err", returncode=3, timed_out=False))
    manager = make_manager(engine)

    result = manager.execute("int x;", "c11", _argv, timeout_seconds=12)

    assert result.exit_code == 3
    assert (result.stdout, result.stderr) == ("out", "err")
    assert engine.seen_sources == ["int x;"]
    assert engine.argvs[0][-1].endswith("source.c")
    assert engine.timeouts == [12]
    assert engine.destroyed == [f"fake-{engine.workspaces[0].name}"]
    assert not engine.workspaces[0].exists()
    assert list(work_root.iterdir()) == []
    assert manager.gate.live == 0


def test_scope_creation_is_retried_once(make_manager) -> None:
    engine = ScriptedEngine(scope_failures=1)
    manager = make_manager(engine)

    result = manager.execute("int x;", "c11", _argv, timeout_seconds=5)

    assert result.exit_code == 0
    assert engine.create_calls == 2


def test_second_scope_failure_surfaces(make_manager, work_root: Path) -> None:
    engine = ScriptedEngine(scope_failures=2)
    manager = make_manager(engine)

    with pytest.raises(ExecutionError, match="hiccup"):
        manager.execute("int x;", "c11", _argv, timeout_seconds=5)

    assert engine.create_calls == 2
    assert engine.argvs == []
    assert list(work_root.iterdir()) == []
    assert manager.gate.live == 0


def test_run_failure_still_destroys_scope_and_workspace(make_manager, work_root: Path) -> None:
    engine = ScriptedEngine(run_error=ExecutionError("docker exec failed"))
    manager = make_manager(engine)

    with pytest.raises(ExecutionError, match="docker exec failed"):
        manager.execute("int x;", "c11", _argv, timeout_seconds=5)

    assert len(engine.destroyed) == 1
    assert list(work_root.iterdir()) == []
    assert manager.gate.live == 0


def test_destroy_errors_are_logged_not_raised(make_manager, caplog: pytest.LogCaptureFixture) -> None:
    engine = ScriptedEngine(destroy_error=ExecutionError("container vanished"))
    manager = make_manager(engine)

    with caplog.at_level(logging.ERROR, logger="safe_cc_runner.execution.manager"):
        result = manager.execute("int x;", "c11", _argv, timeout_seconds=5)

    assert result.exit_code == 0
    assert "container vanished" in caplog.text


def test_timed_out_outcome_is_reported(make_manager) -> None:
    engine = ScriptedEngine(ExecutionOutcome(stdout="", stderr="", returncode=124, timed_out=True))
    manager = make_manager(engine)

    result = manager.execute("int x;", "c11", _argv, timeout_seconds=1)

    assert result.timed_out
    assert result.exit_code == 124


def test_preflight_refuses_before_touching_the_engine(work_root: Path) -> None:
    engine = ScriptedEngine()
    manager = ExecutionManager(engine, SandboxPolicy(work_root=str(work_root)))

    with pytest.raises(ExecutionError, match="cannot disable network access"):
        manager.execute("int x;", "c11", _argv, timeout_seconds=5)

    assert engine.create_calls == 0
    assert list(work_root.iterdir()) == []


def test_busy_gate_rejects_without_creating_workspace(work_root: Path) -> None:
    engine = ScriptedEngine()
    policy = SandboxPolicy(require_network_isolation=False, work_root=str(work_root))
    gate = ExecutionGate(max_concurrent=1, wait_timeout_seconds=0.05)
    manager = ExecutionManager(engine, policy, gate)

    gate.acquire()
    try:
        with pytest.raises(ResourceExhaustedError):
            manager.execute("int x;", "c11", _argv, timeout_seconds=5)
    finally:
        gate.release()

    assert engine.create_calls == 0
    assert list(work_root.iterdir()) == []


def test_backend_name_and_work_roots(make_manager, work_root: Path) -> None:
    manager = make_manager(ScriptedEngine(), cxx_compiler="clang++-18")

    assert manager.backend == "scriptedengine"
    assert manager.toolchain.cxx_compiler == "clang++-18"
    assert str(work_root) in manager.work_roots
