from __future__ import annotations

import threading
import time

import pytest

from safe_cc_runner.errors import ErrorKind, ResourceExhaustedError
from safe_cc_runner.execution.gate import ExecutionGate


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.005)


def test_slot_tracks_live_count() -> None:
    gate = ExecutionGate(max_concurrent=2, wait_timeout_seconds=1)
    with gate.slot():
        assert gate.live == 1
        with gate.slot():
            assert gate.live == 2
    assert gate.live == 0


def test_slot_releases_on_exception() -> None:
    gate = ExecutionGate(max_concurrent=1, wait_timeout_seconds=1)
    with pytest.raises(RuntimeError, match="boom"):
        with gate.slot():
            raise RuntimeError("boom")
    assert gate.live == 0


def test_wait_expiry_raises_resource_exhausted() -> None:
    gate = ExecutionGate(max_concurrent=1, wait_timeout_seconds=0.05)
    gate.acquire()
    try:
        with pytest.raises(ResourceExhaustedError) as exc:
            gate.acquire()
        assert exc.value.kind is ErrorKind.RESOURCE_EXHAUSTED
        assert gate.waiting == 0
        assert gate.live == 1
    finally:
        gate.release()


def test_waiters_are_admitted_in_arrival_order() -> None:
    gate = ExecutionGate(max_concurrent=1, wait_timeout_seconds=5)
    admitted: list[str] = []

    def worker(name: str) -> None:
        with gate.slot():
            admitted.append(name)

    gate.acquire()
    threads = []
    for index, name in enumerate(["first", "second", "third"], start=1):
        thread = threading.Thread(target=worker, args=(name,))
        thread.start()
        threads.append(thread)
        _wait_for(lambda expected=index: gate.waiting == expected)
    gate.release()
    for thread in threads:
        thread.join(5)
    assert admitted == ["first", "second", "third"]
    assert gate.live == 0
    assert gate.waiting == 0


def test_release_without_acquire_is_an_error() -> None:
    gate = ExecutionGate(max_concurrent=1, wait_timeout_seconds=1)
    with pytest.raises(RuntimeError, match="released more times"):
        gate.release()


def test_gate_requires_positive_capacity() -> None:
    with pytest.raises(ValueError, match="max_concurrent"):
        ExecutionGate(max_concurrent=0, wait_timeout_seconds=1)
