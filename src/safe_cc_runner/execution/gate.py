from __future__ import annotations

import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Iterator

from ..errors import ResourceExhaustedError


class ExecutionGate:
    """Bound the number of live sandbox runs, admitting waiters in FIFO order.

    Requests over the ceiling queue for at most ``wait_timeout_seconds`` and
    are then rejected with ``ResourceExhaustedError``.

    Example:
        ```python
        gate = ExecutionGate(max_concurrent=4, wait_timeout_seconds=30)
        ```
    """

    def __init__(self, max_concurrent: int, wait_timeout_seconds: float) -> None:
        """Initialize an empty gate.

        Example:
            ```python
            gate = ExecutionGate(max_concurrent=2, wait_timeout_seconds=5)
            ```
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._wait_timeout_seconds = max(0.0, float(wait_timeout_seconds))
        self._cond = threading.Condition()
        self._live = 0
        self._waiters: deque[object] = deque()

    @property
    def live(self) -> int:
        """Return the number of executions currently holding a slot.

        Example:
            ```python
            active = gate.live
            ```
        """
        with self._cond:
            return self._live

    @property
    def waiting(self) -> int:
        """Return the number of requests queued for a slot.

        Example:
            ```python
            queued = gate.waiting
            ```
        """
        with self._cond:
            return len(self._waiters)

    def acquire(self) -> None:
        """Take a slot, waiting behind earlier arrivals up to the wait budget.

        Example:
            ```python
            gate.acquire()
            ```
        """
        ticket = object()
        deadline = time.monotonic() + self._wait_timeout_seconds
        with self._cond:
            self._waiters.append(ticket)
            while self._waiters[0] is not ticket or self._live >= self._max_concurrent:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._waiters.remove(ticket)
                    self._cond.notify_all()
                    raise ResourceExhaustedError(
                        f"All {self._max_concurrent} execution slots busy; "
                        f"gave up after waiting {self._wait_timeout_seconds:g}s"
                    )
                self._cond.wait(remaining)
            self._waiters.popleft()
            self._live += 1
            self._cond.notify_all()

    def release(self) -> None:
        """Return a slot and wake queued requests.

        Example:
            ```python
            gate.release()
            ```
        """
        with self._cond:
            if self._live <= 0:
                raise RuntimeError("ExecutionGate released more times than acquired")
            self._live -= 1
            self._cond.notify_all()

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold a slot for the duration of the block, releasing on every exit path.

        Example:
            ```python
            with gate.slot():
                ...
            ```
        """
        self.acquire()
        try:
            yield
        finally:
            self.release()
