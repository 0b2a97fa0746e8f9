from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import IO, Any, Callable, Sequence

from ..errors import ExecutionError
from ..sanitize import TRUNCATION_MARKER
from .types import ExecutionOutcome

logger = logging.getLogger(__name__)

TIMEOUT_RETURNCODE = 124
READER_GRACE_SECONDS = 5.0
_CHUNK_SIZE = 65536


class _CappedReader(threading.Thread):
    """Drain a pipe to EOF, keeping at most ``max_bytes`` of it."""

    def __init__(self, stream: IO[bytes], max_bytes: int) -> None:
        """Bind the reader to one pipe.

        Example:
            ```python
            reader = _CappedReader(proc.stdout, max_bytes=1024)
            ```
        """
        super().__init__(daemon=True)
        self._stream = stream
        self._max_bytes = max_bytes
        self._chunks: list[bytes] = []
        self._kept = 0
        self.truncated = False

    def run(self) -> None:
        """Read chunks until EOF, discarding everything past the cap.

        Example:
            ```python
            reader.start()
            ```
        """
        try:
            while True:
                chunk = self._stream.read1(_CHUNK_SIZE)  # type: ignore[attr-defined]
                if not chunk:
                    break
                room = self._max_bytes - self._kept
                if room <= 0:
                    self.truncated = True
                    continue
                if len(chunk) > room:
                    chunk = chunk[:room]
                    self.truncated = True
                self._chunks.append(chunk)
                self._kept += len(chunk)
        except (OSError, ValueError) as exc:
            logger.debug("Output reader stopped early: %s", exc)
        finally:
            try:
                self._stream.close()
            except OSError:
                pass

    def text(self) -> str:
        """Decode the kept bytes, appending the truncation marker when cut.

        Example:
            ```python
            stdout = reader.text()
            ```
        """
        out = b"".join(self._chunks).decode("utf-8", errors="replace")
        if self.truncated:
            out += TRUNCATION_MARKER
        return out


def run_bounded(
    argv: Sequence[str],
    timeout_seconds: float,
    max_bytes: int,
    on_timeout: Callable[[subprocess.Popen[bytes]], None] | None = None,
    **popen_kwargs: Any,
) -> ExecutionOutcome:
    """Run argv with independent capped stdout/stderr readers and a wall-clock timeout.

    ``on_timeout`` receives the process and must terminate it; the default
    kills the process itself.

    Example:
        ```python
        outcome = run_bounded(["clang", "--version"], timeout_seconds=10, max_bytes=1 << 20)
        ```
    """
    started = time.monotonic()
    try:
        proc = subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **popen_kwargs,
        )
    except OSError as exc:
        raise ExecutionError(f"Failed to launch '{argv[0]}': {exc.strerror or exc}") from exc

    assert proc.stdout is not None and proc.stderr is not None
    readers = (_CappedReader(proc.stdout, max_bytes), _CappedReader(proc.stderr, max_bytes))
    for reader in readers:
        reader.start()

    timed_out = False
    try:
        proc.wait(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.warning("Process %s exceeded %.1fs; killing", argv[0], timeout_seconds)
        if on_timeout is not None:
            on_timeout(proc)
        else:
            proc.kill()
        try:
            proc.wait(timeout=READER_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()

    for reader in readers:
        reader.join(READER_GRACE_SECONDS)
        if reader.is_alive():
            logger.warning("Output reader for %s still blocked after process exit", argv[0])

    stdout_reader, stderr_reader = readers
    return ExecutionOutcome(
        stdout=stdout_reader.text(),
        stderr=stderr_reader.text(),
        returncode=TIMEOUT_RETURNCODE if timed_out else proc.returncode,
        timed_out=timed_out,
        truncated=stdout_reader.truncated or stderr_reader.truncated,
        duration_seconds=time.monotonic() - started,
    )
