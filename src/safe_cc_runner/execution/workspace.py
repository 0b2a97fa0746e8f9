from __future__ import annotations

import logging
import shutil
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..errors import ExecutionError
from ..models import source_extension
from .types import Workspace

logger = logging.getLogger(__name__)

SOURCE_STEM = "source"
RUN_PREFIX = "run-"


def _remove_tree(path: Path) -> None:
    """Delete a workspace tree, retrying once with permissive error handling.

    Example:
        ```python
        _remove_tree(Path("/tmp/safe-cc-runner/run-ab12"))
        ```
    """
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Failed to remove workspace %s: %s; retrying", path, exc)
        for child in path.rglob("*"):
            try:
                child.chmod(0o700)
            except OSError:
                continue
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.error("Workspace %s could not be removed", path)


@contextmanager
def open_workspace(root: str | Path, source: str, language: str | None) -> Iterator[Workspace]:
    """Create a uniquely named workspace holding the source file and remove it on exit.

    Example:
        ```python
        with open_workspace("/tmp/safe-cc-runner", "int x;", "c11") as ws:
            print(ws.source_file)
        ```
    """
    base = Path(root)
    path = base / f"{RUN_PREFIX}{uuid.uuid4().hex}"
    try:
        base.mkdir(parents=True, exist_ok=True)
        path.mkdir(mode=0o700)
        workspace = Workspace(path=path, source_file=path / f"{SOURCE_STEM}.{source_extension(language)}")
        workspace.temp_dir.mkdir(mode=0o700)
        workspace.source_file.write_text(source, encoding="utf-8")
    except OSError as exc:
        _remove_tree(path)
        raise ExecutionError(f"Failed to prepare workspace: {exc.strerror or exc}") from exc
    try:
        yield workspace
    finally:
        _remove_tree(path)
