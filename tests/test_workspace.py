from __future__ import annotations

import re
import stat
from pathlib import Path

import pytest

from safe_cc_runner.errors import ExecutionError
from safe_cc_runner.execution.workspace import open_workspace


def test_workspace_layout_and_removal(tmp_path: Path) -> None:
    source = "int main(void) { return 0; }\n"
    with open_workspace(tmp_path, source, "c11") as workspace:
        assert re.fullmatch(r"run-[0-9a-f]{32}", workspace.path.name)
        assert workspace.path.parent == tmp_path
        assert stat.S_IMODE(workspace.path.stat().st_mode) == 0o700
        assert workspace.source_file.name == "source.c"
        assert workspace.source_file.read_text(encoding="utf-8") == source
        assert workspace.temp_dir.is_dir()
        created = workspace.path
    assert not created.exists()


def test_cxx_languages_get_cpp_extension(tmp_path: Path) -> None:
    with open_workspace(tmp_path, "int x;", "c++17") as workspace:
        assert workspace.source_file.name == "source.cpp"
    with open_workspace(tmp_path, "int x;", None) as workspace:
        assert workspace.source_file.name == "source.cpp"


def test_workspaces_are_unique(tmp_path: Path) -> None:
    with open_workspace(tmp_path, "int a;", "c11") as first, open_workspace(tmp_path, "int b;", "c11") as second:
        assert first.path != second.path


def test_workspace_is_removed_when_body_raises(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError):
        with open_workspace(tmp_path, "int x;", "c11") as workspace:
            (workspace.path / "main.o").write_bytes(b"\x7fELF")
            raise RuntimeError("tool crashed")
    assert list(tmp_path.iterdir()) == []


def test_unwritable_root_raises_execution_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(ExecutionError, match="Failed to prepare workspace"):
        with open_workspace(blocker, "int x;", "c11"):
            pass
