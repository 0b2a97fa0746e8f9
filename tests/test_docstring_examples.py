import ast
from pathlib import Path

import pytest

_SRC = Path(__file__).resolve().parents[1] / "src"


def _python_files(package: str) -> list[Path]:
    root = _SRC / package
    return sorted(path for path in root.rglob("*.py") if "__pycache__" not in path.parts)


@pytest.mark.parametrize("package", ["safe_cc_runner", "scr"])
def test_all_functions_have_docstring_with_example(package: str) -> None:
    missing: list[str] = []
    missing_example: list[str] = []

    for file_path in _python_files(package):
        module = ast.parse(file_path.read_text(encoding="utf-8"))
        for node in ast.walk(module):
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            if file_path.name == "__main__.py":
                continue
            doc = ast.get_docstring(node)
            location = f"{file_path.relative_to(_SRC)}:{node.lineno}:{node.name}"
            if not doc:
                missing.append(location)
                continue
            if "Example:" not in doc or "```python" not in doc:
                missing_example.append(location)

    assert not missing, "Missing function docstrings:\n" + "\n".join(missing)
    assert not missing_example, "Docstrings without a fenced Example section:\n" + "\n".join(missing_example)


@pytest.mark.parametrize("package", ["safe_cc_runner", "scr"])
def test_modules_open_with_code_not_a_docstring(package: str) -> None:
    documented = [
        str(file_path.relative_to(_SRC))
        for file_path in _python_files(package)
        if ast.get_docstring(ast.parse(file_path.read_text(encoding="utf-8"))) is not None
    ]
    assert not documented, "Module docstrings found:\n" + "\n".join(documented)
