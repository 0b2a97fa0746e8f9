from pathlib import Path

import pytest

from safe_cc_runner.policy import (
    DEFAULT_ANALYSIS_TIMEOUT_SECONDS,
    DEFAULT_COMPILE_TIMEOUT_SECONDS,
    DEFAULT_MAX_OUTPUT_BYTES,
    SandboxPolicy,
)


def test_bundled_defaults() -> None:
    policy = SandboxPolicy()

    assert policy.memory_limit_mb == 512
    assert policy.max_output_bytes == DEFAULT_MAX_OUTPUT_BYTES == 10 * 1024 * 1024
    assert policy.compile_timeout_seconds == DEFAULT_COMPILE_TIMEOUT_SECONDS == 30
    assert policy.analysis_timeout_seconds == DEFAULT_ANALYSIS_TIMEOUT_SECONDS == 60
    assert policy.require_network_isolation is True
    assert policy.work_root.endswith("safe-cc-runner")


def test_policy_file_overrides_defaults(tmp_path: Path) -> None:
    policy_file = tmp_path / "policy.toml"
    policy_file.write_text(
        (
            "[policy]\n"
            "memory_limit_mb = 256\n"
            "max_concurrent = 1\n"
            "queue_timeout_seconds = 2.5\n"
            f"work_root = \"{tmp_path / 'runs'}\"\n"
            "require_network_isolation = false\n"
            "cxx_compiler = \"clang++-17\"\n"
        ),
        encoding="utf-8",
    )

    policy = SandboxPolicy.from_file(str(policy_file))

    assert policy.memory_limit_mb == 256
    assert policy.max_concurrent == 1
    assert policy.queue_timeout_seconds == 2.5
    assert policy.work_root == str(tmp_path / "runs")
    assert policy.require_network_isolation is False
    assert policy.cxx_compiler == "clang++-17"
    assert policy.c_compiler == "clang"
    assert policy.config_path == str(policy_file)


def test_missing_policy_file_falls_back_to_defaults(tmp_path: Path) -> None:
    policy = SandboxPolicy.from_file(str(tmp_path / "absent.toml"))
    assert policy.max_concurrent == SandboxPolicy().max_concurrent


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"memory_limit_mb": 16}, "memory_limit_mb"),
        ({"cpu_limit": 0}, "cpu_limit"),
        ({"max_output_bytes": 10}, "max_output_bytes"),
        ({"max_concurrent": 0}, "max_concurrent"),
        ({"queue_timeout_seconds": -1}, "queue_timeout_seconds"),
        ({"compile_timeout_seconds": 61}, "compile_timeout_seconds"),
        ({"c_compiler": " "}, "c_compiler"),
    ],
)
def test_out_of_range_ceilings_are_rejected(overrides: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        SandboxPolicy(**overrides)
