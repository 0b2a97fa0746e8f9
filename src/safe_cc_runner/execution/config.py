from __future__ import annotations

from dataclasses import dataclass

DEFAULT_DOCKER_IMAGE = "silkeh/clang:18"
CONTAINER_NAME_PREFIX = "safe-cc-runner-"
MANAGED_LABEL_KEY = "safe_cc_runner.managed"
MANAGED_LABEL_VALUE = "true"
MANAGED_LABELS = {
    MANAGED_LABEL_KEY: MANAGED_LABEL_VALUE,
    "safe_cc_runner.engine": "docker",
    "safe_cc_runner.project": "safe-cc-runner",
}


@dataclass(frozen=True, slots=True)
class ContainerInfo:
    """Snapshot of a managed container returned by DockerEngine.

    Example:
        ```python
        info = ContainerInfo("abc", "safe-cc-runner-0a1b2c3d4e5f", "silkeh/clang:18", "running", "Up 2s")
        ```
    """

    id: str
    name: str
    image: str
    state: str
    status: str


@dataclass(frozen=True, slots=True)
class CleanupSummary:
    """Result summary from Docker cleanup operations.

    Example:
        ```python
        summary = CleanupSummary(removed_containers=2)
        ```
    """

    removed_containers: int
