from __future__ import annotations

from dataclasses import dataclass

from ..errors import ExecutionError
from ..policy import SandboxPolicy


@dataclass(frozen=True, slots=True)
class BackendCapabilities:
    """Capability flags advertised by a backend.

    Example:
        ```python
        caps = BackendCapabilities(True, True, True, True, True)
        ```
    """

    supports_network_isolation: bool
    supports_filesystem_isolation: bool
    supports_memory_limit: bool
    supports_cpu_limit: bool
    supports_timeout: bool


def capabilities_for_backend(backend: str) -> BackendCapabilities:
    """Return capability flags for a backend name.

    Example:
        ```python
        caps = capabilities_for_backend("docker")
        ```
    """
    if backend in {"local", "localengine"}:
        return BackendCapabilities(False, False, True, True, True)
    if backend in {"docker", "dockerengine"}:
        return BackendCapabilities(True, True, True, True, True)
    return BackendCapabilities(False, False, False, False, False)


def preflight_validate_backend_capabilities(backend: str, policy: SandboxPolicy) -> None:
    """Refuse backends that cannot honor the policy's isolation requirements.

    Example:
        ```python
        preflight_validate_backend_capabilities("docker", SandboxPolicy())
        ```
    """
    caps = capabilities_for_backend(backend)
    if policy.require_network_isolation and not caps.supports_network_isolation:
        raise ExecutionError(
            f"Backend '{backend}' cannot disable network access; "
            "use the docker backend or set require_network_isolation = false"
        )
