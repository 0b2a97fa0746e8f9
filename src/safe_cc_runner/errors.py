from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories surfaced in tool responses.

    Example:
        ```python
        kind = ErrorKind.TIMEOUT
        ```
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    TIMEOUT = "TIMEOUT"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    HANDLER_ERROR = "HANDLER_ERROR"


class ToolchainError(Exception):
    """Base class for errors raised across the execution pipeline."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR


class ValidationError(ToolchainError):
    """Malformed payload detected at the request boundary."""

    kind = ErrorKind.VALIDATION_ERROR


class ExecutionError(ToolchainError):
    """Sandbox creation or process launch failed."""

    kind = ErrorKind.EXECUTION_ERROR


class ResourceExhaustedError(ToolchainError):
    """No execution slot became free within the queue wait budget."""

    kind = ErrorKind.RESOURCE_EXHAUSTED
