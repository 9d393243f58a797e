"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    backend: str
    key_hash: str
    window_ms: int
    threshold: int
    timeout_seconds: float
    error_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidPolicyError(ValidationAppError):
    """Raised when a window policy has a non-positive window or threshold."""


class StoreUnavailableError(AppError):
    """Raised when the shared counter store cannot complete an evaluation.

    Covers connection failures, command timeouts and script errors. Callers
    choose whether to fail open or closed.
    """
