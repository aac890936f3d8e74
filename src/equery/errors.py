"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for shared fetch operations.
"""

from __future__ import annotations

import asyncio


class EqueryError(RuntimeError):
    """Base equery error."""


class NetworkError(EqueryError):
    """Raised when a request fails at the transport or returns a non-success status."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class FetchTimeoutError(EqueryError, TimeoutError):
    """Raised when an execution exceeds its configured timeout."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"timeout of {format_timeout_ms(timeout_s)}ms exceeded")
        self.timeout_s = timeout_s


class OperationCancelledError(EqueryError):
    """Raised inside an execution whose cancellation token was triggered."""


class ConfigurationError(EqueryError, ValueError):
    """Raised when an operation or observer is used in an invalid way."""


def format_timeout_ms(timeout_s: float) -> str:
    """Render a timeout in whole milliseconds where possible (0.01 -> "10")."""
    return f"{round(timeout_s * 1000, 3):g}"


def is_cancellation(error: BaseException) -> bool:
    """Return whether `error` is shaped like a cancellation rather than a failure."""
    return isinstance(error, (OperationCancelledError, asyncio.CancelledError))
