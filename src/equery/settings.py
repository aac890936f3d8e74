"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Client settings and explicit environment loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .types import FetchConfig


def _env_first(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty environment variable in `names`."""
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def _env_float(name: str, default: float | None) -> float | None:
    raw = _env_first(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value


@dataclass(frozen=True, slots=True)
class EquerySettings:
    """
    Explicit settings used to build client defaults and the default transport.

    Attributes:
        base_url: Prefix for string endpoints issued through a client.
        timeout_s: Default execution timeout; ``None`` disables it.
        http_timeout_s: Socket timeout used by the default transport.
        user_agent: ``User-Agent`` header added by the default transport.
    """

    base_url: str | None = None
    timeout_s: float | None = None
    http_timeout_s: float = 30.0
    user_agent: str | None = None

    @staticmethod
    def from_env() -> "EquerySettings":
        """Load settings from ``EQUERY_*`` environment variables."""
        http_timeout_s = _env_float("EQUERY_HTTP_TIMEOUT_S", 30.0)
        return EquerySettings(
            base_url=_env_first("EQUERY_BASE_URL"),
            timeout_s=_env_float("EQUERY_TIMEOUT_S", None),
            http_timeout_s=http_timeout_s if http_timeout_s else 30.0,
            user_agent=_env_first("EQUERY_USER_AGENT"),
        )

    def to_config(self) -> FetchConfig:
        """Build client-level defaults holding only the settings that are set."""
        values: dict[str, object] = {}
        if self.base_url is not None:
            values["base_url"] = self.base_url
        if self.timeout_s is not None:
            values["timeout_s"] = self.timeout_s
        return FetchConfig.model_validate(values)
