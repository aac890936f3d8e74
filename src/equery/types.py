"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Result, endpoint and configuration types shared by operations and clients.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .cancellation import CancellationToken
from .errors import ConfigurationError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class FetchResult(Generic[T]):
    """
    Immutable snapshot of an operation's result state.

    Attributes:
        data: Value produced by a successful execution.
        error: Exception raised by a failed execution.
        is_success: Execution finished with a value.
        is_error: Execution failed (including timeouts).
        is_canceled: Execution was cancelled; `error` is never set.
        is_loading: Execution is in flight; no terminal flag is set.
    """

    data: T | None = None
    error: BaseException | None = None
    is_success: bool = False
    is_error: bool = False
    is_canceled: bool = False
    is_loading: bool = False

    @property
    def is_settled(self) -> bool:
        """Whether this snapshot is terminal."""
        return not self.is_loading and (
            self.is_success or self.is_error or self.is_canceled
        )

    @classmethod
    def loading(cls, data: T | None = None) -> "FetchResult[T]":
        return cls(data=data, is_loading=True)

    @classmethod
    def success(cls, data: T) -> "FetchResult[T]":
        return cls(data=data, is_success=True)

    @classmethod
    def failure(cls, error: BaseException) -> "FetchResult[T]":
        return cls(error=error, is_error=True)

    @classmethod
    def canceled(cls) -> "FetchResult[T]":
        return cls(is_canceled=True)


@dataclass(frozen=True, slots=True)
class FetchContext:
    """Context passed to callable endpoints."""

    token: CancellationToken


# Callable endpoints may return a plain value or an awaitable of one.
Fetcher = Callable[[FetchContext], Any]


@dataclass(frozen=True, slots=True)
class FetcherDefinition:
    """Callable endpoint paired with the dedup key it should be shared under."""

    key: str
    fn: Fetcher

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            raise ConfigurationError("FetcherDefinition.key must be a non-empty string")
        if not callable(self.fn):
            raise ConfigurationError("FetcherDefinition.fn must be callable")


@dataclass(frozen=True, slots=True)
class RequestEndpoint:
    """HTTP request endpoint with its final (base-prefixed) URL."""

    url: str


@dataclass(frozen=True, slots=True)
class CallableEndpoint:
    """Callable unit of work with an optional definition key."""

    fn: Fetcher
    key: str | None = None


ResolvedEndpoint = RequestEndpoint | CallableEndpoint
EndpointLike = str | FetcherDefinition | RequestEndpoint | CallableEndpoint | Fetcher


class FetchConfig(BaseModel):
    """
    Per-client or per-call options.

    Every field is optional; only fields explicitly set take part in merges,
    so a call-level config overrides client defaults field by field.

    Attributes:
        enabled: Start execution at creation (default) or wait for ``execute()``.
        base_url: Prefix applied to string endpoints.
        query_key: Explicit dedup key.
        method: HTTP method for request endpoints (default ``GET``).
        headers: HTTP headers for request endpoints.
        body: JSON-serializable request body.
        timeout_s: Execution timeout in seconds; ``None`` or ``0`` disables it.
        transport: Network primitive used for request endpoints.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    enabled: bool | None = None
    base_url: str | None = None
    query_key: str | None = None
    method: str | None = None
    headers: dict[str, str] | None = None
    body: Any = None
    timeout_s: float | None = None
    transport: Any = None

    @field_validator("timeout_s")
    @classmethod
    def _check_timeout(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError("timeout_s must be >= 0")
        return value

    @field_validator("transport")
    @classmethod
    def _check_transport(cls, value: Any) -> Any:
        if value is not None and not callable(value):
            raise ValueError("transport must be callable")
        return value

    @classmethod
    def coerce(cls, value: "FetchConfig | Mapping[str, Any] | None") -> "FetchConfig":
        """
        Normalize `None`, a mapping or a model into a ``FetchConfig``.

        Raises:
            ConfigurationError: If `value` has an unsupported type or holds
                invalid or unknown fields.
        """
        if value is None:
            return cls()
        if isinstance(value, FetchConfig):
            return value
        if isinstance(value, Mapping):
            return _validate_config(dict(value))
        raise ConfigurationError(
            f"Unsupported config type: {type(value).__name__}"
        )

    def explicit_fields(self) -> dict[str, Any]:
        """Return only the fields that were explicitly set."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    @property
    def is_enabled(self) -> bool:
        return self.enabled is not False

    @property
    def resolved_method(self) -> str:
        return (self.method or "GET").upper()


def merge_configs(base: FetchConfig, override: FetchConfig) -> FetchConfig:
    """
    Shallow-merge two configs; `override` wins field by field.

    Header maps merge shallowly so same-named override headers replace base
    headers while the rest are kept.
    """
    merged = base.explicit_fields()
    merged.update(override.explicit_fields())
    if base.headers is not None or override.headers is not None:
        merged["headers"] = {**(base.headers or {}), **(override.headers or {})}
    return _validate_config(merged)


def _validate_config(values: dict[str, Any]) -> FetchConfig:
    try:
        return FetchConfig.model_validate(values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid fetch config: {exc}") from exc


def join_url(base_url: str | None, path: str) -> str:
    """Prefix `path` with `base_url` using exactly one ``/`` separator."""
    if not base_url:
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def resolve_endpoint(
    endpoint: EndpointLike | Mapping[str, Any],
    *,
    base_url: str | None = None,
) -> ResolvedEndpoint:
    """Resolve a caller-supplied endpoint into the closed endpoint union."""
    if isinstance(endpoint, RequestEndpoint):
        return RequestEndpoint(url=join_url(base_url, endpoint.url))
    if isinstance(endpoint, CallableEndpoint):
        return endpoint
    if isinstance(endpoint, str):
        if not endpoint.strip():
            raise ConfigurationError("Endpoint URL cannot be empty")
        return RequestEndpoint(url=join_url(base_url, endpoint))
    if isinstance(endpoint, FetcherDefinition):
        return CallableEndpoint(fn=endpoint.fn, key=endpoint.key)
    if isinstance(endpoint, Mapping):
        definition = FetcherDefinition(key=endpoint.get("key"), fn=endpoint.get("fn"))
        return CallableEndpoint(fn=definition.fn, key=definition.key)
    if callable(endpoint):
        return CallableEndpoint(fn=endpoint)
    raise ConfigurationError(
        f"Unsupported endpoint type: {type(endpoint).__name__}"
    )
