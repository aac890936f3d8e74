"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Client owning the dedup registry of in-flight shared operations.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from ..keys import derive_key
from ..settings import EquerySettings
from ..types import (
    EndpointLike,
    FetchConfig,
    FetchResult,
    merge_configs,
    resolve_endpoint,
)
from .observer import FetchObserver
from .operation import SharedOperation, StartGate

logger = logging.getLogger("equery.client")

ConfigLike = FetchConfig | Mapping[str, Any] | None


class FetchClient:
    """
    Issues observers and deduplicates concurrent calls sharing a key.

    While an operation is registered under a key, every ``use_fetch`` call
    deriving the same key receives a new observer onto that operation instead
    of starting new work. The entry is removed when the operation settles.

    Example::

        client = FetchClient({"base_url": "https://api.example.com"})
        first = client.use_fetch("/users/1")
        second = client.use_fetch("/users/1")
        assert first.get_id() == second.get_id()
    """

    def __init__(self, config: ConfigLike = None) -> None:
        self._config = FetchConfig.coerce(config)
        self._active: dict[str, SharedOperation[Any]] = {}

    @classmethod
    def from_env(cls) -> "FetchClient":
        """Build a client whose defaults come from ``EQUERY_*`` variables."""
        return cls(EquerySettings.from_env().to_config())

    @property
    def config(self) -> FetchConfig:
        return self._config

    def set_config(self, config: ConfigLike) -> None:
        """Replace the client defaults; in-flight operations are unaffected."""
        self._config = FetchConfig.coerce(config)

    def update_config(self, partial: ConfigLike) -> None:
        """Merge `partial` into the client defaults (headers merge shallowly)."""
        self._config = merge_configs(self._config, FetchConfig.coerce(partial))

    def active_keys(self) -> list[str]:
        """Keys of the operations currently registered for sharing."""
        return list(self._active)

    def use_fetch(self, endpoint: EndpointLike, config: ConfigLike = None) -> FetchObserver[Any]:
        """
        Return an observer for `endpoint`, sharing in-flight work by key.

        Args:
            endpoint: URL path, ``FetcherDefinition``, mapping with ``key`` and
                ``fn``, or a callable receiving a ``FetchContext``.
            config: Per-call options merged over the client defaults.

        Raises:
            ConfigurationError: If the endpoint or config is invalid.
            RuntimeError: If execution is enabled outside a running event loop.
        """
        merged = merge_configs(self._config, FetchConfig.coerce(config))
        resolved = resolve_endpoint(endpoint, base_url=merged.base_url)
        key = derive_key(resolved, merged)

        if key is None:
            return _start(SharedOperation(resolved, merged), merged)

        existing = self._active.get(key)
        if existing is not None and not existing.is_aborting:
            logger.debug("Sharing operation %s for key %s", existing.id[:8], key)
            return FetchObserver(existing)

        operation: SharedOperation[Any] = SharedOperation(
            resolved,
            merged,
            start_gate=self._gate(key),
        )
        if merged.is_enabled:
            # Fail before registering when no loop is running.
            asyncio.get_running_loop()
            self._register(key, operation)
        return _start(operation, merged)

    def _gate(self, key: str) -> StartGate:
        def gate(operation: SharedOperation[Any]) -> SharedOperation[Any]:
            current = self._active.get(key)
            if current is not None and current is not operation and not current.is_aborting:
                logger.debug(
                    "Operation %s defers to %s for key %s",
                    operation.id[:8],
                    current.id[:8],
                    key,
                )
                return current
            if current is not operation:
                self._register(key, operation)
            return operation

        return gate

    def _register(self, key: str, operation: SharedOperation[Any]) -> None:
        self._active[key] = operation

        def evict(_result: FetchResult[Any]) -> None:
            if self._active.get(key) is operation:
                del self._active[key]
                logger.debug("Evicted operation %s for key %s", operation.id[:8], key)

        # Eviction runs ahead of every observer listener of the same settlement.
        operation.on_complete(evict, first=True)
        logger.debug("Registered operation %s for key %s", operation.id[:8], key)

    def __repr__(self) -> str:
        return f"FetchClient(active={len(self._active)})"


def create_fetch_request(endpoint: EndpointLike, config: ConfigLike = None) -> FetchObserver[Any]:
    """
    Run `endpoint` outside any client; the work is never shared.

    A ``base_url`` in `config` still prefixes string endpoints.
    """
    merged = FetchConfig.coerce(config)
    resolved = resolve_endpoint(endpoint, base_url=merged.base_url)
    return _start(SharedOperation(resolved, merged), merged)


def create_fetch_client_from_env() -> FetchClient:
    """Create a ``FetchClient`` configured from ``EQUERY_*`` variables."""
    return FetchClient.from_env()


def _start(operation: SharedOperation[Any], config: FetchConfig) -> FetchObserver[Any]:
    observer = FetchObserver(operation)
    if config.is_enabled:
        observer.execute()
    return observer
