"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Shared async operations with request deduplication.

Concurrent consumers asking for the same resource share one execution of the
underlying work. Each consumer gets its own observer with independent
listeners and cancellation; the work is only aborted when every observer has
cancelled.

Quick start::

    from equery import FetchClient

    client = FetchClient({"base_url": "https://api.example.com", "timeout_s": 5})

    first = client.use_fetch("/users/1")
    second = client.use_fetch("/users/1")   # joins the same request

    result = await first
    if result.is_success:
        print(result.data)
"""

from .adapters import create_rpc_adapter
from .cancellation import CancellationToken
from .core import (
    FetchClient,
    FetchObserver,
    SharedOperation,
    create_fetch_client_from_env,
    create_fetch_request,
)
from .errors import (
    ConfigurationError,
    EqueryError,
    FetchTimeoutError,
    NetworkError,
    OperationCancelledError,
)
from .keys import derive_key, stable_serialize
from .settings import EquerySettings
from .transport import (
    FetchTransport,
    TransportRequest,
    TransportResponse,
    UrllibTransport,
)
from .types import (
    CallableEndpoint,
    FetchConfig,
    FetchContext,
    Fetcher,
    FetcherDefinition,
    FetchResult,
    RequestEndpoint,
    merge_configs,
)

__all__ = [
    "FetchClient",
    "FetchObserver",
    "SharedOperation",
    "create_fetch_request",
    "create_fetch_client_from_env",
    "create_rpc_adapter",
    "CancellationToken",
    "FetchResult",
    "FetchConfig",
    "FetchContext",
    "Fetcher",
    "FetcherDefinition",
    "RequestEndpoint",
    "CallableEndpoint",
    "merge_configs",
    "stable_serialize",
    "derive_key",
    "EquerySettings",
    "FetchTransport",
    "TransportRequest",
    "TransportResponse",
    "UrllibTransport",
    "EqueryError",
    "NetworkError",
    "FetchTimeoutError",
    "OperationCancelledError",
    "ConfigurationError",
]
