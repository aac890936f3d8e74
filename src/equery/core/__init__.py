"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Core runtime exports.
"""

from .client import FetchClient, create_fetch_client_from_env, create_fetch_request
from .observer import FetchObserver
from .operation import SharedOperation

__all__ = [
    "FetchClient",
    "FetchObserver",
    "SharedOperation",
    "create_fetch_request",
    "create_fetch_client_from_env",
]
