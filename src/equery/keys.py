"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Dedup key derivation and stable input serialization.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping, Set
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from .types import CallableEndpoint, FetchConfig, RequestEndpoint, ResolvedEndpoint


def stable_serialize(value: Any) -> str:
    """
    Serialize `value` into a deterministic string suitable for cache keys.

    Mapping keys are serialized with their type and sorted, sequences keep
    their order, sets are sorted, dates render as ``Date(<iso>)`` and
    dataclasses / pydantic models are walked through their field mapping.
    Other values render as ``TypeName("<str(value)>")``; values whose
    ``str()`` differs per instance (default object repr) never share a key.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, Decimal):
        return f"Decimal({value})"
    if isinstance(value, (datetime, date, time)):
        return f"Date({value.isoformat()})"
    if isinstance(value, bytes):
        return f"Bytes({value.hex()})"
    if isinstance(value, BaseModel):
        return stable_serialize(value.model_dump(mode="python"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return stable_serialize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, Mapping):
        # Keys keep their type: {1: x} and {"1": x} must not collide.
        pairs = sorted(
            (stable_serialize(key), stable_serialize(item)) for key, item in value.items()
        )
        return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"
    if isinstance(value, Set):
        items = sorted(stable_serialize(item) for item in value)
        return f"Set({json.dumps(items)})"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_serialize(item) for item in value) + "]"
    # Unknown types are tagged with their type name. Their str() must be
    # stable across instances for equal inputs to share a key.
    return f"{type(value).__name__}({json.dumps(str(value))})"


def derive_key(endpoint: ResolvedEndpoint, config: FetchConfig) -> str | None:
    """
    Derive the dedup key for one call; first match wins.

    1. Explicit ``config.query_key``.
    2. Key carried by a ``FetcherDefinition``.
    3. ``METHOD:url[:body]`` for request endpoints.

    Plain callables without a key return ``None`` and are never shared.
    """
    if config.query_key:
        return config.query_key
    if isinstance(endpoint, CallableEndpoint):
        return endpoint.key
    if isinstance(endpoint, RequestEndpoint):
        key = f"{config.resolved_method}:{endpoint.url}"
        if config.body is not None:
            key = f"{key}:{stable_serialize(config.body)}"
        return key
    return None
