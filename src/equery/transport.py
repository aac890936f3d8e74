"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Network primitive used by request endpoints.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Protocol

from .cancellation import CancellationToken
from .errors import NetworkError, OperationCancelledError
from .settings import EquerySettings

logger = logging.getLogger("equery.transport")


@dataclass(frozen=True, slots=True)
class TransportRequest:
    """
    One outgoing HTTP call.

    Attributes:
        method: Upper-case HTTP method.
        headers: Final request headers.
        body: Serialized request body, if any.
        token: Cancellation token of the execution issuing the call.
        timeout_s: Socket timeout override for this call.
    """

    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    token: CancellationToken | None = None
    timeout_s: float | None = None


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Raw HTTP response returned by a transport."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON; an empty body decodes to ``None``."""
        if not self.body.strip():
            return None
        return json.loads(self.body.decode("utf-8"))


class FetchTransport(Protocol):
    """Cancellation-aware network call primitive."""

    async def __call__(self, url: str, request: TransportRequest) -> TransportResponse:
        ...


class UrllibTransport:
    """
    Default transport running ``urllib`` calls in a worker thread.

    The blocking call cannot be interrupted; when the request token fires the
    transport stops waiting and raises ``OperationCancelledError`` while the
    thread finishes in the background.
    """

    def __init__(self, *, timeout_s: float = 30.0, user_agent: str | None = None) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._timeout_s = timeout_s
        self._user_agent = user_agent

    async def __call__(self, url: str, request: TransportRequest) -> TransportResponse:
        token = request.token
        if token is None:
            return await asyncio.to_thread(self.send, url, request)

        token.raise_if_cancelled()
        call = asyncio.ensure_future(asyncio.to_thread(self.send, url, request))
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {call, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not call.done():
                call.cancel()

        if call not in done:
            logger.debug("Stopped waiting for %s %s: token triggered", request.method, url)
            raise OperationCancelledError(token.reason or "request cancelled")
        return call.result()

    def send(self, url: str, request: TransportRequest) -> TransportResponse:
        headers = dict(request.headers)
        if self._user_agent and not has_header(headers, "User-Agent"):
            headers["User-Agent"] = self._user_agent
        req = urllib.request.Request(
            url,
            data=request.body,
            method=request.method,
            headers=headers,
        )
        timeout = request.timeout_s or self._timeout_s
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
                return TransportResponse(
                    status=resp.status,
                    body=resp.read(),
                    headers=dict(resp.headers.items()),
                )
        except urllib.error.HTTPError as e:
            body = b""
            try:
                body = e.read()
            except Exception:  # noqa: BLE001
                body = b""
            return TransportResponse(
                status=e.code,
                body=body,
                headers=dict(e.headers.items()) if e.headers is not None else {},
            )
        except OSError as e:
            reason = getattr(e, "reason", e)
            raise NetworkError(f"Network error calling '{url}': {reason}") from e


def has_header(headers: dict[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


_DEFAULT_TRANSPORT: UrllibTransport | None = None
_DEFAULT_TRANSPORT_LOCK = threading.Lock()


def get_default_transport() -> UrllibTransport:
    """Return the process-wide default transport."""
    global _DEFAULT_TRANSPORT
    if _DEFAULT_TRANSPORT is not None:
        return _DEFAULT_TRANSPORT
    with _DEFAULT_TRANSPORT_LOCK:
        if _DEFAULT_TRANSPORT is None:
            settings = EquerySettings.from_env()
            _DEFAULT_TRANSPORT = UrllibTransport(
                timeout_s=settings.http_timeout_s,
                user_agent=settings.user_agent,
            )
    return _DEFAULT_TRANSPORT


def reset_default_transport() -> None:
    """Drop the cached default transport (for tests)."""
    global _DEFAULT_TRANSPORT
    with _DEFAULT_TRANSPORT_LOCK:
        _DEFAULT_TRANSPORT = None
