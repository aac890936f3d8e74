from __future__ import annotations

import asyncio
import io
import threading
import urllib.error
import urllib.request
from email.message import Message

import pytest

from equery import (
    CancellationToken,
    NetworkError,
    OperationCancelledError,
    TransportRequest,
    TransportResponse,
    UrllibTransport,
)
from equery.transport import get_default_transport, has_header, reset_default_transport


def run_async(coro):
    return asyncio.run(coro)


class FakeUrlopenResponse:
    def __init__(self, status: int, body: bytes) -> None:
        self.status = status
        self._body = body
        self.headers = Message()
        self.headers["Content-Type"] = "application/json"

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def test_response_helpers():
    ok = TransportResponse(status=204)
    assert ok.ok
    assert ok.json() is None
    assert TransportResponse(status=200, body=b'{"a": 1}').json() == {"a": 1}
    assert TransportResponse(status=302).ok is False
    assert TransportResponse(status=500, body=b"oops").text() == "oops"


def test_has_header_is_case_insensitive():
    assert has_header({"content-type": "x"}, "Content-Type")
    assert not has_header({"Accept": "x"}, "Content-Type")


def test_transport_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        UrllibTransport(timeout_s=0)


def test_send_builds_request_and_reads_response(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["method"] = req.get_method()
        captured["headers"] = dict(req.header_items())
        captured["data"] = req.data
        captured["timeout"] = timeout
        return FakeUrlopenResponse(200, b'{"ok": true}')

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    transport = UrllibTransport(timeout_s=5, user_agent="equery-tests")
    response = transport.send(
        "https://api.test/items",
        TransportRequest(method="POST", headers={"X-Id": "1"}, body=b"{}"),
    )

    assert response.status == 200
    assert response.json() == {"ok": True}
    assert captured["url"] == "https://api.test/items"
    assert captured["method"] == "POST"
    assert captured["data"] == b"{}"
    assert captured["timeout"] == 5
    assert captured["headers"]["User-agent"] == "equery-tests"
    assert captured["headers"]["X-id"] == "1"


def test_http_error_is_returned_as_response(monkeypatch):
    def fake_urlopen(req, timeout):
        raise urllib.error.HTTPError(
            req.full_url, 503, "unavailable", Message(), io.BytesIO(b"down")
        )

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    response = UrllibTransport().send("https://api.test/", TransportRequest())
    assert response.status == 503
    assert not response.ok
    assert response.body == b"down"


def test_connection_failure_raises_network_error(monkeypatch):
    def fake_urlopen(req, timeout):
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(NetworkError, match="connection refused"):
        UrllibTransport().send("https://api.test/", TransportRequest())


def test_call_stops_waiting_when_token_fires(monkeypatch):
    release = threading.Event()

    def blocking_send(self, url, request):
        release.wait(timeout=1.0)
        return TransportResponse(status=200)

    monkeypatch.setattr(UrllibTransport, "send", blocking_send)

    async def scenario() -> None:
        token = CancellationToken()
        transport = UrllibTransport()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel, "stop")
        try:
            with pytest.raises(OperationCancelledError):
                await asyncio.wait_for(
                    transport("https://api.test/", TransportRequest(token=token)),
                    timeout=0.5,
                )
        finally:
            release.set()

    run_async(scenario())


def test_call_returns_response_without_token(monkeypatch):
    monkeypatch.setattr(
        UrllibTransport,
        "send",
        lambda self, url, request: TransportResponse(status=201, body=b"[]"),
    )

    async def scenario() -> None:
        response = await UrllibTransport()("https://api.test/", TransportRequest())
        assert response.status == 201
        assert response.json() == []

    run_async(scenario())


def test_default_transport_reads_environment(monkeypatch):
    monkeypatch.setenv("EQUERY_HTTP_TIMEOUT_S", "7")
    monkeypatch.setenv("EQUERY_USER_AGENT", "env-agent")
    reset_default_transport()
    try:
        transport = get_default_transport()
        assert transport is get_default_transport()
        assert transport._timeout_s == 7
        assert transport._user_agent == "env-agent"
    finally:
        reset_default_transport()
