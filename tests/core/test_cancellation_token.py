from __future__ import annotations

import asyncio

import pytest

from equery import CancellationToken, OperationCancelledError


def run_async(coro):
    return asyncio.run(coro)


def test_cancel_notifies_subscribers_once():
    token = CancellationToken()
    calls = []
    token.on_cancel(lambda: calls.append("a"))
    token.on_cancel(lambda: calls.append("b"))

    token.cancel("stop")
    token.cancel("again")

    assert calls == ["a", "b"]
    assert token.cancelled
    assert token.reason == "stop"


def test_subscribing_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel()
    calls = []
    token.on_cancel(lambda: calls.append(True))
    assert calls == [True]


def test_unsubscribe_removes_callback():
    token = CancellationToken()
    calls = []
    unsubscribe = token.on_cancel(lambda: calls.append(True))
    unsubscribe()
    unsubscribe()
    token.cancel()
    assert calls == []


def test_failing_callback_does_not_block_others():
    token = CancellationToken()
    calls = []

    def broken() -> None:
        raise RuntimeError("callback bug")

    token.on_cancel(broken)
    token.on_cancel(lambda: calls.append(True))
    token.cancel()
    assert calls == [True]


def test_raise_if_cancelled():
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel("gone")
    with pytest.raises(OperationCancelledError, match="gone"):
        token.raise_if_cancelled()


def test_wait_resumes_when_cancelled():
    async def scenario() -> None:
        token = CancellationToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1.0)
        await asyncio.wait_for(token.wait(), timeout=1.0)

    run_async(scenario())
