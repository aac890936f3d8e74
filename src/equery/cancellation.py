"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cooperative cancellation token shared by one execution and its observers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .errors import OperationCancelledError

logger = logging.getLogger("equery.cancellation")


class CancellationToken:
    """
    Revocable signal observed cooperatively by in-flight work.

    Triggering the token never interrupts the work; the work reacts by
    polling ``cancelled``, subscribing with ``on_cancel`` or awaiting
    ``wait()``. A token is triggered at most once and cannot be reset.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._cancelled

    @property
    def reason(self) -> str | None:
        """Reason supplied to ``cancel`` (if any)."""
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Trigger the token and notify subscribers once."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        callbacks = self._callbacks
        self._callbacks = []
        if self._event is not None:
            self._event.set()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Subscribe to the trigger.

        Invokes `callback` immediately when the token is already triggered.
        Returns a function that removes the subscription.
        """
        if self._cancelled:
            callback()
            return _noop
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    async def wait(self) -> None:
        """Suspend until the token is triggered."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise ``OperationCancelledError`` if the token was triggered."""
        if self._cancelled:
            raise OperationCancelledError(self._reason or "operation cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self._reason!r})"


def _noop() -> None:
    return None
