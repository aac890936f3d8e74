"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Per-consumer handle onto a shared operation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Generator
from typing import Any, Generic, TypeVar

from ..errors import ConfigurationError
from ..types import FetchResult
from .operation import SharedOperation

logger = logging.getLogger("equery.observer")

T = TypeVar("T")


class FetchObserver(Generic[T]):
    """
    Chainable consumer API over one ``SharedOperation``.

    Each observer holds its own listener lists and its own canceled flag.
    Cancelling an observer releases its reference on the operation and
    resolves its own listeners with a canceled result; the underlying work is
    only aborted once every observer of the operation has cancelled.

    Observers are awaitable::

        result = await client.use_fetch("/users/1")
    """

    def __init__(self, operation: SharedOperation[T]) -> None:
        self._operation = operation
        self._canceled = False
        self._complete_listeners: list[Callable[[FetchResult[T]], None]] = []
        self._error_listeners: list[Callable[[BaseException], None]] = []
        self._relays_attached = False
        operation.add_ref()
        self._attach_relays()

    @property
    def operation(self) -> SharedOperation[T]:
        return self._operation

    @property
    def is_canceled(self) -> bool:
        return self._canceled

    @property
    def listener_count(self) -> int:
        """Number of this observer's own pending listeners."""
        return len(self._complete_listeners) + len(self._error_listeners)

    @property
    def operation_listener_count(self) -> int:
        """Number of listeners pending on the shared operation."""
        return self._operation.listener_count

    def get_id(self) -> str:
        """Identity of the shared operation; equal ids mean shared work."""
        return self._operation.id

    def execute(self) -> "FetchObserver[T]":
        """Start (or join) the shared work. No-op once this observer is canceled."""
        if self._canceled:
            logger.debug("Ignoring execute() on canceled observer of %s", self.get_id()[:8])
            return self
        target = self._operation.execute()
        if target is not self._operation:
            self._rebind(target)
        else:
            self._attach_relays()
        return self

    def on_complete(self, listener: Callable[[FetchResult[T]], None]) -> "FetchObserver[T]":
        """Call `listener` once with the terminal result."""
        if self._canceled:
            return self
        snapshot = self._operation.result_state
        if snapshot.is_settled:
            asyncio.get_running_loop().call_soon(_deliver, [listener], snapshot)
            return self
        self._complete_listeners.append(listener)
        self._attach_relays()
        return self

    def on_error(self, listener: Callable[[BaseException], None]) -> "FetchObserver[T]":
        """Call `listener` once with the error if the work fails."""
        if self._canceled:
            return self
        snapshot = self._operation.result_state
        if snapshot.is_settled:
            if snapshot.is_error and snapshot.error is not None:
                asyncio.get_running_loop().call_soon(_deliver, [listener], snapshot.error)
            return self
        self._error_listeners.append(listener)
        self._attach_relays()
        return self

    def cancel(self) -> None:
        """
        Abandon the operation for this observer only.

        Pending completion listeners receive a canceled result on the next
        loop step; pending error listeners are dropped. Idempotent.
        """
        if self._canceled:
            return
        self._canceled = True
        self._detach_relays()
        self._operation.remove_ref()

        listeners = self._complete_listeners
        self._complete_listeners = []
        self._error_listeners = []
        if listeners:
            asyncio.get_running_loop().call_soon(
                _deliver, listeners, FetchResult.canceled()
            )
        logger.debug(
            "Observer of %s canceled (remaining refs=%d)",
            self.get_id()[:8],
            self._operation.ref_count,
        )

    async def wait(self) -> FetchResult[T]:
        """
        Await the shared settlement.

        Raises:
            ConfigurationError: If the operation was never executed.
        """
        future = self._operation.get_future()
        if future is None:
            raise ConfigurationError("operation has not been executed")
        try:
            result = await asyncio.shield(future)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            waiter_cancelled = current is not None and current.cancelling() > 0
            if not waiter_cancelled and (self._canceled or future.cancelled()):
                return FetchResult.canceled()
            raise
        if self._canceled:
            return FetchResult.canceled()
        return result

    def as_future(self) -> asyncio.Future[FetchResult[T]]:
        """Return the settlement as an ``asyncio.Future``."""
        if self._operation.get_future() is None:
            future: asyncio.Future[FetchResult[T]] = asyncio.get_running_loop().create_future()
            future.set_exception(ConfigurationError("operation has not been executed"))
            return future
        return asyncio.ensure_future(self.wait())

    def __await__(self) -> Generator[Any, None, FetchResult[T]]:
        return self.wait().__await__()

    def _attach_relays(self) -> None:
        # Relays only track unsettled work; settled snapshots go through the
        # late-subscription path of on_complete/on_error.
        if self._relays_attached or self._canceled:
            return
        if self._operation.result_state.is_settled:
            return
        self._relays_attached = True
        self._operation.on_error(self._relay_error)
        self._operation.on_complete(self._relay_complete)

    def _detach_relays(self) -> None:
        if not self._relays_attached:
            return
        self._relays_attached = False
        self._operation.remove_listener(self._relay_error)
        self._operation.remove_listener(self._relay_complete)

    def _relay_error(self, error: BaseException) -> None:
        if self._canceled:
            return
        _deliver(list(self._error_listeners), error)

    def _relay_complete(self, result: FetchResult[T]) -> None:
        self._relays_attached = False
        if self._canceled:
            return
        listeners = self._complete_listeners
        self._complete_listeners = []
        self._error_listeners = []
        _deliver(listeners, result)

    def _rebind(self, target: SharedOperation[T]) -> None:
        previous = self._operation
        self._detach_relays()
        target.add_ref()
        self._operation = target
        previous.remove_ref()
        self._attach_relays()
        logger.debug("Observer moved from %s to %s", previous.id[:8], target.id[:8])


def _deliver(listeners: list[Callable[[Any], None]], value: Any) -> None:
    for listener in listeners:
        try:
            listener(value)
        except Exception:
            logger.exception("Observer listener failed")
