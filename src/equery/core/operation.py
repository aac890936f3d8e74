"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Shared operation: one execution of a unit of work fanned out to N observers.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..cancellation import CancellationToken
from ..errors import (
    FetchTimeoutError,
    NetworkError,
    OperationCancelledError,
    is_cancellation,
)
from ..transport import TransportRequest, get_default_transport, has_header
from ..types import (
    CallableEndpoint,
    FetchConfig,
    FetchContext,
    FetchResult,
    ResolvedEndpoint,
)

logger = logging.getLogger("equery.operation")

T = TypeVar("T")

CompleteListener = Callable[[FetchResult[Any]], None]
ErrorListener = Callable[[BaseException], None]
StartGate = Callable[["SharedOperation[Any]"], "SharedOperation[Any]"]


@dataclass(slots=True)
class _Execution:
    """Bookkeeping for one execution attempt."""

    token: CancellationToken
    timeout_error: FetchTimeoutError | None = None
    timed_out: bool = False
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class SharedOperation(Generic[T]):
    """
    Runs one unit of work on behalf of every observer referencing it.

    The operation owns the result snapshot, the reference count and the
    completion/error listener lists. Listeners registered before settlement
    are notified exactly once from the execution task and then dropped;
    listeners registered after settlement receive the snapshot on the next
    loop step instead.

    An optional start gate lets an owning registry decide, at ``execute()``
    time, whether this operation runs or defers to another one.
    """

    def __init__(
        self,
        endpoint: ResolvedEndpoint,
        config: FetchConfig | None = None,
        *,
        start_gate: StartGate | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.endpoint = endpoint
        self.config = config or FetchConfig()
        self.result_state: FetchResult[T] = FetchResult()
        self._complete_listeners: list[CompleteListener] = []
        self._error_listeners: list[ErrorListener] = []
        self._ref_count = 0
        self._execution: _Execution | None = None
        self._task: asyncio.Task[FetchResult[T]] | None = None
        self._start_gate = start_gate
        self._gating = False

    @property
    def ref_count(self) -> int:
        return self._ref_count

    @property
    def listener_count(self) -> int:
        """Number of pending completion and error listeners."""
        return len(self._complete_listeners) + len(self._error_listeners)

    @property
    def token(self) -> CancellationToken | None:
        """Cancellation token of the in-flight execution, if any."""
        return self._execution.token if self._execution is not None else None

    @property
    def is_aborting(self) -> bool:
        """Whether the in-flight execution was cancelled but has not settled yet."""
        return (
            self.result_state.is_loading
            and self._execution is not None
            and self._execution.token.cancelled
        )

    def add_ref(self) -> None:
        self._ref_count += 1

    def remove_ref(self) -> None:
        self._ref_count -= 1
        if self._ref_count <= 0:
            self._hard_cancel()

    def _hard_cancel(self) -> None:
        execution = self._execution
        if self.result_state.is_loading and execution is not None:
            logger.debug("Operation %s has no observers left; cancelling", self.id[:8])
            execution.token.cancel("all observers cancelled")

    def execute(self) -> "SharedOperation[Any]":
        """
        Start the work unless it is already in flight.

        Returns the operation that carries the work: this one, or the
        operation the start gate deferred to.
        """
        if self._start_gate is not None:
            # Listeners the gate attaches belong to the run about to start,
            # even when the previous run already settled.
            self._gating = True
            try:
                target = self._start_gate(self)
            finally:
                self._gating = False
            if target is not self:
                return target
        if self.result_state.is_loading:
            return self
        self._start()
        return self

    def _start(self) -> None:
        loop = asyncio.get_running_loop()
        execution = _Execution(token=CancellationToken())
        timeout_s = self.config.timeout_s
        if timeout_s is not None and timeout_s > 0:
            execution.timeout_error = FetchTimeoutError(timeout_s)
            execution.timer = loop.call_later(timeout_s, self._expire, execution)

        self._execution = execution
        self.result_state = FetchResult.loading(self.result_state.data)
        self._task = loop.create_task(self._run(execution))
        logger.debug("Operation %s started (timeout_s=%s)", self.id[:8], timeout_s)

    @staticmethod
    def _expire(execution: _Execution) -> None:
        execution.timer = None
        execution.timed_out = True
        execution.token.cancel("timeout")

    async def _run(self, execution: _Execution) -> FetchResult[T]:
        token = execution.token
        try:
            data = await self._invoke(token)
            execution.cancel_timer()
            if token.cancelled:
                if execution.timed_out and execution.timeout_error is not None:
                    raise execution.timeout_error
                raise OperationCancelledError(token.reason or "operation cancelled")
        except (Exception, asyncio.CancelledError) as error:
            execution.cancel_timer()
            result = self._classify_failure(execution, error)
            self._finish(execution, result)
            current = asyncio.current_task()
            if (
                isinstance(error, asyncio.CancelledError)
                and current is not None
                and current.cancelling()
            ):
                raise
        else:
            result = FetchResult.success(data)
            self._finish(execution, result)
        return result

    @staticmethod
    def _classify_failure(execution: _Execution, error: BaseException) -> FetchResult[Any]:
        if execution.timed_out and execution.timeout_error is not None:
            return FetchResult.failure(execution.timeout_error)
        if execution.token.cancelled or is_cancellation(error):
            return FetchResult.canceled()
        return FetchResult.failure(error)

    async def _invoke(self, token: CancellationToken) -> Any:
        endpoint = self.endpoint
        if isinstance(endpoint, CallableEndpoint):
            result = endpoint.fn(FetchContext(token=token))
            if inspect.isawaitable(result):
                result = await result
            return result
        return await self._request(endpoint.url, token)

    async def _request(self, url: str, token: CancellationToken) -> Any:
        config = self.config
        headers = dict(config.headers or {})
        payload: bytes | None = None
        if config.body is not None:
            if not has_header(headers, "Content-Type"):
                headers["Content-Type"] = "application/json"
            payload = json.dumps(config.body).encode("utf-8")

        transport = config.transport or get_default_transport()
        response = await transport(
            url,
            TransportRequest(
                method=config.resolved_method,
                headers=headers,
                body=payload,
                token=token,
            ),
        )
        if not response.ok:
            raise NetworkError(
                f"request failed with status {response.status}",
                status=response.status,
            )
        parsed = response.json()
        if inspect.isawaitable(parsed):
            parsed = await parsed
        return parsed

    def _finish(self, execution: _Execution, result: FetchResult[T]) -> None:
        if self._execution is execution:
            self._execution = None
        self.result_state = result

        complete_listeners = self._complete_listeners
        error_listeners = self._error_listeners
        self._complete_listeners = []
        self._error_listeners = []

        logger.debug(
            "Operation %s settled (success=%s error=%s canceled=%s)",
            self.id[:8],
            result.is_success,
            result.is_error,
            result.is_canceled,
        )
        if result.is_error and result.error is not None:
            for listener in error_listeners:
                self._call_listener(listener, result.error)
        for listener in complete_listeners:
            self._call_listener(listener, result)

    def _call_listener(self, listener: Callable[[Any], None], value: Any) -> None:
        try:
            listener(value)
        except Exception:
            logger.exception("Listener failed for operation %s", self.id[:8])

    def on_complete(self, listener: CompleteListener, *, first: bool = False) -> None:
        """
        Register a completion listener.

        After settlement the snapshot is delivered on the next loop step and
        the listener is not retained. `first` places the listener ahead of
        those already registered.
        """
        snapshot = self.result_state
        if snapshot.is_settled and not self._gating:
            asyncio.get_running_loop().call_soon(self._call_listener, listener, snapshot)
            return
        if first:
            self._complete_listeners.insert(0, listener)
        else:
            self._complete_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        """Register an error listener; late registration fires only for error snapshots."""
        snapshot = self.result_state
        if snapshot.is_settled and not self._gating:
            if snapshot.is_error and snapshot.error is not None:
                asyncio.get_running_loop().call_soon(
                    self._call_listener, listener, snapshot.error
                )
            return
        self._error_listeners.append(listener)

    def remove_listener(self, listener: Callable[[Any], None]) -> None:
        """Detach a listener from both lists (no-op if absent)."""
        self._complete_listeners = [cb for cb in self._complete_listeners if cb != listener]
        self._error_listeners = [cb for cb in self._error_listeners if cb != listener]

    def get_result_snapshot(self) -> FetchResult[T]:
        return self.result_state

    def get_future(self) -> asyncio.Task[FetchResult[T]] | None:
        """Task resolving to the terminal snapshot; ``None`` if never executed."""
        return self._task

    def __repr__(self) -> str:
        return (
            f"SharedOperation(id={self.id[:8]}, refs={self._ref_count}, "
            f"loading={self.result_state.is_loading})"
        )
