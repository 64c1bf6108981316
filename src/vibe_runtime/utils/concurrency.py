"""Async primitives shared by the scheduler, dispatcher and sandbox runner."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class OperationTimeoutError(TimeoutError):
    """Raised by :func:`run_with_timeout` once the deadline passes."""

    def __init__(self, message: str, *, timeout_ms: int) -> None:
        super().__init__(message)
        self.timeout_ms = timeout_ms


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``.

    Callbacks registered with :meth:`on_cancel` run once, synchronously, when
    the token is tripped. Subprocess runners use them to kill process trees.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], object]] = []
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:  # noqa: BLE001
                logger.warning("cancel_callback_failed", error=str(exc))

    def on_cancel(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""

        if self._event.is_set():
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            with suppress(ValueError):
                self._callbacks.remove(callback)

        return _remove

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError(self._reason or "operation cancelled")


class BoundedSemaphore:
    """``asyncio.Semaphore`` wrapper that reports how many permits are in use."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        return self._peak

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1
        self._peak = max(self._peak, self._in_use)

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def snapshot(self) -> dict[str, int]:
        return {
            "limit": self._limit,
            "in_use": self._in_use,
            "available": self._limit - self._in_use,
            "peak": self._peak,
        }


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_ms: int,
    cancel_token: CancellationToken | None = None,
    *,
    timeout_message: str | None = None,
) -> T:
    """Await ``coroutine`` for at most ``timeout_ms`` milliseconds.

    On expiry the inner task is cancelled (not merely abandoned), the
    ``cancel_token`` is tripped so cooperating work can stop, and
    :class:`OperationTimeoutError` is raised. An externally tripped token
    cancels the work and raises ``asyncio.CancelledError``.
    """
    if timeout_ms <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_ms must be > 0")

    token = cancel_token or CancellationToken()
    if token.is_cancelled:
        _close_unscheduled_coroutine(coroutine)
        raise asyncio.CancelledError(token.reason or "operation cancelled")

    task: asyncio.Task[T] = asyncio.create_task(_await_value(coroutine))
    cancel_wait_task = asyncio.create_task(token.wait())

    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            timeout=timeout_ms / 1000,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if task in done:
            return await task

        if cancel_wait_task in done and token.is_cancelled:
            await _cancel_and_wait(task)
            raise asyncio.CancelledError(token.reason or "operation cancelled")

        message = timeout_message or f"operation timed out after {timeout_ms}ms"
        token.cancel(message)
        await _cancel_and_wait(task)
        raise OperationTimeoutError(message, timeout_ms=timeout_ms)
    except asyncio.CancelledError:
        if not task.done():
            await _cancel_and_wait(task)
        raise
    finally:
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


async def _cancel_and_wait(task: asyncio.Task[T]) -> None:
    task.cancel()
    with suppress(asyncio.CancelledError, Exception):
        await task


async def _await_value(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects rejected before scheduling so CPython does
    # not emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "OperationTimeoutError",
    "run_with_timeout",
]
