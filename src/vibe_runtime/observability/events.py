"""In-process event bus for scheduler and dispatcher lifecycle events.

Publishing is fire-and-forget: subscriber failures are captured as
:class:`DispatchError` records and never reach the publisher. Synchronous
subscribers run inline; coroutine subscribers are scheduled on the running
loop and can be awaited with :meth:`EventBus.drain`.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass
from typing import Any, Final, cast

import structlog

from vibe_runtime.domain.events import EventType, RuntimeEvent
from vibe_runtime.domain.models import JSONValue

Subscriber = Callable[[RuntimeEvent], object]

_DEFAULT_ERROR_BUFFER: Final[int] = 1024

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting publishers."""

    event_id: str
    event_type: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    event_type: EventType | None
    callback: Subscriber


class EventBus:
    """Explicit observer list with a bounded replay buffer."""

    def __init__(self, *, buffer_size: int = 512) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")
        self._buffer = deque[RuntimeEvent](maxlen=buffer_size)
        self._subscriptions: dict[int, _Subscription] = {}
        self._pending_async_tasks: set[asyncio.Task[None]] = set()
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)
        self._next_token = 1
        self._lock = threading.RLock()

    def subscribe(self, event_type: str | EventType | None, callback: Subscriber) -> int:
        """Subscribe to one event type, or to every event when ``event_type`` is ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        normalized = None if event_type is None else EventType(event_type)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(token, normalized, callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a subscription. Returns ``True`` when the token existed."""

        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def publish(self, event: RuntimeEvent) -> tuple[DispatchError, ...]:
        """Deliver ``event`` to matching subscribers and return captured failures."""

        if not isinstance(event, RuntimeEvent):
            raise ValueError(f"event must be RuntimeEvent, got {type(event).__name__}")
        with self._lock:
            self._buffer.append(event)
            subscriptions = tuple(self._subscriptions.values())

        errors: list[DispatchError] = []
        for subscription in subscriptions:
            if subscription.event_type is not None and subscription.event_type != event.event_type:
                continue
            error = self._invoke(subscription.callback, event)
            if error is not None:
                errors.append(error)

        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)
        return tuple(errors)

    def emit(
        self,
        event_type: str | EventType,
        payload: Mapping[str, JSONValue],
        *,
        correlation_id: str | None = None,
    ) -> RuntimeEvent:
        """Build and publish an event; returns the published envelope."""

        event = RuntimeEvent(
            event_type=EventType(event_type),
            payload=dict(payload),
            correlation_id=correlation_id,
        )
        self.publish(event)
        return event

    async def drain(self) -> tuple[DispatchError, ...]:
        """Await coroutine subscribers scheduled by earlier publishes."""

        with self._lock:
            pending = tuple(self._pending_async_tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        with self._lock:
            return tuple(self._dispatch_errors)

    def replay(
        self, *, event_type: str | EventType | None = None, limit: int | None = None
    ) -> tuple[RuntimeEvent, ...]:
        """Return buffered events in publish order."""

        type_filter = None if event_type is None else EventType(event_type)
        with self._lock:
            events = [
                event
                for event in self._buffer
                if type_filter is None or event.event_type == type_filter
            ]
        if limit is not None:
            if limit <= 0:
                return ()
            events = events[-limit:]
        return tuple(events)

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._dispatch_errors)

    def _invoke(self, callback: Subscriber, event: RuntimeEvent) -> DispatchError | None:
        try:
            result = callback(event)
            if inspect.isawaitable(result):
                self._schedule(cast("Coroutine[Any, Any, None]", result), callback, event)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "event_subscriber_failed",
                event_type=event.event_type.value,
                target=_callback_name(callback),
                error=str(exc),
            )
            return _dispatch_error(event, callback, exc)

    def _schedule(
        self,
        awaitable: Coroutine[Any, Any, None],
        callback: Subscriber,
        event: RuntimeEvent,
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop in this thread: run the coroutine to completion here.
            asyncio.run(_await(awaitable))
            return

        task = loop.create_task(_await(awaitable))
        with self._lock:
            self._pending_async_tasks.add(task)

        def _done(done: asyncio.Task[None]) -> None:
            with self._lock:
                self._pending_async_tasks.discard(done)
            if done.cancelled():
                return
            exc = done.exception()
            if isinstance(exc, Exception):
                with self._lock:
                    self._dispatch_errors.append(_dispatch_error(event, callback, exc))

        task.add_done_callback(_done)


async def _await(awaitable: Coroutine[Any, Any, None]) -> None:
    await awaitable


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


def _dispatch_error(event: RuntimeEvent, callback: object, exc: Exception) -> DispatchError:
    return DispatchError(
        event_id=event.event_id,
        event_type=event.event_type.value,
        target=_callback_name(callback),
        error_type=exc.__class__.__name__,
        message=str(exc),
    )


__all__ = ["DispatchError", "EventBus", "Subscriber"]
