"""Event Bus - named-event pub/sub owned by the application.

Publishing is synchronous: every subscriber registered for an event name is
called in subscription order before ``emit`` returns. Coroutine subscribers
are scheduled on the running loop so they can finish their work at their
own pace; publishing to them from outside a loop drops them with an error
log.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# Type for event callbacks
EventCallback = Callable[..., Any]


class EventBus:
    """Simple named-event bus.

    Subscriptions are kept per event name. Errors raised by a subscriber are
    logged and do not prevent delivery to the remaining subscribers.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventCallback]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event_name: str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to an event.

        Args:
            event_name: Event name (e.g., "application:shutdown")
            callback: Called with the event payload

        Returns:
            Unsubscribe function
        """
        self._subscriptions.setdefault(event_name, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscriptions.get(event_name)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def listeners(self, event_name: str) -> list[EventCallback]:
        """Snapshot of the subscribers for an event."""
        return list(self._subscriptions.get(event_name, []))

    def listener_count(self, event_name: str) -> int:
        return len(self._subscriptions.get(event_name, []))

    def emit(self, event_name: str, payload: Any = None) -> int:
        """Publish an event to all current subscribers.

        Args:
            event_name: Event name
            payload: Value passed to every subscriber

        Returns:
            Number of subscribers notified
        """
        return self.emit_with(event_name, lambda: payload)

    def emit_with(self, event_name: str, make_payload: Callable[[], Any]) -> int:
        """Publish an event, building a private payload for each subscriber.

        Used when every subscriber must receive its own value, such as a
        one-shot acknowledgment callback.

        Args:
            event_name: Event name
            make_payload: Factory called once per subscriber

        Returns:
            Number of subscribers notified
        """
        # Copy to avoid mutation during iteration
        callbacks = self.listeners(event_name)

        for callback in callbacks:
            try:
                result = callback(make_payload())
                if inspect.isawaitable(result):
                    self._schedule(event_name, result)
            except Exception:
                logger.exception(f"Error in subscriber for {event_name}")

        return len(callbacks)

    def _schedule(self, event_name: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.error(f"Async subscriber for {event_name} dropped: no running event loop")
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)

        def _done(finished: asyncio.Task[Any]) -> None:
            self._tasks.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(
                    f"Async subscriber for {event_name} failed",
                    exc_info=finished.exception(),
                )

        task.add_done_callback(_done)

    def reset(self) -> None:
        """Drop every subscription (for testing)."""
        self._subscriptions = {}
