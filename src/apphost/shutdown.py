"""Graceful shutdown protocol.

At teardown the application emits ``application:shutdown`` once. Every
subscriber receives its own acknowledgment callback and calls it when its
cleanup is finished, right away or after asynchronous work. Once all
subscribers present at teardown time have acknowledged, the server is
closed and the process is told it may exit.

There is no timeout: a subscriber that never acknowledges stalls shutdown.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .application import Application

logger = logging.getLogger(__name__)

SHUTDOWN_EVENT = "application:shutdown"

Acknowledge = Callable[[], None]


class BarrierState(str, Enum):
    """Shutdown barrier states."""

    IDLE = "idle"
    AWAITING_ACKS = "awaiting_acks"
    CLOSING = "closing"
    DONE = "done"


class ShutdownBarrier:
    """N-of-N acknowledgment gate.

    Hands out one-shot acknowledgers; when ``expected`` of them have been
    called, runs ``close`` and then ``on_complete``, each exactly once.
    """

    def __init__(self, expected: int, close: Callable[[], None], on_complete: Callable[[], None]) -> None:
        if expected < 0:
            raise ValueError("expected acknowledgments cannot be negative")
        self.expected = expected
        self.received = 0
        self.state = BarrierState.IDLE
        self._close = close
        self._on_complete = on_complete
        self._issued = 0

    def start(self) -> None:
        """Open the barrier. Completes at once when nothing is expected."""
        if self.state is not BarrierState.IDLE:
            raise RuntimeError(f"Shutdown barrier already started ({self.state.value})")

        if self.expected == 0:
            logger.debug("No shutdown listeners, completing immediately")
            self._complete()
            return

        self.state = BarrierState.AWAITING_ACKS
        logger.info(f"Waiting for {self.expected} shutdown acknowledgment(s)")

    def acknowledger(self) -> Acknowledge:
        """Create a one-shot acknowledgment callback.

        Repeated calls of the same callback are ignored.
        """
        self._issued += 1
        token = self._issued
        acknowledged = False

        def acknowledge() -> None:
            nonlocal acknowledged
            if acknowledged:
                logger.warning(f"Duplicate shutdown acknowledgment ignored (listener {token})")
                return
            acknowledged = True
            self._acknowledge()

        return acknowledge

    def _acknowledge(self) -> None:
        if self.state is not BarrierState.AWAITING_ACKS:
            logger.warning(f"Shutdown acknowledgment received while {self.state.value}, ignored")
            return

        self.received += 1
        logger.debug(f"Shutdown acknowledgment {self.received}/{self.expected}")

        if self.received == self.expected:
            self._complete()

    def _complete(self) -> None:
        self.state = BarrierState.CLOSING
        try:
            self._close()
        finally:
            self.state = BarrierState.DONE
            self._on_complete()

    @property
    def done(self) -> bool:
        return self.state is BarrierState.DONE


def graceful_shutdown(app: Application, done: Callable[[], None]) -> ShutdownBarrier:
    """Run the shutdown protocol against an application.

    Args:
        app: Application being torn down
        done: Teardown-completion callback; the process may exit once called

    Returns:
        The barrier driving this shutdown
    """
    expected = app.listener_count(SHUTDOWN_EVENT)
    barrier = ShutdownBarrier(expected, close=app.close, on_complete=done)
    barrier.start()

    if expected > 0:
        app.bus.emit_with(SHUTDOWN_EVENT, barrier.acknowledger)

    return barrier
