"""Process exit hook.

Holds the single graceful-termination handler of the process. The handler
runs once, on SIGINT/SIGTERM delivered through the asyncio loop or on an
explicit ``trigger()``, and receives a completion callback it must call
before the process is allowed to exit.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from contextlib import suppress

logger = logging.getLogger(__name__)

ExitHandler = Callable[[Callable[[], None]], object]

EXIT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ExitHook:
    """Single-handler graceful termination facility."""

    def __init__(self) -> None:
        self._handler: ExitHandler | None = None
        self._triggered = False
        self._completed = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def installed(self) -> bool:
        return self._handler is not None

    @property
    def triggered(self) -> bool:
        return self._triggered

    @property
    def completed(self) -> bool:
        return self._completed.is_set()

    @property
    def attached(self) -> bool:
        """Whether SIGINT/SIGTERM are currently routed to this hook."""
        return self._loop is not None

    def install(self, handler: ExitHandler) -> bool:
        """Register the exit handler.

        Only the first registration is kept.

        Returns:
            True if the handler was registered
        """
        if self._handler is not None:
            logger.debug("Exit hook already installed, ignoring handler")
            return False
        self._handler = handler
        return True

    def attach_signals(self, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """Route SIGINT/SIGTERM on the loop to ``trigger``.

        Returns:
            True if the signals were attached by this call, False if they
            were already routed to the hook on this loop
        """
        loop = loop or asyncio.get_running_loop()
        if self._loop is loop:
            return False
        self.detach_signals()
        self._loop = loop
        for sig in EXIT_SIGNALS:
            with suppress(NotImplementedError):
                loop.add_signal_handler(sig, self._on_signal, sig)
        return True

    def detach_signals(self) -> None:
        if self._loop is None:
            return
        for sig in EXIT_SIGNALS:
            with suppress(NotImplementedError, RuntimeError):
                self._loop.remove_signal_handler(sig)
        self._loop = None

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, starting graceful shutdown")
        self.trigger()

    def trigger(self) -> None:
        """Run the exit handler. Only the first call has an effect."""
        if self._triggered:
            logger.debug("Exit hook already triggered")
            return
        self._triggered = True

        if self._handler is None:
            self._complete()
            return

        self._handler(self._complete)

    def _complete(self) -> None:
        if self._completed.is_set():
            return
        logger.info("Graceful shutdown complete")
        self._completed.set()

    async def wait(self) -> None:
        """Wait until the exit handler has signalled completion."""
        await self._completed.wait()

    def reset(self) -> None:
        """Forget handler and state (for testing)."""
        self.detach_signals()
        self._handler = None
        self._triggered = False
        self._completed = asyncio.Event()


exit_hook = ExitHook()
