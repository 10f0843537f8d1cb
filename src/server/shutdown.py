"""One-shot shutdown trigger for the serving loop.

Handles both Windows (``signal.signal``) and Unix
(``loop.add_signal_handler``) signal registration. However many signals or
stop requests arrive, the trigger fires once.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

logger = logging.getLogger(__name__)

HANDLED_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class ShutdownSignal:
    """Fires once on SIGINT / SIGTERM or when a linked stop event is set.

    Usage::

        shutdown = ShutdownSignal()
        shutdown.install()
        shutdown.link(stop_event)
        await shutdown.wait()
        shutdown.uninstall()
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_handlers: list[signal.Signals] = []
        self._original_handlers: dict[signal.Signals, Any] = {}
        self._watchers: list[asyncio.Task[None]] = []

    @property
    def should_stop(self) -> bool:
        """Whether the trigger has fired."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """What fired the trigger, or ``None`` while still serving."""
        return self._reason

    def trigger(self, reason: str = "shutdown requested") -> bool:
        """Fire the trigger.

        Returns:
            ``True`` for the call that fired it, ``False`` for every later one.
        """
        if self._event.is_set():
            logger.debug("Shutdown already in progress, ignoring %s", reason)
            return False
        self._reason = reason
        self._event.set()
        logger.warning("Received %s -- initiating graceful shutdown", reason)
        return True

    async def wait(self) -> None:
        """Block until the trigger fires."""
        await self._event.wait()

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register handlers for SIGINT and SIGTERM.

        On Windows, uses ``signal.signal`` directly.
        On Unix, uses ``loop.add_signal_handler``, falling back to
        ``signal.signal`` when the loop does not support it. Outside the
        main thread no handler can be registered; the trigger then only
        fires through :meth:`trigger` or a linked event.
        """
        self._loop = loop or asyncio.get_running_loop()
        if sys.platform != "win32":
            try:
                for sig in HANDLED_SIGNALS:
                    self._loop.add_signal_handler(sig, self._async_handler, sig)
                    self._loop_handlers.append(sig)
                return
            except (NotImplementedError, RuntimeError):
                # Loop without signal support -- fall back to signal.signal
                self._remove_loop_handlers()

        try:
            for sig in HANDLED_SIGNALS:
                self._original_handlers[sig] = signal.signal(sig, self._signal_handler)
        except ValueError:
            logger.warning("Not in the main thread; OS signals will not stop the server")
            self._restore_original_handlers()

    def link(self, event: asyncio.Event) -> None:
        """Fire the trigger when *event* is set."""

        async def _watch() -> None:
            await event.wait()
            self.trigger("stop request")

        self._watchers.append(asyncio.create_task(_watch()))

    def uninstall(self) -> None:
        """Remove signal handlers and stop watching linked events."""
        self._remove_loop_handlers()
        self._restore_original_handlers()
        for task in self._watchers:
            task.cancel()
        self._watchers.clear()

    def _async_handler(self, signum: int) -> None:
        """Loop signal handler (Unix)."""
        self.trigger(signal.Signals(signum).name)

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows / fallback)."""
        name = signal.Signals(signum).name
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.trigger, name)
        else:
            self.trigger(name)

    def _remove_loop_handlers(self) -> None:
        if self._loop is None:
            self._loop_handlers.clear()
            return
        for sig in self._loop_handlers:
            self._loop.remove_signal_handler(sig)
        self._loop_handlers.clear()

    def _restore_original_handlers(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
