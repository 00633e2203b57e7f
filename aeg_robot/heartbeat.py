"""Periodic actions with error reporting and a watchdog timeout."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .const import HEARTBEAT_TIMEOUT_MULTIPLE, HEARTBEAT_TIMEOUT_OFFSET

_LOGGER = logging.getLogger(__name__)


class HeartbeatTimeoutError(Exception):
    """No action completed successfully within the watchdog timeout."""


class Heartbeat:
    """Perform an action periodically with error reporting and a timeout.

    The action loop never stops on failure; it records the error and tries
    again after the interval. A separate watchdog is re-armed by every
    successful action. If it expires first, ``failure`` is called with the
    most recent error (or a HeartbeatTimeoutError). The first success after
    a recorded error calls ``failure()`` with no argument to signal recovery.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], Awaitable[None]],
        failure: Callable[[Exception | None], None],
    ) -> None:
        self.name = name
        self.interval = interval
        self.action = action
        self.failure = failure
        self.last_error: Exception | None = None
        self._abort_watchdog: asyncio.Event | None = None
        self._action_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None

    @property
    def timeout(self) -> float:
        """Watchdog timeout, in seconds."""
        return self.interval * HEARTBEAT_TIMEOUT_MULTIPLE + HEARTBEAT_TIMEOUT_OFFSET

    def start(self) -> None:
        """Start the action loop and arm the first watchdog."""
        if self._action_task is not None:
            return
        self._action_task = asyncio.create_task(
            self._async_action_loop(), name=f"heartbeat {self.name}"
        )
        self.reset_watchdog()

    async def async_stop(self) -> None:
        """Stop the action loop and watchdog."""
        if self._abort_watchdog is not None:
            self._abort_watchdog.set()
        tasks = [task for task in (self._action_task, self._watchdog_task) if task]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._action_task = self._watchdog_task = None

    async def _async_action_loop(self) -> None:
        while True:
            try:
                await self.action()
                self.reset_watchdog()
            except Exception as err:
                _LOGGER.warning("%s failed: %s", self.name, err)
                _LOGGER.debug("%s failure details", self.name, exc_info=True)
                self.last_error = err
            await asyncio.sleep(self.interval)

    def reset_watchdog(self) -> None:
        """Abort the current watchdog, report any recovery, and re-arm."""
        if self._abort_watchdog is not None:
            self._abort_watchdog.set()
        if self.last_error is not None:
            self.last_error = None
            self.failure(None)

        abort = self._abort_watchdog = asyncio.Event()
        self._watchdog_task = asyncio.create_task(
            self._async_watchdog(abort), name=f"watchdog {self.name}"
        )

    async def _async_watchdog(self, abort: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(abort.wait(), self.timeout)
        except TimeoutError:
            if self.last_error is None:
                self.last_error = HeartbeatTimeoutError(f"{self.name} watchdog timeout")
            self.failure(self.last_error)
