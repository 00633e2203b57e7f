"""Controllers that drive a robot towards a requested target state."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from .api import AEGApiError
from .const import (
    TIMEOUT_APPLIED_MIN,
    TIMEOUT_APPLIED_POLL_MULTIPLE,
    TIMEOUT_REQUEST_MIN,
    TIMEOUT_REQUEST_POLL_MULTIPLE,
)
from .events import LifecycleEvent, LifecycleKind
from .models import Activity, CleaningCommand, PowerMode, SimpleActivity

if TYPE_CHECKING:
    from .robot import AEGRobot

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T", CleaningCommand, PowerMode)


class WaitOutcome(Enum):
    """Reason that a wait for a controller operation ended."""

    COMPLETED = "completed"
    ABORTED = "aborted"
    TIMEOUT = "timeout"


async def async_select(
    awaitable: Awaitable[object], abort: asyncio.Event, timeout: float
) -> WaitOutcome:
    """Wait for an awaitable, an abort signal, or a timeout.

    Any exception raised by the awaitable is propagated. Whichever of the
    awaitable or the abort wait is still pending afterwards is cancelled.
    """
    task = asyncio.ensure_future(awaitable)
    abort_task = asyncio.ensure_future(abort.wait())
    try:
        done, _ = await asyncio.wait(
            {task, abort_task},
            timeout=max(timeout, 0),
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        pending = [t for t in (task, abort_task) if not t.done()]
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if task in done:
        task.result()
        return WaitOutcome.COMPLETED
    if abort_task in done:
        return WaitOutcome.ABORTED
    return WaitOutcome.TIMEOUT


class AEGRobotCtrl(ABC, Generic[_T]):
    """Abstract controller for one property of an AEG RX9 robot.

    A call to async_set() issues the command for the target, then waits for
    the polled status to confirm it. A newer target supersedes (rather than
    queues behind) one that is still in flight.
    """

    def __init__(self, robot: AEGRobot, name: str) -> None:
        self.robot = robot
        self.name = name
        poll_interval = robot.config.poll_intervals.status_seconds
        self.request_timeout = max(
            poll_interval * TIMEOUT_REQUEST_POLL_MULTIPLE, TIMEOUT_REQUEST_MIN
        )
        self.applied_timeout = max(
            poll_interval * TIMEOUT_APPLIED_POLL_MULTIPLE, TIMEOUT_APPLIED_MIN
        )

        # The pending target, and the signal to abandon waiting for it
        self.target: _T | None = None
        self._abort: asyncio.Event | None = None

        self._setter_tasks: set[asyncio.Task[None]] = set()
        robot.events.register_callback(
            LifecycleEvent, self._on_pre_update, LifecycleKind.PRE_UPDATE
        )

    def _on_pre_update(self, _event: LifecycleEvent) -> None:
        if self.target is not None:
            self.override_status(self.target)

    def make_setter(self) -> Callable[[_T], None]:
        """Return a fire-and-forget set method bound to this controller."""

        def setter(target: _T) -> None:
            task = asyncio.create_task(self.async_set(target))
            self._setter_tasks.add(task)
            task.add_done_callback(self._setter_tasks.discard)

        return setter

    async def async_set(self, target: _T) -> None:
        """Request a change to the robot; never raises for API failures."""
        description = self.description(target)
        log_name = self.robot.log_name

        # No new action required if already setting the requested state
        if target == self.target:
            _LOGGER.debug("[%s] Ignoring duplicate request to %s", log_name, description)
            return

        # No action required if already in the required state
        if self.is_target_set(target):
            _LOGGER.debug("[%s] Ignoring unnecessary request to %s", log_name, description)
            return

        # Temporarily override the reported status
        self.target = target
        self.robot.update_derived_and_emit()

        # Replace any previous unfinished request
        if self._abort is not None:
            self._abort.set()
            _LOGGER.debug("[%s] Changing pending request to %s", log_name, description)
            return

        _LOGGER.debug("[%s] New request to %s", log_name, description)
        try:
            while True:
                self._abort = asyncio.Event()
                target = self.target
                await self._async_try_set(target, self._abort)
                if target == self.target:
                    break
        except AEGApiError as err:
            _LOGGER.error("[%s] Setting %s failed: %s", log_name, self.name, err)
        finally:
            # Clear the status override
            self._abort = None
            self.target = None
            self.robot.update_derived_and_emit()

    async def _async_try_set(self, target: _T, abort: asyncio.Event) -> None:
        description = self.description(target)
        log_name = self.robot.log_name
        _LOGGER.info("[%s] Attempting to %s", log_name, description)
        result = "Failed to"
        try:
            outcome = await async_select(
                self.async_set_target(target), abort, self.request_timeout
            )
            if outcome is WaitOutcome.COMPLETED:
                outcome = await self._async_wait_applied(target, abort)
            result = {
                WaitOutcome.COMPLETED: "Successfully",
                WaitOutcome.ABORTED: "Aborted",
                WaitOutcome.TIMEOUT: "Timed out",
            }[outcome]
        finally:
            _LOGGER.info("[%s] %s %s", log_name, result, description)

    async def _async_wait_applied(self, target: _T, abort: asyncio.Event) -> WaitOutcome:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.applied_timeout
        while not self.is_target_set(target):
            outcome = await async_select(
                self.robot.next_update(), abort, deadline - loop.time()
            )
            if outcome is not WaitOutcome.COMPLETED:
                return outcome
        return WaitOutcome.COMPLETED

    def description(self, target: _T) -> str:
        """Describe setting the target value."""
        return f'set {self.name} to "{target}"'

    @abstractmethod
    def is_target_set(self, target: _T) -> bool | None:
        """Check whether the robot is already in the requested state."""

    @abstractmethod
    async def async_set_target(self, target: _T) -> None:
        """Issue the API command for the requested state."""

    @abstractmethod
    def override_status(self, target: _T) -> None:
        """Override the status while a requested change is pending."""


# Whether each activity satisfies each cleaning command
#                                     play   pause  home   stop
ACTIVITY_SATISFIES: dict[Activity, tuple[bool | None, ...]] = {
    Activity.CLEANING: (True, False, False, False),
    Activity.PAUSED_CLEANING: (False, True, False, False),
    Activity.SPOT_CLEANING: (True, False, False, False),
    Activity.PAUSED_SPOT_CLEANING: (False, True, False, False),
    Activity.RETURN: (True, False, True, False),
    Activity.PAUSED_RETURN: (False, True, False, False),
    Activity.RETURN_FOR_PITSTOP: (True, False, True, False),
    Activity.PAUSED_RETURN_FOR_PITSTOP: (False, True, False, False),
    Activity.CHARGING: (False, True, True, True),
    Activity.SLEEPING: (False, True, None, True),
    Activity.ERROR: (False, True, None, True),
    Activity.PITSTOP: (True, True, True, False),
    Activity.MANUAL_STEERING: (False, True, False, False),
    Activity.FIRMWARE_UPGRADE: (False, True, False, True),
}
COMMAND_INDEX = (
    CleaningCommand.PLAY,
    CleaningCommand.PAUSE,
    CleaningCommand.HOME,
    CleaningCommand.STOP,
)

COMMAND_TO_ACTIVITY = {
    CleaningCommand.PLAY: SimpleActivity.CLEAN,
    CleaningCommand.PAUSE: SimpleActivity.PAUSE,
    CleaningCommand.HOME: SimpleActivity.RETURN,
    CleaningCommand.STOP: SimpleActivity.OTHER,
}


class AEGRobotCtrlActivity(AEGRobotCtrl[CleaningCommand]):
    """Controller for starting, pausing, stopping, or docking the robot."""

    def __init__(self, robot: AEGRobot) -> None:
        super().__init__(robot, "activity")

    def is_target_set(self, target: CleaningCommand) -> bool | None:
        activity = self.robot.status.activity
        if activity is None:
            return None
        is_set = ACTIVITY_SATISFIES[activity][COMMAND_INDEX.index(target)]
        if is_set is None and target == CleaningCommand.HOME:
            is_set = self.robot.status.is_docked
        return is_set

    async def async_set_target(self, target: CleaningCommand) -> None:
        await self.robot.api.async_send_cleaning_command(target)

    def override_status(self, target: CleaningCommand) -> None:
        self.robot.set_override("simple_activity", COMMAND_TO_ACTIVITY[target])


class AEGRobotCtrlPower(AEGRobotCtrl[PowerMode]):
    """Controller for the cleaning power mode."""

    def __init__(self, robot: AEGRobot) -> None:
        super().__init__(robot, "power mode")

    def description(self, target: PowerMode) -> str:
        return f"set {self.name} to {target.name}"

    def is_target_set(self, target: PowerMode) -> bool | None:
        if self.robot.status.raw_power is None:
            return None
        return self.robot.status.raw_power == target

    async def async_set_target(self, target: PowerMode) -> None:
        await self.robot.api.async_set_power_mode(target)

    def override_status(self, target: PowerMode) -> None:
        self.robot.set_override("power", target)
