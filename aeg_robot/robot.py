"""Synchronizer for the state of a single AEG RX9 robot vacuum cleaner.

The robot polls the appliance state, merges the raw values into its
DeviceStatus, derives the secondary status flags, and publishes one
StatusChangedEvent for every field that differs from the last published
snapshot. Controllers may assert optimistic overrides for derived fields
from a PRE_UPDATE callback; these take precedence for a single cycle.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, NamedTuple

from .api import AEGApiError, AEGAuthorizationError
from .events import (
    FeedEvent,
    LifecycleEvent,
    LifecycleKind,
    MessageEvent,
    RobotEventDispatcher,
    StatusChangedEvent,
)
from .heartbeat import Heartbeat
from .models import (
    Activity,
    ApplianceStatus,
    Battery,
    ConnectionState,
    DeviceStatus,
    Dustbin,
    SimpleActivity,
)

if TYPE_CHECKING:
    from .cloud import AEGApplianceApi
    from .models import AEGConfig
    from .schemas import ApplianceState, ApplianceSummary, FeedItem, Message

_LOGGER = logging.getLogger(__name__)


class ActivityFlags(NamedTuple):
    """Derived flags for a raw robot activity."""

    simple: SimpleActivity
    docked: bool | None  # None means infer from a fully charged battery
    charging: bool
    active: bool


ACTIVITY_MAP: dict[Activity, ActivityFlags] = {
    Activity.CLEANING: ActivityFlags(SimpleActivity.CLEAN, False, False, True),
    Activity.PAUSED_CLEANING: ActivityFlags(SimpleActivity.PAUSE, False, False, False),
    Activity.SPOT_CLEANING: ActivityFlags(SimpleActivity.CLEAN, False, False, True),
    Activity.PAUSED_SPOT_CLEANING: ActivityFlags(SimpleActivity.PAUSE, False, False, False),
    Activity.RETURN: ActivityFlags(SimpleActivity.RETURN, False, False, True),
    Activity.PAUSED_RETURN: ActivityFlags(SimpleActivity.PAUSE, False, False, False),
    Activity.RETURN_FOR_PITSTOP: ActivityFlags(SimpleActivity.PITSTOP, False, False, True),
    Activity.PAUSED_RETURN_FOR_PITSTOP: ActivityFlags(
        SimpleActivity.PAUSE, False, False, False
    ),
    Activity.CHARGING: ActivityFlags(SimpleActivity.OTHER, True, True, True),
    Activity.SLEEPING: ActivityFlags(SimpleActivity.OTHER, None, False, True),
    Activity.ERROR: ActivityFlags(SimpleActivity.OTHER, None, False, False),
    Activity.PITSTOP: ActivityFlags(SimpleActivity.PITSTOP, True, True, True),
    Activity.MANUAL_STEERING: ActivityFlags(SimpleActivity.OTHER, False, False, False),
    Activity.FIRMWARE_UPGRADE: ActivityFlags(SimpleActivity.OTHER, None, False, False),
}

BUSY_ACTIVITIES = frozenset({SimpleActivity.CLEAN, SimpleActivity.PITSTOP})
DUSTBIN_NOT_EMPTY = frozenset({Dustbin.MISSING, Dustbin.FULL})


class AEGRobot:
    """Manager for a single AEG RX9 / Electrolux Pure i9 robot."""

    def __init__(
        self,
        config: AEGConfig,
        api: AEGApplianceApi,
        appliance: ApplianceSummary,
    ) -> None:
        """Initialize the robot from its appliance list entry.

        Args:
            config: Validated (and rate-limit adjusted) configuration.
            api: API for this appliance.
            appliance: Entry from the account's appliance list.

        """
        self.config = config
        self.api = api
        self.events = RobotEventDispatcher()

        # Static information (mostly completed by async_init)
        self.appliance_id = appliance.appliance_id
        self.model = appliance.appliance_type
        self.pnc = ""
        self.sn = ""
        self.brand = ""

        # Dynamic information, and the values most recently published
        self.status = DeviceStatus(raw_name=appliance.appliance_name)
        self._emitted: dict[str, Any] = dict.fromkeys(self.status.as_dict())
        self._overrides: dict[str, Any] = {}

        self._emitted_messages: set[int] = set()
        self._emitted_feed: set[str] = set()

        self.heartbeats: list[Heartbeat] = []

    def __str__(self) -> str:
        bits = [
            self.brand,
            self.model,
            f'"{self.status.raw_name}"' if self.status.raw_name else "",
            f"(Product ID {self.appliance_id})",
        ]
        return " ".join(bit for bit in bits if bit)

    @property
    def log_name(self) -> str:
        """Name used to prefix log messages about this robot."""
        return self.status.raw_name or self.appliance_id

    async def async_init(self) -> None:
        """Read the static appliance details and start polling its state."""
        try:
            info = await self.api.async_get_info()
        except AEGApiError as err:
            _LOGGER.warning("[%s] Unable to read appliance info: %s", self.log_name, err)
        else:
            detail = info.appliance_info
            self.pnc = detail.pnc
            self.sn = detail.serial_number
            self.brand = detail.brand
            self.model = f"{self.model} ({detail.model})"
            self.events.dispatch(LifecycleEvent(LifecycleKind.INFO))

        interval = self.config.poll_intervals.status_seconds
        self.heartbeats = [
            Heartbeat(
                f"[{self.log_name}] State",
                interval,
                self.async_poll_state,
                self.heartbeat,
            )
        ]
        for heartbeat in self.heartbeats:
            heartbeat.start()

    async def async_stop(self) -> None:
        """Stop polling the robot."""
        await asyncio.gather(*(heartbeat.async_stop() for heartbeat in self.heartbeats))

    async def async_poll_state(self) -> None:
        """Read and apply the current appliance state."""
        state = await self.api.async_get_state()
        self.update_from_state(state)

    def update_from_state(self, state: ApplianceState) -> None:
        """Merge a polled appliance state and publish any changes."""
        reported = state.properties.reported
        status = self.status

        # Status that is always provided
        status.enabled = state.status == ApplianceStatus.ENABLED
        status.connected = state.connection_state == ConnectionState.CONNECTED

        # Other details may be absent if the robot is not reachable
        if reported.appliance_name is not None:
            status.raw_name = reported.appliance_name
        if reported.firmware_version is not None:
            status.firmware = reported.firmware_version
        status.capabilities = list(reported.capabilities)
        status.battery = reported.battery_status
        status.activity = reported.robot_status
        status.dustbin = reported.dustbin_status
        status.raw_power = reported.power_mode
        status.raw_eco_mode = reported.eco_mode

        messages = reported.message_list.messages if reported.message_list else []
        self._emit_messages(messages)

        self.update_derived_and_emit()
        self.events.dispatch(LifecycleEvent(LifecycleKind.APPLIANCE))

    def heartbeat(self, err: Exception | None = None) -> None:
        """Handle a failure or recovery reported by one of the robot's heartbeats."""
        if err is None and any(hb.last_error is not None for hb in self.heartbeats):
            # Another heartbeat is still failing
            return
        self.status.is_robot_error = err
        self.update_derived_and_emit()

    def update_server_health(self, err: Exception | None = None) -> None:
        """Handle a failure or recovery of the account-wide server checks."""
        self.status.is_server_error = err
        self.update_derived_and_emit()

    def set_override(self, field: str, value: Any) -> None:
        """Override a derived status field for the current update cycle.

        Only valid from a PRE_UPDATE callback.
        """
        self._overrides[field] = value

    def update_derived_and_emit(self) -> None:
        """Recompute derived values and publish any changes."""
        self._overrides.clear()
        self.events.dispatch(LifecycleEvent(LifecycleKind.PRE_UPDATE))
        self._update_derived()
        self._emit_change_events()

    def _update_derived(self) -> None:
        status = self.status
        flags = ACTIVITY_MAP.get(status.activity) if status.activity is not None else None
        simple = flags.simple if flags else SimpleActivity.OTHER
        is_busy = simple in BUSY_ACTIVITIES

        # Combine account and appliance errors
        is_error = (
            status.is_server_error
            if status.is_server_error is not None
            else status.is_robot_error
        )

        is_dustbin_empty = (
            None if status.dustbin is None else status.dustbin not in DUSTBIN_NOT_EMPTY
        )

        # Any identified problem is treated as a fault
        is_fault = (
            is_error is not None
            or not status.enabled
            or not status.connected
            or status.activity == Activity.ERROR
            or status.battery == Battery.DEAD
            or is_dustbin_empty is False
        )

        is_docked = flags.docked if flags else None
        if is_docked is None:
            is_docked = status.battery == Battery.FULLY_CHARGED

        derived: dict[str, Any] = {
            "simple_activity": simple,
            "is_battery_low": status.battery is not None and status.battery <= Battery.LOW,
            "is_charging": flags.charging if flags else None,
            "is_dustbin_empty": is_dustbin_empty,
            "is_docked": is_docked,
            "is_active": (flags.active and not is_fault) if flags else None,
            "is_busy": is_busy,
            "is_error": is_error,
            "is_fault": is_fault,
            "is_authorization_error": isinstance(is_error, AEGAuthorizationError),
            "name": status.raw_name,
            "power": status.raw_power if is_busy else None,
        }
        derived.update(self._overrides)
        for key, value in derived.items():
            setattr(status, key, value)

    def _emit_change_events(self) -> None:
        current = self.status.as_dict()
        changed = [key for key, value in current.items() if value != self._emitted[key]]
        if not changed:
            return

        previous = self._emitted
        self._emitted = current
        _LOGGER.debug(
            "[%s] %s",
            self.log_name,
            ", ".join(
                f"{key}: {_to_text(previous[key])}->{_to_text(current[key])}"
                for key in changed
            ),
        )
        for key in changed:
            self.events.dispatch(StatusChangedEvent(key, current[key], previous[key]))

    def _emit_messages(self, messages: list[Message]) -> None:
        # An empty list flushes the cache so that message ids may recur
        if not messages:
            self._emitted_messages.clear()
            return
        for message in messages:
            if message.id not in self._emitted_messages:
                self._emitted_messages.add(message.id)
                self.events.dispatch(MessageEvent(message))

    def update_from_feed(self, items: list[FeedItem]) -> None:
        """Publish any feed items relating to this robot that are new."""
        if not items:
            self._emitted_feed.clear()
            return
        for item in items:
            if item.id not in self._emitted_feed:
                self._emitted_feed.add(item.id)
                self.events.dispatch(FeedEvent(item))

    def register_status_callback(
        self, field: str, callback: Callable[[StatusChangedEvent], None]
    ) -> Callable[[], None]:
        """Deliver the current value of a status field, and then any changes.

        Returns:
            A function to unregister the callback.

        """
        if field not in self._emitted:
            msg = f"Unknown status field: {field}"
            raise KeyError(msg)
        callback(StatusChangedEvent(field, self._emitted[field], None))
        return self.events.register_callback(StatusChangedEvent, callback, field)

    def next_update(self) -> asyncio.Future[None]:
        """Return a future that completes after the next state update."""
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def on_update(_event: LifecycleEvent) -> None:
            unregister()
            if not future.done():
                future.set_result(None)

        unregister = self.events.register_callback(
            LifecycleEvent, on_update, LifecycleKind.APPLIANCE
        )
        future.add_done_callback(lambda _: unregister())
        return future

    async def async_wait_for_update(self) -> None:
        """Wait for the next state update to be processed."""
        await self.next_update()


def _to_text(value: Any) -> str:
    if value is None:
        return "?"
    if isinstance(value, str) and any(char in value for char in "- <>:,"):
        return f'"{value}"'
    return str(value)
