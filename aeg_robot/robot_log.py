"""Logging of human-readable information about a robot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .events import LifecycleEvent, LifecycleKind, StatusChangedEvent
from .models import Activity, Battery, Dustbin, PowerMode

if TYPE_CHECKING:
    from .robot import AEGRobot

_LOGGER = logging.getLogger(__name__)

ACTIVITY_NAMES = {
    Activity.CLEANING: "CLEANING",
    Activity.PAUSED_CLEANING: "PAUSED during cleaning",
    Activity.SPOT_CLEANING: "SPOT CLEANING",
    Activity.PAUSED_SPOT_CLEANING: "PAUSED during spot cleaning",
    Activity.RETURN: "returning HOME",
    Activity.PAUSED_RETURN: "PAUSED during return home",
    Activity.RETURN_FOR_PITSTOP: "returning HOME; it will resume cleaning when charged",
    Activity.PAUSED_RETURN_FOR_PITSTOP: (
        "PAUSED during return home; it will resume cleaning when charged"
    ),
    Activity.CHARGING: "CHARGING",
    Activity.SLEEPING: "SLEEPING (either charged on dock or idle off dock)",
    Activity.ERROR: "in an ERROR state",
    Activity.PITSTOP: "CHARGING; it will resume cleaning when charged",
    Activity.MANUAL_STEERING: "being STEERED MANUALLY",
    Activity.FIRMWARE_UPGRADE: "performing a FIRMWARE UPGRADE",
}

BATTERY_NAMES = {
    Battery.DEAD: "DEAD",
    Battery.CRITICAL_LOW: "CRITICALLY LOW",
    Battery.LOW: "LOW",
    Battery.MEDIUM: "MEDIUM",
    Battery.HIGH: "HIGH",
    Battery.FULLY_CHARGED: "FULLY CHARGED",
}

DUSTBIN_NAMES = {
    Dustbin.UNKNOWN: "UNKNOWN",
    Dustbin.PRESENT: "PRESENT (and not full)",
    Dustbin.MISSING: "MISSING",
    Dustbin.FULL: "FULL (and requires emptying)",
}

POWER_MODE_NAMES = {
    PowerMode.QUIET: "QUIET (lower energy consumption and quieter)",
    PowerMode.SMART: "SMART (cleans quietly on hard surfaces, uses full power on carpets)",
    PowerMode.POWER: "POWER (optimal cleaning performance, higher energy consumption)",
}


class AEGRobotLog:
    """Log static details and status changes for a robot."""

    def __init__(self, robot: AEGRobot) -> None:
        self.robot = robot
        self._logged_health_errors: set[str] = set()
        self._log_once()
        self._log_status()

    def _info(self, msg: str, *args: object) -> None:
        _LOGGER.info("[%s] " + msg, self.robot.log_name, *args)

    def _warning(self, msg: str, *args: object) -> None:
        _LOGGER.warning("[%s] " + msg, self.robot.log_name, *args)

    def _log_once(self) -> None:
        self._info("Product ID %s", self.robot.appliance_id)

        def on_info(_event: LifecycleEvent) -> None:
            self._info("%s %s", self.robot.brand, self.robot.model)
            self._info("Product number code %s", self.robot.pnc)
            self._info("Serial number %s", self.robot.sn)

        self.robot.events.register_callback(LifecycleEvent, on_info, LifecycleKind.INFO)

    def _log_status(self) -> None:
        handlers = {
            "raw_name": self._on_name,
            "firmware": self._on_firmware,
            "battery": self._on_battery,
            "activity": self._on_activity,
            "dustbin": self._on_dustbin,
            "raw_power": self._on_power,
            "enabled": self._on_enabled,
            "connected": self._on_connected,
            "is_error": self._on_error,
        }
        for field, handler in handlers.items():
            self.robot.events.register_callback(StatusChangedEvent, handler, field)

    def _on_name(self, event: StatusChangedEvent) -> None:
        self._info('My name is "%s"', event.new_value)

    def _on_firmware(self, event: StatusChangedEvent) -> None:
        if event.new_value is not None:
            self._info("Firmware version %s installed", event.new_value)

    def _on_battery(self, event: StatusChangedEvent) -> None:
        if event.new_value is None:
            self._info("Unknown battery level")
        else:
            self._info("Battery level is %s", BATTERY_NAMES[event.new_value])

    def _on_activity(self, event: StatusChangedEvent) -> None:
        if event.new_value is None:
            self._info("Unknown robot status")
        else:
            self._info("Robot is %s", ACTIVITY_NAMES[event.new_value])

    def _on_dustbin(self, event: StatusChangedEvent) -> None:
        if event.new_value is None:
            self._info("Unknown dustbin status")
        else:
            self._info("Dust collection bin is %s", DUSTBIN_NAMES[event.new_value])

    def _on_power(self, event: StatusChangedEvent) -> None:
        if event.new_value is None:
            self._info("Unknown power mode")
        else:
            self._info("Power mode is set to %s", POWER_MODE_NAMES[event.new_value])

    def _on_enabled(self, event: StatusChangedEvent) -> None:
        if event.new_value:
            self._info("Robot is enabled")
        else:
            self._warning("Robot is disabled")

    def _on_connected(self, event: StatusChangedEvent) -> None:
        if event.new_value:
            self._info("Robot is connected to the cloud servers")
        else:
            self._warning("Robot is NOT connected to the cloud servers")

    def _on_error(self, event: StatusChangedEvent) -> None:
        err = event.new_value
        if err is not None:
            message = str(err)
            if message not in self._logged_health_errors:
                self._logged_health_errors.add(message)
                _LOGGER.error(
                    "[%s] Lost connection to cloud servers: %s",
                    self.robot.log_name,
                    message,
                )
        elif event.old_value is not None:
            self._logged_health_errors.clear()
            self._info("Successfully connected to cloud servers")
