"""Data models for the AEG robot manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, StrEnum
from typing import Any

from .const import (
    DEFAULT_APPLIANCES_SECONDS,
    DEFAULT_FEED_SECONDS,
    DEFAULT_SERVER_HEALTH_SECONDS,
    DEFAULT_STATUS_SECONDS,
)


class DebugFeature(StrEnum):
    """Optional debugging features."""

    LOG_API_HEADERS = "Log API Headers"
    LOG_API_BODIES = "Log API Bodies"


class ApplianceStatus(StrEnum):
    """Whether the appliance is enabled in the user account."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class ConnectionState(StrEnum):
    """Whether the appliance is connected to the cloud servers."""

    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"


class PowerMode(IntEnum):
    """Cleaning power mode (RX9.2 only)."""

    QUIET = 1  # Lower energy consumption and quieter
    SMART = 2  # Cleans quietly on hard surfaces, uses full power on carpets
    POWER = 3  # Optimal cleaning performance, higher energy consumption


class Battery(IntEnum):
    """Battery charge level."""

    DEAD = 1
    CRITICAL_LOW = 2
    LOW = 3
    MEDIUM = 4
    HIGH = 5
    FULLY_CHARGED = 6


class Activity(IntEnum):
    """Current robot activity as reported by the API."""

    CLEANING = 1
    PAUSED_CLEANING = 2
    SPOT_CLEANING = 3
    PAUSED_SPOT_CLEANING = 4
    RETURN = 5
    PAUSED_RETURN = 6
    RETURN_FOR_PITSTOP = 7
    PAUSED_RETURN_FOR_PITSTOP = 8
    CHARGING = 9
    SLEEPING = 10
    ERROR = 11
    PITSTOP = 12
    MANUAL_STEERING = 13
    FIRMWARE_UPGRADE = 14


class Dustbin(StrEnum):
    """Status of the dust collection bin."""

    UNKNOWN = "notConnected"
    PRESENT = "connected"
    MISSING = "empty"
    FULL = "full"


class CleaningCommand(StrEnum):
    """Commands that can be issued to control cleaning."""

    PLAY = "play"
    PAUSE = "pause"
    HOME = "home"
    STOP = "stop"


class SimpleActivity(StrEnum):
    """Simplified robot activities."""

    OTHER = "Other"
    CLEAN = "Clean"
    PITSTOP = "Pitstop"
    PAUSE = "Pause"
    RETURN = "Return"


@dataclass(frozen=True)
class PollIntervals:
    """Intervals between polling operations, in seconds."""

    status_seconds: float = DEFAULT_STATUS_SECONDS
    appliances_seconds: float = DEFAULT_APPLIANCES_SECONDS
    feed_seconds: float = DEFAULT_FEED_SECONDS
    server_health_seconds: float = DEFAULT_SERVER_HEALTH_SECONDS


@dataclass(frozen=True)
class AEGConfig:
    """Validated configuration supplied by the caller."""

    api_key: str
    access_token: str
    refresh_token: str
    poll_intervals: PollIntervals = field(default_factory=PollIntervals)
    debug: frozenset[DebugFeature] = frozenset()


@dataclass
class Credential:
    """Access and refresh tokens with an absolute expiry time."""

    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass
class DeviceStatus:
    """Dynamic information about a robot.

    Raw values are copied verbatim from the API; derived values are computed
    by the synchronizer from the raw values and out-of-band error signals.
    None means that the value has not been determined.
    """

    # Raw values provided by the API
    raw_name: str | None = None
    firmware: str | None = None
    capabilities: list[str] = field(default_factory=list)
    battery: Battery | None = None
    activity: Activity | None = None
    dustbin: Dustbin | None = None
    raw_power: PowerMode | None = None
    raw_eco_mode: bool | None = None
    enabled: bool = False
    connected: bool = False
    # API errors
    is_server_error: Exception | None = None
    is_robot_error: Exception | None = None
    # Derived values
    simple_activity: SimpleActivity | None = None
    is_battery_low: bool | None = None
    is_charging: bool | None = None
    is_dustbin_empty: bool | None = None
    is_docked: bool | None = None
    is_active: bool | None = None
    is_busy: bool | None = None
    is_fault: bool | None = None
    is_error: Exception | None = None
    is_authorization_error: bool | None = None
    name: str | None = None
    power: PowerMode | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return a shallow snapshot of every field."""
        return {key: _copy_value(value) for key, value in vars(self).items()}


def _copy_value(value: Any) -> Any:
    return list(value) if isinstance(value, list) else value
