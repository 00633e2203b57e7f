"""Access to the Electrolux Group API for AEG RX9 robot vacuum cleaners."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .api import dump_body
from .const import ROBOT_APPLIANCE_TYPE
from .schemas import (
    ApplianceInfo,
    ApplianceState,
    ApplianceSummary,
    CleaningCommandBody,
    Feed,
    HealthCheck,
    PowerModeBody,
)

if TYPE_CHECKING:
    from .auth import AEGAuthorizedUserAgent
    from .models import CleaningCommand, PowerMode

_LOGGER = logging.getLogger(__name__)


class AEGApi:
    """Account-wide API methods."""

    def __init__(self, ua: AEGAuthorizedUserAgent) -> None:
        self.ua = ua

    async def async_get_appliances(self) -> list[ApplianceSummary]:
        """Get the list of appliances registered to the account."""
        return await self.ua.async_get_json(
            list[ApplianceSummary], "/api/v1/appliances"
        )

    async def async_get_health_checks(self) -> list[HealthCheck]:
        """Get the health of the cloud server components."""
        return await self.ua.async_get_json(
            list[HealthCheck], "/health-check/api/v1/health-checks"
        )

    async def async_get_feed(self) -> Feed:
        """Get the account activity feed."""
        return await self.ua.async_get_json(Feed, "/feed/api/v3.1/feeds")

    def appliance_api(self, appliance_id: str) -> AEGApplianceApi:
        """Create an API for a specific appliance."""
        return AEGApplianceApi(self.ua, appliance_id)


class AEGApplianceApi:
    """API methods for a single AEG RX9.1 or RX9.2 robot vacuum cleaner."""

    def __init__(self, ua: AEGAuthorizedUserAgent, appliance_id: str) -> None:
        self.ua = ua
        self.appliance_id = appliance_id

    @property
    def _path(self) -> str:
        return f"/api/v1/appliances/{self.appliance_id}"

    async def async_get_info(self) -> ApplianceInfo:
        """Get the static appliance information."""
        return await self.ua.async_get_json(ApplianceInfo, f"{self._path}/info")

    async def async_get_state(self) -> ApplianceState:
        """Get the current appliance state."""
        return await self.ua.async_get_json(ApplianceState, f"{self._path}/state")

    async def async_send_cleaning_command(self, command: CleaningCommand) -> None:
        """Start, pause, stop, or send the robot home."""
        body = dump_body(CleaningCommandBody(cleaning_command=command))
        await self.ua.async_put(f"{self._path}/command", body)

    async def async_set_power_mode(self, mode: PowerMode) -> None:
        """Select the cleaning power mode (RX9.2 only)."""
        body = dump_body(PowerModeBody(power_mode=mode))
        await self.ua.async_put(f"{self._path}/command", body)

    @staticmethod
    def is_robot(appliance: ApplianceSummary) -> bool:
        """Check whether an appliance is an AEG RX9.1 or RX9.2 robot."""
        return appliance.appliance_type == ROBOT_APPLIANCE_TYPE
