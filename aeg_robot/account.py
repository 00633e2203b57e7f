"""Manager for the robots in an Electrolux Group user account."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from .auth import AEGAuthorizedUserAgent
from .cloud import AEGApi, AEGApplianceApi
from .const import (
    API_DAILY_POLL_LIMIT,
    SECONDS_PER_DAY,
    SERVER_HEALTHY_MESSAGE,
    SERVER_HEALTHY_STATUS_CODE,
)
from .controller import AEGRobotCtrlActivity, AEGRobotCtrlPower
from .heartbeat import Heartbeat
from .robot import AEGRobot
from .robot_log import AEGRobotLog

if TYPE_CHECKING:
    import httpx

    from .models import AEGConfig
    from .schemas import HealthCheck
    from .store import BlobStore

_LOGGER = logging.getLogger(__name__)


class AEGServerHealthError(Exception):
    """One or more cloud server components are reporting problems."""


@dataclass
class RobotControllers:
    """Controllers for the settable properties of a robot."""

    activity: AEGRobotCtrlActivity
    power: AEGRobotCtrlPower


def adjust_poll_interval(
    count: int, status_seconds: float, limit: int = API_DAILY_POLL_LIMIT
) -> float:
    """Lengthen the status polling interval to stay within the daily API limit.

    Args:
        count: Number of robots being polled.
        status_seconds: Configured status polling interval, in seconds.
        limit: Maximum number of status polling API calls per day.

    Returns:
        The configured interval, or the shortest whole number of seconds that
        keeps the daily call volume within the limit.

    """
    if count <= 0 or status_seconds <= 0:
        return status_seconds
    daily_calls = count * SECONDS_PER_DAY / status_seconds
    if daily_calls <= limit:
        return status_seconds
    adjusted = math.ceil(count * SECONDS_PER_DAY / limit)
    _LOGGER.warning(
        "Polling %d robot(s) every %s seconds would use %d API calls per day "
        "(limit %d); increasing the interval to %d seconds",
        count,
        status_seconds,
        math.ceil(daily_calls),
        limit,
        adjusted,
    )
    return adjusted


def is_healthy(server: HealthCheck) -> bool:
    """Check whether a cloud server component reports that it is healthy."""
    return (
        server.status_code == SERVER_HEALTHY_STATUS_CODE
        and server.message == SERVER_HEALTHY_MESSAGE
    )


class AEGAccount:
    """Manager for an Electrolux Group user account and its robots."""

    def __init__(
        self,
        config: AEGConfig,
        session: httpx.AsyncClient,
        store: BlobStore,
    ) -> None:
        """Initialize the account manager.

        Args:
            config: Validated configuration.
            session: HTTP client for the API.
            store: Persistent storage for the access token.

        """
        self.config = config
        self.ua = AEGAuthorizedUserAgent(session, config, store)
        self.api = AEGApi(self.ua)

        self.robots: dict[str, AEGRobot] = {}
        self.controllers: dict[str, RobotControllers] = {}
        self._robot_logs: list[AEGRobotLog] = []
        self._appliance_ids: set[str] = set()

        self.heartbeats: list[Heartbeat] = []

    async def async_start(self) -> None:
        """Authorize, discover the robots, and start polling."""
        await self.ua.async_start()

        # Read the list of appliances, and initialise any robots
        appliances = await self.api.async_get_appliances()
        self._appliance_ids = {appliance.appliance_id for appliance in appliances}
        robots = [a for a in appliances if AEGApplianceApi.is_robot(a)]
        incompatible = [
            f"{a.appliance_name} ({a.appliance_type})"
            for a in appliances
            if not AEGApplianceApi.is_robot(a)
        ]
        if incompatible:
            _LOGGER.info(
                "Ignoring %d incompatible appliance(s): %s",
                len(incompatible),
                ", ".join(incompatible),
            )

        # Stay within the daily API call limit
        intervals = self.config.poll_intervals
        status_seconds = adjust_poll_interval(len(robots), intervals.status_seconds)
        if status_seconds != intervals.status_seconds:
            self.config = replace(
                self.config,
                poll_intervals=replace(intervals, status_seconds=status_seconds),
            )

        for appliance in robots:
            robot = AEGRobot(
                self.config, self.api.appliance_api(appliance.appliance_id), appliance
            )
            self._robot_logs.append(AEGRobotLog(robot))
            self.controllers[appliance.appliance_id] = RobotControllers(
                activity=AEGRobotCtrlActivity(robot),
                power=AEGRobotCtrlPower(robot),
            )
            self.robots[appliance.appliance_id] = robot
        await asyncio.gather(*(robot.async_init() for robot in self.robots.values()))

        # Start polling for account-wide changes
        intervals = self.config.poll_intervals
        poll = [
            ("Appliances", intervals.appliances_seconds, self.async_poll_appliances),
            ("Server health", intervals.server_health_seconds, self.async_poll_server_health),
            ("Feed", intervals.feed_seconds, self.async_poll_feed),
        ]
        self.heartbeats = [
            Heartbeat(name, interval, action, self.heartbeat)
            for name, interval, action in poll
        ]
        for heartbeat in self.heartbeats:
            heartbeat.start()

    async def async_stop(self) -> None:
        """Stop all polling and token refresh."""
        await asyncio.gather(
            *(heartbeat.async_stop() for heartbeat in self.heartbeats),
            *(robot.async_stop() for robot in self.robots.values()),
        )
        await self.ua.async_stop()

    def heartbeat(self, err: Exception | None = None) -> None:
        """Inform the robots of a failure or recovery of an account heartbeat."""
        if err is None and any(hb.last_error is not None for hb in self.heartbeats):
            # Another heartbeat is still failing
            return
        for robot in self.robots.values():
            robot.update_server_health(err)

    async def async_poll_appliances(self) -> None:
        """Check for appliances that have been added or removed."""
        appliances = await self.api.async_get_appliances()
        appliance_ids = {appliance.appliance_id for appliance in appliances}
        for appliance in appliances:
            if appliance.appliance_id not in self._appliance_ids:
                _LOGGER.warning(
                    "New appliance %s (%s) will not be used until restarted",
                    appliance.appliance_name,
                    appliance.appliance_id,
                )
        for appliance_id in self._appliance_ids - appliance_ids:
            _LOGGER.warning("Appliance %s has been removed from the account", appliance_id)
        self._appliance_ids = appliance_ids

    async def async_poll_server_health(self) -> None:
        """Check the health of the cloud server components."""
        servers = await self.api.async_get_health_checks()
        failed = [server for server in servers if not is_healthy(server)]

        if failed:
            _LOGGER.error(
                "%d of %d AEG API server(s) have problems:", len(failed), len(servers)
            )
        else:
            _LOGGER.debug("All AEG API servers appear healthy:")
        for server in servers:
            _LOGGER.log(
                logging.DEBUG if is_healthy(server) else logging.ERROR,
                "    %s %s %s %s %d %s",
                server.app,
                server.release,
                server.version or "",
                server.environment,
                server.status_code,
                server.message,
            )

        if failed:
            msg = (
                "AEG API servers are reporting issues "
                f"({len(failed)} of {len(servers)})"
            )
            raise AEGServerHealthError(msg)

    async def async_poll_feed(self) -> None:
        """Route new account feed items to the robots they relate to."""
        feed = await self.api.async_get_feed()
        items = feed.feed_item_response_detail_dtos
        for appliance_id, robot in self.robots.items():
            robot.update_from_feed(
                [item for item in items if item.data.pnc_id == appliance_id]
            )
