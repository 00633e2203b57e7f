"""Pytest configuration and fixtures for AEG robot tests."""

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from aeg_robot.const import BASE_URL
from aeg_robot.models import AEGConfig, PollIntervals

APPLIANCE_ID = "900277479937001234567890"

Handler = Callable[[httpx.Request], httpx.Response]


class MemoryStore:
    """In-memory implementation of the blob store protocol."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})

    async def async_get(self, key: str) -> Any | None:
        return self.data.get(key)

    async def async_set(self, key: str, value: Any) -> None:
        self.data[key] = value


def make_session(handler: Handler) -> httpx.AsyncClient:
    """Create an HTTP client that routes every request to a handler.

    Args:
        handler: Function returning the response for each request.

    Returns:
        An httpx AsyncClient using a mock transport.

    """
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


def make_state(
    robot_status: int = 9,
    battery_status: int = 6,
    dustbin_status: str = "connected",
    power_mode: int | None = 2,
    messages: list[dict] | None = None,
    connection_state: str = "Connected",
    status: str = "enabled",
) -> dict:
    """Build an appliance state API response.

    Returns:
        A dictionary representing a GET /state response.

    """
    reported: dict[str, Any] = {
        "applianceName": "Marvin",
        "firmwareVersion": "43.23",
        "capabilities": {"powerLevels": {}},
        "batteryStatus": battery_status,
        "robotStatus": robot_status,
        "dustbinStatus": dustbin_status,
        "messageList": {"messages": messages or []},
        "platform": "1.01",
    }
    if power_mode is not None:
        reported["powerMode"] = power_mode
    return {
        "applianceId": APPLIANCE_ID,
        "connectionState": connection_state,
        "status": status,
        "properties": {"reported": reported},
    }


@pytest.fixture
def config() -> AEGConfig:
    """Fixture providing a validated configuration."""
    return AEGConfig(
        api_key="test-api-key",
        access_token="test-access-token",
        refresh_token="test-refresh-token",
    )


@pytest.fixture
def fast_config() -> AEGConfig:
    """Fixture providing a configuration with very short poll intervals."""
    return AEGConfig(
        api_key="test-api-key",
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        poll_intervals=PollIntervals(status_seconds=0.01),
    )


@pytest.fixture
def store() -> MemoryStore:
    """Fixture providing an empty in-memory blob store."""
    return MemoryStore()


@pytest.fixture
def sample_appliance() -> dict:
    """Fixture providing a robot entry from the appliance list."""
    return {
        "applianceId": APPLIANCE_ID,
        "applianceName": "Marvin",
        "applianceType": "PUREi9",
        "created": "2022-12-27T18:00:21.8349154Z",
    }


@pytest.fixture
def sample_appliances_response(sample_appliance: dict) -> list:
    """Fixture providing a GET /appliances response with a robot and an oven.

    Args:
        sample_appliance: Robot appliance fixture.

    Returns:
        A list representing the appliances in an account.

    """
    return [
        sample_appliance,
        {
            "applianceId": "944188772-00:31862190-443E07363DAB",
            "applianceName": "Oven",
            "applianceType": "OV",
            "created": "2023-01-02T10:11:12.1234567Z",
        },
    ]


@pytest.fixture
def sample_info_response() -> dict:
    """Fixture providing a GET /info response."""
    return {
        "applianceInfo": {
            "serialNumber": "93701234",
            "pnc": "900277479",
            "brand": "AEG",
            "deviceType": "ROBOTIC_VACUUM_CLEANER",
            "model": "rx92",
            "variant": "M2",
            "colour": "SHALEGREY",
        },
        "capabilities": {},
    }


@pytest.fixture
def sample_state_response() -> dict:
    """Fixture providing a GET /state response for a docked robot."""
    return make_state()


@pytest.fixture
def sample_tokens_response() -> dict:
    """Fixture providing a POST /token/refresh response."""
    return {
        "accessToken": "new-access-token",
        "refreshToken": "new-refresh-token",
        "expiresIn": 43200,
        "tokenType": "Bearer",
        "scope": "email offline_access",
    }


@pytest.fixture
def sample_health_response() -> list:
    """Fixture providing a healthy GET /health-checks response."""
    return [
        {
            "message": "I am alive!",
            "environment": "prod",
            "app": "ApplianceCloudGateway",
            "url": "https://api.developer.electrolux.one",
            "release": "Release-1238",
            "version": "1.0.0",
            "statusCode": 200,
        },
    ]


@pytest.fixture
def sample_feed_response() -> dict:
    """Fixture providing a GET /feeds response."""
    return {
        "feedItemResponseDetailDTOs": [
            {
                "id": f"815573-{APPLIANCE_ID}-RVCSurfaceFilterMaintenance",
                "createdAtUTC": "2023-01-04T08:00:00Z",
                "feedDataType": "RVCSurfaceFilterMaintenance",
                "data": {"pncId": APPLIANCE_ID},
            },
            {
                "id": "815574-other-OvenCleaning",
                "createdAtUTC": "2023-01-04T09:00:00Z",
                "feedDataType": "OvenCleaning",
                "data": {"pncId": "other"},
            },
        ],
    }
