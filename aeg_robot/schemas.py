"""Structures of the Electrolux Group API requests and responses."""

from __future__ import annotations

from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import (
    Activity,
    ApplianceStatus,
    Battery,
    ConnectionState,
    Dustbin,
    PowerMode,
)


class ApiModel(BaseModel):
    """Base for API payloads: camelCase on the wire, undeclared fields kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# POST /api/v1/token/refresh
class Tokens(ApiModel):
    access_token: str
    refresh_token: str
    expires_in: int  # e.g. 43200 (seconds)
    token_type: str  # e.g. 'Bearer'
    scope: str


# Persistent storage format for a credential (absolute expiry time)
class StoredCredential(ApiModel):
    access_token: str
    refresh_token: str
    expires_at: AwareDatetime


# GET /api/v1/appliances
class ApplianceSummary(ApiModel):
    appliance_id: str  # e.g. '900277479937001234567890'
    appliance_name: str  # e.g. 'Marvin'
    appliance_type: str  # e.g. 'PUREi9'
    created: str  # e.g. '2022-12-27T18:00:21.8349154Z'


# GET /api/v1/appliances/{applianceId}/info
class ApplianceInfoDetail(ApiModel):
    serial_number: str  # e.g. '93701234'
    pnc: str  # e.g. '900277479'
    brand: str  # e.g. 'AEG'
    device_type: str  # e.g. 'ROBOTIC_VACUUM_CLEANER'
    model: str  # e.g. 'rx92'
    variant: str  # e.g. 'M2'
    colour: str  # e.g. 'SHALEGREY'


class ApplianceInfo(ApiModel):
    appliance_info: ApplianceInfoDetail
    capabilities: dict[str, Any] = Field(default_factory=dict)


# GET /api/v1/appliances/{applianceId}/state
class Message(ApiModel):
    id: int  # e.g. 1
    timestamp: int  # e.g. 1672820985
    type: int  # e.g. 0
    user_error_id: int | None = Field(default=None, alias="userErrorID")
    internal_error_id: int | None = Field(default=None, alias="internalErrorID")
    text: str  # e.g. 'Please help me get free'


class MessageList(ApiModel):
    messages: list[Message] = Field(default_factory=list)


class ReportedState(ApiModel):
    # Details may be absent if the robot is not reachable
    appliance_name: str | None = None
    firmware_version: str | None = None
    capabilities: dict[str, Any] = Field(default_factory=dict)
    battery_status: Battery | None = None
    robot_status: Activity | None = None
    dustbin_status: Dustbin | None = None
    message_list: MessageList | None = None
    power_mode: PowerMode | None = None  # RX9.2
    eco_mode: bool | None = None  # RX9.1
    available_languages: list[str] | None = None
    platform: str | None = None  # e.g. '1.01'
    language: str | None = None  # e.g. 'eng'
    mute: bool | None = None
    tasks: dict[str, Any] | None = None


class StateProperties(ApiModel):
    reported: ReportedState


class ApplianceState(ApiModel):
    appliance_id: str
    connection_state: ConnectionState
    status: ApplianceStatus
    properties: StateProperties


# PUT /api/v1/appliances/{applianceId}/command
class CleaningCommandBody(ApiModel):
    cleaning_command: str = Field(alias="CleaningCommand")


class PowerModeBody(ApiModel):
    power_mode: PowerMode


# GET /health-check/api/v1/health-checks
class HealthCheck(ApiModel):
    message: str  # e.g. 'I am alive!'
    environment: str  # e.g. 'prod'
    app: str  # e.g. 'ApplianceCloudGateway'
    url: str
    release: str  # e.g. 'Release-1238'
    version: str | None = None
    status_code: int  # e.g. 200


# GET /feed/api/v3.1/feeds
class FeedItemData(ApiModel):
    pnc_id: str | None = None


class FeedItem(ApiModel):
    id: str  # e.g. '815573-900277479937001234567890-RVCSurfaceFilterMaintenance'
    created_at_utc: str = Field(alias="createdAtUTC")
    feed_data_type: str  # e.g. 'RVCLastWeekCleanedArea'
    data: FeedItemData


class Feed(ApiModel):
    feed_item_response_detail_dtos: list[FeedItem] = Field(
        alias="feedItemResponseDetailDTOs"
    )


# Error response formats
class ErrorResponseMessageLC(ApiModel):
    message: str
    error: str | None = None


class ErrorResponseMessageUC(ApiModel):
    message: str = Field(alias="Message")


class ErrorResponseCode(ApiModel):
    code: int
    code_description: str
    details: dict[str, list[str]] | None = None
    message: str | None = None


def find_unexpected_fields(value: Any, path: str = "response") -> list[str]:
    """Return the dotted paths of any fields that no model declares.

    Args:
        value: Validated payload (models, lists, and dictionaries).
        path: Path of the value within the payload.

    Returns:
        List of paths of undeclared fields.

    """
    unexpected: list[str] = []
    if isinstance(value, BaseModel):
        unexpected.extend(f"{path}.{key}" for key in value.model_extra or {})
        for name, info in type(value).model_fields.items():
            alias = info.alias or name
            unexpected.extend(
                find_unexpected_fields(getattr(value, name), f"{path}.{alias}")
            )
    elif isinstance(value, list):
        for index, item in enumerate(value):
            unexpected.extend(find_unexpected_fields(item, f"{path}[{index}]"))
    elif isinstance(value, dict):
        for key, item in value.items():
            unexpected.extend(find_unexpected_fields(item, f"{path}.{key}"))
    return unexpected
