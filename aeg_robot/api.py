"""API client for the Electrolux Group cloud API.

This module provides the user agent that issues requests to the API,
including header construction, retries with exponential backoff, response
decoding and validation, and classification of errors.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
import time
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .const import (
    BASE_URL,
    NO_RETRY_STATUS_CODES,
    REQUEST_TIMEOUT,
    RETRY_DELAY_FACTOR,
    RETRY_DELAY_MAX,
    RETRY_DELAY_MIN,
    USER_AGENT,
)
from .models import DebugFeature
from .schemas import (
    ErrorResponseCode,
    ErrorResponseMessageLC,
    ErrorResponseMessageUC,
    find_unexpected_fields,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import AEGConfig

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE", "OPTIONS", "TRACE"})

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_GZIP = "application/octet-stream"


@dataclass
class AEGRequest:
    """A request as issued to the API."""

    method: str
    path: str
    headers: dict[str, str]
    query: dict[str, Any] | None = None
    body: str | None = None
    idempotent: bool = False


@dataclass
class RequestOptions:
    """Options that can be specified for individual requests."""

    query: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    is_auth_request: bool = False


@dataclass
class RequestResponse:
    """A constructed request and its (successful) response."""

    request: AEGRequest
    response: httpx.Response


class AEGApiError(Exception):
    """Base exception for all Electrolux Group API errors."""

    def __init__(
        self,
        request: AEGRequest,
        response: httpx.Response | None,
        message: str,
    ) -> None:
        super().__init__(message)
        self.request = request
        self.response = response


class AEGTransportError(AEGApiError):
    """The request could not be issued or no response was received."""


class AEGAuthorizationError(AEGApiError):
    """The API could not be authorized."""


class AEGStatusCodeError(AEGApiError):
    """The API returned a non-success status code."""

    def __init__(
        self,
        request: AEGRequest,
        response: httpx.Response,
        text: str,
    ) -> None:
        super().__init__(request, response, get_status_code_message(response, text))
        self.status_code = response.status_code
        self.text = text


class AEGValidationError(AEGApiError):
    """The API returned a response with an unexpected structure."""

    def __init__(
        self,
        request: AEGRequest,
        response: httpx.Response,
        validation: PydanticValidationError,
    ) -> None:
        first = validation.errors()[0]
        location = ".".join(str(part) for part in ("response", *first["loc"]))
        super().__init__(
            request,
            response,
            f"Structure validation failed ({location} {first['msg']})",
        )
        self.validation = validation


def get_status_code_message(response: httpx.Response, text: str) -> str:
    """Construct a human-readable error message from a failed response.

    Args:
        response: HTTP response with a non-success status code.
        text: Body of the response.

    Returns:
        Message of the form "[<code> <reason>] <description>".

    """
    status_code = response.status_code
    try:
        reason = HTTPStatus(status_code).phrase
    except ValueError:
        reason = "Unknown"
    description = (
        get_body_description(text)
        or get_header_description(response)
        or "No error message returned"
    )
    return f"[{status_code} {reason}] {description}"


def get_body_description(text: str) -> str | None:
    """Attempt to extract a useful description from a response body.

    Args:
        text: Body of the response.

    Returns:
        Description from a documented error envelope, the raw text, or None.

    """
    message = text or None
    try:
        data = json.loads(text)
    except ValueError:
        return message

    try:
        envelope = ErrorResponseMessageLC.model_validate(data)
    except PydanticValidationError:
        pass
    else:
        if envelope.message:
            message = envelope.message
            if envelope.error:
                message += f" ({envelope.error})"
            return message

    try:
        envelope_uc = ErrorResponseMessageUC.model_validate(data)
    except PydanticValidationError:
        pass
    else:
        if envelope_uc.message:
            return envelope_uc.message

    try:
        envelope_code = ErrorResponseCode.model_validate(data)
    except PydanticValidationError:
        return message
    message = f"{envelope_code.code_description} ({envelope_code.code})"
    for key, values in (envelope_code.details or {}).items():
        for value in values:
            message += f"\n    {key}: {value}"
    return message


def get_header_description(response: httpx.Response) -> str | None:
    """Attempt to extract a useful description from the response headers."""
    header = response.headers.get("www-authenticate") or response.headers.get(
        "x-amzn-remapped-www-authenticate"
    )
    return header or None


def is_idempotent(method: str) -> bool:
    """Check whether an HTTP method is idempotent.

    Args:
        method: HTTP method name.

    Returns:
        True for GET, HEAD, PUT, DELETE, OPTIONS, and TRACE.

    """
    return method.upper() in IDEMPOTENT_METHODS


def create_session_client() -> httpx.AsyncClient:
    """Create the HTTP client used for all requests to the API.

    Returns:
        Configured httpx AsyncClient.

    """
    return httpx.AsyncClient(base_url=BASE_URL, timeout=REQUEST_TIMEOUT)


class AEGUserAgent:
    """User agent for accessing the Electrolux Group cloud API."""

    retry_delay_min = RETRY_DELAY_MIN
    retry_delay_max = RETRY_DELAY_MAX
    retry_delay_factor = RETRY_DELAY_FACTOR

    def __init__(self, session: httpx.AsyncClient, config: AEGConfig) -> None:
        """Initialize the user agent.

        Args:
            session: HTTP client, with its base URL set to the API server.
            config: Validated configuration.

        """
        self._session = session
        self.config = config
        self.default_headers = {
            "x-api-key": config.api_key,
            "user-agent": USER_AGENT,
        }
        self._request_count = 0

    # Requests that expect an empty response
    async def async_put(
        self, path: str, body: Any, options: RequestOptions | None = None
    ) -> None:
        """Issue a PUT request that expects an empty response."""
        await self.async_request_empty("PUT", path, options, body)

    async def async_post(
        self, path: str, body: Any, options: RequestOptions | None = None
    ) -> None:
        """Issue a POST request that expects an empty response."""
        await self.async_request_empty("POST", path, options, body)

    async def async_request_empty(
        self,
        method: str,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
    ) -> None:
        """Issue a request that must not return a body."""

        def check_empty(request: AEGRequest, response: httpx.Response) -> None:
            content_length = int(response.headers.get("content-length") or 0)
            if content_length:
                error_msg = f"Unexpected non-empty response ({content_length} bytes)"
                raise AEGApiError(request, response, error_msg)

        await self.async_request(method, path, options, body, handler=check_empty)

    # Requests that expect a JSON formatted response
    async def async_get_json(
        self, model: type[_T], path: str, options: RequestOptions | None = None
    ) -> _T:
        """Issue a GET request for a JSON response."""
        return await self.async_request_json(model, "GET", path, options)

    async def async_post_json(
        self,
        model: type[_T],
        path: str,
        body: Any,
        options: RequestOptions | None = None,
    ) -> _T:
        """Issue a POST request for a JSON response."""
        return await self.async_request_json(model, "POST", path, options, body)

    async def async_request_json(
        self,
        model: Any,
        method: str,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
    ) -> Any:
        """Issue a request and validate its JSON response.

        Args:
            model: Type describing the expected structure of the response.
            method: HTTP method.
            path: Path relative to the API base URL.
            options: Optional per-request options.
            body: Optional request body, encoded as JSON.

        Returns:
            The validated response.

        Raises:
            AEGApiError: If the request ultimately fails.

        """
        adapter = TypeAdapter(model)

        def decode(request: AEGRequest, response: httpx.Response) -> Any:
            return self._decode_json(adapter, request, response)

        headers = {"accept": CONTENT_TYPE_JSON}
        result = await self.async_request(
            method, path, options, body, headers=headers, handler=decode
        )
        return result

    def _decode_json(
        self,
        adapter: TypeAdapter[Any],
        request: AEGRequest,
        response: httpx.Response,
    ) -> Any:
        if response.status_code == HTTPStatus.NO_CONTENT:
            error_msg = "Unexpected empty response (status code 204 No Content)"
            raise AEGApiError(request, response, error_msg)

        content_type = response.headers.get("content-type", "")
        if content_type.startswith(CONTENT_TYPE_JSON):
            text = response.text
        elif content_type == CONTENT_TYPE_GZIP:
            try:
                text = gzip.decompress(response.content).decode("utf-8")
            except (OSError, EOFError, UnicodeDecodeError) as err:
                error_msg = f"Failed to gunzip binary response ({err})"
                raise AEGApiError(request, response, error_msg) from err
        else:
            error_msg = f"Unexpected response content-type ({content_type})"
            raise AEGApiError(request, response, error_msg)

        self._log_body("Response", text)
        try:
            data = json.loads(text)
        except ValueError as err:
            error_msg = f"Failed to parse JSON response ({err})"
            raise AEGApiError(request, response, error_msg) from err

        try:
            result = adapter.validate_python(data)
        except PydanticValidationError as err:
            _LOGGER.error(
                "Unexpected structure of AEG API response to %s %s: %s",
                request.method,
                request.path,
                err,
            )
            _LOGGER.debug("Received response: %s", json.dumps(data, indent=4))
            raise AEGValidationError(request, response, err) from err

        unexpected = find_unexpected_fields(result)
        if unexpected:
            _LOGGER.warning(
                "Unexpected fields in AEG API response to %s %s: %s",
                request.method,
                request.path,
                ", ".join(unexpected),
            )
        return result

    async def async_request(
        self,
        method: str,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        handler: Callable[[AEGRequest, httpx.Response], _T] | None = None,
    ) -> RequestResponse | _T:
        """Construct and issue a request, retrying if appropriate.

        Args:
            method: HTTP method.
            path: Path relative to the API base URL.
            options: Optional per-request options.
            body: Optional request body, encoded as JSON.
            headers: Additional headers for this call.
            handler: Optional processing of the response; any API error that
                it raises is subject to the same retry policy.

        Returns:
            The handler's result, or the request and response if no handler.

        Raises:
            AEGApiError: If the request fails and cannot be retried.

        """
        request_count: int | None = None
        retry_count = 0
        retry_delay = self.retry_delay_min

        while True:
            try:
                request = await self.prepare_request(
                    method, path, options, body, headers
                )
                if request_count is None:
                    self._request_count += 1
                    request_count = self._request_count
                counter = f"{request_count}" + (f".{retry_count}" if retry_count else "")
                response = await self._async_request_core(
                    f"AEG API #{counter}:", request
                )
                if handler is None:
                    return RequestResponse(request=request, response=response)
                return handler(request, response)
            except AEGApiError as err:
                if not self.can_retry(err):
                    raise
                retry_count += 1
                _LOGGER.debug(
                    "Retrying %s %s in %.1f seconds: %s",
                    method,
                    path,
                    retry_delay,
                    err,
                )
                await asyncio.sleep(retry_delay)
                retry_delay = min(
                    retry_delay * self.retry_delay_factor, self.retry_delay_max
                )

    async def prepare_request(
        self,
        method: str,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> AEGRequest:
        """Construct the request, merging default, call, and caller headers."""
        options = options or RequestOptions()
        return AEGRequest(
            method=method,
            path=path,
            query=options.query,
            headers={**self.default_headers, **(headers or {}), **options.headers},
            body=None if body is None else json.dumps(body),
            idempotent=is_idempotent(method),
        )

    def can_retry(self, err: AEGApiError) -> bool:
        """Decide whether a request can be retried following an error.

        Args:
            err: The API error that caused the request to fail.

        Returns:
            True if the request should be retried.

        """
        if isinstance(err, AEGAuthorizationError):
            return False

        if not err.request.idempotent:
            _LOGGER.warning(
                "Request will not be retried (%s is not idempotent)",
                err.request.method,
            )
            return False

        if (
            isinstance(err, AEGStatusCodeError)
            and err.status_code in NO_RETRY_STATUS_CODES
        ):
            _LOGGER.warning(
                "Request will not be retried (status code %d)", err.status_code
            )
            return False

        return True

    async def _async_request_core(
        self, log_prefix: str, request: AEGRequest
    ) -> httpx.Response:
        """Issue a single request and check its status code."""
        start_time = time.monotonic()
        status = "OK"
        try:
            _LOGGER.debug("%s %s %s", log_prefix, request.method, request.path)
            self._log_headers(f"{log_prefix} Request", request.headers)
            self._log_body(f"{log_prefix} Request", request.body)
            try:
                response = await self._session.request(
                    request.method,
                    request.path,
                    params=request.query,
                    headers=request.headers,
                    content=request.body,
                )
            except httpx.HTTPError as err:
                status = f"ERROR: {err!r}"
                raise AEGTransportError(request, None, status) from err
            self._log_headers(f"{log_prefix} Response", dict(response.headers))

            status = f"{response.status_code} {response.reason_phrase}"
            if not response.is_success:
                self._log_body(f"{log_prefix} Response", response.text)
                error = AEGStatusCodeError(request, response, response.text)
                status += f" {error}"
                raise error

            return response
        finally:
            elapsed = (time.monotonic() - start_time) * 1000
            _LOGGER.debug("%s %s +%dms", log_prefix, status, elapsed)

    def _log_headers(self, name: str, headers: dict[str, str]) -> None:
        if DebugFeature.LOG_API_HEADERS not in self.config.debug:
            return
        _LOGGER.debug("%s headers:", name)
        for key in sorted(headers):
            _LOGGER.debug("    %s: %s", key, headers[key])

    def _log_body(self, name: str, body: str | None) -> None:
        if DebugFeature.LOG_API_BODIES not in self.config.debug:
            return
        if body is None:
            return
        if not body:
            _LOGGER.debug("%s body: EMPTY", name)
            return
        _LOGGER.debug("%s body:", name)
        for line in body.splitlines():
            _LOGGER.debug("    %s", line)


def dump_body(model: BaseModel) -> dict[str, Any]:
    """Serialize a request body model using its wire field names."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)
