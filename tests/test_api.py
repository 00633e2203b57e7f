"""Tests for the Electrolux Group API user agent."""

import gzip
import json
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pydantic import BaseModel

from aeg_robot.api import (
    AEGApiError,
    AEGAuthorizationError,
    AEGRequest,
    AEGStatusCodeError,
    AEGTransportError,
    AEGUserAgent,
    AEGValidationError,
    RequestOptions,
    create_session_client,
    get_status_code_message,
    is_idempotent,
)
from aeg_robot.const import BASE_URL, RETRY_DELAY_MAX, USER_AGENT
from aeg_robot.models import AEGConfig, DebugFeature
from aeg_robot.schemas import HealthCheck
from tests.conftest import Handler, make_session

HEALTH_PATH = "/health-check/api/v1/health-checks"
RETRY_COUNT = 10


class Thing(BaseModel):
    """Minimal response model used by these tests."""

    name: str


def respond_in_sequence(
    *responses: httpx.Response,
) -> tuple[list[httpx.Request], Handler]:
    """Create a handler that returns each response in turn, then the last."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses[min(len(requests), len(responses)) - 1]

    return requests, handler


class TestIsIdempotent:
    """Tests for is_idempotent function."""

    def test_idempotent_methods(self) -> None:
        """Test that safe and idempotent methods are recognised."""
        for method in ("GET", "HEAD", "PUT", "DELETE", "OPTIONS", "TRACE", "get"):
            assert is_idempotent(method) is True

    def test_non_idempotent_methods(self) -> None:
        """Test that POST and PATCH are not idempotent."""
        assert is_idempotent("POST") is False
        assert is_idempotent("PATCH") is False


class TestStatusCodeMessage:
    """Tests for get_status_code_message function."""

    def test_lowercase_message_envelope(self) -> None:
        """Test that a message and error are extracted from the body."""
        response = httpx.Response(400)
        text = json.dumps({"message": "Bad refresh token", "error": "invalid_grant"})
        message = get_status_code_message(response, text)
        assert message == "[400 Bad Request] Bad refresh token (invalid_grant)"

    def test_uppercase_message_envelope(self) -> None:
        """Test that a capitalised Message field is extracted from the body."""
        response = httpx.Response(403)
        message = get_status_code_message(response, json.dumps({"Message": "Denied"}))
        assert message == "[403 Forbidden] Denied"

    def test_code_envelope_with_details(self) -> None:
        """Test that a coded error includes each detail."""
        response = httpx.Response(400)
        text = json.dumps(
            {
                "code": 1002,
                "codeDescription": "Invalid command",
                "details": {"CleaningCommand": ["Unknown value"]},
            }
        )
        message = get_status_code_message(response, text)
        assert message.startswith("[400 Bad Request] Invalid command (1002)")
        assert "CleaningCommand: Unknown value" in message

    def test_plain_text_body(self) -> None:
        """Test that a non-JSON body is used verbatim."""
        response = httpx.Response(500)
        message = get_status_code_message(response, "Internal failure")
        assert message == "[500 Internal Server Error] Internal failure"

    def test_authenticate_header(self) -> None:
        """Test that the remapped authenticate header is used without a body."""
        response = httpx.Response(
            401, headers={"x-amzn-remapped-www-authenticate": "Bearer error=expired"}
        )
        message = get_status_code_message(response, "")
        assert message == "[401 Unauthorized] Bearer error=expired"

    def test_no_description(self) -> None:
        """Test the fallback message when nothing describes the error."""
        response = httpx.Response(502)
        message = get_status_code_message(response, "")
        assert message == "[502 Bad Gateway] No error message returned"


class TestCreateSessionClient:
    """Tests for create_session_client function."""

    @pytest.mark.asyncio
    async def test_client_uses_api_base_url(self) -> None:
        """Test that the production client targets the API server."""
        async with create_session_client() as client:
            assert str(client.base_url).rstrip("/") == BASE_URL
            assert client.timeout.read == pytest.approx(5.0)


class TestRequestHeaders:
    """Tests for request construction."""

    @pytest.mark.asyncio
    async def test_default_and_caller_headers_are_merged(self, config: AEGConfig) -> None:
        """Test that default, call, and caller headers are all sent."""
        requests, handler = respond_in_sequence(httpx.Response(200, json={"name": "x"}))
        ua = AEGUserAgent(make_session(handler), config)

        options = RequestOptions(query={"limit": 5}, headers={"x-custom": "1"})
        result = await ua.async_get_json(Thing, "/thing", options)

        assert result.name == "x"
        request = requests[0]
        assert request.headers["x-api-key"] == "test-api-key"
        assert request.headers["user-agent"] == USER_AGENT
        assert request.headers["accept"] == "application/json"
        assert request.headers["x-custom"] == "1"
        assert request.url.params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_body_is_json_encoded(self, config: AEGConfig) -> None:
        """Test that a request body is sent as JSON."""
        requests, handler = respond_in_sequence(httpx.Response(200))
        ua = AEGUserAgent(make_session(handler), config)

        await ua.async_put("/command", {"CleaningCommand": "play"})

        assert json.loads(requests[0].content) == {"CleaningCommand": "play"}
        assert requests[0].method == "PUT"


class TestRetryPolicy:
    """Tests for retrying failed requests."""

    @pytest.mark.asyncio
    async def test_idempotent_request_is_retried_with_backoff(
        self, config: AEGConfig
    ) -> None:
        """Test that GET retries with doubling delays until it succeeds."""
        failures = [httpx.Response(503)] * RETRY_COUNT
        requests, handler = respond_in_sequence(
            *failures, httpx.Response(200, json={"name": "ok"})
        )
        ua = AEGUserAgent(make_session(handler), config)

        with patch("aeg_robot.api.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await ua.async_get_json(Thing, "/thing")

        assert result.name == "ok"
        assert len(requests) == RETRY_COUNT + 1
        delays = [call.args[0] for call in sleep.await_args_list]
        assert len(delays) == RETRY_COUNT
        assert delays[:4] == [0.5, 1.0, 2.0, 4.0]
        assert all(a <= b for a, b in zip(delays, delays[1:], strict=False))
        assert max(delays) == RETRY_DELAY_MAX

    @pytest.mark.asyncio
    async def test_non_idempotent_request_is_not_retried(
        self, config: AEGConfig
    ) -> None:
        """Test that a failed POST is surfaced immediately."""
        requests, handler = respond_in_sequence(httpx.Response(503))
        ua = AEGUserAgent(make_session(handler), config)

        with patch("aeg_robot.api.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(AEGStatusCodeError) as exc_info:
                await ua.async_post_json(Thing, "/thing", {})

        assert exc_info.value.status_code == 503
        assert len(requests) == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, config: AEGConfig) -> None:
        """Test that a 404 response is never retried, even for GET."""
        requests, handler = respond_in_sequence(httpx.Response(404))
        ua = AEGUserAgent(make_session(handler), config)

        with pytest.raises(AEGStatusCodeError, match=r"\[404 Not Found\]"):
            await ua.async_get_json(Thing, "/missing")

        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_validation_failure_is_retried(self, config: AEGConfig) -> None:
        """Test that a malformed response to a GET is retried."""
        requests, handler = respond_in_sequence(
            httpx.Response(200, json={"unexpected": True}),
            httpx.Response(200, json={"name": "ok"}),
        )
        ua = AEGUserAgent(make_session(handler), config)

        with patch("aeg_robot.api.asyncio.sleep", new_callable=AsyncMock):
            result = await ua.async_get_json(Thing, "/thing")

        assert result.name == "ok"
        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_transport_error_is_classified(self, config: AEGConfig) -> None:
        """Test that a connection failure becomes AEGTransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        ua = AEGUserAgent(make_session(handler), config)

        with pytest.raises(AEGTransportError) as exc_info:
            await ua.async_post("/thing", {})

        assert exc_info.value.response is None
        assert exc_info.value.request.method == "POST"

    def test_authorization_error_is_never_retried(self, config: AEGConfig) -> None:
        """Test that authorization failures are not retried."""
        ua = AEGUserAgent(make_session(respond_in_sequence()[1]), config)
        request = AEGRequest("GET", "/thing", {}, idempotent=True)
        assert ua.can_retry(AEGAuthorizationError(request, None, "denied")) is False
        assert ua.can_retry(AEGApiError(request, None, "failed")) is True


class TestResponseDecoding:
    """Tests for decoding and validating responses."""

    @pytest.mark.asyncio
    async def test_gzip_octet_stream_is_decompressed(self, config: AEGConfig) -> None:
        """Test that an octet-stream body is treated as gzipped JSON."""
        body = gzip.compress(json.dumps({"name": "zipped"}).encode())
        _, handler = respond_in_sequence(
            httpx.Response(
                200, content=body, headers={"content-type": "application/octet-stream"}
            )
        )
        ua = AEGUserAgent(make_session(handler), config)

        result = await ua.async_get_json(Thing, "/map")

        assert result.name == "zipped"

    @pytest.mark.asyncio
    async def test_unexpected_content_type_is_an_error(self, config: AEGConfig) -> None:
        """Test that other content types are rejected."""
        _, handler = respond_in_sequence(
            httpx.Response(200, text="<html/>", headers={"content-type": "text/html"})
        )
        ua = AEGUserAgent(make_session(handler), config)

        with pytest.raises(AEGApiError, match="content-type"):
            await ua.async_post_json(Thing, "/thing", {})

    @pytest.mark.asyncio
    async def test_no_content_is_an_error(self, config: AEGConfig) -> None:
        """Test that a 204 response is rejected where a payload is expected."""
        _, handler = respond_in_sequence(httpx.Response(204))
        ua = AEGUserAgent(make_session(handler), config)

        with pytest.raises(AEGApiError, match="204"):
            await ua.async_post_json(Thing, "/thing", {})

    @pytest.mark.asyncio
    async def test_validation_error_names_location(self, config: AEGConfig) -> None:
        """Test that a structure mismatch raises AEGValidationError."""
        _, handler = respond_in_sequence(httpx.Response(200, json={"name": 5}))
        ua = AEGUserAgent(make_session(handler), config)

        with pytest.raises(AEGValidationError, match=r"response\.name"):
            await ua.async_post_json(Thing, "/thing", {})

    @pytest.mark.asyncio
    async def test_unexpected_fields_are_logged(
        self,
        config: AEGConfig,
        sample_health_response: list,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that undeclared fields produce a warning but not an error."""
        sample_health_response[0]["region"] = "eu-west-1"
        _, handler = respond_in_sequence(
            httpx.Response(200, json=sample_health_response)
        )
        ua = AEGUserAgent(make_session(handler), config)

        with caplog.at_level(logging.WARNING, logger="aeg_robot.api"):
            result = await ua.async_get_json(list[HealthCheck], HEALTH_PATH)

        assert result[0].status_code == 200
        assert "response[0].region" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_response_rejects_body(self, config: AEGConfig) -> None:
        """Test that a body where none is expected is an error (and retried)."""
        requests, handler = respond_in_sequence(
            httpx.Response(200, content=b"{}"),
            httpx.Response(200),
        )
        ua = AEGUserAgent(make_session(handler), config)

        with patch("aeg_robot.api.asyncio.sleep", new_callable=AsyncMock):
            await ua.async_put("/command", {"CleaningCommand": "home"})

        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_debug_features_log_headers_and_bodies(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that the debug features log request details."""
        config = AEGConfig(
            api_key="key",
            access_token="a",
            refresh_token="r",
            debug=frozenset({DebugFeature.LOG_API_HEADERS, DebugFeature.LOG_API_BODIES}),
        )
        _, handler = respond_in_sequence(httpx.Response(200, json={"name": "logged"}))
        ua = AEGUserAgent(make_session(handler), config)

        with caplog.at_level(logging.DEBUG, logger="aeg_robot.api"):
            await ua.async_get_json(Thing, "/thing")

        assert "AEG API #1: GET /thing" in caplog.text
        assert "x-api-key: key" in caplog.text
        assert "Response body:" in caplog.text
        assert "logged" in caplog.text
