"""Authorization for accessing the Electrolux Group API.

The authorized user agent seeds, persists, and periodically refreshes the
access token, and holds back ordinary requests until a usable token exists.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from .api import (
    AEGApiError,
    AEGAuthorizationError,
    AEGRequest,
    AEGStatusCodeError,
    AEGUserAgent,
    RequestOptions,
)
from .const import (
    AUTH_DENIED_STATUS_CODES,
    NEW_TOKEN_REFRESH_DELAY,
    REFRESH_RETRY_DELAY,
    REFRESH_WINDOW,
)
from .models import Credential
from .schemas import StoredCredential, Tokens

if TYPE_CHECKING:
    from .models import AEGConfig
    from .store import BlobStore

_LOGGER = logging.getLogger(__name__)

TOKEN_REFRESH_PATH = "/api/v1/token/refresh"
TOKEN_REVOKE_PATH = "/api/v1/token/revoke"


class AuthState(StrEnum):
    """Authorization state of the user agent."""

    UNAUTHORIZED = "unauthorized"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    PERMANENTLY_DENIED = "permanently denied"


def make_persist_key(config: AEGConfig) -> str:
    """Derive the storage key for the credential from the configuration.

    Any change to the configured credentials invalidates a stored token.
    """
    joined = f"{config.api_key}:{config.access_token}:{config.refresh_token}"
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


class AEGAuthorizedUserAgent(AEGUserAgent):
    """User agent that adds and maintains API authorization."""

    refresh_window = REFRESH_WINDOW
    refresh_retry_delay = REFRESH_RETRY_DELAY
    new_token_refresh_delay = NEW_TOKEN_REFRESH_DELAY

    def __init__(
        self,
        session: httpx.AsyncClient,
        config: AEGConfig,
        store: BlobStore,
    ) -> None:
        super().__init__(session, config)
        self._store = store
        self._persist_key = make_persist_key(config)
        self.credential: Credential | None = None
        self.state = AuthState.UNAUTHORIZED
        self._authorized: asyncio.Future[bool] | None = None
        self._refresh_task: asyncio.Task[None] | None = None

    def _gate(self) -> asyncio.Future[bool]:
        if self._authorized is None:
            self._authorized = asyncio.get_running_loop().create_future()
        return self._authorized

    def _set_state(self, state: AuthState) -> None:
        if state == self.state:
            return
        _LOGGER.debug("Authorization state %s -> %s", self.state, state)
        self.state = state
        gate = self._gate()
        if state == AuthState.AUTHORIZED:
            if gate.done():
                self._authorized = gate = asyncio.get_running_loop().create_future()
            gate.set_result(True)
        elif state == AuthState.PERMANENTLY_DENIED:
            if gate.done():
                self._authorized = gate = asyncio.get_running_loop().create_future()
            gate.set_result(False)
        elif gate.done():
            self._authorized = None

    async def async_start(self) -> None:
        """Load or seed the credential and start refreshing it."""
        self._gate()
        credential = await self._async_load_credential()
        if credential is None:
            _LOGGER.info("No saved access token; using credentials from configuration")
            credential = await self._async_save_credential(
                self.config.access_token,
                self.config.refresh_token,
                self.refresh_window + self.new_token_refresh_delay,
            )
            self._set_state(AuthState.AUTHORIZED)
        elif datetime.now(UTC) + self.refresh_window < credential.expires_at:
            _LOGGER.info("Using saved access token")
            self._set_state(AuthState.AUTHORIZED)
        else:
            _LOGGER.info("Saved access token has expired")
            self._set_state(AuthState.AUTHORIZING)

        self._refresh_task = asyncio.create_task(
            self._async_refresh_loop(credential), name="aeg_robot token refresh"
        )

    async def async_stop(self) -> None:
        """Stop refreshing the credential."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

    async def _async_refresh_loop(self, credential: Credential) -> None:
        while True:
            try:
                delay = credential.expires_at - self.refresh_window - datetime.now(UTC)
                await asyncio.sleep(max(delay.total_seconds(), 0))

                tokens = await self.async_token_refresh(credential.refresh_token)
                credential = await self._async_save_credential(
                    tokens.access_token,
                    tokens.refresh_token,
                    timedelta(seconds=tokens.expires_in),
                )
                _LOGGER.info("Successfully refreshed access token")
                self._set_state(AuthState.AUTHORIZED)
            except AEGAuthorizationError as err:
                _LOGGER.error("API authorization failed: %s", err)
                self._set_state(AuthState.PERMANENTLY_DENIED)
                return
            except AEGApiError as err:
                _LOGGER.warning("API authorization failed, will retry: %s", err)
                await asyncio.sleep(self.refresh_retry_delay.total_seconds())

    async def _async_load_credential(self) -> Credential | None:
        try:
            stored = await self._store.async_get(self._persist_key)
            if stored is None:
                return None
            saved = StoredCredential.model_validate(stored)
        except (OSError, ValueError, PydanticValidationError) as err:
            _LOGGER.error("Unable to use saved authorization: %s", err)
            return None
        self.credential = Credential(
            access_token=saved.access_token,
            refresh_token=saved.refresh_token,
            expires_at=saved.expires_at,
        )
        return self.credential

    async def _async_save_credential(
        self, access_token: str, refresh_token: str, expires_in: timedelta
    ) -> Credential:
        credential = self.credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.now(UTC) + expires_in,
        )
        stored = StoredCredential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=credential.expires_at,
        )
        try:
            await self._store.async_set(
                self._persist_key, stored.model_dump(mode="json", by_alias=True)
            )
        except (OSError, TypeError, ValueError) as err:
            _LOGGER.error("Unable to save authorization: %s", err)
        return credential

    async def prepare_request(
        self,
        method: str,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> AEGRequest:
        """Wait for authorization, then add the Authorization header."""
        request = await super().prepare_request(method, path, options, body, headers)

        if not (options and options.is_auth_request):
            if not await self._gate():
                error_msg = "API authorization has been permanently denied"
                raise AEGAuthorizationError(request, None, error_msg)

        if self.credential is not None:
            request.headers["authorization"] = f"Bearer {self.credential.access_token}"
        return request

    async def async_token_refresh(self, refresh_token: str) -> Tokens:
        """Exchange the refresh token for new access and refresh tokens.

        Raises:
            AEGAuthorizationError: If the token endpoint rejects the request.
            AEGApiError: For any other failure.

        """
        options = RequestOptions(is_auth_request=True)
        body = {"refreshToken": refresh_token}
        try:
            return await self.async_post_json(
                Tokens, TOKEN_REFRESH_PATH, body, options
            )
        except AEGStatusCodeError as err:
            if err.status_code in AUTH_DENIED_STATUS_CODES:
                raise AEGAuthorizationError(err.request, err.response, str(err)) from err
            raise

    async def async_token_revoke(self, refresh_token: str) -> None:
        """Revoke a refresh token."""
        options = RequestOptions(is_auth_request=True)
        await self.async_post(TOKEN_REVOKE_PATH, {"refreshToken": refresh_token}, options)
