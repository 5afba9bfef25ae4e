"""OAuth refresh-token flow for the Zoho CRM API."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from fieldsync.domain.errors import SourceUnavailable

from .schema import TokenErrorResponse, TokenResponse

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fieldsync.config.zoho import ZohoConfig

log = getLogger(__name__)

# refresh slightly before Zoho expires the token
_EXPIRY_MARGIN_SECONDS = 60.0


class ZohoOAuth(httpx.Auth):
    """Attach ``Zoho-oauthtoken`` headers, refreshing the access token on demand.

    The token request is issued through the same client transport, so it gets
    the retry policy of the calling client. A 401 triggers one forced refresh.
    """

    requires_response_body = True

    def __init__(self, config: ZohoConfig, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._config = config
        self._clock = clock
        self._access_token: str | None = None
        self._expires_at = 0.0
        self._refresh_lock = asyncio.Lock()

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        if self._needs_refresh(None):
            async with self._refresh_lock:
                if self._needs_refresh(None):
                    token_response = yield self._refresh_request()
                    self._store_token(token_response)

        used_token = self._access_token
        request.headers["Authorization"] = f"Zoho-oauthtoken {used_token}"
        response = yield request

        if response.status_code == httpx.codes.UNAUTHORIZED:
            async with self._refresh_lock:
                # another request may already have replaced the rejected token
                if self._needs_refresh(used_token):
                    log.info("Zoho rejected the access token; refreshing once")
                    token_response = yield self._refresh_request()
                    self._store_token(token_response)
            request.headers["Authorization"] = f"Zoho-oauthtoken {self._access_token}"
            yield request

    def _needs_refresh(self, rejected: str | None) -> bool:
        return (
            self._access_token is None
            or self._access_token == rejected
            or self._clock() >= self._expires_at
        )

    def _refresh_request(self) -> httpx.Request:
        return httpx.Request(
            "POST",
            f"{self._config.accounts_url.rstrip('/')}/oauth/v2/token",
            params={
                "refresh_token": self._config.refresh_token,
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret,
                "grant_type": "refresh_token",
            },
        )

    def _store_token(self, response: httpx.Response) -> None:
        if response.is_error:
            raise SourceUnavailable(f"Zoho token refresh failed with HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailable("Zoho token response is not JSON") from exc
        if isinstance(payload, dict) and "error" in payload:
            error = TokenErrorResponse.model_validate(payload)
            raise SourceUnavailable(f"Zoho token refresh failed: {error.error}")
        try:
            token = TokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise SourceUnavailable("Unexpected Zoho token response payload") from exc
        self._access_token = token.access_token
        self._expires_at = self._clock() + max(token.expires_in - _EXPIRY_MARGIN_SECONDS, 0.0)
