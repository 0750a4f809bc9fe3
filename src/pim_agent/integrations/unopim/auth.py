#!/usr/bin/env python3
"""
OAuth2 token lifecycle for the UnoPim API.

The manager owns exactly one cached token per tenant. It acquires a token
with the password grant, renews it with the refresh grant shortly before it
expires, and drops it when the request layer reports that it was rejected.
"""

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx

from pim_agent.core.config import UNOPIM_TOKEN_PATH, UnoPimSettings, mask_secret
from pim_agent.core.errors import ErrorCode, PimApiError

logger = logging.getLogger(__name__)

# Renew the token this many seconds before it expires
REFRESH_BUFFER_SECONDS: float = 5 * 60

# Token endpoint retry schedule: immediate, 1s, 3s
TOKEN_RETRY_DELAYS: Sequence[float] = (0, 1, 3)


@dataclass(frozen=True)
class Credentials:
    """Client and user credentials for one tenant."""
    client_id: str
    client_secret: str
    username: str
    password: str

    @classmethod
    def from_settings(cls, settings: UnoPimSettings) -> "Credentials":
        return cls(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            username=settings.username,
            password=settings.password,
        )

    def basic_auth_header(self) -> str:
        raw = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        return f"Basic {base64.b64encode(raw).decode('ascii')}"

    def __repr__(self) -> str:
        return f"Credentials(client_id={mask_secret(self.client_id)!r}, username={self.username!r})"


@dataclass(frozen=True)
class CachedToken:
    """A token as returned by the token endpoint; replaced wholesale, never edited."""
    access_token: str
    refresh_token: Optional[str]
    expires_at: float

    @classmethod
    def from_response(cls, token_data: Dict[str, Any], now: float) -> "CachedToken":
        """
        Build a cached token from a token endpoint response.

        Raises:
            PimApiError: If the response is not an object, carries no access token,
                or has a non-numeric expires_in
        """
        if not isinstance(token_data, dict):
            raise PimApiError(
                ErrorCode.AUTH_FAILED,
                f"Token response was not a JSON object: {type(token_data).__name__}",
            )

        access_token = token_data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise PimApiError(
                ErrorCode.AUTH_FAILED,
                f"Token response did not include an access token: {token_data.get('error', 'unknown error')}",
            )
        try:
            expires_in = float(token_data.get("expires_in", 3600))
        except (TypeError, ValueError):
            raise PimApiError(
                ErrorCode.AUTH_FAILED,
                f"Token response has an invalid expires_in: {token_data.get('expires_in')!r}",
            )
        return cls(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            expires_at=now + expires_in,
        )


class TokenState(str, Enum):
    """Observable states of the token cache."""
    EMPTY = "empty"
    VALID = "valid"
    NEAR_EXPIRY = "near_expiry"
    EXPIRED = "expired"


class TokenManager:
    """
    Single-token cache for the UnoPim OAuth2 endpoint.

    Only one acquisition or refresh is ever in flight: concurrent callers
    that find the cache stale wait for the renewal already running and then
    read its result.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        retry_delays: Sequence[float] = TOKEN_RETRY_DELAYS,
        refresh_buffer: float = REFRESH_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the token manager.

        Args:
            base_url: UnoPim base URL (without /api/v1/rest)
            credentials: Tenant credentials
            http_client: Shared httpx client (created if not provided)
            timeout: Token request timeout in seconds
            retry_delays: Delay before each attempt; its length is the attempt budget
            refresh_buffer: Seconds before expiry at which the token is renewed
            clock: Returns the current time as epoch seconds
            sleep: Awaitable sleep used between attempts
        """
        self.token_url = base_url.rstrip("/") + UNOPIM_TOKEN_PATH
        self.credentials = credentials
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None
        self.timeout = timeout
        self.retry_delays = tuple(retry_delays)
        self.refresh_buffer = refresh_buffer
        self._clock = clock
        self._sleep = sleep

        self._token: Optional[CachedToken] = None
        self._renew_lock = asyncio.Lock()

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def state(self) -> TokenState:
        token = self._token
        if token is None:
            return TokenState.EMPTY
        now = self._clock()
        if now >= token.expires_at:
            return TokenState.EXPIRED
        if now >= token.expires_at - self.refresh_buffer:
            return TokenState.NEAR_EXPIRY
        return TokenState.VALID

    async def get_token(self) -> str:
        """
        Get a usable access token, acquiring or refreshing it if necessary.

        Returns:
            Bearer access token

        Raises:
            PimApiError: AUTH_FAILED once the retry schedule is exhausted
        """
        token = self._token
        if token is not None and self.state == TokenState.VALID:
            return token.access_token

        async with self._renew_lock:
            # Another caller may have renewed while we waited
            state = self.state
            if state == TokenState.VALID:
                return self._token.access_token

            if state == TokenState.NEAR_EXPIRY and self._token.refresh_token:
                try:
                    self._token = await self._refresh(self._token.refresh_token)
                except PimApiError as e:
                    logger.warning(f"Token refresh failed, acquiring new token: {e.message}")
                    self._token = await self._acquire()
            else:
                self._token = await self._acquire()

            return self._token.access_token

    def invalidate(self, rejected_token: Optional[str] = None) -> None:
        """
        Drop the cached token so the next get_token() acquires a new one.

        Args:
            rejected_token: If given, only invalidate when it is still the cached
                token (a concurrent caller may already have replaced it)
        """
        if rejected_token is not None and self._token is not None:
            if self._token.access_token != rejected_token:
                logger.debug("Rejected token already replaced, keeping current token")
                return
        logger.info("Invalidating cached access token")
        self._token = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # =========================================================================
    # Token Endpoint
    # =========================================================================

    async def _acquire(self) -> CachedToken:
        logger.debug("Acquiring UnoPim access token (password grant)")
        body = {
            "username": self.credentials.username,
            "password": self.credentials.password,
            "grant_type": "password",
        }
        return await self._request_token(body, "acquisition")

    async def _refresh(self, refresh_token: str) -> CachedToken:
        logger.debug("Refreshing UnoPim access token (refresh grant)")
        body = {
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        return await self._request_token(body, "refresh")

    async def _request_token(self, body: Dict[str, str], purpose: str) -> CachedToken:
        """
        POST to the token endpoint following the fixed retry schedule.

        Every failure, including a credential rejection, consumes one attempt.
        """
        headers = {
            "Authorization": self.credentials.basic_auth_header(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        attempts = len(self.retry_delays)
        last_error: Optional[Exception] = None

        for attempt, delay in enumerate(self.retry_delays, start=1):
            if delay:
                await self._sleep(delay)
            try:
                response = await self._http.post(
                    self.token_url, json=body, headers=headers, timeout=self.timeout
                )
                if response.status_code != 200:
                    raise PimApiError.from_response(response)
                return CachedToken.from_response(response.json(), self._clock())
            except httpx.HTTPError as e:
                last_error = PimApiError.network_error(e)
            except PimApiError as e:
                last_error = e
            except ValueError as e:
                last_error = PimApiError(ErrorCode.AUTH_FAILED, f"Token response was not valid JSON: {e}")

            logger.warning(f"Token {purpose} attempt {attempt}/{attempts} failed: {last_error}")

        details = last_error.to_dict() if isinstance(last_error, PimApiError) else None
        raise PimApiError(
            ErrorCode.AUTH_FAILED,
            f"Failed token {purpose} after {attempts} attempts: {last_error}",
            details=details,
        )
