#!/usr/bin/env python3
"""
UnoPim API Client.

This module provides the request layer for the UnoPim REST API: bearer
token injection, per-request timeouts, bounded retries on transient
failures, and token recovery when the backend rejects a stale token.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx

from pim_agent.core.config import UNOPIM_API_PREFIX, UnoPimSettings
from pim_agent.core.errors import ErrorCode, PimApiError
from pim_agent.integrations.unopim.auth import Credentials, TokenManager

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: float = 30.0

# Delay before each attempt: immediate, 1s, 3s
RETRY_DELAYS: Sequence[float] = (0, 1, 3)


class UnoPimClient:
    """
    Client for the UnoPim REST API.

    Every call makes at most len(retry_delays) attempts. Callers receive
    either the parsed JSON body or a single classified PimApiError.
    """

    def __init__(
        self,
        base_url: str,
        token_manager: TokenManager,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_delays: Sequence[float] = RETRY_DELAYS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        owns_http_client: Optional[bool] = None,
    ):
        """
        Initialize the UnoPim client.

        Args:
            base_url: UnoPim base URL (e.g. https://pim.example.com)
            token_manager: TokenManager for the same tenant
            http_client: Shared httpx client (created if not provided)
            timeout: Default per-request timeout in seconds
            retry_delays: Delay before each attempt; its length is the attempt budget
            sleep: Awaitable sleep used between attempts
            owns_http_client: Close the HTTP client on aclose() (defaults to
                True only when the client is created here)
        """
        self.base_url = base_url.rstrip("/")
        self.token_manager = token_manager
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None if owns_http_client is None else owns_http_client
        self.timeout = timeout
        self.retry_delays = tuple(retry_delays)
        self._sleep = sleep

    async def __aenter__(self) -> "UnoPimClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()
        await self.token_manager.aclose()

    # =========================================================================
    # API Request Helpers
    # =========================================================================

    def build_url(self, path: str) -> str:
        """
        Build an absolute URL for a REST path.

        Paths are relative to /api/v1/rest; a path that already carries the
        prefix is used as is.
        """
        normalized = path if path.startswith("/") else f"/{path}"
        if not normalized.startswith(UNOPIM_API_PREFIX + "/") and normalized != UNOPIM_API_PREFIX:
            normalized = UNOPIM_API_PREFIX + normalized
        return f"{self.base_url}{normalized}"

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        timeout: Optional[float] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated JSON request with retry and token recovery.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            path: REST path, e.g. "families/shoes"
            body: JSON body data
            timeout: Per-request timeout in seconds (defaults to the client's)
            params: Query parameters (None values are dropped)

        Returns:
            Parsed response JSON ({} for 204 No Content)

        Raises:
            PimApiError: The final classified error
        """
        method = method.upper()
        url = self.build_url(path)
        timeout = self.timeout if timeout is None else timeout
        query = {k: v for k, v in (params or {}).items() if v is not None}
        attempts = len(self.retry_delays)
        skip_delay = False

        for attempt, delay in enumerate(self.retry_delays, start=1):
            if delay and not skip_delay:
                await self._sleep(delay)
            skip_delay = False
            is_last = attempt == attempts

            access_token = await self.token_manager.get_token()
            headers = {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
            if body is not None:
                headers["Content-Type"] = "application/json"

            logger.debug(f"UnoPim API {method} {url} (attempt {attempt}/{attempts})")

            try:
                response = await self._http.request(
                    method,
                    url,
                    headers=headers,
                    params=query or None,
                    json=body,
                    timeout=timeout,
                )
            except httpx.HTTPError as e:
                error = PimApiError.network_error(e)
                if is_last:
                    raise error from e
                logger.warning(f"{method} {path} failed (attempt {attempt}): {error.message}, retrying...")
                continue

            if response.status_code == 401:
                self.token_manager.invalidate(access_token)
                if not is_last:
                    logger.warning(f"{method} {path} returned 401, retrying with a new token")
                    skip_delay = True
                    continue

            if not response.is_success:
                error = PimApiError.from_response(response)
                if error.retry_possible and not is_last:
                    logger.warning(f"{method} {path} failed (attempt {attempt}): {error.message}, retrying...")
                    continue
                raise error

            return self._parse_body(response)

        # Unreachable while retry_delays is non-empty
        raise PimApiError(ErrorCode.SERVER_ERROR, "Max retries exceeded")

    async def execute_multipart(
        self,
        path: str,
        files: Dict[str, Any],
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated multipart/form-data POST (file uploads).

        The form payload may wrap a stream, so it is sent exactly once: a 401
        drops the cached token and surfaces TOKEN_EXPIRED for the caller to
        retry as a whole.

        Args:
            path: REST path, e.g. "media-files/product"
            files: httpx files mapping (name -> (filename, content[, content_type]))
            data: Plain form fields
            timeout: Per-request timeout in seconds

        Returns:
            Parsed response JSON

        Raises:
            PimApiError: Classified failure
        """
        url = self.build_url(path)
        access_token = await self.token_manager.get_token()
        # No Content-Type here: httpx sets it with the multipart boundary
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

        logger.debug(f"UnoPim API POST (multipart) {url}")

        try:
            response = await self._http.post(
                url,
                headers=headers,
                files=files,
                data=data or {},
                timeout=self.timeout if timeout is None else timeout,
            )
        except httpx.HTTPError as e:
            raise PimApiError.network_error(e) from e

        if response.status_code == 401:
            self.token_manager.invalidate(access_token)
        if not response.is_success:
            raise PimApiError.from_response(response)

        return self._parse_body(response)

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        if response.status_code == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise PimApiError(
                ErrorCode.SERVER_ERROR,
                f"Response was not valid JSON: {e}",
                details=response.text[:500],
                status_code=response.status_code,
            ) from e
        # List endpoints may answer with a bare array
        if not isinstance(data, dict):
            return {"data": data}
        return data

    # =========================================================================
    # Verb Shortcuts
    # =========================================================================

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return await self.execute("GET", path, params=params, **kwargs)

    async def post(self, path: str, body: Any, **kwargs) -> Dict[str, Any]:
        return await self.execute("POST", path, body=body, **kwargs)

    async def put(self, path: str, body: Any, **kwargs) -> Dict[str, Any]:
        return await self.execute("PUT", path, body=body, **kwargs)

    async def patch(self, path: str, body: Any, **kwargs) -> Dict[str, Any]:
        return await self.execute("PATCH", path, body=body, **kwargs)

    async def delete(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.execute("DELETE", path, **kwargs)


def create_unopim_client(settings: UnoPimSettings) -> UnoPimClient:
    """Create a UnoPimClient and its token manager sharing one HTTP client."""
    http_client = httpx.AsyncClient()
    token_manager = TokenManager(
        settings.base_url,
        Credentials.from_settings(settings),
        http_client=http_client,
        timeout=settings.request_timeout,
    )
    return UnoPimClient(
        settings.base_url,
        token_manager,
        http_client=http_client,
        timeout=settings.request_timeout,
        owns_http_client=True,
    )
