"""
Strava API client.

Every call goes through authenticated_request(), which:
- resolves a valid access token (refreshing it just in time)
- attaches it as a Bearer header on top of the caller's headers
- turns every failure into AuthRequired, NetworkError or RemoteError

Timeouts are the transport's defaults unless settings.http_timeout is set.
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from strava_monthly.config import settings
from strava_monthly.shared.http import open_client
from .errors import AuthRequired, NetworkError, RemoteError
from .tokens import TokenRefreshManager

logger = logging.getLogger(__name__)


class StravaClient:
    """
    Async client for Strava API.

    Usage:
        client = StravaClient(TokenRefreshManager(store))
        athlete = await client.get_athlete()
        activities = await client.authenticated_request(
            "/athlete/activities", params={"page": 1, "per_page": 30}
        )
    """

    def __init__(
        self,
        tokens: TokenRefreshManager,
        *,
        api_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.tokens = tokens
        self.api_url = (api_url or settings.strava_api_url).rstrip("/")
        self._http_client = http_client
        self._timeout = timeout if timeout is not None else settings.http_timeout

    def _resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.api_url}/{url.lstrip('/')}"

    async def authenticated_request(
        self,
        url: str,
        method: str = "GET",
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
    ) -> Any:
        """
        Make an authenticated API request and return the decoded JSON body.

        Args:
            url: Absolute URL or path relative to the API base
            method: HTTP method
            params: Query parameters
            headers: Extra headers, sent alongside Authorization
            json: JSON request body

        Raises:
            AuthRequired: No valid or refreshable token (no request sent)
            NetworkError: The request failed before a usable response arrived
            RemoteError: Non-2xx status or undecodable body
        """
        token = await self.tokens.resolve_access_token()
        if not token:
            raise AuthRequired()

        request_headers = dict(headers or {})
        request_headers["Authorization"] = f"Bearer {token}"
        full_url = self._resolve_url(url)

        try:
            async with open_client(self._http_client, self._timeout) as client:
                response = await client.request(
                    method=method,
                    url=full_url,
                    headers=request_headers,
                    params=params,
                    json=json,
                )
        except httpx.RequestError as e:
            logger.error(f"Strava request {method} {full_url} failed: {e!r}")
            raise NetworkError(e) from e

        # Log rate limit headers from Strava
        if "X-RateLimit-Limit" in response.headers:
            logger.debug(
                f"Strava rate limit: {response.headers.get('X-RateLimit-Usage')} "
                f"/ {response.headers.get('X-RateLimit-Limit')}"
            )

        if not response.is_success:
            body = _decode_body(response)
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                f"Strava API error {response.status_code} for {method} {full_url}: {message}"
            )
            raise RemoteError(response.status_code, message, body)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                response.status_code,
                "Response body is not valid JSON",
                response.text,
            ) from e

    async def get_athlete(self) -> dict:
        """Get authenticated athlete profile."""
        return await self.authenticated_request("/athlete")


def _decode_body(response: httpx.Response) -> Any:
    """Best-effort JSON decode of an error body, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text
