"""
Strava OAuth flow.

Handles:
- Authorization URL generation
- Code exchange for tokens
- Token refresh
- Token revocation (deauthorization)
- The login state machine driven by the platform redirect
"""

import logging
import webbrowser
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from strava_monthly.config import settings
from strava_monthly.shared.http import open_client
from .credentials import (
    ACCESS_TOKEN_KEY,
    CredentialRecord,
    CredentialStore,
    clear_credentials,
    save_credentials,
)

logger = logging.getLogger(__name__)


class StravaOAuthError(Exception):
    """OAuth-related error."""
    pass


class StravaOAuth:
    """
    Strava OAuth handler.

    Usage:
        oauth = StravaOAuth()
        auth_url = oauth.get_authorization_url()
        tokens = await oauth.exchange_code(code)
        tokens = await oauth.refresh_token(refresh_token)
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.client_id = client_id or settings.strava_client_id
        self.client_secret = client_secret or settings.strava_client_secret
        self.redirect_uri = redirect_uri or settings.strava_redirect_uri
        self.authorize_url = settings.strava_authorize_url
        self.token_url = settings.strava_token_url
        self.deauthorize_url = settings.strava_deauthorize_url
        self._http_client = http_client
        self._timeout = timeout if timeout is not None else settings.http_timeout

    def get_authorization_url(
        self,
        redirect_uri: Optional[str] = None,
        scope: Optional[str] = None,
        state: Optional[str] = None,
    ) -> str:
        """
        Generate Strava OAuth authorization URL.

        Args:
            redirect_uri: URL to redirect after authorization
            scope: OAuth scope (default: settings.strava_scope, activity:read_all)
            state: Optional state parameter for CSRF protection

        Scopes:
        - activity:read - View activities (excluding private)
        - activity:read_all - View all activities (including private)

        Returns:
            Authorization URL string
        """
        if not self.client_id:
            raise StravaOAuthError("Strava client_id is not configured")

        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri or self.redirect_uri,
            "scope": scope or settings.strava_scope,
        }
        if state:
            params["state"] = state

        return f"{self.authorize_url}?{urlencode(params, safe=':/')}"

    async def exchange_code(self, code: str) -> dict:
        """
        Exchange authorization code for tokens.

        Args:
            code: Authorization code from Strava callback

        Returns:
            {
                "access_token": "...",
                "refresh_token": "...",
                "expires_at": 1234567890,
                "athlete": {"id": 123, "firstname": "...", ...}
            }

        Raises:
            StravaOAuthError: If token exchange fails
        """
        return await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
            },
            action="Token exchange",
        )

    async def refresh_token(self, refresh_token: str) -> dict:
        """
        Refresh an expired access token.

        Args:
            refresh_token: Current refresh token

        Returns:
            {
                "access_token": "...",
                "refresh_token": "...",
                "expires_at": 1234567890
            }

        Raises:
            StravaOAuthError: If token refresh fails
        """
        return await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            action="Token refresh",
        )

    async def deauthorize(self, access_token: str) -> bool:
        """
        Revoke Strava access (user disconnect).

        Returns:
            True if deauthorization was successful
        """
        try:
            async with open_client(self._http_client, self._timeout) as client:
                response = await client.post(
                    self.deauthorize_url,
                    headers={"Authorization": f"Bearer {access_token}"}
                )
        except httpx.HTTPError as e:
            logger.warning(f"Strava deauthorization failed: {e}")
            return False
        return response.status_code == 200

    async def _token_request(self, payload: dict, action: str) -> dict:
        try:
            async with open_client(self._http_client, self._timeout) as client:
                response = await client.post(self.token_url, json=payload)
        except httpx.HTTPError as e:
            raise StravaOAuthError(f"{action} failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Strava {action.lower()} failed: {response.text}")
            raise StravaOAuthError(
                f"{action} failed: {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise StravaOAuthError(f"{action} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise StravaOAuthError(f"{action} returned unexpected payload")
        return data


# =============================================================================
# Login state machine
# =============================================================================

class AuthState(str, Enum):
    """Where the login flow currently is."""
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"


class StravaOAuthFlow:
    """
    Drives the authorization-code login against a credential store.

    UNAUTHENTICATED -> AWAITING_REDIRECT   initiate()
    AWAITING_REDIRECT -> EXCHANGING        handle_redirect() with a code
    EXCHANGING -> AUTHENTICATED            tokens persisted
    EXCHANGING -> UNAUTHENTICATED          exchange failed, nothing persisted
    AUTHENTICATED -> UNAUTHENTICATED       logout()

    Failures are terminal for the attempt; the caller restarts the flow.
    """

    def __init__(self, store: CredentialStore, oauth: Optional[StravaOAuth] = None):
        self.store = store
        self.oauth = oauth or StravaOAuth()
        self.state = AuthState.UNAUTHENTICATED
        self.athlete: Optional[dict] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    async def load(self) -> AuthState:
        """
        Resolve the startup state from the store.

        Only the presence of an access token matters here; expiry is
        checked later by the token refresh manager on first use.
        """
        token = await self.store.get(ACCESS_TOKEN_KEY)
        if token:
            self.state = AuthState.AUTHENTICATED
        else:
            logger.info("No stored Strava token found")
            self.state = AuthState.UNAUTHENTICATED
        return self.state

    def initiate(self, open_url: Optional[Callable[[str], Any]] = webbrowser.open) -> str:
        """
        Start the login: build the authorization URL and open it.

        Pass open_url=None to only build the URL (e.g. to print it).
        """
        url = self.oauth.get_authorization_url()
        self.state = AuthState.AWAITING_REDIRECT
        logger.info("Strava OAuth initiated")
        if open_url is not None:
            open_url(url)
        return url

    async def handle_redirect(self, url: str) -> bool:
        """
        Handle the redirect callback delivered by the platform.

        Returns:
            True if the user ended up authenticated by this callback.
            A callback without a code (user declined) is ignored and the
            state is left as it was.
        """
        if self.state == AuthState.EXCHANGING:
            logger.warning("Ignoring redirect: code exchange already in progress")
            return False

        params = parse_qs(urlparse(url).query)
        code = _first(params, "code")

        if not code:
            error = _first(params, "error")
            if error:
                logger.warning(f"Strava OAuth error: {error}")
            else:
                logger.info("Redirect carried no authorization code, ignoring it")
            return False

        granted_scope = _first(params, "scope")
        if granted_scope is not None and "activity:read_all" not in granted_scope.split(","):
            logger.warning(f"Granted scope lacks activity:read_all: {granted_scope}")

        return await self._exchange(code)

    async def _exchange(self, code: str) -> bool:
        self.state = AuthState.EXCHANGING
        try:
            return await self._exchange_and_save(code)
        finally:
            # never left in EXCHANGING, even when persisting raised
            if self.state == AuthState.EXCHANGING:
                self.state = AuthState.UNAUTHENTICATED

    async def _exchange_and_save(self, code: str) -> bool:
        try:
            data = await self.oauth.exchange_code(code)
        except StravaOAuthError as e:
            logger.error(f"Error exchanging auth code for token: {e}")
            self.state = AuthState.UNAUTHENTICATED
            return False

        record = _record_from_exchange(data)
        if record is None:
            logger.error(
                f"Failed to get access token, response keys: {sorted(data)}"
            )
            self.state = AuthState.UNAUTHENTICATED
            return False

        await save_credentials(self.store, record)
        self.athlete = data.get("athlete") if isinstance(data.get("athlete"), dict) else None
        self.state = AuthState.AUTHENTICATED
        logger.info("Strava authorization complete")
        return True

    async def logout(self, revoke: bool = False) -> None:
        """
        Forget all stored credentials.

        Args:
            revoke: Also deauthorize the app on Strava first (best effort)
        """
        if revoke:
            token = await self.store.get(ACCESS_TOKEN_KEY)
            if token and not await self.oauth.deauthorize(token):
                logger.warning("Strava deauthorization was not confirmed")

        await clear_credentials(self.store)
        self.athlete = None
        self.state = AuthState.UNAUTHENTICATED
        logger.info("Strava credentials cleared")


def _first(params: dict[str, list[str]], name: str) -> Optional[str]:
    values = params.get(name)
    return values[0] if values else None


def _record_from_exchange(data: dict) -> Optional[CredentialRecord]:
    """Build a record from a code-exchange response, None if incomplete."""
    access_token = data.get("access_token")
    refresh_token = data.get("refresh_token")
    expires_at = data.get("expires_at")

    if not access_token or not refresh_token or expires_at is None:
        return None
    try:
        expires_at = int(expires_at)
    except (TypeError, ValueError):
        return None

    return CredentialRecord(
        access_token=str(access_token),
        refresh_token=str(refresh_token),
        expires_at=expires_at,
    )
