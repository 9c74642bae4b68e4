"""
Access token resolution.

Decides on every authenticated call whether the stored access token is
still usable or must be exchanged for a new one.
"""

import logging
import time
from typing import Callable, Optional

from .credentials import (
    ACCESS_TOKEN_KEY,
    CREDENTIAL_KEYS,
    EXPIRES_AT_KEY,
    REFRESH_TOKEN_KEY,
    STORE_ERRORS,
    CredentialStore,
    parse_expires_at,
)
from .oauth import StravaOAuth, StravaOAuthError

logger = logging.getLogger(__name__)


class TokenRefreshManager:
    """
    Resolves a valid access token, refreshing it when expired.

    Validity is a pure time check against the stored expiry; a token
    revoked on the server side is not detected here.

    There is no locking: two tasks that both see an expired token will
    both refresh and the last write wins.

    Usage:
        tokens = TokenRefreshManager(store)
        access_token = await tokens.resolve_access_token()
        if access_token is None:
            ...  # start the OAuth flow
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth: Optional[StravaOAuth] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.oauth = oauth or StravaOAuth()
        self.clock = clock

    async def resolve_access_token(self) -> Optional[str]:
        """
        Get a valid access token, refreshing if needed.

        Returns None if there is nothing to refresh with, if the refresh
        failed, or if the credential store could not be read or written.
        Stored state is left untouched on failure.
        """
        try:
            entries = await self.store.get_many(CREDENTIAL_KEYS)
        except STORE_ERRORS as e:
            logger.error(f"Error reading Strava credentials: {e!r}")
            return None

        refresh_token = entries[REFRESH_TOKEN_KEY]
        expires_at = parse_expires_at(entries[EXPIRES_AT_KEY])

        if not refresh_token or expires_at is None:
            return None

        access_token = entries[ACCESS_TOKEN_KEY]
        if access_token and expires_at > self.clock():
            return access_token

        return await self._refresh(refresh_token)

    async def _refresh(self, refresh_token: str) -> Optional[str]:
        logger.info("Refreshing Strava access token")
        try:
            data = await self.oauth.refresh_token(refresh_token)
        except StravaOAuthError as e:
            logger.error(f"Error refreshing access token: {e}")
            return None

        access_token = data.get("access_token")
        new_expires_at = data.get("expires_at")
        if not access_token or new_expires_at is None:
            logger.error(
                f"Failed to refresh token, response keys: {sorted(data)}"
            )
            return None

        try:
            new_expires_at = int(new_expires_at)
        except (TypeError, ValueError):
            logger.error(f"Failed to refresh token, bad expires_at: {new_expires_at!r}")
            return None

        entries = {
            ACCESS_TOKEN_KEY: str(access_token),
            EXPIRES_AT_KEY: str(new_expires_at),
        }
        # Strava may rotate the refresh token
        new_refresh_token = data.get("refresh_token")
        if new_refresh_token:
            entries[REFRESH_TOKEN_KEY] = str(new_refresh_token)

        try:
            await self.store.set_many(entries)
        except STORE_ERRORS as e:
            logger.error(f"Error saving refreshed Strava credentials: {e!r}")
            return None
        return str(access_token)
