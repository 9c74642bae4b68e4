"""
Credential storage for Strava OAuth tokens.

A CredentialStore is a plain async key/value store of strings. It knows
nothing about tokens; the helpers at the bottom of this module turn three
entries into one all-or-nothing CredentialRecord.

Implementations:
- InMemoryCredentialStore: dict-backed, for tests and throwaway sessions
- SQLCredentialStore: durable, one row per key via SQLAlchemy async sessions
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import StravaCredential

logger = logging.getLogger(__name__)


ACCESS_TOKEN_KEY = "strava_token"
REFRESH_TOKEN_KEY = "strava_refresh_token"
EXPIRES_AT_KEY = "strava_token_expiration"

CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)

# Failures a store backend can raise on read or write
STORE_ERRORS = (SQLAlchemyError, OSError)


# =============================================================================
# Stores
# =============================================================================

class CredentialStore(ABC):
    """Async key/value persistence for credential strings."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return stored value or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""

    async def get_many(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        """Read several entries from one consistent view."""
        return {key: await self.get(key) for key in keys}

    async def set_many(self, values: Mapping[str, str]) -> None:
        """Store several entries so that readers never see a subset."""
        for key, value in values.items():
            await self.set(key, value)

    async def delete_many(self, keys: Iterable[str]) -> None:
        """Remove several entries in one step."""
        for key in keys:
            await self.delete(key)


class InMemoryCredentialStore(CredentialStore):
    """
    Dict-backed store.

    Multi-key operations never await between writes, so under asyncio
    they are atomic with respect to other tasks.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def get_many(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        return {key: self._data.get(key) for key in keys}

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def set_many(self, values: Mapping[str, str]) -> None:
        self._data.update(values)

    async def delete_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the current contents."""
        return dict(self._data)


class SQLCredentialStore(CredentialStore):
    """
    Durable store backed by the strava_credentials table.

    Each operation runs in its own session; set_many and delete_many
    commit all rows in a single transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StravaCredential.value).where(StravaCredential.key == key)
            )
            return result.scalar_one_or_none()

    async def get_many(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        keys = list(keys)
        async with self._session_factory() as session:
            result = await session.execute(
                select(StravaCredential.key, StravaCredential.value)
                .where(StravaCredential.key.in_(keys))
            )
            found = {row.key: row.value for row in result}
        return {key: found.get(key) for key in keys}

    async def set(self, key: str, value: str) -> None:
        await self.set_many({key: value})

    async def delete(self, key: str) -> None:
        await self.delete_many([key])

    async def set_many(self, values: Mapping[str, str]) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                for key, value in values.items():
                    await session.merge(StravaCredential(key=key, value=value))

    async def delete_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(StravaCredential).where(StravaCredential.key.in_(keys))
                )


# =============================================================================
# Credential record helpers
# =============================================================================

@dataclass(frozen=True)
class CredentialRecord:
    """Access token, refresh token and expiry (unix seconds)."""

    access_token: str
    refresh_token: str
    expires_at: int

    def as_entries(self) -> dict[str, str]:
        return {
            ACCESS_TOKEN_KEY: self.access_token,
            REFRESH_TOKEN_KEY: self.refresh_token,
            EXPIRES_AT_KEY: str(self.expires_at),
        }


def parse_expires_at(value: Optional[str]) -> Optional[int]:
    """Parse a stored expiry string; None when absent or not a number."""
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed stored expiry: {value!r}")
        return None


async def load_credentials(store: CredentialStore) -> Optional[CredentialRecord]:
    """
    Read the full credential record.

    Returns None unless all three entries are present and the expiry
    parses as an integer; a partial record is never treated as valid.
    """
    entries = await store.get_many(CREDENTIAL_KEYS)
    access_token = entries[ACCESS_TOKEN_KEY]
    refresh_token = entries[REFRESH_TOKEN_KEY]
    expires_at = parse_expires_at(entries[EXPIRES_AT_KEY])

    if not access_token or not refresh_token or expires_at is None:
        return None

    return CredentialRecord(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
    )


async def save_credentials(store: CredentialStore, record: CredentialRecord) -> None:
    """Persist all three entries at once."""
    await store.set_many(record.as_entries())


async def clear_credentials(store: CredentialStore) -> None:
    """Delete all three entries at once."""
    await store.delete_many(CREDENTIAL_KEYS)
