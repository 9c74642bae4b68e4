"""
Activity list pagination.

Strava gives no total count for /athlete/activities: the only end-of-list
signal is a page shorter than per_page. A history whose size is an exact
multiple of per_page therefore costs one extra request that comes back
empty.
"""

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Union

from strava_monthly.config import settings
from .client import StravaClient
from .errors import RemoteError

logger = logging.getLogger(__name__)

ACTIVITIES_ENDPOINT = "/athlete/activities"
MAX_PER_PAGE = 200

Timestamp = Union[datetime, int, float]


def is_last_page(records: list, per_page: int) -> bool:
    """A page shorter than requested is the last one."""
    return len(records) < per_page


def _to_unix(value: Timestamp) -> int:
    if isinstance(value, datetime):
        return int(value.timestamp())
    return int(value)


def _check_page_payload(payload: Any, page: int) -> list[dict]:
    """
    Return the activity array, or raise if Strava sent something else.

    Errors may come back as {"message": ..., "errors": [...]} in place of
    the array.
    """
    if isinstance(payload, list):
        return payload

    if isinstance(payload, dict) and ("error" in payload or "errors" in payload):
        message = payload.get("message") or str(payload.get("error") or "API reported an error")
        raise RemoteError(None, message, payload)

    raise RemoteError(
        None,
        f"Unexpected activity payload on page {page}: {type(payload).__name__}",
        payload,
    )


class ActivityPager:
    """
    Pages through the athlete's activity list, newest first.

    Usage:
        pager = ActivityPager(client)
        first = await pager.fetch_page(1, 30)
        everything = await pager.fetch_all(per_page=200)
    """

    def __init__(self, client: StravaClient, per_page: Optional[int] = None):
        self.client = client
        self.per_page = per_page or settings.activities_per_page

    async def fetch_page(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        *,
        before: Optional[Timestamp] = None,
        after: Optional[Timestamp] = None,
    ) -> list[dict]:
        """
        Fetch one page of activities.

        Args:
            page: Page number, 1-based
            per_page: Results per page (max 200)
            before: Only activities before this time (datetime or unix seconds)
            after: Only activities after this time (datetime or unix seconds)

        Raises:
            AuthRequired, NetworkError, RemoteError
        """
        if page < 1:
            raise ValueError("page must be >= 1")
        per_page = per_page or self.per_page

        params: dict[str, int] = {"page": page, "per_page": min(per_page, MAX_PER_PAGE)}
        if before is not None:
            params["before"] = _to_unix(before)
        if after is not None:
            params["after"] = _to_unix(after)

        payload = await self.client.authenticated_request(ACTIVITIES_ENDPOINT, params=params)
        return _check_page_payload(payload, page)

    async def iter_pages(
        self,
        per_page: Optional[int] = None,
        *,
        start_page: int = 1,
        max_pages: Optional[int] = None,
        before: Optional[Timestamp] = None,
        after: Optional[Timestamp] = None,
    ) -> AsyncIterator[list[dict]]:
        """
        Yield non-empty pages until a short page ends the list.

        Errors propagate to the caller; pages already yielded stay valid.
        """
        per_page = min(per_page or self.per_page, MAX_PER_PAGE)
        page = start_page
        fetched = 0

        while max_pages is None or fetched < max_pages:
            records = await self.fetch_page(page, per_page, before=before, after=after)
            fetched += 1
            if records:
                yield records
            if is_last_page(records, per_page):
                logger.debug(f"Activity list ended on page {page} ({len(records)} records)")
                return
            page += 1

    async def fetch_all(
        self,
        per_page: Optional[int] = None,
        *,
        max_pages: Optional[int] = None,
        before: Optional[Timestamp] = None,
        after: Optional[Timestamp] = None,
    ) -> list[dict]:
        """Fetch every page and return the concatenated records."""
        activities: list[dict] = []
        async for records in self.iter_pages(
            per_page, max_pages=max_pages, before=before, after=after
        ):
            activities.extend(records)
        return activities
