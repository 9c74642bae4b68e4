"""
Shared fixtures.

FakeStrava plays the remote side (token endpoint, deauthorize, activity
list) behind an httpx.MockTransport, so no test touches the network.
"""

import json
from datetime import datetime
from typing import Callable, Optional

import httpx
import pytest

from strava_monthly.features.strava import (
    ActivityPager,
    InMemoryCredentialStore,
    StravaClient,
    StravaOAuth,
    TokenRefreshManager,
)
from strava_monthly.features.strava.credentials import (
    ACCESS_TOKEN_KEY,
    EXPIRES_AT_KEY,
    REFRESH_TOKEN_KEY,
)


NOW = 1_700_000_000  # fixed "current time", unix seconds
CLIENT_ID = "12345"
CLIENT_SECRET = "client-secret"
REDIRECT_URI = "myapp://oauth/callback"

TOKEN_PATH = "/oauth/token"
DEAUTHORIZE_PATH = "/oauth/deauthorize"
ACTIVITIES_PATH = "/api/v3/athlete/activities"


# =============================================================================
# Test Data
# =============================================================================

def make_activity(
    activity_id: int,
    start_local: datetime,
    distance: Optional[float] = 1000.0,
    moving_time: Optional[int] = 600,
    elevation: Optional[float] = 10.0,
    **extra,
) -> dict:
    """Activity list entry as Strava returns it (start_date == local here)."""
    stamp = start_local.strftime("%Y-%m-%dT%H:%M:%SZ")
    activity = {
        "id": activity_id,
        "name": f"Run {activity_id}",
        "type": "Run",
        "sport_type": "Run",
        "start_date": stamp,
        "start_date_local": stamp,
        "elapsed_time": (moving_time or 0) + 60,
    }
    if distance is not None:
        activity["distance"] = distance
    if moving_time is not None:
        activity["moving_time"] = moving_time
    if elevation is not None:
        activity["total_elevation_gain"] = elevation
    activity.update(extra)
    return activity


def make_page(count: int, start_id: int, start_local: datetime, **kwargs) -> list[dict]:
    return [make_activity(start_id + i, start_local, **kwargs) for i in range(count)]


# =============================================================================
# Fake remote API
# =============================================================================

class FakeStrava:
    """
    Scriptable Strava backend.

    token_responses: queue of (status, body) for POST /oauth/token;
        when empty, a valid refresh response is returned.
    pages: page number -> list payload, dict payload, or (status, body).
        Missing pages return [].
    fail_with: exception raised for every request (transport failure).
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_responses: list[tuple[int, object]] = []
        self.pages: dict[int, object] = {}
        self.fail_with: Optional[Exception] = None
        self.api_handler: Optional[Callable[[httpx.Request], httpx.Response]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with

        path = request.url.path
        if path == TOKEN_PATH:
            if self.token_responses:
                status, body = self.token_responses.pop(0)
                return _response(status, body)
            return httpx.Response(200, json={
                "token_type": "Bearer",
                "access_token": "refreshed-access",
                "refresh_token": "rotated-refresh",
                "expires_at": NOW + 21600,
                "expires_in": 21600,
            })
        if path == DEAUTHORIZE_PATH:
            return httpx.Response(200, json={"access_token": "revoked"})
        if path == ACTIVITIES_PATH:
            page = int(request.url.params.get("page", "1"))
            payload = self.pages.get(page, [])
            if isinstance(payload, tuple):
                return _response(*payload)
            return httpx.Response(200, json=payload)
        if self.api_handler is not None:
            return self.api_handler(request)
        return httpx.Response(404, json={"message": "Record Not Found", "errors": []})

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    # --- inspection helpers ---

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def token_requests(self) -> list[httpx.Request]:
        return self.requests_to(TOKEN_PATH)

    @property
    def activity_requests(self) -> list[httpx.Request]:
        return self.requests_to(ACTIVITIES_PATH)

    @property
    def requested_pages(self) -> list[int]:
        return [int(r.url.params["page"]) for r in self.activity_requests]

    @staticmethod
    def body(request: httpx.Request) -> dict:
        return json.loads(request.content)


def _response(status: int, body: object) -> httpx.Response:
    if isinstance(body, (dict, list)):
        return httpx.Response(status, json=body)
    return httpx.Response(status, text=str(body))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_strava():
    return FakeStrava()


@pytest.fixture
def http_client(fake_strava):
    return fake_strava.http_client()


@pytest.fixture
def clock():
    return lambda: float(NOW)


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def fresh_store():
    """Store holding credentials that expire in an hour."""
    return InMemoryCredentialStore({
        ACCESS_TOKEN_KEY: "stored-access",
        REFRESH_TOKEN_KEY: "stored-refresh",
        EXPIRES_AT_KEY: str(NOW + 3600),
    })


@pytest.fixture
def expired_store():
    """Store holding credentials that expired a minute ago."""
    return InMemoryCredentialStore({
        ACCESS_TOKEN_KEY: "stale-access",
        REFRESH_TOKEN_KEY: "stored-refresh",
        EXPIRES_AT_KEY: str(NOW - 60),
    })


@pytest.fixture
def oauth(http_client):
    return StravaOAuth(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=REDIRECT_URI,
        http_client=http_client,
    )


@pytest.fixture
def make_client(oauth, http_client, clock):
    """Build a StravaClient around a given store."""

    def _make(store) -> StravaClient:
        tokens = TokenRefreshManager(store, oauth, clock=clock)
        return StravaClient(tokens, http_client=http_client)

    return _make


@pytest.fixture
def pager(make_client, fresh_store):
    return ActivityPager(make_client(fresh_store))


@pytest.fixture
def now_ts():
    return NOW


@pytest.fixture
def activity():
    """Factory: activity(id, start_local, distance=..., moving_time=..., elevation=...)."""
    return make_activity


@pytest.fixture
def page_of():
    """Factory: page_of(count, start_id, start_local, **activity_kwargs)."""
    return make_page
