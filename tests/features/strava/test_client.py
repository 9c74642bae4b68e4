"""
Tests for StravaClient.authenticated_request.

Every outcome is either decoded JSON or one of AuthRequired,
NetworkError, RemoteError.
"""

import httpx
import pytest

from strava_monthly.features.strava import AuthRequired, NetworkError, RemoteError


def _athlete_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"id": 42, "firstname": "Ada"})


# =============================================================================
# Authorization
# =============================================================================

class TestAuthorization:
    """Token resolution and header handling."""

    @pytest.mark.asyncio
    async def test_no_token_fails_before_any_request(self, make_client, store, fake_strava):
        client = make_client(store)

        with pytest.raises(AuthRequired):
            await client.authenticated_request("/athlete")
        assert fake_strava.requests == []

    @pytest.mark.asyncio
    async def test_failed_refresh_is_auth_required(self, make_client, expired_store, fake_strava):
        fake_strava.token_responses.append((401, {"message": "Authorization Error"}))
        client = make_client(expired_store)

        with pytest.raises(AuthRequired):
            await client.authenticated_request("/athlete")
        assert fake_strava.requests_to("/api/v3/athlete") == []

    @pytest.mark.asyncio
    async def test_bearer_header_added(self, make_client, fresh_store, fake_strava):
        fake_strava.api_handler = _athlete_ok

        data = await make_client(fresh_store).get_athlete()

        assert data == {"id": 42, "firstname": "Ada"}
        request = fake_strava.requests[-1]
        assert request.headers["Authorization"] == "Bearer stored-access"
        assert str(request.url) == "https://www.strava.com/api/v3/athlete"

    @pytest.mark.asyncio
    async def test_caller_headers_kept(self, make_client, fresh_store, fake_strava):
        fake_strava.api_handler = _athlete_ok

        await make_client(fresh_store).authenticated_request(
            "/athlete",
            headers={"Accept-Language": "de", "X-Trace": "abc"},
        )

        request = fake_strava.requests[-1]
        assert request.headers["Accept-Language"] == "de"
        assert request.headers["X-Trace"] == "abc"
        assert request.headers["Authorization"] == "Bearer stored-access"

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_then_used(self, make_client, expired_store, fake_strava):
        fake_strava.api_handler = _athlete_ok

        await make_client(expired_store).authenticated_request("/athlete")

        assert len(fake_strava.token_requests) == 1
        assert fake_strava.requests[-1].headers["Authorization"] == "Bearer refreshed-access"

    @pytest.mark.asyncio
    async def test_absolute_url_used_as_is(self, make_client, fresh_store, fake_strava):
        fake_strava.api_handler = _athlete_ok

        await make_client(fresh_store).authenticated_request(
            "https://www.strava.com/api/v3/athlete?x=1"
        )

        assert str(fake_strava.requests[-1].url) == "https://www.strava.com/api/v3/athlete?x=1"


# =============================================================================
# Error normalization
# =============================================================================

class TestErrors:
    """Failures surface as typed errors."""

    @pytest.mark.asyncio
    async def test_remote_error_carries_status_message_body(self, make_client, fresh_store, fake_strava):
        body = {"message": "Rate Limit Exceeded", "errors": [{"resource": "Application", "code": "exceeded"}]}
        fake_strava.api_handler = lambda request: httpx.Response(429, json=body)

        with pytest.raises(RemoteError) as exc_info:
            await make_client(fresh_store).authenticated_request("/athlete")

        error = exc_info.value
        assert error.status_code == 429
        assert error.message == "Rate Limit Exceeded"
        assert error.body == body
        assert not error.is_permission_error

    @pytest.mark.asyncio
    async def test_remote_error_without_json_body(self, make_client, fresh_store, fake_strava):
        fake_strava.api_handler = lambda request: httpx.Response(502, text="Bad Gateway")

        with pytest.raises(RemoteError) as exc_info:
            await make_client(fresh_store).authenticated_request("/athlete")

        error = exc_info.value
        assert error.status_code == 502
        assert error.message == RemoteError.GENERIC_MESSAGE
        assert error.body == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_permission_error_detected(self, make_client, fresh_store, fake_strava):
        body = {
            "message": "Authorization Error",
            "errors": [{"resource": "AccessToken", "field": "activity:read_permission", "code": "missing"}],
        }
        fake_strava.api_handler = lambda request: httpx.Response(401, json=body)

        with pytest.raises(RemoteError) as exc_info:
            await make_client(fresh_store).authenticated_request("/athlete")

        assert exc_info.value.is_permission_error
        assert exc_info.value.is_auth_error

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self, make_client, fresh_store, fake_strava):
        cause = httpx.ConnectTimeout("timed out")
        fake_strava.fail_with = cause

        with pytest.raises(NetworkError) as exc_info:
            await make_client(fresh_store).authenticated_request("/athlete")

        assert exc_info.value.cause is cause

    @pytest.mark.asyncio
    async def test_undecodable_response_is_network_error(self, make_client, fresh_store, fake_strava):
        cause = httpx.DecodingError("invalid gzip stream")
        fake_strava.fail_with = cause

        with pytest.raises(NetworkError) as exc_info:
            await make_client(fresh_store).authenticated_request("/athlete")

        assert exc_info.value.cause is cause

    @pytest.mark.asyncio
    async def test_invalid_json_on_success(self, make_client, fresh_store, fake_strava):
        fake_strava.api_handler = lambda request: httpx.Response(200, text="not json")

        with pytest.raises(RemoteError) as exc_info:
            await make_client(fresh_store).authenticated_request("/athlete")

        assert exc_info.value.status_code == 200
        assert exc_info.value.body == "not json"


class TestRemoteError:
    """Tests for RemoteError helpers."""

    def test_errors_ignores_non_dict_body(self):
        assert RemoteError(500, body="oops").errors == []

    def test_generic_message(self):
        error = RemoteError(500)
        assert error.message == RemoteError.GENERIC_MESSAGE
        assert "500" in str(error)
