"""
Strava error taxonomy.

Every failure of an authenticated API call surfaces as one of:
- AuthRequired: no usable token, caller must re-authenticate
- NetworkError: request failure (no usable response), wraps the cause
- RemoteError: non-2xx status or an error object reported by the API
"""

from typing import Any, Optional


class StravaError(Exception):
    """Base Strava error."""
    pass


class AuthRequired(StravaError):
    """No valid or refreshable access token is available."""

    def __init__(self, message: str = "Strava authorization required"):
        super().__init__(message)
        self.message = message


class NetworkError(StravaError):
    """Request never produced a response (DNS, connect, timeout, ...)."""

    def __init__(self, cause: Exception, message: Optional[str] = None):
        self.cause = cause
        self.message = message or f"Network error: {cause}"
        super().__init__(self.message)


class RemoteError(StravaError):
    """
    Strava answered with an error.

    status_code is None when the error object came back in a 2xx payload
    (e.g. {"errors": [...]} in place of the activity array).
    """

    GENERIC_MESSAGE = "An error occurred during the fetch request"

    def __init__(
        self,
        status_code: Optional[int],
        message: Optional[str] = None,
        body: Any = None
    ):
        self.status_code = status_code
        self.message = message or self.GENERIC_MESSAGE
        self.body = body
        super().__init__(f"API error {status_code}: {self.message}")

    @property
    def errors(self) -> list[dict]:
        """Strava's structured error list, if the body carries one."""
        if isinstance(self.body, dict):
            errors = self.body.get("errors")
            if isinstance(errors, list):
                return [e for e in errors if isinstance(e, dict)]
        return []

    @property
    def is_auth_error(self) -> bool:
        return self.status_code == 401

    @property
    def is_permission_error(self) -> bool:
        """
        Token lacks a scope the endpoint needs.

        Strava reports it as
        {"field": "activity:read_permission", "code": "missing"}.
        """
        for error in self.errors:
            if (
                str(error.get("field", "")).endswith("_permission")
                and error.get("code") == "missing"
            ):
                return True
        return False
