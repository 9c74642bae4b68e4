"""
Strava integration module.

Usage:
    from strava_monthly.features.strava import (
        SQLCredentialStore, StravaOAuthFlow, TokenRefreshManager,
        StravaClient, ActivityPager, MonthlyAggregator,
    )

Components:
- CredentialStore: durable key/value storage for the OAuth tokens
- StravaOAuthFlow: login state machine (authorize URL, redirect, logout)
- TokenRefreshManager: just-in-time access token refresh
- StravaClient: authenticated requests with typed errors
- ActivityPager: activity list pagination
- MonthlyAggregator: per-month totals over the activity feed
"""

from .errors import (
    StravaError,
    AuthRequired,
    NetworkError,
    RemoteError,
)
from .models import StravaCredential
from .credentials import (
    CredentialStore,
    InMemoryCredentialStore,
    SQLCredentialStore,
    CredentialRecord,
    load_credentials,
    save_credentials,
    clear_credentials,
)
from .oauth import (
    StravaOAuth,
    StravaOAuthError,
    StravaOAuthFlow,
    AuthState,
)
from .tokens import TokenRefreshManager
from .client import StravaClient
from .schemas import ActivitySummary
from .pager import ActivityPager, is_last_page
from .aggregation import (
    MonthlyAggregator,
    MonthlyAggregation,
    MonthTotals,
    MonthActivities,
    AggregationDiagnostic,
    target_months,
)

__all__ = [
    # Errors
    "StravaError",
    "AuthRequired",
    "NetworkError",
    "RemoteError",
    # Models
    "StravaCredential",
    # Credentials
    "CredentialStore",
    "InMemoryCredentialStore",
    "SQLCredentialStore",
    "CredentialRecord",
    "load_credentials",
    "save_credentials",
    "clear_credentials",
    # OAuth
    "StravaOAuth",
    "StravaOAuthError",
    "StravaOAuthFlow",
    "AuthState",
    # Client
    "TokenRefreshManager",
    "StravaClient",
    "ActivitySummary",
    "ActivityPager",
    "is_last_page",
    # Aggregation
    "MonthlyAggregator",
    "MonthlyAggregation",
    "MonthTotals",
    "MonthActivities",
    "AggregationDiagnostic",
    "target_months",
]
