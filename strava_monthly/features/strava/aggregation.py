"""
Monthly activity aggregation.

Folds the activity feed into calendar-month buckets for the current month
and the N-1 months before it.

Pages are pulled newest first until every target month has at least one
activity. A target month with no activities at all therefore makes the
loop walk the athlete's whole remaining history; only an empty or short
page, an error, or the optional page budget stops it earlier.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from strava_monthly.config import settings
from .errors import AuthRequired, RemoteError, StravaError
from .pager import MAX_PER_PAGE, ActivityPager, is_last_page
from .schemas import ActivitySummary

logger = logging.getLogger(__name__)


# =============================================================================
# Result types
# =============================================================================

@dataclass
class MonthTotals:
    """Aggregated metrics for one month."""

    month: str  # "2024-03"
    total_distance: float = 0.0  # meters
    total_time: int = 0  # moving time, seconds
    total_elevation_gain: float = 0.0  # meters
    activity_count: int = 0


@dataclass
class MonthActivities:
    """Raw activities behind one month's totals."""

    month: str
    activities: list[ActivitySummary] = field(default_factory=list)


@dataclass
class AggregationDiagnostic:
    """Why an aggregation stopped before covering every target month."""

    reason: str  # fetch_failed / api_error / malformed_payload / page_budget_exhausted
    page: int
    message: str
    error: Optional[StravaError] = None

    @property
    def requires_reauth(self) -> bool:
        """The user has to log in again (or grant more scope)."""
        if isinstance(self.error, AuthRequired):
            return True
        if isinstance(self.error, RemoteError):
            return self.error.is_auth_error or self.error.is_permission_error
        return False


@dataclass
class MonthlyAggregation:
    """
    Aggregation result.

    Partial results (diagnostic set) are still valid for the months they
    cover; they are just incomplete.
    """

    months: list[str]
    aggregates: list[MonthTotals] = field(default_factory=list)
    raw: list[MonthActivities] = field(default_factory=list)
    diagnostic: Optional[AggregationDiagnostic] = None
    pages_fetched: int = 0

    @property
    def is_complete(self) -> bool:
        return self.diagnostic is None

    @property
    def missing_months(self) -> list[str]:
        """Target months that received no activity."""
        covered = {totals.month for totals in self.aggregates}
        return [month for month in self.months if month not in covered]

    def activities_for(self, month: str) -> list[ActivitySummary]:
        for bucket in self.raw:
            if bucket.month == month:
                return bucket.activities
        return []


# =============================================================================
# Month helpers
# =============================================================================

def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def target_months(month_count: int, now: Optional[datetime] = None) -> list[str]:
    """
    Month keys for offsets 0..month_count-1 back from now, newest first.

    >>> target_months(3, datetime(2024, 2, 15))
    ['2024-02', '2024-01', '2023-12']
    """
    if month_count < 1:
        raise ValueError("month_count must be >= 1")
    now = now or datetime.now()

    keys = []
    for offset in range(month_count):
        index = now.year * 12 + (now.month - 1) - offset
        keys.append(month_key(index // 12, index % 12 + 1))
    return keys


# =============================================================================
# Aggregator
# =============================================================================

class MonthlyAggregator:
    """
    Builds per-month totals from the paginated activity feed.

    Usage:
        aggregator = MonthlyAggregator(ActivityPager(client))
        result = await aggregator.aggregate(3)
        for totals in result.aggregates:
            print(totals.month, totals.total_distance)
        if not result.is_complete:
            logger.warning(result.diagnostic.message)
    """

    def __init__(
        self,
        pager: ActivityPager,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ):
        self.pager = pager
        self.page_size = min(page_size or settings.aggregation_page_size, MAX_PER_PAGE)
        self.max_pages = max_pages if max_pages is not None else settings.aggregation_max_pages

    async def aggregate(
        self,
        month_count: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> MonthlyAggregation:
        """
        Aggregate the current month and the month_count-1 before it.

        Never raises for fetch or payload problems: whatever was gathered
        is returned together with a diagnostic.
        """
        if month_count is None:
            month_count = settings.aggregation_months
        months = target_months(month_count, now)
        targets = set(months)

        totals: dict[str, MonthTotals] = {}
        raw: dict[str, MonthActivities] = {}
        diagnostic: Optional[AggregationDiagnostic] = None
        pages_fetched = 0
        page = 1

        while len(totals) < month_count:
            if self.max_pages is not None and pages_fetched >= self.max_pages:
                diagnostic = AggregationDiagnostic(
                    reason="page_budget_exhausted",
                    page=page,
                    message=f"Stopped after {pages_fetched} pages, months without activity remain",
                )
                break

            try:
                records = await self.pager.fetch_page(page, self.page_size)
            except RemoteError as e:
                diagnostic = AggregationDiagnostic(
                    reason="api_error" if e.status_code is None else "fetch_failed",
                    page=page,
                    message=e.message,
                    error=e,
                )
                break
            except StravaError as e:
                diagnostic = AggregationDiagnostic(
                    reason="fetch_failed",
                    page=page,
                    message=str(e),
                    error=e,
                )
                break
            pages_fetched += 1

            if not records:
                logger.info(f"No more activities after page {page - 1}")
                break

            try:
                activities = [ActivitySummary.model_validate(record) for record in records]
            except ValidationError as e:
                diagnostic = AggregationDiagnostic(
                    reason="malformed_payload",
                    page=page,
                    message=f"Malformed activity on page {page}: {e.error_count()} error(s)",
                )
                break

            for activity in activities:
                key = activity.month_key
                if key not in targets:
                    continue
                bucket = totals.get(key)
                if bucket is None:
                    bucket = totals[key] = MonthTotals(month=key)
                    raw[key] = MonthActivities(month=key)
                bucket.total_distance += activity.distance
                bucket.total_time += activity.moving_time
                bucket.total_elevation_gain += activity.total_elevation_gain
                bucket.activity_count += 1
                raw[key].activities.append(activity)

            if is_last_page(records, self.page_size):
                break
            page += 1

        if diagnostic is not None:
            logger.warning(
                f"Monthly aggregation incomplete ({diagnostic.reason}) on page "
                f"{diagnostic.page}: {diagnostic.message}"
            )

        return MonthlyAggregation(
            months=months,
            aggregates=[totals[key] for key in months if key in totals],
            raw=[raw[key] for key in months if key in raw],
            diagnostic=diagnostic,
            pages_fetched=pages_fetched,
        )
