"""
Strava activity schemas.

Pydantic models for the records returned by the activity list endpoint.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActivitySummary(BaseModel):
    """
    One entry of GET /athlete/activities.

    Only the fields used for aggregation are typed; everything else the
    API returns (name, type, map, ...) is kept as extra attributes.
    Metrics missing from the payload count as zero.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: int
    start_date: datetime
    start_date_local: Optional[datetime] = None
    name: Optional[str] = None
    type: Optional[str] = None
    sport_type: Optional[str] = None

    distance: float = Field(default=0.0, ge=0)  # meters
    moving_time: int = Field(default=0, ge=0)  # seconds
    elapsed_time: int = Field(default=0, ge=0)  # seconds
    total_elevation_gain: float = Field(default=0.0, ge=0)  # meters

    @field_validator(
        "distance", "moving_time", "elapsed_time", "total_elevation_gain",
        mode="before",
    )
    @classmethod
    def none_as_zero(cls, v):
        return 0 if v is None else v

    @property
    def local_start(self) -> datetime:
        """
        Wall-clock start time in the athlete's timezone.

        Strava's start_date_local is local time even though it carries a
        trailing "Z", so its fields are taken as-is. Without it, the UTC
        start_date is converted to this machine's local time.
        """
        if self.start_date_local is not None:
            return self.start_date_local.replace(tzinfo=None)
        return self.start_date.astimezone().replace(tzinfo=None)

    @property
    def month_key(self) -> str:
        """Calendar month of the local start, e.g. '2024-03'."""
        start = self.local_start
        return f"{start.year:04d}-{start.month:02d}"
