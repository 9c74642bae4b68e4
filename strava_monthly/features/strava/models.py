"""
Strava-related database models.

Models:
- StravaCredential: one key/value entry of the persisted OAuth credentials
"""

from datetime import datetime

from sqlalchemy import Column, String, DateTime, Text

from strava_monthly.models.base import Base


class StravaCredential(Base):
    """
    Durable key/value entry for OAuth credentials.

    Three rows make up a full credential record:
    strava_token, strava_refresh_token, strava_token_expiration.
    Values are stored as plain strings; the caller owns the schema.
    """

    __tablename__ = "strava_credentials"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<StravaCredential key={self.key}>"
