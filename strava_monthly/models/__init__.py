"""
Database Models

Feature models live next to their feature (features/strava/models.py)
and register on this Base when imported.
"""

from strava_monthly.models.base import Base

__all__ = ["Base"]
