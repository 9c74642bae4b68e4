"""
Strava Monthly

Strava OAuth client that keeps its tokens fresh and folds the athlete's
activity feed into month buckets.
"""

__version__ = "0.1.0"
