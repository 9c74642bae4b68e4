"""
Feature modules.

- strava: OAuth login, token refresh, activity paging and monthly totals
"""
