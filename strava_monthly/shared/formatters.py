"""
Formatting utilities for display.

Used by the command line and any other presentation layer.
"""

import calendar


def format_distance_km(meters: float) -> str:
    """
    Format meters as kilometers with one decimal.

    Args:
        meters: Distance in meters (e.g., 12345.6)

    Returns:
        Formatted string (e.g., '12.3 km')
    """
    if meters < 0:
        return "—"
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: int) -> str:
    """
    Format seconds as 'Xh Ymin'.

    3725 → '1h 2min', 540 → '9min', 7200 → '2h'
    """
    if seconds < 0:
        return "—"

    total_minutes = int(seconds) // 60
    h = total_minutes // 60
    m = total_minutes % 60

    if h == 0:
        return f"{m}min"
    elif m == 0:
        return f"{h}h"
    else:
        return f"{h}h {m}min"


def format_elevation(meters: float) -> str:
    """Format elevation gain as whole meters, e.g. '356 m'."""
    if meters < 0:
        return "—"
    return f"{round(meters):d} m"


def format_month_label(month_key: str) -> str:
    """
    Format a 'YYYY-MM' key as 'Month YYYY'.

    '2024-03' → 'March 2024'. Unparseable keys are returned unchanged.
    """
    try:
        year, month = (int(part) for part in month_key.split("-", 1))
        name = calendar.month_name[month]
    except (ValueError, IndexError):
        return month_key
    return f"{name} {year}"
