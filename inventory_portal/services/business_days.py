"""Business-day arithmetic for reminder eligibility."""

from datetime import datetime, timedelta

WEEKEND = (5, 6)  # Saturday, Sunday


def business_days_between(start: datetime, end: datetime) -> int:
    """
    Count whole business days elapsed from ``start`` to ``end``.

    Both instants are truncated to midnight and every day after the start
    date, up to and including the end date, counts when it falls on
    Monday-Friday. Both values must already be expressed in the same
    reference timezone; no conversion happens here. No holiday calendar.

    Returns 0 when ``start >= end``.
    """
    if start >= end:
        return 0

    day = start.date()
    end_day = end.date()

    business_days = 0
    while day < end_day:
        day += timedelta(days=1)
        if day.weekday() not in WEEKEND:
            business_days += 1

    return business_days
