"""Collection cadence: how often a scope expects data, and when it is overdue."""

import calendar
from datetime import datetime, timedelta
from enum import Enum


class CollectionFrequency(str, Enum):
    REAL_TIME = "real-time"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_due(frequency: CollectionFrequency, from_time: datetime) -> datetime | None:
    """Next expected collection time; ``None`` for real-time feeds."""
    if frequency is CollectionFrequency.REAL_TIME:
        return None
    if frequency is CollectionFrequency.DAILY:
        return from_time + timedelta(days=1)
    if frequency is CollectionFrequency.WEEKLY:
        return from_time + timedelta(days=7)
    if frequency is CollectionFrequency.MONTHLY:
        return _add_months(from_time, 1)
    if frequency is CollectionFrequency.QUARTERLY:
        return _add_months(from_time, 3)
    return _add_months(from_time, 12)


def is_overdue(
    next_due_at: datetime | None,
    now: datetime,
    grace_hours: int = 0,
) -> bool:
    if next_due_at is None:
        return False
    return now > next_due_at + timedelta(hours=grace_hours)
