"""
Recorded-at resolution for incoming measurements.

A payload either carries an explicit ISO ``timestamp`` or a ``date`` plus an
optional ``time`` read as wall-clock time at a configured UTC offset (the
platform's clients enter IST, +330 minutes).  Nothing at all means "now".
Separators are forgiving: ``12.03.2024``, ``12-03-2024`` and ``12/03/2024``
are the same date; ``14.30.00`` and ``14-30-00`` the same time.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from carbon_kernel.domain.clock import Clock
from carbon_kernel.exceptions import InvalidRecordedAtError

DEFAULT_DATE_FORMATS: tuple[str, ...] = ("%d/%m/%Y", "%Y-%m-%d")
DEFAULT_TIME_FORMAT = "%H:%M:%S"

_DATE_SEPARATORS = re.compile(r"[.\-/]")
_TIME_SEPARATORS = re.compile(r"[.\-:]")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            raise InvalidRecordedAtError(str(value), "an ISO-8601 timestamp") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_date(value: Any, formats: Sequence[str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _DATE_SEPARATORS.sub("/", str(value).strip())
    for fmt in formats:
        try:
            return datetime.strptime(text, _DATE_SEPARATORS.sub("/", fmt)).date()
        except ValueError:
            continue
    raise InvalidRecordedAtError(str(value), " or ".join(formats))


def _parse_time(value: Any, time_format: str) -> time:
    if isinstance(value, time):
        return value
    text = _TIME_SEPARATORS.sub(":", str(value).strip())
    for fmt in (_TIME_SEPARATORS.sub(":", time_format), "%H:%M"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise InvalidRecordedAtError(str(value), time_format)


def parse_recorded_at(
    payload: Mapping[str, Any],
    clock: Clock,
    utc_offset_minutes: int = 0,
    date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
    time_format: str = DEFAULT_TIME_FORMAT,
) -> datetime:
    """Resolve the UTC instant a measurement was recorded at."""
    if not _blank(payload.get("timestamp")):
        return _parse_timestamp(payload["timestamp"])

    raw_date = payload.get("date")
    raw_time = payload.get("time")
    if _blank(raw_date) and _blank(raw_time):
        return clock.now()

    wall_zone = timezone(timedelta(minutes=utc_offset_minutes))
    if _blank(raw_date):
        day = clock.now().astimezone(wall_zone).date()
    else:
        day = _parse_date(raw_date, date_formats)
    moment = time(0, 0, 0) if _blank(raw_time) else _parse_time(raw_time, time_format)

    return datetime.combine(day, moment, tzinfo=wall_zone).astimezone(timezone.utc)
