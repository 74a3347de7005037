from __future__ import annotations

import datetime as dt

from adaptcore.schemas import ImpactWindow


def _start_of_day_utc(day: dt.date | str) -> dt.datetime:
    if isinstance(day, str):
        day = dt.date.fromisoformat(day)
    return dt.datetime(day.year, day.month, day.day, tzinfo=dt.timezone.utc)


def compute_impact_window(day: dt.date | str, scope: str) -> ImpactWindow:
    """Turn a calendar date and scope token into the UTC interval it affects.

    ``today`` ends one millisecond before midnight, ``next_72h`` is half-open,
    and ``week`` spans the ISO week (Monday 00:00Z to the following Monday).
    A malformed date string raises ``ValueError`` from the ISO parser.
    """
    d0 = _start_of_day_utc(day)
    if scope == "today":
        return ImpactWindow(start=d0, end=d0 + dt.timedelta(hours=24) - dt.timedelta(milliseconds=1))
    if scope == "next_72h":
        return ImpactWindow(start=d0, end=d0 + dt.timedelta(hours=72))

    iso_weekday = d0.isoweekday()  # Mon=1 .. Sun=7
    delta = -6 if iso_weekday == 7 else 1 - iso_weekday
    monday = d0 + dt.timedelta(days=delta)
    return ImpactWindow(start=monday, end=monday + dt.timedelta(days=7))
