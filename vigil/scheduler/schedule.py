"""
Schedule descriptors - compute the next run time for a job.

A schedule is a plain string so it serializes cleanly to any store:

    "interval:60"    every 60 minutes
    None             manual only, never picked up by due polling

Only the interval form is supported. Anything else is reported as
unsupported rather than raising, so callers can validate with
is_supported_schedule() and otherwise treat the job as manual.

Usage:
    next_at = calculate_next_run_at("interval:1440", from_=completed_at)
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

INTERVAL_PREFIX = "interval:"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_interval_schedule(schedule: str) -> float | None:
    """
    Return the interval in minutes, or None if the schedule is not a
    well-formed "interval:<positive number>" descriptor.
    """
    if not schedule.startswith(INTERVAL_PREFIX):
        return None

    try:
        value = float(schedule[len(INTERVAL_PREFIX):])
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None

    return value


def is_supported_schedule(schedule: str | None) -> bool:
    """None (or empty) means manual-only and is always supported."""
    if not schedule:
        return True
    return parse_interval_schedule(schedule) is not None


def calculate_next_run_at(
    schedule: str | None,
    from_: datetime | None = None,
) -> datetime | None:
    """
    Next run time for the schedule, counted from `from_`.

    The clock is only read when `from_` is omitted.
    Returns None for manual-only and unsupported schedules.
    """
    if not schedule:
        return None

    minutes = parse_interval_schedule(schedule)
    if minutes is None:
        return None

    base = from_ if from_ is not None else utcnow()
    return base + timedelta(minutes=minutes)


def interval_schedule(minutes: int | float) -> str:
    """Build an interval descriptor, e.g. interval_schedule(60) -> "interval:60"."""
    if isinstance(minutes, float) and minutes.is_integer():
        minutes = int(minutes)
    return f"{INTERVAL_PREFIX}{minutes}"


def describe_schedule(schedule: str | None) -> str:
    """Human-readable label, e.g. 'every 2h'."""
    if not schedule:
        return "manual"
    minutes = parse_interval_schedule(schedule)
    if minutes is None:
        return f"unsupported({schedule})"
    if minutes % (24 * 60) == 0:
        return f"every {int(minutes // (24 * 60))}d"
    if minutes % 60 == 0:
        return f"every {int(minutes // 60)}h"
    if minutes.is_integer():
        return f"every {int(minutes)}m"
    return f"every {minutes:g}m"
