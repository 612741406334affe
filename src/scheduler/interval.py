"""Interval expressions (``5m``, ``1h``, ``1d``) and next-run computation."""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Tuple
from zoneinfo import ZoneInfo

from src.exceptions import InvalidIntervalError

INTERVAL_PATTERN = re.compile(r"(\d+)([mhd])", re.ASCII)

_MINUTES_PER_UNIT = {"m": 1, "h": 60}


def parse_interval(expression: str) -> Tuple[int, str]:
    """Split an interval expression into ``(count, unit)``.

    Raises:
        InvalidIntervalError: if the expression is not ``<digits><m|h|d>``.
    """
    match = INTERVAL_PATTERN.fullmatch(expression or "")
    # "0m" would never advance next_run_at
    if not match or int(match.group(1)) == 0:
        raise InvalidIntervalError(expression)
    return int(match.group(1)), match.group(2)


def next_run(base: datetime, expression: str) -> datetime:
    """Return the next due time after ``base`` for the given interval.

    Minutes and hours are elapsed time. Days are calendar days in the
    timezone of ``base``, so ``1d`` keeps the wall-clock time across DST
    changes and month ends.
    """
    count, unit = parse_interval(expression)

    try:
        if unit == "d":
            return base + timedelta(days=count)

        delta = timedelta(minutes=count * _MINUTES_PER_UNIT[unit])
        if base.tzinfo is None:
            return base + delta
        # Aware datetimes add wall-clock time, go through UTC for elapsed time
        return (base.astimezone(timezone.utc) + delta).astimezone(base.tzinfo)
    except OverflowError as e:
        # Past datetime.max (year 9999)
        raise InvalidIntervalError(expression) from e


def utcnow() -> datetime:
    """Naive UTC now, the representation stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def next_run_utc(now: datetime, expression: str, tz_name: str = "UTC") -> datetime:
    """``next_run`` for naive UTC timestamps, counting days in ``tz_name``."""
    local_now = now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))
    due = next_run(local_now, expression)
    try:
        return to_naive_utc(due)
    except OverflowError as e:
        raise InvalidIntervalError(expression) from e
