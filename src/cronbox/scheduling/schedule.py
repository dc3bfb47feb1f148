"""Next-run computation for cron, interval, and once schedules.

Everything here is a pure function of its inputs: the current instant is
passed in, never read from a global clock.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from croniter import croniter

from cronbox.infrastructure.logger import logger
from cronbox.scheduling.types import ScheduledTask

_WEEKDAY_NUMBER = re.compile(r"(?<![/#0-9])[0-9]+")
_INTEGER = re.compile(r"[+-]?[0-9]+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Canonical persisted form: UTC, millisecond precision, explicit offset.

    A fixed-width format keeps lexical order equal to time order, which the
    due-task query relies on.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _shift_day_of_week(field: str) -> str:
    """Renumber weekdays from 1-7 (Sunday=1) to 0-6 (Sunday=0). Step and nth values are left alone."""

    def shift(match: re.Match[str]) -> str:
        day = int(match.group())
        if not 1 <= day <= 7:
            raise ValueError(f"Day of week out of range: {day}")
        return str(day - 1)

    return _WEEKDAY_NUMBER.sub(shift, field)


def normalize_cron(expr: str) -> str:
    """Convert a seconds-first expression into croniter's layout.

    Five fields are standard cron and pass through unchanged. Six fields are
    `sec min hour dom mon dow`, seven add a trailing year. Both number
    weekdays 1-7 from Sunday; croniter wants `min hour dom mon dow sec [year]`
    with weekdays 0-6 from Sunday. Raises ValueError on a bad weekday number.
    """
    fields = expr.split()
    if len(fields) in (6, 7):
        seconds, minute, hour, dom, month, dow = fields[:6]
        return " ".join([minute, hour, dom, month, _shift_day_of_week(dow), seconds, *fields[6:]])
    return " ".join(fields)


def next_cron_run(expr: str, now: datetime, tz: str = "UTC") -> datetime:
    """First occurrence strictly after `now`, evaluated in `tz`. Raises ValueError if invalid."""
    normalized = normalize_cron(expr)
    if not normalized or not croniter.is_valid(normalized):
        raise ValueError(f"Invalid cron expression: {expr!r}")
    local_now = now.astimezone(ZoneInfo(tz))
    return croniter(normalized, local_now).get_next(datetime).astimezone(timezone.utc)


def parse_interval_ms(value: str) -> int | None:
    """Milliseconds as a plain ASCII integer (optional sign, no spaces or separators), or None."""
    if not isinstance(value, str) or not _INTEGER.fullmatch(value):
        return None
    ms = int(value)
    if ms < 0:
        return None
    return ms


def compute_next_run(task: ScheduledTask, now: datetime, tz: str = "UTC") -> str | None:
    """Next due timestamp for a task after it has run, or None for no further occurrence."""
    if task.schedule_type == "cron":
        try:
            return format_timestamp(next_cron_run(task.schedule_value, now, tz))
        except (ValueError, KeyError) as err:
            logger.error("Invalid cron expression", task_id=task.id, expression=task.schedule_value, error=str(err))
            return None

    if task.schedule_type == "interval":
        ms = parse_interval_ms(task.schedule_value)
        if ms is None:
            logger.warning("Invalid interval value", task_id=task.id, value=task.schedule_value)
            return None
        try:
            return format_timestamp(now + timedelta(milliseconds=ms))
        except OverflowError:
            logger.warning("Interval out of range", task_id=task.id, value=task.schedule_value)
            return None

    # once: the timestamp was consumed at creation
    return None


def initial_next_run(schedule_type: str, schedule_value: str, now: datetime, tz: str = "UTC") -> str:
    """Validate a schedule for a new task and return its first due time.

    Raises ValueError with a message naming what was wrong.
    """
    if schedule_type == "cron":
        try:
            return format_timestamp(next_cron_run(schedule_value, now, tz))
        except (ValueError, KeyError):
            raise ValueError(f"Invalid cron expression: {schedule_value}")
    if schedule_type == "interval":
        ms = parse_interval_ms(schedule_value)
        if ms is None or ms == 0:
            raise ValueError(f"Invalid interval: {schedule_value}")
        try:
            return format_timestamp(now + timedelta(milliseconds=ms))
        except OverflowError:
            raise ValueError(f"Invalid interval: {schedule_value}")
    if schedule_type == "once":
        try:
            return format_timestamp(parse_timestamp(schedule_value))
        except ValueError:
            raise ValueError(f"Invalid timestamp: {schedule_value}")
    raise ValueError(f"Invalid schedule type: {schedule_type}")
