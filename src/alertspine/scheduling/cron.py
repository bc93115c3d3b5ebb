"""Schedule strings and time zone resolution.

A job's ``schedule`` is one of:

    - a standard 5-field cron expression (``"*/15 * * * *"``)
    - the daily shorthand ``"HH:MM"``, rewritten to ``"M H * * *"``
    - a descriptor such as ``"@daily"`` or ``"@hourly"``, rewritten to its
      5-field equivalent

Day-of-week follows crontab numbering (0 and 7 are Sunday) on every
backend; :func:`weekday_field_to_names` rewrites the field for engines
that number from Monday. Whether a cron expression is valid is decided by
the backend that registers it; :func:`validate_cron_expression` applies
the same 5-field check up front.
"""

from __future__ import annotations

import logging
import re
from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from alertspine.core.errors import InvalidScheduleError

logger = logging.getLogger(__name__)

SIMPLE_SCHEDULE_TEMPLATE = "{minute} {hour} * * *"

SCHEDULE_DESCRIPTORS: dict[str, str] = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

# Index is the crontab day number; 7 wraps to Sunday
CRONTAB_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

_NUMERIC_WEEKDAY = re.compile(r"\d+(-\d+)?")

_EXPECTED_FORMS = "expected 5 cron fields, HH:MM, or one of " + ", ".join(SCHEDULE_DESCRIPTORS)


def _strip_field(value: str) -> str:
    return value.lstrip("0") or "0"


def parse_simple_schedule(simple_time: str) -> str:
    """Convert ``"HH:MM"`` to a daily cron expression.

    Examples:
        >>> parse_simple_schedule("09:00")
        '0 9 * * *'
        >>> parse_simple_schedule("9:05")
        '5 9 * * *'

    Raises:
        InvalidScheduleError: not two numeric ``:``-separated fields, or out of range
    """
    parts = simple_time.split(":")
    if len(parts) != 2:
        raise InvalidScheduleError(
            "invalid time format, expected HH:MM", schedule=simple_time
        )

    hour_text, minute_text = (part.strip() for part in parts)
    if not all(p.isascii() and p.isdigit() for p in (hour_text, minute_text)):
        raise InvalidScheduleError(
            "invalid time format, expected HH:MM", schedule=simple_time
        )

    hour = _strip_field(hour_text)
    minute = _strip_field(minute_text)
    if int(hour) > 23 or int(minute) > 59:
        raise InvalidScheduleError(
            f"time out of range: {simple_time!r}", schedule=simple_time
        )

    return SIMPLE_SCHEDULE_TEMPLATE.format(minute=minute, hour=hour)


def is_simple_schedule(schedule: str) -> bool:
    """True for the ``HH:MM`` shorthand (a colon and no whitespace)."""
    return ":" in schedule and not any(ch.isspace() for ch in schedule)


def resolve_schedule(schedule: str) -> str:
    """Return the cron expression for a job's schedule string.

    Raises:
        InvalidScheduleError: empty schedule, malformed shorthand or
            unsupported descriptor
    """
    schedule = schedule.strip()
    if not schedule:
        raise InvalidScheduleError("schedule is required", schedule=schedule)
    if schedule.startswith("@"):
        expression = SCHEDULE_DESCRIPTORS.get(schedule.lower())
        if expression is None:
            raise InvalidScheduleError(
                f"unsupported schedule descriptor '{schedule}', {_EXPECTED_FORMS}",
                schedule=schedule,
            )
        return expression
    if is_simple_schedule(schedule):
        return parse_simple_schedule(schedule)
    return schedule


def validate_cron_expression(expression: str) -> str:
    """Check a standard 5-field cron expression.

    Raises:
        InvalidScheduleError: wrong field count or unparseable field
    """
    if len(expression.split()) != 5 or not croniter.is_valid(expression):
        raise InvalidScheduleError(
            f"invalid cron expression '{expression}', {_EXPECTED_FORMS}",
            schedule=expression,
        )
    return expression


def weekday_field_to_names(field: str) -> str:
    """Rewrite a crontab day-of-week field with day names.

    Numeric values, ranges and steps are expanded to names, so an engine
    that counts from Monday reads the days crontab means.

    Examples:
        >>> weekday_field_to_names("1-5")
        'mon,tue,wed,thu,fri'
        >>> weekday_field_to_names("0,7")
        'sun'

    Raises:
        ValueError: day number outside 0-7 or a bad step
    """
    names: list[str] = []
    for part in field.split(","):
        for name in _weekday_part_to_names(part):
            if name not in names:
                names.append(name)
    return ",".join(names)


def _weekday_part_to_names(part: str) -> list[str]:
    base, _, step_text = part.partition("/")
    if base == "*":
        if not step_text:
            return [part]
        start, end = 0, 6
    elif _NUMERIC_WEEKDAY.fullmatch(base):
        first, _, last = base.partition("-")
        start = int(first)
        end = int(last) if last else (6 if step_text else start)
    else:
        # names (mon-fri) mean the same on every engine
        return [part]

    step = int(step_text) if step_text else 1
    if step < 1 or not 0 <= start <= end <= 7:
        raise ValueError(f"invalid day-of-week value '{part}'")
    return [CRONTAB_WEEKDAYS[day % 7] for day in range(start, end + 1, step)]


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Resolve the shared job time zone.

    Returns ``None`` (local time) when *name* is empty or not a valid IANA
    zone; the latter is logged as a warning.
    """
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Invalid timezone '{name}', using local timezone: {e}")
        return None


def describe_timezone(tz: tzinfo | None) -> str:
    return str(tz) if tz is not None else "local"
