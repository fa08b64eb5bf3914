"""Datetime helpers.

Browser date pickers submit naive wall-clock strings such as
``2025-06-15T14:30``. Metaobject ``date_time`` fields need an
offset-qualified timestamp, so these helpers keep the digits the merchant
typed and attach the offset of their timezone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pendulum
from pendulum.tz.exceptions import InvalidTimezone

logger = logging.getLogger(__name__)

LOCAL_DATETIME_RE = re.compile(
    r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"T(?P<hour>\d{2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?$"
)
EXPLICIT_OFFSET_RE = re.compile(r"([+-]\d{2}:?\d{2}|Z)$", re.IGNORECASE)

DEFAULT_START = (2000, 1, 1, 0, 0, 0)
DEFAULT_END = (2100, 12, 31, 23, 59, 59)
MAX_OFFSET_MINUTES = 24 * 60 - 1


class InvalidDateFormat(ValueError):
    """Raised when a local date-time string or offset cannot be interpreted."""


@dataclass(slots=True, frozen=True)
class ScheduleBounds:
    start: str
    end: str


def format_offset(minutes: int) -> str:
    if abs(minutes) > MAX_OFFSET_MINUTES:
        raise InvalidDateFormat(f"Offset out of range: {minutes}")
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{mins:02d}"


def coerce_offset_minutes(raw: Any) -> int | None:
    """Normalize an offset submitted by a form or JSON body.

    Missing and blank values mean "not supplied". Anything else must be a whole
    number of minutes.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidDateFormat(f"Invalid timezone offset: {raw!r}") from exc
    if not value.is_integer():
        raise InvalidDateFormat(f"Timezone offset must be whole minutes: {raw!r}")
    minutes = int(value)
    if abs(minutes) > MAX_OFFSET_MINUTES:
        raise InvalidDateFormat(f"Offset out of range: {minutes}")
    return minutes


def resolve_offset_minutes(
    components: tuple[int, int, int, int, int, int],
    timezone_name: str | None = None,
    timezone_offset_minutes: Any = None,
) -> int:
    """Pick the UTC offset for a wall-clock time.

    An explicit offset wins over a zone name. A zone name alone is looked up in
    the IANA database for that wall time, so DST is honoured. With neither, the
    time is treated as UTC.
    """
    offset = coerce_offset_minutes(timezone_offset_minutes)
    if offset is not None:
        return offset
    name = (timezone_name or "").strip()
    if not name:
        return 0
    try:
        tz = pendulum.timezone(name)
    except (InvalidTimezone, ValueError):
        logger.warning("Unknown timezone %r; using UTC", name)
        return 0
    localized = pendulum.datetime(*components, tz=tz)
    return int(localized.utcoffset().total_seconds() // 60)


def to_absolute(
    local_datetime: str | None,
    timezone_name: str | None = None,
    timezone_offset_minutes: Any = None,
) -> str:
    """Render ``local_datetime`` as ``YYYY-MM-DDTHH:mm:ss±HH:MM``.

    The date and time digits are kept exactly as written; only the offset
    suffix is added. Never consults the server clock.
    """
    value = (local_datetime or "").strip()
    if not value:
        raise InvalidDateFormat("Empty date/time value")

    match = LOCAL_DATETIME_RE.match(value)
    if match:
        components = _components_from_match(match)
        offset = resolve_offset_minutes(components, timezone_name, timezone_offset_minutes)
        return _render(components, offset)

    parsed = _parse_fallback(value)
    components = (parsed.year, parsed.month, parsed.day, parsed.hour, parsed.minute, parsed.second)
    if EXPLICIT_OFFSET_RE.search(value) and parsed.utcoffset() is not None:
        seconds = parsed.utcoffset().total_seconds()
        if seconds % 60:
            raise InvalidDateFormat(f"Offset is not whole minutes: {value!r}")
        return _render(components, int(seconds // 60))
    offset = resolve_offset_minutes(components, timezone_name, timezone_offset_minutes)
    return _render(components, offset)


def default_bounds(timezone_name: str | None = None, timezone_offset_minutes: Any = None) -> ScheduleBounds:
    """Bounds for an entry without an explicit schedule: effectively always on."""
    return ScheduleBounds(
        start=_render(DEFAULT_START, _safe_offset(DEFAULT_START, timezone_name, timezone_offset_minutes)),
        end=_render(DEFAULT_END, _safe_offset(DEFAULT_END, timezone_name, timezone_offset_minutes)),
    )


def _safe_offset(components, timezone_name, timezone_offset_minutes) -> int:
    try:
        return resolve_offset_minutes(components, timezone_name, timezone_offset_minutes)
    except InvalidDateFormat as exc:
        logger.warning("Ignoring timezone offset for default bounds: %s", exc)
        return resolve_offset_minutes(components, timezone_name, None)


def _components_from_match(match: re.Match) -> tuple[int, int, int, int, int, int]:
    parts = match.groupdict()
    components = (
        int(parts["year"]),
        int(parts["month"]),
        int(parts["day"]),
        int(parts["hour"]),
        int(parts["minute"]),
        int(parts["second"] or 0),
    )
    try:
        datetime(*components)
    except ValueError as exc:
        raise InvalidDateFormat(f"Invalid date/time: {match.string!r}") from exc
    return components


def _parse_fallback(value: str) -> datetime:
    try:
        parsed = pendulum.parse(value, strict=False)
    except (ValueError, OverflowError) as exc:
        raise InvalidDateFormat(f"Unrecognized date/time: {value!r}") from exc
    if not isinstance(parsed, datetime):
        raise InvalidDateFormat(f"Not a date/time: {value!r}")
    return parsed


def _render(components: tuple[int, int, int, int, int, int], offset_minutes: int) -> str:
    year, month, day, hour, minute, second = components
    return f"{year:04d}-{month:02d}-{day:02d}T{hour:02d}:{minute:02d}:{second:02d}{format_offset(offset_minutes)}"
