"""Lenient parsing for the date/time shapes the booking records carry.

Upstream records mix ISO date-times (``2026-03-01T09:00:00Z``), plain dates,
``HH:MM`` / ``HH:MM:SS`` times and ``"09:00 - 10:30"`` slots. Parsers here
return ``None`` instead of raising so callers decide how strict to be.
"""

from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from scheduling_core.core.errors import ValidationError


def parse_date_value(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_time_value(value) -> time | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.time().replace(tzinfo=None)
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    text = str(value).strip()
    if not text:
        return None
    if 'T' in text:
        parsed = parse_datetime_value(text)
        return parsed.time() if parsed else None
    parts = text.split(':')
    if len(parts) < 2:
        return None
    try:
        hour = int(parts[0])
        minute = int(parts[1])
        second = int(float(parts[2])) if len(parts) > 2 and parts[2] else 0
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
        return None
    return time(hour=hour, minute=minute, second=second)


def parse_datetime_value(value, *, tz: ZoneInfo | None = None) -> datetime | None:
    """Parse a combined date-time; aware values are converted to ``tz`` and made naive."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text or ('T' not in text and ' ' not in text):
            return None
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None and parsed.tzinfo.utcoffset(parsed) is not None:
        if tz is not None:
            parsed = parsed.astimezone(tz)
        parsed = parsed.replace(tzinfo=None)
    return parsed


def format_hhmm(value) -> str:
    parsed = parse_time_value(value)
    if parsed is None:
        return str(value or '')
    return parsed.strftime('%H:%M')


def parse_time_slot(value: str | None) -> tuple[str, str] | None:
    """Split ``"09:00-10:30"`` (or ``"09:00 - 10:30"``) into normalized ``HH:MM`` bounds."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    separator = ' - ' if ' - ' in text else '-'
    if separator not in text:
        raise ValidationError(f'Time slot {value!r} must look like "09:00-10:30".', code='invalid_time_slot')
    start_raw, end_raw = text.split(separator, 1)
    start = parse_time_value(start_raw)
    end = parse_time_value(end_raw)
    if start is None or end is None:
        raise ValidationError(f'Time slot {value!r} must look like "09:00-10:30".', code='invalid_time_slot')
    if end <= start:
        raise ValidationError('Time slot must end after it starts.', code='invalid_time_slot')
    return start.strftime('%H:%M'), end.strftime('%H:%M')


def slots_overlap(start_a, end_a, start_b, end_b) -> bool:
    a0, a1 = parse_time_value(start_a), parse_time_value(end_a)
    b0, b1 = parse_time_value(start_b), parse_time_value(end_b)
    if None in (a0, a1, b0, b1):
        # Unknown bounds count as a clash.
        return True
    return a0 < b1 and b0 < a1
