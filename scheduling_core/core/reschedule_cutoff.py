from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any

from scheduling_core.config import settings
from scheduling_core.core.errors import TooLateToReschedule
from scheduling_core.core.time_provider import APP_ZONEINFO
from scheduling_core.core.timeparse import parse_date_value, parse_datetime_value, parse_time_value


logger = logging.getLogger(__name__)

CHANGE_TUTOR_PREFIX = '[CHANGE TUTOR]'
_CHANGE_TUTOR_RE = re.compile(r"^\s*" + re.escape(CHANGE_TUTOR_PREFIX) + r"\s*", re.IGNORECASE)


def cutoff_window() -> timedelta:
    return timedelta(hours=max(0, int(settings.reschedule_cutoff_hours)))


def resolve_session_start(session_date: Any, start_time: Any = None) -> datetime | None:
    """Session start as a naive app-local datetime.

    Accepts a combined date-time in ``session_date`` (or in ``start_time``),
    or a date plus a separate time of day.
    """
    for combined in (session_date, start_time):
        parsed = parse_datetime_value(combined, tz=APP_ZONEINFO)
        if parsed is not None:
            if combined is session_date and start_time is not None:
                time_of_day = parse_time_value(start_time)
                if time_of_day is not None and parsed.time() == datetime.min.time():
                    return datetime.combine(parsed.date(), time_of_day)
            return parsed

    day = parse_date_value(session_date)
    time_of_day = parse_time_value(start_time)
    if day is None or time_of_day is None:
        return None
    return datetime.combine(day, time_of_day)


def is_within_cutoff(request, now: datetime) -> bool:
    """True when the request's original session starts within the cutoff window.

    Unparseable session times are treated as outside the window.
    """
    start = resolve_session_start(
        getattr(request, 'original_session_date', None),
        getattr(request, 'original_start_time', None),
    )
    if start is None:
        logger.warning(
            'reschedule_cutoff_unparseable',
            extra={
                'request_id': getattr(request, 'id', None),
                'original_session_date': getattr(request, 'original_session_date', None),
                'original_start_time': getattr(request, 'original_start_time', None),
            },
        )
        return False
    current = now
    if current.tzinfo is not None and current.tzinfo.utcoffset(current) is not None:
        current = current.astimezone(APP_ZONEINFO).replace(tzinfo=None)
    return start - current <= cutoff_window()


def ensure_outside_cutoff(request, now: datetime) -> None:
    if is_within_cutoff(request, now):
        hours = int(settings.reschedule_cutoff_hours)
        raise TooLateToReschedule(
            f'The session starts within {hours} hours; it can no longer be rescheduled or cancelled.',
            context={'request_id': getattr(request, 'id', None)},
        )


def split_legacy_reason(reason: str | None) -> tuple[bool, str]:
    """Detect the ``[CHANGE TUTOR]`` reason prefix older clients used to tag tutor requests.

    Returns ``(is_tutor_change, reason_without_prefix)``.
    """
    text = str(reason or '')
    if _CHANGE_TUTOR_RE.match(text):
        return True, _CHANGE_TUTOR_RE.sub('', text, count=1).strip()
    return False, text.strip()
