from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from scheduling_core.config import settings


APP_TIMEZONE = settings.app_timezone or "Asia/Ho_Chi_Minh"
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def local_naive_now(self) -> datetime:
        """Wall-clock time in the app timezone without tzinfo, matching stored session times."""
        current = self.now()
        if current.tzinfo is not None:
            current = current.astimezone(APP_ZONEINFO).replace(tzinfo=None)
        return current


default_time_provider = TimeProvider()
