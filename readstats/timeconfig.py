from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class TimeConfig:
    """Maps unix timestamps onto logical reading days (timezone + day start offset)."""

    def __init__(self, tz: Optional[str] = None, day_start_minutes: int = 0):
        self.tz = ZoneInfo(tz) if tz else timezone.utc
        self.day_start_minutes = day_start_minutes

    @classmethod
    def from_strings(cls, tz: Optional[str], day_start_time: Optional[str]) -> "TimeConfig":
        if tz and tz.strip():
            try:
                ZoneInfo(tz.strip())
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Invalid timezone: {tz}. Example: Australia/Sydney") from e
            tz = tz.strip()
        else:
            tz = None

        minutes = 0
        if day_start_time and day_start_time.strip():
            minutes = cls.parse_day_start(day_start_time.strip())
        return cls(tz, minutes)

    @staticmethod
    def parse_day_start(value: str) -> int:
        parts = value.split(":")
        if len(parts) != 2:
            raise ValueError("Invalid day start format. Use HH:MM (e.g., 03:00)")
        try:
            hours, minutes = int(parts[0]), int(parts[1])
        except ValueError as e:
            raise ValueError(f"Invalid day start time: {value}") from e
        if not (0 <= hours <= 23 and 0 <= minutes <= 59):
            raise ValueError("Day start must be between 00:00 and 23:59")
        return hours * 60 + minutes

    def date_for_timestamp(self, ts: int) -> date:
        dt = datetime.fromtimestamp(ts, tz=timezone.utc).astimezone(self.tz)
        return (dt - timedelta(minutes=self.day_start_minutes)).date()

    def today(self) -> date:
        return self.date_for_timestamp(int(datetime.now(tz=timezone.utc).timestamp()))
