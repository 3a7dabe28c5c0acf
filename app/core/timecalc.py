"""Time arithmetic shared by availability, slot and booking flows.

Clock times are carried as minutes past midnight (``9*60`` for 09:00) and
rendered as zero-padded 24h ``HH:MM`` strings. Nothing in here touches the
database or the wall clock.
"""
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable
from app.core.errors import InvalidTimeFormat

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

MINUTES_PER_DAY = 24 * 60

class Weekday(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @property
    def day_number(self) -> int:
        # same numbering as date.weekday(): 0=Mon..6=Sun
        return list(Weekday).index(self)

def parse_minutes(hhmm: str) -> int:
    if not isinstance(hhmm, str):
        raise InvalidTimeFormat(f"Time must be a HH:MM string, got {hhmm!r}")
    m = _HHMM.match(hhmm.strip())
    if not m:
        raise InvalidTimeFormat(f"Time must be in HH:MM format, got {hhmm!r}")
    return int(m.group(1)) * 60 + int(m.group(2))

def format_minutes(minutes: int) -> str:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise InvalidTimeFormat(f"{minutes} minutes is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"

def ranges_overlap(s1: int, e1: int, s2: int, e2: int) -> bool:
    # half-open ranges: [09:00,10:00) and [10:00,11:00) do not overlap
    return s1 < e2 and s2 < e1

def combine(d: date, hhmm: str | int, tz: tzinfo) -> datetime:
    minutes = parse_minutes(hhmm) if isinstance(hhmm, str) else hhmm
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise InvalidTimeFormat(f"{minutes} minutes is outside a single day")
    return datetime.combine(d, time(minutes // 60, minutes % 60), tzinfo=tz)

def as_utc(dt: datetime) -> datetime:
    # sqlite hands back naive timestamps; everything is stored as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def future_dates_for_weekdays(weekdays: Iterable[Weekday], weeks_ahead: int, today: date) -> list[date]:
    out: set[date] = set()
    for week in range(weeks_ahead):
        for wd in set(weekdays):
            days_to_add = (wd.day_number - today.weekday()) % 7 + week * 7
            d = today + timedelta(days=days_to_add)
            if d > today:
                out.add(d)
    return sorted(out)

def render_date(d: date) -> str:
    return d.strftime("%a %b %d %Y")

def render_datetime(dt: datetime, tz: tzinfo) -> str:
    local = as_utc(dt).astimezone(tz)
    return f"{render_date(local.date())} {local.strftime('%H:%M')}"
