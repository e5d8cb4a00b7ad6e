"""Small time helpers for stop-list time windows and optimizer epochs."""

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

CLOCK = re.compile(r"^(\d{1,2})(?::(\d{2}))?(?::\d{2})?$")
CLOCK_TOKEN = re.compile(r"(\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?)", re.IGNORECASE)
CLOCK_AMPM = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(am|pm)?$", re.IGNORECASE)
OPEN_TOKEN = re.compile(r"open\s+(\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?)", re.IGNORECASE)
CLOSE_TOKEN = re.compile(r"close\s+(\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?)", re.IGNORECASE)

DEFAULT_EARLIEST = "09:00"
DEFAULT_LATEST = "16:00"

# Hours east of the zone -> seconds to add to a naive UTC epoch
ZONE_OFFSETS = {
    "EDT": 4, "EST": 5,
    "CDT": 5, "CST": 6,
    "MDT": 6, "MST": 7,
    "PDT": 7, "PST": 8,
}


def normalize_clock(raw: str, default: str, closing: bool = False) -> str:
    """'9' -> '09:00', '930'-style values fall back to the default.

    A bare 1-6 in a closing column means afternoon ('3' -> '15:00').
    """
    m = CLOCK.match((raw or "").strip())
    if not m:
        return default
    hours = int(m.group(1))
    minutes = int(m.group(2) or 0)
    if closing and 1 <= hours <= 6:
        hours += 12
    if hours > 23 or minutes > 59:
        return default
    return f"{hours:02d}:{minutes:02d}"


def time_window(earliest: str, latest: str) -> str:
    return f"{normalize_clock(earliest, DEFAULT_EARLIEST)}-{normalize_clock(latest, DEFAULT_LATEST, closing=True)}"


def zone_offset_seconds(route_datetime: str) -> int:
    s = (route_datetime or "").upper()
    for abbr, hours in ZONE_OFFSETS.items():
        if abbr in s:
            return hours * 3600
    return 0


def _route_date(route_datetime: str) -> Optional[datetime]:
    """Date part of a route timestamp ('10/16/2025 04:00 EDT' or '2025-10-16 04:00')."""
    date_part = (route_datetime or "").strip().split(" ")[0]
    for fmt in ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%y"):
        try:
            return datetime.strptime(date_part, fmt)
        except ValueError:
            continue
    return None


def _epoch(day: datetime, hours: int, minutes: int, seconds: int, route_datetime: str) -> int:
    naive = day.replace(hour=hours, minute=minutes, second=seconds)
    return int(naive.replace(tzinfo=timezone.utc).timestamp()) + zone_offset_seconds(route_datetime)


def clock_to_epoch(value: str, route_datetime: str) -> int:
    """Epoch seconds for a clock time on the route's date; 0 when unparseable."""
    day = _route_date(route_datetime)
    m = CLOCK_AMPM.match((value or "").strip())
    if day is None or not m:
        return 0
    hours, minutes = int(m.group(1)), int(m.group(2))
    seconds = int(m.group(3) or 0)
    meridiem = (m.group(4) or "").lower()
    if meridiem == "pm" and hours != 12:
        hours += 12
    if meridiem == "am" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59 or seconds > 59:
        return 0
    return _epoch(day, hours, minutes, seconds, route_datetime)


def route_start_epoch(route_datetime: str) -> int:
    """Epoch seconds of the route start timestamp itself; 0 when unparseable."""
    day = _route_date(route_datetime)
    if day is None:
        return 0
    parts = (route_datetime or "").strip().split(" ")
    clock = " ".join(p for p in parts[1:] if p.upper() not in ZONE_OFFSETS)
    if clock:
        epoch = clock_to_epoch(clock, route_datetime)
        if epoch:
            return epoch
    return _epoch(day, 0, 0, 0, route_datetime)


def window_epochs(open_close: str, route_datetime: str,
                  fallback_start: str, fallback_end: str) -> Tuple[int, int]:
    """Time window for a stop, from its open/close text or its planned times."""
    if open_close:
        tokens: List[str] = [t.strip() for t in CLOCK_TOKEN.findall(open_close)][:2]
        if len(tokens) == 2:
            start = clock_to_epoch(tokens[0], route_datetime)
            end = clock_to_epoch(tokens[1], route_datetime)
            if start and end and end >= start:
                return start, end
        open_m = OPEN_TOKEN.search(open_close)
        close_m = CLOSE_TOKEN.search(open_close)
        if open_m and close_m:
            start = clock_to_epoch(open_m.group(1), route_datetime)
            end = clock_to_epoch(close_m.group(1), route_datetime)
            if start and end and end >= start:
                return start, end
    return clock_to_epoch(fallback_start, route_datetime), clock_to_epoch(fallback_end, route_datetime)


def duration_seconds(value) -> int:
    """'0:15' -> 900, '00:15:30' -> 930, '600' -> 600."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return max(0, round(value))
    text = str(value).strip()
    parts = text.split(":")
    try:
        if len(parts) == 3:
            return int(parts[0]) * 3600 + int(parts[1]) * 60 + int(parts[2])
        if len(parts) == 2:
            return int(parts[0]) * 3600 + int(parts[1]) * 60
        return max(0, round(float(text)))
    except ValueError:
        return 0


def day_bounds(date_str: str, start: str, end: str) -> Tuple[str, str]:
    """('2025-10-13', '04:00', '23:59') -> local start/end timestamps."""
    return f"{date_str} {start}", f"{date_str} {end}"


def shift_end(start_epoch: int, hours: int) -> int:
    return start_epoch + int(timedelta(hours=hours).total_seconds())
