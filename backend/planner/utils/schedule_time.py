"""
Schedule time helpers

Start-time parsing, minute arithmetic and match duration rules shared by the
group-stage and final-stage schedulers.

Date formats accepted:
- ISO: YYYY-MM-DD
- German: DD.MM.YYYY
Anything else falls back to today's date.
"""

import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

_TIME_PATTERN = re.compile(r"(\d{1,2}):(\d{2})")


def parse_start_date(value: Optional[str]) -> Optional[date]:
    """Parse ISO or German date strings. Returns None when unrecognized."""
    if not value:
        return None
    value = value.strip()
    try:
        if "-" in value:
            return date.fromisoformat(value[:10])
        if "." in value:
            day, month, year = (int(part) for part in value.split("."))
            return date(year, month, day)
    except ValueError:
        return None
    return None


def parse_start_time(date_value: Optional[str], time_value: Optional[str]) -> Tuple[datetime, bool]:
    """
    Combine a tournament date and HH:MM time into a datetime.

    Returns:
        (start, degraded) where degraded is True if the date could not be
        parsed and today's date was substituted.
    """
    parsed_date = parse_start_date(date_value)
    degraded = parsed_date is None
    if parsed_date is None:
        parsed_date = date.today()

    hours, minutes = 0, 0
    match = _TIME_PATTERN.search(time_value or "")
    if match:
        hours = min(int(match.group(1)), 23)
        minutes = min(int(match.group(2)), 59)

    return datetime(parsed_date.year, parsed_date.month, parsed_date.day, hours, minutes), degraded


def add_minutes(value: datetime, minutes: float) -> datetime:
    return value + timedelta(minutes=minutes)


def format_time(value: datetime) -> str:
    """Format as zero-padded HH:MM"""
    return f"{value.hour:02d}:{value.minute:02d}"


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60


def calculate_total_match_duration(game_duration: int, game_periods: int, halftime_break: int) -> int:
    """
    Match duration including breaks between periods.

    One period (or fewer): game_duration.
    N periods: game_duration + (N - 1) * halftime_break.
    """
    if game_periods <= 1:
        return game_duration
    return game_duration + (game_periods - 1) * halftime_break
