"""
time_policy.py
--------------
Which calendar days and hours are eligible for study.

  * Sunday            -> blacked out
  * Saturday          -> parity = ceil(day_of_month / 7) % 2
                         odd parity blacked out, even parity open
                         saturday_start_hour .. saturday_end_hour
  * Monday .. Friday  -> open weekday_start_hour .. weekday_end_hour

Parity depends on the concrete date, so it is computed per call and never cached.
No I/O, no state.
"""

import math
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from config import SchedulingRules
from models import Preferences

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

SATURDAY = 5
SUNDAY = 6


def parse_hhmm(value: Optional[str]) -> time:
    """'HH:MM' -> time. Raises ValueError for anything else."""
    if not isinstance(value, str):
        raise ValueError(f"expected 'HH:MM', got {value!r}")
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def weekday_index(day_name: Optional[str]) -> Optional[int]:
    """'monday' / 'Monday' -> 0; unknown names -> None."""
    if not day_name:
        return None
    name = day_name.strip().capitalize()
    return DAY_NAMES.index(name) if name in DAY_NAMES else None


def saturday_parity(day: date) -> int:
    return math.ceil(day.day / 7) % 2


def is_blackout(day: date) -> bool:
    if day.weekday() == SUNDAY:
        return True
    if day.weekday() == SATURDAY:
        return saturday_parity(day) == 1
    return False


def eligible_window(day: date, rules: SchedulingRules) -> Optional[Tuple[datetime, datetime]]:
    """The [start, end) study window for a date, or None on blackout days."""
    if is_blackout(day):
        return None
    if day.weekday() == SATURDAY:
        start_hour, end_hour = rules.saturday_start_hour, rules.saturday_end_hour
    else:
        start_hour, end_hour = rules.weekday_start_hour, rules.weekday_end_hour
    midnight = datetime.combine(day, time.min)
    return midnight + timedelta(hours=start_hour), midnight + timedelta(hours=end_hour)


def candidate_start_hours(day: date, rules: SchedulingRules, saturday_bands: Optional[List[int]] = None) -> List[int]:
    """Hours a one-hour session may start at on this day ([] on blackout days)."""
    if is_blackout(day):
        return []
    if day.weekday() == SATURDAY:
        return list(saturday_bands if saturday_bands is not None else rules.saturday_bands)
    # weekday evening: every whole hour that still leaves an hour before close
    return list(range(rules.weekday_start_hour, max(rules.weekday_start_hour + 1, rules.weekday_end_hour - 1)))


def fits_window(start: datetime, end: datetime, rules: SchedulingRules) -> bool:
    window = eligible_window(start.date(), rules)
    if window is None:
        return False
    return window[0] <= start and end <= window[1]


def describe_rules(rules: SchedulingRules, preferences: Optional[Preferences] = None) -> str:
    """Natural-language rendering of the policy for the generative prompt."""
    meal = preferences.meal_break_minutes if preferences else rules.meal_break_minutes
    play = preferences.play_break_minutes if preferences else rules.play_break_minutes
    bands = ", ".join(f"{h:02d}:00" for h in rules.saturday_bands)
    return (
        "SCHEDULING RULES:\n"
        f"1. Weekdays (Monday-Friday): study slots ONLY between {rules.weekday_start_hour:02d}:00 "
        f"and {rules.weekday_end_hour:02d}:00. Every slot must end by {rules.weekday_end_hour:02d}:00.\n"
        "2. ALL Sundays are leave days: no study slots.\n"
        "3. Saturdays alternate by week-of-month parity = ceil(day_of_month / 7) mod 2. "
        "Odd-parity Saturdays (1st, 3rd, 5th week) are leave days: no study slots.\n"
        f"4. Even-parity Saturdays are open from {rules.saturday_start_hour:02d}:00 to "
        f"{rules.saturday_end_hour:02d}:00; prefer sessions starting around {bands}.\n"
        f"5. Leave a {meal}-minute meal break on weekday evenings and a {play}-minute play "
        "break on open Saturdays.\n"
        "6. Never overlap a class, an exam or another study slot.\n"
        "7. Exams soon are the highest priority (exam weight 0.8, assignment weight 0.5).\n"
    )
