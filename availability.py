"""
availability.py
---------------
Free-time finder: the eligible study window of a date minus every fixed
commitment (classes, exams) and every study slot already booked on it.

Pure interval arithmetic; AvailabilityFinder only resolves store data
before handing it to find_available_blocks.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from config import SchedulingRules
from models import AvailabilityBlock, ClassSession, Exam, StudySlot
from time_policy import eligible_window, parse_hhmm, weekday_index

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


# ── interval helpers ──────────────────────────────────────────────────────────

def overlaps(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    return s1 < e2 and s2 < e1


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _ceil_quarter(moment: datetime) -> datetime:
    """Round up to the next quarter hour so proposals start on clean times."""
    base = moment.replace(second=0, microsecond=0)
    if base < moment:
        base += timedelta(minutes=1)
    extra = (-base.minute) % 15
    return base + timedelta(minutes=extra)


# ── busy blocks ───────────────────────────────────────────────────────────────

def class_interval(cls: ClassSession, day: date) -> Optional[Interval]:
    """Project a weekly class onto a concrete date, or None if it does not meet that day."""
    if weekday_index(cls.day_of_week) != day.weekday():
        return None
    try:
        start = datetime.combine(day, parse_hhmm(cls.start_time))
        end = datetime.combine(day, parse_hhmm(cls.end_time))
    except ValueError:
        logger.warning(f"Skipping class {cls.subject!r} with unreadable times {cls.start_time}-{cls.end_time}")
        return None
    if end <= start:
        logger.warning(f"Skipping class {cls.subject!r}: end {cls.end_time} is not after start {cls.start_time}")
        return None
    return start, end


def exam_interval(exam: Exam) -> Optional[Interval]:
    """The exam's sitting on its date. A missing end time is derived from duration_minutes."""
    try:
        start = datetime.combine(exam.date, parse_hhmm(exam.start_time))
    except ValueError:
        # no usable start time: block the whole day rather than risk a clash
        start = datetime.combine(exam.date, time.min)
        return start, start + timedelta(days=1)
    try:
        end = datetime.combine(exam.date, parse_hhmm(exam.end_time))
    except ValueError:
        end = start + timedelta(minutes=exam.duration_minutes or 180)
    if end <= start:
        end = start + timedelta(minutes=exam.duration_minutes or 180)
    return start, end


def busy_blocks_for_date(
    day: date,
    classes: Iterable[ClassSession],
    exams: Iterable[Exam],
    booked: Iterable[StudySlot],
) -> List[Interval]:
    """Sorted, merged busy intervals touching `day`."""
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    busy: List[Interval] = []

    for cls in classes:
        interval = class_interval(cls, day)
        if interval:
            busy.append(interval)

    for exam in exams:
        if exam.date != day:
            continue
        interval = exam_interval(exam)
        if interval:
            busy.append(interval)

    for slot in booked:
        if overlaps(slot.start_time, slot.end_time, day_start, day_end):
            busy.append((slot.start_time, slot.end_time))

    return merge_intervals(busy)


# ── main public function ──────────────────────────────────────────────────────

def find_available_blocks(
    day: date,
    classes: Iterable[ClassSession],
    exams: Iterable[Exam],
    booked: Iterable[StudySlot],
    rules: SchedulingRules,
    not_before: Optional[datetime] = None,
) -> List[AvailabilityBlock]:
    """
    Free blocks inside the day's eligible window, earliest first.

    Every returned block is at least rules.min_block_minutes long, lies inside
    the window and overlaps no busy block. Blacked-out days return [].
    """
    window = eligible_window(day, rules)
    if window is None:
        return []

    cursor, window_end = window
    if not_before is not None and not_before > cursor:
        cursor = _ceil_quarter(not_before)

    free: List[Interval] = []
    for b_start, b_end in busy_blocks_for_date(day, classes, exams, booked):
        if b_end <= cursor:
            continue
        if b_start >= window_end:
            break
        if b_start > cursor:
            free.append((cursor, b_start))
        cursor = max(cursor, b_end)
    if cursor < window_end:
        free.append((cursor, window_end))

    min_span = timedelta(minutes=rules.min_block_minutes)
    return [AvailabilityBlock(start=s, end=e) for s, e in free if e - s >= min_span]


class AvailabilityFinder:
    """Resolves an owner's commitments from the stores and computes free blocks."""

    def __init__(self, planner_store, slot_store, rules: SchedulingRules):
        self.planner_store = planner_store
        self.slot_store = slot_store
        self.rules = rules

    def for_date(self, owner_id: str, day: date, not_before: Optional[datetime] = None) -> List[AvailabilityBlock]:
        classes = [
            c for c in self.planner_store.list_classes(owner_id)
            if weekday_index(c.day_of_week) == day.weekday()
        ]
        exams = [e for e in self.planner_store.list_exams(owner_id) if e.date == day]
        booked = [s for s in self.slot_store.find_by_owner(owner_id) if s.start_time.date() == day]
        return find_available_blocks(day, classes, exams, booked, self.rules, not_before=not_before)
