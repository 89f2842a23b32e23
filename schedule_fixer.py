"""
schedule_fixer.py
-----------------
Pure-logic post-processing for study slots proposed by the generative path.

Responsibilities:
  1. Drop slots that start in the past.
  2. Drop slots on blacked-out days or outside the day's study window.
  3. Drop slots that collide with a class, an exam, a booked slot or a slot
     accepted earlier in the same pass (classes/exams are immovable anchors).
  4. Drop exact duplicates by (title, start_time, duration_minutes).
  5. Return the survivors in chronological order.

No LLM calls, deterministic logic only.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Set, Tuple

from availability import busy_blocks_for_date, overlaps
from config import SchedulingRules
from models import ClassSession, Exam, StudySlot
from time_policy import fits_window, is_blackout

logger = logging.getLogger(__name__)


def enforce_schedule_rules(
    candidates: Iterable[StudySlot],
    classes: List[ClassSession],
    exams: List[Exam],
    booked: List[StudySlot],
    rules: SchedulingRules,
    now: datetime,
) -> Tuple[List[StudySlot], Counter]:
    """
    Returns (accepted slots sorted by start_time, Counter of rejection reasons).
    Earlier candidates win when two collide.
    """
    accepted: List[StudySlot] = []
    seen: Set[tuple] = {s.dedup_key for s in booked}
    rejected: Counter = Counter()

    for slot in sorted(candidates, key=lambda s: s.start_time):
        if slot.start_time < now:
            rejected["in_past"] += 1
            continue
        if is_blackout(slot.start_time.date()):
            rejected["blackout_day"] += 1
            continue
        if not fits_window(slot.start_time, slot.end_time, rules):
            rejected["outside_window"] += 1
            continue
        if slot.dedup_key in seen:
            rejected["duplicate"] += 1
            continue

        busy = busy_blocks_for_date(slot.start_time.date(), classes, exams, booked + accepted)
        if any(overlaps(slot.start_time, slot.end_time, b_start, b_end) for b_start, b_end in busy):
            rejected["collision"] += 1
            continue

        seen.add(slot.dedup_key)
        accepted.append(slot)

    if rejected:
        logger.info(f"Dropped {sum(rejected.values())} proposed slots: {dict(rejected)}")
    return accepted, rejected
