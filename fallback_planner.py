"""
fallback_planner.py
-------------------
Deterministic, rule-based study planner used whenever the generative path is
unavailable or returns nothing usable. It must satisfy every scheduling rule on
its own, so every slot is placed through the availability finder.

Passes, in order:
  1. tasks    - nearest 10 by due date, spread over the next 7 days
  2. exams    - 1-3 prep sessions for exams due within 14 days
  3. classes  - review + practice per class occurrence for two weeks,
                a weekly review for weeks 3-4 when fewer than 5 slots exist

The same inputs always produce the same slots: hour choices come from a
stable hash of (item id, day offset), never from a random source.
"""

import hashlib
import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Set

from availability import find_available_blocks
from config import SchedulingRules
from models import ClassSession, GenerationContext, StudySlot
from priority import score_task
from time_policy import (
    SATURDAY,
    candidate_start_hours,
    eligible_window,
    is_blackout,
    parse_hhmm,
    weekday_index,
)

logger = logging.getLogger(__name__)

SOURCE = "rule-based"

MAX_TASKS = 10
TASK_SPREAD_DAYS = 7
EXAM_HORIZON_DAYS = 14
EXAM_SESSION_MINUTES = 90
EXAM_PRIORITY = 5
CLASS_WEEKS = 2
EXTENDED_WEEKS = (2, 3)
MIN_TOTAL_SLOTS = 5


def _stable_index(key: str, size: int) -> int:
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return int(digest, 16) % size


def usable_classes(classes: List[ClassSession]) -> List[ClassSession]:
    """Classes with a known weekday and readable times; the rest are logged and skipped."""
    usable = []
    for cls in classes:
        if weekday_index(cls.day_of_week) is None:
            logger.warning(f"Skipping class {cls.subject!r} ({cls.id}): invalid day of week {cls.day_of_week!r}")
            continue
        try:
            if parse_hhmm(cls.end_time) <= parse_hhmm(cls.start_time):
                raise ValueError("end before start")
        except ValueError:
            logger.warning(
                f"Skipping class {cls.subject!r} ({cls.id}): invalid times {cls.start_time!r}-{cls.end_time!r}"
            )
            continue
        usable.append(cls)
    return usable


class _PlanBook:
    """Slots placed so far in one planning run, plus the commitments they must avoid."""

    def __init__(self, context: GenerationContext, classes: List[ClassSession], rules: SchedulingRules):
        self.context = context
        self.classes = classes
        self.rules = rules
        self.slots: List[StudySlot] = []
        self.keys: Set[tuple] = {s.dedup_key for s in context.booked_slots}

    def place(self, day: date, preferred_hour: int, minutes: int) -> Optional[datetime]:
        """
        Start time for a `minutes`-long session on `day`: the preferred hour if
        free, else the first free block after it, else the first earlier one.
        """
        blocks = find_available_blocks(
            day,
            self.classes,
            self.context.exams,
            self.context.booked_slots + self.slots,
            self.rules,
            not_before=self.context.now,
        )
        need = timedelta(minutes=minutes)
        preferred = datetime.combine(day, time(preferred_hour))

        for block in blocks:
            if block.start <= preferred and preferred + need <= block.end:
                return preferred
        for block in blocks:
            if block.start >= preferred and block.start + need <= block.end:
                return block.start
        for block in blocks:
            if block.start + need <= block.end:
                return block.start
        return None

    def add(self, slot: StudySlot) -> bool:
        if slot.dedup_key in self.keys:
            logger.debug(f"Skipping duplicate slot: {slot.title} @ {slot.start_time}")
            return False
        self.keys.add(slot.dedup_key)
        self.slots.append(slot)
        return True


class FallbackPlanner:
    def __init__(self, rules: SchedulingRules):
        self.rules = rules

    def plan(self, context: GenerationContext) -> List[StudySlot]:
        classes = usable_classes(context.classes)
        book = _PlanBook(context, classes, self.rules)

        logger.info(
            f"Rule-based planning for {context.owner_id}: {len(context.tasks)} tasks, "
            f"{len(context.exams)} exams, {len(classes)}/{len(context.classes)} usable classes"
        )

        self._plan_tasks(context, book)
        self._plan_exams(context, book)
        self._plan_classes(context, classes, book)

        if not book.slots:
            logger.info("No study slots created from real data; not adding a placeholder session")

        return sorted(book.slots, key=lambda s: s.start_time)

    # ── pass 1: tasks ────────────────────────────────────────────────

    def _plan_tasks(self, context: GenerationContext, book: _PlanBook) -> None:
        today = context.now.date()
        minutes = context.preferences.preferred_duration
        pending = sorted((t for t in context.tasks if not t.completed), key=lambda t: t.due_date)

        for i, task in enumerate(pending[:MAX_TASKS]):
            offset = i % TASK_SPREAD_DAYS
            day = today + timedelta(days=offset)
            hours = candidate_start_hours(day, self.rules)
            if not hours:
                continue
            hour = hours[_stable_index(f"{task.id}:{offset}", len(hours))]

            start = book.place(day, hour, minutes)
            if start is None:
                logger.debug(f"No room for task {task.title!r} on {day}")
                continue

            book.add(StudySlot.timed(
                start,
                minutes,
                owner_id=context.owner_id,
                related_task_id=task.id,
                title=f"Study {task.subject}: {task.title}",
                priority=score_task(task, context.now),
                notes="Generated by fallback system based on your task",
                source=SOURCE,
                subject=task.subject,
            ))

    # ── pass 2: exams ────────────────────────────────────────────────

    def _exam_days(self, today: date, until: int) -> List[date]:
        """Valid days before the exam day; distant exams start a few days out, today comes last."""
        lead = 3 if until > 7 else 1
        offsets = list(range(lead, until)) + list(range(0, min(lead, until)))
        days = [today + timedelta(days=o) for o in offsets]
        return [d for d in days if not is_blackout(d)]

    def _plan_exams(self, context: GenerationContext, book: _PlanBook) -> None:
        today = context.now.date()

        for exam in sorted(context.exams, key=lambda e: e.date):
            until = (exam.date - today).days
            if not 0 < until <= EXAM_HORIZON_DAYS:
                continue
            sessions = 3 if until <= 3 else 2 if until <= 7 else 1
            days = self._exam_days(today, until)
            if not days:
                logger.info(f"No valid day left to prepare for the {exam.subject} exam on {exam.date}")
                continue

            placed = 0
            for i in range(sessions):
                for step in range(len(days)):
                    day = days[(i + step) % len(days)]
                    if day.weekday() == SATURDAY:
                        bands = self.rules.exam_saturday_bands
                        hour = bands[_stable_index(f"{exam.id}:{i}", len(bands))]
                    else:
                        hour = self.rules.weekday_start_hour + 1
                    start = book.place(day, hour, EXAM_SESSION_MINUTES)
                    if start is None:
                        continue
                    if book.add(StudySlot.timed(
                        start,
                        EXAM_SESSION_MINUTES,
                        owner_id=context.owner_id,
                        title=f"Prepare for {exam.subject} Exam",
                        priority=EXAM_PRIORITY,
                        notes=f"Exam preparation session ({until} days until exam)",
                        source=SOURCE,
                        subject=exam.subject,
                    )):
                        placed += 1
                        break

            if placed < sessions:
                logger.info(f"Placed {placed}/{sessions} prep sessions for the {exam.subject} exam")

    # ── pass 3: classes ──────────────────────────────────────────────

    def _next_study_day(self, day: date) -> Optional[date]:
        for _ in range(7):
            if not is_blackout(day):
                return day
            day += timedelta(days=1)
        return None

    def _add_class_slot(self, context, book, cls, day, hour, label, priority, notes) -> None:
        minutes = context.preferences.preferred_duration
        start = book.place(day, hour, minutes)
        if start is None:
            logger.debug(f"No room for {cls.subject} {label} on {day}")
            return
        book.add(StudySlot.timed(
            start,
            minutes,
            owner_id=context.owner_id,
            title=f"Study {cls.subject}: {label}",
            priority=priority,
            notes=notes,
            source=SOURCE,
            subject=cls.subject,
        ))

    def _plan_classes(self, context: GenerationContext, classes: List[ClassSession], book: _PlanBook) -> None:
        if not classes:
            return
        today = context.now.date()

        for week in range(CLASS_WEEKS):
            for cls in classes:
                day = today + timedelta(days=(weekday_index(cls.day_of_week) - today.weekday()) % 7 + 7 * week)
                window = eligible_window(day, self.rules)
                if window is None:
                    continue

                self._add_class_slot(
                    context, book, cls, day, window[0].hour,
                    "Review Today's Material", 3,
                    f"Review material from today's {cls.subject} class",
                )

                practice_day = self._next_study_day(day + timedelta(days=2))
                if practice_day is None:
                    continue
                practice_hour = 14 if practice_day.weekday() == SATURDAY else self.rules.weekday_start_hour + 1
                self._add_class_slot(
                    context, book, cls, practice_day, practice_hour,
                    "Practice Problems", 2,
                    f"Practice problems and homework for {cls.subject}",
                )

        if len(book.slots) >= MIN_TOTAL_SLOTS:
            return

        logger.info("Not enough study slots, adding weekly reviews for weeks 3-4")
        for week in EXTENDED_WEEKS:
            for cls in classes:
                day = today + timedelta(days=(weekday_index(cls.day_of_week) - today.weekday()) % 7 + 7 * week)
                if is_blackout(day):
                    continue
                hour = 16 if day.weekday() == SATURDAY else self.rules.weekday_start_hour + 2
                self._add_class_slot(
                    context, book, cls, day, hour,
                    "Weekly Review", 2,
                    f"Weekly review session for {cls.subject}",
                )
