from datetime import date, datetime

from availability import AvailabilityFinder, busy_blocks_for_date, exam_interval, find_available_blocks, merge_intervals
from models import ClassSession, Exam, StudySlot
from planner_store import PlannerStore
from slot_store import SlotStore

TUESDAY = date(2026, 10, 20)


def _slot(start: datetime, minutes: int = 60, title: str = "Study Physics: Review") -> StudySlot:
    return StudySlot.timed(start, minutes, owner_id="u1", title=title)


def test_empty_day_is_the_whole_window(rules):
    blocks = find_available_blocks(TUESDAY, [], [], [], rules)
    assert [(b.start, b.end) for b in blocks] == [(datetime(2026, 10, 20, 18), datetime(2026, 10, 20, 22))]


def test_blackout_day_has_no_blocks(rules):
    assert find_available_blocks(date(2026, 10, 25), [], [], [], rules) == []
    assert find_available_blocks(date(2026, 10, 17), [], [], [], rules) == []


def test_busy_blocks_are_cut_out(rules):
    evening_class = ClassSession(subject="Maths", day_of_week="Tuesday", start_time="19:00", end_time="20:00")
    booked = [_slot(datetime(2026, 10, 20, 21, 0))]
    blocks = find_available_blocks(TUESDAY, [evening_class], [], booked, rules)
    assert [(b.start.hour, b.end.hour) for b in blocks] == [(18, 19), (20, 21)]
    for block in blocks:
        assert block.minutes >= rules.min_block_minutes


def test_short_gaps_are_dropped(rules):
    booked = [_slot(datetime(2026, 10, 20, 18, 20), 200)]
    # 18:00-18:20 and 21:40-22:00 are both under 30 minutes
    assert find_available_blocks(TUESDAY, [], [], booked, rules) == []


def test_not_before_trims_and_rounds_to_quarter_hour(rules):
    blocks = find_available_blocks(TUESDAY, [], [], [], rules, not_before=datetime(2026, 10, 20, 19, 7))
    assert blocks[0].start == datetime(2026, 10, 20, 19, 15)


def test_exam_without_end_uses_duration_and_without_start_blocks_day():
    timed = Exam(subject="Chemistry", date=TUESDAY, start_time="18:30", duration_minutes=60)
    assert exam_interval(timed) == (datetime(2026, 10, 20, 18, 30), datetime(2026, 10, 20, 19, 30))
    untimed = Exam(subject="Chemistry", date=TUESDAY)
    start, end = exam_interval(untimed)
    assert (end - start).days == 1


def test_unreadable_class_times_are_ignored(rules):
    broken = ClassSession(subject="Art", day_of_week="Tuesday", start_time="evening", end_time="late")
    assert busy_blocks_for_date(TUESDAY, [broken], [], []) == []


def test_merge_intervals():
    a = (datetime(2026, 1, 1, 18), datetime(2026, 1, 1, 19))
    b = (datetime(2026, 1, 1, 18, 30), datetime(2026, 1, 1, 20))
    c = (datetime(2026, 1, 1, 21), datetime(2026, 1, 1, 22))
    assert merge_intervals([c, b, a]) == [(a[0], b[1]), c]


def test_finder_reads_from_stores(tmp_path, rules):
    planner = PlannerStore(tmp_path)
    slots = SlotStore(tmp_path)
    planner.add_class("u1", ClassSession(subject="Maths", day_of_week="Tuesday", start_time="18:00", end_time="19:00"))
    slots.insert_many([_slot(datetime(2026, 10, 20, 20, 0))])

    blocks = AvailabilityFinder(planner, slots, rules).for_date("u1", TUESDAY)
    assert [(b.start.hour, b.end.hour) for b in blocks] == [(19, 20), (21, 22)]
