from datetime import date, datetime, timedelta

from availability import busy_blocks_for_date, overlaps
from fallback_planner import FallbackPlanner
from models import ClassSession, Exam, GenerationContext, Preferences, StudySlot, Task
from time_policy import fits_window, is_blackout


def _plan(rules, **context):
    context.setdefault("owner_id", "u1")
    return FallbackPlanner(rules).plan(GenerationContext(**context))


def _assert_schedulable(slots, rules, context):
    for slot in slots:
        assert not is_blackout(slot.start_time.date()), slot
        assert fits_window(slot.start_time, slot.end_time, rules), slot
        assert slot.start_time >= context["now"], slot
        busy = busy_blocks_for_date(slot.start_time.date(), context.get("classes", []), context.get("exams", []),
                                    context.get("booked_slots", []))
        assert not any(overlaps(slot.start_time, slot.end_time, s, e) for s, e in busy), slot
    for a, b in zip(slots, slots[1:]):
        assert a.end_time <= b.start_time, (a, b)


def test_single_monday_class(rules, now, physics_class):
    slots = _plan(rules, classes=[physics_class], now=now)

    assert [(s.title, s.start_time) for s in slots] == [
        ("Study Physics: Review Today's Material", datetime(2026, 10, 19, 18, 0)),
        ("Study Physics: Practice Problems", datetime(2026, 10, 21, 19, 0)),
        ("Study Physics: Review Today's Material", datetime(2026, 10, 26, 18, 0)),
        ("Study Physics: Practice Problems", datetime(2026, 10, 28, 19, 0)),
        ("Study Physics: Weekly Review", datetime(2026, 11, 2, 20, 0)),
        ("Study Physics: Weekly Review", datetime(2026, 11, 9, 20, 0)),
    ]
    assert [s.priority for s in slots] == [3, 2, 3, 2, 2, 2]
    assert all(s.duration_minutes == 60 and s.source == "rule-based" for s in slots)
    assert all(s.subject == "Physics" and not s.confirmed for s in slots)


def test_exam_in_two_days_gets_three_sessions_before_it(rules, now, physics_class):
    exam = Exam(subject="Physics", date=date(2026, 10, 21), start_time="09:00", end_time="11:00")
    slots = _plan(rules, classes=[physics_class], exams=[exam], now=now)

    prep = [s for s in slots if s.title == "Prepare for Physics Exam"]
    assert [s.start_time for s in prep] == [
        datetime(2026, 10, 19, 19, 0),
        datetime(2026, 10, 20, 19, 0),
        datetime(2026, 10, 20, 20, 30),
    ]
    assert all(s.duration_minutes == 90 and s.priority == 5 for s in prep)
    assert all(s.start_time.date() < exam.date for s in prep)


def test_exam_session_counts_by_distance(rules, now, physics_class):
    exams = [
        Exam(id="e1", subject="Chemistry", date=date(2026, 10, 24), start_time="09:00", end_time="10:00"),
        Exam(id="e2", subject="Biology", date=date(2026, 10, 30), start_time="09:00", end_time="10:00"),
        Exam(id="e3", subject="History", date=date(2026, 11, 20), start_time="09:00", end_time="10:00"),
    ]
    slots = _plan(rules, classes=[physics_class], exams=exams, now=now)
    counts = {subject: sum(1 for s in slots if s.title == f"Prepare for {subject} Exam")
              for subject in ("Chemistry", "Biology", "History")}
    assert counts == {"Chemistry": 2, "Biology": 1, "History": 0}
    biology = next(s for s in slots if s.title == "Prepare for Biology Exam")
    # distant exams start preparing a few days out
    assert biology.start_time.date() >= now.date() + timedelta(days=3)


def test_tasks_spread_over_the_week_skipping_sunday(rules, now, physics_class):
    tasks = [
        Task(id=f"t{i}", title=f"Worksheet {i}", subject="Maths", due_date=now + timedelta(days=3 + i))
        for i in range(7)
    ]
    slots = _plan(rules, classes=[physics_class], tasks=tasks, now=now)
    task_slots = [s for s in slots if s.related_task_id]

    assert len(task_slots) == 6
    assert {s.related_task_id for s in task_slots} == {f"t{i}" for i in range(6)}
    assert all(s.title.startswith("Study Maths: Worksheet") for s in task_slots)
    by_task = {s.related_task_id: s.start_time.date() for s in task_slots}
    assert by_task["t0"] == now.date()
    assert by_task["t5"] == date(2026, 10, 24)   # even-parity Saturday


def test_completed_tasks_are_ignored(rules, now, physics_class):
    done = Task(title="Old essay", subject="English", due_date=now + timedelta(days=2), completed=True)
    slots = _plan(rules, classes=[physics_class], tasks=[done], now=now)
    assert not any(s.related_task_id == done.id for s in slots)


def test_busy_week_respects_every_rule(rules, now):
    classes = [
        ClassSession(subject="Physics", day_of_week="Monday", start_time="18:00", end_time="19:30"),
        ClassSession(subject="Maths", day_of_week="Wednesday", start_time="19:00", end_time="21:00"),
        ClassSession(subject="Chemistry", day_of_week="Saturday", start_time="10:00", end_time="12:00"),
        ClassSession(subject="Music", day_of_week="Sunday", start_time="10:00", end_time="11:00"),
    ]
    tasks = [Task(title=f"Problem set {i}", subject="Physics", due_date=now + timedelta(days=i + 1)) for i in range(10)]
    exams = [Exam(subject="Maths", date=date(2026, 10, 23), start_time="18:00", end_time="20:00")]
    booked = [StudySlot.timed(datetime(2026, 10, 20, 18, 0), 120, owner_id="u1", title="Study Maths: Group", confirmed=True)]
    context = dict(classes=classes, tasks=tasks, exams=exams, booked_slots=booked, now=now)

    slots = _plan(rules, **context)
    assert slots
    _assert_schedulable(slots, rules, context)
    keys = [s.dedup_key for s in slots]
    assert len(keys) == len(set(keys))


def test_nothing_lands_in_the_past(rules, physics_class):
    late = datetime(2026, 10, 19, 19, 10)
    slots = _plan(rules, classes=[physics_class], now=late)
    assert slots[0].start_time == datetime(2026, 10, 19, 19, 15)
    assert all(s.start_time >= late for s in slots)


def test_same_input_same_plan(rules, now, physics_class):
    tasks = [Task(id=f"t{i}", title=f"Essay {i}", subject="History", due_date=now + timedelta(days=i + 2)) for i in range(5)]
    exams = [Exam(id="e1", subject="History", date=date(2026, 10, 31))]
    first = _plan(rules, classes=[physics_class], tasks=tasks, exams=exams, now=now)
    second = _plan(rules, classes=[physics_class], tasks=tasks, exams=exams, now=now)
    assert [s.dedup_key for s in first] == [s.dedup_key for s in second]


def test_invalid_classes_are_skipped(rules, now, physics_class):
    broken = [
        ClassSession(subject="Art", day_of_week="Funday", start_time="10:00", end_time="11:00"),
        ClassSession(subject="Drama", day_of_week="Tuesday", start_time="late", end_time="later"),
        ClassSession(subject="Dance", day_of_week="Tuesday", start_time="12:00", end_time="11:00"),
    ]
    assert _plan(rules, classes=broken, now=now) == []
    slots = _plan(rules, classes=broken + [physics_class], now=now)
    assert {s.subject for s in slots} == {"Physics"}


def test_uses_preferred_duration(rules, now, physics_class):
    slots = _plan(rules, classes=[physics_class], preferences=Preferences(preferred_duration=45), now=now)
    assert all(s.duration_minutes == 45 for s in slots)
