from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def _new_id() -> str:
    return uuid4().hex


def subject_from_title(title: str) -> Optional[str]:
    """'Study Physics: Practice Problems' -> 'Physics'; 'Prepare for Physics Exam' -> 'Physics'."""
    title = (title or "").strip()
    if title.startswith("Study ") and ":" in title:
        return title[len("Study "):title.index(":")].strip() or None
    if title.startswith("Prepare for ") and title.endswith(" Exam"):
        return title[len("Prepare for "):-len(" Exam")].strip() or None
    return None


# ── Collaborator records (read-only to the scheduling core) ──────────

class Task(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    subject: str
    description: str = ""
    due_date: datetime
    priority: str = Field("Medium", description="High | Medium | Low")
    duration_minutes: int = 0
    completed: bool = False

    @field_validator("due_date")
    @classmethod
    def _wall_clock_due_date(cls, value: datetime) -> datetime:
        # "2026-10-23T23:59:00Z" is read as 23:59 local, never converted
        return value.replace(tzinfo=None)


class ClassSession(BaseModel):
    """A weekly class. Day and times stay optional so bad records can be skipped later."""
    id: str = Field(default_factory=_new_id)
    subject: str
    day_of_week: Optional[str] = None     # "Monday" .. "Sunday"
    start_time: Optional[str] = None      # "14:00"
    end_time: Optional[str] = None        # "15:30"
    repeats_weekly: bool = True
    location: str = ""


class Exam(BaseModel):
    id: str = Field(default_factory=_new_id)
    subject: str
    date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    location: str = ""


class Preferences(BaseModel):
    preferred_duration: int = Field(60, ge=15, le=180)
    preferred_times: List[str] = Field(default_factory=lambda: ["evening"])
    meal_break_minutes: int = 60
    play_break_minutes: int = 60
    preferred_environment: str = "quiet"
    learning_style: str = "unknown"


# ── Study slots ──────────────────────────────────────────────────────

class SlotOrigin(str, Enum):
    AI_GENERATED = "ai-generated"
    MANUAL = "manual"


class StudySlot(BaseModel):
    id: str = Field(default_factory=_new_id)
    owner_id: str
    related_task_id: Optional[str] = None
    title: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    origin: SlotOrigin = SlotOrigin.AI_GENERATED
    confirmed: bool = False
    completed: bool = False
    priority: int = Field(3, ge=1, le=5)
    notes: str = ""
    source: str = "rule-based"
    subject: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _check_times(self) -> "StudySlot":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        span = int((self.end_time - self.start_time).total_seconds() // 60)
        if span != self.duration_minutes:
            raise ValueError(
                f"duration_minutes={self.duration_minutes} does not match the "
                f"{span} minutes between start_time and end_time"
            )
        return self

    @classmethod
    def timed(cls, start_time: datetime, duration_minutes: int, **fields) -> "StudySlot":
        """Build a slot from a start and a length, deriving end_time."""
        return cls(
            start_time=start_time,
            end_time=start_time + timedelta(minutes=duration_minutes),
            duration_minutes=duration_minutes,
            **fields,
        )

    @property
    def dedup_key(self) -> Tuple[str, datetime, int]:
        return (self.title, self.start_time, self.duration_minutes)


class AvailabilityBlock(BaseModel):
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


# ── Generation pipeline ──────────────────────────────────────────────

class GenerationContext(BaseModel):
    """Everything a generator path needs for one request."""
    owner_id: str
    tasks: List[Task] = Field(default_factory=list)
    classes: List[ClassSession] = Field(default_factory=list)
    exams: List[Exam] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    days: int = 30
    booked_slots: List[StudySlot] = Field(default_factory=list)  # confirmed slots kept across regeneration
    now: datetime = Field(default_factory=datetime.now)


class ScheduleResult(BaseModel):
    source: str
    study_slots: List[StudySlot]
    message: str = ""


# ── API request / response envelopes ─────────────────────────────────

class GenerateScheduleRequest(BaseModel):
    user_id: str
    days: int = Field(30, ge=1, le=60)
    include_tasks: bool = True
    include_exams: bool = True


class GenerateScheduleResponse(BaseModel):
    success: bool = True
    message: str = "Smart schedule generated successfully"
    source: str
    count: int
    study_slots: List[StudySlot]


class CustomSlotIn(BaseModel):
    user_id: str
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    related_task_id: Optional[str] = None
    priority: int = Field(3, ge=1, le=5)
    notes: str = ""

    @model_validator(mode="after")
    def _needs_end_or_duration(self) -> "CustomSlotIn":
        if self.end_time is None and self.duration_minutes is None:
            raise ValueError("either end_time or duration_minutes is required")
        if self.end_time is not None and self.end_time.replace(tzinfo=None) <= self.start_time.replace(tzinfo=None):
            raise ValueError("end_time must be after start_time")
        return self


class SlotActionResponse(BaseModel):
    message: str
    study_slot: Optional[StudySlot] = None
