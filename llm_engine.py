import json
import logging
import re
from datetime import datetime, timedelta
from typing import Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from config import Settings
from errors import LLMProviderError, PrimaryPathError
from llm_providers import TextCompletionProvider
from models import GenerationContext, ScheduleResult, StudySlot, subject_from_title
from priority import score_exam, score_task
from schedule_fixer import enforce_schedule_rules
from time_policy import DAY_NAMES, describe_rules

logger = logging.getLogger(__name__)

SLOT_LIST_KEYS = ("studySlots", "study_slots", "slots")
TRUNCATION_MARKER = "\n...[context truncated to fit the input limit]\n"


# ── Candidate slot (what the LLM is asked to return) ─────────────────

class CandidateSlot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(..., min_length=1)
    start_time: datetime = Field(..., validation_alias=AliasChoices("startTime", "start_time"))
    end_time: Optional[datetime] = Field(None, validation_alias=AliasChoices("endTime", "end_time"))
    duration: Optional[int] = Field(None, validation_alias=AliasChoices("duration", "durationMinutes", "duration_minutes"))
    priority: int = 3
    notes: str = ""
    task_id: Optional[str] = Field(None, validation_alias=AliasChoices("taskId", "task_id"))

    @field_validator("priority", mode="before")
    @classmethod
    def _clamp_priority(cls, value: Any) -> int:
        try:
            return max(1, min(5, int(value)))
        except (TypeError, ValueError):
            return 3

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def to_study_slot(self, owner_id: str, source: str, known_task_ids: set) -> StudySlot:
        # wall-clock times: any offset the service attaches is dropped, not converted
        start = self.start_time.replace(tzinfo=None, second=0, microsecond=0)
        if self.end_time is not None:
            end = self.end_time.replace(tzinfo=None, second=0, microsecond=0)
        elif self.duration:
            end = start + timedelta(minutes=self.duration)
        else:
            raise ValueError(f"slot {self.title!r} has neither endTime nor duration")
        minutes = int((end - start).total_seconds() // 60)
        if minutes <= 0:
            raise ValueError(f"slot {self.title!r} ends before it starts")
        return StudySlot(
            owner_id=owner_id,
            related_task_id=self.task_id if self.task_id in known_task_ids else None,
            title=self.title.strip(),
            start_time=start,
            end_time=end,
            duration_minutes=minutes,
            priority=self.priority,
            notes=self.notes,
            source=source,
            subject=subject_from_title(self.title),
        )


# ── Parse result (tagged union) ──────────────────────────────────────

class ParsedSlots(BaseModel):
    ok: Literal[True] = True
    slots: List[CandidateSlot]
    dropped: int = 0


class ParseFailure(BaseModel):
    ok: Literal[False] = False
    reason: str


SlotParseResult = Union[ParsedSlots, ParseFailure]


def _close_truncated_json(raw: str) -> str:
    """
    Close JSON that the token limit cut off mid-stream.

    Cuts back to the last complete member (just after a closed object or
    array, or just before a separating comma) and closes every container
    still open at that point. Text that is already balanced is returned as is.
    """
    open_closers: List[str] = []
    cut, cut_closers = 0, []
    in_string = escaped = False

    for i, ch in enumerate(raw):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "[{":
            open_closers.append("]" if ch == "[" else "}")
        elif ch in "]}" and open_closers and open_closers[-1] == ch:
            open_closers.pop()
            cut, cut_closers = i + 1, list(open_closers)
        elif ch == "," and open_closers:
            cut, cut_closers = i, list(open_closers)

    if not open_closers and not in_string:
        return raw
    return raw[:cut] + "".join(reversed(cut_closers))


def _slot_items(payload: Any) -> Optional[list]:
    """The list of slot dicts inside a decoded payload, if it has one."""
    if isinstance(payload, list):
        return payload if any(isinstance(i, dict) for i in payload) else None
    if isinstance(payload, dict):
        for key in SLOT_LIST_KEYS:
            items = payload.get(key)
            if isinstance(items, list):
                return items
    return None


def _find_slot_payload(text: str) -> Optional[list]:
    """First well-formed JSON array/object in `text` that carries slot items."""
    try:
        items = _slot_items(json.loads(text))
        if items is not None:
            return items
    except ValueError:
        pass

    decoder = json.JSONDecoder()
    for match in re.finditer(r"[\[{]", text):
        try:
            payload, _ = decoder.raw_decode(text, match.start())
        except ValueError:
            continue
        items = _slot_items(payload)
        if items is not None:
            return items

    # output cut off by the token limit: close what was opened and retry once
    first = re.search(r"[\[{]", text)
    if first:
        try:
            return _slot_items(json.loads(_close_truncated_json(text[first.start():])))
        except ValueError:
            return None
    return None


def parse_slot_response(text: Optional[str]) -> SlotParseResult:
    """
    Turn whatever the generative service returned into candidate slots.

    Accepts a bare JSON array, an object with a studySlots/study_slots/slots
    array, either of those wrapped in prose or a ``` fence, and output that was
    truncated mid-array. Items missing title/startTime/(endTime|duration) are
    dropped; if none survive the result is a ParseFailure.
    """
    if not text or not text.strip():
        return ParseFailure(reason="empty response")

    cleaned = re.sub(r"```(?:json)?", "", text).strip()
    items = _find_slot_payload(cleaned)
    if items is None:
        return ParseFailure(reason="no JSON slot array found in response")
    if not items:
        return ParseFailure(reason="response contained an empty slot array")

    slots: List[CandidateSlot] = []
    dropped = 0
    for item in items:
        if not isinstance(item, dict):
            dropped += 1
            continue
        try:
            candidate = CandidateSlot.model_validate(item)
        except ValidationError:
            dropped += 1
            continue
        if candidate.end_time is None and not candidate.duration:
            dropped += 1
            continue
        slots.append(candidate)

    if not slots:
        return ParseFailure(reason=f"all {len(items)} slot entries were malformed")
    return ParsedSlots(slots=slots, dropped=dropped)


# ── Primary path ─────────────────────────────────────────────────────

class LLMScheduler:
    def __init__(self, provider: TextCompletionProvider, settings: Settings):
        self.provider = provider
        self.settings = settings

    def build_prompt(self, context: GenerationContext) -> str:
        today = context.now.date()
        header = (
            "You are an AI academic planner assistant. Generate a personalized study schedule "
            "for a student based on the following information.\n"
            f"Today is {DAY_NAMES[today.weekday()]} {today.isoformat()} "
            f"(current time {context.now.strftime('%H:%M')}). "
            f"Plan the next {context.days} days.\n\n"
        )

        tasks = [{**t.model_dump(mode="json"), "priority_score": score_task(t, context.now)} for t in context.tasks]
        exams = [{**e.model_dump(mode="json"), "priority_score": score_exam(e, context.now)} for e in context.exams]
        classes = [c.model_dump(mode="json") for c in context.classes]
        booked = [
            {"title": s.title, "startTime": s.start_time.isoformat(), "endTime": s.end_time.isoformat()}
            for s in context.booked_slots
        ]
        data = (
            f"TASKS:\n{json.dumps(tasks)}\n\n"
            f"CLASSES:\n{json.dumps(classes)}\n\n"
            f"EXAMS:\n{json.dumps(exams)}\n\n"
            f"ALREADY BOOKED STUDY SLOTS:\n{json.dumps(booked)}\n\n"
            f"PREFERENCES:\n{context.preferences.model_dump_json()}\n\n"
        )

        rules = describe_rules(self.settings.rules, context.preferences)

        instructions = """
For each study slot provide: title (e.g. "Study Physics: Chapter 5 Problems"),
startTime (ISO-8601 local time, no timezone), endTime (ISO-8601) or duration (minutes, integer),
priority (1-5, 5 highest; follow the priority_score of the task or exam a slot serves),
notes (optional) and taskId (when the slot serves a listed task).

Return ONLY a JSON array of study slot objects. Do not include any explanatory text
before or after the JSON. Return at least 5 slots when classes are provided.
"""

        budget = self.settings.llm.max_prompt_chars - len(header) - len(rules) - len(instructions)
        if len(data) > budget:
            logger.warning(f"Prompt context is {len(data)} chars; truncating to {max(budget, 0)}")
            data = data[:max(budget - len(TRUNCATION_MARKER), 0)] + TRUNCATION_MARKER

        return header + data + rules + instructions

    def generate(self, context: GenerationContext) -> ScheduleResult:
        """Raises PrimaryPathError whenever the result cannot be used as-is."""
        prompt = self.build_prompt(context)
        logger.info(f"Calling {self.provider.name} with prompt length {len(prompt)}")

        try:
            raw = self.provider.complete(
                prompt,
                max_tokens=self.settings.llm.max_tokens,
                temperature=self.settings.llm.temperature,
            )
        except LLMProviderError as exc:
            raise PrimaryPathError(str(exc)) from exc

        parsed = parse_slot_response(raw)
        if not parsed.ok:
            raise PrimaryPathError(f"unusable {self.provider.name} response: {parsed.reason}")

        known_task_ids = {t.id for t in context.tasks}
        slots: List[StudySlot] = []
        for candidate in parsed.slots:
            try:
                slots.append(candidate.to_study_slot(context.owner_id, self.provider.name, known_task_ids))
            except ValueError as exc:
                logger.debug(f"Dropping candidate: {exc}")

        accepted, _ = enforce_schedule_rules(
            slots,
            classes=context.classes,
            exams=context.exams,
            booked=context.booked_slots,
            rules=self.settings.rules,
            now=context.now,
        )
        if not accepted:
            raise PrimaryPathError(
                f"none of the {len(parsed.slots)} slots from {self.provider.name} satisfied the scheduling rules"
            )

        return ScheduleResult(
            source=self.provider.name,
            study_slots=accepted,
            message=f"Generated by {self.provider.name}",
        )
