"""
slot_lifecycle.py
-----------------
Suggested -> Confirmed -> Completed, and Deleted from anywhere.

  * A manual slot is created directly in Confirmed.
  * Confirming and completing are one-way; nothing sets confirmed back to false.
  * Repeating a transition the slot has already made is a no-op (no event).

Every real transition emits a SlotEvent for the analytics collaborator.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Literal, Optional

from pydantic import BaseModel, Field

from errors import InvalidTransitionError
from models import CustomSlotIn, SlotOrigin, StudySlot, subject_from_title
from slot_store import SlotStore

logger = logging.getLogger(__name__)


class SlotState(str, Enum):
    SUGGESTED = "suggested"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"


def state_of(slot: StudySlot) -> SlotState:
    if slot.completed:
        return SlotState.COMPLETED
    if slot.confirmed:
        return SlotState.CONFIRMED
    return SlotState.SUGGESTED


# ── Analytics hook ───────────────────────────────────────────────────

class SlotEvent(BaseModel):
    kind: Literal["slot_confirmed", "slot_completed", "slot_deleted"]
    owner_id: str
    slot_id: str
    subject: Optional[str] = None
    duration_minutes: int
    occurred_at: datetime = Field(default_factory=datetime.now)


SlotListener = Callable[[SlotEvent], None]


class SlotEventBus:
    """In-process fan-out. A failing listener is logged and never fails the transition."""

    def __init__(self):
        self._listeners: List[SlotListener] = []

    def subscribe(self, listener: SlotListener) -> None:
        self._listeners.append(listener)

    def emit(self, event: SlotEvent) -> None:
        logger.info(f"📊 {event.kind} owner={event.owner_id} slot={event.slot_id} subject={event.subject}")
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Slot event listener failed for {event.kind} {event.slot_id}")


# ── State machine ────────────────────────────────────────────────────

class SlotLifecycle:
    def __init__(self, store: SlotStore, events: SlotEventBus, task_subject: Optional[Callable[[str, str], Optional[str]]] = None):
        self.store = store
        self.events = events
        self.task_subject = task_subject   # (owner_id, task_id) -> subject

    def _subject(self, slot: StudySlot) -> Optional[str]:
        if slot.subject:
            return slot.subject
        if slot.related_task_id and self.task_subject:
            subject = self.task_subject(slot.owner_id, slot.related_task_id)
            if subject:
                return subject
        return subject_from_title(slot.title)

    def _emit(self, kind: str, slot: StudySlot) -> None:
        self.events.emit(SlotEvent(
            kind=kind,
            owner_id=slot.owner_id,
            slot_id=slot.id,
            subject=self._subject(slot),
            duration_minutes=slot.duration_minutes,
        ))

    def confirm(self, owner_id: str, slot_id: str) -> StudySlot:
        slot = self.store.get(owner_id, slot_id)
        if slot.confirmed:
            return slot
        slot = self.store.update_by_id(owner_id, slot_id, {"confirmed": True})
        self._emit("slot_confirmed", slot)
        return slot

    def complete(self, owner_id: str, slot_id: str) -> StudySlot:
        slot = self.store.get(owner_id, slot_id)
        if slot.completed:
            return slot
        if not slot.confirmed:
            raise InvalidTransitionError(f"Study slot {slot_id} must be confirmed before it can be completed")
        slot = self.store.update_by_id(owner_id, slot_id, {"completed": True})
        self._emit("slot_completed", slot)
        return slot

    def delete(self, owner_id: str, slot_id: str) -> StudySlot:
        slot = self.store.delete_by_id(owner_id, slot_id)
        self._emit("slot_deleted", slot)
        return slot

    def create_manual(self, request: CustomSlotIn) -> StudySlot:
        start = request.start_time.replace(tzinfo=None)
        if request.end_time is not None:
            end = request.end_time.replace(tzinfo=None)
        else:
            end = start + timedelta(minutes=request.duration_minutes)
        minutes = int((end - start).total_seconds() // 60)

        slot = StudySlot(
            owner_id=request.user_id,
            related_task_id=request.related_task_id,
            title=request.title,
            start_time=start,
            end_time=end,
            duration_minutes=minutes,
            origin=SlotOrigin.MANUAL,
            confirmed=True,
            priority=request.priority,
            notes=request.notes,
            source="manual",
            subject=subject_from_title(request.title),
        )
        self.store.insert_many([slot])
        return slot
