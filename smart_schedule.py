import logging
from datetime import date, datetime
from typing import List, Optional

from availability import AvailabilityFinder
from config import Settings
from errors import NoClassesError
from fallback_planner import FallbackPlanner
from llm_engine import LLMScheduler
from llm_providers import TextCompletionProvider, build_provider
from models import (
    AvailabilityBlock,
    CustomSlotIn,
    GenerateScheduleRequest,
    GenerateScheduleResponse,
    GenerationContext,
    SlotOrigin,
    StudySlot,
)
from planner_store import PlannerStore
from slot_generator import SlotGenerator
from slot_lifecycle import SlotEventBus, SlotLifecycle
from slot_store import OwnerLocks, SlotStore

logger = logging.getLogger(__name__)


class ScheduleService:
    """
    Request-level orchestration: read the owner's data, generate, replace the
    unconfirmed suggestions, and run slot transitions.

    Generation for one owner is serialised by a per-owner lock; owners never
    wait on each other.
    """

    def __init__(
        self,
        settings: Settings,
        planner_store: PlannerStore,
        slot_store: SlotStore,
        generator: SlotGenerator,
        events: Optional[SlotEventBus] = None,
    ):
        self.settings = settings
        self.planner_store = planner_store
        self.slot_store = slot_store
        self.generator = generator
        self.events = events or SlotEventBus()
        self.lifecycle = SlotLifecycle(slot_store, self.events, task_subject=self._task_subject)
        self.availability = AvailabilityFinder(planner_store, slot_store, settings.rules)
        self._generation_lock = OwnerLocks()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: Optional[TextCompletionProvider] = None,
        use_configured_provider: bool = True,
    ) -> "ScheduleService":
        if provider is None and use_configured_provider:
            provider = build_provider(settings.llm)
        primary = LLMScheduler(provider, settings) if provider is not None else None
        return cls(
            settings=settings,
            planner_store=PlannerStore(settings.data_dir),
            slot_store=SlotStore(settings.data_dir),
            generator=SlotGenerator(primary, FallbackPlanner(settings.rules)),
        )

    def _task_subject(self, owner_id: str, task_id: str) -> Optional[str]:
        for task in self.planner_store.list_tasks(owner_id, include_completed=True):
            if task.id == task_id:
                return task.subject
        return None

    # ── generation ───────────────────────────────────────────────────

    def generate(self, request: GenerateScheduleRequest, now: Optional[datetime] = None) -> GenerateScheduleResponse:
        owner_id = request.user_id
        with self._generation_lock(owner_id):
            classes = self.planner_store.list_classes(owner_id)
            if not classes:
                raise NoClassesError()

            context = GenerationContext(
                owner_id=owner_id,
                classes=classes,
                tasks=self.planner_store.list_tasks(owner_id) if request.include_tasks else [],
                exams=self.planner_store.list_exams(owner_id) if request.include_exams else [],
                preferences=self.planner_store.get_preferences(owner_id),
                days=request.days,
                booked_slots=self.slot_store.find_by_owner(owner_id, confirmed=True),
                now=now or datetime.now(),
            )
            logger.info(
                f"🎬 Generating smart schedule for {owner_id}: {len(context.classes)} classes, "
                f"{len(context.tasks)} tasks, {len(context.exams)} exams, {request.days} days"
            )

            result = self.generator.generate(context)
            stored = self.slot_store.replace_unconfirmed(owner_id, result.study_slots)

        return GenerateScheduleResponse(
            message="Smart schedule generated successfully" if stored else result.message,
            source=result.source,
            count=len(stored),
            study_slots=stored,
        )

    # ── queries ──────────────────────────────────────────────────────

    def suggestions(self, owner_id: str) -> List[StudySlot]:
        return self.slot_store.find_by_owner(owner_id, confirmed=False, origin=SlotOrigin.AI_GENERATED)

    def confirmed(self, owner_id: str) -> List[StudySlot]:
        return self.slot_store.find_by_owner(owner_id, confirmed=True)

    def available_blocks(self, owner_id: str, day: date) -> List[AvailabilityBlock]:
        return self.availability.for_date(owner_id, day)

    # ── transitions ──────────────────────────────────────────────────

    def confirm(self, owner_id: str, slot_id: str) -> StudySlot:
        return self.lifecycle.confirm(owner_id, slot_id)

    def complete(self, owner_id: str, slot_id: str) -> StudySlot:
        return self.lifecycle.complete(owner_id, slot_id)

    def delete(self, owner_id: str, slot_id: str) -> StudySlot:
        return self.lifecycle.delete(owner_id, slot_id)

    def create_custom(self, request: CustomSlotIn) -> StudySlot:
        return self.lifecycle.create_manual(request)
