import logging
from typing import Optional

from errors import NoClassesError, PrimaryPathError
from fallback_planner import SOURCE as RULE_BASED, FallbackPlanner
from llm_engine import LLMScheduler
from models import GenerationContext, ScheduleResult

logger = logging.getLogger(__name__)


class SlotGenerator:
    """
    Two-tier generation: the generative path when one is configured, the
    rule-based planner when it is absent, fails, times out or returns nothing usable.
    """

    def __init__(self, primary: Optional[LLMScheduler], fallback: FallbackPlanner):
        self.primary = primary
        self.fallback = fallback

    def generate(self, context: GenerationContext) -> ScheduleResult:
        if not context.classes:
            raise NoClassesError()

        if self.primary is not None:
            try:
                result = self.primary.generate(context)
                logger.info(f"✅ {result.source} proposed {len(result.study_slots)} usable slots")
                return result
            except PrimaryPathError as exc:
                logger.warning(f"⚠️  Primary schedule generation failed, using rule-based planner: {exc}")

        slots = self.fallback.plan(context)
        if slots:
            message = "Generated using the rule-based planner from your classes, tasks and exams"
        else:
            message = (
                "No study slots could be placed. Check that your classes have a valid day and "
                "start/end times, then try again."
            )
        return ScheduleResult(source=RULE_BASED, study_slots=slots, message=message)
