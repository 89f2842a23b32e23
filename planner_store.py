import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from errors import StoreError
from models import ClassSession, Exam, Preferences, Task
from slot_store import OwnerLocks, atomic_write_json, safe_user_id

logger = logging.getLogger(__name__)


class UserPlannerData(BaseModel):
    user_id: str
    classes: List[ClassSession] = []
    tasks: List[Task] = []
    exams: List[Exam] = []
    preferences: Optional[Preferences] = None


class PlannerStore:
    """
    Per-user classes, tasks, exams and preferences in a JSON file.
    The scheduling core only reads from it.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._lock = OwnerLocks()

    def _path(self, user_id: str) -> Path:
        return self.data_dir / f"planner_{safe_user_id(user_id)}.json"

    def _load(self, user_id: str) -> UserPlannerData:
        path = self._path(user_id)
        if not path.exists():
            return UserPlannerData(user_id=user_id)
        try:
            with open(path, "r") as f:
                return UserPlannerData.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as exc:
            logger.error(f"Could not read {path}: {exc}")
            raise StoreError(f"Planner data for {user_id} could not be loaded") from exc

    def _save(self, data: UserPlannerData) -> None:
        try:
            atomic_write_json(self._path(data.user_id), data.model_dump(mode="json"))
        except OSError as exc:
            logger.error(f"Could not write planner data for {data.user_id}: {exc}")
            raise StoreError(f"Planner data for {data.user_id} could not be saved") from exc

    # ── reads ────────────────────────────────────────────────────────

    def list_classes(self, user_id: str) -> List[ClassSession]:
        return list(self._load(user_id).classes)

    def list_tasks(self, user_id: str, include_completed: bool = False) -> List[Task]:
        tasks = self._load(user_id).tasks
        return [t for t in tasks if include_completed or not t.completed]

    def list_exams(self, user_id: str) -> List[Exam]:
        return list(self._load(user_id).exams)

    def get_preferences(self, user_id: str) -> Preferences:
        """Stored preferences, or the documented defaults (60 minutes, evenings)."""
        return self._load(user_id).preferences or Preferences()

    # ── writes (used by the collaborator endpoints) ──────────────────

    def add_class(self, user_id: str, cls: ClassSession) -> ClassSession:
        with self._lock(user_id):
            data = self._load(user_id)
            data.classes.append(cls)
            self._save(data)
        return cls

    def add_task(self, user_id: str, task: Task) -> Task:
        with self._lock(user_id):
            data = self._load(user_id)
            data.tasks.append(task)
            self._save(data)
        return task

    def add_exam(self, user_id: str, exam: Exam) -> Exam:
        with self._lock(user_id):
            data = self._load(user_id)
            data.exams.append(exam)
            self._save(data)
        return exam

    def save_preferences(self, user_id: str, preferences: Preferences) -> Preferences:
        with self._lock(user_id):
            data = self._load(user_id)
            data.preferences = preferences
            self._save(data)
        return preferences
