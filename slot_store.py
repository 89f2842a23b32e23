import json
import logging
import os
import re
import tempfile
import threading
import weakref
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ValidationError

from errors import SlotNotFoundError, StoreError
from models import SlotOrigin, StudySlot

logger = logging.getLogger(__name__)


class UserSlots(BaseModel):
    """Everything persisted for one user, one JSON file per user."""
    user_id: str
    slots: List[StudySlot] = []


def safe_user_id(user_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", user_id)


def atomic_write_json(path: Path, payload: Any) -> None:
    """Write to a temp file beside `path`, then swap it in; a failure leaves the old file intact."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(payload, f, indent=2, default=str)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class OwnerLocks:
    """One re-entrant lock per owner; an owner's lock is dropped once nobody holds it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def __call__(self, owner_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[owner_id] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class SlotStore:
    """
    Persistent study-slot store backed by one JSON file per user.

    Every read-modify-write happens under a per-user lock and ends in a single
    atomic file replace. Stored ai-generated slots never share a
    (title, start_time, duration_minutes) triple.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._lock = OwnerLocks()

    # ── persistence ──────────────────────────────────────────────────

    def _path(self, owner_id: str) -> Path:
        return self.data_dir / f"slots_{safe_user_id(owner_id)}.json"

    def _load(self, owner_id: str) -> UserSlots:
        path = self._path(owner_id)
        if not path.exists():
            return UserSlots(user_id=owner_id)
        try:
            with open(path, "r") as f:
                return UserSlots.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as exc:
            logger.error(f"Could not read {path}: {exc}")
            raise StoreError(f"Study slots for {owner_id} could not be loaded") from exc

    def _save(self, data: UserSlots) -> None:
        path = self._path(data.user_id)
        try:
            atomic_write_json(path, data.model_dump(mode="json"))
        except OSError as exc:
            logger.error(f"Could not write {path}: {exc}")
            raise StoreError(f"Study slots for {data.user_id} could not be saved") from exc

    @staticmethod
    def _without_duplicates(stored: Iterable[StudySlot], fresh: Iterable[StudySlot]) -> List[StudySlot]:
        seen = {s.dedup_key for s in stored if s.origin == SlotOrigin.AI_GENERATED}
        kept = []
        for slot in fresh:
            if slot.origin == SlotOrigin.AI_GENERATED:
                if slot.dedup_key in seen:
                    logger.debug(f"Not storing duplicate slot {slot.title} @ {slot.start_time}")
                    continue
                seen.add(slot.dedup_key)
            kept.append(slot)
        return kept

    # ── queries ──────────────────────────────────────────────────────

    def find_by_owner(
        self,
        owner_id: str,
        confirmed: Optional[bool] = None,
        origin: Optional[SlotOrigin] = None,
        completed: Optional[bool] = None,
    ) -> List[StudySlot]:
        slots = self._load(owner_id).slots
        if confirmed is not None:
            slots = [s for s in slots if s.confirmed == confirmed]
        if origin is not None:
            slots = [s for s in slots if s.origin == origin]
        if completed is not None:
            slots = [s for s in slots if s.completed == completed]
        return sorted(slots, key=lambda s: s.start_time)

    def get(self, owner_id: str, slot_id: str) -> StudySlot:
        for slot in self._load(owner_id).slots:
            if slot.id == slot_id:
                return slot
        raise SlotNotFoundError(slot_id)

    # ── mutations ────────────────────────────────────────────────────

    def insert_many(self, slots: List[StudySlot]) -> List[StudySlot]:
        """Insert slots (possibly for several owners); duplicates of stored triples are dropped."""
        by_owner: Dict[str, List[StudySlot]] = defaultdict(list)
        for slot in slots:
            by_owner[slot.owner_id].append(slot)

        inserted: List[StudySlot] = []
        for owner_id, fresh in by_owner.items():
            with self._lock(owner_id):
                data = self._load(owner_id)
                kept = self._without_duplicates(data.slots, fresh)
                data.slots.extend(kept)
                self._save(data)
                inserted.extend(kept)
        return inserted

    def delete_where(self, owner_id: str, confirmed: bool = False) -> int:
        with self._lock(owner_id):
            data = self._load(owner_id)
            before = len(data.slots)
            data.slots = [s for s in data.slots if s.confirmed != confirmed]
            self._save(data)
            return before - len(data.slots)

    def replace_unconfirmed(self, owner_id: str, slots: List[StudySlot]) -> List[StudySlot]:
        """
        Drop every unconfirmed slot of the owner and store `slots` instead,
        in one write. Returns the slots actually stored.
        """
        with self._lock(owner_id):
            data = self._load(owner_id)
            kept = [s for s in data.slots if s.confirmed]
            removed = len(data.slots) - len(kept)
            fresh = self._without_duplicates(kept, slots)
            data.slots = kept + fresh
            self._save(data)
        logger.info(f"Replaced {removed} unconfirmed slots with {len(fresh)} new ones for {owner_id}")
        return fresh

    def update_by_id(self, owner_id: str, slot_id: str, patch: Dict[str, Any]) -> StudySlot:
        with self._lock(owner_id):
            data = self._load(owner_id)
            for i, slot in enumerate(data.slots):
                if slot.id == slot_id:
                    updated = StudySlot.model_validate({**slot.model_dump(), **patch})
                    data.slots[i] = updated
                    self._save(data)
                    return updated
        raise SlotNotFoundError(slot_id)

    def delete_by_id(self, owner_id: str, slot_id: str) -> StudySlot:
        with self._lock(owner_id):
            data = self._load(owner_id)
            for i, slot in enumerate(data.slots):
                if slot.id == slot_id:
                    removed = data.slots.pop(i)
                    self._save(data)
                    return removed
        raise SlotNotFoundError(slot_id)
