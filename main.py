import os
from dotenv import load_dotenv
load_dotenv()  # Load .env before anything else

import logging
from datetime import date
from functools import lru_cache
from typing import List

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from config import load_settings
from errors import InvalidTransitionError, NoClassesError, SchedulerError, SlotNotFoundError, StoreError
from models import (
    AvailabilityBlock,
    ClassSession,
    CustomSlotIn,
    Exam,
    GenerateScheduleRequest,
    GenerateScheduleResponse,
    Preferences,
    SlotActionResponse,
    StudySlot,
    Task,
)
from smart_schedule import ScheduleService

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Smart Study Scheduler")


@lru_cache(maxsize=1)
def get_service() -> ScheduleService:
    return ScheduleService.from_settings(load_settings())


_STATUS_BY_ERROR = {
    NoClassesError: 400,
    SlotNotFoundError: 404,
    InvalidTransitionError: 409,
    StoreError: 500,
}


@app.exception_handler(SchedulerError)
async def scheduler_error_handler(request: Request, exc: SchedulerError):
    status = next((code for kind, code in _STATUS_BY_ERROR.items() if isinstance(exc, kind)), 500)
    if status >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


# ── Smart schedule ───────────────────────────────────────────────────

@app.post("/smart-schedule/generate", response_model=GenerateScheduleResponse)
def generate_smart_schedule(request: GenerateScheduleRequest, service: ScheduleService = Depends(get_service)):
    """
    Replace the user's unconfirmed suggestions with a fresh set.

    Tries the configured text-completion provider first and falls back to the
    rule-based planner when it is missing or produces nothing usable. Confirmed
    slots are kept and never double-booked. 400 if the user has no classes.
    """
    response = service.generate(request)
    logger.info(f"✅ {response.count} slots generated for {request.user_id} ({response.source})")
    return response


@app.post("/smart-schedule/custom", response_model=SlotActionResponse, status_code=201)
def create_custom_slot(request: CustomSlotIn, service: ScheduleService = Depends(get_service)):
    slot = service.create_custom(request)
    return SlotActionResponse(message="Custom study slot created", study_slot=slot)


@app.get("/smart-schedule/{user_id}", response_model=List[StudySlot])
def get_suggestions(user_id: str, service: ScheduleService = Depends(get_service)):
    return service.suggestions(user_id)


@app.get("/smart-schedule/{user_id}/confirmed", response_model=List[StudySlot])
def get_confirmed(user_id: str, service: ScheduleService = Depends(get_service)):
    return service.confirmed(user_id)


@app.put("/smart-schedule/{user_id}/{slot_id}/confirm", response_model=SlotActionResponse)
def confirm_slot(user_id: str, slot_id: str, service: ScheduleService = Depends(get_service)):
    slot = service.confirm(user_id, slot_id)
    return SlotActionResponse(message="Study slot confirmed", study_slot=slot)


@app.put("/smart-schedule/{user_id}/{slot_id}/complete", response_model=SlotActionResponse)
def complete_slot(user_id: str, slot_id: str, service: ScheduleService = Depends(get_service)):
    slot = service.complete(user_id, slot_id)
    return SlotActionResponse(message="Study slot marked as completed", study_slot=slot)


@app.delete("/smart-schedule/{user_id}/{slot_id}", response_model=SlotActionResponse)
def delete_slot(user_id: str, slot_id: str, service: ScheduleService = Depends(get_service)):
    slot = service.delete(user_id, slot_id)
    return SlotActionResponse(message="Study slot deleted", study_slot=slot)


@app.get("/availability/{user_id}", response_model=List[AvailabilityBlock])
def get_availability(
    user_id: str,
    day: date = Query(..., alias="date"),
    service: ScheduleService = Depends(get_service),
):
    """Free blocks of at least the minimum length inside the study window for `?date=`."""
    return service.available_blocks(user_id, day)


# ── Planner data (classes, tasks, exams, preferences) ────────────────

@app.post("/classes/{user_id}", response_model=ClassSession, status_code=201)
def add_class(user_id: str, cls: ClassSession, service: ScheduleService = Depends(get_service)):
    return service.planner_store.add_class(user_id, cls)


@app.get("/classes/{user_id}", response_model=List[ClassSession])
def list_classes(user_id: str, service: ScheduleService = Depends(get_service)):
    return service.planner_store.list_classes(user_id)


@app.post("/tasks/{user_id}", response_model=Task, status_code=201)
def add_task(user_id: str, task: Task, service: ScheduleService = Depends(get_service)):
    return service.planner_store.add_task(user_id, task)


@app.get("/tasks/{user_id}", response_model=List[Task])
def list_tasks(user_id: str, include_completed: bool = False, service: ScheduleService = Depends(get_service)):
    return service.planner_store.list_tasks(user_id, include_completed=include_completed)


@app.post("/exams/{user_id}", response_model=Exam, status_code=201)
def add_exam(user_id: str, exam: Exam, service: ScheduleService = Depends(get_service)):
    return service.planner_store.add_exam(user_id, exam)


@app.get("/exams/{user_id}", response_model=List[Exam])
def list_exams(user_id: str, service: ScheduleService = Depends(get_service)):
    return service.planner_store.list_exams(user_id)


@app.put("/preferences/{user_id}", response_model=Preferences)
def save_preferences(user_id: str, preferences: Preferences, service: ScheduleService = Depends(get_service)):
    return service.planner_store.save_preferences(user_id, preferences)


@app.get("/preferences/{user_id}", response_model=Preferences)
def get_preferences(user_id: str, service: ScheduleService = Depends(get_service)):
    return service.planner_store.get_preferences(user_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8022")), reload=True)
