import json

import pytest
from fastapi.testclient import TestClient

import main
from conftest import MONDAY_MORNING, FakeProvider
from models import GenerateScheduleRequest
from smart_schedule import ScheduleService

PHYSICS = {"subject": "Physics", "day_of_week": "Monday", "start_time": "14:00", "end_time": "15:00"}


class FrozenClockService(ScheduleService):
    """Generates as if it were always Monday morning."""

    def generate(self, request: GenerateScheduleRequest, now=None):
        return super().generate(request, now=now or MONDAY_MORNING)


@pytest.fixture
def make_client(settings):
    def _make(provider=None):
        service = FrozenClockService.from_settings(settings, provider=provider, use_configured_provider=False)
        main.app.dependency_overrides[main.get_service] = lambda: service
        return TestClient(main.app), service

    yield _make
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(make_client):
    return make_client()[0]


def test_generate_without_classes_is_rejected(client):
    response = client.post("/smart-schedule/generate", json={"user_id": "u1"})
    assert response.status_code == 400
    assert "No class data available" in response.json()["detail"]
    assert client.get("/smart-schedule/u1").json() == []


def test_generate_confirm_complete(client):
    assert client.post("/classes/u1", json=PHYSICS).status_code == 201

    generated = client.post("/smart-schedule/generate", json={"user_id": "u1"}).json()
    assert generated["success"] is True
    assert generated["source"] == "rule-based"
    assert generated["count"] == 6
    first = generated["study_slots"][0]
    assert first["start_time"] == "2026-10-19T18:00:00"
    assert first["confirmed"] is False

    confirm = client.put(f"/smart-schedule/u1/{first['id']}/confirm")
    assert confirm.status_code == 200
    assert confirm.json()["study_slot"]["confirmed"] is True

    assert [s["id"] for s in client.get("/smart-schedule/u1/confirmed").json()] == [first["id"]]
    assert first["id"] not in [s["id"] for s in client.get("/smart-schedule/u1").json()]

    done = client.put(f"/smart-schedule/u1/{first['id']}/complete")
    assert done.status_code == 200
    assert done.json()["study_slot"]["completed"] is True


def test_regenerate_keeps_confirmed_and_replaces_the_rest(client):
    client.post("/classes/u1", json=PHYSICS)
    first = client.post("/smart-schedule/generate", json={"user_id": "u1"}).json()["study_slots"]
    kept = first[0]["id"]
    client.put(f"/smart-schedule/u1/{kept}/confirm")

    second = client.post("/smart-schedule/generate", json={"user_id": "u1"}).json()["study_slots"]
    assert kept not in [s["id"] for s in second]
    assert not {s["id"] for s in second} & {s["id"] for s in first}
    # the confirmed Monday 18:00 review is never double-booked
    assert all(s["start_time"] != "2026-10-19T18:00:00" for s in second)
    assert [s["id"] for s in client.get("/smart-schedule/u1/confirmed").json()] == [kept]
    assert len(client.get("/smart-schedule/u1").json()) == len(second)


def test_utc_suffixed_due_dates_are_scheduled(client):
    client.post("/classes/u1", json=PHYSICS)
    created = client.post("/tasks/u1", json={
        "title": "Lab report", "subject": "Chemistry", "due_date": "2026-10-23T23:59:00Z",
    })
    assert created.status_code == 201
    assert created.json()["due_date"] == "2026-10-23T23:59:00"
    client.post("/tasks/u1", json={"title": "Essay", "subject": "History", "due_date": "2026-10-22T12:00:00"})

    response = client.post("/smart-schedule/generate", json={"user_id": "u1"})
    assert response.status_code == 200
    linked = {s["related_task_id"] for s in response.json()["study_slots"] if s["related_task_id"]}
    assert linked == {t["id"] for t in client.get("/tasks/u1").json()}


def test_complete_before_confirm_is_a_conflict(client):
    client.post("/classes/u1", json=PHYSICS)
    slot = client.post("/smart-schedule/generate", json={"user_id": "u1"}).json()["study_slots"][0]
    assert client.put(f"/smart-schedule/u1/{slot['id']}/complete").status_code == 409


def test_unknown_slot_is_404(client):
    assert client.put("/smart-schedule/u1/nope/confirm").status_code == 404
    assert client.delete("/smart-schedule/u1/nope").status_code == 404


def test_primary_path_result_is_stored_with_its_source(make_client):
    response = json.dumps([{"title": "Study Physics: Recap", "startTime": "2026-10-20T19:00:00", "duration": 60}])
    client, _ = make_client(FakeProvider([response]))
    client.post("/classes/u1", json=PHYSICS)

    generated = client.post("/smart-schedule/generate", json={"user_id": "u1"}).json()
    assert generated["source"] == "fake-llm"
    assert [s["source"] for s in client.get("/smart-schedule/u1").json()] == ["fake-llm"]


def test_custom_slot_and_delete(client):
    created = client.post("/smart-schedule/custom", json={
        "user_id": "u1", "title": "Study Maths: Past paper",
        "start_time": "2026-10-24T10:00:00", "end_time": "2026-10-24T11:00:00",
    })
    assert created.status_code == 201
    slot = created.json()["study_slot"]
    assert slot["origin"] == "manual" and slot["confirmed"] is True

    assert client.delete(f"/smart-schedule/u1/{slot['id']}").status_code == 200
    assert client.get("/smart-schedule/u1/confirmed").json() == []


def test_custom_slot_needs_an_end(client):
    response = client.post("/smart-schedule/custom", json={
        "user_id": "u1", "title": "x", "start_time": "2026-10-24T10:00:00",
    })
    assert response.status_code == 422


def test_availability_endpoint(client):
    client.post("/classes/u1", json={**PHYSICS, "day_of_week": "Tuesday", "start_time": "19:00", "end_time": "20:00"})
    blocks = client.get("/availability/u1", params={"date": "2026-10-20"}).json()
    assert [(b["start"], b["end"]) for b in blocks] == [
        ("2026-10-20T18:00:00", "2026-10-20T19:00:00"),
        ("2026-10-20T20:00:00", "2026-10-20T22:00:00"),
    ]
    assert client.get("/availability/u1", params={"date": "2026-10-25"}).json() == []


def test_planner_data_round_trip(client):
    client.post("/tasks/u1", json={"title": "Lab report", "subject": "Chemistry", "due_date": "2026-10-23T09:00:00"})
    client.post("/exams/u1", json={"subject": "Chemistry", "date": "2026-10-30"})
    client.put("/preferences/u1", json={"preferred_duration": 45})

    assert [t["title"] for t in client.get("/tasks/u1").json()] == ["Lab report"]
    assert [e["subject"] for e in client.get("/exams/u1").json()] == ["Chemistry"]
    assert client.get("/preferences/u1").json()["preferred_duration"] == 45
    assert client.get("/preferences/u2").json()["preferred_duration"] == 60
