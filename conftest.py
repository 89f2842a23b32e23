from datetime import datetime
from typing import List, Optional

import pytest

from config import LLMSettings, SchedulingRules, Settings
from errors import LLMProviderError
from models import ClassSession

# Monday 2026-10-19, before the evening window opens
MONDAY_MORNING = datetime(2026, 10, 19, 8, 0)


class FakeProvider:
    """Scripted text-completion provider; raises when given an exception."""
    name = "fake-llm"

    def __init__(self, responses: Optional[List] = None):
        self.responses = list(responses or [])
        self.prompts: List[str] = []

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def now() -> datetime:
    return MONDAY_MORNING


@pytest.fixture
def rules() -> SchedulingRules:
    return SchedulingRules()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path, llm=LLMSettings(provider="none"))


@pytest.fixture
def physics_class() -> ClassSession:
    return ClassSession(id="phys", subject="Physics", day_of_week="Monday", start_time="14:00", end_time="15:00")


@pytest.fixture
def timeout_provider() -> FakeProvider:
    return FakeProvider([LLMProviderError("request timed out")])
