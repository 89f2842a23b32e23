import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


# ── Scheduling rules ─────────────────────────────────────────────────

class SchedulingRules(BaseModel):
    """Boundary hours and break lengths used by both generator paths."""
    weekday_start_hour: int = Field(18, ge=0, le=23)
    weekday_end_hour: int = Field(22, ge=1, le=24)
    saturday_start_hour: int = Field(9, ge=0, le=23)
    saturday_end_hour: int = Field(21, ge=1, le=24)
    saturday_bands: List[int] = Field(default_factory=lambda: [10, 14, 18])
    exam_saturday_bands: List[int] = Field(default_factory=lambda: [9, 13, 17])
    min_block_minutes: int = 30
    meal_break_minutes: int = 60
    play_break_minutes: int = 60


# ── LLM settings ─────────────────────────────────────────────────────

class LLMSettings(BaseModel):
    provider: str = "gemini"            # gemini | openai | anthropic | none
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-3-5-haiku-latest"
    max_tokens: int = 2048
    temperature: float = 0.7
    timeout_seconds: float = 30.0
    max_prompt_chars: int = 30000


class Settings(BaseModel):
    data_dir: Path = Path("data")
    rules: SchedulingRules = Field(default_factory=SchedulingRules)
    llm: LLMSettings = Field(default_factory=LLMSettings)


def load_settings() -> Settings:
    """Build Settings from the process environment (.env already loaded)."""
    defaults = SchedulingRules()
    rules = SchedulingRules(
        weekday_start_hour=_env_int("WEEKDAY_START_HOUR", defaults.weekday_start_hour),
        weekday_end_hour=_env_int("WEEKDAY_END_HOUR", defaults.weekday_end_hour),
        saturday_start_hour=_env_int("SATURDAY_START_HOUR", defaults.saturday_start_hour),
        saturday_end_hour=_env_int("SATURDAY_END_HOUR", defaults.saturday_end_hour),
        min_block_minutes=_env_int("MIN_BLOCK_MINUTES", defaults.min_block_minutes),
        meal_break_minutes=_env_int("MEAL_BREAK_MINUTES", defaults.meal_break_minutes),
        play_break_minutes=_env_int("PLAY_BREAK_MINUTES", defaults.play_break_minutes),
    )

    llm_defaults = LLMSettings()
    llm = LLMSettings(
        provider=os.getenv("LLM_PROVIDER", llm_defaults.provider).strip().lower(),
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", llm_defaults.gemini_model),
        openai_model=os.getenv("OPENAI_MODEL", llm_defaults.openai_model),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", llm_defaults.anthropic_model),
        max_tokens=_env_int("LLM_MAX_TOKENS", llm_defaults.max_tokens),
        temperature=_env_float("LLM_TEMPERATURE", llm_defaults.temperature),
        timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", llm_defaults.timeout_seconds),
        max_prompt_chars=_env_int("LLM_MAX_PROMPT_CHARS", llm_defaults.max_prompt_chars),
    )

    return Settings(
        data_dir=Path(os.getenv("DATA_DIR", "data")),
        rules=rules,
        llm=llm,
    )
