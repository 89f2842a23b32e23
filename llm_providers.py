import logging
from typing import Optional, Protocol

import anthropic
import openai
from google import genai
from google.genai import types

from config import LLMSettings
from errors import LLMProviderError

logger = logging.getLogger(__name__)


class TextCompletionProvider(Protocol):
    """Anything that turns a prompt into text. `name` is stored as the slot source."""
    name: str

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        ...


# ── Gemini (google-genai SDK) ────────────────────────────────────────

class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", timeout_seconds: float = 30.0):
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
        self.model = model

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
        except Exception as exc:
            raise LLMProviderError(f"Gemini request failed: {exc}") from exc

        if not response.text:
            finish_reason = response.candidates[0].finish_reason if response.candidates else "no candidates"
            raise LLMProviderError(f"Gemini returned an empty response. Finish reason: {finish_reason}")
        return response.text


# ── OpenAI / Anthropic (vendor SDKs) ─────────────────────────────────

class OpenAIProvider:
    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout_seconds: float = 30.0):
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout_seconds)
        self.model = model

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            raise LLMProviderError(f"OpenAI request failed: {exc}") from exc

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise LLMProviderError("OpenAI returned an empty response")
        return text


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-latest", timeout_seconds: float = 30.0):
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout_seconds)
        self.model = model

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise LLMProviderError(f"Anthropic request failed: {exc}") from exc

        text = "".join(block.text for block in message.content if getattr(block, "type", None) == "text")
        if not text:
            raise LLMProviderError(f"Anthropic returned an empty response. Stop reason: {message.stop_reason}")
        return text


def build_provider(settings: LLMSettings) -> Optional[TextCompletionProvider]:
    """
    Pick the configured provider once at startup.

    Returns None when generation is disabled or the provider's key is missing;
    the slot generator then goes straight to the rule-based planner.
    """
    name = settings.provider
    if name in ("", "none", "off", "rule-based"):
        logger.info("LLM provider disabled; schedules will be rule-based")
        return None

    if name == "gemini":
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY is not set; schedules will be rule-based")
            return None
        return GeminiProvider(settings.gemini_api_key, settings.gemini_model, settings.timeout_seconds)

    if name == "openai":
        if not settings.openai_api_key:
            logger.warning("OPENAI_API_KEY is not set; schedules will be rule-based")
            return None
        return OpenAIProvider(settings.openai_api_key, settings.openai_model, settings.timeout_seconds)

    if name == "anthropic":
        if not settings.anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY is not set; schedules will be rule-based")
            return None
        return AnthropicProvider(settings.anthropic_api_key, settings.anthropic_model, settings.timeout_seconds)

    raise ValueError(f"Unsupported LLM provider: {name}")
