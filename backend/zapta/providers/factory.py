from __future__ import annotations

from zapta.agents.models import ModelFamily
from zapta.config.settings import Settings, get_settings
from zapta.providers.anthropic_client import AnthropicClient
from zapta.providers.base import ModelClient
from zapta.providers.gemini_client import GeminiClient
from zapta.providers.openai_client import OpenAIClient


class ModelClientFactory:
    """Builds one client per model family from configured keys and base URLs."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def for_family(self, family: ModelFamily) -> ModelClient:
        s = self.settings
        timeout = s.llm_timeout_seconds
        if family == ModelFamily.CLAUDE:
            return AnthropicClient(s.anthropic_api_key, s.anthropic_base_url, timeout)
        if family == ModelFamily.OPENAI:
            return OpenAIClient(s.openai_api_key, s.openai_base_url, timeout)
        return GeminiClient(s.google_api_key, s.gemini_base_url, timeout)
