"""
Text embedding providers with ordered fallback.

Hosted providers are enabled by their API key; the hash provider needs no
network and always comes last, so `EmbeddingService.embed` only fails when
every provider, including the hash one, has failed.
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from zapta.config.settings import Settings, get_settings
from zapta.errors import EmbeddingError
from zapta.providers.base import ProviderError, TransientProviderError, post_json

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingResult:
    embedding: list[float]
    provider: str
    dimensions: int

    @property
    def model_key(self) -> str:
        """Value stored in `documents.embedding_model`."""
        return self.provider.lower()


class EmbeddingProvider(ABC):
    name: str = "base"
    model: str = ""
    dimensions: int = 0

    def __init__(self, api_key: str | None = None, timeout: float = 30.0) -> None:
        self.api_key = api_key or ""
        self.timeout = timeout

    @retry(
        retry=retry_if_exception_type(TransientProviderError),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def embed(self, text: str) -> list[float]:
        vector = self._embed(text)
        if not vector:
            raise ProviderError(f"{self.name} returned an empty embedding")
        return [float(x) for x in vector]

    @abstractmethod
    def _embed(self, text: str) -> list[float]:
        """Return the raw vector for `text`."""

    def _post(self, url: str, payload: dict[str, Any]) -> Any:
        return post_json(
            url,
            payload=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            label=self.name,
        )


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "OpenAI"
    model = "text-embedding-3-small"
    dimensions = 1536

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 30.0,
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        super().__init__(api_key, timeout)
        self.base_url = base_url.rstrip("/")

    def _embed(self, text: str) -> list[float]:
        data = self._post(f"{self.base_url}/embeddings", {"model": self.model, "input": text})
        return data["data"][0]["embedding"]


class CohereEmbeddingProvider(EmbeddingProvider):
    name = "Cohere"
    model = "embed-english-light-v3.0"
    dimensions = 1024

    def _embed(self, text: str) -> list[float]:
        data = self._post(
            "https://api.cohere.ai/v1/embed",
            {"texts": [text], "model": self.model, "input_type": "search_document"},
        )
        return data["embeddings"][0]


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    name = "HuggingFace"
    model = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions = 384

    def _embed(self, text: str) -> list[float]:
        data = self._post(
            f"https://api-inference.huggingface.co/models/{self.model}",
            {"inputs": text, "options": {"wait_for_model": True}},
        )
        # feature-extraction may wrap a single vector in a batch list
        if data and isinstance(data[0], list):
            return data[0]
        return data


class VoyageEmbeddingProvider(EmbeddingProvider):
    name = "Voyage"
    model = "voyage-lite-02-instruct"
    dimensions = 1024

    def _embed(self, text: str) -> list[float]:
        data = self._post(
            "https://api.voyageai.com/v1/embeddings",
            {"input": [text], "model": self.model},
        )
        return data["data"][0]["embedding"]


def _java_string_hash(word: str) -> int:
    value = 0
    for ch in word:
        value = (value * 31 + ord(ch)) & 0xFFFFFFFF
    return value - (1 << 32) if value >= (1 << 31) else value


class HashEmbeddingProvider(EmbeddingProvider):
    """Bag of hashed words, L2-normalised. Deterministic and offline."""

    name = "Hash"
    model = "hash-256"
    dimensions = 256

    def _embed(self, text: str) -> list[float]:
        words = text.lower().split()
        vector = [0.0] * self.dimensions
        if not words:
            return vector
        weight = 1 / math.sqrt(len(words))
        for word in words:
            vector[abs(_java_string_hash(word)) % self.dimensions] += weight
        norm = math.sqrt(sum(x * x for x in vector))
        if norm == 0:
            return vector
        return [x / norm for x in vector]

    def embed(self, text: str) -> list[float]:
        # an empty text is a valid zero vector here
        return self._embed(text)


def build_providers(settings: Settings) -> list[EmbeddingProvider]:
    timeout = settings.embedding_timeout_seconds
    providers: list[EmbeddingProvider] = []
    if settings.openai_api_key:
        providers.append(
            OpenAIEmbeddingProvider(settings.openai_api_key, timeout, settings.openai_base_url)
        )
    if settings.cohere_api_key:
        providers.append(CohereEmbeddingProvider(settings.cohere_api_key, timeout))
    if settings.huggingface_api_key:
        providers.append(HuggingFaceEmbeddingProvider(settings.huggingface_api_key, timeout))
    if settings.voyage_api_key:
        providers.append(VoyageEmbeddingProvider(settings.voyage_api_key, timeout))
    providers.append(HashEmbeddingProvider())
    return providers


class EmbeddingService:
    def __init__(self, providers: list[EmbeddingProvider]) -> None:
        self.providers = providers

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    def embed(self, text: str) -> EmbeddingResult:
        errors: list[str] = []
        for provider in self.providers:
            try:
                vector = provider.embed(text)
            except (ProviderError, KeyError, IndexError, TypeError, ValueError) as exc:
                logger.warning("Embedding provider %s failed: %s", provider.name, exc)
                errors.append(f"{provider.name}: {exc}")
                continue
            return EmbeddingResult(embedding=vector, provider=provider.name, dimensions=len(vector))
        raise EmbeddingError("All embedding providers failed:\n" + "\n".join(errors))


@lru_cache(maxsize=1)
def get_embedding_service() -> EmbeddingService:
    return EmbeddingService(build_providers(get_settings()))
