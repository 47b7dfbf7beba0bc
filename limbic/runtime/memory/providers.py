"""
Cognition Providers - Text to structured facts, embeddings and emotions

WHAT: Provider protocol, OpenAI-compatible HTTP adapter, offline and fallback wrappers
WHERE: limbic/runtime/memory/providers.py - external model boundary
WHO: Orchestrator turning raw sensory input into Facts
TIME: Bounded by ``timeout_seconds`` per call (FallbackProvider)

Adapters raise ``ProviderError`` on transport, HTTP or parse failures. The
orchestrator never talks to an adapter directly: it goes through
``FallbackProvider`` which bounds every call with ``asyncio.wait_for`` and
degrades to neutral values (input text, zero impact, zero vector) instead of
propagating the error.

Boundary Notes:
- Embedding dimensionality is fixed by configuration (1536 by default)
- Emotion scores are clamped to [-1, 1] at the boundary
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, TypeVar

import httpx
from pydantic import ValidationError

from limbic.config.memory import ProviderConfig

from .errors import ProviderError
from .models import EmotionalQuadrant, ExtractedFact
from .prompting import (
    ExtractionContext,
    build_emotion_messages,
    build_extraction_messages,
    parse_json_object,
    preview_messages,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CognitionProvider(Protocol):
    """Abstract interface for the language-model calls."""

    async def extract_fact(self, text: str, context: Optional[ExtractionContext] = None) -> ExtractedFact:
        """Extract the main fact of ``text``; may include its emotional impact."""

    async def embed(self, text: str) -> List[float]:
        """Embedding vector of ``text``."""

    async def score_emotion(self, text: str) -> EmotionalQuadrant:
        """Emotional impact of ``text`` (each dimension within [-1, 1])."""

    async def aclose(self) -> None:
        """Release HTTP resources."""


class OpenAIProvider(CognitionProvider):
    """OpenAI-compatible chat-completions + embeddings client over httpx."""

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout_seconds),
        )

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise ProviderError("No API key configured (set OPENAI_API_KEY)")
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = self._headers()
        try:
            response = await self._client.post(path, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(f"{path} returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{path} request failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(f"{path} returned invalid JSON: {exc}") from exc

    async def _chat_json(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        logger.debug(f"Chat request ({self.config.chat_model}): {preview_messages(messages)}")
        body = await self._post(
            "/chat/completions",
            {
                "model": self.config.chat_model,
                "messages": messages,
                "temperature": self.config.temperature,
                "response_format": {"type": "json_object"},
            },
        )
        try:
            raw = body["choices"][0]["message"]["content"]
            return parse_json_object(raw)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(f"Unparseable chat completion: {exc}") from exc

    async def extract_fact(self, text: str, context: Optional[ExtractionContext] = None) -> ExtractedFact:
        result = await self._chat_json(build_extraction_messages(text, context))
        impact = result.get("emotionalImpact")
        try:
            return ExtractedFact(
                content=result.get("content") or text,
                emotional_impact=EmotionalQuadrant.from_mapping(impact) if isinstance(impact, dict) else None,
            )
        except ValidationError as exc:
            raise ProviderError(f"Extraction result rejected: {exc}") from exc

    async def score_emotion(self, text: str) -> EmotionalQuadrant:
        return EmotionalQuadrant.from_mapping(await self._chat_json(build_emotion_messages(text)))

    async def embed(self, text: str) -> List[float]:
        body = await self._post("/embeddings", {"model": self.config.embedding_model, "input": text})
        try:
            vector = [float(v) for v in body["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(f"Unparseable embedding response: {exc}") from exc
        if len(vector) != self.config.embedding_dimensions:
            raise ProviderError(
                f"Embedding has {len(vector)} dimensions, expected {self.config.embedding_dimensions}"
            )
        return vector

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class NeutralProvider(CognitionProvider):
    """Offline provider: echoes the text with zero impact and a zero vector."""

    def __init__(self, dimensions: int = 1536) -> None:
        self.dimensions = dimensions

    async def extract_fact(self, text: str, context: Optional[ExtractionContext] = None) -> ExtractedFact:
        return ExtractedFact(content=text, emotional_impact=EmotionalQuadrant.neutral())

    async def embed(self, text: str) -> List[float]:
        return [0.0] * self.dimensions

    async def score_emotion(self, text: str) -> EmotionalQuadrant:
        return EmotionalQuadrant.neutral()

    async def aclose(self) -> None:
        return None


class FallbackProvider(CognitionProvider):
    """Bounds every call with a timeout and degrades to neutral values on failure."""

    def __init__(
        self,
        inner: CognitionProvider,
        *,
        timeout_seconds: float = 20.0,
        dimensions: int = 1536,
    ) -> None:
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self._neutral = NeutralProvider(dimensions)
        self.degradations: Counter[str] = Counter()

    async def _call(
        self, operation: str, coro: Awaitable[T], fallback: Callable[[], Awaitable[T]]
    ) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Provider {operation} timed out after {self.timeout_seconds}s; using neutral value")
        except ProviderError as exc:
            logger.warning(f"Provider {operation} failed: {exc}; using neutral value")
        self.degradations[operation] += 1
        return await fallback()

    async def extract_fact(self, text: str, context: Optional[ExtractionContext] = None) -> ExtractedFact:
        return await self._call(
            "extract_fact",
            self.inner.extract_fact(text, context),
            lambda: self._neutral.extract_fact(text, context),
        )

    async def embed(self, text: str) -> List[float]:
        return await self._call("embed", self.inner.embed(text), lambda: self._neutral.embed(text))

    async def score_emotion(self, text: str) -> EmotionalQuadrant:
        return await self._call(
            "score_emotion", self.inner.score_emotion(text), lambda: self._neutral.score_emotion(text)
        )

    async def aclose(self) -> None:
        await self.inner.aclose()


def build_provider(config: ProviderConfig, *, offline: bool = False) -> FallbackProvider:
    """Provider stack used by scripts: OpenAI (or neutral when offline) behind the fallback."""
    inner: CognitionProvider = (
        NeutralProvider(config.embedding_dimensions) if offline else OpenAIProvider(config)
    )
    return FallbackProvider(
        inner,
        timeout_seconds=config.timeout_seconds,
        dimensions=config.embedding_dimensions,
    )


__all__ = [
    "CognitionProvider",
    "FallbackProvider",
    "NeutralProvider",
    "OpenAIProvider",
    "build_provider",
]
