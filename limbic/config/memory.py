"""
Runtime configuration for the limbic memory engine.

Pydantic models hold the reference constants (thresholds, decay rates,
retention windows) and reject out-of-range values at construction time.
``resolve_config()`` overlays ``LIMBIC_*`` environment variables on the
defaults; callers that want ``.env`` support load it before resolving.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

EvictionStrategy = Literal["recency", "weight"]


class MemoryConfig(BaseModel):
    """Tunables for working memory, pattern store, sensory contexts and sleep."""

    model_config = ConfigDict(frozen=True)

    short_term_retention_hours: float = Field(default=24.0, gt=0)
    long_term_retention_hours: float = Field(default=72.0, gt=0)
    sleep_cycle_fact_count: int = Field(default=10, ge=1)
    emotional_decay_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    sleep_state_decay_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    sleep_interval_hours: float = Field(default=24.0, gt=0)
    similarity_threshold: float = Field(default=0.85, ge=-1.0, le=1.0)
    similar_fact_limit: int = Field(default=5, ge=1)
    pattern_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    pattern_creation_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    pattern_prune_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    pattern_prune_probability: float = Field(default=0.2, ge=0.0, le=1.0)
    pattern_half_life_days: float = Field(default=30.0, gt=0)
    pattern_retention_days: int = Field(default=30, ge=1)
    weight_increment: float = Field(default=0.1, ge=0.0, le=1.0)
    cache_ttl_seconds: float = Field(default=300.0, ge=0.0)
    context_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    context_retention_size: int = Field(default=10, ge=1)
    context_retention_hours: float = Field(default=24.0, gt=0)
    working_memory_capacity: int = Field(default=10, ge=1)
    eviction_strategy: EvictionStrategy = "recency"
    eviction_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    significant_pattern_limit: int = Field(default=10, ge=1)
    neutral_threshold: float = Field(default=0.1, ge=0.0, le=1.0)


class ProviderConfig(BaseModel):
    """OpenAI-compatible endpoint used for extraction, embedding and scoring."""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    chat_model: str = "gpt-3.5-turbo"
    embedding_model: str = "text-embedding-ada-002"
    embedding_dimensions: int = Field(default=1536, ge=1)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    timeout_seconds: float = Field(default=20.0, gt=0)


class StoreConfig(BaseModel):
    """Postgres + pgvector connection settings."""

    model_config = ConfigDict(frozen=True)

    dsn: str = ""
    min_pool_size: int = Field(default=1, ge=1)
    max_pool_size: int = Field(default=5, ge=1)
    command_timeout_seconds: float = Field(default=10.0, gt=0)


class LimbicConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)


def _env_overrides(model: type[BaseModel], prefix: str, env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for name in model.model_fields:
        key = f"{prefix}{name.upper()}"
        if key in env and env[key] != "":
            overrides[name] = env[key]
    return overrides


def resolve_config(env: Optional[Mapping[str, str]] = None) -> LimbicConfig:
    """Build a ``LimbicConfig`` from defaults plus environment overrides.

    Recognised variables:
    - ``LIMBIC_MEMORY_<FIELD>`` for any ``MemoryConfig`` field
    - ``LIMBIC_PROVIDER_<FIELD>`` for any ``ProviderConfig`` field
    - ``LIMBIC_STORE_<FIELD>`` for any ``StoreConfig`` field
    - ``OPENAI_API_KEY`` / ``OPENAI_BASE_URL`` and ``DATABASE_URL`` as fallbacks
    """
    source = os.environ if env is None else env

    provider = _env_overrides(ProviderConfig, "LIMBIC_PROVIDER_", source)
    provider.setdefault("api_key", source.get("OPENAI_API_KEY", ""))
    if source.get("OPENAI_BASE_URL"):
        provider.setdefault("base_url", source["OPENAI_BASE_URL"])

    store = _env_overrides(StoreConfig, "LIMBIC_STORE_", source)
    store.setdefault("dsn", source.get("DATABASE_URL", ""))

    return LimbicConfig(
        memory=MemoryConfig(**_env_overrides(MemoryConfig, "LIMBIC_MEMORY_", source)),
        provider=ProviderConfig(**provider),
        store=StoreConfig(**store),
    )


__all__ = [
    "EvictionStrategy",
    "LimbicConfig",
    "MemoryConfig",
    "ProviderConfig",
    "StoreConfig",
    "resolve_config",
]
