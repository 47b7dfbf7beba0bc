"""Configuration models for the limbic runtime."""

from .memory import (  # noqa: F401
    EvictionStrategy,
    LimbicConfig,
    MemoryConfig,
    ProviderConfig,
    StoreConfig,
    resolve_config,
)

__all__ = [
    "EvictionStrategy",
    "LimbicConfig",
    "MemoryConfig",
    "ProviderConfig",
    "StoreConfig",
    "resolve_config",
]
