import pytest
from pydantic import ValidationError

from limbic.config import LimbicConfig, MemoryConfig, resolve_config


def test_defaults_match_reference_constants():
    memory = LimbicConfig().memory
    assert memory.sleep_cycle_fact_count == 10
    assert memory.emotional_decay_rate == 0.1
    assert memory.similarity_threshold == 0.85
    assert memory.pattern_threshold == 0.6
    assert memory.weight_increment == 0.1
    assert memory.pattern_prune_weight == 0.2
    assert memory.pattern_half_life_days == 30
    assert memory.context_retention_size == 10
    assert LimbicConfig().provider.embedding_dimensions == 1536


def test_resolve_config_reads_environment():
    config = resolve_config(
        {
            "OPENAI_API_KEY": "sk-env",
            "DATABASE_URL": "postgresql://localhost/limbic",
            "LIMBIC_MEMORY_WORKING_MEMORY_CAPACITY": "3",
            "LIMBIC_MEMORY_EVICTION_STRATEGY": "weight",
            "LIMBIC_PROVIDER_CHAT_MODEL": "gpt-4o-mini",
        }
    )

    assert config.provider.api_key == "sk-env"
    assert config.provider.chat_model == "gpt-4o-mini"
    assert config.store.dsn == "postgresql://localhost/limbic"
    assert config.memory.working_memory_capacity == 3
    assert config.memory.eviction_strategy == "weight"


def test_explicit_limbic_variables_win_over_fallbacks():
    config = resolve_config({"OPENAI_API_KEY": "sk-a", "LIMBIC_PROVIDER_API_KEY": "sk-b"})
    assert config.provider.api_key == "sk-b"


def test_out_of_range_values_are_rejected():
    with pytest.raises(ValidationError):
        MemoryConfig(emotional_decay_rate=1.5)
    with pytest.raises(ValidationError):
        resolve_config({"LIMBIC_MEMORY_EVICTION_STRATEGY": "random"})
