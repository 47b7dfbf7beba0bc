"""
Emotional Memory System - Facts, Patterns & Emotional State

WHAT: Local library for emotional working memory and pattern consolidation
WHERE: limbic/runtime/memory/ - runtime memory subsystem
WHO: Agents turning sensory text into weighted facts, patterns and moods
TIME: In-process operations <1ms; ingestion bounded by provider timeouts

Infrastructure:
- OpenAI-compatible chat + embeddings endpoint (httpx)
- Postgres with pgvector for long-term memory (asyncpg)
- In-process vector store for tests and offline runs (numpy)

Memory Layers:
- working memory: bounded recency/weight-evicted fact buffer
- sensory contexts: per-channel recent and contextual fact windows
- pattern store: merged, strengthened and pruned fact clusters
- emotional state: clamped {joy, calm, anger, sadness} vector

Operations:
- process_input(text, source): ingest one sensory input
- process_batch(texts, source): ingest inputs that arrived together
- get_emotional_trends(start, end, context_type): hourly mood aggregates
- run_sleep_cycle(): replay salient facts, renormalise, maybe prune
- find_cross_context_patterns(): signatures recurring across channels

Boundary Notes:
- Provider failures degrade to neutral values
- Store failures propagate as StoreError
- Mutations of shared state are serialised by the orchestrator lock
"""

from .consolidation import SleepCycle, SleepCycleScheduler  # noqa: F401
from .emotional_state import EmotionalState, confidence_for  # noqa: F401
from .errors import (  # noqa: F401
    InvalidInputError,
    LimbicError,
    NotFoundError,
    ProviderError,
    StoreError,
)
from .models import (  # noqa: F401
    BatchProcessingResult,
    ContextHistoryRecord,
    CrossContextPattern,
    EmotionalQuadrant,
    EmotionalSnapshot,
    EmotionalTrend,
    ExtractedFact,
    Fact,
    Pattern,
    ProcessingResult,
    ScoredFact,
    SleepCycleResult,
)
from .orchestrator import CognitiveOrchestrator  # noqa: F401
from .pattern_store import PatternStore, emotional_similarity, find_cross_context_patterns  # noqa: F401
from .postgres_store import PgVectorStore  # noqa: F401
from .providers import (  # noqa: F401
    CognitionProvider,
    FallbackProvider,
    NeutralProvider,
    OpenAIProvider,
    build_provider,
)
from .sensory_context import ContextMetrics, SensoryContext, SensoryContextRegistry  # noqa: F401
from .telemetry import (  # noqa: F401
    ConsoleTelemetryClient,
    JsonlTelemetryClient,
    NoOpTelemetryClient,
    TelemetryClient,
    TelemetrySpan,
    describe_span,
)
from .vector_store import InMemoryVectorStore, VectorStore, cosine_similarity, summarize_trends  # noqa: F401
from .working_memory import WorkingMemory, WorkingMemoryMetrics  # noqa: F401

__all__ = [
    "BatchProcessingResult",
    "CognitionProvider",
    "CognitiveOrchestrator",
    "ConsoleTelemetryClient",
    "ContextHistoryRecord",
    "ContextMetrics",
    "CrossContextPattern",
    "EmotionalQuadrant",
    "EmotionalSnapshot",
    "EmotionalState",
    "EmotionalTrend",
    "ExtractedFact",
    "Fact",
    "FallbackProvider",
    "InMemoryVectorStore",
    "InvalidInputError",
    "JsonlTelemetryClient",
    "LimbicError",
    "NeutralProvider",
    "NoOpTelemetryClient",
    "NotFoundError",
    "OpenAIProvider",
    "Pattern",
    "PatternStore",
    "PgVectorStore",
    "ProcessingResult",
    "ProviderError",
    "ScoredFact",
    "SensoryContext",
    "SensoryContextRegistry",
    "SleepCycle",
    "SleepCycleResult",
    "SleepCycleScheduler",
    "StoreError",
    "TelemetryClient",
    "TelemetrySpan",
    "VectorStore",
    "WorkingMemory",
    "WorkingMemoryMetrics",
    "build_provider",
    "confidence_for",
    "cosine_similarity",
    "describe_span",
    "emotional_similarity",
    "find_cross_context_patterns",
    "summarize_trends",
]
