"""
Cognitive Orchestrator - Central Coordination Point

WHAT: Composition root tying providers, memories, emotional state and sleep
WHERE: limbic/runtime/memory/orchestrator.py - top of the runtime stack
WHO: Entry point for every sensory input and for consolidation requests
TIME: Bounded by provider timeouts plus a handful of store round-trips per input

Input flow: text -> extraction context -> extract/embed/score (fallback
provider) -> Fact -> store writes (fact, projected emotional snapshot, context
history, pattern clustering) -> in-process commit (emotional state, working
memory, sensory window). Batches follow the same path with one aggregate
emotional impact. One ``asyncio.Lock`` serialises every mutation of the
emotional state, working memory and store; the sleep cycle takes the same
lock, so a scheduled cycle never interleaves with an in-flight input.

Boundary Notes:
- Provider failures degrade to neutral values and are counted, never raised
- ``StoreError`` propagates to the caller; nothing is retried, and no
  in-process state has changed when it does
- The orchestrator owns the lifecycle of the store, provider and scheduler
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from limbic.config.memory import LimbicConfig

from .consolidation import SleepCycle, SleepCycleScheduler
from .emotional_state import EmotionalState
from .errors import InvalidInputError
from .models import (
    SENSORY_INPUT_TYPES,
    BatchProcessingResult,
    ContextHistoryRecord,
    CrossContextPattern,
    EmotionalQuadrant,
    EmotionalSnapshot,
    EmotionalTrend,
    Fact,
    Pattern,
    ProcessingResult,
    SensoryInputType,
    SleepCycleResult,
    utc_now,
)
from .pattern_store import PatternStore, find_cross_context_patterns
from .prompting import ExtractionContext
from .providers import CognitionProvider, FallbackProvider
from .sensory_context import SensoryContextRegistry
from .telemetry import SPAN_PROCESS_BATCH, SPAN_PROCESS_INPUT, NoOpTelemetryClient, TelemetryClient
from .vector_store import VectorStore
from .working_memory import WorkingMemory

logger = logging.getLogger(__name__)


class CognitiveOrchestrator:
    """Facade that coordinates ingestion, memory layers and sleep cycles."""

    def __init__(
        self,
        *,
        store: VectorStore,
        provider: CognitionProvider,
        config: LimbicConfig | None = None,
        telemetry: TelemetryClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or LimbicConfig()
        memory = self.config.memory
        self._store = store
        if isinstance(provider, FallbackProvider):
            self._provider = provider
        else:
            self._provider = FallbackProvider(
                provider,
                timeout_seconds=self.config.provider.timeout_seconds,
                dimensions=self.config.provider.embedding_dimensions,
            )
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._lock = asyncio.Lock()

        self.emotional_state = EmotionalState()
        self.working_memory = WorkingMemory(
            capacity=memory.working_memory_capacity,
            eviction_strategy=memory.eviction_strategy,
            eviction_threshold=memory.eviction_threshold,
        )
        self.pattern_store = PatternStore(store, memory)
        self.sensory = SensoryContextRegistry(memory)
        self.sleep_cycle = SleepCycle(
            self.working_memory,
            self.emotional_state,
            self.pattern_store,
            memory,
            lock=self._lock,
            rng=rng,
            telemetry=self._telemetry,
        )
        self.scheduler = SleepCycleScheduler(self.sleep_cycle, memory.sleep_interval_hours * 3600.0)

    @property
    def store(self) -> VectorStore:
        return self._store

    @property
    def provider(self) -> FallbackProvider:
        return self._provider

    @property
    def telemetry(self) -> TelemetryClient:
        return self._telemetry

    async def __aenter__(self) -> "CognitiveOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        await self.close()

    def _check_source(self, source: str) -> None:
        if source not in SENSORY_INPUT_TYPES:
            raise InvalidInputError(f"Unknown sensory input type '{source}'")

    async def _build_context(self, source: SensoryInputType) -> ExtractionContext:
        limit = self.config.memory.context_retention_size
        sensory = self.sensory.get_context(source)
        pattern_facts: List[str] = []
        for pattern in await self.pattern_store.get_significant_patterns():
            for fact_id in pattern.facts:
                if len(pattern_facts) >= limit:
                    break
                fact = self.working_memory.retrieve(fact_id) or await self._store.get_fact(fact_id)
                if fact is not None and fact.content not in pattern_facts:
                    pattern_facts.append(fact.content)
        return ExtractionContext(
            recent_facts=[f.content for f in sensory.recent_facts],
            working_memory=[f.content for f in self.working_memory.get_facts()][-limit:],
            pattern_facts=pattern_facts,
        )

    async def _extract_fact(
        self, text: str, source: SensoryInputType, context: ExtractionContext
    ) -> Fact:
        extracted = await self._provider.extract_fact(text, context)
        embedding = await self._provider.embed(extracted.content)
        impact = extracted.emotional_impact
        if impact is None:
            impact = await self._provider.score_emotion(extracted.content)
        return Fact.create(
            content=extracted.content,
            source=source,
            embedding=embedding,
            emotional_impact=impact,
            timestamp=extracted.timestamp,
        )

    async def _persist_impact(
        self, source: SensoryInputType, facts: List[Fact], impact: EmotionalQuadrant
    ) -> None:
        # written from projections; live state is committed only after every write succeeded
        projected = self.emotional_state.project(impact)
        snapshot = self.emotional_state.snapshot([f.id for f in facts], quadrant=projected)
        await self._store.store_emotional_state(snapshot)
        window = self.sensory.project_context(source, facts)
        await self._store.store_context_history(self.sensory.history_record(window, snapshot.id))

    def _commit(
        self, source: SensoryInputType, facts: List[Fact], impact: EmotionalQuadrant
    ) -> EmotionalQuadrant:
        state = self.emotional_state.update(impact)
        for fact in facts:
            self.working_memory.add_fact(fact)
            self.sensory.update_context(source, fact)
        return state

    async def process_input(self, text: str, source: SensoryInputType = "read-text") -> ProcessingResult:
        """
        Turn one sensory input into a Fact and fold it into every memory layer.

        Store writes (fact, emotional snapshot, context history, patterns)
        all happen before the emotional state, working memory and sensory
        window change, so a ``StoreError`` leaves in-process state untouched
        and the call can simply be retried.

        Args:
            text: Raw input text (must be non-empty)
            source: Sensory channel the text arrived on

        Returns:
            ProcessingResult with the fact, related fact ids, the new emotional
            state, touched patterns and the emotional confidence

        Raises:
            InvalidInputError: If the text is empty or the source is unknown
            StoreError: If persistence fails
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Input text must be a non-empty string")
        self._check_source(source)

        degraded_before = sum(self._provider.degradations.values())
        with self._telemetry.span(
            SPAN_PROCESS_INPUT,
            attributes={"source": source, "input_chars": len(text)},
        ) as span:
            context = await self._build_context(source)
            fact = await self._extract_fact(text, source, context)

            async with self._lock:
                await self._store.store_fact(fact)
                await self._persist_impact(source, [fact], fact.emotional_impact)
                patterns = await self.pattern_store.process_fact(fact)
                state = self._commit(source, [fact], fact.emotional_impact)

            related = sorted({fid for p in patterns for fid in p.facts if fid != fact.id})
            confidence = self.emotional_state.confidence(fact.emotional_impact)
            degraded = sum(self._provider.degradations.values()) - degraded_before

            span.set_attribute("fact_weight", fact.weight)
            span.set_attribute("patterns_touched", len(patterns))
            span.set_attribute("related_facts", len(related))
            span.set_attribute("provider_degradations", degraded)

        logger.info(
            f"Processed {source} input into fact {fact.id} "
            f"(weight={fact.weight:.3f}, patterns={len(patterns)}, degraded={degraded})"
        )
        return ProcessingResult(
            fact=fact,
            related_facts=related,
            emotional_state=state,
            patterns=patterns,
            confidence=confidence,
        )

    async def process_batch(
        self, texts: Sequence[str], source: SensoryInputType = "read-text"
    ) -> BatchProcessingResult:
        """
        Ingest several inputs that arrived together on one channel.

        Every text becomes a Fact against the same extraction context. The
        emotional state moves once, by the mean impact of the batch, and
        patterns are clustered within the batch. Persistence precedes every
        in-process change, as in ``process_input``.

        Raises:
            InvalidInputError: If the batch is empty, any text is empty or the source is unknown
            StoreError: If persistence fails
        """
        if isinstance(texts, str) or not texts:
            raise InvalidInputError("Batch must be a non-empty sequence of strings")
        if any(not isinstance(t, str) or not t.strip() for t in texts):
            raise InvalidInputError("Every batch entry must be a non-empty string")
        self._check_source(source)

        degraded_before = sum(self._provider.degradations.values())
        with self._telemetry.span(
            SPAN_PROCESS_BATCH,
            attributes={"source": source, "inputs": len(texts)},
        ) as span:
            context = await self._build_context(source)
            facts = [await self._extract_fact(text, source, context) for text in texts]
            aggregate = EmotionalQuadrant.average(f.emotional_impact for f in facts)

            async with self._lock:
                for fact in facts:
                    await self._store.store_fact(fact)
                await self._persist_impact(source, facts, aggregate)
                patterns = await self.pattern_store.process_facts(facts)
                state = self._commit(source, facts, aggregate)

            degraded = sum(self._provider.degradations.values()) - degraded_before
            span.set_attribute("patterns_touched", len(patterns))
            span.set_attribute("provider_degradations", degraded)

        logger.info(f"Processed batch of {len(facts)} {source} inputs (patterns={len(patterns)})")
        return BatchProcessingResult(
            facts=facts,
            emotional_state=state,
            aggregate_impact=aggregate,
            patterns=patterns,
            confidence=self.emotional_state.confidence(aggregate),
        )

    async def run_sleep_cycle(self) -> Optional[SleepCycleResult]:
        return await self.sleep_cycle.run()

    def start_sleep_cycle(self) -> None:
        self.scheduler.start()

    async def stop_sleep_cycle(self) -> None:
        await self.scheduler.stop()

    def get_emotional_state(self) -> EmotionalQuadrant:
        return self.emotional_state.quadrant

    async def get_emotional_history(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> List[EmotionalSnapshot]:
        end = end or utc_now()
        start = start or end - timedelta(hours=self.config.memory.short_term_retention_hours)
        return await self._store.get_emotional_history(start, end)

    async def get_emotional_trends(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        context_type: SensoryInputType | None = None,
    ) -> List[EmotionalTrend]:
        """Hourly emotional trend points, by default over the short-term retention window."""
        if context_type is not None:
            self._check_source(context_type)
        end = end or utc_now()
        start = start or end - timedelta(hours=self.config.memory.short_term_retention_hours)
        return await self._store.get_emotional_trends(start, end, context_type)

    async def get_context_history(
        self, source: SensoryInputType, limit: int | None = None
    ) -> List[ContextHistoryRecord]:
        self._check_source(source)
        return await self._store.get_context_history(
            source, limit or self.config.memory.context_retention_size
        )

    async def get_significant_patterns(self, limit: int | None = None) -> List[Pattern]:
        return await self.pattern_store.get_significant_patterns(limit)

    async def find_cross_context_patterns(self) -> List[CrossContextPattern]:
        """Group significant patterns whose signatures recur across input channels."""
        patterns = await self.pattern_store.get_significant_patterns()
        known: Dict[str, str] = {f.id: f.source for f in self.working_memory.get_facts()}
        for context in self.sensory.contexts():
            known.update({f.id: f.source for f in context.recent_facts})

        fact_sources: Dict[str, str] = {}
        for pattern in patterns:
            for fact_id in pattern.facts:
                if fact_id in known:
                    fact_sources[fact_id] = known[fact_id]
                    continue
                fact = await self._store.get_fact(fact_id)
                if fact is not None:
                    fact_sources[fact_id] = fact.source
        return find_cross_context_patterns(
            patterns, fact_sources, neutral_threshold=self.config.memory.neutral_threshold
        )

    async def cleanup(self) -> None:
        """Apply the retention policy to the store and the pattern cache."""
        await self.pattern_store.cleanup()

    async def reset(self) -> None:
        """Forget short-term state: working memory, sensory windows and mood."""
        async with self._lock:
            self.working_memory.clear()
            self.sensory.clear_all()
            self.emotional_state.reset()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self._provider.aclose()
        await self._store.close()


__all__ = ["CognitiveOrchestrator"]
