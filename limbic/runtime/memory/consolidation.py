"""
Sleep Cycle - Periodic replay and consolidation

WHAT: Replays salient facts at reduced impact, renormalises and prunes memory
WHERE: limbic/runtime/memory/consolidation.py - background consolidation layer
WHO: Orchestrator (on demand) and SleepCycleScheduler (every sleep interval)
TIME: O(k) replay for k sampled facts plus one optional pruning round-trip

Routine:
1. Sample the top-K facts of working memory by weight
2. Replay each fact's impact scaled by ``emotional_decay_rate`` through
   ``EmotionalState.update`` (failures are counted, never raised)
3. Optionally decay the state itself (``sleep_state_decay_rate``, off by default)
4. Renormalise working-memory weights (``WorkingMemory.consolidate``)
5. With probability ``pattern_prune_probability`` prune weak patterns

Boundary Notes:
- A run is non-re-entrant: an overlapping call is skipped and returns None
- The shared lock is the orchestrator's, so replay never interleaves with ingestion
- ``StoreError`` raised while pruning propagates to the caller
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import List, Optional

from limbic.config.memory import MemoryConfig

from .emotional_state import EmotionalState
from .errors import LimbicError
from .models import EmotionalQuadrant, Fact, SleepCycleResult, utc_now
from .pattern_store import PatternStore
from .telemetry import SPAN_SLEEP_CYCLE, NoOpTelemetryClient, TelemetryClient
from .working_memory import WorkingMemory

logger = logging.getLogger(__name__)


class SleepCycle:
    """Single consolidation pass over working memory, emotional state and patterns."""

    def __init__(
        self,
        working_memory: WorkingMemory,
        emotional_state: EmotionalState,
        pattern_store: PatternStore,
        config: Optional[MemoryConfig] = None,
        *,
        lock: Optional[asyncio.Lock] = None,
        rng: Optional[random.Random] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.working_memory = working_memory
        self.emotional_state = emotional_state
        self.pattern_store = pattern_store
        self.config = config or MemoryConfig()
        self._lock = lock or asyncio.Lock()
        self._rng = rng or random.Random()
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._running = False
        self.last_result: Optional[SleepCycleResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> Optional[SleepCycleResult]:
        if self._running:
            logger.info("Sleep cycle already in progress; skipping overlapping run")
            return None

        self._running = True
        try:
            with self._telemetry.span(SPAN_SLEEP_CYCLE) as span:
                async with self._lock:
                    result = await self._run_locked()
                span.set_attribute("facts_processed", len(result.processed_facts))
                span.set_attribute("failures", result.failures)
                span.set_attribute("patterns_pruned", len(result.pruned_patterns))
                span.set_attribute("pattern_prune_ran", result.pattern_prune_ran)
        finally:
            self._running = False

        self.last_result = result
        logger.info(f"Sleep cycle complete: {result.summary()}")
        return result

    async def _run_locked(self) -> SleepCycleResult:
        start = time.perf_counter()
        result = SleepCycleResult(started_at=utc_now())

        sample = self.working_memory.get_sample_by_weight(self.config.sleep_cycle_fact_count)
        processed: List[Fact] = []
        journey: List[EmotionalQuadrant] = []
        for fact in sample:
            try:
                reduced = fact.emotional_impact.scale(self.config.emotional_decay_rate)
                journey.append(self.emotional_state.update(reduced))
                processed.append(fact)
            except (LimbicError, ValueError) as exc:
                result.failures += 1
                logger.warning(f"Sleep replay failed for fact {fact.id}: {exc}")
        result.processed_facts = processed
        result.emotional_journey = journey

        decay_rate = self.config.sleep_state_decay_rate
        if decay_rate > 0:
            self.emotional_state.decay(decay_rate)
            result.emotional_decay = decay_rate

        self.working_memory.consolidate()

        if self._rng.random() < self.config.pattern_prune_probability:
            result.pruned_patterns = await self.pattern_store.consolidate()
            result.pattern_prune_ran = True

        result.duration_ms = (time.perf_counter() - start) * 1000.0
        return result


class SleepCycleScheduler:
    """Runs a SleepCycle every ``interval_seconds`` on a background asyncio task."""

    def __init__(self, cycle: SleepCycle, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self.cycle = cycle
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer; a second call while running is a no-op."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="limbic-sleep-cycle")
        logger.info(f"Sleep cycle scheduler started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        """Cancel the timer and wait for it; safe to call when not running."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            # swallow the timer's cancellation, never one aimed at the caller
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        logger.info("Sleep cycle scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.cycle.run()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"Scheduled sleep cycle failed: {exc}", exc_info=True)


__all__ = ["SleepCycle", "SleepCycleScheduler"]
