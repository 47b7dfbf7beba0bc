"""
Sensory Context - Per-channel sliding windows of recent facts

WHAT: Recent and contextual fact windows keyed by sensory input type
WHERE: limbic/runtime/memory/sensory_context.py - short-term context layer
WHO: Orchestrator updating windows on ingestion and reading them for extraction
TIME: O(k) per update with k = context_retention_size

Windows are newest-first. ``contextual_memory`` only keeps facts heavier than
``context_threshold``. Facts older than ``context_retention_hours`` are
dropped whenever a window is read or updated. ``project_context`` computes
the windows an update would produce without touching the registry, and
``history_record`` turns a window into a persistable ContextHistoryRecord.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from limbic.config.memory import MemoryConfig

from .errors import InvalidInputError
from .models import SENSORY_INPUT_TYPES, ContextHistoryRecord, Fact, SensoryInputType, utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ContextMetrics:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    avg_access_time_ms: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SensoryContext:
    type: SensoryInputType
    recent_facts: List[Fact] = field(default_factory=list)
    contextual_memory: List[Fact] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utc_now)

    def fact_ids(self) -> List[str]:
        return [f.id for f in self.recent_facts]


class SensoryContextRegistry:
    """Owns one SensoryContext and its metrics per input channel."""

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or MemoryConfig()
        self._clock = clock
        self._contexts: Dict[str, SensoryContext] = {}
        self._metrics: Dict[str, ContextMetrics] = {}

    def _check_type(self, input_type: str) -> None:
        if input_type not in SENSORY_INPUT_TYPES:
            raise InvalidInputError(f"Unknown sensory input type '{input_type}'")

    def _metrics_for(self, input_type: str) -> ContextMetrics:
        return self._metrics.setdefault(input_type, ContextMetrics())

    def _record_access(self, metrics: ContextMetrics, start: float) -> None:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        total = max(1, metrics.hits + metrics.misses)
        metrics.avg_access_time_ms += (elapsed_ms - metrics.avg_access_time_ms) / total

    def _expire(self, context: SensoryContext, metrics: ContextMetrics) -> None:
        cutoff = self._clock() - timedelta(hours=self.config.context_retention_hours)
        recent = [f for f in context.recent_facts if f.timestamp >= cutoff]
        contextual = [f for f in context.contextual_memory if f.timestamp >= cutoff]
        dropped = len(context.recent_facts) - len(recent) + len(context.contextual_memory) - len(contextual)
        if dropped:
            metrics.evictions += dropped
            context.recent_facts = recent
            context.contextual_memory = contextual
            logger.debug(f"Expired {dropped} facts from '{context.type}' context")

    def get_context(self, input_type: SensoryInputType) -> SensoryContext:
        """Return the channel's context, creating an empty one on first access."""
        self._check_type(input_type)
        start = time.perf_counter()
        metrics = self._metrics_for(input_type)
        context = self._contexts.get(input_type)
        if context is None:
            metrics.misses += 1
            context = SensoryContext(type=input_type, last_updated=self._clock())
            self._contexts[input_type] = context
        else:
            metrics.hits += 1
            self._expire(context, metrics)
        self._record_access(metrics, start)
        return context

    def _push(self, window: List[Fact], fact: Fact) -> Tuple[List[Fact], bool]:
        merged = [fact, *(f for f in window if f.id != fact.id)]
        size = self.config.context_retention_size
        return merged[:size], len(merged) > size

    def update_context(self, input_type: SensoryInputType, fact: Fact) -> SensoryContext:
        if not isinstance(fact, Fact):
            raise InvalidInputError(f"Sensory context only accepts Fact, got {type(fact).__name__}")
        context = self.get_context(input_type)
        metrics = self._metrics_for(input_type)

        context.recent_facts, evicted = self._push(context.recent_facts, fact)
        metrics.evictions += int(evicted)
        if fact.weight > self.config.context_threshold:
            context.contextual_memory, evicted = self._push(context.contextual_memory, fact)
            metrics.evictions += int(evicted)

        context.last_updated = self._clock()
        return context

    def project_context(self, input_type: SensoryInputType, facts: Iterable[Fact]) -> SensoryContext:
        """
        The context ``update_context`` would leave behind after ``facts``.

        Works on copies: the registry, its windows and its metrics are untouched,
        so callers can persist the result before committing the update.
        """
        self._check_type(input_type)
        current = self._contexts.get(input_type)
        cutoff = self._clock() - timedelta(hours=self.config.context_retention_hours)
        recent = [f for f in current.recent_facts if f.timestamp >= cutoff] if current else []
        contextual = [f for f in current.contextual_memory if f.timestamp >= cutoff] if current else []
        for fact in facts:
            if not isinstance(fact, Fact):
                raise InvalidInputError(f"Sensory context only accepts Fact, got {type(fact).__name__}")
            recent, _ = self._push(recent, fact)
            if fact.weight > self.config.context_threshold:
                contextual, _ = self._push(contextual, fact)
        return SensoryContext(
            type=input_type,
            recent_facts=recent,
            contextual_memory=contextual,
            last_updated=self._clock(),
        )

    def history_record(
        self, context: SensoryContext, emotional_state_id: Optional[str] = None
    ) -> ContextHistoryRecord:
        """Persistable view of ``context`` with the channel's current metrics."""
        return ContextHistoryRecord(
            context_type=context.type,
            recent_facts=[f.id for f in context.recent_facts],
            contextual_memory=[f.id for f in context.contextual_memory],
            emotional_state_id=emotional_state_id,
            timestamp=context.last_updated,
            metrics=self.get_metrics(context.type).as_dict(),
        )

    def contexts(self) -> List[SensoryContext]:
        return list(self._contexts.values())

    def get_metrics(self, input_type: SensoryInputType) -> ContextMetrics:
        metrics = self._metrics.get(input_type)
        return ContextMetrics(**metrics.as_dict()) if metrics else ContextMetrics()

    def reset_metrics(self, input_type: SensoryInputType) -> None:
        self._metrics[input_type] = ContextMetrics()

    def clear_all(self) -> None:
        self._contexts.clear()
        self._metrics.clear()


__all__ = ["ContextMetrics", "SensoryContext", "SensoryContextRegistry"]
