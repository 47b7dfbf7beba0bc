"""
Working Memory - Bounded cache of recent salient facts

WHAT: Capacity-bounded fact buffer with recency or weight eviction
WHERE: limbic/runtime/memory/working_memory.py - short-term memory layer
WHO: Orchestrator inserting facts, sleep cycle sampling and renormalising
TIME: Insert O(1) for recency eviction, O(n) for weight eviction

The buffer is ordered oldest-first. Capacity is checked strictly before an
insert, so the buffer never holds more than ``capacity`` facts. Weight
eviction removes the global minimum, lowest index first on ties.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Deque, Iterable

from limbic.config.memory import EvictionStrategy

from .errors import InvalidInputError
from .models import Fact, utc_now

logger = logging.getLogger(__name__)

EVICTION_STRATEGIES: tuple[str, ...] = ("recency", "weight")


@dataclass(slots=True)
class WorkingMemoryMetrics:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    avg_access_time_ms: float = 0.0
    last_updated: datetime = field(default_factory=utc_now)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class WorkingMemory:
    """Maintains the rolling buffer of facts and its access metrics."""

    def __init__(
        self,
        *,
        capacity: int = 10,
        eviction_strategy: EvictionStrategy = "recency",
        eviction_threshold: float = 0.5,
        name: str = "working-memory",
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if eviction_strategy not in EVICTION_STRATEGIES:
            raise ValueError(f"Unknown eviction strategy '{eviction_strategy}'")
        self.name = name
        self._facts: Deque[Fact] = deque()
        self._capacity = capacity
        self._strategy: EvictionStrategy = eviction_strategy
        self._eviction_threshold = eviction_threshold
        self._metrics = WorkingMemoryMetrics()
        self.last_processed: datetime = utc_now()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def eviction_strategy(self) -> EvictionStrategy:
        return self._strategy

    @property
    def eviction_threshold(self) -> float:
        return self._eviction_threshold

    @property
    def metrics(self) -> WorkingMemoryMetrics:
        snapshot = self._metrics
        return WorkingMemoryMetrics(
            hits=snapshot.hits,
            misses=snapshot.misses,
            evictions=snapshot.evictions,
            avg_access_time_ms=snapshot.avg_access_time_ms,
            last_updated=snapshot.last_updated,
        )

    def __len__(self) -> int:
        return len(self._facts)

    def add_fact(self, fact: Fact) -> None:
        """Insert ``fact``, evicting one entry first when the buffer is full.

        Re-adding a fact id already in the buffer replaces the old entry and
        moves it to the newest position.
        """

        if not isinstance(fact, Fact):
            raise InvalidInputError(f"Working memory only accepts Fact, got {type(fact).__name__}")

        start = time.perf_counter()
        self._discard(fact.id)
        if len(self._facts) >= self._capacity:
            if self._strategy == "recency":
                self.evict_oldest()
            else:
                self.evict_by_weight()

        self._facts.append(fact)
        self.last_processed = utc_now()
        self._record_access(start, hit=True)

    def extend(self, facts: Iterable[Fact]) -> None:
        for fact in facts:
            self.add_fact(fact)

    def get_facts(self) -> tuple[Fact, ...]:
        """Snapshot of the buffer, oldest first."""
        return tuple(self._facts)

    def retrieve(self, fact_id: str) -> Fact | None:
        start = time.perf_counter()
        found = next((f for f in self._facts if f.id == fact_id), None)
        self._record_access(start, hit=found is not None)
        return found

    def remove(self, fact_id: str) -> bool:
        start = time.perf_counter()
        removed = self._discard(fact_id)
        self._record_access(start, hit=removed)
        return removed

    def evict_oldest(self) -> Fact | None:
        if not self._facts:
            return None
        evicted = self._facts.popleft()
        self._metrics.evictions += 1
        logger.debug(f"Evicted oldest fact {evicted.id} (weight={evicted.weight:.3f})")
        return evicted

    def evict_by_weight(self) -> Fact | None:
        if not self._facts:
            return None
        min_index = 0
        for index, candidate in enumerate(self._facts):
            if candidate.weight < self._facts[min_index].weight:
                min_index = index
        evicted = self._facts[min_index]
        del self._facts[min_index]
        self._metrics.evictions += 1
        logger.debug(f"Evicted lightest fact {evicted.id} (weight={evicted.weight:.3f})")
        return evicted

    def get_sample_by_weight(self, n: int = 5) -> list[Fact]:
        """Top-``n`` facts by descending weight; ties keep buffer order."""
        if n <= 0:
            return []
        return sorted(self._facts, key=lambda f: f.weight, reverse=True)[:n]

    def salient_facts(self) -> list[Fact]:
        """Facts whose weight reaches the eviction threshold."""
        return [f for f in self._facts if f.weight >= self._eviction_threshold]

    def consolidate(self) -> None:
        """Rescale weights so the heaviest fact ends at 1.0 (no pruning)."""

        if not self._facts:
            return
        max_weight = max(f.weight for f in self._facts)
        if max_weight <= 0:
            return
        self._facts = deque(f.with_weight(f.weight / max_weight) for f in self._facts)
        logger.debug(f"Consolidated {len(self._facts)} facts (max weight was {max_weight:.3f})")

    def clear(self) -> None:
        """Empty the buffer; metrics are kept."""
        self._facts.clear()
        self.last_processed = utc_now()

    def summarize(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": len(self._facts),
            "capacity": self._capacity,
            "strategy": self._strategy,
            "salient": len(self.salient_facts()),
            "metrics": self._metrics.as_dict(),
        }

    def _discard(self, fact_id: str) -> bool:
        for index, candidate in enumerate(self._facts):
            if candidate.id == fact_id:
                del self._facts[index]
                return True
        return False

    def _record_access(self, start: float, *, hit: bool) -> None:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if hit:
            self._metrics.hits += 1
        else:
            self._metrics.misses += 1
        total = self._metrics.hits + self._metrics.misses
        self._metrics.avg_access_time_ms += (elapsed_ms - self._metrics.avg_access_time_ms) / total
        self._metrics.last_updated = utc_now()


__all__ = ["EVICTION_STRATEGIES", "WorkingMemory", "WorkingMemoryMetrics"]
