"""
Vector Store - Persistence boundary for facts, patterns, emotional and context history

WHAT: Async store protocol plus an in-process implementation
WHERE: limbic/runtime/memory/vector_store.py - interfaces with persistence
WHO: Pattern store and orchestrator persisting long-term memory
TIME: In-process search O(n·d); remote adapters bound by their SLOs

Every method is a remote call in production and may raise ``StoreError``.
The in-process store mirrors the Postgres adapter's semantics (cosine
similarity at or above the threshold, best first; hourly trend buckets) so
tests and offline runs exercise the same contract.

Boundary Notes:
- Upserts are keyed by id; callers never rely on insertion order
- Stored records are frozen models, handed out without copying
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np

from .errors import NotFoundError, StoreError
from .models import (
    DIMENSIONS,
    ContextHistoryRecord,
    EmotionalSnapshot,
    EmotionalTrend,
    Fact,
    Pattern,
    ScoredFact,
    utc_now,
)

logger = logging.getLogger(__name__)


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors (0 for empty/zero vectors)."""
    if len(vec1) == 0 or len(vec2) == 0 or len(vec1) != len(vec2):
        return 0.0
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)
    norm = np.linalg.norm(v1) * np.linalg.norm(v2)
    return float(np.dot(v1, v2) / norm) if norm > 0 else 0.0


def _hour_slice(timestamp: datetime) -> datetime:
    return timestamp.replace(minute=0, second=0, microsecond=0)


def _correlation(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    # undefined for a single sample or a constant series, like Postgres corr()
    if len(xs) < 2:
        return None
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        return None
    return float(np.corrcoef(x, y)[0, 1])


def summarize_trends(snapshots: Iterable[EmotionalSnapshot]) -> List[EmotionalTrend]:
    """
    Aggregate snapshots into hourly trend points, oldest first.

    Each point carries the mean intensity of the hour, the quadrant with the
    highest mean value (ties go to the alphabetically first name) and the
    Pearson correlation between intensity and that quadrant's value.
    """
    by_hour: Dict[datetime, List[EmotionalSnapshot]] = defaultdict(list)
    for snapshot in snapshots:
        by_hour[_hour_slice(snapshot.timestamp)].append(snapshot)

    trends: List[EmotionalTrend] = []
    for hour in sorted(by_hour):
        rows = by_hour[hour]
        means = {
            dim: sum(getattr(s.quadrant, dim) for s in rows) / len(rows) for dim in sorted(DIMENSIONS)
        }
        dominant = max(means, key=means.__getitem__)
        intensities = [s.intensity for s in rows]
        trends.append(
            EmotionalTrend(
                time_slice=hour,
                avg_intensity=sum(intensities) / len(rows),
                dominant_quadrant=dominant,
                context_correlation=_correlation(
                    intensities, [getattr(s.quadrant, dominant) for s in rows]
                ),
                samples=len(rows),
            )
        )
    return trends


class VectorStore(Protocol):
    """Abstract interface for long-term memory persistence."""

    async def store_fact(self, fact: Fact) -> Fact:
        """Persist a fact; returns the stored record."""

    async def get_fact(self, fact_id: str) -> Optional[Fact]:
        """Fetch a fact by id, or None when unknown."""

    async def find_similar_facts(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[ScoredFact]:
        """Facts whose cosine similarity to ``embedding`` reaches ``threshold``, best first."""

    async def store_pattern(self, pattern: Pattern) -> Pattern:
        """Upsert a pattern by id; returns the stored record."""

    async def update_pattern(self, pattern: Pattern) -> None:
        """Overwrite an existing pattern; raises NotFoundError when unknown."""

    async def load_patterns(self) -> List[Pattern]:
        """Every stored pattern (used to refresh in-process caches)."""

    async def find_patterns_with_facts(self, fact_ids: Iterable[str]) -> List[Pattern]:
        """Patterns containing any of ``fact_ids``."""

    async def get_significant_patterns(self, limit: int) -> List[Pattern]:
        """Up to ``limit`` patterns ordered by descending weight."""

    async def remove_patterns(self, pattern_ids: Iterable[str]) -> None:
        """Delete patterns by id (unknown ids are ignored)."""

    async def cleanup_old_data(self, retention_days: int, min_weight: float) -> None:
        """Drop stale emotional and context history plus weak, stale patterns."""

    async def store_emotional_state(self, snapshot: EmotionalSnapshot) -> str:
        """Persist an emotional snapshot; returns its id."""

    async def get_emotional_history(self, start: datetime, end: datetime) -> List[EmotionalSnapshot]:
        """Snapshots within [start, end], oldest first."""

    async def get_emotional_trends(
        self, start: datetime, end: datetime, context_type: Optional[str] = None
    ) -> List[EmotionalTrend]:
        """Hourly trend points for [start, end], optionally limited to one sensory channel."""

    async def store_context_history(self, record: ContextHistoryRecord) -> str:
        """Persist a sensory-context record; returns its id."""

    async def get_context_history(self, context_type: str, limit: int) -> List[ContextHistoryRecord]:
        """Up to ``limit`` records for ``context_type``, newest first."""

    async def close(self) -> None:
        """Release connections."""


class InMemoryVectorStore(VectorStore):
    """Dictionary-backed store with numpy cosine search."""

    def __init__(self) -> None:
        self._facts: Dict[str, Fact] = {}
        self._patterns: Dict[str, Pattern] = {}
        self._emotional_history: List[EmotionalSnapshot] = []
        self._context_history: List[ContextHistoryRecord] = []
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("In-memory store is closed")

    # ------------------ facts -------------------
    async def store_fact(self, fact: Fact) -> Fact:
        self._check_open()
        self._facts[fact.id] = fact
        return fact

    async def get_fact(self, fact_id: str) -> Optional[Fact]:
        self._check_open()
        return self._facts.get(fact_id)

    async def find_similar_facts(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[ScoredFact]:
        self._check_open()
        scored = [
            ScoredFact(fact=fact.model_copy(update={"similarity": sim}), similarity=sim)
            for fact in self._facts.values()
            if (sim := cosine_similarity(embedding, fact.embedding)) >= threshold
        ]
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:limit]

    # ------------------ patterns -----------------
    async def store_pattern(self, pattern: Pattern) -> Pattern:
        self._check_open()
        self._patterns[pattern.id] = pattern
        return pattern

    async def update_pattern(self, pattern: Pattern) -> None:
        self._check_open()
        if pattern.id not in self._patterns:
            raise NotFoundError(f"Pattern {pattern.id} not found")
        self._patterns[pattern.id] = pattern

    async def load_patterns(self) -> List[Pattern]:
        self._check_open()
        return list(self._patterns.values())

    async def find_patterns_with_facts(self, fact_ids: Iterable[str]) -> List[Pattern]:
        self._check_open()
        wanted = set(fact_ids)
        if not wanted:
            return []
        return [p for p in self._patterns.values() if wanted.intersection(p.facts)]

    async def get_significant_patterns(self, limit: int) -> List[Pattern]:
        self._check_open()
        ordered = sorted(self._patterns.values(), key=lambda p: p.weight, reverse=True)
        return ordered[:limit]

    async def remove_patterns(self, pattern_ids: Iterable[str]) -> None:
        self._check_open()
        for pattern_id in pattern_ids:
            self._patterns.pop(pattern_id, None)

    async def cleanup_old_data(self, retention_days: int, min_weight: float) -> None:
        self._check_open()
        cutoff = utc_now() - timedelta(days=retention_days)
        self._emotional_history = [s for s in self._emotional_history if s.timestamp >= cutoff]
        self._context_history = [r for r in self._context_history if r.timestamp >= cutoff]
        stale = [
            p.id
            for p in self._patterns.values()
            if p.last_accessed < cutoff and p.weight < min_weight
        ]
        for pattern_id in stale:
            del self._patterns[pattern_id]
        logger.debug(f"Cleanup removed {len(stale)} stale patterns")

    # ------------------ emotional history --------
    async def store_emotional_state(self, snapshot: EmotionalSnapshot) -> str:
        self._check_open()
        self._emotional_history.append(snapshot)
        return snapshot.id

    async def get_emotional_history(self, start: datetime, end: datetime) -> List[EmotionalSnapshot]:
        self._check_open()
        rows = [s for s in self._emotional_history if start <= s.timestamp <= end]
        return sorted(rows, key=lambda s: s.timestamp)

    async def get_emotional_trends(
        self, start: datetime, end: datetime, context_type: Optional[str] = None
    ) -> List[EmotionalTrend]:
        history = await self.get_emotional_history(start, end)
        if context_type is not None:
            linked = {
                r.emotional_state_id for r in self._context_history if r.context_type == context_type
            }
            history = [s for s in history if s.id in linked]
        return summarize_trends(history)

    # ------------------ context history ----------
    async def store_context_history(self, record: ContextHistoryRecord) -> str:
        self._check_open()
        self._context_history.append(record)
        return record.id

    async def get_context_history(self, context_type: str, limit: int) -> List[ContextHistoryRecord]:
        self._check_open()
        rows = [r for r in self._context_history if r.context_type == context_type]
        rows.sort(key=lambda r: r.timestamp, reverse=True)
        return rows[:limit]

    async def close(self) -> None:
        self._closed = True


__all__ = [
    "VectorStore",
    "InMemoryVectorStore",
    "cosine_similarity",
    "summarize_trends",
]
