"""
Pattern Store - Long-term clustering of similar facts

WHAT: Cache-aside pattern collection with merge, decayed strengthening and pruning
WHERE: limbic/runtime/memory/pattern_store.py - long-term memory layer
WHO: Orchestrator (single and batch ingestion) and sleep cycle (pruning)
TIME: Strengthen O(1) + one store round-trip; consolidate O(n) over cached patterns

The in-process cache mirrors the backing ``VectorStore``. It is reloaded by
``refresh()`` and whenever it is older than ``cache_ttl_seconds``. Every
operation holds one ``asyncio.Lock`` across its read -> await -> write
sequence, so two strengthen calls on the same pattern cannot interleave.

Boundary Notes:
- Weights are clamped to [0, 1] whenever they are written
- Emotional re-weighting in ``find_similar_patterns`` is presentation-only
- Unknown pattern ids raise ``NotFoundError``
- ``StoreError`` from the backing store propagates unchanged
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from limbic.config.memory import MemoryConfig

from .errors import InvalidInputError, NotFoundError
from .models import (
    DIMENSIONS,
    CrossContextPattern,
    EmotionalQuadrant,
    Fact,
    Pattern,
    clamp,
    utc_now,
)
from .vector_store import VectorStore, cosine_similarity

logger = logging.getLogger(__name__)

EmotionalContext = Union[EmotionalQuadrant, Mapping[str, float]]

SECONDS_PER_DAY = 86400.0


def _context_values(context: EmotionalContext) -> Dict[str, float]:
    values = context.as_dict() if isinstance(context, EmotionalQuadrant) else context
    return {dim: float(values[dim]) for dim in DIMENSIONS if dim in values}


def emotional_similarity(context: EmotionalContext, signature: EmotionalQuadrant) -> float:
    """Mean of ``context[d] * signature[d]`` over the dimensions present in ``context``."""
    values = _context_values(context)
    if not values:
        return 0.0
    return sum(value * getattr(signature, dim) for dim, value in values.items()) / len(values)


def find_cross_context_patterns(
    patterns: Sequence[Pattern],
    fact_sources: Mapping[str, str],
    *,
    neutral_threshold: float = 0.1,
) -> List[CrossContextPattern]:
    """
    Group patterns sharing an emotional signature across input channels.

    Args:
        patterns: Candidate patterns (usually the significant ones)
        fact_sources: Fact id -> sensory input type of that fact
        neutral_threshold: Dimensions at or below this value do not count
            towards the signature key

    Returns:
        One CrossContextPattern per group of >= 2 patterns spanning >= 2 channels
    """
    if not patterns:
        return []

    groups: Dict[str, List[Pattern]] = defaultdict(list)
    for pattern in patterns:
        groups[pattern.emotional_signature.signature_key(neutral_threshold)].append(pattern)

    total = len(patterns)
    results: List[CrossContextPattern] = []
    for key, group in groups.items():
        if len(group) < 2:
            continue
        contexts = sorted(
            {fact_sources[fid] for pattern in group for fid in pattern.facts if fid in fact_sources}
        )
        if len(contexts) < 2:
            continue
        results.append(
            CrossContextPattern(
                source_patterns=[p.id for p in group],
                source_contexts=contexts,
                weight=clamp(sum(p.weight for p in group) / len(group), 0.0, 1.0),
                emotional_signature=EmotionalQuadrant.average(p.emotional_signature for p in group),
                confidence=len(group) / total,
            )
        )
        logger.debug(f"Cross-context group '{key}' spans {contexts} ({len(group)} patterns)")
    return results


class PatternStore:
    """Maintains weighted fact clusters on top of a VectorStore."""

    def __init__(
        self,
        store: VectorStore,
        config: Optional[MemoryConfig] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self.config = config or MemoryConfig()
        self._clock = clock
        self._cache: Dict[str, Pattern] = {}
        self._loaded_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def cached_patterns(self) -> List[Pattern]:
        return list(self._cache.values())

    def get_cached(self, pattern_id: str) -> Optional[Pattern]:
        return self._cache.get(pattern_id)

    # ------------------ cache -------------------
    async def refresh(self) -> None:
        """Reload the cache from the backing store."""
        async with self._lock:
            await self._refresh_unlocked()

    async def _refresh_unlocked(self) -> None:
        patterns = await self._store.load_patterns()
        self._cache = {p.id: p for p in patterns}
        self._loaded_at = time.monotonic()
        logger.debug(f"Pattern cache refreshed ({len(self._cache)} patterns)")

    async def _ensure_fresh(self) -> None:
        if self._loaded_at is None or time.monotonic() - self._loaded_at > self.config.cache_ttl_seconds:
            await self._refresh_unlocked()

    # ------------------ operations --------------
    async def store_pattern(self, pattern: Pattern) -> Pattern:
        if not isinstance(pattern, Pattern):
            raise InvalidInputError(f"Pattern store only accepts Pattern, got {type(pattern).__name__}")
        async with self._lock:
            await self._ensure_fresh()
            return await self._store_unlocked(pattern)

    async def _store_unlocked(self, pattern: Pattern) -> Pattern:
        stored = await self._store.store_pattern(pattern)
        self._cache[stored.id] = stored
        return stored

    async def find_similar_patterns(
        self,
        embedding: Sequence[float],
        threshold: Optional[float] = None,
        emotional_context: Optional[EmotionalContext] = None,
        limit: Optional[int] = None,
    ) -> List[Pattern]:
        """
        Patterns containing any fact similar to ``embedding``.

        With ``emotional_context`` each returned copy carries the weight
        ``weight * (1 + emotional_similarity)``; the cache and the store keep
        the unweighted pattern.
        """
        async with self._lock:
            await self._ensure_fresh()
            return await self._find_similar_unlocked(embedding, threshold, emotional_context, limit)

    async def _find_similar_unlocked(
        self,
        embedding: Sequence[float],
        threshold: Optional[float],
        emotional_context: Optional[EmotionalContext],
        limit: Optional[int],
    ) -> List[Pattern]:
        if not embedding:
            return []
        similar = await self._store.find_similar_facts(
            embedding,
            self.config.similarity_threshold if threshold is None else threshold,
            limit or self.config.similar_fact_limit,
        )
        if not similar:
            return []
        patterns = await self._store.find_patterns_with_facts(s.fact.id for s in similar)
        for pattern in patterns:
            self._cache[pattern.id] = pattern
        if emotional_context is None:
            return patterns
        return [
            p.model_copy(
                update={"weight": p.weight * (1.0 + emotional_similarity(emotional_context, p.emotional_signature))}
            )
            for p in patterns
        ]

    async def strengthen_pattern(
        self,
        pattern_id: str,
        amount: float,
        emotional_context: Optional[EmotionalContext] = None,
    ) -> Pattern:
        """
        Decay a pattern's weight by its age, then reinforce it by ``amount``.

        Args:
            pattern_id: Id of a cached/stored pattern
            amount: Reinforcement added after decay
            emotional_context: Optional context scaling the reinforcement and
                pulling the signature halfway towards itself

        Returns:
            The updated pattern (weight <= 1)

        Raises:
            NotFoundError: If no pattern with ``pattern_id`` exists
        """
        async with self._lock:
            await self._ensure_fresh()
            return await self._strengthen_unlocked(pattern_id, amount, emotional_context)

    async def _strengthen_unlocked(
        self,
        pattern_id: str,
        amount: float,
        emotional_context: Optional[EmotionalContext],
    ) -> Pattern:
        pattern = self._cache.get(pattern_id)
        if pattern is None:
            raise NotFoundError(f"Pattern {pattern_id} not found")

        now = self._clock()
        elapsed = max(0.0, (now - pattern.last_accessed).total_seconds())
        decay_factor = math.exp(-elapsed / (self.config.pattern_half_life_days * SECONDS_PER_DAY))
        decayed = pattern.weight * decay_factor

        reinforcement = 1.0
        signature = pattern.emotional_signature
        if emotional_context is not None:
            reinforcement += emotional_similarity(emotional_context, signature)
            merged = signature.as_dict()
            for dim, value in _context_values(emotional_context).items():
                merged[dim] = (merged[dim] + value) / 2.0
            signature = EmotionalQuadrant.from_mapping(merged)

        updated = pattern.model_copy(
            update={
                "weight": clamp(decayed + amount * reinforcement, 0.0, 1.0),
                "emotional_signature": signature,
                "last_accessed": now,
            }
        )
        await self._store.update_pattern(updated)
        self._cache[pattern_id] = updated
        logger.debug(
            f"Strengthened pattern {pattern_id}: {pattern.weight:.3f} -> {updated.weight:.3f} "
            f"(decay={decay_factor:.3f}, reinforcement={reinforcement:.3f})"
        )
        return updated

    async def get_significant_patterns(self, limit: Optional[int] = None) -> List[Pattern]:
        async with self._lock:
            patterns = await self._store.get_significant_patterns(
                limit or self.config.significant_pattern_limit
            )
            for pattern in patterns:
                self._cache[pattern.id] = pattern
            return sorted(patterns, key=lambda p: p.weight, reverse=True)

    async def consolidate(self) -> List[str]:
        """Prune every pattern with weight <= ``pattern_prune_weight``; returns the removed ids."""
        async with self._lock:
            await self._ensure_fresh()
            cutoff = self.config.pattern_prune_weight
            weak = [p.id for p in self._cache.values() if p.weight <= cutoff]
            if weak:
                await self._store.remove_patterns(weak)
                for pattern_id in weak:
                    self._cache.pop(pattern_id, None)
            logger.info(f"Pattern consolidation pruned {len(weak)} patterns (cutoff={cutoff})")
            return weak

    async def consolidate_memory(self, facts: Iterable[Fact]) -> List[Pattern]:
        """Strengthen patterns similar to each fact, or promote heavy facts to new patterns."""
        async with self._lock:
            await self._ensure_fresh()
            touched: List[Pattern] = []
            for fact in facts:
                touched.extend(await self._consolidate_fact_unlocked(fact))
            return touched

    async def _consolidate_fact_unlocked(self, fact: Fact) -> List[Pattern]:
        similar = await self._find_similar_unlocked(fact.embedding, None, None, None)
        if similar:
            return [await self._strengthen_unlocked(p.id, fact.weight, None) for p in similar]
        if fact.weight > self.config.pattern_creation_threshold:
            created = Pattern(
                facts=[fact.id],
                weight=fact.weight,
                emotional_signature=fact.emotional_impact,
                last_accessed=self._clock(),
            )
            logger.debug(f"Promoted fact {fact.id} to single-fact pattern {created.id}")
            return [await self._store_unlocked(created)]
        return []

    async def process_fact(self, fact: Fact) -> List[Pattern]:
        """
        Ingestion path: cluster ``fact`` with its nearest stored neighbours.

        With at least two similar facts (cosine >= ``similarity_threshold``,
        the fact itself excluded) the fact joins an existing pattern covering
        any of them, or a new pattern is created. Otherwise the fact goes
        through ``consolidate_memory``.
        """
        if not isinstance(fact, Fact):
            raise InvalidInputError(f"Pattern store only accepts Fact, got {type(fact).__name__}")
        async with self._lock:
            await self._ensure_fresh()
            similar: List[Fact] = []
            if fact.embedding:
                # the fact is usually stored already and comes back as its own best hit
                hits = await self._store.find_similar_facts(
                    fact.embedding, self.config.similarity_threshold, self.config.similar_fact_limit + 1
                )
                similar = [hit.fact for hit in hits if hit.fact.id != fact.id]
                similar = similar[: self.config.similar_fact_limit]
            if len(similar) >= 2:
                return [await self._merge_or_create_unlocked([fact, *similar])]
            return await self._consolidate_fact_unlocked(fact)

    async def process_facts(self, facts: Sequence[Fact]) -> List[Pattern]:
        """
        Batch ingestion: cluster facts that arrived together.

        Facts are visited in order. Each unvisited fact claims every later
        unvisited fact whose embedding reaches ``similarity_threshold``; a
        group of three or more becomes a pattern (merged into an existing
        pattern covering any member, else created). Smaller groups are left
        alone, and nothing is looked up in the store.

        Raises:
            InvalidInputError: If any item is not a Fact
        """
        batch = list(facts)
        for fact in batch:
            if not isinstance(fact, Fact):
                raise InvalidInputError(f"Pattern store only accepts Fact, got {type(fact).__name__}")
        async with self._lock:
            await self._ensure_fresh()
            seen: set[str] = set()
            touched: List[Pattern] = []
            for fact in batch:
                if fact.id in seen:
                    continue
                seen.add(fact.id)
                group = [
                    other
                    for other in batch
                    if other.id not in seen
                    and cosine_similarity(fact.embedding, other.embedding) >= self.config.similarity_threshold
                ]
                seen.update(other.id for other in group)
                if len(group) >= 2:
                    touched.append(await self._merge_or_create_unlocked([fact, *group]))
            logger.info(f"Batch of {len(batch)} facts produced {len(touched)} patterns")
            return touched

    async def _merge_or_create_unlocked(self, facts: List[Fact]) -> Pattern:
        ids = [f.id for f in facts]
        # signature covers only the facts supplied here, not the pattern's full history
        signature = EmotionalQuadrant.average(f.emotional_impact for f in facts)
        wanted = set(ids)
        existing = next((p for p in self._cache.values() if wanted.intersection(p.facts)), None)

        if existing is not None:
            merged_ids = list(existing.facts) + [fid for fid in ids if fid not in existing.facts]
            updated = existing.model_copy(
                update={
                    "facts": merged_ids,
                    "weight": clamp(existing.weight + self.config.weight_increment, 0.0, 1.0),
                    "emotional_signature": signature,
                    "last_accessed": self._clock(),
                }
            )
            await self._store.update_pattern(updated)
            self._cache[updated.id] = updated
            logger.debug(f"Merged {len(ids)} facts into pattern {updated.id} (weight={updated.weight:.3f})")
            return updated

        mean_weight = sum(f.weight for f in facts) / len(facts)
        mean_intensity = sum(f.emotional_impact.intensity() for f in facts) / len(facts)
        created = Pattern(
            facts=list(dict.fromkeys(ids)),
            weight=clamp((mean_weight + mean_intensity) / 2.0, 0.0, 1.0),
            emotional_signature=signature,
            last_accessed=self._clock(),
        )
        logger.debug(f"Created pattern {created.id} from {len(ids)} similar facts")
        return await self._store_unlocked(created)

    async def cleanup(
        self, retention_days: Optional[int] = None, min_weight: Optional[float] = None
    ) -> None:
        """Drop stale history from the store and stale or weak patterns from the cache."""
        days = self.config.pattern_retention_days if retention_days is None else retention_days
        floor = self.config.pattern_threshold if min_weight is None else min_weight
        async with self._lock:
            await self._store.cleanup_old_data(days, floor)
            now = self._clock()
            max_age = days * SECONDS_PER_DAY
            stale = [
                p.id
                for p in self._cache.values()
                if (now - p.last_accessed).total_seconds() > max_age or p.weight < floor
            ]
            for pattern_id in stale:
                del self._cache[pattern_id]
            logger.info(f"Pattern cleanup evicted {len(stale)} cached patterns")


__all__ = [
    "PatternStore",
    "emotional_similarity",
    "find_cross_context_patterns",
]
