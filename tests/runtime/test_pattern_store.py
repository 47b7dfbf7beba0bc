import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest

from limbic.config.memory import MemoryConfig
from limbic.runtime.memory.errors import InvalidInputError, NotFoundError
from limbic.runtime.memory.models import EmotionalQuadrant, Fact, Pattern
from limbic.runtime.memory.pattern_store import (
    PatternStore,
    emotional_similarity,
    find_cross_context_patterns,
)
from limbic.runtime.memory.vector_store import InMemoryVectorStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


def make_pattern(weight: float, *, age_days: float = 0.0, signature=None, facts=None) -> Pattern:
    return Pattern(
        facts=facts or ["fact-a"],
        weight=weight,
        emotional_signature=signature or EmotionalQuadrant(),
        last_accessed=NOW - timedelta(days=age_days),
    )


def similar_fact(embedding, joy: float = 0.4, source: str = "read-text") -> Fact:
    return Fact.create(
        content=f"fact {embedding}",
        source=source,
        embedding=list(embedding),
        emotional_impact=EmotionalQuadrant(joy=joy),
    )


@pytest.mark.asyncio
async def test_strengthen_applies_thirty_day_decay():
    store = InMemoryVectorStore()
    pattern = await store.store_pattern(make_pattern(0.5, age_days=30))
    patterns = PatternStore(store, clock=fixed_clock)

    updated = await patterns.strengthen_pattern(pattern.id, 0.3)

    assert updated.weight == pytest.approx(0.5 * math.exp(-1) + 0.3)
    assert updated.weight == pytest.approx(0.484, abs=1e-3)
    assert updated.last_accessed == NOW
    assert (await store.load_patterns())[0].weight == updated.weight


@pytest.mark.asyncio
async def test_strengthen_never_exceeds_one():
    store = InMemoryVectorStore()
    pattern = await store.store_pattern(make_pattern(0.9))
    patterns = PatternStore(store, clock=fixed_clock)

    updated = await patterns.strengthen_pattern(pattern.id, 5.0)
    assert updated.weight == 1.0


@pytest.mark.asyncio
async def test_strengthen_with_emotional_context():
    store = InMemoryVectorStore()
    pattern = await store.store_pattern(make_pattern(0.2, signature=EmotionalQuadrant(joy=0.5)))
    patterns = PatternStore(store, clock=fixed_clock)

    updated = await patterns.strengthen_pattern(pattern.id, 0.2, {"joy": 1.0})

    # similarity = 0.5 over the single present dimension -> reinforcement 1.5
    assert updated.weight == pytest.approx(0.5)
    assert updated.emotional_signature.joy == pytest.approx(0.75)
    assert updated.emotional_signature.calm == 0.0


@pytest.mark.asyncio
async def test_strengthen_unknown_pattern_raises():
    patterns = PatternStore(InMemoryVectorStore(), clock=fixed_clock)
    with pytest.raises(NotFoundError):
        await patterns.strengthen_pattern("missing", 0.1)


@pytest.mark.asyncio
async def test_concurrent_strengthen_calls_are_serialised():
    store = InMemoryVectorStore()
    pattern = await store.store_pattern(make_pattern(0.0))
    patterns = PatternStore(store, clock=fixed_clock)

    await asyncio.gather(*(patterns.strengthen_pattern(pattern.id, 0.05) for _ in range(10)))

    assert patterns.get_cached(pattern.id).weight == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_consolidate_prunes_weak_patterns():
    store = InMemoryVectorStore()
    weak = await store.store_pattern(make_pattern(0.2))
    weaker = await store.store_pattern(make_pattern(0.1))
    strong = await store.store_pattern(make_pattern(0.5))
    patterns = PatternStore(store, clock=fixed_clock)

    removed = await patterns.consolidate()

    assert set(removed) == {weak.id, weaker.id}
    assert [p.id for p in await store.load_patterns()] == [strong.id]
    assert [p.id for p in patterns.cached_patterns] == [strong.id]


@pytest.mark.asyncio
async def test_process_fact_creates_then_merges_pattern():
    store = InMemoryVectorStore()
    first = await store.store_fact(similar_fact([1.0, 0.0, 0.0]))
    second = await store.store_fact(similar_fact([0.99, 0.1, 0.0]))
    patterns = PatternStore(store, clock=fixed_clock)

    incoming = await store.store_fact(similar_fact([1.0, 0.05, 0.0]))
    [created] = await patterns.process_fact(incoming)

    assert set(created.facts) == {first.id, second.id, incoming.id}
    assert created.weight == pytest.approx(0.4)
    assert created.emotional_signature.joy == pytest.approx(0.4)

    later = await store.store_fact(similar_fact([0.98, 0.02, 0.0]))
    [merged] = await patterns.process_fact(later)

    assert merged.id == created.id
    assert later.id in merged.facts
    assert len(merged.facts) == 4
    assert merged.weight == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_process_fact_without_neighbours_promotes_heavy_fact():
    store = InMemoryVectorStore()
    patterns = PatternStore(store, clock=fixed_clock)

    heavy = await store.store_fact(similar_fact([0.0, 1.0, 0.0], joy=0.8))
    light = await store.store_fact(similar_fact([0.0, 0.0, 1.0], joy=0.3))

    [promoted] = await patterns.process_fact(heavy)
    assert promoted.facts == [heavy.id]
    assert promoted.weight == pytest.approx(0.8)
    assert await patterns.process_fact(light) == []


@pytest.mark.asyncio
async def test_process_fact_rejects_non_fact():
    patterns = PatternStore(InMemoryVectorStore())
    with pytest.raises(InvalidInputError):
        await patterns.process_fact("text")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_consolidate_memory_strengthens_existing_patterns():
    store = InMemoryVectorStore()
    member = await store.store_fact(similar_fact([1.0, 0.0, 0.0]))
    pattern = await store.store_pattern(make_pattern(0.3, facts=[member.id]))
    patterns = PatternStore(store, clock=fixed_clock)

    incoming = similar_fact([1.0, 0.01, 0.0], joy=0.2)
    [touched] = await patterns.consolidate_memory([incoming])

    assert touched.id == pattern.id
    assert touched.weight == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_find_similar_patterns_reweighting_is_presentation_only():
    store = InMemoryVectorStore()
    member = await store.store_fact(similar_fact([1.0, 0.0, 0.0]))
    pattern = await store.store_pattern(
        make_pattern(0.4, facts=[member.id], signature=EmotionalQuadrant(joy=1.0))
    )
    patterns = PatternStore(store, clock=fixed_clock)

    [weighted] = await patterns.find_similar_patterns(
        [1.0, 0.0, 0.0], 0.9, emotional_context=EmotionalQuadrant(joy=1.0)
    )

    # mean over four dimensions: 1.0 / 4
    assert weighted.weight == pytest.approx(0.4 * 1.25)
    assert patterns.get_cached(pattern.id).weight == pytest.approx(0.4)
    assert (await store.load_patterns())[0].weight == pytest.approx(0.4)


@pytest.mark.asyncio
async def test_significant_patterns_and_refresh():
    store = InMemoryVectorStore()
    patterns = PatternStore(store, clock=fixed_clock)
    await patterns.store_pattern(make_pattern(0.3))
    await store.store_pattern(make_pattern(0.9))

    assert len(patterns.cached_patterns) == 1
    await patterns.refresh()
    assert len(patterns.cached_patterns) == 2

    ranked = await patterns.get_significant_patterns(limit=1)
    assert [p.weight for p in ranked] == [0.9]


@pytest.mark.asyncio
async def test_cleanup_evicts_stale_and_weak_patterns():
    store = InMemoryVectorStore()
    patterns = PatternStore(store, MemoryConfig(pattern_threshold=0.6), clock=fixed_clock)
    await patterns.store_pattern(make_pattern(0.9, age_days=45))
    await patterns.store_pattern(make_pattern(0.3))
    keep = await patterns.store_pattern(make_pattern(0.8))

    await patterns.cleanup(retention_days=30)

    assert [p.id for p in patterns.cached_patterns] == [keep.id]


def test_emotional_similarity_uses_present_dimensions():
    signature = EmotionalQuadrant(joy=0.5, anger=0.4)
    assert emotional_similarity({"joy": 1.0}, signature) == pytest.approx(0.5)
    assert emotional_similarity({"joy": 1.0, "anger": 0.5}, signature) == pytest.approx(0.35)
    assert emotional_similarity({}, signature) == 0.0


def test_cross_context_patterns_group_by_signature():
    joyful_read = make_pattern(0.6, signature=EmotionalQuadrant(joy=0.5), facts=["r1"])
    joyful_heard = make_pattern(0.8, signature=EmotionalQuadrant(joy=0.7), facts=["h1"])
    calm_read = make_pattern(0.9, signature=EmotionalQuadrant(calm=0.5), facts=["r2"])
    sources = {"r1": "read-text", "h1": "hear-text", "r2": "read-text"}

    [group] = find_cross_context_patterns([joyful_read, joyful_heard, calm_read], sources)

    assert set(group.source_patterns) == {joyful_read.id, joyful_heard.id}
    assert group.source_contexts == ["hear-text", "read-text"]
    assert group.weight == pytest.approx(0.7)
    assert group.confidence == pytest.approx(2 / 3)
    assert group.emotional_signature.joy == pytest.approx(0.6)


def test_cross_context_patterns_need_two_channels():
    a = make_pattern(0.6, signature=EmotionalQuadrant(joy=0.5), facts=["r1"])
    b = make_pattern(0.6, signature=EmotionalQuadrant(joy=0.5), facts=["r2"])
    sources = {"r1": "read-text", "r2": "read-text"}
    assert find_cross_context_patterns([a, b], sources) == []


@pytest.mark.asyncio
async def test_process_fact_keeps_full_neighbour_limit_when_fact_is_stored():
    store = InMemoryVectorStore()
    first = await store.store_fact(similar_fact([1.0, 0.0, 0.0]))
    second = await store.store_fact(similar_fact([0.99, 0.1, 0.0]))
    patterns = PatternStore(store, MemoryConfig(similar_fact_limit=2), clock=fixed_clock)

    incoming = await store.store_fact(similar_fact([1.0, 0.05, 0.0]))
    [created] = await patterns.process_fact(incoming)

    assert set(created.facts) == {first.id, second.id, incoming.id}


@pytest.mark.asyncio
async def test_process_facts_clusters_within_the_batch_only():
    store = InMemoryVectorStore()
    outsider = await store.store_fact(similar_fact([1.0, 0.0, 0.0]))
    patterns = PatternStore(store, clock=fixed_clock)
    rain = [similar_fact([1.0, 0.0, 0.0]), similar_fact([0.99, 0.1, 0.0]), similar_fact([1.0, 0.05, 0.0])]
    lone = similar_fact([0.0, 1.0, 0.0], joy=0.9)

    [created] = await patterns.process_facts([rain[0], lone, rain[1], rain[2]])

    assert created.facts == [f.id for f in rain]
    assert outsider.id not in created.facts
    assert [p.id for p in patterns.cached_patterns] == [created.id]


@pytest.mark.asyncio
async def test_process_facts_merges_into_existing_pattern():
    store = InMemoryVectorStore()
    patterns = PatternStore(store, clock=fixed_clock)
    batch = [similar_fact([1.0, 0.0, 0.0]), similar_fact([0.99, 0.1, 0.0]), similar_fact([1.0, 0.05, 0.0])]
    existing = await patterns.store_pattern(make_pattern(0.5, facts=[batch[1].id]))

    [merged] = await patterns.process_facts(batch)

    assert merged.id == existing.id
    assert set(merged.facts) == {f.id for f in batch}
    assert merged.weight == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_process_facts_small_groups_and_validation():
    patterns = PatternStore(InMemoryVectorStore(), clock=fixed_clock)
    pair = [similar_fact([1.0, 0.0, 0.0]), similar_fact([0.99, 0.1, 0.0])]

    assert await patterns.process_facts(pair) == []
    assert await patterns.process_facts([]) == []
    with pytest.raises(InvalidInputError):
        await patterns.process_facts([pair[0], "text"])  # type: ignore[list-item]
