import json
from datetime import datetime, timezone

import asyncpg
import pytest

from limbic.config.memory import StoreConfig
from limbic.runtime.memory.errors import NotFoundError, StoreError
from limbic.runtime.memory.models import ContextHistoryRecord, EmotionalQuadrant, EmotionalSnapshot, Fact, Pattern
from limbic.runtime.memory.postgres_store import PgVectorStore

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class DummyPool:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, tuple]] = []
        self.rows: list[dict] = []
        self.status = "UPDATE 1"
        self.error: Exception | None = None
        self.closed = False

    def _record(self, kind: str, query: str, args: tuple) -> None:
        self.calls.append((kind, query, args))
        if self.error is not None:
            raise self.error

    async def execute(self, query, *args):
        self._record("execute", query, args)
        return self.status

    async def fetch(self, query, *args):
        self._record("fetch", query, args)
        return list(self.rows)

    async def fetchrow(self, query, *args):
        self._record("fetchrow", query, args)
        return self.rows[0] if self.rows else None

    async def close(self):
        self.closed = True


def fact_row(**overrides) -> dict:
    row = {
        "id": "f1",
        "content": "The sun is shining",
        "source": "read-text",
        "timestamp": NOW,
        "embedding": "[1,0,0]",
        "emotional_impact": json.dumps({"joy": 0.8}),
        "weight": 0.8,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_ensure_schema_is_idempotent_ddl():
    pool = DummyPool()
    store = PgVectorStore(pool, embedding_dimensions=3)  # type: ignore[arg-type]

    await store.ensure_schema()

    statements = [query for _, query, _ in pool.calls]
    assert statements[0].startswith("CREATE EXTENSION IF NOT EXISTS vector")
    assert any("vector(3)" in q for q in statements)
    assert all("IF NOT EXISTS" in q for q in statements)
    assert any("CREATE TABLE IF NOT EXISTS context_history" in q for q in statements)


@pytest.mark.asyncio
async def test_store_fact_serialises_vector_and_impact():
    pool = DummyPool()
    store = PgVectorStore(pool)  # type: ignore[arg-type]
    fact = Fact(content="x", embedding=[0.5, 0.25], emotional_impact=EmotionalQuadrant(joy=0.5), weight=0.5)

    await store.store_fact(fact)

    _, query, args = pool.calls[0]
    assert "INSERT INTO facts" in query
    assert args[4] == "[0.5,0.25]"
    assert json.loads(args[5])["joy"] == 0.5


@pytest.mark.asyncio
async def test_find_similar_facts_maps_rows():
    pool = DummyPool()
    pool.rows = [fact_row(similarity=0.93)]
    store = PgVectorStore(pool)  # type: ignore[arg-type]

    [hit] = await store.find_similar_facts([1.0, 0.0, 0.0], threshold=0.85, limit=5)

    assert hit.similarity == pytest.approx(0.93)
    assert hit.fact.embedding == [1, 0, 0]
    assert hit.fact.emotional_impact.joy == 0.8
    assert pool.calls[0][2][1:] == (0.85, 5)
    assert await store.find_similar_facts([], threshold=0.85, limit=5) == []


@pytest.mark.asyncio
async def test_update_pattern_reports_missing_rows():
    pool = DummyPool()
    pool.status = "UPDATE 0"
    store = PgVectorStore(pool)  # type: ignore[arg-type]

    with pytest.raises(NotFoundError):
        await store.update_pattern(Pattern(facts=["f1"], weight=0.5))


@pytest.mark.asyncio
async def test_pattern_and_history_rows_round_trip():
    pool = DummyPool()
    pool.rows = [
        {
            "id": "p1",
            "facts": ["f1", "f2"],
            "weight": 0.7,
            "emotional_signature": {"calm": 0.4},
            "last_accessed": NOW,
        }
    ]
    store = PgVectorStore(pool)  # type: ignore[arg-type]

    [pattern] = await store.find_patterns_with_facts(["f1"])
    assert pattern.facts == ["f1", "f2"]
    assert pattern.emotional_signature.calm == 0.4
    assert await store.find_patterns_with_facts([]) == []

    pool.rows = [
        {
            "id": "s1",
            "quadrant": json.dumps({"joy": 0.2}),
            "intensity": 0.2,
            "timestamp": NOW,
            "source_facts": None,
        }
    ]
    [snapshot] = await store.get_emotional_history(NOW, NOW)
    assert snapshot.quadrant.joy == 0.2
    assert snapshot.source_facts == []

    snapshot_id = await store.store_emotional_state(
        EmotionalSnapshot(quadrant=EmotionalQuadrant(), intensity=0.0)
    )
    assert snapshot_id


@pytest.mark.asyncio
async def test_driver_errors_become_store_errors():
    pool = DummyPool()
    pool.error = ConnectionRefusedError("connection refused")
    store = PgVectorStore(pool)  # type: ignore[arg-type]

    with pytest.raises(StoreError):
        await store.get_fact("f1")

    pool.error = asyncpg.InterfaceError("pool is closed")
    with pytest.raises(StoreError):
        await store.remove_patterns(["p1"])


@pytest.mark.asyncio
async def test_connect_requires_dsn():
    with pytest.raises(StoreError):
        await PgVectorStore.connect(StoreConfig(dsn=""))


@pytest.mark.asyncio
async def test_close_releases_pool():
    pool = DummyPool()
    await PgVectorStore(pool).close()  # type: ignore[arg-type]
    assert pool.closed is True


@pytest.mark.asyncio
async def test_context_history_insert_and_fetch():
    pool = DummyPool()
    store = PgVectorStore(pool)  # type: ignore[arg-type]
    record = ContextHistoryRecord(
        context_type="hear-text",
        recent_facts=["f2", "f1"],
        contextual_memory=["f2"],
        emotional_state_id="s1",
        timestamp=NOW,
        metrics={"hits": 3, "misses": 1},
    )

    assert await store.store_context_history(record) == record.id
    _, query, args = pool.calls[0]
    assert "INSERT INTO context_history" in query
    assert args[1:5] == ("hear-text", ["f2", "f1"], ["f2"], "s1")
    assert json.loads(args[6]) == {"hits": 3, "misses": 1}

    pool.rows = [
        {
            "id": record.id,
            "context_type": "hear-text",
            "recent_facts": ["f2", "f1"],
            "contextual_memory": None,
            "emotional_state_id": None,
            "timestamp": NOW,
            "metrics": json.dumps({"hits": 3}),
        }
    ]
    [loaded] = await store.get_context_history("hear-text", 10)
    assert loaded.recent_facts == ["f2", "f1"]
    assert loaded.contextual_memory == []
    assert loaded.metrics == {"hits": 3.0}
    assert pool.calls[-1][2] == ("hear-text", 10)


@pytest.mark.asyncio
async def test_emotional_trends_pass_channel_filter_and_map_rows():
    pool = DummyPool()
    pool.rows = [
        {
            "time_slice": NOW,
            "avg_intensity": 0.42,
            "dominant_quadrant": "joy",
            "context_correlation": None,
            "samples": 3,
        }
    ]
    store = PgVectorStore(pool)  # type: ignore[arg-type]

    [trend] = await store.get_emotional_trends(NOW, NOW, "read-text")

    assert (trend.dominant_quadrant, trend.samples) == ("joy", 3)
    assert trend.avg_intensity == pytest.approx(0.42)
    assert trend.context_correlation is None
    _, query, args = pool.calls[0]
    assert "date_trunc('hour'" in query
    assert args == (NOW, NOW, "read-text")


@pytest.mark.asyncio
async def test_cleanup_removes_context_history_before_states():
    pool = DummyPool()
    await PgVectorStore(pool).cleanup_old_data(retention_days=30, min_weight=0.6)  # type: ignore[arg-type]

    tables = [query.split("FROM ")[1].split()[0] for _, query, _ in pool.calls]
    assert tables == ["context_history", "emotional_states", "patterns"]
