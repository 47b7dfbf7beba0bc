"""
Postgres Store - pgvector persistence for facts, patterns, emotional and context history

WHAT: asyncpg-backed implementation of the VectorStore protocol
WHERE: limbic/runtime/memory/postgres_store.py - interfaces with Postgres + pgvector
WHO: Orchestrators running against a shared long-term memory database
TIME: Write latency p99 ≤100ms, similarity search p99 ≤250ms (ivfflat index)

Tables:
- facts (embedding vector(N), emotional_impact jsonb, weight)
- patterns (facts text[], weight, emotional_signature jsonb, last_accessed)
- emotional_states (quadrant jsonb, intensity, source_facts text[])
- context_history (per-channel fact ids, metrics jsonb, emotional_state_id)

Trends bucket emotional_states by hour in SQL; a channel filter keeps the
snapshots linked to that channel through context_history.

``ensure_schema()`` is idempotent (CREATE ... IF NOT EXISTS); there is no
migration tooling. Every driver failure is re-raised as ``StoreError``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import asyncpg

from limbic.config.memory import StoreConfig

from .errors import NotFoundError, StoreError
from .models import (
    ContextHistoryRecord,
    EmotionalQuadrant,
    EmotionalSnapshot,
    EmotionalTrend,
    Fact,
    Pattern,
    ScoredFact,
    utc_now,
)
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

SQL_ENSURE_EXTENSION = "CREATE EXTENSION IF NOT EXISTS vector;"

SQL_ENSURE_FACTS = """\
CREATE TABLE IF NOT EXISTS facts (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    source TEXT NOT NULL,
    timestamp TIMESTAMPTZ NOT NULL,
    embedding vector({dimensions}),
    emotional_impact JSONB NOT NULL,
    weight DOUBLE PRECISION NOT NULL
);
"""

SQL_ENSURE_FACTS_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_facts_embedding
ON facts USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100);
"""

SQL_ENSURE_PATTERNS = """\
CREATE TABLE IF NOT EXISTS patterns (
    id TEXT PRIMARY KEY,
    facts TEXT[] NOT NULL,
    weight DOUBLE PRECISION NOT NULL,
    emotional_signature JSONB NOT NULL,
    last_accessed TIMESTAMPTZ NOT NULL
);
"""

SQL_ENSURE_EMOTIONAL_STATES = """\
CREATE TABLE IF NOT EXISTS emotional_states (
    id TEXT PRIMARY KEY,
    quadrant JSONB NOT NULL,
    intensity DOUBLE PRECISION NOT NULL,
    timestamp TIMESTAMPTZ NOT NULL,
    source_facts TEXT[] NOT NULL DEFAULT '{}'
);
"""

SQL_ENSURE_CONTEXT_HISTORY = """\
CREATE TABLE IF NOT EXISTS context_history (
    id TEXT PRIMARY KEY,
    context_type TEXT NOT NULL,
    recent_facts TEXT[] NOT NULL DEFAULT '{}',
    contextual_memory TEXT[] NOT NULL DEFAULT '{}',
    emotional_state_id TEXT REFERENCES emotional_states(id) ON DELETE SET NULL,
    timestamp TIMESTAMPTZ NOT NULL,
    metrics JSONB NOT NULL
);
"""

SQL_ENSURE_CONTEXT_HISTORY_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_context_history_type_timestamp
ON context_history (context_type, timestamp DESC);
"""


SQL_INSERT_FACT = """\
INSERT INTO facts (id, content, source, timestamp, embedding, emotional_impact, weight)
VALUES ($1, $2, $3, $4, $5::vector, $6::jsonb, $7)
ON CONFLICT (id) DO UPDATE SET
    content = EXCLUDED.content,
    source = EXCLUDED.source,
    timestamp = EXCLUDED.timestamp,
    embedding = EXCLUDED.embedding,
    emotional_impact = EXCLUDED.emotional_impact,
    weight = EXCLUDED.weight;
"""

SQL_GET_FACT = """\
SELECT id, content, source, timestamp, embedding::text AS embedding, emotional_impact, weight
FROM facts WHERE id = $1;
"""

SQL_FIND_SIMILAR_FACTS = """\
SELECT id, content, source, timestamp, embedding::text AS embedding, emotional_impact, weight,
       1 - (embedding <=> $1::vector) AS similarity
FROM facts
WHERE embedding IS NOT NULL
  AND 1 - (embedding <=> $1::vector) >= $2
ORDER BY embedding <=> $1::vector
LIMIT $3;
"""

SQL_UPSERT_PATTERN = """\
INSERT INTO patterns (id, facts, weight, emotional_signature, last_accessed)
VALUES ($1, $2, $3, $4::jsonb, $5)
ON CONFLICT (id) DO UPDATE SET
    facts = EXCLUDED.facts,
    weight = EXCLUDED.weight,
    emotional_signature = EXCLUDED.emotional_signature,
    last_accessed = EXCLUDED.last_accessed
RETURNING id, facts, weight, emotional_signature, last_accessed;
"""

SQL_UPDATE_PATTERN = """\
UPDATE patterns
SET facts = $2, weight = $3, emotional_signature = $4::jsonb, last_accessed = $5
WHERE id = $1;
"""

SQL_LOAD_PATTERNS = "SELECT id, facts, weight, emotional_signature, last_accessed FROM patterns;"

SQL_PATTERNS_WITH_FACTS = """\
SELECT id, facts, weight, emotional_signature, last_accessed
FROM patterns WHERE facts && $1::text[];
"""

SQL_SIGNIFICANT_PATTERNS = """\
SELECT id, facts, weight, emotional_signature, last_accessed
FROM patterns ORDER BY weight DESC LIMIT $1;
"""

SQL_REMOVE_PATTERNS = "DELETE FROM patterns WHERE id = ANY($1::text[]);"

SQL_CLEANUP_STATES = "DELETE FROM emotional_states WHERE timestamp < $1;"

SQL_CLEANUP_PATTERNS = "DELETE FROM patterns WHERE last_accessed < $1 AND weight < $2;"

SQL_INSERT_STATE = """\
INSERT INTO emotional_states (id, quadrant, intensity, timestamp, source_facts)
VALUES ($1, $2::jsonb, $3, $4, $5);
"""

SQL_STATE_HISTORY = """\
SELECT id, quadrant, intensity, timestamp, source_facts
FROM emotional_states
WHERE timestamp >= $1 AND timestamp <= $2
ORDER BY timestamp ASC;
"""


SQL_CLEANUP_CONTEXT_HISTORY = "DELETE FROM context_history WHERE timestamp < $1;"

SQL_INSERT_CONTEXT_HISTORY = """\
INSERT INTO context_history
    (id, context_type, recent_facts, contextual_memory, emotional_state_id, timestamp, metrics)
VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb);
"""

SQL_CONTEXT_HISTORY = """\
SELECT id, context_type, recent_facts, contextual_memory, emotional_state_id, timestamp, metrics
FROM context_history
WHERE context_type = $1
ORDER BY timestamp DESC
LIMIT $2;
"""

SQL_EMOTIONAL_TRENDS = """\
WITH scoped AS (
    SELECT e.id, date_trunc('hour', e.timestamp) AS slice, e.intensity, e.quadrant
    FROM emotional_states e
    WHERE e.timestamp >= $1 AND e.timestamp <= $2
      AND (
          $3::text IS NULL
          OR EXISTS (
              SELECT 1 FROM context_history c
              WHERE c.emotional_state_id = e.id AND c.context_type = $3::text
          )
      )
),
dims AS (
    SELECT s.slice, d.key AS quadrant_key, avg(d.value::double precision) AS quadrant_value
    FROM scoped s, jsonb_each_text(s.quadrant) AS d
    GROUP BY s.slice, d.key
),
dominant AS (
    SELECT DISTINCT ON (slice) slice, quadrant_key
    FROM dims
    ORDER BY slice, quadrant_value DESC, quadrant_key ASC
)
SELECT s.slice AS time_slice,
       avg(s.intensity) AS avg_intensity,
       d.quadrant_key AS dominant_quadrant,
       corr(s.intensity, (s.quadrant->>d.quadrant_key)::double precision) AS context_correlation,
       count(*) AS samples
FROM scoped s
JOIN dominant d ON d.slice = s.slice
GROUP BY s.slice, d.quadrant_key
ORDER BY s.slice ASC;
"""


def _vector_literal(embedding: Sequence[float]) -> Optional[str]:
    if not embedding:
        return None
    return "[" + ",".join(repr(float(v)) for v in embedding) + "]"


def _load_json(value: Any) -> Mapping[str, Any]:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value or {}


def _row_to_fact(row: Mapping[str, Any]) -> Fact:
    raw_embedding = row["embedding"]
    return Fact(
        id=row["id"],
        content=row["content"],
        source=row["source"],
        timestamp=row["timestamp"],
        embedding=json.loads(raw_embedding) if raw_embedding else [],
        emotional_impact=EmotionalQuadrant.from_mapping(_load_json(row["emotional_impact"])),
        weight=row["weight"],
        similarity=row.get("similarity") if hasattr(row, "get") else None,
    )


def _row_to_pattern(row: Mapping[str, Any]) -> Pattern:
    return Pattern(
        id=row["id"],
        facts=list(row["facts"]),
        weight=row["weight"],
        emotional_signature=EmotionalQuadrant.from_mapping(_load_json(row["emotional_signature"])),
        last_accessed=row["last_accessed"],
    )


class PgVectorStore(VectorStore):
    """asyncpg pool wrapper implementing the VectorStore protocol."""

    def __init__(self, pool: asyncpg.Pool, *, embedding_dimensions: int = 1536) -> None:
        self._pool = pool
        self.embedding_dimensions = embedding_dimensions

    @classmethod
    async def connect(cls, config: StoreConfig, *, embedding_dimensions: int = 1536) -> "PgVectorStore":
        if not config.dsn:
            raise StoreError("No database DSN configured (set DATABASE_URL or LIMBIC_STORE_DSN)")
        try:
            pool = await asyncpg.create_pool(
                dsn=config.dsn,
                min_size=config.min_pool_size,
                max_size=config.max_pool_size,
                command_timeout=config.command_timeout_seconds,
            )
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Failed to connect to vector store: {exc}") from exc
        return cls(pool, embedding_dimensions=embedding_dimensions)

    async def close(self) -> None:
        await self._pool.close()

    async def _execute(self, query: str, *args: Any) -> str:
        try:
            return await self._pool.execute(query, *args)
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Store execute failed: {exc}") from exc

    async def _fetch(self, query: str, *args: Any) -> List[Mapping[str, Any]]:
        try:
            return await self._pool.fetch(query, *args)
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Store fetch failed: {exc}") from exc

    async def _fetchrow(self, query: str, *args: Any) -> Optional[Mapping[str, Any]]:
        try:
            return await self._pool.fetchrow(query, *args)
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Store fetchrow failed: {exc}") from exc

    # ------------------ schema ------------------
    async def ensure_schema(self) -> None:
        for statement in (
            SQL_ENSURE_EXTENSION,
            SQL_ENSURE_FACTS.format(dimensions=int(self.embedding_dimensions)),
            SQL_ENSURE_FACTS_INDEX,
            SQL_ENSURE_PATTERNS,
            SQL_ENSURE_EMOTIONAL_STATES,
            SQL_ENSURE_CONTEXT_HISTORY,
            SQL_ENSURE_CONTEXT_HISTORY_INDEX,
        ):
            await self._execute(statement)
        logger.info("Limbic memory schema ensured")

    # ------------------ facts -------------------
    async def store_fact(self, fact: Fact) -> Fact:
        await self._execute(
            SQL_INSERT_FACT,
            fact.id,
            fact.content,
            fact.source,
            fact.timestamp,
            _vector_literal(fact.embedding),
            json.dumps(fact.emotional_impact.as_dict()),
            fact.weight,
        )
        return fact

    async def get_fact(self, fact_id: str) -> Optional[Fact]:
        row = await self._fetchrow(SQL_GET_FACT, fact_id)
        return _row_to_fact(row) if row else None

    async def find_similar_facts(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[ScoredFact]:
        literal = _vector_literal(embedding)
        if literal is None:
            return []
        rows = await self._fetch(SQL_FIND_SIMILAR_FACTS, literal, threshold, limit)
        return [ScoredFact(fact=_row_to_fact(row), similarity=float(row["similarity"])) for row in rows]

    # ------------------ patterns -----------------
    async def store_pattern(self, pattern: Pattern) -> Pattern:
        row = await self._fetchrow(
            SQL_UPSERT_PATTERN,
            pattern.id,
            pattern.facts,
            pattern.weight,
            json.dumps(pattern.emotional_signature.as_dict()),
            pattern.last_accessed,
        )
        return _row_to_pattern(row) if row else pattern

    async def update_pattern(self, pattern: Pattern) -> None:
        status = await self._execute(
            SQL_UPDATE_PATTERN,
            pattern.id,
            pattern.facts,
            pattern.weight,
            json.dumps(pattern.emotional_signature.as_dict()),
            pattern.last_accessed,
        )
        if status.endswith(" 0"):
            raise NotFoundError(f"Pattern {pattern.id} not found")

    async def load_patterns(self) -> List[Pattern]:
        return [_row_to_pattern(row) for row in await self._fetch(SQL_LOAD_PATTERNS)]

    async def find_patterns_with_facts(self, fact_ids: Iterable[str]) -> List[Pattern]:
        ids = list(fact_ids)
        if not ids:
            return []
        return [_row_to_pattern(row) for row in await self._fetch(SQL_PATTERNS_WITH_FACTS, ids)]

    async def get_significant_patterns(self, limit: int) -> List[Pattern]:
        return [_row_to_pattern(row) for row in await self._fetch(SQL_SIGNIFICANT_PATTERNS, limit)]

    async def remove_patterns(self, pattern_ids: Iterable[str]) -> None:
        ids = list(pattern_ids)
        if ids:
            await self._execute(SQL_REMOVE_PATTERNS, ids)

    async def cleanup_old_data(self, retention_days: int, min_weight: float) -> None:
        cutoff = utc_now() - timedelta(days=retention_days)
        await self._execute(SQL_CLEANUP_CONTEXT_HISTORY, cutoff)
        await self._execute(SQL_CLEANUP_STATES, cutoff)
        await self._execute(SQL_CLEANUP_PATTERNS, cutoff, min_weight)

    # ------------------ emotional history --------
    async def store_emotional_state(self, snapshot: EmotionalSnapshot) -> str:
        await self._execute(
            SQL_INSERT_STATE,
            snapshot.id,
            json.dumps(snapshot.quadrant.as_dict()),
            snapshot.intensity,
            snapshot.timestamp,
            snapshot.source_facts,
        )
        return snapshot.id

    async def get_emotional_history(self, start: datetime, end: datetime) -> List[EmotionalSnapshot]:
        rows = await self._fetch(SQL_STATE_HISTORY, start, end)
        return [
            EmotionalSnapshot(
                id=row["id"],
                quadrant=EmotionalQuadrant.from_mapping(_load_json(row["quadrant"])),
                intensity=row["intensity"],
                timestamp=row["timestamp"],
                source_facts=list(row["source_facts"] or []),
            )
            for row in rows
        ]

    async def get_emotional_trends(
        self, start: datetime, end: datetime, context_type: Optional[str] = None
    ) -> List[EmotionalTrend]:
        rows = await self._fetch(SQL_EMOTIONAL_TRENDS, start, end, context_type)
        return [
            EmotionalTrend(
                time_slice=row["time_slice"],
                avg_intensity=float(row["avg_intensity"]),
                dominant_quadrant=row["dominant_quadrant"],
                context_correlation=(
                    None if row["context_correlation"] is None else float(row["context_correlation"])
                ),
                samples=int(row["samples"]),
            )
            for row in rows
        ]

    # ------------------ context history ----------
    async def store_context_history(self, record: ContextHistoryRecord) -> str:
        await self._execute(
            SQL_INSERT_CONTEXT_HISTORY,
            record.id,
            record.context_type,
            record.recent_facts,
            record.contextual_memory,
            record.emotional_state_id,
            record.timestamp,
            json.dumps(record.metrics),
        )
        return record.id

    async def get_context_history(self, context_type: str, limit: int) -> List[ContextHistoryRecord]:
        rows = await self._fetch(SQL_CONTEXT_HISTORY, context_type, limit)
        return [
            ContextHistoryRecord(
                id=row["id"],
                context_type=row["context_type"],
                recent_facts=list(row["recent_facts"] or []),
                contextual_memory=list(row["contextual_memory"] or []),
                emotional_state_id=row["emotional_state_id"],
                timestamp=row["timestamp"],
                metrics=dict(_load_json(row["metrics"])),
            )
            for row in rows
        ]


__all__ = ["PgVectorStore"]
