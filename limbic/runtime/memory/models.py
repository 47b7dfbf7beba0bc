"""
Memory Models - Type-safe data structures for emotional memory

WHAT: Pydantic models for facts, patterns and emotional quadrants
WHERE: limbic/runtime/memory/models.py - data layer
WHO: Working memory, pattern store and orchestrator creating/validating records
TIME: Model validation <1ms

All records are frozen: a fact or pattern is never mutated in place, updates
produce a copy via ``model_copy`` that replaces the previous instance. This
keeps snapshots handed to callers stable while the runtime keeps going.

Boundary Notes:
- Models enforce the [-1, 1] bound on every emotional dimension
- Weights are always clamped to [0, 1] before a model is built
- Ids are uuid4 strings across every entity creation site
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

SensoryInputType = Literal["read-text", "hear-text", "feel-text", "smell-text", "taste-text"]
SENSORY_INPUT_TYPES: Tuple[str, ...] = get_args(SensoryInputType)

DIMENSIONS: Tuple[str, ...] = ("joy", "calm", "anger", "sadness")


def generate_id() -> str:
    """Return a fresh uuid4 string identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class EmotionalQuadrant(BaseModel):
    """Point in the four-dimensional {joy, calm, anger, sadness} space."""

    model_config = ConfigDict(frozen=True)

    joy: float = Field(default=0.0, ge=-1.0, le=1.0)
    calm: float = Field(default=0.0, ge=-1.0, le=1.0)
    anger: float = Field(default=0.0, ge=-1.0, le=1.0)
    sadness: float = Field(default=0.0, ge=-1.0, le=1.0)

    @classmethod
    def neutral(cls) -> EmotionalQuadrant:
        return cls()

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> EmotionalQuadrant:
        """Build a clamped quadrant from a loose mapping (missing/non-numeric -> 0)."""
        parsed: Dict[str, float] = {}
        for dim in DIMENSIONS:
            raw = values.get(dim, 0.0)
            try:
                number = float(raw)
            except (TypeError, ValueError):
                number = 0.0
            if not math.isfinite(number):
                number = 0.0
            parsed[dim] = clamp(number)
        return cls(**parsed)

    @classmethod
    def average(cls, quadrants: Iterable[EmotionalQuadrant]) -> EmotionalQuadrant:
        items = list(quadrants)
        if not items:
            return cls()
        count = len(items)
        return cls(
            **{dim: clamp(sum(getattr(q, dim) for q in items) / count) for dim in DIMENSIONS}
        )

    def as_dict(self) -> Dict[str, float]:
        return {dim: getattr(self, dim) for dim in DIMENSIONS}

    def intensity(self) -> float:
        """L2 norm of the quadrant (distance from the neutral point)."""
        return math.sqrt(sum(getattr(self, dim) ** 2 for dim in DIMENSIONS))

    def scale(self, factor: float) -> EmotionalQuadrant:
        """Scale every dimension toward zero by ``factor`` (result clamped)."""
        return EmotionalQuadrant(**{dim: clamp(getattr(self, dim) * factor) for dim in DIMENSIONS})

    def clamped(self) -> EmotionalQuadrant:
        return EmotionalQuadrant.from_mapping(self.as_dict())

    def add(self, other: EmotionalQuadrant) -> EmotionalQuadrant:
        return EmotionalQuadrant(
            **{dim: clamp(getattr(self, dim) + getattr(other, dim)) for dim in DIMENSIONS}
        )

    def dominant(self) -> str:
        """Dimension with the largest absolute value (first wins on ties)."""
        return max(DIMENSIONS, key=lambda dim: abs(getattr(self, dim)))

    def signature_key(self, neutral_threshold: float = 0.1) -> str:
        """Grouping key made of the dimensions above ``neutral_threshold``."""
        active = [dim for dim in DIMENSIONS if getattr(self, dim) > neutral_threshold]
        return "-".join(active) or "neutral"


def fact_weight(impact: EmotionalQuadrant) -> float:
    """Salience of a fact: distance from the neutral state, capped at 1."""
    return min(1.0, impact.intensity())


class Fact(BaseModel):
    """
    Atomic unit of processed input.

    Examples:
    - content="The sun is shining", source="read-text", weight=0.94
    - content="Alarm went off twice", source="hear-text", weight=0.41
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id, min_length=1)
    content: str = Field(min_length=1)
    source: SensoryInputType = "read-text"
    timestamp: datetime = Field(default_factory=utc_now)
    embedding: List[float] = Field(default_factory=list)
    emotional_impact: EmotionalQuadrant = Field(default_factory=EmotionalQuadrant)
    weight: float = Field(default=0.0, ge=0.0, le=1.0)
    similarity: Optional[float] = None

    @classmethod
    def create(
        cls,
        *,
        content: str,
        source: SensoryInputType = "read-text",
        embedding: Optional[List[float]] = None,
        emotional_impact: Optional[EmotionalQuadrant] = None,
        timestamp: Optional[datetime] = None,
    ) -> Fact:
        impact = emotional_impact or EmotionalQuadrant()
        return cls(
            content=content,
            source=source,
            timestamp=timestamp or utc_now(),
            embedding=list(embedding or []),
            emotional_impact=impact,
            weight=fact_weight(impact),
        )

    def with_weight(self, weight: float) -> Fact:
        return self.model_copy(update={"weight": clamp(weight, 0.0, 1.0)})


class Pattern(BaseModel):
    """Weighted cluster of similar facts with an aggregate emotional signature."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id, min_length=1)
    facts: List[str] = Field(min_length=1)
    weight: float = Field(ge=0.0, le=1.0)
    emotional_signature: EmotionalQuadrant = Field(default_factory=EmotionalQuadrant)
    last_accessed: datetime = Field(default_factory=utc_now)

    @field_validator("facts")
    @classmethod
    def _unique_fact_ids(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("pattern fact ids must be unique")
        return value


class CrossContextPattern(BaseModel):
    """Group of patterns sharing an emotional signature across input channels."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    source_patterns: List[str]
    source_contexts: List[str]
    weight: float = Field(ge=0.0, le=1.0)
    emotional_signature: EmotionalQuadrant
    confidence: float = Field(ge=0.0, le=1.0)
    last_accessed: datetime = Field(default_factory=utc_now)


class ScoredFact(BaseModel):
    """Vector-search hit: a stored fact and its cosine similarity to the query."""

    model_config = ConfigDict(frozen=True)

    fact: Fact
    similarity: float


class EmotionalSnapshot(BaseModel):
    """Persisted point-in-time view of the emotional state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    quadrant: EmotionalQuadrant
    intensity: float = Field(ge=0.0)
    timestamp: datetime = Field(default_factory=utc_now)
    source_facts: List[str] = Field(default_factory=list)


class EmotionalTrend(BaseModel):
    """Hourly aggregate of emotional snapshots."""

    model_config = ConfigDict(frozen=True)

    time_slice: datetime
    avg_intensity: float = Field(ge=0.0)
    dominant_quadrant: str
    context_correlation: Optional[float] = None
    samples: int = Field(default=0, ge=0)


class ContextHistoryRecord(BaseModel):
    """Persisted view of one sensory channel right after an input landed on it.

    ``emotional_state_id`` links the record to the snapshot written for the
    same input, which is how trends are filtered by channel.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    context_type: SensoryInputType
    recent_facts: List[str] = Field(default_factory=list)
    contextual_memory: List[str] = Field(default_factory=list)
    emotional_state_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    metrics: Dict[str, float] = Field(default_factory=dict)


class ExtractedFact(BaseModel):
    """Provider output before an id, embedding and weight are attached."""

    content: str = Field(min_length=1)
    source: SensoryInputType = "read-text"
    timestamp: datetime = Field(default_factory=utc_now)
    emotional_impact: Optional[EmotionalQuadrant] = None


@dataclass(slots=True)
class ProcessingResult:
    """Outcome of ``CognitiveOrchestrator.process_input``."""

    fact: Fact
    related_facts: List[str]
    emotional_state: EmotionalQuadrant
    patterns: List[Pattern] = field(default_factory=list)
    confidence: float = 0.5


@dataclass(slots=True)
class BatchProcessingResult:
    """Outcome of ``CognitiveOrchestrator.process_batch``: one aggregate mood update."""

    facts: List[Fact]
    emotional_state: EmotionalQuadrant
    aggregate_impact: EmotionalQuadrant
    patterns: List[Pattern] = field(default_factory=list)
    confidence: float = 0.5


@dataclass(slots=True)
class SleepCycleResult:
    """Outcome of a single sleep cycle run."""

    processed_facts: List[Fact] = field(default_factory=list)
    failures: int = 0
    emotional_journey: List[EmotionalQuadrant] = field(default_factory=list)
    pruned_patterns: List[str] = field(default_factory=list)
    pattern_prune_ran: bool = False
    emotional_decay: float = 0.0
    started_at: datetime = field(default_factory=utc_now)
    duration_ms: float = 0.0

    def summary(self) -> Dict[str, Any]:
        return {
            "facts_processed": len(self.processed_facts),
            "failures": self.failures,
            "patterns_pruned": len(self.pruned_patterns),
            "pattern_prune_ran": self.pattern_prune_ran,
            "emotional_decay": self.emotional_decay,
            "duration_ms": self.duration_ms,
        }


__all__ = [
    "DIMENSIONS",
    "SENSORY_INPUT_TYPES",
    "SensoryInputType",
    "EmotionalQuadrant",
    "Fact",
    "Pattern",
    "CrossContextPattern",
    "ScoredFact",
    "EmotionalSnapshot",
    "EmotionalTrend",
    "ContextHistoryRecord",
    "ExtractedFact",
    "ProcessingResult",
    "BatchProcessingResult",
    "SleepCycleResult",
    "clamp",
    "fact_weight",
    "generate_id",
    "utc_now",
]
