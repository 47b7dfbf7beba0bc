"""
Emotional State - Bounded four-dimensional mood vector

WHAT: The single mutable {joy, calm, anger, sadness} vector of an agent
WHERE: limbic/runtime/memory/emotional_state.py - affect layer
WHO: Orchestrator (per processed fact) and sleep cycle (replay + decay)
TIME: O(1) per update

Two distinct operators touch the state:
- ``update(impact)`` adds an impact and clamps each dimension to [-1, 1]
  (``project(impact)`` computes the same result without applying it)
- ``decay(rate)`` reduces every dimension by ``rate`` (``q *= 1 - rate``)

Sleep-cycle replay never multiplies the state directly; it scales the fact
impact with ``EmotionalQuadrant.scale`` and feeds it through ``update``.

The class holds no lock: the owning orchestrator serialises mutations.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Mapping, Union

from .errors import InvalidInputError
from .models import DIMENSIONS, EmotionalQuadrant, EmotionalSnapshot, clamp, utc_now

logger = logging.getLogger(__name__)

ImpactLike = Union[EmotionalQuadrant, Mapping[str, float]]


def _coerce_impact(impact: ImpactLike) -> dict[str, float]:
    values = impact.as_dict() if isinstance(impact, EmotionalQuadrant) else impact
    if not isinstance(values, Mapping):
        raise InvalidInputError(f"Emotional impact must be a mapping, got {type(impact).__name__}")
    coerced: dict[str, float] = {}
    for dim in DIMENSIONS:
        raw = values.get(dim, 0.0)
        try:
            number = float(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"Emotional impact '{dim}' is not numeric: {raw!r}") from exc
        if not math.isfinite(number):
            raise InvalidInputError(f"Emotional impact '{dim}' is not finite: {raw!r}")
        coerced[dim] = number
    return coerced


def confidence_for(impact: EmotionalQuadrant) -> float:
    """Confidence in an emotional reading, always within [0.5, 1.0]."""
    return 0.5 + min(0.5, impact.intensity())


class EmotionalState:
    """Maintains the live emotional quadrant and its derived intensity."""

    def __init__(self, initial: EmotionalQuadrant | None = None) -> None:
        self._quadrant = initial or EmotionalQuadrant.neutral()
        self.last_updated: datetime = utc_now()

    @property
    def quadrant(self) -> EmotionalQuadrant:
        return self._quadrant

    @property
    def intensity(self) -> float:
        return self._quadrant.intensity()

    def project(self, impact: ImpactLike) -> EmotionalQuadrant:
        """The quadrant ``update(impact)`` would produce, without changing the state."""

        delta = _coerce_impact(impact)
        current = self._quadrant.as_dict()
        return EmotionalQuadrant(**{dim: clamp(current[dim] + delta[dim]) for dim in DIMENSIONS})

    def update(self, impact: ImpactLike) -> EmotionalQuadrant:
        """Add ``impact`` dimension-wise, clamping every component to [-1, 1]."""

        self._quadrant = self.project(impact)
        self.last_updated = utc_now()
        logger.debug(f"Emotional state updated to {self._quadrant.as_dict()} (intensity={self.intensity:.3f})")
        return self._quadrant

    def decay(self, rate: float) -> EmotionalQuadrant:
        """Reduce every dimension by ``rate`` (0 keeps the state, 1 neutralises it)."""

        if not 0.0 <= rate <= 1.0:
            raise InvalidInputError(f"Decay rate must be within [0, 1], got {rate}")
        self._quadrant = self._quadrant.scale(1.0 - rate)
        self.last_updated = utc_now()
        return self._quadrant

    def confidence(self, impact: EmotionalQuadrant) -> float:
        return confidence_for(impact)

    def reset(self) -> None:
        self._quadrant = EmotionalQuadrant.neutral()
        self.last_updated = utc_now()

    def snapshot(
        self, source_facts: list[str] | None = None, *, quadrant: EmotionalQuadrant | None = None
    ) -> EmotionalSnapshot:
        """Snapshot of the live state, or of ``quadrant`` (e.g. a projection) stamped now."""
        if quadrant is None:
            quadrant, timestamp = self._quadrant, self.last_updated
        else:
            timestamp = utc_now()
        return EmotionalSnapshot(
            quadrant=quadrant,
            intensity=quadrant.intensity(),
            timestamp=timestamp,
            source_facts=list(source_facts or []),
        )


__all__ = ["EmotionalState", "confidence_for"]
