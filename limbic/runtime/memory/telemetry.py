"""
Telemetry - Spans for ingestion, batch ingestion and sleep cycles

WHAT: Timed spans with limbic attributes, handed to a pluggable sink
WHERE: limbic/runtime/memory/telemetry.py - observability layer
WHO: CognitiveOrchestrator (process_input, process_batch) and SleepCycle.run
TIME: Zero-overhead with the no-op sink, one log line or JSONL append otherwise

Span names and the attributes their emitters attach:
- ``limbic.process_input``: source, input_chars, fact_weight, patterns_touched,
  related_facts, provider_degradations
- ``limbic.process_batch``: source, inputs, patterns_touched, provider_degradations
- ``limbic.sleep_cycle``: facts_processed, failures, patterns_pruned, pattern_prune_ran

Every span also carries ``started_at`` (UTC ISO-8601), ``duration_ms`` and
``success``; a span that exits through an exception adds ``error`` with the
exception class name and the exception keeps propagating.
"""

from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from limbic.logging.events import append_record, build_record

logger = logging.getLogger(__name__)

SPAN_PROCESS_INPUT = "limbic.process_input"
SPAN_PROCESS_BATCH = "limbic.process_batch"
SPAN_SLEEP_CYCLE = "limbic.sleep_cycle"

# attributes every span has; describe_span prints them in the header
_HEADER_KEYS = ("success", "duration_ms", "started_at", "error")


def describe_span(name: str, attributes: Dict[str, Any]) -> str:
    """One-line rendering: ``[telemetry] <name> ok|failed(<error>) <ms> k=v ...``."""
    if attributes.get("success", True):
        outcome = "ok"
    else:
        outcome = f"failed({attributes.get('error', 'unknown')})"
    duration = attributes.get("duration_ms")
    elapsed = f" {duration:.1f}ms" if isinstance(duration, (int, float)) else ""
    details = " ".join(
        f"{key}={_format_value(attributes[key])}"
        for key in sorted(attributes)
        if key not in _HEADER_KEYS
    )
    return f"[telemetry] {name} {outcome}{elapsed}" + (f" {details}" if details else "")


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """Times one ingestion or sleep cycle and hands its attributes to the client."""

    def __init__(
        self,
        client: "TelemetryClient",
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._client = client
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self.started_at: Optional[datetime] = None
        self._t0 = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self.started_at = datetime.now(timezone.utc)
        self._t0 = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._t0) * 1000.0

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        attrs = self.attributes
        attrs.setdefault("success", exc is None)
        if exc is not None:
            attrs.setdefault("error", type(exc).__name__)
        if self.started_at is not None:
            attrs["started_at"] = self.started_at.isoformat()
        attrs["duration_ms"] = self.elapsed_ms()
        self._client.emit_span(self.name, attrs)
        return False


class TelemetryClient:
    """Span factory; sinks implement ``emit_span``."""

    def span(
        self,
        name: str,
        *,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class NoOpTelemetryClient(TelemetryClient):
    """Discards every span (default when no sink is configured)."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        return None


class ConsoleTelemetryClient(TelemetryClient):
    """Logs each span as one ``describe_span`` line; failed spans log at WARNING."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        level = logging.INFO if attributes.get("success", True) else logging.WARNING
        logger.log(level, describe_span(name, attributes))


class JsonlTelemetryClient(TelemetryClient):
    """Appends one ``build_record`` row per span (``label`` = span name) to ``output_path``."""

    def __init__(self, output_path: Path) -> None:
        self.output_path = Path(output_path)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        append_record(self.output_path, build_record(name, attributes))


__all__ = [
    "SPAN_PROCESS_INPUT",
    "SPAN_PROCESS_BATCH",
    "SPAN_SLEEP_CYCLE",
    "TelemetrySpan",
    "TelemetryClient",
    "NoOpTelemetryClient",
    "ConsoleTelemetryClient",
    "JsonlTelemetryClient",
    "describe_span",
]
