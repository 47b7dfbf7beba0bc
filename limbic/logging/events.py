"""Utilities for recording structured runtime events.

Events are flat JSON records (one per line) carrying a label, a UTC
timestamp and the attributes captured at the call site. They are used by the
JSONL telemetry sink and by scripts that want an audit trail of ingestion and
sleep cycles next to the regular log stream.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO", *, fmt: str = DEFAULT_FORMAT) -> None:
    """Configure root logging for scripts (library code never calls this)."""

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
        level = resolved
    logging.basicConfig(level=level, format=fmt)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "model_dump"):
        return _jsonable(value.model_dump())
    return value


def build_record(
    label: str,
    attributes: Mapping[str, Any],
    *,
    timestamp: datetime | None = None,
) -> Dict[str, Any]:
    """Construct a structured event record."""

    record: Dict[str, Any] = {
        "label": label,
        "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
    }
    record.update({k: _jsonable(v) for k, v in attributes.items()})
    return record


def append_record(output_path: Path, record: Mapping[str, Any]) -> None:
    """Append a record to a JSONL file."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("a", encoding="utf-8") as fh:
        json.dump(record, fh, ensure_ascii=False)
        fh.write("\n")


def log_event(
    label: str,
    attributes: Mapping[str, Any],
    *,
    output_path: Path | None = None,
) -> Dict[str, Any]:
    """Build (and optionally persist) an event record."""

    record = build_record(label, attributes)
    if output_path is not None:
        append_record(output_path, record)
    return record


__all__ = [
    "DEFAULT_FORMAT",
    "append_record",
    "build_record",
    "configure_logging",
    "log_event",
]
