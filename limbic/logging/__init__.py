"""Logging utilities for the limbic runtime.

Library modules log through ``logging.getLogger(__name__)``; this package only
adds the script-side ``configure_logging`` helper and JSONL event records.
"""

from __future__ import annotations

from .events import (  # noqa: F401
    DEFAULT_FORMAT,
    append_record,
    build_record,
    configure_logging,
    log_event,
)

__all__ = [
    "DEFAULT_FORMAT",
    "append_record",
    "build_record",
    "configure_logging",
    "log_event",
]
