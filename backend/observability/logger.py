"""
JSONL event logger.

- One JSON object per line on stdout
- No buffering, no batching
- Never raises; an unserializable event becomes LOGGER_SERIALIZATION_ERROR

The human-readable per-run device log lives in observability.run_log;
this module is the machine-readable diagnostic stream.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Callable, Mapping


# ------------------------------------------------------------------
# Output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def _to_json(event: Mapping[str, Any]) -> str:
    return json.dumps(event, ensure_ascii=False, separators=(",", ":"))


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event.

    The caller supplies a fully-formed event dict including ts_ms and
    event_type. Enum values (str subclasses) serialize as their value.
    """
    try:
        line = _to_json(event)
    except (TypeError, ValueError) as e:
        line = _to_json({
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "source_event_type": str(event.get("event_type")),
            "error": str(e),
            "original_event_repr": repr(event),
        })

    _print(line)
