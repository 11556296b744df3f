"""
Runtime collaborator interfaces.

Narrow Protocols (capabilities, not implementations) for the imperative
resources the scheduler runtime drives: the device transport, the
run-log sink and the progress listener.

This module contains:
- Zero scheduling logic
- Zero state mutation
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable


class TransportError(Exception):
    """Raised by a transport when a frame cannot be sent or the port opened."""


FrameCallback = Callable[[str], None]
Listener = Callable[[str, dict[str, Any]], None]


# ---------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------

@runtime_checkable
class Transport(Protocol):
    def is_open(self) -> bool: ...

    def send(self, frame: str) -> None:
        """
        Fire-and-forget write of one CRLF-terminated frame.

        Raises TransportError when the write fails.
        """

    def subscribe(self, callback: FrameCallback) -> None:
        """Register the single consumer of complete inbound lines."""


# ---------------------------------------------------------------------
# Run log sink
# ---------------------------------------------------------------------

@runtime_checkable
class RunLogSink(Protocol):
    def open_new(self) -> Optional[str]: ...

    def write_line(self, line: str) -> None: ...

    def close(self) -> None: ...
