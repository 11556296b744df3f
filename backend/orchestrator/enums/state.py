"""
Scheduler run-state enumeration.

Rules:
- This enum defines ONLY the control-plane states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class RunState(str, Enum):
    """
    Execution phase of the segment scheduler.

    At most one segment is in flight; SEGMENT_RUNNING lasts from dispatch
    until the transport accepted (or rejected) the WORK frame.
    """

    IDLE = "IDLE"
    SEGMENT_RUNNING = "SEGMENT_RUNNING"
