"""
Event definitions for the segment scheduler reducer.

Rules:
- Events describe facts that have occurred (or requests that arrived).
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks: every timestamp is supplied by the runtime (or fake in tests).

host_elapsed_ms is the runtime's monotonic clock relative to the start of
the current run; it drives device-time projection for log lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from plan.actions import Action
from settings.records import DeviceProps


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Plan / run lifecycle
    # ------------------------------------------------------------------
    PLAN_LOADED = "PLAN_LOADED"
    RUN_STARTED = "RUN_STARTED"
    RESET_REQUESTED = "RESET_REQUESTED"

    # ------------------------------------------------------------------
    # Execution control
    # ------------------------------------------------------------------
    ADVANCE_REQUESTED = "ADVANCE_REQUESTED"
    RERUN_REQUESTED = "RERUN_REQUESTED"

    # ------------------------------------------------------------------
    # Transport outcomes
    # ------------------------------------------------------------------
    WORK_SENT = "WORK_SENT"
    WORK_SEND_FAILED = "WORK_SEND_FAILED"
    FRAME_TRANSMITTED = "FRAME_TRANSMITTED"
    FRAME_RECEIVED = "FRAME_RECEIVED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: wall-clock timestamp provided by the source
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Plan / run lifecycle
# =============================================================================

@dataclass(frozen=True)
class PlanLoaded(Event):
    """A resolved plan replaces whatever was loaded before."""
    actions: tuple[Action, ...]


@dataclass(frozen=True)
class RunStarted(Event):
    """A fresh run begins: new run log, device time base cleared."""


@dataclass(frozen=True)
class ResetRequested(Event):
    """Abandon run progress and rerun marks; keep the plan."""


# =============================================================================
# Execution control
# =============================================================================

@dataclass(frozen=True)
class AdvanceRequested(Event):
    """
    Caller asks for the next segment.

    transport_open is sampled by the runtime at request time.
    device is the configuration value the WORK frame is packed with.
    """
    host_elapsed_ms: int
    transport_open: bool
    device: DeviceProps


@dataclass(frozen=True)
class RerunRequested(Event):
    """Mark the running (or last completed) segment to run again."""


# =============================================================================
# Transport outcomes
# =============================================================================

@dataclass(frozen=True)
class WorkSent(Event):
    """The WORK frame for segment_index was handed to the transport."""
    host_elapsed_ms: int
    segment_index: int
    frame: str


@dataclass(frozen=True)
class WorkSendFailed(Event):
    """The transport rejected the WORK frame for segment_index."""
    host_elapsed_ms: int
    segment_index: int
    reason: str


@dataclass(frozen=True)
class FrameTransmitted(Event):
    """A CONFIG or TEST frame went out outside segment execution."""
    host_elapsed_ms: int
    log_type: str
    frame: str


@dataclass(frozen=True)
class FrameReceived(Event):
    """One complete inbound line from the device."""
    host_elapsed_ms: int
    text: str
