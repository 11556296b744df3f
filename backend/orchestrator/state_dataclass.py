"""
Authoritative scheduler state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.state import RunState
from plan.actions import Action
from plan.segments import Segment


# =============================================================================
# Device Time Base
# =============================================================================

@dataclass(frozen=True)
class DeviceTimeBase:
    """
    Anchor pairing the device clock with the host run clock.

    Captured once per run, from the first progress frame received.
    """
    device_base_ms: int
    host_base_elapsed_ms: int


# =============================================================================
# Scheduler State
# =============================================================================

@dataclass(frozen=True)
class SchedulerState:
    """Immutable snapshot of all scheduler-owned state."""

    # ------------------------------------------------------------------
    # Loaded plan (rebuilt only by PlanLoaded)
    # ------------------------------------------------------------------
    actions: tuple[Action, ...] = ()
    segments: tuple[Segment, ...] = ()

    # ------------------------------------------------------------------
    # Run progress
    # ------------------------------------------------------------------
    run_state: RunState = RunState.IDLE

    # -1 = nothing started yet; otherwise the running or last completed segment
    current_segment_index: int = -1

    # -1 = no rerun pending
    marked_rerun_segment: int = -1

    # ------------------------------------------------------------------
    # Device clock reconciliation
    # ------------------------------------------------------------------
    time_base: DeviceTimeBase | None = None
    last_device_step: int = -1

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
