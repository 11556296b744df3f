"""
Side-effect command definitions for the segment scheduler.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from plan.actions import Action
from settings.records import DeviceProps

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Device
    SEND_WORK = "SEND_WORK"

    # Run log
    OPEN_RUN_LOG = "OPEN_RUN_LOG"
    WRITE_LOG_LINE = "WRITE_LOG_LINE"

    # Listener
    NOTIFY = "NOTIFY"

    # Observability
    LOG_EVENT = "LOG_EVENT"


class Notification(str, Enum):
    """Progress notifications delivered to the scheduler's listener."""

    SEGMENT_STARTED = "segment_started"
    ACTION_STARTED = "action_started"
    ACTION_FINISHED = "action_finished"
    PROGRESS = "progress"
    RERUN_MARKED = "rerun_marked"
    IDLE = "idle"
    MESSAGE = "message"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Device Commands
# =============================================================================

@dataclass(frozen=True)
class SendWork(Command):
    """
    Pack the segment's actions into one WORK frame and send it.

    The runtime reports the outcome back as WorkSent / WorkSendFailed.
    """
    segment_index: int
    actions: tuple[Action, ...]
    device: DeviceProps
    command_type: CommandType = CommandType.SEND_WORK


# =============================================================================
# Run Log Commands
# =============================================================================

@dataclass(frozen=True)
class OpenRunLog(Command):
    """Start a fresh per-run log file."""
    command_type: CommandType = CommandType.OPEN_RUN_LOG


@dataclass(frozen=True)
class WriteLogLine(Command):
    """Append one structured device-traffic line to the run log."""
    line: str
    command_type: CommandType = CommandType.WRITE_LOG_LINE


# =============================================================================
# Listener Commands
# =============================================================================

@dataclass(frozen=True)
class Notify(Command):
    notification: Notification
    payload: dict[str, Any] = field(default_factory=dict)
    command_type: CommandType = CommandType.NOTIFY


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
