"""
Pure segment scheduler reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks, no randomness.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from constants import NO_SEGMENT_INDEX
from observability.run_log import LogDirection, LogType, format_log_line
from orchestrator.clock import project_device_ms
from orchestrator.commands import (
    Command,
    LogEvent,
    Notification,
    Notify,
    OpenRunLog,
    SendWork,
    WriteLogLine,
)
from orchestrator.enums.state import RunState
from orchestrator.events import (
    AdvanceRequested,
    Event,
    FrameReceived,
    FrameTransmitted,
    PlanLoaded,
    RerunRequested,
    ResetRequested,
    RunStarted,
    WorkSendFailed,
    WorkSent,
)
from orchestrator.state_dataclass import DeviceTimeBase, SchedulerState
from plan.actions import describe_action
from plan.segments import build_segments
from protocol.text_frames import parse_setp_run


# =============================================================================
# Messages
# =============================================================================

MSG_TRANSPORT_NOT_OPEN = "Serial not open"
MSG_NO_NEXT_SEGMENT = "No next segment"
ACTION_OK_MESSAGE = "OK"
ACTION_FAILED_CODE = -1


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SchedulerState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "run_state": state.run_state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "current_segment_index": state.current_segment_index,
            "marked_rerun_segment": state.marked_rerun_segment,
            "segment_count": len(state.segments),
            "details": details or {},
        }
    )


def _ignore(
    state: SchedulerState, event: Event, reason: str
) -> tuple[SchedulerState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _line(
    state: SchedulerState,
    host_elapsed_ms: int,
    direction: LogDirection,
    log_type: LogType,
    segment_index: int,
    payload: str,
) -> WriteLogLine:
    return WriteLogLine(
        line=format_log_line(
            project_device_ms(state.time_base, host_elapsed_ms),
            direction,
            log_type,
            segment_index,
            payload,
        )
    )


def _state_changed(
    before: SchedulerState, after: SchedulerState, event: Event, source: str
) -> LogEvent:
    return _log(
        after,
        event,
        "state_changed",
        {
            "from_state": before.run_state.value,
            "to_state": after.run_state.value,
            "source": source,
        },
    )


def pick_next(state: SchedulerState) -> int:
    """
    Index of the segment the next advance would run, or -1.

    A pending rerun mark always wins over forward progress.
    """
    count = len(state.segments)
    if count == 0:
        return -1
    if 0 <= state.marked_rerun_segment < count:
        return state.marked_rerun_segment
    nxt = state.current_segment_index + 1
    if nxt < 0:
        return 0
    if nxt >= count:
        return -1
    return nxt


def _segment_actions(state: SchedulerState, index: int) -> tuple:
    seg = state.segments[index]
    return state.actions[seg.start_index: seg.end_index + 1]


def _rerun_notice(state: SchedulerState, index: int) -> Notify:
    seg = state.segments[index]
    return Notify(
        Notification.RERUN_MARKED,
        {"flow_name": seg.flow_name, "segment": seg.name, "segment_index": index},
    )


# =============================================================================
# Handlers
# =============================================================================

def _on_plan_loaded(
    state: SchedulerState, event: PlanLoaded
) -> tuple[SchedulerState, tuple[Command, ...]]:
    segments = build_segments(event.actions)
    new_state = replace(
        state,
        actions=tuple(event.actions),
        segments=segments,
        run_state=RunState.IDLE,
        current_segment_index=-1,
        marked_rerun_segment=-1,
        last_error=None,
    )
    return new_state, (
        _log(
            new_state,
            event,
            "plan_loaded",
            {
                "action_count": len(new_state.actions),
                "segments": [s.name for s in segments],
            },
        ),
        Notify(Notification.IDLE),
    )


def _on_run_started(
    state: SchedulerState, event: RunStarted
) -> tuple[SchedulerState, tuple[Command, ...]]:
    new_state = replace(state, time_base=None, last_device_step=-1)
    return new_state, (
        OpenRunLog(),
        _log(new_state, event, "run_started"),
    )


def _on_advance(
    state: SchedulerState, event: AdvanceRequested
) -> tuple[SchedulerState, tuple[Command, ...]]:
    if not state.segments:
        return _ignore(state, event, "no_plan_loaded")

    if not event.transport_open:
        return state, (
            _line(
                state, event.host_elapsed_ms,
                LogDirection.TX, LogType.ERROR, NO_SEGMENT_INDEX,
                MSG_TRANSPORT_NOT_OPEN,
            ),
            _log(state, event, "transport_unavailable"),
        )

    if state.run_state is RunState.SEGMENT_RUNNING:
        return _ignore(state, event, "segment_in_flight")

    index = pick_next(state)
    if index < 0:
        return state, (
            _line(
                state, event.host_elapsed_ms,
                LogDirection.TX, LogType.WORK, NO_SEGMENT_INDEX,
                MSG_NO_NEXT_SEGMENT,
            ),
            Notify(Notification.MESSAGE, {"text": MSG_NO_NEXT_SEGMENT}),
            Notify(Notification.IDLE),
            _log(state, event, "no_next_segment"),
        )

    is_rerun = index == state.marked_rerun_segment
    new_state = replace(
        state,
        run_state=RunState.SEGMENT_RUNNING,
        current_segment_index=index,
        marked_rerun_segment=-1 if is_rerun else state.marked_rerun_segment,
    )

    seg = state.segments[index]
    cmds: list[Command] = [
        Notify(
            Notification.SEGMENT_STARTED,
            {"name": seg.name, "start_index": seg.start_index, "end_index": seg.end_index},
        )
    ]
    for i in range(seg.start_index, seg.end_index + 1):
        action = state.actions[i]
        cmds.append(
            Notify(
                Notification.ACTION_STARTED,
                {"index": i, "kind": action.kind.value, "raw": describe_action(action)},
            )
        )
    cmds.append(_state_changed(state, new_state, event, "rerun" if is_rerun else "advance"))
    cmds.append(
        SendWork(
            segment_index=index,
            actions=_segment_actions(state, index),
            device=event.device,
        )
    )
    return new_state, tuple(cmds)


def _on_work_sent(
    state: SchedulerState, event: WorkSent
) -> tuple[SchedulerState, tuple[Command, ...]]:
    if (
        state.run_state is not RunState.SEGMENT_RUNNING
        or event.segment_index != state.current_segment_index
    ):
        return _ignore(state, event, "stale_work_outcome")

    seg = state.segments[event.segment_index]
    new_state = replace(state, run_state=RunState.IDLE, last_error=None)

    cmds: list[Command] = [
        _line(
            state, event.host_elapsed_ms,
            LogDirection.TX, LogType.WORK, event.segment_index, event.frame,
        )
    ]
    # No per-action acknowledgment exists; the segment completes on send.
    for i in range(seg.start_index, seg.end_index + 1):
        cmds.append(
            Notify(
                Notification.ACTION_FINISHED,
                {"index": i, "ok": True, "code": 0, "message": ACTION_OK_MESSAGE},
            )
        )
    cmds.append(Notify(Notification.IDLE))
    cmds.append(_state_changed(state, new_state, event, "work_sent"))
    return new_state, tuple(cmds)


def _on_work_send_failed(
    state: SchedulerState, event: WorkSendFailed
) -> tuple[SchedulerState, tuple[Command, ...]]:
    if (
        state.run_state is not RunState.SEGMENT_RUNNING
        or event.segment_index != state.current_segment_index
    ):
        return _ignore(state, event, "stale_work_outcome")

    seg = state.segments[event.segment_index]
    # Re-mark so the next advance retries the same segment.
    new_state = replace(
        state,
        run_state=RunState.IDLE,
        marked_rerun_segment=event.segment_index,
        last_error=event.reason,
    )

    cmds: list[Command] = [
        _line(
            state, event.host_elapsed_ms,
            LogDirection.TX, LogType.ERROR, event.segment_index, event.reason,
        )
    ]
    for i in range(seg.start_index, seg.end_index + 1):
        cmds.append(
            Notify(
                Notification.ACTION_FINISHED,
                {"index": i, "ok": False, "code": ACTION_FAILED_CODE, "message": event.reason},
            )
        )
    cmds.append(_rerun_notice(new_state, event.segment_index))
    cmds.append(Notify(Notification.IDLE))
    cmds.append(_state_changed(state, new_state, event, "work_send_failed"))
    return new_state, tuple(cmds)


def _on_rerun_requested(
    state: SchedulerState, event: RerunRequested
) -> tuple[SchedulerState, tuple[Command, ...]]:
    target = state.current_segment_index
    if not 0 <= target < len(state.segments):
        return _ignore(state, event, "no_rerun_target")

    new_state = replace(state, marked_rerun_segment=target)
    return new_state, (
        _rerun_notice(new_state, target),
        _log(new_state, event, "rerun_marked", {"segment_index": target}),
    )


def _on_reset(
    state: SchedulerState, event: ResetRequested
) -> tuple[SchedulerState, tuple[Command, ...]]:
    new_state = replace(
        state,
        run_state=RunState.IDLE,
        current_segment_index=-1,
        marked_rerun_segment=-1,
        last_error=None,
    )
    return new_state, (
        Notify(Notification.IDLE),
        _state_changed(state, new_state, event, "reset"),
    )


def _on_frame_received(
    state: SchedulerState, event: FrameReceived
) -> tuple[SchedulerState, tuple[Command, ...]]:
    # Logged with the time base as it was before this frame.
    cmds: list[Command] = [
        _line(
            state, event.host_elapsed_ms,
            LogDirection.RX, LogType.WORK, state.current_segment_index, event.text,
        )
    ]

    progress = parse_setp_run(event.text)
    if progress is None:
        return state, tuple(cmds)

    new_state = replace(state, last_device_step=progress.current_step)
    if state.time_base is None:
        new_state = replace(
            new_state,
            time_base=DeviceTimeBase(
                device_base_ms=progress.device_timestamp_ms,
                host_base_elapsed_ms=event.host_elapsed_ms,
            ),
        )
        cmds.append(
            _log(
                new_state,
                event,
                "device_time_base_set",
                {
                    "device_base_ms": progress.device_timestamp_ms,
                    "host_base_elapsed_ms": event.host_elapsed_ms,
                },
            )
        )

    cmds.append(
        Notify(
            Notification.PROGRESS,
            {
                "current_step": progress.current_step,
                "device_ms": progress.device_timestamp_ms,
            },
        )
    )
    return new_state, tuple(cmds)


def _on_frame_transmitted(
    state: SchedulerState, event: FrameTransmitted
) -> tuple[SchedulerState, tuple[Command, ...]]:
    try:
        log_type = LogType(event.log_type)
    except ValueError:
        return _ignore(state, event, f"unknown_log_type:{event.log_type}")
    return state, (
        _line(
            state, event.host_elapsed_ms,
            LogDirection.TX, log_type, NO_SEGMENT_INDEX, event.frame,
        ),
    )


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    state: SchedulerState, event: Event
) -> tuple[SchedulerState, tuple[Command, ...]]:
    """
    Pure reducer for the segment scheduler.

    Given the current scheduler state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every event type is handled or explicitly ignored
    - At most one segment in flight: advance is refused while running
    """
    if isinstance(event, PlanLoaded):
        return _on_plan_loaded(state, event)
    if isinstance(event, RunStarted):
        return _on_run_started(state, event)
    if isinstance(event, AdvanceRequested):
        return _on_advance(state, event)
    if isinstance(event, WorkSent):
        return _on_work_sent(state, event)
    if isinstance(event, WorkSendFailed):
        return _on_work_send_failed(state, event)
    if isinstance(event, RerunRequested):
        return _on_rerun_requested(state, event)
    if isinstance(event, ResetRequested):
        return _on_reset(state, event)
    if isinstance(event, FrameReceived):
        return _on_frame_received(state, event)
    if isinstance(event, FrameTransmitted):
        return _on_frame_transmitted(state, event)

    return _ignore(state, event, "unhandled_event")
