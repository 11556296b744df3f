"""
Runtime execution shell for the segment scheduler.

Responsibilities:
- Own scheduler state
- Call the pure reducer
- Execute commands with side effects (WORK send, run log, listener, JSONL)
- Supply clocks: wall-clock ts_ms and the per-run monotonic elapsed clock

Non-responsibilities:
- Locking. The scheduler has no internal synchronization; callers that
  feed it from several threads must serialize access (see DeviceGateway).
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

import numpy as np

from observability.logger import log_event
from observability.run_log import LogType
from orchestrator.clock import project_device_ms
from orchestrator.commands import (
    Command,
    LogEvent,
    Notify,
    OpenRunLog,
    SendWork,
    WriteLogLine,
)
from orchestrator.events import (
    AdvanceRequested,
    Event,
    EventType,
    FrameReceived,
    FrameTransmitted,
    PlanLoaded,
    RerunRequested,
    ResetRequested,
    RunStarted,
    WorkSendFailed,
    WorkSent,
)
from orchestrator.reducer import pick_next, reduce
from orchestrator.runtime_context import (
    Listener,
    RunLogSink,
    Transport,
    TransportError,
)
from orchestrator.state_dataclass import SchedulerState
from plan.actions import Action
from protocol.text_frames import ProtocolError, pack_work
from settings.records import DeviceProps


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class SegmentScheduler:
    """
    Runtime boundary around the scheduler reducer.

    Guarantees:
    - Reducer is called exactly once per event
    - State is updated before any command executes
    - Commands run in reducer-emitted order
    - Transport outcomes are fed back as events (single entry point)
    """

    def __init__(
        self,
        *,
        transport: Transport,
        run_log: RunLogSink,
        listener: Optional[Listener] = None,
        rng: Optional[np.random.Generator] = None,
        monotonic_ms: Callable[[], int] = _monotonic_ms,
        wall_ms: Callable[[], int] = _now_ms,
        json_logs: bool = True,
    ) -> None:
        self._state = SchedulerState()
        self._transport = transport
        self._run_log = run_log
        self._listener = listener
        self._rng = rng
        self._monotonic_ms = monotonic_ms
        self._wall_ms = wall_ms
        self._json_logs = json_logs
        self._run_origin_ms = monotonic_ms()
        self._dispatched = 0

    @property
    def state(self) -> SchedulerState:
        """Current immutable scheduler state (read-only)."""
        return self._state

    # ------------------------------------------------------------------
    # Clocks
    # ------------------------------------------------------------------

    def host_elapsed_ms(self) -> int:
        return self._monotonic_ms() - self._run_origin_ms

    def now_device_ms(self) -> int:
        """Projected device clock, or -1 before the first progress frame."""
        return project_device_ms(self._state.time_base, self.host_elapsed_ms())

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def handle_event(self, event: Event) -> None:
        new_state, commands = reduce(self._state, event)
        self._state = new_state
        for cmd in commands:
            self._execute_command(cmd)

    # ------------------------------------------------------------------
    # Caller API
    # ------------------------------------------------------------------

    def load_plan(self, actions: Sequence[Action]) -> None:
        self.handle_event(PlanLoaded(
            event_type=EventType.PLAN_LOADED,
            ts_ms=self._wall_ms(),
            actions=tuple(actions),
        ))

    def begin_run(self) -> None:
        """Restart the run clock and open a fresh run log."""
        self._run_origin_ms = self._monotonic_ms()
        self.handle_event(RunStarted(
            event_type=EventType.RUN_STARTED,
            ts_ms=self._wall_ms(),
        ))

    def advance(self, device: DeviceProps) -> bool:
        """Dispatch the next segment; True if a WORK frame was sent."""
        before = self._dispatched
        self.handle_event(AdvanceRequested(
            event_type=EventType.ADVANCE_REQUESTED,
            ts_ms=self._wall_ms(),
            host_elapsed_ms=self.host_elapsed_ms(),
            transport_open=self._transport.is_open(),
            device=device,
        ))
        return self._dispatched > before

    def peek_next(self) -> int:
        return pick_next(self._state)

    def mark_rerun(self) -> None:
        self.handle_event(RerunRequested(
            event_type=EventType.RERUN_REQUESTED,
            ts_ms=self._wall_ms(),
        ))

    def reset(self) -> None:
        self.handle_event(ResetRequested(
            event_type=EventType.RESET_REQUESTED,
            ts_ms=self._wall_ms(),
        ))

    def on_frame_received(self, text: str) -> None:
        self.handle_event(FrameReceived(
            event_type=EventType.FRAME_RECEIVED,
            ts_ms=self._wall_ms(),
            host_elapsed_ms=self.host_elapsed_ms(),
            text=text,
        ))

    def log_tx(self, log_type: LogType, frame: str) -> None:
        """Record a CONFIG / TEST frame sent outside segment execution."""
        self.handle_event(FrameTransmitted(
            event_type=EventType.FRAME_TRANSMITTED,
            ts_ms=self._wall_ms(),
            host_elapsed_ms=self.host_elapsed_ms(),
            log_type=log_type.value,
            frame=frame,
        ))

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    def _execute_command(self, cmd: Command) -> None:
        if isinstance(cmd, LogEvent):
            if self._json_logs:
                log_event(cmd.event)

        elif isinstance(cmd, WriteLogLine):
            self._run_log.write_line(cmd.line)

        elif isinstance(cmd, OpenRunLog):
            self._run_log.open_new()

        elif isinstance(cmd, Notify):
            if self._listener is not None:
                self._listener(cmd.notification.value, dict(cmd.payload))

        elif isinstance(cmd, SendWork):
            self._send_work(cmd)

        else:
            raise TypeError(f"unknown command {type(cmd).__name__}")

    def _send_work(self, cmd: SendWork) -> None:
        try:
            frame = pack_work(cmd.actions, cmd.device, self._rng)
            self._transport.send(frame)
        except (TransportError, ProtocolError) as e:
            self.handle_event(WorkSendFailed(
                event_type=EventType.WORK_SEND_FAILED,
                ts_ms=self._wall_ms(),
                host_elapsed_ms=self.host_elapsed_ms(),
                segment_index=cmd.segment_index,
                reason=str(e),
            ))
            return

        self._dispatched += 1
        self.handle_event(WorkSent(
            event_type=EventType.WORK_SENT,
            ts_ms=self._wall_ms(),
            host_elapsed_ms=self.host_elapsed_ms(),
            segment_index=cmd.segment_index,
            frame=frame,
        ))
