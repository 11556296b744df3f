# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any, Optional

import numpy as np
import pytest

import orchestrator.runtime as runtime_mod
from observability.run_log import LogType
from orchestrator.enums.state import RunState
from orchestrator.runtime import SegmentScheduler
from orchestrator.runtime_context import TransportError
from plan.actions import BeepAction, DelayAction, LedAction, LedMode
from settings.records import DeviceProps


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakeTransport:
    def __init__(self, open_: bool = True) -> None:
        self.open = open_
        self.sent: list[str] = []
        self.fail_next = False

    def is_open(self) -> bool:
        return self.open

    def send(self, frame: str) -> None:
        if self.fail_next:
            self.fail_next = False
            raise TransportError("write timeout")
        self.sent.append(frame)

    def subscribe(self, callback) -> None:
        pass


class FakeRunLog:
    def __init__(self) -> None:
        self.lines: list[str] = []
        self.opened = 0

    def open_new(self) -> Optional[str]:
        self.opened += 1
        self.lines.clear()
        return None

    def write_line(self, line: str) -> None:
        self.lines.append(line)

    def close(self) -> None:
        pass


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000

    def __call__(self) -> int:
        return self.now


PLAN = (
    LedAction("flow1", LedMode.ALL, (1, 2, 3)),
    DelayAction("flow1", 100),
    BeepAction("flow2", 0),
)

DEVICE = DeviceProps(led_count=3)


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(runtime_mod, "log_event", emitted.append)
    return emitted


def make_scheduler(transport: Optional[FakeTransport] = None):
    transport = transport or FakeTransport()
    run_log = FakeRunLog()
    clock = FakeClock()
    notes: list[tuple[str, dict[str, Any]]] = []
    scheduler = SegmentScheduler(
        transport=transport,
        run_log=run_log,
        listener=lambda kind, payload: notes.append((kind, payload)),
        rng=np.random.default_rng(0),
        monotonic_ms=clock,
        wall_ms=lambda: 0,
    )
    return scheduler, transport, run_log, clock, notes


# ---------------------------------------------------------------------
# 1. Dispatch
# ---------------------------------------------------------------------

def test_advance_sends_one_work_frame_per_segment():
    scheduler, transport, run_log, _, _ = make_scheduler()
    scheduler.begin_run()
    scheduler.load_plan(PLAN)

    assert scheduler.advance(DEVICE) is True
    assert transport.sent == ["WORK:LED,0,0,0,1,2,3;DELAY,100;\r\n"]
    assert run_log.lines == ["[-1][TX][WORK][0][WORK:LED,0,0,0,1,2,3;DELAY,100;]"]
    assert scheduler.state.run_state is RunState.IDLE

    assert scheduler.advance(DEVICE) is True
    assert transport.sent[-1] == "WORK:BEEP;\r\n"

    assert scheduler.advance(DEVICE) is False
    assert run_log.lines[-1] == "[-1][TX][WORK][-1][No next segment]"


def test_notifications_reach_listener_in_order():
    scheduler, _, _, _, notes = make_scheduler()
    scheduler.load_plan(PLAN)
    notes.clear()

    scheduler.advance(DEVICE)

    kinds = [k for k, _ in notes]
    assert kinds == [
        "segment_started",
        "action_started",
        "action_started",
        "action_finished",
        "action_finished",
        "idle",
    ]
    assert notes[0][1]["name"] == "flow1#1"


def test_peek_next_does_not_dispatch():
    scheduler, transport, _, _, _ = make_scheduler()
    scheduler.load_plan(PLAN)
    assert scheduler.peek_next() == 0
    assert transport.sent == []


# ---------------------------------------------------------------------
# 2. Failures
# ---------------------------------------------------------------------

def test_closed_transport_refuses_and_logs():
    scheduler, transport, run_log, _, _ = make_scheduler(FakeTransport(open_=False))
    scheduler.load_plan(PLAN)

    assert scheduler.advance(DEVICE) is False
    assert transport.sent == []
    assert run_log.lines == ["[-1][TX][ERROR][-1][Serial not open]"]
    assert scheduler.state.current_segment_index == -1


def test_send_failure_marks_segment_for_retry():
    scheduler, transport, run_log, _, notes = make_scheduler()
    scheduler.load_plan(PLAN)
    transport.fail_next = True

    assert scheduler.advance(DEVICE) is False
    assert scheduler.state.marked_rerun_segment == 0
    assert run_log.lines[-1] == "[-1][TX][ERROR][0][write timeout]"
    assert ("rerun_marked", {"flow_name": "flow1", "segment": "flow1#1", "segment_index": 0}) in notes

    assert scheduler.advance(DEVICE) is True
    assert transport.sent[0].startswith("WORK:LED")


# ---------------------------------------------------------------------
# 3. Rerun / reset
# ---------------------------------------------------------------------

def test_mark_rerun_repeats_last_segment():
    scheduler, transport, _, _, _ = make_scheduler()
    scheduler.load_plan(PLAN)
    scheduler.advance(DEVICE)
    scheduler.mark_rerun()
    scheduler.advance(DEVICE)

    assert transport.sent[0] == transport.sent[1]
    assert scheduler.peek_next() == 1


def test_reset_starts_over():
    scheduler, transport, _, _, _ = make_scheduler()
    scheduler.load_plan(PLAN)
    scheduler.advance(DEVICE)
    scheduler.advance(DEVICE)
    scheduler.reset()

    assert scheduler.peek_next() == 0
    scheduler.advance(DEVICE)
    assert transport.sent[-1] == transport.sent[0]


# ---------------------------------------------------------------------
# 4. Device clock
# ---------------------------------------------------------------------

def test_device_clock_projects_from_first_progress_frame():
    scheduler, _, run_log, clock, _ = make_scheduler()
    scheduler.begin_run()
    scheduler.load_plan(PLAN)

    assert scheduler.now_device_ms() == -1

    clock.now += 200
    scheduler.on_frame_received("SETPRUN:1,9000")
    assert scheduler.now_device_ms() == 9000

    clock.now += 300
    assert scheduler.now_device_ms() == 9300

    scheduler.log_tx(LogType.TEST, "BEEPTEST\r\n")
    assert run_log.lines[-1] == "[9300][TX][TEST][-1][BEEPTEST]"


def test_begin_run_clears_time_base_and_opens_log():
    scheduler, _, run_log, _, _ = make_scheduler()
    scheduler.on_frame_received("SETPRUN:1,9000")
    scheduler.begin_run()

    assert scheduler.now_device_ms() == -1
    assert run_log.opened == 1


def test_log_events_are_forwarded(quiet_logs):
    scheduler, _, _, _, _ = make_scheduler()
    scheduler.load_plan(PLAN)
    assert any(e["decision"] == "plan_loaded" for e in quiet_logs)


def test_json_logs_can_be_disabled(quiet_logs):
    scheduler = SegmentScheduler(
        transport=FakeTransport(), run_log=FakeRunLog(), json_logs=False
    )
    scheduler.load_plan(PLAN)
    assert quiet_logs == []
