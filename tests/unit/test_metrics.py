# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest

from observability import metrics


@pytest.fixture
def emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(metrics, "log_event", events.append)
    return events


def test_timed_emits_one_metric(emitted):
    with metrics.timed("color_resolve", details={"actions": 3}):
        pass

    (event,) = emitted
    assert event["event_type"] == "METRIC_TIMER"
    assert event["metric"] == "color_resolve"
    assert event["value_ms"] >= 0
    assert event["details"] == {"actions": 3}


def test_timed_does_not_suppress_exceptions(emitted):
    with pytest.raises(ValueError):
        with metrics.timed("table_parse"):
            raise ValueError("boom")
    assert len(emitted) == 1


def test_stop_unknown_timer_returns_none(emitted):
    assert metrics.stop_timer("timer_missing") is None
    assert emitted == []
