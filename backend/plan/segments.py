"""
Segment grouping.

A Segment is the scheduler's execution unit: one contiguous run of
actions sharing a flow_name. Repeated flow names are disambiguated as
"<flow>#<occurrence>".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from plan.actions import Action


@dataclass(frozen=True)
class Segment:
    """Inclusive [start_index, end_index] slice of the plan."""
    name: str
    flow_name: str
    start_index: int
    end_index: int

    @property
    def size(self) -> int:
        return self.end_index - self.start_index + 1


def build_segments(actions: Sequence[Action]) -> tuple[Segment, ...]:
    """Split the plan wherever flow_name changes from the previous action."""
    if not actions:
        return ()

    segments: list[Segment] = []
    occurrences: dict[str, int] = {}

    def flush(start: int, end: int, flow_name: str) -> None:
        count = occurrences.get(flow_name, 0) + 1
        occurrences[flow_name] = count
        segments.append(
            Segment(
                name=f"{flow_name}#{count}",
                flow_name=flow_name,
                start_index=start,
                end_index=end,
            )
        )

    current_flow = actions[0].flow_name
    start = 0
    for i in range(1, len(actions)):
        if actions[i].flow_name != current_flow:
            flush(start, i - 1, current_flow)
            current_flow = actions[i].flow_name
            start = i
    flush(start, len(actions) - 1, current_flow)

    return tuple(segments)
