"""
Device clock projection.

Given the time base captured from the first progress frame, the device
clock "now" is estimated as:

    device_base_ms + (host_elapsed_now_ms - host_base_elapsed_ms)

Before a base exists the projection is UNSYNCED_DEVICE_MS (-1).
"""

from __future__ import annotations

from constants import UNSYNCED_DEVICE_MS
from orchestrator.state_dataclass import DeviceTimeBase


def project_device_ms(time_base: DeviceTimeBase | None, host_elapsed_ms: int) -> int:
    if time_base is None:
        return UNSYNCED_DEVICE_MS
    return time_base.device_base_ms + (host_elapsed_ms - time_base.host_base_elapsed_ms)
