"""
Connection status tracking for the device transport.

connection_status: DOWN | UP | FAILED

Tracked separately from the scheduler's RunState: IDLE can occur with any
ConnectionStatus, and a run may be reset while the port stays open.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """Serial port lifecycle status."""
    DOWN = "DOWN"       # Not opened (or closed by the caller)
    UP = "UP"           # Port open, reader thread running
    FAILED = "FAILED"   # Open failed or the port errored while reading
