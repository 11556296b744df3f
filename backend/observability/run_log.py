"""
Per-run device traffic log.

Line format:

    [<projected_device_ms>][<TX|RX>][<WORK|CONFIG|TEST|ERROR>][<segment_index>][<payload>]

Responsibilities:
- Render structured lines (pure helper, used by the reducer)
- Own one UTF-8 log file per run under log_dir
- Keep the most recent lines in memory and forward each line to a callback

Failure policy:
- A file that cannot be opened or written degrades the sink to
  memory + callback only. Nothing here ever raises into the scheduler.
"""

from __future__ import annotations

import os
from collections import deque
from datetime import datetime
from enum import Enum
from typing import IO, Callable, Optional

from constants import (
    RUN_LOG_MEMORY_LINES,
    RUN_LOG_SUFFIX,
    RUN_LOG_TIMESTAMP_FORMAT,
)
from observability.logger import log_event


class LogDirection(str, Enum):
    TX = "TX"
    RX = "RX"


class LogType(str, Enum):
    WORK = "WORK"
    CONFIG = "CONFIG"
    TEST = "TEST"
    ERROR = "ERROR"


def format_log_line(
    device_ms: int,
    direction: LogDirection,
    log_type: LogType,
    segment_index: int,
    payload: str,
) -> str:
    return (
        f"[{device_ms}][{direction.value}][{log_type.value}]"
        f"[{segment_index}][{payload.strip()}]"
    )


def run_log_filename(now: datetime) -> str:
    """yyyyMMdd_HHmmss_zzz.log"""
    return f"{now.strftime(RUN_LOG_TIMESTAMP_FORMAT)}_{now.microsecond // 1000:03d}{RUN_LOG_SUFFIX}"


def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


class RunLog:
    """
    Run-log sink.

    log_dir=None keeps the sink memory-only (file output disabled).
    """

    def __init__(
        self,
        log_dir: Optional[str],
        *,
        on_line: Optional[Callable[[str], None]] = None,
        memory_lines: int = RUN_LOG_MEMORY_LINES,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._log_dir = log_dir
        self._on_line = on_line
        self._lines: deque[str] = deque(maxlen=memory_lines)
        self._now = now
        self._fh: Optional[IO[str]] = None
        self._path: Optional[str] = None

    @property
    def path(self) -> Optional[str]:
        """Path of the open run file, or None when degraded / disabled."""
        return self._path if self._fh is not None else None

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    def set_line_callback(self, on_line: Optional[Callable[[str], None]]) -> None:
        self._on_line = on_line

    def open_new(self) -> Optional[str]:
        """Close any previous file and start a new one; returns its path."""
        self.close()
        self._lines.clear()
        if self._log_dir is None:
            return None

        path = os.path.join(self._log_dir, run_log_filename(self._now()))
        try:
            os.makedirs(self._log_dir, exist_ok=True)
            self._fh = open(path, "w", encoding="utf-8")
        except OSError as e:
            self._fh = None
            self._path = None
            self._report("RUN_LOG_OPEN_FAILED", path, e)
            self._emit(f"run log could not be created: {path}")
            return None

        self._path = path
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "RUN_LOG_OPENED",
            "path": path,
        })
        return path

    def write_line(self, line: str) -> None:
        self._emit(line)
        if self._fh is None:
            return
        try:
            self._fh.write(line + "\n")
            self._fh.flush()
        except OSError as e:
            self._report("RUN_LOG_WRITE_FAILED", self._path, e)
            self._close_quietly()

    def close(self) -> None:
        if self._fh is not None:
            self._close_quietly()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _emit(self, line: str) -> None:
        self._lines.append(line)
        if self._on_line is not None:
            self._on_line(line)

    def _close_quietly(self) -> None:
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            fh.close()
        except OSError as e:
            self._report("RUN_LOG_CLOSE_FAILED", self._path, e)

    @staticmethod
    def _report(event_type: str, path: Optional[str], error: OSError) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "path": path,
            "error": str(error),
        })
