"""
Serial port transport (pyserial).

Implements the Transport capability used by the scheduler runtime:
- open/close with SerialConfig parameters
- fire-and-forget CRLF frame writes
- a daemon reader thread splitting inbound bytes into lines and handing
  each line to the subscribed callback (on the reader thread)

Errors:
- Open and write failures raise TransportError.
- Read failures on the reader thread mark the transport FAILED and are
  logged; the thread then exits.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional

import serial

from constants import FRAME_TERMINATOR, SERIAL_READ_TIMEOUT_S
from observability.logger import log_event
from orchestrator.runtime_context import FrameCallback, TransportError
from protocol.line_buffer import LineBuffer
from session.connection_status import ConnectionStatus
from settings.records import SerialConfig


_PARITY = {
    "none": serial.PARITY_NONE,
    "even": serial.PARITY_EVEN,
    "odd": serial.PARITY_ODD,
    "mark": serial.PARITY_MARK,
    "space": serial.PARITY_SPACE,
}


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def serial_kwargs(config: SerialConfig) -> dict[str, Any]:
    """Translate a SerialConfig into pyserial constructor arguments."""
    return {
        "port": config.port,
        "baudrate": config.baud,
        "bytesize": serial.SEVENBITS if config.data_bits == 7 else serial.EIGHTBITS,
        "parity": _PARITY.get(config.parity.strip().lower(), serial.PARITY_NONE),
        "stopbits": serial.STOPBITS_TWO if config.stop_bits == 2 else serial.STOPBITS_ONE,
        "timeout": SERIAL_READ_TIMEOUT_S,
    }


class SerialTransport:
    def __init__(
        self,
        *,
        serial_factory: Callable[..., Any] = serial.Serial,
        start_reader: bool = True,
    ) -> None:
        self._serial_factory = serial_factory
        self._start_reader = start_reader
        self._port: Any = None
        self._callback: Optional[FrameCallback] = None
        self._buffer = LineBuffer()
        self._reader: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._write_lock = threading.Lock()
        self.status = ConnectionStatus.DOWN

    # ------------------------------------------------------------------
    # Transport capability
    # ------------------------------------------------------------------

    def is_open(self) -> bool:
        return self._port is not None and bool(self._port.is_open)

    def subscribe(self, callback: FrameCallback) -> None:
        self._callback = callback

    def send(self, frame: str) -> None:
        if not self.is_open():
            raise TransportError("serial port not open")
        payload = frame if frame.endswith(FRAME_TERMINATOR) else frame + FRAME_TERMINATOR
        try:
            with self._write_lock:
                self._port.write(payload.encode("utf-8"))
        except serial.SerialException as e:
            raise TransportError(f"serial write failed: {e}") from e

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, config: SerialConfig) -> None:
        self.close()
        try:
            self._port = self._serial_factory(**serial_kwargs(config))
        except (serial.SerialException, ValueError) as e:
            self._port = None
            self.status = ConnectionStatus.FAILED
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SERIAL_OPEN_FAILED",
                "port": config.port,
                "error": str(e),
            })
            raise TransportError(f"failed to open {config.port}: {e}") from e

        self._buffer.clear()
        self.status = ConnectionStatus.UP
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SERIAL_OPENED",
            "port": config.port,
            "baud": config.baud,
        })

        if self._start_reader:
            self._stop.clear()
            self._reader = threading.Thread(
                target=self._read_loop, name="serial-reader", daemon=True
            )
            self._reader.start()

    def close(self) -> None:
        self._stop.set()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=1.0)

        port, self._port = self._port, None
        if port is not None:
            try:
                port.close()
            except serial.SerialException as e:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "SERIAL_CLOSE_FAILED",
                    "error": str(e),
                })
        self._buffer.clear()
        if self.status is ConnectionStatus.UP:
            self.status = ConnectionStatus.DOWN

    # ------------------------------------------------------------------
    # Receive path
    # ------------------------------------------------------------------

    def feed(self, data: bytes) -> None:
        """Push received bytes through line framing to the subscriber."""
        overflows = self._buffer.overflow_count
        frames = self._buffer.feed(data)
        if self._buffer.overflow_count != overflows:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "RX_BUFFER_OVERFLOW",
                "dropped_total": self._buffer.overflow_count,
            })
        if self._callback is None:
            return
        for frame in frames:
            self._callback(frame)

    def _read_loop(self) -> None:
        while not self._stop.is_set():
            port = self._port
            if port is None:
                return
            try:
                data = port.read(port.in_waiting or 1)
            except serial.SerialException as e:
                self.status = ConnectionStatus.FAILED
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "SERIAL_READ_FAILED",
                    "error": str(e),
                })
                return
            if data:
                self.feed(data)
