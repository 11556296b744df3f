"""
Receive-side line framing.

Accumulates raw bytes from the transport and yields complete frames split
on '\n'. Frames are decoded as UTF-8 (invalid bytes replaced) and trimmed;
blank frames are dropped. A buffer that grows past RX_BUFFER_MAX_BYTES
without a newline is discarded and counted as an overflow.
"""

from __future__ import annotations

from constants import RX_BUFFER_MAX_BYTES


class LineBuffer:
    def __init__(self, max_bytes: int = RX_BUFFER_MAX_BYTES) -> None:
        self._buf = bytearray()
        self._max_bytes = max_bytes
        self.overflow_count = 0

    def __len__(self) -> int:
        return len(self._buf)

    def clear(self) -> None:
        self._buf.clear()

    def feed(self, data: bytes) -> list[str]:
        """Append data and return every complete, non-blank frame."""
        self._buf.extend(data)
        frames: list[str] = []
        while True:
            end = self._buf.find(b"\n")
            if end < 0:
                if len(self._buf) > self._max_bytes:
                    self._buf.clear()
                    self.overflow_count += 1
                return frames
            line = bytes(self._buf[: end + 1])
            del self._buf[: end + 1]
            frame = line.decode("utf-8", errors="replace").strip()
            if frame:
                frames.append(frame)
