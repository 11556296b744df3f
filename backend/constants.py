"""
BEHAVIORAL CONSTANTS
--------------------
Single source of truth for every value that changes runtime behavior.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Table import
# =============================================================================

# Upper bound on LED1..LEDn columns inside one LED block
MAX_LED_COLUMNS: Final[int] = 20

# BEEP cells are written in units of 100 ms; the value 1 selects the
# device default duration, 0 means "no beep".
BEEP_CELL_UNIT_MS: Final[int] = 100
BEEP_CELL_NONE: Final[int] = 0
BEEP_CELL_DEVICE_DEFAULT: Final[int] = 1

VOICE_SET_PRIMARY: Final[int] = 1
VOICE_SET_SECONDARY: Final[int] = 2

FLOW_NAME_PREFIX: Final[str] = "flow"

# Imported tables narrower than this still configure this many LEDs
MIN_DEVICE_LED_COUNT: Final[int] = 5

XLSX_SUFFIX: Final[str] = ".xlsx"

# =============================================================================
# Palette / conflicts
# =============================================================================

PALETTE_MAX_COLORS: Final[int] = 100
CONFLICT_TRIPLE_SIZE: Final[int] = 3

# =============================================================================
# Wire protocol  (CRLF-terminated ASCII / hex text)
# =============================================================================

FRAME_TERMINATOR: Final[str] = "\r\n"

# Code page 936 (simplified Chinese double-byte)
VOICE_TEXT_ENCODING: Final[str] = "gbk"

PREFIX_LED_CONFIG: Final[str] = "LEDSET:"
PREFIX_VOICE_CONFIG_1: Final[str] = "VOICESET1:"
PREFIX_VOICE_CONFIG_2: Final[str] = "VOICESET2:"
PREFIX_BEEP_CONFIG: Final[str] = "BEEPSET:"
PREFIX_WORK: Final[str] = "WORK:"
PREFIX_LED_TEST: Final[str] = "LEDTEST:"
PREFIX_VOICE_TEST: Final[str] = "VOICETEST:"
PREFIX_PROGRESS: Final[str] = "SETPRUN:"

BEEP_TEST_FRAME: Final[str] = "BEEPTEST"
LED_TEST_ALL_OFF_INDEX: Final[int] = 0

WORK_PART_SEPARATOR: Final[str] = ";"
WORK_FIELD_SEPARATOR: Final[str] = ","

# Receive-side line buffer is dropped when it grows past this without a newline
RX_BUFFER_MAX_BYTES: Final[int] = 8192

# =============================================================================
# Serial defaults
# =============================================================================

DEFAULT_BAUD_RATE: Final[int] = 115_200
DEFAULT_DATA_BITS: Final[int] = 8
DEFAULT_PARITY: Final[str] = "None"
DEFAULT_STOP_BITS: Final[int] = 1
SERIAL_READ_TIMEOUT_S: Final[float] = 0.1

# =============================================================================
# Run log
# =============================================================================

# -1 is logged until the first progress frame fixes the device time base
UNSYNCED_DEVICE_MS: Final[int] = -1
NO_SEGMENT_INDEX: Final[int] = -1

RUN_LOG_TIMESTAMP_FORMAT: Final[str] = "%Y%m%d_%H%M%S"
RUN_LOG_SUFFIX: Final[str] = ".log"
RUN_LOG_MEMORY_LINES: Final[int] = 2000
