"""
Workflow table parser.

Turns a grid of trimmed text cells into an ordered action plan plus a
display mirror of the rows that produced it.

Layout rules:
- Any row containing a recognized header token is a header row. This
  includes data cells: a voice prompt reading "BEEP" turns its row into
  a header row.
- A header row is scanned left to right into typed blocks
  (LED, BEEP, VOICE, DELAY). The resulting layout governs every data row
  until the next header row.
- Scanning stops at the first row that is empty across the checked
  columns. Nothing below it is read.
- Every failure aborts the whole parse; no partial plan is returned.

Usage example:

    table = parse_table(grid)
    for action in table.actions:
        ...
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union

from constants import (
    BEEP_CELL_DEVICE_DEFAULT,
    BEEP_CELL_NONE,
    BEEP_CELL_UNIT_MS,
    FLOW_NAME_PREFIX,
    MAX_LED_COLUMNS,
    VOICE_SET_PRIMARY,
    VOICE_SET_SECONDARY,
)
from plan.actions import (
    Action,
    ActionKind,
    BeepAction,
    DelayAction,
    LedAction,
    VoiceAction,
    normalize_led_mode,
)


# -------------------------
# Exceptions
# -------------------------

class TableParseError(Exception):
    """
    Base class for table parse failures.

    row / col are 1-based source coordinates when known.
    """

    def __init__(
        self,
        message: str,
        *,
        row: Optional[int] = None,
        col: Optional[int] = None,
    ) -> None:
        self.message = message
        self.row = row
        self.col = col
        super().__init__(self._format())

    def _format(self) -> str:
        if self.row is not None and self.col is not None:
            return f"row {self.row}, column {self.col}: {self.message}"
        if self.row is not None:
            return f"row {self.row}: {self.message}"
        return self.message


class MalformedHeaderError(TableParseError):
    """Header row shape is invalid (bad LED run, orphan column, unknown marker)."""


class InvalidCellValue(TableParseError):
    """A data cell could not be interpreted for its column."""


class LayoutError(TableParseError):
    """Sheet-level problems: merged cells, data before header, nothing to run."""


# -------------------------
# Header tokens
# -------------------------

class HeaderToken(str, Enum):
    LED_MODE = "LED_MODE"
    LED_N = "LED_N"
    BEEP = "BEEP"
    VOICE = "VOICE"
    STYLE = "STYLE"
    DELAY = "DELAY"


_LED_N_RE = re.compile(r"^LED(\d+)$")

_TOKEN_ALIASES: dict[str, HeaderToken] = {
    "LED工作模式": HeaderToken.LED_MODE,
    "工作模式": HeaderToken.LED_MODE,
    "LED模式": HeaderToken.LED_MODE,
    "MODE": HeaderToken.LED_MODE,
    "WORKMODE": HeaderToken.LED_MODE,
    "LEDMODE": HeaderToken.LED_MODE,
    "BEEP": HeaderToken.BEEP,
    "蜂鸣": HeaderToken.BEEP,
    "VOICE": HeaderToken.VOICE,
    "语音": HeaderToken.VOICE,
    "风格": HeaderToken.STYLE,
    "语音风格": HeaderToken.STYLE,
    "STYLE": HeaderToken.STYLE,
    "VOICESTYLE": HeaderToken.STYLE,
    "VOICE_STYLE": HeaderToken.STYLE,
    "VOICESET": HeaderToken.STYLE,
    "VOICESET1": HeaderToken.STYLE,
    "VOICESET2": HeaderToken.STYLE,
    "DELAY": HeaderToken.DELAY,
    "延时": HeaderToken.DELAY,
}

# Fragments that make unrecognized header text an error instead of noise
_SUSPICIOUS_FRAGMENTS = ("模式", "MODE", "风格", "STYLE")

TIME_COLUMN_TITLE = "TIME"


def _header_key(text: str) -> str:
    return text.strip().replace(" ", "").upper()


def classify_header_cell(text: str) -> tuple[Optional[HeaderToken], int]:
    """Return (token, led_index); led_index is only meaningful for LED_N."""
    key = _header_key(text)
    if not key:
        return None, 0
    match = _LED_N_RE.match(key)
    if match:
        return HeaderToken.LED_N, int(match.group(1))
    return _TOKEN_ALIASES.get(key), 0


def _looks_malformed(text: str) -> bool:
    key = _header_key(text)
    if key.startswith("LED"):
        return True
    return any(fragment in key for fragment in _SUSPICIOUS_FRAGMENTS)


# -------------------------
# Blocks (active header layout)
# -------------------------

@dataclass(frozen=True)
class LedBlock:
    mode_col: int
    led_cols: tuple[int, ...]

    @property
    def columns(self) -> tuple[int, ...]:
        return (self.mode_col,) + self.led_cols


@dataclass(frozen=True)
class BeepBlock:
    col: int

    @property
    def columns(self) -> tuple[int, ...]:
        return (self.col,)


@dataclass(frozen=True)
class VoiceBlock:
    text_col: int
    style_col: int

    @property
    def columns(self) -> tuple[int, ...]:
        return (self.text_col, self.style_col)


@dataclass(frozen=True)
class DelayBlock:
    col: int

    @property
    def columns(self) -> tuple[int, ...]:
        return (self.col,)


Block = Union[LedBlock, BeepBlock, VoiceBlock, DelayBlock]


@dataclass(frozen=True)
class HeaderLayout:
    """Block layout declared by one header row (0-based row/col)."""
    row: int
    blocks: tuple[Block, ...]

    @property
    def checked_columns(self) -> tuple[int, ...]:
        cols: list[int] = []
        for block in self.blocks:
            cols.extend(block.columns)
        return tuple(cols)


# -------------------------
# Parse result
# -------------------------

@dataclass(frozen=True)
class DisplayRow:
    """
    One row of the display mirror.

    cells follow the block layout with a synthetic time column after each
    block; the time cells of data rows start empty.
    """
    source_row: int
    is_header: bool
    flow_name: str
    cells: tuple[str, ...]
    led_columns: tuple[int, ...] = ()
    time_columns: tuple[int, ...] = ()


@dataclass(frozen=True)
class ParsedTable:
    actions: tuple[Action, ...]
    rows: tuple[DisplayRow, ...]
    led_count: int

    @property
    def column_count(self) -> int:
        return max((len(r.cells) for r in self.rows), default=0)

    def has_kind(self, kind: ActionKind) -> bool:
        return any(a.kind is kind for a in self.actions)

    def has_wildcard_color(self) -> bool:
        return any(
            isinstance(a, LedAction) and a.has_wildcard for a in self.actions
        )


# -------------------------
# Cell helpers
# -------------------------

Grid = Sequence[Sequence[object]]


def _cell(row: Sequence[object], col: int) -> str:
    if col >= len(row):
        return ""
    value = row[col]
    if value is None:
        return ""
    return str(value).strip()


def _row_is_empty(row: Sequence[object], columns: Sequence[int]) -> bool:
    return all(not _cell(row, c) for c in columns)


def _parse_int(text: str) -> Optional[int]:
    """Parse an integer cell; integral floats such as "3.0" are accepted."""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        as_float = float(text)
    except ValueError:
        return None
    if not as_float.is_integer():
        return None
    return int(as_float)


def _non_negative_int(text: str, what: str, row: int, col: int) -> int:
    value = _parse_int(text)
    if value is None or value < 0:
        raise InvalidCellValue(
            f'{what} value "{text}" is invalid (must be an integer >= 0)',
            row=row + 1,
            col=col + 1,
        )
    return value


# -------------------------
# Header scanning
# -------------------------

def is_header_row(row: Sequence[object]) -> bool:
    return any(classify_header_cell(_cell(row, c))[0] is not None for c in range(len(row)))


def parse_header(row: Sequence[object], row_index: int) -> HeaderLayout:
    """Greedy left-to-right scan of one header row into blocks."""
    blocks: list[Block] = []
    width = len(row)
    col = 0

    def fail(message: str, at: int) -> MalformedHeaderError:
        return MalformedHeaderError(message, row=row_index + 1, col=at + 1)

    while col < width:
        text = _cell(row, col)
        token, _ = classify_header_cell(text)

        if token is HeaderToken.LED_MODE:
            led_cols: list[int] = []
            cursor = col + 1
            while cursor < width:
                next_token, led_index = classify_header_cell(_cell(row, cursor))
                if next_token is not HeaderToken.LED_N:
                    break
                expected = len(led_cols) + 1
                if led_index != expected:
                    raise fail(
                        f"LED columns must be sequential: expected LED{expected}, "
                        f'found "{_cell(row, cursor)}"',
                        cursor,
                    )
                if expected > MAX_LED_COLUMNS:
                    raise fail(
                        f"LED column count exceeds the limit ({MAX_LED_COLUMNS})",
                        cursor,
                    )
                led_cols.append(cursor)
                cursor += 1
            if not led_cols:
                raise fail(f'"{text}" must be followed by LED1..LEDn columns', col)
            blocks.append(LedBlock(mode_col=col, led_cols=tuple(led_cols)))
            col = cursor
            continue

        if token is HeaderToken.LED_N:
            raise fail(f'"{text}" appears outside an LED block', col)

        if token is HeaderToken.STYLE:
            raise fail(f'style column "{text}" must directly follow a VOICE column', col)

        if token is HeaderToken.BEEP:
            blocks.append(BeepBlock(col=col))
        elif token is HeaderToken.DELAY:
            blocks.append(DelayBlock(col=col))
        elif token is HeaderToken.VOICE:
            style_token, _ = classify_header_cell(_cell(row, col + 1))
            if style_token is not HeaderToken.STYLE:
                raise fail("VOICE column is missing its style column", col)
            blocks.append(VoiceBlock(text_col=col, style_col=col + 1))
            col += 2
            continue
        elif text and _looks_malformed(text):
            raise fail(f'unrecognized header "{text}"', col)

        col += 1

    return HeaderLayout(row=row_index, blocks=tuple(blocks))


# -------------------------
# Data rows
# -------------------------

def _parse_led(
    row: Sequence[object], row_index: int, block: LedBlock, flow_name: str
) -> LedAction:
    mode_text = _cell(row, block.mode_col)
    if not mode_text:
        raise InvalidCellValue(
            "work mode is empty", row=row_index + 1, col=block.mode_col + 1
        )
    mode = normalize_led_mode(mode_text)
    if mode is None:
        raise InvalidCellValue(
            f'work mode "{mode_text}" is invalid (must be ALL/SEQ/RAND)',
            row=row_index + 1,
            col=block.mode_col + 1,
        )

    colors: list[int] = []
    for col in block.led_cols:
        text = _cell(row, col)
        colors.append(0 if not text else _non_negative_int(text, "LED", row_index, col))

    raw = f"mode={mode.value} colors={','.join(str(c) for c in colors)}"
    return LedAction(flow_name=flow_name, mode=mode, colors=tuple(colors), raw_text=raw)


def _parse_beep(
    row: Sequence[object], row_index: int, block: BeepBlock, flow_name: str
) -> Optional[BeepAction]:
    text = _cell(row, block.col)
    if not text:
        return None
    value = _non_negative_int(text, "BEEP", row_index, block.col)
    if value == BEEP_CELL_NONE:
        return None
    duration_ms = 0 if value == BEEP_CELL_DEVICE_DEFAULT else value * BEEP_CELL_UNIT_MS
    return BeepAction(flow_name=flow_name, duration_ms=duration_ms, raw_text=text)


def _parse_voice(
    row: Sequence[object], row_index: int, block: VoiceBlock, flow_name: str
) -> Optional[VoiceAction]:
    text = _cell(row, block.text_col)
    if not text:
        return None
    style_text = _cell(row, block.style_col)
    style = _parse_int(style_text) if style_text else None
    if style not in (VOICE_SET_PRIMARY, VOICE_SET_SECONDARY):
        raise InvalidCellValue(
            f'voice style "{style_text}" is invalid (must be 1 or 2)',
            row=row_index + 1,
            col=block.style_col + 1,
        )
    return VoiceAction(flow_name=flow_name, text=text, voice_set=style, raw_text=text)


def _parse_delay(
    row: Sequence[object], row_index: int, block: DelayBlock, flow_name: str
) -> Optional[DelayAction]:
    text = _cell(row, block.col)
    if not text:
        return None
    ms = _non_negative_int(text, "DELAY", row_index, block.col)
    return DelayAction(flow_name=flow_name, ms=ms, raw_text=text)


def _parse_block(
    row: Sequence[object], row_index: int, block: Block, flow_name: str
) -> Optional[Action]:
    if isinstance(block, LedBlock):
        return _parse_led(row, row_index, block, flow_name)
    if isinstance(block, BeepBlock):
        return _parse_beep(row, row_index, block, flow_name)
    if isinstance(block, VoiceBlock):
        return _parse_voice(row, row_index, block, flow_name)
    return _parse_delay(row, row_index, block, flow_name)


def _display_row(
    row: Sequence[object],
    row_index: int,
    layout: HeaderLayout,
    *,
    is_header: bool,
    flow_name: str = "",
) -> DisplayRow:
    cells: list[str] = []
    led_columns: list[int] = []
    time_columns: list[int] = []
    for block in layout.blocks:
        for col in block.columns:
            if isinstance(block, LedBlock) and col in block.led_cols:
                led_columns.append(len(cells))
            cells.append(_cell(row, col))
        time_columns.append(len(cells))
        cells.append(TIME_COLUMN_TITLE if is_header else "")
    return DisplayRow(
        source_row=row_index + 1,
        is_header=is_header,
        flow_name=flow_name,
        cells=tuple(cells),
        led_columns=tuple(led_columns),
        time_columns=tuple(time_columns),
    )


# -------------------------
# Public entry point
# -------------------------

def parse_table(
    grid: Grid,
    merged_regions: Sequence[tuple[int, int, int, int]] = (),
) -> ParsedTable:
    """
    Parse a grid into an action plan.

    merged_regions are (first_row, first_col, last_row, last_col), 1-based,
    as reported by the sheet reader; any merged region is rejected.

    Raises:
        TableParseError (or a subclass) on any structural or cell error.
    """
    if merged_regions:
        first_row, first_col, _, _ = merged_regions[0]
        raise LayoutError(
            "merged cells are not allowed in the sheet", row=first_row, col=first_col
        )

    layout: Optional[HeaderLayout] = None
    actions: list[Action] = []
    rows: list[DisplayRow] = []
    data_rows = 0
    led_count = 0

    for row_index, row in enumerate(grid):
        if is_header_row(row):
            layout = parse_header(row, row_index)
            rows.append(_display_row(row, row_index, layout, is_header=True))
            for block in layout.blocks:
                if isinstance(block, LedBlock):
                    led_count = max(led_count, len(block.led_cols))
            continue

        checked = layout.checked_columns if layout is not None else range(len(row))
        if _row_is_empty(row, checked):
            break

        if layout is None:
            raise LayoutError("data row appears before any header row", row=row_index + 1)

        data_rows += 1
        flow_name = f"{FLOW_NAME_PREFIX}{data_rows}"
        for block in layout.blocks:
            action = _parse_block(row, row_index, block, flow_name)
            if action is not None:
                actions.append(action)
        rows.append(
            _display_row(row, row_index, layout, is_header=False, flow_name=flow_name)
        )

    if data_rows == 0:
        raise LayoutError("no data rows under the header")
    if not actions:
        raise LayoutError("no valid actions were parsed from the table")

    return ParsedTable(actions=tuple(actions), rows=tuple(rows), led_count=led_count)
