# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from importer.table_parser import (
    HeaderToken,
    InvalidCellValue,
    LayoutError,
    MalformedHeaderError,
    TableParseError,
    classify_header_cell,
    is_header_row,
    parse_header,
    parse_table,
)
from plan.actions import (
    ActionKind,
    BeepAction,
    DelayAction,
    LedAction,
    LedMode,
    VoiceAction,
)


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

HEADER = ["LED工作模式", "LED1", "LED2", "LED3", "BEEP", "VOICE", "风格", "DELAY"]


def grid(*rows: list[str]) -> list[list[str]]:
    return [HEADER, *rows]


# ---------------------------------------------------------------------
# 1. Header classification
# ---------------------------------------------------------------------

def test_classify_header_cell_aliases_case_and_spaces():
    assert classify_header_cell("led 3") == (HeaderToken.LED_N, 3)
    assert classify_header_cell(" Beep ")[0] is HeaderToken.BEEP
    assert classify_header_cell("延时")[0] is HeaderToken.DELAY
    assert classify_header_cell("voice style")[0] is HeaderToken.STYLE
    assert classify_header_cell("notes")[0] is None
    assert classify_header_cell("")[0] is None


def test_parse_header_builds_blocks_left_to_right():
    layout = parse_header(HEADER, 0)

    assert [type(b).__name__ for b in layout.blocks] == [
        "LedBlock", "BeepBlock", "VoiceBlock", "DelayBlock",
    ]
    assert layout.blocks[0].led_cols == (1, 2, 3)
    assert layout.checked_columns == (0, 1, 2, 3, 4, 5, 6, 7)


def test_parse_header_ignores_unrelated_titles():
    layout = parse_header(["notes", "BEEP"], 0)
    assert len(layout.blocks) == 1


@pytest.mark.parametrize(
    "row",
    [
        ["MODE", "LED1", "LED3"],          # gap in LED numbering
        ["MODE", "BEEP"],                  # mode without LED columns
        ["LED1", "BEEP"],                  # LED column outside a block
        ["VOICE", "BEEP"],                 # voice without style
        ["风格", "BEEP"],                   # orphan style
        ["LEDX模式", "BEEP"],               # unrecognized mode-like title
    ],
)
def test_malformed_headers_are_rejected(row):
    with pytest.raises(MalformedHeaderError):
        parse_header(row, 0)


def test_led_block_longer_than_limit_is_rejected():
    row = ["MODE"] + [f"LED{i}" for i in range(1, 22)]
    with pytest.raises(MalformedHeaderError) as err:
        parse_header(row, 0)
    assert err.value.col == 22


# ---------------------------------------------------------------------
# 2. Data rows
# ---------------------------------------------------------------------

def test_single_row_produces_ordered_actions():
    table = parse_table(grid(["ALL", "1", "", "2", "3", "你好", "2", "500"]))

    kinds = [a.kind for a in table.actions]
    assert kinds == [ActionKind.LED, ActionKind.BEEP, ActionKind.VOICE, ActionKind.DELAY]

    led, beep, voice, delay = table.actions
    assert isinstance(led, LedAction)
    assert led.mode is LedMode.ALL
    assert led.colors == (1, 0, 2)
    assert isinstance(beep, BeepAction) and beep.duration_ms == 300
    assert isinstance(voice, VoiceAction) and voice.voice_set == 2
    assert isinstance(delay, DelayAction) and delay.ms == 500
    assert {a.flow_name for a in table.actions} == {"flow1"}
    assert table.led_count == 3
    assert table.has_wildcard_color()


def test_flow_names_follow_data_row_order():
    table = parse_table(grid(
        ["SEQ", "1", "1", "1", "", "", "", ""],
        ["RAND", "", "", "", "", "", "", "100"],
    ))
    assert [a.flow_name for a in table.actions] == ["flow1", "flow2", "flow2"]


@pytest.mark.parametrize(
    ("cell", "expected"),
    [("0", None), ("1", 0), ("5", 500), ("2.0", 200)],
)
def test_beep_cell_values(cell, expected):
    table = parse_table(grid(["ALL", "1", "1", "1", cell, "", "", ""]))
    beeps = [a for a in table.actions if isinstance(a, BeepAction)]
    if expected is None:
        assert beeps == []
    else:
        assert beeps[0].duration_ms == expected


def test_localized_mode_is_normalized():
    table = parse_table(grid(["随机", "1", "2", "3", "", "", "", ""]))
    assert table.actions[0].mode is LedMode.RAND


def test_invalid_mode_reports_cell_position():
    with pytest.raises(InvalidCellValue) as err:
        parse_table(grid(["BLINK", "1", "1", "1", "", "", "", ""]))
    assert (err.value.row, err.value.col) == (2, 1)
    assert str(err.value).startswith("row 2, column 1:")


def test_empty_mode_is_an_error():
    with pytest.raises(InvalidCellValue):
        parse_table(grid(["", "1", "1", "1", "", "", "", ""]))


def test_negative_led_value_is_an_error():
    with pytest.raises(InvalidCellValue):
        parse_table(grid(["ALL", "-1", "1", "1", "", "", "", ""]))


def test_voice_style_must_be_one_or_two():
    with pytest.raises(InvalidCellValue):
        parse_table(grid(["ALL", "1", "1", "1", "", "hi", "3", ""]))


@pytest.mark.parametrize(
    ("row", "position"),
    [
        (["ALL", "abc", "1", "1", "", "", "", ""], (2, 2)),
        (["ALL", "1", "1", "1", "", "", "", "1.5"], (2, 8)),
        (["ALL", "1", "1", "1", "x", "", "", ""], (2, 5)),
        (["ALL", "1", "1", "1", "", "hi", "", ""], (2, 7)),
    ],
)
def test_bad_cells_report_their_position(row, position):
    with pytest.raises(InvalidCellValue) as err:
        parse_table(grid(row))
    assert (err.value.row, err.value.col) == position


def test_style_without_voice_text_emits_no_voice_action():
    table = parse_table(grid(["ALL", "1", "1", "1", "", "", "2", ""]))
    assert not table.has_kind(ActionKind.VOICE)
    assert [a.kind for a in table.actions] == [ActionKind.LED]


def test_blank_row_stops_scanning():
    table = parse_table(grid(
        ["ALL", "1", "1", "1", "", "", "", ""],
        ["", "", "", "", "", "", "", ""],
        ["BLINK", "x", "", "", "", "", "", ""],
    ))
    assert len(table.actions) == 1


def test_second_header_switches_layout():
    table = parse_table([
        HEADER,
        ["ALL", "1", "1", "1", "", "", "", ""],
        ["DELAY"],
        ["250"],
    ])
    assert isinstance(table.actions[-1], DelayAction)
    assert table.actions[-1].ms == 250
    assert table.actions[-1].flow_name == "flow2"


def test_voice_text_matching_a_header_alias_starts_a_new_header():
    rows = [["MODE", "LED1", "VOICE", "STYLE"], ["ALL", "1", "BEEP", "1"]]

    assert is_header_row(rows[1])
    with pytest.raises(LayoutError) as err:
        parse_table(rows)
    assert "no data rows" in str(err.value)


# ---------------------------------------------------------------------
# 3. Sheet-level layout
# ---------------------------------------------------------------------

def test_merged_cells_are_rejected():
    with pytest.raises(LayoutError):
        parse_table(grid(["ALL", "1", "1", "1", "", "", "", ""]), [(1, 1, 1, 2)])


def test_data_before_header_is_rejected():
    with pytest.raises(LayoutError):
        parse_table([["ALL", "1"], HEADER])


def test_header_without_data_is_rejected():
    with pytest.raises(LayoutError):
        parse_table([HEADER])


def test_rows_without_actions_are_rejected():
    with pytest.raises(LayoutError):
        parse_table([["BEEP", "DELAY"], ["0", ""]])


def test_all_parse_errors_share_a_base_class():
    assert issubclass(InvalidCellValue, TableParseError)
    assert issubclass(MalformedHeaderError, TableParseError)
    assert issubclass(LayoutError, TableParseError)


# ---------------------------------------------------------------------
# 4. Display mirror
# ---------------------------------------------------------------------

def test_display_rows_insert_time_column_after_each_block():
    table = parse_table(grid(["ALL", "1", "2", "3", "1", "", "", ""]))

    header, data = table.rows
    assert header.is_header
    assert header.cells[4] == "TIME"
    assert header.time_columns == (4, 6, 9, 11)
    assert data.led_columns == (1, 2, 3)
    assert data.flow_name == "flow1"
    assert data.source_row == 2
    assert table.column_count == 12


def test_localized_header_with_beep_units():
    table = parse_table([["LED工作模式", "LED1", "LED2", "BEEP"], ["ALL", "3", "0", "5"]])

    led, beep = table.actions
    assert led.colors == (3, 0)
    assert beep.duration_ms == 500
    assert led.flow_name == beep.flow_name == "flow1"


def test_empty_grid_has_no_data_rows():
    with pytest.raises(LayoutError) as err:
        parse_table([])
    assert "no data rows" in str(err.value)
