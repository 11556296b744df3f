# pylint: disable=missing-module-docstring,missing-function-docstring

from protocol.line_buffer import LineBuffer


def test_complete_lines_are_split_and_trimmed():
    buf = LineBuffer()
    assert buf.feed(b"SETPRUN:1,100\r\nOK\n") == ["SETPRUN:1,100", "OK"]
    assert len(buf) == 0


def test_partial_line_is_kept_until_newline():
    buf = LineBuffer()
    assert buf.feed(b"SETP") == []
    assert buf.feed(b"RUN:2,5") == []
    assert buf.feed(b"0\r\n") == ["SETPRUN:2,50"]


def test_blank_frames_are_dropped():
    buf = LineBuffer()
    assert buf.feed(b"\r\n  \n\nA\n") == ["A"]


def test_invalid_utf8_is_replaced_not_raised():
    buf = LineBuffer()
    (frame,) = buf.feed(b"\xffOK\n")
    assert frame.endswith("OK")


def test_overflow_without_newline_discards_buffer():
    buf = LineBuffer(max_bytes=8)
    assert buf.feed(b"123456789") == []
    assert len(buf) == 0
    assert buf.overflow_count == 1

    assert buf.feed(b"OK\n") == ["OK"]


def test_clear():
    buf = LineBuffer()
    buf.feed(b"partial")
    buf.clear()
    assert buf.feed(b"\n") == []
