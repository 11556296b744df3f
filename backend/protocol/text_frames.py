# backend/protocol/text_frames.py
"""
Text framing for the device serial protocol.

Every frame is ASCII (voice text travels as hex) and ends with CRLF:

    LEDSET:<ledCount>,<onMs>,<gapMs>,<brightness>,<colorCount>[,<HEX6>]*
    VOICESET1:<announcer>,<style>,<speed>,<pitch>,<volume>   (VOICESET2 alike)
    BEEPSET:<durationMs>,<freqHz>
    WORK:<part>[;<part>]*;
        LED,<order1..N>,<color1..N> | DELAY,<ms> | VOICE,<hex>,<style> | BEEP
    LEDTEST:<colorIndex>        (0 = all off)
    BEEPTEST
    VOICETEST:<hex>,<style>

Inbound, the device reports progress as:

    SETPRUN:<currentStep>,<startTimeMs>

Usage example:

    frame = pack_work(segment_actions, device)
    transport.send(frame)

    progress = parse_setp_run(line)
    if progress is not None:
        ...

All functions are pure. The only nondeterminism is the RAND order
permutation, drawn from a module-level generator unless one is passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

from constants import (
    BEEP_TEST_FRAME,
    FRAME_TERMINATOR,
    LED_TEST_ALL_OFF_INDEX,
    PREFIX_BEEP_CONFIG,
    PREFIX_LED_CONFIG,
    PREFIX_LED_TEST,
    PREFIX_PROGRESS,
    PREFIX_VOICE_CONFIG_1,
    PREFIX_VOICE_CONFIG_2,
    PREFIX_VOICE_TEST,
    PREFIX_WORK,
    VOICE_SET_PRIMARY,
    VOICE_SET_SECONDARY,
    VOICE_TEXT_ENCODING,
    WORK_FIELD_SEPARATOR,
    WORK_PART_SEPARATOR,
)
from plan.actions import (
    Action,
    BeepAction,
    DelayAction,
    LedAction,
    LedMode,
    VoiceAction,
)
from settings.palette import ColorItem
from settings.records import DeviceProps, VoiceProps


# -------------------------
# Exceptions
# -------------------------

class ProtocolError(Exception):
    """Base class for text protocol errors."""


class InvalidVoiceSlot(ProtocolError):
    """Raised when a voice parameter set other than 1 or 2 is requested."""


class UnknownActionType(ProtocolError):
    """Raised when pack_work() is handed something that is not an Action."""


# -------------------------
# Inbound records
# -------------------------

@dataclass(frozen=True)
class SetpRun:
    """Decoded progress report."""
    current_step: int
    device_timestamp_ms: int


# -------------------------
# Low-level helpers
# -------------------------

_default_rng = np.random.default_rng()


def _frame(body: str) -> str:
    return body + FRAME_TERMINATOR


def _join_ints(values: Iterable[int]) -> str:
    return WORK_FIELD_SEPARATOR.join(str(int(v)) for v in values)


def escape_protocol_text(text: str) -> str:
    """Escape protocol control characters for diagnostic output."""
    out: list[str] = []
    for ch in text:
        if ch == "\\":
            out.append("\\\\")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\n":
            out.append("\\n")
        elif ch == ";":
            out.append("\\;")
        elif ch == ",":
            out.append("\\,")
        else:
            out.append(ch)
    return "".join(out)


def encode_voice_hex(text: str) -> str:
    """
    Transcode text to GBK and render each byte as upper-case hex.

    Characters GBK cannot represent are replaced with '?'.
    """
    data = text.encode(VOICE_TEXT_ENCODING, errors="replace")
    return " ".join(f"{b:02X}" for b in data)


def led_orders(
    mode: LedMode, led_count: int, rng: Optional[np.random.Generator] = None
) -> tuple[int, ...]:
    """RAND gets a fresh permutation of 1..led_count; other modes all zeros."""
    if mode == LedMode.RAND:
        generator = rng if rng is not None else _default_rng
        return tuple(int(v) for v in generator.permutation(np.arange(1, led_count + 1)))
    return (0,) * led_count


def _aligned(colors: Sequence[int], led_count: int) -> tuple[int, ...]:
    head = tuple(colors[:led_count])
    return head + (0,) * (led_count - len(head))


# -------------------------
# Configuration frames
# -------------------------

def pack_led_config(device: DeviceProps, palette: Sequence[ColorItem]) -> str:
    fields = [
        str(device.led_count),
        str(device.on_ms),
        str(device.gap_ms),
        str(device.brightness),
        str(len(palette)),
    ]
    fields.extend(item.hex6 for item in palette)
    return _frame(PREFIX_LED_CONFIG + ",".join(fields))


def pack_voice_config(voice: VoiceProps, slot: int) -> str:
    if slot == VOICE_SET_PRIMARY:
        prefix = PREFIX_VOICE_CONFIG_1
    elif slot == VOICE_SET_SECONDARY:
        prefix = PREFIX_VOICE_CONFIG_2
    else:
        raise InvalidVoiceSlot(f"voice slot must be 1 or 2, got {slot}")
    return _frame(
        prefix
        + _join_ints((voice.announcer, voice.style, voice.speed, voice.pitch, voice.volume))
    )


def pack_beep_config(device: DeviceProps) -> str:
    return _frame(PREFIX_BEEP_CONFIG + _join_ints((device.buzzer_duration_ms, device.buzzer_freq_hz)))


# -------------------------
# WORK frame
# -------------------------

def pack_action(
    action: Action, led_count: int, rng: Optional[np.random.Generator] = None
) -> str:
    """Render one WORK sub-frame (without separator)."""
    if isinstance(action, LedAction):
        return WORK_FIELD_SEPARATOR.join((
            "LED",
            _join_ints(led_orders(action.mode, led_count, rng)),
            _join_ints(_aligned(action.colors, led_count)),
        ))
    if isinstance(action, DelayAction):
        return f"DELAY,{action.ms}"
    if isinstance(action, VoiceAction):
        style = VOICE_SET_SECONDARY if action.voice_set == VOICE_SET_SECONDARY else VOICE_SET_PRIMARY
        return f"VOICE,{encode_voice_hex(action.text)},{style}"
    if isinstance(action, BeepAction):
        return "BEEP"
    raise UnknownActionType(f"cannot encode {type(action).__name__}")


def pack_work(
    actions: Sequence[Action],
    device: DeviceProps,
    rng: Optional[np.random.Generator] = None,
) -> str:
    """Combine one segment's actions into a single WORK frame."""
    parts = [pack_action(a, device.led_count, rng) for a in actions]
    return _frame(PREFIX_WORK + WORK_PART_SEPARATOR.join(parts) + WORK_PART_SEPARATOR)


# -------------------------
# Test frames
# -------------------------

def pack_test_solid(color_index: int) -> str:
    return _frame(f"{PREFIX_LED_TEST}{color_index}")


def pack_test_all_off() -> str:
    return pack_test_solid(LED_TEST_ALL_OFF_INDEX)


def pack_beep_test() -> str:
    return _frame(BEEP_TEST_FRAME)


def pack_voice_test(text: str, style: int) -> str:
    return _frame(f"{PREFIX_VOICE_TEST}{encode_voice_hex(text)},{style}")


# -------------------------
# Inbound
# -------------------------

def parse_setp_run(line: str) -> Optional[SetpRun]:
    """Decode a progress frame; anything else returns None."""
    text = line.strip()
    if not text.startswith(PREFIX_PROGRESS):
        return None
    parts = text[len(PREFIX_PROGRESS):].split(",")
    if len(parts) < 2:
        return None
    try:
        step = int(parts[0])
        timestamp_ms = int(parts[1])
    except ValueError:
        return None
    return SetpRun(current_step=step, device_timestamp_ms=timestamp_ms)
