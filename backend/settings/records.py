"""
Plain configuration records owned by the settings collaborator.

These are consumed by value: the codec and scheduler receive them as
parameters and never hold a reference to a shared mutable settings object.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_DATA_BITS,
    DEFAULT_PARITY,
    DEFAULT_STOP_BITS,
)
from settings.palette import ColorItem, ConflictTriple


@dataclass(frozen=True)
class DeviceProps:
    """LED strip and buzzer parameters."""
    on_ms: int = 350
    gap_ms: int = 0
    led_count: int = 5
    brightness: int = 100
    buzzer_freq_hz: int = 1500
    buzzer_duration_ms: int = 500


@dataclass(frozen=True)
class VoiceProps:
    """One voice-synthesis parameter set (VOICESET1 / VOICESET2)."""
    announcer: int = 0
    style: int = 2
    speed: int = 5
    pitch: int = 5
    volume: int = 5


@dataclass(frozen=True)
class SerialConfig:
    port: str = ""
    baud: int = DEFAULT_BAUD_RATE
    data_bits: int = DEFAULT_DATA_BITS
    parity: str = DEFAULT_PARITY
    stop_bits: int = DEFAULT_STOP_BITS


@dataclass(frozen=True)
class SettingsData:
    """Everything the settings store persists, as one immutable snapshot."""
    device: DeviceProps = field(default_factory=DeviceProps)
    voice1: VoiceProps = field(default_factory=VoiceProps)
    voice2: VoiceProps = field(default_factory=VoiceProps)
    serial: SerialConfig = field(default_factory=SerialConfig)
    palette: tuple[ColorItem, ...] = ()
    conflicts: tuple[ConflictTriple, ...] = ()
    last_table_path: str = ""
