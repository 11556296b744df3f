"""
JSON-file settings store.

Persists palette, conflict triples, device/voice/serial records and the
last imported table path as one JSON document. Save always overwrites.

Load normalizes what it reads: the palette is renumbered 1..N and conflict
references outside the palette are zeroed, so a hand-edited file can never
hand the resolver dangling indices.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, fields
from typing import Any, Mapping

from constants import CONFLICT_TRIPLE_SIZE
from settings.palette import (
    ColorItem,
    ConflictTriple,
    PaletteError,
    clamp_conflicts,
    normalize_palette,
    parse_hex6,
)
from settings.records import (
    DeviceProps,
    SerialConfig,
    SettingsData,
    VoiceProps,
)


class SettingsError(Exception):
    """Raised when the settings file cannot be read, parsed or written."""


_COERCE = {"int": int, "str": str}


def _record(cls: Any, raw: Any) -> Any:
    """
    Build a record from a mapping, ignoring unknown keys.

    Values are converted to the declared field type, so a hand-edited
    `"led_count": "5"` loads as 5 and `"abc"` raises ValueError.
    """
    if not isinstance(raw, Mapping):
        return cls()
    values = {}
    for f in fields(cls):
        if f.name not in raw:
            continue
        coerce = _COERCE.get(str(f.type))
        values[f.name] = coerce(raw[f.name]) if coerce else raw[f.name]
    return cls(**values)


def settings_to_dict(data: SettingsData) -> dict[str, Any]:
    return {
        "last_table_path": data.last_table_path,
        "serial": asdict(data.serial),
        "device": asdict(data.device),
        "voice1": asdict(data.voice1),
        "voice2": asdict(data.voice2),
        "palette": [
            {"index": item.index, "rgb": item.hex6} for item in data.palette
        ],
        "conflicts": [[t.c1, t.c2, t.c3] for t in data.conflicts],
    }


def settings_from_dict(raw: Mapping[str, Any]) -> SettingsData:
    try:
        palette = normalize_palette(
            ColorItem(index=int(entry.get("index", i + 1)), rgb=parse_hex6(entry["rgb"]))
            for i, entry in enumerate(raw.get("palette", []))
        )
        conflicts = clamp_conflicts(
            (
                ConflictTriple(*(
                    int(v)
                    for v in (list(entry) + [0] * CONFLICT_TRIPLE_SIZE)[:CONFLICT_TRIPLE_SIZE]
                ))
                for entry in raw.get("conflicts", [])
            ),
            len(palette),
        )
        return SettingsData(
            device=_record(DeviceProps, raw.get("device")),
            voice1=_record(VoiceProps, raw.get("voice1")),
            voice2=_record(VoiceProps, raw.get("voice2")),
            serial=_record(SerialConfig, raw.get("serial")),
            palette=palette,
            conflicts=conflicts,
            last_table_path=str(raw.get("last_table_path", "")),
        )
    except (KeyError, TypeError, ValueError, AttributeError, PaletteError) as e:
        raise SettingsError(f"malformed settings: {e}") from e


class JsonSettingsStore:
    """SettingsStore collaborator backed by a single JSON file."""

    def __init__(self, path: str) -> None:
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> SettingsData:
        """Return stored settings, or defaults when the file does not exist."""
        if not os.path.exists(self._path):
            return SettingsData()
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise SettingsError(f"cannot read settings {self._path}: {e}") from e
        if not isinstance(raw, Mapping):
            raise SettingsError(f"settings root must be an object: {self._path}")
        return settings_from_dict(raw)

    def save(self, data: SettingsData) -> None:
        directory = os.path.dirname(self._path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(settings_to_dict(data), fh, ensure_ascii=False, indent=2)
        except OSError as e:
            raise SettingsError(f"cannot write settings {self._path}: {e}") from e
