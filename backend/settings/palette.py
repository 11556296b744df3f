"""
Color palette and conflict-triple editing.

Invariants:
- Palette indices are dense and ascending (1..N) after every mutation.
- The palette never holds more than PALETTE_MAX_COLORS entries.
- Conflict triples only reference existing palette indices (0 = unused slot).

All functions are pure: they take tuples and return new tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from constants import PALETTE_MAX_COLORS


# -------------------------
# Exceptions
# -------------------------

class PaletteError(Exception):
    """Base class for palette editing errors."""


class PaletteFullError(PaletteError):
    """Raised when adding a color would exceed PALETTE_MAX_COLORS."""


class InvalidColorValue(PaletteError):
    """Raised when an RGB value or HEX6 string cannot be interpreted."""


# -------------------------
# Records
# -------------------------

@dataclass(frozen=True)
class ColorItem:
    index: int
    rgb: tuple[int, int, int]

    @property
    def hex6(self) -> str:
        return to_hex6(self.rgb)


@dataclass(frozen=True)
class ConflictTriple:
    """Up to three palette indices that must not co-occur as distinct colors."""
    c1: int = 0
    c2: int = 0
    c3: int = 0

    @property
    def members(self) -> tuple[int, ...]:
        return tuple(c for c in (self.c1, self.c2, self.c3) if c > 0)


# -------------------------
# RGB helpers
# -------------------------

def to_hex6(rgb: Sequence[int]) -> str:
    r, g, b = _checked_rgb(rgb)
    return f"{r:02X}{g:02X}{b:02X}"


def parse_hex6(text: str) -> tuple[int, int, int]:
    value = text.strip().lstrip("#")
    if len(value) != 6:
        raise InvalidColorValue(f"expected 6 hex digits, got {text!r}")
    try:
        return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))
    except ValueError as e:
        raise InvalidColorValue(f"invalid hex color {text!r}") from e


def _checked_rgb(rgb: Sequence[int]) -> tuple[int, int, int]:
    if len(rgb) != 3 or any(not 0 <= int(v) <= 255 for v in rgb):
        raise InvalidColorValue(f"rgb components must be 0..255, got {tuple(rgb)!r}")
    return (int(rgb[0]), int(rgb[1]), int(rgb[2]))


# -------------------------
# Palette mutations
# -------------------------

def normalize_palette(items: Iterable[ColorItem]) -> tuple[ColorItem, ...]:
    """Sort by index, cap the size and renumber to 1..N."""
    ordered = sorted(items, key=lambda item: item.index)[:PALETTE_MAX_COLORS]
    return tuple(replace(item, index=i + 1) for i, item in enumerate(ordered))


def add_color(
    palette: Sequence[ColorItem], rgb: Sequence[int]
) -> tuple[ColorItem, ...]:
    if len(palette) >= PALETTE_MAX_COLORS:
        raise PaletteFullError(f"palette is limited to {PALETTE_MAX_COLORS} colors")
    item = ColorItem(index=len(palette) + 1, rgb=_checked_rgb(rgb))
    return normalize_palette(tuple(palette) + (item,))


def set_color(
    palette: Sequence[ColorItem], position: int, rgb: Sequence[int]
) -> tuple[ColorItem, ...]:
    if not 0 <= position < len(palette):
        raise IndexError(f"palette position {position} out of range")
    items = list(palette)
    items[position] = replace(items[position], rgb=_checked_rgb(rgb))
    return normalize_palette(items)


def remove_color(
    palette: Sequence[ColorItem],
    conflicts: Sequence[ConflictTriple],
    position: int,
) -> tuple[tuple[ColorItem, ...], tuple[ConflictTriple, ...]]:
    """
    Delete the palette entry at `position` (0-based) and remap conflicts.

    References to the deleted index become 0, references above it shift
    down by one, and anything still outside the new palette becomes 0.
    """
    normalized = normalize_palette(palette)
    if not 0 <= position < len(normalized):
        raise IndexError(f"palette position {position} out of range")

    deleted = normalized[position].index
    remaining = normalized[:position] + normalized[position + 1:]
    new_palette = normalize_palette(remaining)

    def remap(ref: int) -> int:
        if ref == deleted:
            return 0
        if ref > deleted:
            return ref - 1
        return ref

    remapped = tuple(
        ConflictTriple(remap(t.c1), remap(t.c2), remap(t.c3)) for t in conflicts
    )
    return new_palette, clamp_conflicts(remapped, len(new_palette))


def clamp_conflicts(
    conflicts: Iterable[ConflictTriple], palette_size: int
) -> tuple[ConflictTriple, ...]:
    """Zero out any reference that does not name an existing palette index."""

    def clamp(ref: int) -> int:
        return ref if 0 < ref <= palette_size else 0

    return tuple(
        ConflictTriple(clamp(t.c1), clamp(t.c2), clamp(t.c3)) for t in conflicts
    )


def available_indices(palette: Iterable[ColorItem]) -> tuple[int, ...]:
    """Deduplicated, ascending set of usable (>0) palette indices."""
    return tuple(sorted({item.index for item in palette if item.index > 0}))
