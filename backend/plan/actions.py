"""
Action plan data model.

Rules:
- Actions are immutable value objects produced by the table parser
  and consumed by the resolver, codec and scheduler.
- No behavior beyond trivial derived views.
- Actions sharing a flow_name are contiguous in plan order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


# =============================================================================
# Discriminants
# =============================================================================

class ActionKind(str, Enum):
    """One-letter action tags used in notifications and display rows."""

    LED = "L"
    BEEP = "B"
    VOICE = "V"
    DELAY = "D"


class LedMode(str, Enum):
    """LED work modes understood by the device."""

    ALL = "ALL"
    SEQ = "SEQ"
    RAND = "RAND"


# Localized spellings accepted in the work-mode column
_LED_MODE_ALIASES: dict[str, LedMode] = {
    "ALL": LedMode.ALL,
    "全部": LedMode.ALL,
    "全亮": LedMode.ALL,
    "同时": LedMode.ALL,
    "同时点亮": LedMode.ALL,
    "SEQ": LedMode.SEQ,
    "顺序": LedMode.SEQ,
    "顺序点亮": LedMode.SEQ,
    "依次": LedMode.SEQ,
    "RAND": LedMode.RAND,
    "随机": LedMode.RAND,
    "随机点亮": LedMode.RAND,
}


def normalize_led_mode(text: str) -> LedMode | None:
    """Map work-mode cell text to a LedMode, or None if unrecognized."""
    key = text.strip().replace(" ", "").upper()
    return _LED_MODE_ALIASES.get(key)


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class LedAction:
    """Light the LED strip; colors hold palette indices (0 = wildcard)."""
    flow_name: str
    mode: LedMode
    colors: tuple[int, ...]
    raw_text: str = ""
    kind: ActionKind = ActionKind.LED

    @property
    def has_wildcard(self) -> bool:
        return any(c == 0 for c in self.colors)


@dataclass(frozen=True)
class BeepAction:
    """Sound the buzzer; duration_ms == 0 selects the device default."""
    flow_name: str
    duration_ms: int
    raw_text: str = ""
    kind: ActionKind = ActionKind.BEEP


@dataclass(frozen=True)
class VoiceAction:
    """Speak text with voice parameter set 1 or 2."""
    flow_name: str
    text: str
    voice_set: int
    raw_text: str = ""
    kind: ActionKind = ActionKind.VOICE


@dataclass(frozen=True)
class DelayAction:
    """Pause device-side execution."""
    flow_name: str
    ms: int
    raw_text: str = ""
    kind: ActionKind = ActionKind.DELAY


Action = Union[LedAction, BeepAction, VoiceAction, DelayAction]


def describe_action(action: Action) -> str:
    """Short human-readable parameter text for logs and notifications."""
    if action.raw_text:
        return action.raw_text
    if isinstance(action, LedAction):
        colors = ",".join(str(c) for c in action.colors)
        return f"mode={action.mode.value} colors={colors}"
    if isinstance(action, BeepAction):
        return str(action.duration_ms)
    if isinstance(action, VoiceAction):
        return action.text
    return str(action.ms)
