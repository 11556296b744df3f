# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from plan.actions import BeepAction, LedAction, LedMode
from resolver.color_resolver import (
    ColorResolveError,
    InvalidLedCount,
    align_colors,
    conflict_violation,
    precheck,
    resolve,
)
from settings.palette import ColorItem, ConflictTriple


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def palette(n: int) -> tuple[ColorItem, ...]:
    return tuple(ColorItem(index=i, rgb=(i, i, i)) for i in range(1, n + 1))


def led(*colors: int, flow: str = "flow1", mode: LedMode = LedMode.ALL) -> LedAction:
    return LedAction(flow_name=flow, mode=mode, colors=tuple(colors))


# ---------------------------------------------------------------------
# 1. Helpers
# ---------------------------------------------------------------------

def test_align_colors_pads_and_truncates():
    assert align_colors((1, 2), 4) == (1, 2, 0, 0)
    assert align_colors((1, 2, 3), 2) == (1, 2)


def test_conflict_violation_allows_repeats_of_one_member():
    triple = (ConflictTriple(1, 2, 3),)
    assert conflict_violation((1, 1, 4), triple) is None
    assert conflict_violation((1, 3), triple) is not None


# ---------------------------------------------------------------------
# 2. Resolution
# ---------------------------------------------------------------------

def test_wildcards_are_filled_without_conflicts():
    actions = (led(1, 0, 0),)
    conflicts = (ConflictTriple(1, 2, 0),)

    (resolved,) = resolve(actions, palette(3), conflicts, 3)

    assert 0 not in resolved.colors
    assert resolved.colors[0] == 1
    assert conflict_violation(resolved.colors, conflicts) is None


def test_wildcard_avoids_every_conflicting_partner():
    # Every color other than 1 conflicts with the fixed 1; only 1 may repeat.
    actions = (led(1, 0),)
    conflicts = (ConflictTriple(1, 2, 3), ConflictTriple(1, 4, 0))

    (resolved,) = resolve(actions, palette(4), conflicts, 2)

    assert resolved.colors == (1, 1)


def test_resolve_aligns_to_led_count():
    (resolved,) = resolve((led(2),), palette(2), (), 3)
    assert len(resolved.colors) == 3
    assert resolved.colors[0] == 2


def test_resolution_is_deterministic():
    actions = (led(0, 0, 0), led(0, 2, 0, flow="flow2"))
    conflicts = (ConflictTriple(1, 2, 0),)

    first = resolve(actions, palette(3), conflicts, 3)
    second = resolve(actions, palette(3), conflicts, 3)

    assert first == second


def test_non_led_actions_pass_through_unchanged():
    beep = BeepAction(flow_name="flow1", duration_ms=0)
    resolved = resolve((beep, led(0)), palette(1), (), 1)
    assert resolved[0] is beep
    assert resolved[1].colors == (1,)


def test_resolve_does_not_mutate_input():
    action = led(0, 0)
    resolve((action,), palette(2), (), 2)
    assert action.colors == (0, 0)


# ---------------------------------------------------------------------
# 3. Failures
# ---------------------------------------------------------------------

def test_fixed_colors_in_conflict_are_reported():
    issues = precheck((led(1, 2),), palette(2), (ConflictTriple(1, 2, 0),), 2)

    assert len(issues) == 1
    assert issues[0].action_index == 0
    assert "conflict" in issues[0].reason


def test_empty_palette_with_wildcards_fails():
    issues = precheck((led(0, 0),), (), (), 2)
    assert issues[0].reason == "need random color but palette is empty"
    assert issues[0].slot == 0


def test_fixed_color_outside_palette_fails():
    issues = precheck((led(5),), palette(2), (), 1)
    assert "not in the palette" in issues[0].reason


def test_invalid_led_count_raises_before_searching():
    with pytest.raises(InvalidLedCount):
        resolve((led(1),), palette(1), (), 0)


def test_precheck_collects_issues_for_every_action():
    actions = (led(1, 2), led(0, flow="flow2"), led(3, flow="flow3"))
    issues = precheck(actions, palette(2), (ConflictTriple(1, 2, 0),), 2)

    assert [i.action_index for i in issues] == [0, 2]


def test_resolve_raises_with_issues():
    with pytest.raises(ColorResolveError) as err:
        resolve((led(1, 2),), palette(2), (ConflictTriple(1, 2, 0),), 2)
    assert len(err.value.issues) == 1
    assert "action 1" in str(err.value)


def test_precheck_success_implies_resolve_success():
    actions = (led(0, 3, 0), led(1, 0, flow="flow2"))
    conflicts = (ConflictTriple(1, 2, 3), ConflictTriple(2, 4, 0))
    pal = palette(4)

    assert precheck(actions, pal, conflicts, 3) == ()
    resolved = resolve(actions, pal, conflicts, 3)
    for action in resolved:
        assert 0 not in action.colors
        assert conflict_violation(action.colors, conflicts) is None


def test_unknown_led_mode_is_a_hard_error_for_that_action():
    actions = (led(1), led(1, flow="flow2", mode="BLINK"))

    issues = precheck(actions, palette(1), (), 1)

    assert [i.action_index for i in issues] == [1]
    assert "invalid LED mode" in issues[0].reason
    with pytest.raises(ColorResolveError) as err:
        resolve(actions, palette(1), (), 1)
    assert err.value.issues == issues
