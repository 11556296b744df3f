"""
Wildcard color resolver.

Fills LED color slots holding 0 with concrete palette indices such that,
for every conflict triple, one LED action never shows two *different*
members of that triple. Repeating one color is always allowed.

precheck() and resolve() run the same per-action solver, so
precheck() reporting no issues guarantees resolve() succeeds.

Search:
- Each available color knows the triples it belongs to.
- Fixed (non-zero) colors seed a per-triple "representative" table.
- Wildcard slots are filled left to right, trying colors in ascending
  order. A color is legal if every triple it belongs to is unclaimed or
  already claimed by that same color.
- The representative table is passed by value into each recursion level,
  so backtracking needs no explicit undo.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

from plan.actions import Action, LedAction, LedMode
from settings.palette import ColorItem, ConflictTriple, available_indices


# -------------------------
# Issues / exceptions
# -------------------------

@dataclass(frozen=True)
class ResolveIssue:
    """
    One reason a plan cannot be resolved.

    action_index is the 0-based plan position (-1 for plan-wide issues);
    slot is the 0-based LED position when the failure is slot specific.
    """
    action_index: int
    reason: str
    slot: Optional[int] = None

    def __str__(self) -> str:
        if self.action_index < 0:
            return self.reason
        return f"action {self.action_index + 1}: {self.reason}"


class ColorResolveError(Exception):
    """Raised by resolve() when any LED action cannot be resolved."""

    def __init__(self, issues: Sequence[ResolveIssue]) -> None:
        self.issues = tuple(issues)
        super().__init__("; ".join(str(i) for i in self.issues))


class InvalidLedCount(ColorResolveError):
    """Raised when led_count <= 0; no search is attempted."""


class _NoSolution(Exception):
    def __init__(self, reason: str, slot: Optional[int] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.slot = slot


# -------------------------
# Helpers
# -------------------------

def align_colors(colors: Sequence[int], led_count: int) -> tuple[int, ...]:
    """Pad with wildcards or truncate to exactly led_count slots."""
    aligned = list(colors[:led_count])
    aligned.extend([0] * (led_count - len(aligned)))
    return tuple(aligned)


def conflict_violation(
    colors: Sequence[int], conflicts: Sequence[ConflictTriple]
) -> Optional[str]:
    """Describe the first violated triple, or None if the set is legal."""
    present = {c for c in colors if c > 0}
    for group, triple in enumerate(conflicts):
        hits = [c for c in triple.members if c in present]
        distinct = sorted(set(hits))
        if len(distinct) >= 2:
            return (
                f"conflict group #{group + 1} ({triple.c1}/{triple.c2}/{triple.c3}) "
                f"has both {distinct[0]} and {distinct[1]}"
            )
    return None


def _groups_by_color(
    available: Sequence[int], conflicts: Sequence[ConflictTriple]
) -> dict[int, tuple[int, ...]]:
    groups: dict[int, list[int]] = {c: [] for c in available}
    for group, triple in enumerate(conflicts):
        for member in set(triple.members):
            if member in groups:
                groups[member].append(group)
    return {c: tuple(g) for c, g in groups.items()}


def _can_pick(color: int, groups: Sequence[int], reps: Sequence[int]) -> bool:
    return all(reps[g] in (0, color) for g in groups)


def _claim(color: int, groups: Sequence[int], reps: tuple[int, ...]) -> tuple[int, ...]:
    claimed = list(reps)
    for g in groups:
        if claimed[g] == 0:
            claimed[g] = color
    return tuple(claimed)


# -------------------------
# Solver
# -------------------------

def _backtrack(
    work: list[int],
    wildcards: Sequence[int],
    pos: int,
    available: Sequence[int],
    groups_of: dict[int, tuple[int, ...]],
    reps: tuple[int, ...],
    conflicts: Sequence[ConflictTriple],
    exhausted: list[int],
) -> bool:
    if pos >= len(wildcards):
        return conflict_violation(work, conflicts) is None

    slot = wildcards[pos]
    for color in available:
        groups = groups_of[color]
        if not _can_pick(color, groups, reps):
            continue
        work[slot] = color
        if _backtrack(
            work, wildcards, pos + 1, available, groups_of,
            _claim(color, groups, reps), conflicts, exhausted,
        ):
            return True
        work[slot] = 0

    exhausted.append(slot)
    return False


def _solve_colors(
    colors: Sequence[int],
    available: Sequence[int],
    conflicts: Sequence[ConflictTriple],
) -> tuple[int, ...]:
    """Resolve one aligned LED color list; raises _NoSolution."""
    palette_set = set(available)
    for slot, color in enumerate(colors):
        if color > 0 and color not in palette_set:
            raise _NoSolution(f"fixed color {color} is not in the palette", slot)

    clash = conflict_violation(colors, conflicts)
    if clash is not None:
        raise _NoSolution(f"fixed colors conflict: {clash}")

    wildcards = [slot for slot, color in enumerate(colors) if color == 0]
    if not wildcards:
        return tuple(colors)
    if not available:
        raise _NoSolution("need random color but palette is empty", wildcards[0])

    groups_of = _groups_by_color(available, conflicts)

    reps = [0] * len(conflicts)
    for color in colors:
        if color <= 0:
            continue
        for g in groups_of.get(color, ()):
            if reps[g] == 0:
                reps[g] = color
            elif reps[g] != color:
                raise _NoSolution(
                    f"fixed colors conflict: group #{g + 1} has both {reps[g]} and {color}"
                )

    work = list(colors)
    exhausted: list[int] = []
    if not _backtrack(
        work, wildcards, 0, available, groups_of, tuple(reps), conflicts, exhausted
    ):
        slot = max(exhausted) if exhausted else wildcards[0]
        raise _NoSolution(
            f"no color satisfies the conflict rules at LED{slot + 1}", slot
        )
    return tuple(work)


def _resolve_plan(
    actions: Sequence[Action],
    palette: Sequence[ColorItem],
    conflicts: Sequence[ConflictTriple],
    led_count: int,
) -> tuple[tuple[Action, ...], tuple[ResolveIssue, ...]]:
    if led_count <= 0:
        return tuple(actions), (ResolveIssue(-1, f"invalid LED count: {led_count}"),)

    available = available_indices(palette)
    resolved: list[Action] = []
    issues: list[ResolveIssue] = []

    for index, action in enumerate(actions):
        if not isinstance(action, LedAction):
            resolved.append(action)
            continue
        try:
            LedMode(action.mode)
        except ValueError:
            issues.append(ResolveIssue(index, f"invalid LED mode: {action.mode!r}"))
            resolved.append(action)
            continue
        try:
            filled = _solve_colors(align_colors(action.colors, led_count), available, conflicts)
        except _NoSolution as e:
            issues.append(ResolveIssue(index, e.reason, e.slot))
            resolved.append(action)
            continue
        resolved.append(replace(action, colors=filled))

    return tuple(resolved), tuple(issues)


# -------------------------
# Public API
# -------------------------

def precheck(
    actions: Sequence[Action],
    palette: Sequence[ColorItem],
    conflicts: Sequence[ConflictTriple],
    led_count: int,
) -> tuple[ResolveIssue, ...]:
    """Return every issue that would block resolve(); empty means solvable."""
    _, issues = _resolve_plan(actions, palette, conflicts, led_count)
    return issues


def resolve(
    actions: Sequence[Action],
    palette: Sequence[ColorItem],
    conflicts: Sequence[ConflictTriple],
    led_count: int,
) -> tuple[Action, ...]:
    """
    Return the plan with every LED color list aligned and wildcard-free.

    Raises:
        InvalidLedCount if led_count <= 0
        ColorResolveError if any LED action is unsolvable
    """
    if led_count <= 0:
        raise InvalidLedCount((ResolveIssue(-1, f"invalid LED count: {led_count}"),))
    resolved, issues = _resolve_plan(actions, palette, conflicts, led_count)
    if issues:
        raise ColorResolveError(issues)
    return resolved
