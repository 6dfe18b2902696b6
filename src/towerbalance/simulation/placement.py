"""Placement and upgrade budgeting shared by every deterministic strategy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..models import GameSettings, TowerDefinition
from ..rules import GRID_COLS, RESTRICTED_ROWS, build_price
from .state import ActionType, SimState, StrategyAction


# Closest to the enemy path (rows 4-5) first, expanding outward.
ROW_PRIORITY: Tuple[int, ...] = (3, 6, 2, 7, 1, 8, 0, 9)
EDGE_MARGIN = 2

TowerPicker = Callable[[Mapping[int, int]], Optional[TowerDefinition]]


@dataclass(slots=True, frozen=True)
class SpendResult:
    actions: Tuple[StrategyAction, ...]
    remaining: int


def column_priority(cols: int = GRID_COLS, margin: int = EDGE_MARGIN) -> Tuple[int, ...]:
    """Columns ordered from the centre outward, edge columns excluded."""
    mid = cols // 2
    ordered: List[int] = []
    for offset in range(cols):
        for candidate in (mid - offset, mid + offset):
            if margin <= candidate < cols - margin and candidate not in ordered:
                ordered.append(candidate)
    return tuple(ordered)


def buildable_towers(towers: Sequence[TowerDefinition]) -> List[TowerDefinition]:
    return [tower for tower in towers if tower.is_simulatable]


def spend_on_upgrades(
    state: SimState,
    towers: Sequence[TowerDefinition],
    settings: GameSettings,
    budget: int,
    filter_tower_id: Optional[int] = None,
) -> SpendResult:
    """Upgrade the lowest-level tower that fits the budget until none does.

    Ties on effective level go to the cheaper upgrade. A tower may be upgraded
    several times in one call; the effective level is tracked locally.
    """
    by_id: Dict[int, TowerDefinition] = {tower.id: tower for tower in towers}
    effective: Dict[int, int] = {tower.id: tower.level for tower in state.towers}
    actions: List[StrategyAction] = []
    remaining = budget

    while remaining > 0:
        best_id: Optional[int] = None
        best_cost = 0
        best_level = 0
        for tower in state.towers:
            if filter_tower_id is not None and tower.tower_id != filter_tower_id:
                continue
            definition = by_id.get(tower.tower_id)
            if definition is None:
                continue
            current = effective[tower.id]
            next_level = definition.level(current + 1)
            if next_level is None:
                continue
            cost = build_price(next_level.cost, settings)
            if cost > remaining:
                continue
            if best_id is None or current < best_level or (current == best_level and cost < best_cost):
                best_id, best_cost, best_level = tower.id, cost, current
        if best_id is None:
            break
        actions.append(StrategyAction.upgrade(best_id))
        remaining -= best_cost
        effective[best_id] = best_level + 1

    return SpendResult(actions=tuple(actions), remaining=remaining)


def spend_on_builds(
    state: SimState,
    settings: GameSettings,
    budget: int,
    previous_actions: Sequence[StrategyAction],
    pick_tower: TowerPicker,
    rows: Sequence[int] = ROW_PRIORITY,
) -> SpendResult:
    """Walk the row/column priority grid and build whatever ``pick_tower`` chooses.

    Cells holding a tower or a build proposed earlier in ``previous_actions``
    are skipped, as are the restricted path rows.
    """
    occupied: Set[Tuple[int, int]] = {(tower.grid_x, tower.grid_y) for tower in state.towers}
    usage: Dict[int, int] = dict(state.tower_usage)
    for action in previous_actions:
        if action.type is not ActionType.BUILD:
            continue
        if action.grid_x is not None and action.grid_y is not None:
            occupied.add((action.grid_x, action.grid_y))
        if action.tower_id is not None:
            usage[action.tower_id] = usage.get(action.tower_id, 0) + 1

    actions: List[StrategyAction] = []
    remaining = budget
    columns = column_priority()
    for row in rows:
        if row in RESTRICTED_ROWS:
            continue
        for col in columns:
            if remaining <= 0:
                return SpendResult(actions=tuple(actions), remaining=remaining)
            if (col, row) in occupied:
                continue
            definition = pick_tower(usage)
            if definition is None:
                return SpendResult(actions=tuple(actions), remaining=remaining)
            base = definition.base_level
            if base is None:
                continue
            cost = build_price(base.cost, settings)
            if cost > remaining:
                continue
            actions.append(StrategyAction.build(definition.id, col, row))
            remaining -= cost
            occupied.add((col, row))
            usage[definition.id] = usage.get(definition.id, 0) + 1

    return SpendResult(actions=tuple(actions), remaining=remaining)


def pick_least_used(
    towers: Sequence[TowerDefinition],
    usage: Mapping[int, int],
    exclude_id: Optional[int] = None,
) -> Optional[TowerDefinition]:
    selected: Optional[TowerDefinition] = None
    lowest = 0
    for tower in towers:
        if exclude_id is not None and tower.id == exclude_id:
            continue
        count = usage.get(tower.id, 0)
        if selected is None or count < lowest:
            selected, lowest = tower, count
    return selected
