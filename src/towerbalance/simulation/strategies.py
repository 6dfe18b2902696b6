from __future__ import annotations

import math
import random
from typing import Callable, Dict, List, Optional, Sequence

from ..models import GameSettings, TowerDefinition
from ..rules import GRID_COLS, GRID_ROWS, build_price, is_buildable_cell
from .placement import buildable_towers, pick_least_used, spend_on_builds, spend_on_upgrades
from .state import SimState, StrategyAction


class StrategyError(ValueError):
    """Raised for unknown strategy names."""


class Strategy:
    """Decides the build/upgrade/sell actions before each wave.

    Implementations read ``state`` but never mutate it; the engine validates
    and applies the returned actions.
    """

    name = ""
    deterministic = True

    def decide_actions(
        self,
        state: SimState,
        towers: Sequence[TowerDefinition],
        settings: GameSettings,
    ) -> List[StrategyAction]:
        raise NotImplementedError


class RandomStrategy(Strategy):
    """One build per wave: random tower type, random free cell."""

    name = "random"
    deterministic = False

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng if rng is not None else random.Random()

    def decide_actions(self, state, towers, settings):
        candidates = buildable_towers(towers)
        if not candidates:
            return []
        occupied = {(tower.grid_x, tower.grid_y) for tower in state.towers}
        cells = [
            (x, y)
            for y in range(GRID_ROWS)
            for x in range(GRID_COLS)
            if is_buildable_cell(x, y) and (x, y) not in occupied
        ]
        if not cells:
            return []

        definition = candidates[self.rng.randrange(len(candidates))]
        if state.coins < build_price(definition.base_level.cost, settings):
            return []
        x, y = cells[self.rng.randrange(len(cells))]
        return [StrategyAction.build(definition.id, x, y)]


class SplitBudgetStrategy(Strategy):
    """Builds first, upgrades with the rest, then spends leftovers on more builds.

    ``build_share`` of the spendable coins goes to placements; ``reserve``
    is held back for later waves.
    """

    build_share = 0.7
    reserve = 0.0

    def decide_actions(self, state, towers, settings):
        candidates = buildable_towers(towers)
        if not candidates:
            return []

        spendable = math.floor(state.coins * (1 - self.reserve))
        build_budget = math.floor(spendable * self.build_share)

        def picker(usage):
            return pick_least_used(candidates, usage)

        builds = spend_on_builds(state, settings, build_budget, [], picker)
        upgrades = spend_on_upgrades(state, towers, settings, spendable - build_budget + builds.remaining)
        planned = list(builds.actions) + list(upgrades.actions)
        leftovers = spend_on_builds(state, settings, upgrades.remaining, planned, picker)
        return planned + list(leftovers.actions)


class PathAdjacentStrategy(SplitBudgetStrategy):
    name = "path-adjacent"
    build_share = 0.7


class BalancedStrategy(SplitBudgetStrategy):
    name = "balanced"
    build_share = 0.6
    reserve = 0.2


class PreferredTowerStrategy(Strategy):
    """Floods one preferred tower type, then diversifies with the least-used others."""

    def preferred(self, towers: Sequence[TowerDefinition]) -> Optional[TowerDefinition]:
        raise NotImplementedError

    @staticmethod
    def _best_by(towers: Sequence[TowerDefinition], stat: Callable[[TowerDefinition], float]) -> Optional[TowerDefinition]:
        best: Optional[TowerDefinition] = None
        best_value = -math.inf
        for tower in towers:
            value = stat(tower)
            if value > best_value:
                best, best_value = tower, value
        return best

    def decide_actions(self, state, towers, settings):
        candidates = buildable_towers(towers)
        favourite = self.preferred(candidates)
        if favourite is None:
            return []

        build_budget = math.floor(state.coins * 0.5)
        builds = spend_on_builds(state, settings, build_budget, [], lambda usage: favourite)
        own_upgrades = spend_on_upgrades(
            state,
            towers,
            settings,
            state.coins - build_budget + builds.remaining,
            filter_tower_id=favourite.id,
        )
        other_upgrades = spend_on_upgrades(state, towers, settings, own_upgrades.remaining)
        planned = list(builds.actions) + list(own_upgrades.actions) + list(other_upgrades.actions)
        fill = spend_on_builds(
            state,
            settings,
            other_upgrades.remaining,
            planned,
            lambda usage: pick_least_used(candidates, usage, exclude_id=favourite.id),
        )
        return planned + list(fill.actions)


class SniperHeavyStrategy(PreferredTowerStrategy):
    name = "sniper-heavy"

    def preferred(self, towers):
        return self._best_by(towers, lambda tower: tower.base_level.range)


class RapidFireStrategy(PreferredTowerStrategy):
    name = "rapid-fire"

    def preferred(self, towers):
        return self._best_by(towers, lambda tower: tower.base_level.fire_rate)


_REGISTRY: Dict[str, Callable[[Optional[int]], Strategy]] = {
    "random": lambda seed: RandomStrategy(random.Random(seed)),
    "path-adjacent": lambda seed: PathAdjacentStrategy(),
    "balanced": lambda seed: BalancedStrategy(),
    "sniper-heavy": lambda seed: SniperHeavyStrategy(),
    "rapid-fire": lambda seed: RapidFireStrategy(),
}


def strategy_names() -> List[str]:
    return list(_REGISTRY)


def get_strategy(name: str, seed: Optional[int] = None) -> Strategy:
    """Instantiate a registered strategy; ``seed`` only affects ``random``."""
    factory = _REGISTRY.get(name)
    if factory is None:
        raise StrategyError(f"Unknown strategy '{name}'. Valid: {', '.join(strategy_names())}")
    return factory(seed)
