from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Dict, List, Sequence

from ..models import GameConfig
from ..rules import SELL_REFUND_RATE, build_price, cell_center, is_buildable_cell
from .combat import WaveScaling, build_spawn_queue, run_wave
from .state import (
    ActionType,
    SimState,
    SimTower,
    SimulationRunResult,
    StrategyAction,
    WaveSimMetrics,
)
from .strategies import Strategy


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActionOutcome:
    coins_spent: int = 0
    coins_refunded: int = 0
    towers_built: int = 0
    towers_upgraded: int = 0
    towers_sold: int = 0


def apply_actions(state: SimState, config: GameConfig, actions: Sequence[StrategyAction]) -> ActionOutcome:
    """Validate and execute strategy actions against ``state``.

    Anything out of bounds, on a path row, on an occupied cell, unaffordable,
    past the last level or pointing at a missing tower is skipped.
    """
    outcome = ActionOutcome()
    settings = config.settings

    for action in actions:
        if action.type is ActionType.BUILD:
            if action.tower_id is None or action.grid_x is None or action.grid_y is None:
                continue
            definition = config.tower(action.tower_id)
            base = definition.base_level if definition is not None else None
            if base is None:
                continue
            cost = build_price(base.cost, settings)
            if state.coins < cost:
                continue
            if not is_buildable_cell(action.grid_x, action.grid_y):
                continue
            if state.tower_at(action.grid_x, action.grid_y) is not None:
                continue
            x, y = cell_center(action.grid_x, action.grid_y)
            state.coins -= cost
            state.towers.append(
                SimTower(
                    id=state.next_tower_id,
                    tower_id=definition.id,
                    grid_x=action.grid_x,
                    grid_y=action.grid_y,
                    x=x,
                    y=y,
                    level=1,
                    damage=base.damage,
                    range=base.range,
                    fire_rate=base.fire_rate,
                    total_invested=cost,
                )
            )
            state.next_tower_id += 1
            state.tower_usage[definition.id] = state.tower_usage.get(definition.id, 0) + 1
            outcome.coins_spent += cost
            outcome.towers_built += 1

        elif action.type is ActionType.UPGRADE:
            if action.target_instance_id is None:
                continue
            tower = state.find_tower(action.target_instance_id)
            if tower is None:
                continue
            definition = config.tower(tower.tower_id)
            if definition is None or tower.level >= definition.max_level:
                continue
            next_level = definition.level(tower.level + 1)
            if next_level is None:
                continue
            cost = build_price(next_level.cost, settings)
            if state.coins < cost:
                continue
            state.coins -= cost
            tower.level = next_level.level
            tower.damage = next_level.damage
            tower.range = next_level.range
            tower.fire_rate = next_level.fire_rate
            tower.total_invested += cost
            outcome.coins_spent += cost
            outcome.towers_upgraded += 1

        elif action.type is ActionType.SELL:
            if action.target_instance_id is None:
                continue
            tower = state.find_tower(action.target_instance_id)
            if tower is None:
                continue
            refund = math.floor(tower.total_invested * SELL_REFUND_RATE)
            state.coins += refund
            state.towers.remove(tower)
            outcome.coins_refunded += refund
            outcome.towers_sold += 1

    return outcome


class SimulationEngine:
    """Plays one full run of ``num_waves`` waves under one strategy."""

    def __init__(self, config: GameConfig, strategy: Strategy, num_waves: int) -> None:
        self.config = config
        self.strategy = strategy
        self.num_waves = num_waves

    def run(self) -> SimulationRunResult:
        config = self.config
        state = SimState.initial(config.settings)
        history: List[WaveSimMetrics] = []
        waves_completed = 0
        killed = 0
        escaped = 0

        if config.waves:
            for wave_number in range(1, self.num_waves + 1):
                definition = config.wave_for(wave_number)
                state.wave = wave_number

                actions = self.strategy.decide_actions(state, config.towers, config.settings)
                outcome = apply_actions(state, config, actions)

                source = WaveScaling(config.enemy_index, config.settings, wave_number)
                tally = run_wave(state, build_spawn_queue(definition), source)
                killed += tally.enemies_killed
                escaped += tally.enemies_escaped
                history.append(
                    WaveSimMetrics(
                        wave=wave_number,
                        enemies_spawned=tally.enemies_spawned,
                        enemies_killed=tally.enemies_killed,
                        enemies_escaped=tally.enemies_escaped,
                        damage_dealt=tally.damage_dealt,
                        coins_earned=tally.coins_earned,
                        coins_spent=outcome.coins_spent,
                        coins_refunded=outcome.coins_refunded,
                        towers_built=outcome.towers_built,
                        towers_upgraded=outcome.towers_upgraded,
                        towers_sold=outcome.towers_sold,
                    )
                )
                waves_completed = wave_number
                if state.lives <= 0:
                    logger.debug("%s lost at wave %s", self.strategy.name, wave_number)
                    break
        else:
            logger.warning("configuration defines no waves; nothing to simulate")

        return SimulationRunResult(
            strategy=self.strategy.name,
            difficulty=config.settings.mode,
            waves_completed=waves_completed,
            total_waves=self.num_waves,
            enemies_killed=killed,
            enemies_escaped=escaped,
            lives_remaining=max(state.lives, 0),
            final_coins=state.coins,
            tower_usage=dict(state.tower_usage),
            tower_damage_share=_damage_share(state.tower_damage),
            enemy_leak_rate=_leak_rate(state.enemy_kills, state.enemy_escapes),
            per_wave_metrics=tuple(history),
        )


def _damage_share(damage: Dict[int, float]) -> Dict[int, float]:
    total = sum(damage.values())
    return {tower_id: (value / total if total > 0 else 0.0) for tower_id, value in damage.items()}


def _leak_rate(kills: Dict[int, int], escapes: Dict[int, int]) -> Dict[int, float]:
    rates: Dict[int, float] = {}
    for enemy_id in sorted(set(kills) | set(escapes)):
        total = kills.get(enemy_id, 0) + escapes.get(enemy_id, 0)
        rates[enemy_id] = escapes.get(enemy_id, 0) / total if total > 0 else 0.0
    return rates


def simulate(config: GameConfig, strategy: Strategy, num_waves: int) -> SimulationRunResult:
    return SimulationEngine(config, strategy, num_waves).run()
