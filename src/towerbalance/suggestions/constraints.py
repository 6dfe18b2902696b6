from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(slots=True, frozen=True)
class Constraint:
    min: float
    max: float


TOWER_LEVELS = "tower_levels"
TOWER_DEFINITIONS = "tower_definitions"
ENEMY_DEFINITIONS = "enemy_definitions"
GAME_SETTINGS = "game_settings"

CONSTRAINTS: Dict[Tuple[str, str], Constraint] = {
    (TOWER_LEVELS, "cost"): Constraint(1, 999),
    (TOWER_LEVELS, "damage"): Constraint(1, 999),
    (TOWER_LEVELS, "range"): Constraint(50, 500),
    (TOWER_LEVELS, "fireRate"): Constraint(0.1, 10.0),
    (ENEMY_DEFINITIONS, "health"): Constraint(1, 9999),
    (ENEMY_DEFINITIONS, "speed"): Constraint(10, 500),
    (ENEMY_DEFINITIONS, "reward"): Constraint(1, 999),
    (GAME_SETTINGS, "towerCostMultiplier"): Constraint(0.5, 3.0),
    (GAME_SETTINGS, "enemyHealthMultiplier"): Constraint(0.5, 3.0),
    (GAME_SETTINGS, "enemySpeedMultiplier"): Constraint(0.5, 3.0),
    (GAME_SETTINGS, "enemyRewardMultiplier"): Constraint(0.5, 3.0),
    (GAME_SETTINGS, "enemyHealthWaveMultiplier"): Constraint(0.0, 1.0),
    (GAME_SETTINGS, "enemyRewardWaveMultiplier"): Constraint(0.0, 1.0),
    (GAME_SETTINGS, "initialCoins"): Constraint(50, 1000),
    (GAME_SETTINGS, "initialLives"): Constraint(1, 50),
}

DECIMAL_FIELDS = frozenset(
    {
        "fireRate",
        "towerCostMultiplier",
        "enemyHealthMultiplier",
        "enemySpeedMultiplier",
        "enemyRewardMultiplier",
        "enemyHealthWaveMultiplier",
        "enemyRewardWaveMultiplier",
    }
)


def get_constraint(table: str, field: str) -> Optional[Constraint]:
    return CONSTRAINTS.get((table, field))


def clamp_to_constraint(table: str, field: str, value: float) -> float:
    constraint = get_constraint(table, field)
    if constraint is None:
        return value
    return max(constraint.min, min(constraint.max, value))


def is_within_constraint(table: str, field: str, value: float) -> bool:
    constraint = get_constraint(table, field)
    if constraint is None:
        return True
    return constraint.min <= value <= constraint.max
