"""Board geometry and the scaling formulas shared by the simulator and every analysis tier."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
import math
from typing import Tuple

from .models import GameSettings


GRID_COLS = 20
GRID_ROWS = 10
CANVAS_WIDTH = 1200
CANVAS_HEIGHT = 600
GRID_SCALE = 0.9
RESTRICTED_ROWS: Tuple[int, ...] = (4, 5)
PROJECTILE_SPEED = 400.0
HIT_THRESHOLD = 10.0
FPS = 60
SELL_REFUND_RATE = 0.7

GRID_SIZE = CANVAS_WIDTH * GRID_SCALE / GRID_COLS
SPAWN_X = -GRID_SIZE
DESPAWN_X = CANVAS_WIDTH + GRID_SIZE
ENEMY_PATH_Y = RESTRICTED_ROWS[0] * GRID_SIZE + GRID_SIZE
PATH_LENGTH = DESPAWN_X - SPAWN_X


def round_half_up(value: float) -> int:
    # Game client rounds .5 upward; Python's round() would round to even.
    return int(math.floor(value + 0.5))


def round_half_up_to(value: float, digits: int = 2) -> float:
    """Half-up rounding to a fixed number of decimals, applied to the exact binary value."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def cell_center(grid_x: int, grid_y: int) -> Tuple[float, float]:
    return (grid_x * GRID_SIZE + GRID_SIZE / 2, grid_y * GRID_SIZE + GRID_SIZE / 2)


def is_buildable_cell(grid_x: int, grid_y: int) -> bool:
    if grid_x < 0 or grid_x >= GRID_COLS or grid_y < 0 or grid_y >= GRID_ROWS:
        return False
    return grid_y not in RESTRICTED_ROWS


def scaled_health(base_health: float, wave: int, settings: GameSettings) -> int:
    return round_half_up(
        base_health
        * settings.enemy_health_multiplier
        * (1 + wave * settings.enemy_health_wave_multiplier)
    )


def scaled_reward(base_reward: float, wave: int, settings: GameSettings) -> int:
    return round_half_up(
        base_reward
        * settings.enemy_reward_multiplier
        * (1 + wave * settings.enemy_reward_wave_multiplier)
    )


def scaled_speed(base_speed: float, settings: GameSettings) -> float:
    return base_speed * settings.enemy_speed_multiplier


def adjusted_cost(level_cost: float, settings: GameSettings) -> float:
    return level_cost * settings.tower_cost_multiplier


def build_price(level_cost: float, settings: GameSettings) -> int:
    """Coins actually charged for a build or upgrade step."""
    return round_half_up(adjusted_cost(level_cost, settings))
