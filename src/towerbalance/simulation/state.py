from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models import GameSettings, _stabilize_numeric_payload


class ActionType(str, Enum):
    BUILD = "build"
    UPGRADE = "upgrade"
    SELL = "sell"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class StrategyAction:
    type: ActionType
    tower_id: Optional[int] = None
    grid_x: Optional[int] = None
    grid_y: Optional[int] = None
    target_instance_id: Optional[int] = None

    @classmethod
    def build(cls, tower_id: int, grid_x: int, grid_y: int) -> "StrategyAction":
        return cls(type=ActionType.BUILD, tower_id=tower_id, grid_x=grid_x, grid_y=grid_y)

    @classmethod
    def upgrade(cls, target_instance_id: int) -> "StrategyAction":
        return cls(type=ActionType.UPGRADE, target_instance_id=target_instance_id)

    @classmethod
    def sell(cls, target_instance_id: int) -> "StrategyAction":
        return cls(type=ActionType.SELL, target_instance_id=target_instance_id)


@dataclass(slots=True)
class SimTower:
    id: int
    tower_id: int
    grid_x: int
    grid_y: int
    x: float
    y: float
    level: int
    damage: float
    range: float
    fire_rate: float
    last_fire_ms: float = float("-inf")
    total_damage_dealt: float = 0.0
    total_invested: int = 0


@dataclass(slots=True)
class SimEnemy:
    id: int
    enemy_id: int
    x: float
    y: float
    health: float
    max_health: float
    speed: float
    reward: int
    is_dead: bool = False
    has_escaped: bool = False

    @property
    def active(self) -> bool:
        return not (self.is_dead or self.has_escaped)


@dataclass(slots=True)
class SimProjectile:
    id: int
    x: float
    y: float
    target_id: int
    source_tower_id: int
    damage: float
    speed: float


@dataclass(slots=True)
class SimState:
    """Mutable snapshot of one playthrough. Never shared between runs."""

    coins: int
    lives: int
    towers: List[SimTower] = field(default_factory=list)
    enemies: List[SimEnemy] = field(default_factory=list)
    projectiles: List[SimProjectile] = field(default_factory=list)
    wave: int = 0
    time_ms: float = 0.0
    next_tower_id: int = 1
    next_enemy_id: int = 1
    next_projectile_id: int = 1
    tower_usage: Dict[int, int] = field(default_factory=dict)
    tower_damage: Dict[int, float] = field(default_factory=dict)
    enemy_kills: Dict[int, int] = field(default_factory=dict)
    enemy_escapes: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def initial(cls, settings: GameSettings) -> "SimState":
        return cls(coins=settings.initial_coins, lives=settings.initial_lives)

    def tower_at(self, grid_x: int, grid_y: int) -> Optional[SimTower]:
        for tower in self.towers:
            if tower.grid_x == grid_x and tower.grid_y == grid_y:
                return tower
        return None

    def find_tower(self, instance_id: int) -> Optional[SimTower]:
        for tower in self.towers:
            if tower.id == instance_id:
                return tower
        return None

    def find_enemy(self, instance_id: int) -> Optional[SimEnemy]:
        for enemy in self.enemies:
            if enemy.id == instance_id:
                return enemy
        return None

    def begin_wave(self, wave: int) -> None:
        self.wave = wave
        self.time_ms = 0.0
        self.enemies = []
        self.projectiles = []
        for tower in self.towers:
            tower.last_fire_ms = float("-inf")


@dataclass(slots=True, frozen=True)
class WaveSimMetrics:
    wave: int
    enemies_spawned: int
    enemies_killed: int
    enemies_escaped: int
    damage_dealt: float
    coins_earned: int
    coins_spent: int
    coins_refunded: int
    towers_built: int
    towers_upgraded: int
    towers_sold: int


@dataclass(slots=True, frozen=True)
class SimulationRunResult:
    strategy: str
    difficulty: str
    waves_completed: int
    total_waves: int
    enemies_killed: int
    enemies_escaped: int
    lives_remaining: int
    final_coins: int
    tower_usage: Dict[int, int]
    tower_damage_share: Dict[int, float]
    enemy_leak_rate: Dict[int, float]
    per_wave_metrics: tuple[WaveSimMetrics, ...]

    @property
    def won(self) -> bool:
        return self.waves_completed == self.total_waves and self.lives_remaining > 0

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["won"] = self.won
        return _stabilize_numeric_payload(payload)
