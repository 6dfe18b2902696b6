from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence

from ..models import EnemyDefinition, TowerDefinition


class EnemyArchetype(str, Enum):
    TANK = "tank"
    RUSHER = "rusher"
    FODDER = "fodder"
    ELITE = "elite"
    BALANCED = "balanced"


class TowerRole(str, Enum):
    SNIPER = "sniper"
    RAPID = "rapid"
    BALANCED = "balanced"


@dataclass(slots=True, frozen=True)
class ClassifiedEnemy:
    enemy_id: int
    name: str
    archetype: EnemyArchetype
    health_ratio: float
    speed_ratio: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enemy_id": self.enemy_id,
            "name": self.name,
            "archetype": self.archetype.value,
            "health_ratio": round(self.health_ratio, 3),
            "speed_ratio": round(self.speed_ratio, 3),
        }


@dataclass(slots=True, frozen=True)
class ClassifiedTower:
    tower_id: int
    name: str
    role: TowerRole
    range_ratio: float
    fire_rate_ratio: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tower_id": self.tower_id,
            "name": self.name,
            "role": self.role.value,
            "range_ratio": round(self.range_ratio, 3),
            "fire_rate_ratio": round(self.fire_rate_ratio, 3),
        }


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _ratio(value: float, mean: float) -> float:
    return value / mean if mean > 0 else 1.0


def classify_enemies(enemies: Sequence[EnemyDefinition]) -> List[ClassifiedEnemy]:
    mean_health = _mean([enemy.health for enemy in enemies])
    mean_speed = _mean([enemy.speed for enemy in enemies])

    classified: List[ClassifiedEnemy] = []
    for enemy in enemies:
        hp = _ratio(enemy.health, mean_health)
        speed = _ratio(enemy.speed, mean_speed)
        if hp > 1.3 and speed < 0.7:
            archetype = EnemyArchetype.TANK
        elif speed > 1.3 and hp < 0.7:
            archetype = EnemyArchetype.RUSHER
        elif hp < 0.7 and speed < 0.7:
            archetype = EnemyArchetype.FODDER
        elif hp > 1.3 and speed > 1.0:
            archetype = EnemyArchetype.ELITE
        else:
            archetype = EnemyArchetype.BALANCED
        classified.append(ClassifiedEnemy(enemy.id, enemy.name, archetype, hp, speed))
    return classified


def classify_towers(towers: Sequence[TowerDefinition]) -> List[ClassifiedTower]:
    bases = [tower.base_level for tower in towers if tower.base_level is not None]
    mean_range = _mean([level.range for level in bases])
    mean_rate = _mean([level.fire_rate for level in bases])

    classified: List[ClassifiedTower] = []
    for tower in towers:
        base = tower.base_level
        if base is None:
            classified.append(ClassifiedTower(tower.id, tower.name, TowerRole.BALANCED, 1.0, 1.0))
            continue
        range_ratio = _ratio(base.range, mean_range)
        rate_ratio = _ratio(base.fire_rate, mean_rate)
        if range_ratio > 1.3:
            role = TowerRole.SNIPER
        elif rate_ratio > 1.5:
            role = TowerRole.RAPID
        else:
            role = TowerRole.BALANCED
        classified.append(ClassifiedTower(tower.id, tower.name, role, range_ratio, rate_ratio))
    return classified
