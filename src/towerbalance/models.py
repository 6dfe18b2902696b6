from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional


class ModelError(ValueError):
    """Raised for malformed configuration payloads."""


class SettingsMode(str, Enum):
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"
    CUSTOM = "custom"


class GameMode(str, Enum):
    TEN_WAVES = "10waves"
    TWENTY_WAVES = "20waves"
    ENDLESS = "endless"


def _require(payload: Mapping[str, Any], key: str) -> Any:
    if key not in payload:
        raise ModelError(f"Missing required field: {key}")
    return payload[key]


def _number(payload: Mapping[str, Any], key: str, default: Optional[float] = None) -> float:
    raw = _require(payload, key) if default is None else payload.get(key, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ModelError(f"Field '{key}' must be numeric, got {raw!r}") from exc


def _integer(payload: Mapping[str, Any], key: str, default: Optional[int] = None) -> int:
    raw = _require(payload, key) if default is None else payload.get(key, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ModelError(f"Field '{key}' must be an integer, got {raw!r}") from exc


def _stable_float(value: float, digits: int = 10) -> Any:
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if math.isnan(value):
        return None
    rounded = round(float(value), digits)
    # Normalize signed zero to keep deterministic JSON across runtimes.
    return 0.0 if rounded == 0.0 else rounded


def _stabilize_numeric_payload(payload: Any, digits: int = 10) -> Any:
    if isinstance(payload, Enum):
        return payload.value
    if isinstance(payload, float):
        return _stable_float(payload, digits=digits)
    if isinstance(payload, (list, tuple)):
        return [_stabilize_numeric_payload(item, digits=digits) for item in payload]
    if isinstance(payload, dict):
        return {
            (key.value if isinstance(key, Enum) else key): _stabilize_numeric_payload(value, digits=digits)
            for key, value in payload.items()
        }
    return payload


@dataclass(slots=True, frozen=True)
class TowerLevel:
    tower_id: int
    level: int
    cost: float
    damage: float
    range: float
    fire_rate: float

    @property
    def dps(self) -> float:
        return self.damage * self.fire_rate

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], tower_id: int = 0) -> "TowerLevel":
        level = _integer(payload, "level")
        if level < 1:
            raise ModelError(f"Tower level must be >= 1, got {level}")
        return cls(
            tower_id=_integer(payload, "towerId", tower_id),
            level=level,
            cost=_number(payload, "cost"),
            damage=_number(payload, "damage"),
            range=_number(payload, "range"),
            fire_rate=_number(payload, "fireRate"),
        )


@dataclass(slots=True, frozen=True)
class TowerDefinition:
    id: int
    name: str
    levels: tuple[TowerLevel, ...]
    max_level: int = 1
    description: str = ""
    color: str = ""

    def level(self, number: int) -> Optional[TowerLevel]:
        for item in self.levels:
            if item.level == number:
                return item
        return None

    @property
    def base_level(self) -> Optional[TowerLevel]:
        return self.level(1)

    @property
    def is_simulatable(self) -> bool:
        """Level 1 through ``max_level`` all defined; anything else is skipped by the simulator and analyses."""
        if self.base_level is None:
            return False
        present = {item.level for item in self.levels}
        return all(number in present for number in range(1, self.max_level + 1))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TowerDefinition":
        tower_id = _integer(payload, "id")
        levels = tuple(
            sorted(
                (TowerLevel.from_dict(item, tower_id=tower_id) for item in payload.get("levels", [])),
                key=lambda item: item.level,
            )
        )
        default_max = levels[-1].level if levels else 1
        return cls(
            id=tower_id,
            name=str(_require(payload, "name")),
            levels=levels,
            max_level=_integer(payload, "maxLevel", default_max),
            description=str(payload.get("description", "") or ""),
            color=str(payload.get("baseColor", payload.get("color", "")) or ""),
        )


@dataclass(slots=True, frozen=True)
class EnemyDefinition:
    id: int
    name: str
    health: float
    speed: float
    reward: float
    description: str = ""
    color: str = ""
    size: float = 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "EnemyDefinition":
        return cls(
            id=_integer(payload, "id"),
            name=str(_require(payload, "name")),
            health=_number(payload, "health"),
            speed=_number(payload, "speed"),
            reward=_number(payload, "reward"),
            description=str(payload.get("description", "") or ""),
            color=str(payload.get("color", "") or ""),
            size=_number(payload, "size", 0.0),
        )


@dataclass(slots=True, frozen=True)
class GameSettings:
    id: int
    mode: str
    initial_coins: int = 200
    initial_lives: int = 10
    tower_cost_multiplier: float = 1.0
    enemy_health_multiplier: float = 1.0
    enemy_speed_multiplier: float = 1.0
    enemy_reward_multiplier: float = 1.0
    enemy_health_wave_multiplier: float = 0.1
    enemy_reward_wave_multiplier: float = 0.05

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GameSettings":
        multipliers = {key: _number(payload, key, default) for key, default in (
            ("towerCostMultiplier", 1.0),
            ("enemyHealthMultiplier", 1.0),
            ("enemySpeedMultiplier", 1.0),
            ("enemyRewardMultiplier", 1.0),
            ("enemyHealthWaveMultiplier", 0.1),
            ("enemyRewardWaveMultiplier", 0.05),
        )}
        negative = [key for key, value in multipliers.items() if value < 0]
        if negative:
            raise ModelError(f"Multiplier fields must be non-negative: {', '.join(negative)}")
        return cls(
            id=_integer(payload, "id"),
            mode=str(payload.get("mode", SettingsMode.NORMAL.value)),
            initial_coins=_integer(payload, "initialCoins", 200),
            initial_lives=_integer(payload, "initialLives", 10),
            tower_cost_multiplier=multipliers["towerCostMultiplier"],
            enemy_health_multiplier=multipliers["enemyHealthMultiplier"],
            enemy_speed_multiplier=multipliers["enemySpeedMultiplier"],
            enemy_reward_multiplier=multipliers["enemyRewardMultiplier"],
            enemy_health_wave_multiplier=multipliers["enemyHealthWaveMultiplier"],
            enemy_reward_wave_multiplier=multipliers["enemyRewardWaveMultiplier"],
        )


@dataclass(slots=True, frozen=True)
class WaveGroup:
    enemy_id: int
    count: int
    spawn_delay_ms: float = 500.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WaveGroup":
        return cls(
            enemy_id=_integer(payload, "enemyId"),
            count=max(0, _integer(payload, "count", 1)),
            spawn_delay_ms=_number(payload, "spawnDelayMs", 500.0),
        )


@dataclass(slots=True, frozen=True)
class WaveDefinition:
    wave_number: int
    enemies: tuple[WaveGroup, ...] = tuple()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WaveDefinition":
        return cls(
            wave_number=_integer(payload, "waveNumber"),
            enemies=tuple(WaveGroup.from_dict(item) for item in payload.get("enemies", [])),
        )


def resolve_wave(waves: Iterable[WaveDefinition], wave_number: int) -> Optional[WaveDefinition]:
    """Exact definition for ``wave_number``, else the highest-numbered one.

    Games that run longer than the authored waves keep replaying the last
    composition unmodified.
    """
    ordered = sorted(waves, key=lambda item: item.wave_number)
    for wave in ordered:
        if wave.wave_number == wave_number:
            return wave
    return ordered[-1] if ordered else None


def select_settings(payload: Any, difficulty: str) -> Mapping[str, Any]:
    """Pick the settings object for ``difficulty`` out of an object or list payload."""
    if isinstance(payload, Mapping):
        return payload
    if isinstance(payload, list):
        candidates = [item for item in payload if isinstance(item, Mapping)]
        for item in candidates:
            if str(item.get("mode", "")) == difficulty:
                return item
        if len(candidates) == 1:
            return candidates[0]
        raise ModelError(f"No settings found for difficulty '{difficulty}'")
    raise ModelError("Settings payload must be an object or a list of objects")


@dataclass(slots=True, frozen=True)
class GameConfig:
    towers: tuple[TowerDefinition, ...]
    enemies: tuple[EnemyDefinition, ...]
    settings: GameSettings
    waves: tuple[WaveDefinition, ...] = tuple()
    _tower_index: Dict[int, TowerDefinition] = field(init=False, default_factory=dict, compare=False, repr=False)
    _enemy_index: Dict[int, EnemyDefinition] = field(init=False, default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_tower_index", {tower.id: tower for tower in self.towers})
        object.__setattr__(self, "_enemy_index", {enemy.id: enemy for enemy in self.enemies})

    def tower(self, tower_id: int) -> Optional[TowerDefinition]:
        return self._tower_index.get(tower_id)

    def enemy(self, enemy_id: int) -> Optional[EnemyDefinition]:
        return self._enemy_index.get(enemy_id)

    @property
    def enemy_index(self) -> Mapping[int, EnemyDefinition]:
        return self._enemy_index

    def wave_for(self, wave_number: int) -> Optional[WaveDefinition]:
        return resolve_wave(self.waves, wave_number)

    def with_changes(
        self,
        towers: Optional[Iterable[TowerDefinition]] = None,
        enemies: Optional[Iterable[EnemyDefinition]] = None,
        settings: Optional[GameSettings] = None,
    ) -> "GameConfig":
        return GameConfig(
            towers=tuple(towers) if towers is not None else self.towers,
            enemies=tuple(enemies) if enemies is not None else self.enemies,
            settings=settings if settings is not None else self.settings,
            waves=self.waves,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], difficulty: str = SettingsMode.NORMAL.value) -> "GameConfig":
        towers: List[TowerDefinition] = [TowerDefinition.from_dict(item) for item in payload.get("towers", [])]
        enemies: List[EnemyDefinition] = [EnemyDefinition.from_dict(item) for item in payload.get("enemies", [])]
        settings = GameSettings.from_dict(select_settings(_require(payload, "settings"), difficulty))
        waves = tuple(
            sorted((WaveDefinition.from_dict(item) for item in payload.get("waves", [])), key=lambda w: w.wave_number)
        )
        return cls(towers=tuple(towers), enemies=tuple(enemies), settings=settings, waves=waves)
