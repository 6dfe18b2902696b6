"""Fixed-timestep combat loop shared by the offline engine and the live bot.

One call to :func:`run_wave` plays a single wave against the towers already on
``state``: spawn, move, fire, resolve projectiles, advance the clock. Enemy
stats come from an :class:`EnemySource` and every combat event is reported to
an optional :class:`CombatSink`, so callers only differ in where enemies come
from and what they do with the outcome.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
import math
from typing import List, Mapping, Optional, Protocol, Sequence

from ..models import EnemyDefinition, GameSettings, WaveDefinition
from ..rules import (
    DESPAWN_X,
    ENEMY_PATH_Y,
    FPS,
    HIT_THRESHOLD,
    PROJECTILE_SPEED,
    SPAWN_X,
    scaled_health,
    scaled_reward,
    scaled_speed,
)
from .state import SimEnemy, SimProjectile, SimState, SimTower


logger = logging.getLogger(__name__)

TICK_MS = 1000.0 / FPS
WAVE_TIME_CAP_MS = 60_000.0


@dataclass(slots=True, frozen=True)
class SpawnEntry:
    enemy_id: int
    spawn_time_ms: float


def build_spawn_queue(wave: Optional[WaveDefinition]) -> List[SpawnEntry]:
    """Flatten wave groups into one time-ordered queue.

    Groups are concatenated in declaration order; inside a group each enemy
    spawns ``spawn_delay_ms`` after the previous one. The first enemy spawns
    at t=0.
    """
    queue: List[SpawnEntry] = []
    if wave is None:
        return queue
    cursor = 0.0
    for group in wave.enemies:
        for _ in range(group.count):
            queue.append(SpawnEntry(enemy_id=group.enemy_id, spawn_time_ms=cursor))
            cursor += group.spawn_delay_ms
    return queue


class EnemySource(Protocol):
    def spawn(self, entry: SpawnEntry, instance_id: int) -> Optional[SimEnemy]:
        ...


class CombatSink(Protocol):
    def on_escape(self, enemy: SimEnemy) -> None:
        ...

    def on_hit(self, tower: Optional[SimTower], enemy: SimEnemy, damage: float) -> None:
        ...

    def on_kill(self, enemy: SimEnemy) -> None:
        ...


class WaveScaling:
    """Spawns enemies scaled for one wave under one settings profile."""

    def __init__(self, enemies: Mapping[int, EnemyDefinition], settings: GameSettings, wave: int) -> None:
        self.enemies = enemies
        self.settings = settings
        self.wave = wave

    def spawn(self, entry: SpawnEntry, instance_id: int) -> Optional[SimEnemy]:
        definition = self.enemies.get(entry.enemy_id)
        if definition is None:
            logger.debug("wave %s references unknown enemy %s, skipping", self.wave, entry.enemy_id)
            return None
        health = float(scaled_health(definition.health, self.wave, self.settings))
        return SimEnemy(
            id=instance_id,
            enemy_id=definition.id,
            x=SPAWN_X,
            y=ENEMY_PATH_Y,
            health=health,
            max_health=health,
            speed=scaled_speed(definition.speed, self.settings),
            reward=scaled_reward(definition.reward, self.wave, self.settings),
        )


@dataclass(slots=True)
class WaveTally:
    enemies_spawned: int = 0
    enemies_killed: int = 0
    enemies_escaped: int = 0
    damage_dealt: float = 0.0
    coins_earned: int = 0
    elapsed_ms: float = 0.0
    timed_out: bool = False

    def on_escape(self, enemy: SimEnemy) -> None:
        self.enemies_escaped += 1

    def on_hit(self, tower: Optional[SimTower], enemy: SimEnemy, damage: float) -> None:
        self.damage_dealt += damage

    def on_kill(self, enemy: SimEnemy) -> None:
        self.enemies_killed += 1
        self.coins_earned += enemy.reward


def _distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def _nearest_target(tower: SimTower, enemies: Sequence[SimEnemy]) -> Optional[SimEnemy]:
    nearest: Optional[SimEnemy] = None
    nearest_dist = math.inf
    for enemy in enemies:
        if not enemy.active:
            continue
        dist = _distance(tower.x, tower.y, enemy.x, enemy.y)
        # Strict comparison keeps the first enemy found on ties.
        if dist <= tower.range and dist < nearest_dist:
            nearest = enemy
            nearest_dist = dist
    return nearest


def _move_enemies(state: SimState, step_s: float, tally: WaveTally, sink: Optional[CombatSink]) -> None:
    for enemy in state.enemies:
        if not enemy.active:
            continue
        enemy.x += enemy.speed * step_s
        if enemy.x >= DESPAWN_X:
            enemy.has_escaped = True
            state.lives -= 1
            state.enemy_escapes[enemy.enemy_id] = state.enemy_escapes.get(enemy.enemy_id, 0) + 1
            tally.on_escape(enemy)
            if sink is not None:
                sink.on_escape(enemy)


def _fire_towers(state: SimState) -> None:
    for tower in state.towers:
        if tower.fire_rate <= 0:
            continue
        cooldown_ms = 1000.0 / tower.fire_rate
        if state.time_ms - tower.last_fire_ms < cooldown_ms:
            continue
        tower.last_fire_ms = state.time_ms
        target = _nearest_target(tower, state.enemies)
        if target is None:
            continue
        state.projectiles.append(
            SimProjectile(
                id=state.next_projectile_id,
                x=tower.x,
                y=tower.y,
                target_id=target.id,
                source_tower_id=tower.id,
                damage=tower.damage,
                speed=PROJECTILE_SPEED,
            )
        )
        state.next_projectile_id += 1


def _resolve_projectiles(state: SimState, step_s: float, tally: WaveTally, sink: Optional[CombatSink]) -> None:
    survivors: List[SimProjectile] = []
    for projectile in state.projectiles:
        target = state.find_enemy(projectile.target_id)
        if target is None or not target.active:
            continue

        dx = target.x - projectile.x
        dy = target.y - projectile.y
        dist = math.hypot(dx, dy)
        if dist < HIT_THRESHOLD:
            target.health -= projectile.damage
            tower = state.find_tower(projectile.source_tower_id)
            if tower is not None:
                tower.total_damage_dealt += projectile.damage
                state.tower_damage[tower.tower_id] = state.tower_damage.get(tower.tower_id, 0.0) + projectile.damage
            tally.on_hit(tower, target, projectile.damage)
            if sink is not None:
                sink.on_hit(tower, target, projectile.damage)
            if target.health <= 0:
                target.is_dead = True
                state.coins += target.reward
                state.enemy_kills[target.enemy_id] = state.enemy_kills.get(target.enemy_id, 0) + 1
                tally.on_kill(target)
                if sink is not None:
                    sink.on_kill(target)
            continue

        travel = projectile.speed * step_s
        if dist > 0:
            projectile.x += dx / dist * travel
            projectile.y += dy / dist * travel
        survivors.append(projectile)
    state.projectiles = survivors


def run_wave(
    state: SimState,
    queue: Sequence[SpawnEntry],
    source: EnemySource,
    sink: Optional[CombatSink] = None,
    time_cap_ms: float = WAVE_TIME_CAP_MS,
) -> WaveTally:
    """Play one wave on ``state`` until it resolves, lives run out, or the cap hits.

    Enemies and projectiles are cleared first; towers, coins, lives and the
    per-type counters carry over and are mutated in place.
    """
    state.begin_wave(state.wave)
    tally = WaveTally()
    pending = deque(sorted(queue, key=lambda item: item.spawn_time_ms))
    step_s = TICK_MS / 1000.0

    while state.time_ms < time_cap_ms:
        while pending and pending[0].spawn_time_ms <= state.time_ms:
            entry = pending.popleft()
            enemy = source.spawn(entry, state.next_enemy_id)
            if enemy is None:
                continue
            state.next_enemy_id += 1
            state.enemies.append(enemy)
            tally.enemies_spawned += 1

        _move_enemies(state, step_s, tally, sink)
        _fire_towers(state)
        _resolve_projectiles(state, step_s, tally, sink)
        state.time_ms += TICK_MS

        if not pending and all(not enemy.active for enemy in state.enemies):
            break
        if state.lives <= 0:
            break
    else:
        tally.timed_out = True
        logger.debug("wave %s hit the %.0f ms cap", state.wave, time_cap_ms)

    tally.elapsed_ms = state.time_ms
    return tally
